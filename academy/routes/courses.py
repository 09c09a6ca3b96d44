from flask import Blueprint, request, flash, redirect, url_for, jsonify, abort
from flask_login import login_required
from datetime import datetime
import logging
from .. import db
from ..identity import current_identity
from ..models.course import Course, Lesson, Quiz, QuizOption, UserQuizResult
from ..services.access import can_access_course, can_access_course_catalog, can_take_quiz, can_view_lesson
from ..services.entitlements import has_active_enrollment

logger = logging.getLogger(__name__)

courses_bp = Blueprint('courses', __name__)

def _subscription_required(message):
    flash(message, 'error')
    return redirect(url_for('payment.subscription_checkout'))

def _get_or_404(model, ident):
    obj = db.session.get(model, ident)
    if obj is None:
        abort(404)
    return obj

@courses_bp.route('/')
@login_required
def index():
    """List all courses for subscribers"""
    identity = current_identity()
    if not can_access_course_catalog(identity):
        return _subscription_required('You need an active subscription to access the courses.')

    courses = db.session.execute(
        db.select(Course).order_by(Course.created_at.desc())
    ).scalars().all()

    return jsonify({'courses': [course.to_dict(include_modules=True) for course in courses]})

@courses_bp.route('/<int:course_id>')
@login_required
def detail(course_id):
    """Course detail with modules and lessons"""
    identity = current_identity()
    if not can_access_course(identity, course_id):
        return _subscription_required('You need an active subscription to access this course.')

    course = _get_or_404(Course, course_id)
    is_enrolled = has_active_enrollment(identity.user_id, course.id)
    logger.info(f"User {identity.user_id} enrollment status for course {course.id}: {is_enrolled}")

    return jsonify({
        'course': course.to_dict(include_modules=True),
        'is_enrolled': is_enrolled
    })

@courses_bp.route('/lesson/<int:lesson_id>')
@login_required
def lesson(lesson_id):
    """A lesson, its video and quizzes, with the user's previous attempts"""
    identity = current_identity()
    lesson = _get_or_404(Lesson, lesson_id)
    if not can_view_lesson(identity, lesson):
        return _subscription_required('You need an active subscription to access the lessons.')

    quiz_ids = [quiz.id for quiz in lesson.quizzes]
    attempts = []
    if quiz_ids:
        attempts = db.session.execute(
            db.select(UserQuizResult).where(
                UserQuizResult.user_id == identity.user_id,
                UserQuizResult.quiz_id.in_(quiz_ids)
            ).order_by(UserQuizResult.attempted_at)
        ).scalars().all()

    return jsonify({
        'lesson': lesson.to_dict(),
        'course_id': lesson.course_id,
        'quizzes': [quiz.to_dict() for quiz in lesson.quizzes],
        'attempts': [attempt.to_dict() for attempt in attempts]
    })

@courses_bp.route('/quiz/<int:quiz_id>/answer', methods=['POST'])
@login_required
def submit_quiz_answer(quiz_id):
    """Record one answer to a quiz and go back to the lesson"""
    identity = current_identity()
    option_id = request.form.get('option_id', type=int)

    quiz = db.session.get(Quiz, quiz_id)
    option = db.session.get(QuizOption, option_id) if option_id is not None else None
    if quiz is None or option is None or option.quiz_id != quiz.id:
        return jsonify({'error': 'Invalid quiz or option.'}), 400

    if not can_take_quiz(identity, quiz):
        return _subscription_required('You need an active subscription to take quizzes.')

    result = UserQuizResult(
        user_id=identity.user_id,
        quiz_id=quiz.id,
        is_correct=option.is_correct,
        attempted_at=datetime.utcnow()
    )
    db.session.add(result)
    db.session.commit()
    logger.info(f"User {identity.user_id} answered quiz {quiz.id} (correct={option.is_correct})")

    flash('Answer recorded', 'success')
    return redirect(url_for('courses.lesson', lesson_id=quiz.lesson_id))

@courses_bp.route('/lesson/<int:lesson_id>/quiz-results')
@login_required
def quiz_results(lesson_id):
    """The user's quiz results for a lesson"""
    identity = current_identity()
    lesson = _get_or_404(Lesson, lesson_id)
    if not can_view_lesson(identity, lesson):
        return _subscription_required('You need an active subscription to access the lessons.')

    quiz_ids = [quiz.id for quiz in lesson.quizzes]
    results = []
    if quiz_ids:
        results = db.session.execute(
            db.select(UserQuizResult).where(
                UserQuizResult.user_id == identity.user_id,
                UserQuizResult.quiz_id.in_(quiz_ids)
            )
        ).scalars().all()

    return jsonify({
        'lesson': lesson.to_dict(),
        'course_id': lesson.course_id,
        'results': [result.to_dict() for result in results],
        'correct_count': sum(1 for result in results if result.is_correct),
        'total_questions': len(quiz_ids)
    })

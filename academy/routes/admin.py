from flask import Blueprint, request, jsonify, redirect, url_for, flash, abort
from flask_login import current_user
from datetime import datetime
from decimal import Decimal, InvalidOperation
import logging

from .. import db
from ..models.course import Course, Module, Lesson, Quiz, QuizOption
from ..models.subscription import Subscription
from ..models.user import User
from ..utils.decorators import admin_required
from ..utils.storage import VideoStorage, VideoValidationError, has_upload

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)

MAX_PRICE = Decimal('10000')

def _get_or_404(model, ident, message):
    obj = db.session.get(model, ident)
    if obj is None:
        abort(404, description=message)
    return obj

def _validation_error(message, **extra):
    flash(message, 'error')
    return jsonify(dict({'error': message}, **extra)), 400

def _parse_price(raw):
    try:
        price = Decimal(raw or '0')
    except InvalidOperation:
        raise ValueError('Price must be a number.')
    if price < 0 or price > MAX_PRICE:
        raise ValueError(f'Price must be between 0 and {MAX_PRICE}.')
    return price.quantize(Decimal('0.01'))

def _parse_options():
    """Quiz options from parallel form lists; blanks are dropped"""
    texts = request.form.getlist('option_texts')
    corrects = {int(i) for i in request.form.getlist('option_corrects') if i.isdigit()}

    if len(texts) < 2:
        raise ValueError('At least 2 options are required.')
    if not any(i in corrects for i in range(len(texts))):
        raise ValueError('At least one correct option is required.')

    return [
        QuizOption(text=text.strip(), is_correct=i in corrects)
        for i, text in enumerate(texts)
        if text and text.strip()
    ]

def _points(raw):
    try:
        points = int(raw)
    except (TypeError, ValueError):
        return 1
    return points if points > 0 else 1

# ---------------------------
# courses
# ---------------------------

@admin_bp.route('/')
@admin_required
def index():
    courses = db.session.execute(
        db.select(Course).order_by(Course.created_at.desc())
    ).scalars().all()
    return jsonify({'courses': [course.to_dict(include_modules=True) for course in courses]})

@admin_bp.route('/create', methods=['POST'])
@admin_required
def create():
    title = request.form.get('title', '').strip()
    description = request.form.get('description', '').strip()
    if not title or not description:
        return _validation_error('Title and description are required.')

    try:
        price = _parse_price(request.form.get('price'))
    except ValueError as e:
        return _validation_error(str(e))

    course = Course(
        title=title,
        description=description,
        price=price,
        is_free=request.form.get('is_free', 'on' if price == 0 else '') == 'on',
        created_by=current_user.email or 'admin',
        created_at=datetime.utcnow()
    )
    db.session.add(course)
    db.session.commit()
    logger.info(f"Course {course.id} created by {course.created_by}")
    return redirect(url_for('admin.details', course_id=course.id))

@admin_bp.route('/<int:course_id>')
@admin_required
def details(course_id):
    course = _get_or_404(Course, course_id, 'Course not found.')
    data = course.to_dict(include_modules=True)
    for module_data, module in zip(data['modules'], course.modules):
        for lesson_data, lesson in zip(module_data['lessons'], module.lessons):
            lesson_data['quizzes'] = [quiz.to_dict(reveal_answers=True) for quiz in lesson.quizzes]
    return jsonify({'course': data})

@admin_bp.route('/<int:course_id>/delete', methods=['POST'])
@admin_required
def delete(course_id):
    course = _get_or_404(Course, course_id, 'Course not found.')
    storage = VideoStorage.from_app()
    for module in course.modules:
        for lesson in module.lessons:
            storage.delete(lesson.video_path)
    db.session.delete(course)
    db.session.commit()
    logger.info(f"Course {course_id} deleted")
    return redirect(url_for('admin.index'))

# ---------------------------
# modules
# ---------------------------

@admin_bp.route('/<int:course_id>/modules', methods=['POST'])
@admin_required
def create_module(course_id):
    course = _get_or_404(Course, course_id, 'Course not found.')
    title = request.form.get('title', '').strip()
    if not title:
        return _validation_error('Title is required.', course_id=course.id)

    module = Module(
        course_id=course.id,
        title=title,
        description=request.form.get('description'),
        order_index=request.form.get('order_index', 0, type=int)
    )
    db.session.add(module)
    db.session.commit()
    return redirect(url_for('admin.details', course_id=course.id))

# ---------------------------
# lessons
# ---------------------------

@admin_bp.route('/modules/<int:module_id>/lessons', methods=['POST'])
@admin_required
def create_lesson(module_id):
    module = _get_or_404(Module, module_id, 'Module not found.')
    title = request.form.get('title', '').strip()
    if not title:
        return _validation_error('Title is required.', module_id=module.id)

    lesson = Lesson(
        module_id=module.id,
        title=title,
        description=request.form.get('description', ''),
        order_index=request.form.get('order_index', 1, type=int)
    )

    video = request.files.get('video_file')
    if has_upload(video):
        try:
            lesson.video_path = VideoStorage.from_app().save(video)
        except VideoValidationError as e:
            return _validation_error(str(e), module_id=module.id)
        lesson.video_file_name = video.filename

    db.session.add(lesson)
    db.session.commit()
    logger.info(f"Lesson {lesson.id} created in module {module.id}")
    return redirect(url_for('admin.details', course_id=module.course_id))

@admin_bp.route('/lessons/<int:lesson_id>/edit', methods=['POST'])
@admin_required
def edit_lesson(lesson_id):
    lesson = _get_or_404(Lesson, lesson_id, 'Lesson not found.')
    title = request.form.get('title', '').strip()
    if not title:
        return _validation_error('Title is required.', lesson_id=lesson.id)

    video = request.files.get('video_file')
    if has_upload(video):
        storage = VideoStorage.from_app()
        try:
            new_path = storage.save(video)
        except VideoValidationError as e:
            return _validation_error(str(e), lesson_id=lesson.id)
        storage.delete(lesson.video_path)
        lesson.video_path = new_path
        lesson.video_file_name = video.filename

    lesson.title = title
    lesson.description = request.form.get('description', lesson.description)
    lesson.order_index = request.form.get('order_index', lesson.order_index, type=int)
    db.session.commit()

    return redirect(url_for('admin.details', course_id=lesson.course_id))

@admin_bp.route('/lessons/<int:lesson_id>/delete', methods=['POST'])
@admin_required
def delete_lesson(lesson_id):
    lesson = _get_or_404(Lesson, lesson_id, 'Lesson not found.')
    course_id = lesson.course_id

    VideoStorage.from_app().delete(lesson.video_path)
    db.session.delete(lesson)
    db.session.commit()

    return redirect(url_for('admin.details', course_id=course_id))

# ---------------------------
# quizzes
# ---------------------------

@admin_bp.route('/lessons/<int:lesson_id>/quizzes', methods=['POST'])
@admin_required
def create_quiz(lesson_id):
    lesson = _get_or_404(Lesson, lesson_id, 'Lesson not found.')
    question = request.form.get('question', '').strip()
    if not question:
        return _validation_error('The question is required.', lesson_id=lesson.id)

    try:
        options = _parse_options()
    except ValueError as e:
        return _validation_error(str(e), lesson_id=lesson.id)

    quiz = Quiz(
        lesson_id=lesson.id,
        question=question,
        description=request.form.get('description'),
        points=_points(request.form.get('points')),
        created_at=datetime.utcnow(),
        options=options
    )
    db.session.add(quiz)
    db.session.commit()
    logger.info(f"Quiz {quiz.id} created with {len(options)} options")
    return redirect(url_for('admin.details', course_id=lesson.course_id))

@admin_bp.route('/quizzes/<int:quiz_id>/edit', methods=['POST'])
@admin_required
def edit_quiz(quiz_id):
    quiz = _get_or_404(Quiz, quiz_id, 'Quiz not found.')
    question = request.form.get('question', '').strip()
    if not question:
        return _validation_error('The question is required.', quiz_id=quiz.id)

    try:
        options = _parse_options()
    except ValueError as e:
        return _validation_error(str(e), quiz_id=quiz.id)

    quiz.question = question
    quiz.description = request.form.get('description')
    quiz.points = _points(request.form.get('points'))
    # Replaces the previous options (delete-orphan removes them)
    quiz.options = options
    db.session.commit()

    return redirect(url_for('admin.details', course_id=quiz.lesson.course_id))

@admin_bp.route('/quizzes/<int:quiz_id>/delete', methods=['POST'])
@admin_required
def delete_quiz(quiz_id):
    quiz = _get_or_404(Quiz, quiz_id, 'Quiz not found.')
    course_id = quiz.lesson.course_id
    db.session.delete(quiz)
    db.session.commit()
    return redirect(url_for('admin.details', course_id=course_id))

# ---------------------------
# users
# ---------------------------

@admin_bp.route('/users')
@admin_required
def users():
    """Every user with their active subscription, if any"""
    all_users = db.session.execute(db.select(User).order_by(User.id)).scalars().all()
    active = db.session.execute(
        db.select(Subscription).where(Subscription.is_active.is_(True))
    ).scalars().all()
    by_user = {subscription.user_id: subscription for subscription in active}

    return jsonify({'users': [
        {
            'user': user.to_dict(),
            'subscription': by_user[user.email].to_dict() if user.email in by_user else None
        }
        for user in all_users
    ]})

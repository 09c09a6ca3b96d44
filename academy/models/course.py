from .. import db
from datetime import datetime
from decimal import Decimal

class Course(db.Model):
    """Course model: the root of the module / lesson / quiz tree"""
    __tablename__ = 'courses'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('0'))  # 0 = free
    is_free = db.Column(db.Boolean, default=True)
    created_by = db.Column(db.String(120), default='')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    modules = db.relationship('Module', back_populates='course', lazy=True,
                              cascade='all, delete-orphan', order_by='Module.order_index')

    def __repr__(self):
        return f'<Course {self.title}>'

    def to_dict(self, include_modules=False):
        """Convert course to dictionary"""
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'price': str(self.price) if self.price is not None else '0',
            'is_free': self.is_free,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }
        if include_modules:
            data['modules'] = [module.to_dict(include_lessons=True) for module in self.modules]
        return data


class Module(db.Model):
    __tablename__ = 'modules'

    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    order_index = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    course = db.relationship('Course', back_populates='modules')
    lessons = db.relationship('Lesson', back_populates='module', lazy=True,
                              cascade='all, delete-orphan', order_by='Lesson.order_index')

    def to_dict(self, include_lessons=False):
        data = {
            'id': self.id,
            'course_id': self.course_id,
            'title': self.title,
            'description': self.description,
            'order_index': self.order_index
        }
        if include_lessons:
            data['lessons'] = [lesson.to_dict() for lesson in self.lessons]
        return data


class Lesson(db.Model):
    __tablename__ = 'lessons'

    id = db.Column(db.Integer, primary_key=True)
    module_id = db.Column(db.Integer, db.ForeignKey('modules.id', ondelete='CASCADE'), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    video_file_name = db.Column(db.String(255))
    video_path = db.Column(db.String(255))
    order_index = db.Column(db.Integer, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    module = db.relationship('Module', back_populates='lessons')
    quizzes = db.relationship('Quiz', back_populates='lesson', lazy=True,
                              cascade='all, delete-orphan', order_by='Quiz.id')

    @property
    def course_id(self):
        return self.module.course_id if self.module else None

    def to_dict(self):
        return {
            'id': self.id,
            'module_id': self.module_id,
            'title': self.title,
            'description': self.description,
            'video_file_name': self.video_file_name,
            'video_path': self.video_path,
            'order_index': self.order_index
        }


class Quiz(db.Model):
    __tablename__ = 'quizzes'

    id = db.Column(db.Integer, primary_key=True)
    lesson_id = db.Column(db.Integer, db.ForeignKey('lessons.id', ondelete='CASCADE'), nullable=False)
    question = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text)
    points = db.Column(db.Integer, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    lesson = db.relationship('Lesson', back_populates='quizzes')
    options = db.relationship('QuizOption', back_populates='quiz', lazy=True,
                              cascade='all, delete-orphan', order_by='QuizOption.id')

    def to_dict(self, reveal_answers=False):
        return {
            'id': self.id,
            'lesson_id': self.lesson_id,
            'question': self.question,
            'description': self.description,
            'points': self.points,
            'options': [option.to_dict(reveal_answers) for option in self.options]
        }


class QuizOption(db.Model):
    __tablename__ = 'quiz_options'

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quizzes.id', ondelete='CASCADE'), nullable=False)
    text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, default=False)

    quiz = db.relationship('Quiz', back_populates='options')

    def to_dict(self, reveal_answer=False):
        data = {'id': self.id, 'text': self.text}
        if reveal_answer:
            data['is_correct'] = self.is_correct
        return data


class UserQuizResult(db.Model):
    __tablename__ = 'user_quiz_results'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(120), nullable=False, index=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quizzes.id', ondelete='CASCADE'), nullable=False)
    is_correct = db.Column(db.Boolean, default=False)
    attempted_at = db.Column(db.DateTime, default=datetime.utcnow)

    quiz = db.relationship('Quiz', backref=db.backref('results', lazy=True, cascade='all, delete-orphan'))

    def to_dict(self):
        return {
            'id': self.id,
            'quiz_id': self.quiz_id,
            'is_correct': self.is_correct,
            'attempted_at': self.attempted_at.isoformat() if self.attempted_at else None
        }

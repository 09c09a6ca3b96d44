import uuid
import logging
from datetime import datetime
from decimal import Decimal

import click

from . import db
from .models.course import Course, Module, Lesson, Quiz, QuizOption
from .models.subscription import Subscription
from .models.user import User, ADMIN_ROLE, USER_ROLE

logger = logging.getLogger(__name__)

ADMIN_EMAIL = 'admin@academy.local'
ADMIN_PASSWORD = 'Admin123!'

TEST_USERS = [
    {'email': 'julien.r@test.com', 'password': 'Test123!', 'subscribed': True},
    {'email': 'amelie.d@test.com', 'password': 'Test123!', 'subscribed': True},
    {'email': 'marc.l@test.com', 'password': 'Test123!', 'subscribed': False},
]

SAMPLE_COURSES = [
    {
        'title': 'Introduction to Cybersecurity',
        'description': 'The fundamentals of cybersecurity, common threats and good protection practices.',
    },
    {
        'title': 'Ethical Hacking - Beginner',
        'description': 'The basics of ethical hacking and penetration testing with hands-on exercises.',
    },
    {
        'title': 'Network Security',
        'description': 'Securing network infrastructure and detecting intrusions.',
    },
]

SAMPLE_LESSONS = [
    ('What is cybersecurity?',
     'Cybersecurity is the practice of protecting systems, networks and programs from digital attacks.',
     '/videos/intro-cybersecurity.mp4'),
    ('Types of threats',
     'Malware, phishing, ransomware and the other threats you will meet.',
     '/videos/threat-types.mp4'),
    ('Security best practices',
     'The basics of securing your systems and protecting your data.',
     '/videos/best-practices.mp4'),
]

SAMPLE_QUIZ = {
    'question': 'What is a firewall?',
    'points': 10,
    'options': [
        ('A protection system that filters network traffic', True),
        ('A web browser', False),
        ('A kind of computer virus', False),
        ('A file encryption tool', False),
    ],
}


def _ensure_user(email, password, role):
    user = User.query.filter_by(email=email).first()
    if user:
        if user.role != role and role == ADMIN_ROLE:
            user.role = ADMIN_ROLE
        return user, False
    user = User(email=email, role=role)
    user.set_password(password)
    db.session.add(user)
    return user, True


def seed_data():
    """Idempotent: existing users and courses are left alone"""
    _, created = _ensure_user(ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_ROLE)
    if created:
        logger.info(f"Admin user created: {ADMIN_EMAIL}")

    for data in TEST_USERS:
        _, created = _ensure_user(data['email'], data['password'], USER_ROLE)
        if created and data['subscribed']:
            db.session.add(Subscription(
                user_id=data['email'],
                stripe_subscription_id=f"sub_test_{uuid.uuid4().hex[:8]}",
                stripe_customer_id=f"cus_test_{uuid.uuid4().hex[:8]}",
                status=Subscription.STATUS_ACTIVE,
                is_active=True,
                start_date=datetime.utcnow()
            ))
        if created:
            logger.info(f"Test user created: {data['email']} (subscription: {data['subscribed']})")

    if Course.query.first() is None:
        courses = [
            Course(title=c['title'], description=c['description'], created_by=ADMIN_EMAIL,
                   price=Decimal('0'), is_free=False)
            for c in SAMPLE_COURSES
        ]
        db.session.add_all(courses)

        module = Module(course=courses[0], title='Security basics',
                        description='Introduction to the core concepts', order_index=1)
        lessons = [
            Lesson(module=module, title=title, description=description, video_path=path, order_index=i)
            for i, (title, description, path) in enumerate(SAMPLE_LESSONS, start=1)
        ]
        Quiz(
            lesson=lessons[0],
            question=SAMPLE_QUIZ['question'],
            points=SAMPLE_QUIZ['points'],
            options=[QuizOption(text=text, is_correct=correct) for text, correct in SAMPLE_QUIZ['options']]
        )
        db.session.add(module)
        logger.info(f"{len(courses)} courses, 1 module, {len(lessons)} lessons and 1 quiz created")

    db.session.commit()


def make_first_user_admin():
    """Returns the promoted user, or None when there are no users"""
    user = User.query.order_by(User.id).first()
    if user is None:
        return None
    if user.role != ADMIN_ROLE:
        user.role = ADMIN_ROLE
        db.session.commit()
    return user


def register_commands(app):
    @app.cli.command('seed')
    def seed_command():
        """Create the admin, test users and sample courses."""
        seed_data()
        click.echo('Seed data initialized.')

    @app.cli.command('make-admin')
    def make_admin_command():
        """Give the Admin role to the first registered user (development only)."""
        if not app.debug:
            raise click.ClickException('make-admin is only available in development.')
        user = make_first_user_admin()
        if user is None:
            click.echo('No users found in the database.')
        else:
            click.echo(f"User '{user.email}' is now Admin.")

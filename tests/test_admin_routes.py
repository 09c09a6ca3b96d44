import io
import os

import pytest

from academy import db
from academy.models.course import Course, Lesson, Module, Quiz, QuizOption
from academy.models.user import ADMIN_ROLE

from .factories import count, login, make_course, make_lesson, make_subscription, make_user

ADMIN = 'admin@example.com'


@pytest.fixture
def admin(app, client):
    with app.app_context():
        make_user(ADMIN, role=ADMIN_ROLE)
    login(client, ADMIN)
    return client


@pytest.fixture
def course_id(app):
    with app.app_context():
        return make_course().id


def video_upload(name='clip.mp4', content=b'\x00\x00\x00\x18ftypmp42'):
    return (io.BytesIO(content), name)


def stored_file(app, video_path):
    return os.path.join(app.config['VIDEO_UPLOAD_FOLDER'], os.path.basename(video_path))


def test_anonymous_user_is_sent_to_login(client):
    response = client.get('/admin/courses/')
    assert response.status_code == 302
    assert '/auth/login' in response.headers['Location']


def test_regular_user_is_forbidden(app, client):
    with app.app_context():
        make_user('bob@example.com')
    login(client, 'bob@example.com')

    assert client.get('/admin/courses/').status_code == 403
    assert client.post('/admin/courses/create', data={'title': 'x', 'description': 'y'}).status_code == 403


def test_create_course(app, admin):
    response = admin.post('/admin/courses/create', data={
        'title': 'Network Security',
        'description': 'Firewalls and intrusion detection.',
        'price': '49.90',
    })

    assert response.status_code == 302
    with app.app_context():
        course = Course.query.one()
        assert str(course.price) == '49.90'
        assert course.is_free is False
        assert course.created_by == ADMIN
        assert response.headers['Location'].endswith(f'/admin/courses/{course.id}')


def test_free_course_defaults(app, admin):
    admin.post('/admin/courses/create', data={'title': 'Intro', 'description': 'Basics.'})

    with app.app_context():
        course = Course.query.one()
        assert str(course.price) == '0.00'
        assert course.is_free is True


@pytest.mark.parametrize('form', [
    {'title': '', 'description': 'Basics.'},
    {'title': 'Intro', 'description': ''},
    {'title': 'Intro', 'description': 'Basics.', 'price': 'abc'},
    {'title': 'Intro', 'description': 'Basics.', 'price': '-1'},
    {'title': 'Intro', 'description': 'Basics.', 'price': '10000.01'},
])
def test_invalid_course_is_rejected(app, admin, form):
    assert admin.post('/admin/courses/create', data=form).status_code == 400
    with app.app_context():
        assert count(Course) == 0


def test_course_details_reveal_answers(app, admin, course_id):
    with app.app_context():
        make_lesson(db.session.get(Course, course_id))

    body = admin.get(f'/admin/courses/{course_id}').get_json()

    options = body['course']['modules'][0]['lessons'][0]['quizzes'][0]['options']
    assert [o['is_correct'] for o in options] == [True, False]


def test_unknown_course_details(admin):
    assert admin.get('/admin/courses/999').status_code == 404


def test_create_module_and_lesson_with_video(app, admin, course_id):
    admin.post(f'/admin/courses/{course_id}/modules', data={'title': 'Basics', 'order_index': '1'})
    with app.app_context():
        module_id = Module.query.filter_by(course_id=course_id).one().id

    response = admin.post(f'/admin/courses/modules/{module_id}/lessons', data={
        'title': 'Packet filtering',
        'description': 'How firewalls filter traffic.',
        'video_file': video_upload(),
    }, content_type='multipart/form-data')

    assert response.status_code == 302
    with app.app_context():
        lesson = Lesson.query.one()
        assert lesson.video_path.startswith('/videos/')
        assert lesson.video_path.endswith('.mp4')
        assert lesson.video_file_name == 'clip.mp4'
        assert os.path.exists(stored_file(app, lesson.video_path))


def test_lesson_with_unsupported_video(app, admin, course_id):
    admin.post(f'/admin/courses/{course_id}/modules', data={'title': 'Basics'})
    with app.app_context():
        module_id = Module.query.one().id

    response = admin.post(f'/admin/courses/modules/{module_id}/lessons', data={
        'title': 'Packet filtering',
        'video_file': video_upload('clip.avi'),
    }, content_type='multipart/form-data')

    assert response.status_code == 400
    with app.app_context():
        assert count(Lesson) == 0


def test_edit_lesson_replaces_video(app, admin, course_id):
    admin.post(f'/admin/courses/{course_id}/modules', data={'title': 'Basics'})
    with app.app_context():
        module_id = Module.query.one().id
    admin.post(f'/admin/courses/modules/{module_id}/lessons', data={
        'title': 'Packet filtering', 'video_file': video_upload(),
    }, content_type='multipart/form-data')
    with app.app_context():
        lesson = Lesson.query.one()
        lesson_id, old_path = lesson.id, lesson.video_path

    admin.post(f'/admin/courses/lessons/{lesson_id}/edit', data={
        'title': 'Stateful filtering', 'video_file': video_upload('new.webm'),
    }, content_type='multipart/form-data')

    with app.app_context():
        lesson = db.session.get(Lesson, lesson_id)
        assert lesson.title == 'Stateful filtering'
        assert lesson.video_path.endswith('.webm')
        assert os.path.exists(stored_file(app, lesson.video_path))
    assert not os.path.exists(stored_file(app, old_path))


def test_delete_lesson(app, admin, course_id):
    with app.app_context():
        lesson_id = make_lesson(db.session.get(Course, course_id)).id

    response = admin.post(f'/admin/courses/lessons/{lesson_id}/delete')

    assert response.status_code == 302
    with app.app_context():
        assert count(Lesson) == 0
        assert count(Quiz) == 0


def test_create_quiz(app, admin, course_id):
    with app.app_context():
        lesson_id = make_lesson(db.session.get(Course, course_id), with_quiz=False).id

    response = admin.post(f'/admin/courses/lessons/{lesson_id}/quizzes', data={
        'question': 'Which port does HTTPS use?',
        'option_texts': ['443', '80', '22'],
        'option_corrects': ['0'],
    })

    assert response.status_code == 302
    with app.app_context():
        quiz = Quiz.query.one()
        assert quiz.points == 1
        assert [(o.text, o.is_correct) for o in quiz.options] == [('443', True), ('80', False), ('22', False)]


@pytest.mark.parametrize('options, corrects', [
    (['443'], ['0']),
    (['443', '80'], []),
])
def test_invalid_quiz_is_rejected(app, admin, course_id, options, corrects):
    with app.app_context():
        lesson_id = make_lesson(db.session.get(Course, course_id), with_quiz=False).id

    response = admin.post(f'/admin/courses/lessons/{lesson_id}/quizzes', data={
        'question': 'Which port does HTTPS use?',
        'option_texts': options,
        'option_corrects': corrects,
    })

    assert response.status_code == 400
    with app.app_context():
        assert count(Quiz) == 0


def test_edit_quiz_replaces_options(app, admin, course_id):
    with app.app_context():
        quiz_id = make_lesson(db.session.get(Course, course_id)).quizzes[0].id

    admin.post(f'/admin/courses/quizzes/{quiz_id}/edit', data={
        'question': 'What does a firewall filter?',
        'points': '5',
        'option_texts': ['Packets', 'Files'],
        'option_corrects': ['0'],
    })

    with app.app_context():
        quiz = db.session.get(Quiz, quiz_id)
        assert quiz.points == 5
        assert [o.text for o in quiz.options] == ['Packets', 'Files']
        assert count(QuizOption) == 2


def test_delete_quiz(app, admin, course_id):
    with app.app_context():
        quiz_id = make_lesson(db.session.get(Course, course_id)).quizzes[0].id

    admin.post(f'/admin/courses/quizzes/{quiz_id}/delete')

    with app.app_context():
        assert count(Quiz) == 0
        assert count(QuizOption) == 0


def test_delete_course_removes_tree_and_videos(app, admin, course_id):
    admin.post(f'/admin/courses/{course_id}/modules', data={'title': 'Basics'})
    with app.app_context():
        module_id = Module.query.one().id
    admin.post(f'/admin/courses/modules/{module_id}/lessons', data={
        'title': 'Packet filtering', 'video_file': video_upload(),
    }, content_type='multipart/form-data')
    with app.app_context():
        video_path = Lesson.query.one().video_path

    response = admin.post(f'/admin/courses/{course_id}/delete')

    assert response.status_code == 302
    with app.app_context():
        assert count(Course) == 0
        assert count(Module) == 0
        assert count(Lesson) == 0
    assert not os.path.exists(stored_file(app, video_path))


def test_users_with_subscriptions(app, admin):
    with app.app_context():
        make_user('bob@example.com')
        make_subscription('bob@example.com')

    users = {row['user']['email']: row['subscription'] for row in admin.get('/admin/courses/users').get_json()['users']}

    assert users[ADMIN] is None
    assert users['bob@example.com']['status'] == 'active'

import pytest

from academy.errors import Unauthenticated
from academy.identity import Identity
from academy.models.subscription import Subscription
from academy.models.user import ADMIN_ROLE, USER_ROLE
from academy.services.access import (
    can_access_course,
    can_access_course_catalog,
    can_take_quiz,
    can_view_lesson,
)

from .factories import make_course, make_enrollment, make_lesson, make_subscription


def test_no_subscription_and_no_admin_role_denies_catalog(ctx):
    assert can_access_course_catalog(Identity('bob@example.com', {USER_ROLE})) is False


def test_active_subscription_grants_catalog(ctx):
    make_subscription('bob@example.com')
    assert can_access_course_catalog(Identity('bob@example.com', {USER_ROLE})) is True


def test_admin_needs_no_subscription(ctx):
    identity = Identity('admin@example.com', {ADMIN_ROLE})
    course = make_course()
    assert can_access_course_catalog(identity) is True
    assert can_access_course(identity, course.id) is True


def test_access_flips_once_subscription_is_inserted(ctx):
    alice = Identity('alice@example.com', {USER_ROLE})
    assert can_access_course_catalog(alice) is False

    make_subscription('alice@example.com')
    assert can_access_course_catalog(alice) is True


@pytest.mark.parametrize('status, is_active', [
    (Subscription.STATUS_ACTIVE, False),
    (Subscription.STATUS_CANCELED, True),
    (Subscription.STATUS_PAST_DUE, True),
])
def test_status_and_flag_must_both_hold(ctx, status, is_active):
    make_subscription('bob@example.com', status=status, is_active=is_active)
    assert can_access_course_catalog(Identity('bob@example.com', {USER_ROLE})) is False


def test_enrollment_alone_does_not_open_the_course(ctx):
    course = make_course()
    make_enrollment('bob@example.com', course.id)
    assert can_access_course(Identity('bob@example.com', {USER_ROLE}), course.id) is False


def test_course_access_ignores_which_course(ctx):
    make_subscription('bob@example.com')
    identity = Identity('bob@example.com', {USER_ROLE})
    assert can_access_course(identity, 999) is True


def test_lesson_and_quiz_follow_course_access(ctx):
    lesson = make_lesson(make_course())
    quiz = lesson.quizzes[0]
    bob = Identity('bob@example.com', {USER_ROLE})

    assert can_view_lesson(bob, lesson) is False
    assert can_take_quiz(bob, quiz) is False

    make_subscription('bob@example.com')
    assert can_view_lesson(bob, lesson) is True
    assert can_take_quiz(bob, quiz) is True


@pytest.mark.parametrize('identity', [None, Identity('')])
def test_missing_user_is_unauthenticated(ctx, identity):
    with pytest.raises(Unauthenticated):
        can_access_course_catalog(identity)
    with pytest.raises(Unauthenticated):
        can_access_course(identity, 1)

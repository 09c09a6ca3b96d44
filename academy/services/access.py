"""Access decisions for courses, lessons and quizzes.

Content is gated by the platform subscription only. Admins see everything.
A course enrollment bought through one-time checkout is not consulted here;
it only keeps the user from buying the same course twice.
"""
import logging

from ..errors import Unauthenticated
from ..models.user import ADMIN_ROLE
from .entitlements import has_active_subscription

logger = logging.getLogger(__name__)


def _require_user(identity):
    if identity is None or not identity.user_id:
        raise Unauthenticated('No authenticated user')


def can_access_course_catalog(identity):
    _require_user(identity)
    if identity.has_role(ADMIN_ROLE):
        return True
    return has_active_subscription(identity.user_id)


def can_access_course(identity, course_id):
    # Subscription-gated only; enrollments are not checked
    return can_access_course_catalog(identity)


def can_view_lesson(identity, lesson):
    return can_access_course(identity, lesson.course_id)


def can_take_quiz(identity, quiz):
    return can_view_lesson(identity, quiz.lesson)

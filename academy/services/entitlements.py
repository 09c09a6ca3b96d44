"""Entitlement store queries.

Both predicates are plain existence checks over the current rows; a missing
row means ``False``, never an error. The ``grant_*`` helpers add a row only
when no matching one exists. The check runs in the caller's transaction; a
concurrent duplicate that slips past it is stopped by the partial unique
indexes on the tables and surfaces as ``IntegrityError`` at commit.
"""
from datetime import datetime
import logging

from .. import db
from ..models.enrollment import CourseEnrollment
from ..models.subscription import Subscription

logger = logging.getLogger(__name__)


def has_active_subscription(user_id):
    if not user_id:
        return False
    query = db.select(Subscription.id).where(
        Subscription.user_id == user_id,
        Subscription.is_active.is_(True),
        Subscription.status == Subscription.STATUS_ACTIVE,
    ).limit(1)
    return db.session.execute(query).first() is not None


def has_active_enrollment(user_id, course_id):
    return get_active_enrollment(user_id, course_id) is not None


def get_active_enrollment(user_id, course_id):
    if not user_id:
        return None
    return db.session.execute(
        db.select(CourseEnrollment).where(
            CourseEnrollment.user_id == user_id,
            CourseEnrollment.course_id == course_id,
            CourseEnrollment.is_active.is_(True),
        ).limit(1)
    ).scalar_one_or_none()


def get_enrollment(user_id, course_id):
    """Any enrollment row for the pair, active or not"""
    return db.session.execute(
        db.select(CourseEnrollment).where(
            CourseEnrollment.user_id == user_id,
            CourseEnrollment.course_id == course_id,
        ).limit(1)
    ).scalar_one_or_none()


def get_active_subscription(user_id):
    if not user_id:
        return None
    return db.session.execute(
        db.select(Subscription).where(
            Subscription.user_id == user_id,
            Subscription.is_active.is_(True),
        ).limit(1)
    ).scalar_one_or_none()


def grant_enrollment(user_id, course_id, payment_id=None):
    """Returns ``(enrollment, created)``; nothing is committed here"""
    existing = get_enrollment(user_id, course_id)
    if existing is not None:
        logger.info(f"Enrollment for {user_id} in course {course_id} already exists (id={existing.id})")
        return existing, False

    enrollment = CourseEnrollment(
        user_id=user_id,
        course_id=course_id,
        payment_id=payment_id,
        enrolled_at=datetime.utcnow(),
        is_active=True,
    )
    db.session.add(enrollment)
    db.session.flush()
    logger.info(f"Enrolled {user_id} in course {course_id} (enrollment {enrollment.id})")
    return enrollment, True


def get_subscription_by_stripe_id(stripe_subscription_id):
    """Any row for the Stripe subscription, canceled ones included"""
    return db.session.execute(
        db.select(Subscription)
        .where(Subscription.stripe_subscription_id == stripe_subscription_id)
        .order_by(Subscription.id)
        .limit(1)
    ).scalar_one_or_none()


def grant_subscription(user_id, stripe_subscription_id, stripe_customer_id=''):
    """Returns ``(subscription, created)``; nothing is committed here.

    A Stripe subscription is recorded once: after a cancellation the old
    row is returned as is, so replaying its checkout never reactivates it.
    """
    recorded = get_subscription_by_stripe_id(stripe_subscription_id)
    if recorded is not None:
        logger.info(f"Stripe subscription {stripe_subscription_id} already recorded "
                    f"(id={recorded.id}, status={recorded.status})")
        return recorded, False

    existing = get_active_subscription(user_id)
    if existing is not None:
        logger.info(f"{user_id} already has active subscription {existing.id}")
        return existing, False

    subscription = Subscription(
        user_id=user_id,
        stripe_subscription_id=stripe_subscription_id,
        stripe_customer_id=stripe_customer_id or '',
        status=Subscription.STATUS_ACTIVE,
        start_date=datetime.utcnow(),
        is_active=True,
    )
    db.session.add(subscription)
    db.session.flush()
    logger.info(f"Subscription {subscription.id} activated for {user_id}")
    return subscription, True

"""Turns Stripe checkout confirmations into payments, enrollments and subscriptions.

Stripe is trusted as the source of truth for whether money moved: the
session is always re-read from the gateway before anything is written.
Every confirmation is applied as one unit of work (payment status and
entitlement commit together or not at all) and may be delivered any number
of times: a repeat finds the entitlement already in place and writes nothing
new. Two deliveries racing each other are settled by the unique indexes on
the entitlement tables; the loser rolls back and reports the existing row.
"""
from datetime import datetime
import logging

from sqlalchemy.exc import IntegrityError

from .. import db
from ..errors import AlreadyEnrolled, MalformedSession, NotFound, SessionOwnerMismatch, Unauthenticated
from ..models.course import Course
from ..models.payment import Payment
from ..models.subscription import Subscription
from .entitlements import (
    get_active_enrollment,
    get_active_subscription,
    get_enrollment,
    get_subscription_by_stripe_id,
    grant_enrollment,
    grant_subscription,
    has_active_enrollment,
)

logger = logging.getLogger(__name__)

PENDING_REFERENCE = 'pending'


class PaymentOutcome:
    def __init__(self, paid, session=None, course=None, payment=None, enrollment=None, created=False):
        self.paid = paid
        self.session = session
        self.course = course
        self.payment = payment
        self.enrollment = enrollment
        self.created = created

    def to_dict(self):
        return {
            'paid': self.paid,
            'already_enrolled': self.paid and not self.created,
            'course': self.course.to_dict() if self.course else None,
            'payment': self.payment.to_dict() if self.payment else None,
            'enrollment': self.enrollment.to_dict() if self.enrollment else None,
        }


class SubscriptionOutcome:
    def __init__(self, paid, session=None, subscription=None, created=False):
        self.paid = paid
        self.session = session
        self.subscription = subscription
        self.created = created

    def to_dict(self):
        return {
            'paid': self.paid,
            'already_subscribed': self.paid and not self.created,
            'subscription': self.subscription.to_dict() if self.subscription else None,
        }


class PaymentReconciler:
    def __init__(self, gateway):
        self.gateway = gateway

    @property
    def currency(self):
        return self.gateway.config.currency

    # ---------------------------
    # session creation
    # ---------------------------

    def create_checkout_session(self, course_id, identity, success_url, cancel_url):
        """Open a hosted checkout for one course and record the pending payment.

        Raises ``AlreadyEnrolled`` instead of opening a session when the user
        already holds an active enrollment for the course. Each call records a
        new pending payment; abandoned ones simply stay pending.
        """
        if not identity.user_id:
            raise Unauthenticated('Checkout requires a user')

        course = db.session.get(Course, course_id)
        if course is None:
            raise NotFound(f'Course {course_id} not found')

        if has_active_enrollment(identity.user_id, course.id):
            logger.info(f"{identity.user_id} is already enrolled in course {course.id}; no checkout opened")
            raise AlreadyEnrolled(course.id)

        payment = Payment(
            user_id=identity.user_id,
            course_id=course.id,
            amount=course.price,
            currency=self.currency,
            stripe_payment_intent_id=PENDING_REFERENCE,
            status=Payment.STATUS_PENDING,
        )
        # Committed before calling Stripe so no write lock is held across the request
        db.session.add(payment)
        db.session.commit()

        try:
            session = self.gateway.create_checkout_session(
                course,
                customer_email=identity.user_id,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={
                    'user_id': identity.user_id,
                    'course_id': str(course.id),
                    'payment_id': str(payment.id),
                },
            )
        except Exception:
            db.session.rollback()
            payment.mark_failed()
            db.session.commit()
            logger.warning(f"Payment {payment.id} failed: no checkout session could be opened")
            raise

        payment.stripe_payment_intent_id = session.payment_intent_id or session.id
        db.session.commit()
        logger.info(f"Payment {payment.id} pending for course {course.id} (session {session.id})")
        return session

    def create_subscription_session(self, identity, success_url, cancel_url):
        """Nothing is stored until the subscription is confirmed"""
        if not identity.user_id:
            raise Unauthenticated('Subscription checkout requires a user')
        return self.gateway.create_subscription_session(
            customer_email=identity.user_id,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={'user_id': identity.user_id},
        )

    # ---------------------------
    # confirmations
    # ---------------------------

    def handle_payment_success(self, session_id, user_id=None):
        session = self.gateway.get_session(session_id)
        if not session.is_paid:
            logger.info(f"Session {session.id} not paid (payment_status={session.payment_status}); nothing recorded")
            return PaymentOutcome(paid=False, session=session)

        course_id = _course_id_from(session)
        user_id = _buyer(session, user_id)

        course = db.session.get(Course, course_id)
        if course is None:
            raise NotFound(f'Course {course_id} from session {session.id} not found')

        try:
            payment = self._find_payment(session)
            if payment is not None and payment.status == Payment.STATUS_FAILED:
                # Ledger and entitlements must agree; settled by hand
                logger.error(f"Payment {payment.id} is failed but session {session.id} reports paid; "
                             f"no enrollment granted, manual reconciliation needed")
                return PaymentOutcome(paid=True, session=session, course=course, payment=payment,
                                      enrollment=get_active_enrollment(user_id, course_id))

            if payment is not None:
                if payment.mark_succeeded(session.payment_intent_id or session.id):
                    logger.info(f"Payment {payment.id} succeeded (session {session.id})")
            else:
                logger.warning(f"No payment row matches session {session.id}; enrolling anyway")

            enrollment, created = grant_enrollment(user_id, course_id, payment.id if payment else None)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.warning(f"Concurrent confirmation of session {session.id} already enrolled {user_id}")
            payment = self._find_payment(session)
            enrollment, created = get_enrollment(user_id, course_id), False

        return PaymentOutcome(paid=True, session=session, course=course,
                              payment=payment, enrollment=enrollment, created=created)

    def handle_subscription_success(self, session_id, user_id=None):
        session = self.gateway.get_session(session_id)
        if not (session.is_paid or session.is_complete):
            logger.info(f"Subscription session {session.id} not complete (status={session.status}); nothing recorded")
            return SubscriptionOutcome(paid=False, session=session)

        user_id = _buyer(session, user_id)
        stripe_subscription_id = session.subscription_id or session.id

        try:
            subscription, created = grant_subscription(
                user_id,
                stripe_subscription_id=stripe_subscription_id,
                stripe_customer_id=session.customer_id or '',
            )
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.warning(f"Concurrent confirmation of session {session.id} already subscribed {user_id}")
            subscription = get_subscription_by_stripe_id(stripe_subscription_id) or get_active_subscription(user_id)
            created = False

        return SubscriptionOutcome(paid=True, session=session, subscription=subscription, created=created)

    def mark_payment_failed(self, session):
        """Expired or failed checkout: the pending payment becomes ``failed``"""
        payment = self._find_payment(session)
        if payment is None:
            logger.info(f"No payment recorded for expired session {session.id}")
            return None
        if payment.mark_failed():
            db.session.commit()
            logger.info(f"Payment {payment.id} failed (session {session.id})")
        else:
            logger.info(f"Payment {payment.id} already {payment.status}; expiry ignored")
        return payment

    def cancel_subscription(self, stripe_subscription_id, when=None):
        subscriptions = db.session.execute(
            db.select(Subscription).where(
                Subscription.stripe_subscription_id == stripe_subscription_id,
                Subscription.is_active.is_(True),
            )
        ).scalars().all()
        for subscription in subscriptions:
            subscription.cancel(when or datetime.utcnow())
            logger.info(f"Subscription {subscription.id} of {subscription.user_id} canceled")
        if subscriptions:
            db.session.commit()
        return subscriptions

    def _find_payment(self, session):
        # The row holds the payment intent id, or the session id if Stripe had not assigned one yet
        references = [ref for ref in (session.payment_intent_id, session.id) if ref]
        return db.session.execute(
            db.select(Payment)
            .where(Payment.stripe_payment_intent_id.in_(references))
            .order_by(Payment.id)
            .limit(1)
        ).scalar_one_or_none()


def _course_id_from(session):
    try:
        return int(session.client_reference_id)
    except (TypeError, ValueError):
        raise MalformedSession(
            f'Session {session.id} has no usable course reference: {session.client_reference_id!r}'
        )


def _buyer(session, user_id):
    """The user to credit: the caller, who must be the one the session was opened for"""
    buyer = session.user_id
    if user_id and buyer and user_id != buyer:
        logger.warning(f"{user_id} tried to claim session {session.id} opened for {buyer}")
        raise SessionOwnerMismatch(session.id, buyer, user_id)
    user_id = user_id or buyer
    if not user_id:
        raise MalformedSession(f'Session {session.id} does not identify a user')
    return user_id

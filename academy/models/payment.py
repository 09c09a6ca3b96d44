from .. import db
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
import logging

logger = logging.getLogger(__name__)

class Payment(db.Model):
    """Ledger row for a one-time course purchase.

    Lifecycle: created ``pending`` when the checkout session is requested,
    then either ``succeeded`` or ``failed``. Both are terminal; a succeeded
    payment never changes status again.
    """
    __tablename__ = 'payments'

    STATUS_PENDING = 'pending'
    STATUS_SUCCEEDED = 'succeeded'
    STATUS_FAILED = 'failed'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(120), nullable=False, index=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default='eur')
    # Reconciliation key: payment intent id, or the checkout session id until Stripe assigns one
    stripe_payment_intent_id = db.Column(db.String(255), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False, default=STATUS_PENDING)  # pending, succeeded, failed
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    course = db.relationship('Course')

    def mark_succeeded(self, payment_intent_id=None, when=None):
        """Returns False when the payment already reached a terminal status"""
        if self.status == self.STATUS_FAILED:
            logger.warning(f"Payment {self.id} reported paid after being marked failed; status kept")
            return False
        if payment_intent_id:
            self.stripe_payment_intent_id = payment_intent_id
        if self.status == self.STATUS_SUCCEEDED:
            return False
        self.status = self.STATUS_SUCCEEDED
        self.completed_at = when or datetime.utcnow()
        return True

    def mark_failed(self, when=None):
        """Returns False when the payment is no longer pending"""
        if self.status != self.STATUS_PENDING:
            return False
        self.status = self.STATUS_FAILED
        self.completed_at = when or datetime.utcnow()
        return True

    def __repr__(self):
        return f'<Payment {self.id} {self.status}>'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'course_id': self.course_id,
            'course_title': self.course.title if self.course else None,
            'amount': str(self.amount),
            'currency': self.currency,
            'stripe_payment_intent_id': self.stripe_payment_intent_id,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None
        }


def to_minor_units(amount):
    """Decimal amount -> integer cents, as Stripe expects"""
    if amount is None:
        return 0
    return int((Decimal(str(amount)) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

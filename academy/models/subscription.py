from .. import db
from datetime import datetime

class Subscription(db.Model):
    """Platform-wide subscription, not tied to any course"""
    __tablename__ = 'subscriptions'

    STATUS_ACTIVE = 'active'
    STATUS_CANCELED = 'canceled'
    STATUS_PAST_DUE = 'past_due'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(120), nullable=False, index=True)
    stripe_subscription_id = db.Column(db.String(255), nullable=False, index=True)
    stripe_customer_id = db.Column(db.String(255), nullable=False, default='')
    status = db.Column(db.String(32), nullable=False, default=STATUS_ACTIVE)  # active, canceled, past_due
    start_date = db.Column(db.DateTime, default=datetime.utcnow)
    end_date = db.Column(db.DateTime, nullable=True)
    canceled_at = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # At most one active subscription per user
    __table_args__ = (
        db.Index(
            'uq_subscriptions_active_user',
            'user_id',
            unique=True,
            sqlite_where=db.text('is_active = 1'),
            postgresql_where=db.text('is_active'),
        ),
    )

    def cancel(self, when=None):
        when = when or datetime.utcnow()
        self.status = self.STATUS_CANCELED
        self.is_active = False
        self.canceled_at = when
        self.end_date = self.end_date or when

    def __repr__(self):
        return f'<Subscription {self.user_id} {self.status}>'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'stripe_subscription_id': self.stripe_subscription_id,
            'stripe_customer_id': self.stripe_customer_id,
            'status': self.status,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'canceled_at': self.canceled_at.isoformat() if self.canceled_at else None,
            'is_active': self.is_active
        }

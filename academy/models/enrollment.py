from .. import db
from datetime import datetime

class CourseEnrollment(db.Model):
    """One-time-purchase grant of a single course to a user"""
    __tablename__ = 'course_enrollments'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(120), nullable=False, index=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False)
    # Weak link: the payment row may be missing when the enrollment is created
    payment_id = db.Column(db.Integer, nullable=True)
    enrolled_at = db.Column(db.DateTime, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    course = db.relationship('Course')

    # At most one active enrollment per (user, course)
    __table_args__ = (
        db.Index(
            'uq_course_enrollments_active_user_course',
            'user_id', 'course_id',
            unique=True,
            sqlite_where=db.text('is_active = 1'),
            postgresql_where=db.text('is_active'),
        ),
    )

    def __repr__(self):
        return f'<CourseEnrollment {self.user_id} - {self.course_id}>'

    def to_dict(self):
        """Convert enrollment to dictionary"""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'course_id': self.course_id,
            'payment_id': self.payment_id,
            'enrolled_at': self.enrolled_at.isoformat() if self.enrolled_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'is_active': self.is_active
        }

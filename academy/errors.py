from flask import jsonify, redirect, url_for, flash
from sqlalchemy.exc import SQLAlchemyError
from . import db
import logging

logger = logging.getLogger(__name__)


class AcademyError(Exception):
    """Base class for errors recovered at the request boundary"""


class NotFound(AcademyError):
    """Course, lesson, quiz or checkout session does not exist"""


class Unauthenticated(AcademyError):
    """No current user; callers send the client to the login page"""


class AlreadyEnrolled(AcademyError):
    def __init__(self, course_id):
        super().__init__(f"Already enrolled in course {course_id}")
        self.course_id = course_id


class GatewayUnavailable(AcademyError):
    """Stripe could not be reached or answered with something unusable"""


class MalformedSession(GatewayUnavailable):
    """Session id missing, or the session lacks the data we put into it"""


class SessionOwnerMismatch(AcademyError):
    def __init__(self, session_id, buyer, user_id):
        super().__init__(f"Session {session_id} belongs to {buyer}, not {user_id}")
        self.session_id = session_id
        self.buyer = buyer
        self.user_id = user_id


def register_error_handlers(app):
    @app.errorhandler(NotFound)
    def handle_not_found(error):
        return jsonify({'error': str(error) or 'Not found'}), 404

    @app.errorhandler(Unauthenticated)
    def handle_unauthenticated(error):
        flash('Please log in to continue', 'warning')
        return redirect(url_for('auth.login'))

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        logger.error(f"Database error: {str(error)}")
        db.session.rollback()
        return jsonify({'error': 'Database error'}), 500

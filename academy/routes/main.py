from flask import Blueprint, jsonify, current_app
from flask_login import current_user
from .. import db
from ..models.course import Course
from ..services.entitlements import has_active_subscription

main_bp = Blueprint('main', __name__)

@main_bp.route('/')
def index():
    """Home page: the course list shown to everyone, plus who is logged in"""
    courses = db.session.execute(
        db.select(Course).order_by(Course.created_at.desc())
    ).scalars().all()
    current_app.logger.info(f"Home page listing {len(courses)} courses")

    user = None
    if current_user.is_authenticated:
        user = current_user.to_dict()
        user['has_active_subscription'] = has_active_subscription(current_user.email)

    return jsonify({
        'courses': [{'id': c.id, 'title': c.title} for c in courses],
        'user': user
    })

@main_bp.route('/health')
def health():
    return jsonify({'status': 'ok'})

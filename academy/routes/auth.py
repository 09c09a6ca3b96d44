from flask import Blueprint, redirect, url_for, flash, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from ..models.user import User, ADMIN_ROLE, USER_ROLE
from .. import db
import re
import logging

logger = logging.getLogger(__name__)
auth_bp = Blueprint('auth', __name__)

MIN_PASSWORD_LENGTH = 6

def validate_email(email):
    """Validate email format"""
    if not email or not re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', email):
        return "Please enter a valid email address."
    return None

def validate_password(password, confirm_password):
    """Validate password requirements"""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
    if len(password) > 100:
        return "Password must be at most 100 characters long."
    if password != confirm_password:
        return "Passwords do not match."
    return None

def _form_error(message, status=400):
    flash(message, 'error')
    return jsonify({'error': message}), status

@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if current_user.is_authenticated:
        return redirect(url_for('main.index'))

    if request.method == 'GET':
        return jsonify({'fields': ['email', 'password', 'remember_me'], 'next': request.args.get('next')})

    email = request.form.get('email', '').strip()
    password = request.form.get('password', '')

    if not email or not password:
        return _form_error('Please enter both email and password')

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        logger.info(f"Failed login attempt for {email}")
        return _form_error('Invalid login attempt.', 401)

    login_user(user, remember=request.form.get('remember_me') == 'on')
    next_page = request.args.get('next')

    if not next_page or not next_page.startswith('/') or next_page.startswith('//'):
        next_page = url_for('main.index')

    return redirect(next_page)

@auth_bp.route('/register', methods=['GET', 'POST'])
def register():
    if current_user.is_authenticated:
        return redirect(url_for('main.index'))

    if request.method == 'GET':
        return jsonify({'fields': ['email', 'password', 'confirm_password']})

    email = request.form.get('email', '').strip()
    password = request.form.get('password', '')
    confirm_password = request.form.get('confirm_password', '')

    error = validate_email(email) or validate_password(password, confirm_password)
    if error:
        return _form_error(error)

    if User.query.filter_by(email=email).first():
        return _form_error('Email already registered')

    # The very first account administers the platform
    is_first_user = db.session.execute(db.select(User.id).limit(1)).first() is None

    user = User(email=email, role=ADMIN_ROLE if is_first_user else USER_ROLE)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    logger.info(f"Registered {email} with role {user.role}")

    login_user(user)
    flash('Account created successfully!', 'success')
    return redirect(url_for('main.index'))

@auth_bp.route('/logout')
@login_required
def logout():
    logout_user()
    return redirect(url_for('main.index'))

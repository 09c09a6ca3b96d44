from functools import wraps
from flask import abort
from flask_login import current_user, login_required

from ..models.user import ADMIN_ROLE


def role_required(role):
    """login_required plus a role check; authenticated users without the role get 403"""
    def decorator(view):
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if role not in current_user.roles:
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator


admin_required = role_required(ADMIN_ROLE)

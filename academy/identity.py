from flask_login import current_user


class Identity:
    """Who is asking: the stable user id (email) and the role set"""

    def __init__(self, user_id, roles=None):
        self.user_id = user_id or ''
        self.roles = frozenset(roles or ())

    @property
    def is_authenticated(self):
        return bool(self.user_id)

    def has_role(self, role):
        return role in self.roles

    def __repr__(self):
        return f'<Identity {self.user_id or "anonymous"} {sorted(self.roles)}>'


def current_user_id():
    if not current_user or not current_user.is_authenticated:
        return ''
    return current_user.email


def current_user_roles():
    if not current_user or not current_user.is_authenticated:
        return set()
    return set(current_user.roles)


def current_identity():
    return Identity(current_user_id(), current_user_roles())

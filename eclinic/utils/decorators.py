from functools import wraps

from flask import jsonify
from flask_login import current_user
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from eclinic.errors import NotFoundError
from eclinic.models import User
from eclinic.extensions import db
from eclinic.utils.roles import Role


def get_current_user():
    """
    Resolve the acting user from the session cookie, falling back to a
    bearer token. Returns None when neither identifies an active user.
    """
    user = None
    if current_user.is_authenticated:
        user = current_user._get_current_object()
    else:
        try:
            verify_jwt_in_request(optional=True)
            identity = get_jwt_identity()
        except (JWTExtendedException, PyJWTError):
            identity = None
        if identity is not None:
            user = db.session.get(User, int(identity))

    if user is not None and not user.is_active:
        user = None
    return user


def require_role(*roles):
    """
    Decorator to require specific roles
    Usage: @require_role(Role.NURSE, Role.ADMIN)
    """
    allowed = {Role.parse(role) for role in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                return jsonify({
                    'success': False,
                    'error': 'Session expired. Please login again.'
                }), 401

            try:
                role = user.role_enum
            except ValueError:
                role = None

            if allowed and role not in allowed:
                return jsonify({
                    'success': False,
                    'error': f'Permission denied. Required roles: {", ".join(sorted(r.value for r in allowed))}'
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def login_required_json(f):
    """Any authenticated user."""
    return require_role()(f)


def current_nurse():
    user = get_current_user()
    if user is None or user.nurse is None:
        raise NotFoundError('Nurse profile not found')
    return user.nurse


def current_student():
    user = get_current_user()
    if user is None or user.student is None:
        raise NotFoundError('Student profile not found')
    return user.student

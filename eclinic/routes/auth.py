from datetime import datetime, timedelta

from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token
from flask_login import login_user, logout_user

from eclinic.models import User
from eclinic.extensions import db
from eclinic.utils.audit import log_audit
from eclinic.utils.decorators import get_current_user, login_required_json

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@auth_bp.route('/login', methods=['POST'])
def login():
    """
    Login endpoint - starts a session cookie and also returns a bearer token
    for clients that cannot keep cookies.
    """
    data = request.get_json(silent=True)

    if not data:
        return jsonify({
            'success': False,
            'error': 'Request body must be JSON'
        }), 400

    email = (data.get('email') or '').strip().lower()
    password = data.get('password')

    if not email or not password:
        return jsonify({
            'success': False,
            'error': 'Email and password required'
        }), 400

    user = User.query.filter_by(email=email).first()

    if not user or not user.check_password(password):
        return jsonify({
            'success': False,
            'error': 'Invalid email or password'
        }), 401

    if not user.is_active:
        return jsonify({
            'success': False,
            'error': 'Account is deactivated'
        }), 403

    # Update login tracking
    user.last_login = datetime.now()
    user.login_count = (user.login_count or 0) + 1
    db.session.commit()

    login_user(user, remember=bool(data.get('remember')))
    log_audit('user', 'login', user_id=user.id, entity_id=user.id)

    expires_hours = current_app.config['JWT_ACCESS_TOKEN_EXPIRES_HOURS']
    access_token = create_access_token(
        identity=str(user.id),
        additional_claims={'role': user.role},
        expires_delta=timedelta(hours=expires_hours),
    )

    return jsonify({
        'success': True,
        'data': user.to_dict(),
        'access_token': access_token,
        'token_type': 'bearer',
        'expires_in': expires_hours * 3600
    }), 200


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """End the session. Bearer tokens simply expire."""
    user = get_current_user()
    logout_user()
    if user is not None:
        log_audit('user', 'logout', user_id=user.id, entity_id=user.id)
    return jsonify({
        'success': True,
        'message': 'Logged out successfully'
    }), 200


@auth_bp.route('/me', methods=['GET'])
@login_required_json
def me():
    """Get current logged-in user information"""
    user = get_current_user()
    return jsonify({
        'success': True,
        'data': user.to_dict()
    }), 200

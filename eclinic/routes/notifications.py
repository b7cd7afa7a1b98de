from flask import Blueprint, request, jsonify

from eclinic.services import notification_service
from eclinic.utils.decorators import get_current_user, login_required_json

notification_bp = Blueprint('notification', __name__, url_prefix='/api/notifications')


@notification_bp.route('', methods=['GET'])
@login_required_json
def list_notifications():
    """Own notifications, newest first. ?unread=1 for unread only"""
    user = get_current_user()
    unread_only = request.args.get('unread', '').lower() in ('1', 'true')
    limit = request.args.get('limit', 50, type=int)
    if limit < 1 or limit > 200:
        limit = 50
    notifications = notification_service.list_for_user(user.id, unread_only=unread_only, limit=limit)
    return jsonify({
        'success': True,
        'data': [n.to_dict() for n in notifications],
        'unread_count': sum(1 for n in notifications if not n.is_read)
    }), 200


@notification_bp.route('/<int:notification_id>/read', methods=['PUT'])
@login_required_json
def mark_read(notification_id):
    notification = notification_service.mark_read(notification_id, get_current_user().id)
    return jsonify({
        'success': True,
        'data': notification.to_dict()
    }), 200


@notification_bp.route('/read-all', methods=['PUT'])
@login_required_json
def mark_all_read():
    count = notification_service.mark_all_read(get_current_user().id)
    return jsonify({
        'success': True,
        'data': {'updated': count}
    }), 200

from flask import Blueprint, jsonify

from eclinic.errors import ValidationError
from eclinic.services import appointment_service, settings_service
from eclinic.utils.decorators import get_current_user, require_role
from eclinic.utils.request_utils import get_json_body, pick
from eclinic.utils.roles import Role

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


@admin_bp.route('/appointments/<int:appointment_id>/status', methods=['PUT'])
@require_role(Role.ADMIN)
def override_appointment_status(appointment_id):
    """Set any status, bypassing the transition rules. Body: status, notes"""
    data = get_json_body()
    if not data.get('status'):
        raise ValidationError('status is required')
    appointment = appointment_service.admin_override_status(
        appointment_id, get_current_user(), data['status'], notes=data.get('notes')
    )
    return jsonify({
        'success': True,
        'message': f'Appointment status set to {appointment.status}',
        'data': appointment.to_dict(include_student=True, include_nurse=True)
    }), 200


@admin_bp.route('/settings/archive-retention', methods=['GET'])
@require_role(Role.ADMIN)
def get_archive_retention():
    return jsonify({
        'success': True,
        'data': {'months': settings_service.get_archive_retention_months()}
    }), 200


@admin_bp.route('/settings/archive-retention', methods=['PUT'])
@require_role(Role.ADMIN)
def set_archive_retention():
    """Body: months (1-120)"""
    data = get_json_body()
    months = settings_service.set_archive_retention_months(
        pick(data, 'months', 'retention_months'), user_id=get_current_user().id
    )
    return jsonify({
        'success': True,
        'message': 'Archive retention updated',
        'data': {'months': months}
    }), 200

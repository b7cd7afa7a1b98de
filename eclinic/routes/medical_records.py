from flask import Blueprint, request, jsonify

from eclinic.services import medical_record_service
from eclinic.utils.decorators import current_nurse, get_current_user, require_role
from eclinic.utils.request_utils import get_json_body
from eclinic.utils.roles import Role

medical_record_bp = Blueprint('medical_record', __name__, url_prefix='/api/medical-records')

# camelCase request keys accepted alongside snake_case
_ALIASES = {
    'studentId': 'student_id',
    'appointmentId': 'appointment_id',
    'visitDate': 'visit_date',
    'recordType': 'record_type',
    'vitalSigns': 'vital_signs',
    'followUpRequired': 'follow_up_required',
    'followUpDate': 'follow_up_date',
}


def _normalized_body():
    data = get_json_body()
    for camel, snake in _ALIASES.items():
        if camel in data and snake not in data:
            data[snake] = data.pop(camel)
    return data


@medical_record_bp.route('', methods=['POST'])
@require_role(Role.NURSE)
def create_medical_record():
    """
    Create a visit record. When appointment_id is given the appointment is
    completed in the same transaction.
    """
    data = _normalized_body()
    record = medical_record_service.create_record(current_nurse(), get_current_user(), data)
    return jsonify({
        'success': True,
        'message': 'Medical record created successfully',
        'data': record.to_dict()
    }), 201


@medical_record_bp.route('/student/<int:student_id>', methods=['GET'])
@require_role(Role.NURSE)
def list_student_records(student_id):
    """Query params: include_archived (default true)"""
    current_nurse()
    include_archived = request.args.get('include_archived', 'true').lower() not in ('0', 'false')
    records = medical_record_service.list_for_student(student_id, include_archived=include_archived)
    return jsonify({
        'success': True,
        'data': [r.to_dict() for r in records]
    }), 200


@medical_record_bp.route('/<int:record_id>', methods=['GET'])
@require_role(Role.NURSE)
def get_medical_record(record_id):
    record = medical_record_service.get_record(record_id, current_nurse().id)
    return jsonify({
        'success': True,
        'data': record.to_dict()
    }), 200


@medical_record_bp.route('/<int:record_id>', methods=['PUT'])
@require_role(Role.NURSE)
def update_medical_record(record_id):
    data = _normalized_body()
    record = medical_record_service.update_record(record_id, current_nurse().id, data,
                                                  user_id=get_current_user().id)
    return jsonify({
        'success': True,
        'message': 'Medical record updated successfully',
        'data': record.to_dict()
    }), 200


@medical_record_bp.route('/<int:record_id>', methods=['DELETE'])
@require_role(Role.NURSE)
def delete_medical_record(record_id):
    medical_record_service.delete_record(record_id, current_nurse().id, user_id=get_current_user().id)
    return jsonify({
        'success': True,
        'message': 'Medical record deleted successfully'
    }), 200

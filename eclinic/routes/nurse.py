from datetime import datetime

from flask import Blueprint, request, jsonify

from eclinic.errors import ValidationError
from eclinic.models import AppointmentStatus
from eclinic.services import appointment_service, availability_service, student_service
from eclinic.utils.datetime_utils import parse_date, parse_time
from eclinic.utils.decorators import current_nurse, get_current_user, require_role
from eclinic.utils.request_utils import get_json_body, pick
from eclinic.utils.roles import Role

nurse_bp = Blueprint('nurse', __name__, url_prefix='/api/nurse')

# Status changes a nurse can request from this blueprint
NURSE_STATUS_TARGETS = (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED)


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------

@nurse_bp.route('/appointments', methods=['GET'])
@require_role(Role.NURSE)
def list_appointments():
    """
    Nurse's appointments, archived excluded unless asked for.
    Query params:
        status: exact status filter (optional)
        date: YYYY-MM-DD (optional)
        include_archived: 1/true to include archived appointments
    """
    nurse = current_nurse()
    status = request.args.get('status', type=str)
    day = request.args.get('date', type=str)

    if status and status not in AppointmentStatus.ALL:
        raise ValidationError(f'Invalid status. Valid values: {", ".join(AppointmentStatus.ALL)}')

    appointments = appointment_service.list_for_nurse(
        nurse.id,
        status=status,
        on_date=parse_date(day) if day else None,
        include_archived=request.args.get('include_archived', '').lower() in ('1', 'true'),
    )
    return jsonify({
        'success': True,
        'data': [a.to_dict(include_student=True) for a in appointments]
    }), 200


@nurse_bp.route('/appointments/archived', methods=['GET'])
@require_role(Role.NURSE)
def list_archived_appointments():
    nurse = current_nurse()
    appointments = appointment_service.list_for_nurse(nurse.id, status=AppointmentStatus.ARCHIVED)
    return jsonify({
        'success': True,
        'data': [a.to_dict(include_student=True) for a in appointments]
    }), 200


@nurse_bp.route('/appointments-overview', methods=['GET'])
@require_role(Role.NURSE)
def appointments_overview():
    """Next 7 days (first 5), today's live appointments, 30-day status counts"""
    nurse = current_nurse()
    overview = appointment_service.overview_for_nurse(nurse.id)
    return jsonify({
        'success': True,
        'data': {
            'upcoming': [a.to_dict(include_student=True) for a in overview['upcoming']],
            'today': [a.to_dict(include_student=True) for a in overview['today']],
            'status_summary': overview['status_summary'],
        }
    }), 200


@nurse_bp.route('/appointments/<int:appointment_id>', methods=['GET'])
@require_role(Role.NURSE)
def get_appointment(appointment_id):
    nurse = current_nurse()
    appointment = appointment_service.get_for_nurse(appointment_id, nurse.id)
    return jsonify({
        'success': True,
        'data': appointment.to_dict(include_student=True, include_nurse=True)
    }), 200


@nurse_bp.route('/appointments/<int:appointment_id>/status', methods=['PUT'])
@require_role(Role.NURSE)
def update_appointment_status(appointment_id):
    """Confirm or cancel. Body: status, notes (optional)"""
    data = get_json_body()
    status = (data.get('status') or '').strip().lower()
    if status not in NURSE_STATUS_TARGETS:
        raise ValidationError('Invalid status. Must be confirmed or cancelled.')

    appointment = appointment_service.set_status(
        appointment_id, get_current_user(), status, notes=data.get('notes')
    )
    return jsonify({
        'success': True,
        'message': f'Appointment {status} successfully',
        'data': appointment.to_dict(include_student=True)
    }), 200


@nurse_bp.route('/appointments/<int:appointment_id>/qr', methods=['POST'])
@require_role(Role.NURSE)
def issue_appointment_qr(appointment_id):
    token = student_service.issue_appointment_qr(appointment_id, get_current_user())
    return jsonify({
        'success': True,
        'data': {'qr_data': token, 'appointment_id': appointment_id}
    }), 200


@nurse_bp.route('/scan-appointment-qr', methods=['POST'])
@require_role(Role.NURSE)
def scan_appointment_qr():
    """Check a student in from a scanned token. Body: qr_data (or qrData)"""
    data = get_json_body()
    token = pick(data, 'qr_data', 'qrData')
    if not token:
        raise ValidationError('qr_data is required')

    result = appointment_service.scan_qr(token, get_current_user())
    if result.appointment is None:
        return jsonify({
            'success': True,
            'message': 'Student identified. No appointment found for today.',
            'data': {
                'needs_check_in': False,
                'student': result.student.to_dict(),
                'appointment': None
            }
        }), 200

    return jsonify({
        'success': True,
        'message': 'Student checked in successfully',
        'data': {
            'needs_check_in': True,
            'student': result.student.to_dict() if result.student else None,
            'appointment': result.appointment.to_dict(include_student=True)
        }
    }), 200


@nurse_bp.route('/dashboard-stats', methods=['GET'])
@require_role(Role.NURSE)
def dashboard_stats():
    """Counts for today's schedule and pending requests"""
    nurse = current_nurse()
    today = datetime.now().date()
    todays = appointment_service.list_for_nurse(nurse.id, on_date=today)
    pending = appointment_service.list_for_nurse(nurse.id, status=AppointmentStatus.PENDING)

    by_status = {status: 0 for status in AppointmentStatus.ALL}
    for appointment in todays:
        by_status[appointment.status] += 1

    return jsonify({
        'success': True,
        'data': {
            'date': today.isoformat(),
            'today_total': len(todays),
            'today_by_status': by_status,
            'checked_in_today': sum(1 for a in todays if a.check_in_time is not None),
            'pending_requests': len(pending),
            'assigned_students': nurse.assignments.filter_by(is_active=True).count(),
        }
    }), 200


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------

@nurse_bp.route('/availability', methods=['GET'])
@require_role(Role.NURSE)
def list_availability():
    nurse = current_nurse()
    day = request.args.get('date', type=str)
    slots = availability_service.list_slots(nurse.id, parse_date(day) if day else None)
    return jsonify({
        'success': True,
        'data': [s.to_dict() for s in slots]
    }), 200


@nurse_bp.route('/availability/<int:slot_id>', methods=['GET'])
@require_role(Role.NURSE)
def get_availability(slot_id):
    nurse = current_nurse()
    slot = availability_service.get_slot(slot_id, nurse.id)
    return jsonify({
        'success': True,
        'data': slot.to_dict()
    }), 200


def _slot_patch(data):
    """Map request keys onto availability_service.UPDATABLE_FIELDS."""
    aliases = {
        'start_time': ('start_time', 'startTime'),
        'end_time': ('end_time', 'endTime'),
        'max_patients': ('max_patients', 'maxPatients'),
        'is_available': ('is_available', 'isAvailable'),
    }
    patch = {}
    for field, keys in aliases.items():
        for key in keys:
            if key in data:
                patch[field] = data[key]
                break
    return patch


@nurse_bp.route('/availability', methods=['POST'])
@require_role(Role.NURSE)
def save_availability():
    """
    Create a slot, or update one when the body carries its id.
    Body: date, start_time, end_time, max_patients (default 10)
    """
    data = get_json_body()
    nurse = current_nurse()
    user = get_current_user()

    if data.get('id'):
        try:
            slot_id = int(data['id'])
        except (TypeError, ValueError):
            raise ValidationError('Invalid availability id')
        slot = availability_service.update_slot(slot_id, _slot_patch(data), nurse_id=nurse.id,
                                                user_id=user.id)
        return jsonify({
            'success': True,
            'message': 'Availability updated successfully',
            'data': slot.to_dict()
        }), 200

    day = pick(data, 'date', 'availability_date')
    start = pick(data, 'start_time', 'startTime')
    end = pick(data, 'end_time', 'endTime')
    if not day or not start or not end:
        raise ValidationError('date, start_time and end_time are required')

    slot = availability_service.upsert_slot(
        nurse.id,
        parse_date(day),
        parse_time(start, 'start_time'),
        parse_time(end, 'end_time'),
        max_concurrent=pick(data, 'max_patients', 'maxPatients'),
        user_id=user.id,
    )
    return jsonify({
        'success': True,
        'message': 'Availability created successfully',
        'data': slot.to_dict()
    }), 201


@nurse_bp.route('/availability/<int:slot_id>', methods=['PUT'])
@require_role(Role.NURSE)
def update_availability(slot_id):
    data = get_json_body()
    nurse = current_nurse()
    slot = availability_service.update_slot(slot_id, _slot_patch(data), nurse_id=nurse.id,
                                            user_id=get_current_user().id)
    return jsonify({
        'success': True,
        'message': 'Availability updated successfully',
        'data': slot.to_dict()
    }), 200


@nurse_bp.route('/availability/<int:slot_id>', methods=['DELETE'])
@require_role(Role.NURSE)
def delete_availability(slot_id):
    nurse = current_nurse()
    availability_service.delete_slot(slot_id, nurse_id=nurse.id, user_id=get_current_user().id)
    return jsonify({
        'success': True,
        'message': 'Availability slot deleted successfully'
    }), 200


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------

@nurse_bp.route('/students', methods=['GET'])
@require_role(Role.NURSE)
def list_students():
    """
    Students assigned to this nurse.
    Query params: search, include_inactive, limit (default 20), offset
    """
    nurse = current_nurse()
    limit = request.args.get('limit', 20, type=int)
    offset = request.args.get('offset', 0, type=int)
    if limit < 1 or limit > 100:
        limit = 20
    students = student_service.list_students_for_nurse(
        nurse.id,
        search=request.args.get('search', type=str),
        include_inactive=request.args.get('include_inactive', '').lower() in ('1', 'true'),
        limit=limit,
        offset=max(offset, 0),
    )
    return jsonify({
        'success': True,
        'data': [s.to_dict() for s in students]
    }), 200


@nurse_bp.route('/students', methods=['POST'])
@require_role(Role.NURSE)
def assign_student():
    """Body: student_id (internal id or student number)"""
    data = get_json_body()
    identifier = pick(data, 'student_id', 'studentId')
    nurse = current_nurse()
    assignment = student_service.assign_student(nurse, identifier, user_id=get_current_user().id)
    return jsonify({
        'success': True,
        'message': 'Student assigned successfully',
        'data': assignment.student.to_dict()
    }), 201


@nurse_bp.route('/students/<student_ref>', methods=['GET'])
@require_role(Role.NURSE)
def get_student(student_ref):
    """student_ref: internal id or student number"""
    student = student_service.get_student_for_nurse(current_nurse(), student_ref)
    return jsonify({
        'success': True,
        'data': student.to_dict(include_profile=True)
    }), 200


@nurse_bp.route('/students/<student_ref>', methods=['PUT'])
@require_role(Role.NURSE)
def update_student(student_ref):
    """Contact, health and school details. Only the fields sent are changed."""
    data = get_json_body()
    student = student_service.get_student_for_nurse(current_nurse(), student_ref)
    student = student_service.update_profile(student, data, student_service.NURSE_PROFILE_FIELDS,
                                             user_id=get_current_user().id)
    return jsonify({
        'success': True,
        'message': 'Student information updated successfully',
        'data': student.to_dict(include_profile=True)
    }), 200


@nurse_bp.route('/students/<int:student_id>/archive', methods=['PUT'])
@require_role(Role.NURSE)
def archive_student(student_id):
    """Deactivate (is_active false) or restore a student assignment"""
    data = get_json_body()
    if 'is_active' not in data:
        raise ValidationError('is_active is required')
    nurse = current_nurse()
    assignment = student_service.set_assignment_active(nurse, student_id, data['is_active'],
                                                       user_id=get_current_user().id)
    action = 'unarchived' if assignment.is_active else 'archived'
    return jsonify({
        'success': True,
        'message': f'Student {action} successfully'
    }), 200


@nurse_bp.route('/students/<int:student_id>/qr', methods=['POST'])
@require_role(Role.NURSE)
def issue_student_qr(student_id):
    token = student_service.issue_student_qr(student_id, user_id=get_current_user().id)
    return jsonify({
        'success': True,
        'data': {'qr_data': token, 'student_id': student_id}
    }), 200

from flask import Blueprint, request, jsonify

from eclinic.errors import ValidationError
from eclinic.services import (
    appointment_service,
    availability_service,
    booking_service,
    medical_record_service,
    student_service,
)
from eclinic.utils.datetime_utils import parse_date, parse_datetime
from eclinic.utils.decorators import current_student, get_current_user, require_role
from eclinic.utils.rate_limiter import booking_rate_limit
from eclinic.utils.request_utils import get_json_body, pick
from eclinic.utils.roles import Role

student_bp = Blueprint('student', __name__, url_prefix='/api/student')


def _booking_key():
    user = get_current_user()
    return user.student.id if user and user.student else None


@student_bp.route('/bookings', methods=['GET'])
@require_role(Role.STUDENT)
def list_bookings():
    """Student's own appointments, newest first"""
    student = current_student()
    appointments = appointment_service.list_for_student(student.id)
    return jsonify({
        'success': True,
        'data': [a.to_dict(include_nurse=True) for a in appointments]
    }), 200


@student_bp.route('/bookings', methods=['POST'])
@require_role(Role.STUDENT)
@booking_rate_limit(_booking_key)
def create_booking():
    """
    Request an appointment.
    Body: nurse_id (or nurseId), appointment_date (or appointmentDate), reason
    """
    data = get_json_body()
    student = current_student()

    nurse_id = pick(data, 'nurse_id', 'nurseId')
    when = pick(data, 'appointment_date', 'appointmentDate')
    if nurse_id is None or not when:
        raise ValidationError('nurse_id and appointment_date are required')
    try:
        nurse_id = int(nurse_id)
    except (TypeError, ValueError):
        raise ValidationError('Invalid nurse_id')

    appointment = booking_service.request_booking(
        student.id,
        nurse_id,
        parse_datetime(when, 'appointment_date'),
        reason=(data.get('reason') or '').strip() or None,
        user_id=get_current_user().id,
    )
    return jsonify({
        'success': True,
        'message': 'Appointment request sent successfully',
        'data': appointment.to_dict(include_nurse=True)
    }), 201


@student_bp.route('/availability', methods=['GET'])
@require_role(Role.STUDENT)
def list_availability():
    """Open slots of the student's assigned nurses for ?date=YYYY-MM-DD"""
    day = request.args.get('date', type=str)
    if not day:
        raise ValidationError('date query parameter is required (YYYY-MM-DD)')
    student = current_student()
    slots = availability_service.list_open_slots_for_student(student.id, parse_date(day))
    return jsonify({
        'success': True,
        'data': slots
    }), 200


@student_bp.route('/nurses', methods=['GET'])
@require_role(Role.STUDENT)
def list_nurses():
    """Nurses the student is actively assigned to"""
    student = current_student()
    nurses = student_service.list_nurses_for_student(student.id)
    return jsonify({
        'success': True,
        'data': [n.to_dict() for n in nurses]
    }), 200


@student_bp.route('/profile', methods=['GET'])
@require_role(Role.STUDENT)
def get_profile():
    student = current_student()
    return jsonify({
        'success': True,
        'data': student.to_dict(include_profile=True)
    }), 200


@student_bp.route('/profile', methods=['PUT'])
@require_role(Role.STUDENT)
def update_profile():
    """Body: any of name, phone, address, emergency_contact (or emergencyContact)"""
    data = get_json_body()
    if 'emergencyContact' in data and 'emergency_contact' not in data:
        data['emergency_contact'] = data.pop('emergencyContact')
    student = student_service.update_profile(current_student(), data, student_service.STUDENT_PROFILE_FIELDS,
                                             user_id=get_current_user().id)
    return jsonify({
        'success': True,
        'message': 'Profile updated successfully',
        'data': student.to_dict(include_profile=True)
    }), 200


@student_bp.route('/reports', methods=['GET'])
@require_role(Role.STUDENT)
def list_reports():
    """The student's own clinic visit records, newest first"""
    student = current_student()
    records = medical_record_service.list_for_student(student.id)
    return jsonify({
        'success': True,
        'data': [r.to_dict() for r in records]
    }), 200

"""
Student Service
Nurse/student assignments, student profiles and QR token issuance
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from eclinic.extensions import db
from eclinic.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from eclinic.models import Nurse, NurseStudentAssignment, Student, User
from eclinic.services import qr_service
from eclinic.services.appointment_service import get_appointment
from eclinic.utils.audit import log_audit
from eclinic.utils.datetime_utils import parse_date
from eclinic.utils.request_utils import parse_bool
from eclinic.utils.roles import can_view_appointment

logger = logging.getLogger(__name__)

# Who may edit which profile fields
STUDENT_PROFILE_FIELDS = ('name', 'phone', 'address', 'emergency_contact')
NURSE_PROFILE_FIELDS = (
    'phone', 'address', 'emergency_contact', 'date_of_birth', 'gender', 'blood_type',
    'allergies', 'medical_conditions', 'school_year', 'school_level', 'department',
)
BLOOD_TYPES = ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')


def find_student(identifier) -> Student:
    """Look a student up by internal id or student number."""
    text = str(identifier or '').strip()
    if not text:
        raise ValidationError('Student ID is required')
    student = Student.query.filter_by(student_number=text).first()
    if student is None and text.isdigit():
        student = db.session.get(Student, int(text))
    if student is None:
        raise NotFoundError('Student not found')
    return student


def assign_student(nurse: Nurse, identifier, user_id: Optional[int] = None) -> NurseStudentAssignment:
    student = find_student(identifier)
    assignment = NurseStudentAssignment.query.filter_by(nurse_id=nurse.id, student_id=student.id).first()
    if assignment is not None:
        if assignment.is_active:
            raise ConflictError('Student already assigned to this nurse')
        assignment.is_active = True
    else:
        assignment = NurseStudentAssignment(nurse_id=nurse.id, student_id=student.id, is_active=True)
        db.session.add(assignment)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('Student already assigned to this nurse')

    log_audit('assignment', 'assign', user_id=user_id, entity_id=assignment.id,
              details={'nurse_id': nurse.id, 'student_id': student.id})
    return assignment


def set_assignment_active(nurse: Nurse, student_id: int, is_active: bool,
                          user_id: Optional[int] = None) -> NurseStudentAssignment:
    """Archive (is_active=False) or restore a student on the nurse's list."""
    assignment = NurseStudentAssignment.query.filter_by(nurse_id=nurse.id, student_id=student_id).first()
    if assignment is None:
        raise NotFoundError('Student assignment not found')
    assignment.is_active = parse_bool(is_active, 'is_active')
    db.session.commit()
    log_audit('assignment', 'activate' if assignment.is_active else 'deactivate',
              user_id=user_id, entity_id=assignment.id)
    return assignment


def list_students_for_nurse(nurse_id: int, search: Optional[str] = None, include_inactive: bool = False,
                            limit: int = 20, offset: int = 0):
    query = Student.query.join(
        NurseStudentAssignment, NurseStudentAssignment.student_id == Student.id
    ).join(User, User.id == Student.user_id).filter(NurseStudentAssignment.nurse_id == nurse_id)
    if not include_inactive:
        query = query.filter(NurseStudentAssignment.is_active.is_(True))
    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(
            Student.name.ilike(pattern),
            Student.student_number.ilike(pattern),
            User.email.ilike(pattern),
        ))
    return query.order_by(Student.name, Student.id).offset(offset).limit(limit).all()


def list_nurses_for_student(student_id: int):
    return Nurse.query.join(
        NurseStudentAssignment, NurseStudentAssignment.nurse_id == Nurse.id
    ).filter(
        NurseStudentAssignment.student_id == student_id,
        NurseStudentAssignment.is_active.is_(True),
    ).order_by(Nurse.name).all()


def issue_student_qr(student_id: int, user_id: Optional[int] = None) -> str:
    student = db.session.get(Student, student_id)
    if student is None:
        raise NotFoundError('Student not found')
    token = qr_service.encode('student', student.student_number)
    student.qr_token = token
    db.session.commit()
    log_audit('student', 'issue_qr', user_id=user_id, entity_id=student.id)
    return token


def issue_appointment_qr(appointment_id: int, actor) -> str:
    appointment = get_appointment(appointment_id)
    if not can_view_appointment(actor, appointment):
        raise AuthorizationError('Appointment not found or not assigned to you')
    return qr_service.encode('appointment', appointment.id)


def get_student_for_nurse(nurse: Nurse, identifier) -> Student:
    """
    A student on the nurse's list, active or archived, by internal id or
    student number. Students the nurse was never assigned are reported as
    not found.
    """
    student = find_student(identifier)
    assignment = NurseStudentAssignment.query.filter_by(nurse_id=nurse.id, student_id=student.id).first()
    if assignment is None:
        raise NotFoundError('Student not found')
    return student


def _clean_profile_value(field, value):
    if field == 'date_of_birth':
        if not value:
            return None
        born = parse_date(value, 'date_of_birth')
        if born > date.today():
            raise ValidationError('date_of_birth cannot be in the future')
        return born
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f'Field "{field}" must be text')
    value = value.strip() or None
    if field == 'blood_type' and value is not None:
        value = value.upper()
        if value not in BLOOD_TYPES:
            raise ValidationError(f'Invalid blood type. Valid values: {", ".join(BLOOD_TYPES)}')
    return value


def update_profile(student: Student, data: dict, fields, user_id: Optional[int] = None) -> Student:
    """
    Apply the allowed fields present in data. Every value is validated before
    any is written, so a bad field leaves the profile untouched.
    """
    changes = {field: _clean_profile_value(field, data[field]) for field in fields if field in data}
    if not changes:
        raise ValidationError(f'Nothing to update. Allowed fields: {", ".join(fields)}')

    for field, value in changes.items():
        setattr(student, field, value)
    db.session.commit()

    log_audit('student', 'update_profile', user_id=user_id, entity_id=student.id,
              details={'fields': sorted(changes)})
    return student

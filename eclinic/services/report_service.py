"""
Report Service
Filterable appointment, medical record and student reports, and period
statistics, for nurses and admins.

A nurse's reports only ever cover the nurse's own appointments, records and
actively assigned students; the nurse_id filter is honored for admins only.
"""
import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import func, select

from eclinic.extensions import db
from eclinic.errors import AuthorizationError, ValidationError
from eclinic.models import (
    Appointment,
    AppointmentStatus,
    MedicalRecord,
    Nurse,
    NurseStudentAssignment,
    Student,
)
from eclinic.models.medical_record import ARCHIVED_SUFFIX
from eclinic.services.medical_record_service import RECORD_TYPES
from eclinic.utils.datetime_utils import day_bounds, parse_date
from eclinic.utils.roles import can_report_on_all_nurses

logger = logging.getLogger(__name__)

PERIODS = ('month', 'quarter', 'semester', 'year')


def _nurse_scope(actor, nurse_id=None):
    """Nurse id the report is limited to, or None for every nurse."""
    if can_report_on_all_nurses(actor):
        if nurse_id in (None, ''):
            return None
        try:
            return int(nurse_id)
        except (TypeError, ValueError):
            raise ValidationError('Invalid nurse_id')
    if actor.nurse is None:
        raise AuthorizationError('Reports are available to nurses and administrators')
    return actor.nurse.id


def _date_range(start_date, end_date):
    start = parse_date(start_date, 'start_date') if start_date else None
    end = parse_date(end_date, 'end_date') if end_date else None
    if start and end and start > end:
        raise ValidationError('start_date must be on or before end_date')
    return start, end


def _within(column, start: Optional[date], end: Optional[date]):
    conditions = []
    if start:
        conditions.append(column >= day_bounds(start)[0])
    if end:
        conditions.append(column < day_bounds(end)[1])
    return conditions


def appointment_report(actor, start_date=None, end_date=None, status=None, nurse_id=None,
                       school_year=None):
    nurse_id = _nurse_scope(actor, nurse_id)
    start, end = _date_range(start_date, end_date)
    if status and status not in AppointmentStatus.ALL:
        raise ValidationError(f'Invalid status. Valid values: {", ".join(AppointmentStatus.ALL)}')

    query = db.session.query(Appointment, Student, Nurse).join(
        Student, Student.id == Appointment.student_id
    ).join(Nurse, Nurse.id == Appointment.nurse_id)
    if nurse_id is not None:
        query = query.filter(Appointment.nurse_id == nurse_id)
    if status:
        query = query.filter(Appointment.status == status)
    if school_year:
        query = query.filter(Student.school_year == school_year)
    query = query.filter(*_within(Appointment.scheduled_at, start, end))

    rows = []
    for appointment, student, nurse in query.order_by(Appointment.scheduled_at.desc()).all():
        rows.append({
            'id': appointment.id,
            'appointment_date': appointment.scheduled_at.isoformat(),
            'reason': appointment.reason,
            'status': appointment.status,
            'created_at': appointment.created_at.isoformat() if appointment.created_at else None,
            'student_name': student.display_name,
            'student_number': student.student_number,
            'school_year': student.school_year,
            'school_level': student.school_level,
            'department': student.department,
            'nurse_name': nurse.name,
            'specialization': nurse.specialization,
        })
    return rows


def medical_record_report(actor, start_date=None, end_date=None, record_type=None, student_id=None,
                          nurse_id=None, school_year=None):
    nurse_id = _nurse_scope(actor, nurse_id)
    start, end = _date_range(start_date, end_date)
    if record_type:
        record_type = record_type.strip().lower()
        if record_type.removesuffix(ARCHIVED_SUFFIX) not in RECORD_TYPES:
            raise ValidationError(f'Invalid record type. Valid values: {", ".join(RECORD_TYPES)}')

    query = db.session.query(MedicalRecord, Student, Nurse).join(
        Student, Student.id == MedicalRecord.student_id
    ).join(Nurse, Nurse.id == MedicalRecord.nurse_id)
    if nurse_id is not None:
        query = query.filter(MedicalRecord.nurse_id == nurse_id)
    if student_id:
        try:
            query = query.filter(MedicalRecord.student_id == int(student_id))
        except (TypeError, ValueError):
            raise ValidationError('Invalid student_id')
    if record_type:
        query = query.filter(MedicalRecord.record_type == record_type)
    if school_year:
        query = query.filter(Student.school_year == school_year)
    query = query.filter(*_within(MedicalRecord.visit_date, start, end))

    rows = []
    for record, student, nurse in query.order_by(MedicalRecord.visit_date.desc()).all():
        row = record.to_dict()
        row.update({
            'student_name': student.display_name,
            'student_number': student.student_number,
            'school_year': student.school_year,
            'school_level': student.school_level,
            'department': student.department,
            'specialization': nurse.specialization,
        })
        rows.append(row)
    return rows


def student_report(actor, department=None, school_year=None, school_level=None):
    """
    Students with their appointment and record counts. For a nurse the list is
    the nurse's active students and the counts cover only the nurse's own work.
    """
    nurse_id = _nurse_scope(actor)

    appointment_filter = [Appointment.student_id == Student.id]
    record_filter = [MedicalRecord.student_id == Student.id]
    if nurse_id is not None:
        appointment_filter.append(Appointment.nurse_id == nurse_id)
        record_filter.append(MedicalRecord.nurse_id == nurse_id)

    total_appointments = select(func.count(Appointment.id)).where(
        *appointment_filter
    ).correlate(Student).scalar_subquery()
    completed_appointments = select(func.count(Appointment.id)).where(
        *appointment_filter, Appointment.status == AppointmentStatus.COMPLETED
    ).correlate(Student).scalar_subquery()
    total_records = select(func.count(MedicalRecord.id)).where(
        *record_filter
    ).correlate(Student).scalar_subquery()
    last_visit = select(func.max(MedicalRecord.visit_date)).where(
        *record_filter
    ).correlate(Student).scalar_subquery()

    query = db.session.query(Student, total_appointments, completed_appointments, total_records, last_visit)
    if nurse_id is not None:
        query = query.join(NurseStudentAssignment, NurseStudentAssignment.student_id == Student.id).filter(
            NurseStudentAssignment.nurse_id == nurse_id,
            NurseStudentAssignment.is_active.is_(True),
        )
    if department:
        query = query.filter(Student.department == department)
    if school_year:
        query = query.filter(Student.school_year == school_year)
    if school_level:
        query = query.filter(Student.school_level == school_level)

    rows = []
    for student, appointments, completed, records, visited in query.order_by(Student.name, Student.id).all():
        row = student.to_dict(include_profile=True)
        row.update({
            'total_appointments': appointments,
            'completed_appointments': completed,
            'total_medical_records': records,
            'last_visit_date': visited.isoformat() if visited else None,
        })
        rows.append(row)
    return rows


def period_start(period: str, today: date) -> date:
    if period == 'month':
        return today.replace(day=1)
    if period == 'quarter':
        return today.replace(month=(today.month - 1) // 3 * 3 + 1, day=1)
    if period == 'semester':
        return today.replace(month=1 if today.month <= 6 else 7, day=1)
    if period == 'year':
        return today.replace(month=1, day=1)
    raise ValidationError(f'Invalid period. Valid values: {", ".join(PERIODS)}')


def statistics(actor, period: str = 'month', now: Optional[datetime] = None) -> dict:
    """Counts since the start of the current month, quarter, semester or year."""
    nurse_id = _nurse_scope(actor)
    now = now or datetime.now()
    period = (period or 'month').strip().lower()
    start = period_start(period, now.date())
    since = day_bounds(start)[0]

    appointments = Appointment.query.filter(Appointment.scheduled_at >= since)
    records = MedicalRecord.query.filter(MedicalRecord.visit_date >= since)
    students = Student.query
    if nurse_id is not None:
        appointments = appointments.filter(Appointment.nurse_id == nurse_id)
        records = records.filter(MedicalRecord.nurse_id == nurse_id)
        students = students.join(
            NurseStudentAssignment, NurseStudentAssignment.student_id == Student.id
        ).filter(
            NurseStudentAssignment.nurse_id == nurse_id,
            NurseStudentAssignment.is_active.is_(True),
        )

    return {
        'period': period,
        'start_date': start.isoformat(),
        'statistics': {
            'total_appointments': appointments.count(),
            'completed_appointments': appointments.filter(
                Appointment.status == AppointmentStatus.COMPLETED
            ).count(),
            'total_medical_records': records.count(),
            'total_students': students.count(),
        },
    }

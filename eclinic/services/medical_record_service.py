"""
Medical Record Service
Visit records written by nurses. A record linked to an appointment completes
that appointment in the same transaction.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError

from eclinic.extensions import db
from eclinic.errors import AuthorizationError, ClinicError, ConflictError, NotFoundError, ValidationError
from eclinic.models import MedicalRecord, Student
from eclinic.models.medical_record import ARCHIVED_SUFFIX
from eclinic.services import appointment_service, notification_service
from eclinic.services.email_service import send_template_email
from eclinic.utils.audit import log_audit
from eclinic.utils.datetime_utils import parse_date, parse_datetime
from eclinic.utils.request_utils import parse_bool

logger = logging.getLogger(__name__)

TEXT_FIELDS = ('symptoms', 'diagnosis', 'treatment', 'medications', 'vital_signs', 'notes')
RECORD_TYPES = ('consultation', 'checkup', 'emergency', 'follow_up', 'vaccination', 'other')


def _record_type(value) -> str:
    record_type = (value or 'consultation').strip().lower()
    if record_type not in RECORD_TYPES:
        raise ValidationError(f'Invalid record type. Valid values: {", ".join(RECORD_TYPES)}')
    return record_type


def _apply_fields(record: MedicalRecord, data: dict) -> None:
    for field in TEXT_FIELDS:
        if field in data:
            setattr(record, field, data[field] or None)
    if 'follow_up_required' in data:
        record.follow_up_required = parse_bool(data['follow_up_required'], 'follow_up_required')
    if 'follow_up_date' in data:
        record.follow_up_date = parse_date(data['follow_up_date'], 'follow_up_date') if data['follow_up_date'] else None


def create_record(nurse, actor, data: dict, now: Optional[datetime] = None) -> MedicalRecord:
    """
    Create a record for data['student_id'] authored by nurse.

    When data['appointment_id'] is set the appointment must belong to the
    nurse, be for the same student and be confirmed; it is completed through
    appointment_service.complete_via_record in the same commit.
    """
    now = now or datetime.now()
    try:
        student_id = int(data.get('student_id'))
    except (TypeError, ValueError):
        raise ValidationError('Invalid Student ID. Please select a valid student.')
    student = db.session.get(Student, student_id)
    if student is None:
        raise NotFoundError('Student not found. Please select a valid student from the lookup.')

    visit_date = parse_datetime(data['visit_date'], 'visit_date') if data.get('visit_date') else now
    record = MedicalRecord(
        student_id=student.id,
        nurse_id=nurse.id,
        visit_date=visit_date,
        record_type=_record_type(data.get('record_type')),
    )
    _apply_fields(record, data)

    appointment = None
    if data.get('appointment_id'):
        try:
            appointment = appointment_service.get_appointment(int(data['appointment_id']), lock=True)
            if appointment.student_id != student.id:
                raise ValidationError('Appointment belongs to a different student')
            if appointment.medical_record is not None:
                raise ConflictError('A medical record already exists for this appointment')
            appointment_service.complete_via_record(appointment, actor, now=now)
        except (TypeError, ValueError):
            db.session.rollback()
            raise ValidationError('Invalid appointment ID')
        except ClinicError:
            db.session.rollback()
            raise
        record.appointment_id = appointment.id

    db.session.add(record)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('A medical record already exists for this appointment')

    log_audit('medical_record', 'create', user_id=actor.id, entity_id=record.id,
              details={'student_id': student.id, 'appointment_id': record.appointment_id})
    logger.info("Medical record %s created for student %s by nurse %s", record.id, student.id, nurse.id)

    notification_service.notify(
        user_id=student.user_id,
        title='Clinic Visit Recorded',
        message=f'{nurse.name} recorded your clinic visit on {record.visit_date.strftime("%m/%d/%Y")}.',
        type='record_created',
        related_id=record.id,
        related_type='medical_record',
        email=lambda: send_template_email('record_created', student.email, {
            'date': record.visit_date.strftime('%m/%d/%Y'),
            'nurse_name': nurse.name,
            'diagnosis': record.diagnosis,
            'follow_up_date': record.follow_up_date.isoformat() if record.follow_up_date else None,
        }),
    )
    return record


def get_record(record_id: int, nurse_id: int) -> MedicalRecord:
    record = MedicalRecord.query.filter_by(id=record_id, nurse_id=nurse_id).first()
    if record is None:
        raise NotFoundError('Medical record not found')
    return record


def update_record(record_id: int, nurse_id: int, data: dict, user_id: Optional[int] = None) -> MedicalRecord:
    """Authoring nurse only. The appointment link and student are fixed."""
    record = db.session.get(MedicalRecord, record_id)
    if record is None:
        raise NotFoundError('Medical record not found')
    if record.nurse_id != nurse_id:
        raise AuthorizationError('Access denied to this medical record')
    if record.is_archived:
        raise ConflictError('Archived medical records cannot be edited')

    try:
        if data.get('visit_date'):
            record.visit_date = parse_datetime(data['visit_date'], 'visit_date')
        if 'record_type' in data:
            record.record_type = _record_type(data['record_type'])
        _apply_fields(record, data)
    except ClinicError:
        db.session.rollback()
        raise
    db.session.commit()

    log_audit('medical_record', 'update', user_id=user_id, entity_id=record.id)
    return record


def delete_record(record_id: int, nurse_id: int, user_id: Optional[int] = None) -> None:
    """Deleting a record leaves its appointment completed."""
    record = db.session.get(MedicalRecord, record_id)
    if record is None:
        raise NotFoundError('Medical record not found')
    if record.nurse_id != nurse_id:
        raise AuthorizationError('Access denied to this medical record')

    details = record.to_dict()
    db.session.delete(record)
    db.session.commit()
    log_audit('medical_record', 'delete', user_id=user_id, entity_id=record_id, details=details)


def list_for_student(student_id: int, include_archived: bool = True):
    if db.session.get(Student, student_id) is None:
        raise NotFoundError('Student not found')
    query = MedicalRecord.query.filter(MedicalRecord.student_id == student_id)
    if not include_archived:
        query = query.filter(~MedicalRecord.record_type.like(f'%{ARCHIVED_SUFFIX}'))
    return query.order_by(MedicalRecord.visit_date.desc(), MedicalRecord.created_at.desc()).all()

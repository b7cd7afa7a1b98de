"""
Availability Service
Per-nurse, per-date capacity windows
"""
import logging
from collections import Counter
from datetime import date, time
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from eclinic.extensions import db
from eclinic.errors import ConflictError, NotFoundError, ValidationError
from eclinic.models import (
    Appointment,
    AppointmentStatus,
    AvailabilitySlot,
    NurseStudentAssignment,
)
from eclinic.utils.audit import log_audit
from eclinic.utils.datetime_utils import parse_time, day_bounds
from eclinic.utils.request_utils import parse_bool

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('start_time', 'end_time', 'max_patients', 'is_available')


def _validate_date(slot_date: date) -> None:
    if slot_date.weekday() >= 5:
        raise ValidationError('Cannot set availability on weekends.')
    if slot_date.isoformat() in current_app.config.get('CLINIC_HOLIDAYS', []):
        raise ValidationError('Cannot set availability on holidays.')


def _validate_window(start: time, end: time) -> None:
    if start >= end:
        raise ValidationError('Start time must be before end time.')


def _validate_capacity(max_patients) -> int:
    try:
        value = int(max_patients)
    except (TypeError, ValueError):
        raise ValidationError('max_patients must be a whole number.')
    if value < 1:
        raise ValidationError('max_patients must be at least 1.')
    return value


def upsert_slot(
    nurse_id: int,
    slot_date: date,
    start: time,
    end: time,
    max_concurrent: Optional[int] = None,
    user_id: Optional[int] = None,
) -> AvailabilitySlot:
    """
    Create the nurse's window for slot_date.

    Creating is one-shot per (nurse, date): an existing slot raises
    ConflictError and the caller must go through update_slot instead.
    """
    _validate_date(slot_date)
    _validate_window(start, end)
    if max_concurrent is None:
        max_concurrent = current_app.config['DEFAULT_MAX_PATIENTS']
    max_concurrent = _validate_capacity(max_concurrent)

    existing = AvailabilitySlot.query.filter_by(nurse_id=nurse_id, availability_date=slot_date).first()
    if existing:
        raise ConflictError(
            'You already have availability set for this date. '
            'Please edit the existing schedule instead of creating a new one.',
            slot_id=existing.id,
        )

    slot = AvailabilitySlot(
        nurse_id=nurse_id,
        availability_date=slot_date,
        start_time=start,
        end_time=end,
        max_patients=max_concurrent,
        is_available=True,
    )
    db.session.add(slot)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent create for the same date
        db.session.rollback()
        raise ConflictError(
            'You already have availability set for this date. '
            'Please edit the existing schedule instead of creating a new one.'
        )

    log_audit('availability', 'create', user_id=user_id, entity_id=slot.id, details=slot.to_dict())
    logger.info("Availability %s created for nurse %s on %s", slot.id, nurse_id, slot_date)
    return slot


def get_slot(slot_id: int, nurse_id: Optional[int] = None) -> AvailabilitySlot:
    query = AvailabilitySlot.query.filter(AvailabilitySlot.id == slot_id)
    if nurse_id is not None:
        query = query.filter(AvailabilitySlot.nurse_id == nurse_id)
    slot = query.first()
    if slot is None:
        raise NotFoundError('Availability slot not found')
    return slot


def update_slot(slot_id: int, patch: dict, nurse_id: Optional[int] = None,
                user_id: Optional[int] = None) -> AvailabilitySlot:
    """
    Apply the fields present in patch.

    Existing bookings are not re-checked: lowering max_patients below the
    number already booked at a timestamp leaves those appointments in place.
    """
    slot = get_slot(slot_id, nurse_id)
    before = slot.to_dict()

    changes = {key: patch[key] for key in UPDATABLE_FIELDS if key in patch}
    if not changes:
        raise ValidationError(f'Nothing to update. Allowed fields: {", ".join(UPDATABLE_FIELDS)}')

    for key, value in changes.items():
        if value is None or value == '':
            raise ValidationError(f'Field "{key}" cannot be empty')

    start = parse_time(changes['start_time'], 'start_time') if 'start_time' in changes else slot.start_time
    end = parse_time(changes['end_time'], 'end_time') if 'end_time' in changes else slot.end_time
    _validate_window(start, end)
    max_patients = _validate_capacity(changes['max_patients']) if 'max_patients' in changes else slot.max_patients
    available = parse_bool(changes['is_available'], 'is_available') if 'is_available' in changes else slot.is_available

    slot.start_time = start
    slot.end_time = end
    slot.max_patients = max_patients
    slot.is_available = available

    db.session.commit()
    log_audit('availability', 'update', user_id=user_id, entity_id=slot.id,
              details={'old': before, 'new': slot.to_dict()})
    return slot


def count_live_in_window(slot: AvailabilitySlot) -> int:
    return Appointment.query.filter(
        Appointment.nurse_id == slot.nurse_id,
        Appointment.scheduled_at >= slot.window_start,
        Appointment.scheduled_at < slot.window_end,
        Appointment.status.in_(AppointmentStatus.LIVE),
    ).count()


def delete_slot(slot_id: int, nurse_id: Optional[int] = None, user_id: Optional[int] = None) -> None:
    slot = get_slot(slot_id, nurse_id)

    if count_live_in_window(slot) > 0:
        raise ConflictError(
            'Cannot delete availability slot with existing appointments. '
            'Please cancel all appointments first.'
        )

    details = slot.to_dict()
    db.session.delete(slot)
    db.session.commit()
    log_audit('availability', 'delete', user_id=user_id, entity_id=slot_id, details=details)


def find_slot(nurse_id: int, on_date: date, at_time: time, lock: bool = False) -> Optional[AvailabilitySlot]:
    """
    The available slot whose [start, end) contains at_time, or None.

    With lock=True the row is held FOR UPDATE until the caller commits or
    rolls back, serializing bookings against the same slot.
    """
    query = AvailabilitySlot.query.filter(
        AvailabilitySlot.nurse_id == nurse_id,
        AvailabilitySlot.availability_date == on_date,
        AvailabilitySlot.is_available.is_(True),
        AvailabilitySlot.start_time <= at_time,
        AvailabilitySlot.end_time > at_time,
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def list_slots(nurse_id: int, on_date: Optional[date] = None):
    query = AvailabilitySlot.query.filter(AvailabilitySlot.nurse_id == nurse_id)
    if on_date is not None:
        query = query.filter(AvailabilitySlot.availability_date == on_date)
    return query.order_by(AvailabilitySlot.availability_date, AvailabilitySlot.start_time).all()


def list_open_slots_for_student(student_id: int, on_date: date):
    """
    Open slots on on_date for every nurse the student is actively assigned to.

    Each entry lists the times already at capacity so clients can grey them out.
    """
    nurse_ids = [
        row.nurse_id for row in NurseStudentAssignment.query.filter_by(
            student_id=student_id, is_active=True
        ).all()
    ]
    if not nurse_ids:
        return []

    slots = AvailabilitySlot.query.filter(
        AvailabilitySlot.nurse_id.in_(nurse_ids),
        AvailabilitySlot.availability_date == on_date,
        AvailabilitySlot.is_available.is_(True),
    ).order_by(AvailabilitySlot.start_time).all()

    day_start, day_end = day_bounds(on_date)
    live = Appointment.query.filter(
        Appointment.nurse_id.in_(nurse_ids),
        Appointment.scheduled_at >= day_start,
        Appointment.scheduled_at < day_end,
        Appointment.status.in_(AppointmentStatus.LIVE),
    ).all()
    booked = Counter((a.nurse_id, a.scheduled_at) for a in live)

    result = []
    for slot in slots:
        full_times = sorted(
            at.strftime('%H:%M') for (nurse, at), count in booked.items()
            if nurse == slot.nurse_id and slot.contains(at.time()) and count >= slot.max_patients
        )
        data = slot.to_dict()
        data['nurse_name'] = slot.nurse.name if slot.nurse else None
        data['full_times'] = full_times
        result.append(data)
    return result

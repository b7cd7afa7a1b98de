"""
Booking Service
Resolves a student's request for (nurse, timestamp) into a pending appointment.

Capacity is counted per exact timestamp. Two guards keep concurrent requests
from overbooking it:

* the covering availability row is locked FOR UPDATE for the duration of the
  booking transaction (PostgreSQL), and
* every live appointment takes a seat number below max_patients, and the
  partial unique index uq_appointments_live_seat rejects a second live row
  on the same (nurse, timestamp, seat).

A lost race shows up as an IntegrityError; the booking rolls back, recounts
and retries a bounded number of times before reporting the slot as full.
"""
import logging
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError

from eclinic.extensions import db
from eclinic.errors import (
    AuthorizationError,
    ClinicError,
    NotFoundError,
    SlotFullError,
    SlotUnavailableError,
    TransientError,
    ValidationError,
)
from eclinic.models import Appointment, AppointmentStatus, Nurse, NurseStudentAssignment, Student
from eclinic.services import notification_service
from eclinic.services.availability_service import find_slot
from eclinic.services.email_service import send_template_email
from eclinic.utils.audit import log_audit

logger = logging.getLogger(__name__)


def taken_seats(nurse_id: int, scheduled_at: datetime) -> set:
    """Seat numbers held by live appointments at exactly scheduled_at."""
    rows = Appointment.query.with_entities(Appointment.seat).filter(
        Appointment.nurse_id == nurse_id,
        Appointment.scheduled_at == scheduled_at,
        Appointment.status.in_(AppointmentStatus.LIVE),
    ).all()
    return {seat for (seat,) in rows}


def _lowest_free(seats: set) -> int:
    seat = 0
    while seat in seats:
        seat += 1
    return seat


def is_assigned(student_id: int, nurse_id: int) -> bool:
    return NurseStudentAssignment.query.filter_by(
        nurse_id=nurse_id, student_id=student_id, is_active=True
    ).first() is not None


def _try_book(student_id, nurse_id, scheduled_at, reason):
    slot = find_slot(nurse_id, scheduled_at.date(), scheduled_at.time(), lock=True)
    if slot is None:
        raise SlotUnavailableError('Nurse is not available at the selected time')

    seats = taken_seats(nurse_id, scheduled_at)
    if len(seats) >= slot.max_patients:
        raise SlotFullError()

    appointment = Appointment(
        student_id=student_id,
        nurse_id=nurse_id,
        scheduled_at=scheduled_at,
        reason=reason,
        status=AppointmentStatus.PENDING,
        seat=_lowest_free(seats),
    )
    db.session.add(appointment)
    db.session.commit()
    return appointment


def request_booking(
    student_id: int,
    nurse_id: int,
    scheduled_at: datetime,
    reason: Optional[str] = None,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Appointment:
    """
    Create a pending appointment for student at scheduled_at with nurse.

    Raises:
        ValidationError: scheduled_at falls on a past date
        NotFoundError: unknown nurse
        AuthorizationError: student is not actively assigned to the nurse
        SlotUnavailableError: no available slot covers the timestamp
        SlotFullError: the timestamp is at capacity
    """
    now = now or datetime.now()
    # Same-day times that already passed stay bookable; the nurse still has to confirm
    if scheduled_at.date() < now.date():
        raise ValidationError('Cannot book appointments on past dates')

    nurse = db.session.get(Nurse, nurse_id)
    if nurse is None:
        raise NotFoundError('Nurse not found')
    if not is_assigned(student_id, nurse_id):
        raise AuthorizationError('You are not assigned to this nurse')

    scheduled_at = scheduled_at.replace(microsecond=0)
    attempts = max(1, current_app.config.get('BOOKING_MAX_RETRIES', 3))

    appointment = None
    for attempt in range(1, attempts + 1):
        try:
            appointment = _try_book(student_id, nurse_id, scheduled_at, reason)
            break
        except IntegrityError:
            db.session.rollback()
            logger.info("Seat conflict booking nurse %s at %s (attempt %d/%d)",
                        nurse_id, scheduled_at, attempt, attempts)
        except OperationalError as e:
            # Lock wait timeout, deadlock victim or a dropped connection
            db.session.rollback()
            logger.warning("Database unavailable booking nurse %s at %s: %s", nurse_id, scheduled_at, e)
            raise TransientError('The booking could not be completed right now, please try again')
        except ClinicError:
            db.session.rollback()
            raise

    if appointment is None:
        raise SlotFullError()

    log_audit('appointment', 'create', user_id=user_id, entity_id=appointment.id,
              details={'new_values': {'status': appointment.status,
                                      'scheduled_at': scheduled_at.isoformat(),
                                      'nurse_id': nurse_id}})
    logger.info("Appointment %s booked: student %s with nurse %s at %s",
                appointment.id, student_id, nurse_id, scheduled_at)

    _notify_nurse(appointment, nurse)
    return appointment


def _notify_nurse(appointment: Appointment, nurse: Nurse):
    student = db.session.get(Student, appointment.student_id)
    student_name = student.display_name if student else 'A student'
    date_text = appointment.scheduled_at.strftime('%m/%d/%Y')
    time_text = appointment.scheduled_at.strftime('%I:%M %p').lstrip('0')
    email_data = {
        'student_name': student_name,
        'date': date_text,
        'time': time_text,
        'reason': appointment.reason,
    }
    notification_service.notify(
        user_id=nurse.user_id,
        title='New Appointment Request',
        message=f'{student_name} requested an appointment on {date_text} at {time_text}.',
        type='appointment_requested',
        related_id=appointment.id,
        related_type='appointment',
        email=lambda: send_template_email('appointment_request', nurse.email, email_data),
    )

"""
Appointment Service
Appointment state machine: every status change goes through this module.

    pending   -> confirmed | cancelled
    confirmed -> completed | cancelled | no_show
    completed | cancelled | no_show -> archived   (scheduler only)

no_show and archived are reached only from the lifecycle sweeps. Admins can
bypass the graph with admin_override_status.
"""
import logging
from collections import namedtuple
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from eclinic.extensions import db
from eclinic.errors import (
    AuthorizationError,
    ClinicError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from eclinic.models import Appointment, AppointmentStatus, Student
from eclinic.services import notification_service, qr_service
from eclinic.services.email_service import send_template_email
from eclinic.utils.audit import log_audit
from eclinic.utils.datetime_utils import day_bounds
from eclinic.utils.roles import can_manage_appointment, can_override_status

logger = logging.getLogger(__name__)

S = AppointmentStatus

TRANSITIONS = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.COMPLETED, S.CANCELLED, S.NO_SHOW}),
    S.COMPLETED: frozenset({S.ARCHIVED}),
    S.CANCELLED: frozenset({S.ARCHIVED}),
    S.NO_SHOW: frozenset({S.ARCHIVED}),
    S.ARCHIVED: frozenset(),
}

# Targets a nurse/admin may request through set_status
USER_TARGETS = frozenset({S.CONFIRMED, S.CANCELLED, S.COMPLETED})

# Targets reserved for the lifecycle sweeps
SCHEDULER_TARGETS = frozenset({S.NO_SHOW, S.ARCHIVED})


def format_when(moment: datetime):
    """(date, time) strings used in notifications and emails."""
    return moment.strftime('%m/%d/%Y'), moment.strftime('%I:%M %p').lstrip('0')


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


def _apply_transition(appointment: Appointment, new_status: str) -> str:
    old_status = appointment.status
    if not can_transition(old_status, new_status):
        raise InvalidTransitionError(
            f'Cannot change appointment from {old_status} to {new_status}'
        )
    appointment.status = new_status
    return old_status


def get_appointment(appointment_id: int, lock: bool = False) -> Appointment:
    query = Appointment.query.filter(Appointment.id == appointment_id)
    if lock:
        query = query.with_for_update()
    appointment = query.first()
    if appointment is None:
        raise NotFoundError('Appointment not found')
    return appointment


def _notify_student_of_status(appointment: Appointment, new_status: str, notes: Optional[str] = None,
                              title: Optional[str] = None, message: Optional[str] = None):
    """Notification plus best-effort status email to the appointment's student."""
    student = appointment.student
    if student is None:
        logger.warning("Appointment %s has no student row; skipping notification", appointment.id)
        return None

    date_text, time_text = format_when(appointment.scheduled_at)
    label = new_status.replace('_', ' ')
    email_data = {
        'status': new_status,
        'date': date_text,
        'time': time_text,
        'nurse_name': appointment.nurse.name if appointment.nurse else None,
        'reason': appointment.reason,
        'notes': notes,
    }
    return notification_service.notify(
        user_id=student.user_id,
        title=title or f'Appointment {label}',
        message=message or f'Your appointment on {date_text} at {time_text} has been {label}.',
        type=f'appointment_{new_status}',
        related_id=appointment.id,
        related_type='appointment',
        email=lambda: send_template_email('appointment_status', student.email, email_data),
    )


def set_status(appointment_id: int, actor, new_status: str, notes: Optional[str] = None) -> Appointment:
    """
    User-driven transition by the owning nurse or an admin.

    Raises:
        ValidationError: unknown status
        InvalidTransitionError: scheduler-only target or edge not allowed from current state
        AuthorizationError: actor does not own the appointment
        NotFoundError: no such appointment
    """
    new_status = (new_status or '').strip().lower()
    if new_status not in S.ALL:
        raise ValidationError(f'Invalid status. Valid values: {", ".join(sorted(USER_TARGETS))}')
    if new_status in SCHEDULER_TARGETS:
        raise InvalidTransitionError(f'Appointments become {new_status} automatically')

    appointment = get_appointment(appointment_id, lock=True)
    if not can_manage_appointment(actor, appointment):
        db.session.rollback()
        raise AuthorizationError('Appointment is not assigned to you')

    try:
        old_status = _apply_transition(appointment, new_status)
    except InvalidTransitionError:
        db.session.rollback()
        raise

    if notes is not None:
        appointment.notes = notes
    if new_status == S.COMPLETED and appointment.check_out_time is None:
        appointment.check_out_time = datetime.now()
    db.session.commit()

    log_audit('appointment', 'status_change', user_id=actor.id, entity_id=appointment.id,
              details={'old_values': {'status': old_status}, 'new_values': {'status': new_status}})
    logger.info("Appointment %s: %s -> %s by user %s", appointment.id, old_status, new_status, actor.id)

    if new_status in (S.CONFIRMED, S.CANCELLED):
        _notify_student_of_status(appointment, new_status, notes=notes)
    return appointment


def _check_in_allowed(appointment: Appointment, actor, now: datetime) -> None:
    if not can_manage_appointment(actor, appointment):
        raise AuthorizationError('Appointment not found or not assigned to you')
    if not appointment.is_live:
        raise InvalidTransitionError('Appointment is not in a valid status for check-in')
    if appointment.check_in_time is not None:
        raise ConflictError('Student already checked in for this appointment')
    if appointment.scheduled_at.date() != now.date():
        raise ValidationError('Appointment is not scheduled for today')


def check_in(appointment_id: int, actor, now: Optional[datetime] = None, via_qr: bool = False) -> Appointment:
    """
    Record arrival. Allowed once, while pending/confirmed, on the appointment's
    calendar date. A pending appointment is confirmed by the check-in.
    """
    now = now or datetime.now()
    appointment = get_appointment(appointment_id, lock=True)
    try:
        _check_in_allowed(appointment, actor, now)
    except ClinicError:
        db.session.rollback()
        raise

    old_status = appointment.status
    if old_status == S.PENDING:
        _apply_transition(appointment, S.CONFIRMED)
    appointment.check_in_time = now
    appointment.qr_check_in = via_qr
    db.session.commit()

    log_audit('appointment', 'check_in', user_id=actor.id, entity_id=appointment.id,
              details={'old_values': {'status': old_status}, 'new_values': {'status': appointment.status},
                       'qr': via_qr})
    return appointment


def complete_via_record(appointment: Appointment, actor, now: Optional[datetime] = None) -> Appointment:
    """
    confirmed -> completed because a medical record now references the
    appointment. Does not commit; the record insert owns the transaction.
    """
    if not can_manage_appointment(actor, appointment):
        raise AuthorizationError('Only the nurse who owns the appointment can record it')
    old_status = _apply_transition(appointment, S.COMPLETED)
    appointment.check_out_time = now or datetime.now()
    log_audit('appointment', 'complete_via_record', user_id=actor.id, entity_id=appointment.id,
              details={'old_values': {'status': old_status}, 'new_values': {'status': S.COMPLETED}},
              commit=False)
    return appointment


def mark_no_show(appointment_id: int) -> bool:
    """
    Scheduler edge: confirmed -> no_show. Caller commits.

    The write is conditional on the row still being confirmed and not checked
    in, so a check-in or cancel committed after the sweep read the row wins.
    Returns False when the row no longer qualifies.
    """
    moved = Appointment.query.filter(
        Appointment.id == appointment_id,
        Appointment.status == S.CONFIRMED,
        Appointment.check_in_time.is_(None),
    ).update({Appointment.status: S.NO_SHOW}, synchronize_session=False)
    return moved == 1


def archive(appointment: Appointment) -> Appointment:
    """Scheduler edge: finished outcome -> archived. Caller commits."""
    _apply_transition(appointment, S.ARCHIVED)
    return appointment


def _free_seat(appointment: Appointment) -> int:
    taken = {
        seat for (seat,) in Appointment.query.with_entities(Appointment.seat).filter(
            Appointment.nurse_id == appointment.nurse_id,
            Appointment.scheduled_at == appointment.scheduled_at,
            Appointment.status.in_(S.LIVE),
            Appointment.id != appointment.id,
        ).all()
    }
    seat = 0
    while seat in taken:
        seat += 1
    return seat


def admin_override_status(appointment_id: int, actor, new_status: str, notes: Optional[str] = None) -> Appointment:
    """
    Admin escape hatch: move to any status regardless of the transition graph.
    Re-entering a live status takes a free seat at the timestamp; capacity is
    not enforced here.
    """
    if not can_override_status(actor):
        raise AuthorizationError('Only administrators can override appointment status')
    new_status = (new_status or '').strip().lower()
    if new_status not in S.ALL:
        raise ValidationError(f'Invalid status. Valid values: {", ".join(S.ALL)}')

    appointment = get_appointment(appointment_id, lock=True)
    old_status = appointment.status
    if new_status in S.LIVE and not appointment.is_live:
        appointment.seat = _free_seat(appointment)
    appointment.status = new_status
    if notes is not None:
        appointment.notes = notes
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('Another booking took the last seat at this time; try again')

    log_audit('appointment', 'admin_override', user_id=actor.id, entity_id=appointment.id,
              details={'old_values': {'status': old_status}, 'new_values': {'status': new_status}})
    logger.warning("Admin %s overrode appointment %s: %s -> %s", actor.id, appointment.id, old_status, new_status)

    if new_status in (S.CONFIRMED, S.CANCELLED) and new_status != old_status:
        _notify_student_of_status(appointment, new_status, notes=notes)
    return appointment


def list_for_student(student_id: int):
    return Appointment.query.filter(
        Appointment.student_id == student_id,
    ).order_by(Appointment.scheduled_at.desc()).all()


def list_for_nurse(nurse_id: int, status: Optional[str] = None, on_date=None, include_archived: bool = False):
    query = Appointment.query.filter(Appointment.nurse_id == nurse_id)
    if status:
        query = query.filter(Appointment.status == status)
    elif not include_archived:
        query = query.filter(Appointment.status != S.ARCHIVED)
    if on_date is not None:
        start, end = day_bounds(on_date)
        query = query.filter(Appointment.scheduled_at >= start, Appointment.scheduled_at < end)
    return query.order_by(Appointment.scheduled_at.desc()).all()


def get_for_nurse(appointment_id: int, nurse_id: int) -> Appointment:
    appointment = Appointment.query.filter_by(id=appointment_id, nurse_id=nurse_id).first()
    if appointment is None:
        raise NotFoundError('Appointment not found')
    return appointment


def overview_for_nurse(nurse_id: int, now: Optional[datetime] = None, upcoming_limit: int = 5) -> dict:
    """
    Live appointments over the next 7 days (soonest first, capped at
    upcoming_limit), today's live appointments, and a count per status of
    everything scheduled in the last 30 days.
    """
    now = now or datetime.now()
    live = Appointment.query.filter(
        Appointment.nurse_id == nurse_id,
        Appointment.status.in_(S.LIVE),
    )
    upcoming = live.filter(
        Appointment.scheduled_at >= now,
        Appointment.scheduled_at <= now + timedelta(days=7),
    ).order_by(Appointment.scheduled_at).limit(upcoming_limit).all()

    start, end = day_bounds(now.date())
    today = live.filter(
        Appointment.scheduled_at >= start,
        Appointment.scheduled_at < end,
    ).order_by(Appointment.scheduled_at).all()

    summary = db.session.query(Appointment.status, func.count(Appointment.id)).filter(
        Appointment.nurse_id == nurse_id,
        Appointment.scheduled_at >= now - timedelta(days=30),
    ).group_by(Appointment.status).all()

    return {
        'upcoming': upcoming,
        'today': today,
        'status_summary': {status: count for status, count in summary},
    }


ScanResult = namedtuple('ScanResult', ['appointment', 'student'])


def _student_from_token_id(token_id: str):
    student = Student.query.filter_by(student_number=token_id).first()
    if student is None and token_id.isdigit():
        student = db.session.get(Student, int(token_id))
    return student


def scan_qr(token: str, actor, now: Optional[datetime] = None) -> ScanResult:
    """
    Check in from a scanned QR token.

    An appointment token checks in that appointment. A student token checks in
    the student's earliest live appointment with the scanning nurse today; if
    there is none the student is only identified and ScanResult.appointment
    is None.
    """
    now = now or datetime.now()
    payload = qr_service.decode(token)
    if payload is None or not qr_service.validate(token, now=now):
        raise ValidationError('Invalid or expired QR code')

    if payload.type == 'appointment':
        try:
            appointment_id = int(payload.id)
        except ValueError:
            raise ValidationError('Invalid QR code format')
        appointment = check_in(appointment_id, actor, now=now, via_qr=True)
        return ScanResult(appointment, appointment.student)

    student = _student_from_token_id(payload.id)
    if student is None:
        raise NotFoundError('Student not found')
    if actor.nurse is None:
        raise AuthorizationError('Only nurses can scan student QR codes')

    start, end = day_bounds(now.date())
    appointment = Appointment.query.filter(
        Appointment.student_id == student.id,
        Appointment.nurse_id == actor.nurse.id,
        Appointment.status.in_(S.LIVE),
        Appointment.check_in_time.is_(None),
        Appointment.scheduled_at >= start,
        Appointment.scheduled_at < end,
    ).order_by(Appointment.scheduled_at).first()
    if appointment is None:
        return ScanResult(None, student)
    return ScanResult(check_in(appointment.id, actor, now=now, via_qr=True), student)

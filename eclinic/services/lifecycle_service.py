"""
Lifecycle Service
Periodic sweeps over appointments, medical records and notifications.

Every sweep selects only rows it has not handled yet, so running a tick twice
(or after a crash half way through) does no extra work.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app

from eclinic.extensions import db
from eclinic.models import Appointment, AppointmentStatus, MedicalRecord, Notification
from eclinic.models.medical_record import ARCHIVED_SUFFIX
from eclinic.services import appointment_service, notification_service
from eclinic.services.email_service import send_template_email
from eclinic.services.settings_service import get_archive_retention_months
from eclinic.utils.audit import log_audit
from eclinic.utils.datetime_utils import day_bounds, months_ago

logger = logging.getLogger(__name__)


def auto_no_show(now: Optional[datetime] = None) -> int:
    """
    Confirmed appointments nobody checked in to within the grace period
    become no_show. Returns the number of appointments moved.
    """
    now = now or datetime.now()
    grace = timedelta(minutes=current_app.config['NO_SHOW_GRACE_MINUTES'])
    cutoff = now - grace

    late = Appointment.query.filter(
        Appointment.status == AppointmentStatus.CONFIRMED,
        Appointment.check_in_time.is_(None),
        Appointment.scheduled_at <= cutoff,
    ).order_by(Appointment.scheduled_at).all()

    if late:
        logger.info("Marking %d late appointments as no-show", len(late))

    moved = 0
    for appointment in late:
        appointment_id = appointment.id
        try:
            changed = appointment_service.mark_no_show(appointment_id)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error("No-show failed for appointment %s: %s", appointment_id, e)
            continue
        if not changed:
            logger.info("Appointment %s changed before the no-show sweep reached it", appointment_id)
            continue

        moved += 1
        log_audit('appointment', 'auto_no_show', entity_id=appointment.id,
                  details={'old_values': {'status': AppointmentStatus.CONFIRMED},
                           'new_values': {'status': AppointmentStatus.NO_SHOW}})
        date_text, time_text = appointment_service.format_when(appointment.scheduled_at)
        if appointment.student is not None:
            notification_service.notify(
                user_id=appointment.student.user_id,
                title='Appointment Marked as No-Show',
                message=f'Your appointment on {date_text} at {time_text} was marked as a no-show '
                        f'because you did not check in.',
                type='appointment_no_show',
                related_id=appointment.id,
                related_type='appointment',
            )
    return moved


def send_reminders(now: Optional[datetime] = None) -> int:
    """
    Email a reminder for each confirmed appointment tomorrow that has not had
    one yet. The attempt is recorded even when delivery fails, so each
    appointment gets at most one reminder.
    """
    now = now or datetime.now()
    start, end = day_bounds(now.date() + timedelta(days=1))

    due = Appointment.query.filter(
        Appointment.status == AppointmentStatus.CONFIRMED,
        Appointment.scheduled_at >= start,
        Appointment.scheduled_at < end,
        Appointment.reminder_sent_at.is_(None),
    ).all()

    if due:
        logger.info("Sending reminders for %d appointments", len(due))

    sent = 0
    for appointment in due:
        appointment.reminder_sent_at = now
        db.session.commit()

        date_text, time_text = appointment_service.format_when(appointment.scheduled_at)
        student = appointment.student
        delivered = send_template_email('appointment_reminder', student.email if student else None, {
            'date': date_text,
            'time': time_text,
            'nurse_name': appointment.nurse.name if appointment.nurse else None,
            'reason': appointment.reason,
        })
        if delivered:
            sent += 1
        else:
            logger.warning("Reminder for appointment %s was not delivered", appointment.id)
    return sent


def archive_old_records(now: Optional[datetime] = None) -> dict:
    """
    Archive finished appointments and medical records older than the
    retention window and delete notifications older than it.
    """
    now = now or datetime.now()
    retention = get_archive_retention_months()
    cutoff = months_ago(now, retention)

    finished = Appointment.query.filter(
        Appointment.status.in_(AppointmentStatus.FINISHED),
        Appointment.updated_at < cutoff,
    ).all()
    for appointment in finished:
        appointment_service.archive(appointment)
    db.session.commit()

    records = MedicalRecord.query.filter(
        MedicalRecord.updated_at < cutoff,
        ~MedicalRecord.record_type.like(f'%{ARCHIVED_SUFFIX}'),
    ).all()
    for record in records:
        record.record_type = f'{record.record_type}{ARCHIVED_SUFFIX}'
    db.session.commit()

    deleted = Notification.query.filter(
        Notification.created_at < cutoff,
    ).delete(synchronize_session=False)
    db.session.commit()

    result = {
        'appointments': len(finished),
        'medical_records': len(records),
        'notifications': deleted,
    }
    logger.info("Archived records older than %s (%d months): %s", cutoff, retention, result)
    return result


SWEEPS = (
    ('auto_no_show', auto_no_show),
    ('reminders', send_reminders),
    ('archive', archive_old_records),
)


def run_scheduled_tasks(now: Optional[datetime] = None) -> dict:
    """
    Run every sweep once. A failing sweep is logged and reported as None in
    the result; the remaining sweeps still run.
    """
    now = now or datetime.now()
    logger.info("Running scheduled tasks at %s", now)

    results = {}
    for name, sweep in SWEEPS:
        try:
            results[name] = sweep(now=now)
        except Exception as e:
            db.session.rollback()
            logger.exception("Scheduled task %s failed: %s", name, e)
            results[name] = None

    logger.info("Scheduled tasks completed: %s", results)
    return results

from datetime import datetime, timedelta

import pytest
from sqlalchemy import update

from eclinic.models import Appointment, AppointmentStatus, AuditLog, MedicalRecord, Notification
from eclinic.services import appointment_service, lifecycle_service, settings_service
from eclinic.utils.datetime_utils import months_ago
from tasks import lifecycle_tasks

S = AppointmentStatus
NINE = datetime(2025, 1, 10, 9, 0)


@pytest.fixture
def pair(factory):
    nurse = factory.nurse()
    student = factory.student()
    factory.assign(nurse, student)
    return nurse, student


class TestAutoNoShow:
    def test_marks_late_confirmed_once(self, pair, factory):
        nurse, student = pair
        appointment = factory.appointment(student, nurse, NINE, status=S.CONFIRMED)
        tick = datetime(2025, 1, 10, 9, 16)

        assert lifecycle_service.auto_no_show(now=tick) == 1
        assert appointment.status == S.NO_SHOW
        assert lifecycle_service.auto_no_show(now=tick + timedelta(minutes=5)) == 0

        notification = Notification.query.filter_by(user_id=student.user_id).one()
        assert notification.type == 'appointment_no_show'
        assert AuditLog.query.filter_by(action='auto_no_show').count() == 1

    def test_grace_period_boundary(self, pair, factory):
        nurse, student = pair
        appointment = factory.appointment(student, nurse, NINE, status=S.CONFIRMED)

        assert lifecycle_service.auto_no_show(now=datetime(2025, 1, 10, 9, 14)) == 0
        assert appointment.status == S.CONFIRMED
        assert lifecycle_service.auto_no_show(now=datetime(2025, 1, 10, 9, 15)) == 1

    def test_checked_in_and_pending_untouched(self, pair, factory):
        nurse, student = pair
        arrived = factory.appointment(student, nurse, NINE, status=S.CONFIRMED,
                                      check_in_time=datetime(2025, 1, 10, 8, 58))
        pending = factory.appointment(student, nurse, NINE + timedelta(minutes=30))

        assert lifecycle_service.auto_no_show(now=datetime(2025, 1, 10, 12, 0)) == 0
        assert arrived.status == S.CONFIRMED
        assert pending.status == S.PENDING

    @pytest.mark.parametrize('concurrent_change', [
        {'check_in_time': datetime(2025, 1, 10, 9, 14)},
        {'status': S.CANCELLED},
    ])
    def test_change_committed_mid_sweep_wins(self, monkeypatch, db, pair, factory, concurrent_change):
        nurse, student = pair
        appointment = factory.appointment(student, nurse, NINE, status=S.CONFIRMED)
        real_mark_no_show = appointment_service.mark_no_show

        def change_then_mark(appointment_id):
            # Another request commits after the sweep has read the row
            db.session.execute(
                update(Appointment).where(Appointment.id == appointment_id).values(**concurrent_change)
            )
            db.session.commit()
            return real_mark_no_show(appointment_id)

        monkeypatch.setattr(appointment_service, 'mark_no_show', change_then_mark)

        assert lifecycle_service.auto_no_show(now=datetime(2025, 1, 10, 9, 16)) == 0
        assert appointment.status == concurrent_change.get('status', S.CONFIRMED)
        assert Notification.query.filter_by(type='appointment_no_show').count() == 0
        assert AuditLog.query.filter_by(action='auto_no_show').count() == 0


class TestReminders:
    def test_sent_once_for_tomorrow(self, pair, factory, sent_emails):
        nurse, student = pair
        due = factory.appointment(student, nurse, NINE, status=S.CONFIRMED)
        factory.appointment(student, nurse, NINE + timedelta(hours=1))
        factory.appointment(student, nurse, NINE + timedelta(days=1), status=S.CONFIRMED)
        evening_before = datetime(2025, 1, 9, 18, 0)

        assert lifecycle_service.send_reminders(now=evening_before) == 1
        assert due.reminder_sent_at == evening_before
        assert [m['to'] for m in sent_emails] == [student.email]

        assert lifecycle_service.send_reminders(now=evening_before + timedelta(minutes=5)) == 0
        assert len(sent_emails) == 1

    def test_failed_delivery_is_not_retried(self, pair, factory):
        nurse, student = pair
        due = factory.appointment(student, nurse, NINE, status=S.CONFIRMED)

        # Mail is not configured under testing, so delivery reports False
        assert lifecycle_service.send_reminders(now=datetime(2025, 1, 9, 18, 0)) == 0
        assert due.reminder_sent_at is not None
        assert lifecycle_service.send_reminders(now=datetime(2025, 1, 9, 18, 5)) == 0


class TestArchiveOldRecords:
    NOW = datetime(2025, 6, 15, 3, 0)

    def _old(self, months):
        return months_ago(self.NOW, months)

    def test_retention_window(self, db, pair, factory):
        nurse, student = pair
        old = factory.appointment(student, nurse, self._old(13), status=S.COMPLETED,
                                  updated_at=self._old(13))
        recent = factory.appointment(student, nurse, self._old(11), status=S.CANCELLED,
                                     updated_at=self._old(11))
        live = factory.appointment(student, nurse, self._old(13), status=S.CONFIRMED,
                                   updated_at=self._old(13))

        old_record = MedicalRecord(student_id=student.id, nurse_id=nurse.id, visit_date=self._old(13),
                                   record_type='checkup', updated_at=self._old(13))
        new_record = MedicalRecord(student_id=student.id, nurse_id=nurse.id, visit_date=self._old(1),
                                   record_type='checkup')
        db.session.add_all([
            old_record,
            new_record,
            Notification(user_id=student.user_id, title='Old', message='x', type='info',
                         created_at=self._old(13)),
            Notification(user_id=student.user_id, title='New', message='x', type='info'),
        ])
        db.session.commit()

        result = lifecycle_service.archive_old_records(now=self.NOW)

        assert result == {'appointments': 1, 'medical_records': 1, 'notifications': 1}
        assert old.status == S.ARCHIVED
        assert recent.status == S.CANCELLED
        assert live.status == S.CONFIRMED
        assert old_record.record_type == 'checkup_archived'
        assert new_record.record_type == 'checkup'
        assert [n.title for n in Notification.query.all()] == ['New']

    def test_idempotent(self, db, pair, factory):
        nurse, student = pair
        factory.appointment(student, nurse, self._old(13), status=S.NO_SHOW, updated_at=self._old(13))
        db.session.add(MedicalRecord(student_id=student.id, nurse_id=nurse.id, visit_date=self._old(13),
                                     record_type='consultation', updated_at=self._old(13)))
        db.session.commit()

        lifecycle_service.archive_old_records(now=self.NOW)
        second = lifecycle_service.archive_old_records(now=self.NOW)

        assert second == {'appointments': 0, 'medical_records': 0, 'notifications': 0}
        assert MedicalRecord.query.one().record_type == 'consultation_archived'

    def test_admin_retention_setting(self, pair, factory):
        nurse, student = pair
        appointment = factory.appointment(student, nurse, self._old(8), status=S.COMPLETED,
                                          updated_at=self._old(8))

        settings_service.set_archive_retention_months(6)
        lifecycle_service.archive_old_records(now=self.NOW)

        assert appointment.status == S.ARCHIVED


class TestRunScheduledTasks:
    def test_runs_every_sweep(self, app):
        results = lifecycle_service.run_scheduled_tasks(now=datetime(2025, 1, 10, 12, 0))
        assert results['auto_no_show'] == 0
        assert results['reminders'] == 0
        assert results['archive'] == {'appointments': 0, 'medical_records': 0, 'notifications': 0}

    def test_failing_sweep_does_not_stop_others(self, monkeypatch, pair, factory):
        nurse, student = pair
        appointment = factory.appointment(student, nurse, NINE, status=S.CONFIRMED)

        def broken(now=None):
            raise RuntimeError('boom')

        monkeypatch.setattr(lifecycle_service, 'SWEEPS', (
            ('reminders', broken),
            ('auto_no_show', lifecycle_service.auto_no_show),
        ))
        results = lifecycle_service.run_scheduled_tasks(now=datetime(2025, 1, 10, 12, 0))

        assert results == {'reminders': None, 'auto_no_show': 1}
        assert appointment.status == S.NO_SHOW


class TestSweepLock:
    def test_runs_and_releases(self, monkeypatch, fake_redis):
        monkeypatch.setattr(lifecycle_tasks, 'run_scheduled_tasks', lambda: {'auto_no_show': 0})

        assert lifecycle_tasks.run_locked() == {'auto_no_show': 0}
        assert fake_redis.locks == set()

    def test_skips_while_locked(self, monkeypatch, fake_redis):
        calls = []
        monkeypatch.setattr(lifecycle_tasks, 'run_scheduled_tasks', lambda: calls.append(1))
        fake_redis.locks.add(lifecycle_tasks.LOCK_NAME)

        assert lifecycle_tasks.run_locked() is None
        assert calls == []

import threading
from datetime import date, datetime, time

import pytest
from sqlalchemy.exc import OperationalError

from eclinic.errors import (
    AuthorizationError,
    NotFoundError,
    SlotFullError,
    SlotUnavailableError,
    TransientError,
    ValidationError,
)
from eclinic.models import Appointment, AppointmentStatus, Notification
from eclinic.services import appointment_service, booking_service, email_service, lifecycle_service


FRIDAY = date(2025, 1, 10)
NINE = datetime(2025, 1, 10, 9, 0)
EARLY = datetime(2025, 1, 10, 8, 0)


@pytest.fixture
def friday_clinic(factory):
    """Nurse 7 with a 09:00-10:00 single-seat window on Friday and two assigned students."""
    nurse = factory.nurse(nurse_id=7)
    student_a = factory.student(name='Ana')
    student_b = factory.student(name='Ben')
    factory.assign(nurse, student_a)
    factory.assign(nurse, student_b)
    slot = factory.slot(nurse, FRIDAY, time(9, 0), time(10, 0), max_patients=1)
    return nurse, student_a, student_b, slot


class TestRequestBooking:
    def test_books_pending_and_notifies_nurse(self, friday_clinic, sent_emails):
        nurse, student_a, _, _ = friday_clinic

        appointment = booking_service.request_booking(student_a.id, nurse.id, NINE, reason='Fever', now=EARLY)

        assert appointment.status == AppointmentStatus.PENDING
        assert appointment.seat == 0
        assert appointment.scheduled_at == NINE
        notification = Notification.query.filter_by(user_id=nurse.user_id).one()
        assert notification.type == 'appointment_requested'
        assert notification.related_id == appointment.id
        assert [m['to'] for m in sent_emails] == [nurse.email]

    def test_full_slot_then_no_show_frees_the_seat(self, friday_clinic, sent_emails):
        nurse, student_a, student_b, _ = friday_clinic

        first = booking_service.request_booking(student_a.id, nurse.id, NINE, now=EARLY)
        with pytest.raises(SlotFullError):
            booking_service.request_booking(student_b.id, nurse.id, NINE, now=EARLY)

        appointment_service.set_status(first.id, nurse.user, AppointmentStatus.CONFIRMED)
        assert lifecycle_service.auto_no_show(now=datetime(2025, 1, 10, 9, 16)) == 1
        assert first.status == AppointmentStatus.NO_SHOW

        second = booking_service.request_booking(student_b.id, nurse.id, NINE,
                                                 now=datetime(2025, 1, 10, 9, 16))
        assert second.status == AppointmentStatus.PENDING
        assert second.seat == 0

    def test_capacity_is_per_timestamp(self, friday_clinic):
        nurse, student_a, student_b, slot = friday_clinic

        booking_service.request_booking(student_a.id, nurse.id, NINE, now=EARLY)
        later = booking_service.request_booking(student_b.id, nurse.id, datetime(2025, 1, 10, 9, 30), now=EARLY)
        assert later.status == AppointmentStatus.PENDING

    def test_seats_fill_lowest_first(self, factory, friday_clinic):
        nurse, student_a, student_b, slot = friday_clinic
        slot.max_patients = 2
        third = factory.student()
        factory.assign(nurse, third)

        a = booking_service.request_booking(student_a.id, nurse.id, NINE, now=EARLY)
        b = booking_service.request_booking(student_b.id, nurse.id, NINE, now=EARLY)
        assert (a.seat, b.seat) == (0, 1)

        appointment_service.set_status(a.id, nurse.user, AppointmentStatus.CANCELLED)
        c = booking_service.request_booking(third.id, nurse.id, NINE, now=EARLY)
        assert c.seat == 0

    def test_microseconds_dropped(self, friday_clinic):
        nurse, student_a, _, _ = friday_clinic
        appointment = booking_service.request_booking(
            student_a.id, nurse.id, NINE.replace(microsecond=123456), now=EARLY
        )
        assert appointment.scheduled_at == NINE

    def test_past_date_rejected(self, friday_clinic):
        nurse, student_a, _, _ = friday_clinic
        with pytest.raises(ValidationError):
            booking_service.request_booking(student_a.id, nurse.id, NINE, now=datetime(2025, 1, 11, 8, 0))

    def test_unknown_nurse(self, friday_clinic):
        _, student_a, _, _ = friday_clinic
        with pytest.raises(NotFoundError):
            booking_service.request_booking(student_a.id, 9999, NINE, now=EARLY)

    def test_unassigned_student_rejected(self, factory, friday_clinic):
        nurse, _, _, _ = friday_clinic
        stranger = factory.student()
        with pytest.raises(AuthorizationError, match='not assigned'):
            booking_service.request_booking(stranger.id, nurse.id, NINE, now=EARLY)

    def test_inactive_assignment_rejected(self, factory, friday_clinic):
        nurse, _, _, _ = friday_clinic
        archived = factory.student()
        factory.assign(nurse, archived, is_active=False)
        with pytest.raises(AuthorizationError):
            booking_service.request_booking(archived.id, nurse.id, NINE, now=EARLY)

    @pytest.mark.parametrize('when', [datetime(2025, 1, 10, 10, 0), datetime(2025, 1, 10, 8, 30)])
    def test_outside_window_unavailable(self, friday_clinic, when):
        nurse, student_a, _, _ = friday_clinic
        with pytest.raises(SlotUnavailableError):
            booking_service.request_booking(student_a.id, nurse.id, when, now=EARLY)
        assert Appointment.query.count() == 0

    def test_closed_slot_unavailable(self, db, friday_clinic):
        nurse, student_a, _, slot = friday_clinic
        slot.is_available = False
        db.session.commit()
        with pytest.raises(SlotUnavailableError):
            booking_service.request_booking(student_a.id, nurse.id, NINE, now=EARLY)

    def test_email_failure_does_not_block_booking(self, monkeypatch, friday_clinic):
        nurse, student_a, _, _ = friday_clinic

        def broken(*args, **kwargs):
            raise RuntimeError('smtp down')

        monkeypatch.setattr(email_service, 'send_email', broken)
        appointment = booking_service.request_booking(student_a.id, nurse.id, NINE, now=EARLY)

        assert appointment.id is not None
        assert Notification.query.filter_by(user_id=nurse.user_id).count() == 1


class TestSeatRace:
    """A stale seat count collides with the live-seat index and is retried."""

    def test_retry_after_seat_collision(self, monkeypatch, factory, friday_clinic):
        nurse, student_a, student_b, slot = friday_clinic
        slot.max_patients = 2
        booking_service.request_booking(student_a.id, nurse.id, NINE, now=EARLY)

        real = booking_service.taken_seats
        calls = []

        def stale_then_real(nurse_id, scheduled_at):
            calls.append(scheduled_at)
            if len(calls) == 1:
                return set()
            return real(nurse_id, scheduled_at)

        monkeypatch.setattr(booking_service, 'taken_seats', stale_then_real)
        appointment = booking_service.request_booking(student_b.id, nurse.id, NINE, now=EARLY)

        assert len(calls) == 2
        assert appointment.seat == 1
        assert Appointment.query.filter_by(scheduled_at=NINE).count() == 2

    def test_exhausted_retries_report_full(self, app, monkeypatch, friday_clinic):
        nurse, student_a, student_b, slot = friday_clinic
        slot.max_patients = 2
        booking_service.request_booking(student_a.id, nurse.id, NINE, now=EARLY)

        monkeypatch.setattr(booking_service, 'taken_seats', lambda nurse_id, scheduled_at: set())

        with pytest.raises(SlotFullError):
            booking_service.request_booking(student_b.id, nurse.id, NINE, now=EARLY)
        assert Appointment.query.filter_by(student_id=student_b.id).count() == 0

    def test_database_timeout_is_transient(self, monkeypatch, friday_clinic):
        nurse, student_a, _, _ = friday_clinic

        def locked(*args):
            raise OperationalError('INSERT INTO appointments', {}, Exception('database is locked'))

        monkeypatch.setattr(booking_service, '_try_book', locked)

        with pytest.raises(TransientError):
            booking_service.request_booking(student_a.id, nurse.id, NINE, now=EARLY)
        assert Appointment.query.count() == 0


class TestConcurrentBooking:
    """Requests racing on separate connections for the last seat."""

    def test_one_of_two_simultaneous_requests_wins(self, file_app, file_factory):
        with file_app.app_context():
            nurse = file_factory.nurse()
            students = [file_factory.student(), file_factory.student()]
            for student in students:
                file_factory.assign(nurse, student)
            file_factory.slot(nurse, FRIDAY, time(9, 0), time(10, 0), max_patients=1)
            nurse_id = nurse.id
            student_ids = [student.id for student in students]

        barrier = threading.Barrier(len(student_ids), timeout=30)
        outcomes = []

        def book(student_id):
            with file_app.app_context():
                barrier.wait()
                try:
                    booking_service.request_booking(student_id, nurse_id, NINE, now=EARLY)
                    outcomes.append('booked')
                except SlotFullError:
                    outcomes.append('full')
                except Exception as e:
                    outcomes.append(repr(e))

        threads = [threading.Thread(target=book, args=(student_id,)) for student_id in student_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert sorted(outcomes) == ['booked', 'full']
        with file_app.app_context():
            live = Appointment.query.filter(
                Appointment.nurse_id == nurse_id,
                Appointment.scheduled_at == NINE,
            ).all()
            assert len(live) == 1
            assert live[0].seat == 0

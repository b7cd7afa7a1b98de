"""
Shared fixtures: an app on in-memory SQLite, a test client, a small model
factory and helpers for logging in and capturing outgoing email.
"""
import itertools
from datetime import date, time, timedelta

import pytest
from flask.testing import FlaskClient

from eclinic import create_app
from eclinic.config import TestingConfig
from eclinic.extensions import db as _db
from eclinic.models import (
    Appointment,
    AppointmentStatus,
    AvailabilitySlot,
    Nurse,
    NurseStudentAssignment,
    Student,
    User,
)
from eclinic.services import email_service

PASSWORD = 'secret123'


def next_weekday(days_ahead=7):
    """A Monday-Friday date at least days_ahead days from today."""
    day = date.today() + timedelta(days=days_ahead)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


class Factory:
    """Creates committed rows with unique emails and student numbers."""

    def __init__(self):
        self._seq = itertools.count(1)

    def user(self, role, email=None, password=PASSWORD, **kwargs):
        n = next(self._seq)
        user = User(
            email=email or f'{role}{n}@test.edu',
            first_name=kwargs.pop('first_name', role.title()),
            last_name=kwargs.pop('last_name', str(n)),
            role=role,
            is_active=kwargs.pop('is_active', True),
        )
        user.set_password(password)
        _db.session.add(user)
        _db.session.commit()
        return user

    def admin(self, **kwargs):
        return self.user('admin', **kwargs)

    def nurse(self, name='Nurse Joy', nurse_id=None, **kwargs):
        user = self.user('nurse', **kwargs)
        nurse = Nurse(id=nurse_id, user_id=user.id, name=name, specialization='General')
        _db.session.add(nurse)
        _db.session.commit()
        return nurse

    def student(self, name=None, student_number=None, **kwargs):
        user = self.user('student', **kwargs)
        n = next(self._seq)
        student = Student(
            user_id=user.id,
            student_number=student_number or f'2025-{n:05d}',
            name=name or f'Student {n}',
        )
        _db.session.add(student)
        _db.session.commit()
        return student

    def assign(self, nurse, student, is_active=True):
        assignment = NurseStudentAssignment(nurse_id=nurse.id, student_id=student.id, is_active=is_active)
        _db.session.add(assignment)
        _db.session.commit()
        return assignment

    def slot(self, nurse, day, start=time(9, 0), end=time(10, 0), max_patients=1, is_available=True):
        slot = AvailabilitySlot(
            nurse_id=nurse.id,
            availability_date=day,
            start_time=start,
            end_time=end,
            max_patients=max_patients,
            is_available=is_available,
        )
        _db.session.add(slot)
        _db.session.commit()
        return slot

    def appointment(self, student, nurse, scheduled_at, status=AppointmentStatus.PENDING, **kwargs):
        if 'seat' not in kwargs and status in AppointmentStatus.LIVE:
            taken = {
                a.seat for a in Appointment.query.filter(
                    Appointment.nurse_id == nurse.id,
                    Appointment.scheduled_at == scheduled_at,
                    Appointment.status.in_(AppointmentStatus.LIVE),
                )
            }
            kwargs['seat'] = next(s for s in itertools.count() if s not in taken)
        appointment = Appointment(
            student_id=student.id,
            nurse_id=nurse.id,
            scheduled_at=scheduled_at,
            status=status,
            reason=kwargs.pop('reason', 'Headache'),
            **kwargs,
        )
        _db.session.add(appointment)
        _db.session.commit()
        return appointment


class ClinicTestClient(FlaskClient):
    """
    Runs each request in its own app context, the way a server would, so g and
    the SQLAlchemy session never carry over from the test body or an earlier
    request.
    """

    def open(self, *args, **kwargs):
        # End the test body's transaction; its objects reload after the request
        _db.session.commit()
        with self.application.app_context():
            return super().open(*args, **kwargs)


@pytest.fixture
def app():
    app = create_app('testing')
    app.test_client_class = ClinicTestClient
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def file_app(tmp_path, monkeypatch):
    """
    An app on a SQLite file, for tests that open several connections at once.
    No app context is held; callers push their own.
    """
    monkeypatch.setattr(TestingConfig, 'SQLALCHEMY_DATABASE_URI', f"sqlite:///{tmp_path / 'clinic.db'}")
    monkeypatch.setattr(TestingConfig, 'SQLALCHEMY_ENGINE_OPTIONS', {
        'connect_args': {'timeout': 30, 'check_same_thread': False},
    })
    app = create_app('testing')
    with app.app_context():
        _db.create_all()
    yield app
    with app.app_context():
        _db.drop_all()
        _db.engine.dispose()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def factory(app):
    return Factory()


@pytest.fixture
def file_factory(file_app):
    return Factory()


@pytest.fixture
def login(client):
    """Log the test client in as user; returns the login response JSON."""
    def _login(user, password=PASSWORD):
        response = client.post('/api/auth/login', json={'email': user.email, 'password': password})
        assert response.status_code == 200, response.get_json()
        return response.get_json()
    return _login


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing mail instead of talking to SMTP."""
    sent = []

    def fake_send_email(to_email, subject, body_text, body_html=None):
        sent.append({'to': to_email, 'subject': subject, 'body': body_text})
        return True

    monkeypatch.setattr(email_service, 'send_email', fake_send_email)
    return sent


class FakeRedis:
    """Just enough of redis.Redis for the rate limiter and the sweep lock."""

    def __init__(self):
        self.counters = {}
        self.ttls = {}
        self.locks = set()

    def incr(self, key):
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    def ttl(self, key):
        return self.ttls.get(key, -1)

    def ping(self):
        return True

    def lock(self, name, timeout=None):
        return FakeLock(self, name)


class FakeLock:
    def __init__(self, client, name):
        self.client = client
        self.name = name
        self.released = False

    def acquire(self, blocking=True):
        if self.name in self.client.locks:
            return False
        self.client.locks.add(self.name)
        return True

    def release(self):
        self.client.locks.discard(self.name)
        self.released = True


@pytest.fixture
def fake_redis(app):
    client = FakeRedis()
    app.extensions['redis_client'] = client
    return client


@pytest.fixture
def future_day():
    return next_weekday()


@pytest.fixture
def clinic_setup(factory, future_day):
    """An assigned nurse/student pair with a 09:00-12:00 slot of capacity 1."""
    nurse = factory.nurse()
    student = factory.student()
    factory.assign(nurse, student)
    slot = factory.slot(nurse, future_day, start=time(9, 0), end=time(12, 0), max_patients=1)
    return nurse, student, slot

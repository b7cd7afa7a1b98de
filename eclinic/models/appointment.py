"""
Appointment model and its status vocabulary.

Transition rules live in eclinic.services.appointment_service; this module
only defines the row and the status sets the rules are written against.
"""
from eclinic.extensions import db
from .base import TimestampMixin


class AppointmentStatus:
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'
    NO_SHOW = 'no_show'
    ARCHIVED = 'archived'

    ALL = (PENDING, CONFIRMED, CANCELLED, COMPLETED, NO_SHOW, ARCHIVED)

    # Statuses that hold capacity at their timestamp
    LIVE = (PENDING, CONFIRMED)

    # Outcomes the archival sweep picks up
    FINISHED = (COMPLETED, CANCELLED, NO_SHOW)


_LIVE_SEAT_PREDICATE = db.text("status IN ('pending', 'confirmed')")


class Appointment(db.Model, TimestampMixin):
    __tablename__ = 'appointments'
    __table_args__ = (
        # One live appointment per capacity seat at a (nurse, timestamp)
        db.Index(
            'uq_appointments_live_seat',
            'nurse_id', 'scheduled_at', 'seat',
            unique=True,
            postgresql_where=_LIVE_SEAT_PREDICATE,
            sqlite_where=_LIVE_SEAT_PREDICATE,
        ),
        db.Index('ix_appointments_status_scheduled_at', 'status', 'scheduled_at'),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    nurse_id = db.Column(db.Integer, db.ForeignKey('nurses.id'), nullable=False, index=True)

    scheduled_at = db.Column(db.DateTime, nullable=False, index=True)
    reason = db.Column(db.Text)
    notes = db.Column(db.Text)

    status = db.Column(db.String(20), nullable=False, default=AppointmentStatus.PENDING, index=True)
    seat = db.Column(db.Integer, nullable=False, default=0)

    check_in_time = db.Column(db.DateTime, nullable=True)
    check_out_time = db.Column(db.DateTime, nullable=True)
    qr_check_in = db.Column(db.Boolean, default=False, nullable=False)

    # Set once the day-before reminder went out
    reminder_sent_at = db.Column(db.DateTime, nullable=True)

    student = db.relationship('Student', backref=db.backref('appointments', lazy='dynamic'))
    nurse = db.relationship('Nurse', backref=db.backref('appointments', lazy='dynamic'))

    @property
    def is_live(self):
        return self.status in AppointmentStatus.LIVE

    def to_dict(self, include_student=False, include_nurse=False):
        data = {
            'id': self.id,
            'student_id': self.student_id,
            'nurse_id': self.nurse_id,
            'appointment_date': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'reason': self.reason,
            'notes': self.notes,
            'status': self.status,
            'check_in_time': self.check_in_time.isoformat() if self.check_in_time else None,
            'check_out_time': self.check_out_time.isoformat() if self.check_out_time else None,
            'qr_check_in': self.qr_check_in,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_student and self.student:
            data['student_name'] = self.student.display_name
            data['student_number'] = self.student.student_number
        if include_nurse and self.nurse:
            data['nurse_name'] = self.nurse.name
        return data

    def __repr__(self):
        return f"<Appointment {self.id} student={self.student_id} nurse={self.nurse_id} {self.scheduled_at} {self.status}>"

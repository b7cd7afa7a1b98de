"""
Nurse availability windows.

One row per nurse per calendar date: the window [start_time, end_time) and
the number of appointments allowed at any single timestamp inside it.
"""
from datetime import datetime

from eclinic.extensions import db
from .base import TimestampMixin


class AvailabilitySlot(db.Model, TimestampMixin):
    __tablename__ = 'nurse_availability'
    __table_args__ = (
        db.UniqueConstraint('nurse_id', 'availability_date', name='uq_nurse_availability_nurse_date'),
    )

    id = db.Column(db.Integer, primary_key=True)
    nurse_id = db.Column(db.Integer, db.ForeignKey('nurses.id'), nullable=False, index=True)
    availability_date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    max_patients = db.Column(db.Integer, nullable=False, default=10)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    @property
    def window_start(self):
        return datetime.combine(self.availability_date, self.start_time)

    @property
    def window_end(self):
        return datetime.combine(self.availability_date, self.end_time)

    def contains(self, at_time):
        return self.start_time <= at_time < self.end_time

    def to_dict(self):
        return {
            'id': self.id,
            'nurse_id': self.nurse_id,
            'availability_date': self.availability_date.isoformat(),
            'start_time': self.start_time.strftime('%H:%M'),
            'end_time': self.end_time.strftime('%H:%M'),
            'max_patients': self.max_patients,
            'is_available': self.is_available,
        }

    def __repr__(self):
        return f"<AvailabilitySlot nurse={self.nurse_id} {self.availability_date} {self.start_time}-{self.end_time}>"

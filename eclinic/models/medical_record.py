from eclinic.extensions import db
from .base import TimestampMixin


ARCHIVED_SUFFIX = '_archived'


class MedicalRecord(db.Model, TimestampMixin):
    __tablename__ = 'medical_records'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    nurse_id = db.Column(db.Integer, db.ForeignKey('nurses.id'), nullable=False, index=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=True, unique=True, index=True)

    visit_date = db.Column(db.DateTime, nullable=False)
    # e.g. consultation, checkup, emergency; archival appends ARCHIVED_SUFFIX
    record_type = db.Column(db.String(40), nullable=False, default='consultation')
    symptoms = db.Column(db.Text)
    diagnosis = db.Column(db.Text)
    treatment = db.Column(db.Text)
    medications = db.Column(db.Text)
    vital_signs = db.Column(db.Text)
    notes = db.Column(db.Text)
    follow_up_required = db.Column(db.Boolean, default=False, nullable=False)
    follow_up_date = db.Column(db.Date)

    student = db.relationship('Student', backref=db.backref('medical_records', lazy='dynamic'))
    nurse = db.relationship('Nurse', backref=db.backref('medical_records', lazy='dynamic'))
    appointment = db.relationship('Appointment', backref=db.backref('medical_record', uselist=False))

    @property
    def is_archived(self):
        return (self.record_type or '').endswith(ARCHIVED_SUFFIX)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'nurse_id': self.nurse_id,
            'nurse_name': self.nurse.name if self.nurse else None,
            'appointment_id': self.appointment_id,
            'visit_date': self.visit_date.isoformat() if self.visit_date else None,
            'record_type': self.record_type,
            'symptoms': self.symptoms,
            'diagnosis': self.diagnosis,
            'treatment': self.treatment,
            'medications': self.medications,
            'vital_signs': self.vital_signs,
            'notes': self.notes,
            'follow_up_required': self.follow_up_required,
            'follow_up_date': self.follow_up_date.isoformat() if self.follow_up_date else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

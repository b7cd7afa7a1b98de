from eclinic.extensions import db
from .base import TimestampMixin


class Student(db.Model, TimestampMixin):
    __tablename__ = 'students'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False, index=True)
    student_number = db.Column(db.String(30), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200))
    phone = db.Column(db.String(20))

    # Contact details, editable by the student
    address = db.Column(db.Text)
    emergency_contact = db.Column(db.String(200))

    # Health and school details, kept by the nurse
    date_of_birth = db.Column(db.Date)
    gender = db.Column(db.String(20))
    blood_type = db.Column(db.String(5))
    allergies = db.Column(db.Text)
    medical_conditions = db.Column(db.Text)
    school_year = db.Column(db.String(20))
    school_level = db.Column(db.String(50))
    department = db.Column(db.String(100), index=True)

    # Last QR token issued for this student (text form, rendered by clients)
    qr_token = db.Column(db.String(100))

    user = db.relationship('User', back_populates='student')

    @property
    def display_name(self):
        """Student name, falling back to the user's name, then the student number."""
        if self.name and self.name.strip():
            return self.name.strip()
        if self.user and f"{self.user.first_name or ''}{self.user.last_name or ''}".strip():
            return f"{self.user.first_name or ''} {self.user.last_name or ''}".strip()
        return self.student_number

    @property
    def email(self):
        return self.user.email if self.user else None

    def to_dict(self, include_profile=False):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'student_number': self.student_number,
            'name': self.display_name,
            'email': self.email,
            'phone': self.phone,
        }
        if include_profile:
            data.update({
                'address': self.address,
                'emergency_contact': self.emergency_contact,
                'date_of_birth': self.date_of_birth.isoformat() if self.date_of_birth else None,
                'gender': self.gender,
                'blood_type': self.blood_type,
                'allergies': self.allergies,
                'medical_conditions': self.medical_conditions,
                'school_year': self.school_year,
                'school_level': self.school_level,
                'department': self.department,
            })
        return data

    def __repr__(self):
        return f"<Student {self.student_number}>"


class NurseStudentAssignment(db.Model, TimestampMixin):
    """Grants a student the right to book with a nurse while active."""
    __tablename__ = 'nurse_students'
    __table_args__ = (
        db.UniqueConstraint('nurse_id', 'student_id', name='uq_nurse_students_nurse_student'),
    )

    id = db.Column(db.Integer, primary_key=True)
    nurse_id = db.Column(db.Integer, db.ForeignKey('nurses.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    nurse = db.relationship('Nurse', backref=db.backref('assignments', lazy='dynamic'))
    student = db.relationship('Student', backref=db.backref('assignments', lazy='dynamic'))

    def __repr__(self):
        return f"<NurseStudentAssignment nurse={self.nurse_id} student={self.student_id}>"

from flask_login import UserMixin

from eclinic.extensions import db, bcrypt
from .base import TimestampMixin


class User(db.Model, TimestampMixin, UserMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(100), nullable=False, default='')
    last_name = db.Column(db.String(100), nullable=False, default='')

    # One of: 'student', 'nurse', 'admin'
    role = db.Column(db.String(20), nullable=False, index=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    last_login = db.Column(db.DateTime, nullable=True)
    login_count = db.Column(db.Integer, default=0)

    nurse = db.relationship('Nurse', back_populates='user', uselist=False)
    student = db.relationship('Student', back_populates='user', uselist=False)

    def set_password(self, password):
        """Hash and set password"""
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        """Check if provided password matches hash"""
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def role_enum(self):
        from eclinic.utils.roles import Role
        return Role.parse(self.role)

    @property
    def full_name(self):
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'role': self.role,
            'is_active': self.is_active,
            'nurse_id': self.nurse.id if self.nurse else None,
            'student_id': self.student.id if self.student else None,
            'last_login': self.last_login.isoformat() if self.last_login else None,
            'login_count': self.login_count,
        }

    def __repr__(self):
        return f"<User {self.email} - {self.role}>"

from eclinic.extensions import db
from .base import TimestampMixin


class Nurse(db.Model, TimestampMixin):
    __tablename__ = 'nurses'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    specialization = db.Column(db.String(100))

    user = db.relationship('User', back_populates='nurse')
    slots = db.relationship('AvailabilitySlot', backref='nurse', lazy='dynamic')

    @property
    def email(self):
        return self.user.email if self.user else None

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'specialization': self.specialization,
        }

    def __repr__(self):
        return f"<Nurse {self.id} {self.name}>"

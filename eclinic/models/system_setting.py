from eclinic.extensions import db
from .base import TimestampMixin


class SystemSetting(db.Model, TimestampMixin):
    """Admin-editable key/value settings that override config defaults."""
    __tablename__ = 'system_settings'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    value = db.Column(db.String(255), nullable=False)
    updated_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    def __repr__(self):
        return f"<SystemSetting {self.key}={self.value}>"

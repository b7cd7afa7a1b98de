from datetime import datetime

from eclinic.extensions import db


class TimestampMixin:
    """created_at / updated_at in clinic local time."""
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

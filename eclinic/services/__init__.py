"""
Services package.

Submodules are imported in dependency order so that `from eclinic.services
import <module>` works from inside sibling modules.
"""
from . import email_service
from . import qr_service
from . import notification_service
from . import settings_service
from . import availability_service
from . import appointment_service
from . import booking_service
from . import lifecycle_service
from . import medical_record_service
from . import student_service
from . import report_service

__all__ = [
    "email_service",
    "qr_service",
    "notification_service",
    "settings_service",
    "availability_service",
    "appointment_service",
    "booking_service",
    "lifecycle_service",
    "medical_record_service",
    "student_service",
    "report_service",
]

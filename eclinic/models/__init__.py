from .user import User
from .nurse import Nurse
from .student import Student, NurseStudentAssignment
from .availability import AvailabilitySlot
from .appointment import Appointment, AppointmentStatus
from .medical_record import MedicalRecord
from .notification import Notification
from .audit_log import AuditLog
from .system_setting import SystemSetting

__all__ = [
    "User",
    "Nurse",
    "Student",
    "NurseStudentAssignment",
    "AvailabilitySlot",
    "Appointment",
    "AppointmentStatus",
    "MedicalRecord",
    "Notification",
    "AuditLog",
    "SystemSetting",
]

from .auth import auth_bp
from .student import student_bp
from .nurse import nurse_bp
from .medical_records import medical_record_bp
from .notifications import notification_bp
from .admin import admin_bp
from .health import health_bp
from .reports import report_bp

__all__ = ['auth_bp', 'student_bp', 'nurse_bp', 'medical_record_bp', 'notification_bp', 'admin_bp', 'health_bp',
           'report_bp']

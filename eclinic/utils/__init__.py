from .decorators import require_role, login_required_json, get_current_user, current_nurse, current_student

from .audit import log_audit

from .roles import Role

__all__ = [
    # Decorators
    "require_role",
    "login_required_json",
    "get_current_user",
    "current_nurse",
    "current_student",
    # Audit
    "log_audit",
    # Roles
    "Role",
]

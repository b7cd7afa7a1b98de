"""
User roles and the authorization rules that depend on them.

Every rule branches on the Role enum and ends in an explicit failure so that a
new role cannot silently fall through a check.
"""
from enum import Enum


class Role(str, Enum):
    STUDENT = 'student'
    NURSE = 'nurse'
    ADMIN = 'admin'

    @classmethod
    def parse(cls, value):
        """Normalize a stored/requested role string into a Role."""
        try:
            return cls((value or '').strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}") from None


def _unhandled(role):
    raise ValueError(f"Unhandled role: {role!r}")


def can_manage_appointment(user, appointment):
    """Owning nurse or any admin may move an appointment through its lifecycle."""
    role = user.role_enum
    if role is Role.ADMIN:
        return True
    if role is Role.NURSE:
        return user.nurse is not None and user.nurse.id == appointment.nurse_id
    if role is Role.STUDENT:
        return False
    return _unhandled(role)


def can_view_appointment(user, appointment):
    role = user.role_enum
    if role is Role.ADMIN:
        return True
    if role is Role.NURSE:
        return user.nurse is not None and user.nurse.id == appointment.nurse_id
    if role is Role.STUDENT:
        return user.student is not None and user.student.id == appointment.student_id
    return _unhandled(role)


def can_override_status(user):
    role = user.role_enum
    if role is Role.ADMIN:
        return True
    if role in (Role.NURSE, Role.STUDENT):
        return False
    return _unhandled(role)


def can_report_on_all_nurses(user):
    """Admins report across nurses; a nurse's reports cover only their own work."""
    role = user.role_enum
    if role is Role.ADMIN:
        return True
    if role in (Role.NURSE, Role.STUDENT):
        return False
    return _unhandled(role)

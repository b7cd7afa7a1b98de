"""
Domain errors raised by the service layer.

Each error carries the HTTP status the request boundary maps it to; the
message is safe to show to the client.
"""


class ClinicError(Exception):
    status_code = 400
    message = 'Request could not be processed'

    def __init__(self, message=None, **extra):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.extra = extra

    def to_dict(self):
        payload = {'success': False, 'error': self.message}
        payload.update(self.extra)
        return payload


class ValidationError(ClinicError):
    status_code = 400
    message = 'Invalid request'


class AuthorizationError(ClinicError):
    status_code = 403
    message = 'You are not allowed to act on this record'


class InvalidTransitionError(ClinicError):
    status_code = 400
    message = 'Appointment cannot move to the requested status'


class SlotUnavailableError(ClinicError):
    status_code = 400
    message = 'The nurse is not available at the requested time'


class SlotFullError(ClinicError):
    status_code = 409
    message = 'This time slot is fully booked'


class ConflictError(ClinicError):
    status_code = 409
    message = 'The record is in use and cannot be changed'


class NotFoundError(ClinicError):
    status_code = 404
    message = 'Not found'


class RateLimitError(ClinicError):
    status_code = 429
    message = 'Too many requests'


class TransientError(ClinicError):
    status_code = 500
    message = 'Internal server error'

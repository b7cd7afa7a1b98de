from flask import request

from eclinic.errors import ValidationError


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be JSON')
    return data


def pick(data, *keys, default=None):
    """First present, non-None value among keys (clients send camelCase or snake_case)."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


_TRUE = ('true', '1', 'yes', 'on')
_FALSE = ('false', '0', 'no', 'off')


def parse_bool(value, field='value'):
    """JSON booleans, 0/1, or their string forms from form-style clients."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise ValidationError(f'Field "{field}" must be true or false')

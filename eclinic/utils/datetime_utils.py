"""
Parsing helpers for request payloads. All raise ValidationError with a
message that can be returned to the client.
"""
from datetime import date, datetime, time, timedelta

from eclinic.errors import ValidationError


def parse_date(value, field='date'):
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {field}. Use YYYY-MM-DD')


def parse_time(value, field='time'):
    if isinstance(value, time):
        return value
    text = str(value or '').strip()
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f'Invalid {field}. Use HH:MM (e.g., 10:30)')


def parse_datetime(value, field='appointmentDate'):
    """
    Accept ISO 8601 ('2025-01-10T09:00', '2025-01-10T09:00:00') and the
    'YYYY-MM-DD HH:MM[:SS]' form. Timezone suffixes are dropped; appointment
    times are clinic-local.
    """
    if isinstance(value, datetime):
        return value.replace(tzinfo=None, microsecond=0)
    text = str(value or '').strip()
    if not text:
        raise ValidationError(f'Field "{field}" is required')
    if text.endswith('Z'):
        text = text[:-1]
    try:
        parsed = datetime.fromisoformat(text.replace(' ', 'T'))
    except ValueError:
        raise ValidationError(f'Invalid {field}. Use YYYY-MM-DDTHH:MM')
    return parsed.replace(tzinfo=None, microsecond=0)


def day_bounds(day):
    """[start, end) of a calendar day."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def months_ago(moment, months):
    """Same wall-clock time `months` calendar months earlier, clamped to month end."""
    year = moment.year
    month = moment.month - months
    while month < 1:
        month += 12
        year -= 1
    # Clamp e.g. Mar 31 minus one month to Feb 28/29
    for day in (moment.day, 30, 29, 28):
        try:
            return moment.replace(year=year, month=month, day=min(moment.day, day))
        except ValueError:
            continue
    raise ValueError(f"Cannot subtract {months} months from {moment}")

"""
Request field parsing shared by the appointment and consultation endpoints.
"""
from datetime import datetime

from meroclinic.services.exceptions import PreconditionFailed

DATE_FORMAT = '%Y-%m-%d'
TIME_FORMAT = '%H:%M'


def parse_date_time(date_str, time_str, date_field='date', time_field='time'):
    """
    Combine a YYYY-MM-DD date and an HH:MM time into one datetime.
    Raises PreconditionFailed naming the offending field.
    """
    if not date_str:
        raise PreconditionFailed(f'Field "{date_field}" is required', field=date_field)
    if not time_str:
        raise PreconditionFailed(f'Field "{time_field}" is required', field=time_field)

    try:
        day = datetime.strptime(str(date_str), DATE_FORMAT).date()
    except ValueError:
        raise PreconditionFailed('Invalid date format. Use YYYY-MM-DD', field=date_field)

    try:
        clock = datetime.strptime(str(time_str), TIME_FORMAT).time()
    except ValueError:
        raise PreconditionFailed('Invalid time format. Use HH:MM (e.g., 10:30)', field=time_field)

    return datetime.combine(day, clock)


def parse_iso_datetime(value, field):
    """Parse an ISO-8601 timestamp query parameter."""
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise PreconditionFailed(f'Invalid "{field}" timestamp. Use ISO-8601', field=field)


def clean_text(value):
    """Free-text fields are stored as stripped strings, never NULL."""
    if value is None:
        return ''
    return str(value).strip()


def parse_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'on')
    return bool(value)

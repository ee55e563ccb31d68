# algorithms/temporal.py
"""
Day arithmetic shared by the eligibility and lifecycle rules.

Day counts are ceiling based: a unit expiring in 0.1 days reports 1 day
remaining, and a donation 55.9 days ago counts as 56 days.
"""
import math
from datetime import date, datetime, time, timedelta

from dateutil.relativedelta import relativedelta
from django.utils import timezone

from algorithms.exceptions import ValidationError

SECONDS_PER_DAY = 86400

DURATION_UNITS = ('Days', 'Weeks', 'Months', 'Years')


def to_datetime(value):
    """Promote a date to midnight; datetimes pass through unchanged"""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    raise ValidationError(f"Expected a date or datetime, got {value!r}")


def to_aware_datetime(value):
    """Datetime in the current timezone; naive values are taken as local time"""
    value = to_datetime(value)
    if timezone.is_naive(value):
        return timezone.make_aware(value)
    return value


def to_date(value):
    """Calendar date of a date/datetime, in the local timezone for aware values"""
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            return timezone.localtime(value).date()
        return value.date()
    if isinstance(value, date):
        return value
    raise ValidationError(f"Expected a date or datetime, got {value!r}")


def _aligned(first, second):
    first, second = to_datetime(first), to_datetime(second)

    # Mixing naive and aware values: treat the naive one as local time
    if timezone.is_naive(first) and timezone.is_aware(second):
        first = timezone.make_aware(first)
    elif timezone.is_aware(first) and timezone.is_naive(second):
        second = timezone.make_aware(second)

    return first, second


def days_between(start, end, signed=False):
    """
    Whole days from start to end, rounded up.

    Args:
        start: date or datetime
        end: date or datetime
        signed: keep the sign (negative when end is before start)

    Returns:
        int: ceil(|end - start| / 1 day), or ceil((end - start) / 1 day) when signed
    """
    start, end = _aligned(start, end)
    days = (end - start).total_seconds() / SECONDS_PER_DAY

    if signed:
        return math.ceil(days)
    return math.ceil(abs(days))


def add_days(value, days):
    return value + timedelta(days=days)


def add_duration(value, amount, unit):
    """
    Add a deferral-style duration (e.g. 6 Months) to a date.
    Months and years roll over the calendar correctly (Jan 31 + 1 month = Feb 28/29).
    """
    if unit not in DURATION_UNITS:
        raise ValidationError(f"Unknown duration unit: {unit}")
    if amount is None or amount < 0:
        raise ValidationError('Duration must be zero or positive')

    deltas = {
        'Days': relativedelta(days=amount),
        'Weeks': relativedelta(weeks=amount),
        'Months': relativedelta(months=amount),
        'Years': relativedelta(years=amount),
    }
    return value + deltas[unit]

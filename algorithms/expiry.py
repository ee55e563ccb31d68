# algorithms/expiry.py
"""
Expiry classification for blood units.
Derived from (expiration_date - as_of) only; unit status plays no part.
"""
from collections import defaultdict

from algorithms.temporal import days_between

EXPIRED = 'Expired'
CRITICAL = 'Critical'
WARNING = 'Warning'
CAUTION = 'Caution'
NORMAL = 'Normal'

# (upper bound in days, label), checked in order
EXPIRY_THRESHOLDS = [
    (0, EXPIRED),
    (3, CRITICAL),
    (7, WARNING),
    (14, CAUTION),
]


def days_remaining(expiration_date, as_of):
    """Signed whole days until expiry; negative once the unit is past expiry"""
    return days_between(as_of, expiration_date, signed=True)


def classify_days_remaining(days):
    for upper_bound, label in EXPIRY_THRESHOLDS:
        if days <= upper_bound:
            return label
    return NORMAL


def expiry_status(expiration_date, as_of):
    return classify_days_remaining(days_remaining(expiration_date, as_of))


def group_by_expiry(units, as_of):
    """
    Group units by expiry band for the expiry tracking report

    Args:
        units: iterable of objects with expiration_date and blood_type
        as_of: reference instant

    Returns:
        dict with 'groups' (label -> list of (unit, days_remaining)) and
        'stats' (totals by band and by blood type)
    """
    groups = {label: [] for label in (EXPIRED, CRITICAL, WARNING, CAUTION, NORMAL)}
    by_blood_type = defaultdict(int)

    for unit in units:
        remaining = days_remaining(unit.expiration_date, as_of)
        groups[classify_days_remaining(remaining)].append((unit, remaining))
        by_blood_type[unit.blood_type] += 1

    stats = {
        'total': sum(len(members) for members in groups.values()),
        'by_status': {label: len(members) for label, members in groups.items()},
        'by_blood_type': dict(by_blood_type),
    }
    return {'groups': groups, 'stats': stats}

# algorithms/identifiers.py
"""
Human-readable identifier policy: prefix + YYMMDD + zero-padded running count
e.g. BU240315007 for the 7th blood unit registered on 15 March 2024.

Domain operations never call this; they accept pre-generated identifiers.
"""
from django.utils import timezone

from algorithms.exceptions import ValidationError

DONOR_PREFIX = 'DN'
BLOOD_UNIT_PREFIX = 'BU'
BLOOD_REQUEST_PREFIX = 'BR'
TRANSFUSION_PREFIX = 'TR'
DEFERRAL_PREFIX = 'DF'

SEQUENCE_WIDTH = 3


def generate_identifier(prefix, sequence, on_date=None):
    if sequence < 1:
        raise ValidationError('Identifier sequence starts at 1')

    on_date = on_date or timezone.localdate()
    return f"{prefix}{on_date.strftime('%y%m%d')}{sequence:0{SEQUENCE_WIDTH}d}"


def next_identifier(prefix, existing_ids, on_date=None):
    """
    Next identifier for the day given the identifiers already issued.
    Only identifiers sharing today's prefix+date stem are counted.
    """
    on_date = on_date or timezone.localdate()
    stem = f"{prefix}{on_date.strftime('%y%m%d')}"

    highest = 0
    for identifier in existing_ids:
        suffix = identifier[len(stem):] if identifier.startswith(stem) else ''
        if suffix.isdigit():
            highest = max(highest, int(suffix))

    return generate_identifier(prefix, highest + 1, on_date)

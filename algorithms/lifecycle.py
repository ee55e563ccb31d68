# algorithms/lifecycle.py
"""
Blood Unit Lifecycle
Status state machine for a physical unit of donated blood, plus the
blood request status graph.

    Quarantined -> Available -> Reserved | Transfused | Discarded | Expired
    Reserved    -> Available | Transfused
    Quarantined -> Discarded   (failed screening)
    Expired     -> Discarded   (disposal)
"""
from algorithms.exceptions import (
    ImmutableRecord,
    InvalidTransition,
    ProtectedRecord,
    ValidationError,
)
from algorithms.temporal import add_days

# Constants
DEFAULT_SHELF_LIFE_DAYS = 42

QUARANTINED = 'Quarantined'
AVAILABLE = 'Available'
RESERVED = 'Reserved'
TRANSFUSED = 'Transfused'
DISCARDED = 'Discarded'
EXPIRED = 'Expired'

UNIT_STATUSES = [AVAILABLE, RESERVED, QUARANTINED, DISCARDED, TRANSFUSED, EXPIRED]

UNIT_TRANSITIONS = {
    QUARANTINED: {AVAILABLE, DISCARDED},
    AVAILABLE: {RESERVED, TRANSFUSED, DISCARDED, EXPIRED},
    RESERVED: {AVAILABLE, TRANSFUSED},
    EXPIRED: {DISCARDED},
    TRANSFUSED: set(),
    DISCARDED: set(),
}

# Statuses a freshly collected unit may start in
INITIAL_STATUSES = {QUARANTINED, AVAILABLE}

# Blood request statuses
REQUEST_PENDING = 'Pending'
REQUEST_PROCESSING = 'Processing'
REQUEST_FULFILLED = 'Fulfilled'
REQUEST_CANCELLED = 'Cancelled'

REQUEST_STATUSES = [REQUEST_PENDING, REQUEST_PROCESSING, REQUEST_FULFILLED, REQUEST_CANCELLED]

# Requests a transfusion may still be booked against
OPEN_REQUEST_STATUSES = {REQUEST_PENDING, REQUEST_PROCESSING}

REQUEST_TRANSITIONS = {
    REQUEST_PENDING: {REQUEST_PROCESSING, REQUEST_CANCELLED},
    REQUEST_PROCESSING: {REQUEST_FULFILLED, REQUEST_CANCELLED},
    REQUEST_FULFILLED: set(),
    REQUEST_CANCELLED: set(),
}


def compute_expiration_date(collection_date, shelf_life_days=DEFAULT_SHELF_LIFE_DAYS):
    """Expiration date of a unit collected on collection_date"""
    if shelf_life_days <= 0:
        raise ValidationError('Shelf life must be a positive number of days')
    return add_days(collection_date, shelf_life_days)


def is_terminal(status):
    return not UNIT_TRANSITIONS.get(status)


def check_unit_transition(current_status, new_status):
    """
    Validate a blood unit status change.

    Raises:
        ValidationError: new_status is not a known status
        ImmutableRecord: a transfused unit is being discarded or re-quarantined
        InvalidTransition: new_status is not reachable from current_status
            (including a change to the same status)
    """
    if new_status not in UNIT_TRANSITIONS:
        raise ValidationError(f"Invalid status value: {new_status}")

    if current_status == TRANSFUSED and new_status in (DISCARDED, QUARANTINED):
        raise ImmutableRecord(
            f"Blood unit has been transfused and cannot be marked {new_status}"
        )

    if new_status not in UNIT_TRANSITIONS.get(current_status, set()):
        raise InvalidTransition(current_status, new_status)


def default_transition_note(current_status, new_status):
    return f"Status changed from {current_status} to {new_status}"


def check_unit_deletable(status):
    if status == TRANSFUSED:
        raise ProtectedRecord('Transfused blood units are permanent records and cannot be deleted')


def check_request_transition(current_status, new_status):
    if new_status not in REQUEST_TRANSITIONS:
        raise ValidationError(f"Invalid blood request status: {new_status}")

    if new_status not in REQUEST_TRANSITIONS.get(current_status, set()):
        raise InvalidTransition(current_status, new_status)

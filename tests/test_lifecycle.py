"""Tests for the blood unit and blood request state machines."""
from datetime import date, datetime

import pytest

from algorithms import lifecycle
from algorithms.exceptions import ImmutableRecord, InvalidTransition, ProtectedRecord, ValidationError


# ============================================================================
# Blood unit transitions
# ============================================================================


@pytest.mark.parametrize('current, new', [
    (lifecycle.QUARANTINED, lifecycle.AVAILABLE),
    (lifecycle.QUARANTINED, lifecycle.DISCARDED),
    (lifecycle.AVAILABLE, lifecycle.RESERVED),
    (lifecycle.AVAILABLE, lifecycle.TRANSFUSED),
    (lifecycle.AVAILABLE, lifecycle.DISCARDED),
    (lifecycle.AVAILABLE, lifecycle.EXPIRED),
    (lifecycle.RESERVED, lifecycle.AVAILABLE),
    (lifecycle.RESERVED, lifecycle.TRANSFUSED),
    (lifecycle.EXPIRED, lifecycle.DISCARDED),
])
def test_allowed_transitions(current, new) -> None:
    lifecycle.check_unit_transition(current, new)


@pytest.mark.parametrize('current, new', [
    (lifecycle.AVAILABLE, lifecycle.QUARANTINED),
    (lifecycle.RESERVED, lifecycle.EXPIRED),
    (lifecycle.DISCARDED, lifecycle.AVAILABLE),
    (lifecycle.EXPIRED, lifecycle.AVAILABLE),
    (lifecycle.TRANSFUSED, lifecycle.AVAILABLE),
    (lifecycle.QUARANTINED, lifecycle.TRANSFUSED),
])
def test_rejected_transitions(current, new) -> None:
    with pytest.raises(InvalidTransition) as excinfo:
        lifecycle.check_unit_transition(current, new)

    assert excinfo.value.current_status == current
    assert excinfo.value.new_status == new


@pytest.mark.parametrize('status', lifecycle.UNIT_STATUSES)
def test_same_status_is_rejected(status) -> None:
    with pytest.raises(InvalidTransition):
        lifecycle.check_unit_transition(status, status)


@pytest.mark.parametrize('new', [lifecycle.DISCARDED, lifecycle.QUARANTINED])
def test_transfused_unit_cannot_be_discarded_or_requarantined(new) -> None:
    with pytest.raises(ImmutableRecord):
        lifecycle.check_unit_transition(lifecycle.TRANSFUSED, new)


def test_unknown_status_is_a_validation_error() -> None:
    with pytest.raises(ValidationError, match='Invalid status value'):
        lifecycle.check_unit_transition(lifecycle.AVAILABLE, 'Lost')


def test_terminal_statuses() -> None:
    assert lifecycle.is_terminal(lifecycle.TRANSFUSED)
    assert lifecycle.is_terminal(lifecycle.DISCARDED)
    assert not lifecycle.is_terminal(lifecycle.EXPIRED)
    assert not lifecycle.is_terminal(lifecycle.QUARANTINED)


def test_default_transition_note() -> None:
    note = lifecycle.default_transition_note(lifecycle.QUARANTINED, lifecycle.AVAILABLE)

    assert note == 'Status changed from Quarantined to Available'


def test_only_transfused_units_are_protected_from_delete() -> None:
    with pytest.raises(ProtectedRecord):
        lifecycle.check_unit_deletable(lifecycle.TRANSFUSED)

    for status in set(lifecycle.UNIT_STATUSES) - {lifecycle.TRANSFUSED}:
        lifecycle.check_unit_deletable(status)


# ============================================================================
# Expiration date
# ============================================================================


def test_expiration_is_42_days_after_collection() -> None:
    assert lifecycle.compute_expiration_date(date(2023, 3, 1)) == date(2023, 4, 12)


def test_expiration_keeps_time_of_collection() -> None:
    expires = lifecycle.compute_expiration_date(datetime(2023, 3, 1, 9, 30), shelf_life_days=35)

    assert expires == datetime(2023, 4, 5, 9, 30)


def test_shelf_life_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        lifecycle.compute_expiration_date(date(2023, 3, 1), shelf_life_days=0)


# ============================================================================
# Blood request transitions
# ============================================================================


@pytest.mark.parametrize('current, new', [
    (lifecycle.REQUEST_PENDING, lifecycle.REQUEST_PROCESSING),
    (lifecycle.REQUEST_PENDING, lifecycle.REQUEST_CANCELLED),
    (lifecycle.REQUEST_PROCESSING, lifecycle.REQUEST_FULFILLED),
    (lifecycle.REQUEST_PROCESSING, lifecycle.REQUEST_CANCELLED),
])
def test_request_transitions_allowed(current, new) -> None:
    lifecycle.check_request_transition(current, new)


@pytest.mark.parametrize('current, new', [
    (lifecycle.REQUEST_PENDING, lifecycle.REQUEST_FULFILLED),
    (lifecycle.REQUEST_FULFILLED, lifecycle.REQUEST_CANCELLED),
    (lifecycle.REQUEST_CANCELLED, lifecycle.REQUEST_PENDING),
    (lifecycle.REQUEST_PROCESSING, lifecycle.REQUEST_PENDING),
])
def test_request_transitions_rejected(current, new) -> None:
    with pytest.raises(InvalidTransition):
        lifecycle.check_request_transition(current, new)


def test_request_unknown_status() -> None:
    with pytest.raises(ValidationError):
        lifecycle.check_request_transition(lifecycle.REQUEST_PENDING, 'Expired')

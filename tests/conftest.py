"""Shared fixtures: fixed clock and factories for donors, units and recipients."""
import itertools
from datetime import date, datetime

import pytest
from django.utils import timezone

from algorithms import lifecycle
from donors.models import Donor
from inventory.utils import create_blood_unit, transition_blood_unit
from recipients.models import Recipient


@pytest.fixture
def now():
    """Fixed reference instant (TIME_ZONE is UTC in tests)"""
    return timezone.make_aware(datetime(2024, 3, 15, 10, 0))


@pytest.fixture
def make_donor(db):
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        fields = {
            'donor_id': f'DN240101{n:03d}',
            'first_name': 'Sita',
            'last_name': f'Donor{n}',
            'gender': 'Female',
            'date_of_birth': date(1990, 5, 17),
            'blood_type': 'O+',
            'email': f'donor{n}@example.com',
            'phone': '9800000000',
        }
        fields.update(overrides)
        return Donor.objects.create(**fields)

    return _make


@pytest.fixture
def make_recipient(db):
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        fields = {
            'recipient_id': f'RC240101{n:03d}',
            'first_name': 'Ram',
            'last_name': f'Recipient{n}',
            'gender': 'Male',
            'date_of_birth': date(1975, 2, 3),
            'blood_type': 'O+',
            'phone': '9811111111',
        }
        fields.update(overrides)
        return Recipient.objects.create(**fields)

    return _make


@pytest.fixture
def make_unit(db, make_donor, now):
    """Register a unit through the lifecycle service; Available unless told otherwise"""
    counter = itertools.count(1)

    def _make(donor=None, status=lifecycle.AVAILABLE, **overrides):
        n = next(counter)
        donor = donor or make_donor()
        params = {
            'unit_id': f'BU240315{n:03d}',
            'donor_id': donor.donor_id,
            'blood_type': donor.blood_type,
            'quantity': 450,
            'collection_date': now,
            'status': status if status in lifecycle.INITIAL_STATUSES else lifecycle.AVAILABLE,
        }
        params.update(overrides)
        unit = create_blood_unit(**params)

        # Walk the lifecycle to reach statuses a new unit cannot start in
        if status not in lifecycle.INITIAL_STATUSES:
            unit = transition_blood_unit(unit.unit_id, status)
        return unit

    return _make

"""Tests for donor eligibility loading, deferrals and health assessments."""
from datetime import date, datetime, timedelta

import pytest
from django.test import override_settings
from django.utils import timezone

from algorithms.eligibility import REASON_INTERVAL, REASON_PERMANENT
from algorithms.exceptions import InvalidTransition, NotFound, ProtectedRecord, ValidationError
from donors import utils
from donors.models import Donor, DonorDeferral

pytestmark = pytest.mark.django_db


def defer(donor, deferral_id='DF240315001', **overrides):
    params = {
        'deferral_id': deferral_id,
        'deferral_type': DonorDeferral.TYPE_TEMPORARY,
        'reason_category': 'Travel',
        'specific_reason': 'Malaria area travel',
        'deferred_by': 'nurse.kc',
        'start_date': date(2024, 3, 1),
        'end_date': date(2024, 6, 1),
    }
    params.update(overrides)
    return utils.defer_donor(donor.donor_id, **params)


# ============================================================================
# Evaluation
# ============================================================================


def test_evaluate_donor_scenarios(make_donor, now) -> None:
    rested = make_donor(last_donation_date=now - timedelta(days=80))
    recent = make_donor(last_donation_date=now - timedelta(days=10))

    assert utils.evaluate_donor(rested, as_of=now).is_eligible

    result = utils.evaluate_donor(recent.donor_id, as_of=now)
    assert result.reason == REASON_INTERVAL
    assert result.next_eligible_date == recent.last_donation_date + timedelta(days=56)


def test_late_evening_donation_keeps_its_time(make_donor, make_unit) -> None:
    donor = make_donor()
    collected = timezone.make_aware(datetime(2024, 1, 20, 23, 0))
    make_unit(donor=donor, collection_date=collected)

    donor.refresh_from_db()
    assert donor.last_donation_date == collected

    result = utils.evaluate_donor(donor, as_of=collected + timedelta(days=54, minutes=90))
    assert result.reason == REASON_INTERVAL
    assert result.next_eligible_date == collected + timedelta(days=56)


@override_settings(MIN_DONATION_INTERVAL_DAYS=84)
def test_interval_comes_from_settings(make_donor, now) -> None:
    donor = make_donor(last_donation_date=now - timedelta(days=60))

    assert utils.evaluate_donor(donor, as_of=now).reason == REASON_INTERVAL


def test_evaluate_unknown_donor(db) -> None:
    with pytest.raises(NotFound):
        utils.evaluate_donor('DN-missing')


def test_latest_health_assessment_wins(make_donor, now) -> None:
    donor = make_donor()
    utils.record_health_assessment(
        donor.donor_id, is_eligible=False, deferral_reason='Low hemoglobin',
        assessed_at=now - timedelta(days=30), hemoglobin=11.2,
    )
    assert utils.evaluate_donor(donor, as_of=now).reason == 'Low hemoglobin'

    utils.record_health_assessment(donor.donor_id, assessed_at=now - timedelta(days=1), hemoglobin=13.5)

    assert utils.evaluate_donor(donor, as_of=now).is_eligible


def test_health_assessment_rejects_unknown_measurement(make_donor) -> None:
    with pytest.raises(ValidationError, match='Unknown measurement'):
        utils.record_health_assessment(make_donor().donor_id, blood_sugar=5.4)


def test_permanently_deferred_assessment_is_ineligible(make_donor) -> None:
    assessment = utils.record_health_assessment(make_donor().donor_id, permanently_deferred=True)

    assert not assessment.is_eligible


# ============================================================================
# Deferrals
# ============================================================================


def test_defer_donor_marks_donor_deferred(make_donor, now) -> None:
    donor = make_donor()

    deferral = defer(donor)

    donor.refresh_from_db()
    assert donor.status == Donor.STATUS_DEFERRED
    assert deferral.status == DonorDeferral.STATUS_ACTIVE

    result = utils.evaluate_donor(donor, as_of=now)
    assert result.reason == 'Deferred: Malaria area travel'
    assert result.next_eligible_date == date(2024, 6, 1)


def test_permanent_deferral_has_no_end(make_donor, now) -> None:
    donor = make_donor()

    deferral = defer(donor, deferral_type=DonorDeferral.TYPE_PERMANENT, reason_category='Medical')

    assert deferral.end_date is None
    assert deferral.indefinite
    assert utils.evaluate_donor(donor, as_of=now).reason == REASON_PERMANENT


def test_deferral_duration(make_donor) -> None:
    deferral = defer(make_donor(), end_date=None, start_date=date(2024, 1, 31), duration=1, duration_unit='Months')

    assert deferral.end_date == date(2024, 2, 29)


@pytest.mark.parametrize('overrides, message', [
    ({'deferral_type': 'Sometimes'}, 'deferral type'),
    ({'reason_category': 'Mood'}, 'reason category'),
    ({'specific_reason': ''}, 'specific reason'),
    ({'end_date': None}, 'end date, a duration'),
    ({'end_date': date(2024, 2, 1)}, 'before its start date'),
    ({'end_date': None, 'duration': 3, 'duration_unit': 'Decades'}, 'Duration unit'),
])
def test_deferral_validation(make_donor, overrides, message) -> None:
    donor = make_donor()

    with pytest.raises(ValidationError, match=message):
        defer(donor, **overrides)

    donor.refresh_from_db()
    assert donor.status == Donor.STATUS_ACTIVE


def test_reinstating_last_deferral_reactivates_donor(make_donor) -> None:
    donor = make_donor()
    defer(donor, 'DF240315001')
    defer(donor, 'DF240315002', reason_category='Medication', specific_reason='Isotretinoin')

    utils.reinstate_deferral('DF240315001', reinstated_by='dr.rai', reason='Cleared')
    donor.refresh_from_db()
    assert donor.status == Donor.STATUS_DEFERRED

    deferral = utils.reinstate_deferral('DF240315002', reinstated_by='dr.rai')
    donor.refresh_from_db()
    assert donor.status == Donor.STATUS_ACTIVE
    assert deferral.status == DonorDeferral.STATUS_REINSTATED
    assert deferral.reinstated_by == 'dr.rai'


def test_reinstate_twice_is_rejected(make_donor) -> None:
    defer(make_donor())
    utils.reinstate_deferral('DF240315001', reinstated_by='dr.rai')

    with pytest.raises(InvalidTransition):
        utils.reinstate_deferral('DF240315001', reinstated_by='dr.rai')


def test_reinstate_unknown_deferral(db) -> None:
    with pytest.raises(NotFound):
        utils.reinstate_deferral('DF-missing', reinstated_by='dr.rai')


def test_expire_deferral_after_end_date(make_donor) -> None:
    donor = make_donor()
    defer(donor)

    with pytest.raises(ValidationError, match='not reached its end date'):
        utils.expire_deferral('DF240315001', as_of=date(2024, 5, 31))

    utils.expire_deferral('DF240315001', as_of=date(2024, 6, 1))

    donor.refresh_from_db()
    assert donor.status == Donor.STATUS_ACTIVE
    assert DonorDeferral.objects.get(deferral_id='DF240315001').status == DonorDeferral.STATUS_EXPIRED


def test_permanent_deferral_never_expires(make_donor) -> None:
    defer(make_donor(), deferral_type=DonorDeferral.TYPE_PERMANENT)

    with pytest.raises(InvalidTransition):
        utils.expire_deferral('DF240315001', as_of=date(2099, 1, 1))


def test_lapsed_deferral_still_counts_until_closed(make_donor) -> None:
    donor = make_donor()
    defer(donor)

    later = timezone.make_aware(datetime(2024, 7, 1))
    assert not utils.evaluate_donor(donor, as_of=later).is_eligible


# ============================================================================
# Status report, retirement and deletion
# ============================================================================


def test_donor_status_report(make_donor, make_unit, now) -> None:
    donor = make_donor()
    make_unit(donor=donor, collection_date=now - timedelta(days=20))
    utils.record_health_assessment(donor.donor_id, hemoglobin=14.1, assessed_by='nurse.kc')

    report = utils.donor_status_report(donor.donor_id, as_of=now)

    assert report['donor']['donor_id'] == donor.donor_id
    assert report['eligibility']['is_eligible'] is False
    assert report['eligibility']['reason'] == REASON_INTERVAL
    assert report['health']['hemoglobin'] == 14.1
    assert report['active_deferral'] is None
    assert report['donations']['donation_count'] == 1
    assert report['donations']['days_since_last_donation'] == 20
    assert report['donations']['last_donation_date'] == now - timedelta(days=20)
    assert report['donations']['total_volume'] == 450


def test_retire_and_reactivate(make_donor) -> None:
    donor = make_donor()

    utils.retire_donor(donor.donor_id)
    donor.refresh_from_db()
    assert donor.status == Donor.STATUS_INACTIVE

    utils.reactivate_donor(donor.donor_id)
    donor.refresh_from_db()
    assert donor.status == Donor.STATUS_ACTIVE

    with pytest.raises(InvalidTransition):
        utils.reactivate_donor(donor.donor_id)


def test_donor_with_units_cannot_be_deleted(make_donor, make_unit) -> None:
    donor = make_donor()
    make_unit(donor=donor)

    with pytest.raises(ProtectedRecord):
        utils.delete_donor(donor.donor_id)

    assert Donor.objects.filter(pk=donor.pk).exists()


def test_donor_without_history_can_be_deleted(make_donor) -> None:
    donor = make_donor()

    utils.delete_donor(donor.donor_id)

    assert not Donor.objects.filter(pk=donor.pk).exists()


def test_donor_stats(make_donor, make_unit, now) -> None:
    recent = make_donor()
    make_donor(last_donation_date=now - timedelta(days=200))
    make_donor(blood_type='B-', status=Donor.STATUS_INACTIVE)
    make_unit(donor=recent, collection_date=now - timedelta(days=10))

    stats = utils.donor_stats(as_of=now)

    assert stats['total_donors'] == 3
    assert stats['by_status'] == {
        Donor.STATUS_ACTIVE: 2,
        Donor.STATUS_DEFERRED: 0,
        Donor.STATUS_INACTIVE: 1,
    }
    assert stats['by_blood_type']['O+'] == 2
    assert stats['by_blood_type']['B-'] == 1
    assert stats['by_blood_type']['AB+'] == 0
    assert stats['recently_active_donors'] == 1
    assert stats['total_donations'] == 1
    assert stats['donations_this_month'] == 1

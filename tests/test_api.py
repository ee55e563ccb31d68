"""Tests for the REST adapter: routing, payload handling and error mapping."""
from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from algorithms import lifecycle
from api import views
from donors.models import DonorDeferral
from inventory.models import BloodUnit
from recipients.models import TransfusionRecord

pytestmark = pytest.mark.django_db


@pytest.fixture
def staff_user(db):
    return get_user_model().objects.create_user(username='lab.tech', password='secret-pass-123')


@pytest.fixture
def client(staff_user):
    api_client = APIClient()
    api_client.force_authenticate(user=staff_user)
    return api_client


# ============================================================================
# Authentication
# ============================================================================


def test_anonymous_requests_are_refused(db) -> None:
    response = APIClient().get('/api/blood-units/')

    assert response.status_code in (401, 403)


# ============================================================================
# Blood units
# ============================================================================


def test_create_blood_unit_generates_id(client, make_donor) -> None:
    donor = make_donor()

    response = client.post('/api/blood-units/', {
        'donor_id': donor.donor_id,
        'blood_type': donor.blood_type,
        'quantity': 450,
    }, format='json')

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    unit_id = body['data']['unit_id']
    assert unit_id.startswith(f"BU{timezone.localdate():%y%m%d}")
    assert body['data']['status'] == lifecycle.QUARANTINED
    assert body['data']['status_history'][0]['changed_by'] == 'lab.tech'


def test_create_blood_unit_validation_error(client, make_donor) -> None:
    donor = make_donor(blood_type='O+')

    response = client.post('/api/blood-units/', {
        'unit_id': 'BU240315001',
        'donor_id': donor.donor_id,
        'blood_type': 'A+',
        'quantity': 450,
    }, format='json')

    assert response.status_code == 400
    assert response.json() == {
        'success': False,
        'error': 'Unit blood type A+ does not match donor blood type O+',
        'code': 'ValidationError',
    }


def test_create_blood_unit_unknown_donor(client) -> None:
    response = client.post('/api/blood-units/', {
        'unit_id': 'BU240315001',
        'donor_id': 'DN-missing',
        'blood_type': 'O+',
        'quantity': 450,
    }, format='json')

    assert response.status_code == 404
    assert response.json()['code'] == 'NotFound'


def test_change_status(client, make_unit) -> None:
    unit = make_unit(status=lifecycle.QUARANTINED)

    response = client.put(f'/api/blood-units/{unit.unit_id}/status/', {'status': 'Available'}, format='json')

    assert response.status_code == 200
    assert response.json()['data']['status'] == lifecycle.AVAILABLE


def test_invalid_transition_is_a_conflict(client, make_unit) -> None:
    unit = make_unit()

    response = client.put(f'/api/blood-units/{unit.unit_id}/status/', {'status': 'Quarantined'}, format='json')

    assert response.status_code == 409
    assert response.json()['code'] == 'InvalidTransition'


def test_batch_status(client, make_unit) -> None:
    first = make_unit(status=lifecycle.QUARANTINED)
    second = make_unit(status=lifecycle.QUARANTINED)

    response = client.put('/api/blood-units/batch-status/', {
        'unit_ids': [first.unit_id, second.unit_id, 'BU-missing'],
        'status': 'Available',
    }, format='json')

    assert response.status_code == 200
    data = response.json()['data']
    assert data['updated'] == [first.unit_id, second.unit_id]
    assert data['not_found'] == ['BU-missing']


def test_delete_transfused_unit_is_a_conflict(client, make_unit) -> None:
    unit = make_unit(status=lifecycle.TRANSFUSED)

    response = client.delete(f'/api/blood-units/{unit.unit_id}/')

    assert response.status_code == 409
    assert response.json()['code'] == 'ProtectedRecord'


def test_delete_unit(client, make_unit) -> None:
    unit = make_unit()

    response = client.delete(f'/api/blood-units/{unit.unit_id}/')

    assert response.status_code == 200
    assert BloodUnit.all_objects.get(unit_id=unit.unit_id).deleted_by == 'lab.tech'
    assert client.get(f'/api/blood-units/{unit.unit_id}/').status_code == 404


def test_unit_expiry(client, make_unit) -> None:
    unit = make_unit(collection_date=timezone.now() - timedelta(days=41))

    response = client.get(f'/api/blood-units/{unit.unit_id}/expiry/')

    assert response.status_code == 200
    assert response.json()['data']['expiry_status'] == 'Critical'


def test_expiry_tracking(client, make_unit) -> None:
    make_unit(collection_date=timezone.now() - timedelta(days=40))
    make_unit(collection_date=timezone.now())

    response = client.get('/api/inventory/expiry-tracking/', {'days': 7})

    assert response.status_code == 200
    data = response.json()['data']
    assert data['stats']['total'] == 1
    assert len(data['groups']['Critical']) == 1


def test_expiry_tracking_bad_days(client) -> None:
    response = client.get('/api/inventory/expiry-tracking/', {'days': 'soon'})

    assert response.status_code == 400


def test_inventory_stats(client, make_unit) -> None:
    make_unit(collection_date=timezone.now() - timedelta(days=40))
    make_unit(status=lifecycle.RESERVED)

    response = client.get('/api/blood-units/stats/')

    assert response.status_code == 200
    data = response.json()['data']
    assert data['total_units'] == 2
    assert data['available_units'] == 1
    assert data['by_status'][lifecycle.RESERVED] == 1
    assert data['expiring_soon']['days'] == 7
    assert data['expiring_soon']['total'] == 1
    assert data['expiring_soon']['by_blood_type']['O+'] == 1

    narrow = client.get('/api/blood-units/stats/', {'days': 1}).json()['data']
    assert narrow['expiring_soon']['total'] == 0


def test_taken_identifier_is_reissued(client, make_donor, make_unit, monkeypatch) -> None:
    taken = make_unit()
    donor = make_donor()
    issued = iter([taken.unit_id, 'BU240315900'])
    monkeypatch.setattr(views, 'issue_identifier', lambda prefix, queryset, field: next(issued))

    response = client.post('/api/blood-units/', {
        'donor_id': donor.donor_id,
        'blood_type': donor.blood_type,
        'quantity': 450,
    }, format='json')

    assert response.status_code == 201
    assert response.json()['data']['unit_id'] == 'BU240315900'
    donor.refresh_from_db()
    assert donor.donation_count == 1


def test_identifier_taken_twice_is_refused(client, make_donor, make_unit, monkeypatch) -> None:
    taken = make_unit()
    donor = make_donor()
    monkeypatch.setattr(views, 'issue_identifier', lambda prefix, queryset, field: taken.unit_id)

    response = client.post('/api/blood-units/', {
        'donor_id': donor.donor_id,
        'blood_type': donor.blood_type,
        'quantity': 450,
    }, format='json')

    assert response.status_code == 400
    assert response.json()['code'] == 'ValidationError'
    assert BloodUnit.all_objects.count() == 1


# ============================================================================
# Donors and deferrals
# ============================================================================


def test_donor_status(client, make_donor) -> None:
    donor = make_donor(last_donation_date=timezone.now() - timedelta(days=10))

    response = client.get('/api/donors/status/', {'donorId': donor.donor_id})

    assert response.status_code == 200
    eligibility = response.json()['data']['eligibility']
    assert eligibility['is_eligible'] is False
    assert eligibility['reason'] == 'Minimum interval between donations not met'


def test_donor_status_requires_id(client) -> None:
    assert client.get('/api/donors/status/').status_code == 400
    assert client.get('/api/donors/status/', {'donorId': 'DN-missing'}).status_code == 404


def test_donor_stats(client, make_donor) -> None:
    make_donor()
    make_donor(blood_type='A-')

    response = client.get('/api/donors/stats/')

    assert response.status_code == 200
    data = response.json()['data']
    assert data['total_donors'] == 2
    assert data['by_blood_type']['A-'] == 1
    assert data['by_status']['Active'] == 2


def test_defer_and_reinstate(client, make_donor) -> None:
    donor = make_donor()

    response = client.post(f'/api/donors/{donor.donor_id}/deferrals/', {
        'deferral_type': 'Temporary',
        'reason_category': 'Medication',
        'specific_reason': 'Antibiotics course',
        'duration': 2,
        'duration_unit': 'Weeks',
    }, format='json')

    assert response.status_code == 201
    deferral_id = response.json()['data']['deferral_id']
    assert deferral_id.startswith('DF')
    assert response.json()['data']['deferred_by'] == 'lab.tech'

    response = client.post(f'/api/deferrals/{deferral_id}/reinstate/', {'reason': 'Course finished'}, format='json')

    assert response.status_code == 200
    assert DonorDeferral.objects.get(deferral_id=deferral_id).status == DonorDeferral.STATUS_REINSTATED


def test_record_health_assessment(client, make_donor) -> None:
    donor = make_donor()

    response = client.post(f'/api/donors/{donor.donor_id}/health-assessments/', {
        'hemoglobin': 11.0,
        'is_eligible': False,
        'deferral_reason': 'Low hemoglobin',
    }, format='json')

    assert response.status_code == 201
    assert response.json()['data']['assessed_by'] == 'lab.tech'

    status = client.get('/api/donors/status/', {'donorId': donor.donor_id}).json()['data']
    assert status['eligibility']['reason'] == 'Low hemoglobin'


# ============================================================================
# Transfusions and blood requests
# ============================================================================


def transfusion_payload(recipient, unit, **overrides):
    payload = {
        'recipient_id': recipient.recipient_id,
        'unit_id': unit.unit_id,
        'hospital': 'Bir Hospital',
        'physician': 'Dr. Shrestha',
        'diagnosis': 'Anaemia',
    }
    payload.update(overrides)
    return payload


def test_transfusion_round_trip(client, make_recipient, make_unit) -> None:
    recipient = make_recipient()
    unit = make_unit()

    response = client.post('/api/recipients/transfusions/', transfusion_payload(recipient, unit), format='json')

    assert response.status_code == 201
    transfusion_id = response.json()['data']['transfusion_id']
    assert transfusion_id.startswith('TR')

    response = client.delete(f'/api/recipients/transfusions/{transfusion_id}/')

    assert response.status_code == 200
    assert response.json()['data']['unit_status'] == lifecycle.AVAILABLE
    assert not TransfusionRecord.objects.exists()


def test_transfusion_of_reserved_unit_is_a_conflict(client, make_recipient, make_unit) -> None:
    response = client.post(
        '/api/recipients/transfusions/',
        transfusion_payload(make_recipient(), make_unit(status=lifecycle.RESERVED)),
        format='json',
    )

    assert response.status_code == 409
    assert response.json()['code'] == 'UnitUnavailable'


def test_incompatible_transfusion_is_a_conflict(client, make_donor, make_recipient, make_unit) -> None:
    unit = make_unit(donor=make_donor(blood_type='AB+'))

    response = client.post(
        '/api/recipients/transfusions/',
        transfusion_payload(make_recipient(blood_type='O+'), unit),
        format='json',
    )

    assert response.status_code == 409
    assert response.json()['code'] == 'IncompatibleBloodType'


def test_blood_request_lifecycle(client, make_recipient) -> None:
    recipient = make_recipient()

    response = client.post('/api/recipients/blood-requests/', {
        'recipient_id': recipient.recipient_id,
        'blood_type': 'O+',
        'quantity': 2,
        'urgency': 'High',
        'hospital': 'Bir Hospital',
        'physician': 'Dr. Shrestha',
        'reason': 'Surgery',
    }, format='json')

    assert response.status_code == 201
    request_id = response.json()['data']['request_id']
    assert response.json()['data']['status'] == lifecycle.REQUEST_PENDING

    url = f'/api/recipients/blood-requests/{request_id}/status/'
    assert client.put(url, {'status': 'Fulfilled'}, format='json').status_code == 409
    assert client.put(url, {'status': 'Processing'}, format='json').status_code == 200
    response = client.put(url, {'status': 'Fulfilled'}, format='json')

    assert response.status_code == 200
    assert response.json()['data']['status'] == lifecycle.REQUEST_FULFILLED


def test_recipient_routes_do_not_shadow_each_other(client, make_recipient) -> None:
    recipient = make_recipient()

    assert client.get('/api/recipients/transfusions/').status_code == 200
    assert client.get('/api/recipients/blood-requests/').status_code == 200
    assert client.get(f'/api/recipients/{recipient.recipient_id}/').status_code == 200

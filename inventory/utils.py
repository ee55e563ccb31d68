import logging

from django.conf import settings
from django.db.models import Case, Count, IntegerField, Sum, When
from django.utils import timezone

from algorithms import lifecycle
from algorithms.blood_compatibility import BLOOD_TYPES, validate_blood_type
from algorithms.exceptions import (
    BloodBankError,
    InvalidTransition,
    NotFound,
    ProtectedRecord,
    ValidationError,
)
from algorithms.expiry import days_remaining, expiry_status, group_by_expiry
from algorithms.temporal import add_days, to_aware_datetime
from bloodbank.transactions import atomic_operation
from donors.models import DonationHistory, Donor
from inventory.models import BloodUnit, BloodUnitStatusChange

# Constants
DEFAULT_ACTOR = 'System'
INITIAL_STATUS_NOTE = 'Initial status after collection'
EXPIRY_SWEEP_NOTE = 'Expiration date passed'
RETURN_TO_INVENTORY_NOTE = 'Transfusion record deleted, blood unit returned to inventory'
DEFAULT_TRACKING_DAYS = 30
DEFAULT_EXPIRING_DAYS = 7
DEFAULT_CRITICAL_THRESHOLD = 10

# Logger setup
logger = logging.getLogger(__name__)


def get_shelf_life_days():
    return getattr(settings, 'BLOOD_UNIT_SHELF_LIFE_DAYS', lifecycle.DEFAULT_SHELF_LIFE_DAYS)


def get_blood_unit(unit_id, for_update=False):
    queryset = BloodUnit.objects.select_related('donor')
    if for_update:
        queryset = BloodUnit.objects.select_for_update()
    try:
        return queryset.get(unit_id=unit_id)
    except BloodUnit.DoesNotExist:
        raise NotFound(f"Blood unit {unit_id} not found") from None


def _validate_quantity(quantity):
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid quantity: {quantity!r}") from None
    if quantity < 1:
        raise ValidationError('Quantity must be at least 1 ml')
    return quantity


@atomic_operation
def create_blood_unit(*, unit_id, donor_id, blood_type, quantity,
                      collection_date=None, expiration_date=None,
                      status=lifecycle.QUARANTINED, facility='', storage_unit='',
                      shelf='', position='', process_method='Whole Blood',
                      created_by=DEFAULT_ACTOR, notes=''):
    """
    Register a freshly collected blood unit.

    In one transaction:
    - creates the unit with its initial status history entry
    - increments the donor's donation count and moves last_donation_date forward
    - appends the donation to the donor's history

    Raises:
        NotFound: donor does not exist
        ValidationError: bad quantity, blood type, dates, initial status or a
            duplicate unit_id
    """
    if not unit_id:
        raise ValidationError('unit_id is required')

    quantity = _validate_quantity(quantity)
    validate_blood_type(blood_type)

    if status not in lifecycle.INITIAL_STATUSES:
        raise ValidationError(f"A new blood unit cannot start as {status}")

    try:
        donor = Donor.objects.select_for_update().get(donor_id=donor_id)
    except Donor.DoesNotExist:
        raise NotFound(f"Donor {donor_id} not found") from None

    if donor.blood_type != blood_type:
        raise ValidationError(
            f"Unit blood type {blood_type} does not match donor blood type {donor.blood_type}"
        )

    if BloodUnit.all_objects.filter(unit_id=unit_id).exists():
        raise ValidationError(f"Blood unit {unit_id} already exists")

    collection_date = to_aware_datetime(collection_date or timezone.now())
    if expiration_date is None:
        expiration_date = lifecycle.compute_expiration_date(collection_date, get_shelf_life_days())
    else:
        expiration_date = to_aware_datetime(expiration_date)
        if expiration_date <= collection_date:
            raise ValidationError('Expiration date must be after the collection date')

    unit = BloodUnit.objects.create(
        unit_id=unit_id,
        donor=donor,
        blood_type=blood_type,
        collection_date=collection_date,
        expiration_date=expiration_date,
        quantity=quantity,
        status=status,
        facility=facility,
        storage_unit=storage_unit,
        shelf=shelf,
        position=position,
        process_method=process_method,
        notes=notes,
    )
    BloodUnitStatusChange.objects.create(
        blood_unit=unit,
        status=status,
        changed_at=timezone.now(),
        changed_by=created_by,
        notes=INITIAL_STATUS_NOTE,
    )

    # Backdated entries never move last_donation_date backwards
    donor.donation_count += 1
    if donor.last_donation_date is None or collection_date > donor.last_donation_date:
        donor.last_donation_date = collection_date
    donor.save(update_fields=['donation_count', 'last_donation_date', 'updated_at'])

    DonationHistory.objects.create(
        donor=donor,
        blood_unit=unit,
        date_donated=collection_date,
        blood_type=blood_type,
        quantity=quantity,
        location=facility,
        notes=notes,
    )

    logger.info(f"Blood unit {unit_id} registered for donor {donor_id} ({status})")
    return unit


def apply_transition(unit, new_status, changed_by=DEFAULT_ACTOR, notes=None, as_of=None):
    """
    Move a locked unit to new_status and append the history entry.
    Callers own the transaction and the row lock.
    """
    as_of = to_aware_datetime(as_of) if as_of else timezone.now()
    previous_status = unit.status
    lifecycle.check_unit_transition(previous_status, new_status)

    unit.status = new_status
    update_fields = ['status', 'updated_at']

    # A unit expired early carries the date it was taken out of stock
    if new_status == lifecycle.EXPIRED and unit.expiration_date > as_of:
        unit.expiration_date = as_of
        update_fields.append('expiration_date')

    unit.save(update_fields=update_fields)

    BloodUnitStatusChange.objects.create(
        blood_unit=unit,
        status=new_status,
        changed_at=as_of,
        changed_by=changed_by,
        notes=notes or lifecycle.default_transition_note(previous_status, new_status),
    )
    logger.info(f"Blood unit {unit.unit_id}: {previous_status} -> {new_status} by {changed_by}")
    return unit


def return_to_inventory(unit, changed_by=DEFAULT_ACTOR, notes=RETURN_TO_INVENTORY_NOTE):
    """
    Put a transfused unit back to Available when its transfusion record is
    withdrawn. This is the only way out of Transfused.
    """
    if unit.status != lifecycle.TRANSFUSED:
        raise InvalidTransition(unit.status, lifecycle.AVAILABLE)

    unit.status = lifecycle.AVAILABLE
    unit.save(update_fields=['status', 'updated_at'])
    BloodUnitStatusChange.objects.create(
        blood_unit=unit,
        status=lifecycle.AVAILABLE,
        changed_at=timezone.now(),
        changed_by=changed_by,
        notes=notes,
    )
    logger.info(f"Blood unit {unit.unit_id} returned to inventory by {changed_by}")
    return unit


@atomic_operation
def transition_blood_unit(unit_id, new_status, changed_by=DEFAULT_ACTOR, notes=None, as_of=None):
    """
    Change the status of one blood unit.

    Raises:
        NotFound: no such unit
        ImmutableRecord: transfused unit being discarded or re-quarantined
        InvalidTransition: target not reachable (same status included)
        ValidationError: unknown status
    """
    unit = get_blood_unit(unit_id, for_update=True)
    try:
        return apply_transition(unit, new_status, changed_by, notes, as_of)
    except BloodBankError as exc:
        logger.warning(f"Status change of {unit_id} to {new_status} rejected: {exc.message}")
        raise


def batch_transition_blood_units(unit_ids, new_status, changed_by=DEFAULT_ACTOR, notes=None, as_of=None):
    """
    Apply the same status change to several units.

    Every unit is handled in its own transaction, so one rejected unit does
    not roll back the others.

    Returns:
        dict: updated ids, not_found ids and rejected {unit_id, reason} pairs
    """
    if new_status not in lifecycle.UNIT_TRANSITIONS:
        raise ValidationError(f"Invalid status value: {new_status}")
    if not unit_ids:
        raise ValidationError('At least one unit id is required')

    as_of = to_aware_datetime(as_of) if as_of else timezone.now()
    result = {'updated': [], 'not_found': [], 'rejected': []}

    for unit_id in dict.fromkeys(unit_ids):
        try:
            transition_blood_unit(unit_id, new_status, changed_by, notes, as_of)
        except NotFound:
            result['not_found'].append(unit_id)
        except (InvalidTransition, ProtectedRecord, ValidationError) as exc:
            result['rejected'].append({'unit_id': unit_id, 'reason': exc.message})
        else:
            result['updated'].append(unit_id)

    logger.info(
        f"Batch status change to {new_status}: {len(result['updated'])} updated, "
        f"{len(result['not_found'])} not found, {len(result['rejected'])} rejected"
    )
    return result


@atomic_operation
def delete_blood_unit(unit_id, deleted_by=DEFAULT_ACTOR):
    """Soft delete a unit; transfused units are permanent records"""
    unit = get_blood_unit(unit_id, for_update=True)
    try:
        lifecycle.check_unit_deletable(unit.status)
    except ProtectedRecord as exc:
        logger.warning(f"Delete of blood unit {unit_id} rejected: {exc.message}")
        raise

    unit.is_deleted = True
    unit.deleted_at = timezone.now()
    unit.deleted_by = deleted_by
    unit.save(update_fields=['is_deleted', 'deleted_at', 'deleted_by', 'updated_at'])

    logger.info(f"Blood unit {unit_id} deleted by {deleted_by}")
    return unit


def unit_expiry(unit_id, as_of=None):
    """Expiry view of one unit"""
    as_of = to_aware_datetime(as_of) if as_of else timezone.now()
    unit = get_blood_unit(unit_id)
    return {
        'unit_id': unit.unit_id,
        'status': unit.status,
        'expiration_date': unit.expiration_date,
        'days_remaining': days_remaining(unit.expiration_date, as_of),
        'expiry_status': expiry_status(unit.expiration_date, as_of),
    }


def expiry_tracking(days=DEFAULT_TRACKING_DAYS, status=lifecycle.AVAILABLE, blood_type=None, as_of=None):
    """
    Units expiring within the next `days` days, grouped by expiry band.
    Already expired units in the selected status are included.
    """
    if days is None or days < 0:
        raise ValidationError('days must be zero or positive')

    as_of = to_aware_datetime(as_of) if as_of else timezone.now()
    units = BloodUnit.objects.filter(expiration_date__lte=add_days(as_of, days))
    if status:
        units = units.filter(status=status)
    if blood_type:
        units = units.filter(blood_type=validate_blood_type(blood_type))

    report = group_by_expiry(units.order_by('expiration_date'), as_of)
    report.update({'as_of': as_of, 'days': days})
    return report


def _count_status(status):
    return Sum(Case(When(status=status, then=1), default=0, output_field=IntegerField()))


def inventory_stats(as_of=None, expiring_days=DEFAULT_EXPIRING_DAYS, critical_threshold=DEFAULT_CRITICAL_THRESHOLD):
    """
    Inventory counts for the dashboard

    Args:
        as_of: reference instant, defaults to now
        expiring_days (int): window for Available units expiring soon
        critical_threshold (int): blood types with fewer Available units are critical

    Returns:
        dict: totals, per blood type (total/available/reserved/quarantined),
        per status, units expiring soon and critical blood types.
        Every blood type and status is listed, with zero counts where empty.
    """
    if expiring_days is None or expiring_days < 0:
        raise ValidationError('expiring_days must be zero or positive')

    as_of = to_aware_datetime(as_of) if as_of else timezone.now()
    units = BloodUnit.objects.order_by()

    per_type = {
        row['blood_type']: row
        for row in units.values('blood_type').annotate(
            total=Count('id'),
            available=_count_status(lifecycle.AVAILABLE),
            reserved=_count_status(lifecycle.RESERVED),
            quarantined=_count_status(lifecycle.QUARANTINED),
        )
    }
    per_status = dict(units.values_list('status').annotate(count=Count('id')))
    expiring = dict(
        units.available()
        .filter(expiration_date__gt=as_of, expiration_date__lte=add_days(as_of, expiring_days))
        .values_list('blood_type')
        .annotate(count=Count('id'))
    )

    by_blood_type = []
    for blood_type in BLOOD_TYPES:
        row = per_type.get(blood_type, {})
        by_blood_type.append({
            'blood_type': blood_type,
            'total': row.get('total', 0),
            'available': row.get('available') or 0,
            'reserved': row.get('reserved') or 0,
            'quarantined': row.get('quarantined') or 0,
        })

    critical_levels = sorted(
        (
            {'blood_type': row['blood_type'], 'available': row['available']}
            for row in by_blood_type
            if row['available'] < critical_threshold
        ),
        key=lambda row: row['available'],
    )

    return {
        'as_of': as_of,
        'total_units': sum(row['total'] for row in by_blood_type),
        'available_units': per_status.get(lifecycle.AVAILABLE, 0),
        'by_blood_type': by_blood_type,
        'by_status': {status: per_status.get(status, 0) for status in lifecycle.UNIT_STATUSES},
        'expiring_soon': {
            'days': expiring_days,
            'total': sum(expiring.values()),
            'by_blood_type': {blood_type: expiring.get(blood_type, 0) for blood_type in BLOOD_TYPES},
        },
        'critical_levels': critical_levels,
    }


def expire_lapsed_units(as_of=None, actor=None):
    """
    Mark Available units whose expiration date has passed as Expired.

    Returns:
        list: unit ids that were expired
    """
    as_of = to_aware_datetime(as_of) if as_of else timezone.now()
    actor = actor or getattr(settings, 'EXPIRY_SWEEP_ACTOR', DEFAULT_ACTOR)

    lapsed = list(
        BloodUnit.objects.available()
        .filter(expiration_date__lte=as_of)
        .values_list('unit_id', flat=True)
    )

    expired = []
    for unit_id in lapsed:
        try:
            transition_blood_unit(unit_id, lifecycle.EXPIRED, actor, EXPIRY_SWEEP_NOTE, as_of)
        except (InvalidTransition, NotFound):
            # Changed or removed since the query ran
            continue
        expired.append(unit_id)

    logger.info(f"Expiry sweep at {as_of:%Y-%m-%d %H:%M}: {len(expired)} of {len(lapsed)} units expired")
    return expired

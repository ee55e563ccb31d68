import logging

from django.conf import settings
from django.db.models import Max
from django.utils import timezone

from algorithms import lifecycle
from algorithms.blood_compatibility import check_compatible, validate_blood_type
from algorithms.exceptions import (
    IncompatibleBloodType,
    InvalidTransition,
    NotFound,
    UnitUnavailable,
    ValidationError,
)
from algorithms.temporal import to_aware_datetime
from bloodbank.transactions import atomic_operation
from inventory.utils import apply_transition, get_blood_unit, return_to_inventory
from recipients.models import BloodRequest, Recipient, TransfusionRecord

# Constants
DEFAULT_ACTOR = 'System'

# Fields a transfusion record may have corrected after the fact
CLINICAL_FIELDS = (
    'transfusion_date', 'hospital', 'physician', 'diagnosis',
    'reaction_occurred', 'reaction_severity', 'reaction_details', 'reaction_treatment',
    'outcome', 'notes',
)

# Logger setup
logger = logging.getLogger(__name__)


def get_recipient(recipient_id, for_update=False):
    queryset = Recipient.objects.select_for_update() if for_update else Recipient.objects.all()
    try:
        return queryset.get(recipient_id=recipient_id)
    except Recipient.DoesNotExist:
        raise NotFound(f"Recipient {recipient_id} not found") from None


def get_blood_request(request_id, for_update=False):
    queryset = BloodRequest.objects.select_for_update() if for_update else BloodRequest.objects.all()
    try:
        return queryset.get(request_id=request_id)
    except BloodRequest.DoesNotExist:
        raise NotFound(f"Blood request {request_id} not found") from None


def _get_transfusion_for_update(transfusion_id):
    try:
        return TransfusionRecord.objects.select_for_update().get(transfusion_id=transfusion_id)
    except TransfusionRecord.DoesNotExist:
        raise NotFound(f"Transfusion {transfusion_id} not found") from None


def _refresh_last_transfusion_date(recipient):
    latest = recipient.transfusions.aggregate(latest=Max('transfusion_date'))['latest']
    recipient.last_transfusion_date = latest
    return latest


def abo_enforced():
    return getattr(settings, 'ENFORCE_ABO_COMPATIBILITY', True)


# ---------------------------
# Transfusions
# ---------------------------
@atomic_operation
def create_transfusion(*, transfusion_id, recipient_id, unit_id, hospital, physician, diagnosis,
                       transfusion_date=None, blood_request_id=None, quantity=None,
                       reaction_occurred=False, reaction_severity='', reaction_details='',
                       reaction_treatment='', outcome='', notes='', performed_by=DEFAULT_ACTOR):
    """
    Transfuse an Available blood unit into a recipient.

    In one transaction:
    - moves the unit to Transfused with a history entry naming the recipient
    - creates the transfusion record (the unit's back-reference)
    - bumps the recipient's transfusion count and last transfusion date

    Raises:
        NotFound: recipient, unit or blood request missing
        UnitUnavailable: unit is not Available
        IncompatibleBloodType: recipient cannot receive the unit's blood type
        ValidationError: duplicate transfusion_id, a blood request that is
            closed or opened for another recipient, or bad input
    """
    if not transfusion_id:
        raise ValidationError('transfusion_id is required')

    recipient = get_recipient(recipient_id, for_update=True)
    unit = get_blood_unit(unit_id, for_update=True)
    blood_request = get_blood_request(blood_request_id) if blood_request_id else None

    if blood_request is not None:
        if blood_request.recipient_id != recipient.pk:
            raise ValidationError(
                f"Blood request {blood_request_id} belongs to another recipient, not {recipient_id}"
            )
        if blood_request.status not in lifecycle.OPEN_REQUEST_STATUSES:
            raise ValidationError(f"Blood request {blood_request_id} is {blood_request.status}")

    if unit.status != lifecycle.AVAILABLE:
        logger.warning(f"Transfusion of {unit_id} rejected: unit is {unit.status}")
        raise UnitUnavailable(f"Blood unit {unit_id} is {unit.status}, not Available")

    if abo_enforced():
        try:
            check_compatible(unit.blood_type, recipient.blood_type)
        except IncompatibleBloodType as exc:
            logger.warning(f"Transfusion of {unit_id} to {recipient_id} rejected: {exc.message}")
            raise

    if TransfusionRecord.objects.filter(transfusion_id=transfusion_id).exists():
        raise ValidationError(f"Transfusion {transfusion_id} already exists")

    transfusion_date = to_aware_datetime(transfusion_date) if transfusion_date else timezone.now()

    apply_transition(
        unit,
        lifecycle.TRANSFUSED,
        changed_by=performed_by,
        notes=f"Transfused to recipient {recipient_id}",
    )

    record = TransfusionRecord.objects.create(
        transfusion_id=transfusion_id,
        recipient=recipient,
        blood_unit=unit,
        blood_request=blood_request,
        transfusion_date=transfusion_date,
        hospital=hospital,
        physician=physician,
        blood_type=unit.blood_type,
        quantity=quantity or unit.quantity,
        diagnosis=diagnosis,
        reaction_occurred=reaction_occurred,
        reaction_severity=reaction_severity,
        reaction_details=reaction_details,
        reaction_treatment=reaction_treatment,
        outcome=outcome,
        notes=notes,
    )

    recipient.transfusion_count += 1
    if recipient.last_transfusion_date is None or transfusion_date > recipient.last_transfusion_date:
        recipient.last_transfusion_date = transfusion_date
    recipient.save(update_fields=['transfusion_count', 'last_transfusion_date', 'updated_at'])

    logger.info(f"Transfusion {transfusion_id}: unit {unit_id} to recipient {recipient_id}")
    return record


@atomic_operation
def delete_transfusion(transfusion_id, deleted_by=DEFAULT_ACTOR):
    """
    Withdraw a transfusion record: the unit goes back to Available and the
    recipient's counters are recomputed
    """
    record = _get_transfusion_for_update(transfusion_id)
    recipient = Recipient.objects.select_for_update().get(pk=record.recipient_id)
    unit = get_blood_unit(record.blood_unit.unit_id, for_update=True)

    return_to_inventory(unit, changed_by=deleted_by)
    record.delete()

    recipient.transfusion_count = max(0, recipient.transfusion_count - 1)
    _refresh_last_transfusion_date(recipient)
    recipient.save(update_fields=['transfusion_count', 'last_transfusion_date', 'updated_at'])

    logger.info(f"Transfusion {transfusion_id} deleted by {deleted_by}; unit {unit.unit_id} back in inventory")
    return unit


@atomic_operation
def update_transfusion(transfusion_id, **changes):
    """Correct the clinical details of a transfusion record"""
    unknown = set(changes) - set(CLINICAL_FIELDS)
    if unknown:
        raise ValidationError(f"Field(s) cannot be changed: {', '.join(sorted(unknown))}")

    record = _get_transfusion_for_update(transfusion_id)
    if 'transfusion_date' in changes:
        if not changes['transfusion_date']:
            raise ValidationError('transfusion_date cannot be empty')
        changes['transfusion_date'] = to_aware_datetime(changes['transfusion_date'])

    for field, value in changes.items():
        setattr(record, field, value)
    record.save()

    if 'transfusion_date' in changes:
        recipient = Recipient.objects.select_for_update().get(pk=record.recipient_id)
        _refresh_last_transfusion_date(recipient)
        recipient.save(update_fields=['last_transfusion_date', 'updated_at'])

    logger.info(f"Transfusion {transfusion_id} updated: {', '.join(sorted(changes))}")
    return record


# ---------------------------
# Blood requests
# ---------------------------
@atomic_operation
def create_blood_request(*, request_id, recipient_id, blood_type, quantity, hospital, physician,
                         reason, urgency='Medium', required_by=None, request_date=None, notes=''):
    if not request_id:
        raise ValidationError('request_id is required')
    validate_blood_type(blood_type)
    if urgency not in dict(BloodRequest.URGENCY_CHOICES):
        raise ValidationError(f"Invalid urgency: {urgency}")
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid quantity: {quantity!r}") from None
    if quantity < 1:
        raise ValidationError('At least one unit must be requested')

    recipient = get_recipient(recipient_id)

    if BloodRequest.objects.filter(request_id=request_id).exists():
        raise ValidationError(f"Blood request {request_id} already exists")

    blood_request = BloodRequest.objects.create(
        request_id=request_id,
        recipient=recipient,
        request_date=to_aware_datetime(request_date) if request_date else timezone.now(),
        blood_type=blood_type,
        quantity=quantity,
        urgency=urgency,
        status=lifecycle.REQUEST_PENDING,
        required_by=to_aware_datetime(required_by) if required_by else None,
        hospital=hospital,
        physician=physician,
        reason=reason,
        notes=notes,
    )

    logger.info(f"Blood request {request_id} created for recipient {recipient_id} ({blood_type} x{quantity})")
    return blood_request


@atomic_operation
def change_blood_request_status(request_id, new_status, changed_by=DEFAULT_ACTOR, notes=''):
    """
    Move a blood request along Pending -> Processing -> Fulfilled, or cancel it.
    Requests never change status on their own; required_by is informational.
    """
    blood_request = get_blood_request(request_id, for_update=True)
    previous_status = blood_request.status

    try:
        lifecycle.check_request_transition(previous_status, new_status)
    except (ValidationError, InvalidTransition) as exc:
        logger.warning(f"Blood request {request_id} status change rejected: {exc.message}")
        raise

    blood_request.status = new_status
    update_fields = ['status', 'updated_at']
    if notes:
        stamp = timezone.now().strftime('%Y-%m-%d %H:%M')
        entry = f"[{stamp}] {changed_by}: {notes}"
        blood_request.notes = f"{blood_request.notes}\n{entry}" if blood_request.notes else entry
        update_fields.append('notes')
    blood_request.save(update_fields=update_fields)

    logger.info(f"Blood request {request_id}: {previous_status} -> {new_status} by {changed_by}")
    return blood_request

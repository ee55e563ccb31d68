import logging

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.db.models import Count, Min, Sum
from django.utils import timezone

from algorithms.blood_compatibility import BLOOD_TYPES
from algorithms.eligibility import (
    MIN_DONATION_INTERVAL_DAYS,
    WHOLE_BLOOD,
    evaluate_eligibility,
    interval_for,
)
from algorithms.exceptions import InvalidTransition, NotFound, ProtectedRecord, ValidationError
from algorithms.temporal import DURATION_UNITS, add_duration, days_between, to_aware_datetime, to_date
from bloodbank.transactions import atomic_operation
from donors.models import DonationHistory, Donor, DonorDeferral, DonorHealthAssessment

# Logger setup
logger = logging.getLogger(__name__)


def get_donor(donor_id, for_update=False):
    queryset = Donor.objects.select_for_update() if for_update else Donor.objects.all()
    try:
        return queryset.get(donor_id=donor_id)
    except Donor.DoesNotExist:
        raise NotFound(f"Donor {donor_id} not found") from None


def get_active_deferral(donor):
    """Most recent Active deferral of a donor, or None"""
    return donor.deferrals.filter(status=DonorDeferral.STATUS_ACTIVE).order_by('-deferral_date', '-id').first()


def get_latest_health_assessment(donor):
    return donor.health_assessments.order_by('-assessed_at', '-id').first()


def get_min_interval_days(donation_type=WHOLE_BLOOD):
    if donation_type == WHOLE_BLOOD:
        return getattr(settings, 'MIN_DONATION_INTERVAL_DAYS', MIN_DONATION_INTERVAL_DAYS)
    return interval_for(donation_type, getattr(settings, 'DONATION_INTERVAL_DAYS', None))


def evaluate_donor(donor_or_id, as_of=None, donation_type=WHOLE_BLOOD):
    """
    Eligibility of a donor right now (or at as_of)

    Args:
        donor_or_id: Donor instance or donor_id
        as_of: evaluation instant, defaults to now
        donation_type: selects the minimum donation interval

    Returns:
        EligibilityResult
    """
    donor = donor_or_id if isinstance(donor_or_id, Donor) else get_donor(donor_or_id)
    as_of = to_aware_datetime(as_of) if as_of else timezone.now()

    return evaluate_eligibility(
        donor,
        get_active_deferral(donor),
        get_latest_health_assessment(donor),
        as_of,
        min_interval_days=get_min_interval_days(donation_type),
    )


def _deferral_summary(deferral):
    if deferral is None:
        return None
    return {
        'deferral_id': deferral.deferral_id,
        'deferral_type': deferral.deferral_type,
        'reason_category': deferral.reason_category,
        'specific_reason': deferral.specific_reason,
        'start_date': deferral.start_date,
        'end_date': deferral.end_date,
        'indefinite': deferral.indefinite,
        'deferred_by': deferral.deferred_by,
    }


def _health_summary(assessment):
    if assessment is None:
        return None
    return {
        'assessed_at': assessment.assessed_at,
        'is_eligible': assessment.is_eligible,
        'next_eligible_date': assessment.next_eligible_date,
        'permanently_deferred': assessment.permanently_deferred,
        'deferral_reason': assessment.deferral_reason,
        'hemoglobin': assessment.hemoglobin,
        'weight': assessment.weight,
        'systolic_pressure': assessment.systolic_pressure,
        'diastolic_pressure': assessment.diastolic_pressure,
        'pulse': assessment.pulse,
        'temperature': assessment.temperature,
    }


def donor_status_report(donor_id, as_of=None):
    """
    Full status view of a donor: summary, eligibility, latest health
    assessment, active deferral and donation metrics
    """
    donor = get_donor(donor_id)
    as_of = to_aware_datetime(as_of) if as_of else timezone.now()

    active_deferral = get_active_deferral(donor)
    latest_health = get_latest_health_assessment(donor)
    eligibility = evaluate_eligibility(
        donor, active_deferral, latest_health, as_of,
        min_interval_days=get_min_interval_days(),
    )

    totals = donor.donation_history.aggregate(total_volume=Sum('quantity'), first_donation=Min('date_donated'))
    days_since_last = None
    if donor.last_donation_date:
        days_since_last = days_between(donor.last_donation_date, as_of)

    return {
        'donor': {
            'donor_id': donor.donor_id,
            'name': donor.full_name,
            'blood_type': donor.blood_type,
            'status': donor.status,
            'registration_date': donor.registration_date,
        },
        'eligibility': eligibility.as_dict(),
        'health': _health_summary(latest_health),
        'active_deferral': _deferral_summary(active_deferral),
        'donations': {
            'donation_count': donor.donation_count,
            'last_donation_date': donor.last_donation_date,
            'days_since_last_donation': days_since_last,
            'first_donation_date': totals['first_donation'],
            'total_volume': totals['total_volume'] or 0,
        },
    }


def donor_stats(as_of=None):
    """Donor counts by status and blood type, plus recent donation activity"""
    as_of = to_aware_datetime(as_of) if as_of else timezone.now()
    donors = Donor.objects.order_by()
    month_start = timezone.localtime(as_of).replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    per_status = dict(donors.values_list('status').annotate(count=Count('id')))
    per_type = dict(donors.values_list('blood_type').annotate(count=Count('id')))

    return {
        'as_of': as_of,
        'total_donors': sum(per_status.values()),
        'by_status': {status: per_status.get(status, 0) for status, _ in Donor.STATUS_CHOICES},
        'by_blood_type': {blood_type: per_type.get(blood_type, 0) for blood_type in BLOOD_TYPES},
        # Donated within the last three months
        'recently_active_donors': donors.filter(
            last_donation_date__gt=as_of - relativedelta(months=3),
            last_donation_date__lte=as_of,
        ).count(),
        'total_donations': DonationHistory.objects.count(),
        'donations_this_month': DonationHistory.objects.filter(
            date_donated__gte=month_start,
            date_donated__lte=as_of,
        ).count(),
    }


# ---------------------------
# Deferrals
# ---------------------------
@atomic_operation
def defer_donor(donor_id, *, deferral_id, deferral_type, reason_category, specific_reason,
                deferred_by, start_date=None, end_date=None, duration=None, duration_unit=None,
                indefinite=False, reason_code='', reason_description='', notes=''):
    """
    Record a deferral and mark the donor Deferred.

    A temporary deferral needs an end date, a duration (amount + unit) or the
    indefinite flag. Permanent deferrals never carry an end date.
    """
    if deferral_type not in (DonorDeferral.TYPE_TEMPORARY, DonorDeferral.TYPE_PERMANENT):
        raise ValidationError(f"Invalid deferral type: {deferral_type}")
    if reason_category not in dict(DonorDeferral.CATEGORY_CHOICES):
        raise ValidationError(f"Invalid reason category: {reason_category}")
    if not specific_reason:
        raise ValidationError('A specific reason is required')
    if not deferral_id:
        raise ValidationError('deferral_id is required')

    start_date = to_date(start_date) if start_date else timezone.localdate()

    if deferral_type == DonorDeferral.TYPE_PERMANENT:
        end_date, indefinite = None, True
    elif end_date is not None:
        end_date = to_date(end_date)
    elif duration is not None:
        if duration_unit not in DURATION_UNITS:
            raise ValidationError(f"Duration unit must be one of {', '.join(DURATION_UNITS)}")
        end_date = add_duration(start_date, duration, duration_unit)
    elif not indefinite:
        raise ValidationError('Temporary deferrals need an end date, a duration or the indefinite flag')

    if end_date is not None and end_date < start_date:
        raise ValidationError('Deferral end date cannot be before its start date')

    donor = get_donor(donor_id, for_update=True)

    if DonorDeferral.objects.filter(deferral_id=deferral_id).exists():
        raise ValidationError(f"Deferral {deferral_id} already exists")

    deferral = DonorDeferral.objects.create(
        deferral_id=deferral_id,
        donor=donor,
        deferral_type=deferral_type,
        reason_category=reason_category,
        specific_reason=specific_reason,
        reason_code=reason_code,
        reason_description=reason_description,
        start_date=start_date,
        end_date=end_date,
        indefinite=indefinite,
        deferred_by=deferred_by,
        notes=notes,
    )

    if donor.status != Donor.STATUS_DEFERRED:
        donor.status = Donor.STATUS_DEFERRED
        donor.save(update_fields=['status', 'updated_at'])

    logger.info(f"Donor {donor_id} deferred ({deferral_type}): {specific_reason}")
    return deferral


def _get_deferral_for_update(deferral_id):
    try:
        return DonorDeferral.objects.select_for_update().select_related('donor').get(deferral_id=deferral_id)
    except DonorDeferral.DoesNotExist:
        raise NotFound(f"Deferral {deferral_id} not found") from None


def _release_donor(donor):
    """Put a Deferred donor back to Active once no Active deferral remains"""
    donor = Donor.objects.select_for_update().get(pk=donor.pk)
    if donor.status != Donor.STATUS_DEFERRED:
        return donor
    if donor.deferrals.filter(status=DonorDeferral.STATUS_ACTIVE).exists():
        return donor

    donor.status = Donor.STATUS_ACTIVE
    donor.save(update_fields=['status', 'updated_at'])
    logger.info(f"Donor {donor.donor_id} reinstated to Active")
    return donor


@atomic_operation
def reinstate_deferral(deferral_id, *, reinstated_by, reason=''):
    """End an Active (or under review) deferral early"""
    deferral = _get_deferral_for_update(deferral_id)
    if deferral.status not in (DonorDeferral.STATUS_ACTIVE, DonorDeferral.STATUS_UNDER_REVIEW):
        logger.warning(f"Reinstatement of {deferral_id} rejected: deferral is {deferral.status}")
        raise InvalidTransition(deferral.status, DonorDeferral.STATUS_REINSTATED)

    deferral.status = DonorDeferral.STATUS_REINSTATED
    deferral.reinstated_at = timezone.now()
    deferral.reinstated_by = reinstated_by
    deferral.reinstatement_reason = reason
    deferral.save(update_fields=[
        'status', 'reinstated_at', 'reinstated_by', 'reinstatement_reason', 'updated_at',
    ])

    _release_donor(deferral.donor)
    logger.info(f"Deferral {deferral_id} reinstated by {reinstated_by}")
    return deferral


@atomic_operation
def expire_deferral(deferral_id, *, as_of=None, expired_by='System'):
    """Close a temporary deferral whose end date has been reached"""
    deferral = _get_deferral_for_update(deferral_id)
    today = to_date(as_of) if as_of else timezone.localdate()

    if deferral.status != DonorDeferral.STATUS_ACTIVE:
        raise InvalidTransition(deferral.status, DonorDeferral.STATUS_EXPIRED)
    if deferral.deferral_type == DonorDeferral.TYPE_PERMANENT:
        raise InvalidTransition(
            deferral.status, DonorDeferral.STATUS_EXPIRED, 'Permanent deferrals do not expire'
        )
    if deferral.end_date is None or deferral.end_date > today:
        raise ValidationError(f"Deferral {deferral_id} has not reached its end date")

    deferral.status = DonorDeferral.STATUS_EXPIRED
    deferral.reviewed_at = timezone.now()
    deferral.reviewed_by = expired_by
    deferral.save(update_fields=['status', 'reviewed_at', 'reviewed_by', 'updated_at'])

    _release_donor(deferral.donor)
    logger.info(f"Deferral {deferral_id} expired")
    return deferral


# ---------------------------
# Health assessments
# ---------------------------
HEALTH_MEASUREMENTS = ('weight', 'hemoglobin', 'systolic_pressure', 'diastolic_pressure', 'pulse', 'temperature')


@atomic_operation
def record_health_assessment(donor_id, *, assessed_by='', is_eligible=True, deferral_reason='',
                             next_eligible_date=None, permanently_deferred=False,
                             assessed_at=None, notes='', **measurements):
    """Append a screening result; the latest one is what eligibility reads"""
    unknown = set(measurements) - set(HEALTH_MEASUREMENTS)
    if unknown:
        raise ValidationError(f"Unknown measurement(s): {', '.join(sorted(unknown))}")

    donor = get_donor(donor_id)
    if permanently_deferred:
        is_eligible = False

    assessment = DonorHealthAssessment.objects.create(
        donor=donor,
        assessed_at=to_aware_datetime(assessed_at) if assessed_at else timezone.now(),
        is_eligible=is_eligible,
        deferral_reason=deferral_reason,
        next_eligible_date=to_date(next_eligible_date) if next_eligible_date else None,
        permanently_deferred=permanently_deferred,
        assessed_by=assessed_by,
        notes=notes,
        **measurements,
    )

    verdict = 'eligible' if is_eligible else f"ineligible ({deferral_reason or 'no reason given'})"
    logger.info(f"Health assessment recorded for donor {donor_id}: {verdict}")
    return assessment


# ---------------------------
# Donor status
# ---------------------------
@atomic_operation
def retire_donor(donor_id):
    """Take a donor out of the pool without deleting history"""
    donor = get_donor(donor_id, for_update=True)
    donor.status = Donor.STATUS_INACTIVE
    donor.save(update_fields=['status', 'updated_at'])
    logger.info(f"Donor {donor_id} set Inactive")
    return donor


@atomic_operation
def reactivate_donor(donor_id):
    """Bring an Inactive donor back; stays Deferred while a deferral is Active"""
    donor = get_donor(donor_id, for_update=True)
    if donor.status != Donor.STATUS_INACTIVE:
        raise InvalidTransition(donor.status, Donor.STATUS_ACTIVE)

    donor.status = Donor.STATUS_DEFERRED if get_active_deferral(donor) else Donor.STATUS_ACTIVE
    donor.save(update_fields=['status', 'updated_at'])
    logger.info(f"Donor {donor_id} reactivated as {donor.status}")
    return donor


@atomic_operation
def delete_donor(donor_id):
    """Delete a donor with no collected units, donations or deferrals"""
    donor = get_donor(donor_id, for_update=True)

    from inventory.models import BloodUnit

    if (BloodUnit.all_objects.filter(donor=donor).exists()
            or donor.donation_history.exists()
            or donor.deferrals.exists()):
        logger.warning(f"Delete of donor {donor_id} rejected: donor has history")
        raise ProtectedRecord(
            f"Donor {donor_id} has blood units or deferrals on record; retire the donor instead"
        )

    donor.delete()
    logger.info(f"Donor {donor_id} deleted")

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from algorithms.temporal import add_days, days_between

# Constants
WHOLE_BLOOD = 'Whole Blood'
MIN_DONATION_INTERVAL_DAYS = 56  # 8 weeks, whole blood

# Minimum days between donations per donation type.
# Only whole blood is enforced by the engine today; the other entries are
# used when a caller passes min_interval_days for that donation type.
DONATION_INTERVAL_DAYS = {
    WHOLE_BLOOD: MIN_DONATION_INTERVAL_DAYS,
    'Plasma': 28,
    'Platelets': 7,
    'RBC': 112,
}

DONOR_ACTIVE = 'Active'
DEFERRAL_PERMANENT = 'Permanent'

REASON_PERMANENT = 'Permanently deferred'
REASON_INTERVAL = 'Minimum interval between donations not met'
REASON_HEALTH_FALLBACK = 'Health parameters not within acceptable range'

# Logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EligibilityResult:
    is_eligible: bool
    reason: Optional[str] = None
    next_eligible_date: Optional[date] = None

    def as_dict(self):
        return {
            'is_eligible': self.is_eligible,
            'reason': self.reason,
            'next_eligible_date': self.next_eligible_date,
        }


def interval_for(donation_type, overrides=None):
    """Minimum interval in days for a donation type (whole blood if unknown)"""
    intervals = dict(DONATION_INTERVAL_DAYS)
    if overrides:
        intervals.update(overrides)
    return intervals.get(donation_type, intervals[WHOLE_BLOOD])


def evaluate_eligibility(donor, active_deferral, latest_health, as_of,
                         min_interval_days: int = MIN_DONATION_INTERVAL_DAYS) -> EligibilityResult:
    """
    Decide whether a donor may donate right now.

    Checks run in a fixed order and the first failing check wins:
    - Active deferral (permanent or temporary)
    - Donor status is Active
    - Minimum interval since the last donation
    - Latest health assessment verdict

    Args:
        donor: object with status and last_donation_date
        active_deferral: most recent Active deferral or None; needs
            deferral_type, specific_reason and end_date
        latest_health: most recent health assessment or None; needs
            is_eligible, deferral_reason and next_eligible_date
        as_of (date | datetime): evaluation instant
        min_interval_days (int): minimum days between donations

    Returns:
        EligibilityResult
    """
    if active_deferral is not None:
        if active_deferral.deferral_type == DEFERRAL_PERMANENT:
            return EligibilityResult(False, REASON_PERMANENT, None)
        return EligibilityResult(
            False,
            f"Deferred: {active_deferral.specific_reason}",
            active_deferral.end_date,
        )

    if donor.status != DONOR_ACTIVE:
        return EligibilityResult(False, f"Donor status: {donor.status}", None)

    if donor.last_donation_date:
        days_since_last = days_between(donor.last_donation_date, as_of)
        if days_since_last < min_interval_days:
            return EligibilityResult(
                False,
                REASON_INTERVAL,
                add_days(donor.last_donation_date, min_interval_days),
            )

    if latest_health is not None and not latest_health.is_eligible:
        return EligibilityResult(
            False,
            latest_health.deferral_reason or REASON_HEALTH_FALLBACK,
            latest_health.next_eligible_date,
        )

    return EligibilityResult(True, None, None)

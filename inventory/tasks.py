# inventory/tasks.py
"""
Celery tasks for blood unit housekeeping
"""
from celery import shared_task

from inventory.utils import expire_lapsed_units as sweep_lapsed_units


@shared_task(name='inventory.tasks.expire_lapsed_units')
def expire_lapsed_units():
    """
    Mark Available units past their expiration date as Expired
    Scheduled daily through CELERY_BEAT_SCHEDULE
    """
    expired = sweep_lapsed_units()
    return f"Expired {len(expired)} blood unit(s)"

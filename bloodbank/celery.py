# bloodbank/celery.py
"""
Celery app for the blood bank.
Runs the nightly sweep that marks Available units past their expiration date
as Expired (inventory.tasks.expire_lapsed_units, scheduled by
CELERY_BEAT_SCHEDULE in bloodbank.settings).
"""
import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'bloodbank.settings')

app = Celery('bloodbank')

# Broker, timezone and beat schedule come from the CELERY_* settings
app.config_from_object('django.conf:settings', namespace='CELERY')

# Picks up inventory.tasks
app.autodiscover_tasks()

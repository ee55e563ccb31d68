# inventory/models.py
from django.core.exceptions import ObjectDoesNotExist
from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone

from algorithms import lifecycle
from algorithms.expiry import days_remaining, expiry_status
from donors.models import BLOOD_TYPE_CHOICES


class BloodUnitQuerySet(models.QuerySet):
    def available(self):
        return self.filter(status=lifecycle.AVAILABLE)

    def expiring_between(self, start, end):
        return self.filter(expiration_date__gte=start, expiration_date__lte=end)


class BloodUnitManager(models.Manager.from_queryset(BloodUnitQuerySet)):
    """Hides soft-deleted units"""

    def get_queryset(self):
        return super().get_queryset().filter(is_deleted=False)


class BloodUnit(models.Model):
    STATUS_CHOICES = [(status, status) for status in lifecycle.UNIT_STATUSES]

    PROCESS_METHOD_CHOICES = [
        ('Whole Blood', 'Whole Blood'),
        ('Plasma', 'Plasma'),
        ('Platelets', 'Platelets'),
        ('RBC', 'RBC'),
        ('Cryoprecipitate', 'Cryoprecipitate'),
    ]

    unit_id = models.CharField(max_length=30, unique=True)
    donor = models.ForeignKey('donors.Donor', on_delete=models.PROTECT, related_name='blood_units')
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES)

    collection_date = models.DateTimeField(default=timezone.now)
    expiration_date = models.DateTimeField()
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)], help_text="Volume in ml")

    # Only changed through inventory.utils so every change lands in status history
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=lifecycle.QUARANTINED)

    # Storage location
    facility = models.CharField(max_length=200, blank=True)
    storage_unit = models.CharField(max_length=100, blank=True)
    shelf = models.CharField(max_length=50, blank=True)
    position = models.CharField(max_length=50, blank=True)

    process_method = models.CharField(max_length=20, choices=PROCESS_METHOD_CHOICES, default='Whole Blood')
    notes = models.TextField(blank=True)

    # Soft delete
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.CharField(max_length=150, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BloodUnitManager()
    all_objects = models.Manager()

    def __str__(self):
        return f"{self.unit_id} - {self.blood_type} ({self.status})"

    def days_remaining(self, as_of=None):
        return days_remaining(self.expiration_date, as_of or timezone.now())

    def expiry_status(self, as_of=None):
        return expiry_status(self.expiration_date, as_of or timezone.now())

    @property
    def transfusion_reference(self):
        """Recipient, date, hospital and physician of the transfusion that consumed this unit"""
        try:
            record = self.transfusion
        except ObjectDoesNotExist:
            return None
        return {
            'transfusion_id': record.transfusion_id,
            'recipient_id': record.recipient.recipient_id,
            'transfusion_date': record.transfusion_date,
            'hospital': record.hospital,
            'physician': record.physician,
            'notes': record.notes,
        }

    class Meta:
        ordering = ['-collection_date']
        base_manager_name = 'all_objects'
        indexes = [
            models.Index(fields=['blood_type', 'status']),
            models.Index(fields=['expiration_date']),
            models.Index(fields=['facility', 'storage_unit']),
        ]


class BloodUnitStatusChange(models.Model):
    """Append-only status history of a blood unit"""
    blood_unit = models.ForeignKey(BloodUnit, on_delete=models.CASCADE, related_name='status_history')
    status = models.CharField(max_length=12, choices=BloodUnit.STATUS_CHOICES)
    changed_at = models.DateTimeField(default=timezone.now)
    changed_by = models.CharField(max_length=150, default='System')
    notes = models.TextField(blank=True)

    def __str__(self):
        return f"{self.blood_unit.unit_id} → {self.status} by {self.changed_by}"

    class Meta:
        ordering = ['changed_at', 'id']
        verbose_name = 'Status Change'
        verbose_name_plural = 'Status History'

from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone

from algorithms.blood_compatibility import BLOOD_TYPES


BLOOD_TYPE_CHOICES = [(blood_type, blood_type) for blood_type in BLOOD_TYPES]

GENDER_CHOICES = [
    ('Male', 'Male'),
    ('Female', 'Female'),
    ('Other', 'Other'),
]


# ---------------------------
# Donor
# ---------------------------
class Donor(models.Model):
    STATUS_ACTIVE = 'Active'
    STATUS_INACTIVE = 'Inactive'
    STATUS_DEFERRED = 'Deferred'

    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_DEFERRED, 'Deferred'),
        (STATUS_INACTIVE, 'Inactive'),
    ]

    donor_id = models.CharField(max_length=20, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    date_of_birth = models.DateField()
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES, db_index=True)
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=20, db_index=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    registration_date = models.DateTimeField(default=timezone.now)

    # Donation tracking, maintained by inventory.utils.create_blood_unit
    donation_count = models.PositiveIntegerField(default=0)
    last_donation_date = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __str__(self):
        return f"{self.full_name} ({self.blood_type})"

    class Meta:
        verbose_name = "Donor"
        verbose_name_plural = "Donors"
        ordering = ['last_name', 'first_name']
        indexes = [
            models.Index(fields=['last_name', 'first_name']),
        ]


class DonationHistory(models.Model):
    donor = models.ForeignKey(
        Donor,
        on_delete=models.PROTECT,
        related_name='donation_history'
    )
    blood_unit = models.OneToOneField(
        'inventory.BloodUnit',
        on_delete=models.PROTECT,
        related_name='donation_entry'
    )

    date_donated = models.DateTimeField()
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES)
    quantity = models.PositiveIntegerField(help_text="Volume in ml")
    location = models.CharField(max_length=200, blank=True)
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.donor.full_name} | {self.date_donated:%Y-%m-%d}"

    class Meta:
        ordering = ['-date_donated']
        verbose_name = "Donation History"
        verbose_name_plural = "Donation Histories"


# ---------------------------
# Deferrals
# ---------------------------
class DonorDeferral(models.Model):
    TYPE_TEMPORARY = 'Temporary'
    TYPE_PERMANENT = 'Permanent'

    TYPE_CHOICES = [
        (TYPE_TEMPORARY, 'Temporary'),
        (TYPE_PERMANENT, 'Permanent'),
    ]

    CATEGORY_CHOICES = [
        ('Medical', 'Medical'),
        ('Travel', 'Travel'),
        ('Medication', 'Medication'),
        ('Behavior', 'Behavior'),
        ('Exposure', 'Exposure'),
        ('Administrative', 'Administrative'),
        ('Self', 'Self'),
        ('Other', 'Other'),
    ]

    STATUS_ACTIVE = 'Active'
    STATUS_EXPIRED = 'Expired'
    STATUS_REINSTATED = 'Reinstated'
    STATUS_UNDER_REVIEW = 'Under Review'

    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_EXPIRED, 'Expired'),
        (STATUS_REINSTATED, 'Reinstated'),
        (STATUS_UNDER_REVIEW, 'Under Review'),
    ]

    deferral_id = models.CharField(max_length=20, unique=True)
    donor = models.ForeignKey(Donor, on_delete=models.PROTECT, related_name='deferrals')
    deferral_date = models.DateTimeField(default=timezone.now)
    deferral_type = models.CharField(max_length=10, choices=TYPE_CHOICES)

    # Reason taxonomy
    reason_category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    specific_reason = models.CharField(max_length=255)
    reason_code = models.CharField(max_length=50, blank=True)
    reason_description = models.TextField(blank=True)

    # Period
    start_date = models.DateField(default=timezone.localdate)
    end_date = models.DateField(null=True, blank=True)
    indefinite = models.BooleanField(default=False)

    deferred_by = models.CharField(max_length=150)
    status = models.CharField(max_length=15, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)

    # Review / reinstatement
    reviewed_at = models.DateTimeField(null=True, blank=True)
    reviewed_by = models.CharField(max_length=150, blank=True)
    review_notes = models.TextField(blank=True)
    reinstated_at = models.DateTimeField(null=True, blank=True)
    reinstated_by = models.CharField(max_length=150, blank=True)
    reinstatement_reason = models.TextField(blank=True)

    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.deferral_id} → {self.donor.full_name} ({self.deferral_type}, {self.status})"

    class Meta:
        ordering = ['-deferral_date']
        indexes = [
            models.Index(fields=['donor', 'status']),
            models.Index(fields=['end_date']),
        ]


# ---------------------------
# Health assessments
# ---------------------------
class DonorHealthAssessment(models.Model):
    """One screening of a donor; rows are appended, never edited"""
    donor = models.ForeignKey(Donor, on_delete=models.CASCADE, related_name='health_assessments')
    assessed_at = models.DateTimeField(default=timezone.now)

    # Screening measurements (optional)
    weight = models.FloatField(null=True, blank=True, help_text="kg")
    hemoglobin = models.FloatField(null=True, blank=True, validators=[MinValueValidator(0)], help_text="g/dL")
    systolic_pressure = models.PositiveIntegerField(null=True, blank=True)
    diastolic_pressure = models.PositiveIntegerField(null=True, blank=True)
    pulse = models.PositiveIntegerField(null=True, blank=True, help_text="bpm")
    temperature = models.FloatField(null=True, blank=True, help_text="°C")

    # Eligibility verdict
    is_eligible = models.BooleanField(default=True)
    next_eligible_date = models.DateField(null=True, blank=True)
    permanently_deferred = models.BooleanField(default=False)
    deferral_reason = models.CharField(max_length=255, blank=True)

    assessed_by = models.CharField(max_length=150, blank=True)
    notes = models.TextField(blank=True)

    def __str__(self):
        verdict = 'eligible' if self.is_eligible else 'ineligible'
        return f"{self.donor.full_name} | {self.assessed_at:%Y-%m-%d} | {verdict}"

    class Meta:
        ordering = ['-assessed_at']
        indexes = [
            models.Index(fields=['donor', '-assessed_at']),
        ]

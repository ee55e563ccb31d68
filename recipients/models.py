# recipients/models.py
from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone

from algorithms import lifecycle
from donors.models import BLOOD_TYPE_CHOICES, GENDER_CHOICES


class Recipient(models.Model):
    recipient_id = models.CharField(max_length=20, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    date_of_birth = models.DateField()
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES)
    phone = models.CharField(max_length=20)
    email = models.EmailField(blank=True)

    # Maintained by recipients.utils on transfusion create/delete
    transfusion_count = models.PositiveIntegerField(default=0)
    last_transfusion_date = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __str__(self):
        return f"{self.full_name} ({self.blood_type})"

    class Meta:
        ordering = ['last_name', 'first_name']


class BloodRequest(models.Model):
    URGENCY_CHOICES = [
        ('Low', 'Low'),
        ('Medium', 'Medium'),
        ('High', 'High'),
        ('Critical', 'Critical'),
    ]

    STATUS_CHOICES = [(status, status) for status in lifecycle.REQUEST_STATUSES]

    request_id = models.CharField(max_length=20, unique=True)
    recipient = models.ForeignKey(Recipient, on_delete=models.CASCADE, related_name='blood_requests')
    request_date = models.DateTimeField(default=timezone.now)
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)], help_text="Units requested")
    urgency = models.CharField(max_length=10, choices=URGENCY_CHOICES, default='Medium')
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=lifecycle.REQUEST_PENDING, db_index=True)
    required_by = models.DateTimeField(null=True, blank=True)

    hospital = models.CharField(max_length=200)
    physician = models.CharField(max_length=150)
    reason = models.TextField()
    notes = models.TextField(blank=True)

    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.request_id} - {self.blood_type} x{self.quantity} ({self.status})"

    class Meta:
        ordering = ['-request_date']
        verbose_name = 'Blood Request'
        verbose_name_plural = 'Blood Requests'


class TransfusionRecord(models.Model):
    SEVERITY_CHOICES = [
        ('Mild', 'Mild'),
        ('Moderate', 'Moderate'),
        ('Severe', 'Severe'),
        ('Life-threatening', 'Life-threatening'),
    ]

    OUTCOME_CHOICES = [
        ('Successful', 'Successful'),
        ('Partially Successful', 'Partially Successful'),
        ('Unsuccessful', 'Unsuccessful'),
        ('Complications', 'Complications'),
    ]

    transfusion_id = models.CharField(max_length=20, unique=True)
    recipient = models.ForeignKey(Recipient, on_delete=models.PROTECT, related_name='transfusions')
    # One-to-one: a unit can be consumed by a single transfusion
    blood_unit = models.OneToOneField('inventory.BloodUnit', on_delete=models.PROTECT, related_name='transfusion')
    blood_request = models.ForeignKey(
        BloodRequest,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transfusions'
    )

    transfusion_date = models.DateTimeField()
    hospital = models.CharField(max_length=200)
    physician = models.CharField(max_length=150)
    blood_type = models.CharField(max_length=3, choices=BLOOD_TYPE_CHOICES)
    quantity = models.PositiveIntegerField(help_text="Volume in ml")
    diagnosis = models.TextField()

    # Adverse reactions
    reaction_occurred = models.BooleanField(default=False)
    reaction_severity = models.CharField(max_length=20, choices=SEVERITY_CHOICES, blank=True)
    reaction_details = models.TextField(blank=True)
    reaction_treatment = models.TextField(blank=True)

    outcome = models.CharField(max_length=25, choices=OUTCOME_CHOICES, blank=True)
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.transfusion_id} → {self.recipient.full_name} ({self.blood_unit.unit_id})"

    class Meta:
        ordering = ['-transfusion_date']

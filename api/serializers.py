# api/serializers.py
"""
Read serializers for the blood bank models and command serializers for
the write endpoints. Command serializers only check the shape of the
payload; the rules live in the app services.
"""
from django.utils import timezone
from rest_framework import serializers

from algorithms import lifecycle
from algorithms.blood_compatibility import BLOOD_TYPES
from algorithms.temporal import DURATION_UNITS
from donors.models import Donor, DonorDeferral, DonorHealthAssessment
from inventory.models import BloodUnit, BloodUnitStatusChange
from recipients.models import BloodRequest, Recipient, TransfusionRecord


# ---------------------------
# Read serializers
# ---------------------------
class DonorSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Donor
        fields = [
            'donor_id',
            'first_name',
            'last_name',
            'full_name',
            'gender',
            'date_of_birth',
            'blood_type',
            'email',
            'phone',
            'status',
            'registration_date',
            'donation_count',
            'last_donation_date',
        ]


class BloodUnitStatusChangeSerializer(serializers.ModelSerializer):
    class Meta:
        model = BloodUnitStatusChange
        fields = ['status', 'changed_at', 'changed_by', 'notes']


class BloodUnitSerializer(serializers.ModelSerializer):
    donor_id = serializers.CharField(source='donor.donor_id', read_only=True)
    days_remaining = serializers.SerializerMethodField()
    expiry_status = serializers.SerializerMethodField()
    transfusion_reference = serializers.ReadOnlyField()
    status_history = BloodUnitStatusChangeSerializer(many=True, read_only=True)

    class Meta:
        model = BloodUnit
        fields = [
            'unit_id',
            'donor_id',
            'blood_type',
            'collection_date',
            'expiration_date',
            'quantity',
            'status',
            'facility',
            'storage_unit',
            'shelf',
            'position',
            'process_method',
            'notes',
            'days_remaining',
            'expiry_status',
            'transfusion_reference',
            'status_history',
        ]

    def get_days_remaining(self, obj):
        return obj.days_remaining(self.context.get('as_of'))

    def get_expiry_status(self, obj):
        return obj.expiry_status(self.context.get('as_of'))


class DonorDeferralSerializer(serializers.ModelSerializer):
    donor_id = serializers.CharField(source='donor.donor_id', read_only=True)

    class Meta:
        model = DonorDeferral
        fields = [
            'deferral_id',
            'donor_id',
            'deferral_date',
            'deferral_type',
            'reason_category',
            'specific_reason',
            'reason_code',
            'reason_description',
            'start_date',
            'end_date',
            'indefinite',
            'deferred_by',
            'status',
            'reinstated_at',
            'reinstated_by',
            'reinstatement_reason',
            'notes',
        ]


class DonorHealthAssessmentSerializer(serializers.ModelSerializer):
    donor_id = serializers.CharField(source='donor.donor_id', read_only=True)

    class Meta:
        model = DonorHealthAssessment
        fields = [
            'id',
            'donor_id',
            'assessed_at',
            'weight',
            'hemoglobin',
            'systolic_pressure',
            'diastolic_pressure',
            'pulse',
            'temperature',
            'is_eligible',
            'next_eligible_date',
            'permanently_deferred',
            'deferral_reason',
            'assessed_by',
            'notes',
        ]


class RecipientSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Recipient
        fields = [
            'recipient_id',
            'first_name',
            'last_name',
            'full_name',
            'gender',
            'date_of_birth',
            'blood_type',
            'phone',
            'email',
            'transfusion_count',
            'last_transfusion_date',
        ]
        read_only_fields = ['transfusion_count', 'last_transfusion_date']


class BloodRequestSerializer(serializers.ModelSerializer):
    recipient_id = serializers.CharField(source='recipient.recipient_id', read_only=True)

    class Meta:
        model = BloodRequest
        fields = [
            'request_id',
            'recipient_id',
            'request_date',
            'blood_type',
            'quantity',
            'urgency',
            'status',
            'required_by',
            'hospital',
            'physician',
            'reason',
            'notes',
        ]


class TransfusionRecordSerializer(serializers.ModelSerializer):
    recipient_id = serializers.CharField(source='recipient.recipient_id', read_only=True)
    unit_id = serializers.CharField(source='blood_unit.unit_id', read_only=True)
    request_id = serializers.CharField(source='blood_request.request_id', read_only=True, default=None)

    class Meta:
        model = TransfusionRecord
        fields = [
            'transfusion_id',
            'recipient_id',
            'unit_id',
            'request_id',
            'transfusion_date',
            'hospital',
            'physician',
            'blood_type',
            'quantity',
            'diagnosis',
            'reaction_occurred',
            'reaction_severity',
            'reaction_details',
            'reaction_treatment',
            'outcome',
            'notes',
        ]


# ---------------------------
# Command serializers
# ---------------------------
class BloodUnitCreateSerializer(serializers.Serializer):
    unit_id = serializers.CharField(max_length=30, required=False, allow_blank=True)
    donor_id = serializers.CharField(max_length=20)
    blood_type = serializers.ChoiceField(choices=BLOOD_TYPES)
    quantity = serializers.IntegerField()
    collection_date = serializers.DateTimeField(required=False)
    expiration_date = serializers.DateTimeField(required=False)
    status = serializers.ChoiceField(choices=lifecycle.UNIT_STATUSES, default=lifecycle.QUARANTINED)
    facility = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    storage_unit = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    shelf = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    position = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    process_method = serializers.ChoiceField(choices=BloodUnit.PROCESS_METHOD_CHOICES, default='Whole Blood')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class StatusChangeSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=12)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class BatchStatusChangeSerializer(StatusChangeSerializer):
    unit_ids = serializers.ListField(child=serializers.CharField(max_length=30), allow_empty=False)


class DeferralCreateSerializer(serializers.Serializer):
    deferral_id = serializers.CharField(max_length=20, required=False, allow_blank=True)
    deferral_type = serializers.ChoiceField(choices=DonorDeferral.TYPE_CHOICES)
    reason_category = serializers.ChoiceField(choices=DonorDeferral.CATEGORY_CHOICES)
    specific_reason = serializers.CharField(max_length=255)
    reason_code = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    reason_description = serializers.CharField(required=False, allow_blank=True, default='')
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False, allow_null=True)
    duration = serializers.IntegerField(required=False, min_value=0)
    duration_unit = serializers.ChoiceField(choices=DURATION_UNITS, required=False)
    indefinite = serializers.BooleanField(default=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if 'duration' in attrs and 'duration_unit' not in attrs:
            raise serializers.ValidationError({'duration_unit': 'Required when duration is given.'})
        return attrs


class ReinstateSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class HealthAssessmentCreateSerializer(serializers.Serializer):
    assessed_at = serializers.DateTimeField(required=False)
    weight = serializers.FloatField(required=False, min_value=0)
    hemoglobin = serializers.FloatField(required=False, min_value=0)
    systolic_pressure = serializers.IntegerField(required=False, min_value=0)
    diastolic_pressure = serializers.IntegerField(required=False, min_value=0)
    pulse = serializers.IntegerField(required=False, min_value=0)
    temperature = serializers.FloatField(required=False)
    is_eligible = serializers.BooleanField(default=True)
    next_eligible_date = serializers.DateField(required=False, allow_null=True)
    permanently_deferred = serializers.BooleanField(default=False)
    deferral_reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class TransfusionCreateSerializer(serializers.Serializer):
    transfusion_id = serializers.CharField(max_length=20, required=False, allow_blank=True)
    recipient_id = serializers.CharField(max_length=20)
    unit_id = serializers.CharField(max_length=30)
    blood_request_id = serializers.CharField(max_length=20, required=False, allow_blank=True)
    transfusion_date = serializers.DateTimeField(required=False)
    hospital = serializers.CharField(max_length=200)
    physician = serializers.CharField(max_length=150)
    diagnosis = serializers.CharField()
    quantity = serializers.IntegerField(required=False, min_value=1)
    reaction_occurred = serializers.BooleanField(default=False)
    reaction_severity = serializers.ChoiceField(
        choices=TransfusionRecord.SEVERITY_CHOICES, required=False, allow_blank=True, default=''
    )
    reaction_details = serializers.CharField(required=False, allow_blank=True, default='')
    reaction_treatment = serializers.CharField(required=False, allow_blank=True, default='')
    outcome = serializers.ChoiceField(
        choices=TransfusionRecord.OUTCOME_CHOICES, required=False, allow_blank=True, default=''
    )
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class TransfusionUpdateSerializer(serializers.Serializer):
    transfusion_date = serializers.DateTimeField(required=False)
    hospital = serializers.CharField(max_length=200, required=False)
    physician = serializers.CharField(max_length=150, required=False)
    diagnosis = serializers.CharField(required=False)
    reaction_occurred = serializers.BooleanField(required=False)
    reaction_severity = serializers.ChoiceField(
        choices=TransfusionRecord.SEVERITY_CHOICES, required=False, allow_blank=True
    )
    reaction_details = serializers.CharField(required=False, allow_blank=True)
    reaction_treatment = serializers.CharField(required=False, allow_blank=True)
    outcome = serializers.ChoiceField(choices=TransfusionRecord.OUTCOME_CHOICES, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class BloodRequestCreateSerializer(serializers.Serializer):
    request_id = serializers.CharField(max_length=20, required=False, allow_blank=True)
    recipient_id = serializers.CharField(max_length=20)
    blood_type = serializers.ChoiceField(choices=BLOOD_TYPES)
    quantity = serializers.IntegerField()
    urgency = serializers.ChoiceField(choices=BloodRequest.URGENCY_CHOICES, default='Medium')
    required_by = serializers.DateTimeField(required=False, allow_null=True)
    hospital = serializers.CharField(max_length=200)
    physician = serializers.CharField(max_length=150)
    reason = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_required_by(self, value):
        if value is not None and value < timezone.now():
            raise serializers.ValidationError('Required-by date is in the past.')
        return value

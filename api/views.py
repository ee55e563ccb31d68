# api/views.py
"""
HTTP adapter over the blood bank services.
Views translate requests into service calls; domain errors are rendered
by api.exceptions.domain_exception_handler.
"""
import logging

from django.utils import timezone
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action, api_view
from rest_framework.response import Response

from algorithms import identifiers, lifecycle
from algorithms.exceptions import ValidationError
from api.serializers import (
    BatchStatusChangeSerializer,
    BloodRequestCreateSerializer,
    BloodRequestSerializer,
    BloodUnitCreateSerializer,
    BloodUnitSerializer,
    DeferralCreateSerializer,
    DonorDeferralSerializer,
    DonorHealthAssessmentSerializer,
    DonorSerializer,
    HealthAssessmentCreateSerializer,
    ReinstateSerializer,
    RecipientSerializer,
    StatusChangeSerializer,
    TransfusionCreateSerializer,
    TransfusionRecordSerializer,
    TransfusionUpdateSerializer,
)
from donors import utils as donor_services
from donors.models import Donor, DonorDeferral
from inventory import utils as inventory_services
from inventory.models import BloodUnit
from recipients import utils as recipient_services
from recipients.models import BloodRequest, Recipient, TransfusionRecord

logger = logging.getLogger(__name__)


def actor_for(request):
    """Name recorded in history entries for the calling user"""
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return user.get_username()
    return 'System'


def issue_identifier(prefix, queryset, field):
    """Next free prefix+YYMMDD+NNN identifier for today"""
    stem = f"{prefix}{timezone.localdate().strftime('%y%m%d')}"
    existing = queryset.filter(**{f"{field}__startswith": stem}).values_list(field, flat=True)
    return identifiers.next_identifier(prefix, existing)


def create_with_identifier(service, params, field, prefix, queryset, **extra):
    """
    Call a create service, issuing params[field] when the client left it out.
    An issued identifier taken by a concurrent create is re-issued once.
    """
    if params.get(field):
        return service(**params, **extra)

    for attempt in range(2):
        params[field] = issue_identifier(prefix, queryset, field)
        try:
            return service(**params, **extra)
        except ValidationError:
            if attempt or not queryset.filter(**{field: params[field]}).exists():
                raise
            logger.warning(f"Identifier {params[field]} was taken concurrently, issuing another")


def success(data, http_status=status.HTTP_200_OK):
    return Response({'success': True, 'data': data}, status=http_status)


def parse_days(value, default):
    if value in (None, ''):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"days must be a whole number, got {value!r}") from None


# ---------------------------
# Blood units
# ---------------------------
class BloodUnitViewSet(mixins.ListModelMixin,
                       mixins.RetrieveModelMixin,
                       viewsets.GenericViewSet):
    """Blood unit inventory and lifecycle"""
    queryset = BloodUnit.objects.select_related('donor').prefetch_related('status_history')
    serializer_class = BloodUnitSerializer
    lookup_field = 'unit_id'

    def get_queryset(self):
        queryset = super().get_queryset()
        blood_type = self.request.query_params.get('blood_type')
        if blood_type and blood_type != 'all':
            queryset = queryset.filter(blood_type=blood_type)
        status_filter = self.request.query_params.get('status')
        if status_filter and status_filter != 'all':
            queryset = queryset.filter(status=status_filter)
        return queryset

    def create(self, request, *args, **kwargs):
        command = BloodUnitCreateSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        params = dict(command.validated_data)

        unit = create_with_identifier(
            inventory_services.create_blood_unit, params, 'unit_id',
            identifiers.BLOOD_UNIT_PREFIX, BloodUnit.all_objects.all(),
            created_by=actor_for(request),
        )
        return success(BloodUnitSerializer(unit).data, status.HTTP_201_CREATED)

    def destroy(self, request, unit_id=None):
        inventory_services.delete_blood_unit(unit_id, deleted_by=actor_for(request))
        return success({'unit_id': unit_id, 'deleted': True})

    @action(detail=True, methods=['put'], url_path='status')
    def change_status(self, request, unit_id=None):
        """Move one unit to a new status"""
        command = StatusChangeSerializer(data=request.data)
        command.is_valid(raise_exception=True)

        unit = inventory_services.transition_blood_unit(
            unit_id,
            command.validated_data['status'],
            changed_by=actor_for(request),
            notes=command.validated_data['notes'] or None,
        )
        return success(BloodUnitSerializer(unit).data)

    @action(detail=False, methods=['put'], url_path='batch-status')
    def batch_status(self, request):
        """Apply one status change to many units; each unit succeeds or fails on its own"""
        command = BatchStatusChangeSerializer(data=request.data)
        command.is_valid(raise_exception=True)

        result = inventory_services.batch_transition_blood_units(
            command.validated_data['unit_ids'],
            command.validated_data['status'],
            changed_by=actor_for(request),
            notes=command.validated_data['notes'] or None,
        )
        return success(result)

    @action(detail=True, methods=['get'])
    def expiry(self, request, unit_id=None):
        return success(inventory_services.unit_expiry(unit_id))

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """Inventory counts by blood type and status, with units expiring soon"""
        expiring_days = parse_days(request.query_params.get('days'), inventory_services.DEFAULT_EXPIRING_DAYS)
        return success(inventory_services.inventory_stats(expiring_days=expiring_days))


@api_view(['GET'])
def expiry_tracking(request):
    """Units expiring within `days` days, grouped Expired/Critical/Warning/Caution/Normal"""
    params = request.query_params
    report = inventory_services.expiry_tracking(
        days=parse_days(params.get('days'), inventory_services.DEFAULT_TRACKING_DAYS),
        status=params.get('status', lifecycle.AVAILABLE),
        blood_type=params.get('bloodType') or params.get('blood_type'),
    )

    groups = {
        label: [
            dict(BloodUnitSerializer(unit).data, days_remaining=remaining)
            for unit, remaining in members
        ]
        for label, members in report['groups'].items()
    }
    return success({
        'as_of': report['as_of'],
        'days': report['days'],
        'groups': groups,
        'stats': report['stats'],
    })


# ---------------------------
# Donors
# ---------------------------
class DonorViewSet(viewsets.ReadOnlyModelViewSet):
    """Donors, eligibility status, deferrals and health assessments"""
    queryset = Donor.objects.all()
    serializer_class = DonorSerializer
    lookup_field = 'donor_id'

    def get_queryset(self):
        queryset = super().get_queryset()
        blood_type = self.request.query_params.get('blood_type')
        if blood_type and blood_type != 'all':
            queryset = queryset.filter(blood_type=blood_type)
        return queryset

    @action(detail=False, methods=['get'], url_path='status')
    def eligibility_status(self, request):
        """Eligibility and status report of one donor (?donorId=)"""
        donor_id = request.query_params.get('donorId') or request.query_params.get('donor_id')
        if not donor_id:
            raise ValidationError('donorId query parameter is required')
        return success(donor_services.donor_status_report(donor_id))

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return success(donor_services.donor_stats())

    @action(detail=True, methods=['post'])
    def deferrals(self, request, donor_id=None):
        command = DeferralCreateSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        params = dict(command.validated_data)

        deferral = create_with_identifier(
            donor_services.defer_donor, params, 'deferral_id',
            identifiers.DEFERRAL_PREFIX, DonorDeferral.objects.all(),
            donor_id=donor_id, deferred_by=actor_for(request),
        )
        return success(DonorDeferralSerializer(deferral).data, status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='health-assessments')
    def health_assessments(self, request, donor_id=None):
        command = HealthAssessmentCreateSerializer(data=request.data)
        command.is_valid(raise_exception=True)

        assessment = donor_services.record_health_assessment(
            donor_id, assessed_by=actor_for(request), **command.validated_data
        )
        return success(DonorHealthAssessmentSerializer(assessment).data, status.HTTP_201_CREATED)


class DeferralViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = DonorDeferral.objects.select_related('donor')
    serializer_class = DonorDeferralSerializer
    lookup_field = 'deferral_id'

    @action(detail=True, methods=['post'])
    def reinstate(self, request, deferral_id=None):
        command = ReinstateSerializer(data=request.data)
        command.is_valid(raise_exception=True)

        deferral = donor_services.reinstate_deferral(
            deferral_id,
            reinstated_by=actor_for(request),
            reason=command.validated_data['reason'],
        )
        return success(DonorDeferralSerializer(deferral).data)

    @action(detail=True, methods=['post'])
    def expire(self, request, deferral_id=None):
        deferral = donor_services.expire_deferral(deferral_id, expired_by=actor_for(request))
        return success(DonorDeferralSerializer(deferral).data)


# ---------------------------
# Recipients
# ---------------------------
class RecipientViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Recipient.objects.all()
    serializer_class = RecipientSerializer
    lookup_field = 'recipient_id'


class TransfusionViewSet(mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         viewsets.GenericViewSet):
    queryset = TransfusionRecord.objects.select_related('recipient', 'blood_unit', 'blood_request')
    serializer_class = TransfusionRecordSerializer
    lookup_field = 'transfusion_id'

    def create(self, request, *args, **kwargs):
        command = TransfusionCreateSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        params = dict(command.validated_data)

        record = create_with_identifier(
            recipient_services.create_transfusion, params, 'transfusion_id',
            identifiers.TRANSFUSION_PREFIX, TransfusionRecord.objects.all(),
            performed_by=actor_for(request),
        )
        return success(TransfusionRecordSerializer(record).data, status.HTTP_201_CREATED)

    def partial_update(self, request, transfusion_id=None):
        command = TransfusionUpdateSerializer(data=request.data, partial=True)
        command.is_valid(raise_exception=True)

        record = recipient_services.update_transfusion(transfusion_id, **command.validated_data)
        return success(TransfusionRecordSerializer(record).data)

    def destroy(self, request, transfusion_id=None):
        unit = recipient_services.delete_transfusion(transfusion_id, deleted_by=actor_for(request))
        return success({
            'transfusion_id': transfusion_id,
            'unit_id': unit.unit_id,
            'unit_status': unit.status,
        })


class BloodRequestViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          viewsets.GenericViewSet):
    queryset = BloodRequest.objects.select_related('recipient')
    serializer_class = BloodRequestSerializer
    lookup_field = 'request_id'

    def get_queryset(self):
        queryset = super().get_queryset()
        status_filter = self.request.query_params.get('status')
        if status_filter and status_filter != 'all':
            queryset = queryset.filter(status=status_filter)
        return queryset

    def create(self, request, *args, **kwargs):
        command = BloodRequestCreateSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        params = dict(command.validated_data)

        blood_request = create_with_identifier(
            recipient_services.create_blood_request, params, 'request_id',
            identifiers.BLOOD_REQUEST_PREFIX, BloodRequest.objects.all(),
        )
        return success(BloodRequestSerializer(blood_request).data, status.HTTP_201_CREATED)

    @action(detail=True, methods=['put'], url_path='status')
    def change_status(self, request, request_id=None):
        command = StatusChangeSerializer(data=request.data)
        command.is_valid(raise_exception=True)

        blood_request = recipient_services.change_blood_request_status(
            request_id,
            command.validated_data['status'],
            changed_by=actor_for(request),
            notes=command.validated_data['notes'],
        )
        return success(BloodRequestSerializer(blood_request).data)

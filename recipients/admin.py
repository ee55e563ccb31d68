from django.contrib import admin

from algorithms import lifecycle
from algorithms.exceptions import BloodBankError
from .models import Recipient, BloodRequest, TransfusionRecord
from .utils import change_blood_request_status


@admin.register(Recipient)
class RecipientAdmin(admin.ModelAdmin):
    list_display  = ['recipient_id', 'full_name', 'blood_type', 'transfusion_count', 'last_transfusion_date']
    list_filter   = ['blood_type']
    search_fields = ['recipient_id', 'first_name', 'last_name', 'phone']
    ordering      = ['last_name', 'first_name']
    readonly_fields = ['transfusion_count', 'last_transfusion_date', 'created_at', 'updated_at']


@admin.register(BloodRequest)
class BloodRequestAdmin(admin.ModelAdmin):
    list_display  = ['request_id', 'recipient', 'blood_type', 'quantity', 'urgency', 'status', 'required_by']
    list_filter   = ['status', 'urgency', 'blood_type']
    search_fields = ['request_id', 'recipient__recipient_id', 'hospital', 'physician']
    ordering      = ['-request_date']
    readonly_fields = ['status', 'updated_at']

    actions = ['mark_processing', 'mark_fulfilled', 'mark_cancelled']

    def _change_status(self, request, queryset, new_status):
        changed = 0
        for blood_request in queryset:
            try:
                change_blood_request_status(blood_request.request_id, new_status,
                                            changed_by=request.user.get_username())
            except BloodBankError as exc:
                self.message_user(request, f'{blood_request.request_id}: {exc.message}', level='warning')
            else:
                changed += 1
        self.message_user(request, f'{changed} request(s) marked {new_status}.')

    @admin.action(description='Mark selected requests as Processing')
    def mark_processing(self, request, queryset):
        self._change_status(request, queryset, lifecycle.REQUEST_PROCESSING)

    @admin.action(description='Mark selected requests as Fulfilled')
    def mark_fulfilled(self, request, queryset):
        self._change_status(request, queryset, lifecycle.REQUEST_FULFILLED)

    @admin.action(description='Cancel selected requests')
    def mark_cancelled(self, request, queryset):
        self._change_status(request, queryset, lifecycle.REQUEST_CANCELLED)


@admin.register(TransfusionRecord)
class TransfusionRecordAdmin(admin.ModelAdmin):
    list_display  = ['transfusion_id', 'recipient', 'blood_unit', 'transfusion_date', 'hospital', 'outcome', 'reaction_occurred']
    list_filter   = ['outcome', 'reaction_occurred', 'blood_type']
    search_fields = ['transfusion_id', 'recipient__recipient_id', 'blood_unit__unit_id']
    ordering      = ['-transfusion_date']
    readonly_fields = ['transfusion_id', 'recipient', 'blood_unit', 'blood_type', 'transfusion_date', 'created_at', 'updated_at']

    # Created and withdrawn through the API so the unit lifecycle stays consistent
    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

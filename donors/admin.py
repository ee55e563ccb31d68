from django.contrib import admin

from algorithms.exceptions import BloodBankError
from .models import Donor, DonationHistory, DonorDeferral, DonorHealthAssessment
from .utils import evaluate_donor, reinstate_deferral, retire_donor


@admin.register(Donor)
class DonorAdmin(admin.ModelAdmin):
    list_display   = ['donor_id', 'full_name', 'blood_type', 'status', 'donation_count', 'last_donation_date', 'eligible_display']
    list_filter    = ['blood_type', 'status']
    search_fields  = ['donor_id', 'first_name', 'last_name', 'email', 'phone']
    ordering       = ['last_name', 'first_name']
    readonly_fields = ['status', 'donation_count', 'last_donation_date', 'created_at', 'updated_at']

    fieldsets = (
        ('Personal Info', {
            'fields': ('donor_id', 'first_name', 'last_name', 'gender', 'date_of_birth', 'blood_type')
        }),
        ('Contact', {
            'fields': ('email', 'phone')
        }),
        ('Donation Stats', {
            'fields': ('status', 'registration_date', 'donation_count', 'last_donation_date')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    @admin.display(boolean=True, description='Eligible Now')
    def eligible_display(self, obj):
        return evaluate_donor(obj).is_eligible

    # Deletion goes through retirement so history stays intact
    actions = ['retire_selected_donors']

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description='Retire selected donors (set Inactive)')
    def retire_selected_donors(self, request, queryset):
        for donor in queryset:
            retire_donor(donor.donor_id)
        self.message_user(request, f'{queryset.count()} donor(s) set Inactive.')


@admin.register(DonationHistory)
class DonationHistoryAdmin(admin.ModelAdmin):
    list_display  = ['donor', 'blood_unit', 'date_donated', 'blood_type', 'quantity', 'location']
    list_filter   = ['blood_type']
    search_fields = ['donor__donor_id', 'donor__last_name', 'blood_unit__unit_id']
    ordering      = ['-date_donated']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DonorDeferral)
class DonorDeferralAdmin(admin.ModelAdmin):
    list_display  = ['deferral_id', 'donor', 'deferral_type', 'reason_category', 'status', 'start_date', 'end_date']
    list_filter   = ['deferral_type', 'reason_category', 'status']
    search_fields = ['deferral_id', 'donor__donor_id', 'donor__last_name', 'specific_reason']
    ordering      = ['-deferral_date']
    readonly_fields = ['status', 'reinstated_at', 'reinstated_by', 'reinstatement_reason', 'created_at', 'updated_at']

    actions = ['reinstate_selected']

    def has_add_permission(self, request):
        return False

    @admin.action(description='Reinstate selected deferrals')
    def reinstate_selected(self, request, queryset):
        reinstated = 0
        for deferral in queryset:
            try:
                reinstate_deferral(deferral.deferral_id, reinstated_by=request.user.get_username(),
                                   reason='Reinstated from admin')
            except BloodBankError as exc:
                self.message_user(request, f'{deferral.deferral_id}: {exc.message}', level='warning')
            else:
                reinstated += 1
        self.message_user(request, f'Reinstated {reinstated} deferral(s).')


@admin.register(DonorHealthAssessment)
class DonorHealthAssessmentAdmin(admin.ModelAdmin):
    list_display  = ['donor', 'assessed_at', 'hemoglobin', 'is_eligible', 'next_eligible_date', 'assessed_by']
    list_filter   = ['is_eligible', 'permanently_deferred']
    search_fields = ['donor__donor_id', 'donor__last_name']
    ordering      = ['-assessed_at']

    def has_change_permission(self, request, obj=None):
        return False

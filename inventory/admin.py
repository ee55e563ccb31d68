from django.contrib import admin

from algorithms import lifecycle
from algorithms.exceptions import BloodBankError
from .models import BloodUnit, BloodUnitStatusChange
from .utils import batch_transition_blood_units, delete_blood_unit


class BloodUnitStatusChangeInline(admin.TabularInline):
    model = BloodUnitStatusChange
    extra = 0
    can_delete = False
    readonly_fields = ['status', 'changed_at', 'changed_by', 'notes']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(BloodUnit)
class BloodUnitAdmin(admin.ModelAdmin):
    list_display   = ['unit_id', 'donor', 'blood_type', 'status', 'collection_date', 'expiration_date', 'expiry_display']
    list_filter    = ['blood_type', 'status', 'process_method', 'facility']
    search_fields  = ['unit_id', 'donor__donor_id', 'donor__last_name']
    ordering       = ['expiration_date']
    readonly_fields = ['unit_id', 'donor', 'blood_type', 'status', 'collection_date', 'created_at', 'updated_at']
    inlines = [BloodUnitStatusChangeInline]

    fieldsets = (
        ('Unit', {
            'fields': ('unit_id', 'donor', 'blood_type', 'quantity', 'process_method', 'status')
        }),
        ('Dates', {
            'fields': ('collection_date', 'expiration_date')
        }),
        ('Location', {
            'fields': ('facility', 'storage_unit', 'shelf', 'position')
        }),
        ('Notes', {
            'fields': ('notes',),
            'classes': ('collapse',),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    @admin.display(description='Expiry')
    def expiry_display(self, obj):
        return obj.expiry_status()

    # Status changes only through the lifecycle services
    actions = ['release_from_quarantine', 'discard_units', 'soft_delete_units']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def _transition(self, request, queryset, new_status):
        unit_ids = list(queryset.values_list('unit_id', flat=True))
        result = batch_transition_blood_units(unit_ids, new_status, changed_by=request.user.get_username())
        for rejected in result['rejected']:
            self.message_user(request, f"{rejected['unit_id']}: {rejected['reason']}", level='warning')
        self.message_user(request, f"{len(result['updated'])} unit(s) marked {new_status}.")

    @admin.action(description='Release selected units to Available')
    def release_from_quarantine(self, request, queryset):
        self._transition(request, queryset, lifecycle.AVAILABLE)

    @admin.action(description='Discard selected units')
    def discard_units(self, request, queryset):
        self._transition(request, queryset, lifecycle.DISCARDED)

    @admin.action(description='Delete selected units (soft delete)')
    def soft_delete_units(self, request, queryset):
        deleted = 0
        for unit in queryset:
            try:
                delete_blood_unit(unit.unit_id, deleted_by=request.user.get_username())
            except BloodBankError as exc:
                self.message_user(request, f'{unit.unit_id}: {exc.message}', level='warning')
            else:
                deleted += 1
        self.message_user(request, f'{deleted} unit(s) deleted.')

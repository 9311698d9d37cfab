from django.contrib import admin
from .models import AllocationRecord, AllocationLine, UsedSample


class AllocationLineInline(admin.TabularInline):
    model = AllocationLine
    extra = 0
    fields = ['position', 'emp_code', 'name', 'qty', 'used_qty']
    readonly_fields = ['used_qty']


@admin.register(AllocationRecord)
class AllocationRecordAdmin(admin.ModelAdmin):
    list_display = ['item', 'level', 'root_id', 'rm_id', 'bm_id', 'manager_id', 'purpose_tag', 'to_vendor', 'lr_no', 'pod_updated_for_emp', 'created_at']
    list_filter = ['level', 'purpose_tag', 'to_vendor', 'pod_updated_for_emp', 'year', 'lot', 'region']
    search_fields = ['item', 'root_id', 'rm_id', 'bm_id', 'manager_id', 'lr_no', 'assigned_by', 'assigner_emp_code']
    ordering = ['-created_at']
    # Dispatch, LR and POD state only moves forward through the ledger services
    readonly_fields = [
        'root_id', 'purpose_tag', 'to_vendor', 'dispatched_at', 'lr_no', 'lr_updated_by', 'lr_updated_at',
        'pod_updated_for_emp', 'pod_updated_at', 'created_at',
    ]
    inlines = [AllocationLineInline]


@admin.register(UsedSample)
class UsedSampleAdmin(admin.ModelAdmin):
    list_display = ['customer_id', 'qty', 'used_by', 'line', 'used_at']
    search_fields = ['customer_id', 'used_by', 'line__emp_code']
    ordering = ['-used_at']
    readonly_fields = ['line', 'customer_id', 'qty', 'used_by', 'used_at']

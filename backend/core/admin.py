from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, AuditLog


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['username', 'emp_code', 'role', 'region', 'branch', 'is_active', 'date_joined']
    list_filter = ['role', 'region', 'is_active', 'is_superuser']
    search_fields = ['username', 'emp_code', 'first_name', 'last_name', 'email']
    ordering = ['username']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Sales Hierarchy', {'fields': ('emp_code', 'role', 'region', 'branch', 'phone')}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Sales Hierarchy', {'fields': ('emp_code', 'role', 'region', 'branch', 'phone')}),
    )


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['user', 'action', 'model_name', 'object_id', 'object_reference', 'ip_address', 'created_at']
    list_filter = ['action', 'model_name', 'created_at']
    search_fields = ['user__username', 'model_name', 'object_id', 'object_reference']
    ordering = ['-created_at']
    readonly_fields = ['user', 'action', 'model_name', 'object_id', 'object_reference', 'changes', 'ip_address', 'created_at']

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Extended user model carrying the sales hierarchy identity"""
    ROLE_EMPLOYEE = 'Employee'
    ROLE_MANAGER = 'Manager'
    ROLE_BRANCH_MANAGER = 'BranchManager'
    ROLE_REGIONAL_MANAGER = 'RegionalManager'
    ROLE_ADMIN = 'Admin'
    ROLE_VENDOR = 'Vendor'

    ROLE_CHOICES = [
        (ROLE_EMPLOYEE, 'Employee'),
        (ROLE_MANAGER, 'Manager'),
        (ROLE_BRANCH_MANAGER, 'Branch Manager'),
        (ROLE_REGIONAL_MANAGER, 'Regional Manager'),
        (ROLE_ADMIN, 'Admin'),
        (ROLE_VENDOR, 'Vendor'),
    ]

    emp_code = models.CharField(max_length=50, unique=True, null=True, blank=True)
    role = models.CharField(max_length=30, choices=ROLE_CHOICES, default=ROLE_EMPLOYEE)
    region = models.CharField(max_length=100, blank=True, default='')
    branch = models.CharField(max_length=100, blank=True, default='')
    phone = models.CharField(max_length=20, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'

    @property
    def display_name(self):
        return self.get_full_name() or self.username

    @property
    def is_admin_role(self):
        return self.is_superuser or self.role == self.ROLE_ADMIN


class AuditLog(models.Model):
    """Audit log for allocation ledger operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('allocation_create', 'Allocation Created'),
        ('sample_used', 'Sample Used'),
        ('vendor_dispatch', 'Sent to Vendor'),
        ('lr_update', 'LR No Updated'),
        ('pod_update', 'POD Updated'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., item name)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., chain id, LR number)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_7c4d2e_idx'),
            models.Index(fields=['action'], name='audit_logs_action_3f1a9b_idx'),
            models.Index(fields=['model_name'], name='audit_logs_model_n_8e2c51_idx'),
            models.Index(fields=['object_reference'], name='audit_logs_object__b6d0f4_idx'),
        ]

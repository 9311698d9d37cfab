from django.db import models
from django.core.exceptions import ValidationError
from django.utils import timezone

from .purpose import PURPOSE_GENERAL, PURPOSE_TAG_CHOICES, classify_purpose, is_vendor_purpose


def current_year():
    return str(timezone.localdate().year)


def display_timestamp():
    return timezone.localtime().strftime('%d/%m/%Y, %I:%M:%S %p')


class AllocationRecord(models.Model):
    """
    One allocation made at one hierarchy level.

    Re-allocating downstream never mutates an existing record: each level
    inserts its own record carrying the ancestor chain ids plus its own.
    Records sharing ``root_id`` form a lineage.
    """
    LEVEL_ADMIN = 'admin'
    LEVEL_RM = 'rm'
    LEVEL_BM = 'bm'
    LEVEL_MANAGER = 'manager'

    LEVEL_CHOICES = [
        (LEVEL_ADMIN, 'Admin'),
        (LEVEL_RM, 'Regional Manager'),
        (LEVEL_BM, 'Branch Manager'),
        (LEVEL_MANAGER, 'Manager'),
    ]

    # Chain fields in hierarchy order
    CHAIN_FIELDS = ('root_id', 'rm_id', 'bm_id', 'manager_id')

    root_id = models.CharField(max_length=64, db_index=True)
    rm_id = models.CharField(max_length=64, blank=True, default='', db_index=True)
    bm_id = models.CharField(max_length=64, blank=True, default='', db_index=True)
    manager_id = models.CharField(max_length=64, blank=True, default='', db_index=True)
    level = models.CharField(max_length=10, choices=LEVEL_CHOICES, default=LEVEL_ADMIN)

    item = models.CharField(max_length=255)
    year = models.CharField(max_length=4, default=current_year)
    lot = models.CharField(max_length=50, default='Lot 1')
    purpose = models.CharField(max_length=255, blank=True, default='')
    purpose_tag = models.CharField(max_length=20, choices=PURPOSE_TAG_CHOICES, default=PURPOSE_GENERAL, editable=False)

    assigned_by = models.CharField(max_length=150, blank=True, default='')
    assigner_emp_code = models.CharField(max_length=50, blank=True, default='', db_index=True)
    role = models.CharField(max_length=30, blank=True, default='')
    region = models.CharField(max_length=100, blank=True, default='', db_index=True)
    branch = models.CharField(max_length=100, blank=True, default='')
    date = models.CharField(max_length=40, default=display_timestamp)

    to_vendor = models.BooleanField(default=False)
    dispatched_at = models.DateTimeField(null=True, blank=True)
    lr_no = models.CharField(max_length=100, blank=True, default='')
    lr_updated_by = models.CharField(max_length=150, blank=True, default='')
    lr_updated_at = models.DateTimeField(null=True, blank=True)

    pod_updated_for_emp = models.BooleanField(default=False)
    pod_updated_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='allocations_created')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'allocation_records'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['to_vendor', 'purpose_tag'], name='idx_alloc_vendor'),
            models.Index(fields=['year', 'lot'], name='idx_alloc_year_lot'),
        ]

    def __str__(self):
        return f"{self.item} ({self.most_specific_id})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_root_id = instance.__dict__.get('root_id')
        return instance

    def save(self, *args, **kwargs):
        loaded_root_id = getattr(self, '_loaded_root_id', None)
        if loaded_root_id and self.root_id != loaded_root_id:
            raise ValidationError({'root_id': 'rootId cannot be changed once set.'})
        self.purpose_tag = classify_purpose(self.purpose)
        super().save(*args, **kwargs)
        self._loaded_root_id = self.root_id

    @property
    def lineage_id(self):
        return self.root_id

    @property
    def level_ids(self):
        """Populated chain ids, root first"""
        return [getattr(self, f) for f in self.CHAIN_FIELDS if getattr(self, f)]

    @property
    def most_specific_id(self):
        return self.level_ids[-1] if self.level_ids else ''

    def lineage_key(self):
        """
        Most specific lineage key usable for LR annotation: bm_id, then rm_id,
        then root_id. Manager ids never narrow an LR update.
        """
        for field in ('bm_id', 'rm_id'):
            value = (getattr(self, field) or '').strip()
            if value:
                return field, value
        return 'root_id', self.root_id

    @property
    def is_vendor_eligible(self):
        return is_vendor_purpose(self.purpose_tag)


class AllocationLine(models.Model):
    """Per-recipient quantity line of an allocation record"""
    record = models.ForeignKey(AllocationRecord, on_delete=models.CASCADE, related_name='employees')
    position = models.PositiveIntegerField(default=0)
    emp_code = models.CharField(max_length=50, db_index=True)
    name = models.CharField(max_length=150, blank=True, default='')
    qty = models.PositiveIntegerField(default=0)
    used_qty = models.PositiveIntegerField(default=0)
    extra = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'allocation_lines'
        ordering = ['record', 'position', 'id']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(used_qty__lte=models.F('qty')),
                name='allocation_line_used_within_qty',
            ),
        ]

    def __str__(self):
        return f"{self.emp_code}: {self.used_qty}/{self.qty}"

    @property
    def available(self):
        return max(self.qty - self.used_qty, 0)


class UsedSample(models.Model):
    """Append-only record of samples consumed against a customer"""
    line = models.ForeignKey(AllocationLine, on_delete=models.CASCADE, related_name='used_samples')
    customer_id = models.CharField(max_length=100)
    qty = models.PositiveIntegerField(default=1)
    used_by = models.CharField(max_length=50, blank=True, default='')
    used_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'allocation_used_samples'
        ordering = ['used_at', 'id']

    def __str__(self):
        return f"{self.customer_id} x{self.qty}"

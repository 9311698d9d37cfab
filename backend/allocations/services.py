"""
Allocation ledger services.

Everything that reads or mutates allocation records goes through this module:
the per-employee stock calculation, lineage resolution by chain id,
allocation creation at each hierarchy level, usage recording, vendor dispatch
and the LR/POD bulk annotations. Views only translate HTTP to these calls.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from .exceptions import AllocationNotFound, AllocationValidationError
from .ids import get_id_generator
from .models import AllocationLine, AllocationRecord, UsedSample
from .purpose import VENDOR_PURPOSE_TAGS
from .signals import invalidate_allocation_reports

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LevelSpec:
    own_field: str
    prefix: str
    role: str
    ancestors: tuple


LEVELS = {
    AllocationRecord.LEVEL_ADMIN: LevelSpec('root_id', 'ROOT', 'Admin', ()),
    AllocationRecord.LEVEL_RM: LevelSpec('rm_id', 'RM', 'RegionalManager', ('root_id',)),
    AllocationRecord.LEVEL_BM: LevelSpec('bm_id', 'BM', 'BranchManager', ('root_id', 'rm_id')),
    AllocationRecord.LEVEL_MANAGER: LevelSpec('manager_id', 'MGR', 'Manager', ('root_id', 'rm_id', 'bm_id')),
}


@dataclass
class BulkUpdateResult:
    matched: int
    modified: int
    key: Optional[tuple] = None


@dataclass
class UsageResult:
    record: AllocationRecord
    line: AllocationLine
    sample: UsedSample

    @property
    def remaining(self):
        return self.line.available


def coerce_qty(value):
    """Coerce stored quantities; anything malformed counts as 0"""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(number)


def record_lines(record):
    employees = record.employees
    return employees.all() if hasattr(employees, 'all') else (employees or [])


# ---------- Stock Ledger Calculator ----------

def fold_stock(records, emp_code):
    """
    Merge every line addressed to ``emp_code`` into per-item totals.

    The same employee may hold several lines for one item (separate top-ups),
    so totals accumulate instead of overwriting.
    """
    totals = {}
    for record in records:
        for line in record_lines(record):
            if line.emp_code != emp_code:
                continue
            entry = totals.setdefault(record.item, {'total': 0, 'used': 0})
            entry['total'] += coerce_qty(line.qty)
            entry['used'] += coerce_qty(line.used_qty)

    return [
        {'name': name, 'total': t['total'], 'used': t['used'], 'stock': t['total'] - t['used']}
        for name, t in totals.items()
    ]


def _with_lines(queryset):
    return queryset.prefetch_related('employees__used_samples')


def records_for_employee(emp_code):
    return _with_lines(
        AllocationRecord.objects.filter(employees__emp_code=emp_code).distinct()
    )


def employee_stock(emp_code):
    """Stock summary and the records behind it for one identity code"""
    records = list(records_for_employee(emp_code))
    return {'stock': fold_stock(records, emp_code), 'assignments': records}


def branch_stock(identity):
    """Records a branch manager received or created; stock counts received lines only"""
    query = Q(employees__emp_code=identity.emp_code)
    if identity.emp_code:
        query |= Q(assigner_emp_code=identity.emp_code)
    if identity.name:
        query |= Q(assigned_by=identity.name)
    records = list(_with_lines(AllocationRecord.objects.filter(query).distinct()))
    return {'stock': fold_stock(records, identity.emp_code), 'assignments': records}


# ---------- Hierarchy Chain Resolver ----------

def _require_chain_id(chain_id):
    chain_id = (chain_id or '').strip()
    if not chain_id:
        raise AllocationValidationError('Root ID missing')
    return chain_id


def resolve_lineage(chain_id):
    """All records whose root, RM or BM chain id equals ``chain_id``"""
    chain_id = _require_chain_id(chain_id)
    return AllocationRecord.objects.filter(
        Q(root_id=chain_id) | Q(rm_id=chain_id) | Q(bm_id=chain_id)
    )


def resolve_lr_target(chain_id):
    """
    Pick the single chain key an LR number applies to.

    The base record is looked up by root id first and narrowed to its most
    specific key. Ids that are not root ids are matched as BM, then RM ids.
    """
    chain_id = _require_chain_id(chain_id)
    base = AllocationRecord.objects.filter(root_id=chain_id).order_by('created_at', 'id').first()
    if base is not None:
        return base.lineage_key()
    for field in ('bm_id', 'rm_id'):
        if AllocationRecord.objects.filter(**{field: chain_id}).exists():
            return field, chain_id
    raise AllocationNotFound('Assignment not found')


# ---------- Allocation creation ----------

def _clean_lines(employees):
    lines = []
    for position, emp in enumerate(employees or []):
        emp_code = (emp.get('emp_code') or '').strip()
        if not emp_code:
            raise AllocationValidationError('Each employee line needs an empCode')
        qty = coerce_qty(emp.get('qty'))
        if qty < 0:
            raise AllocationValidationError(f'Quantity for {emp_code} cannot be negative')
        lines.append(AllocationLine(
            position=position,
            emp_code=emp_code,
            name=emp.get('name') or '',
            qty=qty,
            extra=emp.get('extra') or {},
        ))
    if not any(line.qty > 0 for line in lines):
        raise AllocationValidationError('At least one employee with a positive quantity is required')
    return lines


def _verify_parent(level, chain):
    spec = LEVELS[level]
    if not spec.ancestors:
        return {}
    ancestry = {field: (chain.get(field) or '').strip() for field in spec.ancestors}
    if not ancestry['root_id']:
        raise AllocationValidationError('rootId is required')
    parent_filter = {field: value for field, value in ancestry.items() if value}
    if not AllocationRecord.objects.filter(**parent_filter).exists():
        raise AllocationNotFound('Parent allocation not found')
    return ancestry


@transaction.atomic
def create_allocation(level, *, item, employees, identity, purpose='', chain=None,
                      region='', branch='', year=None, lot=None, assigned_by=None,
                      assigner_emp_code=None, created_by=None, id_generator=None):
    """
    Insert one allocation record at ``level``.

    Ancestor chain ids come from ``chain`` (the parent allocation's ids as
    sent by the client) and must identify an existing record; the level's own
    id is freshly generated.
    """
    if level not in LEVELS:
        raise AllocationValidationError(f'Unknown allocation level: {level}')
    item = (item or '').strip()
    if not item:
        raise AllocationValidationError('item is required')
    lines = _clean_lines(employees)
    ancestry = _verify_parent(level, chain or {})

    spec = LEVELS[level]
    generate = id_generator or get_id_generator()
    chain_ids = dict(ancestry)
    chain_ids[spec.own_field] = generate(spec.prefix)

    record = AllocationRecord(
        level=level,
        item=item,
        purpose=purpose or '',
        role=spec.role,
        assigned_by=assigned_by or identity.name,
        assigner_emp_code=assigner_emp_code or identity.emp_code,
        region=region or identity.region,
        branch=branch or identity.branch,
        created_by=created_by,
        **chain_ids,
    )
    if year:
        record.year = str(year)
    if lot:
        record.lot = lot
    record.save()

    for line in lines:
        line.record = record
    AllocationLine.objects.bulk_create(lines)

    logger.info(f"Allocation {record.most_specific_id} created at level {level}: {item} x{sum(l.qty for l in lines)}")
    return record


# ---------- Usage Recorder ----------

def _get_record(record_id):
    try:
        pk = int(str(record_id).strip())
    except (TypeError, ValueError):
        raise AllocationNotFound('Assignment not found')
    record = AllocationRecord.objects.filter(pk=pk).first()
    if record is None:
        raise AllocationNotFound('Assignment not found')
    return record


def _usage_qty(qty):
    """Requested usage quantity; defaults to 1, must be a positive whole number"""
    if qty is None or (isinstance(qty, str) and not qty.strip()):
        return 1
    if isinstance(qty, bool):
        raise AllocationValidationError('Quantity must be a whole number')
    try:
        number = Decimal(str(qty).strip())
    except InvalidOperation:
        raise AllocationValidationError('Quantity must be a whole number')
    if not number.is_finite() or number != number.to_integral_value():
        raise AllocationValidationError('Quantity must be a whole number')
    if number <= 0:
        raise AllocationValidationError('Quantity must be at least 1')
    return int(number)


def _find_line(record, emp_code):
    return record.employees.filter(emp_code=emp_code).order_by('position', 'id').first()


def record_usage(record_id, emp_code, customer_id, qty=1, used_by=None):
    """
    Deduct ``qty`` samples from one employee line against a customer.

    The availability check and the increment are one conditional UPDATE, so
    concurrent submissions against the same line cannot overdraw it. The
    sample row is written in the same transaction as the increment.
    """
    emp_code = (emp_code or '').strip()
    customer_id = (str(customer_id).strip() if customer_id is not None else '')
    if record_id in (None, '') or not emp_code or not customer_id:
        raise AllocationValidationError('Missing required fields')
    requested = _usage_qty(qty)

    record = _get_record(record_id)
    line = _find_line(record, emp_code)
    if line is None:
        raise AllocationNotFound('Employee not found in this assignment')

    sample = None
    with transaction.atomic():
        updated = (
            AllocationLine.objects
            .filter(pk=line.pk, used_qty__lte=F('qty') - requested)
            .update(used_qty=F('used_qty') + requested)
        )
        if updated:
            sample = UsedSample.objects.create(
                line=line,
                customer_id=customer_id,
                qty=requested,
                used_by=used_by or emp_code,
            )
    line.refresh_from_db(fields=['qty', 'used_qty'])
    if sample is None:
        raise AllocationValidationError(
            f'Not enough stock. Available: {line.available}, Requested: {requested}'
        )

    logger.info(f"Sample used: record={record.pk} emp={emp_code} customer={customer_id} qty={requested} remaining={line.available}")
    return UsageResult(record=record, line=line, sample=sample)


# ---------- Vendor Dispatch Gate ----------

def dispatch_to_vendor(chain_id):
    """
    Mark a whole lineage as sent to the vendor.

    Allowed only when at least one record in the lineage has a project or
    marketing purpose; otherwise nothing is written.
    """
    records = list(resolve_lineage(chain_id))
    if not records:
        raise AllocationNotFound('Assignment not found')
    if not any(record.is_vendor_eligible for record in records):
        raise AllocationValidationError('Only Project/Marketing assignments can be sent to vendor')

    modified = (
        resolve_lineage(chain_id)
        .filter(to_vendor=False)
        .update(to_vendor=True, dispatched_at=timezone.now())
    )
    invalidate_allocation_reports()
    logger.info(f"Dispatch to vendor: {chain_id} ({modified} of {len(records)} records newly marked)")
    return BulkUpdateResult(matched=len(records), modified=modified)


def vendor_list():
    return _with_lines(
        AllocationRecord.objects.filter(to_vendor=True, purpose_tag__in=VENDOR_PURPOSE_TAGS)
    )


# ---------- LR / POD annotations ----------

def update_lr_number(chain_id, lr_no, updated_by=''):
    lr_no = (lr_no or '').strip()
    if not lr_no:
        raise AllocationValidationError('LR No is required')
    field, value = resolve_lr_target(chain_id)
    modified = AllocationRecord.objects.filter(**{field: value}).update(
        lr_no=lr_no,
        lr_updated_by=updated_by or '',
        lr_updated_at=timezone.now(),
    )
    invalidate_allocation_reports()
    logger.info(f"LR Update: {chain_id} -> {lr_no} via {field}={value} ({modified} records)")
    return BulkUpdateResult(matched=modified, modified=modified, key=(field, value))


def mark_pod_updated(chain_id):
    lineage = resolve_lineage(chain_id)
    matched = lineage.count()
    if not matched:
        raise AllocationNotFound('Assignment not found')
    modified = lineage.filter(pod_updated_for_emp=False).update(
        pod_updated_for_emp=True,
        pod_updated_at=timezone.now(),
    )
    invalidate_allocation_reports()
    logger.info(f"POD update: {chain_id} ({modified} of {matched} records newly marked)")
    return BulkUpdateResult(matched=matched, modified=modified)

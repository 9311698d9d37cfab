"""
Read-only roll-ups over the allocation ledger: the admin ledger tree, the
year/lot summary and per-region usage.
"""
import re
from collections import defaultdict

from django.db.models import Q
from django.utils import timezone

from backend.core.cache_utils import cached_query
from .models import AllocationRecord
from .services import coerce_qty, record_lines

DEFAULT_LOTS = ('Lot 1', 'Lot 2', 'Lot 3')
_LOT_PATTERN = re.compile(r'lot\s*(\d+)', re.IGNORECASE)


def _line_dict(line):
    return {
        'empCode': line.emp_code,
        'name': line.name,
        'qty': coerce_qty(line.qty),
        'usedQty': coerce_qty(line.used_qty),
    }


_ID_ATTRS = {'rootId': 'root_id', 'rmId': 'rm_id', 'bmId': 'bm_id', 'managerId': 'manager_id'}


def _node(record, id_field):
    return {
        id_field: getattr(record, _ID_ATTRS[id_field]),
        'item': record.item,
        'purpose': record.purpose,
        'assignedBy': record.assigned_by,
        'date': record.date,
        'employees': [_line_dict(line) for line in record_lines(record)],
    }


@cached_query(key_prefix="allocation_ledger")
def build_ledger():
    """
    Nest the forest as admin -> RM -> BM -> Manager, linking each level to
    its parent through the shared chain id.
    """
    records = list(AllocationRecord.objects.prefetch_related('employees').order_by('-created_at', '-id'))

    rms_by_root = defaultdict(list)
    bms_by_rm = defaultdict(list)
    managers_by_bm = defaultdict(list)
    for record in records:
        if record.level == AllocationRecord.LEVEL_RM:
            rms_by_root[record.root_id].append(record)
        elif record.level == AllocationRecord.LEVEL_BM:
            bms_by_rm[record.rm_id].append(record)
        elif record.level == AllocationRecord.LEVEL_MANAGER:
            managers_by_bm[record.bm_id].append(record)

    ledger = []
    for admin in (r for r in records if r.level == AllocationRecord.LEVEL_ADMIN):
        tree = _node(admin, 'rootId')
        tree.update({
            'toVendor': admin.to_vendor,
            'lrNo': admin.lr_no,
            'podUpdatedForEmp': admin.pod_updated_for_emp,
            'children': [],
        })
        for rm in rms_by_root.get(admin.root_id, []):
            rm_node = _node(rm, 'rmId')
            rm_node['children'] = []
            for bm in bms_by_rm.get(rm.rm_id, []):
                bm_node = _node(bm, 'bmId')
                bm_node['children'] = [_node(m, 'managerId') for m in managers_by_bm.get(bm.bm_id, [])]
                rm_node['children'].append(bm_node)
            tree['children'].append(rm_node)
        ledger.append(tree)
    return ledger


def _normalize_lot(record):
    source = record.lot or ''
    match = _LOT_PATTERN.search(source) or _LOT_PATTERN.search(record.purpose or '')
    return f"Lot {match.group(1)}" if match else 'Lot 1'


@cached_query(key_prefix="allocation_summary")
def build_summary(year=None, lot=None):
    target_year = coerce_qty(year) or timezone.localdate().year
    records = AllocationRecord.objects.filter(year=str(target_year)).prefetch_related('employees')
    if lot and lot != 'all':
        records = records.filter(Q(lot=lot) | Q(purpose__icontains=lot))

    total_production = total_assigned = total_used = 0
    lot_breakdown = {name: {'production': 0, 'assigned': 0, 'used': 0, 'stock': 0} for name in DEFAULT_LOTS}
    items = {}
    people = {}

    for record in records:
        lines = list(record_lines(record))
        lot_entry = lot_breakdown.setdefault(
            _normalize_lot(record), {'production': 0, 'assigned': 0, 'used': 0, 'stock': 0}
        )
        item_entry = items.setdefault(
            record.item, {'name': record.item, 'production': 0, 'assigned': 0, 'used': 0, 'available': 0}
        )

        if record.level == AllocationRecord.LEVEL_ADMIN:
            production = sum(coerce_qty(line.qty) for line in lines)
            total_production += production
            lot_entry['production'] += production
            item_entry['production'] += production

        for line in lines:
            qty, used = coerce_qty(line.qty), coerce_qty(line.used_qty)
            total_assigned += qty
            total_used += used
            lot_entry['assigned'] += qty
            lot_entry['used'] += used
            lot_entry['stock'] += qty - used
            item_entry['assigned'] += qty
            item_entry['used'] += used

            person = people.setdefault(line.emp_code or line.name, {
                'empCode': line.emp_code, 'name': line.name, 'assigned': 0, 'used': 0, 'stock': 0,
            })
            person['assigned'] += qty
            person['used'] += used
            person['stock'] = person['assigned'] - person['used']

    for item in items.values():
        item['available'] = item['production'] - item['used']

    return {
        'year': target_year,
        'lot': lot or 'all',
        'totalProduction': total_production,
        'totalAssigned': total_assigned,
        'totalUsed': total_used,
        'totalStock': total_assigned - total_used,
        'lotBreakdown': lot_breakdown,
        'itemSummary': list(items.values()),
        'personStock': sorted(people.values(), key=lambda p: p['assigned'], reverse=True),
    }


def region_usage(region):
    """Per-item and per-employee sample usage across a region's records"""
    records = AllocationRecord.objects.filter(region=region).prefetch_related('employees__used_samples')

    items = {}
    employees = {}
    for record in records:
        for line in record_lines(record):
            qty, used = coerce_qty(line.qty), coerce_qty(line.used_qty)
            item = items.setdefault(record.item, {'name': record.item, 'total': 0, 'used': 0, 'stock': 0})
            item['total'] += qty
            item['used'] += used
            item['stock'] = item['total'] - item['used']

            emp = employees.setdefault(line.emp_code, {
                'empCode': line.emp_code, 'name': line.name, 'total': 0, 'used': 0, 'stock': 0, 'customers': set(),
            })
            emp['total'] += qty
            emp['used'] += used
            emp['stock'] = emp['total'] - emp['used']
            emp['customers'].update(sample.customer_id for sample in line.used_samples.all())

    for emp in employees.values():
        emp['customers'] = len(emp['customers'])

    return {
        'region': region,
        'items': list(items.values()),
        'employees': sorted(employees.values(), key=lambda e: e['used'], reverse=True),
    }

from functools import wraps
import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.identity import identity_from_request
from backend.core.permissions import IsAdminRole, IsVendorOrAdmin
from backend.core.utils import create_audit_log
from . import reports, services
from .exceptions import AllocationError, AllocationValidationError
from .filters import AllocationHistoryFilter
from .models import AllocationRecord
from .serializers import (
    AllocationRecordSerializer, AllocationCreateSerializer,
    UsedSampleCreateSerializer, LRUpdateSerializer, StockResponseSerializer,
)

logger = logging.getLogger(__name__)


def allocation_endpoint(failure_message):
    """Translate ledger errors to their status and store failures to a logged 500"""
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            try:
                return view_func(request, *args, **kwargs)
            except AllocationError as e:
                return Response({'success': False, 'message': e.message}, status=e.status_code)
            except DatabaseError:
                logger.exception(failure_message)
                return Response({'success': False, 'message': failure_message},
                                status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return wrapper
    return decorator


def _first_error(errors):
    if isinstance(errors, dict):
        for field, value in errors.items():
            message = _first_error(value)
            if message:
                return message if field == 'non_field_errors' else f"{field}: {message}"
    elif isinstance(errors, list):
        for value in errors:
            message = _first_error(value)
            if message:
                return message
    elif errors:
        return str(errors)
    return ''


def _invalid(serializer):
    return Response({
        'success': False,
        'message': _first_error(serializer.errors) or 'Invalid request',
        'errors': serializer.errors,
    }, status=status.HTTP_400_BAD_REQUEST)


def _stock_response(result):
    return Response(StockResponseSerializer(result).data)


def _create_allocation(request, level):
    serializer = AllocationCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)
    data = serializer.validated_data
    identity = identity_from_request(request)

    record = services.create_allocation(
        level,
        item=data['item'],
        employees=data['employees'],
        identity=identity,
        purpose=data['purpose'],
        chain={'root_id': data['root_id'], 'rm_id': data['rm_id'], 'bm_id': data['bm_id']},
        region=data['region'],
        branch=data['branch'],
        year=data['year'],
        lot=data['lot'],
        assigned_by=data['assigned_by'],
        assigner_emp_code=data['assigner_emp_code'],
        created_by=request.user,
    )

    create_audit_log(
        request=request,
        action='allocation_create',
        model_name='AllocationRecord',
        object_id=str(record.id),
        object_name=record.item,
        object_reference=record.most_specific_id,
        changes={
            'level': level,
            'chain': record.level_ids,
            'purpose': record.purpose,
            'employees': [{'empCode': e['emp_code'], 'qty': e['qty']} for e in data['employees']],
        }
    )
    return Response(AllocationRecordSerializer(record).data, status=status.HTTP_201_CREATED)


# ---------- Admin ----------
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
@allocation_endpoint('Failed to create admin assignment')
def create_admin_allocation(request):
    """Admin creates a new root-level allocation"""
    return _create_allocation(request, AllocationRecord.LEVEL_ADMIN)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
@allocation_endpoint('Failed to fetch admin history')
def admin_history(request):
    """All allocation records, newest first"""
    queryset = AllocationRecord.objects.prefetch_related('employees__used_samples').order_by('-created_at', '-id')
    filterset = AllocationHistoryFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response({'success': False, 'message': 'Invalid filters', 'errors': filterset.errors},
                        status=status.HTTP_400_BAD_REQUEST)
    serializer = AllocationRecordSerializer(filterset.qs, many=True)
    return Response(serializer.data)


# ---------- Regional Manager ----------
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@allocation_endpoint('Failed to fetch RM stock')
def regional_stock(request):
    identity = identity_from_request(request)
    return _stock_response(services.employee_stock(identity.emp_code))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@allocation_endpoint('Failed to create RM assignment')
def allocate_regional(request):
    """RM re-allocates to branch managers"""
    return _create_allocation(request, AllocationRecord.LEVEL_RM)


# ---------- Branch Manager ----------
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@allocation_endpoint('Failed to fetch BM stock')
def branch_stock(request):
    """Records the BM received or created"""
    identity = identity_from_request(request)
    return _stock_response(services.branch_stock(identity))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@allocation_endpoint('Failed to create BM assignment')
def allocate_branch(request):
    return _create_allocation(request, AllocationRecord.LEVEL_BM)


# ---------- Manager ----------
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@allocation_endpoint('Failed to fetch Manager stock')
def manager_stock(request):
    identity = identity_from_request(request)
    return _stock_response(services.employee_stock(identity.emp_code))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@allocation_endpoint('Failed to allocate by Manager')
def allocate_manager(request):
    return _create_allocation(request, AllocationRecord.LEVEL_MANAGER)


# ---------- Employee ----------
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@allocation_endpoint('Failed to fetch employee stock')
def employee_stock(request, emp_code):
    return _stock_response(services.employee_stock(emp_code))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@allocation_endpoint('Failed to add used sample')
def add_used_sample(request):
    """Employee records samples used against a customer"""
    serializer = UsedSampleCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)
    data = serializer.validated_data
    identity = identity_from_request(request)

    result = services.record_usage(
        data['assignmentId'], data['empCode'], data['customerId'], data['qty'],
        used_by=identity.emp_code or data['empCode'],
    )

    create_audit_log(
        request=request,
        action='sample_used',
        model_name='AllocationLine',
        object_id=str(result.line.id),
        object_name=result.record.item,
        object_reference=result.record.most_specific_id,
        changes={
            'empCode': result.line.emp_code,
            'customerId': result.sample.customer_id,
            'qty': result.sample.qty,
            'usedQty': result.line.used_qty,
            'remaining': result.remaining,
        }
    )

    record = AllocationRecord.objects.prefetch_related('employees__used_samples').get(pk=result.record.pk)
    return Response({
        'success': True,
        'message': f"Sample used against {result.sample.customer_id}. Remaining: {result.remaining}",
        'remaining': result.remaining,
        'assignment': AllocationRecordSerializer(record).data,
        'stock': services.employee_stock(result.line.emp_code)['stock'],
    })


# ---------- Vendor / dispatch ----------
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@allocation_endpoint('Server error while dispatching to vendor')
def dispatch_to_vendor(request, chain_id):
    """Send a Project/Marketing lineage to the vendor"""
    result = services.dispatch_to_vendor(chain_id)
    create_audit_log(
        request=request,
        action='vendor_dispatch',
        model_name='AllocationRecord',
        object_id=chain_id,
        object_reference=chain_id,
        changes={'matched': result.matched, 'modified': result.modified},
    )
    return Response({
        'success': True,
        'message': 'Sent to Vendor Successfully',
        'matched': result.matched,
        'modified': result.modified,
    })


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
@allocation_endpoint('Failed to update LR No')
def update_lr(request, chain_id):
    """Apply an LR number to the most specific lineage level available"""
    serializer = LRUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)
    identity = identity_from_request(request)
    result = services.update_lr_number(chain_id, serializer.validated_data['lrNo'],
                                       updated_by=identity.emp_code or identity.name)
    field, value = result.key
    create_audit_log(
        request=request,
        action='lr_update',
        model_name='AllocationRecord',
        object_id=chain_id,
        object_reference=value,
        changes={'lrNo': serializer.validated_data['lrNo'], 'key': field, 'modified': result.modified},
    )
    return Response({
        'success': True,
        'message': f"LR No updated for {result.modified} record(s)",
        'modified': result.modified,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsVendorOrAdmin])
@allocation_endpoint('Server error fetching vendor list')
def vendor_list(request):
    """Project/Marketing records already sent to the vendor"""
    records = services.vendor_list().order_by('-created_at', '-id')
    return Response(AllocationRecordSerializer(records, many=True).data)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsAdminRole])
@allocation_endpoint('Failed to update POD status')
def update_pod(request, chain_id):
    """Admin makes the proof of delivery visible to employees"""
    result = services.mark_pod_updated(chain_id)
    create_audit_log(
        request=request,
        action='pod_update',
        model_name='AllocationRecord',
        object_id=chain_id,
        object_reference=chain_id,
        changes={'matched': result.matched, 'modified': result.modified},
    )
    return Response({
        'success': True,
        'message': f"POD updated for {result.modified} record(s). Now visible to employees.",
        'modified': result.modified,
    })


# ---------- Reports ----------
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
@allocation_endpoint('Failed to fetch assignment ledger')
def assignment_ledger(request):
    return Response(reports.build_ledger())


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
@allocation_endpoint('Failed to fetch summary')
def assignment_summary(request):
    year = request.query_params.get('year')
    lot = request.query_params.get('lot')
    return Response(reports.build_summary(year=year, lot=lot))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@allocation_endpoint('Failed to fetch region usage')
def region_usage(request):
    """Sample usage across the caller's region (admins may pick one)"""
    identity = identity_from_request(request)
    region = identity.region
    if request.user.is_admin_role:
        region = request.query_params.get('region') or region
    if not region:
        raise AllocationValidationError('Region is required')
    return Response(reports.region_usage(region))

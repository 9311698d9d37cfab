from rest_framework import serializers
from .models import AllocationRecord, AllocationLine, UsedSample


# ============ Read side ============
class UsedSampleSerializer(serializers.ModelSerializer):
    customerId = serializers.CharField(source='customer_id')
    usedBy = serializers.CharField(source='used_by')
    usedAt = serializers.DateTimeField(source='used_at')

    class Meta:
        model = UsedSample
        fields = ['id', 'customerId', 'qty', 'usedBy', 'usedAt']


class AllocationLineSerializer(serializers.ModelSerializer):
    empCode = serializers.CharField(source='emp_code')
    usedQty = serializers.IntegerField(source='used_qty')
    available = serializers.IntegerField(read_only=True)
    usedSamples = UsedSampleSerializer(source='used_samples', many=True, read_only=True)

    class Meta:
        model = AllocationLine
        fields = ['id', 'empCode', 'name', 'qty', 'usedQty', 'available', 'extra', 'usedSamples']


class AllocationRecordSerializer(serializers.ModelSerializer):
    rootId = serializers.CharField(source='root_id')
    rmId = serializers.CharField(source='rm_id')
    bmId = serializers.CharField(source='bm_id')
    managerId = serializers.CharField(source='manager_id')
    purposeTag = serializers.CharField(source='purpose_tag')
    assignedBy = serializers.CharField(source='assigned_by')
    assignerEmpCode = serializers.CharField(source='assigner_emp_code')
    toVendor = serializers.BooleanField(source='to_vendor')
    dispatchedAt = serializers.DateTimeField(source='dispatched_at')
    lrNo = serializers.CharField(source='lr_no')
    lrUpdatedBy = serializers.CharField(source='lr_updated_by')
    lrUpdatedAt = serializers.DateTimeField(source='lr_updated_at')
    podUpdatedForEmp = serializers.BooleanField(source='pod_updated_for_emp')
    podUpdatedAt = serializers.DateTimeField(source='pod_updated_at')
    createdAt = serializers.DateTimeField(source='created_at')
    employees = AllocationLineSerializer(many=True, read_only=True)

    class Meta:
        model = AllocationRecord
        fields = [
            'id', 'rootId', 'rmId', 'bmId', 'managerId', 'level',
            'item', 'year', 'lot', 'purpose', 'purposeTag', 'employees',
            'assignedBy', 'assignerEmpCode', 'role', 'region', 'branch', 'date',
            'toVendor', 'dispatchedAt', 'lrNo', 'lrUpdatedBy', 'lrUpdatedAt',
            'podUpdatedForEmp', 'podUpdatedAt', 'createdAt',
        ]
        read_only_fields = fields


class StockEntrySerializer(serializers.Serializer):
    name = serializers.CharField()
    total = serializers.IntegerField()
    used = serializers.IntegerField()
    stock = serializers.IntegerField()


class StockResponseSerializer(serializers.Serializer):
    stock = StockEntrySerializer(many=True)
    assignments = AllocationRecordSerializer(many=True)


# ============ Write side ============
class EmployeeLineInSerializer(serializers.Serializer):
    empCode = serializers.CharField(source='emp_code', max_length=50)
    name = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    qty = serializers.IntegerField(min_value=0)
    extra = serializers.DictField(required=False, default=dict)


class AllocationCreateSerializer(serializers.Serializer):
    """Body of every allocation endpoint; which chain ids matter depends on the level"""
    item = serializers.CharField(max_length=255)
    employees = EmployeeLineInSerializer(many=True)
    purpose = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    rootId = serializers.CharField(source='root_id', max_length=64, required=False, allow_blank=True, default='')
    rmId = serializers.CharField(source='rm_id', max_length=64, required=False, allow_blank=True, default='')
    bmId = serializers.CharField(source='bm_id', max_length=64, required=False, allow_blank=True, default='')
    region = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    branch = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    year = serializers.CharField(max_length=4, required=False, allow_blank=True, default='')
    lot = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    assignedBy = serializers.CharField(source='assigned_by', max_length=150, required=False, allow_blank=True, default='')
    assignerEmpCode = serializers.CharField(source='assigner_emp_code', max_length=50, required=False, allow_blank=True, default='')

    def validate_employees(self, value):
        if not value:
            raise serializers.ValidationError('At least one employee line is required.')
        if not any(line['qty'] > 0 for line in value):
            raise serializers.ValidationError('At least one employee must receive a positive quantity.')
        return value


class UsedSampleCreateSerializer(serializers.Serializer):
    assignmentId = serializers.CharField()
    empCode = serializers.CharField(max_length=50)
    customerId = serializers.CharField(max_length=100)
    qty = serializers.IntegerField(min_value=1, required=False, default=1)


class LRUpdateSerializer(serializers.Serializer):
    lrNo = serializers.CharField(max_length=100)

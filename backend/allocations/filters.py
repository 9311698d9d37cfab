import django_filters
from .models import AllocationRecord


class AllocationHistoryFilter(django_filters.FilterSet):
    """Optional filters for the admin history list"""
    item = django_filters.CharFilter(field_name='item', lookup_expr='iexact')
    region = django_filters.CharFilter(field_name='region', lookup_expr='iexact')
    branch = django_filters.CharFilter(field_name='branch', lookup_expr='iexact')
    level = django_filters.ChoiceFilter(field_name='level', choices=AllocationRecord.LEVEL_CHOICES)
    toVendor = django_filters.BooleanFilter(field_name='to_vendor')
    year = django_filters.CharFilter(field_name='year')
    lot = django_filters.CharFilter(field_name='lot', lookup_expr='iexact')

    class Meta:
        model = AllocationRecord
        fields = ['item', 'region', 'branch', 'level', 'year', 'lot']

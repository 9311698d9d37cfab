from django.urls import path
from .views import (
    create_admin_allocation, admin_history,
    regional_stock, allocate_regional,
    branch_stock, allocate_branch,
    manager_stock, allocate_manager,
    employee_stock, add_used_sample,
    dispatch_to_vendor, update_lr, vendor_list, update_pod,
    assignment_ledger, assignment_summary, region_usage,
)

urlpatterns = [
    # Admin
    path('assignments/admin/', create_admin_allocation, name='allocation-admin-create'),
    path('assignments/history/admin/', admin_history, name='allocation-admin-history'),

    # Regional / branch / manager levels
    path('assignments/regional/stock/', regional_stock, name='allocation-regional-stock'),
    path('assignments/allocate/rm/', allocate_regional, name='allocation-allocate-rm'),
    path('assignments/branch/stock/', branch_stock, name='allocation-branch-stock'),
    path('assignments/allocate/bm/', allocate_branch, name='allocation-allocate-bm'),
    path('assignments/manager/stock/', manager_stock, name='allocation-manager-stock'),
    path('assignments/allocate/manager/', allocate_manager, name='allocation-allocate-manager'),

    # Employee
    path('assignments/employee/<str:emp_code>/', employee_stock, name='allocation-employee-stock'),
    path('assignments/used-sample/', add_used_sample, name='allocation-used-sample'),

    # Vendor + dispatch
    path('assignments/dispatch/<str:chain_id>/', dispatch_to_vendor, name='allocation-dispatch'),
    path('assignments/vendor/lr/<str:chain_id>/', update_lr, name='allocation-vendor-lr'),
    path('assignments/lr/<str:chain_id>/', update_lr, name='allocation-lr'),
    path('assignments/vendor/list/', vendor_list, name='allocation-vendor-list'),
    path('assignments/pod/<str:chain_id>/', update_pod, name='allocation-pod'),

    # Reports
    path('assignments/ledger/', assignment_ledger, name='allocation-ledger'),
    path('assignments/summary/', assignment_summary, name='allocation-summary'),
    path('assignments/region-usage/', region_usage, name='allocation-region-usage'),
]

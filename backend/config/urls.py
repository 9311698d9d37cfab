"""
URL configuration for backend project.

Every API route is versioned under ``api/v1/``.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Sales Force Tracker Admin Panel"
admin.site.site_title = "Sales Force Tracker Admin Portal"
admin.site.index_title = "Sample stock allocation ledger"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.allocations.urls')),
]

from rest_framework.permissions import BasePermission

from .models import User


class IsAdminRole(BasePermission):
    """Admin role (or superuser) only"""
    message = 'Access denied: Admins only'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_admin_role)


class IsVendorOrAdmin(BasePermission):
    """Vendors, plus admins who oversee vendor dispatch"""
    message = 'Access denied: Vendors only'

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        return user.role == User.ROLE_VENDOR or user.is_admin_role

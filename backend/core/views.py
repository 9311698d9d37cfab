from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import AuthenticationFailed, InvalidToken, TokenError
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.shortcuts import get_object_or_404
from .models import AuditLog
from .identity import Identity
from .permissions import IsAdminRole
from .serializers import UserSerializer, AuditLogSerializer

User = get_user_model()


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        data['user'] = Identity.from_user(self.user).as_dict()
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        # Identity claims consumed by the frontend
        token['empCode'] = user.emp_code or ''
        token['role'] = user.role or ''
        token['region'] = user.region or ''
        token['branch'] = user.branch or ''
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that handles deleted users gracefully"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except ObjectDoesNotExist:
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with the identity used by the allocation ledger"""
    user_data = UserSerializer(request.user).data
    user_data['identity'] = Identity.from_user(request.user).as_dict()
    user_data['is_admin'] = request.user.is_admin_role
    return Response(user_data)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def audit_log_list(request):
    """List audit logs, optionally filtered by action or object reference"""
    logs = AuditLog.objects.select_related('user').all()
    action = request.query_params.get('action')
    reference = request.query_params.get('object_reference')
    if action:
        logs = logs.filter(action=action)
    if reference:
        logs = logs.filter(object_reference=reference)
    serializer = AuditLogSerializer(logs, many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def audit_log_detail(request, pk):
    """Retrieve an audit log entry"""
    log = get_object_or_404(AuditLog, pk=pk)
    serializer = AuditLogSerializer(log)
    return Response(serializer.data, status=status.HTTP_200_OK)

"""
Test suite for the core app
Tests: JWT login and refresh, current-user identity, audit log access, role permissions
"""
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from backend.core.identity import Identity
from backend.core.models import AuditLog, User
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.utils import create_audit_log
from backend.core.cache_utils import cached_query, invalidate_cache_pattern, make_cache_key, registry_key
from backend.allocations import reports


class AuthTests(TestCase):
    """Test token login, refresh and the current-user endpoint"""

    def setUp(self):
        self.user = TestDataFactory.create_user(
            username='rm_north', password='secret123', role=User.ROLE_REGIONAL_MANAGER,
            emp_code='RM100', region='North', branch='Delhi', first_name='Ravi', last_name='Mehta',
        )
        self.client = APIClient()

    def test_login_returns_tokens_and_identity(self):
        """Login issues a token pair plus the ledger identity"""
        response = self.client.post('/api/v1/auth/login/', {'username': 'rm_north', 'password': 'secret123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user'], {
            'empCode': 'RM100',
            'name': 'Ravi Mehta',
            'role': 'RegionalManager',
            'region': 'North',
            'branch': 'Delhi',
        })

    def test_login_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'rm_north', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_token(self):
        login = self.client.post('/api/v1/auth/login/', {'username': 'rm_north', 'password': 'secret123'}, format='json')
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_refresh_with_garbage_token(self):
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': 'not-a-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_returns_identity(self):
        client = AuthenticatedAPIClient().authenticate_user(self.user)
        response = client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['empCode'], 'RM100')
        self.assertEqual(response.data['identity']['role'], 'RegionalManager')
        self.assertFalse(response.data['is_admin'])


class IdentityTests(TestCase):
    """Test the identity shape handed to the ledger"""

    def test_name_falls_back_to_username(self):
        user = TestDataFactory.create_user(username='plainuser', emp_code='E900')
        identity = Identity.from_user(user)
        self.assertEqual(identity.name, 'plainuser')
        self.assertEqual(identity.emp_code, 'E900')

    def test_missing_emp_code_is_blank(self):
        user = TestDataFactory.create_user(emp_code='')
        user.emp_code = None
        self.assertEqual(Identity.from_user(user).emp_code, '')

    def test_superuser_counts_as_admin(self):
        user = TestDataFactory.create_user(is_superuser=True)
        self.assertTrue(user.is_admin_role)


class AuditLogTests(TestCase):
    """Test audit log helper and read-only endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.employee = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()

    def test_create_audit_log_skips_missing_fields(self):
        self.assertIsNone(create_audit_log(user=self.admin, action='lr_update', model_name='AllocationRecord'))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_audit_log_list_admin_only(self):
        create_audit_log(user=self.admin, action='lr_update', model_name='AllocationRecord',
                         object_id='ROOT-000001', object_reference='ROOT-000001')

        self.client.authenticate_user(self.employee)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_audit_log_filters(self):
        create_audit_log(user=self.admin, action='lr_update', model_name='AllocationRecord',
                         object_id='1', object_reference='ROOT-000001')
        create_audit_log(user=self.admin, action='pod_update', model_name='AllocationRecord',
                         object_id='2', object_reference='ROOT-000002')
        self.client.authenticate_user(self.admin)

        response = self.client.get('/api/v1/audit-logs/?action=pod_update')
        self.assertEqual([log['object_reference'] for log in response.data], ['ROOT-000002'])

        response = self.client.get('/api/v1/audit-logs/?object_reference=ROOT-000001')
        self.assertEqual([log['action'] for log in response.data], ['lr_update'])

    def test_audit_log_detail(self):
        log = create_audit_log(user=self.admin, action='vendor_dispatch', model_name='AllocationRecord',
                               object_id='ROOT-000003', changes={'modified': 2})
        self.client.authenticate_user(self.admin)
        response = self.client.get(f'/api/v1/audit-logs/{log.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['changes'], {'modified': 2})

        response = self.client.get('/api/v1/audit-logs/99999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class CacheUtilsTests(TestCase):
    """Test report caching and prefix invalidation on the local memory backend"""

    def setUp(self):
        cache.clear()
        self.calls = []

        @cached_query(key_prefix="report_under_test")
        def build(year=None):
            self.calls.append(year)
            return {'year': year}

        self.build = build

    def test_cached_until_invalidated(self):
        self.build(year=2026)
        self.build(year=2026)
        self.assertEqual(self.calls, [2026])

        invalidate_cache_pattern("report_under_test")
        self.build(year=2026)
        self.assertEqual(self.calls, [2026, 2026])

    def test_invalidation_leaves_unrelated_keys(self):
        cache.set('session_like_key', 'keep-me')
        self.build(year=2025)
        self.build(year=2026)

        invalidate_cache_pattern("report_under_test")

        self.assertEqual(cache.get('session_like_key'), 'keep-me')
        self.assertIsNone(cache.get(make_cache_key("report_under_test", year=2025)))
        self.assertIsNone(cache.get(registry_key("report_under_test")))

    def test_allocation_save_keeps_unrelated_keys(self):
        cache.set('session_like_key', 'keep-me')
        summary_key = make_cache_key("allocation_summary")
        reports.build_summary()
        self.assertIsNotNone(cache.get(summary_key))

        TestDataFactory.create_allocation(employees=[('E1', 5)])

        self.assertIsNone(cache.get(summary_key))
        self.assertEqual(cache.get('session_like_key'), 'keep-me')

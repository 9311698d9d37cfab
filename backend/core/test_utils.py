"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.core.identity import Identity
from backend.allocations.ids import SequentialIdGenerator
from backend.allocations.models import AllocationRecord
from backend.allocations import services
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    # Deterministic chain ids for every allocation built through the factory
    id_generator = SequentialIdGenerator()

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role=User.ROLE_EMPLOYEE,
                    emp_code=None, region='North', branch='Delhi', first_name='', last_name='',
                    is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        if emp_code is None:
            emp_code = f'E{TestDataFactory.random_string(6).upper()}'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            emp_code=emp_code,
            region=region,
            branch=branch,
            first_name=first_name,
            last_name=last_name,
            is_staff=is_staff,
            is_superuser=is_superuser
        )
        return user

    @staticmethod
    def create_admin(**kwargs):
        kwargs.setdefault('role', User.ROLE_ADMIN)
        kwargs.setdefault('first_name', 'Head')
        kwargs.setdefault('last_name', 'Office')
        return TestDataFactory.create_user(**kwargs)

    @staticmethod
    def create_vendor(**kwargs):
        kwargs.setdefault('role', User.ROLE_VENDOR)
        return TestDataFactory.create_user(**kwargs)

    @staticmethod
    def create_allocation(level=AllocationRecord.LEVEL_ADMIN, user=None, item='Tiles Sample Kit',
                          employees=None, purpose='Project', chain=None, **kwargs):
        """
        Create an allocation record through the ledger service.

        ``employees`` is a list of ``(emp_code, qty)`` pairs.
        """
        if user is None:
            user = TestDataFactory.create_admin()
        if employees is None:
            employees = [('EMP001', 10)]
        lines = [{'emp_code': code, 'name': f'Person {code}', 'qty': qty} for code, qty in employees]
        return services.create_allocation(
            level,
            item=item,
            employees=lines,
            identity=Identity.from_user(user),
            purpose=purpose,
            chain=chain or {},
            created_by=user,
            id_generator=TestDataFactory.id_generator,
            **kwargs
        )

    @staticmethod
    def create_chain(item='Tiles Sample Kit', purpose='Project', qty=10):
        """
        Build one lineage: admin -> RM -> BM -> Manager -> employee.

        Returns the users and records keyed by level.
        """
        admin = TestDataFactory.create_admin(emp_code='ADM001')
        rm = TestDataFactory.create_user(role=User.ROLE_REGIONAL_MANAGER, emp_code='RM001')
        bm = TestDataFactory.create_user(role=User.ROLE_BRANCH_MANAGER, emp_code='BM001')
        manager = TestDataFactory.create_user(role=User.ROLE_MANAGER, emp_code='MGR001')
        employee = TestDataFactory.create_user(role=User.ROLE_EMPLOYEE, emp_code='EMP001')

        root = TestDataFactory.create_allocation(
            AllocationRecord.LEVEL_ADMIN, user=admin, item=item, purpose=purpose,
            employees=[(rm.emp_code, qty)],
        )
        rm_record = TestDataFactory.create_allocation(
            AllocationRecord.LEVEL_RM, user=rm, item=item, purpose=purpose,
            employees=[(bm.emp_code, qty)],
            chain={'root_id': root.root_id},
        )
        bm_record = TestDataFactory.create_allocation(
            AllocationRecord.LEVEL_BM, user=bm, item=item, purpose=purpose,
            employees=[(manager.emp_code, qty)],
            chain={'root_id': root.root_id, 'rm_id': rm_record.rm_id},
        )
        manager_record = TestDataFactory.create_allocation(
            AllocationRecord.LEVEL_MANAGER, user=manager, item=item, purpose=purpose,
            employees=[(employee.emp_code, qty)],
            chain={'root_id': root.root_id, 'rm_id': rm_record.rm_id, 'bm_id': bm_record.bm_id},
        )
        return {
            'users': {'admin': admin, 'rm': rm, 'bm': bm, 'manager': manager, 'employee': employee},
            'admin': root,
            'rm': rm_record,
            'bm': bm_record,
            'manager': manager_record,
        }


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()

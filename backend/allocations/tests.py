"""
Comprehensive test suite for the allocation ledger
Tests: Stock calculation, Allocation creation, Usage recording, Vendor dispatch,
LR/POD annotation, Vendor list, Ledger/Summary/Region reports, Integrity command
"""
from decimal import Decimal
from io import StringIO
from types import SimpleNamespace
from unittest import mock

from django.contrib import admin
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.forms.models import model_to_dict
from django.test import RequestFactory, TestCase
from rest_framework import status

from backend.core.models import AuditLog, User
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.allocations import reports, services
from backend.allocations.exceptions import AllocationNotFound, AllocationValidationError
from backend.allocations.ids import ChainIdGenerator, SequentialIdGenerator
from backend.allocations.models import AllocationLine, AllocationRecord, UsedSample
from backend.allocations.purpose import classify_purpose

API = '/api/v1/assignments'


class PurposeAndIdTests(TestCase):
    """Test purpose classification and chain id generators"""

    def test_classify_purpose(self):
        self.assertEqual(classify_purpose(''), 'general')
        self.assertEqual(classify_purpose(None), 'general')
        self.assertEqual(classify_purpose('Project X'), 'project')
        self.assertEqual(classify_purpose('MARKETING drive'), 'marketing')
        self.assertEqual(classify_purpose('Dealer meet'), 'other')
        # Substring match keeps the historical behaviour
        self.assertEqual(classify_purpose('non-project'), 'project')

    def test_purpose_tag_follows_purpose_on_save(self):
        record = TestDataFactory.create_allocation(purpose='Retail')
        self.assertEqual(record.purpose_tag, 'other')
        record.purpose = 'Marketing Q3'
        record.save()
        record.refresh_from_db()
        self.assertEqual(record.purpose_tag, 'marketing')

    def test_sequential_generator(self):
        generate = SequentialIdGenerator(start=7)
        self.assertEqual(generate('BM'), 'BM-000007')
        self.assertEqual(generate('RM'), 'RM-000008')

    def test_chain_generator_format(self):
        generate = ChainIdGenerator()
        first, second = generate('RM'), generate('RM')
        self.assertRegex(first, r'^RM-[0-9A-Z]+-[0-9A-F]{4}$')
        self.assertNotEqual(first, second)


class StockCalculatorTests(TestCase):
    """Test per-employee stock folding"""

    def test_topups_merge_per_item(self):
        TestDataFactory.create_allocation(item='Board', employees=[('E1', 10), ('E2', 4)])
        TestDataFactory.create_allocation(item='Board', employees=[('E1', 5)])
        TestDataFactory.create_allocation(item='Tile', employees=[('E1', 2)])

        stock = {row['name']: row for row in services.employee_stock('E1')['stock']}
        self.assertEqual(stock['Board'], {'name': 'Board', 'total': 15, 'used': 0, 'stock': 15})
        self.assertEqual(stock['Tile']['total'], 2)

    def test_stock_equals_allocated_minus_used(self):
        first = TestDataFactory.create_allocation(item='Board', employees=[('E1', 10)])
        second = TestDataFactory.create_allocation(item='Board', employees=[('E1', 6)])
        services.record_usage(first.id, 'E1', 'C1', 4)
        services.record_usage(second.id, 'E1', 'C2', 6)

        lines = AllocationLine.objects.filter(emp_code='E1', record__item='Board')
        allocated = sum(line.qty for line in lines)
        used = sum(line.used_qty for line in lines)
        [row] = services.employee_stock('E1')['stock']
        self.assertEqual(row['stock'], allocated - used)
        self.assertEqual((row['total'], row['used'], row['stock']), (16, 10, 6))

    def test_records_without_matching_lines_are_skipped(self):
        TestDataFactory.create_allocation(item='Board', employees=[('E2', 4)])
        self.assertEqual(services.employee_stock('E1'), {'stock': [], 'assignments': []})

    def test_malformed_quantities_count_as_zero(self):
        records = [
            SimpleNamespace(item='Board', employees=[
                SimpleNamespace(emp_code='E1', qty='5', used_qty=None),
                SimpleNamespace(emp_code='E2', qty=3, used_qty=1),
            ]),
            SimpleNamespace(item='Board', employees=[
                SimpleNamespace(emp_code='E1', qty=float('nan'), used_qty='abc'),
            ]),
            SimpleNamespace(item='Tile', employees=[
                SimpleNamespace(emp_code='E1', qty=Decimal('4'), used_qty='1.0'),
            ]),
            SimpleNamespace(item='Panel', employees=None),
        ]
        stock = {row['name']: row for row in services.fold_stock(records, 'E1')}
        self.assertEqual(stock['Board'], {'name': 'Board', 'total': 5, 'used': 0, 'stock': 5})
        self.assertEqual(stock['Tile'], {'name': 'Tile', 'total': 4, 'used': 1, 'stock': 3})
        self.assertNotIn('Panel', stock)


class AllocationCreationTests(TestCase):
    """Test allocation creation at each hierarchy level"""

    def test_chain_carries_ancestor_ids(self):
        chain = TestDataFactory.create_chain()
        root, rm, bm, manager = chain['admin'], chain['rm'], chain['bm'], chain['manager']

        self.assertEqual(root.level_ids, [root.root_id])
        self.assertEqual(rm.level_ids, [root.root_id, rm.rm_id])
        self.assertEqual(bm.level_ids, [root.root_id, rm.rm_id, bm.bm_id])
        self.assertEqual(manager.level_ids, [root.root_id, rm.rm_id, bm.bm_id, manager.manager_id])
        self.assertTrue(rm.rm_id.startswith('RM-'))
        self.assertTrue(manager.manager_id.startswith('MGR-'))
        self.assertEqual({r.lineage_id for r in (root, rm, bm, manager)}, {root.root_id})
        self.assertEqual(rm.role, 'RegionalManager')
        self.assertEqual(rm.assigner_emp_code, 'RM001')

    def test_non_admin_level_requires_root_id(self):
        with self.assertRaisesMessage(AllocationValidationError, 'rootId is required'):
            TestDataFactory.create_allocation(AllocationRecord.LEVEL_RM, chain={})

    def test_unknown_parent_is_not_found(self):
        with self.assertRaises(AllocationNotFound):
            TestDataFactory.create_allocation(AllocationRecord.LEVEL_RM, chain={'root_id': 'ROOT-MISSING'})

    def test_requires_positive_line(self):
        with self.assertRaises(AllocationValidationError):
            TestDataFactory.create_allocation(employees=[('E1', 0)])

    def test_root_id_is_immutable(self):
        record = TestDataFactory.create_allocation()
        record.root_id = 'ROOT-OTHER'
        with self.assertRaises(ValidationError):
            record.save()


class UsageRecorderTests(TestCase):
    """Test the conditional usage update"""

    def setUp(self):
        self.record = TestDataFactory.create_allocation(item='Board', employees=[('E1', 10)])

    def test_usage_appends_sample_and_increments(self):
        result = services.record_usage(self.record.id, 'E1', 'C100', 4, used_by='E1')
        self.assertEqual(result.remaining, 6)
        line = AllocationLine.objects.get(record=self.record, emp_code='E1')
        self.assertEqual(line.used_qty, 4)
        sample = UsedSample.objects.get(line=line)
        self.assertEqual((sample.customer_id, sample.qty, sample.used_by), ('C100', 4, 'E1'))

    def test_two_full_availability_requests_only_one_succeeds(self):
        services.record_usage(self.record.id, 'E1', 'C1', 10)
        with self.assertRaisesMessage(AllocationValidationError, 'Not enough stock. Available: 0, Requested: 10'):
            services.record_usage(self.record.id, 'E1', 'C2', 10)
        line = AllocationLine.objects.get(record=self.record, emp_code='E1')
        self.assertEqual(line.used_qty, 10)
        self.assertEqual(line.used_samples.count(), 1)

    def test_stale_instance_cannot_overdraw(self):
        # Another request consumed stock after this line was read
        AllocationLine.objects.filter(record=self.record).update(used_qty=8)
        with self.assertRaises(AllocationValidationError):
            services.record_usage(self.record.id, 'E1', 'C1', 3)
        self.assertEqual(AllocationLine.objects.get(record=self.record).used_qty, 8)

    def test_default_and_invalid_quantities(self):
        result = services.record_usage(self.record.id, 'E1', 'C1', None)
        self.assertEqual(result.sample.qty, 1)
        with self.assertRaisesMessage(AllocationValidationError, 'Quantity must be at least 1'):
            services.record_usage(self.record.id, 'E1', 'C1', -2)

    def test_missing_fields(self):
        with self.assertRaisesMessage(AllocationValidationError, 'Missing required fields'):
            services.record_usage(self.record.id, 'E1', '', 1)

    def test_unknown_record_or_employee(self):
        with self.assertRaisesMessage(AllocationNotFound, 'Assignment not found'):
            services.record_usage(999999, 'E1', 'C1', 1)
        with self.assertRaisesMessage(AllocationNotFound, 'Employee not found in this assignment'):
            services.record_usage(self.record.id, 'E9', 'C1', 1)

    def test_competing_usage_between_read_and_update(self):
        """A request holding a stale line read loses to one that consumed the stock first"""
        real_find_line = services._find_line
        reads = []
        winners = []

        def find_line_then_compete(record, emp_code):
            line = real_find_line(record, emp_code)
            reads.append(line.used_qty)
            if len(reads) == 1:
                # Second request runs after this read and before this request's UPDATE
                winners.append(services.record_usage(self.record.id, 'E1', 'C2', 10))
            return line

        with mock.patch.object(services, '_find_line', side_effect=find_line_then_compete):
            with self.assertRaisesMessage(AllocationValidationError, 'Not enough stock. Available: 0, Requested: 10'):
                services.record_usage(self.record.id, 'E1', 'C1', 10)

        self.assertEqual(reads, [0, 0])
        self.assertEqual(len(winners), 1)
        line = AllocationLine.objects.get(record=self.record, emp_code='E1')
        self.assertEqual(line.used_qty, line.qty)
        self.assertEqual(list(line.used_samples.values_list('customer_id', flat=True)), ['C2'])

    def test_fractional_quantities_rejected(self):
        for qty in (2.7, '1.5', 'abc', float('nan')):
            with self.assertRaisesMessage(AllocationValidationError, 'Quantity must be a whole number'):
                services.record_usage(self.record.id, 'E1', 'C1', qty)
        self.assertEqual(AllocationLine.objects.get(record=self.record).used_qty, 0)

        result = services.record_usage(self.record.id, 'E1', 'C1', '3')
        self.assertEqual(result.sample.qty, 3)
        self.assertEqual(services.record_usage(self.record.id, 'E1', 'C1', 2.0).sample.qty, 2)




class LineageTests(TestCase):
    """Test dispatch, LR and POD over resolved lineages"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin(emp_code='ADM001')
        self.root = TestDataFactory.create_allocation(user=self.admin, purpose='General', employees=[('RMA', 10), ('RMB', 10)])
        root_chain = {'root_id': self.root.root_id}
        self.rm_a = TestDataFactory.create_allocation(AllocationRecord.LEVEL_RM, chain=root_chain, purpose='General', employees=[('BMA', 10)])
        self.rm_b = TestDataFactory.create_allocation(AllocationRecord.LEVEL_RM, chain=root_chain, purpose='General', employees=[('BMB', 10)])
        self.bm_a = TestDataFactory.create_allocation(
            AllocationRecord.LEVEL_BM, purpose='General', employees=[('E1', 5)],
            chain={'root_id': self.root.root_id, 'rm_id': self.rm_a.rm_id},
        )
        self.bm_b = TestDataFactory.create_allocation(
            AllocationRecord.LEVEL_BM, purpose='General', employees=[('E2', 5)],
            chain={'root_id': self.root.root_id, 'rm_id': self.rm_b.rm_id},
        )
        self.manager_a = TestDataFactory.create_allocation(
            AllocationRecord.LEVEL_MANAGER, purpose='General', employees=[('E3', 2)],
            chain={'root_id': self.root.root_id, 'rm_id': self.rm_a.rm_id, 'bm_id': self.bm_a.bm_id},
        )

    def _lr_numbers(self):
        return dict(AllocationRecord.objects.values_list('id', 'lr_no'))

    def test_resolve_lineage_by_each_level(self):
        self.assertEqual(services.resolve_lineage(self.root.root_id).count(), 6)
        self.assertEqual(
            set(services.resolve_lineage(self.rm_a.rm_id).values_list('id', flat=True)),
            {self.rm_a.id, self.bm_a.id, self.manager_a.id},
        )
        self.assertEqual(
            set(services.resolve_lineage(self.bm_a.bm_id).values_list('id', flat=True)),
            {self.bm_a.id, self.manager_a.id},
        )

    def test_blank_chain_id_rejected(self):
        with self.assertRaisesMessage(AllocationValidationError, 'Root ID missing'):
            services.resolve_lineage('  ')
        with self.assertRaises(AllocationValidationError):
            services.dispatch_to_vendor('')

    def test_dispatch_without_project_purpose_changes_nothing(self):
        with self.assertRaisesMessage(AllocationValidationError, 'Only Project/Marketing assignments can be sent to vendor'):
            services.dispatch_to_vendor(self.root.root_id)
        self.assertFalse(AllocationRecord.objects.filter(to_vendor=True).exists())

    def test_dispatch_unknown_lineage(self):
        with self.assertRaises(AllocationNotFound):
            services.dispatch_to_vendor('ROOT-NOPE')

    def test_dispatch_marks_whole_lineage_once(self):
        self.bm_a.purpose = 'Marketing push'
        self.bm_a.save()
        result = services.dispatch_to_vendor(self.root.root_id)
        self.assertEqual((result.matched, result.modified), (6, 6))
        first_dispatch = AllocationRecord.objects.get(pk=self.root.pk).dispatched_at
        self.assertIsNotNone(first_dispatch)

        again = services.dispatch_to_vendor(self.root.root_id)
        self.assertEqual(again.modified, 0)
        self.assertEqual(AllocationRecord.objects.get(pk=self.root.pk).dispatched_at, first_dispatch)

    def test_vendor_list_requires_tag_and_flag(self):
        self.bm_a.purpose = 'Project Alpha'
        self.bm_a.save()
        services.dispatch_to_vendor(self.rm_a.rm_id)
        self.assertEqual(list(services.vendor_list().values_list('id', flat=True)), [self.bm_a.id])

    def test_lr_by_bm_id_touches_only_that_branch(self):
        result = services.update_lr_number(self.bm_a.bm_id, 'LR-77', updated_by='ADM001')
        self.assertEqual(result.key, ('bm_id', self.bm_a.bm_id))
        self.assertEqual(result.modified, 2)
        lr = self._lr_numbers()
        self.assertEqual(lr[self.bm_a.id], 'LR-77')
        self.assertEqual(lr[self.manager_a.id], 'LR-77')
        for record in (self.root, self.rm_a, self.rm_b, self.bm_b):
            self.assertEqual(lr[record.id], '')
        self.assertEqual(AllocationRecord.objects.get(pk=self.bm_a.pk).lr_updated_by, 'ADM001')

    def test_lr_by_rm_id_falls_back_to_rm_key(self):
        result = services.update_lr_number(self.rm_b.rm_id, 'LR-9')
        self.assertEqual(result.key, ('rm_id', self.rm_b.rm_id))
        self.assertEqual(
            set(AllocationRecord.objects.filter(lr_no='LR-9').values_list('id', flat=True)),
            {self.rm_b.id, self.bm_b.id},
        )

    def test_lr_by_root_id_uses_base_record_key(self):
        result = services.update_lr_number(self.root.root_id, 'LR-1')
        self.assertEqual(result.key, ('root_id', self.root.root_id))
        self.assertEqual(result.modified, 6)

    def test_lr_update_is_idempotent(self):
        services.update_lr_number(self.bm_a.bm_id, 'LR-5')
        once = self._lr_numbers()
        services.update_lr_number(self.bm_a.bm_id, 'LR-5')
        self.assertEqual(self._lr_numbers(), once)

    def test_lr_validation(self):
        with self.assertRaisesMessage(AllocationValidationError, 'LR No is required'):
            services.update_lr_number(self.root.root_id, '   ')
        with self.assertRaises(AllocationNotFound):
            services.update_lr_number('BM-NOPE', 'LR-1')

    def test_pod_is_monotonic(self):
        result = services.mark_pod_updated(self.rm_a.rm_id)
        self.assertEqual(result.modified, 3)
        self.assertEqual(services.mark_pod_updated(self.rm_a.rm_id).modified, 0)
        self.assertFalse(AllocationRecord.objects.get(pk=self.rm_b.pk).pod_updated_for_emp)


class AllocationAdminTests(TestCase):
    """Test the Django admin change form for allocation records"""

    def setUp(self):
        self.superuser = TestDataFactory.create_admin(is_staff=True, is_superuser=True)
        self.record = TestDataFactory.create_allocation(purpose='Project X', employees=[('E1', 10)])
        services.dispatch_to_vendor(self.record.root_id)
        services.update_lr_number(self.record.root_id, 'LR-42', updated_by='ADM')
        services.mark_pod_updated(self.record.root_id)

    def _save_change_form(self, **overrides):
        record = AllocationRecord.objects.get(pk=self.record.pk)
        model_admin = admin.site._registry[AllocationRecord]
        request = RequestFactory().post('/')
        request.user = self.superuser
        form_class = model_admin.get_form(request, record, change=True)
        data = {
            name: ('' if value is None else value)
            for name, value in model_to_dict(record, fields=list(form_class.base_fields)).items()
        }
        data.update(overrides)
        form = form_class(data=data, instance=record)
        self.assertTrue(form.is_valid(), form.errors)
        model_admin.save_model(request, form.save(commit=False), form, change=True)
        return AllocationRecord.objects.get(pk=self.record.pk)

    def test_change_form_keeps_dispatch_state(self):
        saved = self._save_change_form(to_vendor='', pod_updated_for_emp='', lr_no='', lr_updated_by='')
        self.assertTrue(saved.to_vendor)
        self.assertTrue(saved.pod_updated_for_emp)
        self.assertEqual(saved.lr_no, 'LR-42')
        self.assertEqual(saved.lr_updated_by, 'ADM')

    def test_change_form_still_edits_descriptive_fields(self):
        saved = self._save_change_form(branch='Noida')
        self.assertEqual(saved.branch, 'Noida')
        self.assertTrue(saved.to_vendor)


class AllocationAPITests(TestCase):
    """Test the REST surface end to end"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin(username='admin', emp_code='ADM1')
        self.rm = TestDataFactory.create_user(username='rm1', role=User.ROLE_REGIONAL_MANAGER, emp_code='RM1')
        self.bm = TestDataFactory.create_user(username='bm1', role=User.ROLE_BRANCH_MANAGER, emp_code='BM1')
        self.employee = TestDataFactory.create_user(username='e1', emp_code='E1')
        self.vendor = TestDataFactory.create_vendor(username='vendor1', emp_code='V1')
        self.client = AuthenticatedAPIClient()

    def _allocate_root(self, purpose='General', qty=100, item='Sample Board'):
        self.client.authenticate_user(self.admin)
        response = self.client.post(f'{API}/admin/', {
            'item': item,
            'employees': [{'empCode': 'RM1', 'name': 'RM One', 'qty': qty}],
            'purpose': purpose,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return response.data

    def test_sample_board_scenario(self):
        """Admin -> RM -> BM -> E1, usage, then the purpose-gated dispatch"""
        root = self._allocate_root()
        root_id = root['rootId']

        self.client.authenticate_user(self.rm)
        response = self.client.post(f'{API}/allocate/rm/', {
            'rootId': root_id, 'item': 'Sample Board', 'purpose': 'General',
            'employees': [{'empCode': 'BM1', 'name': 'BM One', 'qty': 40}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        rm_id = response.data['rmId']
        self.assertEqual(response.data['rootId'], root_id)

        self.client.authenticate_user(self.bm)
        response = self.client.post(f'{API}/allocate/bm/', {
            'rootId': root_id, 'rmId': rm_id, 'item': 'Sample Board',
            'employees': [{'empCode': 'E1', 'name': 'Employee One', 'qty': 15}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        bm_record = response.data
        self.assertEqual(bm_record['rmId'], rm_id)

        self.client.authenticate_user(self.employee)
        response = self.client.post(f'{API}/used-sample/', {
            'assignmentId': str(bm_record['id']), 'empCode': 'E1', 'customerId': 'C100', 'qty': 5,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['remaining'], 10)

        response = self.client.get(f'{API}/employee/E1/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['stock'], [{'name': 'Sample Board', 'total': 15, 'used': 5, 'stock': 10}])

        response = self.client.post(f'{API}/dispatch/{root_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertFalse(AllocationRecord.objects.filter(to_vendor=True).exists())

        original = AllocationRecord.objects.get(root_id=root_id, level=AllocationRecord.LEVEL_ADMIN)
        original.purpose = 'Project X'
        original.save()

        response = self.client.post(f'{API}/dispatch/{root_id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['modified'], 3)
        self.assertEqual(AllocationRecord.objects.filter(root_id=root_id, to_vendor=True).count(), 3)
        self.assertTrue(AuditLog.objects.filter(action='vendor_dispatch', object_id=root_id).exists())

    def test_admin_create_requires_admin(self):
        self.client.authenticate_user(self.rm)
        response = self.client.post(f'{API}/admin/', {
            'item': 'Board', 'employees': [{'empCode': 'RM1', 'qty': 5}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unauthenticated_requests_rejected(self):
        response = self.client.get(f'{API}/employee/E1/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_validation_errors(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post(f'{API}/admin/', {'item': 'Board', 'employees': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('employees', response.data['errors'])

        self.client.authenticate_user(self.rm)
        response = self.client.post(f'{API}/allocate/rm/', {
            'item': 'Board', 'employees': [{'empCode': 'BM1', 'qty': 5}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'rootId is required')

        response = self.client.post(f'{API}/allocate/rm/', {
            'rootId': 'ROOT-NOPE', 'item': 'Board', 'employees': [{'empCode': 'BM1', 'qty': 5}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_creation_is_audited(self):
        root = self._allocate_root()
        log = AuditLog.objects.get(action='allocation_create')
        self.assertEqual(log.object_reference, root['rootId'])
        self.assertEqual(log.user, self.admin)

    def test_used_sample_overdraw_returns_400(self):
        root = self._allocate_root(qty=10)
        self.client.authenticate_user(self.rm)
        body = {'assignmentId': str(root['id']), 'empCode': 'RM1', 'customerId': 'C1', 'qty': 10}
        first = self.client.post(f'{API}/used-sample/', body, format='json')
        second = self.client.post(f'{API}/used-sample/', body, format='json')
        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertEqual(second.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(second.data['message'], 'Not enough stock. Available: 0, Requested: 10')

    def test_used_sample_errors(self):
        root = self._allocate_root(qty=10)
        self.client.authenticate_user(self.rm)
        response = self.client.post(f'{API}/used-sample/', {
            'assignmentId': str(root['id']), 'empCode': 'RM1', 'customerId': 'C1', 'qty': 0,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'{API}/used-sample/', {
            'assignmentId': '999999', 'empCode': 'RM1', 'customerId': 'C1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.post(f'{API}/used-sample/', {
            'assignmentId': str(root['id']), 'empCode': 'NOBODY', 'customerId': 'C1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['message'], 'Employee not found in this assignment')

    def test_dispatch_unknown_lineage_returns_404(self):
        self.client.authenticate_user(self.employee)
        response = self.client.post(f'{API}/dispatch/ROOT-NOPE/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_stock_endpoints_use_token_identity(self):
        root = self._allocate_root(qty=50)
        self.client.authenticate_user(self.rm)
        response = self.client.get(f'{API}/regional/stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['stock'][0]['total'], 50)
        self.assertEqual(response.data['assignments'][0]['rootId'], root['rootId'])

        self.client.authenticate_user(self.bm)
        self.client.post(f'{API}/allocate/bm/', {
            'rootId': root['rootId'], 'item': 'Sample Board', 'employees': [{'empCode': 'E1', 'qty': 5}],
        }, format='json')
        response = self.client.get(f'{API}/branch/stock/')
        # Self-created record is listed, but only received lines count as stock
        self.assertEqual(len(response.data['assignments']), 1)
        self.assertEqual(response.data['stock'], [])

        response = self.client.get(f'{API}/manager/stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_lr_endpoints(self):
        root = self._allocate_root(purpose='Project')
        self.client.authenticate_user(self.vendor)
        response = self.client.put(f'{API}/vendor/lr/{root["rootId"]}/', {'lrNo': 'LR-100'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['modified'], 1)

        response = self.client.put(f'{API}/lr/{root["rootId"]}/', {'lrNo': ''}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        record = AllocationRecord.objects.get(root_id=root['rootId'])
        self.assertEqual(record.lr_no, 'LR-100')
        self.assertEqual(record.lr_updated_by, 'V1')

    def test_vendor_list_permissions(self):
        root = self._allocate_root(purpose='Marketing')
        self._allocate_root(purpose='Project')
        self.client.authenticate_user(self.admin)
        self.client.post(f'{API}/dispatch/{root["rootId"]}/')

        self.client.authenticate_user(self.employee)
        self.assertEqual(self.client.get(f'{API}/vendor/list/').status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.vendor)
        response = self.client.get(f'{API}/vendor/list/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([r['rootId'] for r in response.data], [root['rootId']])
        self.assertEqual(response.data[0]['purposeTag'], 'marketing')

    def test_pod_endpoint(self):
        root = self._allocate_root()
        self.client.authenticate_user(self.employee)
        response = self.client.put(f'{API}/pod/{root["rootId"]}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.admin)
        response = self.client.put(f'{API}/pod/{root["rootId"]}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(AllocationRecord.objects.get(root_id=root['rootId']).pod_updated_for_emp)

        response = self.client.put(f'{API}/pod/ROOT-NOPE/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_admin_history_filters(self):
        root = self._allocate_root()
        self._allocate_root(item='Tile Kit')
        self.client.authenticate_user(self.rm)
        self.client.post(f'{API}/allocate/rm/', {
            'rootId': root['rootId'], 'item': 'Sample Board', 'employees': [{'empCode': 'BM1', 'qty': 5}],
        }, format='json')

        self.client.authenticate_user(self.admin)
        response = self.client.get(f'{API}/history/admin/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 3)
        # Newest first
        self.assertEqual(response.data[0]['level'], 'rm')

        response = self.client.get(f'{API}/history/admin/?level=rm')
        self.assertEqual(len(response.data), 1)
        response = self.client.get(f'{API}/history/admin/', {'item': 'tile kit'})
        self.assertEqual(len(response.data), 1)
        response = self.client.get(f'{API}/history/admin/?toVendor=true')
        self.assertEqual(response.data, [])

        self.client.authenticate_user(self.rm)
        self.assertEqual(self.client.get(f'{API}/history/admin/').status_code, status.HTTP_403_FORBIDDEN)


class ReportTests(TestCase):
    """Test ledger, summary and region usage reports"""

    def setUp(self):
        cache.clear()
        self.chain = TestDataFactory.create_chain(qty=10)
        self.client = AuthenticatedAPIClient()

    def test_ledger_nests_levels(self):
        [tree] = reports.build_ledger()
        self.assertEqual(tree['rootId'], self.chain['admin'].root_id)
        [rm_node] = tree['children']
        self.assertEqual(rm_node['rmId'], self.chain['rm'].rm_id)
        [bm_node] = rm_node['children']
        self.assertEqual(bm_node['bmId'], self.chain['bm'].bm_id)
        [manager_node] = bm_node['children']
        self.assertEqual(manager_node['managerId'], self.chain['manager'].manager_id)
        self.assertEqual(manager_node['employees'][0]['empCode'], 'EMP001')

    def test_summary_totals(self):
        summary = reports.build_summary()
        self.assertEqual(summary['totalProduction'], 10)
        self.assertEqual(summary['totalAssigned'], 40)
        self.assertEqual(summary['totalStock'], 40)
        self.assertEqual(summary['lotBreakdown']['Lot 1']['production'], 10)
        self.assertEqual(set(summary['lotBreakdown']), {'Lot 1', 'Lot 2', 'Lot 3'})

    def test_summary_cache_invalidated_by_usage(self):
        self.assertEqual(reports.build_summary()['totalUsed'], 0)
        services.record_usage(self.chain['manager'].id, 'EMP001', 'C1', 3)
        summary = reports.build_summary()
        self.assertEqual(summary['totalUsed'], 3)
        self.assertEqual(summary['totalStock'], 37)

    def test_summary_other_year_is_empty(self):
        summary = reports.build_summary(year='1999')
        self.assertEqual(summary['year'], 1999)
        self.assertEqual(summary['totalAssigned'], 0)

    def test_region_usage(self):
        services.record_usage(self.chain['manager'].id, 'EMP001', 'C1', 2)
        services.record_usage(self.chain['manager'].id, 'EMP001', 'C2', 1)
        usage = reports.region_usage('North')
        self.assertEqual(usage['items'], [{'name': 'Tiles Sample Kit', 'total': 40, 'used': 3, 'stock': 37}])
        top = usage['employees'][0]
        self.assertEqual((top['empCode'], top['used'], top['customers']), ('EMP001', 3, 2))

    def test_report_endpoints(self):
        self.client.authenticate_user(self.chain['users']['admin'])
        self.assertEqual(self.client.get(f'{API}/ledger/').status_code, status.HTTP_200_OK)
        response = self.client.get(f'{API}/summary/', {'lot': 'Lot 1'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['totalAssigned'], 40)
        response = self.client.get(f'{API}/region-usage/?region=South')
        self.assertEqual(response.data['items'], [])

        self.client.authenticate_user(self.chain['users']['employee'])
        self.assertEqual(self.client.get(f'{API}/summary/').status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.get(f'{API}/region-usage/?region=South')
        # Non-admins always get their own region
        self.assertEqual(response.data['region'], 'North')


class IntegrityCommandTests(TestCase):
    """Test the check_allocation_integrity management command"""

    def setUp(self):
        self.record = TestDataFactory.create_allocation(employees=[('E1', 10)])
        services.record_usage(self.record.id, 'E1', 'C1', 2)
        self.line = AllocationLine.objects.get(record=self.record)

    def test_clean_ledger(self):
        out = StringIO()
        call_command('check_allocation_integrity', stdout=out)
        self.assertIn('No discrepancies found', out.getvalue())

    def test_mismatch_reported_and_fixed(self):
        AllocationLine.objects.filter(pk=self.line.pk).update(used_qty=7)
        out = StringIO()
        call_command('check_allocation_integrity', stdout=out)
        self.assertIn('[MISMATCH]', out.getvalue())
        self.line.refresh_from_db()
        self.assertEqual(self.line.used_qty, 7)

        call_command('check_allocation_integrity', '--fix', stdout=StringIO())
        self.line.refresh_from_db()
        self.assertEqual(self.line.used_qty, 2)

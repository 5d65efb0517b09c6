from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from sqlalchemy import select

from db_support import add_company, add_principal, add_project, make_session
from farmvault.config import settings
from farmvault.models import (
    AuditLog,
    ExpenseCategory,
    InventoryCategory,
    InventoryUsage,
    PackagingType,
    PrincipalRole,
    UsageSource,
    WorkCardStatus,
)
from farmvault.services.inventory_service import create_item
from farmvault.services.work_card_service import (
    approve_work_card,
    can_admin_approve_or_reject,
    can_manager_submit,
    can_mark_as_paid,
    create_work_card,
    list_work_cards_for_company,
    list_work_cards_for_managers,
    mark_work_card_paid,
    reject_work_card,
    submit_execution,
    update_work_card,
)


class WorkCardGuardTests(unittest.TestCase):
    def test_manager_submit_requires_allocation_and_open_status(self) -> None:
        card = SimpleNamespace(allocated_manager_id=5, status=WorkCardStatus.PLANNED)
        self.assertTrue(can_manager_submit(card, 5))
        self.assertTrue(can_manager_submit(card, [3, 5]))
        self.assertFalse(can_manager_submit(card, 6))

        card.status = WorkCardStatus.REJECTED
        self.assertTrue(can_manager_submit(card, 5))
        for status in (WorkCardStatus.SUBMITTED, WorkCardStatus.APPROVED, WorkCardStatus.PAID):
            card.status = status
            self.assertFalse(can_manager_submit(card, 5))

        unallocated = SimpleNamespace(allocated_manager_id=None, status=WorkCardStatus.PLANNED)
        self.assertFalse(can_manager_submit(unallocated, 5))

    def test_approve_and_pay_guards(self) -> None:
        self.assertTrue(can_admin_approve_or_reject(SimpleNamespace(status=WorkCardStatus.SUBMITTED)))
        self.assertFalse(can_admin_approve_or_reject(SimpleNamespace(status=WorkCardStatus.PLANNED)))
        self.assertTrue(can_mark_as_paid(SimpleNamespace(status=WorkCardStatus.APPROVED, is_paid=False)))
        self.assertFalse(can_mark_as_paid(SimpleNamespace(status=WorkCardStatus.APPROVED, is_paid=True)))
        self.assertFalse(can_mark_as_paid(SimpleNamespace(status=WorkCardStatus.SUBMITTED, is_paid=False)))


class WorkCardServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.company = add_company(self.db)
        self.admin = add_principal(self.db, self.company, username='admin', role=PrincipalRole.COMPANY_ADMIN)
        self.manager = add_principal(self.db, self.company, username='manager', role=PrincipalRole.MANAGER)
        self.project = add_project(self.db, self.company, planting_date=date(2024, 3, 1))

    def tearDown(self) -> None:
        self.db.close()

    def _card(self, **planned):
        return create_work_card(
            self.db,
            company_id=self.company.id,
            project_id=self.project.id,
            work_title='Spraying',
            work_category='Spraying',
            created_by_principal_id=self.admin.id,
            stage_name='Flowering',
            allocated_manager_id=self.manager.id,
            planned=planned or None,
        )

    def _submit(self, card, **kwargs):
        return submit_execution(
            self.db,
            company_id=self.company.id,
            card_id=card.id,
            manager_id=self.manager.id,
            manager_name='Manager',
            **kwargs,
        )

    def _approve(self, card):
        return approve_work_card(
            self.db, company_id=self.company.id, card_id=card.id, approved_by_principal_id=self.admin.id
        )

    def _boxed_chemical(self, boxes: str):
        return create_item(
            self.db,
            company_id=self.company.id,
            name='Mancozeb',
            category=InventoryCategory.CHEMICAL,
            quantity=Decimal(boxes),
            unit='boxes',
            packaging_type=PackagingType.BOX,
            units_per_box=10,
        )

    def test_create_starts_planned_and_is_audited(self) -> None:
        card = self._card(planned_workers=6, planned_date=date(2024, 4, 2))
        self.assertEqual(card.status, WorkCardStatus.PLANNED)
        self.assertEqual(card.planned_workers, 6)
        self.assertEqual(card.actual_history, [])
        self.db.flush()
        actions = self.db.execute(select(AuditLog.action)).scalars().all()
        self.assertIn('WORK_CREATED', actions)

    def test_create_requires_title_and_known_project(self) -> None:
        with self.assertRaisesRegex(ValueError, 'Work title is required'):
            create_work_card(
                self.db,
                company_id=self.company.id,
                project_id=self.project.id,
                work_title=' ',
                work_category='Spraying',
                created_by_principal_id=self.admin.id,
            )
        with self.assertRaisesRegex(ValueError, 'Project not found'):
            create_work_card(
                self.db,
                company_id=self.company.id,
                project_id=self.project.id + 100,
                work_title='Weeding',
                work_category='Weeding',
                created_by_principal_id=self.admin.id,
            )

    def test_update_reports_whether_anything_changed(self) -> None:
        card = self._card()
        self.assertFalse(
            update_work_card(self.db, company_id=self.company.id, card_id=card.id, actor_principal_id=self.admin.id)
        )
        self.assertTrue(
            update_work_card(
                self.db,
                company_id=self.company.id,
                card_id=card.id,
                actor_principal_id=self.admin.id,
                allocated_manager_id=None,
                planned={'planned_workers': 3},
            )
        )
        self.assertIsNone(card.allocated_manager_id)
        self.assertEqual(card.planned_workers, 3)
        with self.assertRaisesRegex(ValueError, 'Unknown planned field'):
            update_work_card(
                self.db,
                company_id=self.company.id,
                card_id=card.id,
                actor_principal_id=self.admin.id,
                planned={'status': 'PAID'},
            )

    def test_only_allocated_manager_can_submit(self) -> None:
        card = self._card()
        other = add_principal(self.db, self.company, username='other')
        with self.assertRaises(PermissionError):
            submit_execution(
                self.db, company_id=self.company.id, card_id=card.id, manager_id=other.id, manager_name='Other'
            )
        self._submit(card, actual_workers=4)
        self.assertEqual(card.status, WorkCardStatus.SUBMITTED)
        with self.assertRaises(PermissionError):
            self._submit(card, actual_workers=5)

    def test_approve_requires_submission(self) -> None:
        card = self._card()
        with self.assertRaisesRegex(PermissionError, 'Only submitted cards can be approved'):
            self._approve(card)
        with self.assertRaisesRegex(PermissionError, 'Only submitted cards can be rejected'):
            reject_work_card(
                self.db,
                company_id=self.company.id,
                card_id=card.id,
                rejection_reason='Wrong block',
                actor_principal_id=self.admin.id,
            )

    def test_reject_then_resubmit_keeps_history(self) -> None:
        card = self._card()
        self._submit(card, actual_workers=4, rate_per_person=Decimal('300'))
        with self.assertRaisesRegex(ValueError, 'Rejection reason is required'):
            reject_work_card(
                self.db, company_id=self.company.id, card_id=card.id, rejection_reason=' ', actor_principal_id=self.admin.id
            )
        reject_work_card(
            self.db,
            company_id=self.company.id,
            card_id=card.id,
            rejection_reason='Count is wrong',
            actor_principal_id=self.admin.id,
        )
        self.assertEqual(card.status, WorkCardStatus.REJECTED)

        self._submit(card, actual_workers=5, rate_per_person=Decimal('300'))

        self.assertEqual(card.status, WorkCardStatus.SUBMITTED)
        self.assertEqual(card.actual_workers, 5)
        self.assertEqual(len(card.actual_history), 1)
        self.assertEqual(card.actual_history[0]['actual_workers'], 4)
        self.assertEqual(card.actual_history[0]['rejection_reason'], 'Count is wrong')

    def test_approval_deducts_boxed_chemical_by_units_per_box(self) -> None:
        item = self._boxed_chemical('3')
        card = self._card()
        self._submit(card, resource_item_id=item.id, resource_quantity=Decimal('15'))

        self._approve(card)

        self.assertEqual(card.status, WorkCardStatus.APPROVED)
        self.assertEqual(card.approved_by_principal_id, self.admin.id)
        self.assertEqual(item.quantity, Decimal('1.5'))
        usage = self.db.execute(select(InventoryUsage)).scalar_one()
        self.assertEqual(usage.source, UsageSource.WORK_CARD)
        self.assertEqual(usage.quantity, Decimal('15'))
        self.assertEqual(usage.unit, 'units')
        self.assertEqual(usage.work_card_id, card.id)

    def test_insufficient_stock_leaves_card_submitted(self) -> None:
        item = self._boxed_chemical('1')
        card = self._card()
        self._submit(card, resource_item_id=item.id, resource_quantity=Decimal('25'))

        with self.assertRaisesRegex(ValueError, 'Insufficient stock: Mancozeb has 10 units, need 25 units'):
            self._approve(card)

        self.assertEqual(card.status, WorkCardStatus.SUBMITTED)
        self.assertEqual(item.quantity, Decimal('1'))

    def test_paying_records_labour_expense(self) -> None:
        card = self._card()
        self._submit(card, actual_workers=4, rate_per_person=Decimal('350'))
        with self.assertRaises(PermissionError):
            mark_work_card_paid(
                self.db, company_id=self.company.id, card_id=card.id, paid_by_principal_id=self.admin.id
            )
        self._approve(card)

        expense = mark_work_card_paid(
            self.db,
            company_id=self.company.id,
            card_id=card.id,
            paid_by_principal_id=self.admin.id,
            paid_by_name='Admin',
        )

        self.assertEqual(card.status, WorkCardStatus.PAID)
        self.assertTrue(card.is_paid)
        self.assertEqual(expense.category, ExpenseCategory.LABOUR)
        self.assertEqual(expense.amount, Decimal('1400.00'))
        self.assertEqual(expense.description, f'Labour - Spraying (4 × {settings.currency_label} 350)')
        self.assertEqual(expense.stage_name, 'Flowering')
        self.assertTrue(expense.paid)
        with self.assertRaises(PermissionError):
            mark_work_card_paid(
                self.db, company_id=self.company.id, card_id=card.id, paid_by_principal_id=self.admin.id
            )

    def test_zero_labour_card_is_paid_without_expense(self) -> None:
        card = self._card()
        self._submit(card)
        self._approve(card)
        self.assertIsNone(
            mark_work_card_paid(self.db, company_id=self.company.id, card_id=card.id, paid_by_principal_id=self.admin.id)
        )
        self.assertEqual(card.status, WorkCardStatus.PAID)

    def test_manager_listing_only_returns_allocated_cards(self) -> None:
        mine = self._card()
        create_work_card(
            self.db,
            company_id=self.company.id,
            project_id=self.project.id,
            work_title='Weeding',
            work_category='Weeding',
            created_by_principal_id=self.admin.id,
        )
        cards = list_work_cards_for_managers(self.db, company_id=self.company.id, manager_ids=[self.manager.id])
        self.assertEqual([card.id for card in cards], [mine.id])
        self.assertEqual(list_work_cards_for_managers(self.db, company_id=self.company.id, manager_ids=[]), [])
        self.assertEqual(len(list_work_cards_for_company(self.db, company_id=self.company.id)), 2)


if __name__ == '__main__':
    unittest.main()

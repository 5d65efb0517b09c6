from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select

from db_support import add_company, add_principal, add_project, make_session
from farmvault.models import (
    CollectionCashUsage,
    Harvest,
    HarvestCollectionStatus,
    HarvestPaymentBatch,
    PrincipalRole,
    Sale,
)
from farmvault.services.harvest_collection_service import (
    CARRY_FORWARD_SOURCE,
    add_picker,
    add_weigh_entry,
    create_collection,
    get_cash_pool,
    get_wallet,
    mark_picker_paid,
    mark_pickers_paid_in_batch,
    pay_pickers_from_wallet,
    register_harvest_cash,
    set_buyer_price,
    top_up_wallet,
)


class HarvestCollectionServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.company = add_company(self.db)
        self.manager = add_principal(self.db, self.company, username='manager', role=PrincipalRole.MANAGER)
        self.project = add_project(self.db, self.company, planting_date=date(2024, 3, 1))

    def tearDown(self) -> None:
        self.db.close()

    def _collection(self, project=None, name='First picking', price='20'):
        project = project or self.project
        return create_collection(
            self.db,
            company_id=self.company.id,
            project_id=project.id,
            name=name,
            harvest_date=date(2024, 5, 1),
            price_per_kg_picker=Decimal(price),
            created_by_principal_id=self.manager.id,
        )

    def _picker(self, collection, number, name, *weights):
        picker = add_picker(
            self.db,
            company_id=self.company.id,
            collection_id=collection.id,
            picker_number=number,
            picker_name=name,
        )
        for weight in weights:
            add_weigh_entry(self.db, company_id=self.company.id, picker_id=picker.id, weight_kg=Decimal(weight))
        return picker

    def _count(self, model) -> int:
        return self.db.execute(select(func.count()).select_from(model)).scalar_one()

    def test_weigh_entries_update_picker_and_collection_totals(self) -> None:
        collection = self._collection()
        first = self._picker(collection, 1, 'Akinyi', '10.5', '2')
        self._picker(collection, 2, 'Wanjiru', '3.3')

        self.assertEqual(first.total_kg, Decimal('12.5'))
        self.assertEqual(first.total_pay, Decimal('250'))
        self.assertEqual(collection.total_harvest_kg, Decimal('15.8'))
        self.assertEqual(collection.total_picker_cost, Decimal('316.00'))
        self.assertEqual(collection.status, HarvestCollectionStatus.COLLECTING)

    def test_picker_numbers_are_unique_within_a_collection(self) -> None:
        collection = self._collection()
        self._picker(collection, 7, 'Akinyi')
        with self.assertRaisesRegex(ValueError, 'Picker number 7 is already used in this collection'):
            self._picker(collection, 7, 'Otieno')

        other = self._collection(name='Second picking')
        self.assertEqual(self._picker(other, 7, 'Otieno').picker_number, 7)

    def test_invalid_inputs_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self._collection(price='0')
        collection = self._collection()
        picker = self._picker(collection, 1, 'Akinyi')
        with self.assertRaises(ValueError):
            add_weigh_entry(self.db, company_id=self.company.id, picker_id=picker.id, weight_kg=Decimal('0'))
        with self.assertRaises(ValueError):
            add_picker(self.db, company_id=self.company.id, collection_id=collection.id, picker_number=2, picker_name=' ')

    def test_top_up_creates_then_increments_wallet(self) -> None:
        kwargs = {'company_id': self.company.id, 'project_id': self.project.id, 'crop_type': 'french-beans'}
        top_up_wallet(self.db, amount=Decimal('100'), **kwargs)
        wallet = top_up_wallet(self.db, amount=Decimal('250.5'), **kwargs)

        self.assertEqual(wallet.current_balance, Decimal('350.50'))
        self.assertEqual(wallet.cash_received_total, Decimal('350.50'))
        self.assertIs(get_wallet(self.db, **kwargs), wallet)
        with self.assertRaises(ValueError):
            top_up_wallet(self.db, amount=Decimal('0'), **kwargs)

    def test_wallet_payout_with_insufficient_balance_changes_nothing(self) -> None:
        collection = self._collection()
        picker = self._picker(collection, 1, 'Akinyi', '12.5')
        wallet = top_up_wallet(
            self.db, company_id=self.company.id, project_id=self.project.id, crop_type='french-beans', amount=Decimal('100')
        )

        with self.assertRaisesRegex(ValueError, 'Not enough cash in Harvest Wallet'):
            pay_pickers_from_wallet(
                self.db, company_id=self.company.id, collection_id=collection.id, picker_ids=[picker.id]
            )

        self.assertEqual(wallet.current_balance, Decimal('100.00'))
        self.assertFalse(picker.is_paid)
        self.assertEqual(self._count(CollectionCashUsage), 0)
        self.assertEqual(self._count(HarvestPaymentBatch), 0)

    def test_wallet_payout_pays_unpaid_pickers_in_one_batch(self) -> None:
        collection = self._collection()
        first = self._picker(collection, 1, 'Akinyi', '12.5')
        second = self._picker(collection, 2, 'Wanjiru', '5')
        wallet = top_up_wallet(
            self.db, company_id=self.company.id, project_id=self.project.id, crop_type='french-beans', amount=Decimal('500')
        )

        batch = pay_pickers_from_wallet(
            self.db,
            company_id=self.company.id,
            collection_id=collection.id,
            picker_ids=[first.id, second.id],
            paid_by_principal_id=self.manager.id,
        )

        self.assertEqual(batch.total_amount, Decimal('350.00'))
        self.assertEqual(sorted(batch.picker_ids), sorted([first.id, second.id]))
        self.assertEqual(wallet.current_balance, Decimal('150.00'))
        self.assertEqual(wallet.cash_paid_out_total, Decimal('350.00'))
        self.assertTrue(first.is_paid and second.is_paid)
        self.assertEqual(first.payment_batch_id, batch.id)
        self.assertEqual(collection.status, HarvestCollectionStatus.PAYOUT_COMPLETE)

        with self.assertRaisesRegex(ValueError, 'already paid'):
            pay_pickers_from_wallet(
                self.db, company_id=self.company.id, collection_id=collection.id, picker_ids=[first.id]
            )

    def test_cash_pool_mirrors_payouts_and_never_goes_negative(self) -> None:
        collection = self._collection()
        picker = self._picker(collection, 1, 'Akinyi', '12.5')
        pool = register_harvest_cash(
            self.db,
            company_id=self.company.id,
            collection_id=collection.id,
            amount=Decimal('100'),
            source='broker advance',
            received_by='manager',
        )
        top_up_wallet(
            self.db, company_id=self.company.id, project_id=self.project.id, crop_type='french-beans', amount=Decimal('200')
        )

        pay_pickers_from_wallet(self.db, company_id=self.company.id, collection_id=collection.id, picker_ids=[picker.id])

        self.assertEqual(pool.total_paid_out, Decimal('250.00'))
        self.assertEqual(pool.remaining_balance, Decimal('0'))
        wallet = get_wallet(self.db, company_id=self.company.id, project_id=self.project.id, crop_type='french-beans')
        self.assertEqual(wallet.current_balance, Decimal('50.00'))

    def test_new_collection_carries_forward_remaining_pool_cash(self) -> None:
        first = self._collection()
        picker = self._picker(first, 1, 'Akinyi', '12.5')
        register_harvest_cash(
            self.db,
            company_id=self.company.id,
            collection_id=first.id,
            amount=Decimal('1000'),
            source='cash',
            received_by='manager',
        )
        pay_pickers_from_wallet(self.db, company_id=self.company.id, collection_id=first.id, picker_ids=[picker.id])

        second = self._collection(name='Second picking')
        carried = get_cash_pool(self.db, collection_id=second.id)

        self.assertIsNotNone(carried)
        self.assertEqual(carried.source, CARRY_FORWARD_SOURCE)
        self.assertEqual(carried.cash_received, Decimal('750.00'))
        self.assertEqual(carried.remaining_balance, Decimal('750.00'))

    def test_non_wallet_crop_is_paid_by_batch_marking(self) -> None:
        tomatoes = add_project(self.db, self.company, name='Block T', crop_type='tomatoes')
        collection = self._collection(project=tomatoes)
        first = self._picker(collection, 1, 'Akinyi', '4')
        second = self._picker(collection, 2, 'Wanjiru', '6')

        with self.assertRaisesRegex(ValueError, 'not paid from the harvest wallet'):
            pay_pickers_from_wallet(self.db, company_id=self.company.id, collection_id=collection.id, picker_ids=[first.id])

        mark_picker_paid(self.db, company_id=self.company.id, picker_id=first.id)
        self.assertTrue(first.is_paid)
        self.assertEqual(collection.status, HarvestCollectionStatus.COLLECTING)

        batch = mark_pickers_paid_in_batch(
            self.db, company_id=self.company.id, collection_id=collection.id, picker_ids=[first.id, second.id]
        )
        self.assertEqual(batch.picker_ids, [second.id])
        self.assertNotEqual(first.payment_batch_id, second.payment_batch_id)
        self.assertEqual(collection.status, HarvestCollectionStatus.PAYOUT_COMPLETE)

    def test_closing_requires_all_pickers_paid(self) -> None:
        collection = self._collection()
        self._picker(collection, 1, 'Akinyi', '12.5')
        with self.assertRaisesRegex(PermissionError, 'some pickers are still unpaid'):
            set_buyer_price(
                self.db,
                company_id=self.company.id,
                collection_id=collection.id,
                price_per_kg_buyer=Decimal('100'),
                mark_buyer_paid=True,
            )

        sold = set_buyer_price(
            self.db, company_id=self.company.id, collection_id=collection.id, price_per_kg_buyer=Decimal('100')
        )
        self.assertEqual(sold.status, HarvestCollectionStatus.SOLD)
        self.assertEqual(sold.total_revenue, Decimal('1250.00'))
        self.assertEqual(sold.profit, Decimal('1000.00'))
        self.assertEqual(self._count(Harvest), 0)

    def test_close_writes_harvest_and_sale_once(self) -> None:
        collection = self._collection()
        picker = self._picker(collection, 1, 'Akinyi', '12.5')
        top_up_wallet(
            self.db, company_id=self.company.id, project_id=self.project.id, crop_type='french-beans', amount=Decimal('250')
        )
        pay_pickers_from_wallet(self.db, company_id=self.company.id, collection_id=collection.id, picker_ids=[picker.id])

        set_buyer_price(
            self.db,
            company_id=self.company.id,
            collection_id=collection.id,
            price_per_kg_buyer=Decimal('100'),
            mark_buyer_paid=True,
        )
        with self.assertRaisesRegex(PermissionError, 'Collection is closed'):
            set_buyer_price(
                self.db,
                company_id=self.company.id,
                collection_id=collection.id,
                price_per_kg_buyer=Decimal('100'),
                mark_buyer_paid=True,
            )

        self.assertEqual(collection.status, HarvestCollectionStatus.CLOSED)
        self.assertEqual(self._count(Harvest), 1)
        self.assertEqual(self._count(Sale), 1)
        sale = self.db.execute(select(Sale)).scalar_one()
        self.assertEqual(sale.buyer_name, 'Buyer (collections)')
        self.assertEqual(sale.total_amount, Decimal('1250.00'))

        with self.assertRaisesRegex(PermissionError, 'Collection is closed'):
            self._picker(collection, 2, 'Late')

    def test_closed_collection_cannot_be_repriced_or_reopened(self) -> None:
        collection = self._collection()
        picker = self._picker(collection, 1, 'Akinyi', '12.5')
        top_up_wallet(
            self.db, company_id=self.company.id, project_id=self.project.id, crop_type='french-beans', amount=Decimal('250')
        )
        mark_picker_paid(self.db, company_id=self.company.id, picker_id=picker.id)
        set_buyer_price(
            self.db,
            company_id=self.company.id,
            collection_id=collection.id,
            price_per_kg_buyer=Decimal('100'),
            mark_buyer_paid=True,
        )

        with self.assertRaisesRegex(PermissionError, 'Collection is closed'):
            set_buyer_price(
                self.db, company_id=self.company.id, collection_id=collection.id, price_per_kg_buyer=Decimal('50')
            )

        self.assertEqual(collection.status, HarvestCollectionStatus.CLOSED)
        self.assertEqual(collection.price_per_kg_buyer, Decimal('100.00'))
        self.assertEqual(collection.total_revenue, Decimal('1250.00'))
        with self.assertRaisesRegex(PermissionError, 'Collection is closed'):
            self._picker(collection, 2, 'Late')

    def test_batch_marking_on_wallet_crop_draws_from_wallet(self) -> None:
        collection = self._collection()
        picker = self._picker(collection, 1, 'Akinyi', '10')
        idle = self._picker(collection, 2, 'Wanjiru')
        wallet = top_up_wallet(
            self.db, company_id=self.company.id, project_id=self.project.id, crop_type='french-beans', amount=Decimal('50')
        )

        with self.assertRaisesRegex(ValueError, 'Not enough cash in Harvest Wallet'):
            mark_pickers_paid_in_batch(
                self.db, company_id=self.company.id, collection_id=collection.id, picker_ids=[picker.id]
            )
        self.assertFalse(picker.is_paid)
        self.assertEqual(wallet.current_balance, Decimal('50.00'))
        self.assertEqual(self._count(HarvestPaymentBatch), 0)

        top_up_wallet(
            self.db, company_id=self.company.id, project_id=self.project.id, crop_type='french-beans', amount=Decimal('150')
        )
        batch = mark_pickers_paid_in_batch(
            self.db, company_id=self.company.id, collection_id=collection.id, picker_ids=[picker.id]
        )
        self.assertEqual(batch.total_amount, Decimal('200.00'))
        self.assertTrue(picker.is_paid)
        self.assertEqual(wallet.current_balance, Decimal('0.00'))
        self.assertEqual(wallet.cash_paid_out_total, Decimal('200.00'))
        self.assertEqual(self._count(CollectionCashUsage), 1)

        # Nothing owed, so nothing leaves the wallet.
        mark_picker_paid(self.db, company_id=self.company.id, picker_id=idle.id)
        self.assertTrue(idle.is_paid)
        self.assertEqual(wallet.cash_paid_out_total, Decimal('200.00'))

    def test_cash_is_only_registered_for_wallet_crops(self) -> None:
        tomatoes = add_project(self.db, self.company, name='Block T', crop_type='tomatoes')
        collection = self._collection(project=tomatoes)

        with self.assertRaisesRegex(ValueError, 'not paid from the harvest wallet'):
            register_harvest_cash(
                self.db,
                company_id=self.company.id,
                collection_id=collection.id,
                amount=Decimal('100'),
                source='cash',
                received_by='manager',
            )
        self.assertIsNone(get_cash_pool(self.db, collection_id=collection.id))
        self.assertIsNone(get_wallet(self.db, company_id=self.company.id, project_id=tomatoes.id, crop_type='tomatoes'))

    def test_paid_picker_takes_no_more_weight(self) -> None:
        tomatoes = add_project(self.db, self.company, name='Block T', crop_type='tomatoes')
        collection = self._collection(project=tomatoes)
        picker = self._picker(collection, 1, 'Akinyi', '4')
        mark_picker_paid(self.db, company_id=self.company.id, picker_id=picker.id)

        with self.assertRaisesRegex(ValueError, 'Picker is already paid'):
            add_weigh_entry(self.db, company_id=self.company.id, picker_id=picker.id, weight_kg=Decimal('2'))
        self.assertEqual(picker.total_kg, Decimal('4'))
        self.assertEqual(picker.total_pay, Decimal('80.00'))
        self.assertEqual(collection.total_picker_cost, Decimal('80.00'))


if __name__ == '__main__':
    unittest.main()

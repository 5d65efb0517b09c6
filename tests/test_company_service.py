from __future__ import annotations

import unittest
from datetime import datetime, timezone

from db_support import add_company, add_principal, make_session
from farmvault.models import CompanyPlan, CompanyStatus, PrincipalRole
from farmvault.security.passwords import verify_password
from farmvault.services.company_service import (
    add_custom_work_type,
    clear_payment_reminder,
    create_company,
    create_company_user,
    list_companies,
    list_company_managers,
    remove_custom_work_type,
    reset_user_password,
    set_company_next_payment,
    set_payment_reminder,
    set_user_active,
    update_company,
)


class CompanyServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()

    def tearDown(self) -> None:
        self.db.close()

    def test_create_company_with_admin(self) -> None:
        company = create_company(
            self.db,
            name=' Green Valley ',
            email='office@greenvalley.test',
            admin_username='gv-admin',
            admin_password='admin-pass-1',
            admin_name='Grace',
        )
        self.assertEqual(company.name, 'Green Valley')
        self.assertEqual(company.status, CompanyStatus.ACTIVE)
        self.assertEqual(company.plan, CompanyPlan.STARTER)
        self.assertEqual(company.user_count, 1)
        self.assertEqual(company.custom_work_types, [])

        rows = list_companies(self.db)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['active_users'], 1)
        self.assertEqual(rows[0]['projects'], 0)

    def test_update_company_reports_changes(self) -> None:
        company = add_company(self.db)
        self.assertFalse(update_company(self.db, company_id=company.id, name='Test Farm', plan=CompanyPlan.STARTER))
        self.assertTrue(update_company(self.db, company_id=company.id, status=CompanyStatus.INACTIVE))
        self.assertEqual(company.status, CompanyStatus.INACTIVE)
        with self.assertRaisesRegex(ValueError, 'Company name is required'):
            update_company(self.db, company_id=company.id, name=' ')

    def test_custom_work_types_are_deduplicated_case_insensitively(self) -> None:
        company = add_company(self.db)
        add_custom_work_type(self.db, company_id=company.id, work_type='Staking')
        self.assertEqual(add_custom_work_type(self.db, company_id=company.id, work_type=' staking '), ['Staking'])
        add_custom_work_type(self.db, company_id=company.id, work_type='Trellising')
        self.assertEqual(remove_custom_work_type(self.db, company_id=company.id, work_type='STAKING'), ['Trellising'])
        with self.assertRaises(ValueError):
            add_custom_work_type(self.db, company_id=company.id, work_type='  ')

    def test_company_users(self) -> None:
        company = add_company(self.db)
        manager = create_company_user(
            self.db,
            company_id=company.id,
            username='field-manager',
            password='manager-pass',
            role=PrincipalRole.MANAGER,
            name='Field Manager',
        )
        self.assertEqual(company.user_count, 2)
        self.assertTrue(verify_password('manager-pass', manager.password_hash))

        with self.assertRaisesRegex(ValueError, 'Username is already in use'):
            create_company_user(
                self.db,
                company_id=company.id,
                username='field-manager',
                password='another-pass',
                role=PrincipalRole.MANAGER,
            )
        with self.assertRaisesRegex(ValueError, 'Role is not assignable'):
            create_company_user(
                self.db,
                company_id=company.id,
                username='dev',
                password='developer-pass',
                role=PrincipalRole.DEVELOPER,
            )
        with self.assertRaisesRegex(ValueError, 'Password must be at least 8 characters'):
            create_company_user(
                self.db,
                company_id=company.id,
                username='short',
                password='short',
                role=PrincipalRole.EMPLOYEE,
            )

        self.assertEqual([p.username for p in list_company_managers(self.db, company_id=company.id)], ['field-manager'])
        set_user_active(self.db, company_id=company.id, principal_id=manager.id, active=False)
        self.assertEqual(list_company_managers(self.db, company_id=company.id), [])

        reset_user_password(self.db, company_id=company.id, principal_id=manager.id, new_password='fresh-pass-2')
        self.assertTrue(verify_password('fresh-pass-2', manager.password_hash))

    def test_user_changes_are_scoped_to_company(self) -> None:
        company = add_company(self.db)
        other = add_company(self.db, name='Other Farm')
        outsider = add_principal(self.db, other, username='outsider')
        with self.assertRaisesRegex(ValueError, 'User not found'):
            set_user_active(self.db, company_id=company.id, principal_id=outsider.id, active=False)
        with self.assertRaisesRegex(ValueError, 'User not found'):
            reset_user_password(self.db, company_id=company.id, principal_id=outsider.id, new_password='fresh-pass-2')

    def test_payment_reminder_set_and_dismissed(self) -> None:
        company = add_company(self.db)
        admin = add_principal(self.db, company, username='admin', role=PrincipalRole.COMPANY_ADMIN)
        set_payment_reminder(self.db, company_id=company.id)
        self.assertTrue(company.payment_reminder_active)
        self.assertIsNone(company.payment_reminder_dismissed_at)

        clear_payment_reminder(self.db, company_id=company.id, dismissed_by_principal_id=admin.id)
        self.assertFalse(company.payment_reminder_active)
        self.assertEqual(company.payment_reminder_dismissed_by, admin.id)

        due = datetime(2024, 6, 1, tzinfo=timezone.utc)
        set_company_next_payment(self.db, company_id=company.id, next_payment_at=due)
        self.assertEqual(company.next_payment_at, due)


if __name__ == '__main__':
    unittest.main()

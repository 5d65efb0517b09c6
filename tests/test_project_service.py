from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from db_support import add_company, make_session
from farmvault.models import ProjectStatus
from farmvault.services.project_service import create_project, list_projects, project_stage_on, project_timeline


class ProjectServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.company = add_company(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def test_create_project_normalizes_crop_and_counts(self) -> None:
        project = create_project(
            self.db,
            company_id=self.company.id,
            name=' Block C ',
            crop_type='French Beans',
            planting_date=date(2024, 3, 1),
            acreage=Decimal('1.5'),
        )
        self.assertEqual(project.name, 'Block C')
        self.assertEqual(project.crop_type, 'french-beans')
        self.assertEqual(project.status, ProjectStatus.ACTIVE)
        self.assertEqual(self.company.project_count, 1)
        self.assertEqual([p.id for p in list_projects(self.db, company_id=self.company.id)], [project.id])

    def test_create_project_rejects_bad_input(self) -> None:
        with self.assertRaisesRegex(ValueError, 'Unknown crop type'):
            create_project(self.db, company_id=self.company.id, name='X', crop_type='coffee', planting_date=None)
        with self.assertRaisesRegex(ValueError, 'Starting stage is out of range'):
            create_project(
                self.db,
                company_id=self.company.id,
                name='X',
                crop_type='maize',
                planting_date=None,
                starting_stage_index=7,
            )
        with self.assertRaisesRegex(ValueError, 'Company not found'):
            create_project(self.db, company_id=self.company.id + 1, name='X', crop_type='rice', planting_date=None)

    def test_timeline_needs_planting_date(self) -> None:
        unplanted = create_project(
            self.db, company_id=self.company.id, name='Nursery', crop_type='tomatoes', planting_date=None
        )
        self.assertEqual(project_timeline(unplanted), [])
        self.assertIsNone(project_stage_on(unplanted, date(2024, 3, 1)))

        seedlings = create_project(
            self.db,
            company_id=self.company.id,
            name='Seedlings',
            crop_type='tomatoes',
            planting_date=date(2024, 3, 1),
            starting_stage_index=1,
        )
        self.assertEqual(project_stage_on(seedlings, date(2024, 3, 1)).name, 'Transplanting')


if __name__ == '__main__':
    unittest.main()

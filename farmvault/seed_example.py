from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select

from farmvault.db import SessionLocal
from farmvault.models import Company, InventoryCategory, PackagingType, Principal, PrincipalRole, Project
from farmvault.security.passwords import hash_password
from farmvault.services.company_service import create_company, create_company_user
from farmvault.services.harvest_collection_service import add_picker, add_weigh_entry, create_collection, list_collections
from farmvault.services.inventory_service import create_item, list_items
from farmvault.services.project_service import create_project


def seed() -> None:
    with SessionLocal() as db:
        developer = db.execute(select(Principal).where(Principal.username == 'developer')).scalar_one_or_none()
        if not developer:
            db.add(
                Principal(
                    username='developer',
                    name='Platform Developer',
                    password_hash=hash_password('developerpass'),
                    role=PrincipalRole.DEVELOPER,
                    company_id=None,
                    active=True,
                )
            )

        company = db.execute(select(Company).where(Company.name == 'Demo Farm')).scalar_one_or_none()
        if not company:
            company = create_company(
                db,
                name='Demo Farm',
                email='owner@demofarm.example',
                admin_username='admin',
                admin_password='adminpass',
                admin_name='Farm Owner',
            )

        manager = db.execute(select(Principal).where(Principal.username == 'manager')).scalar_one_or_none()
        if not manager:
            manager = create_company_user(
                db,
                company_id=company.id,
                username='manager',
                password='managerpass',
                role=PrincipalRole.MANAGER,
                name='Field Manager',
            )

        project = db.execute(
            select(Project).where(Project.company_id == company.id, Project.name == 'Block A French Beans')
        ).scalar_one_or_none()
        if not project:
            project = create_project(
                db,
                company_id=company.id,
                name='Block A French Beans',
                crop_type='french-beans',
                planting_date=date.today() - timedelta(days=50),
                location='Block A',
                acreage=Decimal('2.5'),
                budget=Decimal('250000'),
            )

        if not list_items(db, company_id=company.id):
            create_item(
                db,
                company_id=company.id,
                name='Mancozeb',
                category=InventoryCategory.CHEMICAL,
                quantity=Decimal('4'),
                unit='boxes',
                price_per_unit=Decimal('3200'),
                packaging_type=PackagingType.BOX,
                units_per_box=10,
                min_threshold=Decimal('1'),
            )
            create_item(
                db,
                company_id=company.id,
                name='CAN 50kg',
                category=InventoryCategory.FERTILIZER,
                quantity=Decimal('10'),
                unit='bags',
                price_per_unit=Decimal('3500'),
                bags=10,
                min_threshold=Decimal('2'),
            )
            create_item(
                db,
                company_id=company.id,
                name='Diesel',
                category=InventoryCategory.DIESEL,
                quantity=Decimal('60'),
                unit='litres',
                price_per_unit=Decimal('180'),
                litres=Decimal('60'),
            )

        if not list_collections(db, company_id=company.id, project_id=project.id):
            collection = create_collection(
                db,
                company_id=company.id,
                project_id=project.id,
                name='First picking',
                harvest_date=date.today(),
                price_per_kg_picker=Decimal('20'),
                created_by_principal_id=manager.id,
            )
            for number, name, weight in [(1, 'Akinyi', '12.5'), (2, 'Wanjiru', '9.8'), (3, 'Otieno', '14.2')]:
                picker = add_picker(
                    db,
                    company_id=company.id,
                    collection_id=collection.id,
                    picker_number=number,
                    picker_name=name,
                )
                add_weigh_entry(db, company_id=company.id, picker_id=picker.id, weight_kg=Decimal(weight))

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')

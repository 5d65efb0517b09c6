from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import CITEXT, INET
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER primary keys; it backs the test suite.
BigIntPK = BigInteger().with_variant(Integer(), 'sqlite')
CaseInsensitiveText = Text().with_variant(CITEXT(), 'postgresql')
IPAddress = Text().with_variant(INET(), 'postgresql')


class Base(DeclarativeBase):
    pass


class PrincipalRole(str, Enum):
    DEVELOPER = 'DEVELOPER'
    COMPANY_ADMIN = 'COMPANY_ADMIN'
    MANAGER = 'MANAGER'
    BROKER = 'BROKER'
    EMPLOYEE = 'EMPLOYEE'


class CompanyStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    INACTIVE = 'INACTIVE'
    PENDING = 'PENDING'


class CompanyPlan(str, Enum):
    STARTER = 'STARTER'
    PROFESSIONAL = 'PROFESSIONAL'
    ENTERPRISE = 'ENTERPRISE'


class CropType(str, Enum):
    TOMATOES = 'tomatoes'
    FRENCH_BEANS = 'french-beans'
    CAPSICUM = 'capsicum'
    MAIZE = 'maize'
    WATERMELONS = 'watermelons'
    RICE = 'rice'


class ProjectStatus(str, Enum):
    PLANNING = 'PLANNING'
    ACTIVE = 'ACTIVE'
    COMPLETED = 'COMPLETED'
    ARCHIVED = 'ARCHIVED'


class InventoryCategory(str, Enum):
    FERTILIZER = 'FERTILIZER'
    CHEMICAL = 'CHEMICAL'
    FUEL = 'FUEL'
    DIESEL = 'DIESEL'
    MATERIALS = 'MATERIALS'
    SACKS = 'SACKS'
    ROPES = 'ROPES'
    WOODEN_CRATES = 'WOODEN_CRATES'
    SEEDS = 'SEEDS'


class PackagingType(str, Enum):
    BOX = 'BOX'
    SINGLE = 'SINGLE'


class UsageSource(str, Enum):
    WORK_LOG = 'WORK_LOG'
    MANUAL_ADJUSTMENT = 'MANUAL_ADJUSTMENT'
    WORK_CARD = 'WORK_CARD'


class NeededItemStatus(str, Enum):
    PENDING = 'PENDING'
    ORDERED = 'ORDERED'
    RECEIVED = 'RECEIVED'


class ExpenseCategory(str, Enum):
    LABOUR = 'LABOUR'
    FERTILIZER = 'FERTILIZER'
    CHEMICAL = 'CHEMICAL'
    FUEL = 'FUEL'
    OTHER = 'OTHER'
    SPACE = 'SPACE'
    WATCHMAN = 'WATCHMAN'
    ROPES = 'ROPES'
    CARTON = 'CARTON'
    OFFLOADING_LABOUR = 'OFFLOADING_LABOUR'
    ONLOADING_LABOUR = 'ONLOADING_LABOUR'
    BROKER_PAYMENT = 'BROKER_PAYMENT'


class HarvestCollectionStatus(str, Enum):
    COLLECTING = 'COLLECTING'
    PAYOUT_COMPLETE = 'PAYOUT_COMPLETE'
    SOLD = 'SOLD'
    CLOSED = 'CLOSED'


class SaleStatus(str, Enum):
    PENDING = 'PENDING'
    PARTIAL = 'PARTIAL'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'


class WorkCardStatus(str, Enum):
    PLANNED = 'PLANNED'
    SUBMITTED = 'SUBMITTED'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    PAID = 'PAID'


class ChallengeType(str, Enum):
    WEATHER = 'WEATHER'
    PESTS = 'PESTS'
    DISEASES = 'DISEASES'
    PRICES = 'PRICES'
    LABOR = 'LABOR'
    EQUIPMENT = 'EQUIPMENT'
    OTHER = 'OTHER'


class ChallengeSeverity(str, Enum):
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'


class ChallengeStatus(str, Enum):
    IDENTIFIED = 'IDENTIFIED'
    MITIGATING = 'MITIGATING'
    RESOLVED = 'RESOLVED'


class Company(Base):
    __tablename__ = 'companies'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text)
    status: Mapped[CompanyStatus] = mapped_column(
        SQLEnum(CompanyStatus, name='company_status'), nullable=False, default=CompanyStatus.ACTIVE, server_default='ACTIVE'
    )
    plan: Mapped[CompanyPlan] = mapped_column(
        SQLEnum(CompanyPlan, name='company_plan'), nullable=False, default=CompanyPlan.STARTER, server_default='STARTER'
    )
    subscription_plan: Mapped[str] = mapped_column(Text, nullable=False, default='trial', server_default='trial')
    user_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    project_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    revenue: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    custom_work_types: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    next_payment_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payment_reminder_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    payment_reminder_set_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payment_reminder_dismissed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payment_reminder_dismissed_by: Mapped[int | None] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Principal(Base):
    __tablename__ = 'principals'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    username: Mapped[str] = mapped_column(CaseInsensitiveText, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    email: Mapped[str | None] = mapped_column(Text)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[PrincipalRole] = mapped_column(SQLEnum(PrincipalRole, name='principal_role'), nullable=False)
    company_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('companies.id'))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Project(Base):
    __tablename__ = 'projects'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    crop_type: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ProjectStatus] = mapped_column(
        SQLEnum(ProjectStatus, name='project_status'), nullable=False, default=ProjectStatus.ACTIVE, server_default='ACTIVE'
    )
    location: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    acreage: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal('0'), server_default='0')
    budget: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    planting_date: Mapped[date | None] = mapped_column(Date)
    starting_stage_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryItem(Base):
    __tablename__ = 'inventory_items'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='inventory_items_non_negative_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[InventoryCategory] = mapped_column(SQLEnum(InventoryCategory, name='inventory_category'), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'), server_default='0')
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    price_per_unit: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    packaging_type: Mapped[PackagingType | None] = mapped_column(SQLEnum(PackagingType, name='packaging_type'))
    units_per_box: Mapped[int | None] = mapped_column(Integer)
    fuel_type: Mapped[str | None] = mapped_column(Text)
    containers: Mapped[int | None] = mapped_column(Integer)
    litres: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))
    bags: Mapped[int | None] = mapped_column(Integer)
    kgs: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))
    box_size: Mapped[str | None] = mapped_column(Text)
    crop_types: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    supplier_name: Mapped[str | None] = mapped_column(Text)
    pickup_date: Mapped[date | None] = mapped_column(Date)
    min_threshold: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Expense(Base):
    __tablename__ = 'expenses'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    project_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('projects.id'))
    crop_type: Mapped[str | None] = mapped_column(Text)
    category: Mapped[ExpenseCategory] = mapped_column(SQLEnum(ExpenseCategory, name='expense_category'), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    stage_index: Mapped[int | None] = mapped_column(Integer)
    stage_name: Mapped[str | None] = mapped_column(Text)
    synced_from_work_log_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('work_logs.id'))
    work_card_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('operations_work_cards.id'))
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    paid_by_name: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryPurchase(Base):
    __tablename__ = 'inventory_purchases'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    inventory_item_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('inventory_items.id', ondelete='CASCADE'), nullable=False)
    quantity_added: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    price_per_unit: Mapped[Decimal | None] = mapped_column(Numeric(14, 4))
    project_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('projects.id'))
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    expense_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('expenses.id'))
    created_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryUsage(Base):
    __tablename__ = 'inventory_usage'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    project_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('projects.id'))
    inventory_item_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('inventory_items.id', ondelete='CASCADE'), nullable=False)
    category: Mapped[InventoryCategory] = mapped_column(SQLEnum(InventoryCategory, name='inventory_category'), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[UsageSource] = mapped_column(SQLEnum(UsageSource, name='usage_source'), nullable=False)
    work_log_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('work_logs.id', ondelete='SET NULL'))
    work_card_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('operations_work_cards.id', ondelete='SET NULL'))
    manager_name: Mapped[str | None] = mapped_column(Text)
    stage_index: Mapped[int | None] = mapped_column(Integer)
    stage_name: Mapped[str | None] = mapped_column(Text)
    usage_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class NeededItem(Base):
    __tablename__ = 'needed_items'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    project_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('projects.id'))
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[InventoryCategory] = mapped_column(SQLEnum(InventoryCategory, name='inventory_category'), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    source_challenge_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('season_challenges.id', ondelete='SET NULL'))
    source_challenge_title: Mapped[str | None] = mapped_column(Text)
    status: Mapped[NeededItemStatus] = mapped_column(
        SQLEnum(NeededItemStatus, name='needed_item_status'), nullable=False, default=NeededItemStatus.PENDING, server_default='PENDING'
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class HarvestCollection(Base):
    __tablename__ = 'harvest_collections'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    project_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    crop_type: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    harvest_date: Mapped[date] = mapped_column(Date, nullable=False)
    price_per_kg_picker: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_harvest_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'), server_default='0')
    total_picker_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    price_per_kg_buyer: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    total_revenue: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    profit: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    status: Mapped[HarvestCollectionStatus] = mapped_column(
        SQLEnum(HarvestCollectionStatus, name='harvest_collection_status'),
        nullable=False,
        default=HarvestCollectionStatus.COLLECTING,
        server_default='COLLECTING',
    )
    buyer_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class HarvestPaymentBatch(Base):
    __tablename__ = 'harvest_payment_batches'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    collection_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('harvest_collections.id', ondelete='CASCADE'), nullable=False)
    picker_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    paid_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class HarvestPicker(Base):
    __tablename__ = 'harvest_pickers'
    __table_args__ = (
        UniqueConstraint('collection_id', 'picker_number', name='harvest_pickers_collection_number_key'),
        CheckConstraint('picker_number > 0', name='harvest_pickers_number_positive_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    collection_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('harvest_collections.id', ondelete='CASCADE'), nullable=False)
    picker_number: Mapped[int] = mapped_column(Integer, nullable=False)
    picker_name: Mapped[str] = mapped_column(Text, nullable=False)
    total_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'), server_default='0')
    total_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payment_batch_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('harvest_payment_batches.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PickerWeighEntry(Base):
    __tablename__ = 'picker_weigh_entries'
    __table_args__ = (
        CheckConstraint('weight_kg > 0', name='picker_weigh_entries_weight_positive_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    picker_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('harvest_pickers.id', ondelete='CASCADE'), nullable=False)
    collection_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('harvest_collections.id', ondelete='CASCADE'), nullable=False)
    weight_kg: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    trip_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default='1')
    recorded_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class HarvestWallet(Base):
    __tablename__ = 'harvest_wallets'
    __table_args__ = (
        UniqueConstraint('company_id', 'project_id', 'crop_type', name='harvest_wallets_scope_key'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    project_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    crop_type: Mapped[str] = mapped_column(Text, nullable=False)
    cash_received_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    cash_paid_out_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    current_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CollectionCashUsage(Base):
    __tablename__ = 'collection_cash_usage'
    __table_args__ = (
        UniqueConstraint('wallet_id', 'collection_id', name='collection_cash_usage_wallet_collection_key'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    wallet_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('harvest_wallets.id', ondelete='CASCADE'), nullable=False)
    collection_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('harvest_collections.id', ondelete='CASCADE'), nullable=False)
    total_deducted: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class HarvestCashPool(Base):
    __tablename__ = 'harvest_cash_pools'
    __table_args__ = (
        UniqueConstraint('collection_id', name='harvest_cash_pools_collection_key'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    project_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    collection_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('harvest_collections.id', ondelete='CASCADE'), nullable=False)
    crop_type: Mapped[str] = mapped_column(Text, nullable=False)
    cash_received: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    total_paid_out: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    remaining_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    source: Mapped[str] = mapped_column(Text, nullable=False)
    received_by: Mapped[str] = mapped_column(Text, nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Harvest(Base):
    __tablename__ = 'harvests'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    project_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    crop_type: Mapped[str] = mapped_column(Text, nullable=False)
    source_collection_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('harvest_collections.id'))
    harvest_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    quality: Mapped[str] = mapped_column(String(1), nullable=False, default='A', server_default='A')
    destination: Mapped[str | None] = mapped_column(Text)
    farm_total_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Sale(Base):
    __tablename__ = 'sales'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    project_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    crop_type: Mapped[str] = mapped_column(Text, nullable=False)
    harvest_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('harvests.id', ondelete='CASCADE'), nullable=False)
    buyer_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[SaleStatus] = mapped_column(
        SQLEnum(SaleStatus, name='sale_status'), nullable=False, default=SaleStatus.PENDING, server_default='PENDING'
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WorkLog(Base):
    __tablename__ = 'work_logs'
    __table_args__ = (
        CheckConstraint('number_of_people >= 0', name='work_logs_people_non_negative_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    project_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    crop_type: Mapped[str] = mapped_column(Text, nullable=False)
    stage_index: Mapped[int | None] = mapped_column(Integer)
    stage_name: Mapped[str | None] = mapped_column(Text)
    log_date: Mapped[date] = mapped_column(Date, nullable=False)
    work_category: Mapped[str] = mapped_column(Text, nullable=False)
    work_type: Mapped[str | None] = mapped_column(Text)
    number_of_people: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    rate_per_person: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    total_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    employee_name: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    inputs_used: Mapped[str | None] = mapped_column(Text)
    manager_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    admin_name: Mapped[str | None] = mapped_column(Text)
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class OperationsWorkCard(Base):
    __tablename__ = 'operations_work_cards'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    project_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    stage_index: Mapped[int | None] = mapped_column(Integer)
    stage_name: Mapped[str | None] = mapped_column(Text)
    work_title: Mapped[str] = mapped_column(Text, nullable=False)
    work_category: Mapped[str] = mapped_column(Text, nullable=False)

    planned_date: Mapped[date | None] = mapped_column(Date)
    planned_workers: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    planned_inputs: Mapped[str | None] = mapped_column(Text)
    planned_fuel: Mapped[str | None] = mapped_column(Text)
    planned_chemicals: Mapped[str | None] = mapped_column(Text)
    planned_fertilizer: Mapped[str | None] = mapped_column(Text)
    planned_estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))

    actual_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    actual_manager_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    actual_manager_name: Mapped[str | None] = mapped_column(Text)
    actual_date: Mapped[date | None] = mapped_column(Date)
    actual_workers: Mapped[int | None] = mapped_column(Integer)
    actual_rate_per_person: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    actual_inputs_used: Mapped[str | None] = mapped_column(Text)
    actual_fuel_used: Mapped[str | None] = mapped_column(Text)
    actual_chemicals_used: Mapped[str | None] = mapped_column(Text)
    actual_fertilizer_used: Mapped[str | None] = mapped_column(Text)
    actual_notes: Mapped[str | None] = mapped_column(Text)
    actual_resource_item_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('inventory_items.id', ondelete='SET NULL'))
    actual_resource_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))
    actual_resource_quantity_secondary: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))
    actual_submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    actual_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))

    status: Mapped[WorkCardStatus] = mapped_column(
        SQLEnum(WorkCardStatus, name='work_card_status'), nullable=False, default=WorkCardStatus.PLANNED, server_default='PLANNED'
    )
    allocated_manager_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    created_by_principal_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('principals.id'), nullable=False)
    approved_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SeasonChallenge(Base):
    __tablename__ = 'season_challenges'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='CASCADE'), nullable=False)
    project_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False)
    crop_type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    challenge_type: Mapped[ChallengeType | None] = mapped_column(SQLEnum(ChallengeType, name='challenge_type'))
    stage_index: Mapped[int | None] = mapped_column(Integer)
    stage_name: Mapped[str | None] = mapped_column(Text)
    severity: Mapped[ChallengeSeverity] = mapped_column(
        SQLEnum(ChallengeSeverity, name='challenge_severity'), nullable=False, default=ChallengeSeverity.MEDIUM, server_default='MEDIUM'
    )
    status: Mapped[ChallengeStatus] = mapped_column(
        SQLEnum(ChallengeStatus, name='challenge_status'), nullable=False, default=ChallengeStatus.IDENTIFIED, server_default='IDENTIFIED'
    )
    date_identified: Mapped[date] = mapped_column(Date, nullable=False)
    date_resolved: Mapped[date | None] = mapped_column(Date)
    what_was_done: Mapped[str | None] = mapped_column(Text)
    items_used: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    plan2_if_fails: Mapped[str | None] = mapped_column(Text)
    created_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    attempted_username: Mapped[str] = mapped_column(CaseInsensitiveText, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    ip: Mapped[str | None] = mapped_column(IPAddress)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    actor_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    company_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('companies.id', ondelete='SET NULL'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    target_type: Mapped[str | None] = mapped_column(Text)
    target_id: Mapped[int | None] = mapped_column(BigInteger)
    ip: Mapped[str | None] = mapped_column(IPAddress)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    principal_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('principals.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(IPAddress)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

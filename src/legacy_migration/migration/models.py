"""
SQLAlchemy models for the migration target schema.

This module defines the migration session table and the price guide tables
that imports write to. Every row created by an import carries the legacy
`source_id` it came from and the `migration_session_id` that created it, so
re-runs can skip existing rows and rollback can find everything a session
wrote.
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from legacy_migration.migration.hierarchy import CategoryType


def new_id() -> str:
    return str(uuid.uuid4())


# Order keys compare by code point; PostgreSQL gets the C collation for that.
OrderKey = String(64).with_variant(String(64, collation="C"), "postgresql")


class SessionStatus(str, Enum):
    """Lifecycle states of a migration session."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"


class EntityType(str, Enum):
    """What a migration session imports."""

    OFFICE = "office"
    PRICE_GUIDE = "price_guide"


class QuantityMode(str, Enum):
    MANUAL = "manual"
    FORMULA = "formula"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class MigratedRowMixin:
    """Columns shared by every row an import can create."""

    source_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True, comment="Object id in the legacy store"
    )
    migration_session_id: Mapped[str | None] = mapped_column(
        String(36),
        nullable=True,
        index=True,
        comment="Migration session that created this row (null for native rows)",
    )


class MigrationSession(Base):
    """
    One import run from a legacy tenant into a target company.

    Counters only grow while the session is active; `errors` is an
    append-only log of `{sourceId, error, timestamp}` entries.
    """

    __tablename__ = "migration_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(
        String(36), nullable=False, index=True, comment="Target company"
    )
    created_by: Mapped[str | None] = mapped_column(
        String(36), nullable=True, comment="User that started the session"
    )
    source_company_id: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="Company object id in the legacy store"
    )
    entity_type: Mapped[str] = mapped_column(
        String(20), nullable=False, comment="What the session imports: office or price_guide"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SessionStatus.PENDING.value,
        index=True,
        comment="pending, in_progress, completed, rolled_back, rollback_failed",
    )

    total_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Source record count at creation"
    )
    imported_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[list] = mapped_column(
        MutableList.as_mutable(JSON), nullable=False, default=list, comment="Error log"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, comment="Set on completion or rollback"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'rolled_back', 'rollback_failed')",
            name="ck_migration_sessions_status",
        ),
        CheckConstraint(
            "entity_type IN ('office', 'price_guide')",
            name="ck_migration_sessions_entity_type",
        ),
        Index("idx_migration_sessions_company_status", "company_id", "status"),
    )

    @property
    def processed_count(self) -> int:
        return self.imported_count + self.skipped_count + self.error_count

    def __repr__(self) -> str:
        return (
            f"<MigrationSession(id='{self.id}', entity_type='{self.entity_type}', "
            f"status='{self.status}', processed={self.processed_count}/{self.total_count})>"
        )


class Office(MigratedRowMixin, Base):
    """Sales office of a company."""

    __tablename__ = "offices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    __table_args__ = (UniqueConstraint("company_id", "source_id", name="uq_office_source"),)

    def __repr__(self) -> str:
        return f"<Office(id='{self.id}', name='{self.name}', source_id='{self.source_id}')>"


class PriceObjectType(Base):
    """Price type (e.g. list, sale). Imported prices use the first active one."""

    __tablename__ = "price_object_types"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<PriceObjectType(id='{self.id}', name='{self.name}')>"


class PriceGuideCategory(MigratedRowMixin, Base):
    """Node of the price guide category tree."""

    __tablename__ = "price_guide_categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    parent_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("price_guide_categories.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CategoryType.DEFAULT.value
    )
    sort_order: Mapped[str] = mapped_column(
        OrderKey, nullable=False, comment="Fractional order key among siblings"
    )
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_categories_company_parent", "company_id", "parent_id"),
        Index("idx_categories_session_depth", "migration_session_id", "depth"),
    )

    def __repr__(self) -> str:
        return (
            f"<PriceGuideCategory(id='{self.id}', name='{self.name}', depth={self.depth}, "
            f"sort_order='{self.sort_order}')>"
        )


class PriceGuideImage(MigratedRowMixin, Base):
    """Image attached to a measure sheet item."""

    __tablename__ = "price_guide_images"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)


class MeasureSheetItem(MigratedRowMixin, Base):
    """Priced line item shown on a measure sheet."""

    __tablename__ = "measure_sheet_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    category_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("price_guide_categories.id"), nullable=False
    )
    image_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("price_guide_images.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    measurement_type: Mapped[str] = mapped_column(String(50), nullable=False, default="each")
    formula_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, comment="Legacy identifier other formulas reference"
    )
    legacy_qty_formula: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Quantity formula as found in the legacy store"
    )
    qty_formula: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Quantity formula with references rewritten to new ids"
    )
    quantity_mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QuantityMode.MANUAL.value
    )
    default_qty: Mapped[float] = mapped_column(Float, nullable=False, default=1)
    show_switch: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[str] = mapped_column(
        OrderKey, nullable=False, comment="Fractional order key within the category"
    )

    __table_args__ = (UniqueConstraint("company_id", "source_id", name="uq_item_source"),)

    def __repr__(self) -> str:
        return f"<MeasureSheetItem(id='{self.id}', name='{self.name}', source_id='{self.source_id}')>"


class PriceGuideOption(MigratedRowMixin, Base):
    """Selectable product option of an item."""

    __tablename__ = "price_guide_options"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (UniqueConstraint("company_id", "source_id", name="uq_option_source"),)


class UpCharge(MigratedRowMixin, Base):
    """Add-on charge that can be applied to an item."""

    __tablename__ = "up_charges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    identifier: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (UniqueConstraint("company_id", "source_id", name="uq_upcharge_source"),)


class AdditionalDetailField(MigratedRowMixin, Base):
    """Custom input collected for an item or up-charge."""

    __tablename__ = "additional_detail_fields"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    input_type: Mapped[str] = mapped_column(String(30), nullable=False)
    cell_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    placeholder: Mapped[str | None] = mapped_column(String(255), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    should_copy: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    picker_values: Mapped[list | None] = mapped_column(JSON, nullable=True)
    allow_decimal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    date_display_format: Mapped[str | None] = mapped_column(String(50), nullable=True)
    not_added_replacement: Mapped[str | None] = mapped_column(String(255), nullable=True)
    size_picker_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    united_inch_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    photo_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "source_id", name="uq_additional_detail_source"),
    )


# Prices


class OptionPrice(Base):
    __tablename__ = "option_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    option_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("price_guide_options.id"), nullable=False, index=True
    )
    office_id: Mapped[str] = mapped_column(String(36), ForeignKey("offices.id"), nullable=False)
    price_type_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("price_object_types.id"), nullable=False
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    migration_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)


class UpChargePrice(Base):
    __tablename__ = "up_charge_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    up_charge_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("up_charges.id"), nullable=False, index=True
    )
    office_id: Mapped[str] = mapped_column(String(36), ForeignKey("offices.id"), nullable=False)
    price_type_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("price_object_types.id"), nullable=False
    )
    option_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("price_guide_options.id"),
        nullable=True,
        comment="Option this price overrides (null for the generic price)",
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    is_percentage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    migration_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)


# Junctions


class MeasureSheetItemOption(Base):
    __tablename__ = "measure_sheet_item_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    measure_sheet_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("measure_sheet_items.id"), nullable=False, index=True
    )
    option_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("price_guide_options.id"), nullable=False
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    migration_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)


class MeasureSheetItemUpCharge(Base):
    __tablename__ = "measure_sheet_item_up_charges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    measure_sheet_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("measure_sheet_items.id"), nullable=False, index=True
    )
    up_charge_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("up_charges.id"), nullable=False
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    migration_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)


class MeasureSheetItemOffice(Base):
    __tablename__ = "measure_sheet_item_offices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    measure_sheet_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("measure_sheet_items.id"), nullable=False, index=True
    )
    office_id: Mapped[str] = mapped_column(String(36), ForeignKey("offices.id"), nullable=False)
    migration_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)


class MeasureSheetItemAdditionalDetailField(Base):
    __tablename__ = "measure_sheet_item_additional_detail_fields"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    measure_sheet_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("measure_sheet_items.id"), nullable=False, index=True
    )
    additional_detail_field_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("additional_detail_fields.id"), nullable=False
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    migration_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)


class UpChargeAdditionalDetailField(Base):
    __tablename__ = "up_charge_additional_detail_fields"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    up_charge_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("up_charges.id"), nullable=False, index=True
    )
    additional_detail_field_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("additional_detail_fields.id"), nullable=False
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    migration_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)


class UpChargeDisabledOption(Base):
    """Option for which an up-charge is not offered."""

    __tablename__ = "up_charge_disabled_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    up_charge_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("up_charges.id"), nullable=False, index=True
    )
    option_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("price_guide_options.id"), nullable=False
    )
    migration_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

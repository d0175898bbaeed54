"""SQLAlchemy async database models for CMM Calc.

Maps the taxonomy, material master, rule sets and the run ledger. Catalog
rows are retired with flags, never deleted; runs and their breakdown lines
are append-only.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# ============================================================================
# Taxonomy (L1 -> L2 -> L3)
# ============================================================================


class CategoryL1Model(Base):
    """Top-level domain (construction, interior)."""

    __tablename__ = "cmm_category_l1"

    code: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class CategoryL2Model(Base):
    """Trade group under one L1."""

    __tablename__ = "cmm_category_l2"

    code: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    l1_code: Mapped[str] = mapped_column(
        String(50), ForeignKey("cmm_category_l1.code"), nullable=False, index=True
    )
    default_unit: Mapped[str | None] = mapped_column(String(20))
    description: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class CategoryL3Model(Base):
    """Work-item template: which materials a work-item type implies."""

    __tablename__ = "cmm_category_l3"

    code: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    l2_code: Mapped[str] = mapped_column(
        String(50), ForeignKey("cmm_category_l2.code"), nullable=False, index=True
    )
    # Ordered list of material codes
    default_materials: Mapped[list[str] | None] = mapped_column(JSON)
    default_params: Mapped[dict | None] = mapped_column(JSON)
    description: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


# ============================================================================
# Material master & unit conversions
# ============================================================================


class MaterialMasterModel(Base):
    """Physical material. Soft-deleted via deleted_at + INACTIVE status."""

    __tablename__ = "cmm_material_masters"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    english_name: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="OTHER", index=True)
    sub_category: Mapped[str | None] = mapped_column(String(50))
    base_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    specification: Mapped[str | None] = mapped_column(Text)

    # Physical attributes
    density: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))  # kg/m³
    unit_weight: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))  # kg/unit
    standard_length: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))  # m
    standard_weight_per_length: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))  # kg/m

    # Usage factors per structure type
    usage_factor_rc: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))
    usage_factor_src: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))
    usage_factor_sc: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))

    reference_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    price_unit: Mapped[str | None] = mapped_column(String(20))
    price_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    tags: Mapped[list[str] | None] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE", index=True)
    notes: Mapped[str | None] = mapped_column(Text)

    # Audit
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[str | None] = mapped_column(Text)
    updated_by: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        Index("idx_material_category_status", "category", "status"),
    )


class UnitConversionModel(Base):
    """Per-material factor: to_value = from_value * conversion_factor."""

    __tablename__ = "cmm_unit_conversions"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    material_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("cmm_material_masters.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    to_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    conversion_factor: Mapped[Decimal] = mapped_column(Numeric(15, 6), nullable=False)
    formula: Mapped[str | None] = mapped_column(Text)  # display only
    is_bidirectional: Mapped[bool] = mapped_column(nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("material_id", "from_unit", "to_unit", name="uq_conversion_pair"),
        CheckConstraint("conversion_factor > 0", name="check_conversion_factor_positive"),
    )


# ============================================================================
# Rule sets
# ============================================================================


class RuleSetModel(Base):
    """Versioned, time-bounded rule bundle.

    Only effective_to may change after creation. Which version is current
    lives in RuleSetPointerModel, not on this row.
    """

    __tablename__ = "cmm_rule_sets"

    version: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    effective_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    effective_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    created_by: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint(
            "effective_to IS NULL OR effective_to > effective_from", name="check_effective_window"
        ),
        Index("idx_rule_set_effective", "effective_from"),
    )


class RuleSetPointerModel(Base):
    """Named register pointing at one rule set version.

    A single row named ``current`` holds the active version; swapping it is
    one UPDATE, so there is never a moment with zero or two current sets.
    """

    __tablename__ = "cmm_rule_set_pointers"

    name: Mapped[str] = mapped_column(String(20), primary_key=True)
    version: Mapped[str] = mapped_column(
        String(20), ForeignKey("cmm_rule_sets.version"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )
    updated_by: Mapped[str | None] = mapped_column(Text)


class ConversionRuleModel(Base):
    """Rule belonging to exactly one rule set version."""

    __tablename__ = "cmm_conversion_rules"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    rule_set_version: Mapped[str] = mapped_column(
        String(20), ForeignKey("cmm_rule_sets.version"), nullable=False, index=True
    )
    rule_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Optional scope
    category_l1: Mapped[str | None] = mapped_column(String(50))
    category_l2: Mapped[str | None] = mapped_column(String(50))
    category_l3: Mapped[str | None] = mapped_column(String(50))

    source_material: Mapped[str | None] = mapped_column(String(50))
    target_material: Mapped[str | None] = mapped_column(String(50))

    formula: Mapped[str] = mapped_column(Text, nullable=False, default="")  # never evaluated
    parameters: Mapped[dict | None] = mapped_column(JSON)
    output_unit: Mapped[str | None] = mapped_column(String(20))
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "rule_type IN ('UNIT', 'DENSITY', 'ASSEMBLY', 'WASTE', 'PACKAGING', 'SCENARIO')",
            name="check_rule_type",
        ),
        Index("idx_rule_version_type", "rule_set_version", "rule_type", "priority"),
    )


# ============================================================================
# Run ledger
# ============================================================================


class CalculationRunModel(Base):
    """One engine invocation, persisted for audit and replay."""

    __tablename__ = "cmm_calculation_runs"

    run_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id: Mapped[str | None] = mapped_column(Text, index=True)
    category_l1: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    rule_set_version: Mapped[str] = mapped_column(
        String(20), ForeignKey("cmm_rule_sets.version"), nullable=False, index=True
    )

    input_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)
    input_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    result_summary: Mapped[dict | None] = mapped_column(JSON)
    error_log: Mapped[list | None] = mapped_column(JSON)
    duration_ms: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'RUNNING', 'SUCCESS', 'PARTIAL', 'FAILED')",
            name="check_run_status",
        ),
        Index("idx_runs_project_created", "project_id", "created_at"),
    )


class MaterialBreakdownModel(Base):
    """One resolved material quantity, owned by exactly one run."""

    __tablename__ = "cmm_material_breakdown"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    run_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("cmm_calculation_runs.run_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_work_item_code: Mapped[str] = mapped_column(Text, nullable=False)

    category_l1: Mapped[str] = mapped_column(String(50), nullable=False)
    category_l2: Mapped[str] = mapped_column(String(50), nullable=False)
    category_l3: Mapped[str | None] = mapped_column(String(50))

    material_code: Mapped[str | None] = mapped_column(String(50))
    material_name: Mapped[str] = mapped_column(Text, nullable=False)
    spec: Mapped[str | None] = mapped_column(Text)

    base_quantity: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False)
    waste_factor: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    final_quantity: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    packaging_unit: Mapped[str | None] = mapped_column(String(20))
    packaging_quantity: Mapped[int | None] = mapped_column(Integer)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    subtotal: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))

    trace_info: Mapped[dict | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_breakdown_run_line", "run_id", "line_no"),
    )


# ============================================================================
# Legacy floor-area estimator
# ============================================================================


class BuildingProfileModel(Base):
    """Per-floor-area material factors for a structure type and floor range."""

    __tablename__ = "cmm_building_profiles"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    structure_type: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    building_usage: Mapped[str] = mapped_column(String(20), nullable=False, default="OFFICE")

    min_floors: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_floors: Mapped[int | None] = mapped_column(Integer)  # NULL = unbounded

    rebar_factor: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    rebar_unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg/m²")
    concrete_factor: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    concrete_unit: Mapped[str] = mapped_column(String(20), nullable=False, default="m³/m²")
    formwork_factor: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    formwork_unit: Mapped[str] = mapped_column(String(20), nullable=False, default="m²/m²")
    steel_factor: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))
    steel_unit: Mapped[str | None] = mapped_column(String(20))
    mortar_factor: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))
    mortar_unit: Mapped[str | None] = mapped_column(String(20))
    other_factors: Mapped[dict | None] = mapped_column(JSON)

    description: Mapped[str | None] = mapped_column(Text)
    is_system_default: Mapped[bool] = mapped_column(nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_profile_structure_floors", "structure_type", "min_floors"),
    )


class LegacyEstimateModel(Base):
    """Saved floor-area estimate."""

    __tablename__ = "cmm_legacy_estimates"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    estimate_id: Mapped[str | None] = mapped_column(Text, index=True)
    profile_code: Mapped[str] = mapped_column(String(50), nullable=False)
    structure_type: Mapped[str] = mapped_column(String(10), nullable=False)
    total_area: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    input_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)
    result: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

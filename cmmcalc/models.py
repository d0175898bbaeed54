"""CMM Calc Pydantic models for type-safe data validation.

Shared by the engine, the ledger and the web layer. Quantities travel as
floats at the boundary and as Decimal inside the engine.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RunStatus(str, Enum):
    """Calculation run lifecycle: PENDING -> RUNNING -> {SUCCESS|PARTIAL|FAILED}."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class RuleKind(str, Enum):
    """Conversion rule kinds."""

    UNIT = "UNIT"
    DENSITY = "DENSITY"
    ASSEMBLY = "ASSEMBLY"
    WASTE = "WASTE"
    PACKAGING = "PACKAGING"
    SCENARIO = "SCENARIO"


class MaterialCategory(str, Enum):
    REBAR = "REBAR"
    CONCRETE = "CONCRETE"
    FORMWORK = "FORMWORK"
    MORTAR = "MORTAR"
    STEEL = "STEEL"
    CEMENT = "CEMENT"
    SAND = "SAND"
    GRAVEL = "GRAVEL"
    TILE = "TILE"
    PAINT = "PAINT"
    WOOD = "WOOD"
    OTHER = "OTHER"


class MaterialStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DEPRECATED = "DEPRECATED"


class StructureType(str, Enum):
    """Building structure types for the floor-area estimator."""

    RC = "RC"  # reinforced concrete
    SRC = "SRC"  # steel reinforced concrete
    SC = "SC"  # steel
    RB = "RB"  # reinforced brick / masonry
    W = "W"  # wood


class BuildingUsage(str, Enum):
    RESIDENTIAL = "RESIDENTIAL"
    OFFICE = "OFFICE"
    COMMERCIAL = "COMMERCIAL"
    INDUSTRIAL = "INDUSTRIAL"
    PUBLIC = "PUBLIC"
    MIXED = "MIXED"


# ============================================================================
# Calculation input
# ============================================================================


class WorkItem(BaseModel):
    """One line of a quantity-takeoff request."""

    item_code: str
    category_l2: str
    category_l3: str | None = None
    quantity: float
    unit: str
    params: dict[str, float] | None = None

    class Config:
        json_schema_extra = {
            "example": {
                "item_code": "WI-1",
                "category_l2": "INT_TILE",
                "category_l3": "INT_TILE_FLOOR",
                "quantity": 100,
                "unit": "m2",
            }
        }


class RunCalculationRequest(BaseModel):
    """Request to execute and persist a calculation run."""

    project_id: str | None = None
    category_l1: str
    work_items: list[WorkItem]
    rule_set_version: str | None = None


# ============================================================================
# Calculation output
# ============================================================================


class MaterialBreakdownLine(BaseModel):
    """One resolved material quantity produced by a run."""

    id: UUID | None = None
    source_work_item_code: str
    category_l1: str
    category_l2: str
    category_l3: str | None = None
    material_code: str | None = None
    material_name: str
    spec: str | None = None
    base_quantity: float
    waste_factor: float
    final_quantity: float
    unit: str
    packaging_unit: str | None = None
    packaging_quantity: int | None = None
    unit_price: float | None = None
    subtotal: float | None = None
    trace_info: dict[str, Any] = Field(default_factory=dict)


class SuggestedEstimateLine(BaseModel):
    """Pricing-UI projection of a breakdown line."""

    id: UUID | None = None
    name: str
    spec: str | None = None
    quantity: float
    unit: str
    unit_price: float | None = None
    subtotal: float | None = None
    category_l1: str
    category_l2: str
    source_run_id: UUID


class ItemError(BaseModel):
    """Per-work-item failure captured during a run."""

    item_code: str
    message: str


class CalculationResult(BaseModel):
    """Full result of a run, replayable from persisted lines."""

    run_id: UUID
    rule_set_version: str
    timestamp: datetime
    status: RunStatus
    input_snapshot_hash: str
    duration_ms: int | None = None
    material_breakdown: list[MaterialBreakdownLine] = Field(default_factory=list)
    suggested_estimate_lines: list[SuggestedEstimateLine] = Field(default_factory=list)
    errors: list[ItemError] = Field(default_factory=list)


class RunSummary(BaseModel):
    """Run listing row."""

    model_config = ConfigDict(from_attributes=True)

    run_id: UUID
    project_id: str | None = None
    category_l1: str
    rule_set_version: str
    status: RunStatus
    input_hash: str
    duration_ms: int | None = None
    created_at: datetime | None = None
    result_summary: dict[str, Any] | None = None


class RunPage(BaseModel):
    items: list[RunSummary] = Field(default_factory=list)
    total: int = 0
    limit: int
    offset: int


# ============================================================================
# Taxonomy
# ============================================================================


class CategoryL3(BaseModel):
    """Work-item template."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    l2_code: str
    default_materials: list[str] = Field(default_factory=list)
    default_params: dict[str, float] = Field(default_factory=dict)
    sort_order: int = 0
    is_active: bool = True

    @field_validator("default_materials", mode="before")
    @classmethod
    def _none_materials(cls, v: Any) -> Any:
        return v or []

    @field_validator("default_params", mode="before")
    @classmethod
    def _none_params(cls, v: Any) -> Any:
        return v or {}


class CategoryL3Node(BaseModel):
    code: str
    name: str
    default_materials: list[str] = Field(default_factory=list)


class CategoryL2Node(BaseModel):
    code: str
    name: str
    default_unit: str | None = None
    children: list[CategoryL3Node] = Field(default_factory=list)


class CategoryL1Node(BaseModel):
    code: str
    name: str
    children: list[CategoryL2Node] = Field(default_factory=list)


class TaxonomyTree(BaseModel):
    categories: list[CategoryL1Node] = Field(default_factory=list)


class TaxonomySubtree(BaseModel):
    l1_code: str
    l1_name: str
    categories: list[CategoryL2Node] = Field(default_factory=list)


# ============================================================================
# Rules
# ============================================================================


class RuleSet(BaseModel):
    """Versioned, time-bounded bundle of calculation rules."""

    model_config = ConfigDict(from_attributes=True)

    version: str
    name: str
    description: str | None = None
    is_current: bool = False
    effective_from: datetime
    effective_to: datetime | None = None
    created_at: datetime | None = None


class ConversionRule(BaseModel):
    """Rule record; ``formula`` is display text and is never evaluated."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID | None = None
    rule_set_version: str | None = None
    rule_type: RuleKind
    category_l1: str | None = None
    category_l2: str | None = None
    category_l3: str | None = None
    source_material: str | None = None
    target_material: str | None = None
    formula: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)
    output_unit: str | None = None
    priority: int = 0
    description: str | None = None
    is_active: bool = True

    @field_validator("parameters", mode="before")
    @classmethod
    def _none_parameters(cls, v: Any) -> Any:
        return v or {}


# ============================================================================
# Materials & conversion
# ============================================================================


class Material(BaseModel):
    """Material master record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    english_name: str | None = None
    category: MaterialCategory = MaterialCategory.OTHER
    sub_category: str | None = None
    base_unit: str
    specification: str | None = None
    density: float | None = None
    unit_weight: float | None = None
    standard_length: float | None = None
    standard_weight_per_length: float | None = None
    usage_factor_rc: float | None = None
    usage_factor_src: float | None = None
    usage_factor_sc: float | None = None
    reference_price: float | None = None
    price_unit: str | None = None
    tags: list[str] | None = None
    status: MaterialStatus = MaterialStatus.ACTIVE
    notes: str | None = None
    deleted_at: datetime | None = None


class MaterialPage(BaseModel):
    items: list[Material] = Field(default_factory=list)
    total: int = 0
    page: int
    limit: int
    total_pages: int


class UnitConversion(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID | None = None
    material_id: UUID
    from_unit: str
    to_unit: str
    conversion_factor: float
    formula: str | None = None
    is_bidirectional: bool = True
    notes: str | None = None


class ConversionResult(BaseModel):
    result: float
    formula: str
    factor: float
    direction: Literal["direct", "inverse"]


# ============================================================================
# Legacy floor-area estimator
# ============================================================================


class BuildingProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    structure_type: StructureType
    building_usage: BuildingUsage = BuildingUsage.OFFICE
    min_floors: int = 1
    max_floors: int | None = None
    rebar_factor: float
    rebar_unit: str = "kg/m²"
    concrete_factor: float
    concrete_unit: str = "m³/m²"
    formwork_factor: float
    formwork_unit: str = "m²/m²"
    steel_factor: float | None = None
    steel_unit: str | None = None
    mortar_factor: float | None = None
    mortar_unit: str | None = None
    description: str | None = None
    is_system_default: bool = False


class LegacyCalculateRequest(BaseModel):
    structure_type: StructureType
    building_usage: BuildingUsage | None = None
    floor_count: int = Field(ge=1, le=100)
    basement_count: int = Field(default=0, ge=0)
    floor_area: float = Field(ge=1)
    profile_code: str | None = None
    estimate_id: str | None = None


class MaterialResult(BaseModel):
    category: str
    quantity: float
    unit: str
    per_sqm: float | None = None


class ProfileUsed(BaseModel):
    code: str
    name: str
    structure_type: StructureType


class LegacyCalculateResponse(BaseModel):
    result_id: UUID | None = None
    total_area: float
    total_area_ping: float
    rebar: MaterialResult
    concrete: MaterialResult
    formwork: MaterialResult
    steel: MaterialResult | None = None
    mortar: MaterialResult | None = None
    profile_used: ProfileUsed
    version: int = 1
    calculated_at: datetime
    input_snapshot: LegacyCalculateRequest

"""Request/response models specific to the HTTP API.

Domain models (work items, results, materials, rule sets) live in
``cmmcalc.models``; this module only holds payloads that exist because of
the HTTP surface.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from cmmcalc.models import MaterialCategory, MaterialStatus


# ============================================================================
# Material master
# ============================================================================


class MaterialCreate(BaseModel):
    """Used by: POST /cmm/materials"""

    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    english_name: Optional[str] = None
    category: MaterialCategory = MaterialCategory.OTHER
    sub_category: Optional[str] = None
    base_unit: str = Field(min_length=1, max_length=20)
    specification: Optional[str] = None
    density: Optional[float] = Field(default=None, gt=0)
    unit_weight: Optional[float] = Field(default=None, gt=0)
    standard_length: Optional[float] = Field(default=None, gt=0)
    standard_weight_per_length: Optional[float] = Field(default=None, gt=0)
    usage_factor_rc: Optional[float] = None
    usage_factor_src: Optional[float] = None
    usage_factor_sc: Optional[float] = None
    reference_price: Optional[float] = Field(default=None, ge=0)
    price_unit: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = None


class MaterialUpdate(BaseModel):
    """Partial update; only fields present in the body are written.

    Used by: PUT /cmm/materials/{material_id}
    """

    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    english_name: Optional[str] = None
    category: Optional[MaterialCategory] = None
    sub_category: Optional[str] = None
    base_unit: Optional[str] = Field(default=None, min_length=1, max_length=20)
    specification: Optional[str] = None
    density: Optional[float] = Field(default=None, gt=0)
    unit_weight: Optional[float] = Field(default=None, gt=0)
    standard_length: Optional[float] = Field(default=None, gt=0)
    standard_weight_per_length: Optional[float] = Field(default=None, gt=0)
    usage_factor_rc: Optional[float] = None
    usage_factor_src: Optional[float] = None
    usage_factor_sc: Optional[float] = None
    reference_price: Optional[float] = Field(default=None, ge=0)
    price_unit: Optional[str] = None
    tags: Optional[list[str]] = None
    status: Optional[MaterialStatus] = None
    notes: Optional[str] = None


# ============================================================================
# Rule sets & admin
# ============================================================================


class SetCurrentRequest(BaseModel):
    """Used by: PUT /cmm/rulesets/{version}/current"""

    updated_by: Optional[str] = None


class SeedResponse(BaseModel):
    """Newly created rows per entity. Used by: POST /cmm/seed"""

    success: bool = True
    created: dict[str, int]

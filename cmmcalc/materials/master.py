"""Material master records for CMM Calc.

Materials are soft-deleted (``deleted_at`` set, status INACTIVE) and never
purged, so breakdown lines of historical runs keep resolving their codes.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.core.errors import ConflictError, NotFoundError
from cmmcalc.db.models import MaterialMasterModel, UnitConversionModel, utcnow
from cmmcalc.models import Material, MaterialCategory, MaterialPage, MaterialStatus, UnitConversion

logger = logging.getLogger(__name__)

# Columns callers may set through create/update
_WRITABLE_FIELDS = {
    "code",
    "name",
    "english_name",
    "category",
    "sub_category",
    "base_unit",
    "specification",
    "density",
    "unit_weight",
    "standard_length",
    "standard_weight_per_length",
    "usage_factor_rc",
    "usage_factor_src",
    "usage_factor_sc",
    "reference_price",
    "price_unit",
    "tags",
    "status",
    "notes",
}


class MaterialMasterService:
    """CRUD over the material master with soft delete."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_materials(
        self,
        category: MaterialCategory | str | None = None,
        status: MaterialStatus | str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> MaterialPage:
        """Paginated listing, excluding soft-deleted rows, ordered by code."""
        conditions = [MaterialMasterModel.deleted_at.is_(None)]
        if category:
            conditions.append(MaterialMasterModel.category == MaterialCategory(category).value)
        if status:
            conditions.append(MaterialMasterModel.status == MaterialStatus(status).value)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    MaterialMasterModel.code.ilike(pattern),
                    MaterialMasterModel.name.ilike(pattern),
                )
            )

        where = and_(*conditions)
        total = (
            await self.session.execute(select(func.count()).select_from(MaterialMasterModel).where(where))
        ).scalar_one()

        page = max(page, 1)
        result = await self.session.execute(
            select(MaterialMasterModel)
            .where(where)
            .order_by(MaterialMasterModel.code)
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return MaterialPage(
            items=[Material.model_validate(row) for row in result.scalars().all()],
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
        )

    async def get_material(self, material_id: UUID) -> Material:
        """Raises NotFoundError for unknown or soft-deleted ids."""
        row = await self._get_row(material_id)
        return Material.model_validate(row)

    async def get_material_by_code(self, code: str) -> Material:
        row = await self._find_by_code(code)
        if row is None:
            raise NotFoundError("Material", code)
        return Material.model_validate(row)

    async def get_materials_by_codes(self, codes: Iterable[str]) -> dict[str, Material]:
        """Bulk read of live materials keyed by code. Unknown codes are absent."""
        wanted = sorted(set(codes))
        if not wanted:
            return {}
        result = await self.session.execute(
            select(MaterialMasterModel).where(
                MaterialMasterModel.code.in_(wanted),
                MaterialMasterModel.deleted_at.is_(None),
            )
        )
        return {row.code: Material.model_validate(row) for row in result.scalars().all()}

    async def create_material(self, data: dict[str, Any], created_by: str | None = None) -> Material:
        """Create a material.

        Raises:
            ConflictError: If the code is already taken, including by a
                soft-deleted row
        """
        code = data.get("code")
        existing = await self.session.execute(
            select(MaterialMasterModel.id).where(MaterialMasterModel.code == code)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(f"Material code {code} already exists")

        row = MaterialMasterModel(
            **_writable(data),
            created_by=created_by,
            updated_by=created_by,
        )
        self.session.add(row)
        await self.session.flush()

        logger.info("Created material %s", code)
        return Material.model_validate(row)

    async def update_material(
        self, material_id: UUID, data: dict[str, Any], updated_by: str | None = None
    ) -> Material:
        row = await self._get_row(material_id)

        changes = _writable(data)
        new_code = changes.get("code")
        if new_code and new_code != row.code:
            if await self._find_by_code(new_code, include_deleted=True) is not None:
                raise ConflictError(f"Material code {new_code} already exists")

        if "reference_price" in changes and changes["reference_price"] != row.reference_price:
            row.price_updated_at = utcnow()
        for key, value in changes.items():
            setattr(row, key, value)
        row.updated_by = updated_by
        row.updated_at = utcnow()
        await self.session.flush()

        return Material.model_validate(row)

    async def delete_material(self, material_id: UUID, deleted_by: str | None = None) -> None:
        """Soft delete: mark INACTIVE and stamp deleted_at."""
        row = await self._get_row(material_id)
        row.status = MaterialStatus.INACTIVE.value
        row.deleted_at = utcnow()
        row.updated_by = deleted_by
        await self.session.flush()
        logger.info("Soft-deleted material %s", row.code)

    async def add_conversion(
        self,
        material_id: UUID,
        from_unit: str,
        to_unit: str,
        conversion_factor: float,
        is_bidirectional: bool = True,
        formula: str | None = None,
        notes: str | None = None,
    ) -> UnitConversion:
        """Add a unit conversion row.

        Raises:
            NotFoundError: If the material does not exist
            ConflictError: If (material, from_unit, to_unit) already exists
        """
        await self._get_row(material_id)

        existing = await self.session.execute(
            select(UnitConversionModel.id).where(
                UnitConversionModel.material_id == material_id,
                UnitConversionModel.from_unit == from_unit,
                UnitConversionModel.to_unit == to_unit,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                f"Conversion {from_unit} -> {to_unit} already exists for material {material_id}"
            )

        row = UnitConversionModel(
            material_id=material_id,
            from_unit=from_unit,
            to_unit=to_unit,
            conversion_factor=conversion_factor,
            is_bidirectional=is_bidirectional,
            formula=formula or f"1 {from_unit} = {conversion_factor} {to_unit}",
            notes=notes,
        )
        self.session.add(row)
        await self.session.flush()
        return UnitConversion.model_validate(row)

    async def list_conversions(self, material_id: UUID) -> list[UnitConversion]:
        result = await self.session.execute(
            select(UnitConversionModel)
            .where(UnitConversionModel.material_id == material_id)
            .order_by(UnitConversionModel.from_unit, UnitConversionModel.to_unit)
        )
        return [UnitConversion.model_validate(row) for row in result.scalars().all()]

    async def _get_row(self, material_id: UUID) -> MaterialMasterModel:
        row = await self.session.get(MaterialMasterModel, material_id)
        if row is None or row.deleted_at is not None:
            raise NotFoundError("Material", material_id)
        return row

    async def _find_by_code(self, code: str, include_deleted: bool = False) -> MaterialMasterModel | None:
        stmt = select(MaterialMasterModel).where(MaterialMasterModel.code == code)
        if not include_deleted:
            stmt = stmt.where(MaterialMasterModel.deleted_at.is_(None))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


def _writable(data: dict[str, Any]) -> dict[str, Any]:
    values = {key: value for key, value in data.items() if key in _WRITABLE_FIELDS}
    for key in ("category", "status"):
        if key in values and values[key] is not None:
            values[key] = getattr(values[key], "value", values[key])
    return values

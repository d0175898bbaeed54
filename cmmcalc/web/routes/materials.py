"""Material master routes.

Routes:
- GET    /cmm/materials                         - Paginated, filtered listing
- GET    /cmm/materials/{material_id}           - One material
- POST   /cmm/materials                         - Create (409 on duplicate code)
- PUT    /cmm/materials/{material_id}           - Partial update
- DELETE /cmm/materials/{material_id}           - Soft delete
- GET    /cmm/materials/{material_id}/convert   - Unit conversion
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.db.connection import get_db
from cmmcalc.materials.conversion import UnitConversionResolver
from cmmcalc.materials.master import MaterialMasterService
from cmmcalc.models import (
    ConversionResult,
    Material,
    MaterialCategory,
    MaterialPage,
    MaterialStatus,
    UnitConversion,
)
from cmmcalc.web.models import MaterialCreate, MaterialUpdate

router = APIRouter(prefix="/cmm/materials", tags=["materials"])


@router.get("", response_model=MaterialPage)
async def list_materials(
    category: Optional[MaterialCategory] = None,
    status_filter: Optional[MaterialStatus] = Query(default=None, alias="status"),
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    return await MaterialMasterService(db).list_materials(
        category=category, status=status_filter, search=search, page=page, limit=limit
    )


@router.get("/{material_id}", response_model=Material)
async def get_material(material_id: UUID, db: AsyncSession = Depends(get_db)):
    return await MaterialMasterService(db).get_material(material_id)


@router.post("", response_model=Material, status_code=status.HTTP_201_CREATED)
async def create_material(body: MaterialCreate, db: AsyncSession = Depends(get_db)):
    return await MaterialMasterService(db).create_material(body.model_dump())


@router.put("/{material_id}", response_model=Material)
async def update_material(
    material_id: UUID, body: MaterialUpdate, db: AsyncSession = Depends(get_db)
):
    return await MaterialMasterService(db).update_material(
        material_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/{material_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_material(material_id: UUID, db: AsyncSession = Depends(get_db)):
    await MaterialMasterService(db).delete_material(material_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{material_id}/conversions", response_model=list[UnitConversion])
async def list_conversions(material_id: UUID, db: AsyncSession = Depends(get_db)):
    service = MaterialMasterService(db)
    await service.get_material(material_id)
    return await service.list_conversions(material_id)


@router.get("/{material_id}/convert", response_model=ConversionResult)
async def convert_units(
    material_id: UUID,
    from_unit: str = Query(alias="from"),
    to_unit: str = Query(alias="to"),
    value: float = Query(),
    db: AsyncSession = Depends(get_db),
):
    """Convert a quantity with the material's direct or inverse factor.

    404 when neither direction is defined; conversions never chain.
    """
    return await UnitConversionResolver(db).convert(material_id, from_unit, to_unit, value)

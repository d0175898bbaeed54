"""Legacy floor-area estimator routes.

Routes:
- GET  /cmm/profiles          - Building profiles, optionally by structure type
- GET  /cmm/profiles/{code}   - One building profile
- POST /cmm/calculate         - Whole-building estimate (not stored)
- POST /cmm/calculate/save    - Same estimate, persisted
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.db.connection import get_db
from cmmcalc.legacy.estimator import FloorAreaEstimator
from cmmcalc.models import (
    BuildingProfile,
    LegacyCalculateRequest,
    LegacyCalculateResponse,
    StructureType,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/cmm", tags=["legacy"])


@router.get("/profiles", response_model=list[BuildingProfile])
async def list_profiles(
    structure_type: Optional[StructureType] = None,
    db: AsyncSession = Depends(get_db),
):
    return await FloorAreaEstimator(db).list_profiles(structure_type)


@router.get("/profiles/{code}", response_model=BuildingProfile)
async def get_profile(code: str, db: AsyncSession = Depends(get_db)):
    return await FloorAreaEstimator(db).get_profile(code)


@router.post("/calculate", response_model=LegacyCalculateResponse)
async def calculate(request: LegacyCalculateRequest, db: AsyncSession = Depends(get_db)):
    return await FloorAreaEstimator(db).calculate(request)


@router.post("/calculate/save", response_model=LegacyCalculateResponse)
async def calculate_and_save(
    request: LegacyCalculateRequest, db: AsyncSession = Depends(get_db)
):
    response = await FloorAreaEstimator(db).calculate(request, save=True)
    logger.info(
        "legacy_estimate_saved",
        result_id=str(response.result_id),
        profile=response.profile_used.code,
    )
    return response

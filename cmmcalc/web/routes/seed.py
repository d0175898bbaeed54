"""Reference data seeding route.

Routes:
- POST /cmm/seed - Load config/cmm_seed.yaml (idempotent)
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.db.connection import get_db
from cmmcalc.taxonomy.seed import seed_reference_data
from cmmcalc.web.models import SeedResponse

logger = structlog.get_logger()

router = APIRouter(prefix="/cmm/seed", tags=["admin"])


@router.post("", response_model=SeedResponse)
async def seed(db: AsyncSession = Depends(get_db)):
    """Create missing categories, materials, profiles and rule sets.

    Existing codes and versions are left untouched, so repeated calls
    report zero new rows.
    """
    counts = await seed_reference_data(db)
    logger.info("reference_data_seeded", **counts)
    return SeedResponse(created=counts)

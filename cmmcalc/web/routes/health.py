"""Health check API routes.

Provides endpoints for monitoring application health and connectivity.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc import __version__
from cmmcalc.db.connection import get_db
from cmmcalc.rules.registry import RuleSetRegistry

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check(db: AsyncSession = Depends(get_db)):
    """Check application health.

    Verifies database connectivity and reports the current rule set pointer.
    """
    try:
        await db.execute(text("SELECT 1"))
        current = await RuleSetRegistry(db).current_version()
    except SQLAlchemyError as e:
        return {
            "status": "error",
            "database": "disconnected",
            "detail": str(e),
            "version": __version__,
        }

    return {
        "status": "ok",
        "database": "connected",
        "current_rule_set": current,
        "version": __version__,
    }

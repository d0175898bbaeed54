"""Rule set routes.

Routes:
- GET /cmm/rulesets                    - All versions, most recently effective first
- GET /cmm/rulesets/current            - The rule set a run would use right now
- PUT /cmm/rulesets/{version}/current  - Point ``current`` at a version
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.db.connection import get_db
from cmmcalc.models import RuleSet
from cmmcalc.rules.registry import RuleSetRegistry
from cmmcalc.web.models import SetCurrentRequest

logger = structlog.get_logger()

router = APIRouter(prefix="/cmm/rulesets", tags=["rulesets"])


@router.get("", response_model=list[RuleSet])
async def list_rule_sets(db: AsyncSession = Depends(get_db)):
    return await RuleSetRegistry(db).list_rule_sets()


@router.get("/current", response_model=RuleSet)
async def get_current_rule_set(db: AsyncSession = Depends(get_db)):
    """Current pointer target, else the most recently effective version."""
    return await RuleSetRegistry(db).get_current()


@router.put("/{version}/current", response_model=RuleSet)
async def set_current_rule_set(
    version: str,
    body: Optional[SetCurrentRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    updated_by = body.updated_by if body is not None else None
    rule_set = await RuleSetRegistry(db).set_current(version, updated_by=updated_by)
    logger.info("rule_set_current_changed", version=version, updated_by=updated_by)
    return rule_set

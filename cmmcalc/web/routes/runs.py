"""Calculation run routes.

Routes:
- POST /cmm/runs            - Execute and persist a calculation run
- GET  /cmm/runs            - List run summaries, newest first
- GET  /cmm/runs/stats      - Run counts by status
- GET  /cmm/runs/{run_id}   - Replay a persisted run
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.core.errors import WorkItemLimitError
from cmmcalc.db.connection import get_db
from cmmcalc.engine.calculator import CalculationEngine
from cmmcalc.ledger.runs import RunLedger
from cmmcalc.models import CalculationResult, RunCalculationRequest, RunPage

logger = structlog.get_logger()

router = APIRouter(prefix="/cmm/runs", tags=["runs"])


@router.post("", response_model=CalculationResult, status_code=status.HTTP_201_CREATED)
async def execute_run(request: RunCalculationRequest, db: AsyncSession = Depends(get_db)):
    """Execute a calculation run.

    Per-item failures come back in ``errors`` with status PARTIAL; only
    unresolvable rule sets or categories (404) and oversized requests (422)
    fail the request itself.
    """
    engine = CalculationEngine(db)
    try:
        result = await engine.execute_run(
            category_l1=request.category_l1,
            work_items=request.work_items,
            rule_set_version=request.rule_set_version,
            project_id=request.project_id,
        )
    except WorkItemLimitError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    logger.info(
        "run_executed",
        run_id=str(result.run_id),
        status=result.status.value,
        lines=len(result.material_breakdown),
    )
    return result


@router.get("", response_model=RunPage)
async def list_runs(
    project_id: Optional[str] = None,
    category_l1: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await RunLedger(db).list_runs(
        project_id=project_id, category_l1=category_l1, limit=limit, offset=offset
    )


# Declared before /{run_id} so "stats" is not parsed as a UUID
@router.get("/stats")
async def run_statistics(db: AsyncSession = Depends(get_db)) -> dict[str, int]:
    return await RunLedger(db).run_statistics()


@router.get("/{run_id}", response_model=CalculationResult)
async def get_run(run_id: UUID, db: AsyncSession = Depends(get_db)):
    return await RunLedger(db).get_run_result(run_id)

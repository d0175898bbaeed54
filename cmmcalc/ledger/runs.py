"""Run ledger: persisted calculation runs and their breakdown lines.

Every engine invocation leaves one CalculationRun row (input snapshot, hash,
status, timing, errors) and the breakdown lines it produced. Results are
replayable from the persisted lines alone.

Listing and statistics are read paths that degrade to empty results when the
store misbehaves; the failure is logged, not raised.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.core.errors import NotFoundError
from cmmcalc.db.models import CalculationRunModel, MaterialBreakdownModel, utcnow
from cmmcalc.models import (
    CalculationResult,
    ItemError,
    MaterialBreakdownLine,
    RunPage,
    RunStatus,
    RunSummary,
    SuggestedEstimateLine,
)

logger = logging.getLogger(__name__)


def suggested_lines(run_id: UUID, lines: list[MaterialBreakdownLine]) -> list[SuggestedEstimateLine]:
    """Project breakdown lines into estimate lines for pricing UIs."""
    return [
        SuggestedEstimateLine(
            id=line.id,
            name=line.material_name,
            spec=line.spec,
            quantity=line.final_quantity,
            unit=line.unit,
            unit_price=line.unit_price,
            subtotal=line.subtotal,
            category_l1=line.category_l1,
            category_l2=line.category_l2,
            source_run_id=run_id,
        )
        for line in lines
    ]


def _optional_float(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _line_from_row(row: MaterialBreakdownModel) -> MaterialBreakdownLine:
    return MaterialBreakdownLine(
        id=row.id,
        source_work_item_code=row.source_work_item_code,
        category_l1=row.category_l1,
        category_l2=row.category_l2,
        category_l3=row.category_l3,
        material_code=row.material_code,
        material_name=row.material_name,
        spec=row.spec,
        base_quantity=float(row.base_quantity),
        waste_factor=float(row.waste_factor),
        final_quantity=float(row.final_quantity),
        unit=row.unit,
        packaging_unit=row.packaging_unit,
        packaging_quantity=row.packaging_quantity,
        unit_price=_optional_float(row.unit_price),
        subtotal=_optional_float(row.subtotal),
        trace_info=row.trace_info or {},
    )


def _decimal(value: float | None) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


class RunLedger:
    """Create, complete and read calculation runs."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_run(
        self,
        category_l1: str,
        rule_set_version: str,
        input_snapshot: dict[str, Any],
        input_hash: str,
        project_id: str | None = None,
        created_by: str | None = None,
    ) -> CalculationRunModel:
        """Insert a RUNNING run row (flushed, not committed)."""
        run = CalculationRunModel(
            project_id=project_id,
            category_l1=category_l1,
            rule_set_version=rule_set_version,
            input_snapshot=input_snapshot,
            input_hash=input_hash,
            status=RunStatus.RUNNING.value,
            created_by=created_by,
        )
        self.session.add(run)
        await self.session.flush()
        return run

    async def complete_run(
        self,
        run: CalculationRunModel,
        lines: list[MaterialBreakdownLine],
        errors: list[ItemError],
        duration_ms: int,
    ) -> list[MaterialBreakdownLine]:
        """Attach all lines and the final status to a run in one batch.

        Returns the lines with their persisted ids.
        """
        status = RunStatus.PARTIAL if errors else RunStatus.SUCCESS

        rows = [
            MaterialBreakdownModel(
                run_id=run.run_id,
                line_no=line_no,
                source_work_item_code=line.source_work_item_code,
                category_l1=line.category_l1,
                category_l2=line.category_l2,
                category_l3=line.category_l3,
                material_code=line.material_code,
                material_name=line.material_name,
                spec=line.spec,
                base_quantity=Decimal(str(line.base_quantity)),
                waste_factor=Decimal(str(line.waste_factor)),
                final_quantity=Decimal(str(line.final_quantity)),
                unit=line.unit,
                packaging_unit=line.packaging_unit,
                packaging_quantity=line.packaging_quantity,
                unit_price=_decimal(line.unit_price),
                subtotal=_decimal(line.subtotal),
                trace_info=line.trace_info,
            )
            for line_no, line in enumerate(lines)
        ]
        self.session.add_all(rows)

        run.status = status.value
        run.duration_ms = duration_ms
        run.completed_at = utcnow()
        run.error_log = [error.model_dump() for error in errors] or None
        run.result_summary = {
            "line_count": len(rows),
            "error_count": len(errors),
            "item_count": len(run.input_snapshot.get("work_items", [])),
        }
        await self.session.flush()

        return [
            line.model_copy(update={"id": row.id}) for line, row in zip(lines, rows)
        ]

    async def fail_run(self, run_id: UUID, error: BaseException, duration_ms: int) -> None:
        """Mark a run FAILED with the run-level error."""
        run = await self.session.get(CalculationRunModel, run_id)
        if run is None:
            raise NotFoundError("CalculationRun", run_id)

        run.status = RunStatus.FAILED.value
        run.duration_ms = duration_ms
        run.completed_at = utcnow()
        run.error_log = [{"item_code": None, "message": f"{type(error).__name__}: {error}"}]
        await self.session.flush()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_runs(
        self,
        project_id: str | None = None,
        category_l1: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> RunPage:
        """Run summaries, newest first. Degrades to an empty page on store errors."""
        conditions = []
        if project_id is not None:
            conditions.append(CalculationRunModel.project_id == project_id)
        if category_l1 is not None:
            conditions.append(CalculationRunModel.category_l1 == category_l1)

        try:
            total = (
                await self.session.execute(
                    select(func.count()).select_from(CalculationRunModel).where(*conditions)
                )
            ).scalar_one()

            result = await self.session.execute(
                select(CalculationRunModel)
                .where(*conditions)
                .order_by(CalculationRunModel.created_at.desc(), CalculationRunModel.run_id)
                .limit(limit)
                .offset(offset)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.warning("Run listing failed, returning empty page: %s", e, exc_info=True)
            return RunPage(items=[], total=0, limit=limit, offset=offset)

        return RunPage(
            items=[RunSummary.model_validate(row) for row in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def run_statistics(self) -> dict[str, int]:
        """Run counts by status plus a total. Degrades to {} on store errors."""
        try:
            result = await self.session.execute(
                select(CalculationRunModel.status, func.count()).group_by(CalculationRunModel.status)
            )
            rows = result.all()
        except SQLAlchemyError as e:
            logger.warning("Run statistics failed, returning empty stats: %s", e, exc_info=True)
            return {}

        stats = {status.value: 0 for status in RunStatus}
        for status, count in rows:
            stats[status] = count
        stats["total"] = sum(count for _, count in rows)
        return stats

    async def get_run_result(self, run_id: UUID) -> CalculationResult:
        """Replay a run's result from its persisted lines.

        Raises:
            NotFoundError: If no run has this id
        """
        run = await self.session.get(CalculationRunModel, run_id)
        if run is None:
            raise NotFoundError("CalculationRun", run_id)

        result = await self.session.execute(
            select(MaterialBreakdownModel)
            .where(MaterialBreakdownModel.run_id == run_id)
            .order_by(MaterialBreakdownModel.line_no)
        )
        lines = [_line_from_row(row) for row in result.scalars().all()]

        return CalculationResult(
            run_id=run.run_id,
            rule_set_version=run.rule_set_version,
            timestamp=run.created_at,
            status=RunStatus(run.status),
            input_snapshot_hash=run.input_hash,
            duration_ms=run.duration_ms,
            material_breakdown=lines,
            suggested_estimate_lines=suggested_lines(run.run_id, lines),
            errors=[
                ItemError(item_code=entry.get("item_code") or "", message=entry.get("message", ""))
                for entry in run.error_log or []
            ],
        )


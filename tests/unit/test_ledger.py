"""Tests for the run ledger: listing, statistics and replay lookups."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from cmmcalc.core.errors import NotFoundError
from cmmcalc.engine.calculator import CalculationEngine
from cmmcalc.ledger.runs import RunLedger
from cmmcalc.models import RunStatus, WorkItem


def _tile(code: str, quantity: float = 10) -> WorkItem:
    return WorkItem(
        item_code=code,
        category_l2="INT_TILE",
        category_l3="INT_TILE_FLOOR",
        quantity=quantity,
        unit="m2",
    )


@pytest.fixture
def broken_session():
    """Session whose every query fails at the driver level."""
    session = MagicMock()
    session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))
    return session


@pytest.mark.asyncio
async def test_list_runs_newest_first_with_pagination(seeded_session):
    engine = CalculationEngine(seeded_session)
    run_ids = []
    for n in range(3):
        result = await engine.execute_run("INTERIOR", [_tile(f"WI-{n}")], project_id="P-1")
        run_ids.append(result.run_id)

    ledger = RunLedger(seeded_session)
    page = await ledger.list_runs(project_id="P-1", limit=2, offset=0)

    assert page.total == 3
    assert page.limit == 2
    assert [item.run_id for item in page.items] == [run_ids[2], run_ids[1]]

    rest = await ledger.list_runs(project_id="P-1", limit=2, offset=2)
    assert [item.run_id for item in rest.items] == [run_ids[0]]


@pytest.mark.asyncio
async def test_list_runs_filters(seeded_session):
    engine = CalculationEngine(seeded_session)
    await engine.execute_run("INTERIOR", [_tile("WI-1")], project_id="P-1")
    await engine.execute_run("INTERIOR", [_tile("WI-2")], project_id="P-2")

    ledger = RunLedger(seeded_session)

    assert (await ledger.list_runs(project_id="P-2")).total == 1
    assert (await ledger.list_runs(category_l1="INTERIOR")).total == 2
    assert (await ledger.list_runs(category_l1="CONSTRUCTION")).total == 0


@pytest.mark.asyncio
async def test_summary_fields(seeded_session):
    await CalculationEngine(seeded_session).execute_run("INTERIOR", [_tile("WI-1")], project_id="P-1")

    summary = (await RunLedger(seeded_session).list_runs()).items[0]

    assert summary.status == RunStatus.SUCCESS
    assert summary.rule_set_version == "v1.0"
    assert summary.category_l1 == "INTERIOR"
    assert summary.result_summary["line_count"] == 1
    assert summary.duration_ms is not None


@pytest.mark.asyncio
async def test_run_statistics(seeded_session):
    engine = CalculationEngine(seeded_session)
    await engine.execute_run("INTERIOR", [_tile("WI-1")])
    await engine.execute_run("INTERIOR", [_tile("WI-2", quantity=-1)])

    stats = await RunLedger(seeded_session).run_statistics()

    assert stats["SUCCESS"] == 1
    assert stats["PARTIAL"] == 1
    assert stats["FAILED"] == 0
    assert stats["total"] == 2


@pytest.mark.asyncio
async def test_get_unknown_run_raises_not_found(seeded_session):
    with pytest.raises(NotFoundError):
        await RunLedger(seeded_session).get_run_result(uuid4())


@pytest.mark.asyncio
async def test_list_runs_degrades_to_empty_page(broken_session):
    page = await RunLedger(broken_session).list_runs(limit=5, offset=10)

    assert page.items == []
    assert page.total == 0
    assert page.limit == 5
    assert page.offset == 10


@pytest.mark.asyncio
async def test_run_statistics_degrade_to_empty(broken_session):
    assert await RunLedger(broken_session).run_statistics() == {}

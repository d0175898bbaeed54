"""Pytest configuration and fixtures for CMM Calc tests.

Provides an in-memory database session, a session preloaded with the
reference seed data, and sample work items.
"""

from __future__ import annotations

from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cmmcalc.config import reset_config
from cmmcalc.db.models import Base
from cmmcalc.models import ConversionRule, RuleKind, WorkItem
from cmmcalc.rules.registry import RuleSetRegistry
from cmmcalc.taxonomy.seed import seed_reference_data


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("CMM_CONFIG_ROOT", raising=False)
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest_asyncio.fixture()
async def seeded_session(db_session: AsyncSession) -> AsyncSession:
    """In-memory database loaded from config/cmm_seed.yaml."""
    await seed_reference_data(db_session)
    await db_session.commit()
    return db_session


@pytest.fixture
def tile_item() -> WorkItem:
    """100 m² of 60x60 floor tile."""
    return WorkItem(
        item_code="WI-1",
        category_l2="INT_TILE",
        category_l3="INT_TILE_FLOOR",
        quantity=100,
        unit="m2",
    )


@pytest.fixture
def paint_item() -> WorkItem:
    return WorkItem(
        item_code="WI-2",
        category_l2="INT_PAINT",
        category_l3="INT_PAINT_LATEX",
        quantity=250.5,
        unit="m2",
    )


@pytest.fixture
def make_rule_set(db_session: AsyncSession):
    """Factory: rule set with one WASTE rule per L2 code."""

    async def _make(
        version: str,
        effective_from: datetime,
        waste: dict[str, float] | None = None,
        make_current: bool = False,
    ):
        rules = [
            ConversionRule(
                rule_type=RuleKind.WASTE,
                category_l2=code,
                parameters={"factor": factor},
                priority=1,
            )
            for code, factor in (waste or {}).items()
        ]
        return await RuleSetRegistry(db_session).create_rule_set(
            version=version,
            name=f"Rule set {version}",
            effective_from=effective_from,
            rules=rules,
            make_current=make_current,
        )

    return _make

"""Fixtures for API route tests.

Routes run against a seeded SQLite file so every request (and its own
event loop inside TestClient) opens a fresh connection to the same data.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from cmmcalc.db.connection import get_db
from cmmcalc.db.models import Base
from cmmcalc.taxonomy.seed import seed_reference_data
from cmmcalc.web.app import app


def _prepare_database(url: str, seed: bool) -> None:
    async def _run():
        engine = create_async_engine(url, poolclass=NullPool)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        if seed:
            factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with factory() as session:
                await seed_reference_data(session)
                await session.commit()
        await engine.dispose()

    asyncio.run(_run())


def _client_for(url: str):
    engine = create_async_engine(url, poolclass=NullPool)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        session = factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def client(tmp_path):
    """Test client over a database loaded with the reference seed data."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'cmm.db'}"
    _prepare_database(url, seed=True)
    yield _client_for(url)
    app.dependency_overrides.clear()


@pytest.fixture
def empty_client(tmp_path):
    """Test client over an empty schema."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"
    _prepare_database(url, seed=False)
    yield _client_for(url)
    app.dependency_overrides.clear()


@pytest.fixture
def tile_run_payload() -> dict:
    return {
        "project_id": "P-100",
        "category_l1": "INTERIOR",
        "work_items": [
            {
                "item_code": "WI-1",
                "category_l2": "INT_TILE",
                "category_l3": "INT_TILE_FLOOR",
                "quantity": 100,
                "unit": "m2",
            }
        ],
    }

"""Tests for startup validation."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from cmmcalc.config import get_config, reset_config
from cmmcalc.startup_validation import (
    StartupValidationError,
    run_all_validations,
    validate_database_connection,
    validate_rule_sets,
    validate_seed_file,
    validate_waste_table,
)


@pytest.fixture
def config_root(tmp_path, monkeypatch) -> Path:
    """Empty config directory in place of the shipped one."""
    monkeypatch.setenv("CMM_CONFIG_ROOT", str(tmp_path))
    reset_config()
    return tmp_path


@pytest.mark.asyncio
async def test_shipped_configuration_passes():
    await validate_waste_table()
    await validate_seed_file()


@pytest.mark.asyncio
async def test_invalid_waste_table_fails(config_root):
    (config_root / "waste_factors.yaml").write_text("factors:\n  INT_TILE: 1.5\n", encoding="utf-8")

    with pytest.raises(StartupValidationError, match="Waste factor table"):
        await validate_waste_table()


@pytest.mark.asyncio
async def test_missing_waste_table_uses_builtin(config_root):
    await validate_waste_table()


@pytest.mark.asyncio
async def test_missing_seed_file_only_warns(config_root, caplog):
    with caplog.at_level(logging.WARNING):
        await validate_seed_file()

    assert "Seed file unusable" in caplog.text


@pytest.mark.asyncio
async def test_database_connection_failure():
    session = MagicMock()
    session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("no such table")))

    with pytest.raises(StartupValidationError, match="Database connection failed"):
        await validate_database_connection(session)


@pytest.mark.asyncio
async def test_empty_taxonomy_warns(db_session, caplog):
    with caplog.at_level(logging.WARNING):
        await validate_database_connection(db_session)

    assert "Taxonomy is empty" in caplog.text


@pytest.mark.asyncio
async def test_no_rule_sets_warns(db_session, caplog):
    with caplog.at_level(logging.WARNING):
        await validate_rule_sets(db_session)

    assert "No rule sets defined" in caplog.text


@pytest.mark.asyncio
async def test_rule_set_without_pointer_warns(db_session, make_rule_set, caplog):
    from datetime import datetime, timezone

    await make_rule_set("v1.0", datetime(2025, 1, 1, tzinfo=timezone.utc))

    with caplog.at_level(logging.WARNING):
        await validate_rule_sets(db_session)

    assert "No current rule set assigned" in caplog.text


@pytest.mark.asyncio
async def test_run_all_validations_on_seeded_database(seeded_session, caplog):
    with caplog.at_level(logging.INFO):
        await run_all_validations(seeded_session)

    assert "Current rule set: v1.0" in caplog.text
    assert "All startup validations passed" in caplog.text


@pytest.mark.asyncio
async def test_run_all_validations_without_session(config_root, caplog):
    shutil.copy(Path(__file__).parents[2] / "config" / "waste_factors.yaml", config_root)
    assert get_config().waste_factors_config_path.exists()

    with caplog.at_level(logging.WARNING):
        await run_all_validations()

    assert "skipping DB validations" in caplog.text

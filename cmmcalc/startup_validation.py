"""Startup validation for CMM Calc.

Fail fast when the waste table or the database is unusable; everything
that merely degrades results (no rule sets yet, no current pointer, missing
seed file) is logged as a warning.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.config import get_config
from cmmcalc.core.errors import ConfigurationError
from cmmcalc.db.models import CategoryL1Model, RuleSetModel
from cmmcalc.engine.waste import load_waste_table
from cmmcalc.rules.registry import RuleSetRegistry
from cmmcalc.taxonomy.seed import load_seed_file

logger = logging.getLogger(__name__)


class StartupValidationError(Exception):
    """Raised when startup validation fails."""
    pass


async def validate_waste_table() -> None:
    """Raises StartupValidationError if the waste table YAML is invalid."""
    config = get_config()
    try:
        table = load_waste_table(default=config.engine.default_waste_factor)
    except ConfigurationError as e:
        raise StartupValidationError(f"Waste factor table is invalid: {e}") from e

    logger.info(
        "✓ Waste table loaded (%d categories, default %s)", len(table.factors), table.default
    )


async def validate_seed_file() -> None:
    config = get_config()
    try:
        data = load_seed_file()
    except ConfigurationError as e:
        logger.warning("⚠ Seed file unusable (%s). `cmmcalc seed` will fail.", e)
        return

    logger.info(
        "✓ Seed file %s (%d materials, %d rule sets)",
        config.seed_config_path,
        len(data.get("materials", [])),
        len(data.get("rule_sets", [])),
    )


async def validate_database_connection(session: AsyncSession) -> None:
    """Validate database connection and schema.

    Raises:
        StartupValidationError: If the CMM tables cannot be queried
    """
    try:
        result = await session.execute(select(func.count()).select_from(CategoryL1Model))
        l1_count = result.scalar()
    except SQLAlchemyError as e:
        raise StartupValidationError(
            f"Database connection failed: {e}. "
            "Check DATABASE_URL and ensure migrations have run."
        ) from e

    logger.info("✓ Database connection OK (%d L1 categories)", l1_count)
    if l1_count == 0:
        logger.warning("⚠ Taxonomy is empty. Run `cmmcalc seed` before calculating.")


async def validate_rule_sets(session: AsyncSession) -> None:
    """Warn when runs would fail or fall back during rule set resolution."""
    result = await session.execute(select(func.count()).select_from(RuleSetModel))
    if result.scalar() == 0:
        logger.warning("⚠ No rule sets defined. Every calculation run will be rejected.")
        return

    current = await RuleSetRegistry(session).current_version()
    if current is None:
        logger.warning(
            "⚠ No current rule set assigned; runs fall back to the most recently effective version."
        )
    else:
        logger.info("✓ Current rule set: %s", current)


async def run_all_validations(session: AsyncSession | None = None) -> None:
    """Run all startup validations.

    Args:
        session: Database session (optional, will warn if not provided)

    Raises:
        StartupValidationError: If any critical validation fails
    """
    logger.info("Running startup validations...")

    await validate_waste_table()
    await validate_seed_file()

    if session is not None:
        await validate_database_connection(session)
        await validate_rule_sets(session)
    else:
        logger.warning("⚠ Database session not provided, skipping DB validations")

    logger.info("✓ All startup validations passed")

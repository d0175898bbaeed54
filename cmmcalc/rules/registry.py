"""Rule set registry for CMM Calc.

Rule sets are versioned, time-bounded bundles of conversion rules. Which
version is current is held by a single named pointer row, swapped in one
statement under a process-wide single-writer lock, so at any moment exactly
one version (or, before the first assignment, none) is current.

Rules of a version that has been used by a persisted run are frozen; new
rules go into a new version.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.core.errors import ConflictError, NotFoundError
from cmmcalc.db.models import (
    CalculationRunModel,
    ConversionRuleModel,
    RuleSetModel,
    RuleSetPointerModel,
)
from cmmcalc.models import ConversionRule, RuleKind, RuleSet
from cmmcalc.rules.types import parse_rule_parameters

logger = logging.getLogger(__name__)

CURRENT_POINTER = "current"

# Single writer for the current pointer within this process
_current_lock = asyncio.Lock()


class RuleSetRegistry:
    """Resolve, list and administer rule set versions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def current_version(self) -> str | None:
        """Version named by the current pointer, if one has been assigned."""
        pointer = await self.session.get(RuleSetPointerModel, CURRENT_POINTER)
        return pointer.version if pointer is not None else None

    async def list_rule_sets(self) -> list[RuleSet]:
        """All rule sets, most recently effective first."""
        current = await self.current_version()
        result = await self.session.execute(
            select(RuleSetModel).order_by(RuleSetModel.effective_from.desc(), RuleSetModel.version)
        )
        return [_to_rule_set(row, current) for row in result.scalars().all()]

    async def get_rule_set(self, version: str) -> RuleSet:
        row = await self.session.get(RuleSetModel, version)
        if row is None:
            raise NotFoundError("RuleSet", version)
        return _to_rule_set(row, await self.current_version())

    async def resolve(self, version: str | None = None) -> RuleSet:
        """Resolve the rule set a calculation should use.

        An explicit version is looked up exactly. Otherwise the current
        version is used; if none is current, the most recently effective
        rule set (by effective_from descending) is returned.

        Raises:
            NotFoundError: If the requested version, or any rule set at all, is missing
        """
        if version is not None:
            return await self.get_rule_set(version)

        current = await self.current_version()
        if current is not None:
            row = await self.session.get(RuleSetModel, current)
            if row is not None:
                return _to_rule_set(row, current)
            logger.warning("Current pointer names unknown rule set %s", current)

        result = await self.session.execute(
            select(RuleSetModel)
            .order_by(RuleSetModel.effective_from.desc(), RuleSetModel.version.desc())
            .limit(1)
        )
        latest = result.scalar_one_or_none()
        if latest is None:
            raise NotFoundError("RuleSet", "current", "No rule set has been defined")

        logger.info("No current rule set; falling back to latest effective %s", latest.version)
        return _to_rule_set(latest, current)

    async def get_current(self) -> RuleSet:
        return await self.resolve(None)

    async def list_rules(
        self,
        version: str,
        kind: RuleKind | None = None,
        active_only: bool = True,
    ) -> list[ConversionRule]:
        """Rules of one version, ordered by (priority, id)."""
        stmt = select(ConversionRuleModel).where(ConversionRuleModel.rule_set_version == version)
        if kind is not None:
            stmt = stmt.where(ConversionRuleModel.rule_type == RuleKind(kind).value)
        if active_only:
            stmt = stmt.where(ConversionRuleModel.is_active.is_(True))
        stmt = stmt.order_by(ConversionRuleModel.priority, ConversionRuleModel.id)

        result = await self.session.execute(stmt)
        return [ConversionRule.model_validate(row) for row in result.scalars().all()]

    async def is_used(self, version: str) -> bool:
        """True once any persisted run references this version."""
        result = await self.session.execute(
            select(exists().where(CalculationRunModel.rule_set_version == version))
        )
        return bool(result.scalar())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set_current(self, version: str, updated_by: str | None = None) -> RuleSet:
        """Atomically point ``current`` at ``version``.

        Raises:
            NotFoundError: If the version does not exist
        """
        async with _current_lock:
            target = await self.session.execute(
                select(RuleSetModel).where(RuleSetModel.version == version).with_for_update()
            )
            row = target.scalar_one_or_none()
            if row is None:
                raise NotFoundError("RuleSet", version)

            pointer = await self.session.execute(
                select(RuleSetPointerModel)
                .where(RuleSetPointerModel.name == CURRENT_POINTER)
                .with_for_update()
            )
            existing = pointer.scalar_one_or_none()

            if existing is None:
                self.session.add(
                    RuleSetPointerModel(name=CURRENT_POINTER, version=version, updated_by=updated_by)
                )
                previous = None
            else:
                previous = existing.version
                existing.version = version
                existing.updated_by = updated_by

            await self.session.flush()

        logger.info("Current rule set switched %s -> %s", previous, version)
        return _to_rule_set(row, version)

    async def create_rule_set(
        self,
        version: str,
        name: str,
        effective_from: datetime,
        description: str | None = None,
        effective_to: datetime | None = None,
        rules: list[ConversionRule] | None = None,
        make_current: bool = False,
        created_by: str | None = None,
    ) -> RuleSet:
        """Create a new version with its rules.

        Raises:
            ConflictError: If the version already exists
            ConfigurationError: If a rule's parameters are invalid for its kind
        """
        if await self.session.get(RuleSetModel, version) is not None:
            raise ConflictError(f"RuleSet {version} already exists")

        row = RuleSetModel(
            version=version,
            name=name,
            description=description,
            effective_from=effective_from,
            effective_to=effective_to,
            created_by=created_by,
        )
        self.session.add(row)
        await self.session.flush()

        for rule in rules or []:
            self.session.add(_to_rule_model(version, rule))
        await self.session.flush()

        logger.info("Created rule set %s with %d rules", version, len(rules or []))

        if make_current:
            return await self.set_current(version, updated_by=created_by)
        return _to_rule_set(row, await self.current_version())

    async def add_rule(self, version: str, rule: ConversionRule) -> ConversionRule:
        """Append a rule to an unused version.

        Raises:
            NotFoundError: If the version does not exist
            ConflictError: If a persisted run already used the version
            ConfigurationError: If the parameters are invalid for the rule kind
        """
        if await self.session.get(RuleSetModel, version) is None:
            raise NotFoundError("RuleSet", version)
        if await self.is_used(version):
            raise ConflictError(
                f"RuleSet {version} has been used by a calculation run; "
                "create a new version instead"
            )

        model = _to_rule_model(version, rule)
        self.session.add(model)
        await self.session.flush()
        return ConversionRule.model_validate(model)

    async def close_rule_set(self, version: str, effective_to: datetime) -> RuleSet:
        """Set the end of a version's effective window."""
        result = await self.session.execute(
            update(RuleSetModel)
            .where(RuleSetModel.version == version)
            .values(effective_to=effective_to)
        )
        if result.rowcount == 0:
            raise NotFoundError("RuleSet", version)
        row = await self.session.get(RuleSetModel, version, populate_existing=True)
        return _to_rule_set(row, await self.current_version())


def _to_rule_set(row: RuleSetModel, current_version: str | None) -> RuleSet:
    return RuleSet(
        version=row.version,
        name=row.name,
        description=row.description,
        is_current=row.version == current_version,
        effective_from=row.effective_from,
        effective_to=row.effective_to,
        created_at=row.created_at,
    )


def _to_rule_model(version: str, rule: ConversionRule) -> ConversionRuleModel:
    # Validates the structured payload before it is stored
    parse_rule_parameters(rule.rule_type, rule.parameters)

    params: dict[str, Any] = dict(rule.parameters)
    return ConversionRuleModel(
        rule_set_version=version,
        rule_type=RuleKind(rule.rule_type).value,
        category_l1=rule.category_l1,
        category_l2=rule.category_l2,
        category_l3=rule.category_l3,
        source_material=rule.source_material,
        target_material=rule.target_material,
        formula=rule.formula,
        parameters=params,
        output_unit=rule.output_unit,
        priority=rule.priority,
        description=rule.description,
        is_active=rule.is_active,
    )

"""Integration tests for database-level invariants of the CMM schema.

The services check these rules first; the constraints are the backstop when
rows are written some other way.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.db.models import (
    CalculationRunModel,
    ConversionRuleModel,
    MaterialMasterModel,
    RuleSetModel,
    RuleSetPointerModel,
    UnitConversionModel,
)
from cmmcalc.rules.registry import CURRENT_POINTER, RuleSetRegistry

pytestmark = pytest.mark.integration

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _rule_set(version: str, **kwargs) -> RuleSetModel:
    return RuleSetModel(version=version, name=f"Rule set {version}", effective_from=kwargs.pop("effective_from", T0), **kwargs)


@pytest.mark.asyncio
async def test_material_code_unique(db_session: AsyncSession):
    db_session.add(MaterialMasterModel(code="REBAR_D10", name="D10", base_unit="kg"))
    await db_session.commit()

    db_session.add(MaterialMasterModel(code="REBAR_D10", name="D10 again", base_unit="kg"))
    with pytest.raises(IntegrityError):
        await db_session.commit()


@pytest.mark.asyncio
async def test_conversion_pair_unique_and_positive(db_session: AsyncSession):
    material = MaterialMasterModel(code="CEMENT_50KG", name="Cement", base_unit="包")
    db_session.add(material)
    await db_session.flush()
    material_id = material.id

    db_session.add(
        UnitConversionModel(material_id=material_id, from_unit="包", to_unit="kg", conversion_factor=Decimal("50"))
    )
    await db_session.commit()

    db_session.add(
        UnitConversionModel(material_id=material_id, from_unit="包", to_unit="kg", conversion_factor=Decimal("40"))
    )
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()

    db_session.add(
        UnitConversionModel(material_id=material_id, from_unit="kg", to_unit="t", conversion_factor=Decimal("0"))
    )
    with pytest.raises(IntegrityError):
        await db_session.commit()


@pytest.mark.asyncio
async def test_effective_window_must_be_ordered(db_session: AsyncSession):
    db_session.add(_rule_set("v1.0", effective_to=T0 - timedelta(days=1)))

    with pytest.raises(IntegrityError):
        await db_session.commit()


@pytest.mark.asyncio
async def test_rule_type_checked(db_session: AsyncSession):
    db_session.add(_rule_set("v1.0"))
    await db_session.flush()
    db_session.add(ConversionRuleModel(rule_set_version="v1.0", rule_type="DISCOUNT", parameters={}))

    with pytest.raises(IntegrityError):
        await db_session.commit()


@pytest.mark.asyncio
async def test_run_status_checked(db_session: AsyncSession):
    db_session.add(_rule_set("v1.0"))
    await db_session.flush()
    db_session.add(
        CalculationRunModel(
            category_l1="INTERIOR",
            rule_set_version="v1.0",
            input_snapshot={},
            input_hash="0" * 64,
            status="DONE",
        )
    )

    with pytest.raises(IntegrityError):
        await db_session.commit()


@pytest.mark.asyncio
async def test_pointer_is_single_row(db_session: AsyncSession):
    db_session.add_all([_rule_set("v1.0"), _rule_set("v2.0", effective_from=T0 + timedelta(days=30))])
    await db_session.commit()

    registry = RuleSetRegistry(db_session)
    await registry.set_current("v1.0")
    await registry.set_current("v2.0")
    await db_session.commit()

    pointers = (await db_session.execute(select(RuleSetPointerModel))).scalars().all()
    assert [(p.name, p.version) for p in pointers] == [(CURRENT_POINTER, "v2.0")]

"""Tests for per-material unit conversion (direct row, bidirectional inverse, no chaining)."""

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.core.errors import ConversionNotFoundError, NotFoundError
from cmmcalc.materials.conversion import UnitConversionResolver
from cmmcalc.materials.master import MaterialMasterService


@pytest.fixture
def resolver(db_session: AsyncSession) -> UnitConversionResolver:
    return UnitConversionResolver(db_session)


async def _material(session: AsyncSession, code: str = "MAT_X"):
    return await MaterialMasterService(session).create_material(
        {"code": code, "name": code, "base_unit": "kg"}
    )


@pytest.mark.asyncio
async def test_direct_conversion(db_session, resolver):
    mat = await _material(db_session)
    await MaterialMasterService(db_session).add_conversion(mat.id, "m", "kg", 0.56)

    result = await resolver.convert(mat.id, "m", "kg", 10)

    assert result.direction == "direct"
    assert result.result == pytest.approx(5.6)
    assert result.factor == pytest.approx(0.56)
    assert result.formula == "10 m × 0.56 = 5.6 kg"


@pytest.mark.asyncio
async def test_inverse_conversion_uses_reciprocal(db_session, resolver):
    mat = await _material(db_session)
    await MaterialMasterService(db_session).add_conversion(mat.id, "包", "kg", 50)

    result = await resolver.convert(mat.id, "kg", "包", 125)

    assert result.direction == "inverse"
    assert result.result == pytest.approx(2.5)
    assert result.factor == pytest.approx(0.02)


@pytest.mark.asyncio
async def test_direct_row_preferred_over_reverse(db_session, resolver):
    mat = await _material(db_session)
    service = MaterialMasterService(db_session)
    await service.add_conversion(mat.id, "m³", "kg", 2400)
    await service.add_conversion(mat.id, "kg", "m³", 0.0005)

    result = await resolver.convert(mat.id, "kg", "m³", 1000)

    assert result.direction == "direct"
    assert result.result == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_non_bidirectional_row_is_not_inverted(db_session, resolver):
    mat = await _material(db_session)
    await MaterialMasterService(db_session).add_conversion(
        mat.id, "m", "kg", 0.56, is_bidirectional=False
    )

    with pytest.raises(ConversionNotFoundError):
        await resolver.convert(mat.id, "kg", "m", 10)


@pytest.mark.asyncio
async def test_conversions_do_not_chain(db_session, resolver):
    mat = await _material(db_session)
    service = MaterialMasterService(db_session)
    await service.add_conversion(mat.id, "m", "kg", 0.56)
    await service.add_conversion(mat.id, "kg", "t", 0.001)

    with pytest.raises(ConversionNotFoundError) as exc_info:
        await resolver.convert(mat.id, "m", "t", 10)

    assert "m to t" in str(exc_info.value)


@pytest.mark.asyncio
async def test_missing_pair_is_a_not_found_error(db_session, resolver):
    mat = await _material(db_session)

    with pytest.raises(NotFoundError):
        await resolver.convert(mat.id, "m", "ft", 1)


@pytest.mark.asyncio
async def test_same_unit_without_row_is_not_found(db_session, resolver):
    mat = await _material(db_session)

    with pytest.raises(ConversionNotFoundError, match="kg to kg"):
        await resolver.convert(mat.id, "kg", "kg", 12.5)


@pytest.mark.asyncio
async def test_same_unit_for_unknown_material_is_not_found(resolver):
    with pytest.raises(ConversionNotFoundError):
        await resolver.convert(uuid4(), "m", "m", 5)


@pytest.mark.asyncio
async def test_same_unit_uses_stored_row(db_session, resolver):
    mat = await _material(db_session)
    await MaterialMasterService(db_session).add_conversion(mat.id, "kg", "kg", 1)

    result = await resolver.convert(mat.id, "kg", "kg", 12.5)

    assert result.direction == "direct"
    assert result.result == 12.5


@pytest.mark.asyncio
async def test_seeded_tile_piece_to_area(seeded_session):
    tile = await MaterialMasterService(seeded_session).get_material_by_code("TILE_60X60")

    result = await UnitConversionResolver(seeded_session).convert(tile.id, "m²", "片", 36)

    assert result.direction == "inverse"
    assert result.result == pytest.approx(100)

"""Tests for the material master service."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.core.errors import ConflictError, NotFoundError
from cmmcalc.materials.master import MaterialMasterService
from cmmcalc.models import MaterialCategory, MaterialStatus


@pytest.fixture
def service(db_session: AsyncSession) -> MaterialMasterService:
    return MaterialMasterService(db_session)


def _data(code: str, **extra) -> dict:
    data = {"code": code, "name": f"{code} name", "base_unit": "m²", "category": MaterialCategory.TILE}
    data.update(extra)
    return data


@pytest.mark.asyncio
async def test_create_and_get(service):
    created = await service.create_material(_data("TILE_A", reference_price=500), created_by="tester")

    fetched = await service.get_material(created.id)

    assert fetched.code == "TILE_A"
    assert fetched.category == MaterialCategory.TILE
    assert fetched.status == MaterialStatus.ACTIVE
    assert fetched.reference_price == 500


@pytest.mark.asyncio
async def test_duplicate_code_conflicts(service):
    await service.create_material(_data("TILE_A"))

    with pytest.raises(ConflictError):
        await service.create_material(_data("TILE_A"))


@pytest.mark.asyncio
async def test_code_of_deleted_material_stays_reserved(service):
    created = await service.create_material(_data("TILE_A"))
    await service.delete_material(created.id)

    with pytest.raises(ConflictError):
        await service.create_material(_data("TILE_A"))


@pytest.mark.asyncio
async def test_soft_delete_hides_material(service):
    keep = await service.create_material(_data("TILE_A"))
    gone = await service.create_material(_data("TILE_B"))

    await service.delete_material(gone.id)

    page = await service.list_materials()
    assert [m.code for m in page.items] == [keep.code]
    assert page.total == 1
    with pytest.raises(NotFoundError):
        await service.get_material(gone.id)
    by_code = await service.get_materials_by_codes(["TILE_A", "TILE_B"])
    assert list(by_code) == ["TILE_A"]


@pytest.mark.asyncio
async def test_list_filters_and_pagination(service):
    for n in range(5):
        await service.create_material(_data(f"TILE_{n}"))
    await service.create_material(_data("PAINT_X", category=MaterialCategory.PAINT, name="乳膠漆"))

    tiles = await service.list_materials(category=MaterialCategory.TILE, page=2, limit=2)
    assert [m.code for m in tiles.items] == ["TILE_2", "TILE_3"]
    assert tiles.total == 5
    assert tiles.total_pages == 3

    search = await service.list_materials(search="乳膠")
    assert [m.code for m in search.items] == ["PAINT_X"]


@pytest.mark.asyncio
async def test_update_material(service):
    created = await service.create_material(_data("TILE_A", reference_price=500))

    updated = await service.update_material(created.id, {"reference_price": 550, "notes": "2026 price"})

    assert updated.reference_price == 550
    assert updated.notes == "2026 price"
    assert updated.code == "TILE_A"


@pytest.mark.asyncio
async def test_update_to_taken_code_conflicts(service):
    await service.create_material(_data("TILE_A"))
    other = await service.create_material(_data("TILE_B"))

    with pytest.raises(ConflictError):
        await service.update_material(other.id, {"code": "TILE_A"})


@pytest.mark.asyncio
async def test_duplicate_conversion_conflicts(service):
    created = await service.create_material(_data("TILE_A"))
    await service.add_conversion(created.id, "片", "m²", 0.36)

    with pytest.raises(ConflictError):
        await service.add_conversion(created.id, "片", "m²", 0.4)

    conversions = await service.list_conversions(created.id)
    assert len(conversions) == 1
    assert conversions[0].formula == "1 片 = 0.36 m²"
    assert conversions[0].is_bidirectional is True

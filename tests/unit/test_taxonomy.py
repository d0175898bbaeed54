"""Tests for the L1/L2/L3 taxonomy catalog."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.core.errors import ConflictError, NotFoundError
from cmmcalc.taxonomy.catalog import TaxonomyCatalog


@pytest.mark.asyncio
async def test_tree_is_ordered_by_sort_order_then_code(db_session: AsyncSession):
    catalog = TaxonomyCatalog(db_session)
    await catalog.add_l1("INTERIOR", "室內裝潢", sort_order=2)
    await catalog.add_l1("CONSTRUCTION", "營建工程", sort_order=1)
    await catalog.add_l2("INT_WOOD", "木作工程", "INTERIOR", sort_order=1)
    await catalog.add_l2("INT_PAINT", "油漆工程", "INTERIOR", sort_order=1)
    await catalog.add_l2("INT_TILE", "磁磚工程", "INTERIOR", sort_order=0)

    tree = await catalog.get_taxonomy_tree()

    assert [l1.code for l1 in tree.categories] == ["CONSTRUCTION", "INTERIOR"]
    interior = tree.categories[1]
    assert [l2.code for l2 in interior.children] == ["INT_TILE", "INT_PAINT", "INT_WOOD"]


@pytest.mark.asyncio
async def test_seeded_tree_nests_templates(seeded_session: AsyncSession):
    tree = await TaxonomyCatalog(seeded_session).get_taxonomy_tree()

    interior = next(l1 for l1 in tree.categories if l1.code == "INTERIOR")
    tile = next(l2 for l2 in interior.children if l2.code == "INT_TILE")

    assert tile.default_unit == "m2"
    assert [l3.code for l3 in tile.children] == ["INT_TILE_FLOOR", "INT_TILE_WALL", "INT_TILE_BATH"]
    assert tile.children[0].default_materials == ["TILE_60X60"]


@pytest.mark.asyncio
async def test_subtree_for_one_l1(seeded_session: AsyncSession):
    subtree = await TaxonomyCatalog(seeded_session).get_subtree("CONSTRUCTION")

    assert subtree.l1_code == "CONSTRUCTION"
    assert [l2.code for l2 in subtree.categories] == [
        "CON_REBAR",
        "CON_CONC",
        "CON_FORM",
        "CON_STEEL",
        "CON_MASONRY",
    ]


@pytest.mark.asyncio
async def test_subtree_unknown_l1_raises_not_found(seeded_session: AsyncSession):
    with pytest.raises(NotFoundError):
        await TaxonomyCatalog(seeded_session).get_subtree("LANDSCAPE")


@pytest.mark.asyncio
async def test_retired_template_hidden_from_tree_but_resolvable(seeded_session: AsyncSession):
    catalog = TaxonomyCatalog(seeded_session)

    await catalog.retire("L3", "INT_TILE_WALL")

    subtree = await catalog.get_subtree("INTERIOR")
    tile = next(l2 for l2 in subtree.categories if l2.code == "INT_TILE")
    assert "INT_TILE_WALL" not in [l3.code for l3 in tile.children]

    template = await catalog.get_template("INT_TILE_WALL")
    assert template.is_active is False
    assert template.default_materials == ["TILE_30X60"]


@pytest.mark.asyncio
async def test_retire_unknown_code_raises_not_found(seeded_session: AsyncSession):
    with pytest.raises(NotFoundError):
        await TaxonomyCatalog(seeded_session).retire("L2", "INT_NOPE")


@pytest.mark.asyncio
async def test_duplicate_code_conflicts(seeded_session: AsyncSession):
    with pytest.raises(ConflictError):
        await TaxonomyCatalog(seeded_session).add_l2("INT_TILE", "dup", "INTERIOR")


@pytest.mark.asyncio
async def test_child_requires_existing_parent(db_session: AsyncSession):
    with pytest.raises(NotFoundError):
        await TaxonomyCatalog(db_session).add_l2("INT_TILE", "磁磚工程", "INTERIOR")


@pytest.mark.asyncio
async def test_get_templates_skips_unknown_codes(seeded_session: AsyncSession):
    templates = await TaxonomyCatalog(seeded_session).get_templates(
        ["CON_MASONRY_MORTAR", "NOPE", "CON_MASONRY_MORTAR"]
    )

    assert list(templates) == ["CON_MASONRY_MORTAR"]
    assert templates["CON_MASONRY_MORTAR"].default_materials == ["CEMENT_50KG", "SAND_FINE"]
    assert templates["CON_MASONRY_MORTAR"].default_params == {"cement_sand_ratio": 3}

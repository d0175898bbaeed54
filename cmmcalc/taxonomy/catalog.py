"""Three-level taxonomy catalog for CMM Calc.

L1 domain -> L2 trade group -> L3 work-item template. Read paths return
active entries ordered by (sort_order, code). Entries are retired with
``is_active = false`` and never deleted, so historical template codes keep
resolving for replays.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Literal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.core.errors import ConflictError, NotFoundError
from cmmcalc.db.models import CategoryL1Model, CategoryL2Model, CategoryL3Model
from cmmcalc.models import (
    CategoryL1Node,
    CategoryL2Node,
    CategoryL3,
    CategoryL3Node,
    TaxonomySubtree,
    TaxonomyTree,
)

logger = logging.getLogger(__name__)

Level = Literal["L1", "L2", "L3"]

_LEVEL_MODELS = {
    "L1": CategoryL1Model,
    "L2": CategoryL2Model,
    "L3": CategoryL3Model,
}


class TaxonomyCatalog:
    """Read/write access to the L1/L2/L3 category tree."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_taxonomy_tree(self) -> TaxonomyTree:
        """Return the active L1 -> L2 -> L3 tree, ordered at every level."""
        l1_rows = await self._active(CategoryL1Model)
        l2_rows = await self._active(CategoryL2Model)
        l3_rows = await self._active(CategoryL3Model)

        l2_nodes = self._build_l2_nodes(l2_rows, l3_rows)

        categories = [
            CategoryL1Node(
                code=l1.code,
                name=l1.name,
                children=[node for node, parent in l2_nodes if parent == l1.code],
            )
            for l1 in l1_rows
        ]
        return TaxonomyTree(categories=categories)

    async def get_subtree(self, l1_code: str) -> TaxonomySubtree:
        """Return the active L2/L3 entries beneath one L1.

        Raises:
            NotFoundError: If the L1 code does not exist
        """
        l1 = await self.session.get(CategoryL1Model, l1_code)
        if l1 is None:
            raise NotFoundError("CategoryL1", l1_code)

        l2_rows = await self._active(CategoryL2Model, CategoryL2Model.l1_code == l1_code)
        l3_rows = await self._active(
            CategoryL3Model, CategoryL3Model.l2_code.in_([row.code for row in l2_rows])
        )

        return TaxonomySubtree(
            l1_code=l1.code,
            l1_name=l1.name,
            categories=[node for node, _ in self._build_l2_nodes(l2_rows, l3_rows)],
        )

    async def l1_exists(self, l1_code: str) -> bool:
        return await self.session.get(CategoryL1Model, l1_code) is not None

    async def find_template(self, l3_code: str) -> CategoryL3 | None:
        """Look up an L3 template by code, including retired ones."""
        row = await self.session.get(CategoryL3Model, l3_code)
        return CategoryL3.model_validate(row) if row is not None else None

    async def get_template(self, l3_code: str) -> CategoryL3:
        """Look up an L3 template by code.

        Raises:
            NotFoundError: If no template has this code
        """
        template = await self.find_template(l3_code)
        if template is None:
            raise NotFoundError("CategoryL3", l3_code)
        return template

    async def get_templates(self, codes: Iterable[str]) -> dict[str, CategoryL3]:
        """Bulk template read keyed by code. Unknown codes are absent."""
        wanted = sorted(set(codes))
        if not wanted:
            return {}

        result = await self.session.execute(
            select(CategoryL3Model).where(CategoryL3Model.code.in_(wanted))
        )
        return {
            row.code: CategoryL3.model_validate(row) for row in result.scalars().all()
        }

    # ------------------------------------------------------------------
    # Administrative writes
    # ------------------------------------------------------------------

    async def add_l1(self, code: str, name: str, sort_order: int = 0, description: str | None = None) -> None:
        await self._ensure_new(CategoryL1Model, code)
        self.session.add(
            CategoryL1Model(code=code, name=name, sort_order=sort_order, description=description)
        )
        await self.session.flush()

    async def add_l2(
        self,
        code: str,
        name: str,
        l1_code: str,
        default_unit: str | None = None,
        sort_order: int = 0,
        description: str | None = None,
    ) -> None:
        await self._ensure_new(CategoryL2Model, code)
        if await self.session.get(CategoryL1Model, l1_code) is None:
            raise NotFoundError("CategoryL1", l1_code)

        self.session.add(
            CategoryL2Model(
                code=code,
                name=name,
                l1_code=l1_code,
                default_unit=default_unit,
                sort_order=sort_order,
                description=description,
            )
        )
        await self.session.flush()

    async def add_l3(
        self,
        code: str,
        name: str,
        l2_code: str,
        default_materials: list[str] | None = None,
        default_params: dict[str, float] | None = None,
        sort_order: int = 0,
        description: str | None = None,
    ) -> None:
        await self._ensure_new(CategoryL3Model, code)
        if await self.session.get(CategoryL2Model, l2_code) is None:
            raise NotFoundError("CategoryL2", l2_code)

        self.session.add(
            CategoryL3Model(
                code=code,
                name=name,
                l2_code=l2_code,
                default_materials=list(default_materials or []),
                default_params=dict(default_params or {}),
                sort_order=sort_order,
                description=description,
            )
        )
        await self.session.flush()

    async def retire(self, level: Level, code: str) -> None:
        """Mark a category inactive. Rows are never deleted."""
        model = _LEVEL_MODELS[level]
        result = await self.session.execute(
            update(model).where(model.code == code).values(is_active=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Category{level}", code)
        logger.info("Retired %s category %s", level, code)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _active(self, model, *criteria):
        stmt = (
            select(model)
            .where(model.is_active.is_(True), *criteria)
            .order_by(model.sort_order, model.code)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _ensure_new(self, model, code: str) -> None:
        if await self.session.get(model, code) is not None:
            raise ConflictError(f"{model.__tablename__} code {code} already exists")

    @staticmethod
    def _build_l2_nodes(l2_rows, l3_rows) -> list[tuple[CategoryL2Node, str]]:
        # l3_rows arrive ordered, so grouping preserves order
        children: dict[str, list[CategoryL3Node]] = {}
        for l3 in l3_rows:
            children.setdefault(l3.l2_code, []).append(
                CategoryL3Node(
                    code=l3.code,
                    name=l3.name,
                    default_materials=list(l3.default_materials or []),
                )
            )

        return [
            (
                CategoryL2Node(
                    code=l2.code,
                    name=l2.name,
                    default_unit=l2.default_unit,
                    children=children.get(l2.code, []),
                ),
                l2.l1_code,
            )
            for l2 in l2_rows
        ]

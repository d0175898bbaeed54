"""Per-material unit conversion resolver.

A conversion row states ``to_value = from_value * factor`` for one material.
Resolution tries the direct row, then the reverse row when it is marked
bidirectional. Nothing is chained through intermediate units: a missing pair
is a hard ``ConversionNotFoundError``.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.core.errors import ConversionNotFoundError
from cmmcalc.db.models import UnitConversionModel
from cmmcalc.engine.snapshot import round2
from cmmcalc.models import ConversionResult

logger = logging.getLogger(__name__)


class UnitConversionResolver:
    """Convert a quantity of one material between two units."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _find(self, material_id: UUID, from_unit: str, to_unit: str) -> UnitConversionModel | None:
        stmt = select(UnitConversionModel).where(
            and_(
                UnitConversionModel.material_id == material_id,
                UnitConversionModel.from_unit == from_unit,
                UnitConversionModel.to_unit == to_unit,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def convert(
        self,
        material_id: UUID,
        from_unit: str,
        to_unit: str,
        value: float | Decimal,
    ) -> ConversionResult:
        """Convert ``value`` from ``from_unit`` to ``to_unit``.

        Args:
            material_id: Material the factor belongs to
            from_unit: Source unit
            to_unit: Target unit
            value: Quantity in the source unit

        Returns:
            ConversionResult with the converted value, factor applied and a
            display formula

        Raises:
            ConversionNotFoundError: If neither the direct row nor a
                bidirectional reverse row exists
        """
        value = Decimal(str(value))

        direct = await self._find(material_id, from_unit, to_unit)
        if direct is not None:
            factor = Decimal(direct.conversion_factor)
            return _result(value, from_unit, to_unit, factor, "direct")

        reverse = await self._find(material_id, to_unit, from_unit)
        if reverse is not None and reverse.is_bidirectional:
            factor = Decimal(1) / Decimal(reverse.conversion_factor)
            return _result(value, from_unit, to_unit, factor, "inverse")

        logger.info(
            "No conversion for material %s: %s -> %s", material_id, from_unit, to_unit
        )
        raise ConversionNotFoundError(material_id, from_unit, to_unit)


def _fmt(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _result(value: Decimal, from_unit: str, to_unit: str, factor: Decimal, direction: str) -> ConversionResult:
    converted = value * factor
    return ConversionResult(
        result=float(converted),
        formula=(
            f"{_fmt(value)} {from_unit} × {_fmt(round(factor, 6))} = "
            f"{_fmt(round2(converted))} {to_unit}"
        ),
        factor=float(factor),
        direction=direction,
    )

"""Legacy floor-area estimator.

Whole-building material estimate from a structure type, floor count and
per-floor area. A building profile supplies per-area factors
(``kg/m²``, ``m³/m²``, ...); quantities are total area times factor, rounded
half-up to 2 places, reported in the unit before the ``/``.

Independent of rule sets and the run ledger; only ``calculate(save=True)``
writes anything.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.core.errors import NotFoundError
from cmmcalc.db.models import BuildingProfileModel, LegacyEstimateModel
from cmmcalc.engine.snapshot import round2
from cmmcalc.models import (
    BuildingProfile,
    LegacyCalculateRequest,
    LegacyCalculateResponse,
    MaterialResult,
    ProfileUsed,
    StructureType,
)

logger = logging.getLogger(__name__)

PING_TO_SQM = Decimal("3.30579")

STEEL_STRUCTURES = {StructureType.SRC, StructureType.SC}


def output_unit(factor_unit: str) -> str:
    """'kg/m²' -> 'kg'. Units without a slash pass through."""
    return factor_unit.split("/", 1)[0] if "/" in factor_unit else factor_unit


def material_quantity(category: str, total_area: Decimal, factor: Decimal, factor_unit: str) -> MaterialResult:
    return MaterialResult(
        category=category,
        quantity=float(round2(total_area * factor)),
        unit=output_unit(factor_unit),
        per_sqm=float(factor),
    )


def select_profile(profiles: list[BuildingProfile], floor_count: int) -> BuildingProfile | None:
    """First profile (by ascending min_floors) whose range contains floor_count.

    An open max_floors is unbounded. Falls back to the first profile when no
    range matches.
    """
    ordered = sorted(profiles, key=lambda p: (p.min_floors, p.code))
    for profile in ordered:
        if floor_count >= profile.min_floors and (
            profile.max_floors is None or floor_count <= profile.max_floors
        ):
            return profile
    return ordered[0] if ordered else None


class FloorAreaEstimator:
    """Profile lookup plus the single-shot area x factor calculation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_profiles(self, structure_type: StructureType | None = None) -> list[BuildingProfile]:
        stmt = select(BuildingProfileModel)
        if structure_type is not None:
            stmt = stmt.where(BuildingProfileModel.structure_type == StructureType(structure_type).value)
        stmt = stmt.order_by(BuildingProfileModel.code)
        result = await self.session.execute(stmt)
        return [BuildingProfile.model_validate(row) for row in result.scalars().all()]

    async def get_profile(self, code: str) -> BuildingProfile:
        result = await self.session.execute(
            select(BuildingProfileModel).where(BuildingProfileModel.code == code)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError("BuildingProfile", code)
        return BuildingProfile.model_validate(row)

    async def find_profile(self, structure_type: StructureType, floor_count: int) -> BuildingProfile:
        """Raises NotFoundError if the structure type has no profiles."""
        result = await self.session.execute(
            select(BuildingProfileModel)
            .where(BuildingProfileModel.structure_type == StructureType(structure_type).value)
            .order_by(BuildingProfileModel.min_floors, BuildingProfileModel.code)
        )
        profiles = [BuildingProfile.model_validate(row) for row in result.scalars().all()]

        profile = select_profile(profiles, floor_count)
        if profile is None:
            raise NotFoundError(
                "BuildingProfile",
                structure_type.value,
                f"No building profile found for {structure_type.value} with {floor_count} floors",
            )
        return profile

    async def calculate(self, request: LegacyCalculateRequest, save: bool = False) -> LegacyCalculateResponse:
        if request.profile_code:
            profile = await self.get_profile(request.profile_code)
        else:
            profile = await self.find_profile(request.structure_type, request.floor_count)

        total_floors = request.floor_count + request.basement_count
        total_area = Decimal(str(request.floor_area)) * total_floors
        total_area_ping = round2(total_area / PING_TO_SQM)

        def factor(value: float) -> Decimal:
            return Decimal(str(value))

        steel = None
        if profile.steel_factor and request.structure_type in STEEL_STRUCTURES:
            steel = material_quantity(
                "STEEL", total_area, factor(profile.steel_factor), profile.steel_unit or "kg/m²"
            )

        mortar = None
        if profile.mortar_factor:
            mortar = material_quantity(
                "MORTAR", total_area, factor(profile.mortar_factor), profile.mortar_unit or "m³/m²"
            )

        response = LegacyCalculateResponse(
            total_area=float(total_area),
            total_area_ping=float(total_area_ping),
            rebar=material_quantity("REBAR", total_area, factor(profile.rebar_factor), profile.rebar_unit),
            concrete=material_quantity(
                "CONCRETE", total_area, factor(profile.concrete_factor), profile.concrete_unit
            ),
            formwork=material_quantity(
                "FORMWORK", total_area, factor(profile.formwork_factor), profile.formwork_unit
            ),
            steel=steel,
            mortar=mortar,
            profile_used=ProfileUsed(
                code=profile.code, name=profile.name, structure_type=profile.structure_type
            ),
            calculated_at=datetime.now(timezone.utc),
            input_snapshot=request,
        )

        if save:
            row = LegacyEstimateModel(
                estimate_id=request.estimate_id,
                profile_code=profile.code,
                structure_type=profile.structure_type.value,
                total_area=round2(total_area),
                input_snapshot=request.model_dump(mode="json"),
                result=response.model_dump(mode="json", exclude={"input_snapshot", "result_id"}),
            )
            self.session.add(row)
            await self.session.flush()
            response.result_id = row.id
            logger.info("Saved floor-area estimate %s using profile %s", row.id, profile.code)

        return response

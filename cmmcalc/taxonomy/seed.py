"""Reference data seeding from ``config/cmm_seed.yaml``.

Idempotent: categories, materials, profiles and rule set versions whose code
already exists are skipped, so re-running the seed never rewrites history.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.config import get_config
from cmmcalc.core.errors import ConfigurationError
from cmmcalc.db.models import (
    BuildingProfileModel,
    CategoryL1Model,
    CategoryL2Model,
    CategoryL3Model,
    MaterialMasterModel,
    RuleSetModel,
)
from cmmcalc.materials.master import MaterialMasterService
from cmmcalc.models import ConversionRule
from cmmcalc.rules.registry import RuleSetRegistry
from cmmcalc.taxonomy.catalog import TaxonomyCatalog

logger = logging.getLogger(__name__)

_PROFILE_FIELDS = {
    "code",
    "name",
    "structure_type",
    "building_usage",
    "min_floors",
    "max_floors",
    "rebar_factor",
    "rebar_unit",
    "concrete_factor",
    "concrete_unit",
    "formwork_factor",
    "formwork_unit",
    "steel_factor",
    "steel_unit",
    "mortar_factor",
    "mortar_unit",
    "other_factors",
    "description",
}


def load_seed_file(path: Path | None = None) -> dict[str, Any]:
    """Read and shape-check the seed YAML.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    if path is None:
        path = get_config().seed_config_path

    if not path.exists():
        raise ConfigurationError(f"Seed file not found: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected mapping in {path}, got {type(data).__name__}")

    for section in ("categories", "materials", "building_profiles", "rule_sets"):
        if not isinstance(data.get(section, []), list):
            raise ConfigurationError(f"Section '{section}' in {path} must be a list")

    return data


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str):
        return _as_datetime(datetime.fromisoformat(value))
    raise ConfigurationError(f"Invalid date in seed file: {value!r}")


async def _existing_codes(session: AsyncSession, column) -> set[str]:
    result = await session.execute(select(column))
    return set(result.scalars().all())


async def seed_reference_data(session: AsyncSession, path: Path | None = None) -> dict[str, int]:
    """Load the seed file into the database.

    Returns:
        Count of newly created rows per entity
    """
    data = load_seed_file(path)
    counts = {
        "categories_l1": 0,
        "categories_l2": 0,
        "categories_l3": 0,
        "materials": 0,
        "conversions": 0,
        "building_profiles": 0,
        "rule_sets": 0,
        "rules": 0,
    }

    # Taxonomy
    catalog = TaxonomyCatalog(session)
    l1_codes = await _existing_codes(session, CategoryL1Model.code)
    l2_codes = await _existing_codes(session, CategoryL2Model.code)
    l3_codes = await _existing_codes(session, CategoryL3Model.code)

    for l1 in data.get("categories", []):
        if l1["code"] not in l1_codes:
            await catalog.add_l1(
                l1["code"], l1["name"], sort_order=l1.get("sort_order", 0), description=l1.get("description")
            )
            counts["categories_l1"] += 1

        for l2 in l1.get("children", []):
            if l2["code"] not in l2_codes:
                await catalog.add_l2(
                    l2["code"],
                    l2["name"],
                    l1["code"],
                    default_unit=l2.get("default_unit"),
                    sort_order=l2.get("sort_order", 0),
                    description=l2.get("description"),
                )
                counts["categories_l2"] += 1

            for l3 in l2.get("templates", []):
                if l3["code"] in l3_codes:
                    continue
                await catalog.add_l3(
                    l3["code"],
                    l3["name"],
                    l2["code"],
                    default_materials=l3.get("default_materials", []),
                    default_params=l3.get("default_params", {}),
                    sort_order=l3.get("sort_order", 0),
                    description=l3.get("description"),
                )
                counts["categories_l3"] += 1

    # Materials and their unit conversions
    materials = MaterialMasterService(session)
    material_codes = await _existing_codes(session, MaterialMasterModel.code)
    for entry in data.get("materials", []):
        if entry["code"] in material_codes:
            continue
        conversions = entry.get("conversions", [])
        material = await materials.create_material(
            {key: value for key, value in entry.items() if key != "conversions"},
            created_by="seed",
        )
        counts["materials"] += 1
        for conversion in conversions:
            await materials.add_conversion(
                material.id,
                conversion["from_unit"],
                conversion["to_unit"],
                conversion["factor"],
                is_bidirectional=conversion.get("is_bidirectional", True),
            )
            counts["conversions"] += 1

    # Building profiles
    profile_codes = await _existing_codes(session, BuildingProfileModel.code)
    for entry in data.get("building_profiles", []):
        if entry["code"] in profile_codes:
            continue
        session.add(
            BuildingProfileModel(
                **{key: value for key, value in entry.items() if key in _PROFILE_FIELDS},
                is_system_default=True,
            )
        )
        counts["building_profiles"] += 1
    await session.flush()

    # Rule sets
    registry = RuleSetRegistry(session)
    versions = await _existing_codes(session, RuleSetModel.version)
    for entry in data.get("rule_sets", []):
        if entry["version"] in versions:
            continue
        rules = [ConversionRule.model_validate(rule) for rule in entry.get("rules", [])]
        make_current = bool(entry.get("current")) and await registry.current_version() is None
        await registry.create_rule_set(
            version=entry["version"],
            name=entry["name"],
            description=entry.get("description"),
            effective_from=_as_datetime(entry["effective_from"]),
            effective_to=_as_datetime(entry["effective_to"]) if entry.get("effective_to") else None,
            rules=rules,
            make_current=make_current,
            created_by="seed",
        )
        counts["rule_sets"] += 1
        counts["rules"] += len(rules)

    logger.info("Seeded reference data: %s", counts)
    return counts

"""Waste factor resolution.

Order for one work item:
1. Active WASTE rules of the resolved rule set whose scope matches, scanned by
   (priority asc, specificity desc, id); first match wins.
2. Per-trade-group table (``config/waste_factors.yaml`` or built-in values).
3. Configured default fraction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path

import yaml

from cmmcalc.config import get_config
from cmmcalc.core.errors import ConfigurationError
from cmmcalc.models import ConversionRule, RuleKind
from cmmcalc.rules.types import (
    WASTE_FACTOR_PLACES,
    WasteRule,
    decimal_places,
    parse_rule_parameters,
    rule_in_scope,
    scan_order,
)

logger = logging.getLogger(__name__)

DEFAULT_WASTE_FACTOR = Decimal("0.05")

BUILTIN_WASTE_FACTORS: dict[str, Decimal] = {
    "CON_REBAR": Decimal("0.03"),
    "CON_CONC": Decimal("0.03"),
    "INT_TILE": Decimal("0.10"),
    "INT_PAINT": Decimal("0.05"),
    "INT_WOOD": Decimal("0.08"),
}


@dataclass
class WasteTable:
    """Per-L2 waste fractions with a fallback default."""

    factors: dict[str, Decimal] = field(default_factory=lambda: dict(BUILTIN_WASTE_FACTORS))
    default: Decimal = DEFAULT_WASTE_FACTOR

    def lookup(self, category_l2: str) -> Decimal | None:
        return self.factors.get(category_l2)

    def factor_for(self, category_l2: str) -> Decimal:
        factor = self.lookup(category_l2)
        return factor if factor is not None else self.default


def _fraction(value: object, where: str) -> Decimal:
    try:
        factor = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"Waste factor for {where} is not numeric: {value!r}") from e
    if not factor.is_finite() or factor < 0 or factor >= 1:
        raise ConfigurationError(f"Waste factor for {where} must be in [0, 1), got {value!r}")
    if decimal_places(factor) > WASTE_FACTOR_PLACES:
        raise ConfigurationError(
            f"Waste factor for {where} allows at most {WASTE_FACTOR_PLACES} decimal places, got {value!r}"
        )
    return factor


def load_waste_table(path: Path | None = None, default: Decimal | None = None) -> WasteTable:
    """Load the waste table from YAML.

    A missing file falls back to the built-in table.

    Raises:
        ConfigurationError: If the YAML is malformed or a factor is out of range
    """
    default = _fraction(
        get_config().engine.default_waste_factor if default is None else default, "default"
    )
    if path is None:
        path = get_config().waste_factors_config_path

    if not path.exists():
        logger.info("Waste table %s not found; using built-in factors", path)
        return WasteTable(default=default)

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected mapping in {path}, got {type(data).__name__}")

    raw_factors = data.get("factors") or {}
    if not isinstance(raw_factors, dict):
        raise ConfigurationError(f"'factors' in {path} must be a mapping")

    table = WasteTable(
        factors={str(code): _fraction(value, str(code)) for code, value in raw_factors.items()},
        default=_fraction(data["default"], "default") if "default" in data else default,
    )
    logger.info("Loaded %d waste factors from %s", len(table.factors), path)
    return table


@dataclass(frozen=True)
class WasteResolution:
    factor: Decimal
    source: str  # "rule:<id>", "table" or "default"


class WasteFactorResolver:
    """Resolve the waste fraction for work items of one run."""

    def __init__(self, rules: list[ConversionRule] | None = None, table: WasteTable | None = None):
        self.table = table or WasteTable()
        waste_rules = [
            rule
            for rule in rules or []
            if rule.is_active and RuleKind(rule.rule_type) is RuleKind.WASTE
        ]
        self._rules = scan_order(waste_rules)
        # Parse once; invalid parameters were rejected on write
        self._factors: dict[int, Decimal] = {}
        for rule in self._rules:
            params = parse_rule_parameters(RuleKind.WASTE, rule.parameters)
            if isinstance(params, WasteRule):
                self._factors[id(rule)] = params.factor

    def resolve(
        self,
        category_l1: str,
        category_l2: str,
        category_l3: str | None = None,
    ) -> WasteResolution:
        for rule in self._rules:
            if rule_in_scope(rule, category_l1, category_l2, category_l3):
                return WasteResolution(factor=self._factors[id(rule)], source=f"rule:{rule.id}")

        factor = self.table.lookup(category_l2)
        if factor is not None:
            return WasteResolution(factor=factor, source="table")

        return WasteResolution(factor=self.table.default, source="default")

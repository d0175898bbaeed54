"""Structured parameters per conversion-rule kind.

Each rule kind carries a small typed payload in ``parameters``; the
``formula`` column stays human-readable text and is never evaluated.
``parse_rule_parameters`` validates a raw mapping into the matching variant.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from cmmcalc.core.errors import ConfigurationError
from cmmcalc.models import ConversionRule, RuleKind


@dataclass(frozen=True)
class WasteRule:
    """Fractional overage, e.g. 0.10 for 10%."""

    factor: Decimal


@dataclass(frozen=True)
class UnitRule:
    from_unit: str
    to_unit: str
    factor: Decimal


@dataclass(frozen=True)
class DensityRule:
    """Mass per volume, kg/m³."""

    density: Decimal


@dataclass(frozen=True)
class AssemblyRule:
    """Composite material split, e.g. mortar -> cement + sand."""

    components: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class PackagingRule:
    package_size: Decimal
    packaging_unit: str


@dataclass(frozen=True)
class ScenarioRule:
    name: str
    multiplier: Decimal = Decimal("1")


RuleParameters = Union[WasteRule, UnitRule, DensityRule, AssemblyRule, PackagingRule, ScenarioRule]

# Scale of the persisted waste_factor column
WASTE_FACTOR_PLACES = 4


def decimal_places(value: Decimal) -> int:
    """Significant digits after the decimal point, ignoring trailing zeros."""
    exponent = value.normalize().as_tuple().exponent
    return max(0, -exponent) if isinstance(exponent, int) else 0


def _decimal(params: dict[str, Any], key: str, kind: RuleKind, positive: bool = False) -> Decimal:
    if key not in params:
        raise ConfigurationError(f"{kind.value} rule requires parameter '{key}'")
    try:
        value = Decimal(str(params[key]))
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"{kind.value} rule parameter '{key}' is not numeric: {params[key]!r}") from e
    if not value.is_finite():
        raise ConfigurationError(f"{kind.value} rule parameter '{key}' must be finite")
    if positive and value <= 0:
        raise ConfigurationError(f"{kind.value} rule parameter '{key}' must be positive")
    return value


def _text(params: dict[str, Any], key: str, kind: RuleKind) -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{kind.value} rule requires text parameter '{key}'")
    return value.strip()


def parse_rule_parameters(kind: RuleKind | str, params: dict[str, Any] | None) -> RuleParameters:
    """Validate raw rule parameters into the typed variant for ``kind``.

    Raises:
        ConfigurationError: If required parameters are missing or malformed
    """
    kind = RuleKind(kind)
    params = params or {}

    if kind is RuleKind.WASTE:
        factor = _decimal(params, "factor", kind)
        if factor < 0 or factor >= 1:
            raise ConfigurationError(f"WASTE factor must be in [0, 1), got {factor}")
        if decimal_places(factor) > WASTE_FACTOR_PLACES:
            raise ConfigurationError(
                f"WASTE factor allows at most {WASTE_FACTOR_PLACES} decimal places, got {factor}"
            )
        return WasteRule(factor=factor)

    if kind is RuleKind.UNIT:
        return UnitRule(
            from_unit=_text(params, "from_unit", kind),
            to_unit=_text(params, "to_unit", kind),
            factor=_decimal(params, "factor", kind, positive=True),
        )

    if kind is RuleKind.DENSITY:
        return DensityRule(density=_decimal(params, "density", kind, positive=True))

    if kind is RuleKind.ASSEMBLY:
        raw = params.get("components")
        if not isinstance(raw, dict) or not raw:
            raise ConfigurationError("ASSEMBLY rule requires a non-empty 'components' mapping")
        return AssemblyRule(
            components={code: _decimal(raw, code, kind, positive=True) for code in raw}
        )

    if kind is RuleKind.PACKAGING:
        return PackagingRule(
            package_size=_decimal(params, "package_size", kind, positive=True),
            packaging_unit=_text(params, "packaging_unit", kind),
        )

    return ScenarioRule(
        name=_text(params, "name", kind),
        multiplier=_decimal(params, "multiplier", kind, positive=True)
        if "multiplier" in params
        else Decimal("1"),
    )


def rule_specificity(rule: ConversionRule) -> int:
    """Number of scope levels (L1/L2/L3) the rule pins down."""
    return sum(1 for scope in (rule.category_l1, rule.category_l2, rule.category_l3) if scope)


def rule_in_scope(
    rule: ConversionRule,
    category_l1: str,
    category_l2: str,
    category_l3: str | None,
    material_code: str | None = None,
) -> bool:
    """True when every scope the rule sets matches the work item."""
    return (
        (rule.category_l1 is None or rule.category_l1 == category_l1)
        and (rule.category_l2 is None or rule.category_l2 == category_l2)
        and (rule.category_l3 is None or rule.category_l3 == category_l3)
        and (rule.source_material is None or rule.source_material == material_code)
    )


def scan_order(rules: list[ConversionRule]) -> list[ConversionRule]:
    """Order rules for first-match scanning: priority asc, specificity desc, id."""
    return sorted(rules, key=lambda r: (r.priority, -rule_specificity(r), str(r.id)))

"""Tests for structured conversion-rule parameters and rule scoping."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

import pytest

from cmmcalc.core.errors import ConfigurationError
from cmmcalc.models import ConversionRule, RuleKind
from cmmcalc.rules.types import (
    AssemblyRule,
    DensityRule,
    PackagingRule,
    ScenarioRule,
    UnitRule,
    WasteRule,
    parse_rule_parameters,
    rule_in_scope,
    rule_specificity,
    scan_order,
)


class TestParseRuleParameters:
    def test_waste(self):
        assert parse_rule_parameters(RuleKind.WASTE, {"factor": 0.1}) == WasteRule(Decimal("0.1"))

    @pytest.mark.parametrize("factor", [-0.01, 1, 1.5, "abc", "NaN"])
    def test_waste_out_of_range(self, factor):
        with pytest.raises(ConfigurationError):
            parse_rule_parameters(RuleKind.WASTE, {"factor": factor})

    @pytest.mark.parametrize("factor", [0.12345, "0.00001"])
    def test_waste_factor_scale_limited_to_four_places(self, factor):
        with pytest.raises(ConfigurationError, match="4 decimal places"):
            parse_rule_parameters(RuleKind.WASTE, {"factor": factor})

    def test_waste_trailing_zeros_do_not_count_as_places(self):
        assert parse_rule_parameters(RuleKind.WASTE, {"factor": "0.123400"}) == WasteRule(Decimal("0.123400"))

    def test_waste_requires_factor(self):
        with pytest.raises(ConfigurationError, match="factor"):
            parse_rule_parameters("WASTE", {})

    def test_unit(self):
        params = parse_rule_parameters(RuleKind.UNIT, {"from_unit": "m", "to_unit": "kg", "factor": 0.56})

        assert params == UnitRule("m", "kg", Decimal("0.56"))

    def test_density_must_be_positive(self):
        assert parse_rule_parameters(RuleKind.DENSITY, {"density": 2400}) == DensityRule(Decimal("2400"))
        with pytest.raises(ConfigurationError):
            parse_rule_parameters(RuleKind.DENSITY, {"density": 0})

    def test_assembly(self):
        params = parse_rule_parameters(
            RuleKind.ASSEMBLY, {"components": {"CEMENT_50KG": 0.25, "SAND_FINE": 0.75}}
        )

        assert isinstance(params, AssemblyRule)
        assert params.components == {"CEMENT_50KG": Decimal("0.25"), "SAND_FINE": Decimal("0.75")}

    def test_assembly_requires_components(self):
        with pytest.raises(ConfigurationError):
            parse_rule_parameters(RuleKind.ASSEMBLY, {"components": {}})

    def test_packaging(self):
        params = parse_rule_parameters(RuleKind.PACKAGING, {"package_size": 1.44, "packaging_unit": "箱"})

        assert params == PackagingRule(Decimal("1.44"), "箱")

    def test_packaging_requires_unit_text(self):
        with pytest.raises(ConfigurationError):
            parse_rule_parameters(RuleKind.PACKAGING, {"package_size": 1.44, "packaging_unit": " "})

    def test_scenario_multiplier_defaults_to_one(self):
        assert parse_rule_parameters(RuleKind.SCENARIO, {"name": "premium"}) == ScenarioRule("premium")

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            parse_rule_parameters("MAGIC", {})


def _rule(priority=0, l1=None, l2=None, l3=None, source=None, rule_id=None):
    return ConversionRule(
        id=rule_id,
        rule_type=RuleKind.WASTE,
        category_l1=l1,
        category_l2=l2,
        category_l3=l3,
        source_material=source,
        parameters={"factor": 0.1},
        priority=priority,
    )


class TestScoping:
    def test_unscoped_rule_matches_everything(self):
        assert rule_in_scope(_rule(), "INTERIOR", "INT_TILE", None)

    def test_every_set_scope_must_match(self):
        rule = _rule(l1="INTERIOR", l2="INT_TILE", l3="INT_TILE_FLOOR")

        assert rule_in_scope(rule, "INTERIOR", "INT_TILE", "INT_TILE_FLOOR")
        assert not rule_in_scope(rule, "INTERIOR", "INT_TILE", "INT_TILE_WALL")
        assert not rule_in_scope(rule, "INTERIOR", "INT_TILE", None)

    def test_source_material_scope(self):
        rule = _rule(l2="INT_TILE", source="TILE_60X60")

        assert rule_in_scope(rule, "INTERIOR", "INT_TILE", None, "TILE_60X60")
        assert not rule_in_scope(rule, "INTERIOR", "INT_TILE", None, "TILE_30X60")
        assert not rule_in_scope(rule, "INTERIOR", "INT_TILE", None)

    def test_specificity(self):
        assert rule_specificity(_rule()) == 0
        assert rule_specificity(_rule(l1="INTERIOR", l3="INT_TILE_FLOOR")) == 2

    def test_scan_order_priority_then_specificity_then_id(self):
        broad = _rule(priority=1, l1="INTERIOR", rule_id=UUID(int=1))
        narrow = _rule(priority=1, l1="INTERIOR", l2="INT_TILE", rule_id=UUID(int=2))
        urgent = _rule(priority=0, rule_id=UUID(int=3))
        tie = _rule(priority=1, l1="INTERIOR", rule_id=UUID(int=0))

        assert scan_order([broad, narrow, urgent, tie]) == [urgent, narrow, tie, broad]

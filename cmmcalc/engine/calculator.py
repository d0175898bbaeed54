"""CMM calculation engine.

Turns work items into material breakdown lines under one rule set and
persists the run for audit and replay:

1. Resolve the rule set (fail fast; no run row is written).
2. Snapshot and hash the input.
3. Insert a RUNNING run row.
4. Per work item: template lookup, waste factor, expansion into one line per
   template material or a single passthrough line. A failing item is
   recorded and the loop moves on.
5. Persist all lines and the final status in one batch.

Quantities are Decimal internally; ``final = round2_half_up(base * (1 + w))``
and no rounding happens before the waste multiplication.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from decimal import ROUND_CEILING, Decimal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cmmcalc.config import AppConfig, get_config
from cmmcalc.core.errors import NotFoundError, WorkItemLimitError
from cmmcalc.engine.snapshot import build_snapshot, round2, snapshot_hash
from cmmcalc.engine.waste import WasteFactorResolver, WasteResolution, WasteTable, load_waste_table
from cmmcalc.ledger.runs import RunLedger, suggested_lines
from cmmcalc.materials.master import MaterialMasterService
from cmmcalc.models import (
    CalculationResult,
    CategoryL3,
    ConversionRule,
    ItemError,
    Material,
    MaterialBreakdownLine,
    RuleKind,
    RunStatus,
    WorkItem,
)
from cmmcalc.rules.registry import RuleSetRegistry
from cmmcalc.rules.types import (
    PackagingRule,
    decimal_places,
    parse_rule_parameters,
    rule_in_scope,
    scan_order,
)
from cmmcalc.taxonomy.catalog import TaxonomyCatalog

logger = logging.getLogger(__name__)

RULE_TEMPLATE_EXPANSION = "L3_TEMPLATE_EXPANSION"
RULE_PASSTHROUGH = "PASSTHROUGH"


# Limits of the persisted line columns
QUANTITY_PLACES = 4
MAX_QUANTITY = Decimal("1e11")
MAX_SUBTOTAL = Decimal("1e13")
MAX_PACKAGE_COUNT = 2**31 - 1


class InvalidQuantityError(ValueError):
    """Work item quantity is negative, not finite, too large or too precise."""


@dataclass
class RunContext:
    """Catalog, rule and material data read once for a single run.

    Built fresh by every ``execute_run`` call and never shared between runs.
    """

    rule_set_version: str
    templates: dict[str, CategoryL3] = field(default_factory=dict)
    materials: dict[str, Material] = field(default_factory=dict)
    waste: WasteFactorResolver = field(default_factory=WasteFactorResolver)
    packaging: list[tuple[ConversionRule, PackagingRule]] = field(default_factory=list)

    @classmethod
    async def load(
        cls,
        session: AsyncSession,
        rule_set_version: str,
        work_items: list[WorkItem],
        waste_table: WasteTable,
    ) -> RunContext:
        templates = await TaxonomyCatalog(session).get_templates(
            item.category_l3 for item in work_items if item.category_l3
        )
        material_codes = {code for template in templates.values() for code in template.default_materials}
        materials = await MaterialMasterService(session).get_materials_by_codes(material_codes)

        rules = await RuleSetRegistry(session).list_rules(rule_set_version, active_only=True)
        packaging = []
        for rule in scan_order([r for r in rules if RuleKind(r.rule_type) is RuleKind.PACKAGING]):
            params = parse_rule_parameters(RuleKind.PACKAGING, rule.parameters)
            if isinstance(params, PackagingRule):
                packaging.append((rule, params))

        return cls(
            rule_set_version=rule_set_version,
            templates=templates,
            materials=materials,
            waste=WasteFactorResolver(rules, waste_table),
            packaging=packaging,
        )

    def packaging_for(
        self, category_l1: str, item: WorkItem, material_code: str | None
    ) -> PackagingRule | None:
        for rule, params in self.packaging:
            if rule_in_scope(rule, category_l1, item.category_l2, item.category_l3, material_code):
                return params
        return None


def validated_quantity(item: WorkItem) -> Decimal:
    """Quantity as Decimal, exactly as it will be stored on the line.

    Raises:
        InvalidQuantityError: If the quantity is negative, NaN, infinite, at
            least ``MAX_QUANTITY`` or has more than ``QUANTITY_PLACES`` decimals
    """
    if not math.isfinite(item.quantity):
        raise InvalidQuantityError(f"Quantity for {item.item_code} is not a finite number")
    if item.quantity < 0:
        raise InvalidQuantityError(f"Quantity for {item.item_code} must not be negative: {item.quantity}")
    quantity = Decimal(str(item.quantity))
    if quantity >= MAX_QUANTITY:
        raise InvalidQuantityError(f"Quantity for {item.item_code} must be below {MAX_QUANTITY:f}: {item.quantity}")
    if decimal_places(quantity) > QUANTITY_PLACES:
        raise InvalidQuantityError(
            f"Quantity for {item.item_code} allows at most {QUANTITY_PLACES} decimal places: {item.quantity}"
        )
    return quantity


def apply_waste(base_quantity: Decimal, waste_factor: Decimal) -> Decimal:
    """final = round2_half_up(base * (1 + w))."""
    return round2(base_quantity * (Decimal(1) + waste_factor))


def _fmt(value: Decimal) -> str:
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


class CalculationEngine:
    """Execute and persist calculation runs."""

    def __init__(
        self,
        session: AsyncSession,
        waste_table: WasteTable | None = None,
        config: AppConfig | None = None,
    ):
        self.session = session
        self.config = config or get_config()
        self.waste_table = waste_table or load_waste_table(
            default=self.config.engine.default_waste_factor
        )
        self.registry = RuleSetRegistry(session)
        self.catalog = TaxonomyCatalog(session)
        self.ledger = RunLedger(session)

    async def execute_run(
        self,
        category_l1: str,
        work_items: list[WorkItem],
        rule_set_version: str | None = None,
        project_id: str | None = None,
        created_by: str | None = None,
    ) -> CalculationResult:
        """Run the engine over ``work_items`` and persist the result.

        Raises:
            NotFoundError: If the rule set or the L1 category does not resolve
            WorkItemLimitError: If the request exceeds the configured work item limit
            Exception: Any run-level failure after the run row exists; the run
                is marked FAILED before the error propagates
        """
        max_items = self.config.engine.max_work_items
        if len(work_items) > max_items:
            raise WorkItemLimitError(len(work_items), max_items)

        rule_set = await self.registry.resolve(rule_set_version)
        if not await self.catalog.l1_exists(category_l1):
            raise NotFoundError("CategoryL1", category_l1)

        snapshot = build_snapshot(category_l1, work_items, rule_set.version)
        input_hash = snapshot_hash(snapshot, self.config.engine.hash_algorithm)

        run = await self.ledger.create_run(
            category_l1=category_l1,
            rule_set_version=rule_set.version,
            input_snapshot=snapshot,
            input_hash=input_hash,
            project_id=project_id,
            created_by=created_by,
        )
        run_id: UUID = run.run_id
        timestamp = run.created_at
        await self.session.commit()

        logger.info(
            "Run %s started: %s, %d work items, rule set %s",
            run_id,
            category_l1,
            len(work_items),
            rule_set.version,
        )

        started = time.perf_counter()
        try:
            context = await RunContext.load(self.session, rule_set.version, work_items, self.waste_table)

            lines: list[MaterialBreakdownLine] = []
            errors: list[ItemError] = []
            for item in work_items:
                try:
                    lines.extend(self.process_item(category_l1, item, context))
                except Exception as e:
                    logger.warning("Work item %s failed in run %s: %s", item.item_code, run_id, e)
                    errors.append(ItemError(item_code=item.item_code, message=str(e)))

            duration_ms = _elapsed_ms(started)
            persisted = await self.ledger.complete_run(run, lines, errors, duration_ms)
            await self.session.commit()
        except Exception as e:
            duration_ms = _elapsed_ms(started)
            logger.error("Run %s failed: %s", run_id, e, exc_info=True)
            await self.session.rollback()
            try:
                await self.ledger.fail_run(run_id, e, duration_ms)
                await self.session.commit()
            except SQLAlchemyError as mark_error:
                logger.error("Could not mark run %s FAILED: %s", run_id, mark_error)
                await self.session.rollback()
            raise

        status = RunStatus.PARTIAL if errors else RunStatus.SUCCESS
        logger.info(
            "Run %s finished %s: %d lines, %d errors in %d ms",
            run_id,
            status.value,
            len(persisted),
            len(errors),
            duration_ms,
        )

        return CalculationResult(
            run_id=run_id,
            rule_set_version=rule_set.version,
            timestamp=timestamp,
            status=status,
            input_snapshot_hash=input_hash,
            duration_ms=duration_ms,
            material_breakdown=persisted,
            suggested_estimate_lines=suggested_lines(run_id, persisted),
            errors=errors,
        )

    def process_item(
        self, category_l1: str, item: WorkItem, context: RunContext
    ) -> list[MaterialBreakdownLine]:
        """Expand one work item into breakdown lines."""
        base_quantity = validated_quantity(item)
        template = context.templates.get(item.category_l3) if item.category_l3 else None
        waste = context.waste.resolve(category_l1, item.category_l2, item.category_l3)
        final_quantity = apply_waste(base_quantity, waste.factor)

        if template is not None and template.default_materials:
            return [
                self._line(
                    category_l1,
                    item,
                    context,
                    base_quantity,
                    waste,
                    final_quantity,
                    rule_applied=RULE_TEMPLATE_EXPANSION,
                    template=template,
                    material_code=code,
                )
                for code in template.default_materials
            ]

        return [
            self._line(
                category_l1,
                item,
                context,
                base_quantity,
                waste,
                final_quantity,
                rule_applied=RULE_PASSTHROUGH,
                template=template,
                material_code=None,
            )
        ]

    def _line(
        self,
        category_l1: str,
        item: WorkItem,
        context: RunContext,
        base_quantity: Decimal,
        waste: WasteResolution,
        final_quantity: Decimal,
        rule_applied: str,
        template: CategoryL3 | None,
        material_code: str | None,
    ) -> MaterialBreakdownLine:
        material = context.materials.get(material_code) if material_code else None

        if material_code is None:
            material_name = item.item_code
        elif material is not None:
            material_name = material.name
        else:
            material_name = material_code

        unit_price = subtotal = None
        if material is not None and material.reference_price is not None:
            price = Decimal(str(material.reference_price))
            line_total = round2(final_quantity * price)
            if line_total >= MAX_SUBTOTAL:
                raise InvalidQuantityError(
                    f"Subtotal for {item.item_code} / {material_code} exceeds {MAX_SUBTOTAL:f}: {line_total}"
                )
            unit_price = float(price)
            subtotal = float(line_total)

        packaging_unit = packaging_quantity = None
        packaging = context.packaging_for(category_l1, item, material_code)
        if packaging is not None:
            packaging_unit = packaging.packaging_unit
            packaging_quantity = int(
                (final_quantity / packaging.package_size).to_integral_value(rounding=ROUND_CEILING)
            )
            if packaging_quantity > MAX_PACKAGE_COUNT:
                raise InvalidQuantityError(
                    f"Package count for {item.item_code} exceeds {MAX_PACKAGE_COUNT}: {packaging_quantity}"
                )

        return MaterialBreakdownLine(
            source_work_item_code=item.item_code,
            category_l1=category_l1,
            category_l2=item.category_l2,
            category_l3=item.category_l3,
            material_code=material.code if material is not None else material_code,
            material_name=material_name,
            spec=material.specification if material is not None else None,
            base_quantity=float(base_quantity),
            waste_factor=float(waste.factor),
            final_quantity=float(final_quantity),
            unit=item.unit,
            packaging_unit=packaging_unit,
            packaging_quantity=packaging_quantity,
            unit_price=unit_price,
            subtotal=subtotal,
            trace_info={
                "rule_applied": rule_applied,
                "template": template.code if template is not None else None,
                "waste_source": waste.source,
                "rule_set_version": context.rule_set_version,
                "formula": (
                    f"{_fmt(base_quantity)} × (1 + {waste.factor}) = {final_quantity}"
                ),
            },
        )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)

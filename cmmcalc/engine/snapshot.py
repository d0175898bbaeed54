"""Deterministic input snapshots and the numeric rounding policy.

The snapshot hash is the run's content identity: structurally identical
inputs (same category, work items and rule set version) hash identically
regardless of when they were submitted or how numbers were spelled.
"""

from __future__ import annotations

import hashlib
import json
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from cmmcalc.models import WorkItem

TWO_PLACES = Decimal("0.01")


def round2(value: Decimal | float | int) -> Decimal:
    """Round half-up to 2 decimal places."""
    return round_places(value, 2)


def round_places(value: Decimal | float | int, places: int) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def build_snapshot(
    category_l1: str,
    work_items: list[WorkItem],
    rule_set_version: str,
) -> dict[str, Any]:
    """Build the audit snapshot persisted with the run."""
    return {
        "category_l1": category_l1,
        "work_items": [item.model_dump(mode="json") for item in work_items],
        "rule_set_version": rule_set_version,
    }


def canonical_json(payload: Any) -> str:
    """Serialize with stable key ordering and no insignificant whitespace."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def snapshot_hash(payload: Any, algorithm: str = "sha256") -> str:
    """Hex digest of the canonical JSON of ``payload``."""
    digest = hashlib.new(algorithm)
    digest.update(canonical_json(payload).encode("utf-8"))
    return digest.hexdigest()

"""Tests for input snapshots, hashing and half-up rounding."""

from __future__ import annotations

from decimal import Decimal

from cmmcalc.engine.snapshot import build_snapshot, canonical_json, round2, round_places, snapshot_hash
from cmmcalc.models import WorkItem


def _items(quantity):
    return [
        WorkItem(
            item_code="WI-1",
            category_l2="INT_TILE",
            category_l3="INT_TILE_FLOOR",
            quantity=quantity,
            unit="m2",
        )
    ]


class TestRounding:
    def test_round2_half_up(self):
        assert round2(Decimal("2.345")) == Decimal("2.35")
        assert round2(Decimal("2.344")) == Decimal("2.34")
        assert round2(Decimal("0.005")) == Decimal("0.01")

    def test_round2_accepts_floats_without_binary_drift(self):
        # 2.675 is 2.67499999... as a binary float
        assert round2(2.675) == Decimal("2.68")

    def test_round2_keeps_two_places(self):
        assert str(round2(110)) == "110.00"

    def test_round_places(self):
        assert round_places(Decimal("1.23456"), 3) == Decimal("1.235")


class TestSnapshotHash:
    def test_hash_is_sha256_hex(self):
        digest = snapshot_hash(build_snapshot("INTERIOR", _items(100), "v1.0"))

        assert len(digest) == 64
        assert all(c in "0123456789abcdef" for c in digest)

    def test_identical_input_gives_identical_hash(self):
        a = snapshot_hash(build_snapshot("INTERIOR", _items(100), "v1.0"))
        b = snapshot_hash(build_snapshot("INTERIOR", _items(100), "v1.0"))

        assert a == b

    def test_integer_and_float_quantity_hash_the_same(self):
        a = snapshot_hash(build_snapshot("INTERIOR", _items(100), "v1.0"))
        b = snapshot_hash(build_snapshot("INTERIOR", _items(100.0), "v1.0"))

        assert a == b

    def test_rule_set_version_changes_hash(self):
        a = snapshot_hash(build_snapshot("INTERIOR", _items(100), "v1.0"))
        b = snapshot_hash(build_snapshot("INTERIOR", _items(100), "v1.1"))

        assert a != b

    def test_quantity_changes_hash(self):
        a = snapshot_hash(build_snapshot("INTERIOR", _items(100), "v1.0"))
        b = snapshot_hash(build_snapshot("INTERIOR", _items(101), "v1.0"))

        assert a != b

    def test_canonical_json_ignores_key_order(self):
        assert canonical_json({"b": 1, "a": "磁磚"}) == canonical_json({"a": "磁磚", "b": 1})
        assert "磁磚" in canonical_json({"a": "磁磚"})

"""
Unit tests for the snapshot codec.

Tests cover:
- Encoding an empty and a populated tenant
- Special settings (warehouse counts, lifetime usage) mapping
- Decoding into a write plan
- Validation of malformed snapshots
"""

import tempfile

import pytest

from backend.rfe_server.errors import InvalidError
from backend.rfe_server.store import Family, TenantStore
from backend.rfe_server.sync import (
    LIFETIME_USAGE_KEY,
    WAREHOUSE_COUNTS_KEY,
    SnapshotCodec,
)


class TestEncode:
    """Tests for SnapshotCodec.encode."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def store(self, data_dir):
        return TenantStore(data_dir, wal_mode=False)

    @pytest.fixture
    def codec(self, store):
        return SnapshotCodec(store)

    @pytest.mark.asyncio
    async def test_empty_tenant(self, codec):
        snapshot = await codec.encode("acme")

        assert snapshot == {
            "warehouse": {"openCellSets": 0, "closedCellSets": 0, "items": []},
            "lifetimeUsage": {"openCell": 0, "closedCell": 0},
            "equipment": [],
            "savedEstimates": [],
            "customers": [],
            "materialLogs": [],
        }

    @pytest.mark.asyncio
    async def test_settings_spread_at_top_level(self, store, codec):
        await store.upsert_setting("acme", "costs", {"openCell": 1500})
        await store.upsert_setting("acme", "pricingMode", "level_pricing")

        snapshot = await codec.encode("acme")
        assert snapshot["costs"] == {"openCell": 1500}
        assert snapshot["pricingMode"] == "level_pricing"

    @pytest.mark.asyncio
    async def test_special_settings_are_not_spread(self, store, codec):
        await store.upsert_setting(
            "acme", WAREHOUSE_COUNTS_KEY, {"openCellSets": 4, "closedCellSets": 2}
        )
        await store.upsert_setting("acme", LIFETIME_USAGE_KEY, {"openCell": 9, "closedCell": 1})
        await store.put("acme", Family.INVENTORY, {"id": "i1", "name": "Tape", "quantity": 10})

        snapshot = await codec.encode("acme")
        assert WAREHOUSE_COUNTS_KEY not in snapshot
        assert LIFETIME_USAGE_KEY not in snapshot
        assert snapshot["warehouse"] == {
            "openCellSets": 4,
            "closedCellSets": 2,
            "items": [{"id": "i1", "name": "Tape", "quantity": 10}],
        }
        assert snapshot["lifetimeUsage"] == {"openCell": 9, "closedCell": 1}

    @pytest.mark.asyncio
    async def test_collections_and_logs(self, store, codec):
        await store.put("acme", Family.CUSTOMERS, {"id": "c1"})
        await store.put("acme", Family.ESTIMATES, {"id": "e1"})
        await store.put("acme", Family.EQUIPMENT, {"id": "q1"})
        await store.append("acme", Family.LOGS, {"id": "l1"})

        snapshot = await codec.encode("acme")
        assert snapshot["customers"] == [{"id": "c1"}]
        assert snapshot["savedEstimates"] == [{"id": "e1"}]
        assert snapshot["equipment"] == [{"id": "q1"}]
        assert snapshot["materialLogs"] == [{"id": "l1"}]


class TestDecode:
    """Tests for SnapshotCodec.decode."""

    @pytest.fixture
    def codec(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield SnapshotCodec(TenantStore(tmpdir, wal_mode=False))

    def test_allow_listed_settings_only(self, codec):
        plan = codec.decode({"costs": {"openCell": 1}, "yields": None, "theme": "dark"})

        assert plan.settings == {"costs": {"openCell": 1}, "yields": None}

    def test_absent_keys_leave_families_alone(self, codec):
        plan = codec.decode({})

        assert plan.settings == {}
        assert plan.warehouse_counts is None
        assert plan.inventory is None
        assert plan.collections == []

    def test_warehouse_split(self, codec):
        plan = codec.decode(
            {"warehouse": {"openCellSets": 3, "closedCellSets": 1, "items": [{"id": "i1"}]}}
        )

        assert plan.warehouse_counts == {"openCellSets": 3, "closedCellSets": 1}
        assert plan.inventory == [{"id": "i1"}]

    def test_warehouse_without_items_keeps_inventory(self, codec):
        plan = codec.decode({"warehouse": {"openCellSets": 3}})

        assert plan.warehouse_counts == {"openCellSets": 3}
        assert plan.inventory is None

    def test_lifetime_usage_maps_to_setting(self, codec):
        plan = codec.decode({"lifetimeUsage": {"openCell": 2, "closedCell": 0}})

        assert plan.settings == {LIFETIME_USAGE_KEY: {"openCell": 2, "closedCell": 0}}

    def test_collections_in_write_order(self, codec):
        plan = codec.decode(
            {
                "savedEstimates": [{"id": "e1"}],
                "customers": [],
                "equipment": [{"id": "q1"}],
                "materialLogs": [{"id": "l1"}],
            }
        )

        assert [family for family, _ in plan.collections] == [
            Family.EQUIPMENT,
            Family.CUSTOMERS,
            Family.ESTIMATES,
        ]
        assert dict(plan.collections)[Family.CUSTOMERS] == []

    @pytest.mark.parametrize(
        "snapshot",
        [
            None,
            [],
            "state",
            {"customers": {"id": "c1"}},
            {"customers": [{"name": "no id"}]},
            {"savedEstimates": ["e1"]},
            {"warehouse": []},
            {"warehouse": {"items": {"id": "i1"}}},
            {"lifetimeUsage": 5},
        ],
    )
    def test_malformed_snapshot_rejected(self, codec, snapshot):
        with pytest.raises(InvalidError):
            codec.decode(snapshot)

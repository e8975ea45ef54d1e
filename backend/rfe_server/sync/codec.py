"""
Snapshot codec: tenant records <-> one aggregate snapshot document.

Snapshot format (what the client holds as its application state):
    {
        "<setting key>": <value>, ...          # opaque settings spread at top level
        "warehouse": {"openCellSets": n, "closedCellSets": n, "items": [...]},
        "lifetimeUsage": {"openCell": n, "closedCell": n},
        "equipment": [...],
        "savedEstimates": [...],
        "customers": [...],
        "materialLogs": [...]
    }

Invariants:
    - encode never fails because of a corrupt row; such rows are dropped
    - decode validates the whole snapshot before anything is written
    - warehouse_counts and lifetime_usage never appear under their raw keys

How to change safely:
    - New top-level collections need a Family and a place in SYNC_ORDER
    - New opaque settings are added to SETTINGS_KEYS only
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..errors import InvalidError
from ..models import Customer, Equipment, Estimate, InventoryItem, Record
from ..store import Family, TenantStore, TenantTransaction

logger = logging.getLogger(__name__)

Snapshot = dict[str, Any]

# Opaque settings accepted from clients, stored verbatim
SETTINGS_KEYS = (
    "companyProfile",
    "yields",
    "costs",
    "expenses",
    "jobNotes",
    "purchaseOrders",
    "sqFtRates",
    "pricingMode",
)

WAREHOUSE_COUNTS_KEY = "warehouse_counts"
LIFETIME_USAGE_KEY = "lifetime_usage"

DEFAULT_WAREHOUSE_COUNTS = {"openCellSets": 0, "closedCellSets": 0}
DEFAULT_LIFETIME_USAGE = {"openCell": 0, "closedCell": 0}

# Snapshot key, family and validating model, in the order sync_up writes them
SYNC_ORDER: tuple[tuple[str, Family, type[Record]], ...] = (
    ("equipment", Family.EQUIPMENT, Equipment),
    ("customers", Family.CUSTOMERS, Customer),
    ("savedEstimates", Family.ESTIMATES, Estimate),
)


@dataclass
class SyncPlan:
    """Per-family write plan produced by decode().

    Attributes:
        settings: Setting upserts (key -> value), opaque keys and lifetime_usage
        warehouse_counts: Foam counts to store, or None if the snapshot had no warehouse
        inventory: Inventory items to replace with, or None to leave inventory alone
        collections: (family, records) full replacements, in write order
    """

    settings: dict[str, Any] = field(default_factory=dict)
    warehouse_counts: dict[str, Any] | None = None
    inventory: list[dict[str, Any]] | None = None
    collections: list[tuple[Family, list[dict[str, Any]]]] = field(default_factory=list)


def _validated_list(snapshot_key: str, value: Any, model: type[Record]) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        raise InvalidError(f"'{snapshot_key}' must be a list", field_name=snapshot_key)
    for item in value:
        model.from_dict(item)
    return value


class SnapshotCodec:
    """Builds snapshots from a tenant store and plans their application.

    Example:
        >>> codec = SnapshotCodec(store)
        >>> snapshot = await codec.encode("acme")
        >>> plan = codec.decode(snapshot)
    """

    def __init__(self, store: TenantStore) -> None:
        self.store = store

    async def encode(self, tenant_id: str) -> Snapshot:
        """Read every family of a tenant into one snapshot document."""
        with self.store.transaction(tenant_id, immediate=False) as tx:
            return self.encode_view(tx)

    def encode_view(self, tx: TenantTransaction) -> Snapshot:
        """Build a snapshot from an open transaction (one consistent read)."""
        settings = tx.list_settings()

        counts = settings.pop(WAREHOUSE_COUNTS_KEY, None)
        if not isinstance(counts, dict):
            counts = dict(DEFAULT_WAREHOUSE_COUNTS)
        lifetime = settings.pop(LIFETIME_USAGE_KEY, None)
        if not isinstance(lifetime, dict):
            lifetime = dict(DEFAULT_LIFETIME_USAGE)

        snapshot: Snapshot = dict(settings)
        snapshot["warehouse"] = {**counts, "items": tx.list(Family.INVENTORY)}
        snapshot["lifetimeUsage"] = lifetime
        snapshot["equipment"] = tx.list(Family.EQUIPMENT)
        snapshot["savedEstimates"] = tx.list(Family.ESTIMATES)
        snapshot["customers"] = tx.list(Family.CUSTOMERS)
        snapshot["materialLogs"] = tx.list(Family.LOGS)
        return snapshot

    def decode(self, snapshot: Any) -> SyncPlan:
        """Split a client snapshot into a write plan.

        Keys that are absent (or null, for collections) leave the matching
        stored data untouched. Collections that are present replace the
        stored family wholesale.

        Raises:
            InvalidError: If the snapshot or any collection item is malformed
        """
        if not isinstance(snapshot, dict):
            raise InvalidError("Snapshot must be a JSON object", field_name="state")

        plan = SyncPlan()

        for key in SETTINGS_KEYS:
            if key in snapshot:
                plan.settings[key] = snapshot[key]

        lifetime = snapshot.get("lifetimeUsage")
        if lifetime is not None:
            if not isinstance(lifetime, dict):
                raise InvalidError("'lifetimeUsage' must be an object", field_name="lifetimeUsage")
            plan.settings[LIFETIME_USAGE_KEY] = lifetime

        warehouse = snapshot.get("warehouse")
        if warehouse is not None:
            if not isinstance(warehouse, dict):
                raise InvalidError("'warehouse' must be an object", field_name="warehouse")
            plan.warehouse_counts = {k: v for k, v in warehouse.items() if k != "items"}
            items = warehouse.get("items")
            if items is not None:
                plan.inventory = _validated_list("warehouse.items", items, InventoryItem)

        for snapshot_key, family, model in SYNC_ORDER:
            value = snapshot.get(snapshot_key)
            if value is not None:
                plan.collections.append((family, _validated_list(snapshot_key, value, model)))

        return plan

"""
Sync engine: full-state snapshot pull (down) and push (up).

sync_up applies a client snapshot as last-write-wins:
- settings in the allow-list are upserted (absent keys are left alone)
- every collection present in the snapshot replaces the stored family

Write order:
    settings -> warehouse counts + inventory items -> equipment -> customers -> estimates

Invariants:
    - The whole snapshot is validated before the first write
    - Each family replacement is atomic (no reader sees it half-written)
    - Families are NOT replaced in one cross-family transaction; a reader
      or a job completion may interleave between two families

How to change safely:
    - Keep the write order; clients rely on settings landing first
    - Do not add merging or version checks here; the client owns conflicts
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..store import Family, TenantStore
from .codec import WAREHOUSE_COUNTS_KEY, Snapshot, SnapshotCodec

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of sync_up.

    Attributes:
        settings_written: Setting keys that were upserted
        families_replaced: Records written per replaced family
    """

    settings_written: list[str] = field(default_factory=list)
    families_replaced: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "synced": True,
            "settings": self.settings_written,
            "families": self.families_replaced,
        }


class SyncEngine:
    """Orchestrates snapshot pull and push for one tenant at a time.

    The engine holds no per-tenant state; every call reads or writes the
    store directly.

    Example:
        >>> engine = SyncEngine(store)
        >>> snapshot = await engine.sync_down("acme")
        >>> snapshot["customers"].append({"id": "c9", "name": "New"})
        >>> await engine.sync_up("acme", snapshot)
    """

    def __init__(self, store: TenantStore, codec: SnapshotCodec | None = None) -> None:
        self.store = store
        self.codec = codec or SnapshotCodec(store)

    async def sync_down(self, tenant_id: str) -> Snapshot:
        """Return the tenant's current snapshot. Read-only."""
        snapshot = await self.codec.encode(tenant_id)
        logger.debug(
            "Snapshot encoded",
            extra={
                "tenant_id": tenant_id,
                "estimates": len(snapshot["savedEstimates"]),
                "customers": len(snapshot["customers"]),
            },
        )
        return snapshot

    async def sync_up(self, tenant_id: str, snapshot: Any) -> SyncResult:
        """Replace the tenant's stored state with a client snapshot.

        Raises:
            InvalidError: If the snapshot is malformed (nothing is written)
            ConflictError: If a family could not take the tenant lock
            InternalError: On store failure (earlier families stay written)
        """
        plan = self.codec.decode(snapshot)
        result = SyncResult()

        if plan.settings:
            with self.store.transaction(tenant_id) as tx:
                for key, value in plan.settings.items():
                    tx.upsert_setting(key, value)
            result.settings_written.extend(plan.settings)

        if plan.warehouse_counts is not None:
            with self.store.transaction(tenant_id) as tx:
                tx.upsert_setting(WAREHOUSE_COUNTS_KEY, plan.warehouse_counts)
                if plan.inventory is not None:
                    written = tx.replace_all(Family.INVENTORY, plan.inventory)
                    result.families_replaced[Family.INVENTORY.value] = written
            result.settings_written.append(WAREHOUSE_COUNTS_KEY)

        for family, records in plan.collections:
            result.families_replaced[family.value] = await self.store.replace_all(
                tenant_id, family, records
            )

        logger.info(
            "Snapshot applied",
            extra={
                "tenant_id": tenant_id,
                "settings": len(result.settings_written),
                "families": result.families_replaced,
            },
        )
        return result

"""
Job lifecycle engine for estimates.

Drives an estimate through Draft -> In Progress -> Completed -> Paid and
reconciles the tenant's stock on completion:
- foam-set counts are decremented and lifetime usage incremented
- inventory items are decremented by the reported quantities
- one immutable material log entry is written per nonzero quantity

Invariants:
    - Every operation is one immediate transaction on the tenant store, so
      the idempotency guard and the deductions are serialized per tenant
    - A completion is applied at most once (inventoryProcessed guard)
    - A failed or cancelled completion leaves no partial effects
    - Status never moves backwards

How to change safely:
    - Keep all reads and writes of one operation inside the same transaction
    - Test duplicate completions whenever the guard changes
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..config import JobsConfig
from ..errors import InvalidError, JobStateError, NotFoundError
from ..models import (
    Actuals,
    CostSettings,
    Estimate,
    EstimateStatus,
    InventoryItem,
    LifetimeUsage,
    MaterialLogEntry,
    WarehouseCounts,
    to_number,
)
from ..store import Family, TenantStore, TenantTransaction
from ..sync.codec import (
    DEFAULT_LIFETIME_USAGE,
    DEFAULT_WAREHOUSE_COUNTS,
    LIFETIME_USAGE_KEY,
    WAREHOUSE_COUNTS_KEY,
)
from .financials import compute_financials

logger = logging.getLogger(__name__)

OPEN_CELL_MATERIAL = "Open Cell Foam"
CLOSED_CELL_MATERIAL = "Closed Cell Foam"
FOAM_UNIT = "Sets"
SYSTEM_ACTOR = "system"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class CompletionResult:
    """Outcome of complete().

    Attributes:
        estimate: Estimate as stored after the call
        already_completed: The guard short-circuited; nothing was applied
        log_entries: Material log entries written by this call
    """

    estimate: Estimate
    already_completed: bool = False
    log_entries: list[MaterialLogEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": "Already completed" if self.already_completed else "Job completed",
            "estimate": self.estimate.to_dict(),
            "logEntries": [entry.to_dict() for entry in self.log_entries],
        }


class JobLifecycleEngine:
    """Per-estimate state machine backed by the tenant store.

    Example:
        >>> engine = JobLifecycleEngine(store)
        >>> await engine.start("acme", "est-1")
        >>> await engine.complete("acme", "est-1", {"openCellSets": 2}, actor="crew:joe")
        >>> estimate = await engine.mark_paid("acme", "est-1")
        >>> estimate.financials.margin
    """

    def __init__(self, store: TenantStore, config: JobsConfig | None = None) -> None:
        self.store = store
        self.config = config or JobsConfig()

    def _load(self, tx: TenantTransaction, estimate_id: str) -> Estimate:
        doc = tx.get(Family.ESTIMATES, estimate_id)
        if doc is None:
            raise NotFoundError(Family.ESTIMATES.value, estimate_id)
        return Estimate.from_dict(doc)

    async def start(self, tenant_id: str, estimate_id: str) -> Estimate:
        """Move an estimate to In Progress and stamp actuals.lastStartedAt.

        Raises:
            NotFoundError: If the estimate does not exist
            JobStateError: If the job is already completed or paid
        """
        with self.store.transaction(tenant_id) as tx:
            estimate = self._load(tx, estimate_id)
            current = estimate.lifecycle_status
            if current.rank > EstimateStatus.IN_PROGRESS.rank:
                raise JobStateError(estimate_id, current.value, "start")

            actuals = estimate.actuals if isinstance(estimate.actuals, Actuals) else Actuals()
            actuals.last_started_at = _utc_now()
            estimate.actuals = actuals
            estimate.status = EstimateStatus.IN_PROGRESS.value
            tx.put(Family.ESTIMATES, estimate.to_dict())

        logger.info("Job started", extra={"tenant_id": tenant_id, "estimate_id": estimate_id})
        return estimate

    async def complete(
        self,
        tenant_id: str,
        estimate_id: str,
        actuals: Any,
        actor: str | None = None,
    ) -> CompletionResult:
        """Complete a job and reconcile stock exactly once.

        Args:
            tenant_id: Tenant identifier
            estimate_id: Estimate identifier
            actuals: Materials and labor actually used (JSON object)
            actor: Operator credited in the material log when the
                actuals do not name one

        Raises:
            InvalidError: If actuals is not a JSON object
            NotFoundError: If the estimate does not exist
        """
        if actuals is None:
            actuals = {}
        reported = Actuals.from_dict(actuals)

        with self.store.transaction(tenant_id) as tx:
            estimate = self._load(tx, estimate_id)
            status = estimate.lifecycle_status

            if estimate.inventory_processed is True and status in (
                EstimateStatus.COMPLETED,
                EstimateStatus.PAID,
            ):
                logger.info(
                    "Skipped duplicate completion",
                    extra={"tenant_id": tenant_id, "estimate_id": estimate_id},
                )
                return CompletionResult(estimate=estimate, already_completed=True)

            open_cell = to_number(reported.open_cell_sets)
            closed_cell = to_number(reported.closed_cell_sets)
            if open_cell or closed_cell:
                self._consume_foam(tx, open_cell, closed_cell)

            stocked = self._deduct_inventory(tx, reported)
            entries = self._log_materials(
                tx, estimate, reported, stocked, open_cell, closed_cell, actor
            )

            if reported.last_started_at is None and isinstance(estimate.actuals, Actuals):
                reported.last_started_at = estimate.actuals.last_started_at

            now = _utc_now()
            estimate.actuals = reported
            if status.rank < EstimateStatus.COMPLETED.rank:
                estimate.status = EstimateStatus.COMPLETED.value
            estimate.inventory_processed = True
            estimate.last_modified = now
            tx.put(Family.ESTIMATES, estimate.to_dict())

        logger.info(
            "Job completed",
            extra={
                "tenant_id": tenant_id,
                "estimate_id": estimate_id,
                "open_cell_sets": open_cell,
                "closed_cell_sets": closed_cell,
                "log_entries": len(entries),
            },
        )
        return CompletionResult(estimate=estimate, log_entries=entries)

    def _consume_foam(self, tx: TenantTransaction, open_cell: float, closed_cell: float) -> None:
        stored_counts = tx.get_setting(WAREHOUSE_COUNTS_KEY)
        counts = WarehouseCounts.from_dict(
            stored_counts if isinstance(stored_counts, dict) else DEFAULT_WAREHOUSE_COUNTS
        )
        stored_usage = tx.get_setting(LIFETIME_USAGE_KEY)
        usage = LifetimeUsage.from_dict(
            stored_usage if isinstance(stored_usage, dict) else DEFAULT_LIFETIME_USAGE
        )

        counts.open_cell_sets = to_number(counts.open_cell_sets) - open_cell
        counts.closed_cell_sets = to_number(counts.closed_cell_sets) - closed_cell
        usage.open_cell = to_number(usage.open_cell) + open_cell
        usage.closed_cell = to_number(usage.closed_cell) + closed_cell

        tx.upsert_setting(WAREHOUSE_COUNTS_KEY, counts.to_dict())
        tx.upsert_setting(LIFETIME_USAGE_KEY, usage.to_dict())

    def _deduct_inventory(
        self, tx: TenantTransaction, reported: Actuals
    ) -> dict[str, InventoryItem]:
        """Decrement stocked items; unknown or unreadable ids are skipped."""
        stocked: dict[str, InventoryItem] = {}
        for line in reported.material_lines():
            if line.id is None:
                continue
            try:
                doc = tx.get(Family.INVENTORY, line.id)
            except InvalidError:
                logger.warning(
                    "Skipping unreadable inventory item",
                    extra={"tenant_id": tx.tenant_id, "item_id": line.id},
                )
                continue
            if doc is None:
                logger.debug(
                    "Skipping unknown inventory item",
                    extra={"tenant_id": tx.tenant_id, "item_id": line.id},
                )
                continue

            item = InventoryItem.from_dict(doc)
            item.quantity = to_number(item.quantity) - to_number(line.quantity)
            tx.put(Family.INVENTORY, item.to_dict())
            stocked[str(line.id)] = item
        return stocked

    def _log_materials(
        self,
        tx: TenantTransaction,
        estimate: Estimate,
        reported: Actuals,
        stocked: dict[str, InventoryItem],
        open_cell: float,
        closed_cell: float,
        actor: str | None,
    ) -> list[MaterialLogEntry]:
        date = reported.completion_date or _utc_now()
        logged_by = reported.completed_by or actor or SYSTEM_ACTOR
        entries: list[MaterialLogEntry] = []

        def add(material: str, quantity: float, unit: str | None) -> None:
            if not quantity:
                return
            entry = MaterialLogEntry(
                id=str(uuid.uuid4()),
                date=date,
                job_id=estimate.id,
                customer_name=estimate.customer_name,
                material_name=material,
                quantity=quantity,
                unit=unit,
                logged_by=logged_by,
            )
            tx.append(Family.LOGS, entry.to_dict())
            entries.append(entry)

        add(OPEN_CELL_MATERIAL, open_cell, FOAM_UNIT)
        add(CLOSED_CELL_MATERIAL, closed_cell, FOAM_UNIT)
        for line in reported.material_lines():
            item = stocked.get(str(line.id)) if line.id is not None else None
            name = line.name or (item.name if item else None) or str(line.id or "Unknown")
            unit = line.unit or (item.unit if item else None)
            add(name, to_number(line.quantity), unit)

        return entries

    async def mark_paid(self, tenant_id: str, estimate_id: str) -> Estimate:
        """Compute job financials and mark the estimate Paid.

        Recomputes from the stored actuals every time. Unless
        require_completion_before_paid is set, any estimate can be marked
        paid, including one with no actuals at all.

        Raises:
            NotFoundError: If the estimate does not exist
            JobStateError: If completion is required and missing
        """
        with self.store.transaction(tenant_id) as tx:
            estimate = self._load(tx, estimate_id)
            status = estimate.lifecycle_status
            if self.config.require_completion_before_paid and status.rank < (
                EstimateStatus.COMPLETED.rank
            ):
                raise JobStateError(estimate_id, status.value, "mark paid")

            stored_costs = tx.get_setting("costs")
            costs = CostSettings.from_dict(stored_costs if isinstance(stored_costs, dict) else {})

            estimate.financials = compute_financials(estimate, costs)
            estimate.status = EstimateStatus.PAID.value
            estimate.last_modified = _utc_now()
            tx.put(Family.ESTIMATES, estimate.to_dict())

        logger.info(
            "Job paid",
            extra={
                "tenant_id": tenant_id,
                "estimate_id": estimate_id,
                "net_profit": estimate.financials.net_profit,
            },
        )
        return estimate

    async def delete(self, tenant_id: str, estimate_id: str) -> bool:
        """Permanently remove an estimate. Material log entries are kept.

        Returns:
            True if deleted, False if it did not exist
        """
        deleted = await self.store.delete(tenant_id, Family.ESTIMATES, estimate_id)
        logger.info(
            "Estimate deleted",
            extra={"tenant_id": tenant_id, "estimate_id": estimate_id, "deleted": deleted},
        )
        return deleted

    async def attach_document(
        self, tenant_id: str, estimate_id: str, reference: str
    ) -> Estimate | None:
        """Store an object-store reference (e.g. a PDF link) on an estimate.

        Returns:
            The updated estimate, or None if it does not exist
        """
        with self.store.transaction(tenant_id) as tx:
            doc = tx.get(Family.ESTIMATES, estimate_id)
            if doc is None:
                return None
            estimate = Estimate.from_dict(doc)
            estimate.pdf_link = reference
            tx.put(Family.ESTIMATES, estimate.to_dict())
        return estimate

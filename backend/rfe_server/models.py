"""
Record models for tenant documents.

Clients send loosely-typed JSON documents. Each model maps the fields the
backend interprets onto typed attributes and keeps everything else in an
``extra`` mapping, so a document survives from_dict/to_dict unchanged
(including fields this server has never heard of).

Invariants:
    - to_dict(from_dict(doc)) == doc for any JSON object doc
    - Explicit nulls are preserved (they are kept in extra)
    - Records (top-level family members) always carry an id

How to change safely:
    - Adding a field to _FIELDS is backward compatible
    - Never rename a JSON key; clients persist these documents verbatim
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from .errors import InvalidError


def to_number(value: Any) -> int | float:
    """Coerce a loosely-typed JSON value to a number.

    Missing, empty, non-numeric and non-finite values become 0. Integral
    results are returned as int so quantities stay integers in JSON.
    """
    if isinstance(value, bool):
        return int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(number) if number.is_integer() else number


class EstimateStatus(str, Enum):
    """Job lifecycle states, in the order they are reached."""

    DRAFT = "Draft"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    PAID = "Paid"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    @classmethod
    def parse(cls, value: Any) -> EstimateStatus:
        """Map a stored status onto the lifecycle; unknown values count as Draft."""
        try:
            return cls(value)
        except ValueError:
            return cls.DRAFT


_STATUS_ORDER = [
    EstimateStatus.DRAFT,
    EstimateStatus.IN_PROGRESS,
    EstimateStatus.COMPLETED,
    EstimateStatus.PAID,
]


def _dump(value: Any) -> Any:
    if isinstance(value, Document):
        return value.to_dict()
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


@dataclass
class Document:
    """A JSON object with typed known fields and an extension mapping.

    Subclasses declare _FIELDS as (attribute, json_key) pairs. _NESTED and
    _LISTS name attributes holding a nested Document or a list of them.
    """

    extra: dict[str, Any] = field(default_factory=dict)

    _FIELDS: ClassVar[tuple[tuple[str, str], ...]] = ()
    _NESTED: ClassVar[dict[str, type[Document]]] = {}
    _LISTS: ClassVar[dict[str, type[Document]]] = {}

    @classmethod
    def from_dict(cls, data: Any) -> Any:
        """Build a model from a JSON object.

        Raises:
            InvalidError: If data is not a JSON object
        """
        if not isinstance(data, dict):
            raise InvalidError(f"{cls.__name__} must be a JSON object")

        attr_for_key = {key: attr for attr, key in cls._FIELDS}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}

        for key, value in data.items():
            attr = attr_for_key.get(key)
            if attr is None or value is None:
                extra[key] = value
            else:
                kwargs[attr] = cls._load_field(attr, value)

        return cls(extra=extra, **kwargs)

    @classmethod
    def _load_field(cls, attr: str, value: Any) -> Any:
        nested = cls._NESTED.get(attr)
        if nested is not None and isinstance(value, dict):
            return nested.from_dict(value)
        item_type = cls._LISTS.get(attr)
        if item_type is not None and isinstance(value, list):
            return [item_type.from_dict(v) if isinstance(v, dict) else v for v in value]
        return value

    def to_dict(self) -> dict[str, Any]:
        doc = dict(self.extra)
        for attr, key in self._FIELDS:
            value = getattr(self, attr)
            if value is not None:
                doc[key] = _dump(value)
        return doc


@dataclass
class Record(Document):
    """A top-level family member, addressed by id within its tenant."""

    id: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> Any:
        """Build a record, requiring a non-empty id.

        Raises:
            InvalidError: If data is not an object or has no id
        """
        if isinstance(data, dict) and data.get("id") in (None, ""):
            raise InvalidError(f"{cls.__name__} is missing an id", field_name="id")
        return super().from_dict(data)

    @property
    def key(self) -> str:
        """Storage key for this record."""
        return str(self.id)


@dataclass
class Customer(Record):
    name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    phone: str | None = None
    email: str | None = None
    status: str | None = None

    _FIELDS = (
        ("id", "id"),
        ("name", "name"),
        ("address", "address"),
        ("city", "city"),
        ("state", "state"),
        ("zip", "zip"),
        ("phone", "phone"),
        ("email", "email"),
        ("status", "status"),
    )


@dataclass
class InventoryItem(Record):
    """Warehouse stock line. quantity may go negative; it is never clamped."""

    name: str | None = None
    quantity: Any = None
    unit: str | None = None
    unit_cost: Any = None

    _FIELDS = (
        ("id", "id"),
        ("name", "name"),
        ("quantity", "quantity"),
        ("unit", "unit"),
        ("unit_cost", "unitCost"),
    )


@dataclass
class Equipment(Record):
    name: str | None = None
    status: str | None = None

    _FIELDS = (("id", "id"), ("name", "name"), ("status", "status"))


@dataclass
class MaterialLine(Document):
    """One inventory line reported on a job (actuals or planned materials)."""

    id: Any = None
    name: str | None = None
    quantity: Any = None
    unit: str | None = None
    unit_cost: Any = None

    _FIELDS = (
        ("id", "id"),
        ("name", "name"),
        ("quantity", "quantity"),
        ("unit", "unit"),
        ("unit_cost", "unitCost"),
    )


@dataclass
class Actuals(Document):
    """Materials and labor actually used on a job."""

    open_cell_sets: Any = None
    closed_cell_sets: Any = None
    labor_hours: Any = None
    inventory: list[Any] | None = None
    completion_date: str | None = None
    completed_by: str | None = None
    last_started_at: str | None = None

    _FIELDS = (
        ("open_cell_sets", "openCellSets"),
        ("closed_cell_sets", "closedCellSets"),
        ("labor_hours", "laborHours"),
        ("inventory", "inventory"),
        ("completion_date", "completionDate"),
        ("completed_by", "completedBy"),
        ("last_started_at", "lastStartedAt"),
    )
    _LISTS = {"inventory": MaterialLine}

    def material_lines(self) -> list[MaterialLine]:
        """Inventory lines, ignoring entries that are not objects.

        A non-list inventory value yields no lines.
        """
        if not isinstance(self.inventory, list):
            return []
        return [line for line in self.inventory if isinstance(line, MaterialLine)]


@dataclass
class Expenses(Document):
    man_hours: Any = None
    labor_rate: Any = None
    trip_charge: Any = None
    fuel_surcharge: Any = None

    _FIELDS = (
        ("man_hours", "manHours"),
        ("labor_rate", "laborRate"),
        ("trip_charge", "tripCharge"),
        ("fuel_surcharge", "fuelSurcharge"),
    )


@dataclass
class Financials(Document):
    """Job profitability, computed when an estimate is marked paid."""

    revenue: Any = None
    chemical_cost: Any = None
    labor_cost: Any = None
    inventory_cost: Any = None
    misc_cost: Any = None
    total_cogs: Any = None
    net_profit: Any = None
    margin: Any = None

    _FIELDS = (
        ("revenue", "revenue"),
        ("chemical_cost", "chemicalCost"),
        ("labor_cost", "laborCost"),
        ("inventory_cost", "inventoryCost"),
        ("misc_cost", "miscCost"),
        ("total_cogs", "totalCOGS"),
        ("net_profit", "netProfit"),
        ("margin", "margin"),
    )


@dataclass
class Estimate(Record):
    customer: dict[str, Any] | None = None
    date: str | None = None
    total_value: Any = None
    status: str | None = None
    invoice_number: str | None = None
    pdf_link: str | None = None
    actuals: Any = None
    materials: Any = None
    expenses: Any = None
    financials: Any = None
    inventory_processed: bool | None = None
    last_modified: str | None = None

    _FIELDS = (
        ("id", "id"),
        ("customer", "customer"),
        ("date", "date"),
        ("total_value", "totalValue"),
        ("status", "status"),
        ("invoice_number", "invoiceNumber"),
        ("pdf_link", "pdfLink"),
        ("actuals", "actuals"),
        ("materials", "materials"),
        ("expenses", "expenses"),
        ("financials", "financials"),
        ("inventory_processed", "inventoryProcessed"),
        ("last_modified", "lastModified"),
    )
    _NESTED = {
        "actuals": Actuals,
        "materials": Actuals,
        "expenses": Expenses,
        "financials": Financials,
    }

    @property
    def lifecycle_status(self) -> EstimateStatus:
        return EstimateStatus.parse(self.status)

    @property
    def customer_name(self) -> str:
        if isinstance(self.customer, dict) and self.customer.get("name"):
            return str(self.customer["name"])
        return "Unknown"

    @property
    def customer_id(self) -> Any:
        if isinstance(self.customer, dict):
            return self.customer.get("id")
        return None

    def expense_sheet(self) -> Expenses:
        return self.expenses if isinstance(self.expenses, Expenses) else Expenses()


@dataclass
class MaterialLogEntry(Record):
    """Append-only record of material consumed by one job completion."""

    date: str | None = None
    job_id: Any = None
    customer_name: str | None = None
    material_name: str | None = None
    quantity: Any = None
    unit: str | None = None
    logged_by: str | None = None

    _FIELDS = (
        ("id", "id"),
        ("date", "date"),
        ("job_id", "jobId"),
        ("customer_name", "customerName"),
        ("material_name", "materialName"),
        ("quantity", "quantity"),
        ("unit", "unit"),
        ("logged_by", "loggedBy"),
    )


@dataclass
class WarehouseCounts(Document):
    """Foam-set stock levels (settings key warehouse_counts)."""

    open_cell_sets: Any = None
    closed_cell_sets: Any = None

    _FIELDS = (
        ("open_cell_sets", "openCellSets"),
        ("closed_cell_sets", "closedCellSets"),
    )


@dataclass
class LifetimeUsage(Document):
    """Cumulative foam sets consumed (settings key lifetime_usage)."""

    open_cell: Any = None
    closed_cell: Any = None

    _FIELDS = (("open_cell", "openCell"), ("closed_cell", "closedCell"))


@dataclass
class CostSettings(Document):
    """Unit costs (settings key costs)."""

    open_cell: Any = None
    closed_cell: Any = None
    labor_rate: Any = None

    _FIELDS = (
        ("open_cell", "openCell"),
        ("closed_cell", "closedCell"),
        ("labor_rate", "laborRate"),
    )

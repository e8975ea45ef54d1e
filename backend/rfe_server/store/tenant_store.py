"""
Per-tenant SQLite store for RFE records.

This module manages one SQLite database per tenant (company). It stores
six record families:
- customers, estimates, inventory, equipment: keyed collections
- logs: append-only material usage entries
- settings: keyed JSON configuration values

Every family table keeps a few structured columns (for querying) next to
the full client document verbatim in json_data, so fields the columns do
not know about are never lost.

Invariants:
    - One SQLite file per tenant, and every row carries tenant_id
    - Every query filters on tenant_id (no cross-tenant reads or writes)
    - replace_all is delete-then-insert inside one transaction
    - Log rows are insert-only; put/replace_all/delete reject them
    - Rows whose json_data does not parse to an object are dropped from
      list results, never returned half-parsed

How to change safely:
    - Schema changes must be additive (CREATE ... IF NOT EXISTS)
    - Keep json_data authoritative; structured columns are derived
    - Use transaction() for every multi-statement write

Table schema (per family):
    <family>:
        - tenant_id TEXT
        - id TEXT
        - <structured columns>
        - json_data TEXT
        - updated_at INTEGER (Unix ms)
        - PRIMARY KEY (tenant_id, id)

    settings:
        - tenant_id TEXT
        - config_key TEXT
        - config_value TEXT (JSON)
        - updated_at INTEGER
        - PRIMARY KEY (tenant_id, config_key)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import ConflictError, InternalError, InvalidError

logger = logging.getLogger(__name__)


class Family(str, Enum):
    """Record families held per tenant."""

    CUSTOMERS = "customers"
    ESTIMATES = "estimates"
    INVENTORY = "inventory"
    EQUIPMENT = "equipment"
    LOGS = "logs"


def _field(name: str, default: Any = None) -> Callable[[dict[str, Any]], Any]:
    return lambda doc: default if doc.get(name) is None else doc[name]


def _customer_ref(doc: dict[str, Any]) -> Any:
    customer = doc.get("customer")
    return customer.get("id") if isinstance(customer, dict) else None


@dataclass(frozen=True)
class FamilySpec:
    """Storage layout of one record family.

    Attributes:
        table: Table name
        columns: Structured columns as (column, extractor) pairs
        append_only: Rows may only be inserted
    """

    table: str
    columns: tuple[tuple[str, Callable[[dict[str, Any]], Any]], ...]
    append_only: bool = False


FAMILY_SPECS: dict[Family, FamilySpec] = {
    Family.CUSTOMERS: FamilySpec(
        table="customers",
        columns=(
            ("name", _field("name")),
            ("address", _field("address")),
            ("city", _field("city")),
            ("state", _field("state")),
            ("zip", _field("zip")),
            ("phone", _field("phone")),
            ("email", _field("email")),
            ("status", _field("status", "Active")),
        ),
    ),
    Family.ESTIMATES: FamilySpec(
        table="estimates",
        columns=(
            ("customer_id", _customer_ref),
            ("date", _field("date")),
            ("total_value", _field("totalValue")),
            ("status", _field("status")),
            ("invoice_number", _field("invoiceNumber")),
            ("pdf_link", _field("pdfLink")),
        ),
    ),
    Family.INVENTORY: FamilySpec(
        table="inventory",
        columns=(
            ("name", _field("name")),
            ("quantity", _field("quantity")),
            ("unit", _field("unit")),
            ("unit_cost", _field("unitCost", 0)),
        ),
    ),
    Family.EQUIPMENT: FamilySpec(
        table="equipment",
        columns=(
            ("name", _field("name")),
            ("status", _field("status")),
        ),
    ),
    Family.LOGS: FamilySpec(
        table="logs",
        columns=(
            ("date", _field("date")),
            ("job_id", _field("jobId")),
            ("customer_name", _field("customerName")),
            ("material_name", _field("materialName")),
            ("quantity", _field("quantity")),
            ("unit", _field("unit")),
            ("logged_by", _field("loggedBy")),
        ),
        append_only=True,
    ),
}


def _column_value(value: Any) -> Any:
    """Coerce a document value into something SQLite can bind."""
    if value is None or isinstance(value, (str, int, float)):
        return value
    return json.dumps(value)


def _parse_document(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        doc = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return doc if isinstance(doc, dict) else None


def _translate_error(exc: sqlite3.Error) -> Exception:
    message = str(exc).lower()
    if isinstance(exc, sqlite3.OperationalError) and ("locked" in message or "busy" in message):
        return ConflictError(f"Tenant store is busy: {exc}")
    return InternalError(f"Tenant store failure: {exc}")


def _record_key(record: Any) -> str:
    if not isinstance(record, dict):
        raise InvalidError("Record must be a JSON object")
    record_id = record.get("id")
    if record_id is None or record_id == "":
        raise InvalidError("Record is missing an id", field_name="id")
    return str(record_id)


class TenantTransaction:
    """Operations bound to one open tenant transaction.

    Obtained from TenantStore.transaction(); all calls run on the same
    connection and commit or roll back together.
    """

    def __init__(self, conn: sqlite3.Connection, tenant_id: str) -> None:
        self.conn = conn
        self.tenant_id = tenant_id

    def get(self, family: Family, record_id: str) -> dict[str, Any] | None:
        """Get one record.

        Raises:
            InvalidError: If the stored document cannot be parsed
        """
        spec = FAMILY_SPECS[family]
        row = self.conn.execute(
            f"SELECT json_data FROM {spec.table} WHERE tenant_id = ? AND id = ?",
            (self.tenant_id, str(record_id)),
        ).fetchone()
        if row is None:
            return None

        doc = _parse_document(row["json_data"])
        if doc is None:
            raise InvalidError(f"Invalid {family.value} data for {record_id}")
        return doc

    def list(self, family: Family) -> list[dict[str, Any]]:
        """List all records of a family, dropping rows that fail to parse."""
        spec = FAMILY_SPECS[family]
        cursor = self.conn.execute(
            f"SELECT id, json_data FROM {spec.table} WHERE tenant_id = ? ORDER BY rowid",
            (self.tenant_id,),
        )

        records = []
        for row in cursor.fetchall():
            doc = _parse_document(row["json_data"])
            if doc is None:
                logger.warning(
                    "Dropping unparsable record",
                    extra={"tenant_id": self.tenant_id, "family": family.value, "id": row["id"]},
                )
                continue
            records.append(doc)
        return records

    def put(self, family: Family, record: dict[str, Any]) -> None:
        """Insert or replace a record by id."""
        spec = self._writable(family)
        self._insert(spec, record, replace=True)

    def append(self, family: Family, record: dict[str, Any]) -> None:
        """Insert a record that must not exist yet.

        Raises:
            ConflictError: If a record with the same id already exists
        """
        spec = FAMILY_SPECS[family]
        try:
            self._insert(spec, record, replace=False)
        except sqlite3.IntegrityError:
            raise ConflictError(f"{family.value} record already exists: {record.get('id')}")

    def replace_all(self, family: Family, records: list[dict[str, Any]]) -> int:
        """Delete every record of the family, then insert the given ones.

        Returns:
            Number of records written
        """
        spec = self._writable(family)
        keys = [_record_key(record) for record in records]

        self.conn.execute(f"DELETE FROM {spec.table} WHERE tenant_id = ?", (self.tenant_id,))
        for key, record in zip(keys, records):
            self._insert(spec, record, replace=True, key=key)
        return len(records)

    def delete(self, family: Family, record_id: str) -> bool:
        spec = self._writable(family)
        cursor = self.conn.execute(
            f"DELETE FROM {spec.table} WHERE tenant_id = ? AND id = ?",
            (self.tenant_id, str(record_id)),
        )
        return cursor.rowcount > 0

    def count(self, family: Family) -> int:
        spec = FAMILY_SPECS[family]
        cursor = self.conn.execute(
            f"SELECT COUNT(*) FROM {spec.table} WHERE tenant_id = ?", (self.tenant_id,)
        )
        return cursor.fetchone()[0]

    def get_setting(self, key: str) -> Any:
        """Get a setting value, or None if missing or unparsable."""
        row = self.conn.execute(
            "SELECT config_value FROM settings WHERE tenant_id = ? AND config_key = ?",
            (self.tenant_id, key),
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["config_value"])
        except (TypeError, ValueError):
            logger.warning(
                "Ignoring unparsable setting",
                extra={"tenant_id": self.tenant_id, "config_key": key},
            )
            return None

    def list_settings(self) -> dict[str, Any]:
        """All settings of the tenant; unparsable values are skipped."""
        cursor = self.conn.execute(
            "SELECT config_key, config_value FROM settings WHERE tenant_id = ?",
            (self.tenant_id,),
        )
        settings: dict[str, Any] = {}
        for row in cursor.fetchall():
            try:
                settings[row["config_key"]] = json.loads(row["config_value"])
            except (TypeError, ValueError):
                logger.warning(
                    "Ignoring unparsable setting",
                    extra={"tenant_id": self.tenant_id, "config_key": row["config_key"]},
                )
        return settings

    def upsert_setting(self, key: str, value: Any) -> None:
        """Insert a setting or overwrite the existing value for its key."""
        self.conn.execute(
            """
            INSERT INTO settings (tenant_id, config_key, config_value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(tenant_id, config_key)
            DO UPDATE SET config_value = excluded.config_value, updated_at = excluded.updated_at
            """,
            (self.tenant_id, key, json.dumps(value), int(time.time() * 1000)),
        )

    def _writable(self, family: Family) -> FamilySpec:
        spec = FAMILY_SPECS[family]
        if spec.append_only:
            raise InvalidError(f"{family.value} records are append-only")
        return spec

    def _insert(
        self,
        spec: FamilySpec,
        record: dict[str, Any],
        replace: bool,
        key: str | None = None,
    ) -> None:
        key = key or _record_key(record)
        column_names = [name for name, _ in spec.columns]
        values = [_column_value(extract(record)) for _, extract in spec.columns]

        columns_sql = ", ".join(["tenant_id", "id", *column_names, "json_data", "updated_at"])
        placeholders = ", ".join("?" * (len(column_names) + 4))
        verb = "INSERT OR REPLACE" if replace else "INSERT"

        self.conn.execute(
            f"{verb} INTO {spec.table} ({columns_sql}) VALUES ({placeholders})",
            (
                self.tenant_id,
                key,
                *values,
                json.dumps(record),
                int(time.time() * 1000),
            ),
        )


class TenantStore:
    """Per-tenant SQLite store for customers, estimates, inventory,
    equipment, material logs and settings.

    Thread safety:
        Each operation opens its own connection. Writers take the tenant
        database write lock up front (BEGIN IMMEDIATE), so read-modify-write
        sequences in transaction() are serialized per tenant.

    Example:
        >>> store = TenantStore("/var/lib/rfe")
        >>> await store.put("acme", Family.CUSTOMERS, {"id": "c1", "name": "Bob"})
        >>> with store.transaction("acme") as tx:
        ...     tx.upsert_setting("costs", {"openCell": 1500})
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        data_dir: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -16000,
    ) -> None:
        """Initialize the tenant store.

        Args:
            data_dir: Directory for SQLite database files
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: How long a writer waits for the tenant lock
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.data_dir = Path(data_dir)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages
        self._initialized: set[str] = set()

    def _get_db_path(self, tenant_id: str) -> Path:
        """Get database file path for a tenant."""
        # Sanitize tenant_id to prevent path traversal
        safe_id = "".join(c for c in tenant_id if c.isalnum() or c in "-_")
        return self.data_dir / f"tenant_{safe_id}.db"

    @contextmanager
    def _get_connection(self, tenant_id: str) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the tenant database."""
        if not tenant_id:
            raise InvalidError("tenant_id is required")

        db_path = self._get_db_path(tenant_id)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(
                str(db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except sqlite3.Error as e:
            raise _translate_error(e) from e
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            if tenant_id not in self._initialized:
                self._create_schema(conn)
                self._initialized.add(tenant_id)

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        statements = [
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS settings (
                tenant_id TEXT NOT NULL,
                config_key TEXT NOT NULL,
                config_value TEXT NOT NULL,
                updated_at INTEGER NOT NULL,
                PRIMARY KEY (tenant_id, config_key)
            )
            """,
        ]

        for spec in FAMILY_SPECS.values():
            columns = ",\n".join(f"                {name}" for name, _ in spec.columns)
            statements.append(
                f"""
                CREATE TABLE IF NOT EXISTS {spec.table} (
                    tenant_id TEXT NOT NULL,
                    id TEXT NOT NULL,
{columns},
                    json_data TEXT NOT NULL,
                    updated_at INTEGER NOT NULL,
                    PRIMARY KEY (tenant_id, id)
                )
                """
            )

        statements.extend(
            [
                "CREATE INDEX IF NOT EXISTS idx_estimates_customer ON estimates(tenant_id, customer_id)",
                "CREATE INDEX IF NOT EXISTS idx_estimates_status ON estimates(tenant_id, status)",
                "CREATE INDEX IF NOT EXISTS idx_logs_job ON logs(tenant_id, job_id)",
                f"""
                INSERT OR IGNORE INTO schema_version (version, applied_at)
                VALUES ({self.SCHEMA_VERSION}, strftime('%s', 'now') * 1000)
                """,
            ]
        )

        conn.executescript(";\n".join(statements) + ";")

    @contextmanager
    def transaction(self, tenant_id: str, immediate: bool = True) -> Iterator[TenantTransaction]:
        """Run a group of operations atomically against one tenant.

        Args:
            tenant_id: Tenant identifier
            immediate: Take the write lock up front. Pass False for
                read-only work that only needs a consistent view.

        Yields:
            TenantTransaction bound to the open transaction

        Raises:
            ConflictError: If the tenant lock could not be taken in time
            InternalError: On any other SQLite failure
        """
        with self._get_connection(tenant_id) as conn:
            try:
                conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            except sqlite3.Error as e:
                raise _translate_error(e) from e

            try:
                yield TenantTransaction(conn, tenant_id)
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise _translate_error(e) from e
            except BaseException:
                # Includes task cancellation: nothing from this block persists.
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    async def initialize_tenant(self, tenant_id: str) -> None:
        """Create the tenant database and schema if they don't exist."""
        with self._get_connection(tenant_id):
            logger.info(f"Initialized tenant database: {tenant_id}")

    async def tenant_exists(self, tenant_id: str) -> bool:
        """Check if tenant database exists."""
        return self._get_db_path(tenant_id).exists()

    async def get(self, tenant_id: str, family: Family, record_id: str) -> dict[str, Any] | None:
        """Get a record by id.

        Returns:
            The stored document or None if not found
        """
        with self.transaction(tenant_id, immediate=False) as tx:
            return tx.get(family, record_id)

    async def list(self, tenant_id: str, family: Family) -> list[dict[str, Any]]:
        """List every parsable record of a family."""
        with self.transaction(tenant_id, immediate=False) as tx:
            return tx.list(family)

    async def put(self, tenant_id: str, family: Family, record: dict[str, Any]) -> None:
        """Insert or replace a record."""
        with self.transaction(tenant_id) as tx:
            tx.put(family, record)

        logger.debug(
            "Stored record",
            extra={"tenant_id": tenant_id, "family": family.value, "id": record.get("id")},
        )

    async def append(self, tenant_id: str, family: Family, record: dict[str, Any]) -> None:
        """Insert a record into an append-only family."""
        with self.transaction(tenant_id) as tx:
            tx.append(family, record)

    async def replace_all(
        self,
        tenant_id: str,
        family: Family,
        records: list[dict[str, Any]],
    ) -> int:
        """Replace every record of a family in one transaction.

        Returns:
            Number of records written
        """
        with self.transaction(tenant_id) as tx:
            written = tx.replace_all(family, records)

        logger.debug(
            "Replaced family",
            extra={"tenant_id": tenant_id, "family": family.value, "count": written},
        )
        return written

    async def delete(self, tenant_id: str, family: Family, record_id: str) -> bool:
        """Delete a record.

        Returns:
            True if deleted, False if not found
        """
        with self.transaction(tenant_id) as tx:
            return tx.delete(family, record_id)

    async def get_setting(self, tenant_id: str, key: str) -> Any:
        with self.transaction(tenant_id, immediate=False) as tx:
            return tx.get_setting(key)

    async def list_settings(self, tenant_id: str) -> dict[str, Any]:
        with self.transaction(tenant_id, immediate=False) as tx:
            return tx.list_settings()

    async def upsert_setting(self, tenant_id: str, key: str, value: Any) -> None:
        with self.transaction(tenant_id) as tx:
            tx.upsert_setting(key, value)

    async def get_stats(self, tenant_id: str) -> dict[str, int]:
        """Get record counts for a tenant.

        Returns:
            Dictionary with one count per family plus settings
        """
        with self.transaction(tenant_id, immediate=False) as tx:
            stats = {family.value: tx.count(family) for family in Family}
            stats["settings"] = len(tx.list_settings())
            return stats

    def get_db_path(self, tenant_id: str) -> Path:
        """Get the database file path for a tenant."""
        return self._get_db_path(tenant_id)

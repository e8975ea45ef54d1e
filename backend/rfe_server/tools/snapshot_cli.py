"""
Snapshot CLI tool for the RFE backend.

This tool moves a tenant's state in and out of the data directory:
- export: Write the tenant snapshot (what sync_down returns) as JSON
- import: Apply a snapshot file (same semantics as sync_up)
- stats: Show record counts per family

Usage:
    rfe-snapshot export --tenant-id acme --data-dir /var/lib/rfe -o acme.json
    rfe-snapshot import --tenant-id acme --data-dir /var/lib/rfe acme.json
    rfe-snapshot stats --tenant-id acme

Invariants:
    - Export output is deterministic (sorted JSON)
    - Import is destructive for every collection present in the file

How to change safely:
    - Keep export output loadable by import
    - Add new commands, don't modify existing ones
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from ..config import StorageConfig
from ..errors import InvalidError, RfeError
from ..store import TenantStore
from ..sync import SyncEngine, SyncResult

logger = logging.getLogger(__name__)


class SnapshotCLI:
    """CLI tool for tenant snapshots.

    Example:
        >>> cli = SnapshotCLI(TenantStore("/var/lib/rfe"))
        >>> text = await cli.export_snapshot("acme")
        >>> await cli.import_snapshot("acme-copy", text)
    """

    def __init__(self, store: TenantStore) -> None:
        self.store = store
        self.engine = SyncEngine(store)

    async def export_snapshot(self, tenant_id: str) -> str:
        """Export the tenant snapshot as JSON."""
        snapshot = await self.engine.sync_down(tenant_id)
        return json.dumps(snapshot, indent=2, sort_keys=True)

    async def import_snapshot(self, tenant_id: str, text: str) -> SyncResult:
        """Apply a JSON snapshot to the tenant.

        Accepts either a bare snapshot or a {"state": ...} envelope.

        Raises:
            InvalidError: If the text is not a valid snapshot
        """
        try:
            data: Any = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidError(f"Snapshot file is not valid JSON: {e}")

        if isinstance(data, dict) and set(data) == {"state"}:
            data = data["state"]
        return await self.engine.sync_up(tenant_id, data)

    async def stats(self, tenant_id: str) -> dict[str, int]:
        return await self.store.get_stats(tenant_id)


async def _run(args: argparse.Namespace) -> int:
    storage = StorageConfig.from_env()
    store = TenantStore(
        data_dir=args.data_dir or storage.data_dir,
        wal_mode=storage.wal_mode,
        busy_timeout_ms=storage.busy_timeout_ms,
        cache_size_pages=storage.cache_size_pages,
    )
    cli = SnapshotCLI(store)

    if args.command == "export":
        output = await cli.export_snapshot(args.tenant_id)
        if args.output:
            with open(args.output, "w") as f:
                f.write(output)
            print(f"Snapshot exported to {args.output}", file=sys.stderr)
        else:
            print(output)

    elif args.command == "import":
        with open(args.file) as f:
            text = f.read()
        result = await cli.import_snapshot(args.tenant_id, text)
        print(f"Snapshot imported into {args.tenant_id}")
        for family, count in result.families_replaced.items():
            print(f"  {family}: {count}")
        print(f"  settings: {len(result.settings_written)}")

    elif args.command == "stats":
        for name, count in (await cli.stats(args.tenant_id)).items():
            print(f"{name}: {count}")

    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for snapshot tool."""
    parser = argparse.ArgumentParser(description="RFE tenant snapshot tool")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--tenant-id", required=True, help="Tenant ID")
        sub.add_argument("--data-dir", help="Directory for SQLite databases (default: DATA_DIR)")

    export_parser = subparsers.add_parser("export", help="Export tenant snapshot to JSON")
    add_common(export_parser)
    export_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    import_parser = subparsers.add_parser(
        "import", help="Replace tenant state from a snapshot file"
    )
    add_common(import_parser)
    import_parser.add_argument("file", help="Snapshot JSON file")

    stats_parser = subparsers.add_parser("stats", help="Show record counts")
    add_common(stats_parser)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        code = asyncio.run(_run(args))
    except RfeError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        code = 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()

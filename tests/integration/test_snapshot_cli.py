"""
Integration tests for the snapshot CLI.
"""

import json
import tempfile
from pathlib import Path

import pytest

from backend.rfe_server.errors import InvalidError
from backend.rfe_server.store import Family, TenantStore
from backend.rfe_server.tools import SnapshotCLI
from backend.rfe_server.tools.snapshot_cli import main

SNAPSHOT = {
    "costs": {"openCell": 100},
    "customers": [{"id": "c1", "name": "Bob"}, {"id": "c2", "name": "Ann"}],
    "savedEstimates": [{"id": "e1", "status": "Draft"}],
}


class TestSnapshotCLI:
    """Tests for SnapshotCLI."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def cli(self, data_dir):
        return SnapshotCLI(TenantStore(data_dir, wal_mode=False))

    @pytest.mark.asyncio
    async def test_export_import_copies_tenant(self, cli):
        await cli.import_snapshot("acme", json.dumps(SNAPSHOT))

        text = await cli.export_snapshot("acme")
        await cli.import_snapshot("acme-copy", text)

        assert await cli.export_snapshot("acme-copy") == text

    @pytest.mark.asyncio
    async def test_export_is_sorted(self, cli):
        await cli.import_snapshot("acme", json.dumps(SNAPSHOT))

        text = await cli.export_snapshot("acme")
        keys = list(json.loads(text))
        assert keys == sorted(keys)

    @pytest.mark.asyncio
    async def test_state_envelope(self, cli):
        result = await cli.import_snapshot("acme", json.dumps({"state": SNAPSHOT}))

        assert result.families_replaced["customers"] == 2
        assert len(await cli.store.list("acme", Family.CUSTOMERS)) == 2

    @pytest.mark.asyncio
    async def test_invalid_json(self, cli):
        with pytest.raises(InvalidError, match="not valid JSON"):
            await cli.import_snapshot("acme", "{broken")

    @pytest.mark.asyncio
    async def test_stats(self, cli):
        await cli.import_snapshot("acme", json.dumps(SNAPSHOT))

        stats = await cli.stats("acme")
        assert stats["customers"] == 2
        assert stats["estimates"] == 1
        assert stats["settings"] == 1


class TestMain:
    """Tests for the command-line entry point."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    def test_import_then_export(self, data_dir, capsys):
        source = Path(data_dir) / "acme.json"
        source.write_text(json.dumps(SNAPSHOT))

        with pytest.raises(SystemExit) as exc:
            main(["import", "--tenant-id", "acme", "--data-dir", data_dir, str(source)])
        assert exc.value.code == 0
        assert "customers: 2" in capsys.readouterr().out

        target = Path(data_dir) / "out.json"
        with pytest.raises(SystemExit) as exc:
            main(["export", "--tenant-id", "acme", "--data-dir", data_dir, "-o", str(target)])
        assert exc.value.code == 0
        exported = json.loads(target.read_text())
        assert [c["id"] for c in exported["customers"]] == ["c1", "c2"]

    def test_stats_output(self, data_dir, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["stats", "--tenant-id", "acme", "--data-dir", data_dir])

        assert exc.value.code == 0
        assert "customers: 0" in capsys.readouterr().out

    def test_invalid_snapshot_file(self, data_dir, capsys):
        source = Path(data_dir) / "bad.json"
        source.write_text(json.dumps({"customers": "nope"}))

        with pytest.raises(SystemExit) as exc:
            main(["import", "--tenant-id", "acme", "--data-dir", data_dir, str(source)])

        assert exc.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_missing_file(self, data_dir, capsys):
        missing = str(Path(data_dir) / "missing.json")

        with pytest.raises(SystemExit) as exc:
            main(["import", "--tenant-id", "acme", "--data-dir", data_dir, missing])

        assert exc.value.code == 1
        assert "Error:" in capsys.readouterr().err

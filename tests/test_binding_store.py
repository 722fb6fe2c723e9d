"""
Binding Store Tests
===================

SQLite persistence, in-memory reconciliation map and the background writer.
"""

import sqlite3
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from macwatch.binding_store import BindingDatabase, BindingStoreError, ReconciliationStore
from macwatch.metrics import MetricsRegistry
from macwatch.persistence import PersistenceWorker


class TestBindingDatabase:
    """Durable key-value table."""

    def test_setup_creates_parent_directories(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "macs.db"
        BindingDatabase(str(db_path)).setup()

        assert db_path.exists()

    def test_put_then_load(self, database):
        assert database.put("10.0.0.5", "aa:aa:aa:aa:aa:aa")
        assert database.put("eth0%fe80::1", "bb:bb:bb:bb:bb:bb")

        assert database.load_all() == {
            "10.0.0.5": "aa:aa:aa:aa:aa:aa",
            "eth0%fe80::1": "bb:bb:bb:bb:bb:bb",
        }

    def test_put_replaces_existing_key(self, database):
        database.put("10.0.0.5", "aa:aa:aa:aa:aa:aa")
        database.put("10.0.0.5", "bb:bb:bb:bb:bb:bb")

        assert database.load_all() == {"10.0.0.5": "bb:bb:bb:bb:bb:bb"}

    def test_load_failure_is_fatal(self, tmp_path):
        db = BindingDatabase(str(tmp_path / "never-setup.db"))

        with pytest.raises(BindingStoreError):
            db.load_all()

    def test_unopenable_path_is_fatal(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(BindingStoreError):
            BindingDatabase(str(blocker / "macs.db")).setup()

    def test_read_only_database_is_fatal(self, database):
        real_connect = sqlite3.connect

        def read_only(path, *args, **kwargs):
            return real_connect(f"file:{path}?mode=ro", uri=True)

        with patch("macwatch.binding_store.sqlite3.connect", side_effect=read_only):
            with pytest.raises(BindingStoreError):
                database.setup()

    def test_setup_leaves_no_rows_behind(self, database):
        database.setup()

        assert database.load_all() == {}

    def test_put_failure_is_reported_not_raised(self, database):
        conn = sqlite3.connect(database.db_path)
        conn.execute("DROP TABLE bindings")
        conn.commit()
        conn.close()

        assert database.put("10.0.0.5", "aa:aa:aa:aa:aa:aa") is False


class TestReconciliationStore:
    """In-memory map."""

    def test_lookup_missing(self, store):
        assert store.lookup("10.0.0.5") == (None, False)

    def test_apply_then_lookup(self, store):
        store.apply("10.0.0.5", " BB:BB ")

        assert store.lookup("10.0.0.5") == ("BB:BB", True)
        assert "10.0.0.5" in store
        assert len(store) == 1

    def test_load_from_database(self, database):
        database.put("10.0.0.5", "aa:aa:aa:aa:aa:aa")
        store = ReconciliationStore(database)

        loaded = store.load()

        assert loaded == {"10.0.0.5": "aa:aa:aa:aa:aa:aa"}
        assert store.lookup("10.0.0.5") == ("aa:aa:aa:aa:aa:aa", True)

    def test_snapshot_is_a_copy(self, store):
        store.apply("10.0.0.5", "AA:AA")
        snap = store.snapshot()
        snap["10.0.0.6"] = "CC:CC"

        assert "10.0.0.6" not in store


class TestPersistenceWorker:
    """Background durable writer."""

    def test_writes_reach_database(self, database):
        worker = PersistenceWorker(database, metrics=MetricsRegistry())
        worker.start()
        worker.submit("10.0.0.5", "aa:aa:aa:aa:aa:aa")
        worker.submit("10.0.0.5", "bb:bb:bb:bb:bb:bb")
        worker.flush()

        assert database.load_all() == {"10.0.0.5": "bb:bb:bb:bb:bb:bb"}
        assert worker.written_count == 2
        worker.stop()

    def test_stop_writes_everything_queued(self, database):
        worker = PersistenceWorker(database)
        worker.start()
        for i in range(50):
            worker.submit(f"10.0.0.{i + 1}", "aa:aa:aa:aa:aa:aa")
        worker.stop()

        assert len(database.load_all()) == 50

    def test_full_queue_drops_and_counts(self, database):
        metrics = MetricsRegistry()
        worker = PersistenceWorker(database, metrics=metrics, queue_size=1)  # not started

        assert worker.submit("10.0.0.5", "aa:aa:aa:aa:aa:aa") is True
        assert worker.submit("10.0.0.6", "aa:aa:aa:aa:aa:aa") is False
        assert metrics.value("persist_dropped_total") == 1

    def test_failed_write_is_counted(self, tmp_path):
        metrics = MetricsRegistry()
        database = BindingDatabase(str(tmp_path / "missing-table.db"))  # no setup()
        worker = PersistenceWorker(database, metrics=metrics)
        worker.start()
        worker.submit("10.0.0.5", "aa:aa:aa:aa:aa:aa")
        worker.stop()

        assert metrics.value("persist_failures_total") == 1

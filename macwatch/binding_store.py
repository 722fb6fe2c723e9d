#!/usr/bin/env python3
"""
MACWATCH Binding Store
======================

Persist identity -> link-layer address bindings across restarts.

Two layers:
- BindingDatabase: durable SQLite key-value table
- ReconciliationStore: in-memory map consulted by the classifier, loaded
  from the database at startup

The in-memory map is the source of truth for live classification. Durable
writes happen later on the persistence worker and may lag behind it.
"""

import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Tuple

from loguru import logger


_WRITE_CHECK_KEY = "__macwatch_write_check__"


class BindingStoreError(RuntimeError):
    """Durable store cannot be opened, read or written."""


class BindingDatabase:
    """
    SQLite-backed key-value store of bindings.

    Each operation opens its own connection so the database can be read on
    the startup thread and written from the persistence worker.
    """

    def __init__(self, db_path: str):
        """
        Initialize binding database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = str(db_path)
        self._write_lock = threading.Lock()

    def setup(self) -> None:
        """
        Create the database directory and bindings table.

        Raises:
            BindingStoreError: If the database cannot be created
        """
        try:
            Path(self.db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)

            conn = sqlite3.connect(self.db_path)
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS bindings (
                        identity TEXT PRIMARY KEY,
                        mac TEXT NOT NULL,
                        updated_at TEXT
                    )
                """)
                conn.commit()

                # An existing read-only database passes CREATE IF NOT EXISTS
                conn.execute(
                    "INSERT OR REPLACE INTO bindings (identity, mac, updated_at) VALUES (?, ?, ?)",
                    (_WRITE_CHECK_KEY, "", None),
                )
                conn.rollback()
            finally:
                conn.close()

        except (sqlite3.Error, OSError) as e:
            raise BindingStoreError(f"Cannot open binding database {self.db_path}: {e}") from e

        logger.info(f"Binding database ready at {self.db_path}")

    def load_all(self) -> Dict[str, str]:
        """
        Read every stored binding.

        Returns:
            Dictionary of identity key -> link-layer address

        Raises:
            BindingStoreError: If the table cannot be read
        """
        try:
            conn = sqlite3.connect(self.db_path)
            try:
                rows = conn.execute("SELECT identity, mac FROM bindings").fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise BindingStoreError(f"Cannot read bindings from {self.db_path}: {e}") from e

        return {identity: mac for identity, mac in rows}

    def put(self, key: str, mac: str) -> bool:
        """
        Insert or replace one binding.

        Args:
            key: Identity key
            mac: Link-layer address

        Returns:
            True if written, False on error (logged)
        """
        try:
            with self._write_lock:
                conn = sqlite3.connect(self.db_path)
                try:
                    conn.execute(
                        "INSERT OR REPLACE INTO bindings (identity, mac, updated_at) VALUES (?, ?, ?)",
                        (key, mac, datetime.now().isoformat()),
                    )
                    conn.commit()
                finally:
                    conn.close()
            return True

        except sqlite3.Error as e:
            logger.error(f"Failed to persist binding {key} -> {mac}: {e}")
            return False


class ReconciliationStore:
    """
    In-memory identity -> link-layer address map.

    Only the classification loop mutates it. Other threads (API) read
    snapshots.
    """

    def __init__(self, database: Optional[BindingDatabase] = None):
        self.database = database
        self._bindings: Dict[str, str] = {}

    def load(self) -> Dict[str, str]:
        """
        Populate the map from the durable store.

        Returns:
            Copy of the loaded bindings

        Raises:
            BindingStoreError: If the durable store cannot be read
        """
        if self.database is None:
            return {}

        self._bindings = self.database.load_all()
        logger.info(f"Loaded {len(self._bindings)} bindings from database")
        return dict(self._bindings)

    def lookup(self, key: str) -> Tuple[Optional[str], bool]:
        """Return (value, present) for a key."""
        value = self._bindings.get(key)
        return value, value is not None

    def apply(self, key: str, mac: str) -> None:
        """Record a new link-layer address for a key."""
        self._bindings[key] = mac.strip()

    def snapshot(self) -> Dict[str, str]:
        return dict(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, key: str) -> bool:
        return key in self._bindings

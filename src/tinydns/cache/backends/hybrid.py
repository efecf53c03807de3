from __future__ import annotations

import logging
import os
import shutil
import sqlite3
import tempfile
import threading
from typing import Optional

from cachetools import LRUCache

from ..base import KeyValueStore

logger = logging.getLogger(__name__)

DB_FILENAME = "cache.db"


class HybridStore(KeyValueStore):
    """Memory-plus-disk byte store without expiry.

    Brief:
      Values are written through to a sqlite3 table and kept in a bounded
      in-memory LRU tier for hot keys. Reads hit memory first and fall back to
      disk, repopulating the memory tier on a disk hit.

    Inputs (constructor):
      - path: Directory holding the sqlite file. None creates a temporary
        directory that is deleted by close().
      - memory_size: Maximum number of entries kept in memory.
      - table: Table name for the entries.
      - journal_mode: SQLite journal mode string (default 'WAL'). Best-effort.

    Outputs:
      - HybridStore instance.

    Notes:
      - All DB operations and memory-tier updates are synchronized with an
        RLock, so request threads may call get()/set() concurrently.

    Example:
      >>> store = HybridStore(memory_size=8)
      >>> store.set(b"example.com.A", b"{}")
      >>> store.get(b"example.com.A")
      b'{}'
      >>> store.close()
    """

    def __init__(
        self,
        path: Optional[str] = None,
        *,
        memory_size: int = 4096,
        table: str = "kv_store",
        journal_mode: str = "WAL",
    ) -> None:
        self._owns_dir = path is None
        if path is None:
            self.path = tempfile.mkdtemp(prefix="tinydns-cache-")
        else:
            self.path = os.path.abspath(os.path.expanduser(str(path)))
            os.makedirs(self.path, exist_ok=True)

        self.table = str(table or "kv_store")
        self.journal_mode = str(journal_mode or "WAL")
        self.db_path = os.path.join(self.path, DB_FILENAME)

        self._lock = threading.RLock()
        self._memory: LRUCache = LRUCache(maxsize=max(1, int(memory_size)))
        self._closed = False
        self._conn = self._init_connection()

    def _init_connection(self) -> sqlite3.Connection:
        """Brief: Open the sqlite connection and ensure the schema exists.

        Inputs:
          - None.

        Outputs:
          - sqlite3.Connection usable from any thread.
        """

        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        try:
            conn.execute(f"PRAGMA journal_mode={self.journal_mode}")
        except sqlite3.DatabaseError:
            # Some environments restrict PRAGMAs.
            logger.debug("Could not set journal_mode=%s", self.journal_mode)

        try:
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self.table} ("
                "key_blob BLOB PRIMARY KEY, "
                "value_blob BLOB NOT NULL"
                ")"
            )
            conn.commit()
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def get(self, key: bytes) -> Optional[bytes]:
        key_blob = bytes(key)
        with self._lock:
            if self._closed:
                return None
            value = self._memory.get(key_blob)
            if value is not None:
                return value

            cur = self._conn.cursor()
            cur.execute(
                f"SELECT value_blob FROM {self.table} WHERE key_blob=?",
                (key_blob,),
            )
            row = cur.fetchone()
            if not row:
                return None
            value = bytes(row[0])
            self._memory[key_blob] = value
            return value

    def set(self, key: bytes, value: bytes) -> None:
        key_blob = bytes(key)
        value_blob = bytes(value)
        with self._lock:
            if self._closed:
                raise sqlite3.ProgrammingError("store is closed")
            self._conn.execute(
                f"INSERT OR REPLACE INTO {self.table} (key_blob, value_blob) VALUES (?, ?)",
                (key_blob, value_blob),
            )
            self._conn.commit()
            self._memory[key_blob] = value_blob

    def __len__(self) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(f"SELECT COUNT(*) FROM {self.table}")
            row = cur.fetchone()
        return int(row[0]) if row and row[0] is not None else 0

    def close(self) -> None:
        """Brief: Close the sqlite connection and drop a temporary directory.

        Inputs:
          - None.

        Outputs:
          - None. Safe to call more than once.
        """

        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._memory.clear()
            try:
                self._conn.close()
            except sqlite3.Error:  # pragma: no cover - defensive
                logger.warning("Error closing cache database %s", self.db_path)
            if self._owns_dir:
                shutil.rmtree(self.path, ignore_errors=True)

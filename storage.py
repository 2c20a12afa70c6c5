"""Key-value blob stores keyed by string."""
import os
import time
import sqlite3
from contextlib import closing
from typing import Optional, Protocol
from pathlib import Path

# --- Config ---
DB_PATH = Path(os.environ.get("TRILINGUA_DB_PATH", str(Path(__file__).parent / "trilingua.db")))


class BlobStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def put(self, key: str, value: str) -> None:
        ...


class SqliteBlobStore:
    """One row per key in a local SQLite file; values are opaque text blobs."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else DB_PATH
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path))
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            if not self._initialized:
                conn.executescript("""
                    CREATE TABLE IF NOT EXISTS blobs (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at REAL NOT NULL
                    );
                """)
                self._initialized = True
        except Exception:
            conn.close()
            raise
        return conn

    def get(self, key: str) -> Optional[str]:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT value FROM blobs WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def put(self, key: str, value: str) -> None:
        with closing(self._connect()) as conn:
            conn.execute(
                "INSERT INTO blobs (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                (key, value, time.time())
            )
            conn.commit()


class MemoryBlobStore:
    def __init__(self, initial: Optional[dict] = None):
        self.data = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def put(self, key: str, value: str) -> None:
        self.data[key] = value

"""Destination manifest: what the folder engine has placed and when.

Stored as SQLite inside the destination so the record travels with the
backup. Each row is keyed by item id (``file:<relative path>``) and
carries the source signature used to detect changes and the id of the
last run that saw the item, which drives mirror-mode deletions.
"""

import sqlite3
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

MANIFEST_DIRNAME = ".harborsync"
MANIFEST_FILENAME = "manifest.sqlite"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS entries (
    key TEXT PRIMARY KEY,
    rel_path TEXT NOT NULL,
    signature TEXT NOT NULL,
    size INTEGER NOT NULL,
    mtime REAL NOT NULL,
    last_seen_run_id TEXT NOT NULL,
    deleted_at REAL
);
CREATE INDEX IF NOT EXISTS idx_entries_last_seen_run_id ON entries(last_seen_run_id);
"""


def manifest_path(destination: Path) -> Path:
    return Path(destination) / MANIFEST_DIRNAME / MANIFEST_FILENAME


def manifest_files(destination: Path) -> List[Path]:
    """The database file plus its WAL side files"""
    base = manifest_path(destination)
    return [base, Path(f"{base}-wal"), Path(f"{base}-shm")]


def file_signature(size: int, mtime: float) -> str:
    return f"size:{size};mtime:{mtime}"


@dataclass
class ManifestEntry:
    key: str
    rel_path: str
    signature: str
    size: int
    mtime: float
    last_seen_run_id: str
    deleted_at: Optional[float] = None

    @property
    def is_live(self) -> bool:
        return self.deleted_at is None


class ManifestStore:
    """SQLite-backed manifest, safe to share between threads"""

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    @classmethod
    def for_destination(cls, destination: Path) -> "ManifestStore":
        return cls(manifest_path(destination))

    @property
    def path(self) -> Path:
        return self._db_path

    def get(self, key: str) -> Optional[ManifestEntry]:
        with self._lock:
            row = self._conn.execute(
                """SELECT key, rel_path, signature, size, mtime, last_seen_run_id, deleted_at
                FROM entries WHERE key = ? LIMIT 1""",
                (key,),
            ).fetchone()

        if row is None:
            return None
        return ManifestEntry(*row)

    def upsert(self, entry: ManifestEntry) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO entries
                    (key, rel_path, signature, size, mtime, last_seen_run_id, deleted_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    rel_path = excluded.rel_path,
                    signature = excluded.signature,
                    size = excluded.size,
                    mtime = excluded.mtime,
                    last_seen_run_id = excluded.last_seen_run_id,
                    deleted_at = excluded.deleted_at
                """,
                (
                    entry.key,
                    entry.rel_path,
                    entry.signature,
                    entry.size,
                    entry.mtime,
                    entry.last_seen_run_id,
                    entry.deleted_at,
                ),
            )
            self._conn.commit()

    def mark_deleted(self, key: str, deleted_at: Optional[float] = None) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE entries SET deleted_at = ? WHERE key = ?",
                (deleted_at if deleted_at is not None else time.time(), key),
            )
            self._conn.commit()

    def keys_not_seen(self, run_id: str) -> List[str]:
        """Live keys whose last sighting was in some other run"""
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM entries WHERE last_seen_run_id != ? AND deleted_at IS NULL",
                (run_id,),
            ).fetchall()
        return [row[0] for row in rows]

    def live_keys(self) -> List[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM entries WHERE deleted_at IS NULL"
            ).fetchall()
        return [row[0] for row in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "ManifestStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

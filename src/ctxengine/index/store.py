"""Persistent storage for the artifact index using SQLite.

One row per file. The whole table is rewritten in a single transaction at the
end of every refresh, so a reader never sees a half-applied refresh.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from pydantic import ValidationError

from ctxengine.exceptions import IndexCorruptError
from ctxengine.index.models import FileRecord

logger = logging.getLogger("ctxengine.index.store")

INDEX_SCHEMA_VERSION = 1


class IndexStore:
    """Loads and saves complete snapshots of the file index."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
            self._create_tables()
        return self._conn

    def _create_tables(self) -> None:
        conn = self._conn
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS files (
                path TEXT PRIMARY KEY,
                fingerprint TEXT NOT NULL,
                size INTEGER NOT NULL,
                units INTEGER NOT NULL,
                modified REAL NOT NULL,
                language TEXT NOT NULL,
                is_test INTEGER NOT NULL,
                is_binary INTEGER NOT NULL,
                complexity REAL NOT NULL,
                line_count INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT
            );
        """)
        conn.commit()

    # ------------------------------------------------------------------
    # Save / Load
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self.db_path.exists()

    def load(self) -> dict[str, FileRecord]:
        """Load the full index table.

        Raises IndexCorruptError if the file is not a readable database, the
        schema version is unknown, or any row fails validation.
        """
        if not self.db_path.exists():
            return {}
        try:
            conn = self._get_conn()
            version = self._read_metadata(conn, "schema_version")
            rows = conn.execute("SELECT * FROM files ORDER BY path").fetchall()
        except sqlite3.DatabaseError as e:
            raise IndexCorruptError(f"Unreadable index database {self.db_path}: {e}") from e

        if rows and version != INDEX_SCHEMA_VERSION:
            raise IndexCorruptError(
                f"Index schema version {version!r} does not match {INDEX_SCHEMA_VERSION}"
            )

        records: dict[str, FileRecord] = {}
        for row in rows:
            try:
                record = FileRecord(
                    path=row["path"],
                    fingerprint=row["fingerprint"],
                    size=row["size"],
                    units=row["units"],
                    modified=row["modified"],
                    language=row["language"],
                    is_test=bool(row["is_test"]),
                    is_binary=bool(row["is_binary"]),
                    complexity=row["complexity"],
                    line_count=row["line_count"],
                )
            except ValidationError as e:
                raise IndexCorruptError(f"Invalid index row for {row['path']!r}: {e}") from e
            records[record.path] = record
        return records

    def save(self, records: dict[str, FileRecord]) -> None:
        """Replace the stored table with a complete snapshot."""
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM files")
            conn.executemany(
                """INSERT INTO files
                (path, fingerprint, size, units, modified, language,
                 is_test, is_binary, complexity, line_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        r.path,
                        r.fingerprint,
                        r.size,
                        r.units,
                        r.modified,
                        r.language.value,
                        int(r.is_test),
                        int(r.is_binary),
                        r.complexity,
                        r.line_count,
                    )
                    for r in sorted(records.values(), key=lambda r: r.path)
                ],
            )
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                ("schema_version", json.dumps(INDEX_SCHEMA_VERSION)),
            )

    def reset(self) -> None:
        """Drop the database file entirely (used before a full rebuild)."""
        self.close()
        for suffix in ("", "-journal", "-wal", "-shm"):
            path = Path(str(self.db_path) + suffix)
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Could not remove %s: %s", path, e)

    @staticmethod
    def _read_metadata(conn: sqlite3.Connection, key: str):
        row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except (TypeError, json.JSONDecodeError):
            return None

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

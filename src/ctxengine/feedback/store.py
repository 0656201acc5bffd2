"""Persistence for usage feedback.

Two independent files:

  usage-log.json   the bounded list of UsageEvents (history; losing it is
                   acceptable)
  usage.db         SQLite tables of derived patterns, rebuildable from the log
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from pathlib import Path

from pydantic import ValidationError

from ctxengine.exceptions import PatternTableCorruptError
from ctxengine.feedback.models import FileUsage, PatternSnapshot, UsageEvent

logger = logging.getLogger("ctxengine.feedback.store")


class UsageStore:
    """Loads and saves the usage event log and the pattern tables."""

    def __init__(self, log_path: str | Path, db_path: str | Path) -> None:
        self.log_path = Path(log_path)
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    # ------------------------------------------------------------------
    # Event log
    # ------------------------------------------------------------------

    def load_events(self) -> list[UsageEvent]:
        """Read the event log. A corrupt log is logged and treated as empty."""
        if not self.log_path.exists():
            return []
        try:
            data = json.loads(self.log_path.read_text())
            if not isinstance(data, list):
                raise ValueError("usage log is not a list")
            return [UsageEvent(**item) for item in data]
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.warning("Discarding unreadable usage log %s: %s", self.log_path, e)
            return []

    def save_events(self, events: list[UsageEvent]) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.log_path.with_name(self.log_path.name + ".tmp")
        tmp.write_text(json.dumps([e.model_dump(mode="json") for e in events], indent=2))
        os.replace(tmp, self.log_path)

    # ------------------------------------------------------------------
    # Pattern tables
    # ------------------------------------------------------------------

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
            CREATE TABLE IF NOT EXISTS cooccurrence (
                a TEXT NOT NULL,
                b TEXT NOT NULL,
                count INTEGER NOT NULL,
                PRIMARY KEY (a, b)
            );

            CREATE TABLE IF NOT EXISTS file_usage (
                path TEXT PRIMARY KEY,
                loaded INTEGER NOT NULL,
                used INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS task_files (
                task TEXT NOT NULL,
                path TEXT NOT NULL,
                count INTEGER NOT NULL,
                PRIMARY KEY (task, path)
            );

            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
        """)
        conn.commit()

    def has_patterns(self) -> bool:
        return self.db_path.exists()

    def load_patterns(self) -> PatternSnapshot:
        """Read the pattern tables.

        Raises PatternTableCorruptError if the database is unreadable or any row
        breaks a count invariant (negative counts, used > loaded, a pair that
        is not ordered).
        """
        snapshot = PatternSnapshot()
        if not self.db_path.exists():
            return snapshot
        try:
            conn = self._get_conn()
            pairs = conn.execute("SELECT a, b, count FROM cooccurrence").fetchall()
            usage = conn.execute("SELECT path, loaded, used FROM file_usage").fetchall()
            tasks = conn.execute("SELECT task, path, count FROM task_files").fetchall()
            meta = conn.execute(
                "SELECT value FROM metadata WHERE key = 'events_since_prune'"
            ).fetchone()
        except sqlite3.DatabaseError as e:
            raise PatternTableCorruptError(f"Unreadable pattern table {self.db_path}: {e}") from e

        for row in pairs:
            if row["count"] is None or row["count"] < 0 or not row["a"] < row["b"]:
                raise PatternTableCorruptError(f"Invalid co-occurrence row {tuple(row)!r}")
            snapshot.cooccurrence[(row["a"], row["b"])] = row["count"]

        for row in usage:
            try:
                snapshot.file_usage[row["path"]] = FileUsage(loaded=row["loaded"], used=row["used"])
            except ValidationError as e:
                raise PatternTableCorruptError(f"Invalid usage row for {row['path']!r}: {e}") from e

        for row in tasks:
            if row["count"] is None or row["count"] < 0:
                raise PatternTableCorruptError(f"Invalid task row {tuple(row)!r}")
            snapshot.task_files.setdefault(row["task"], {})[row["path"]] = row["count"]

        if meta is not None:
            try:
                snapshot.events_since_prune = int(meta["value"])
            except ValueError as e:
                raise PatternTableCorruptError(f"Invalid prune counter {meta['value']!r}") from e
            if snapshot.events_since_prune < 0:
                raise PatternTableCorruptError(f"Negative prune counter {meta['value']!r}")

        return snapshot

    def save_patterns(self, snapshot: PatternSnapshot) -> None:
        """Replace all pattern tables with a complete snapshot."""
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM cooccurrence")
            conn.execute("DELETE FROM file_usage")
            conn.execute("DELETE FROM task_files")
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES ('events_since_prune', ?)",
                (str(snapshot.events_since_prune),),
            )
            conn.executemany(
                "INSERT INTO cooccurrence (a, b, count) VALUES (?, ?, ?)",
                [(a, b, n) for (a, b), n in sorted(snapshot.cooccurrence.items())],
            )
            conn.executemany(
                "INSERT INTO file_usage (path, loaded, used) VALUES (?, ?, ?)",
                [(p, u.loaded, u.used) for p, u in sorted(snapshot.file_usage.items())],
            )
            conn.executemany(
                "INSERT INTO task_files (task, path, count) VALUES (?, ?, ?)",
                [
                    (task, path, n)
                    for task, files in sorted(snapshot.task_files.items())
                    for path, n in sorted(files.items())
                ],
            )

    def reset_patterns(self) -> None:
        """Drop the pattern database so it can be recomputed."""
        self.close()
        for suffix in ("", "-journal", "-wal", "-shm"):
            path = Path(str(self.db_path) + suffix)
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Could not remove %s: %s", path, e)

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

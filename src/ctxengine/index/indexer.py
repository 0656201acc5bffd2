"""Change-aware artifact index.

The index keeps one FileRecord per repository file. A refresh asks git for the
tracked files and their blob ids (the fast path: unchanged files are never
read), falling back to a pruned directory walk that hashes every file when git
is unavailable. Only files whose fingerprint differs from the stored record are
re-read, and stale records are removed.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

from ctxengine.config import IndexerConfig
from ctxengine.exceptions import IndexCorruptError, NoVersionControlError, UnreadableFileError
from ctxengine.index.discovery import discover_git, discover_walk
from ctxengine.index.metadata import build_record
from ctxengine.index.models import Candidate, FileRecord, IndexStats, Provenance, RefreshResult
from ctxengine.index.store import IndexStore
from ctxengine.patterns import Pattern, parse_pattern

if TYPE_CHECKING:
    from ctxengine.context.scoring import RelevanceScorer

logger = logging.getLogger("ctxengine.index")

_OK = "ok"
_UNREADABLE = "unreadable"
_TOO_LARGE = "too_large"
_CANCELLED = "cancelled"


class ArtifactIndex:
    """Persisted table of known files with change-detection fingerprints.

    Usage:
        index = ArtifactIndex(root, IndexerConfig(), IndexStore(db_path))
        result = index.refresh()
        records = index.query("auth")
    """

    def __init__(
        self,
        root: str | Path,
        config: IndexerConfig | None = None,
        store: IndexStore | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.config = config or IndexerConfig()
        self.store = store
        self._records: dict[str, FileRecord] = {}
        self._loaded = False
        self._needs_rebuild = False

    # -------------------------------------------------------------------
    # Snapshot handling
    # -------------------------------------------------------------------

    def load(self) -> None:
        """Read the persisted snapshot. A corrupt table schedules a full rebuild."""
        self._loaded = True
        if self.store is None:
            return
        if not self.store.exists():
            self._needs_rebuild = True
            return
        try:
            self._records = self.store.load()
        except IndexCorruptError as e:
            logger.warning("Index is corrupt, rebuilding from scratch: %s", e)
            self.store.reset()
            self._records = {}
            self._needs_rebuild = True

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    # -------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------

    def refresh(
        self,
        exclusions: list[str] | None = None,
        full: bool = False,
        cancel: threading.Event | None = None,
    ) -> RefreshResult:
        """Bring the index in line with the working tree.

        Args:
            exclusions: Extra exclusion patterns for this refresh only.
            full: Ignore stored fingerprints and re-read every file.
            cancel: When set, remaining file reads are abandoned. Records that
                finished are still committed; nothing is deleted.

        Returns:
            RefreshResult listing updated and deleted paths.
        """
        self._ensure_loaded()
        config = self.config
        if exclusions:
            config = config.model_copy(
                update={"exclude_patterns": config.exclude_patterns + list(exclusions)}
            )

        rebuilt = full or self._needs_rebuild
        previous = {} if full else dict(self._records)

        source, observed = self._discover(config)

        work: list[str] = []
        for path, known in observed.items():
            prev = previous.get(path)
            if known is not None and prev is not None and prev.fingerprint == known:
                continue
            work.append(path)

        outcomes = self._index_files(sorted(work), config, cancel)

        records = dict(previous)
        updated: list[str] = []
        skipped: list[str] = []
        gone: set[str] = set()
        cancelled = False

        for path, (status, record) in outcomes.items():
            if status == _OK:
                prev = records.get(path)
                if prev is None or prev.fingerprint != record.fingerprint:
                    records[path] = record
                    updated.append(path)
            elif status == _UNREADABLE:
                skipped.append(path)
            elif status == _TOO_LARGE:
                gone.add(path)
            elif status == _CANCELLED:
                cancelled = True

        deleted: list[str] = []
        if not cancelled:
            for path in sorted(records):
                if path not in observed or path in gone:
                    deleted.append(path)
            for path in deleted:
                del records[path]

        self._records = records
        self._needs_rebuild = False
        if self.store is not None:
            self.store.save(records)

        if updated or deleted:
            logger.info(
                "Index updated: %d files updated, %d deleted (%s)",
                len(updated), len(deleted), source,
            )
        if cancelled:
            logger.warning("Refresh cancelled; %d files committed before stop", len(updated))

        return RefreshResult(
            updated=sorted(updated),
            deleted=deleted,
            skipped=sorted(skipped),
            source=source,
            rebuilt=rebuilt,
            cancelled=cancelled,
        )

    def _discover(self, config: IndexerConfig) -> tuple[str, dict[str, str | None]]:
        source, observed = "walk", None
        if config.use_git:
            try:
                source, observed = "git", discover_git(self.root, config)
            except NoVersionControlError as e:
                logger.debug("Falling back to directory walk: %s", e)
        if observed is None:
            observed = {path: None for path in discover_walk(self.root, config)}
        for path in self._own_files():
            observed.pop(path, None)
        return source, observed

    def _own_files(self) -> list[str]:
        """The store's database files, as paths relative to root."""
        if self.store is None:
            return []
        try:
            rel = self.store.db_path.resolve().relative_to(self.root).as_posix()
        except ValueError:
            return []
        return [rel + suffix for suffix in ("", "-journal", "-wal", "-shm")]

    def _index_files(
        self,
        paths: list[str],
        config: IndexerConfig,
        cancel: threading.Event | None,
    ) -> dict[str, tuple[str, FileRecord | None]]:
        max_size = config.max_file_size_kb * 1024

        def index_one(rel_path: str) -> tuple[str, FileRecord | None]:
            if cancel is not None and cancel.is_set():
                return _CANCELLED, None
            try:
                if (self.root / rel_path).stat().st_size > max_size:
                    return _TOO_LARGE, None
                return _OK, build_record(self.root, rel_path)
            except UnreadableFileError as e:
                logger.warning("Skipping unreadable file: %s", e)
                return _UNREADABLE, None
            except OSError as e:
                logger.warning("Skipping unreadable file %s: %s", rel_path, e)
                return _UNREADABLE, None

        if not paths:
            return {}
        workers = max(1, config.workers)
        if workers == 1 or len(paths) == 1:
            return {p: index_one(p) for p in paths}
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return dict(zip(paths, executor.map(index_one, paths)))

    # -------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------

    def query(
        self,
        pattern: str | list | dict | Pattern,
        scorer: RelevanceScorer | None = None,
        task_label: str | None = None,
    ) -> list[Candidate]:
        """Direct-match candidates for a pattern.

        Binary files never match. With a scorer, candidates are ordered by
        descending score; ties (and the unscored case) are ordered by path.
        """
        self._ensure_loaded()
        compiled = parse_pattern(pattern)
        matches = [
            r for path, r in sorted(self._records.items())
            if not r.is_binary and compiled.matches(path)
        ]
        candidates = [
            Candidate(
                record=r,
                score=scorer.score(r, compiled, task_label) if scorer else 0.0,
                provenance=Provenance.DIRECT,
            )
            for r in matches
        ]
        candidates.sort(key=lambda c: (-c.score, c.path))
        return candidates

    def get(self, path: str) -> FileRecord | None:
        self._ensure_loaded()
        return self._records.get(path)

    def records(self) -> list[FileRecord]:
        self._ensure_loaded()
        return [self._records[p] for p in sorted(self._records)]

    def newest_modified(self) -> float:
        """Latest mtime in the table (0.0 when empty); a stable clock for recency."""
        self._ensure_loaded()
        return max((r.modified for r in self._records.values()), default=0.0)

    def __contains__(self, path: object) -> bool:
        self._ensure_loaded()
        return path in self._records

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._records)

    def stats(self) -> IndexStats:
        """Aggregate statistics over the current table."""
        self._ensure_loaded()
        stats = IndexStats(total_files=len(self._records))
        for record in self._records.values():
            stats.total_units += record.units
            stats.total_size += record.size
            lang = record.language.value
            stats.by_language[lang] = stats.by_language.get(lang, 0) + 1
            ext = record.extension or "none"
            stats.by_extension[ext] = stats.by_extension.get(ext, 0) + 1
        return stats

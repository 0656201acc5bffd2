"""Usage feedback: learn from which offered files actually got changed.

After a work session the caller reports the offered and changed paths. From
each event we derive:

  - co-occurrence: every pair of changed files, kept as a weighted undirected
    graph (edge weight = number of events in which both changed)
  - per-file usage: loaded (offered) and used (offered and changed) counts,
    giving a usefulness ratio in [0, 1]
  - task patterns: for a normalized task label, how often each file was useful

These feed the scorer (usefulness bonus) and suggest(), which proposes extra
candidates for the next query.
"""

from __future__ import annotations

import logging
import re
import time
from itertools import combinations
from pathlib import PurePosixPath
from typing import Any

import networkx as nx

from ctxengine.config import FeedbackConfig
from ctxengine.exceptions import PatternTableCorruptError
from ctxengine.feedback.models import (
    FileUsage,
    FileUsefulness,
    PatternSnapshot,
    UsageEvent,
    UsageReport,
)
from ctxengine.feedback.store import UsageStore
from ctxengine.index.metadata import is_test_file

logger = logging.getLogger("ctxengine.feedback")

# suggest() ranking
TASK_MATCH_WEIGHT = 10.0  # per past event in which the file was useful for the task
STRENGTH_WEIGHT = 0.6
USEFULNESS_WEIGHT = 0.4
NEUTRAL_USEFULNESS = 0.5

# credit for an offered file that was not changed but relates to one that was
RELATED_CREDIT = 0.5

_STYLE_SUFFIXES = (".css", ".scss", ".sass", ".less")
_TEST_AFFIX_RE = re.compile(r"^test_|_test$")

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_task(label: str | None) -> str:
    """Lowercase a task label and collapse non-alphanumerics to single dashes."""
    if not label:
        return ""
    return _NON_ALNUM_RE.sub("-", label.lower()).strip("-")


def _bare_stem(path: PurePosixPath) -> str:
    return _TEST_AFFIX_RE.sub("", path.name.split(".", 1)[0])


def are_related(a: str, b: str) -> bool:
    """Same directory, or a test or stylesheet paired by name with the other file."""
    pa, pb = PurePosixPath(a), PurePosixPath(b)
    if pa.parent == pb.parent:
        return True
    if _bare_stem(pa) != _bare_stem(pb):
        return False
    return any(is_test_file(str(p), "") or p.suffix in _STYLE_SUFFIXES for p in (pa, pb))


def score_offered(offered: list[str], changed: list[str]) -> dict[str, float]:
    """Per-file usefulness of one session: 1.0 if changed, RELATED_CREDIT if related."""
    changed_set = set(changed)
    scores = {}
    for path in offered:
        if path in changed_set:
            scores[path] = 1.0
        elif any(are_related(path, other) for other in changed):
            scores[path] = RELATED_CREDIT
        else:
            scores[path] = 0.0
    return scores


class UsageFeedback:
    """Owns the usage event log and every pattern derived from it."""

    def __init__(self, store: UsageStore | None = None, config: FeedbackConfig | None = None) -> None:
        self.store = store
        self.config = config or FeedbackConfig()
        self.events: list[UsageEvent] = []
        self.graph = nx.Graph()
        self.file_usage: dict[str, FileUsage] = {}
        self.task_files: dict[str, dict[str, int]] = {}
        self.events_since_prune = 0
        self._loaded = False

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------

    def load(self) -> None:
        """Read the log and the pattern tables, recomputing tables if needed."""
        self._loaded = True
        if self.store is None:
            return
        self.events = self.store.load_events()

        if not self.store.has_patterns():
            if self.events:
                logger.info("Pattern table missing; recomputing from %d events", len(self.events))
                self._recompute()
                self._save_patterns()
            return

        try:
            self._apply_snapshot(self.store.load_patterns())
        except PatternTableCorruptError as e:
            logger.warning("Pattern table is corrupt, recomputing from event log: %s", e)
            self.store.reset_patterns()
            self._recompute()
            self._save_patterns()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _apply_snapshot(self, snapshot: PatternSnapshot) -> None:
        self.graph = nx.Graph()
        for (a, b), count in snapshot.cooccurrence.items():
            self.graph.add_edge(a, b, weight=count)
        self.file_usage = dict(snapshot.file_usage)
        self.task_files = {t: dict(files) for t, files in snapshot.task_files.items()}
        self.events_since_prune = snapshot.events_since_prune

    def _snapshot(self) -> PatternSnapshot:
        cooccurrence = {}
        for a, b, data in self.graph.edges(data=True):
            key = (a, b) if a < b else (b, a)
            cooccurrence[key] = data["weight"]
        return PatternSnapshot(
            cooccurrence=cooccurrence,
            file_usage=dict(self.file_usage),
            task_files={t: dict(files) for t, files in self.task_files.items()},
            events_since_prune=self.events_since_prune,
        )

    def _recompute(self) -> None:
        self.graph = nx.Graph()
        self.file_usage = {}
        self.task_files = {}
        self.events_since_prune = 0
        for event in self.events:
            self._apply_event(event)

    def _save_patterns(self) -> None:
        if self.store is not None:
            self.store.save_patterns(self._snapshot())

    # -------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------

    def record_event(
        self,
        offered: list[str],
        changed: list[str],
        task_label: str | None = None,
        meta: dict[str, Any] | None = None,
        timestamp: float | None = None,
    ) -> UsageReport:
        """Append a usage event and update the derived patterns.

        Args:
            offered: Paths that were handed to the model.
            changed: Paths that were actually modified afterwards.
            task_label: Free-text task description.
            meta: Optional extras. ``duration`` (seconds) and ``bytes`` (size
                of the offered set) are stored as first-class fields.
        """
        self._ensure_loaded()
        meta = dict(meta or {})
        offered = sorted(set(offered))
        changed = sorted(set(changed))
        event = UsageEvent(
            timestamp=time.time() if timestamp is None else timestamp,
            task_label=task_label or "",
            offered=offered,
            changed=changed,
            scores=score_offered(offered, changed),
            duration_seconds=meta.pop("duration", None),
            offered_bytes=meta.pop("bytes", None),
            meta=meta,
        )

        self.events.append(event)
        if len(self.events) > self.config.max_events:
            self.events = self.events[-self.config.max_events:]
        self._apply_event(event)

        # counted separately from the log, which stops growing at max_events
        self.events_since_prune += 1
        interval = self.config.auto_prune_interval
        if interval and self.events_since_prune >= interval:
            self.prune()

        if self.store is not None:
            self.store.save_events(self.events)
            self._save_patterns()

        logger.info(
            "Recorded usage: %d useful, %d wasted", len(event.useful), len(event.wasted)
        )
        return UsageReport(
            useful_count=len(event.useful),
            wasted_count=len(event.wasted),
            useful_files=event.useful,
            wasted_files=event.wasted,
            related_files=event.related,
        )

    def _apply_event(self, event: UsageEvent) -> None:
        for a, b in combinations(event.changed, 2):
            if self.graph.has_edge(a, b):
                self.graph[a][b]["weight"] += 1
            else:
                self.graph.add_edge(a, b, weight=1)

        changed = set(event.changed)
        for path in event.offered:
            usage = self.file_usage.get(path) or FileUsage()
            used = usage.used + (1 if path in changed else 0)
            self.file_usage[path] = FileUsage(loaded=usage.loaded + 1, used=used)

        task = normalize_task(event.task_label)
        if task:
            files = self.task_files.setdefault(task, {})
            for path in event.useful:
                files[path] = files.get(path, 0) + 1

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    def usefulness(self, path: str) -> float | None:
        """Usefulness ratio of a file, or None if it was never offered."""
        self._ensure_loaded()
        usage = self.file_usage.get(path)
        return usage.ratio if usage else None

    def suggest(
        self,
        current_files: list[str],
        task_label: str | None = None,
        limit: int | None = None,
    ) -> list[tuple[str, float]]:
        """Files that tend to change together with the current ones or the task.

        Strength is the summed co-occurrence count with the current files plus
        TASK_MATCH_WEIGHT per time the file was useful for the same normalized
        task. The final score blends normalized strength with the file's own
        usefulness ratio (neutral when unknown).
        """
        self._ensure_loaded()
        limit = self.config.suggest_limit if limit is None else limit
        current = set(current_files)
        strength: dict[str, float] = {}

        for path in sorted(current):
            if path not in self.graph:
                continue
            for neighbor, data in self.graph[path].items():
                if neighbor not in current:
                    strength[neighbor] = strength.get(neighbor, 0.0) + data["weight"]

        task = normalize_task(task_label)
        for path, count in self.task_files.get(task, {}).items():
            if path not in current:
                strength[path] = strength.get(path, 0.0) + TASK_MATCH_WEIGHT * count

        if not strength:
            return []
        top = max(strength.values())
        scored = []
        for path, value in strength.items():
            ratio = self.usefulness(path)
            useful = NEUTRAL_USEFULNESS if ratio is None else ratio
            score = STRENGTH_WEIGHT * (value / top) + USEFULNESS_WEIGHT * useful
            scored.append((path, round(score, 4)))
        scored.sort(key=lambda x: (-x[1], x[0]))
        return scored[:limit]

    def prune(self, min_occurrences: int | None = None) -> int:
        """Drop co-occurrence and task patterns seen fewer than min_occurrences times.

        Per-file usage counts are kept; they are what the usefulness ratio is
        built from. Returns the number of patterns removed.
        """
        self._ensure_loaded()
        threshold = self.config.min_occurrences if min_occurrences is None else min_occurrences
        weak = [(a, b) for a, b, w in self.graph.edges(data="weight") if w < threshold]
        self.graph.remove_edges_from(weak)
        self.graph.remove_nodes_from([n for n in list(self.graph.nodes) if self.graph.degree(n) == 0])

        removed = len(weak)
        for task in list(self.task_files):
            files = self.task_files[task]
            for path in [p for p, n in files.items() if n < threshold]:
                del files[path]
                removed += 1
            if not files:
                del self.task_files[task]

        self.events_since_prune = 0
        if removed:
            logger.info("Pruned %d weak usage patterns", removed)
        return removed

    def save(self) -> None:
        """Persist the pattern tables (after an explicit prune)."""
        self._save_patterns()

    @property
    def pattern_count(self) -> int:
        return self.graph.number_of_edges() + sum(len(f) for f in self.task_files.values())

    def stats(self, limit: int | None = None) -> dict:
        """Most useful and most wasted files, and aggregate counts."""
        self._ensure_loaded()
        limit = self.config.stats_limit if limit is None else limit
        rows = [
            FileUsefulness(path=p, loaded=u.loaded, used=u.used, ratio=round(u.ratio, 4))
            for p, u in self.file_usage.items()
            if u.loaded > 0
        ]
        top_useful = sorted(
            (r for r in rows if r.used > 0), key=lambda r: (-r.ratio, -r.used, r.path)
        )[:limit]
        top_wasted = sorted(
            (r for r in rows if r.loaded > r.used),
            key=lambda r: (r.ratio, -(r.loaded - r.used), r.path),
        )[:limit]
        avg = round(sum(r.ratio for r in rows) / len(rows), 4) if rows else None
        return {
            "total_events": len(self.events),
            "total_patterns": self.pattern_count,
            "avg_usefulness": avg,
            "top_useful": top_useful,
            "top_wasted": top_wasted,
        }

"""Context assembly engine.

Pipeline for one query:
  1. Refresh the artifact index (incremental) and collect direct matches
  2. Score direct matches; expand the top ones with related files
  3. Merge usage-feedback suggestions
  4. Select within the budget (70% reserved for direct matches)
  5. If candidates were left out, re-plan with estimated compressed sizes,
     then compress reference files until the measured total fits
  6. Drop the lowest-scored files if measured sizes still exceed the budget

Every failure that escapes is an AssemblyError naming the stage (index,
score, select, compress). Degradations that still yield a result are reported
as warnings on the ContextResult.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

from ctxengine.config import (
    INDEX_DB_FILE,
    LAST_CONTEXT_FILE,
    USAGE_DB_FILE,
    USAGE_LOG_FILE,
    CompressionMode,
    EngineConfig,
    get_engine_dir,
    load_config,
)
from ctxengine.context.compressor import COMPRESSION_RATIOS, AdaptiveCompressor
from ctxengine.context.expander import DependencyExpander
from ctxengine.context.models import (
    AssemblyWarning,
    Candidate,
    ContextFile,
    ContextResult,
    EngineStats,
    Provenance,
    UsageReport,
    WarningKind,
)
from ctxengine.context.scoring import RelevanceScorer
from ctxengine.context.selector import BudgetSelector, Selection, dedupe
from ctxengine.exceptions import AssemblyError, EngineError
from ctxengine.feedback.store import UsageStore
from ctxengine.feedback.tracker import UsageFeedback
from ctxengine.index.indexer import ArtifactIndex
from ctxengine.index.models import RefreshResult, UnitEstimator
from ctxengine.index.store import IndexStore
from ctxengine.patterns import Pattern, parse_pattern, pattern_terms

logger = logging.getLogger("ctxengine.engine")

# Added to the relevance score of usage-suggested files, scaled by the
# suggestion strength in [0, 1]
SUGGESTION_BONUS = 10.0


class ContextEngine:
    """Facade over the index, scorer, expander, selector, compressor and feedback.

    Usage:
        engine = ContextEngine(root)
        engine.refresh_index()
        result = engine.assemble_context("auth", task_label="fix login", budget_units=4000)
        print(result.render())
        engine.record_usage(None, changed=["src/auth.ts"])
    """

    def __init__(
        self,
        root: str | Path,
        config: EngineConfig | None = None,
        persist: bool = True,
    ) -> None:
        self.root = Path(root).resolve()
        self.config = config or load_config(self.root)
        self.persist = persist

        engine_dir = get_engine_dir(self.root)
        self._last_context_path = engine_dir / LAST_CONTEXT_FILE
        index_store = IndexStore(engine_dir / INDEX_DB_FILE) if persist else None
        usage_store = (
            UsageStore(engine_dir / USAGE_LOG_FILE, engine_dir / USAGE_DB_FILE) if persist else None
        )

        self.index = ArtifactIndex(self.root, self.config.indexer, index_store)
        self.feedback = UsageFeedback(usage_store, self.config.feedback)
        self.expander = DependencyExpander(self.root, self.index)
        self.selector = BudgetSelector(self.config.selection.direct_share)
        self.compressor = AdaptiveCompressor()
        self._last_context: dict[str, Any] | None = None

    # -------------------------------------------------------------------
    # Index
    # -------------------------------------------------------------------

    def refresh_index(
        self,
        exclusions: list[str] | None = None,
        full: bool = False,
        cancel: threading.Event | None = None,
    ) -> RefreshResult:
        """Incrementally bring the index up to date with the working tree."""
        return self.index.refresh(exclusions=exclusions, full=full, cancel=cancel)

    # -------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------

    def assemble_context(
        self,
        pattern: str | list | dict | Pattern,
        task_label: str | None = None,
        budget_units: int | None = None,
        compress: CompressionMode | str | None = None,
        now: float | None = None,
        refresh: bool = True,
    ) -> ContextResult:
        """Assemble the best set of files for a query within a unit budget.

        Args:
            pattern: Path pattern (substring, glob, list, or include/exclude dict).
            task_label: Optional task description, used for scoring and
                usage suggestions.
            budget_units: Maximum total length units. Defaults to the
                configured default budget.
            compress: Compression mode override (never, references, all).
            now: Reference time for recency scoring. Defaults to the newest
                mtime in the index, so scores depend only on the index state.
            refresh: Refresh the index before querying.

        Raises:
            AssemblyError: naming the stage that failed.
        """
        start = time.time()
        budget = self.config.selection.default_budget if budget_units is None else budget_units
        if budget <= 0:
            raise AssemblyError("select", f"Budget must be positive, got {budget}")
        try:
            mode = self.config.compression.mode if compress is None else CompressionMode(compress)
        except ValueError as e:
            raise AssemblyError("compress", f"Unknown compression mode: {compress!r}") from e

        # Phase 1: index
        try:
            compiled = parse_pattern(pattern)
        except (TypeError, ValueError) as e:
            raise AssemblyError("index", f"Invalid pattern: {e}") from e
        try:
            if refresh:
                self.index.refresh()
            direct = self.index.query(compiled)
        except (EngineError, OSError, sqlite3.Error) as e:
            raise AssemblyError("index", str(e)) from e

        # Phase 2: score, expand, suggest
        try:
            if now is None:
                now = self.index.newest_modified()
            scorer = RelevanceScorer(self.config.scoring, self.feedback.usefulness, now=now)
            candidates = self._score_direct(direct, scorer, compiled, task_label)
            candidates += self._expand(candidates, scorer, compiled, task_label)
            candidates += self._suggest(candidates, scorer, compiled, task_label)
        except (EngineError, OSError, sqlite3.Error) as e:
            raise AssemblyError("score", str(e)) from e

        # Phase 3: select
        try:
            selection = self.selector.select(candidates, budget)
            compressing = mode != CompressionMode.NEVER
            if compressing and (selection.excluded or selection.forced):
                selection = self.selector.select(
                    candidates,
                    budget,
                    cost=lambda c: (
                        self.compressor.estimate_units(c.record)
                        if _eligible(c, mode) else c.units
                    ),
                )
        except ValueError as e:
            raise AssemblyError("select", str(e)) from e

        # Phase 4: load, compress, measure
        warnings: list[AssemblyWarning] = []
        try:
            files = self._load(selection, warnings)
            if compressing:
                self._compress_to_fit(files, budget, mode)
        except (ValueError, RecursionError) as e:
            raise AssemblyError("compress", str(e)) from e

        total = sum(f.units for f in files)
        while total > budget and len(files) > 1:
            victim = sorted(
                files, key=lambda f: (f.provenance == Provenance.DIRECT, f.score, f.path)
            )[0]
            files.remove(victim)
            total -= victim.units
            warnings.append(AssemblyWarning(
                kind=WarningKind.DROPPED,
                path=victim.path,
                message=f"Dropped {victim.path}: measured size exceeded the budget",
            ))
        # only a lone file still over budget after compression is forced
        forced = bool(files) and total > budget
        if forced:
            f = files[0]
            logger.warning("Budget of %d units too small; force-included %s", budget, f.path)
            warnings.append(AssemblyWarning(
                kind=WarningKind.BUDGET_TOO_SMALL,
                path=f.path,
                message=f"Budget too small: included {f.path} ({f.units} units) over budget",
            ))

        result = ContextResult(
            pattern=pattern if isinstance(pattern, str) else " ".join(pattern_terms(compiled)),
            task_label=task_label,
            budget_units=budget,
            files=files,
            total_units=total,
            warnings=warnings,
            forced_oversized=forced,
            candidates_considered=len(dedupe(candidates)),
            assembly_time_ms=(time.time() - start) * 1000,
        )
        self._save_last_context(result)
        return result

    def _score_direct(
        self,
        direct: list[Candidate],
        scorer: RelevanceScorer,
        pattern: Pattern,
        task_label: str | None,
    ) -> list[Candidate]:
        scored = [
            c.model_copy(update={"score": scorer.score(c.record, pattern, task_label)})
            for c in direct
        ]
        scored.sort(key=lambda c: (-c.score, c.path))
        return scored

    def _expand(
        self,
        ranked: list[Candidate],
        scorer: RelevanceScorer,
        pattern: Pattern,
        task_label: str | None,
    ) -> list[Candidate]:
        found: list[Candidate] = []
        for seed in ranked[: self.config.selection.expand_top]:
            for path in self.expander.expand(seed.path):
                record = self.index.get(path)
                if record is None or record.is_binary:
                    continue
                found.append(Candidate(
                    record=record,
                    score=scorer.score(record, pattern, task_label),
                    provenance=Provenance.DEPENDENCY,
                    via=seed.path,
                ))
        return found

    def _suggest(
        self,
        ranked: list[Candidate],
        scorer: RelevanceScorer,
        pattern: Pattern,
        task_label: str | None,
    ) -> list[Candidate]:
        current = [c.path for c in ranked if c.provenance == Provenance.DIRECT]
        found: list[Candidate] = []
        for path, strength in self.feedback.suggest(current, task_label):
            record = self.index.get(path)
            if record is None or record.is_binary:
                continue
            score = scorer.score(record, pattern, task_label) + SUGGESTION_BONUS * strength
            found.append(Candidate(
                record=record,
                score=round(score, 4),
                provenance=Provenance.USAGE,
            ))
        return found

    def _load(self, selection: Selection, warnings: list[AssemblyWarning]) -> list[ContextFile]:
        files: list[ContextFile] = []
        for c in selection.chosen:
            try:
                text = (self.root / c.path).read_bytes().decode("utf-8", errors="replace")
            except OSError as e:
                logger.warning("Skipping unreadable file %s: %s", c.path, e)
                warnings.append(AssemblyWarning(
                    kind=WarningKind.UNREADABLE_FILE,
                    path=c.path,
                    message=f"Could not read {c.path}: {e.strerror or e}",
                ))
                continue
            files.append(ContextFile(
                path=c.path,
                content=text,
                score=c.score,
                provenance=c.provenance,
                units=UnitEstimator.estimate(text),
                via=c.via,
            ))
        return files

    def _compress_to_fit(self, files: list[ContextFile], budget: int, mode: CompressionMode) -> None:
        """Compress eligible files, lowest score first, until the total fits."""
        total = sum(f.units for f in files)
        eligible = [
            f for f in files
            if (mode == CompressionMode.ALL or f.provenance != Provenance.DIRECT)
            and self.compressor.estimate_ratio(f.path) < 1.0
        ]
        for f in sorted(eligible, key=lambda f: (f.score, f.path)):
            if total <= budget:
                break
            compressed = self.compressor.compress_file(f.content, f.path)
            units = UnitEstimator.estimate(compressed)
            if units < f.units:
                total -= f.units - units
                f.content = compressed
                f.units = units
                f.compressed = True

    # -------------------------------------------------------------------
    # Feedback
    # -------------------------------------------------------------------

    def record_usage(
        self,
        offered: list[str] | None,
        changed: list[str],
        task_label: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> UsageReport:
        """Report which files were changed after a context was offered.

        With ``offered=None`` the files of the last assembled context are used
        (and its task label, unless one is given).
        """
        if offered is None:
            last = self.last_context() or {}
            offered = list(last.get("files", []))
            if task_label is None:
                task_label = last.get("task_label")
        return self.feedback.record_event(offered, changed, task_label, meta)

    def prune_patterns(self, min_occurrences: int | None = None) -> int:
        removed = self.feedback.prune(min_occurrences)
        self.feedback.save()
        return removed

    def get_stats(self) -> EngineStats:
        index_stats = self.index.stats()
        usage = self.feedback.stats()
        return EngineStats(
            index_size=index_stats.total_files,
            total_units=index_stats.total_units,
            total_size=index_stats.total_size,
            by_language=index_stats.by_language,
            by_extension=index_stats.by_extension,
            top_useful=usage["top_useful"],
            top_wasted=usage["top_wasted"],
            total_events=usage["total_events"],
            total_patterns=usage["total_patterns"],
            avg_usefulness=usage["avg_usefulness"],
            compression_estimates=dict(COMPRESSION_RATIOS),
        )

    # -------------------------------------------------------------------
    # Last context
    # -------------------------------------------------------------------

    def last_context(self) -> dict[str, Any] | None:
        """The most recently assembled context (paths only), if any."""
        if self._last_context is not None:
            return self._last_context
        if not self.persist or not self._last_context_path.exists():
            return None
        try:
            data = json.loads(self._last_context_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable %s: %s", self._last_context_path, e)
            return None
        return data if isinstance(data, dict) else None

    def _save_last_context(self, result: ContextResult) -> None:
        self._last_context = {
            "pattern": result.pattern,
            "task_label": result.task_label,
            "files": result.paths,
            "total_units": result.total_units,
            "timestamp": time.time(),
        }
        if not self.persist:
            return
        try:
            self._last_context_path.parent.mkdir(parents=True, exist_ok=True)
            self._last_context_path.write_text(json.dumps(self._last_context, indent=2))
        except OSError as e:
            logger.warning("Could not save last context: %s", e)


def _eligible(candidate: Candidate, mode: CompressionMode) -> bool:
    if mode == CompressionMode.NEVER:
        return False
    return mode == CompressionMode.ALL or candidate.provenance != Provenance.DIRECT

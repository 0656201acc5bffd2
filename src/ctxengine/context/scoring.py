"""Relevance scoring for candidate files.

score(file, pattern, task) is a weighted sum of:

    recency        recency_weight * 0.5 ** (age_days / half_life)
    lexical        path_match_bonus if a pattern term appears in the path,
                   plus a category bonus per matching category keyword
    task terms     task_term_bonus per task-label word found in the path
    type priority  fixed bonus per language
    complexity     -complexity_penalty * complexity
    large file     -large_file_penalty above large_file_units
    usefulness     usefulness_weight * observed usefulness ratio

The usefulness weight is larger than any lexical bonus so that observed
outcomes outrank heuristics. Scores are rounded so that equal inputs always
produce equal, comparable floats.
"""

from __future__ import annotations

import re
import time
from typing import Callable

from ctxengine.config import ScoringConfig
from ctxengine.index.models import FileRecord
from ctxengine.patterns import Pattern, parse_pattern, pattern_terms

SECONDS_PER_DAY = 86400.0

# Query keywords that mark a category of files. "test" is special-cased: it
# matches on the record's test indicator rather than the path.
CATEGORY_KEYWORDS: tuple[str, ...] = (
    "test",
    "api",
    "component",
    "service",
    "model",
    "route",
    "hook",
    "config",
)

_WORD_RE = re.compile(r"[a-z0-9]+")
_MIN_TASK_TERM = 3

UsefulnessLookup = Callable[[str], "float | None"]


class RelevanceScorer:
    """Pure, deterministic file scorer.

    Args:
        config: Weight overrides. Defaults are the named constants of
            ScoringConfig.
        usefulness: Returns the usefulness ratio for a path, or None when the
            file has never been offered.
        now: Reference time in epoch seconds. Fixed at construction so every
            score of one query sees the same clock.
    """

    def __init__(
        self,
        config: ScoringConfig | None = None,
        usefulness: UsefulnessLookup | None = None,
        now: float | None = None,
    ) -> None:
        self.config = config or ScoringConfig()
        self._usefulness = usefulness
        self.now = time.time() if now is None else now

    def score(
        self,
        record: FileRecord,
        pattern: str | Pattern,
        task_label: str | None = None,
    ) -> float:
        return round(sum(self.components(record, pattern, task_label).values()), 4)

    def components(
        self,
        record: FileRecord,
        pattern: str | Pattern,
        task_label: str | None = None,
    ) -> dict[str, float]:
        """Per-signal breakdown of a score."""
        cfg = self.config
        compiled = parse_pattern(pattern)
        terms = pattern_terms(compiled)
        path = record.path.lower()

        parts: dict[str, float] = {}
        parts["recency"] = self._recency(record.modified)

        lexical = 0.0
        if any(t in path for t in terms):
            lexical += cfg.path_match_bonus
        query_text = " ".join(terms)
        for keyword in CATEGORY_KEYWORDS:
            if keyword not in query_text:
                continue
            if keyword == "test":
                if record.is_test:
                    lexical += cfg.test_category_bonus
            elif keyword in path:
                lexical += cfg.category_bonus
        parts["lexical"] = lexical

        task = 0.0
        if task_label:
            for word in set(_WORD_RE.findall(task_label.lower())):
                if len(word) >= _MIN_TASK_TERM and word in path:
                    task += cfg.task_term_bonus
        parts["task"] = task

        parts["type"] = cfg.type_priority.get(record.language.value, 0.0)
        parts["complexity"] = -cfg.complexity_penalty * record.complexity
        parts["size"] = -cfg.large_file_penalty if record.units > cfg.large_file_units else 0.0

        ratio = self._usefulness(record.path) if self._usefulness else None
        parts["usefulness"] = cfg.usefulness_weight * ratio if ratio is not None else 0.0
        return parts

    def _recency(self, modified: float) -> float:
        age_days = max(0.0, (self.now - modified) / SECONDS_PER_DAY)
        half_life = self.config.recency_half_life_days
        if half_life <= 0:
            return 0.0
        return self.config.recency_weight * 0.5 ** (age_days / half_life)

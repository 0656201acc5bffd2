"""Budget-constrained candidate selection.

Candidates are split into direct matches and everything else (dependencies and
usage suggestions). Direct matches are offered a reserved share of the budget
first and the other group then fills its own share. Room still free goes back
to direct matches that did not fit their share, and only after that to the
remaining others. Speculative files therefore never grow past their own
share while a direct match could still use the room. Within a group the order
is score descending, path ascending, and acceptance is first-fit: a candidate
is taken if it fits the remaining room, otherwise skipped.

If nothing at all fits, the best candidate is force-included so that one
oversized file never produces an empty result.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable

from ctxengine.index.models import Candidate, Provenance

logger = logging.getLogger("ctxengine.selector")

DEFAULT_DIRECT_SHARE = 0.7

# Preferred provenance when the same path is proposed twice with equal scores
_PROVENANCE_RANK = {
    Provenance.DIRECT: 0,
    Provenance.DEPENDENCY: 1,
    Provenance.USAGE: 2,
}

CostFn = Callable[[Candidate], int]


@dataclass
class Selection:
    """Result of one selection pass."""

    chosen: list[Candidate] = field(default_factory=list)
    excluded: list[Candidate] = field(default_factory=list)
    used_units: int = 0
    budget: int = 0
    forced: bool = False

    @property
    def paths(self) -> list[str]:
        return [c.path for c in self.chosen]


def dedupe(candidates: list[Candidate]) -> list[Candidate]:
    """Keep the highest-scoring occurrence of each path."""
    best: dict[str, Candidate] = {}
    for c in candidates:
        current = best.get(c.path)
        if current is None or _rank(c) < _rank(current):
            best[c.path] = c
    return list(best.values())


def _rank(c: Candidate) -> tuple:
    return (-c.score, _PROVENANCE_RANK[c.provenance])


def _order(c: Candidate) -> tuple:
    return (-c.score, c.path)


class BudgetSelector:
    """Greedy first-fit selection with a reserved direct-match share."""

    def __init__(self, direct_share: float = DEFAULT_DIRECT_SHARE) -> None:
        if not 0.0 <= direct_share <= 1.0:
            raise ValueError(f"direct_share must be within [0, 1], got {direct_share}")
        self.direct_share = direct_share

    def select(
        self,
        candidates: list[Candidate],
        budget: int,
        cost: CostFn | None = None,
    ) -> Selection:
        """Choose candidates whose combined cost fits the budget.

        Args:
            candidates: Scored candidates, possibly with repeated paths.
            budget: Maximum total units.
            cost: Units charged for a candidate. Defaults to the indexed
                estimate; the compressor supplies a ratio-based estimate when
                planning compression.
        """
        cost = cost or (lambda c: c.units)
        pool = dedupe(candidates)
        direct = sorted((c for c in pool if c.provenance == Provenance.DIRECT), key=_order)
        other = sorted((c for c in pool if c.provenance != Provenance.DIRECT), key=_order)

        selection = Selection(budget=budget)
        taken: set[str] = set()

        def fill(group: list[Candidate], limit: int) -> None:
            for c in group:
                if c.path in taken:
                    continue
                units = cost(c)
                if selection.used_units + units <= limit:
                    selection.chosen.append(c)
                    selection.used_units += units
                    taken.add(c.path)

        direct_limit = math.floor(budget * self.direct_share)
        fill(direct, direct_limit)
        # others get their own share first; room direct matches left unused
        # goes back to them before any other candidate can claim it
        fill(other, selection.used_units + budget - direct_limit)
        fill(direct, budget)
        fill(other, budget)

        if not selection.chosen and pool:
            best = (direct or other)[0]
            selection.chosen.append(best)
            selection.used_units = cost(best)
            selection.forced = True
            taken.add(best.path)
            logger.warning(
                "No candidate fits the budget of %d units; including %s (%d units) anyway",
                budget, best.path, selection.used_units,
            )

        # Direct matches first, each group in score order
        selection.chosen.sort(key=lambda c: (c.provenance != Provenance.DIRECT, *_order(c)))
        selection.excluded = [c for c in direct + other if c.path not in taken]
        return selection

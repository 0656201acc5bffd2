"""Tests for budget-constrained selection."""

import pytest

from ctxengine.context.selector import BudgetSelector, dedupe
from ctxengine.index.models import Candidate, FileRecord, Provenance


def _cand(path, units, score=1.0, provenance=Provenance.DIRECT):
    record = FileRecord(path=path, fingerprint="0" * 40, size=units * 4, units=units, modified=0.0)
    return Candidate(record=record, score=score, provenance=provenance)


DEP = Provenance.DEPENDENCY
USAGE = Provenance.USAGE


class TestBudgetSelector:
    def test_oversized_candidate_is_skipped(self):
        # a.ts is 200 bytes, b.ts is 50,000 bytes
        selection = BudgetSelector().select(
            [_cand("a.ts", 50, score=5.0), _cand("b.ts", 12_500, score=9.0)], 1000
        )
        assert selection.paths == ["a.ts"]
        assert [c.path for c in selection.excluded] == ["b.ts"]
        assert not selection.forced

    def test_total_within_budget(self):
        candidates = [_cand(f"f{i}.ts", 90 + i * 7, score=float(i)) for i in range(20)]
        selection = BudgetSelector().select(candidates, 1000)
        assert selection.used_units <= 1000
        assert selection.used_units == sum(c.units for c in selection.chosen)

    def test_direct_share_leaves_room_for_others(self):
        candidates = [
            _cand("d1.ts", 300, score=9.0),
            _cand("d2.ts", 300, score=8.0),
            _cand("d3.ts", 300, score=7.0),
            _cand("o1.ts", 300, score=6.0, provenance=DEP),
            _cand("o2.ts", 300, score=5.0, provenance=USAGE),
        ]
        selection = BudgetSelector().select(candidates, 1000)
        assert selection.paths == ["d1.ts", "d2.ts", "o1.ts"]

    def test_unused_room_returns_to_direct(self):
        candidates = [
            _cand("d1.ts", 400, score=9.0),
            _cand("d2.ts", 400, score=8.0),
            _cand("o1.ts", 100, score=6.0, provenance=DEP),
        ]
        selection = BudgetSelector().select(candidates, 1000)
        assert selection.paths == ["d1.ts", "d2.ts", "o1.ts"]

    def test_others_cannot_crowd_out_a_fitting_direct_match(self):
        candidates = [
            _cand("a.ts", 50, score=10.0),
            _cand("b.ts", 40, score=9.0),
            _cand("c.ts", 50, score=1.0, provenance=DEP),
        ]
        selection = BudgetSelector().select(candidates, 100)
        assert selection.paths == ["a.ts", "b.ts"]
        assert [c.path for c in selection.excluded] == ["c.ts"]

    def test_others_use_full_budget_without_direct(self):
        candidates = [_cand(f"o{i}.ts", 300, score=float(i), provenance=DEP) for i in range(4)]
        selection = BudgetSelector().select(candidates, 1000)
        assert len(selection.chosen) == 3

    def test_first_fit_skips_but_continues(self):
        candidates = [
            _cand("big.ts", 900, score=9.0),
            _cand("small.ts", 100, score=1.0),
        ]
        selection = BudgetSelector(direct_share=1.0).select(candidates, 500)
        assert selection.paths == ["small.ts"]

    def test_forced_when_nothing_fits(self):
        candidates = [_cand("huge.ts", 5000, score=1.0), _cand("bigger.ts", 8000, score=2.0)]
        selection = BudgetSelector().select(candidates, 1000)
        assert selection.forced
        assert selection.paths == ["bigger.ts"]
        assert selection.used_units == 8000

    def test_empty_candidates(self):
        selection = BudgetSelector().select([], 1000)
        assert selection.chosen == []
        assert not selection.forced

    def test_ties_ordered_by_path(self):
        candidates = [_cand("b.ts", 10), _cand("a.ts", 10), _cand("c.ts", 10)]
        selection = BudgetSelector().select(candidates, 1000)
        assert selection.paths == ["a.ts", "b.ts", "c.ts"]

    def test_custom_cost(self):
        candidates = [_cand("a.ts", 50), _cand("b.ts", 2000, provenance=DEP)]
        plain = BudgetSelector().select(candidates, 1000)
        assert plain.paths == ["a.ts"]
        estimated = BudgetSelector().select(
            candidates, 1000, cost=lambda c: c.units // 4 if c.provenance == DEP else c.units
        )
        assert estimated.paths == ["a.ts", "b.ts"]
        assert estimated.used_units == 550

    def test_invalid_share(self):
        with pytest.raises(ValueError):
            BudgetSelector(direct_share=1.5)


class TestDedupe:
    def test_keeps_highest_score(self):
        candidates = [
            _cand("a.ts", 10, score=5.0),
            _cand("a.ts", 10, score=9.0, provenance=DEP),
        ]
        result = dedupe(candidates)
        assert len(result) == 1
        assert result[0].score == 9.0
        assert result[0].provenance == DEP

    def test_tie_prefers_direct(self):
        candidates = [
            _cand("a.ts", 10, score=5.0, provenance=USAGE),
            _cand("a.ts", 10, score=5.0),
        ]
        assert dedupe(candidates)[0].provenance == Provenance.DIRECT

    def test_selection_never_repeats_a_path(self):
        candidates = [
            _cand("a.ts", 10, score=5.0),
            _cand("a.ts", 10, score=4.0, provenance=DEP),
            _cand("b.ts", 10, score=3.0, provenance=DEP),
        ]
        selection = BudgetSelector().select(candidates, 1000)
        assert selection.paths == ["a.ts", "b.ts"]

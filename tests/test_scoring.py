"""Tests for the relevance scorer."""

from ctxengine.config import ScoringConfig
from ctxengine.context.scoring import SECONDS_PER_DAY, RelevanceScorer
from ctxengine.index.models import FileRecord, Language

NOW = 1_700_000_000.0


def _record(path, **kwargs):
    defaults = dict(
        fingerprint="0" * 40,
        size=400,
        units=100,
        modified=NOW,
        language=Language.TYPESCRIPT,
    )
    defaults.update(kwargs)
    return FileRecord(path=path, **defaults)


class TestRecency:
    def test_newer_files_score_higher(self):
        scorer = RelevanceScorer(now=NOW)
        fresh = _record("src/a.ts")
        stale = _record("src/b.ts", modified=NOW - 30 * SECONDS_PER_DAY)
        assert scorer.score(fresh, "zzz") > scorer.score(stale, "zzz")

    def test_half_life(self):
        scorer = RelevanceScorer(now=NOW)
        week_old = _record("src/a.ts", modified=NOW - 7 * SECONDS_PER_DAY)
        assert scorer.components(week_old, "zzz")["recency"] == 5.0

    def test_future_mtime_is_clamped(self):
        scorer = RelevanceScorer(now=NOW)
        future = _record("src/a.ts", modified=NOW + SECONDS_PER_DAY)
        assert scorer.components(future, "zzz")["recency"] == 10.0


class TestLexical:
    def test_path_match_bonus(self):
        scorer = RelevanceScorer(now=NOW)
        parts = scorer.components(_record("src/auth/login.ts"), "auth")
        assert parts["lexical"] == 15.0

    def test_no_match(self):
        scorer = RelevanceScorer(now=NOW)
        assert scorer.components(_record("src/user.ts"), "auth")["lexical"] == 0.0

    def test_test_keyword_uses_test_indicator(self):
        scorer = RelevanceScorer(now=NOW)
        test_file = _record("src/login.spec.ts", is_test=True)
        impl = _record("src/login.ts")
        assert scorer.score(test_file, "login test") > scorer.score(impl, "login test")

    def test_category_keyword(self):
        scorer = RelevanceScorer(now=NOW)
        parts = scorer.components(_record("src/api/users.ts"), "api")
        # path match plus the "api" category bonus
        assert parts["lexical"] == 30.0

    def test_task_terms(self):
        scorer = RelevanceScorer(now=NOW)
        record = _record("src/auth/login.ts")
        parts = scorer.components(record, "zzz", task_label="Fix the LOGIN flow")
        assert parts["task"] == 5.0


class TestPenalties:
    def test_complexity_penalty(self):
        scorer = RelevanceScorer(now=NOW)
        simple = _record("src/a.ts", complexity=0.0)
        branchy = _record("src/b.ts", complexity=0.8)
        assert scorer.score(simple, "zzz") > scorer.score(branchy, "zzz")
        assert scorer.components(branchy, "zzz")["complexity"] == -4.0

    def test_large_file_penalty(self):
        scorer = RelevanceScorer(now=NOW)
        assert scorer.components(_record("a.ts", units=5001), "zzz")["size"] == -5.0
        assert scorer.components(_record("a.ts", units=5000), "zzz")["size"] == 0.0

    def test_type_priority(self):
        scorer = RelevanceScorer(now=NOW)
        code = _record("a.ts")
        docs = _record("a.md", language=Language.MARKDOWN)
        unknown = _record("a.bin", language=Language.UNKNOWN)
        assert scorer.score(code, "zzz") > scorer.score(docs, "zzz") > scorer.score(unknown, "zzz")


class TestUsefulness:
    def test_observed_usefulness_outranks_path_match(self):
        ratios = {"src/useful.ts": 1.0}
        scorer = RelevanceScorer(now=NOW, usefulness=ratios.get)
        useful = _record("src/useful.ts")
        matching = _record("src/auth.ts")
        assert scorer.score(useful, "auth") > scorer.score(matching, "auth")

    def test_unknown_usefulness_is_neutral(self):
        scorer = RelevanceScorer(now=NOW, usefulness=lambda path: None)
        assert scorer.components(_record("src/a.ts"), "zzz")["usefulness"] == 0.0

    def test_zero_usefulness_adds_nothing(self):
        scorer = RelevanceScorer(now=NOW, usefulness=lambda path: 0.0)
        assert scorer.components(_record("src/a.ts"), "zzz")["usefulness"] == 0.0


class TestDeterminism:
    def test_same_inputs_same_score(self):
        record = _record("src/auth/login.ts", complexity=0.123456, modified=NOW - 12345.0)
        a = RelevanceScorer(now=NOW).score(record, "auth", "fix login")
        b = RelevanceScorer(now=NOW).score(record, "auth", "fix login")
        assert a == b

    def test_score_is_rounded_sum(self):
        scorer = RelevanceScorer(now=NOW)
        record = _record("src/auth/login.ts", complexity=0.3333)
        parts = scorer.components(record, "auth")
        assert scorer.score(record, "auth") == round(sum(parts.values()), 4)

    def test_weights_are_configurable(self):
        scorer = RelevanceScorer(ScoringConfig(path_match_bonus=0.0), now=NOW)
        assert scorer.components(_record("src/auth.ts"), "auth")["lexical"] == 0.0

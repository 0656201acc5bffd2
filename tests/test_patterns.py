"""Tests for query pattern parsing and matching."""

import pytest

from ctxengine.patterns import (
    AnyPattern,
    CompositePattern,
    GlobPattern,
    LiteralPattern,
    parse_pattern,
    pattern_terms,
)


class TestLiteralPattern:
    def test_substring_case_insensitive(self):
        p = LiteralPattern("Auth")
        assert p.matches("src/auth/login.ts")
        assert p.matches("lib/OAuthClient.java")
        assert not p.matches("src/user.ts")

    def test_empty_matches_nothing(self):
        assert not LiteralPattern("").matches("anything.py")

    def test_regex_characters_are_literal(self):
        p = LiteralPattern("a.b")
        assert p.matches("dir/a.b.py")
        assert not p.matches("dir/axb.py")


class TestGlobPattern:
    def test_basename_glob(self):
        p = GlobPattern("*.ts")
        assert p.matches("a.ts")
        assert p.matches("src/deep/a.ts")
        assert not p.matches("src/a.tsx")

    def test_path_glob_with_double_star(self):
        p = GlobPattern("src/**/*.ts")
        assert p.matches("src/a.ts")
        assert p.matches("src/x/y/a.ts")
        assert not p.matches("lib/a.ts")

    def test_single_star_stays_in_segment(self):
        p = GlobPattern("src/*.ts")
        assert p.matches("src/a.ts")
        assert not p.matches("src/x/a.ts")

    def test_question_mark(self):
        p = GlobPattern("file?.py")
        assert p.matches("file1.py")
        assert not p.matches("file12.py")

    def test_brackets_cannot_inject_regex(self):
        p = GlobPattern("[ab]*.ts")
        assert p.matches("[ab]x.ts")
        assert not p.matches("a.ts")

    def test_terms(self):
        assert GlobPattern("src/**/auth*.ts").terms() == ["src", "auth", "ts"]


class TestParsePattern:
    def test_plain_string_is_literal(self):
        assert parse_pattern("auth") == LiteralPattern("auth")

    def test_glob_string(self):
        assert parse_pattern("*.py") == GlobPattern("*.py")

    def test_several_words_match_any(self):
        p = parse_pattern("auth session")
        assert isinstance(p, AnyPattern)
        assert p.matches("src/auth.ts")
        assert p.matches("src/session.ts")
        assert not p.matches("src/user.ts")

    def test_list(self):
        p = parse_pattern(["auth", "*.go"])
        assert isinstance(p, AnyPattern)
        assert p.matches("lib/core.go")
        assert p.matches("src/auth.ts")

    def test_include_exclude_dict(self):
        p = parse_pattern({"include": ["src"], "exclude": "*.test.ts"})
        assert isinstance(p, CompositePattern)
        assert p.matches("src/auth/login.ts")
        assert not p.matches("src/auth/login.test.ts")
        assert not p.matches("lib/core.go")

    def test_exclude_only_dict(self):
        p = parse_pattern({"exclude": ["node_modules"]})
        assert p.matches("src/a.ts")
        assert not p.matches("node_modules/a.js")

    def test_pattern_passthrough(self):
        p = GlobPattern("*.rs")
        assert parse_pattern(p) is p

    def test_unknown_dict_key(self):
        with pytest.raises(ValueError):
            parse_pattern({"includes": ["src"]})

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            parse_pattern(42)


class TestPatternTerms:
    def test_lowercased_and_deduplicated(self):
        assert pattern_terms(parse_pattern("Auth auth Login")) == ["auth", "login"]

    def test_exclusions_carry_no_terms(self):
        p = parse_pattern({"include": "api", "exclude": "legacy"})
        assert pattern_terms(p) == ["api"]

"""Query patterns matched against repository-relative paths.

A pattern is one of four variants:

    LiteralPattern("auth")                  case-insensitive substring
    GlobPattern("src/**/*.ts")              path glob (``**``, ``*``, ``?``)
    AnyPattern((p1, p2))                    matches if any member matches
    CompositePattern(include, exclude)      include-any and exclude-none

``parse_pattern`` converts the loose forms callers pass around (a string, a
list of strings, an ``{"include": [...], "exclude": [...]}`` dict) into one of
these. Glob text is translated to a regex with every literal character
escaped, so user input can never inject regex syntax.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Union

_GLOB_CHARS = ("*", "?")


@dataclass(frozen=True)
class LiteralPattern:
    text: str

    def matches(self, path: str) -> bool:
        return bool(self.text) and self.text.lower() in path.lower()

    def terms(self) -> list[str]:
        return [self.text]


@dataclass(frozen=True)
class GlobPattern:
    text: str

    def matches(self, path: str) -> bool:
        regex = _compile_glob(self.text)
        if "/" not in self.text:
            # Slash-free globs match the basename anywhere in the tree
            return bool(regex.fullmatch(path.rsplit("/", 1)[-1]))
        return bool(regex.fullmatch(path))

    def terms(self) -> list[str]:
        return [t for t in re.split(r"[*?/.]+", self.text) if t]


@dataclass(frozen=True)
class AnyPattern:
    patterns: tuple[Pattern, ...] = ()

    def matches(self, path: str) -> bool:
        return any(p.matches(path) for p in self.patterns)

    def terms(self) -> list[str]:
        return [t for p in self.patterns for t in p.terms()]


@dataclass(frozen=True)
class CompositePattern:
    include: tuple[Pattern, ...] = ()
    exclude: tuple[Pattern, ...] = field(default_factory=tuple)

    def matches(self, path: str) -> bool:
        included = not self.include or any(p.matches(path) for p in self.include)
        if not included:
            return False
        return not any(p.matches(path) for p in self.exclude)

    def terms(self) -> list[str]:
        return [t for p in self.include for t in p.terms()]


Pattern = Union[LiteralPattern, GlobPattern, AnyPattern, CompositePattern]


def parse_pattern(spec: str | list | tuple | dict | Pattern) -> Pattern:
    """Build a Pattern from a string, list, include/exclude dict or Pattern."""
    if isinstance(spec, (LiteralPattern, GlobPattern, AnyPattern, CompositePattern)):
        return spec

    if isinstance(spec, str):
        text = spec.strip()
        words = text.split()
        if len(words) > 1:
            return AnyPattern(tuple(_parse_term(w) for w in words))
        return _parse_term(text)

    if isinstance(spec, (list, tuple)):
        return AnyPattern(tuple(parse_pattern(p) for p in spec))

    if isinstance(spec, dict):
        unknown = set(spec) - {"include", "exclude"}
        if unknown:
            raise ValueError(f"Unknown pattern keys: {sorted(unknown)}")
        return CompositePattern(
            include=tuple(parse_pattern(p) for p in _as_list(spec.get("include"))),
            exclude=tuple(parse_pattern(p) for p in _as_list(spec.get("exclude"))),
        )

    raise TypeError(f"Unsupported pattern type: {type(spec).__name__}")


def pattern_terms(pattern: Pattern) -> list[str]:
    """Lower-cased, de-duplicated search terms carried by a pattern."""
    seen: list[str] = []
    for term in pattern.terms():
        lowered = term.lower()
        if lowered and lowered not in seen:
            seen.append(lowered)
    return seen


def _parse_term(text: str) -> Pattern:
    if any(ch in text for ch in _GLOB_CHARS):
        return GlobPattern(text)
    return LiteralPattern(text)


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


@lru_cache(maxsize=256)
def _compile_glob(glob: str) -> re.Pattern[str]:
    """Translate a path glob into a compiled regex, escaping everything else."""
    out: list[str] = []
    i = 0
    while i < len(glob):
        if glob.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif glob.startswith("**", i):
            out.append(".*")
            i += 2
        elif glob[i] == "*":
            out.append("[^/]*")
            i += 1
        elif glob[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(glob[i]))
            i += 1
    return re.compile("".join(out), re.IGNORECASE)

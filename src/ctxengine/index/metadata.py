"""Derived per-file metadata: fingerprint, test indicator, complexity."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

from ctxengine.exceptions import UnreadableFileError
from ctxengine.index.models import FileRecord, Language, UnitEstimator, detect_language

_BINARY_SNIFF_BYTES = 8192

_TEST_PATH_PATTERNS = (
    re.compile(r"\.(test|spec)\.[a-z]+$"),
    re.compile(r"(^|/)__tests__/"),
    re.compile(r"(^|/)tests?/"),
    re.compile(r"(^|/)test_[^/]+\.py$"),
    re.compile(r"_test\.(py|go)$"),
    re.compile(r"(Test|Tests)\.(java|kt|cs)$"),
)

_TEST_CONTENT_PATTERNS = (
    re.compile(r"^\s*describe\s*\(", re.MULTILINE),
    re.compile(r"^\s*(it|test)\s*\(\s*['\"`]", re.MULTILINE),
    re.compile(r"@Test\b"),
    re.compile(r"^\s*(async\s+)?def test_", re.MULTILINE),
    re.compile(r"^func Test\w*\(", re.MULTILINE),
    re.compile(r"#\[(test|cfg\(test\))\]"),
)

# Branching and looping constructs, counted once per occurrence
_BRANCH_RE = re.compile(
    r"\b(?:if|elif|else\s+if|for|foreach|while|switch|case|catch|except|match)\b"
    r"|&&|\|\||\?\?"
)

_COMMENT_PREFIXES = ("#", "//", "/*", "*", "--")


def fingerprint(content: bytes) -> str:
    """Content fingerprint, identical to git's blob object id.

    Using git's formula lets the git fast path hand us identifiers that are
    directly comparable with the ones we compute when hashing files ourselves.
    """
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


def is_binary(content: bytes) -> bool:
    """A NUL byte in the first few KB marks a file as binary."""
    return b"\0" in content[:_BINARY_SNIFF_BYTES]


def is_test_file(path: str, text: str) -> bool:
    """Heuristic test indicator from the path, then from the content."""
    if any(p.search(path) for p in _TEST_PATH_PATTERNS):
        return True
    return any(p.search(text) for p in _TEST_CONTENT_PATTERNS)


def estimate_complexity(text: str) -> float:
    """Branching/looping constructs per line of code.

    Blank lines and lines that start as comments are not code lines. The result
    is 0.0 for files without code.
    """
    code_lines = 0
    branches = 0
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(_COMMENT_PREFIXES):
            continue
        code_lines += 1
        branches += len(_BRANCH_RE.findall(stripped))
    if code_lines == 0:
        return 0.0
    return round(branches / code_lines, 4)


def read_file(full_path: Path, rel_path: str) -> bytes:
    """Read raw bytes, converting OS failures into UnreadableFileError."""
    try:
        return full_path.read_bytes()
    except OSError as e:
        raise UnreadableFileError(rel_path, e.strerror or str(e)) from e


def build_record(root: Path, rel_path: str, content: bytes | None = None) -> FileRecord:
    """Read a file (unless content is given) and compute its full record.

    Raises UnreadableFileError if the file cannot be read or stat'ed. Nothing is
    returned until every derived field has been computed.
    """
    full_path = root / rel_path
    if content is None:
        content = read_file(full_path, rel_path)
    try:
        modified = full_path.stat().st_mtime
    except OSError as e:
        raise UnreadableFileError(rel_path, e.strerror or str(e)) from e

    binary = is_binary(content)
    if binary:
        return FileRecord(
            path=rel_path,
            fingerprint=fingerprint(content),
            size=len(content),
            units=UnitEstimator.estimate_bytes(len(content)),
            modified=modified,
            language=Language.UNKNOWN,
            is_binary=True,
        )

    text = content.decode("utf-8", errors="replace")
    return FileRecord(
        path=rel_path,
        fingerprint=fingerprint(content),
        size=len(content),
        units=UnitEstimator.estimate(text),
        modified=modified,
        language=detect_language(rel_path),
        is_test=is_test_file(rel_path, text),
        complexity=estimate_complexity(text),
        line_count=len(text.splitlines()),
    )

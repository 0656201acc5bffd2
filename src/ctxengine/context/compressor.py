"""Adaptive, lossy content compression.

Each supported language has a small line-oriented state machine that keeps
top-level statements (imports, type and struct declarations, doc comments)
and function signatures, and replaces every function or method body with a
single placeholder line. Everything outside a body passes through unchanged.
Unsupported languages are returned as-is.

Compressed output is a read-only reference. It must never be handed to a
caller that intends to edit the file verbatim.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from pathlib import PurePosixPath

from ctxengine.index.models import EXTENSION_LANGUAGE_MAP, FileRecord, Language

# Expected compressed/original size per extension. Used only to plan which
# files might fit; the real compressed size is always measured afterwards.
COMPRESSION_RATIOS: dict[str, float] = {
    ".js": 0.4,
    ".jsx": 0.4,
    ".mjs": 0.4,
    ".cjs": 0.4,
    ".ts": 0.45,
    ".tsx": 0.45,
    ".py": 0.35,
    ".go": 0.4,
    ".rs": 0.45,
    ".java": 0.5,
    ".c": 0.6,
    ".cc": 0.6,
    ".cpp": 0.6,
    ".h": 0.3,
    ".hpp": 0.3,
}

_PLACEHOLDER_BRACES = "// ..."
_PLACEHOLDER_PYTHON = "..."

_INDENT_RE = re.compile(r"^\s*")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/")
_LINE_COMMENT_RE = re.compile(r"//.*$")

_DOUBLE_QUOTED = r'"(?:\\.|[^"\\])*"'
_CHAR_LITERAL = r"'(?:\\.|[^'\\])'"
_SINGLE_QUOTED = r"'(?:\\.|[^'\\])*'"
_BACKTICK = r"`(?:\\.|[^`\\])*`"


@dataclass(frozen=True)
class _BraceRules:
    """Signature detection for a brace-delimited language."""

    signature: re.Pattern[str]
    strings: re.Pattern[str]
    control: re.Pattern[str] | None = None


_JS_RULES = _BraceRules(
    signature=re.compile(
        r"^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?function\b"
        r"|^\s*(?:export\s+)?(?:const|let|var)\s+[\w$]+\s*(?::[^=]+)?=\s*(?:async\s+)?"
        r"(?:function\b|(?:\([^)]*\)|[\w$]+)\s*(?::\s*[^=]+)?=>)"
        r"|^\s+(?:(?:public|private|protected|static|async|readonly|override|abstract|get|set)\s+)*"
        r"\*?\s*[\w$]+\s*(?:<[^>]*>)?\s*\([^)]*\)\s*(?::\s*[^{;]+)?\{\s*$"
    ),
    strings=re.compile("|".join((_DOUBLE_QUOTED, _SINGLE_QUOTED, _BACKTICK))),
    control=re.compile(r"^\s*(?:if|for|while|switch|catch|with|return|else|do|try)\b"),
)

_GO_RULES = _BraceRules(
    signature=re.compile(r"^func\b"),
    strings=re.compile("|".join((_DOUBLE_QUOTED, _BACKTICK, _CHAR_LITERAL))),
)

_RUST_RULES = _BraceRules(
    signature=re.compile(
        r"^\s*(?:pub(?:\([^)]*\))?\s+)?(?:default\s+)?(?:const\s+)?(?:async\s+)?"
        r"(?:unsafe\s+)?(?:extern\s+\"[^\"]*\"\s+)?fn\s+\w+"
    ),
    strings=re.compile("|".join((_DOUBLE_QUOTED, _CHAR_LITERAL))),
)

_JAVA_RULES = _BraceRules(
    signature=re.compile(
        r"^\s*(?:@\w+(?:\([^)]*\))?\s+)*"
        r"(?:(?:public|protected|private|static|final|abstract|synchronized|native|default|strictfp)\s+)*"
        r"(?:<[^>]+>\s+)?(?:[\w.$]+(?:<[^>]*>)?(?:\[\])*\s+)?[\w$]+\s*\([^;]*$"
    ),
    strings=re.compile("|".join((_DOUBLE_QUOTED, _CHAR_LITERAL))),
    control=re.compile(
        r"^\s*(?:if|for|while|switch|catch|synchronized|return|new|else|try|do|throw)\b"
    ),
)

_C_RULES = _BraceRules(
    signature=re.compile(r"^(?![\s#])(?:[\w:*&<>,~]+\s+)*[\w:*&~]+\s*\([^;]*$"),
    strings=re.compile("|".join((_DOUBLE_QUOTED, _CHAR_LITERAL))),
    control=re.compile(r"^\s*(?:if|for|while|switch|return|else|do)\b"),
)

_BRACE_RULES: dict[Language, _BraceRules] = {
    Language.JAVASCRIPT: _JS_RULES,
    Language.TYPESCRIPT: _JS_RULES,
    Language.GO: _GO_RULES,
    Language.RUST: _RUST_RULES,
    Language.JAVA: _JAVA_RULES,
    Language.C: _C_RULES,
    Language.CPP: _C_RULES,
}

_PY_DEF_RE = re.compile(r"^(\s*)(?:async\s+)?def\s+\w+")
_PY_DOC_START_RE = re.compile(r"^\s*[rRuUbB]?(\"\"\"|''')")
_PY_INLINE_BODY_RE = re.compile(r"\)\s*(?:->\s*[^:]+)?:\s*(\S.*)?$")


class AdaptiveCompressor:
    """Per-language signature-preserving compressor."""

    def supports(self, language: Language | str) -> bool:
        language = _as_language(language)
        return language == Language.PYTHON or language in _BRACE_RULES

    def compress(self, content: str, language: Language | str) -> str:
        """Compress content for a language. Unsupported languages pass through."""
        language = _as_language(language)
        lines = content.splitlines()
        if language == Language.PYTHON:
            out = _compress_python(lines)
        elif language in _BRACE_RULES:
            out = _compress_braces(lines, _BRACE_RULES[language])
        else:
            return content
        text = "\n".join(out)
        if content.endswith("\n"):
            text += "\n"
        return text

    def compress_file(self, content: str, path: str) -> str:
        ext = PurePosixPath(path).suffix.lower()
        return self.compress(content, EXTENSION_LANGUAGE_MAP.get(ext, Language.UNKNOWN))

    def estimate_ratio(self, path: str) -> float:
        """Expected size ratio for a path; 1.0 when it would not be compressed."""
        ext = PurePosixPath(path).suffix.lower()
        if not self.supports(EXTENSION_LANGUAGE_MAP.get(ext, Language.UNKNOWN)):
            return 1.0
        return COMPRESSION_RATIOS.get(ext, 1.0)

    def estimate_units(self, record: FileRecord) -> int:
        return math.ceil(record.units * self.estimate_ratio(record.path))


def _as_language(language: Language | str) -> Language:
    if isinstance(language, Language):
        return language
    try:
        return Language(language)
    except ValueError:
        return Language.UNKNOWN


def _indent_of(line: str) -> str:
    return _INDENT_RE.match(line).group(0)


# ---------------------------------------------------------------------------
# Brace languages
# ---------------------------------------------------------------------------

_OUTSIDE, _PENDING, _BODY = range(3)


def _compress_braces(lines: list[str], rules: _BraceRules) -> list[str]:
    out: list[str] = []
    state = _OUTSIDE
    depth = 0
    sig_indent = ""
    in_comment = False

    def code_of(line: str) -> str:
        code = rules.strings.sub('""', line)
        code = _BLOCK_COMMENT_RE.sub("", code)
        return _LINE_COMMENT_RE.sub("", code)

    def open_body(code: str) -> int:
        opened = code.count("{") - code.count("}")
        if opened > 0:
            out.append(f"{sig_indent}    {_PLACEHOLDER_BRACES}")
            return _BODY
        return _OUTSIDE

    def is_signature(line: str) -> bool:
        if rules.control is not None and rules.control.match(line):
            return False
        return bool(rules.signature.match(line))

    for line in lines:
        stripped = line.strip()

        if state == _BODY:
            code = code_of(line)
            depth += code.count("{") - code.count("}")
            if depth <= 0:
                out.append(line if stripped.startswith("}") else f"{sig_indent}}}")
                state = _OUTSIDE
            continue

        if in_comment:
            out.append(line)
            if "*/" in line:
                in_comment = False
            continue
        if stripped.startswith("/*") and "*/" not in stripped:
            out.append(line)
            in_comment = True
            continue

        if state == _PENDING:
            if not stripped:
                state = _OUTSIDE
            elif not is_signature(line):
                out.append(line)
                code = code_of(line)
                if "{" in code:
                    depth = code.count("{") - code.count("}")
                    state = open_body(code)
                elif code.rstrip().endswith((";", "}")):
                    state = _OUTSIDE
                continue

        if is_signature(line):
            out.append(line)
            sig_indent = _indent_of(line)
            code = code_of(line).rstrip()
            if "{" in code:
                depth = code.count("{") - code.count("}")
                state = open_body(code)
            elif code.endswith((";", "}")) or _has_arrow_expression(code):
                state = _OUTSIDE
            else:
                state = _PENDING
            continue

        state = _OUTSIDE
        out.append(line)

    return out


def _has_arrow_expression(code: str) -> bool:
    head, arrow, tail = code.partition("=>")
    return bool(arrow) and bool(tail.strip())


# ---------------------------------------------------------------------------
# Python
# ---------------------------------------------------------------------------

def _triple_quotes(line: str) -> int:
    return line.count('"""') + line.count("'''")


def _compress_python(lines: list[str]) -> list[str]:
    out: list[str] = []
    n = len(lines)
    i = 0
    in_string = False

    while i < n:
        line = lines[i]

        if in_string:
            out.append(line)
            if _triple_quotes(line) % 2:
                in_string = False
            i += 1
            continue

        match = _PY_DEF_RE.match(line)
        if not match:
            out.append(line)
            if _triple_quotes(line) % 2:
                in_string = True
            i += 1
            continue

        def_indent = len(match.group(1))

        # Signature may span several lines until brackets balance
        end = i
        balance = 0
        while True:
            code = lines[end].split("#", 1)[0]
            balance += sum(code.count(c) for c in "([{") - sum(code.count(c) for c in ")]}")
            if balance <= 0 and code.rstrip().endswith(":"):
                break
            if balance <= 0 and _PY_INLINE_BODY_RE.search(code.rstrip()):
                break
            if end + 1 >= n:
                break
            end += 1
        out.extend(lines[i:end + 1])

        inline = _PY_INLINE_BODY_RE.search(lines[end].split("#", 1)[0].rstrip())
        if inline and inline.group(1):
            i = end + 1
            continue

        # Body: every following line that is blank or indented deeper
        k = end + 1
        body_string = False
        while k < n:
            body_line = lines[k]
            if body_string:
                if _triple_quotes(body_line) % 2:
                    body_string = False
                k += 1
                continue
            if body_line.strip() and len(_indent_of(body_line)) <= def_indent:
                break
            if _triple_quotes(body_line) % 2:
                body_string = True
            k += 1

        body = lines[end + 1:k]
        trailing = 0
        while body and not body[-1].strip():
            body.pop()
            trailing += 1

        if body:
            first = next(idx for idx, b in enumerate(body) if b.strip())
            body_indent = _indent_of(body[first])
            rest_start = first
            doc = _PY_DOC_START_RE.match(body[first])
            if doc:
                quote = doc.group(1)
                after = body[first].split(quote, 1)[1]
                doc_end = first
                if quote not in after:
                    doc_end = first + 1
                    while doc_end < len(body) and quote not in body[doc_end]:
                        doc_end += 1
                out.extend(body[first:doc_end + 1])
                rest_start = doc_end + 1
            if any(b.strip() for b in body[rest_start:]):
                out.append(f"{body_indent}{_PLACEHOLDER_PYTHON}")

        out.extend([""] * trailing)
        i = k

    return out

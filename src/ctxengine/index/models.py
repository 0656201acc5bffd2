"""Data models for the artifact index."""

from __future__ import annotations

import math
from enum import Enum
from pathlib import PurePosixPath

from pydantic import BaseModel, Field


class Language(str, Enum):
    """Languages the index recognises. Everything else is ``unknown``."""

    PYTHON = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    GO = "go"
    RUST = "rust"
    JAVA = "java"
    KOTLIN = "kotlin"
    SCALA = "scala"
    C = "c"
    CPP = "cpp"
    CSHARP = "csharp"
    RUBY = "ruby"
    PHP = "php"
    SWIFT = "swift"
    CSS = "css"
    HTML = "html"
    MARKDOWN = "markdown"
    JSON = "json"
    YAML = "yaml"
    SHELL = "shell"
    UNKNOWN = "unknown"


# Language detection by file extension
EXTENSION_LANGUAGE_MAP: dict[str, Language] = {
    ".py": Language.PYTHON,
    ".pyi": Language.PYTHON,
    ".js": Language.JAVASCRIPT,
    ".jsx": Language.JAVASCRIPT,
    ".mjs": Language.JAVASCRIPT,
    ".cjs": Language.JAVASCRIPT,
    ".ts": Language.TYPESCRIPT,
    ".tsx": Language.TYPESCRIPT,
    ".go": Language.GO,
    ".rs": Language.RUST,
    ".java": Language.JAVA,
    ".kt": Language.KOTLIN,
    ".scala": Language.SCALA,
    ".c": Language.C,
    ".h": Language.C,
    ".cc": Language.CPP,
    ".cpp": Language.CPP,
    ".hpp": Language.CPP,
    ".cs": Language.CSHARP,
    ".rb": Language.RUBY,
    ".php": Language.PHP,
    ".swift": Language.SWIFT,
    ".css": Language.CSS,
    ".scss": Language.CSS,
    ".less": Language.CSS,
    ".html": Language.HTML,
    ".md": Language.MARKDOWN,
    ".json": Language.JSON,
    ".yml": Language.YAML,
    ".yaml": Language.YAML,
    ".sh": Language.SHELL,
}


def detect_language(file_path: str) -> Language:
    """Detect the language of a file from its extension."""
    ext = PurePosixPath(file_path).suffix.lower()
    return EXTENSION_LANGUAGE_MAP.get(ext, Language.UNKNOWN)


class UnitEstimator:
    """Approximate length units for budgeting.

    This is NOT a tokenizer count. One unit is roughly four characters, which is
    close enough for budgeting across model families.
    """

    CHARS_PER_UNIT = 4.0

    @classmethod
    def estimate(cls, text: str) -> int:
        """Estimate length units for a string."""
        return math.ceil(len(text) / cls.CHARS_PER_UNIT)

    @classmethod
    def estimate_bytes(cls, size: int) -> int:
        """Estimate length units from a byte size."""
        return math.ceil(size / cls.CHARS_PER_UNIT)


class FileRecord(BaseModel):
    """Indexed metadata for one repository file, keyed by relative path."""

    path: str
    fingerprint: str
    size: int
    units: int
    modified: float  # POSIX mtime
    language: Language = Language.UNKNOWN
    is_test: bool = False
    is_binary: bool = False
    complexity: float = 0.0
    line_count: int = 0

    @property
    def extension(self) -> str:
        return PurePosixPath(self.path).suffix.lower()


class RefreshResult(BaseModel):
    """Outcome of one index refresh."""

    updated: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)  # unreadable this run
    source: str = "walk"  # "git" or "walk"
    rebuilt: bool = False  # previous table was corrupt or missing
    cancelled: bool = False


class IndexStats(BaseModel):
    """Aggregate statistics over the index table."""

    total_files: int = 0
    total_units: int = 0
    total_size: int = 0
    by_language: dict[str, int] = Field(default_factory=dict)
    by_extension: dict[str, int] = Field(default_factory=dict)


class Provenance(str, Enum):
    """Why a candidate file was proposed."""

    DIRECT = "direct-match"
    DEPENDENCY = "dependency"
    USAGE = "usage-suggested"


class Candidate(BaseModel):
    """A FileRecord with a per-query score and the reason it was proposed."""

    record: FileRecord
    score: float = 0.0
    provenance: Provenance = Provenance.DIRECT
    via: str = ""  # seed path for dependency candidates

    @property
    def path(self) -> str:
        return self.record.path

    @property
    def units(self) -> int:
        return self.record.units

    @property
    def is_direct(self) -> bool:
        return self.provenance == Provenance.DIRECT

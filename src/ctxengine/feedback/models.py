"""Data models for usage feedback."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field, model_validator


class UsageEvent(BaseModel):
    """One observed work session. Never mutated after creation."""

    timestamp: float
    task_label: str = ""
    offered: list[str] = Field(default_factory=list)
    changed: list[str] = Field(default_factory=list)
    duration_seconds: float | None = None
    offered_bytes: int | None = None
    # per offered file: 1.0 changed, 0.5 related to a changed file, 0.0 otherwise
    scores: dict[str, float] = Field(default_factory=dict)
    meta: dict[str, Any] = Field(default_factory=dict)

    @property
    def useful(self) -> list[str]:
        changed = set(self.changed)
        return [p for p in self.offered if p in changed]

    @property
    def wasted(self) -> list[str]:
        changed = set(self.changed)
        return [p for p in self.offered if p not in changed]

    @property
    def related(self) -> list[str]:
        """Wasted files that earned partial credit for being related to a changed file."""
        changed = set(self.changed)
        return [p for p in self.offered if p not in changed and self.scores.get(p, 0.0) > 0.0]


class FileUsage(BaseModel):
    """How often a file was offered and how often it was then changed."""

    loaded: int = 0
    used: int = 0

    @model_validator(mode="after")
    def _check_counts(self) -> "FileUsage":
        if self.loaded < 0 or self.used < 0:
            raise ValueError("usage counts must not be negative")
        if self.used > self.loaded:
            raise ValueError("used count exceeds loaded count")
        return self

    @property
    def ratio(self) -> float | None:
        """Usefulness in [0, 1], or None (neutral) if never offered."""
        if self.loaded == 0:
            return None
        return self.used / self.loaded


@dataclass
class PatternSnapshot:
    """Derived usage patterns, as persisted."""

    cooccurrence: dict[tuple[str, str], int] = field(default_factory=dict)
    file_usage: dict[str, FileUsage] = field(default_factory=dict)
    task_files: dict[str, dict[str, int]] = field(default_factory=dict)
    events_since_prune: int = 0


class UsageReport(BaseModel):
    """Outcome of recording one usage event."""

    useful_count: int = 0
    wasted_count: int = 0
    useful_files: list[str] = Field(default_factory=list)
    wasted_files: list[str] = Field(default_factory=list)
    related_files: list[str] = Field(default_factory=list)


class FileUsefulness(BaseModel):
    path: str
    loaded: int
    used: int
    ratio: float

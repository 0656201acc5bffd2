"""Data models for budgeted context assembly."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from ctxengine.feedback.models import FileUsefulness, UsageReport
from ctxengine.index.models import Candidate, Provenance

__all__ = [
    "AssemblyWarning",
    "Candidate",
    "ContextFile",
    "ContextResult",
    "EngineStats",
    "FileUsefulness",
    "Provenance",
    "UsageReport",
    "WarningKind",
]


class WarningKind(str, Enum):
    """Non-fatal conditions reported on an assembled context."""

    BUDGET_TOO_SMALL = "budget-too-small"  # One oversized file force-included
    UNREADABLE_FILE = "unreadable-file"  # Selected but could not be read
    DROPPED = "dropped"  # Removed after measuring real compressed size


class AssemblyWarning(BaseModel):
    kind: WarningKind
    message: str
    path: str = ""


class ContextFile(BaseModel):
    """A single file in the assembled context."""

    path: str
    content: str
    score: float = 0.0
    provenance: Provenance = Provenance.DIRECT
    units: int = 0
    compressed: bool = False
    via: str = ""  # Seed file that proposed a dependency


class ContextResult(BaseModel):
    """The assembled context ready for LLM consumption."""

    pattern: str
    task_label: str | None = None
    budget_units: int = 0
    files: list[ContextFile] = Field(default_factory=list)
    total_units: int = 0
    warnings: list[AssemblyWarning] = Field(default_factory=list)
    forced_oversized: bool = False
    candidates_considered: int = 0
    assembly_time_ms: float = 0.0

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    @property
    def budget_used_pct(self) -> float:
        if self.budget_units <= 0:
            return 0.0
        return self.total_units / self.budget_units * 100

    def render(self, include_metadata: bool = True) -> str:
        """Render the context as a single string for LLM consumption.

        Files appear in selection order. Compressed files are marked so the
        reader knows bodies were elided and the text must not be edited as-is.
        """
        sections: list[str] = []

        if include_metadata:
            header = f"# Context for: {self.pattern}"
            if self.task_label:
                header += f" (task: {self.task_label})"
            sections.append(header)
            sections.append(
                f"# {len(self.files)} files "
                f"(~{self.total_units:,} units, {self.budget_used_pct:.0f}% of budget)"
            )
            for warning in self.warnings:
                sections.append(f"# warning: {warning.message}")
            sections.append("")

        for f in self.files:
            sections.append(f"## {f.path}")
            if include_metadata:
                reason = f.provenance.value
                if f.via:
                    reason += f" of {f.via}"
                if f.compressed:
                    reason += ", compressed (read-only reference)"
                sections.append(f"# Included as: {reason} (score: {f.score:.2f})")
            sections.append("")
            sections.append(f.content)
            sections.append("")

        return "\n".join(sections)

    def summary(self) -> str:
        """Human-readable summary of what's in the context."""
        lines = [
            f"Context for: {self.pattern}",
            f"Units: {self.total_units:,} / {self.budget_units:,} ({self.budget_used_pct:.0f}%)",
            f"Files: {len(self.files)} included, {self.candidates_considered} candidates",
            f"Assembly time: {self.assembly_time_ms:.1f}ms",
            "",
            "Included files:",
        ]
        for f in self.files:
            marker = ">" if f.provenance == Provenance.DIRECT else "·"
            flag = " [compressed]" if f.compressed else ""
            lines.append(
                f"  {marker} {f.path} ({f.provenance.value}) "
                f"score={f.score:.2f} ~{f.units}u{flag}"
            )
        for warning in self.warnings:
            lines.append(f"  ! {warning.message}")
        return "\n".join(lines)


class EngineStats(BaseModel):
    """Combined index and feedback statistics."""

    index_size: int = 0
    total_units: int = 0
    total_size: int = 0
    by_language: dict[str, int] = Field(default_factory=dict)
    by_extension: dict[str, int] = Field(default_factory=dict)
    top_useful: list[FileUsefulness] = Field(default_factory=list)
    top_wasted: list[FileUsefulness] = Field(default_factory=list)
    total_events: int = 0
    total_patterns: int = 0
    avg_usefulness: float | None = None
    compression_estimates: dict[str, float] = Field(default_factory=dict)

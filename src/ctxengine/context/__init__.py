"""Budgeted context assembly.

Selects, ranks and compresses repository files for a language model within a
length budget, and learns from which offered files actually got changed.

Usage:
    from ctxengine.context import ContextEngine

    engine = ContextEngine(root)
    result = engine.assemble_context("auth", task_label="fix login bug", budget_units=8000)
    print(result.render())
"""

from ctxengine.context.engine import ContextEngine
from ctxengine.context.models import (
    AssemblyWarning,
    Candidate,
    ContextFile,
    ContextResult,
    EngineStats,
    Provenance,
    WarningKind,
)

__all__ = [
    "AssemblyWarning",
    "Candidate",
    "ContextEngine",
    "ContextFile",
    "ContextResult",
    "EngineStats",
    "Provenance",
    "WarningKind",
]

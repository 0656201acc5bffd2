"""Change-aware artifact index."""

from ctxengine.index.indexer import ArtifactIndex
from ctxengine.index.models import Candidate, FileRecord, Language, Provenance, RefreshResult
from ctxengine.index.store import IndexStore

__all__ = [
    "ArtifactIndex",
    "Candidate",
    "FileRecord",
    "IndexStore",
    "Language",
    "Provenance",
    "RefreshResult",
]

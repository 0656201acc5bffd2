"""Custom exceptions for ctxengine."""


class EngineError(Exception):
    """Base exception for all ctxengine errors."""


class ConfigError(EngineError):
    """Configuration-related errors."""


class UnreadableFileError(EngineError):
    """A single file could not be read. Refresh skips it and carries on."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read '{path}'" + (f": {reason}" if reason else ""))


class IndexCorruptError(EngineError):
    """The persisted index table cannot be trusted and must be rebuilt."""


class PatternTableCorruptError(EngineError):
    """The persisted usage-pattern tables must be recomputed from the event log."""


class NoVersionControlError(EngineError):
    """No usable version control metadata. Discovery falls back to a directory walk."""


class AssemblyError(EngineError):
    """Context assembly failed in a specific stage (index, score, select, compress)."""

    STAGES = ("index", "score", "select", "compress")

    def __init__(self, stage: str, message: str):
        if stage not in self.STAGES:
            raise ValueError(f"Unknown assembly stage: {stage}")
        self.stage = stage
        super().__init__(f"[{stage}] {message}")

"""Configuration management for ctxengine."""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ctxengine.exceptions import ConfigError

ENGINE_DIR = ".ctxengine"
CONFIG_FILE = "config.json"
INDEX_DB_FILE = "index.db"
USAGE_DB_FILE = "usage.db"
USAGE_LOG_FILE = "usage-log.json"
LAST_CONTEXT_FILE = "last-context.json"

# Directory names that are never indexed, whatever the user configures.
ALWAYS_EXCLUDED = (".git", ".hg", ".svn", ENGINE_DIR)


class IndexerConfig(BaseModel):
    """Artifact index configuration."""

    exclude_patterns: list[str] = Field(
        default_factory=lambda: [
            ".git",
            ".hg",
            ".svn",
            ENGINE_DIR,
            "node_modules",
            "__pycache__",
            "dist",
            "build",
            "coverage",
            ".next",
            ".venv",
            "venv",
            "*.pyc",
            "*.log",
            ".DS_Store",
        ]
    )
    max_file_size_kb: int = 1024
    workers: int = 8
    git_timeout_seconds: float = 10.0
    use_git: bool = True


class ScoringConfig(BaseModel):
    """Weights for the relevance scorer. Defaults mirror the named constants."""

    recency_weight: float = 10.0
    recency_half_life_days: float = 7.0
    path_match_bonus: float = 15.0
    category_bonus: float = 15.0
    test_category_bonus: float = 20.0
    task_term_bonus: float = 5.0
    complexity_penalty: float = 5.0
    large_file_units: int = 5000
    large_file_penalty: float = 5.0
    usefulness_weight: float = 30.0
    type_priority: dict[str, float] = Field(
        default_factory=lambda: {
            "typescript": 10.0,
            "javascript": 10.0,
            "python": 10.0,
            "go": 10.0,
            "rust": 10.0,
            "java": 8.0,
            "kotlin": 8.0,
            "c": 6.0,
            "cpp": 6.0,
            "css": 3.0,
            "markdown": 2.0,
        }
    )


class SelectionConfig(BaseModel):
    """Budget selector configuration."""

    direct_share: float = Field(default=0.7, ge=0.0, le=1.0)
    expand_top: int = 5
    default_budget: int = 8000


class CompressionMode(str, Enum):
    """Which selected files may be compressed."""

    NEVER = "never"
    REFERENCES = "references"  # Only dependency / usage-suggested files
    ALL = "all"


class CompressionConfig(BaseModel):
    """Adaptive compressor configuration."""

    mode: CompressionMode = CompressionMode.REFERENCES


class FeedbackConfig(BaseModel):
    """Usage feedback store configuration."""

    max_events: int = 1000
    suggest_limit: int = 10
    min_occurrences: int = 2
    auto_prune_interval: int = 100  # 0 disables periodic pruning
    stats_limit: int = 10


class EngineConfig(BaseModel):
    """Full engine configuration."""

    name: str = ""
    root_path: str = "."
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    compression: CompressionConfig = Field(default_factory=CompressionConfig)
    feedback: FeedbackConfig = Field(default_factory=FeedbackConfig)


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from `start` looking for a .ctxengine directory."""
    current = (start or Path.cwd()).resolve()
    while current != current.parent:
        if (current / ENGINE_DIR).is_dir():
            return current
        current = current.parent
    if (current / ENGINE_DIR).is_dir():
        return current
    return None


def get_engine_dir(root: Path) -> Path:
    """Get the .ctxengine directory for a project root."""
    return root / ENGINE_DIR


def load_config(root: Path) -> EngineConfig:
    """Load configuration from .ctxengine/config.json."""
    config_path = get_engine_dir(root) / CONFIG_FILE
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
            return EngineConfig(**data)
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            raise ConfigError(f"Invalid config at {config_path}: {e}") from e
    return EngineConfig(name=root.name, root_path=str(root))


def save_config(root: Path, config: EngineConfig) -> None:
    """Save configuration to .ctxengine/config.json."""
    engine_dir = get_engine_dir(root)
    engine_dir.mkdir(parents=True, exist_ok=True)
    config_path = engine_dir / CONFIG_FILE
    config_path.write_text(json.dumps(config.model_dump(mode="json"), indent=2))


def set_config_value(config: EngineConfig, key: str, value: Any) -> EngineConfig:
    """Set a nested config value using dot notation (e.g., 'selection.direct_share')."""
    parts = key.split(".")
    data = config.model_dump(mode="json")
    target = data
    for part in parts[:-1]:
        if part not in target or not isinstance(target[part], dict):
            raise KeyError(f"Invalid config key: {key}")
        target = target[part]
    if parts[-1] not in target:
        raise KeyError(f"Invalid config key: {key}")
    target[parts[-1]] = value
    try:
        return EngineConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid value for {key}: {e}") from e

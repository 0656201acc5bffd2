"""Tests for configuration management."""

from __future__ import annotations

from pathlib import Path

import pytest

from ctxengine.config import (
    CompressionMode,
    EngineConfig,
    find_project_root,
    load_config,
    save_config,
    set_config_value,
)
from ctxengine.exceptions import ConfigError


class TestConfig:
    def test_default_config(self):
        config = EngineConfig()
        assert config.selection.direct_share == 0.7
        assert config.selection.default_budget == 8000
        assert config.compression.mode == CompressionMode.REFERENCES
        assert config.scoring.usefulness_weight > config.scoring.path_match_bonus
        assert config.indexer.use_git

    def test_save_and_load(self, tmp_path: Path):
        config = EngineConfig(name="test-project")
        config.selection.default_budget = 4000
        config.compression.mode = CompressionMode.ALL

        save_config(tmp_path, config)
        loaded = load_config(tmp_path)

        assert loaded.name == "test-project"
        assert loaded.selection.default_budget == 4000
        assert loaded.compression.mode == CompressionMode.ALL

    def test_load_without_file(self, tmp_path: Path):
        config = load_config(tmp_path)
        assert config.name == tmp_path.name
        assert config.root_path == str(tmp_path)

    def test_load_malformed(self, tmp_path: Path):
        (tmp_path / ".ctxengine").mkdir()
        (tmp_path / ".ctxengine" / "config.json").write_text("{ broken")
        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_find_project_root(self, tmp_path: Path):
        # No .ctxengine dir - should return None
        assert find_project_root(tmp_path) is None

        (tmp_path / ".ctxengine").mkdir()
        assert find_project_root(tmp_path) == tmp_path

        # Should find from subdirectory
        sub = tmp_path / "src" / "module"
        sub.mkdir(parents=True)
        assert find_project_root(sub) == tmp_path

    def test_set_config_value(self):
        config = EngineConfig()
        updated = set_config_value(config, "selection.default_budget", 2000)
        assert updated.selection.default_budget == 2000

    def test_set_config_enum(self):
        updated = set_config_value(EngineConfig(), "compression.mode", "never")
        assert updated.compression.mode == CompressionMode.NEVER

    def test_set_config_invalid_key(self):
        config = EngineConfig()
        with pytest.raises(KeyError):
            set_config_value(config, "nonexistent.key", "value")

    def test_set_config_invalid_value(self):
        config = EngineConfig()
        with pytest.raises(ConfigError):
            set_config_value(config, "selection.direct_share", 1.5)

    def test_exclude_patterns(self):
        config = EngineConfig()
        assert "node_modules" in config.indexer.exclude_patterns
        assert "__pycache__" in config.indexer.exclude_patterns
        assert ".ctxengine" in config.indexer.exclude_patterns

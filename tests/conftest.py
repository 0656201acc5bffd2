"""Shared test fixtures for ctxengine."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from ctxengine.config import EngineConfig, IndexerConfig
from ctxengine.context.engine import ContextEngine


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a temporary multi-language project."""
    files = {
        "src/auth/login.ts": """import { createSession } from './session';
import { User } from '../models/user';

export async function login(user: User, password: string) {
  if (!password) {
    throw new Error('password required');
  }
  return createSession(user);
}
""",
        "src/auth/session.ts": """export function createSession(user) {
  return { id: Math.random().toString(36), user };
}
""",
        "src/auth/login.test.ts": """import { login } from './login';

describe('login', () => {
  it('rejects an empty password', async () => {
    await expect(login({ id: '1', name: 'a' }, '')).rejects.toThrow();
  });
});
""",
        "src/auth/index.ts": "export * from './login';\nexport * from './session';\n",
        "src/models/user.ts": "export interface User {\n  id: string;\n  name: string;\n}\n",
        "src/components/Button.tsx": """import styles from './Button.module.css';

export function Button({ label }) {
  return <button className={styles.button}>{label}</button>;
}
""",
        "src/components/Button.module.css": ".button {\n  color: red;\n}\n",
        "src/api/__init__.py": '"""API package."""\n',
        "src/api/models.py": '''"""Data models."""


class User:
    def __init__(self, name):
        self.name = name
''',
        "src/api/users.py": '''"""User endpoints."""

from .models import User


def get_user(user_id):
    """Get a user by ID."""
    if user_id is None:
        return None
    return User(str(user_id))
''',
        "tests/test_users.py": '''from src.api.users import get_user


def test_get_user():
    assert get_user(1).name == "1"
''',
        "lib/core.go": """package core

func Add(a int, b int) int {
\treturn a + b
}
""",
        "lib/core_test.go": """package core

import "testing"

func TestAdd(t *testing.T) {
\tif Add(1, 2) != 3 {
\t\tt.Fatal("bad sum")
\t}
}
""",
        "README.md": "# Sample\n\nA sample project.\n",
        "node_modules/leftpad/index.js": "module.exports = function leftpad() {};\n",
    }
    for rel, content in files.items():
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)

    (tmp_path / "assets").mkdir()
    (tmp_path / "assets" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x01")
    return tmp_path


@pytest.fixture
def walk_config() -> EngineConfig:
    """Engine config that never consults git."""
    return EngineConfig(indexer=IndexerConfig(use_git=False, workers=2))


@pytest.fixture
def engine(tmp_project: Path, walk_config: EngineConfig) -> ContextEngine:
    """An in-memory engine over tmp_project with a fresh index."""
    eng = ContextEngine(tmp_project, walk_config, persist=False)
    eng.refresh_index()
    return eng


def _git(root: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=root,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def git_project(tmp_project: Path) -> Path:
    """tmp_project as a git repository with everything committed."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    (tmp_project / ".gitignore").write_text("node_modules/\n")
    _git(tmp_project, "init", "-q")
    _git(tmp_project, "add", "-A")
    _git(tmp_project, "commit", "-q", "-m", "initial")
    return tmp_project

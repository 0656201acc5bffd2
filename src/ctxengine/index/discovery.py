"""File discovery: git fast path with a pruned directory-walk fallback."""

from __future__ import annotations

import fnmatch
import logging
import os
import subprocess
from pathlib import Path, PurePosixPath

from ctxengine.config import ALWAYS_EXCLUDED, IndexerConfig
from ctxengine.exceptions import NoVersionControlError

logger = logging.getLogger("ctxengine.discovery")

_GITLINK_MODE = "160000"


def discover_git(root: Path, config: IndexerConfig) -> dict[str, str | None]:
    """List files via git, with the blob id for every clean tracked file.

    Returns a mapping of relative path to fingerprint. A fingerprint of None
    means the working tree differs from what git knows (modified, untracked,
    or conflicted) and the file must be hashed by the caller.

    Raises NoVersionControlError when git is missing, the root is not inside a
    work tree, or git does not answer within the configured timeout.
    """
    staged = _git(root, ["ls-files", "-s", "-z"], config.git_timeout_seconds)
    modified = set(_split_z(_git(root, ["ls-files", "-m", "-z"], config.git_timeout_seconds)))
    deleted = set(_split_z(_git(root, ["ls-files", "-d", "-z"], config.git_timeout_seconds)))
    untracked = _split_z(
        _git(root, ["ls-files", "-o", "--exclude-standard", "-z"], config.git_timeout_seconds)
    )

    files: dict[str, str | None] = {}
    for entry in _split_z(staged):
        meta, _, path = entry.partition("\t")
        parts = meta.split()
        if len(parts) != 3 or not path:
            continue
        mode, blob, stage = parts
        if mode == _GITLINK_MODE or path in deleted:
            continue
        if should_exclude(path, config.exclude_patterns):
            continue
        if stage != "0" or path in modified or path in files:
            # Conflicted entries appear once per stage; hash the working copy
            files[path] = None
        else:
            files[path] = blob

    for path in untracked:
        if not should_exclude(path, config.exclude_patterns):
            files[path] = None

    return files


def discover_walk(root: Path, config: IndexerConfig) -> list[str]:
    """Collect relative paths by walking the tree.

    Excluded directories are pruned while walking so that huge irrelevant trees
    (node_modules, build output) are never entered.
    """
    patterns = config.exclude_patterns + _read_gitignore(root)
    files: list[str] = []

    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = os.path.relpath(dirpath, root)
        rel_dir = "" if rel_dir == "." else Path(rel_dir).as_posix()

        dirnames[:] = sorted(
            d
            for d in dirnames
            if not should_exclude(f"{rel_dir}/{d}" if rel_dir else d, patterns)
        )

        for filename in sorted(filenames):
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if should_exclude(rel_path, patterns):
                continue
            if os.path.islink(os.path.join(dirpath, filename)):
                continue
            files.append(rel_path)

    return files


def should_exclude(path: str, patterns: list[str]) -> bool:
    """Check if a relative path matches any exclusion pattern.

    Patterns are tested against the whole path and each of its components, so
    ``node_modules`` excludes the directory wherever it appears.
    """
    path_parts = PurePosixPath(path).parts
    if any(part in ALWAYS_EXCLUDED for part in path_parts):
        return True
    for pattern in patterns:
        if fnmatch.fnmatch(path, pattern):
            return True
        for part in path_parts:
            if fnmatch.fnmatch(part, pattern):
                return True
    return False


def _git(root: Path, args: list[str], timeout: float) -> str:
    try:
        result = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            cwd=root,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise NoVersionControlError("git executable not found") from e
    except subprocess.TimeoutExpired as e:
        logger.warning("git %s timed out after %.1fs", args[0], timeout)
        raise NoVersionControlError(f"git {args[0]} timed out") from e
    except OSError as e:
        raise NoVersionControlError(str(e)) from e

    if result.returncode != 0:
        raise NoVersionControlError(result.stderr.strip() or "not a git work tree")
    return result.stdout


def _split_z(output: str) -> list[str]:
    return [item for item in output.split("\0") if item]


def _read_gitignore(root: Path) -> list[str]:
    """Read .gitignore patterns from the project root."""
    gitignore = root / ".gitignore"
    if not gitignore.exists():
        return []

    patterns = []
    try:
        for line in gitignore.read_text().splitlines():
            line = line.strip()
            if line and not line.startswith(("#", "!")):
                patterns.append(line.strip("/"))
    except OSError:
        logger.warning("Could not read %s", gitignore)
    return [p for p in patterns if p]

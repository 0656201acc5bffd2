"""Command-line interface for ctxengine."""

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path

import click

from ctxengine import __version__
from ctxengine.config import (
    CompressionMode,
    EngineConfig,
    find_project_root,
    load_config,
    save_config,
    set_config_value,
)
from ctxengine.exceptions import AssemblyError, ConfigError
from ctxengine.ui.console import Console

console = Console()


def _get_project_root(path: str | None = None) -> Path:
    """Find the project root or error."""
    if path:
        root = Path(path).resolve()
        if not root.exists():
            console.error(f"Path does not exist: {path}")
            sys.exit(1)
        return root

    root = find_project_root()
    if root is None:
        console.error(
            "No ctxengine project found. Run 'ctxengine init' first, "
            "or specify a path with --path."
        )
        sys.exit(1)
    return root


def _load_config(root: Path) -> EngineConfig:
    try:
        return load_config(root)
    except ConfigError as e:
        console.error(str(e))
        sys.exit(1)


def _engine(root: Path):
    from ctxengine.context.engine import ContextEngine

    return ContextEngine(root, _load_config(root))


@click.group()
@click.version_option(version=__version__, prog_name="ctxengine")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def main(verbose: bool):
    """ctxengine - budgeted, usage-aware context assembly for LLM coding workflows."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
def init(path: str | None):
    """Initialize ctxengine for a repository and build the index."""
    root = Path(path or ".").resolve()
    if not root.exists():
        console.error(f"Path does not exist: {root}")
        sys.exit(1)

    console.banner()
    console.info(f"Initializing ctxengine for: {root}")

    config = _load_config(root)
    config.name = root.name
    config.root_path = str(root)
    save_config(root, config)
    console.success("Configuration saved")

    _do_refresh(root, full=True, exclusions=())


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--full", is_flag=True, help="Re-read every file instead of only changed ones.")
@click.option("--exclude", "-x", multiple=True, help="Extra exclusion pattern (repeatable).")
def refresh(path: str | None, full: bool, exclude: tuple[str, ...]):
    """Update the file index (incremental by default)."""
    root = _get_project_root(path)
    _do_refresh(root, full=full, exclusions=exclude)


def _do_refresh(root: Path, full: bool, exclusions: tuple[str, ...]):
    engine = _engine(root)
    start_time = time.time()
    with console.status("Indexing files..."):
        result = engine.refresh_index(exclusions=list(exclusions) or None, full=full)
    console.show_refresh(result, time.time() - start_time)


@main.command()
@click.argument("pattern")
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--task", "-t", default=None, help="Task label (improves scoring and suggestions).")
@click.option("--budget", "-b", default=None, type=int, help="Unit budget (default from config).")
@click.option(
    "--compress", "-c",
    type=click.Choice([m.value for m in CompressionMode]),
    default=None,
    help="Which files may be compressed (default from config).",
)
@click.option("--no-refresh", is_flag=True, help="Use the index as-is.")
@click.option("--summary", is_flag=True, help="Only show the selection, not file contents.")
def context(
    pattern: str, path: str | None, task: str | None, budget: int | None,
    compress: str | None, no_refresh: bool, summary: bool,
):
    """Assemble context for PATTERN within a unit budget.

    PATTERN is a path substring or glob; several words match any of them.

    Examples:

        ctxengine context auth --task "fix login redirect"

        ctxengine context "src/**/*.ts" --budget 4000 --compress all
    """
    root = _get_project_root(path)
    engine = _engine(root)
    try:
        result = engine.assemble_context(
            pattern,
            task_label=task,
            budget_units=budget,
            compress=compress,
            refresh=not no_refresh,
        )
    except AssemblyError as e:
        console.error(f"Context assembly failed in stage '{e.stage}': {e}")
        sys.exit(1)

    if not result.files:
        console.warning(f"No files match '{pattern}'.")
        return

    console.show_context(result)
    if not summary:
        click.echo(result.render())


@main.command()
@click.argument("changed", nargs=-1)
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option(
    "--offered", "-o", multiple=True,
    help="Offered file (repeatable). Defaults to the last assembled context.",
)
@click.option("--task", "-t", default=None, help="Task label for this session.")
@click.option("--duration", type=float, default=None, help="Session duration in seconds.")
def record(
    changed: tuple[str, ...], path: str | None, offered: tuple[str, ...],
    task: str | None, duration: float | None,
):
    """Record which files were CHANGED after a context was offered."""
    root = _get_project_root(path)
    engine = _engine(root)
    if not offered and engine.last_context() is None:
        console.warning("No previous context found; recording changes without offered files.")
    meta = {"duration": duration} if duration is not None else None
    report = engine.record_usage(list(offered) or None, list(changed), task, meta)
    console.show_usage_report(report)


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
def stats(path: str | None):
    """Show index and usage statistics."""
    root = _get_project_root(path)
    engine = _engine(root)
    console.show_stats(engine.get_stats())


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--min", "min_occurrences", type=int, default=None,
              help="Minimum occurrences to keep a pattern (default from config).")
def prune(path: str | None, min_occurrences: int | None):
    """Discard weak usage patterns."""
    root = _get_project_root(path)
    engine = _engine(root)
    removed = engine.prune_patterns(min_occurrences)
    console.success(f"Pruned {removed} pattern(s)")


# =========================================================================
# Config Management
# =========================================================================

@main.command("config")
@click.argument("action", type=click.Choice(["set", "get", "show"]))
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--path", "-p", default=None, help="Path to the project root.")
def config_cmd(action: str, key: str | None, value: str | None, path: str | None):
    """Manage ctxengine configuration."""
    root = _get_project_root(path)
    config = _load_config(root)

    if action == "show":
        console.console.print_json(json.dumps(config.model_dump(mode="json"), indent=2))
    elif action == "get":
        if not key:
            console.error("Usage: ctxengine config get <key>")
            sys.exit(1)
        data = config.model_dump(mode="json")
        for part in key.split("."):
            if isinstance(data, dict) and part in data:
                data = data[part]
            else:
                console.error(f"Unknown key: {key}")
                sys.exit(1)
        console.console.print(f"{key} = {data}")
    elif action == "set":
        if not key or value is None:
            console.error("Usage: ctxengine config set <key> <value>")
            sys.exit(1)
        try:
            # Try to parse as JSON for non-string values
            try:
                parsed_value = json.loads(value)
            except json.JSONDecodeError:
                parsed_value = value

            config = set_config_value(config, key, parsed_value)
            save_config(root, config)
            console.success(f"Set {key} = {parsed_value}")
        except KeyError:
            console.error(f"Unknown config key: {key}")
            sys.exit(1)
        except ConfigError as e:
            console.error(str(e))
            sys.exit(1)


if __name__ == "__main__":
    main()

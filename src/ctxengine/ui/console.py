"""Rich-powered console output for ctxengine."""

from __future__ import annotations

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.status import Status
from rich.table import Table

from ctxengine import __version__
from ctxengine.context.models import ContextResult, EngineStats, Provenance
from ctxengine.feedback.models import UsageReport
from ctxengine.index.models import RefreshResult

_PROVENANCE_STYLE = {
    Provenance.DIRECT: "green",
    Provenance.DEPENDENCY: "cyan",
    Provenance.USAGE: "magenta",
}


class Console:
    """Terminal output for ctxengine using Rich."""

    def __init__(self, stderr: bool = False) -> None:
        self.console = RichConsole(stderr=stderr)

    def banner(self) -> None:
        self.console.print(
            Panel(
                f"[bold cyan]ctxengine[/bold cyan] [dim]v{__version__}[/dim]\n"
                "[dim]Budgeted, usage-aware context assembly[/dim]",
                border_style="cyan",
                padding=(1, 2),
            )
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    def status(self, message: str) -> Status:
        """Spinner shown while a long operation runs."""
        return self.console.status(message, spinner="dots")

    def show_refresh(self, result: RefreshResult, elapsed: float) -> None:
        if result.rebuilt:
            self.info("Index was missing or corrupt; rebuilt from scratch")
        if result.cancelled:
            self.warning("Refresh cancelled before completion")
        if not result.updated and not result.deleted:
            self.success(f"Index up to date ({result.source}, {elapsed:.1f}s)")
        else:
            self.success(
                f"Indexed {len(result.updated)} updated, {len(result.deleted)} deleted "
                f"file(s) via {result.source} in {elapsed:.1f}s"
            )
        for path in result.skipped:
            self.warning(f"Skipped unreadable file: {path}")

    def show_context(self, result: ContextResult) -> None:
        """Selection table for an assembled context."""
        table = Table(
            title=f"Context for: {result.pattern}",
            caption=(
                f"{result.total_units:,} / {result.budget_units:,} units "
                f"({result.budget_used_pct:.0f}%), {result.candidates_considered} candidates"
            ),
            border_style="cyan",
        )
        table.add_column("File", style="bold")
        table.add_column("Provenance")
        table.add_column("Score", justify="right")
        table.add_column("Units", justify="right", style="cyan")

        for f in result.files:
            style = _PROVENANCE_STYLE[f.provenance]
            name = f.path + (" [dim](compressed)[/dim]" if f.compressed else "")
            table.add_row(
                name,
                f"[{style}]{f.provenance.value}[/{style}]",
                f"{f.score:.2f}",
                f"{f.units:,}",
            )
        self.console.print(table)
        for w in result.warnings:
            self.warning(w.message)

    def show_usage_report(self, report: UsageReport) -> None:
        self.success(f"Recorded usage: {report.useful_count} useful, {report.wasted_count} wasted")
        for path in report.useful_files:
            self.console.print(f"  [green]+[/green] {path}")
        related = set(report.related_files)
        for path in report.wasted_files:
            mark = "~" if path in related else "-"
            self.console.print(f"  [dim]{mark}[/dim] [dim]{path}[/dim]")

    def show_stats(self, stats: EngineStats) -> None:
        """Display index and feedback statistics."""
        table = Table(title="Context Engine Statistics", border_style="cyan")
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right", style="cyan")

        table.add_row("Indexed files", f"{stats.index_size:,}")
        table.add_row("Total units", f"{stats.total_units:,}")
        table.add_row("Total size", f"{stats.total_size:,} bytes")
        table.add_row("Usage events", f"{stats.total_events:,}")
        table.add_row("Usage patterns", f"{stats.total_patterns:,}")
        if stats.avg_usefulness is not None:
            table.add_row("Avg usefulness", f"{stats.avg_usefulness:.0%}")

        if stats.by_language:
            table.add_section()
            for lang, count in sorted(stats.by_language.items(), key=lambda x: (-x[1], x[0])):
                table.add_row(f"  {lang}", str(count))
        self.console.print(table)

        for title, rows in (("Most useful", stats.top_useful), ("Most wasted", stats.top_wasted)):
            if not rows:
                continue
            usage = Table(title=title, border_style="dim")
            usage.add_column("File")
            usage.add_column("Used / Loaded", justify="right")
            usage.add_column("Ratio", justify="right")
            for r in rows:
                usage.add_row(r.path, f"{r.used} / {r.loaded}", f"{r.ratio:.0%}")
            self.console.print(usage)

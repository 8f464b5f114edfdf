"""
Terminal output that works for people, agents and shell scripts.

Every command reports through the helpers in this module, which look at the
process-wide output_mode set by the CLI flags:

    text (default)   Rich spinners, progress bar, colored tables and panels
    json (--format)  nothing is printed until flush_json() writes one JSON
                     document to stdout; no ANSI codes
    quiet (--quiet)  bare tab-separated values, errors still go to stderr

Typical command body:
    >>> with spinner("Checking backend..."):
    ...     health = asyncio.run(client.check_health())
    >>> success("Backend is healthy")   # printed, or buffered in json mode
    >>> output_mode.flush_json()        # no-op unless json mode
"""

import json
import sys
from contextlib import contextmanager
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from geo_tracker.api.models import QueryResult, RunSummary
from geo_tracker.report.formatting import (
    format_duration,
    format_percent,
    format_sentiment,
    sentiment_label,
    truncate_text,
    visibility_level,
)
from geo_tracker.report.presenter import CompetitorStat, SourceDomainStat

FORMATS = ("text", "json")

VISIBILITY_STYLES = {"high": "green", "medium": "yellow", "low": "red"}
SENTIMENT_STYLES = {"positive": "green", "neutral": "yellow", "negative": "red"}


def _check_format(format_type: str) -> str:
    if format_type not in FORMATS:
        raise ValueError(f"Invalid format: {format_type}. Must be 'text' or 'json'")
    return format_type


class OutputMode:
    """
    Current output format plus the JSON document being assembled.

    Attributes:
        format: "text" or "json"
        quiet: Tab-separated output without decorations (text format only)
    """

    def __init__(self, format_type: str = "text", quiet: bool = False):
        self.format = _check_format(format_type)
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        return self.format == "text"

    def is_agent(self) -> bool:
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        """Set a top-level key of the pending JSON document (last write wins)."""
        self._json_buffer[key] = value

    def flush_json(self) -> None:
        """Write the pending JSON document to stdout and start a new one (json mode only)."""
        if not self.is_agent() or not self._json_buffer:
            return
        json.dump(self._json_buffer, sys.stdout, indent=2, default=str)
        sys.stdout.write("\n")
        sys.stdout.flush()
        self._json_buffer.clear()

    def reset(self, format_type: str = "text", quiet: bool = False) -> None:
        """Switch mode and drop anything buffered by a previous command."""
        self.format = _check_format(format_type)
        self.quiet = quiet
        self._json_buffer.clear()


# Set once per invocation by the CLI callback
output_mode = OutputMode()

console = Console()
console_err = Console(stderr=True)


def _decorated() -> bool:
    """Spinners, colors and info lines are shown only in plain text mode."""
    return output_mode.is_human() and not output_mode.quiet


class NoOpProgress:
    """Stand-in for rich.progress.Progress when nothing may be drawn."""

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return None

    def add_task(self, _description: str, total: float | None = None, **_fields) -> int:
        return 0

    def advance(self, _task_id: int, _advance: float = 1.0) -> None:
        return None

    def update(self, _task_id: int, **_fields) -> None:
        return None


@contextmanager
def spinner(message: str):
    """Show a spinner while the block runs; yields None when nothing is drawn."""
    if not _decorated():
        yield None
        return
    with console.status(f"[bold blue]{message}", spinner="dots") as status:
        yield status


def create_progress_bar() -> Progress | NoOpProgress:
    """
    Progress bar for a run's tasks (spinner, bar, percent, elapsed time).

    The total may stay None until the backend reports how many tasks the job
    has; Rich then shows an indeterminate bar.
    """
    if not _decorated():
        return NoOpProgress()
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def success(message: str) -> None:
    """Green check in text mode; sets status/message in json mode."""
    if output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)
        return
    if not output_mode.quiet:
        console.print(f"[green]✓[/green] {message}")


def error(message: str) -> None:
    """
    Report a failure.

    Printed to stderr in text mode even when quiet, so scripts still see why
    a command failed. In json mode it sets status/error instead.
    """
    if output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("error", message)
        return
    console_err.print(f"[red]✗[/red] {message}", style="red")


def warning(message: str) -> None:
    if output_mode.is_agent():
        output_mode.add_json("warning", message)
        return
    if not output_mode.quiet:
        console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")


def info(message: str) -> None:
    """Secondary detail; dropped outside plain text mode."""
    if _decorated():
        console.print(f"[blue]ℹ[/blue] {message}")


def print_banner(version: str) -> None:
    if not _decorated():
        return
    width = 39
    console.print(
        f"\n[bold cyan]╔{'═' * width}╗\n"
        f"║   GEO Tracker v{version:<22} ║\n"
        f"║   Brand visibility in AI answers      ║\n"
        f"╚{'═' * width}╝[/bold cyan]\n"
    )




def _visibility_markup(value: float | None) -> str:
    if value is None:
        return format_percent(None)
    style = VISIBILITY_STYLES[visibility_level(value)]
    return f"[{style}]{format_percent(value)}[/{style}]"


def _sentiment_markup(value: float | None) -> str:
    label = sentiment_label(value)
    if label is None:
        return format_sentiment(None)
    style = SENTIMENT_STYLES[label]
    return f"[{style}]{format_sentiment(value)}[/{style}]"


def print_run_summary(summary: RunSummary) -> None:
    """
    Print the headline numbers of a completed run.

    Human mode: Panel with visibility, sentiment, counts and a
    per-provider visibility table
    Agent mode: Buffer the summary as JSON
    Quiet mode: visibility, sentiment, queries, responses (tab-separated)
    """
    if output_mode.is_agent():
        output_mode.add_json("summary", summary.model_dump(mode="json"))
        return

    if output_mode.quiet:
        sentiment = "" if summary.avg_sentiment is None else f"{summary.avg_sentiment:.3f}"
        print(
            f"{summary.overall_visibility:.1f}\t{sentiment}\t"
            f"{summary.total_queries}\t{summary.total_responses}"
        )
        return

    text = f"""
[bold]Brand:[/bold] {summary.brand_name}
[bold]Visibility:[/bold] {_visibility_markup(summary.overall_visibility)}
[bold]Sentiment:[/bold] {_sentiment_markup(summary.avg_sentiment)}
[bold]Queries:[/bold] {summary.total_queries}   [bold]Responses:[/bold] {summary.total_responses}
[bold]Duration:[/bold] {format_duration(summary.duration_seconds)}
"""
    console.print(
        Panel(text.strip(), title="[bold]Run Summary[/bold]", box=box.ROUNDED)
    )

    if summary.provider_visibility:
        table = Table(title="Visibility by Provider", box=box.ROUNDED)
        table.add_column("Provider", style="cyan", no_wrap=True)
        table.add_column("Visibility", justify="right")
        for provider, value in sorted(
            summary.provider_visibility.items(), key=lambda item: item[1], reverse=True
        ):
            table.add_row(provider, _visibility_markup(value))
        console.print(table)


def print_competitor_table(stats: list[CompetitorStat]) -> None:
    """Print the competitor ranking (JSON key "competitors" in agent mode)."""
    if output_mode.is_agent():
        output_mode.add_json(
            "competitors",
            [
                {"name": s.name, "count": s.count, "visibility_pct": s.visibility_pct}
                for s in stats
            ],
        )
        return

    if output_mode.quiet:
        for s in stats:
            print(f"{s.name}\t{s.count}\t{s.visibility_pct:.1f}")
        return

    if not stats:
        info("No competitor brands detected")
        return

    table = Table(title="Competitors Mentioned", box=box.ROUNDED)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Brand", style="cyan")
    table.add_column("Mentions", justify="right", style="magenta")
    table.add_column("Visibility", justify="right", style="green")

    for rank, s in enumerate(stats, start=1):
        table.add_row(str(rank), s.name, str(s.count), format_percent(s.visibility_pct))

    console.print(table)


def print_source_table(stats: list[SourceDomainStat]) -> None:
    """Print the cited-domain ranking (JSON key "sources" in agent mode)."""
    if output_mode.is_agent():
        output_mode.add_json(
            "sources",
            [
                {"domain": s.domain, "count": s.count, "sample_urls": list(s.sample_urls)}
                for s in stats
            ],
        )
        return

    if output_mode.quiet:
        for s in stats:
            print(f"{s.domain}\t{s.count}")
        return

    if not stats:
        info("No sources cited")
        return

    table = Table(title="Top Cited Sources", box=box.ROUNDED)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Domain", style="cyan")
    table.add_column("Citations", justify="right", style="magenta")
    table.add_column("Examples", style="dim")

    for rank, s in enumerate(stats, start=1):
        table.add_row(
            str(rank),
            s.domain,
            str(s.count),
            "\n".join(truncate_text(url, 60) for url in s.sample_urls),
        )

    console.print(table)


def print_results_table(results: list[QueryResult]) -> None:
    """Print per-query results (JSON key "results" in agent mode)."""
    if output_mode.is_agent():
        output_mode.add_json("results", [r.model_dump(mode="json") for r in results])
        return

    if output_mode.quiet:
        for r in results:
            mentioned = "1" if r.brand_mentioned else "0"
            print(f"{r.prompt_id or ''}\t{r.provider}\t{mentioned}\t{r.question}")
        return

    table = Table(title=f"Detailed Results ({len(results)})", box=box.ROUNDED)
    table.add_column("Question", style="cyan", max_width=50)
    table.add_column("Provider", style="magenta", no_wrap=True)
    table.add_column("Mentioned", justify="center")
    table.add_column("Sentiment", justify="center")
    table.add_column("Competitors", style="dim", max_width=30)

    for r in results:
        mentioned = "[green]✓[/green]" if r.brand_mentioned else "[red]✗[/red]"
        table.add_row(
            truncate_text(r.question, 80),
            r.provider,
            mentioned,
            _sentiment_markup(r.sentiment),
            ", ".join(r.other_brands_detected) or "-",
        )

    console.print(table)


def print_final_summary(
    job_id: str,
    state: str,
    message: str | None = None,
    results_count: int | None = None,
    report_path: str | None = None,
) -> None:
    """
    Print the final outcome of a run and flush agent output.

    Human mode: Panel, green for completed with results, yellow for
    completed without detailed results, red otherwise
    Agent mode: Add final fields and flush all buffered JSON
    Quiet mode: job_id, state, results count (tab-separated)
    """
    if output_mode.is_agent():
        output_mode.add_json("job_id", job_id)
        output_mode.add_json("state", state)
        if message:
            output_mode.add_json("message", message)
        output_mode.add_json("results_count", results_count)
        if report_path:
            output_mode.add_json("report_path", report_path)
        output_mode.flush_json()
        return

    if output_mode.quiet:
        count = "" if results_count is None else str(results_count)
        print(f"{job_id}\t{state}\t{count}")
        return

    lines = [f"[bold]Job ID:[/bold] {job_id}", f"[bold]State:[/bold] {state}"]
    if results_count is not None:
        lines.append(f"[bold]Results:[/bold] {results_count}")
    if message:
        lines.append(f"[bold]Detail:[/bold] {message}")
    if report_path:
        lines.append(f"[bold]Report:[/bold] {report_path}")

    if state == "completed" and results_count is not None:
        border_style = "green"
        title = "[bold green]✓ Run Completed[/bold green]"
    elif state == "completed":
        border_style = "yellow"
        title = "[bold yellow]⚠ Run Completed without Detailed Results[/bold yellow]"
    else:
        border_style = "red"
        title = f"[bold red]✗ Run {state.capitalize()}[/bold red]"

    console.print(
        Panel("\n".join(lines), title=title, border_style=border_style, box=box.ROUNDED)
    )

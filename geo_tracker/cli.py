"""
CLI entrypoint for the GEO Tracker client.

Provides a dual-mode command-line interface with:
- Human-friendly output: Rich spinners, tables, progress bars, colored text
- Agent-friendly output: Structured JSON for AI automation
- Quiet mode: Tab-separated minimal output for shell scripts

Commands:
    health: Check the backend is reachable
    validate: Validate a run configuration without submitting it
    run: Submit a run, follow its progress and show the results
    status / results / cancel / runs: Inspect and control existing jobs
    queries: Parse, sample, generate or import questions
    report: AI-written visibility report for a job
    brands: Tracked brand history (list, detail, delete)
    login / logout / whoami: Session management
    admin: Lead management (admin users only)

Exit codes:
    0: Success
    1: Configuration, validation or session error
    2: Transport error (backend unreachable or request rejected)
    3: Run completed without detailed results
    4: Run failed or was cancelled

Examples:
    # Human-friendly output with a live progress bar
    geo-tracker run --config run.config.yaml

    # Agent-friendly JSON output (no spinners, no colors)
    geo-tracker --format json run --config run.config.yaml

    # Submit and return immediately, check later
    geo-tracker run --config run.config.yaml --no-wait
    geo-tracker status <job_id>

Security:
    - Session tokens are stored with 0600 permissions and never printed
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.markdown import Markdown
from rich.table import Table
from rich.traceback import install as install_rich_traceback

from geo_tracker.api.client import GeoTrackerClient
from geo_tracker.api.models import LEAD_STATUSES, RunHandle, RunProgress, RunResults
from geo_tracker.auth.session import SessionContext, SessionStore
from geo_tracker.config.constants import (
    DEFAULT_QUESTION_COUNT,
    SUPPORTED_PROVIDERS,
)
from geo_tracker.config.loader import load_run_config
from geo_tracker.config.schema import RunConfig
from geo_tracker.config.settings import ClientSettings, load_settings
from geo_tracker.exceptions import (
    AuthenticationError,
    ConfigurationError,
    GeoTrackerError,
    JobFailedError,
    PermissionDeniedError,
    TransportError,
    ValidationError,
)
from geo_tracker.orchestrator import RunOrchestrator
from geo_tracker.queries import (
    generate_queries_with_fallback,
    get_sample_queries_for_industry,
    load_queries_file,
)
from geo_tracker.report.formatting import format_percent, truncate_text
from geo_tracker.report.generator import write_report
from geo_tracker.report.presenter import ResultsView
from geo_tracker.utils.console import (
    console,
    create_progress_bar,
    error,
    info,
    output_mode,
    print_banner,
    print_competitor_table,
    print_final_summary,
    print_results_table,
    print_run_summary,
    print_source_table,
    spinner,
    success,
    warning,
)
from geo_tracker.utils.logging import setup_logging

# Install Rich tracebacks for better error messages
install_rich_traceback(show_locals=False)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1  # Config, validation or session problem
EXIT_TRANSPORT_ERROR = 2  # Backend unreachable or request rejected
EXIT_NO_RESULTS = 3  # Completed, detailed results unavailable
EXIT_RUN_FAILED = 4  # Job failed or was cancelled

PACKAGE_NAME = "geo-tracker-client"

app = typer.Typer(
    name="geo-tracker",
    help="Track how AI assistants talk about your brand",
    add_completion=False,
)


@dataclass
class CLIState:
    """Per-invocation state shared by all commands."""

    settings: ClientSettings
    verbose: bool = False


def _fail(message: str, exit_code: int) -> NoReturn:
    """Report an error, flush agent output and exit."""
    error(message)
    output_mode.flush_json()
    raise typer.Exit(exit_code)


def _state(ctx: typer.Context) -> CLIState:
    return ctx.find_root().obj


def _session(state: CLIState) -> SessionContext:
    client = GeoTrackerClient.from_settings(state.settings)
    return SessionContext(client, SessionStore(state.settings.session_file))


def _client(state: CLIState) -> GeoTrackerClient:
    """Backend client, carrying the stored session token if there is one."""
    stored = SessionStore(state.settings.session_file).load()
    token = stored.token if stored else None
    return GeoTrackerClient.from_settings(state.settings, token=token)


# ============================================================================
# Health and configuration
# ============================================================================


@app.command()
def health(ctx: typer.Context):
    """
    Check that the backend is reachable and list its providers.

    Exit codes:
      0: Backend is healthy
      2: Backend unreachable or unhealthy
    """
    state = _state(ctx)
    client = _client(state)

    try:
        with spinner("Checking backend..."):
            result = asyncio.run(client.check_health())
    except TransportError as e:
        _fail(f"Backend unreachable at {client.base_url}: {e}", EXIT_TRANSPORT_ERROR)

    if output_mode.is_agent():
        output_mode.add_json("health", result.model_dump(mode="json"))
    elif output_mode.quiet:
        print(f"{result.status}\t{result.version}\t{','.join(result.providers_available)}")

    if result.status not in ("ok", "healthy"):
        _fail(f"Backend reports status: {result.status}", EXIT_TRANSPORT_ERROR)

    success(f"Backend is {result.status} (version {result.version or 'unknown'})")
    if result.providers_available:
        info(f"Providers available: {', '.join(result.providers_available)}")
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def validate(
    ctx: typer.Context,
    config: Path = typer.Option(
        ...,
        "--config",
        "-c",
        help="Path to run configuration YAML",
    ),
):
    """
    Validate a run configuration without submitting it.

    Checks YAML syntax, field values, the queries file, and that the run
    would pass the pre-submission checks (brand name and queries present).

    Exit codes:
      0: Configuration is valid
      1: Configuration is invalid
    """
    try:
        with spinner("Validating configuration..."):
            run_config = load_run_config(config)
            run_config.validate_for_submission()
    except (ConfigurationError, ValidationError) as e:
        if output_mode.is_agent():
            output_mode.add_json("valid", False)
        _fail(f"Validation failed: {e}", EXIT_CONFIG_ERROR)

    success("Configuration is valid")
    info(f"Brand: {run_config.brand_name}")
    info(f"Providers: {', '.join(run_config.providers)}")
    info(f"Queries: {len(run_config.queries)}")

    if output_mode.is_agent():
        output_mode.add_json("valid", True)
        output_mode.add_json("brand_name", run_config.brand_name)
        output_mode.add_json("providers", list(run_config.providers))
        output_mode.add_json("queries_count", len(run_config.queries))
        output_mode.flush_json()
    elif output_mode.quiet:
        print(f"{run_config.brand_name}\t{len(run_config.queries)}\t{len(run_config.providers)}")

    raise typer.Exit(EXIT_SUCCESS)


# ============================================================================
# Runs
# ============================================================================


@dataclass
class RunOutcome:
    """Final observable state of an orchestrated run."""

    state: str
    handle: RunHandle | None
    results: RunResults | None
    error: GeoTrackerError | None


async def _execute_run(
    client: GeoTrackerClient,
    run_config: RunConfig,
    poll_interval: float,
    wait: bool,
) -> RunOutcome:
    progress_bar = create_progress_bar()

    async with RunOrchestrator(client, poll_interval=poll_interval) as orchestrator:
        handle = await orchestrator.submit(run_config)
        if not wait:
            return RunOutcome(orchestrator.state, handle, None, None)

        with progress_bar:
            task_id = progress_bar.add_task("Waiting for backend", total=None)

            def show_progress(progress: RunProgress) -> None:
                done = progress.completed_tasks + progress.failed_tasks
                description = f"{progress.status}"
                if progress.current_provider:
                    description += f" [{progress.current_provider}]"
                progress_bar.update(
                    task_id,
                    total=progress.total_tasks or None,
                    completed=done,
                    description=description,
                )

            orchestrator.add_observer(show_progress)
            state = await orchestrator.wait()

        return RunOutcome(state, orchestrator.handle, orchestrator.results, orchestrator.error)


def _present_results(
    results: RunResults,
    details: bool,
    provider: str,
) -> None:
    view = ResultsView(results.results)
    print_run_summary(results.summary)
    print_competitor_table(view.competitors)
    print_source_table(view.source_domains)
    if details:
        print_results_table(view.for_provider(provider))


def _write_html(results: RunResults, html: Path, brand_name: str, job_id: str, provider: str) -> str | None:
    try:
        with spinner("Generating report..."):
            path = write_report(
                results, html, brand_name=brand_name, job_id=job_id, provider_filter=provider
            )
    except (ValueError, OSError) as e:
        warning(f"Could not write HTML report: {e}")
        return None
    return str(path)


@app.command()
def run(
    ctx: typer.Context,
    config: Path = typer.Option(
        ...,
        "--config",
        "-c",
        help="Path to run configuration YAML",
    ),
    html: Path | None = typer.Option(
        None,
        "--html",
        help="Write an HTML report to this file or directory",
    ),
    details: bool = typer.Option(
        False,
        "--details",
        "-d",
        help="Show the per-query results table",
    ),
    provider: str = typer.Option(
        "all",
        "--provider",
        "-p",
        help="Limit detailed results to one provider",
    ),
    no_wait: bool = typer.Option(
        False,
        "--no-wait",
        help="Return right after submission without polling",
    ),
):
    """
    Submit a run and follow it until it finishes.

    This command will:
    1. Load and validate your run configuration
    2. Submit the queries to the backend
    3. Poll job status every couple of seconds with a live progress bar
    4. Show visibility, competitors and cited sources

    Exit codes:
      0: Run completed with results (or submitted with --no-wait)
      1: Configuration or validation error
      2: Transport error
      3: Run completed without detailed results
      4: Run failed or was cancelled
    """
    state = _state(ctx)
    print_banner(_read_version())

    try:
        with spinner("Loading configuration..."):
            run_config = load_run_config(config)
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}", EXIT_CONFIG_ERROR)

    success(
        f"Loaded {len(run_config.queries)} queries for {run_config.brand_name} "
        f"on {', '.join(run_config.providers)}"
    )
    info(f"Will execute {len(run_config.queries) * len(run_config.providers)} tasks")

    client = _client(state)
    try:
        outcome = asyncio.run(
            _execute_run(
                client,
                run_config,
                poll_interval=state.settings.poll_interval_seconds,
                wait=not no_wait,
            )
        )
    except ValidationError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)
    except TransportError as e:
        _fail(f"Submission failed: {e}", EXIT_TRANSPORT_ERROR)

    job_id = outcome.handle.job_id if outcome.handle else ""

    if no_wait:
        success(f"Run submitted: {job_id}")
        info(f"Check progress with: geo-tracker status {job_id}")
        if output_mode.is_agent():
            output_mode.add_json("job_id", job_id)
            output_mode.add_json("run_id", outcome.handle.run_id)
            output_mode.flush_json()
        elif output_mode.quiet:
            print(job_id)
        raise typer.Exit(EXIT_SUCCESS)

    if outcome.state == "completed" and outcome.results is not None:
        _present_results(outcome.results, details, provider)
        report_path = None
        if html is not None:
            report_path = _write_html(
                outcome.results, html, run_config.brand_name, job_id, provider
            )
        print_final_summary(
            job_id,
            outcome.state,
            results_count=len(outcome.results.results),
            report_path=report_path,
        )
        raise typer.Exit(EXIT_SUCCESS)

    if outcome.state == "completed":
        warning("Run completed but detailed results are unavailable")
        print_final_summary(job_id, outcome.state)
        raise typer.Exit(EXIT_NO_RESULTS)

    message = str(outcome.error) if outcome.error else f"Run {outcome.state}"
    error(message)
    print_final_summary(job_id, outcome.state, message=message)
    if isinstance(outcome.error, JobFailedError):
        raise typer.Exit(EXIT_RUN_FAILED)
    raise typer.Exit(EXIT_TRANSPORT_ERROR)


@app.command()
def status(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job identifier returned by 'run'"),
):
    """Show the current status of a job."""
    client = _client(_state(ctx))

    try:
        with spinner("Fetching status..."):
            progress = asyncio.run(client.get_run_status(job_id))
    except TransportError as e:
        _fail(f"Could not fetch status: {e}", EXIT_TRANSPORT_ERROR)

    if output_mode.is_agent():
        output_mode.add_json("job_id", job_id)
        output_mode.add_json("progress", progress.model_dump(mode="json"))
        output_mode.flush_json()
    elif output_mode.quiet:
        print(
            f"{job_id}\t{progress.status}\t{progress.completed_tasks}\t"
            f"{progress.failed_tasks}\t{progress.total_tasks}"
        )
    else:
        console.print(f"[bold]Job:[/bold] {job_id}")
        console.print(f"[bold]Status:[/bold] {progress.status}")
        console.print(
            f"[bold]Tasks:[/bold] {progress.completed_tasks} completed, "
            f"{progress.failed_tasks} failed, {progress.total_tasks} total "
            f"({format_percent(progress.progress_percent)})"
        )
        if progress.current_provider:
            console.print(f"[bold]Provider:[/bold] {progress.current_provider}")
        if progress.current_query:
            console.print(f"[bold]Query:[/bold] {truncate_text(progress.current_query, 80)}")
        if progress.error_headline:
            console.print(f"[bold red]Error:[/bold red] {progress.error_headline}")

    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def results(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job identifier"),
    details: bool = typer.Option(False, "--details", "-d", help="Show per-query results"),
    provider: str = typer.Option("all", "--provider", "-p", help="Limit detailed results to one provider"),
    html: Path | None = typer.Option(None, "--html", help="Write an HTML report to this file or directory"),
):
    """Show the results of a completed job."""
    client = _client(_state(ctx))

    async def _load() -> RunResults:
        async with RunOrchestrator(client) as orchestrator:
            return await orchestrator.load_results(job_id)

    try:
        with spinner("Fetching results..."):
            run_results = asyncio.run(_load())
    except TransportError as e:
        _fail(f"Results unavailable for {job_id}: {e}", EXIT_TRANSPORT_ERROR)

    _present_results(run_results, details, provider)
    report_path = None
    if html is not None:
        report_path = _write_html(
            run_results, html, run_results.summary.brand_name, job_id, provider
        )
    print_final_summary(
        job_id, "completed", results_count=len(run_results.results), report_path=report_path
    )
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def cancel(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job identifier"),
):
    """
    Ask the backend to cancel a job (best effort).

    The job reports "cancelled" once the backend has stopped it.
    """
    client = _client(_state(ctx))

    async def _cancel() -> str:
        async with RunOrchestrator(client) as orchestrator:
            return await orchestrator.cancel(job_id)

    try:
        message = asyncio.run(_cancel())
    except TransportError as e:
        _fail(f"Cancel request failed: {e}", EXIT_TRANSPORT_ERROR)

    success(message or f"Cancellation requested for {job_id}")
    if output_mode.is_agent():
        output_mode.add_json("job_id", job_id)
        output_mode.flush_json()
    elif output_mode.quiet:
        print(job_id)
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def runs(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of runs to list"),
):
    """List recent runs."""
    client = _client(_state(ctx))

    try:
        with spinner("Fetching runs..."):
            records = asyncio.run(client.list_runs(limit=limit))
    except TransportError as e:
        _fail(f"Could not list runs: {e}", EXIT_TRANSPORT_ERROR)

    if output_mode.is_agent():
        output_mode.add_json("runs", records)
        output_mode.flush_json()
        raise typer.Exit(EXIT_SUCCESS)

    if output_mode.quiet:
        for record in records:
            print(
                f"{record.get('job_id', '')}\t{record.get('status', '')}\t"
                f"{record.get('brand_name', '')}"
            )
        raise typer.Exit(EXIT_SUCCESS)

    if not records:
        info("No runs yet")
        raise typer.Exit(EXIT_SUCCESS)

    table = Table(title=f"Recent Runs ({len(records)})")
    table.add_column("Job", style="cyan", no_wrap=True)
    table.add_column("Brand", style="magenta")
    table.add_column("Status")
    table.add_column("Started", style="dim")
    for record in records:
        table.add_row(
            str(record.get("job_id", "")),
            str(record.get("brand_name", "")),
            str(record.get("status", "")),
            str(record.get("started_at") or record.get("created_at") or ""),
        )
    console.print(table)
    raise typer.Exit(EXIT_SUCCESS)


# ============================================================================
# Queries
# ============================================================================

queries_app = typer.Typer(help="Build the list of questions for a run")
app.add_typer(queries_app, name="queries")


def _print_questions(questions: list[str], title: str) -> None:
    if output_mode.is_agent():
        output_mode.add_json("queries", questions)
        return
    if output_mode.quiet:
        for question in questions:
            print(question)
        return

    table = Table(title=f"{title} ({len(questions)})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Question", style="cyan")
    for index, question in enumerate(questions, start=1):
        table.add_row(str(index), question)
    console.print(table)


def _write_questions(questions: list[str], output: Path | None) -> None:
    if output is None:
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text("\n".join(questions) + "\n", encoding="utf-8")
    success(f"Wrote {len(questions)} queries to {output}")


@queries_app.command("parse")
def queries_parse(
    file: Path = typer.Argument(..., help="Text file with one question per line"),
):
    """Show the queries a text file produces."""
    try:
        parsed = load_queries_file(file)
    except FileNotFoundError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)

    if output_mode.is_agent():
        output_mode.add_json("queries", [q.model_dump() for q in parsed])
        output_mode.flush_json()
        raise typer.Exit(EXIT_SUCCESS)

    if output_mode.quiet:
        for q in parsed:
            print(f"{q.prompt_id}\t{q.question}")
        raise typer.Exit(EXIT_SUCCESS)

    table = Table(title=f"Queries ({len(parsed)})")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Question", style="cyan")
    for q in parsed:
        table.add_row(q.prompt_id, q.question)
    console.print(table)
    raise typer.Exit(EXIT_SUCCESS)


@queries_app.command("samples")
def queries_samples(
    industry: str = typer.Option("", "--industry", "-i", help="Industry (e.g. 'saas', 'finance')"),
    language: str = typer.Option("en", "--language", "-l", help="Language code"),
    count: int | None = typer.Option(None, "--count", "-n", min=1, help="Maximum number of queries"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the queries to a file"),
):
    """Show the built-in sample queries for an industry."""
    questions = get_sample_queries_for_industry(industry, language)
    if count is not None:
        questions = questions[:count]

    _print_questions(questions, "Sample Queries")
    _write_questions(questions, output)
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@queries_app.command("generate")
def queries_generate(
    ctx: typer.Context,
    brand: str = typer.Option(..., "--brand", "-b", help="Brand name"),
    industry: str = typer.Option("", "--industry", "-i", help="Industry"),
    description: str = typer.Option("", "--description", help="Business context"),
    language: str = typer.Option("en", "--language", "-l", help="Language code"),
    market: str = typer.Option("DE", "--market", "-m", help="Market code (e.g. DE, US)"),
    count: int = typer.Option(DEFAULT_QUESTION_COUNT, "--count", "-n", min=1, help="Number of queries"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the queries to a file"),
):
    """
    Generate queries with the backend, falling back to sample queries.

    Never fails because of the backend: when generation is unavailable the
    built-in samples are used and a warning explains why.
    """
    client = _client(_state(ctx))

    with spinner("Generating queries..."):
        draft = asyncio.run(
            generate_queries_with_fallback(
                client,
                brand_name=brand,
                industry=industry,
                description=description,
                language=language,
                count=count,
                market=market.upper(),
            )
        )

    if draft.note:
        warning(draft.note)

    if output_mode.is_agent():
        output_mode.add_json("generated_by", draft.generated_by)
    _print_questions(draft.questions, f"Generated Queries ({draft.generated_by})")
    _write_questions(draft.questions, output)
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@queries_app.command("sheet")
def queries_sheet(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Google Sheet URL"),
    worksheet: str | None = typer.Option(None, "--worksheet", "-w", help="Worksheet name"),
    refresh: bool = typer.Option(False, "--refresh", help="Bypass the backend's sheet cache"),
    validate_only: bool = typer.Option(False, "--validate-only", help="Only check the URL"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the queries to a file"),
):
    """Import queries from a Google Sheet."""
    client = _client(_state(ctx))

    if validate_only:
        try:
            with spinner("Validating sheet..."):
                check = asyncio.run(client.validate_sheet_url(url))
        except TransportError as e:
            _fail(f"Sheet validation failed: {e}", EXIT_TRANSPORT_ERROR)

        if output_mode.is_agent():
            output_mode.add_json("sheet", check.model_dump(mode="json"))
        if not check.valid:
            _fail(f"Sheet is not usable: {check.error or 'unknown error'}", EXIT_CONFIG_ERROR)
        success(f"Sheet '{check.sheet_title}' has {check.total_prompts or 0} prompts")
        output_mode.flush_json()
        raise typer.Exit(EXIT_SUCCESS)

    try:
        with spinner("Importing sheet..."):
            sheet = asyncio.run(
                client.fetch_sheet_prompts(url, worksheet_name=worksheet, force_refresh=refresh)
            )
    except TransportError as e:
        _fail(f"Sheet import failed: {e}", EXIT_TRANSPORT_ERROR)

    questions = [p.question for p in sheet.prompts]
    source = "cache" if sheet.cached else "sheet"
    success(f"Imported {len(questions)} queries from '{sheet.sheet_title}' ({source})")
    if sheet.columns_detected.question:
        info(f"Question column: {sheet.columns_detected.question}")

    _print_questions(questions, "Imported Queries")
    _write_questions(questions, output)
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


# ============================================================================
# Reports and brands
# ============================================================================


@app.command()
def report(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job identifier of a completed run"),
    brand: str | None = typer.Option(None, "--brand", "-b", help="Brand name (defaults to the run's)"),
    llm_provider: str = typer.Option("openai", "--llm-provider", help="Provider writing the report"),
    model: str = typer.Option("gpt-4.1", "--model", help="Model writing the report"),
    force: bool = typer.Option(False, "--force", help="Regenerate even if a report exists"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the report as Markdown"),
):
    """Show (or generate) the AI-written visibility report for a run."""
    client = _client(_state(ctx))

    async def _fetch():
        if not force:
            cached = await client.get_cached_report(job_id)
            if cached is not None:
                return cached
        run_results = await client.get_run_results(job_id)
        return await client.generate_visibility_report(
            brand_name=brand or run_results.summary.brand_name,
            results_summary=run_results.summary.model_dump(mode="json"),
            detailed_results=[r.model_dump(mode="json") for r in run_results.results],
            job_id=job_id,
            provider=llm_provider,
            model=model,
            force_regenerate=force,
        )

    try:
        with spinner("Preparing report..."):
            visibility_report = asyncio.run(_fetch())
    except TransportError as e:
        _fail(f"Report unavailable: {e}", EXIT_TRANSPORT_ERROR)

    if visibility_report.error:
        _fail(f"Report generation failed: {visibility_report.error}", EXIT_TRANSPORT_ERROR)

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(visibility_report.report, encoding="utf-8")
        success(f"Wrote report to {output}")

    if output_mode.is_agent():
        output_mode.add_json("report", visibility_report.model_dump(mode="json"))
        output_mode.flush_json()
    elif output_mode.quiet:
        if output is None:
            print(visibility_report.report)
    else:
        origin = "cached" if visibility_report.from_cache else "generated"
        info(f"Report {origin} by {visibility_report.provider}/{visibility_report.model}")
        console.print(Markdown(visibility_report.report))

    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def brands(
    ctx: typer.Context,
    brand_id: int | None = typer.Argument(None, help="Show the run history of one brand"),
    search: str | None = typer.Option(None, "--search", "-s", help="Look up a brand by name"),
    company_id: str | None = typer.Option(None, "--company-id", help="Filter by company"),
    limit: int = typer.Option(50, "--limit", "-n", min=1, help="Maximum brands listed"),
    delete: int | None = typer.Option(
        None, "--delete", metavar="ID", help="Delete a brand and all its run history"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the delete confirmation"),
):
    """List tracked brands, show one brand's history, or delete a brand."""
    client = _client(_state(ctx))

    if delete is not None:
        # Confirm in text mode only, unless --yes
        if output_mode.is_human() and not yes and not typer.confirm(
            f"Delete brand {delete} and all its history?"
        ):
            info("Cancelled by user")
            raise typer.Exit(EXIT_SUCCESS)
        try:
            with spinner("Deleting brand..."):
                asyncio.run(client.delete_brand(delete))
        except TransportError as e:
            _fail(f"Could not delete brand {delete}: {e}", EXIT_TRANSPORT_ERROR)

        success(f"Brand {delete} deleted")
        if output_mode.is_agent():
            output_mode.add_json("brand_id", delete)
        elif output_mode.quiet:
            print(delete)
        output_mode.flush_json()
        raise typer.Exit(EXIT_SUCCESS)

    try:
        with spinner("Fetching brands..."):
            if search:
                found = asyncio.run(client.search_brand(search, company_id=company_id))
                if found is None:
                    _fail(f"Brand not found: {search}", EXIT_CONFIG_ERROR)
                brand_id = found.id
            if brand_id is not None:
                detail = asyncio.run(client.get_brand(brand_id))
            else:
                listing = asyncio.run(client.get_brands(company_id=company_id, limit=limit))
    except TransportError as e:
        _fail(f"Could not fetch brands: {e}", EXIT_TRANSPORT_ERROR)

    if brand_id is not None:
        if output_mode.is_agent():
            output_mode.add_json("brand", detail.model_dump(mode="json"))
            output_mode.flush_json()
        elif output_mode.quiet:
            for entry in detail.history:
                visibility = "" if entry.visibility_pct is None else f"{entry.visibility_pct:.1f}"
                print(f"{entry.job_id or ''}\t{entry.created_at or ''}\t{visibility}")
        else:
            b = detail.brand
            console.print(f"[bold]{b.brand_name}[/bold] ({b.industry or 'no industry'})")
            console.print(
                f"Runs: {b.total_runs}   Queries: {b.total_queries}   "
                f"Avg visibility: {format_percent(b.avg_visibility)}"
            )
            table = Table(title="Run History")
            table.add_column("Date", style="dim")
            table.add_column("Job", style="cyan")
            table.add_column("Providers")
            table.add_column("Queries", justify="right")
            table.add_column("Visibility", justify="right", style="green")
            for entry in detail.history:
                table.add_row(
                    entry.created_at or "",
                    entry.job_id or "",
                    ", ".join(entry.providers),
                    str(entry.total_queries),
                    format_percent(entry.visibility_pct),
                )
            console.print(table)
        raise typer.Exit(EXIT_SUCCESS)

    if output_mode.is_agent():
        output_mode.add_json("brands", [b.model_dump(mode="json") for b in listing.brands])
        output_mode.flush_json()
    elif output_mode.quiet:
        for b in listing.brands:
            print(f"{b.id}\t{b.brand_name}\t{b.total_runs}")
    elif not listing.brands:
        info("No brands tracked yet")
    else:
        table = Table(title=f"Tracked Brands ({listing.count or len(listing.brands)})")
        table.add_column("ID", justify="right", style="dim")
        table.add_column("Brand", style="cyan")
        table.add_column("Industry")
        table.add_column("Runs", justify="right")
        table.add_column("Avg Visibility", justify="right", style="green")
        table.add_column("Last Run", style="dim")
        for b in listing.brands:
            table.add_row(
                str(b.id),
                b.brand_name,
                b.industry or "",
                str(b.total_runs),
                format_percent(b.avg_visibility),
                b.last_run_at or "",
            )
        console.print(table)
    raise typer.Exit(EXIT_SUCCESS)


# ============================================================================
# Session
# ============================================================================


@app.command()
def login(
    ctx: typer.Context,
    token: str = typer.Option(
        ...,
        "--token",
        prompt=True,
        hide_input=True,
        help="Access token issued by the GEO Tracker backend",
    ),
):
    """Verify an access token and store it for later commands."""
    session = _session(_state(ctx))

    try:
        with spinner("Verifying token..."):
            user = asyncio.run(session.login(token))
    except AuthenticationError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)
    except TransportError as e:
        _fail(f"Could not reach backend: {e}", EXIT_TRANSPORT_ERROR)

    success(f"Logged in as {user.email} ({user.role})")
    if output_mode.is_agent():
        output_mode.add_json("user", user.model_dump(mode="json"))
        output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def logout(ctx: typer.Context):
    """Forget the stored session."""
    session = _session(_state(ctx))
    session.logout()
    success("Logged out")
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def whoami(ctx: typer.Context):
    """Show the logged-in user."""
    session = _session(_state(ctx))
    user = asyncio.run(session.init())

    if user is None:
        _fail("Not logged in. Run 'geo-tracker login' first.", EXIT_CONFIG_ERROR)

    if output_mode.is_agent():
        output_mode.add_json("user", user.model_dump(mode="json"))
        output_mode.add_json("verified", session.verified)
        output_mode.flush_json()
    elif output_mode.quiet:
        print(f"{user.email}\t{user.role}")
    else:
        console.print(f"[bold]Email:[/bold] {user.email}")
        if user.name:
            console.print(f"[bold]Name:[/bold] {user.name}")
        if user.company:
            console.print(f"[bold]Company:[/bold] {user.company}")
        console.print(f"[bold]Role:[/bold] {user.role}")
        if not session.verified:
            warning("Backend unreachable; showing remembered user")
    raise typer.Exit(EXIT_SUCCESS)


# ============================================================================
# Admin
# ============================================================================

admin_app = typer.Typer(help="Lead management (admin users only)")
app.add_typer(admin_app, name="admin")


def _admin_session(ctx: typer.Context, permission: str) -> SessionContext:
    """Restore the session and check admin access, exiting on refusal."""
    session = _session(_state(ctx))
    asyncio.run(session.init())

    try:
        session.require_admin(permission)
    except PermissionDeniedError as e:
        _fail(f"Access denied: {e}. Use the '{e.redirect_to}' commands instead.", EXIT_CONFIG_ERROR)
    except AuthenticationError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)
    return session


def mask_email(email: str) -> str:
    """Hide the local part of an email address ("jane@x.com" -> "ja***@x.com")."""
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    return f"{local[:2]}***@{domain}"


@admin_app.command("leads")
def admin_leads(
    ctx: typer.Context,
    status: str | None = typer.Option(None, "--status", help=f"Filter: {', '.join(LEAD_STATUSES)}"),
):
    """List leads."""
    if status is not None and status not in LEAD_STATUSES:
        _fail(f"Invalid status: {status}. Must be one of {', '.join(LEAD_STATUSES)}", EXIT_CONFIG_ERROR)

    session = _admin_session(ctx, "can_view_leads")
    show_emails = session.user.permissions.can_view_emails

    try:
        with spinner("Fetching leads..."):
            leads = asyncio.run(session.client().list_leads(status=status))
    except TransportError as e:
        _fail(f"Could not fetch leads: {e}", EXIT_TRANSPORT_ERROR)

    if not show_emails:
        leads = [lead.model_copy(update={"email": mask_email(lead.email)}) for lead in leads]

    if output_mode.is_agent():
        output_mode.add_json("leads", [lead.model_dump(mode="json") for lead in leads])
        output_mode.flush_json()
    elif output_mode.quiet:
        for lead in leads:
            print(f"{lead.id}\t{lead.company}\t{lead.email}\t{lead.status}")
    elif not leads:
        info("No leads found")
    else:
        table = Table(title=f"Leads ({len(leads)})")
        table.add_column("ID", justify="right", style="dim")
        table.add_column("Company", style="cyan")
        table.add_column("Email")
        table.add_column("Service")
        table.add_column("Status", style="magenta")
        table.add_column("Created", style="dim")
        for lead in leads:
            table.add_row(
                str(lead.id),
                lead.company,
                lead.email,
                lead.service,
                lead.status,
                lead.created_at or "",
            )
        console.print(table)
    raise typer.Exit(EXIT_SUCCESS)


@admin_app.command("stats")
def admin_stats(ctx: typer.Context):
    """Show lead statistics."""
    session = _admin_session(ctx, "can_view_stats")

    try:
        with spinner("Fetching statistics..."):
            stats = asyncio.run(session.client().get_lead_stats())
    except TransportError as e:
        _fail(f"Could not fetch statistics: {e}", EXIT_TRANSPORT_ERROR)

    if output_mode.is_agent():
        output_mode.add_json("stats", stats.model_dump(mode="json"))
        output_mode.flush_json()
    elif output_mode.quiet:
        print(f"{stats.total}\t{stats.recent_7_days}\t{stats.emails_sent}")
    else:
        console.print(f"[bold]Total leads:[/bold] {stats.total}")
        console.print(f"[bold]Last 7 days:[/bold] {stats.recent_7_days}")
        console.print(
            f"[bold]Emails sent:[/bold] {stats.emails_sent} "
            f"({format_percent(stats.email_success_rate)} success)"
        )
        table = Table(title="Leads by Status")
        table.add_column("Status", style="magenta")
        table.add_column("Count", justify="right")
        for lead_status in LEAD_STATUSES:
            table.add_row(lead_status, str(stats.by_status.get(lead_status, 0)))
        console.print(table)
    raise typer.Exit(EXIT_SUCCESS)


@admin_app.command("update")
def admin_update(
    ctx: typer.Context,
    lead_id: int = typer.Argument(..., help="Lead identifier"),
    status: str = typer.Option(..., "--status", help=f"New status: {', '.join(LEAD_STATUSES)}"),
    notes: str | None = typer.Option(None, "--notes", help="Internal notes"),
):
    """Change a lead's status."""
    if status not in LEAD_STATUSES:
        _fail(f"Invalid status: {status}. Must be one of {', '.join(LEAD_STATUSES)}", EXIT_CONFIG_ERROR)

    session = _admin_session(ctx, "can_update_leads")

    try:
        asyncio.run(session.client().update_lead(lead_id, status=status, notes=notes))
    except TransportError as e:
        _fail(f"Could not update lead {lead_id}: {e}", EXIT_TRANSPORT_ERROR)

    success(f"Lead {lead_id} set to {status}")
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


# ============================================================================
# Root
# ============================================================================


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output (tab-separated values)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
):
    """
    GEO Tracker - see how AI assistants talk about your brand.

    Submit a list of buyer questions to several LLM providers through the
    GEO Tracker backend and measure how often your brand shows up, in what
    tone, next to which competitors and citing which sources.

    Environment:
      GEO_TRACKER_API_URL          Backend URL (default http://localhost:8000)
      GEO_TRACKER_POLL_INTERVAL    Seconds between status polls (default 2)
      GEO_TRACKER_REQUEST_TIMEOUT  HTTP timeout in seconds (default 30)
      GEO_TRACKER_SESSION_FILE     Session token location

    Use 'geo-tracker COMMAND --help' for detailed command documentation.
    """
    if version:
        console.print(f"[bold cyan]geo-tracker[/bold cyan] version {_read_version()}")
        raise typer.Exit(EXIT_SUCCESS)

    try:
        output_mode.reset(format, quiet)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--format") from e

    # Suppress INFO logs in human mode (unless verbose=True)
    setup_logging(verbose=verbose, quiet_logs=output_mode.is_human())

    try:
        settings = load_settings()
    except ConfigurationError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)

    ctx.obj = CLIState(settings=settings, verbose=verbose)

    if ctx.invoked_subcommand is None:
        console.print("[yellow]Use --help to see available commands[/yellow]")
        console.print()
        console.print("Quick start:")
        console.print("  geo-tracker health")
        console.print("  geo-tracker run --config run.config.yaml")
        console.print()
        console.print("Supported providers: " + ", ".join(SUPPORTED_PROVIDERS))


def _read_version() -> str:
    """Read version from package metadata, falling back to the package constant."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version(PACKAGE_NAME)
    except PackageNotFoundError:
        from geo_tracker import __version__

        return __version__


if __name__ == "__main__":
    app()

"""
HTML report generation for completed GEO Tracker runs.

Renders a run's summary, per-provider visibility, competitor ranking, cited
source domains and detailed results into a self-contained HTML file.

Key features:
- Jinja2 templating with autoescaping enabled (XSS prevention)
- Aggregations from report.presenter, formatting from report.formatting
- Self-contained HTML (inline CSS, no external assets)

Security:
- CRITICAL: Jinja2 autoescaping enabled to prevent HTML injection
- Provider answers and brand names are untrusted and always escaped

Example:
    >>> html = generate_report(results, brand_name="Acme")
    >>> path = write_report(results, "reports/", brand_name="Acme")
"""

import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from geo_tracker.api.models import RunResults

from ..utils.time import file_slug, utc_timestamp
from .formatting import (
    format_date,
    format_duration,
    format_percent,
    format_sentiment,
    sentiment_label,
    truncate_text,
    visibility_level,
)
from .presenter import ResultsView

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "report.html.j2"

# Characters of each provider answer shown in the detailed results table
RESPONSE_PREVIEW_LENGTH = 400


def _create_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "xml", "j2"]),
    )
    env.filters["percent"] = format_percent
    env.filters["sentiment"] = format_sentiment
    env.filters["sentiment_label"] = sentiment_label
    env.filters["duration"] = format_duration
    env.filters["date"] = format_date
    env.filters["truncate_text"] = truncate_text
    env.filters["visibility_level"] = visibility_level
    return env


def _build_template_data(
    run_results: RunResults,
    brand_name: str,
    job_id: str | None,
    provider_filter: str,
) -> dict:
    summary = run_results.summary
    view = ResultsView(run_results.results)

    provider_rows = [
        {"provider": provider, "visibility": visibility}
        for provider, visibility in sorted(
            summary.provider_visibility.items(), key=lambda item: item[1], reverse=True
        )
    ]

    return {
        "brand_name": brand_name or summary.brand_name,
        "job_id": job_id,
        "run_id": summary.run_id,
        "generated_at": utc_timestamp(),
        "summary": summary,
        "provider_rows": provider_rows,
        "competitors": view.competitors,
        "source_domains": view.source_domains,
        "providers": view.providers,
        "provider_filter": provider_filter,
        "results": view.for_provider(provider_filter),
        "total_results": len(run_results.results),
        "preview_length": RESPONSE_PREVIEW_LENGTH,
    }


def generate_report(
    run_results: RunResults,
    brand_name: str = "",
    job_id: str | None = None,
    provider_filter: str = "all",
) -> str:
    """
    Render the HTML report for a completed run.

    Args:
        run_results: Summary and per-query results of the run
        brand_name: Brand shown in the title (defaults to the summary's brand)
        job_id: Backend job id, shown in the header when known
        provider_filter: Limit the detailed results table to one provider

    Returns:
        HTML string (self-contained, ready to write to file)

    Raises:
        ValueError: If the template cannot be loaded or rendered
    """
    env = _create_environment()

    try:
        template = env.get_template(TEMPLATE_NAME)
    except Exception as e:
        logger.error(f"Failed to load template: {e}", exc_info=True)
        raise ValueError(f"Cannot load report template: {e}") from e

    data = _build_template_data(run_results, brand_name, job_id, provider_filter)

    try:
        html = template.render(**data)
    except Exception as e:
        logger.error(f"Failed to render template: {e}", exc_info=True)
        raise ValueError(f"Cannot render report template: {e}") from e

    logger.info(
        "HTML report generated",
        extra={"context": {"results": data["total_results"]}},
    )
    return html


def write_report(
    run_results: RunResults,
    output: str | Path,
    brand_name: str = "",
    job_id: str | None = None,
    provider_filter: str = "all",
) -> Path:
    """
    Generate the HTML report and write it to disk.

    Args:
        run_results: Summary and per-query results of the run
        output: Target file, or a directory to create a timestamped file in
        brand_name: Brand shown in the title
        job_id: Backend job id
        provider_filter: Limit the detailed results table to one provider

    Returns:
        Path of the written file

    Raises:
        ValueError: If rendering fails
        OSError: If the file cannot be written
    """
    html = generate_report(run_results, brand_name, job_id, provider_filter)

    path = Path(output)
    if path.is_dir() or not path.suffix:
        path = path / f"geo-report-{file_slug()}.html"

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(html, encoding="utf-8")
    logger.info(f"Wrote HTML report to {path}")
    return path

"""
JSON logs on stderr for the GEO Tracker client.

stdout belongs to command output (tables, JSON documents, TSV), so every log
line goes to stderr as one JSON object:

    {"timestamp": "2025-11-02T08:30:45Z", "level": "INFO",
     "component": "geo_tracker.orchestrator.run_orchestrator",
     "message": "Run submitted for Acme", "job_id": "a1b2c3",
     "context": {"queries": 12}}

Bearer tokens, JWTs and other long opaque strings are masked before a record
is formatted; only their last four characters survive.

Usage:
    >>> setup_logging(verbose=True)
    >>> logger = logging.getLogger(__name__)
    >>> log_with_context(logger, logging.INFO, "Polling", {"polls": 3}, job_id="a1b2c3")
"""

import json
import logging
import re
import sys
from typing import Any

from geo_tracker.utils.time import utc_timestamp

# Record attributes copied into the JSON entry when a caller sets them via extra=
EXTRA_FIELDS = ("context", "job_id")

# Order matters: the generic pattern would otherwise swallow the other two
REDACTIONS = [
    (re.compile(r"\bBearer\s+[a-zA-Z0-9._-]{20,}"), "Bearer ***{tail}"),
    (re.compile(r"\beyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+"), "jwt-***{tail}"),
    (re.compile(r"\b[a-zA-Z0-9_-]{32,}\b"), "***{tail}"),
]


def redact(value: Any) -> Any:
    """
    Mask secrets in a string, or in every string nested in a dict/list/tuple.

    Non-string leaves are returned untouched.
    """
    if isinstance(value, str):
        for pattern, replacement in REDACTIONS:
            value = pattern.sub(lambda m, r=replacement: r.format(tail=m.group(0)[-4:]), value)
        return value
    if isinstance(value, dict):
        return {key: redact(item) for key, item in value.items()}
    if isinstance(value, list):
        return [redact(item) for item in value]
    if isinstance(value, tuple):
        return tuple(redact(item) for item in value)
    return value


class JSONFormatter(logging.Formatter):
    """Render each record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        for field in EXTRA_FIELDS:
            if getattr(record, field, None) is not None:
                entry[field] = getattr(record, field)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class SecretRedactingFilter(logging.Filter):
    """
    Mask secrets in a record's message, format args and context.

    "Authorization: Bearer abc...WXYZ" is logged as "Authorization: Bearer ***WXYZ".
    Records are never dropped.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(str(record.msg))
        if isinstance(record.args, dict):
            record.args = {key: redact(str(arg)) for key, arg in record.args.items()}
        elif record.args:
            record.args = tuple(redact(str(arg)) for arg in record.args)
        if isinstance(getattr(record, "context", None), dict):
            record.context = redact(record.context)
        return True


def resolve_level(verbose: bool, quiet_logs: bool) -> int:
    """verbose wins over quiet_logs; the default is INFO."""
    if verbose:
        return logging.DEBUG
    if quiet_logs:
        return logging.WARNING
    return logging.INFO


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Route all logging through one redacting JSON handler on stderr.

    Safe to call more than once: existing root handlers are replaced.

    Args:
        verbose: Emit DEBUG records
        quiet_logs: Emit only WARNING and above (used when a human is
            watching Rich output on the same terminal)
    """
    level = resolve_level(verbose, quiet_logs)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(SecretRedactingFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    job_id: str | None = None,
) -> None:
    """
    Log with a structured context dict and the backend job id.

    Shorthand for logger.log(level, message, extra={"context": ..., "job_id": ...}).
    """
    extra = {}
    if context is not None:
        extra["context"] = context
    if job_id is not None:
        extra["job_id"] = job_id
    logger.log(level, message, extra=extra or None)

"""
UTC time helpers.

Everything the client writes (log lines, the session file, report names)
carries an explicit UTC marker; naive datetimes are rejected at the edges.

    >>> utc_timestamp()
    '2025-11-02T08:30:45Z'
    >>> file_slug()
    '2025-11-02T08-30-45Z'
"""

from datetime import UTC, datetime

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
SLUG_FORMAT = "%Y-%m-%dT%H-%M-%SZ"


def utc_now() -> datetime:
    """Timezone-aware current time. Use instead of datetime.now()/utcnow()."""
    return datetime.now(UTC)


def utc_timestamp() -> str:
    """Current time as "YYYY-MM-DDTHH:MM:SSZ" (seconds precision)."""
    return utc_now().strftime(ISO_FORMAT)


def file_slug(dt: datetime | None = None) -> str:
    """
    Timestamp safe for file names: colons become hyphens.

    Args:
        dt: Aware datetime in any zone (converted to UTC); defaults to now

    Raises:
        ValueError: If dt is naive
    """
    if dt is None:
        dt = utc_now()
    if dt.tzinfo is None:
        raise ValueError("file_slug() needs a timezone-aware datetime, got a naive one")
    return dt.astimezone(UTC).strftime(SLUG_FORMAT)


def parse_backend_timestamp(value: str | None) -> datetime | None:
    """
    Parse a timestamp from a backend response into an aware UTC datetime.

    Endpoints differ: some send "Z", some an offset, some nothing at all.
    Naive values are read as UTC. Empty or unparsable input gives None.
    """
    if not value:
        return None

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)

"""
Display formatting for run metrics.

Shared by the terminal tables and the HTML report so both render the same
strings for the same numbers. Missing values render as "-".

Examples:
    >>> format_percent(42.26)
    '42.3%'
    >>> format_sentiment(0.5)
    'Positive'
    >>> format_duration(125)
    '2m 5s'
"""

from geo_tracker.utils.time import parse_backend_timestamp

MISSING = "-"

# Sentiment scores beyond these bounds are positive/negative
POSITIVE_SENTIMENT_THRESHOLD = 0.3
NEGATIVE_SENTIMENT_THRESHOLD = -0.3

# Visibility percentages at or above these bounds are high/medium
HIGH_VISIBILITY_THRESHOLD = 70.0
MEDIUM_VISIBILITY_THRESHOLD = 40.0


def format_percent(value: float | None) -> str:
    """Format a percentage with one decimal place."""
    if value is None:
        return MISSING
    return f"{value:.1f}%"


def sentiment_label(value: float | None) -> str | None:
    """Bucket a sentiment score in [-1, 1] into positive/neutral/negative."""
    if value is None:
        return None
    if value > POSITIVE_SENTIMENT_THRESHOLD:
        return "positive"
    if value < NEGATIVE_SENTIMENT_THRESHOLD:
        return "negative"
    return "neutral"


def format_sentiment(value: float | None) -> str:
    """Human-readable sentiment label ("Positive", "Neutral", "Negative")."""
    label = sentiment_label(value)
    if label is None:
        return MISSING
    return label.capitalize()


def visibility_level(value: float) -> str:
    """Bucket a visibility percentage into "high", "medium" or "low"."""
    if value >= HIGH_VISIBILITY_THRESHOLD:
        return "high"
    if value >= MEDIUM_VISIBILITY_THRESHOLD:
        return "medium"
    return "low"


def format_duration(seconds: float | None) -> str:
    """
    Format a duration as "45s" or "2m 5s".

    Fractional seconds are rounded to the nearest second.
    """
    if seconds is None:
        return MISSING
    total = round(seconds)
    if total < 60:
        return f"{total}s"
    minutes, remaining = divmod(total, 60)
    return f"{minutes}m {remaining}s"


def format_date(value: str | None) -> str:
    """Format a backend timestamp as "Nov 02, 2025 08:30 UTC"."""
    dt = parse_backend_timestamp(value)
    if dt is None:
        return value or MISSING
    return dt.strftime("%b %d, %Y %H:%M UTC")


def truncate_text(text: str, max_length: int = 100) -> str:
    """
    Shorten text to max_length characters, ending with "..." when cut.

    Examples:
        >>> truncate_text("abcdefghij", 8)
        'abcde...'
    """
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."

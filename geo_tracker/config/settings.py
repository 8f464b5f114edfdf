"""
Client settings resolved from the environment.

Settings are read once at CLI startup (or by library callers) and passed
down explicitly; nothing reads os.environ after that.

Environment variables:
    GEO_TRACKER_API_URL: Backend base URL (default http://localhost:8000)
    GEO_TRACKER_POLL_INTERVAL: Status poll cadence in seconds (default 2.0)
    GEO_TRACKER_REQUEST_TIMEOUT: HTTP timeout per request in seconds (default 30)
    GEO_TRACKER_SESSION_FILE: Where the session token is persisted
"""

import os
from pathlib import Path

from pydantic import BaseModel, ValidationError, field_validator

from geo_tracker.exceptions import ConfigValidationError

from .constants import DEFAULT_API_URL, POLL_INTERVAL_SECONDS

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_SESSION_FILE = Path.home() / ".config" / "geo-tracker" / "session.json"


class ClientSettings(BaseModel):
    """
    Connection and polling settings for the backend client.

    Attributes:
        api_url: Backend base URL without trailing slash
        poll_interval_seconds: Delay between status polls
        request_timeout_seconds: HTTP timeout per request
        session_file: Session token file location
    """

    api_url: str = DEFAULT_API_URL
    poll_interval_seconds: float = POLL_INTERVAL_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT
    session_file: Path = DEFAULT_SESSION_FILE

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Validate api_url is an http(s) URL and strip the trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"api_url must start with http:// or https://, got: {v}")
        return v.rstrip("/")

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        """Validate poll interval is not negative."""
        if v < 0:
            raise ValueError(f"poll interval cannot be negative, got: {v}")
        return v

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError(f"request timeout must be positive, got: {v}")
        return v


def load_settings(environ: dict[str, str] | None = None) -> ClientSettings:
    """
    Build ClientSettings from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Validated ClientSettings; unset variables keep their defaults

    Raises:
        ConfigValidationError: If a variable holds an invalid value
    """
    environ = os.environ if environ is None else environ

    raw: dict[str, str] = {}
    if environ.get("GEO_TRACKER_API_URL"):
        raw["api_url"] = environ["GEO_TRACKER_API_URL"]
    if environ.get("GEO_TRACKER_POLL_INTERVAL"):
        raw["poll_interval_seconds"] = environ["GEO_TRACKER_POLL_INTERVAL"]
    if environ.get("GEO_TRACKER_REQUEST_TIMEOUT"):
        raw["request_timeout_seconds"] = environ["GEO_TRACKER_REQUEST_TIMEOUT"]
    if environ.get("GEO_TRACKER_SESSION_FILE"):
        raw["session_file"] = environ["GEO_TRACKER_SESSION_FILE"]

    try:
        return ClientSettings.model_validate(raw)
    except ValidationError as e:
        error_messages = [
            f"  - {'.'.join(str(x) for x in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise ConfigValidationError(
            "Invalid client settings in environment:\n" + "\n".join(error_messages)
        ) from e

"""
Custom exceptions for the GEO Tracker client.

This module provides a hierarchy of exceptions that enable type-safe error
handling throughout the client. All exceptions inherit from the base
GeoTrackerError for consistent catching.

Exception Hierarchy:
    GeoTrackerError (base)
    ├── ConfigurationError
    │   ├── ConfigFileNotFoundError
    │   └── ConfigValidationError
    ├── ValidationError
    ├── SubmissionInFlightError
    ├── TransportError
    ├── JobFailedError
    ├── ResultsUnavailableWarning
    └── AuthenticationError
        └── PermissionDeniedError

Note:
    ValidationError here is the client-side pre-submission check. It is not
    pydantic's ValidationError; modules that need both import pydantic's
    under an alias.

Usage:
    from geo_tracker.exceptions import TransportError

    try:
        handle = await orchestrator.submit(config)
    except TransportError as e:
        logger.error(f"Submission failed: {e}")
"""


class GeoTrackerError(Exception):
    """
    Base exception for all GeoTracker client errors.

    Example:
        try:
            ...
        except GeoTrackerError as e:
            logger.error(f"Client error: {e}")
    """

    pass


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(GeoTrackerError):
    """
    Base class for configuration-related errors.

    Raised when a run file or client settings cannot be loaded.
    Results in exit code 1 in the CLI.
    """

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """
    Run configuration file does not exist at the specified path.

    Example:
        raise ConfigFileNotFoundError("Configuration file not found: run.yaml")
    """

    pass


class ConfigValidationError(ConfigurationError):
    """
    Run configuration file is invalid (YAML syntax or schema validation).

    Example:
        raise ConfigValidationError("  - brand.name: brand name cannot be empty")
    """

    pass


# ============================================================================
# Run Lifecycle Errors
# ============================================================================


class ValidationError(GeoTrackerError):
    """
    A run configuration failed client-side validation.

    Raised before any network call is made: empty query list, blank brand
    name, or an attempt to deselect the last provider. Not retryable until
    the input is corrected.

    Example:
        raise ValidationError("No queries to analyze. Please add at least one question.")
    """

    pass


class SubmissionInFlightError(GeoTrackerError):
    """
    A submission was attempted while the orchestrator was not idle.

    The CLI ignores this silently; it only exists so that a second
    invocation cannot race ahead of the first one.
    """

    pass


class TransportError(GeoTrackerError):
    """
    Network or HTTP failure talking to the backend.

    Attributes:
        status_code: HTTP status code, or None for connection-level failures

    Example:
        raise TransportError("Job not found", status_code=404)
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class JobFailedError(GeoTrackerError):
    """
    The backend reported a terminal failed or cancelled status.

    The message carries only the first line of the server-provided detail.

    Attributes:
        status: Terminal status ("failed" or "cancelled")
        detail: Full error text from the status endpoint, if any
    """

    def __init__(self, message: str, status: str, detail: str | None = None):
        super().__init__(message)
        self.status = status
        self.detail = detail


class ResultsUnavailableWarning(GeoTrackerError):
    """
    Results could not be fetched after the job reported completion.

    Logged, never shown as an error: the run still counts as completed.
    """

    pass


# ============================================================================
# Authentication Errors
# ============================================================================


class AuthenticationError(GeoTrackerError):
    """
    No valid session is available (missing, expired or rejected token).

    Example:
        raise AuthenticationError("Not logged in. Run 'geo-tracker login' first.")
    """

    pass


class PermissionDeniedError(AuthenticationError):
    """
    The session is valid but lacks the permission for the requested surface.

    Attributes:
        redirect_to: Where the user should be sent instead (e.g. "dashboard")
    """

    def __init__(self, message: str, redirect_to: str = "dashboard"):
        super().__init__(message)
        self.redirect_to = redirect_to

"""
Configuration constants for the GEO Tracker client.

This module contains global constants used across the client to avoid tight
coupling between modules.
"""

# Providers the backend can dispatch queries to
SUPPORTED_PROVIDERS = ("openai", "gemini", "perplexity", "anthropic")

# Model used for each provider when the run configuration leaves it unset
DEFAULT_PROVIDER_MODELS = {
    "openai": "gpt-4.1-mini",
    "gemini": "gemini-2.5-flash",
    "perplexity": "sonar",
    "anthropic": "claude-sonnet-4-20250514",
}

DEFAULT_MARKET = "DE"
DEFAULT_LANGUAGE = "de"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60
DEFAULT_MAX_RETRIES = 1
DEFAULT_INTER_QUERY_DELAY_MS = 0

# Category assigned to queries typed in by hand
CUSTOM_QUERY_CATEGORY = "custom"

# Job statuses after which the backend never changes the job again
TERMINAL_STATUSES = frozenset(["completed", "failed", "cancelled"])

# Status poll cadence in seconds
POLL_INTERVAL_SECONDS = 2.0

# Ranked presenter lists are truncated to this many entries
TOP_N = 15

# Example URLs kept per cited source domain
MAX_SAMPLE_URLS = 3

DEFAULT_API_URL = "http://localhost:8000"

# Query generation defaults
DEFAULT_QUESTION_COUNT = 15

# Country names sent to the query generator instead of bare market codes
MARKET_NAMES = {
    "US": "United States",
    "UK": "United Kingdom",
    "GB": "United Kingdom",
    "DE": "Germany",
    "FR": "France",
    "ES": "Spain",
    "IT": "Italy",
    "NL": "Netherlands",
    "BE": "Belgium",
    "AT": "Austria",
    "CH": "Switzerland",
    "PL": "Poland",
    "SE": "Sweden",
    "NO": "Norway",
    "DK": "Denmark",
    "FI": "Finland",
    "PT": "Portugal",
    "AU": "Australia",
    "CA": "Canada",
    "IN": "India",
    "JP": "Japan",
    "BR": "Brazil",
    "MX": "Mexico",
    "KR": "South Korea",
    "CN": "China",
    "SG": "Singapore",
    "AE": "United Arab Emirates",
    "SA": "Saudi Arabia",
    "ZA": "South Africa",
}

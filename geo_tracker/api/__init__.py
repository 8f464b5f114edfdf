"""
GEO Tracker backend API access.

Exports the async HTTP client and the payload builder for run submissions.
"""

from .client import GeoTrackerClient, build_run_payload

__all__ = ["GeoTrackerClient", "build_run_payload"]

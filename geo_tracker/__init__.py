"""
GEO Tracker client.

Submits brand-visibility runs to the GEO Tracker backend, follows them to
completion and presents the results.
"""

__version__ = "0.1.0"

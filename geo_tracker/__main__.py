"""
Entry point for running the GEO Tracker client as a module.

Enables execution via:
    python -m geo_tracker [command] [options]

This is equivalent to running the installed CLI:
    geo-tracker [command] [options]
"""

from geo_tracker.cli import app

if __name__ == "__main__":
    app()

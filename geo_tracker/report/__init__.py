"""
Results presentation for GEO Tracker runs.

Key exports:
    - competitor_frequency, source_domain_frequency, filter_by_provider:
      pure aggregations over per-query results
    - ResultsView: memoized aggregations for one result list
    - generate_report / write_report: self-contained HTML report
"""

from .generator import generate_report, write_report
from .presenter import (
    CompetitorStat,
    ResultsView,
    SourceDomainStat,
    competitor_frequency,
    filter_by_provider,
    providers_in,
    source_domain_frequency,
)

__all__ = [
    "CompetitorStat",
    "ResultsView",
    "SourceDomainStat",
    "competitor_frequency",
    "filter_by_provider",
    "generate_report",
    "providers_in",
    "source_domain_frequency",
    "write_report",
]

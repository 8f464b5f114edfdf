"""
Query construction for GEO Tracker runs.

Key exports:
    - parse_queries: Turn free text into ordered Query records
    - load_queries_file: Parse a text file of questions
    - generate_queries_with_fallback: Backend generation with sample fallback
    - get_sample_queries_for_industry: Static sample questions
"""

from .builder import (
    QueryDraft,
    count_queries,
    generate_queries_with_fallback,
    load_queries_file,
    parse_queries,
    sample_draft,
)
from .samples import get_sample_queries_for_industry, normalize_industry

__all__ = [
    "QueryDraft",
    "count_queries",
    "generate_queries_with_fallback",
    "get_sample_queries_for_industry",
    "load_queries_file",
    "normalize_industry",
    "parse_queries",
    "sample_draft",
]

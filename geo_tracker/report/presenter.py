"""
Aggregations over the per-query results of a completed run.

All functions are pure: they never mutate their input and return new lists.
Rankings sort by descending count; Python's sort is stable, so ties keep
first-encountered order.

Functions:
    competitor_frequency: Rank competitor brands by mentions
    source_domain_frequency: Rank cited source domains
    filter_by_provider: Results for one provider (or "all")
    providers_in: Distinct providers in first-seen order

ResultsView memoizes all of the above for one result list, so callers that
render several sections from the same run compute each aggregation once.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from functools import cached_property
from urllib.parse import urlsplit

from geo_tracker.api.models import QueryResult
from geo_tracker.config.constants import MAX_SAMPLE_URLS, TOP_N

ALL_PROVIDERS = "all"


@dataclass(frozen=True)
class CompetitorStat:
    """
    How often a competitor brand showed up across a run.

    Attributes:
        name: Brand name as detected by the backend
        count: Number of results mentioning it (one per occurrence)
        visibility_pct: 100 * count / total results
    """

    name: str
    count: int
    visibility_pct: float


@dataclass(frozen=True)
class SourceDomainStat:
    """
    How often a domain was cited across a run.

    Attributes:
        domain: Hostname without a leading "www."
        count: Number of citations
        sample_urls: Up to MAX_SAMPLE_URLS cited URLs, in encounter order
    """

    domain: str
    count: int
    sample_urls: tuple[str, ...] = field(default_factory=tuple)


def competitor_frequency(
    results: Sequence[QueryResult], limit: int = TOP_N
) -> list[CompetitorStat]:
    """
    Rank competitor brands by how often they were detected.

    Every entry of other_brands_detected counts once, so a brand listed
    twice in one result counts twice.

    Args:
        results: Per-query results of a run
        limit: Maximum number of entries returned

    Returns:
        Stats sorted by count (descending), ties in first-encountered order

    Example:
        >>> stats = competitor_frequency(results)
        >>> stats[0].name, stats[0].visibility_pct
        ('Acme', 30.0)
    """
    if not results:
        return []

    counts: dict[str, int] = {}
    for result in results:
        for brand in result.other_brands_detected:
            counts[brand] = counts.get(brand, 0) + 1

    total = len(results)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [
        CompetitorStat(name=name, count=count, visibility_pct=count / total * 100)
        for name, count in ranked[:limit]
    ]


def extract_domain(url: str) -> str | None:
    """
    Return the hostname of url without a leading "www.", or None if unparsable.

    Examples:
        >>> extract_domain("https://www.example.com/a?b=1")
        'example.com'
        >>> extract_domain("not a url") is None
        True
    """
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return hostname.removeprefix("www.")


def source_domain_frequency(
    results: Sequence[QueryResult], limit: int = TOP_N
) -> list[SourceDomainStat]:
    """
    Rank the domains cited as sources across a run.

    URLs that cannot be parsed are skipped without affecting the rest.

    Args:
        results: Per-query results of a run
        limit: Maximum number of entries returned

    Returns:
        Stats sorted by citation count (descending), ties in first-encountered order
    """
    counts: dict[str, int] = {}
    samples: dict[str, list[str]] = {}

    for result in results:
        for source in result.sources:
            domain = extract_domain(source.url)
            if domain is None:
                continue
            counts[domain] = counts.get(domain, 0) + 1
            urls = samples.setdefault(domain, [])
            if len(urls) < MAX_SAMPLE_URLS:
                urls.append(source.url)

    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [
        SourceDomainStat(domain=domain, count=count, sample_urls=tuple(samples[domain]))
        for domain, count in ranked[:limit]
    ]


def filter_by_provider(
    results: Sequence[QueryResult], provider: str = ALL_PROVIDERS
) -> list[QueryResult]:
    """Return the results for provider, in original order ("all" keeps everything)."""
    if provider == ALL_PROVIDERS:
        return list(results)
    return [r for r in results if r.provider == provider]


def providers_in(results: Sequence[QueryResult]) -> list[str]:
    """Distinct providers that produced results, in first-seen order."""
    return list(dict.fromkeys(r.provider for r in results))


class ResultsView:
    """
    Memoized aggregations for one result list.

    The view holds on to the exact list it was built from; build a new view
    whenever the results change.
    """

    def __init__(self, results: Sequence[QueryResult]):
        self.results = results
        self._by_provider: dict[str, list[QueryResult]] = {}

    @cached_property
    def competitors(self) -> list[CompetitorStat]:
        return competitor_frequency(self.results)

    @cached_property
    def source_domains(self) -> list[SourceDomainStat]:
        return source_domain_frequency(self.results)

    @cached_property
    def providers(self) -> list[str]:
        return providers_in(self.results)

    def for_provider(self, provider: str = ALL_PROVIDERS) -> list[QueryResult]:
        if provider not in self._by_provider:
            self._by_provider[provider] = filter_by_provider(self.results, provider)
        return self._by_provider[provider]

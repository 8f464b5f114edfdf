"""
Tests for report.presenter module.

Tests cover:
- competitor_frequency ranking, percentages and ties
- extract_domain and source_domain_frequency (including unparsable URLs)
- filter_by_provider and providers_in
- ResultsView memoization
"""

import pytest

from geo_tracker.report.presenter import (
    CompetitorStat,
    ResultsView,
    competitor_frequency,
    extract_domain,
    filter_by_provider,
    providers_in,
    source_domain_frequency,
)


class TestCompetitorFrequency:
    """Test competitor_frequency()."""

    def test_empty_results(self):
        assert competitor_frequency([]) == []

    def test_ranking_and_visibility(self, make_result):
        """Test Acme in 3 of 10 and Zenith in 1 of 10 results."""
        results = [make_result(competitors=["Acme"]) for _ in range(3)]
        results.append(make_result(competitors=["Zenith"]))
        results.extend(make_result() for _ in range(6))

        stats = competitor_frequency(results)

        assert stats == [
            CompetitorStat(name="Acme", count=3, visibility_pct=30.0),
            CompetitorStat(name="Zenith", count=1, visibility_pct=10.0),
        ]

    def test_ties_keep_first_encountered_order(self, make_result):
        results = [
            make_result(competitors=["Orbit", "Zenith"]),
            make_result(competitors=["Zenith", "Orbit", "Nova"]),
        ]

        assert [s.name for s in competitor_frequency(results)] == ["Orbit", "Zenith", "Nova"]

    def test_duplicate_mentions_in_one_result_count_twice(self, make_result):
        stats = competitor_frequency([make_result(competitors=["Acme", "Acme"])])

        assert stats[0].count == 2
        assert stats[0].visibility_pct == 200.0

    def test_limit(self, make_result):
        results = [make_result(competitors=[f"Brand {i}" for i in range(20)])]

        assert len(competitor_frequency(results)) == 15
        assert len(competitor_frequency(results, limit=3)) == 3

    def test_input_not_mutated(self, make_result):
        results = [make_result(competitors=["B"]), make_result(competitors=["A", "A"])]
        snapshot = [r.model_copy(deep=True) for r in results]

        competitor_frequency(results)

        assert results == snapshot


class TestExtractDomain:
    """Test extract_domain()."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://www.example.com/a?b=1", "example.com"),
            ("http://shop.example.co.uk", "shop.example.co.uk"),
            ("https://EXAMPLE.com/path", "example.com"),
            ("not a url", None),
            ("", None),
            ("http://[::1", None),
        ],
    )
    def test_domains(self, url, expected):
        assert extract_domain(url) == expected


class TestSourceDomainFrequency:
    """Test source_domain_frequency()."""

    def test_unparsable_url_skipped(self, make_result):
        """Test one malformed and two valid URLs on one host give one entry."""
        results = [
            make_result(
                sources=["http://[broken", "https://example.com/a", "https://www.example.com/b"]
            )
        ]

        stats = source_domain_frequency(results)

        assert len(stats) == 1
        assert stats[0].domain == "example.com"
        assert stats[0].count == 2

    def test_sample_urls_capped(self, make_result):
        urls = [f"https://news.test/{i}" for i in range(5)]

        stats = source_domain_frequency([make_result(sources=urls)])

        assert stats[0].count == 5
        assert stats[0].sample_urls == tuple(urls[:3])

    def test_ranked_by_count(self, make_result):
        results = [
            make_result(sources=["https://a.test/1"]),
            make_result(sources=["https://b.test/1", "https://b.test/2"]),
        ]

        assert [s.domain for s in source_domain_frequency(results)] == ["b.test", "a.test"]

    def test_no_sources(self, make_result):
        assert source_domain_frequency([make_result()]) == []


class TestProviderFiltering:
    """Test filter_by_provider() and providers_in()."""

    def test_all_keeps_everything(self, run_results):
        filtered = filter_by_provider(run_results.results)

        assert filtered == run_results.results
        assert filtered is not run_results.results

    def test_single_provider(self, run_results):
        filtered = filter_by_provider(run_results.results, "openai")

        assert [r.provider for r in filtered] == ["openai", "openai"]

    def test_unknown_provider(self, run_results):
        assert filter_by_provider(run_results.results, "gemini") == []

    def test_providers_in_first_seen_order(self, run_results):
        assert providers_in(run_results.results) == ["openai", "perplexity"]


class TestResultsView:
    """Test ResultsView."""

    def test_aggregations(self, run_results):
        view = ResultsView(run_results.results)

        assert view.competitors[0].name == "Zenith"
        assert view.competitors[0].count == 2
        assert [s.domain for s in view.source_domains] == ["example.com", "shop.test"]
        assert view.providers == ["openai", "perplexity"]

    def test_memoized(self, run_results):
        view = ResultsView(run_results.results)

        assert view.competitors is view.competitors
        assert view.for_provider("openai") is view.for_provider("openai")

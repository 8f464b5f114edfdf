"""
Shared fixtures for the GEO Tracker test suite.

FakeBackend stands in for GeoTrackerClient in orchestrator and CLI-free
tests: it replays scripted status responses, counts every call, and can hold
start_run() open on an asyncio.Event to exercise submission races.
"""

import asyncio

import pytest

from geo_tracker.api.models import (
    QueryResult,
    RunHandle,
    RunProgress,
    RunResults,
    RunSummary,
    Source,
)
from geo_tracker.config.schema import Query, RunConfig
from geo_tracker.exceptions import TransportError
from geo_tracker.utils.console import output_mode


class FakeBackend:
    """
    Scripted stand-in for GeoTrackerClient's run endpoints.

    Args:
        statuses: Items returned by successive get_run_status() calls; a
            TransportError instance is raised instead of returned. The last
            item repeats once the script is exhausted.
        results: RunResults returned by get_run_results(), or a
            TransportError to raise
        start_error: TransportError raised by start_run()
        gate: Event start_run() waits on before answering
    """

    def __init__(
        self,
        statuses=None,
        results=None,
        start_error=None,
        gate=None,
    ):
        self.statuses = list(statuses or [RunProgress(status="running")])
        self.results = results
        self.start_error = start_error
        self.gate = gate

        self.start_calls = []
        self.status_calls = 0
        self.results_calls = 0
        self.cancel_calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def start_run(self, config):
        self.start_calls.append(config)
        if self.gate is not None:
            await self.gate.wait()
        if self.start_error is not None:
            raise self.start_error
        return RunHandle(job_id="job-1", run_id="run-1", status="pending")

    async def get_run_status(self, job_id):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            index = min(self.status_calls, len(self.statuses) - 1)
            self.status_calls += 1
            item = self.statuses[index]
        finally:
            self.in_flight -= 1

        if isinstance(item, TransportError):
            raise item
        return item

    async def get_run_results(self, job_id):
        self.results_calls += 1
        if isinstance(self.results, TransportError):
            raise self.results
        if self.results is None:
            raise TransportError("Job not found", status_code=404)
        return self.results

    async def cancel_run(self, job_id):
        self.cancel_calls.append(job_id)
        return "Cancellation requested"


@pytest.fixture
def fake_backend_cls():
    """Return the FakeBackend class for tests that script their own backend."""
    return FakeBackend


@pytest.fixture
def make_result():
    """Factory for QueryResult records."""

    def _make(
        provider="openai",
        question="Which vitamin brand is best?",
        competitors=(),
        sources=(),
        brand_mentioned=False,
        sentiment=None,
    ):
        return QueryResult(
            question=question,
            provider=provider,
            model="gpt-4.1-mini",
            response_text="Some answer text",
            brand_mentioned=brand_mentioned,
            sentiment=sentiment,
            other_brands_detected=list(competitors),
            sources=[Source(url=url) for url in sources],
        )

    return _make


@pytest.fixture
def run_results(make_result):
    """Small completed run with competitors and sources."""
    return RunResults(
        summary=RunSummary(
            run_id="run-1",
            brand_name="Acme Vitamins",
            total_queries=2,
            total_responses=3,
            overall_visibility=33.3,
            avg_sentiment=0.4,
            provider_visibility={"openai": 50.0, "perplexity": 0.0},
            duration_seconds=42,
        ),
        results=[
            make_result(
                provider="openai",
                competitors=["Zenith", "Orbit"],
                sources=["https://www.example.com/a", "https://shop.test/b"],
                brand_mentioned=True,
                sentiment=0.6,
            ),
            make_result(provider="perplexity", competitors=["Zenith"]),
            make_result(provider="openai", question="Best magnesium supplement?"),
        ],
    )


@pytest.fixture
def run_config():
    """RunConfig that passes submission checks."""
    return RunConfig(
        brand_name="Acme Vitamins",
        industry="supplements",
        providers=("openai", "perplexity"),
        queries=(
            Query(question="Which vitamin brand is best?", category="custom", prompt_id="q_1"),
            Query(question="Best magnesium supplement?", category="custom", prompt_id="q_2"),
        ),
    )


@pytest.fixture
def reset_output_mode():
    """Reset global output_mode to default state around a test."""
    output_mode.reset("text", False)
    yield
    output_mode.reset("text", False)

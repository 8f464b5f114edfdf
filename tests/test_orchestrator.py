"""
Tests for orchestrator.run_orchestrator module.

Tests cover:
- Submission guard (validation before network, re-entrancy)
- Poll loop termination and the single in-flight status request
- Terminal status handling (completed, failed, cancelled)
- Degraded success when results cannot be fetched
- Transport failures on submit and while polling
- Observers, cancel, reset and teardown
- Loading results of an existing job
- Malformed 200 bodies through the real HTTP client
"""

import asyncio

import pytest

from geo_tracker.api.client import GeoTrackerClient
from geo_tracker.api.models import RunProgress
from geo_tracker.exceptions import (
    JobFailedError,
    ResultsUnavailableWarning,
    SubmissionInFlightError,
    TransportError,
    ValidationError,
)
from geo_tracker.orchestrator import RunOrchestrator

BASE_URL = "http://geo.test"


def running(completed=0, total=4):
    return RunProgress(status="running", completed_tasks=completed, total_tasks=total)


class TestSubmitValidation:
    """Test checks made before anything is sent."""

    @pytest.mark.asyncio
    async def test_empty_queries_rejected_without_network_call(
        self, fake_backend_cls, run_config
    ):
        """Test submitting without queries raises ValidationError and sends nothing."""
        backend = fake_backend_cls()
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        with pytest.raises(ValidationError, match="No queries to analyze"):
            await orchestrator.submit(run_config.with_queries([]))

        assert backend.start_calls == []
        assert backend.status_calls == 0
        assert orchestrator.state == "idle"

    @pytest.mark.asyncio
    async def test_blank_brand_rejected_without_network_call(
        self, fake_backend_cls, run_config
    ):
        """Test a whitespace brand name is rejected before submission."""
        backend = fake_backend_cls()
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        with pytest.raises(ValidationError, match="Brand name is required"):
            await orchestrator.submit(run_config.model_copy(update={"brand_name": "  "}))

        assert backend.start_calls == []

    def test_negative_poll_interval_rejected(self, fake_backend_cls):
        """Test negative poll interval raises ValueError."""
        with pytest.raises(ValueError, match="cannot be negative"):
            RunOrchestrator(fake_backend_cls(), poll_interval=-1)


class TestReentrancyGuard:
    """Test that concurrent submissions cannot race each other."""

    @pytest.mark.asyncio
    async def test_second_submit_fails_fast_while_first_in_flight(
        self, fake_backend_cls, run_config, run_results
    ):
        """Test two overlapping submits produce exactly one start_run call."""
        gate = asyncio.Event()
        backend = fake_backend_cls(
            statuses=[RunProgress(status="completed")], results=run_results, gate=gate
        )
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        first = asyncio.create_task(orchestrator.submit(run_config))
        await asyncio.sleep(0)
        assert orchestrator.state == "submitting"

        with pytest.raises(SubmissionInFlightError):
            await orchestrator.submit(run_config)

        gate.set()
        handle = await first

        assert handle.job_id == "job-1"
        assert len(backend.start_calls) == 1
        assert await orchestrator.wait() == "completed"

    @pytest.mark.asyncio
    async def test_submit_rejected_in_terminal_state_until_reset(
        self, fake_backend_cls, run_config, run_results
    ):
        """Test a finished run must be reset before the next submission."""
        backend = fake_backend_cls(
            statuses=[RunProgress(status="completed")], results=run_results
        )
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.submit(run_config)
        await orchestrator.wait()

        with pytest.raises(SubmissionInFlightError, match="completed"):
            await orchestrator.submit(run_config)

        await orchestrator.reset()
        await orchestrator.submit(run_config)
        assert len(backend.start_calls) == 2
        await orchestrator.aclose()


class TestPollLoop:
    """Test status polling up to a terminal status."""

    @pytest.mark.asyncio
    async def test_terminal_status_halts_polling(
        self, fake_backend_cls, run_config, run_results
    ):
        """Test running, running, completed yields one results fetch and no more polls."""
        backend = fake_backend_cls(
            statuses=[running(1), running(2), RunProgress(status="completed")],
            results=run_results,
        )
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.submit(run_config)
        state = await orchestrator.wait()

        assert state == "completed"
        assert backend.status_calls == 3
        assert backend.results_calls == 1
        assert orchestrator.results == run_results
        assert orchestrator.error is None

        for _ in range(5):
            await asyncio.sleep(0)
        assert backend.status_calls == 3
        assert not orchestrator.is_polling

    @pytest.mark.asyncio
    async def test_never_more_than_one_status_request_in_flight(
        self, fake_backend_cls, run_config, run_results
    ):
        """Test ticks never overlap even with a zero poll interval."""
        backend = fake_backend_cls(
            statuses=[running(i) for i in range(10)] + [RunProgress(status="completed")],
            results=run_results,
        )
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.submit(run_config)
        await orchestrator.wait()

        assert backend.status_calls == 11
        assert backend.max_in_flight == 1
        assert orchestrator.poll_count == 11

    @pytest.mark.asyncio
    async def test_progress_reflects_latest_status(
        self, fake_backend_cls, run_config, run_results
    ):
        """Test the last received snapshot is exposed as progress."""
        final = RunProgress(status="completed", completed_tasks=4, total_tasks=4)
        backend = fake_backend_cls(statuses=[running(1), final], results=run_results)
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.submit(run_config)
        await orchestrator.wait()

        assert orchestrator.progress == final


class TestTerminalOutcomes:
    """Test how each terminal status is surfaced."""

    @pytest.mark.asyncio
    async def test_results_fetch_failure_is_degraded_success(
        self, fake_backend_cls, run_config
    ):
        """Test a failing results fetch after completion leaves the run completed."""
        backend = fake_backend_cls(
            statuses=[RunProgress(status="completed")],
            results=TransportError("Results not found", status_code=404),
        )
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.submit(run_config)
        state = await orchestrator.wait()

        assert state == "completed"
        assert orchestrator.completed_without_results is True
        assert orchestrator.results is None
        assert orchestrator.error is None
        assert isinstance(orchestrator.results_warning, ResultsUnavailableWarning)
        assert "job-1" in str(orchestrator.results_warning)

    @pytest.mark.asyncio
    async def test_failed_status_records_first_error_line(
        self, fake_backend_cls, run_config
    ):
        """Test failed status produces JobFailedError with the headline only."""
        backend = fake_backend_cls(
            statuses=[
                running(),
                RunProgress(
                    status="failed", error="Provider quota exceeded\nTraceback (most recent...)"
                ),
            ]
        )
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.submit(run_config)
        state = await orchestrator.wait()

        assert state == "failed"
        assert isinstance(orchestrator.error, JobFailedError)
        assert str(orchestrator.error) == "Run failed: Provider quota exceeded"
        assert orchestrator.error.status == "failed"
        assert orchestrator.error.detail.startswith("Provider quota exceeded\n")
        assert backend.results_calls == 0

    @pytest.mark.asyncio
    async def test_cancelled_status_without_detail(self, fake_backend_cls, run_config):
        """Test cancelled status ends in the cancelled state."""
        backend = fake_backend_cls(statuses=[RunProgress(status="cancelled")])
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.submit(run_config)
        state = await orchestrator.wait()

        assert state == "cancelled"
        assert str(orchestrator.error) == "Run cancelled"
        assert orchestrator.error.status == "cancelled"


class TestTransportFailures:
    """Test network errors during submission and polling."""

    @pytest.mark.asyncio
    async def test_submit_transport_error_returns_to_idle(
        self, fake_backend_cls, run_config
    ):
        """Test a rejected submission re-raises and clears the guard."""
        backend = fake_backend_cls(
            start_error=TransportError("Backend unavailable", status_code=503)
        )
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        with pytest.raises(TransportError, match="Backend unavailable"):
            await orchestrator.submit(run_config)

        assert orchestrator.state == "idle"
        assert orchestrator.handle is None
        assert orchestrator.error.status_code == 503
        assert not orchestrator.is_polling
        assert backend.status_calls == 0

    @pytest.mark.asyncio
    async def test_submit_allowed_again_after_transport_error(
        self, fake_backend_cls, run_config, run_results
    ):
        """Test the guard is released so a retry can go through."""
        backend = fake_backend_cls(
            statuses=[RunProgress(status="completed")],
            results=run_results,
            start_error=TransportError("Backend unavailable", status_code=503),
        )
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        with pytest.raises(TransportError):
            await orchestrator.submit(run_config)

        backend.start_error = None
        await orchestrator.submit(run_config)
        assert await orchestrator.wait() == "completed"
        assert orchestrator.error is None

    @pytest.mark.asyncio
    async def test_status_error_fails_run(self, fake_backend_cls, run_config):
        """Test a failed status request stops polling and surfaces the error."""
        backend = fake_backend_cls(
            statuses=[running(), TransportError("Failed to reach GEO Tracker API: boom")]
        )
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.submit(run_config)
        state = await orchestrator.wait()

        assert state == "failed"
        assert isinstance(orchestrator.error, TransportError)
        assert backend.status_calls == 2

    @pytest.mark.asyncio
    async def test_status_error_ignored_once_results_are_stored(
        self, fake_backend_cls, run_results
    ):
        """Test a late status failure cannot turn a completed run into a failure."""
        orchestrator = RunOrchestrator(fake_backend_cls(results=run_results), poll_interval=0)
        await orchestrator.load_results("job-1")

        orchestrator._handle_poll_error("job-1", TransportError("late", status_code=502))

        assert orchestrator.state == "completed"
        assert orchestrator.error is None
        assert orchestrator.results == run_results


class TestMalformedResponses:
    """Test 200 responses of the wrong shape end the run in a defined state."""

    @pytest.mark.asyncio
    async def test_status_without_status_field_fails_run(self, run_config, httpx_mock):
        """Test a status body without "status" fails the run with a TransportError."""
        httpx_mock.add_response(
            method="POST",
            url=f"{BASE_URL}/api/runs",
            json={"job_id": "job-1", "run_id": "run-1", "status": "pending"},
        )
        httpx_mock.add_response(
            method="GET", url=f"{BASE_URL}/api/runs/job-1/status", json={"detail": "purged"}
        )
        orchestrator = RunOrchestrator(GeoTrackerClient(BASE_URL), poll_interval=0)

        await orchestrator.submit(run_config)
        state = await orchestrator.wait()

        assert state == "failed"
        assert isinstance(orchestrator.error, TransportError)
        assert orchestrator.error.status_code == 200
        assert not orchestrator.is_polling

    @pytest.mark.asyncio
    async def test_results_without_summary_is_degraded_success(
        self, run_config, httpx_mock
    ):
        """Test a results body without "summary" leaves the run completed without results."""
        httpx_mock.add_response(
            method="POST",
            url=f"{BASE_URL}/api/runs",
            json={"job_id": "job-1", "run_id": "run-1", "status": "pending"},
        )
        httpx_mock.add_response(
            method="GET",
            url=f"{BASE_URL}/api/runs/job-1/status",
            json={"status": "completed", "total_tasks": 4, "completed_tasks": 4},
        )
        httpx_mock.add_response(
            method="GET", url=f"{BASE_URL}/api/runs/job-1/results", json={"message": "gone"}
        )
        orchestrator = RunOrchestrator(GeoTrackerClient(BASE_URL), poll_interval=0)

        await orchestrator.submit(run_config)
        state = await orchestrator.wait()

        assert state == "completed"
        assert orchestrator.completed_without_results is True
        assert orchestrator.error is None
        assert isinstance(orchestrator.results_warning, ResultsUnavailableWarning)
        assert "Invalid response" in str(orchestrator.results_warning)


class TestObservers:
    """Test progress observers."""

    @pytest.mark.asyncio
    async def test_sync_and_async_observers_receive_every_snapshot(
        self, fake_backend_cls, run_config, run_results
    ):
        """Test observers see each snapshot in receipt order."""
        statuses = [running(1), running(2), RunProgress(status="completed")]
        backend = fake_backend_cls(statuses=statuses, results=run_results)
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        seen_sync = []
        seen_async = []

        async def async_observer(progress):
            seen_async.append(progress.status)

        orchestrator.add_observer(lambda progress: seen_sync.append(progress.completed_tasks))
        orchestrator.add_observer(async_observer)

        await orchestrator.submit(run_config)
        await orchestrator.wait()

        assert seen_sync == [1, 2, 0]
        assert seen_async == ["running", "running", "completed"]

    @pytest.mark.asyncio
    async def test_removed_observer_not_called(
        self, fake_backend_cls, run_config, run_results
    ):
        """Test remove_observer stops notifications."""
        backend = fake_backend_cls(
            statuses=[RunProgress(status="completed")], results=run_results
        )
        orchestrator = RunOrchestrator(backend, poll_interval=0)
        calls = []

        def observer(progress):
            calls.append(progress)

        orchestrator.add_observer(observer)
        orchestrator.remove_observer(observer)

        await orchestrator.submit(run_config)
        await orchestrator.wait()

        assert calls == []

    @pytest.mark.asyncio
    async def test_reset_from_observer_stops_loop(self, fake_backend_cls, run_config):
        """Test an observer can start a new analysis mid-run."""
        backend = fake_backend_cls(statuses=[running()])
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        async def observer(progress):
            await orchestrator.reset()

        orchestrator.add_observer(observer)
        await orchestrator.submit(run_config)

        for _ in range(10):
            await asyncio.sleep(0)

        assert orchestrator.state == "idle"
        assert backend.status_calls == 1


class TestCancelAndReset:
    """Test cancel(), reset() and teardown."""

    @pytest.mark.asyncio
    async def test_cancel_without_job_raises(self, fake_backend_cls):
        """Test cancel with no run raises ValueError."""
        orchestrator = RunOrchestrator(fake_backend_cls(), poll_interval=0)

        with pytest.raises(ValueError, match="No run to cancel"):
            await orchestrator.cancel()

    @pytest.mark.asyncio
    async def test_cancel_sends_one_request_and_keeps_polling(
        self, fake_backend_cls, run_config
    ):
        """Test cancel asks the backend once and lets polling observe the outcome."""
        backend = fake_backend_cls(statuses=[running(), running(), RunProgress(status="cancelled")])
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.submit(run_config)
        message = await orchestrator.cancel()

        assert message == "Cancellation requested"
        assert backend.cancel_calls == ["job-1"]
        assert await orchestrator.wait() == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_explicit_job_id(self, fake_backend_cls):
        """Test cancelling a job that was not submitted here."""
        backend = fake_backend_cls()
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.cancel("other-job")

        assert backend.cancel_calls == ["other-job"]
        assert orchestrator.state == "idle"

    @pytest.mark.asyncio
    async def test_reset_discards_state_and_stops_polling(
        self, fake_backend_cls, run_config
    ):
        """Test reset mid-run tears down the poll task deterministically."""
        backend = fake_backend_cls(statuses=[running()])
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.submit(run_config)
        for _ in range(5):
            await asyncio.sleep(0)
        assert orchestrator.is_polling

        await orchestrator.reset()
        calls_after_reset = backend.status_calls
        for _ in range(5):
            await asyncio.sleep(0)

        assert orchestrator.state == "idle"
        assert orchestrator.handle is None
        assert orchestrator.progress is None
        assert orchestrator.poll_count == 0
        assert not orchestrator.is_polling
        assert backend.status_calls == calls_after_reset

    @pytest.mark.asyncio
    async def test_context_manager_stops_polling(self, fake_backend_cls, run_config):
        """Test leaving the async context tears down the loop but keeps state."""
        backend = fake_backend_cls(statuses=[running()])

        async with RunOrchestrator(backend, poll_interval=0) as orchestrator:
            await orchestrator.submit(run_config)
            await asyncio.sleep(0)

        assert not orchestrator.is_polling
        assert orchestrator.state == "polling"
        assert orchestrator.handle.job_id == "job-1"

    @pytest.mark.asyncio
    async def test_wait_without_run_returns_current_state(self, fake_backend_cls):
        """Test wait returns immediately when nothing is polling."""
        orchestrator = RunOrchestrator(fake_backend_cls(), poll_interval=0)

        assert await orchestrator.wait() == "idle"


class TestLoadResults:
    """Test loading results for an existing job id."""

    @pytest.mark.asyncio
    async def test_load_results_completes(self, fake_backend_cls, run_results):
        """Test successful load moves to completed with a handle."""
        backend = fake_backend_cls(results=run_results)
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        results = await orchestrator.load_results("job-42")

        assert results == run_results
        assert orchestrator.state == "completed"
        assert orchestrator.handle.job_id == "job-42"
        assert orchestrator.handle.run_id == "run-1"
        assert backend.status_calls == 0

    @pytest.mark.asyncio
    async def test_load_results_failure_stays_idle(self, fake_backend_cls):
        """Test failed load re-raises and leaves the orchestrator idle."""
        backend = fake_backend_cls(results=TransportError("Job not found", status_code=404))
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        with pytest.raises(TransportError, match="Job not found"):
            await orchestrator.load_results("missing")

        assert orchestrator.state == "idle"
        assert orchestrator.error.status_code == 404

    @pytest.mark.asyncio
    async def test_load_results_refused_while_polling(
        self, fake_backend_cls, run_config, run_results
    ):
        """Test load_results is only allowed from idle."""
        backend = fake_backend_cls(statuses=[running()], results=run_results)
        orchestrator = RunOrchestrator(backend, poll_interval=0)

        await orchestrator.submit(run_config)
        with pytest.raises(SubmissionInFlightError):
            await orchestrator.load_results("job-1")
        await orchestrator.reset()

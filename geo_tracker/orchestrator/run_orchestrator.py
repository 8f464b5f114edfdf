"""
Run orchestrator: the lifecycle of one analysis job.

Owns a single job from submission through its terminal status:

    idle -> submitting -> polling -> completed | failed | cancelled

reset() ("start new analysis") re-enters idle from any state and discards all
run state. A new submission is only accepted from idle, so terminal states
must be reset first.

Polling runs as one asyncio task per job. Each tick sleeps for the poll
interval, requests the status, publishes it to observers and stops on a
terminal status. The next tick starts only after the previous one settled,
so at most one status request is ever in flight. Every loop owns a stop
event (its cancellation token) that is checked after each await; reset()
and aclose() set it and cancel the task.

Failure policy:
- ValidationError: raised by submit() before any network call
- TransportError on submit: state returns to idle, error recorded, re-raised
- "failed"/"cancelled" status: error recorded as JobFailedError
- results fetch failing after "completed": logged as ResultsUnavailableWarning,
  the run still counts as completed (without detailed results)
- status request failing: loop stops; surfaced only if no results are stored

Example:
    >>> async with RunOrchestrator(client) as orchestrator:
    ...     handle = await orchestrator.submit(config)
    ...     state = await orchestrator.wait()
    ...     if state == "completed" and orchestrator.results:
    ...         print(orchestrator.results.summary.overall_visibility)
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Literal

from geo_tracker.api.client import GeoTrackerClient
from geo_tracker.api.models import RunHandle, RunProgress, RunResults
from geo_tracker.config.constants import POLL_INTERVAL_SECONDS
from geo_tracker.config.schema import RunConfig
from geo_tracker.exceptions import (
    GeoTrackerError,
    JobFailedError,
    ResultsUnavailableWarning,
    SubmissionInFlightError,
    TransportError,
)
from geo_tracker.utils.logging import log_with_context

logger = logging.getLogger(__name__)

OrchestratorState = Literal[
    "idle", "submitting", "polling", "completed", "failed", "cancelled"
]

ProgressObserver = Callable[[RunProgress], Awaitable[None] | None]


class RunOrchestrator:
    """
    State machine driving one analysis job at a time.

    Attributes:
        client: Backend client (anything with the GeoTrackerClient run methods)
        poll_interval: Seconds between the end of one status tick and the next
    """

    def __init__(
        self,
        client: GeoTrackerClient,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        if poll_interval < 0:
            raise ValueError(f"poll_interval cannot be negative, got: {poll_interval}")

        self.client = client
        self.poll_interval = poll_interval

        self._observers: list[ProgressObserver] = []
        self._state: OrchestratorState = "idle"
        self._handle: RunHandle | None = None
        self._progress: RunProgress | None = None
        self._results: RunResults | None = None
        self._error: GeoTrackerError | None = None
        self._results_warning: ResultsUnavailableWarning | None = None
        self._task: asyncio.Task | None = None
        self._stop: asyncio.Event | None = None
        self._poll_count = 0

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def handle(self) -> RunHandle | None:
        return self._handle

    @property
    def progress(self) -> RunProgress | None:
        """Most recent status snapshot, in receipt order."""
        return self._progress

    @property
    def results(self) -> RunResults | None:
        return self._results

    @property
    def error(self) -> GeoTrackerError | None:
        """User-facing error of the current run, if any."""
        return self._error

    @property
    def results_warning(self) -> ResultsUnavailableWarning | None:
        return self._results_warning

    @property
    def completed_without_results(self) -> bool:
        """True when the job completed but its detailed results could not be fetched."""
        return self._state == "completed" and self._results is None

    @property
    def poll_count(self) -> int:
        """Status requests issued for the current run."""
        return self._poll_count

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_observer(self, observer: ProgressObserver) -> None:
        """
        Register a callback receiving every RunProgress, in receipt order.

        Observers may be plain functions or coroutine functions. They run
        inside the poll task, so a slow observer delays the next tick.
        """
        self._observers.append(observer)

    def remove_observer(self, observer: ProgressObserver) -> None:
        self._observers.remove(observer)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, config: RunConfig) -> RunHandle:
        """
        Submit a run and start polling it.

        Args:
            config: Run configuration

        Returns:
            RunHandle of the accepted job

        Raises:
            SubmissionInFlightError: If the orchestrator is not idle
            ValidationError: If the config cannot be submitted (no network call made)
            TransportError: If the backend rejected or never received the request
        """
        if self._state != "idle":
            raise SubmissionInFlightError(
                f"Cannot submit while orchestrator is {self._state}"
            )

        config.validate_for_submission()

        # Guard is taken before the first await
        self._state = "submitting"
        self._error = None
        accepted = False

        try:
            handle = await self.client.start_run(config)
            accepted = True
        except TransportError as e:
            logger.error(f"Run submission failed: {e}")
            self._error = e
            raise
        finally:
            if not accepted:
                self._state = "idle"

        self._handle = handle
        self._state = "polling"
        log_with_context(
            logger,
            logging.INFO,
            f"Run submitted for {config.brand_name}",
            context={
                "run_id": handle.run_id,
                "queries": len(config.queries),
                "providers": list(config.providers),
            },
            job_id=handle.job_id,
        )
        self._start_polling(handle.job_id)
        return handle

    async def load_results(self, job_id: str) -> RunResults:
        """
        Fetch the results of an existing job without submitting anything.

        Only allowed from idle. On success the orchestrator is completed and
        holds a RunHandle for job_id.

        Raises:
            SubmissionInFlightError: If the orchestrator is not idle
            TransportError: If the results cannot be fetched (state stays idle)
        """
        if self._state != "idle":
            raise SubmissionInFlightError(
                f"Cannot load results while orchestrator is {self._state}"
            )

        # Busy while the fetch is in flight, so submit() is refused meanwhile
        self._state = "submitting"
        try:
            results = await self.client.get_run_results(job_id)
        except TransportError as e:
            self._error = e
            self._state = "idle"
            raise

        run_id = results.summary.run_id
        self._handle = RunHandle(
            job_id=job_id,
            run_id=str(run_id) if run_id is not None else "",
            status="completed",
        )
        self._results = results
        self._error = None
        self._state = "completed"
        return results

    # ------------------------------------------------------------------
    # Poll loop
    # ------------------------------------------------------------------

    def _start_polling(self, job_id: str) -> None:
        if self.is_polling:
            # One task per run; a second one would overlap status requests
            raise RuntimeError("Poll loop already running")

        self._poll_count = 0
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(
            self._poll_loop(job_id, self._stop), name=f"geo-tracker-poll-{job_id}"
        )

    async def _poll_loop(self, job_id: str, stop: asyncio.Event) -> None:
        while not stop.is_set():
            await asyncio.sleep(self.poll_interval)
            if stop.is_set():
                return

            self._poll_count += 1
            try:
                progress = await self.client.get_run_status(job_id)
            except TransportError as e:
                if not stop.is_set():
                    self._handle_poll_error(job_id, e)
                return

            if stop.is_set():
                return

            self._progress = progress
            await self._publish(progress)

            if progress.is_terminal:
                log_with_context(
                    logger,
                    logging.INFO,
                    f"Run reached terminal status: {progress.status}",
                    context={"polls": self._poll_count},
                    job_id=job_id,
                )
                if progress.status == "completed":
                    await self._handle_completed(job_id, stop)
                else:
                    self._handle_job_failed(progress)
                return

    async def _publish(self, progress: RunProgress) -> None:
        for observer in list(self._observers):
            outcome = observer(progress)
            if inspect.isawaitable(outcome):
                await outcome

    async def _handle_completed(self, job_id: str, stop: asyncio.Event) -> None:
        try:
            results = await self.client.get_run_results(job_id)
        except TransportError as e:
            if stop.is_set():
                return
            warning = ResultsUnavailableWarning(
                f"Results for job {job_id} could not be fetched: {e}"
            )
            log_with_context(
                logger,
                logging.WARNING,
                str(warning),
                context={"status_code": e.status_code},
                job_id=job_id,
            )
            self._results_warning = warning
            self._state = "completed"
            return

        if stop.is_set():
            return

        self._results = results
        self._error = None
        self._state = "completed"

    def _handle_job_failed(self, progress: RunProgress) -> None:
        headline = progress.error_headline
        if headline:
            message = f"Run {progress.status}: {headline}"
        else:
            message = f"Run {progress.status}"

        self._error = JobFailedError(
            message, status=progress.status, detail=progress.error
        )
        self._state = "cancelled" if progress.status == "cancelled" else "failed"
        logger.warning(message)

    def _handle_poll_error(self, job_id: str, error: TransportError) -> None:
        if self._results is not None:
            # Late failure after success is not a fault
            logger.debug(f"Ignoring status error after results were stored: {error}")
            return

        log_with_context(
            logger,
            logging.ERROR,
            f"Status polling failed: {error}",
            context={"status_code": error.status_code, "polls": self._poll_count},
            job_id=job_id,
        )
        self._error = error
        self._state = "failed"

    async def wait(self) -> OrchestratorState:
        """
        Wait until the current poll loop ends and return the resulting state.

        Returns immediately when no loop is running.
        """
        task = self._task
        if task is not None:
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return self._state

    # ------------------------------------------------------------------
    # Cancellation and teardown
    # ------------------------------------------------------------------

    async def cancel(self, job_id: str | None = None) -> str:
        """
        Ask the backend to cancel a job (best effort).

        Issues exactly one request and leaves the poll loop running; the loop
        ends once a status poll reports the terminal status.

        Args:
            job_id: Job to cancel (defaults to the current run)

        Returns:
            The backend's acknowledgement message

        Raises:
            ValueError: If there is no job to cancel
            TransportError: If the cancel request failed
        """
        job_id = job_id or (self._handle.job_id if self._handle else None)
        if not job_id:
            raise ValueError("No run to cancel")

        message = await self.client.cancel_run(job_id)
        log_with_context(logger, logging.INFO, "Cancellation requested", job_id=job_id)
        return message

    async def _stop_polling(self) -> None:
        task, stop = self._task, self._stop
        self._task = None
        self._stop = None

        if stop is not None:
            stop.set()
        if task is None or task.done():
            return

        task.cancel()
        if task is asyncio.current_task():
            # Called from an observer; the task unwinds on its next await
            return
        await asyncio.wait({task})

    async def reset(self) -> None:
        """Stop any poll loop and discard all run state ("start new analysis")."""
        await self._stop_polling()
        self._state = "idle"
        self._handle = None
        self._progress = None
        self._results = None
        self._error = None
        self._results_warning = None
        self._poll_count = 0

    async def aclose(self) -> None:
        """Tear down the poll loop, keeping the last observed state."""
        await self._stop_polling()

    async def __aenter__(self) -> "RunOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

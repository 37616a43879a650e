from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Callable, Optional
import httpx
from pydantic import ValidationError
from chatfleet.config import JOB_POLL_INTERVAL
from chatfleet.deps.auth import TokenProvider
from chatfleet.errors import ApiError
from chatfleet.models.schemas import JobProgress, JobState
from chatfleet.obs.decorators import traced
from chatfleet.obs.logging_setup import get_logger
from chatfleet.obs.prometheus_metrics import prometheus_metrics
from chatfleet.services.api_client import ApiClient

logger = get_logger(__name__)

# Failures that only mean "no information this tick"
TRANSIENT_POLL_ERRORS = (httpx.HTTPError, ApiError, ValidationError, ValueError)


@dataclass
class PollHandle:
    """Owned reference to one job's polling loop."""

    job_id: str
    task: asyncio.Task

    @property
    def active(self) -> bool:
        return not self.task.done()


class JobPoller:
    """
    Follows one background job until it reaches ``done`` or ``error``.

    Status is fetched once per interval, one request at a time. Failed
    fetches are ignored and retried on the next tick. Starting another job
    cancels the loop of the previous one, so at most one loop is active.
    """

    def __init__(
        self,
        api: ApiClient,
        token_provider: Optional[TokenProvider],
        interval: float = JOB_POLL_INTERVAL,
        on_update: Optional[Callable[[JobProgress], None]] = None,
    ):
        self.api = api
        self.token_provider = token_provider
        self.interval = interval
        self.on_update = on_update
        self.status = JobProgress()
        self._handle: Optional[PollHandle] = None

    @property
    def handle(self) -> Optional[PollHandle]:
        return self._handle

    def start(self, job_id: str) -> PollHandle:
        """Begin polling ``job_id``, replacing any loop already running."""
        if self._handle is not None:
            self.cancel(self._handle)

        self._publish(JobProgress(job_id=job_id, state=JobState.QUEUED))
        task = asyncio.create_task(self._poll_loop(job_id), name=f"job-poll-{job_id}")
        self._handle = PollHandle(job_id=job_id, task=task)
        prometheus_metrics.poller_started()
        task.add_done_callback(lambda _: prometheus_metrics.poller_stopped())

        logger.info("Job polling started", job_id=job_id, interval_seconds=self.interval)
        return self._handle

    def cancel(self, handle: PollHandle) -> None:
        if handle.active:
            handle.task.cancel()
            logger.info("Job polling cancelled", job_id=handle.job_id)

    def stop(self) -> None:
        if self._handle is not None:
            self.cancel(self._handle)

    async def wait(self) -> JobProgress:
        """Wait for the current loop to finish and return the last status."""
        if self._handle is not None:
            try:
                await self._handle.task
            except asyncio.CancelledError:
                pass
        return self.status

    def _publish(self, status: JobProgress) -> None:
        self.status = status
        if self.on_update is not None:
            self.on_update(status)

    async def _poll_loop(self, job_id: str) -> None:
        while True:
            await asyncio.sleep(self.interval)

            status = await self._poll_once(job_id)
            if status is None:
                continue

            self._publish(status)

            if status.state.is_terminal:
                prometheus_metrics.record_job_terminal(status.state.value)
                logger.info(
                    "Job reached terminal state",
                    job_id=job_id,
                    state=status.state.value,
                    job_error=status.error,
                )
                return

    @traced("job_poll")
    async def _poll_once(self, job_id: str) -> Optional[JobProgress]:
        token = self.token_provider.get_token() if self.token_provider is not None else None
        if not token:
            prometheus_metrics.record_poll("skipped")
            return None

        try:
            payload = await self.api.get_job(token, job_id)
        except TRANSIENT_POLL_ERRORS as e:
            prometheus_metrics.record_poll("failed")
            logger.debug("Job poll failed, retrying next tick", job_id=job_id, error=str(e))
            return None

        if payload is None:
            prometheus_metrics.record_poll("failed")
            return None

        prometheus_metrics.record_poll("success")
        return JobProgress.from_payload(job_id, payload)

"""
Fixed-interval polling of the engine's job history.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests
from pydantic import ValidationError

from .base import Completed, Failed, Job, JobStatus, Pending, TimedOut
from .http import HttpClient
from .schemas import HistoryEntry
from .utils import ExecutionError, WorkflowTimeoutError

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.0
ERROR_STATUS = "error"


def interpret_history(job_id: str, history: Any) -> JobStatus:
    """Map one ``/history/{id}`` reply onto a poll state.

    A missing record, a missing status and an incomplete status all mean
    the job is still pending; the engine's history index can lag behind
    job registration.
    """
    if not isinstance(history, dict):
        raise ExecutionError(
            f"Unexpected history response for {job_id}: {type(history).__name__}",
            cause=ExecutionError.BAD_RESPONSE,
        )

    raw_entry = history.get(job_id)
    if raw_entry is None:
        logger.debug("Prompt %s not found in history", job_id)
        return Pending()

    try:
        entry = HistoryEntry.model_validate(raw_entry)
    except ValidationError as exc:
        raise ExecutionError(
            f"Malformed history entry for {job_id}: {exc}",
            cause=ExecutionError.BAD_RESPONSE,
        ) from exc

    if entry.status is None:
        logger.debug("Execution status not found for %s", job_id)
        return Pending()
    if not entry.status.completed:
        return Pending()

    if entry.status.status_str == ERROR_STATUS:
        return Failed("Workflow execution failed")
    return Completed(outputs=entry.outputs or {}, status_str=entry.status.status_str)


class JobPoller:
    """Query job status once per interval until completion or the deadline."""

    def __init__(
        self,
        http: HttpClient,
        *,
        interval: float = POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http = http
        self.interval = interval
        self._sleep = sleep
        self._clock = clock

    def check(self, job_id: str) -> JobStatus:
        """Issue a single history request and interpret it."""
        try:
            history = self.http.get_json(f"/history/{job_id}")
        except requests.RequestException as exc:
            raise ExecutionError(
                f"History request for {job_id} failed: {exc}",
                cause=ExecutionError.REQUEST_FAILED,
            ) from exc
        return interpret_history(job_id, history)

    def wait(self, job: Job) -> JobStatus:
        """Run the poll loop and return the terminal state it ended in."""
        attempts = 0
        while attempts < job.max_polls:
            self._sleep(self.interval)
            # No status request may go out after the deadline.
            if self._clock() > job.deadline:
                break
            attempts += 1
            logger.debug(
                "Checking execution status (attempt %d/%d)...", attempts, job.max_polls
            )
            status = self.check(job.id)
            if status.terminal:
                return status
        return TimedOut(elapsed_minutes=job.timeout_minutes)

    def poll(self, job: Job) -> Completed:
        status = self.wait(job)
        if isinstance(status, Failed):
            raise ExecutionError(status.message, cause=ExecutionError.ENGINE_ERROR)
        if isinstance(status, TimedOut):
            raise WorkflowTimeoutError(status.elapsed_minutes)
        logger.info("Execution completed for prompt %s", job.id)
        return status

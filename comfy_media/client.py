"""
End-to-end execution of a workflow on a remote ComfyUI engine.

``WorkflowJobClient.run`` checks the engine is reachable, queues the
workflow, waits for the job to finish and then downloads every produced
artifact concurrently, returning one :class:`OutputRecord` per artifact in
the order the engine listed them.
"""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

import requests
from pydantic import ValidationError

from .artifacts import ArtifactFetcher
from .base import Job, JobResult, OutputFormat, OutputRecord
from .codec import TranscodeAdapter
from .http import HttpClient
from .poller import JobPoller
from .schemas import ArtifactRef, NodeOutput, PromptResponse
from .utils import ConnectivityError, ExecutionError, SubmissionError

logger = logging.getLogger(__name__)

GRACE_DELAY_SECONDS = 5.0
DEFAULT_TIMEOUT_MINUTES = 30
DEFAULT_MAX_WORKERS = 4

WorkflowInput = Union[str, bytes, Mapping[str, Any]]


def enumerate_artifacts(outputs: Mapping[str, NodeOutput]) -> List[ArtifactRef]:
    """Flatten node outputs into one list of downloadable refs.

    Nodes are visited in the engine's order, images before audios within a
    node. Refs whose kind is neither ``output`` nor ``temp`` are dropped.
    """
    refs: List[ArtifactRef] = []
    for node_output in outputs.values():
        refs.extend(ref for ref in node_output.artifacts() if ref.downloadable)
    return refs


class WorkflowJobClient:
    """Submit a workflow, wait for it and collect its artifacts."""

    def __init__(
        self,
        http: HttpClient,
        *,
        transcoder: Optional[TranscodeAdapter] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        grace_delay: float = GRACE_DELAY_SECONDS,
        poll_interval: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http = http
        self.max_workers = max(1, max_workers)
        self.grace_delay = grace_delay
        self._sleep = sleep
        self._clock = clock

        poller_kwargs = {"sleep": sleep, "clock": clock}
        if poll_interval is not None:
            poller_kwargs["interval"] = poll_interval
        self.poller = JobPoller(http, **poller_kwargs)
        self.fetcher = ArtifactFetcher(http, transcoder)

    def check_connection(self) -> None:
        """Probe ``/system_stats``; raise ConnectivityError if unreachable."""
        logger.info("Checking API connection...")
        try:
            self.http.get_json("/system_stats")
        except requests.RequestException as exc:
            raise ConnectivityError(
                f"ComfyUI API is unreachable: {exc}", cause="system_stats"
            ) from exc

    def submit(self, workflow: WorkflowInput, timeout_minutes: int) -> Job:
        """Queue the workflow and return the job the engine created for it."""
        prompt = parse_workflow(workflow)

        logger.info("Queueing prompt...")
        try:
            reply = self.http.post_json("/prompt", {"prompt": prompt})
        except requests.RequestException as exc:
            raise SubmissionError(
                f"Failed to queue prompt: {exc}", cause=SubmissionError.REQUEST_FAILED
            ) from exc

        try:
            response = PromptResponse.model_validate(reply if isinstance(reply, dict) else {})
        except ValidationError:
            response = PromptResponse()
        if not response.prompt_id:
            raise SubmissionError(
                "Failed to get prompt ID from ComfyUI", cause=SubmissionError.MISSING_JOB_ID
            )

        logger.info("Prompt queued with ID: %s", response.prompt_id)
        return Job(
            id=response.prompt_id,
            submitted_at=self._clock(),
            timeout_minutes=timeout_minutes,
        )

    def fetch_all(self, refs: Iterable[ArtifactRef], output_format: OutputFormat) -> List[OutputRecord]:
        """Fetch and encode every ref concurrently, keeping input order."""
        refs = list(refs)
        if not refs:
            return []
        workers = min(self.max_workers, len(refs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="artifact") as executor:
            return list(
                executor.map(lambda ref: self.fetcher.fetch_and_encode(ref, output_format), refs)
            )

    def execute(
        self,
        workflow: WorkflowInput,
        output_format: OutputFormat,
        timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES,
    ) -> JobResult:
        """Run the workflow and return the job together with its records."""
        self.check_connection()
        job = self.submit(workflow, timeout_minutes)

        # Grace period before the first history lookup.
        self._sleep(self.grace_delay)
        completed = self.poller.poll(job)

        if not completed.outputs:
            raise ExecutionError(
                "No outputs found in workflow result", cause=ExecutionError.NO_OUTPUTS
            )

        refs = enumerate_artifacts(completed.outputs)
        records = self.fetch_all(refs, output_format)

        failed = sum(1 for record in records if not record.ok)
        logger.info(
            "Downloaded %d artifact(s) for prompt %s (%d failed)",
            len(records) - failed,
            job.id,
            failed,
        )
        return JobResult(job=job, records=records)

    def run(
        self,
        workflow: WorkflowInput,
        output_format: OutputFormat,
        timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES,
    ) -> List[OutputRecord]:
        return self.execute(workflow, output_format, timeout_minutes).records


def parse_workflow(workflow: WorkflowInput) -> Any:
    """Return the workflow as a parsed JSON object (node id -> node)."""
    if isinstance(workflow, Mapping):
        return dict(workflow)
    try:
        prompt = json.loads(workflow)
    except (TypeError, ValueError) as exc:
        raise SubmissionError(
            f"Workflow is not valid JSON: {exc}", cause=SubmissionError.MALFORMED_WORKFLOW
        ) from exc
    if not isinstance(prompt, dict):
        raise SubmissionError(
            f"Workflow must be a JSON object, got {type(prompt).__name__}",
            cause=SubmissionError.MALFORMED_WORKFLOW,
        )
    return prompt

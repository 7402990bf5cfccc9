"""
Error taxonomy and small helpers shared by the workflow job client.
"""

from __future__ import annotations

import base64
from pathlib import Path
from typing import Optional


class WorkflowJobError(RuntimeError):
    """Raised when a workflow job cannot be carried through to its outputs.

    ``stage`` names the lifecycle step that failed and ``cause`` is a short
    machine-readable reason within that stage.
    """

    stage = "job"

    def __init__(self, message: str, *, cause: Optional[str] = None):
        super().__init__(message)
        self.cause = cause


class ConnectivityError(WorkflowJobError):
    """The engine did not answer the pre-submission status probe."""

    stage = "connectivity"


class SubmissionError(WorkflowJobError):
    """The workflow could not be queued on the engine."""

    stage = "submission"

    MALFORMED_WORKFLOW = "malformed_workflow"
    MISSING_JOB_ID = "missing_job_id"
    REQUEST_FAILED = "request_failed"


class ExecutionError(WorkflowJobError):
    """The engine ran the workflow but did not produce usable outputs."""

    stage = "execution"

    ENGINE_ERROR = "engine_error"
    NO_OUTPUTS = "no_outputs"
    BAD_RESPONSE = "bad_response"
    REQUEST_FAILED = "request_failed"


class WorkflowTimeoutError(WorkflowJobError):
    """The job did not complete before its deadline."""

    stage = "polling"

    def __init__(self, elapsed_minutes: int):
        super().__init__(
            f"Execution timeout after {elapsed_minutes} minutes", cause="deadline"
        )
        self.elapsed_minutes = elapsed_minutes


class ArtifactError(WorkflowJobError):
    """A single artifact could not be downloaded or transcoded.

    Never aborts the job; the fetch stage records the message on the
    artifact's output record instead.
    """

    stage = "artifact"


class ConfigError(ValueError):
    """Raised when the service configuration is missing or invalid."""


def ensure_directory(path: Path) -> Path:
    """Create the directory (and parents) if it does not already exist."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def size_label(num_bytes: int) -> str:
    """Human readable size in kilobytes, rounded to one decimal."""
    kilobytes = round(num_bytes / 1024, 1)
    if kilobytes.is_integer():
        return f"{int(kilobytes)} kB"
    return f"{kilobytes} kB"


def encode_payload(data: bytes) -> str:
    """Base64 text suitable for embedding in a JSON record."""
    return base64.b64encode(data).decode("ascii")

"""
Client for running ComfyUI workflows on a remote engine.

Exposes the job client that submits a workflow, waits for it to finish and
returns its image and audio artifacts in the requested output format.
"""

from .base import JobResult, JpegFormat, OutputFormat, OutputRecord, PngFormat, WavFormat
from .client import WorkflowJobClient
from .http import EngineHttpClient, HttpClient
from .utils import (
    ArtifactError,
    ConnectivityError,
    ExecutionError,
    SubmissionError,
    WorkflowJobError,
    WorkflowTimeoutError,
)

__all__ = [
    "ArtifactError",
    "ConnectivityError",
    "EngineHttpClient",
    "ExecutionError",
    "HttpClient",
    "JobResult",
    "JpegFormat",
    "OutputFormat",
    "OutputRecord",
    "PngFormat",
    "SubmissionError",
    "WavFormat",
    "WorkflowJobClient",
    "WorkflowJobError",
    "WorkflowTimeoutError",
]

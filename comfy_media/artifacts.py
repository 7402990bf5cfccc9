"""
Classification, download and encoding of individual job artifacts.

Every artifact is handled in isolation: whatever goes wrong while fetching
one file ends up as an error on that file's record and never escapes to the
caller.
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

import requests

from .base import OutputFormat, OutputRecord
from .codec import TranscodeAdapter
from .http import HttpClient
from .schemas import ArtifactRef
from .utils import ArtifactError

logger = logging.getLogger(__name__)

Classification = Literal["image", "audio", "unsupported"]

UNSUPPORTED_MESSAGE = "only jpeg, png and wav are supported"
VIEW_PATH = "/view"


def classify_artifact(ref: ArtifactRef, output_format: OutputFormat) -> Classification:
    """Decide whether ``ref`` can be delivered in ``output_format``.

    Images qualify only for jpeg/png output and audio only for wav output;
    everything else is unsupported.
    """
    media_class = ref.media_class
    if media_class is not None and media_class == output_format.media_class:
        return media_class
    return "unsupported"


class ArtifactFetcher:
    """Download one artifact from the engine and encode it for the caller."""

    def __init__(self, http: HttpClient, transcoder: Optional[TranscodeAdapter] = None):
        self.http = http
        self.transcoder = transcoder or TranscodeAdapter()

    def download(self, ref: ArtifactRef) -> bytes:
        return self.http.get_bytes(VIEW_PATH, params=ref.view_params())

    def fetch_and_encode(self, ref: ArtifactRef, output_format: OutputFormat) -> OutputRecord:
        classification = classify_artifact(ref, output_format)
        if classification == "unsupported":
            logger.error("Only jpeg, png and wav are supported, %s", ref.filename)
            return OutputRecord.failure(ref, UNSUPPORTED_MESSAGE)

        logger.info("Downloading %s file: %s", ref.kind, ref.filename)
        try:
            raw = self.download(ref)
            payload = self.transcoder.transcode(raw, classification, output_format)
        except (requests.RequestException, ArtifactError) as exc:
            logger.error("Failed to download or encode %s: %s", ref.filename, exc)
            return OutputRecord.failure(ref, str(exc))
        except Exception as exc:
            logger.error("Unexpected failure fetching %s: %s", ref.filename, exc)
            return OutputRecord.failure(ref, str(exc))

        record = OutputRecord.success(ref, payload, output_format)
        logger.info("Got %s %s data at: %s", record.file_size, classification, ref.filename)
        return record

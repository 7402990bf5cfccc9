"""
Wire schemas for the engine's JSON replies.

Engine responses are validated here, at the HTTP boundary, so the poller and
client only ever handle typed objects.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MediaClass = Literal["image", "audio"]

IMAGE_PATTERN = re.compile(r"\.(jpe?g|png)$", re.IGNORECASE)
AUDIO_PATTERN = re.compile(r"\.wav$", re.IGNORECASE)

DOWNLOADABLE_KINDS = ("output", "temp")


class PromptResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt_id: Optional[str] = None
    number: Optional[int] = None

    @field_validator("prompt_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class ArtifactRef(BaseModel):
    """One file produced by a graph node, as listed in the job history."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    filename: str
    subfolder: str = ""
    kind: str = Field("", alias="type")

    @field_validator("subfolder", "kind", mode="before")
    @classmethod
    def _blank_if_missing(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def media_class(self) -> Optional[MediaClass]:
        if IMAGE_PATTERN.search(self.filename):
            return "image"
        if AUDIO_PATTERN.search(self.filename):
            return "audio"
        return None

    @property
    def downloadable(self) -> bool:
        return self.kind in DOWNLOADABLE_KINDS

    def view_params(self) -> Dict[str, str]:
        """Query parameters for the engine's ``/view`` endpoint."""
        return {"filename": self.filename, "subfolder": self.subfolder, "type": self.kind}


class NodeOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    images: List[ArtifactRef] = Field(default_factory=list)
    audios: List[ArtifactRef] = Field(default_factory=list)

    @field_validator("images", "audios", mode="before")
    @classmethod
    def _empty_if_missing(cls, value: Any) -> Any:
        return [] if value is None else value

    def artifacts(self) -> List[ArtifactRef]:
        return [*self.images, *self.audios]


class ExecutionStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    completed: bool = False
    status_str: Optional[str] = None

    @field_validator("completed", mode="before")
    @classmethod
    def _false_if_missing(cls, value: Any) -> Any:
        return False if value is None else value


class HistoryEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Optional[ExecutionStatus] = None
    outputs: Optional[Dict[str, NodeOutput]] = None

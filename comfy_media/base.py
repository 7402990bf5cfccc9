"""
Data model shared by the workflow job client: jobs, poll states, output
formats and the per-artifact output record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional, Union

from .schemas import ArtifactRef, MediaClass, NodeOutput
from .utils import encode_payload, size_label

DEFAULT_JPEG_QUALITY = 80


@dataclass(frozen=True)
class Job:
    """One submitted workflow execution."""

    id: str
    submitted_at: float
    timeout_minutes: int

    def __post_init__(self):
        if not self.id:
            raise ValueError("Job id must be a non-empty string")

    @property
    def deadline(self) -> float:
        return self.submitted_at + 60 * self.timeout_minutes

    @property
    def max_polls(self) -> int:
        return 60 * self.timeout_minutes


@dataclass(frozen=True)
class Pending:
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class Completed:
    outputs: Dict[str, NodeOutput]
    status_str: Optional[str] = None
    terminal: ClassVar[bool] = True


@dataclass(frozen=True)
class Failed:
    message: str
    terminal: ClassVar[bool] = True


@dataclass(frozen=True)
class TimedOut:
    elapsed_minutes: int
    terminal: ClassVar[bool] = True


JobStatus = Union[Pending, Completed, Failed, TimedOut]


class OutputFormat:
    """Target format for fetched artifacts.

    Use :meth:`from_name` to build one of the concrete variants. Only
    :class:`JpegFormat` carries a quality setting.
    """

    name: ClassVar[str]
    media_class: ClassVar[MediaClass]
    mime_type: ClassVar[str]

    @property
    def extension(self) -> str:
        return self.name

    @staticmethod
    def from_name(name: str, jpeg_quality: Optional[int] = None) -> "OutputFormat":
        key = (name or "").strip().lower()
        if key in ("jpeg", "jpg"):
            return JpegFormat(DEFAULT_JPEG_QUALITY if jpeg_quality is None else int(jpeg_quality))
        if key == "png":
            return PngFormat()
        if key == "wav":
            return WavFormat()
        raise ValueError(f"Unsupported output format '{name}' (expected jpeg, png or wav)")


@dataclass(frozen=True)
class JpegFormat(OutputFormat):
    quality: int = DEFAULT_JPEG_QUALITY

    name: ClassVar[str] = "jpeg"
    media_class: ClassVar[MediaClass] = "image"
    mime_type: ClassVar[str] = "image/jpeg"

    def __post_init__(self):
        if not 1 <= self.quality <= 100:
            raise ValueError(f"JPEG quality must be between 1 and 100, got {self.quality}")


@dataclass(frozen=True)
class PngFormat(OutputFormat):
    name: ClassVar[str] = "png"
    media_class: ClassVar[MediaClass] = "image"
    mime_type: ClassVar[str] = "image/png"


@dataclass(frozen=True)
class WavFormat(OutputFormat):
    name: ClassVar[str] = "wav"
    media_class: ClassVar[MediaClass] = "audio"
    mime_type: ClassVar[str] = "audio/wav"


@dataclass
class OutputRecord:
    """Structured representation of one fetched artifact.

    A record is either a success (``content`` set) or a failure (``error``
    set); both always carry the artifact's locator fields.
    """

    filename: str
    type: str
    subfolder: str
    content: Optional[bytes] = field(default=None, repr=False)
    file_type: Optional[MediaClass] = None
    file_extension: Optional[str] = None
    mime_type: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(
        cls, ref: ArtifactRef, content: bytes, output_format: OutputFormat
    ) -> "OutputRecord":
        return cls(
            filename=ref.filename,
            type=ref.kind,
            subfolder=ref.subfolder,
            content=content,
            file_type=output_format.media_class,
            file_extension=output_format.extension,
            mime_type=output_format.mime_type,
        )

    @classmethod
    def failure(cls, ref: ArtifactRef, message: str) -> "OutputRecord":
        return cls(
            filename=ref.filename,
            type=ref.kind,
            subfolder=ref.subfolder,
            error=message,
        )

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None

    @property
    def data(self) -> Optional[str]:
        return encode_payload(self.content) if self.content is not None else None

    @property
    def file_size(self) -> Optional[str]:
        return size_label(len(self.content)) if self.content is not None else None

    def to_dict(self) -> Dict[str, object]:
        record: Dict[str, object] = {
            "filename": self.filename,
            "type": self.type,
            "subfolder": self.subfolder,
        }
        if self.ok:
            record.update(
                {
                    "data": self.data,
                    "file_type": self.file_type,
                    "file_size": self.file_size,
                    "file_extension": self.file_extension,
                    "mime_type": self.mime_type,
                }
            )
        else:
            record["error"] = self.error
        return record


@dataclass
class JobResult:
    job: Job
    records: List[OutputRecord]

    @property
    def failures(self) -> List[OutputRecord]:
        return [record for record in self.records if not record.ok]

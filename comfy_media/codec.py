"""
Image codec and transcoding of fetched artifact bytes into the requested
output format.
"""

from __future__ import annotations

import io
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .base import JpegFormat, OutputFormat, PngFormat, WavFormat
from .schemas import MediaClass
from .utils import ArtifactError

# Modes Pillow can write directly as JPEG.
JPEG_MODES = ("RGB", "L", "CMYK")


class PillowImageCodec:
    """Decode and encode images with Pillow."""

    def decode(self, data: bytes) -> Image.Image:
        image = Image.open(io.BytesIO(data))
        image.load()
        return image

    def encode_jpeg(self, image: Image.Image, quality: int) -> bytes:
        if image.mode not in JPEG_MODES:
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=quality)
        return buffer.getvalue()

    def encode_png(self, image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()


class TranscodeAdapter:
    """Convert raw artifact bytes into the payload for an output format."""

    def __init__(self, codec: Optional[PillowImageCodec] = None):
        self.codec = codec or PillowImageCodec()

    def transcode(self, data: bytes, media_class: MediaClass, output_format: OutputFormat) -> bytes:
        if media_class != output_format.media_class:
            raise ArtifactError(
                f"Cannot convert {media_class} data to {output_format.name}",
                cause="format_mismatch",
            )

        # Audio is passed through untouched.
        if isinstance(output_format, WavFormat):
            return data

        try:
            image = self.codec.decode(data)
            if isinstance(output_format, JpegFormat):
                return self.codec.encode_jpeg(image, output_format.quality)
            if isinstance(output_format, PngFormat):
                return self.codec.encode_png(image)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise ArtifactError(f"Failed to transcode image: {exc}", cause="transcode") from exc

        raise ArtifactError(f"Unsupported output format {output_format.name}", cause="format")

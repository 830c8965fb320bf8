from __future__ import annotations

import io
import os
from dataclasses import dataclass

from PIL import Image

from rendition_core.errors import ExtractionError
from rendition_core.logging import get_logger

logger = get_logger(__name__)

ImageSource = bytes | bytearray | memoryview | str | os.PathLike


@dataclass(frozen=True)
class ImageMetadata:
    width: int = 0
    height: int = 0
    format: str = ""

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def long_edge(self) -> int:
        return max(self.width, self.height)


EMPTY_METADATA = ImageMetadata()


def open_source(source: ImageSource) -> Image.Image:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return Image.open(io.BytesIO(bytes(source)))
    return Image.open(os.fspath(source))


def _has_content(source: ImageSource | None) -> bool:
    if source is None:
        return False
    if isinstance(source, (bytes, bytearray, memoryview)):
        return len(source) > 0
    path = os.fspath(source)
    return os.path.isfile(path) and os.path.getsize(path) > 0


def read_image_metadata(source: ImageSource | None) -> ImageMetadata:
    if not _has_content(source):
        raise ExtractionError("Image source is empty or missing")
    try:
        with open_source(source) as img:
            width, height = img.size
            fmt = (img.format or "").lower()
    except Exception as exc:
        raise ExtractionError(f"Unreadable image: {exc}") from exc
    if width <= 0 or height <= 0:
        raise ExtractionError(f"Image has no pixels: {width}x{height}")
    return ImageMetadata(width=int(width), height=int(height), format=fmt)


def extract_image_metadata(source: ImageSource | None) -> ImageMetadata:
    """Read width, height and format from an image header.

    Never raises: corrupt, truncated, unsupported, empty or missing input all
    produce the zero value so the caller can carry on with a degraded asset.
    """
    try:
        return read_image_metadata(source)
    except ExtractionError as exc:
        logger.debug(
            "Image metadata unavailable",
            extra={"error_message": str(exc)},
        )
        return EMPTY_METADATA

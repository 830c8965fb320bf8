from __future__ import annotations

import io
import threading
from dataclasses import dataclass

from PIL import Image, ImageOps, ImageSequence, UnidentifiedImageError

from rendition_core.config import CodecSettings
from rendition_core.deadline import Deadline
from rendition_core.errors import DerivativeError
from rendition_core.imaging.metadata import (
    ImageSource,
    extract_image_metadata,
    open_source,
)
from rendition_core.profiles import Profile

_MULTI_FRAME_FORMATS = {"GIF", "WEBP", "PNG"}
_DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    ValueError,
    EOFError,
)
_DEFAULT_FRAME_MS = 100


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    width: int
    height: int
    content_type: str
    extension: str
    animated: bool = False

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def _resample_filter():
    resampling = getattr(Image, "Resampling", Image)
    return resampling.LANCZOS


def compute_target_size(
    profile: Profile,
    width: int,
    height: int,
) -> tuple[int, int] | None:
    """Return the output size for a profile, or None when it must be skipped.

    Fixed-crop profiles always produce size x size. Fit profiles never upscale:
    a source whose long edge is already within the profile yields None.
    """
    if profile.is_fixed_crop:
        return profile.size, profile.size
    long_edge = max(width, height)
    if long_edge <= 0 or long_edge <= profile.size:
        return None
    ratio = profile.size / float(long_edge)
    if width >= height:
        return profile.size, max(1, round(height * ratio))
    return max(1, round(width * ratio)), profile.size


def _is_multi_frame(image: Image.Image) -> bool:
    if (image.format or "").upper() not in _MULTI_FRAME_FORMATS:
        return False
    return bool(getattr(image, "is_animated", False)) and getattr(image, "n_frames", 1) > 1


def _normalize_mode(image: Image.Image) -> Image.Image:
    if image.mode in {"RGB", "RGBA"}:
        return image
    has_alpha = image.mode in {"LA", "PA"} or (
        image.mode == "P" and "transparency" in image.info
    )
    return image.convert("RGBA" if has_alpha else "RGB")


def _resize(image: Image.Image, profile: Profile, target: tuple[int, int]) -> Image.Image:
    if profile.is_fixed_crop:
        return ImageOps.fit(
            image,
            target,
            method=_resample_filter(),
            centering=(0.5, 0.5),
        )
    if image.size == target:
        return image
    return image.resize(target, resample=_resample_filter())


class DerivativeGenerator:
    def __init__(self, settings: CodecSettings | None = None) -> None:
        self.settings = settings or CodecSettings()
        self._slots = threading.BoundedSemaphore(max(1, self.settings.max_concurrency))

    def generate(
        self,
        source: ImageSource,
        profile: Profile,
        animated: bool = False,
        deadline: Deadline | None = None,
    ) -> GeneratedImage | None:
        deadline = deadline or Deadline.none()
        with self._slots:
            deadline.check(f"decode {profile.name.value}")
            try:
                image = open_source(source)
            except _DECODE_ERRORS as exc:
                raise DerivativeError(f"Decode failed for {profile.name.value}: {exc}") from exc
            with image:
                width, height = image.size
                if width * height > self.settings.max_pixels:
                    raise DerivativeError(
                        f"Source too large to decode: {width}x{height} exceeds "
                        f"{self.settings.max_pixels} pixels"
                    )
                try:
                    if animated and _is_multi_frame(image):
                        target = compute_target_size(profile, width, height)
                        if target is None:
                            return None
                        data = self._encode_animated(image, profile, target)
                        is_animated = True
                    else:
                        frame = ImageOps.exif_transpose(image) or image
                        target = compute_target_size(profile, *frame.size)
                        if target is None:
                            return None
                        data = self._encode_static(frame, profile, target)
                        is_animated = False
                except _DECODE_ERRORS as exc:
                    raise DerivativeError(
                        f"Encode failed for {profile.name.value}: {exc}"
                    ) from exc

        output = extract_image_metadata(data)
        if output.is_empty:
            raise DerivativeError(f"Encoded {profile.name.value} output is unreadable")
        return GeneratedImage(
            data=data,
            width=output.width,
            height=output.height,
            content_type=self.settings.output_content_type,
            extension=self.settings.output_extension,
            animated=is_animated,
        )

    def _encode_static(
        self,
        image: Image.Image,
        profile: Profile,
        target: tuple[int, int],
    ) -> bytes:
        resized = _resize(_normalize_mode(image), profile, target)
        buffer = io.BytesIO()
        resized.save(
            buffer,
            format=self.settings.output_format,
            quality=profile.quality,
            method=profile.effort,
        )
        return buffer.getvalue()

    def _encode_animated(
        self,
        image: Image.Image,
        profile: Profile,
        target: tuple[int, int],
    ) -> bytes:
        frames: list[Image.Image] = []
        durations: list[int] = []
        default_duration = int(image.info.get("duration") or _DEFAULT_FRAME_MS)
        for frame in ImageSequence.Iterator(image):
            durations.append(int(frame.info.get("duration") or default_duration))
            frames.append(_resize(frame.convert("RGBA"), profile, target))
        if not frames:
            raise DerivativeError("Animated source has no frames")
        buffer = io.BytesIO()
        frames[0].save(
            buffer,
            format=self.settings.output_format,
            save_all=True,
            append_images=frames[1:],
            duration=durations,
            loop=0,
            quality=profile.quality,
            method=profile.effort,
        )
        return buffer.getvalue()

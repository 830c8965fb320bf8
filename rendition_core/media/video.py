from __future__ import annotations

import json
import os
import shutil
import subprocess
import tempfile
import time
from dataclasses import dataclass

from rendition_core.config import FrameSettings
from rendition_core.deadline import Deadline
from rendition_core.errors import (
    DeadlineExceeded,
    PermanentError,
    RecoverableError,
    RenditionError,
    ToolTimeoutError,
)
from rendition_core.logging import get_logger
from rendition_core.media.download import cleanup_tmp

logger = get_logger(__name__)

_POLL_INTERVAL_S = 0.1


@dataclass(frozen=True)
class VideoProbe:
    width: int = 0
    height: int = 0
    duration_seconds: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 and self.height <= 0 and self.duration_seconds <= 0


EMPTY_PROBE = VideoProbe()


def _ensure_tool(name: str) -> None:
    if shutil.which(name) is None:
        raise RecoverableError(f"Missing required binary: {name}")


_CORRUPT_MARKERS = (
    "invalid data found when processing input",
    "moov atom not found",
    "output file does not contain any stream",
    "could not find codec parameters",
    "invalid argument",
    "unknown format",
    "does not contain any stream",
    "no such file or directory",
)


def _raise_media_error(step: str, stderr: str) -> None:
    message = stderr.strip() or "Unknown media error"
    lowered = message.lower()
    if any(marker in lowered for marker in _CORRUPT_MARKERS):
        raise PermanentError(f"{step} failed: {message}")
    raise RecoverableError(f"{step} failed: {message}")


def _parse_fraction(value: str | None) -> float | None:
    if not value:
        return None
    if "/" in value:
        num, den = value.split("/", 1)
        try:
            return float(num) / float(den)
        except (ValueError, ZeroDivisionError):
            return None
    try:
        return float(value)
    except ValueError:
        return None


def _stop(proc: subprocess.Popen) -> None:
    proc.kill()
    proc.communicate()


def _run(
    step: str,
    cmd: list[str],
    timeout_s: float | None,
    deadline: Deadline | None = None,
) -> subprocess.CompletedProcess:
    """Run a media tool, killing it on timeout or when the deadline is cancelled."""
    deadline = deadline or Deadline.none()
    started = time.monotonic()
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as exc:
        raise RecoverableError(f"{step} could not start: {exc}") from exc

    with proc:
        while True:
            wait_s = _POLL_INTERVAL_S
            if timeout_s is not None:
                left = timeout_s - (time.monotonic() - started)
                if left <= 0:
                    _stop(proc)
                    raise ToolTimeoutError(f"{step} timed out after {timeout_s:.2f}s")
                wait_s = min(wait_s, left)
            try:
                stdout, stderr = proc.communicate(timeout=wait_s)
                break
            except subprocess.TimeoutExpired:
                if deadline.cancelled:
                    _stop(proc)
                    raise DeadlineExceeded(f"{step} cancelled")

    if proc.returncode != 0:
        _raise_media_error(step, stderr or stdout or f"exit status {proc.returncode}")
    return subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)


def _parse_probe(payload: dict) -> VideoProbe:
    format_info = payload.get("format", {}) or {}
    streams = payload.get("streams", []) or []
    duration = _parse_fraction(format_info.get("duration")) or 0.0
    for stream in streams:
        if stream.get("codec_type") != "video":
            continue
        width = int(stream.get("width") or 0)
        height = int(stream.get("height") or 0)
        stream_duration = _parse_fraction(stream.get("duration"))
        if stream_duration and stream_duration > duration:
            duration = stream_duration
        return VideoProbe(width=width, height=height, duration_seconds=duration)
    logger.warning("Video probe found no video stream")
    return EMPTY_PROBE


def probe_video(
    path: str,
    *,
    timeout_s: float | None = 30.0,
    deadline: Deadline | None = None,
) -> VideoProbe:
    """Best-effort duration and dimensions; any failure yields the zero value."""
    deadline = deadline or Deadline.none()
    try:
        deadline.check("ffprobe")
        _ensure_tool("ffprobe")
        cmd = [
            "ffprobe",
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            path,
        ]
        result = _run("ffprobe", cmd, deadline.bound(timeout_s), deadline)
        return _parse_probe(json.loads(result.stdout or "{}"))
    except (RenditionError, ValueError, AttributeError, TypeError) as exc:
        logger.warning(
            "Video probe failed",
            extra={"error_message": str(exc)},
        )
        return EMPTY_PROBE


def resolve_timestamp(requested: float, duration_seconds: float) -> float:
    if requested <= 0:
        return 0.0
    if duration_seconds > 0 and requested >= duration_seconds:
        return 0.0
    return requested


def extract_frame(
    video_path: str,
    timestamp_seconds: float,
    *,
    settings: FrameSettings | None = None,
    output_dir: str | None = None,
    deadline: Deadline | None = None,
) -> str:
    """Write one still frame at the timestamp and return its temp path.

    The frame is bounded to settings.max_width x settings.max_height. The
    caller owns the returned file and must delete it.
    """
    settings = settings or FrameSettings()
    deadline = deadline or Deadline.none()
    deadline.check("ffmpeg extract frame")
    _ensure_tool("ffmpeg")
    tmp = tempfile.NamedTemporaryFile(
        prefix="frame-",
        suffix=".jpg",
        dir=output_dir,
        delete=False,
    )
    output_path = tmp.name
    tmp.close()

    scale = (
        f"scale=w='min(iw,{settings.max_width})':h='min(ih,{settings.max_height})'"
        ":force_original_aspect_ratio=decrease"
    )
    cmd = [
        "ffmpeg",
        "-y",
        "-ss",
        f"{max(0.0, timestamp_seconds):.3f}",
        "-i",
        video_path,
        "-frames:v",
        "1",
        "-vf",
        scale,
        "-q:v",
        "2",
        output_path,
    ]
    try:
        _run(
            "ffmpeg extract frame",
            cmd,
            deadline.bound(settings.timeout_seconds),
            deadline,
        )
        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise PermanentError(
                f"ffmpeg extract frame produced no output at {timestamp_seconds:.3f}s"
            )
    except Exception:
        cleanup_tmp(output_path)
        raise
    return output_path

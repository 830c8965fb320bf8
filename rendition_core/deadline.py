from __future__ import annotations

import threading
import time

from rendition_core.errors import DeadlineExceeded


class Deadline:
    """Caller-supplied time budget that long-running steps consult.

    A deadline without a timeout never expires on its own but can still be
    cancelled from another thread. Running ffmpeg/ffprobe calls poll it and
    are killed on cancel; Pillow work and storage writes only see it at the
    next check().
    """

    def __init__(self, timeout_s: float | None = None) -> None:
        self._expires_at = (
            time.monotonic() + timeout_s if timeout_s and timeout_s > 0 else None
        )
        self._cancelled = threading.Event()

    @classmethod
    def none(cls) -> "Deadline":
        return cls(None)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        if self.cancelled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def bound(self, timeout_s: float | None) -> float | None:
        remaining = self.remaining()
        if remaining is None:
            return timeout_s if timeout_s and timeout_s > 0 else None
        if timeout_s and timeout_s > 0:
            return min(timeout_s, remaining)
        return remaining

    def check(self, step: str) -> None:
        if self.cancelled:
            raise DeadlineExceeded(f"{step} cancelled")
        if self.expired:
            raise DeadlineExceeded(f"{step} exceeded deadline")

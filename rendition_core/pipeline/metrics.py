from __future__ import annotations

import threading
import time
from contextlib import contextmanager


class StageTimer:
    def __init__(self) -> None:
        self._timings_ms: dict[str, float] = {}
        self._lock = threading.Lock()

    @contextmanager
    def track(self, name: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            with self._lock:
                self._timings_ms[name] = round(
                    self._timings_ms.get(name, 0.0) + elapsed_ms,
                    2,
                )

    def summary(self) -> dict[str, float]:
        with self._lock:
            return dict(self._timings_ms)

import io
import json
import os
import subprocess
import tempfile
import time
from pathlib import Path

import pytest
from PIL import Image

from rendition_core.config import get_config

_TEST_ROOT: str | None = None


def _ensure_test_root() -> str:
    global _TEST_ROOT
    if _TEST_ROOT is None:
        _TEST_ROOT = tempfile.mkdtemp(prefix="rendition-test-")
    return _TEST_ROOT


@pytest.fixture(autouse=True)
def _rendition_env(monkeypatch: pytest.MonkeyPatch):
    def set_default(name: str, value: str) -> None:
        if not os.getenv(name):
            monkeypatch.setenv(name, value)

    root = Path(_ensure_test_root())
    set_default("ENV", "test")
    set_default("LOG_LEVEL", "INFO")
    set_default("STORAGE_BASE_URI", (root / "storage").as_posix())
    set_default("REGISTRY_PATH", (root / "registry.db").as_posix())
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def encode_image(
    width: int,
    height: int,
    fmt: str = "PNG",
    color: tuple[int, int, int] = (200, 40, 40),
) -> bytes:
    image = Image.new("RGB", (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def encode_animated_gif(width: int, height: int, frames: int = 3) -> bytes:
    images = [
        Image.new("RGB", (width, height), (index * 60 % 255, 90, 200))
        for index in range(frames)
    ]
    buffer = io.BytesIO()
    images[0].save(
        buffer,
        format="GIF",
        save_all=True,
        append_images=images[1:],
        duration=[80, 120, 160][:frames] if frames <= 3 else 100,
        loop=0,
    )
    return buffer.getvalue()


@pytest.fixture
def make_image():
    return encode_image


@pytest.fixture
def make_animated_gif():
    return encode_animated_gif


class FakeToolProcess:
    """Popen stand-in; a None result models a tool that never exits."""

    def __init__(self, args: list[str], result: tuple[int, str, str] | None):
        self.args = args
        self.returncode: int | None = None
        self.killed = False
        self._result = result

    def communicate(self, timeout: float | None = None) -> tuple[str, str]:
        if self.killed:
            self.returncode = -9
            return "", ""
        if self._result is None:
            time.sleep(timeout or 0)
            raise subprocess.TimeoutExpired(self.args, timeout)
        self.returncode, stdout, stderr = self._result
        return stdout, stderr

    def kill(self) -> None:
        self.killed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        return None


class FakeMediaTools:
    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.processes: list[FakeToolProcess] = []
        self.handler = lambda cmd: (0, "", "")

    def popen(self, cmd: list[str], **_kwargs) -> FakeToolProcess:
        self.calls.append(cmd)
        process = FakeToolProcess(cmd, self.handler(cmd))
        self.processes.append(process)
        return process

    def serve(self, probe_payload: dict, frame_size: tuple[int, int] = (1280, 720)) -> None:
        def handler(cmd: list[str]):
            if cmd[0] == "ffprobe":
                return 0, json.dumps(probe_payload), ""
            Image.new("RGB", frame_size, (30, 60, 90)).save(cmd[-1], format="JPEG")
            return 0, "", ""

        self.handler = handler

    def command(self, tool: str) -> list[str]:
        return next(cmd for cmd in self.calls if cmd[0] == tool)


@pytest.fixture
def media_tools(monkeypatch: pytest.MonkeyPatch) -> FakeMediaTools:
    from rendition_core.media import video as video_module

    tools = FakeMediaTools()
    monkeypatch.setattr(video_module.shutil, "which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr(video_module.subprocess, "Popen", tools.popen)
    return tools

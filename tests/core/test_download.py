from pathlib import Path

import pytest

from rendition_core.errors import CleanupError, FatalSourceError
from rendition_core.media import download as download_module
from rendition_core.media.download import cleanup_tmp, fetch_to_tmp, spool_to_tmp


class _FakeReader:
    def __init__(self) -> None:
        self.calls = 0

    def read(self, _size: int) -> bytes:
        self.calls += 1
        if self.calls == 1:
            return b"x" * 1024
        raise OSError("boom")

    def __enter__(self):
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> bool:
        return False


class _FakeFS:
    def open(self, _path: str, _mode: str):
        return _FakeReader()


def test_fetch_to_tmp_copies_local_file(tmp_path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"video-bytes")
    result = fetch_to_tmp(source.as_uri(), max_bytes=1000, suffix=".mp4")
    try:
        assert result.size_bytes == len(b"video-bytes")
        assert Path(result.path).read_bytes() == b"video-bytes"
        assert result.path.endswith(".mp4")
    finally:
        cleanup_tmp(result.path)


def test_fetch_to_tmp_cleanup_on_failure(tmp_path, monkeypatch):
    tmp_file = tmp_path / "download.bin"
    monkeypatch.setattr(
        download_module.fsspec.core,
        "url_to_fs",
        lambda _uri: (_FakeFS(), "ignored"),
    )

    class _DummyTmp:
        name = str(tmp_file)

        def close(self) -> None:
            return None

    monkeypatch.setattr(
        download_module.tempfile,
        "NamedTemporaryFile",
        lambda suffix="", delete=False: _DummyTmp(),
    )

    with pytest.raises(FatalSourceError):
        fetch_to_tmp("s3://bucket/key", max_bytes=10_000)
    assert not tmp_file.exists()


def test_fetch_to_tmp_rejects_oversized(tmp_path):
    source = tmp_path / "big.bin"
    source.write_bytes(b"x" * 2048)
    with pytest.raises(FatalSourceError, match="exceeded"):
        fetch_to_tmp(str(source), max_bytes=1024)


def test_fetch_to_tmp_missing_and_empty(tmp_path):
    with pytest.raises(FatalSourceError):
        fetch_to_tmp(str(tmp_path / "missing.jpg"), max_bytes=0)
    empty = tmp_path / "empty.jpg"
    empty.write_bytes(b"")
    with pytest.raises(FatalSourceError, match="empty"):
        fetch_to_tmp(str(empty), max_bytes=0)


def test_spool_and_cleanup(tmp_path):
    path = spool_to_tmp(b"abc", suffix=".mov")
    assert Path(path).read_bytes() == b"abc"
    cleanup_tmp(path)
    assert not Path(path).exists()
    cleanup_tmp(path)


def test_cleanup_failure_is_reported(monkeypatch):
    def denied(_path):
        raise PermissionError("denied")

    monkeypatch.setattr(download_module.os, "remove", denied)
    with pytest.raises(CleanupError):
        cleanup_tmp("/tmp/whatever")

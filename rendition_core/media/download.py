from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass

import fsspec

from rendition_core.errors import CleanupError, FatalSourceError
from rendition_core.logging import get_logger

logger = get_logger(__name__)

_CHUNK_BYTES = 8 * 1024 * 1024


@dataclass(frozen=True)
class DownloadResult:
    path: str
    size_bytes: int


def fetch_to_tmp(uri: str, max_bytes: int, suffix: str = "") -> DownloadResult:
    """Copy an object (any fsspec URI or local path) into a local temp file."""
    try:
        fs, path = fsspec.core.url_to_fs(uri)
    except Exception as exc:
        raise FatalSourceError(f"Unsupported source URI {uri}: {exc}") from exc

    tmp_handle = tempfile.NamedTemporaryFile(suffix=suffix, delete=False)
    tmp_path = tmp_handle.name
    tmp_handle.close()

    try:
        size = 0
        with fs.open(path, "rb") as reader, open(tmp_path, "wb") as writer:
            while True:
                chunk = reader.read(_CHUNK_BYTES)
                if not chunk:
                    break
                size += len(chunk)
                if max_bytes > 0 and size > max_bytes:
                    raise FatalSourceError(f"Source exceeded {max_bytes} bytes: {uri}")
                writer.write(chunk)
    except Exception as exc:
        cleanup_tmp(tmp_path)
        if isinstance(exc, FatalSourceError):
            raise
        raise FatalSourceError(f"Failed fetching {uri}: {exc}") from exc

    if size == 0:
        cleanup_tmp(tmp_path)
        raise FatalSourceError(f"Source is empty: {uri}")
    return DownloadResult(path=tmp_path, size_bytes=size)


def spool_to_tmp(data: bytes, suffix: str = "") -> str:
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        tmp.write(data)
        return tmp.name


def cleanup_tmp(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        raise CleanupError(f"Failed removing {path}: {exc}") from exc

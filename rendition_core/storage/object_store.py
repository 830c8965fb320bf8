from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO
from urllib.parse import urlparse

import fsspec


@dataclass(frozen=True)
class ObjectStore:
    base_uri: str
    fs: fsspec.AbstractFileSystem
    base_path: str
    is_remote: bool

    @classmethod
    def from_base_uri(cls, base_uri: str) -> "ObjectStore":
        parsed = urlparse(base_uri)
        if parsed.scheme == "file":
            base_path = parsed.path
            fs = fsspec.filesystem("file")
            return cls(base_uri=base_uri, fs=fs, base_path=base_path, is_remote=False)
        if parsed.scheme and parsed.netloc:
            fs, path = fsspec.core.url_to_fs(base_uri)
            return cls(base_uri=base_uri, fs=fs, base_path=path, is_remote=True)
        fs = fsspec.filesystem("file")
        return cls(base_uri=base_uri, fs=fs, base_path=base_uri, is_remote=False)

    @property
    def protocol(self) -> str:
        protocol = self.fs.protocol
        if isinstance(protocol, (tuple, list)):
            return protocol[0]
        return protocol

    def join(self, *parts: str) -> str:
        safe_parts = [part.strip("/") for part in parts if part]
        if self.is_remote:
            return "/".join([self.base_path.rstrip("/"), *safe_parts])
        return str(Path(self.base_path).joinpath(*safe_parts))

    def uri(self, path: str) -> str:
        if self.is_remote:
            return self.fs.unstrip_protocol(path)
        return Path(path).resolve().as_uri()

    def open(self, path: str, mode: str = "rb", **kwargs) -> BinaryIO:
        return self.fs.open(path, mode, **kwargs)

    def makedirs(self, path: str, exist_ok: bool = True) -> None:
        self.fs.makedirs(path, exist_ok=exist_ok)

    def exists(self, path: str) -> bool:
        return self.fs.exists(path)

    def remove(self, path: str) -> None:
        self.fs.rm(path)

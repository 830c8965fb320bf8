from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import unquote

from rendition_core.errors import (
    BucketProvisionError,
    PermanentError,
    RecoverableError,
    UploadError,
)
from rendition_core.logging import get_logger
from rendition_core.storage.keys import sanitize_key
from rendition_core.storage.object_store import ObjectStore

logger = get_logger(__name__)

_REJECTED_WRITE_ERRORS = (
    PermissionError,
    FileNotFoundError,
    IsADirectoryError,
    NotADirectoryError,
    ValueError,
    TypeError,
)


@dataclass(frozen=True)
class UploadResult:
    bucket: str
    object_key: str
    url: str
    size_bytes: int
    content_type: str
    attempts: int


def _content_type_options(protocol: str, content_type: str) -> dict[str, str]:
    if protocol in {"s3", "s3a"}:
        return {"ContentType": content_type}
    if protocol in {"gs", "gcs"}:
        return {"content_type": content_type}
    return {}


def _upload_error(
    bucket: str, object_key: str, attempts: int, exc: Exception
) -> UploadError:
    return UploadError(
        f"Upload to {bucket}/{object_key} failed after {attempts} attempt(s): {exc}"
    )


def _is_already_exists(exc: Exception) -> bool:
    if isinstance(exc, FileExistsError):
        return True
    message = str(exc).lower()
    return "already exists" in message or "bucketalreadyownedbyyou" in message


class StorageUploader:
    def __init__(
        self,
        store: ObjectStore,
        public_base_url: str | None = None,
        max_attempts: int = 1,
        backoff_s: float = 0.5,
    ) -> None:
        self.store = store
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.max_attempts = max(1, max_attempts)
        self.backoff_s = backoff_s

    @staticmethod
    def _bucket_name(bucket: str) -> str:
        name = bucket.strip("/")
        if not name:
            raise ValueError("Bucket name is required")
        return name

    @staticmethod
    def _object_key(key: str) -> str:
        sanitized = sanitize_key(key)
        if not sanitized:
            raise UploadError(f"Object key {key!r} is empty after sanitizing")
        return sanitized

    def ensure_bucket(self, name: str) -> bool:
        """Create the bucket; returns False when it already existed."""
        bucket = self._bucket_name(name)
        path = self.store.join(bucket)
        try:
            if self.store.exists(path):
                return False
            self.store.makedirs(path, exist_ok=False)
        except Exception as exc:
            if _is_already_exists(exc):
                return False
            raise BucketProvisionError(f"Failed creating bucket {bucket}: {exc}") from exc
        logger.info("Bucket created", extra={"bucket": bucket})
        return True

    def _write(self, path: str, data: bytes, options: dict[str, str]) -> None:
        try:
            if not self.store.is_remote:
                self.store.makedirs(os.path.dirname(path))
            with self.store.open(path, "wb", **options) as handle:
                handle.write(data)
        except _REJECTED_WRITE_ERRORS as exc:
            raise PermanentError(f"Write to {path} rejected: {exc}") from exc
        except OSError as exc:
            # ConnectionError and TimeoutError are OSError subclasses.
            raise RecoverableError(f"Write to {path} failed: {exc}") from exc

    def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
    ) -> UploadResult:
        """Write the object, replacing whatever is stored under the same key.

        Only transient storage errors are retried, up to max_attempts.
        """
        bucket = self._bucket_name(bucket)
        object_key = self._object_key(key)
        path = self.store.join(bucket, object_key)
        options = _content_type_options(self.store.protocol, content_type)

        attempts = 0
        while True:
            attempts += 1
            try:
                self._write(path, data, options)
                break
            except RecoverableError as exc:
                if attempts >= self.max_attempts:
                    raise _upload_error(bucket, object_key, attempts, exc) from exc
                logger.warning(
                    "Upload failed, retrying",
                    extra={
                        "bucket": bucket,
                        "object_key": object_key,
                        "error_message": str(exc),
                    },
                )
                if self.backoff_s > 0:
                    time.sleep(self.backoff_s * (2 ** (attempts - 1)))
            except Exception as exc:
                raise _upload_error(bucket, object_key, attempts, exc) from exc

        return UploadResult(
            bucket=bucket,
            object_key=object_key,
            url=self.public_url(bucket, object_key),
            size_bytes=len(data),
            content_type=content_type,
            attempts=attempts,
        )

    def _bucket_url(self, bucket: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{bucket}"
        return self.store.uri(self.store.join(bucket))

    def public_url(self, bucket: str, key: str) -> str:
        bucket = self._bucket_name(bucket)
        return f"{self._bucket_url(bucket)}/{self._object_key(key)}"

    def key_from_url(self, bucket: str, url: str) -> str | None:
        prefix = f"{self._bucket_url(self._bucket_name(bucket))}/"
        if not url.startswith(prefix):
            return None
        key = unquote(url[len(prefix):].split("?", 1)[0])
        return key or None

    def delete(self, bucket: str, keys: Iterable[str]) -> list[str]:
        bucket = self._bucket_name(bucket)
        deleted: list[str] = []
        for key in keys:
            # Existing objects are addressed by their stored key, not re-sanitized.
            object_key = key.strip("/")
            if not object_key:
                continue
            path = self.store.join(bucket, object_key)
            try:
                self.store.remove(path)
            except FileNotFoundError:
                continue
            except Exception as exc:
                raise RecoverableError(
                    f"Delete of {bucket}/{object_key} failed: {exc}"
                ) from exc
            deleted.append(object_key)
        return deleted

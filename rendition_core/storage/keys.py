from __future__ import annotations

import re

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")
_UNDERSCORE_RUNS = re.compile(r"_{2,}")


def sanitize_key(key: str) -> str:
    """Map an arbitrary object name onto the storage-safe character set.

    Anything outside [A-Za-z0-9_.-] becomes "_", runs of "_" collapse and
    leading/trailing "_" are dropped. Applying it twice changes nothing.
    """
    cleaned = _UNSAFE_CHARS.sub("_", key)
    cleaned = _UNDERSCORE_RUNS.sub("_", cleaned)
    return cleaned.strip("_")


def derivative_key(source_asset_id: str, extension: str) -> str:
    # The profile lives in the bucket name, so the key only carries the asset id.
    return sanitize_key(f"{source_asset_id}.{extension.lstrip('.')}")

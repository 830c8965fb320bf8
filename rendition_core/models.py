from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from urllib.parse import urlparse

from rendition_core.profiles import ProfileName

_DERIVATIVE_NAMESPACE = uuid.UUID("5b0f7c2e-6a2d-4d8e-9f0e-3c1f2a7b9d41")


class AssetKind(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class AssetStatus(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class AssetCategory(str, Enum):
    GENERAL = "GENERAL"
    AVATAR = "AVATAR"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SourceAsset:
    id: str
    kind: AssetKind
    url: str
    mime_type: str
    size_bytes: int
    width: int = 0
    height: int = 0
    duration_seconds: float | None = None
    status: AssetStatus = AssetStatus.COMPLETED
    failure_reason: str | None = None
    original_name: str | None = None
    category: AssetCategory = AssetCategory.GENERAL
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def is_avatar(self) -> bool:
        return self.category is AssetCategory.AVATAR


@dataclass(frozen=True)
class Derivative:
    id: str
    source_asset_id: str
    profile: ProfileName
    bucket: str
    object_key: str
    url: str
    width: int
    height: int
    size_bytes: int
    quality: int
    updated_at: datetime = field(default_factory=_utcnow)


def derivative_id(source_asset_id: str, profile: ProfileName) -> str:
    return str(uuid.uuid5(_DERIVATIVE_NAMESPACE, f"{source_asset_id}:{profile.value}"))


def kind_for_mime(mime_type: str | None) -> AssetKind:
    if mime_type and mime_type.lower().startswith("video/"):
        return AssetKind.VIDEO
    return AssetKind.IMAGE


def resolve_category(original_name: str | None, url: str | None) -> AssetCategory:
    name = (original_name or "").lower()
    if "avatar" in name or "profile" in name:
        return AssetCategory.AVATAR
    path = urlparse(url or "").path
    segments = {segment.lower() for segment in path.split("/") if segment}
    if segments & {"avatar", "avatars"}:
        return AssetCategory.AVATAR
    return AssetCategory.GENERAL


def new_source_asset(
    url: str,
    mime_type: str | None,
    size_bytes: int,
    *,
    asset_id: str | None = None,
    original_name: str | None = None,
) -> SourceAsset:
    """Build the COMPLETED record an upload handler hands to the pipeline."""
    mime = mime_type or "application/octet-stream"
    return SourceAsset(
        id=asset_id or str(uuid.uuid4()),
        kind=kind_for_mime(mime),
        url=url,
        mime_type=mime,
        size_bytes=size_bytes,
        original_name=original_name,
        category=resolve_category(original_name, url),
    )

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from rendition_core.errors import RecoverableError
from rendition_core.models import (
    AssetCategory,
    AssetKind,
    AssetStatus,
    Derivative,
    SourceAsset,
)
from rendition_core.profiles import (
    DEFAULT_PROFILES,
    Profile,
    ProfileName,
    parse_profiles,
)

PLATFORM_PREFERENCES: dict[str, ProfileName] = {
    "mobile": ProfileName.MEDIUM,
    "ios": ProfileName.MEDIUM,
    "android": ProfileName.MEDIUM,
    "desktop": ProfileName.LARGE,
    "web": ProfileName.LARGE,
    "thumbnail": ProfileName.SMALL,
}

_SOURCE_COLUMNS = (
    "id, kind, url, mime_type, size_bytes, width, height, duration_seconds, "
    "status, failure_reason, original_name, category, created_at"
)
_DERIVATIVE_COLUMNS = (
    "id, source_asset_id, profile, bucket, object_key, url, width, height, "
    "size_bytes, quality, updated_at"
)

# Serialises derivative upserts across every registry instance in the process.
_WRITE_LOCK = threading.Lock()


def _to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _source_from_row(row: tuple) -> SourceAsset:
    return SourceAsset(
        id=row[0],
        kind=AssetKind(row[1]),
        url=row[2],
        mime_type=row[3],
        size_bytes=int(row[4] or 0),
        width=int(row[5] or 0),
        height=int(row[6] or 0),
        duration_seconds=row[7],
        status=AssetStatus(row[8]),
        failure_reason=row[9],
        original_name=row[10],
        category=AssetCategory(row[11]),
        created_at=_from_iso(row[12]),
    )


def _derivative_from_row(row: tuple) -> Derivative:
    return Derivative(
        id=row[0],
        source_asset_id=row[1],
        profile=ProfileName(row[2]),
        bucket=row[3],
        object_key=row[4],
        url=row[5],
        width=int(row[6]),
        height=int(row[7]),
        size_bytes=int(row[8]),
        quality=int(row[9]),
        updated_at=_from_iso(row[10]),
    )


class SqliteRegistry:
    def __init__(self, path: str, profiles: tuple[Profile, ...] | None = None) -> None:
        self.path = path
        self.profiles = profiles or parse_profiles(DEFAULT_PROFILES)
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path, timeout=30)
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise RecoverableError(f"SQLite registry failed: {exc}") from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS source_assets (
                    id TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    url TEXT NOT NULL,
                    mime_type TEXT NOT NULL,
                    size_bytes INTEGER NOT NULL,
                    width INTEGER NOT NULL DEFAULT 0,
                    height INTEGER NOT NULL DEFAULT 0,
                    duration_seconds REAL,
                    status TEXT NOT NULL,
                    failure_reason TEXT,
                    original_name TEXT,
                    category TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS derivatives (
                    id TEXT PRIMARY KEY,
                    source_asset_id TEXT NOT NULL
                        REFERENCES source_assets(id) ON DELETE CASCADE,
                    profile TEXT NOT NULL,
                    bucket TEXT NOT NULL,
                    object_key TEXT NOT NULL,
                    url TEXT NOT NULL,
                    width INTEGER NOT NULL,
                    height INTEGER NOT NULL,
                    size_bytes INTEGER NOT NULL,
                    quality INTEGER NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (source_asset_id, profile)
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_derivatives_source "
                "ON derivatives (source_asset_id)"
            )

    def save_source_asset(self, asset: SourceAsset) -> SourceAsset:
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO source_assets ({_SOURCE_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    kind = excluded.kind,
                    url = excluded.url,
                    mime_type = excluded.mime_type,
                    size_bytes = excluded.size_bytes,
                    width = excluded.width,
                    height = excluded.height,
                    duration_seconds = excluded.duration_seconds,
                    status = excluded.status,
                    failure_reason = excluded.failure_reason,
                    original_name = excluded.original_name,
                    category = excluded.category
                """,
                (
                    asset.id,
                    asset.kind.value,
                    asset.url,
                    asset.mime_type,
                    asset.size_bytes,
                    asset.width,
                    asset.height,
                    asset.duration_seconds,
                    asset.status.value,
                    asset.failure_reason,
                    asset.original_name,
                    asset.category.value,
                    _to_iso(asset.created_at),
                ),
            )
        return asset

    def get_source_asset(self, source_asset_id: str) -> SourceAsset | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_SOURCE_COLUMNS} FROM source_assets WHERE id = ?",
                (source_asset_id,),
            ).fetchone()
        return _source_from_row(row) if row else None

    def update_source_asset(self, source_asset_id: str, **changes) -> SourceAsset:
        current = self.get_source_asset(source_asset_id)
        if current is None:
            raise KeyError(f"Unknown source asset: {source_asset_id}")
        updated = replace(current, **changes)
        return self.save_source_asset(updated)

    def delete_source_asset(self, source_asset_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM source_assets WHERE id = ?",
                (source_asset_id,),
            )
        return cursor.rowcount > 0

    def upsert_derivative(self, derivative: Derivative) -> Derivative:
        with _WRITE_LOCK, self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute(
                f"""
                INSERT INTO derivatives ({_DERIVATIVE_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(source_asset_id, profile) DO UPDATE SET
                    bucket = excluded.bucket,
                    object_key = excluded.object_key,
                    url = excluded.url,
                    width = excluded.width,
                    height = excluded.height,
                    size_bytes = excluded.size_bytes,
                    quality = excluded.quality,
                    updated_at = excluded.updated_at
                """,
                (
                    derivative.id,
                    derivative.source_asset_id,
                    derivative.profile.value,
                    derivative.bucket,
                    derivative.object_key,
                    derivative.url,
                    derivative.width,
                    derivative.height,
                    derivative.size_bytes,
                    derivative.quality,
                    _to_iso(derivative.updated_at),
                ),
            )
        return derivative

    def _profile_size(self, profile: ProfileName) -> int:
        for item in self.profiles:
            if item.name is profile:
                return item.size
        return 0

    def get_derivatives(self, source_asset_id: str) -> list[Derivative]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_DERIVATIVE_COLUMNS} FROM derivatives "
                "WHERE source_asset_id = ?",
                (source_asset_id,),
            ).fetchall()
        derivatives = [_derivative_from_row(row) for row in rows]
        return sorted(
            derivatives,
            key=lambda item: (
                self._profile_size(item.profile) or max(item.width, item.height),
                item.profile.value,
            ),
        )

    def get_derivative_by_profile(
        self,
        source_asset_id: str,
        profile: ProfileName | str,
    ) -> Derivative | None:
        name = ProfileName(profile)
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_DERIVATIVE_COLUMNS} FROM derivatives "
                "WHERE source_asset_id = ? AND profile = ?",
                (source_asset_id, name.value),
            ).fetchone()
        return _derivative_from_row(row) if row else None

    def get_preferred_derivative_url(
        self,
        source_asset_id: str,
        platform_hint: str | None = None,
    ) -> str | None:
        derivatives = self.get_derivatives(source_asset_id)
        if not derivatives:
            return None
        hint = (platform_hint or "").strip().lower()
        preferred = PLATFORM_PREFERENCES.get(hint, ProfileName.LARGE)
        for item in derivatives:
            if item.profile is preferred:
                return item.url
        target = self._profile_size(preferred)

        def distance(item: Derivative) -> tuple[int, int]:
            size = self._profile_size(item.profile) or max(item.width, item.height)
            return abs(size - target), -size

        return min(derivatives, key=distance).url

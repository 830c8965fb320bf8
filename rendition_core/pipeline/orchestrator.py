from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum
from urllib.parse import urlparse

from rendition_core.config import Config, FrameSettings
from rendition_core.deadline import Deadline
from rendition_core.errors import (
    BucketProvisionError,
    CleanupError,
    FatalSourceError,
    RenditionError,
)
from rendition_core.imaging.generator import DerivativeGenerator
from rendition_core.imaging.metadata import ImageSource, extract_image_metadata
from rendition_core.logging import asset_logger, get_logger
from rendition_core.media.download import cleanup_tmp, fetch_to_tmp, spool_to_tmp
from rendition_core.media.video import extract_frame, probe_video, resolve_timestamp
from rendition_core.models import (
    AssetKind,
    Derivative,
    SourceAsset,
    derivative_id,
)
from rendition_core.pipeline.metrics import StageTimer
from rendition_core.profiles import Profile, ProfileName, largest_profile
from rendition_core.registry.sqlite_registry import SqliteRegistry
from rendition_core.storage.keys import derivative_key
from rendition_core.storage.object_store import ObjectStore
from rendition_core.storage.uploader import StorageUploader

logger = get_logger(__name__)

_ANIMATABLE_TYPES = {"image/gif", "image/webp", "image/png", "image/apng"}
_ANIMATABLE_EXT = {".gif", ".webp", ".png", ".apng"}


class AssetState(str, Enum):
    RECEIVED = "RECEIVED"
    EXTRACTING_METADATA = "EXTRACTING_METADATA"
    GENERATING_DERIVATIVES = "GENERATING_DERIVATIVES"
    COMPLETE = "COMPLETE"


class ProfileStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class ProfileOutcome:
    profile: ProfileName
    status: ProfileStatus
    derivative: Derivative | None = None
    error: str | None = None


@dataclass
class AssetOutcome:
    source_asset_id: str
    state: AssetState = AssetState.RECEIVED
    states: list[AssetState] = field(default_factory=list)
    profiles: list[ProfileOutcome] = field(default_factory=list)
    canonical_url: str | None = None
    canonical_url_rewritten: bool = False
    original_deleted: bool = False
    avatar_skipped: bool = False
    timings_ms: dict[str, float] = field(default_factory=dict)

    def advance(self, state: AssetState) -> None:
        self.state = state
        self.states.append(state)

    def outcome_for(self, profile: ProfileName) -> ProfileOutcome | None:
        for item in self.profiles:
            if item.profile is profile:
                return item
        return None

    @property
    def failed(self) -> list[ProfileOutcome]:
        return [item for item in self.profiles if item.status is ProfileStatus.FAILED]


def animation_hint(mime_type: str | None, url: str | None) -> bool:
    if mime_type and mime_type.lower() in _ANIMATABLE_TYPES:
        return True
    extension = os.path.splitext(urlparse(url or "").path)[1].lower()
    return extension in _ANIMATABLE_EXT


def _extension_of(url: str | None, default: str) -> str:
    extension = os.path.splitext(urlparse(url or "").path)[1].lower()
    return extension or default


class PipelineOrchestrator:
    def __init__(
        self,
        *,
        profiles: tuple[Profile, ...],
        generator: DerivativeGenerator,
        uploader: StorageUploader,
        registry: SqliteRegistry,
        frame_settings: FrameSettings | None = None,
        origin_bucket: str | None = None,
        rewrite_canonical_url: bool = True,
        delete_original: bool = True,
        profile_parallelism: int = 1,
        max_source_bytes: int = 0,
        timeout_s: float = 0.0,
    ) -> None:
        if not profiles:
            raise ValueError("At least one profile is required")
        self.profiles = profiles
        self.generator = generator
        self.uploader = uploader
        self.registry = registry
        self.frame_settings = frame_settings or FrameSettings()
        self.origin_bucket = origin_bucket
        self.rewrite_canonical_url = rewrite_canonical_url
        self.delete_original = delete_original
        self.profile_parallelism = max(1, profile_parallelism)
        self.max_source_bytes = max_source_bytes
        self.timeout_s = timeout_s

    @classmethod
    def from_config(
        cls,
        config: Config,
        registry: SqliteRegistry | None = None,
    ) -> "PipelineOrchestrator":
        uploader = StorageUploader(
            ObjectStore.from_base_uri(config.storage_base_uri),
            public_base_url=config.public_base_url,
            max_attempts=config.upload_max_attempts,
            backoff_s=config.upload_backoff_seconds,
        )
        return cls(
            profiles=config.profiles,
            generator=DerivativeGenerator(config.codec_settings()),
            uploader=uploader,
            registry=registry or SqliteRegistry(config.registry_path, config.profiles),
            frame_settings=config.frame_settings(),
            origin_bucket=config.origin_bucket,
            rewrite_canonical_url=config.rewrite_canonical_url,
            delete_original=config.delete_original,
            profile_parallelism=config.profile_parallelism,
            max_source_bytes=config.max_source_bytes,
            timeout_s=config.pipeline_timeout_seconds,
        )

    def process(
        self,
        asset: SourceAsset,
        *,
        data: bytes | None = None,
        path: str | None = None,
        deadline: Deadline | None = None,
    ) -> AssetOutcome:
        """Generate, upload and register every configured profile for one asset.

        Per-profile failures are logged and reported in the outcome; only a
        source that cannot be read at all raises (FatalSourceError).
        """
        deadline = deadline or Deadline(self.timeout_s)
        timer = StageTimer()
        outcome = AssetOutcome(source_asset_id=asset.id, canonical_url=asset.url)
        outcome.advance(AssetState.RECEIVED)
        log = asset_logger(logger, asset.id, asset.kind.value)
        log.info("Asset received", extra={"state": outcome.state.value})

        if self.registry.get_source_asset(asset.id) is None:
            self.registry.save_source_asset(asset)

        if asset.is_avatar:
            log.info("Avatar asset, derivative fan-out skipped")
            outcome.avatar_skipped = True
            outcome.advance(AssetState.COMPLETE)
            return outcome

        temp_paths: list[str] = []
        try:
            self._ensure_buckets()
            if asset.kind is AssetKind.VIDEO:
                source, asset = self._prepare_video(
                    asset, data, path, temp_paths, deadline, timer, outcome
                )
                animated = False
            else:
                source, asset = self._prepare_image(
                    asset, data, path, temp_paths, timer, outcome
                )
                animated = animation_hint(asset.mime_type, asset.url)

            outcome.advance(AssetState.GENERATING_DERIVATIVES)
            outcome.profiles = self._fan_out(asset, source, animated, deadline, timer)

            if asset.kind is AssetKind.IMAGE:
                self._promote_representative(asset, outcome)
        finally:
            with timer.track("cleanup"):
                self._cleanup(temp_paths, asset.id)

        outcome.advance(AssetState.COMPLETE)
        outcome.timings_ms = timer.summary()
        log.info(
            "Asset derivatives complete",
            extra={
                "state": outcome.state.value,
                "status": {
                    item.profile.value: item.status.value for item in outcome.profiles
                },
                "timings": outcome.timings_ms,
            },
        )
        return outcome

    def _ensure_buckets(self) -> None:
        for bucket in sorted({profile.bucket for profile in self.profiles}):
            try:
                self.uploader.ensure_bucket(bucket)
            except BucketProvisionError as exc:
                logger.warning(
                    "Bucket provisioning failed, uploads will still be attempted",
                    extra={"bucket": bucket, "error_message": str(exc)},
                )

    def _fetch(self, asset: SourceAsset, temp_paths: list[str], suffix: str) -> str:
        result = fetch_to_tmp(asset.url, self.max_source_bytes, suffix=suffix)
        temp_paths.append(result.path)
        return result.path

    def _prepare_image(
        self,
        asset: SourceAsset,
        data: bytes | None,
        path: str | None,
        temp_paths: list[str],
        timer: StageTimer,
        outcome: AssetOutcome,
    ) -> tuple[ImageSource, SourceAsset]:
        with timer.track("fetch"):
            if data is not None:
                source: ImageSource = data
            elif path is not None:
                if not os.path.isfile(path):
                    raise FatalSourceError(f"Source file not found: {path}")
                source = path
            else:
                fetched = self._fetch(asset, temp_paths, _extension_of(asset.url, ""))
                with open(fetched, "rb") as handle:
                    source = handle.read()

        outcome.advance(AssetState.EXTRACTING_METADATA)
        with timer.track("decode"):
            metadata = extract_image_metadata(source)
        if metadata.is_empty:
            logger.warning(
                "Image metadata unavailable, continuing with degraded asset",
                extra={"source_asset_id": asset.id, "error_code": "ExtractionError"},
            )
        elif (asset.width, asset.height) != (metadata.width, metadata.height):
            asset = self._record_dimensions(
                asset, width=metadata.width, height=metadata.height
            )
        return source, asset

    def _prepare_video(
        self,
        asset: SourceAsset,
        data: bytes | None,
        path: str | None,
        temp_paths: list[str],
        deadline: Deadline,
        timer: StageTimer,
        outcome: AssetOutcome,
    ) -> tuple[ImageSource, SourceAsset]:
        suffix = _extension_of(asset.url, ".mp4")
        with timer.track("fetch"):
            if path is not None:
                if not os.path.isfile(path):
                    raise FatalSourceError(f"Source file not found: {path}")
                video_path = path
            elif data is not None:
                video_path = spool_to_tmp(data, suffix=suffix)
                temp_paths.append(video_path)
            else:
                video_path = self._fetch(asset, temp_paths, suffix)

        outcome.advance(AssetState.EXTRACTING_METADATA)
        with timer.track("decode"):
            probe = probe_video(
                video_path,
                timeout_s=self.frame_settings.timeout_seconds,
                deadline=deadline,
            )
        if not probe.is_empty:
            asset = self._record_dimensions(
                asset,
                width=probe.width,
                height=probe.height,
                duration_seconds=probe.duration_seconds or None,
            )

        timestamp = resolve_timestamp(
            self.frame_settings.timestamp_seconds, probe.duration_seconds
        )
        with timer.track("sample_frame"):
            try:
                frame_path = extract_frame(
                    video_path,
                    timestamp,
                    settings=self.frame_settings,
                    deadline=deadline,
                )
            except (RenditionError, OSError) as exc:
                raise FatalSourceError(
                    f"Could not sample a frame from video {asset.id}: {exc}"
                ) from exc
        temp_paths.append(frame_path)
        logger.info(
            "Video frame sampled",
            extra={"source_asset_id": asset.id, "state": outcome.state.value},
        )
        return frame_path, asset

    def _record_dimensions(self, asset: SourceAsset, **changes) -> SourceAsset:
        try:
            return self.registry.update_source_asset(asset.id, **changes)
        except RenditionError as exc:
            logger.warning(
                "Source metadata not recorded, continuing with derivatives",
                extra={"source_asset_id": asset.id, "error_message": str(exc)},
            )
            return replace(asset, **changes)

    def _fan_out(
        self,
        asset: SourceAsset,
        source: ImageSource,
        animated: bool,
        deadline: Deadline,
        timer: StageTimer,
    ) -> list[ProfileOutcome]:
        if self.profile_parallelism <= 1 or len(self.profiles) == 1:
            return [
                self._run_profile(asset, source, profile, animated, deadline, timer)
                for profile in self.profiles
            ]
        max_workers = min(self.profile_parallelism, len(self.profiles))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(
                    self._run_profile,
                    asset,
                    source,
                    profile,
                    animated,
                    deadline,
                    timer,
                )
                for profile in self.profiles
            ]
            return [future.result() for future in futures]

    def _run_profile(
        self,
        asset: SourceAsset,
        source: ImageSource,
        profile: Profile,
        animated: bool,
        deadline: Deadline,
        timer: StageTimer,
    ) -> ProfileOutcome:
        name = profile.name.value
        log = asset_logger(logger, asset.id)
        try:
            deadline.check(f"profile {name}")
            with timer.track(f"generate:{name}"):
                generated = self.generator.generate(source, profile, animated, deadline)
            if generated is None:
                log.info(
                    "Profile skipped, source smaller than target",
                    extra={"profile": name, "status": ProfileStatus.SKIPPED.value},
                )
                return ProfileOutcome(profile=profile.name, status=ProfileStatus.SKIPPED)

            key = derivative_key(asset.id, generated.extension)
            deadline.check(f"upload {name}")
            with timer.track(f"upload:{name}"):
                uploaded = self.uploader.upload(
                    profile.bucket, key, generated.data, generated.content_type
                )
            derivative = self.registry.upsert_derivative(
                Derivative(
                    id=derivative_id(asset.id, profile.name),
                    source_asset_id=asset.id,
                    profile=profile.name,
                    bucket=uploaded.bucket,
                    object_key=uploaded.object_key,
                    url=uploaded.url,
                    width=generated.width,
                    height=generated.height,
                    size_bytes=generated.size_bytes,
                    quality=profile.quality,
                )
            )
        except Exception as exc:
            log.error(
                "Derivative failed",
                exc_info=True,
                extra={
                    "profile": name,
                    "status": ProfileStatus.FAILED.value,
                    "error_code": type(exc).__name__,
                    "error_message": str(exc),
                },
            )
            return ProfileOutcome(
                profile=profile.name,
                status=ProfileStatus.FAILED,
                error=str(exc),
            )

        log.info(
            "Derivative stored",
            extra={
                "profile": name,
                "status": ProfileStatus.SUCCEEDED.value,
                "bucket": derivative.bucket,
                "object_key": derivative.object_key,
                "width": derivative.width,
                "height": derivative.height,
                "bytes_written": derivative.size_bytes,
            },
        )
        return ProfileOutcome(
            profile=profile.name,
            status=ProfileStatus.SUCCEEDED,
            derivative=derivative,
        )

    def _promote_representative(self, asset: SourceAsset, outcome: AssetOutcome) -> None:
        if not self.rewrite_canonical_url:
            return
        representative = outcome.outcome_for(largest_profile(self.profiles).name)
        if representative is None or representative.derivative is None:
            logger.warning(
                "Representative derivative missing, canonical URL left untouched",
                extra={"source_asset_id": asset.id},
            )
            return

        original_url = asset.url
        derivative = representative.derivative
        try:
            self.registry.update_source_asset(
                asset.id,
                url=derivative.url,
                mime_type=self.generator.settings.output_content_type,
            )
        except RenditionError as exc:
            logger.warning(
                "Canonical URL rewrite failed",
                extra={"source_asset_id": asset.id, "error_message": str(exc)},
            )
            return
        outcome.canonical_url = derivative.url
        outcome.canonical_url_rewritten = True

        if not self.delete_original or not self.origin_bucket:
            return
        if original_url == derivative.url:
            return
        key = self.uploader.key_from_url(self.origin_bucket, original_url)
        if key is None:
            return
        try:
            deleted = self.uploader.delete(self.origin_bucket, [key])
        except RenditionError as exc:
            logger.warning(
                "Original object delete failed",
                extra={
                    "source_asset_id": asset.id,
                    "bucket": self.origin_bucket,
                    "object_key": key,
                    "error_message": str(exc),
                },
            )
            return
        outcome.original_deleted = bool(deleted)
        if deleted:
            logger.info(
                "Original object deleted",
                extra={
                    "source_asset_id": asset.id,
                    "bucket": self.origin_bucket,
                    "object_key": key,
                },
            )

    def _cleanup(self, paths: list[str], source_asset_id: str) -> None:
        for path in paths:
            try:
                cleanup_tmp(path)
            except CleanupError as exc:
                logger.warning(
                    "Temp file cleanup failed",
                    extra={"source_asset_id": source_asset_id, "error_message": str(exc)},
                )

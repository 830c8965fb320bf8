import os
from dataclasses import dataclass
from functools import lru_cache

from rendition_core.profiles import DEFAULT_PROFILES, Profile, parse_profiles


@dataclass(frozen=True)
class CodecSettings:
    max_concurrency: int = 2
    max_pixels: int = 100_000_000
    output_format: str = "WEBP"
    output_content_type: str = "image/webp"
    output_extension: str = "webp"


@dataclass(frozen=True)
class FrameSettings:
    timestamp_seconds: float = 1.0
    max_width: int = 1920
    max_height: int = 1080
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class Config:
    env: str
    log_level: str
    storage_base_uri: str
    registry_path: str
    public_base_url: str | None
    profiles: tuple[Profile, ...]
    origin_bucket: str
    rewrite_canonical_url: bool
    delete_original: bool
    frame_timestamp_seconds: float
    frame_max_width: int
    frame_max_height: int
    video_tool_timeout_seconds: float
    codec_max_concurrency: int
    codec_max_pixels: int
    worker_concurrency: int
    profile_parallelism: int
    upload_max_attempts: int
    upload_backoff_seconds: float
    max_source_bytes: int
    pipeline_timeout_seconds: float

    def codec_settings(self) -> CodecSettings:
        return CodecSettings(
            max_concurrency=self.codec_max_concurrency,
            max_pixels=self.codec_max_pixels,
        )

    def frame_settings(self) -> FrameSettings:
        return FrameSettings(
            timestamp_seconds=self.frame_timestamp_seconds,
            max_width=self.frame_max_width,
            max_height=self.frame_max_height,
            timeout_seconds=self.video_tool_timeout_seconds,
        )

    @classmethod
    def from_env(cls) -> "Config":
        missing: list[str] = []

        def require(name: str) -> str:
            value = os.getenv(name)
            if value is None or value == "":
                missing.append(name)
                return ""
            return value

        env = require("ENV")
        log_level = require("LOG_LEVEL")
        storage_base_uri = require("STORAGE_BASE_URI")
        registry_path = require("REGISTRY_PATH")
        public_base_url = os.getenv("PUBLIC_BASE_URL") or None
        if public_base_url:
            public_base_url = public_base_url.rstrip("/")
        profiles = parse_profiles(os.getenv("DERIVATIVE_PROFILES") or DEFAULT_PROFILES)
        origin_bucket = os.getenv("ORIGIN_BUCKET", "post-images").strip()
        rewrite_canonical_url = _parse_bool(os.getenv("REWRITE_CANONICAL_URL"), True)
        delete_original = _parse_bool(os.getenv("DELETE_ORIGINAL"), True)
        frame_timestamp_seconds = _parse_float(
            "VIDEO_FRAME_TIMESTAMP_S", os.getenv("VIDEO_FRAME_TIMESTAMP_S", "1.0")
        )
        frame_max_width = _parse_int(
            "VIDEO_FRAME_MAX_WIDTH", os.getenv("VIDEO_FRAME_MAX_WIDTH", "1920")
        )
        frame_max_height = _parse_int(
            "VIDEO_FRAME_MAX_HEIGHT", os.getenv("VIDEO_FRAME_MAX_HEIGHT", "1080")
        )
        video_tool_timeout_seconds = _parse_float(
            "VIDEO_TOOL_TIMEOUT_S", os.getenv("VIDEO_TOOL_TIMEOUT_S", "30")
        )
        codec_max_concurrency = max(
            1,
            _parse_int("CODEC_MAX_CONCURRENCY", os.getenv("CODEC_MAX_CONCURRENCY", "2")),
        )
        codec_max_pixels = _parse_int(
            "CODEC_MAX_PIXELS", os.getenv("CODEC_MAX_PIXELS", "100000000")
        )
        worker_concurrency = max(
            1, _parse_int("WORKER_CONCURRENCY", os.getenv("WORKER_CONCURRENCY", "2"))
        )
        profile_parallelism = max(
            1, _parse_int("PROFILE_PARALLELISM", os.getenv("PROFILE_PARALLELISM", "1"))
        )
        upload_max_attempts = max(
            1, _parse_int("UPLOAD_MAX_ATTEMPTS", os.getenv("UPLOAD_MAX_ATTEMPTS", "1"))
        )
        upload_backoff_seconds = _parse_float(
            "UPLOAD_BACKOFF_S", os.getenv("UPLOAD_BACKOFF_S", "0.5")
        )
        max_source_bytes = _parse_int(
            "MAX_SOURCE_BYTES", os.getenv("MAX_SOURCE_BYTES", "200000000")
        )
        pipeline_timeout_seconds = _parse_float(
            "PIPELINE_TIMEOUT_S", os.getenv("PIPELINE_TIMEOUT_S", "0")
        )

        if missing:
            missing_str = ", ".join(missing)
            raise ValueError(f"Missing required env vars: {missing_str}")

        return cls(
            env=env,
            log_level=log_level,
            storage_base_uri=storage_base_uri,
            registry_path=registry_path,
            public_base_url=public_base_url,
            profiles=profiles,
            origin_bucket=origin_bucket,
            rewrite_canonical_url=rewrite_canonical_url,
            delete_original=delete_original,
            frame_timestamp_seconds=frame_timestamp_seconds,
            frame_max_width=frame_max_width,
            frame_max_height=frame_max_height,
            video_tool_timeout_seconds=video_tool_timeout_seconds,
            codec_max_concurrency=codec_max_concurrency,
            codec_max_pixels=codec_max_pixels,
            worker_concurrency=worker_concurrency,
            profile_parallelism=profile_parallelism,
            upload_max_attempts=upload_max_attempts,
            upload_backoff_seconds=upload_backoff_seconds,
            max_source_bytes=max_source_bytes,
            pipeline_timeout_seconds=pipeline_timeout_seconds,
        )


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc


def _parse_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


@lru_cache(maxsize=1)
def get_config() -> Config:
    return Config.from_env()

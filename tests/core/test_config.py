import pytest

from rendition_core.config import Config, get_config
from rendition_core.profiles import ProfileName


def test_config_defaults():
    config = get_config()
    assert config.env == "test"
    assert [item.name for item in config.profiles] == [
        ProfileName.SMALL,
        ProfileName.MEDIUM,
        ProfileName.LARGE,
    ]
    assert config.origin_bucket == "post-images"
    assert config.rewrite_canonical_url is True
    assert config.delete_original is True
    assert config.upload_max_attempts == 1
    assert config.profile_parallelism == 1
    assert config.pipeline_timeout_seconds == 0

    frame = config.frame_settings()
    assert frame.timestamp_seconds == 1.0
    assert (frame.max_width, frame.max_height) == (1920, 1080)

    codec = config.codec_settings()
    assert codec.max_concurrency == 2
    assert codec.output_content_type == "image/webp"


def test_config_missing_required(monkeypatch):
    monkeypatch.delenv("STORAGE_BASE_URI", raising=False)
    monkeypatch.setenv("REGISTRY_PATH", "")
    with pytest.raises(ValueError) as excinfo:
        Config.from_env()
    message = str(excinfo.value)
    assert "STORAGE_BASE_URI" in message
    assert "REGISTRY_PATH" in message


def test_config_overrides(monkeypatch):
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://cdn.example.com/")
    monkeypatch.setenv("DERIVATIVE_PROFILES", "small:crop:64:70,large:fit:512:80")
    monkeypatch.setenv("DELETE_ORIGINAL", "off")
    monkeypatch.setenv("CODEC_MAX_CONCURRENCY", "0")
    monkeypatch.setenv("VIDEO_FRAME_TIMESTAMP_S", "2.5")
    config = Config.from_env()
    assert config.public_base_url == "https://cdn.example.com"
    assert [item.size for item in config.profiles] == [64, 512]
    assert config.delete_original is False
    assert config.codec_max_concurrency == 1
    assert config.frame_settings().timestamp_seconds == 2.5


def test_config_rejects_bad_numbers(monkeypatch):
    monkeypatch.setenv("WORKER_CONCURRENCY", "many")
    with pytest.raises(ValueError, match="WORKER_CONCURRENCY"):
        Config.from_env()

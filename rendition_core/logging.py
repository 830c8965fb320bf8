import json
import logging
import os
import time
from typing import Any

# Structured fields lifted from `extra=` onto the JSON line when present.
PIPELINE_FIELDS = (
    "service",
    "env",
    "version",
    "correlation_id",
    "source_asset_id",
    "asset_kind",
    "profile",
    "bucket",
    "object_key",
    "status",
    "state",
    "width",
    "height",
    "bytes_written",
    "duration_ms",
    "timings",
    "error_code",
    "error_message",
)


def _utc_timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in PIPELINE_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


class BaseFieldFilter(logging.Filter):
    """Stamps service identity on records that did not set it themselves."""

    def __init__(self, service: str, env: str | None, version: str | None) -> None:
        super().__init__()
        self.defaults = {"service": service, "env": env, "version": version}

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.defaults.items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class AssetLogAdapter(logging.LoggerAdapter):
    """Carries one asset's identifiers into every record it emits.

    Per-call `extra` values are merged over the bound ones instead of
    replacing them.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def asset_logger(
    logger: logging.Logger,
    source_asset_id: str,
    asset_kind: str | None = None,
) -> AssetLogAdapter:
    bound = {"source_asset_id": source_asset_id}
    if asset_kind:
        bound["asset_kind"] = asset_kind
    return AssetLogAdapter(logger, bound)


def configure_logging(
    service: str,
    env: str | None = None,
    version: str | None = None,
) -> None:
    root = logging.getLogger()
    root.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(BaseFieldFilter(service=service, env=env, version=version))
    root.handlers = [handler]


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

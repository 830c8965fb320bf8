from __future__ import annotations

import mimetypes
import os
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel

from rendition_core.config import get_config
from rendition_core.logging import configure_logging, get_logger
from rendition_core.models import Derivative, SourceAsset, new_source_asset
from rendition_core.pipeline.orchestrator import PipelineOrchestrator
from rendition_core.pipeline.worker import BackgroundPipeline
from rendition_core.profiles import ProfileName
from rendition_core.registry.sqlite_registry import SqliteRegistry

SERVICE_NAME = "rendition-local"

configure_logging(
    service=SERVICE_NAME,
    env=os.getenv("ENV", "local"),
    version=os.getenv("RENDITION_VERSION"),
)
logger = get_logger(__name__)


@dataclass
class ServiceState:
    registry: SqliteRegistry | None = None
    pipeline: BackgroundPipeline | None = None


STATE = ServiceState()


def _registry() -> SqliteRegistry:
    if STATE.registry is None:
        config = get_config()
        STATE.registry = SqliteRegistry(config.registry_path, config.profiles)
    return STATE.registry


def _pipeline() -> BackgroundPipeline:
    if STATE.pipeline is None:
        config = get_config()
        orchestrator = PipelineOrchestrator.from_config(config, registry=_registry())
        STATE.pipeline = BackgroundPipeline(
            orchestrator, max_workers=config.worker_concurrency
        )
    return STATE.pipeline


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    if STATE.pipeline is not None:
        STATE.pipeline.shutdown(wait=True)
        STATE.pipeline = None


app = FastAPI(lifespan=lifespan)


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: str


class ProcessRequest(BaseModel):
    path: str
    content_type: str | None = None
    asset_id: str | None = None
    original_name: str | None = None


class ProcessResponse(BaseModel):
    status: str
    source_asset_id: str
    kind: str
    category: str
    correlation_id: str


class SourceAssetResponse(BaseModel):
    id: str
    kind: str
    url: str
    mime_type: str
    size_bytes: int
    width: int
    height: int
    duration_seconds: float | None = None
    status: str
    category: str


class DerivativeResponse(BaseModel):
    id: str
    source_asset_id: str
    profile: str
    bucket: str
    object_key: str
    url: str
    width: int
    height: int
    size_bytes: int
    quality: int
    updated_at: str


class PreferredUrlResponse(BaseModel):
    source_asset_id: str
    platform: str | None = None
    url: str


def _asset_response(asset: SourceAsset) -> SourceAssetResponse:
    return SourceAssetResponse(
        id=asset.id,
        kind=asset.kind.value,
        url=asset.url,
        mime_type=asset.mime_type,
        size_bytes=asset.size_bytes,
        width=asset.width,
        height=asset.height,
        duration_seconds=asset.duration_seconds,
        status=asset.status.value,
        category=asset.category.value,
    )


def _derivative_response(derivative: Derivative) -> DerivativeResponse:
    return DerivativeResponse(
        id=derivative.id,
        source_asset_id=derivative.source_asset_id,
        profile=derivative.profile.value,
        bucket=derivative.bucket,
        object_key=derivative.object_key,
        url=derivative.url,
        width=derivative.width,
        height=derivative.height,
        size_bytes=derivative.size_bytes,
        quality=derivative.quality,
        updated_at=derivative.updated_at.isoformat(),
    )


def _require_asset(asset_id: str) -> SourceAsset:
    asset = _registry().get_source_asset(asset_id)
    if asset is None:
        raise HTTPException(status_code=404, detail="Asset not found")
    return asset


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        service=SERVICE_NAME,
        version=os.getenv("RENDITION_VERSION", "dev"),
        timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    )


@app.post("/process", response_model=ProcessResponse, status_code=202)
async def process(
    payload: ProcessRequest,
    x_correlation_id: str | None = Header(default=None),
) -> ProcessResponse:
    correlation_id = x_correlation_id or str(uuid.uuid4())

    path = Path(payload.path)
    if not path.exists() or not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    content_type = payload.content_type
    if not content_type:
        content_type = mimetypes.guess_type(path.as_posix())[0]
    if not content_type or not content_type.startswith(("image/", "video/")):
        raise HTTPException(status_code=400, detail="Unsupported content type")

    asset = new_source_asset(
        url=path.resolve().as_uri(),
        mime_type=content_type,
        size_bytes=path.stat().st_size,
        asset_id=payload.asset_id,
        original_name=payload.original_name or path.name,
    )
    _registry().save_source_asset(asset)
    _pipeline().submit(asset, path=str(path))

    logger.info(
        "Asset submitted for derivatives",
        extra={
            "correlation_id": correlation_id,
            "source_asset_id": asset.id,
            "asset_kind": asset.kind.value,
        },
    )
    return ProcessResponse(
        status="accepted",
        source_asset_id=asset.id,
        kind=asset.kind.value,
        category=asset.category.value,
        correlation_id=correlation_id,
    )


@app.get("/assets/{asset_id}", response_model=SourceAssetResponse)
async def get_asset(asset_id: str) -> SourceAssetResponse:
    return _asset_response(_require_asset(asset_id))


@app.get("/assets/{asset_id}/derivatives", response_model=list[DerivativeResponse])
async def list_derivatives(asset_id: str) -> list[DerivativeResponse]:
    _require_asset(asset_id)
    return [_derivative_response(item) for item in _registry().get_derivatives(asset_id)]


@app.get(
    "/assets/{asset_id}/derivatives/{profile}",
    response_model=DerivativeResponse,
)
async def get_derivative(asset_id: str, profile: ProfileName) -> DerivativeResponse:
    derivative = _registry().get_derivative_by_profile(asset_id, profile)
    if derivative is None:
        raise HTTPException(status_code=404, detail="Derivative not found")
    return _derivative_response(derivative)


@app.get("/assets/{asset_id}/preferred-url", response_model=PreferredUrlResponse)
async def preferred_url(
    asset_id: str,
    platform: str | None = None,
) -> PreferredUrlResponse:
    url = _registry().get_preferred_derivative_url(asset_id, platform)
    if url is None:
        raise HTTPException(status_code=404, detail="No derivatives for asset")
    return PreferredUrlResponse(source_asset_id=asset_id, platform=platform, url=url)

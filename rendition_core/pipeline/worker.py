from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor

from rendition_core.deadline import Deadline
from rendition_core.logging import get_logger
from rendition_core.models import SourceAsset
from rendition_core.pipeline.orchestrator import AssetOutcome, PipelineOrchestrator

logger = get_logger(__name__)


class BackgroundPipeline:
    """Runs the orchestrator off the caller's thread.

    The intake path returns as soon as the asset is submitted; callers that
    care about the result hold on to the returned future.
    """

    def __init__(self, orchestrator: PipelineOrchestrator, max_workers: int = 2) -> None:
        self.orchestrator = orchestrator
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix="rendition",
        )

    def submit(
        self,
        asset: SourceAsset,
        *,
        data: bytes | None = None,
        path: str | None = None,
        deadline: Deadline | None = None,
    ) -> Future[AssetOutcome]:
        future = self._executor.submit(
            self.orchestrator.process,
            asset,
            data=data,
            path=path,
            deadline=deadline,
        )
        future.add_done_callback(lambda done: _log_failure(asset, done))
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def _log_failure(asset: SourceAsset, future: Future) -> None:
    if future.cancelled():
        logger.warning(
            "Derivative processing cancelled",
            extra={"source_asset_id": asset.id},
        )
        return
    exc = future.exception()
    if exc is None:
        return
    logger.error(
        "Derivative processing failed",
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={
            "source_asset_id": asset.id,
            "asset_kind": asset.kind.value,
            "error_code": type(exc).__name__,
            "error_message": str(exc),
        },
    )

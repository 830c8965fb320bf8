from rendition_core.pipeline.metrics import StageTimer
from rendition_core.pipeline.orchestrator import (
    AssetOutcome,
    AssetState,
    PipelineOrchestrator,
    ProfileOutcome,
    ProfileStatus,
)
from rendition_core.pipeline.worker import BackgroundPipeline

__all__ = [
    "AssetOutcome",
    "AssetState",
    "BackgroundPipeline",
    "PipelineOrchestrator",
    "ProfileOutcome",
    "ProfileStatus",
    "StageTimer",
]

from rendition_core.imaging.generator import (
    DerivativeGenerator,
    GeneratedImage,
    compute_target_size,
)
from rendition_core.imaging.metadata import (
    EMPTY_METADATA,
    ImageMetadata,
    extract_image_metadata,
    read_image_metadata,
)

__all__ = [
    "DerivativeGenerator",
    "EMPTY_METADATA",
    "GeneratedImage",
    "ImageMetadata",
    "compute_target_size",
    "extract_image_metadata",
    "read_image_metadata",
]

from rendition_core.media.download import (
    DownloadResult,
    cleanup_tmp,
    fetch_to_tmp,
    spool_to_tmp,
)
from rendition_core.media.video import (
    EMPTY_PROBE,
    VideoProbe,
    extract_frame,
    probe_video,
    resolve_timestamp,
)

__all__ = [
    "DownloadResult",
    "EMPTY_PROBE",
    "VideoProbe",
    "cleanup_tmp",
    "extract_frame",
    "fetch_to_tmp",
    "probe_video",
    "resolve_timestamp",
    "spool_to_tmp",
]

from rendition_core.storage.keys import derivative_key, sanitize_key
from rendition_core.storage.object_store import ObjectStore
from rendition_core.storage.uploader import StorageUploader, UploadResult

__all__ = [
    "ObjectStore",
    "StorageUploader",
    "UploadResult",
    "derivative_key",
    "sanitize_key",
]

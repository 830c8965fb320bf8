class RenditionError(Exception):
    """Base error for the rendition pipeline."""


class RecoverableError(RenditionError):
    """Indicates the operation can be retried safely."""


class PermanentError(RenditionError):
    """Indicates the operation should not be retried."""


class ExtractionError(PermanentError):
    """Source bytes are corrupt, unsupported or missing."""


class DerivativeError(PermanentError):
    """Decode or encode failed for one profile."""


class UploadError(RenditionError):
    """Object storage rejected a write; the cause says whether a retry could help."""


class BucketProvisionError(RecoverableError):
    """A bucket could not be created for a reason other than already existing."""


class CleanupError(RecoverableError):
    """A temporary file could not be removed."""


class FatalSourceError(PermanentError):
    """The original source could not be fetched or read at all."""


class ToolTimeoutError(RecoverableError):
    """An external media tool did not finish in time."""


class DeadlineExceeded(RenditionError):
    """The caller-supplied deadline expired or the run was cancelled."""

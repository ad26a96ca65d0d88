class PipelineError(Exception):
    """Base class for failures that end a post in FAILED."""


class ResolutionError(PipelineError):
    """The stored media_url does not yield an object key in the raw bucket."""


class DownloadError(PipelineError):
    """The raw upload could not be fetched from the object store."""


class TranscodeError(PipelineError):
    """ffmpeg failed, or its output is not a consistent HLS set."""

    # Keep log lines bounded; ffmpeg can print a lot before failing
    MAX_DIAGNOSTIC = 4000

    def __init__(self, message: str, diagnostic: str = ""):
        super().__init__(message)
        self.diagnostic = diagnostic[-self.MAX_DIAGNOSTIC:] if diagnostic else ""


class UploadError(PipelineError):
    """An HLS file could not be stored in the output bucket."""


class ObjectStoreError(Exception):
    """Bucket provisioning failed at worker startup."""

"""Error kinds raised by the asset pipeline"""

from typing import Any, Dict, List, Optional


class AssetPipelineError(Exception):
    """Base class for pipeline errors. `error_code` is machine-readable."""

    error_code = "PIPELINE_ERROR"


class PathTraversalError(AssetPipelineError, ValueError):
    """Raw path is unsafe (traversal, absolute, or escapes its base directory)"""

    error_code = "PATH_TRAVERSAL_DETECTED"


class EmptyPathError(AssetPipelineError, ValueError):
    """Path names the base directory (or nothing) instead of an asset"""

    error_code = "EMPTY_PATH"


class AssetNotFoundError(AssetPipelineError, FileNotFoundError):
    error_code = "NOT_FOUND"


class AlreadyExistsError(AssetPipelineError, FileExistsError):
    error_code = "ALREADY_EXISTS"


class UnsupportedTypeError(AssetPipelineError, ValueError):
    error_code = "UNSUPPORTED_TYPE"


class FileTooLargeError(AssetPipelineError, ValueError):
    error_code = "FILE_TOO_LARGE"


class UploadRejectedError(AssetPipelineError, ValueError):
    """Upload batch failed validation; `errors` holds one message per file"""

    error_code = "UPLOAD_REJECTED"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class TranscodeError(AssetPipelineError):
    """Codec failure for one input file.

    When only some formats failed, the derivatives that were written are kept
    in `partial_results` and the per-format messages in `failures`.
    """

    error_code = "TRANSCODE_FAILED"

    def __init__(
        self,
        message: str,
        partial_results: Optional[List[Any]] = None,
        failures: Optional[Dict[str, str]] = None
    ):
        super().__init__(message)
        self.partial_results = partial_results or []
        self.failures = failures or {}


class ThumbnailError(AssetPipelineError):
    error_code = "THUMBNAIL_FAILED"


class ExtractionError(AssetPipelineError):
    """Technical metadata could not be read. Never fatal to a save."""

    error_code = "EXTRACTION_FAILED"

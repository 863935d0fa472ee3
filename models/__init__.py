"""Data models for the asset pipeline"""

from models.asset import (
    AssetEntry,
    BatchResult,
    ImageMetadata,
    MetadataUpdate,
    OptimizationOptions,
    OptimizationResult,
    Upload,
)
from models.errors import (
    AlreadyExistsError,
    AssetNotFoundError,
    AssetPipelineError,
    EmptyPathError,
    ExtractionError,
    FileTooLargeError,
    PathTraversalError,
    ThumbnailError,
    TranscodeError,
    UnsupportedTypeError,
    UploadRejectedError,
)

__all__ = [
    "AssetEntry",
    "BatchResult",
    "ImageMetadata",
    "MetadataUpdate",
    "OptimizationOptions",
    "OptimizationResult",
    "Upload",
    "AlreadyExistsError",
    "AssetNotFoundError",
    "AssetPipelineError",
    "EmptyPathError",
    "ExtractionError",
    "FileTooLargeError",
    "PathTraversalError",
    "ThumbnailError",
    "TranscodeError",
    "UnsupportedTypeError",
    "UploadRejectedError",
]

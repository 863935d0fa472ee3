"""Manager classes for the asset pipeline"""

from managers.asset_pipeline import AssetPipeline
from managers.cache import AssetCache, TTLCache
from managers.config import PipelineConfig
from managers.metadata_store import MetadataStore
from managers.path_resolver import PathResolver, resolve_asset_path
from managers.scanner import AssetScanner
from managers.transcoder import Transcoder

__all__ = [
    "AssetPipeline",
    "AssetCache",
    "TTLCache",
    "PipelineConfig",
    "MetadataStore",
    "PathResolver",
    "resolve_asset_path",
    "AssetScanner",
    "Transcoder",
]

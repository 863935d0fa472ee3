"""Pipeline configuration: explicit args > environment > config file > defaults"""

import json
import logging
import os
import platform
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger("AssetPipeline")

CONFIG_DIR_NAME = "asset-pipeline"
CONFIG_FILE_NAME = "pipeline_config.json"

DEFAULTS: Dict[str, Any] = {
    "environment": "development",
    "log_level": None,  # Derived from environment when unset
    "max_file_size": 50 * 1024 * 1024,  # 50MB
    "max_files_per_request": 20,
    "cache_max_size": 1000,
    "cache_ttl": 3600.0,  # Seconds
    "thumbnail_size": 400,
    "thumbnail_quality": 80,
    "batch_workers": 4,
    "optimized_dir": "optimized",
    "originals_dir": "originals",
    "metadata_dir": ".metadata",
}

# Environment variable -> setting name
ENV_VARS = {
    "ASSET_PIPELINE_ENV": "environment",
    "LOG_LEVEL": "log_level",
    "MAX_FILE_SIZE": "max_file_size",
    "MAX_FILES_PER_REQUEST": "max_files_per_request",
    "CACHE_MAX_SIZE": "cache_max_size",
    "CACHE_TTL": "cache_ttl",
    "BATCH_WORKERS": "batch_workers",
    "OPTIMIZED_DIR": "optimized_dir",
    "ORIGINALS_DIR": "originals_dir",
    "METADATA_DIR": "metadata_dir",
}

INT_SETTINGS = (
    "max_file_size",
    "max_files_per_request",
    "cache_max_size",
    "thumbnail_size",
    "thumbnail_quality",
    "batch_workers",
)
FLOAT_SETTINGS = ("cache_ttl",)


def get_config_dir() -> Path:
    """Get platform-specific config directory.

    Returns:
        Windows: %APPDATA%/asset-pipeline
        Mac: ~/Library/Application Support/asset-pipeline
        Linux: ~/.config/asset-pipeline
    """
    system = platform.system()
    if system == "Windows":
        appdata = os.getenv("APPDATA")
        if appdata:
            return Path(appdata) / CONFIG_DIR_NAME
        return Path.home() / "AppData" / "Roaming" / CONFIG_DIR_NAME
    elif system == "Darwin":
        return Path.home() / "Library" / "Application Support" / CONFIG_DIR_NAME
    else:
        return Path.home() / ".config" / CONFIG_DIR_NAME


def get_config_file() -> Path:
    return get_config_dir() / CONFIG_FILE_NAME


def load_pipeline_config() -> Dict[str, Any]:
    """Load persistent pipeline settings, or {} if none are stored"""
    config_file = get_config_file()
    if not config_file.exists():
        return {}

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = json.load(f)
            return config if isinstance(config, dict) else {}
    except (json.JSONDecodeError, IOError) as e:
        logger.warning(f"Failed to load pipeline config from {config_file}: {e}")
        return {}


def save_pipeline_config(config: Dict[str, Any]) -> bool:
    """Merge `config` into the persistent settings file.

    Returns:
        True if successful, False otherwise
    """
    config_file = get_config_file()

    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        existing = load_pipeline_config()
        existing.update(config)
        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(existing, f, indent=2)
        logger.info(f"Saved pipeline config to {config_file}")
        return True
    except (IOError, OSError) as e:
        logger.error(f"Failed to save pipeline config to {config_file}: {e}")
        return False


def _coerce(name: str, value: Any) -> Any:
    try:
        if name in INT_SETTINGS:
            return int(value)
        if name in FLOAT_SETTINGS:
            return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for {name}: {value!r}")
    return value


class PipelineConfig:
    """Resolved settings for the asset pipeline.

    Directory settings are resolved against `base_dir` (default: cwd) when
    relative.
    """

    def __init__(
        self,
        base_dir: Optional[Union[str, Path]] = None,
        use_environment: bool = True,
        use_config_file: bool = True,
        **overrides: Any
    ):
        unknown = set(overrides) - set(DEFAULTS)
        if unknown:
            raise TypeError(f"Unknown settings: {sorted(unknown)}")

        settings = dict(DEFAULTS)
        if use_config_file:
            stored = load_pipeline_config()
            settings.update({k: v for k, v in stored.items() if k in DEFAULTS})
        if use_environment:
            for env_name, setting in ENV_VARS.items():
                value = os.getenv(env_name)
                if value:
                    settings[setting] = value
        settings.update({k: v for k, v in overrides.items() if v is not None})

        for name, value in settings.items():
            settings[name] = _coerce(name, value)

        self.base_dir = Path(base_dir).resolve() if base_dir else Path.cwd()
        self.environment = str(settings["environment"]).lower()
        self.log_level = (settings["log_level"] or ("DEBUG" if self.is_development else "INFO")).upper()
        self.max_file_size = settings["max_file_size"]
        self.max_files_per_request = settings["max_files_per_request"]
        self.cache_max_size = settings["cache_max_size"]
        self.cache_ttl = settings["cache_ttl"]
        self.thumbnail_size = settings["thumbnail_size"]
        self.thumbnail_quality = settings["thumbnail_quality"]
        self.batch_workers = settings["batch_workers"]
        self.optimized_dir = self._resolve_dir(settings["optimized_dir"])
        self.originals_dir = self._resolve_dir(settings["originals_dir"])
        self.metadata_dir = self._resolve_dir(settings["metadata_dir"])

        self._validate()

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def _resolve_dir(self, value: Union[str, Path]) -> Path:
        path = Path(value)
        if not path.is_absolute():
            path = self.base_dir / path
        return path.resolve()

    def _validate(self):
        if self.max_file_size <= 0:
            raise ValueError("MAX_FILE_SIZE must be positive")
        if self.max_files_per_request <= 0:
            raise ValueError("MAX_FILES_PER_REQUEST must be positive")
        if self.cache_max_size <= 0:
            raise ValueError("CACHE_MAX_SIZE must be positive")
        if self.cache_ttl <= 0:
            raise ValueError("CACHE_TTL must be positive")
        if self.batch_workers <= 0:
            raise ValueError("BATCH_WORKERS must be positive")
        if not 1 <= self.thumbnail_quality <= 100:
            raise ValueError("thumbnail_quality must be between 1 and 100")
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {self.log_level}")
        if self.log_level == "WARN":
            self.log_level = "WARNING"

    def ensure_directories(self):
        """Create the derivative, archive and metadata roots"""
        for directory in (self.optimized_dir, self.originals_dir, self.metadata_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.environment,
            "log_level": self.log_level,
            "max_file_size": self.max_file_size,
            "max_files_per_request": self.max_files_per_request,
            "cache_max_size": self.cache_max_size,
            "cache_ttl": self.cache_ttl,
            "thumbnail_size": self.thumbnail_size,
            "thumbnail_quality": self.thumbnail_quality,
            "batch_workers": self.batch_workers,
            "optimized_dir": str(self.optimized_dir),
            "originals_dir": str(self.originals_dir),
            "metadata_dir": str(self.metadata_dir),
            "config_file": str(get_config_file()),
        }

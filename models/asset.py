"""Asset data models"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

# Input caps for editable SEO fields
TITLE_MAX_LENGTH = 200
ALT_TEXT_MAX_LENGTH = 200
CAPTION_MAX_LENGTH = 500
DESCRIPTION_MAX_LENGTH = 1000
MAX_KEYWORDS = 20
KEYWORD_MAX_LENGTH = 50

SEO_FIELDS = ("title", "alt_text", "caption", "description", "keywords")


@dataclass
class ImageMetadata:
    """Metadata record for one derivative image, persisted as JSON"""
    filename: str
    relative_path: str
    original_path: Optional[str] = None  # Relative to the archive root
    file_size: int = 0
    original_size: int = 0
    format: str = "unknown"
    width: int = 0
    height: int = 0
    color_space: Optional[str] = None
    has_alpha: bool = False
    exif: Optional[Dict[str, Any]] = None

    # SEO fields
    title: Optional[str] = None
    alt_text: Optional[str] = None
    caption: Optional[str] = None
    description: Optional[str] = None
    keywords: List[str] = field(default_factory=list)

    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageMetadata":
        """Build a record from stored JSON, ignoring keys we don't know"""
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if "filename" not in values:
            values["filename"] = Path(values.get("relative_path", "")).name
        values.setdefault("relative_path", "")
        if values.get("keywords") is None:
            values["keywords"] = []
        return cls(**values)


def _clean_text(value: Any, limit: int) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip()[:limit]


def _clean_keywords(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    keywords = [k for k in value if isinstance(k, str)][:MAX_KEYWORDS]
    return [k.strip()[:KEYWORD_MAX_LENGTH] for k in keywords]


@dataclass
class MetadataUpdate:
    """Partial metadata record. `None` means "not provided".

    Merging overwrites exactly the provided fields; empty strings and empty
    lists count as provided.
    """
    filename: Optional[str] = None
    original_path: Optional[str] = None
    title: Optional[str] = None
    alt_text: Optional[str] = None
    caption: Optional[str] = None
    description: Optional[str] = None
    keywords: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetadataUpdate":
        """Sanitize user-supplied SEO fields (trim, cap lengths, drop bad types)"""
        return cls(
            title=_clean_text(data.get("title"), TITLE_MAX_LENGTH),
            alt_text=_clean_text(data.get("alt_text"), ALT_TEXT_MAX_LENGTH),
            caption=_clean_text(data.get("caption"), CAPTION_MAX_LENGTH),
            description=_clean_text(data.get("description"), DESCRIPTION_MAX_LENGTH),
            keywords=_clean_keywords(data.get("keywords")),
        )

    def apply_to(self, record: ImageMetadata) -> ImageMetadata:
        """Overwrite provided fields on `record` in place and return it"""
        if self.filename is not None:
            record.filename = self.filename
        if self.original_path is not None:
            record.original_path = self.original_path
        if self.title is not None:
            record.title = self.title
        if self.alt_text is not None:
            record.alt_text = self.alt_text
        if self.caption is not None:
            record.caption = self.caption
        if self.description is not None:
            record.description = self.description
        if self.keywords is not None:
            record.keywords = list(self.keywords)[:MAX_KEYWORDS]
        return record

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass
class OptimizationOptions:
    """Transcode options, already clamped by the transcoder"""
    width: int
    quality: int
    format: str  # "jpeg" | "webp" | "both"


@dataclass
class OptimizationResult:
    """One derivative written by an optimize call"""
    name: str
    relative_path: str  # Canonical path under the derivative root
    output: str  # Absolute derivative path
    original_path: str  # Absolute archive path
    original_size: int
    optimized_size: int
    savings: int  # May be negative
    savings_percent: float
    width: int
    height: int
    format: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Upload:
    """One uploaded file"""
    filename: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class BatchResult:
    """Outcome of a multi-file upload: successes plus per-file errors"""
    results: List[OptimizationResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.results)


@dataclass(frozen=True)
class AssetEntry:
    """A derivative found on disk by the scanner"""
    path: Path
    relative_path: str
    original_path: Optional[Path]

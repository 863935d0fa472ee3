"""File-per-asset metadata persistence keyed by canonical path"""

import hashlib
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from asset_processor import extract_technical_metadata
from managers.scanner import find_archived_original
from models.asset import ImageMetadata, MetadataUpdate
from models.errors import ExtractionError

logger = logging.getLogger("AssetPipeline")


def metadata_key(canonical_path: str) -> str:
    """Stable filesystem-safe key for a canonical asset path"""
    return hashlib.sha256(canonical_path.encode("utf-8")).hexdigest()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MetadataStore:
    """Persists one JSON record per derivative under `metadata_dir`.

    Saves are read-merge-write. Concurrent saves to the same asset may race;
    the later write wins.
    """

    def __init__(
        self,
        metadata_dir: Union[str, Path],
        derivative_root: Union[str, Path],
        archive_root: Union[str, Path]
    ):
        self.metadata_dir = Path(metadata_dir)
        self.derivative_root = Path(derivative_root)
        self.archive_root = Path(archive_root)
        self._write_lock = threading.Lock()

    def record_path(self, canonical_path: str) -> Path:
        return self.metadata_dir / f"{metadata_key(canonical_path)}.json"

    def load(self, canonical_path: str) -> Optional[ImageMetadata]:
        """Return the stored record, or None if missing or unreadable"""
        record_file = self.record_path(canonical_path)
        if not record_file.exists():
            return None

        try:
            with open(record_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                logger.warning(f"Ignoring metadata for {canonical_path}: expected a JSON object")
                return None
            return ImageMetadata.from_dict(data)
        except (json.JSONDecodeError, OSError, TypeError) as e:
            logger.warning(f"Failed to read metadata for {canonical_path}: {e}")
            return None

    def save(
        self,
        canonical_path: str,
        update: Optional[MetadataUpdate] = None,
        original_path: Optional[str] = None
    ) -> ImageMetadata:
        """Merge `update` over the stored record (created if absent) and persist.

        Args:
            canonical_path: Asset path relative to the derivative root
            update: Fields to overwrite; omitted fields keep their prior value
            original_path: Archive-relative original, used when creating

        Returns:
            The merged record
        """
        update = update or MetadataUpdate()
        record = self.load(canonical_path)
        if record is None:
            record = self._build_record(canonical_path, original_path)

        update.apply_to(record)
        record.relative_path = canonical_path
        record.updated_at = _now()

        self._write(canonical_path, record)
        return record

    def seed(self, canonical_path: str, filename: str, original_path: Optional[str] = None) -> ImageMetadata:
        """Refresh technical fields for a freshly written derivative.

        SEO fields and created_at of an existing record survive, so
        re-uploading the same name on the same day keeps edits.
        """
        fresh = self._build_record(canonical_path, original_path)
        fresh.filename = filename
        existing = self.load(canonical_path)
        if existing is not None:
            fresh.title = existing.title
            fresh.alt_text = existing.alt_text
            fresh.caption = existing.caption
            fresh.description = existing.description
            fresh.keywords = existing.keywords
            fresh.created_at = existing.created_at or fresh.created_at
        fresh.updated_at = _now()

        self._write(canonical_path, fresh)
        return fresh

    def relocate(self, old_canonical: str, new_canonical: str, new_filename: str) -> Optional[ImageMetadata]:
        """Move a record to a new key after its derivative was renamed.

        No-op (returns None) if there was no record at the old key.
        """
        record = self.load(old_canonical)
        if record is None:
            return None

        record.filename = new_filename
        record.relative_path = new_canonical
        record.updated_at = _now()

        self._write(new_canonical, record)
        if old_canonical != new_canonical:
            self.remove(old_canonical)
        logger.debug(f"Relocated metadata {old_canonical} -> {new_canonical}")
        return record

    def remove(self, canonical_path: str) -> bool:
        """Delete the record if present. Returns True if a file was removed."""
        record_file = self.record_path(canonical_path)
        try:
            record_file.unlink()
            return True
        except FileNotFoundError:
            return False

    def find_original(self, canonical_path: str) -> Optional[Path]:
        return find_archived_original(self.archive_root, canonical_path)

    def _build_record(self, canonical_path: str, original_path: Optional[str]) -> ImageMetadata:
        if original_path:
            original_file = self.archive_root / original_path
        else:
            original_file = self.find_original(canonical_path)
            if original_file is not None:
                original_path = original_file.relative_to(self.archive_root).as_posix()

        now = _now()
        record = ImageMetadata(
            filename=Path(canonical_path).name,
            relative_path=canonical_path,
            original_path=original_path,
            created_at=now,
            updated_at=now,
        )

        try:
            technical = extract_technical_metadata(self.derivative_root / canonical_path, original_file)
        except ExtractionError as e:
            logger.error(f"Error extracting metadata for {canonical_path}: {e}")
            return record

        for name, value in technical.items():
            setattr(record, name, value)
        return record

    def _write(self, canonical_path: str, record: ImageMetadata):
        record_file = self.record_path(canonical_path)
        temp_path = record_file.with_suffix(".tmp")
        with self._write_lock:
            self.metadata_dir.mkdir(parents=True, exist_ok=True)
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    json.dump(record.to_dict(), f, indent=2)
                temp_path.replace(record_file)
            except (OSError, TypeError) as e:
                if temp_path.exists():
                    try:
                        temp_path.unlink()
                    except OSError:
                        pass
                logger.error(f"Failed to write metadata for {canonical_path}: {e}")
                raise

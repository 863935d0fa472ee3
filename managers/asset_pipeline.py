"""Asset pipeline: the operations exposed to the tool layer"""

import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import unquote, urlparse

from asset_processor import SUPPORTED_EXTENSIONS, fetch_source_bytes, is_supported_image
from managers.cache import AssetCache
from managers.config import PipelineConfig
from managers.metadata_store import MetadataStore
from managers.path_resolver import PathResolver, ResolvedPath
from managers.scanner import AssetScanner
from managers.transcoder import MAX_WIDTH, Transcoder, clamp_options
from models.asset import BatchResult, ImageMetadata, MetadataUpdate, Upload
from models.errors import (
    AlreadyExistsError,
    AssetNotFoundError,
    AssetPipelineError,
    FileTooLargeError,
    PathTraversalError,
    UnsupportedTypeError,
    UploadRejectedError,
)

logger = logging.getLogger("AssetPipeline")

SEO_FILENAME_MAX_LENGTH = 100


def format_bytes(size: int) -> str:
    """Human-readable byte count, e.g. 52428800 -> '50 MB'"""
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def generate_seo_filename(base_name: str, title: Optional[str] = None, alt_text: Optional[str] = None) -> str:
    """Build a lowercase hyphenated filename stem from title, alt text or base name"""
    source = title or alt_text or base_name
    seo_name = re.sub(r"[^a-z0-9\s-]", "", source.lower())
    seo_name = re.sub(r"\s+", "-", seo_name)
    seo_name = re.sub(r"-+", "-", seo_name).strip("-")
    seo_name = seo_name[:SEO_FILENAME_MAX_LENGTH]
    return seo_name or re.sub(r"[^a-z0-9]", "-", base_name.lower())


def validate_new_filename(filename: Any) -> str:
    """Check a rename target is a bare image filename.

    Raises:
        PathTraversalError: If it contains separators or names a directory
        UnsupportedTypeError: If the extension is not a supported image type
    """
    if not isinstance(filename, str) or not filename.strip():
        raise ValueError("newFilename is required and must be a string")
    filename = filename.strip()
    if "/" in filename or "\\" in filename or filename in (".", ".."):
        raise PathTraversalError(f"Invalid filename: '{filename}'")
    if not is_supported_image(filename) or not Path(filename).stem:
        raise UnsupportedTypeError("New filename must have a valid image extension")
    return filename


class AssetPipeline:
    """Wires path resolution, metadata, caching, transcoding and scanning
    for one derivative/archive/metadata root triple.
    """

    def __init__(self, config: PipelineConfig):
        self.config = config
        config.ensure_directories()

        self.resolver = PathResolver(config.optimized_dir)
        self.metadata_store = MetadataStore(config.metadata_dir, config.optimized_dir, config.originals_dir)
        self.cache = AssetCache(
            max_size=config.cache_max_size,
            ttl=config.cache_ttl,
            thumbnail_quality=config.thumbnail_quality,
        )
        self.transcoder = Transcoder(config.optimized_dir, config.originals_dir, self.metadata_store)
        self.scanner = AssetScanner(config.optimized_dir, config.originals_dir)
        self._mutation_lock = threading.Lock()
        logger.info(
            f"Initialized AssetPipeline: optimized={config.optimized_dir} "
            f"originals={config.originals_dir} metadata={config.metadata_dir}"
        )

    def _resolve_existing(self, raw_path: str) -> ResolvedPath:
        resolved = self.resolver.resolve(raw_path)
        if not resolved.path.is_file():
            raise AssetNotFoundError(f"Image not found: {resolved.relative}")
        return resolved

    def _load_or_create(self, canonical_path: str) -> ImageMetadata:
        record = self.cache.get_metadata(canonical_path)
        if record is not None:
            return record

        record = self.metadata_store.load(canonical_path)
        if record is None:
            logger.debug(f"Creating missing metadata record for {canonical_path}")
            record = self.metadata_store.save(canonical_path)
        self.cache.set_metadata(canonical_path, record)
        return record

    # Listing and export

    def list_assets(self) -> List[ImageMetadata]:
        """All derivatives with their metadata, creating missing records"""
        return [self._load_or_create(entry.relative_path) for entry in self.scanner.scan()]

    def export_records(self) -> List[Dict[str, Any]]:
        """Flat export rows for external CSV formatting"""
        rows = []
        for record in self.list_assets():
            stem = Path(record.filename).stem
            title = record.title or stem
            rows.append({
                "filename": record.filename,
                "title": title,
                "alt_text": record.alt_text or record.title or stem,
                "caption": record.caption or "",
                "description": record.description or "",
                "relative_path": record.relative_path,
                "width": record.width,
                "height": record.height,
                "file_size": record.file_size,
                "keywords": list(record.keywords),
            })
        return rows

    # Metadata

    def get_metadata(self, raw_path: str) -> ImageMetadata:
        resolved = self._resolve_existing(raw_path)
        return self._load_or_create(resolved.relative)

    def update_metadata(self, raw_path: str, update: MetadataUpdate) -> ImageMetadata:
        resolved = self._resolve_existing(raw_path)
        record = self.metadata_store.save(resolved.relative, update)
        self.cache.set_metadata(resolved.relative, record)
        logger.info(f"Updated metadata for {resolved.relative}")
        return record

    # Reads

    def get_thumbnail(self, raw_path: str, size: Optional[int] = None) -> bytes:
        """WebP thumbnail bytes for an asset.

        Raises:
            AssetNotFoundError: Source image missing
            ThumbnailError: Source exists but could not be thumbnailed
        """
        size = self.config.thumbnail_size if size is None else int(size)
        if size <= 0:
            raise ValueError("Thumbnail size must be positive")
        size = min(size, MAX_WIDTH)

        resolved = self.resolver.resolve(raw_path)
        return self.cache.get_thumbnail(resolved.path, resolved.relative, size)

    def resolve_download(self, raw_path: str) -> Path:
        """Absolute path of a derivative to serve.

        Falls back to a by-filename search when the canonical path names no
        file; the fallback's hit is validated like any other path.
        """
        found = self.resolver.find_existing(raw_path)
        if found is None:
            raise AssetNotFoundError("File not found")
        return found.path

    # Mutations

    def rename(self, raw_path: str, new_filename: str, use_seo: bool = False) -> str:
        """Rename a derivative in its bucket and relocate its metadata.

        Returns:
            The new canonical path

        Raises:
            AlreadyExistsError: If the target name is taken
        """
        final_filename = validate_new_filename(new_filename)

        with self._mutation_lock:
            resolved = self._resolve_existing(raw_path)

            if use_seo:
                record = self.metadata_store.load(resolved.relative)
                new_name = Path(final_filename)
                extension = new_name.suffix or resolved.path.suffix
                seo_name = generate_seo_filename(
                    new_name.stem,
                    record.title if record else None,
                    record.alt_text if record else None,
                )
                final_filename = f"{seo_name}{extension}"

            parent = Path(resolved.relative).parent
            new_relative = (parent / final_filename).as_posix()
            target = self.resolver.resolve(new_relative)

            if target.path.exists():
                raise AlreadyExistsError("File with that name already exists")

            resolved.path.rename(target.path)
            try:
                self.metadata_store.relocate(resolved.relative, target.relative, final_filename)
            except (OSError, TypeError):
                logger.exception(f"Metadata relocation failed for {resolved.relative}; reverting rename")
                target.path.rename(resolved.path)
                raise

            self.cache.invalidate(resolved.relative)
            self.cache.invalidate(target.relative)

        logger.info(f"Renamed {resolved.relative} -> {target.relative}")
        return target.relative

    def delete(self, raw_path: str) -> str:
        """Delete a derivative with its metadata record and cache entries.

        The archived original is kept; it may back another derivative.
        """
        with self._mutation_lock:
            resolved = self._resolve_existing(raw_path)
            resolved.path.unlink()
            self.metadata_store.remove(resolved.relative)
            self.cache.invalidate(resolved.relative)

        logger.info(f"Deleted {resolved.relative}")
        return resolved.relative

    def bulk_delete(self, raw_paths: Sequence[str]) -> Dict[str, Any]:
        """Delete several derivatives, reporting per-item errors"""
        deleted: List[str] = []
        errors: Dict[str, str] = {}
        for raw_path in raw_paths:
            try:
                deleted.append(self.delete(raw_path))
            except (AssetPipelineError, ValueError, OSError) as e:
                errors[str(raw_path)] = str(e)
        return {"deleted": deleted, "errors": errors}

    # Uploads

    def validate_upload(self, filename: str, size: int):
        """Reject uploads outside the supported types or size limit"""
        if not is_supported_image(filename):
            raise UnsupportedTypeError(
                f"{filename}: Invalid file type. Supported: {', '.join(SUPPORTED_EXTENSIONS)}"
            )
        if size <= 0 or size > self.config.max_file_size:
            raise FileTooLargeError(
                f"{filename}: File too large or empty. Maximum size is {format_bytes(self.config.max_file_size)}."
            )

    def optimize_uploads(
        self,
        uploads: Sequence[Upload],
        width: Optional[int] = None,
        quality: Optional[int] = None,
        format: Optional[str] = None
    ) -> BatchResult:
        """Validate then transcode a batch of uploads.

        Raises:
            UploadRejectedError: Empty batch, too many files, or any file
                failing type/size validation (nothing is transcoded)
            ValueError: Unknown output format
        """
        if not uploads:
            raise UploadRejectedError("No files provided. Please select at least one image file.")
        if len(uploads) > self.config.max_files_per_request:
            raise UploadRejectedError(
                f"Too many files. Maximum {self.config.max_files_per_request} files per request."
            )

        validation_errors = []
        for upload in uploads:
            try:
                self.validate_upload(upload.filename, upload.size)
            except (UnsupportedTypeError, FileTooLargeError) as e:
                validation_errors.append(str(e))
        if validation_errors:
            raise UploadRejectedError(" ".join(validation_errors), errors=validation_errors)

        options = clamp_options(width, quality, format)
        batch = self.transcoder.optimize_batch(uploads, options, self.config.batch_workers)
        for result in batch.results:
            self.cache.invalidate(result.relative_path)

        logger.info(f"Optimized {len(uploads)} file(s): {len(batch.results)} derivative(s), {len(batch.errors)} error(s)")
        return batch

    def optimize_from_url(
        self,
        source_url: str,
        filename: Optional[str] = None,
        width: Optional[int] = None,
        quality: Optional[int] = None,
        format: Optional[str] = None
    ) -> BatchResult:
        """Fetch a remote image and run it through the upload path"""
        if not filename:
            filename = Path(unquote(urlparse(source_url).path)).name
        if not filename:
            raise UnsupportedTypeError("Cannot derive a filename from the URL; pass filename explicitly")
        self.validate_upload(filename, 1)
        data = fetch_source_bytes(source_url)
        return self.optimize_uploads([Upload(filename=filename, data=data)], width, quality, format)

"""Resolution of untrusted relative asset paths into filesystem locations.

Raw paths are checked in a fixed order: traversal rejection on the raw string,
separator normalization, base-directory prefix stripping, a non-empty check,
traversal rejection on the stripped result, and finally a boundary check on
the fully resolved path. The string-level checks run before anything touches
the filesystem; the boundary check catches escapes that only resolution
reveals (symlinks).
"""

import logging
import os
from pathlib import Path, PureWindowsPath
from typing import List, NamedTuple, Optional, Union

from models.errors import EmptyPathError, PathTraversalError

logger = logging.getLogger("AssetPipeline")

SEPARATORS = ("/", "\\")


class ResolvedPath(NamedTuple):
    """Absolute location plus the canonical relative path used as asset id"""
    path: Path
    relative: str


def canonicalize_path(path: Union[str, Path], must_exist: bool = True) -> Path:
    """Resolve path to absolute real path (handles symlinks).

    Raises:
        ValueError: If path cannot be resolved and must_exist=True
    """
    try:
        return Path(path).resolve(strict=must_exist)
    except (OSError, RuntimeError) as e:
        raise ValueError(f"Cannot resolve path {path}: {e}")


def is_within(child_path: Union[str, Path], parent_path: Union[str, Path], child_must_exist: bool = True) -> bool:
    """Check if child_path is within parent_path using real path resolution.

    Both paths are canonicalized (symlinks resolved) before comparison.
    """
    try:
        child_real = canonicalize_path(child_path, must_exist=child_must_exist)
        parent_real = canonicalize_path(parent_path, must_exist=False)
        return child_real.is_relative_to(parent_real)
    except (ValueError, OSError):
        return False


def _split_segments(raw_path: str) -> List[str]:
    return raw_path.replace("\\", "/").split("/")


def _reject_traversal(raw_path: str):
    if "\x00" in raw_path:
        raise PathTraversalError("Invalid path: null byte in path")
    if raw_path.startswith(SEPARATORS):
        raise PathTraversalError("Invalid path: directory traversal detected")
    if PureWindowsPath(raw_path).drive:
        raise PathTraversalError("Invalid path: directory traversal detected")
    if ".." in _split_segments(raw_path):
        raise PathTraversalError("Invalid path: directory traversal detected")


def _normalize_separators(raw_path: str) -> List[str]:
    return [segment for segment in _split_segments(raw_path) if segment not in ("", ".")]


def _strip_base_prefix(raw_path: str, segments: List[str], base_name: str) -> List[str]:
    # Only a leading raw segment counts: "./optimized/a.jpg" and
    # "optimizedX/a.jpg" keep their first segment
    if _split_segments(raw_path)[0].lower() != base_name.lower():
        return segments
    if len(segments) == 1:
        raise EmptyPathError(f"Invalid path: '{raw_path}' must include file path")
    return segments[1:]


def _require_non_empty(raw_path: str, segments: List[str]):
    if not segments:
        raise EmptyPathError(f"Invalid path: '{raw_path}' must include file path")


def _check_boundary(candidate: Path, base_dir: Path) -> Path:
    resolved_base = canonicalize_path(base_dir, must_exist=False)
    try:
        resolved = canonicalize_path(candidate, must_exist=False)
    except ValueError as e:
        raise PathTraversalError(f"Invalid path: cannot be resolved ({e})") from e
    if resolved == resolved_base or not resolved.is_relative_to(resolved_base):
        raise PathTraversalError("Invalid path: outside allowed directory")
    return resolved


def resolve_asset_path(raw_path: str, base_dir: Union[str, Path]) -> ResolvedPath:
    """Validate `raw_path` and resolve it under `base_dir`.

    Accepts paths relative to the base directory or prefixed with the base
    directory's name (any case, either separator).

    Returns:
        ResolvedPath with the absolute resolved path and canonical relative path

    Raises:
        PathTraversalError: Traversal, absolute path, or escape from base_dir
        EmptyPathError: Path names the base directory itself or nothing
    """
    if not isinstance(raw_path, str) or not raw_path.strip():
        raise EmptyPathError("Invalid path: path is required")

    base_dir = Path(base_dir)
    _reject_traversal(raw_path)
    segments = _normalize_separators(raw_path)
    segments = _strip_base_prefix(raw_path, segments, base_dir.name)
    _require_non_empty(raw_path, segments)

    relative = "/".join(segments)
    _reject_traversal(relative)

    resolved = _check_boundary(base_dir.joinpath(*segments), base_dir)
    return ResolvedPath(path=resolved, relative=relative)


def find_by_filename(base_dir: Union[str, Path], filename: str) -> Optional[Path]:
    """Recursively search `base_dir` for a file named exactly `filename`.

    Secondary lookup for legacy callers that only know a basename. The hit is
    not validated here; callers must re-resolve it before use.
    """
    base_dir = Path(base_dir)
    if not filename or not base_dir.is_dir():
        return None

    for root, dirs, files in os.walk(base_dir):
        dirs.sort()
        if filename in files:
            return Path(root) / filename
    return None


class PathResolver:
    """Resolves raw asset paths against one base directory"""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)

    def resolve(self, raw_path: str) -> ResolvedPath:
        return resolve_asset_path(raw_path, self.base_dir)

    def find_existing(self, raw_path: str) -> Optional[ResolvedPath]:
        """Resolve `raw_path`, falling back to a by-filename search.

        Path validation errors from the primary resolution always propagate;
        the fallback only runs when a valid path names a missing file, and its
        hit must pass the same validation before it is returned.
        """
        primary = self.resolve(raw_path)
        if primary.path.is_file():
            return primary

        found = find_by_filename(self.base_dir, Path(primary.relative).name)
        if found is None:
            return None
        if not is_within(found, self.base_dir):
            logger.warning(f"Rejected by-filename match {found} for {raw_path}: outside allowed directory")
            return None

        try:
            relative = Path(os.path.relpath(found, self.base_dir)).as_posix()
            fallback = self.resolve(relative)
        except (PathTraversalError, EmptyPathError) as e:
            logger.warning(f"Rejected by-filename match {found} for {raw_path}: {e}")
            return None

        if not fallback.path.is_file():
            return None
        logger.debug(f"Resolved {raw_path} via by-filename lookup to {fallback.relative}")
        return fallback

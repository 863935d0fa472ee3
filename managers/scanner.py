"""Enumerates derivative images on disk for listing and export"""

import logging
import os
from pathlib import Path
from typing import Iterator, List, Optional, Union

from asset_processor import SUPPORTED_EXTENSIONS
from models.asset import AssetEntry

logger = logging.getLogger("AssetPipeline")


def find_archived_original(archive_root: Union[str, Path], relative_path: str) -> Optional[Path]:
    """Archived original in the mirrored date bucket with the same stem, if any"""
    relative = Path(relative_path)
    bucket = Path(archive_root) / relative.parent
    if not bucket.is_dir():
        return None
    for candidate in sorted(bucket.iterdir()):
        if candidate.is_file() and candidate.stem == relative.stem and candidate.suffix.lower() in SUPPORTED_EXTENSIONS:
            return candidate
    return None


class AssetScanner:
    """Walk the derivative tree and map each image to its archived original"""

    def __init__(self, derivative_root: Union[str, Path], archive_root: Union[str, Path]):
        self.derivative_root = Path(derivative_root)
        self.archive_root = Path(archive_root)

    def scan(self) -> List[AssetEntry]:
        """Return every supported image under the derivative root, sorted by path"""
        return list(self._iter_entries())

    def _iter_entries(self) -> Iterator[AssetEntry]:
        if not self.derivative_root.is_dir():
            return

        for root, dirs, files in os.walk(self.derivative_root):
            dirs.sort()
            for name in sorted(files):
                if Path(name).suffix.lower() not in SUPPORTED_EXTENSIONS:
                    continue
                path = Path(root) / name
                relative_path = path.relative_to(self.derivative_root).as_posix()
                yield AssetEntry(
                    path=path,
                    relative_path=relative_path,
                    original_path=self.find_original(relative_path),
                )

    def find_original(self, relative_path: str) -> Optional[Path]:
        return find_archived_original(self.archive_root, relative_path)

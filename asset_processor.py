"""Image processing utilities for transcoding, thumbnails and metadata extraction"""

import logging
import os
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import requests
from PIL import Image, ImageOps, UnidentifiedImageError

from models.errors import ExtractionError, ThumbnailError, TranscodeError

logger = logging.getLogger("AssetProcessor")

SUPPORTED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")

# Derivative format -> (Pillow format, file extension)
DERIVATIVE_FORMATS = {
    "jpeg": ("JPEG", ".jpeg"),
    "webp": ("WEBP", ".webp"),
}

MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}

# Pillow mode -> color space label
COLOR_SPACES = {
    "1": "b-w",
    "L": "b-w",
    "LA": "b-w",
    "I;16": "grey16",
    "RGB": "srgb",
    "RGBA": "srgb",
    "P": "srgb",
    "PA": "srgb",
    "CMYK": "cmyk",
    "YCbCr": "srgb",
    "LAB": "lab",
}

ALPHA_MODES = ("RGBA", "LA", "PA")


def is_supported_image(filename: str) -> bool:
    return Path(filename).suffix.lower() in SUPPORTED_EXTENSIONS


def mime_type_for(path: Union[str, Path]) -> str:
    return MIME_TYPES.get(Path(path).suffix.lower(), "application/octet-stream")


def fetch_source_bytes(source_url: str, timeout: int = 30) -> bytes:
    """Download a source image for ingestion"""
    try:
        response = requests.get(source_url, timeout=timeout)
        response.raise_for_status()
        return response.content
    except requests.RequestException as e:
        logger.error(f"Failed to fetch source image from {source_url}: {e}")
        raise


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ALPHA_MODES or "transparency" in img.info


def _iso_timestamp(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()


def extract_technical_metadata(image_path: Path, original_path: Optional[Path] = None) -> Dict[str, Any]:
    """Read dimensions, format, color space and file stats of a derivative.

    Args:
        image_path: Derivative file to inspect
        original_path: Archived original, used for original_size when present

    Returns:
        Dict of ImageMetadata technical fields

    Raises:
        ExtractionError: If the file cannot be opened or decoded
    """
    try:
        stats = image_path.stat()
        with Image.open(image_path) as img:
            exif = img.info.get("exif")
            technical = {
                "width": img.width or 0,
                "height": img.height or 0,
                "format": (img.format or "unknown").lower(),
                "color_space": COLOR_SPACES.get(img.mode, img.mode.lower()),
                "has_alpha": _has_alpha(img),
                "exif": {"has_exif": True, "raw_size": len(exif)} if exif else None,
            }
    except (OSError, UnidentifiedImageError, ValueError) as e:
        raise ExtractionError(f"Cannot read technical metadata from {image_path}: {e}") from e

    original_size = stats.st_size
    if original_path is not None and original_path.is_file():
        original_size = original_path.stat().st_size

    created = getattr(stats, "st_birthtime", stats.st_ctime)
    technical.update({
        "file_size": stats.st_size,
        "original_size": original_size,
        "created_at": _iso_timestamp(created),
        "updated_at": _iso_timestamp(stats.st_mtime),
    })
    return technical


def flatten_alpha(img: Image.Image) -> Image.Image:
    """Composite transparency onto white and return an RGB image"""
    if img.mode == "P":
        img = img.convert("RGBA")
    if img.mode in ALPHA_MODES:
        img = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def resize_to_width(img: Image.Image, width: int) -> Image.Image:
    """Scale to `width` keeping aspect ratio. Never enlarges."""
    if width <= 0 or img.width <= width:
        return img
    height = max(1, round(img.height * width / img.width))
    return img.resize((width, height), Image.Resampling.LANCZOS)


def _prepare_for_format(img: Image.Image, pil_format: str) -> Image.Image:
    if pil_format == "JPEG":
        return flatten_alpha(img)
    if _has_alpha(img):
        return img.convert("RGBA") if img.mode != "RGBA" else img
    return img.convert("RGB") if img.mode != "RGB" else img


def encode_derivative(buffer: bytes, fmt: str, width: int, quality: int) -> Tuple[bytes, Tuple[int, int]]:
    """Decode `buffer`, resize, and encode as a derivative.

    Args:
        buffer: Source image bytes
        fmt: "jpeg" or "webp"
        width: Target width, 0 keeps native size
        quality: Encoder quality 1-100

    Returns:
        Tuple of (encoded bytes, (width, height))

    Raises:
        TranscodeError: If decoding or encoding fails
    """
    if fmt not in DERIVATIVE_FORMATS:
        raise TranscodeError(f"Unsupported derivative format: {fmt}")
    pil_format, _ = DERIVATIVE_FORMATS[fmt]

    try:
        with Image.open(BytesIO(buffer)) as loaded:
            loaded.load()
            im = resize_to_width(loaded, width)
            im = _prepare_for_format(im, pil_format)

            output = BytesIO()
            if pil_format == "JPEG":
                im.save(output, format="JPEG", quality=quality, optimize=True)
            else:
                im.save(output, format="WEBP", quality=quality, method=4)
            return output.getvalue(), im.size
    except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as e:
        raise TranscodeError(f"Failed to encode {fmt}: {e}") from e


def create_thumbnail(image_path: Path, size: int, quality: int = 80) -> bytes:
    """Create a WebP thumbnail `size` pixels wide (no upscaling).

    Raises:
        ThumbnailError: If the image cannot be decoded or encoded
    """
    try:
        with Image.open(image_path) as loaded:
            im = ImageOps.exif_transpose(loaded)
            im = resize_to_width(im, size)
            if im.mode not in ("RGB", "RGBA"):
                im = im.convert("RGBA" if _has_alpha(im) else "RGB")

            output = BytesIO()
            im.save(output, format="WEBP", quality=quality, method=4)
            thumbnail = output.getvalue()
    except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as e:
        logger.error(f"Failed to create thumbnail for {image_path}: {e}")
        raise ThumbnailError(f"Failed to generate thumbnail for {image_path}: {e}") from e

    logger.debug(f"Thumbnail for {os.fspath(image_path)}: size={size} encoded={len(thumbnail)}B")
    return thumbnail

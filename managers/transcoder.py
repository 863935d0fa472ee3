"""Transcoding of uploads into date-bucketed derivatives with archived originals"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from asset_processor import DERIVATIVE_FORMATS, encode_derivative
from managers.metadata_store import MetadataStore
from models.asset import BatchResult, OptimizationOptions, OptimizationResult, Upload
from models.errors import TranscodeError

logger = logging.getLogger("AssetPipeline")

DEFAULT_WIDTH = 1600
DEFAULT_QUALITY = 85
DEFAULT_FORMAT = "webp"
MAX_WIDTH = 10000
OUTPUT_FORMATS = ("jpeg", "webp", "both")


def clamp_options(
    width: Optional[int] = None,
    quality: Optional[int] = None,
    format: Optional[str] = None
) -> OptimizationOptions:
    """Apply defaults and clamp numeric inputs to sane bounds.

    Width is clamped to [0, MAX_WIDTH] where 0 keeps native dimensions;
    quality to [1, 100].

    Raises:
        ValueError: If format is not jpeg, webp or both
    """
    width = DEFAULT_WIDTH if width is None else int(width)
    quality = DEFAULT_QUALITY if quality is None else int(quality)
    format = (format or DEFAULT_FORMAT).lower()
    if format == "jpg":
        format = "jpeg"
    if format not in OUTPUT_FORMATS:
        raise ValueError(f"Unsupported format '{format}'. Use one of: {', '.join(OUTPUT_FORMATS)}")

    return OptimizationOptions(
        width=max(0, min(width, MAX_WIDTH)),
        quality=max(1, min(quality, 100)),
        format=format,
    )


class Transcoder:
    """Writes derivatives under <derivative_root>/YYYY/MM/DD and originals
    under the mirrored bucket in <archive_root>, seeding a metadata record for
    each derivative.
    """

    def __init__(
        self,
        derivative_root: Union[str, Path],
        archive_root: Union[str, Path],
        metadata_store: MetadataStore,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.derivative_root = Path(derivative_root)
        self.archive_root = Path(archive_root)
        self.metadata_store = metadata_store
        self._clock = clock

    def date_bucket(self) -> str:
        now = self._clock()
        return f"{now.year:04d}/{now.month:02d}/{now.day:02d}"

    def optimize(self, buffer: bytes, original_filename: str, options: OptimizationOptions) -> List[OptimizationResult]:
        """Archive the original and write one derivative per requested format.

        With format "both" the two encodes run concurrently and independently.

        Raises:
            TranscodeError: If any format failed; derivatives that did succeed
                are carried in `partial_results`
        """
        original_name = Path(original_filename.replace("\\", "/")).name
        if not original_name or original_name in (".", ".."):
            raise TranscodeError(f"Invalid original filename: {original_filename!r}")
        base_name = Path(original_name).stem

        bucket = self.date_bucket()
        derivative_dir = self.derivative_root / bucket
        archive_dir = self.archive_root / bucket
        derivative_dir.mkdir(parents=True, exist_ok=True)
        archive_dir.mkdir(parents=True, exist_ok=True)

        original_path = archive_dir / original_name
        original_path.write_bytes(buffer)
        original_relative = f"{bucket}/{original_name}"

        formats = ["jpeg", "webp"] if options.format == "both" else [options.format]
        results: List[OptimizationResult] = []
        failures: Dict[str, str] = {}

        if len(formats) == 1:
            try:
                results.append(self._generate_format(
                    buffer, base_name, formats[0], options, bucket, original_path, original_relative
                ))
            except (TranscodeError, OSError) as e:
                failures[formats[0]] = str(e)
            except Exception as e:
                logger.exception(f"Unexpected error generating {formats[0]} for {original_name}")
                failures[formats[0]] = str(e)
        else:
            with ThreadPoolExecutor(max_workers=len(formats)) as executor:
                futures = {
                    fmt: executor.submit(
                        self._generate_format,
                        buffer, base_name, fmt, options, bucket, original_path, original_relative
                    )
                    for fmt in formats
                }
                for fmt, future in futures.items():
                    try:
                        results.append(future.result())
                    except (TranscodeError, OSError) as e:
                        failures[fmt] = str(e)
                    except Exception as e:
                        logger.exception(f"Unexpected error generating {fmt} for {original_name}")
                        failures[fmt] = str(e)

        if failures:
            detail = "; ".join(f"{fmt}: {message}" for fmt, message in failures.items())
            logger.error(f"Transcode failed for {original_name}: {detail}")
            raise TranscodeError(
                f"Failed to transcode {original_name} ({detail})",
                partial_results=results,
                failures=failures,
            )
        return results

    def _generate_format(
        self,
        buffer: bytes,
        base_name: str,
        fmt: str,
        options: OptimizationOptions,
        bucket: str,
        original_path: Path,
        original_relative: str
    ) -> OptimizationResult:
        _, extension = DERIVATIVE_FORMATS[fmt]
        name = f"{base_name}{extension}"
        relative_path = f"{bucket}/{name}"
        output_path = self.derivative_root / relative_path

        encoded, (width, height) = encode_derivative(buffer, fmt, options.width, options.quality)

        temp_path = output_path.with_suffix(output_path.suffix + ".tmp")
        try:
            temp_path.write_bytes(encoded)
            temp_path.replace(output_path)
        except OSError:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    pass
            raise

        original_size = len(buffer)
        optimized_size = output_path.stat().st_size
        savings = original_size - optimized_size
        savings_percent = round(savings / original_size * 100, 2) if original_size else 0.0

        self.metadata_store.seed(relative_path, name, original_relative)

        logger.info(
            f"Optimized {original_path.name} -> {relative_path}: "
            f"{original_size}B -> {optimized_size}B ({savings_percent}%) {width}x{height}"
        )
        return OptimizationResult(
            name=name,
            relative_path=relative_path,
            output=str(output_path),
            original_path=str(original_path),
            original_size=original_size,
            optimized_size=optimized_size,
            savings=savings,
            savings_percent=savings_percent,
            width=width,
            height=height,
            format=fmt,
        )

    def optimize_batch(self, uploads: Sequence[Upload], options: OptimizationOptions, max_workers: int = 4) -> BatchResult:
        """Transcode several uploads independently; one bad file never aborts the rest"""
        batch = BatchResult()
        if not uploads:
            return batch

        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(uploads)))) as executor:
            futures = [
                (upload, executor.submit(self.optimize, upload.data, upload.filename, options))
                for upload in uploads
            ]
            for upload, future in futures:
                try:
                    batch.results.extend(future.result())
                except TranscodeError as e:
                    batch.results.extend(e.partial_results)
                    batch.errors.append(f"{upload.filename}: {e}")
                except Exception as e:
                    logger.exception(f"Error processing {upload.filename}")
                    batch.errors.append(f"{upload.filename}: {e}")

        return batch

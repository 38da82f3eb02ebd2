"""Compression engine: quality-driven lossy re-encode with size/edge limits.

The longer edge is capped at `max_edge`. When the encode at the requested
quality exceeds `max_size_bytes`, the engine retries a bounded number of
times, shrinking the longer edge by 5% (and, for JPEG, the quality by 5%)
each round. The size ceiling is best-effort: after the last attempt the
output is returned even if it is still above the ceiling.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from image_toolbox.errors import EncodeError, ToolboxError
from image_toolbox.image_engine.codec import encode_image, load_image, shrink_to_edge
from image_toolbox.image_engine.metrics import metrics
from image_toolbox.logger import get_logger
from image_toolbox.models import EncodedImage, MimeType

_logger = get_logger("compressor")

MIN_QUALITY = 10
MAX_QUALITY = 100
DEFAULT_QUALITY = 80
_SHRINK_STEP = 0.95
_MIN_JPEG_QUALITY = 1


@dataclass(frozen=True)
class CompressionLimits:
    max_edge: int = 1920
    max_size_mb: float = 1.0
    max_iterations: int = 10

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)


def clamp_quality(quality: int | float, low: int = MIN_QUALITY, high: int = MAX_QUALITY) -> int:
    """Round `quality` and clamp it to low..high. Non-finite values raise ValueError."""
    q = float(quality)
    if not math.isfinite(q):
        raise ValueError(f"quality must be a finite number: {quality!r}")
    return max(low, min(high, int(round(q))))


def compress_image(
    data: bytes, mime_type: MimeType, quality: int, limits: CompressionLimits | None = None
) -> EncodedImage:
    """Re-encode `data` at `quality` (10..100) within `limits`."""
    limits = limits or CompressionLimits()
    mime = MimeType(mime_type)
    q = clamp_quality(quality)
    try:
        with metrics.timed("compressor.run"):
            source = load_image(data, mime)
            src_w, src_h = int(source.width), int(source.height)
            image = shrink_to_edge(source, limits.max_edge)
            out = encode_image(image, mime, q)
            attempts = 0
            while len(out) > limits.max_size_bytes and attempts < limits.max_iterations:
                attempts += 1
                edge = max(1, int(max(image.width, image.height) * _SHRINK_STEP))
                image = shrink_to_edge(source, edge)
                if mime is MimeType.JPEG:
                    q = max(_MIN_JPEG_QUALITY, int(q * _SHRINK_STEP))
                out = encode_image(image, mime, q)
            width, height = int(image.width), int(image.height)
    except EncodeError:
        raise
    except ToolboxError as e:
        raise EncodeError(e.detail) from e
    except Exception as e:
        _logger.error("compress failed: %s", e, exc_info=True)
        raise EncodeError(str(e)) from e

    if attempts:
        metrics.inc("compressor.size_retries", attempts)
        _logger.debug("size ceiling: %d retries, final q=%d size=%d", attempts, q, len(out))

    if (width, height) == (src_w, src_h) and len(out) > len(data):
        # Never hand back a bigger file than the one we were given.
        _logger.debug("compressed output larger than input (%d > %d); keeping input", len(out), len(data))
        return EncodedImage(bytes(data), src_w, src_h, mime)

    _logger.debug(
        "compress: %dx%d %s q=%d -> %dx%d %d bytes", src_w, src_h, mime.value, quality, width, height, len(out)
    )
    return EncodedImage(out, width, height, mime)


def compression_ratio(source_size: int, derived_size: int | None) -> float:
    """Percent saved, one decimal place; 0 when there is nothing to compare yet."""
    if derived_size is None or source_size <= 0:
        return 0.0
    return round((1 - derived_size / source_size) * 100, 1)


def format_size(size_bytes: int) -> str:
    if size_bytes == 0:
        return "0 B"
    if size_bytes < 0:
        raise ValueError("size_bytes must be non-negative")
    size_name = ("B", "KB", "MB", "GB", "TB")
    i = min(len(size_name) - 1, math.floor(math.log(size_bytes, 1024)))
    s = round(size_bytes / math.pow(1024, i), 2)
    text = f"{s:.2f}".rstrip("0").rstrip(".")
    return f"{text} {size_name[i]}"

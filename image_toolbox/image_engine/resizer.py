"""Resize engine: resample to exact dimensions, keep the source encoding."""

from __future__ import annotations

import math
from typing import Any

from image_toolbox.errors import EncodeError, InvalidDimensions, ToolboxError
from image_toolbox.image_engine.codec import encode_image, load_image, resample_exact
from image_toolbox.image_engine.metrics import metrics
from image_toolbox.logger import get_logger
from image_toolbox.models import EncodedImage, MimeType

_logger = get_logger("resizer")

# Quality used by browser canvases when exporting JPEG without an explicit value.
RESIZE_JPEG_QUALITY = 92
MAX_DIMENSION = 65535


def parse_dimension(value: Any) -> int:
    """Return `value` as a strictly positive int or raise InvalidDimensions.

    Accepts ints, integral finite floats and digit strings ("640", " 640 ").
    """
    if isinstance(value, bool) or value is None:
        raise InvalidDimensions(f"invalid dimension: {value!r}")
    if isinstance(value, int):
        n = value
    elif isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise InvalidDimensions(f"invalid dimension: {value!r}")
        n = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text.isdigit():
            raise InvalidDimensions(f"invalid dimension: {value!r}")
        n = int(text)
    else:
        raise InvalidDimensions(f"invalid dimension: {value!r}")
    if n <= 0 or n > MAX_DIMENSION:
        raise InvalidDimensions(f"dimension out of range: {n}")
    return n


def resize_image(
    data: bytes, mime_type: MimeType, width: Any, height: Any, jpeg_quality: int = RESIZE_JPEG_QUALITY
) -> EncodedImage:
    """Resample `data` to exactly width x height and re-encode in the same format.

    Both values are final; aspect reconciliation happens before this call.
    """
    w = parse_dimension(width)
    h = parse_dimension(height)
    mime = MimeType(mime_type)
    try:
        with metrics.timed("resizer.run"):
            image = resample_exact(load_image(data, mime), w, h)
            quality = jpeg_quality if mime is MimeType.JPEG else None
            out = encode_image(image, mime, quality)
    except EncodeError:
        raise
    except ToolboxError as e:
        raise EncodeError(e.detail) from e
    except Exception as e:
        _logger.error("resize failed: %s", e, exc_info=True)
        raise EncodeError(str(e)) from e
    _logger.debug("resize: -> %dx%d %s %d bytes", w, h, mime.value, len(out))
    return EncodedImage(out, w, h, mime)

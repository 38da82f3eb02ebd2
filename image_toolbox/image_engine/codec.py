"""Decode/encode primitives built on pyvips.

These are the only functions that talk to libvips. Engines compose them and
never see pyvips errors directly: loading failures surface as DecodeError and
saving failures as EncodeError.
"""

from __future__ import annotations

import contextlib
from typing import Any

from image_toolbox.errors import DecodeError, EncodeError
from image_toolbox.logger import get_logger
from image_toolbox.models import MimeType

_logger = get_logger("codec")

JPEG_BACKGROUND = [255, 255, 255]
PNG_LOSSLESS_COMPRESSION = 6
PNG_QUANTIZED_COMPRESSION = 9

_pyvips: Any | None = None


def _get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        # Configure pyvips caches to avoid memory growth across many runs
        with contextlib.suppress(Exception):
            pyvips.cache_set_max(0)
            pyvips.cache_set_max_mem(0)
            pyvips.cache_set_max_files(0)
        _pyvips = pyvips
    return _pyvips


def load_image(data: bytes, mime_type: MimeType) -> Any:
    """Decode encoded bytes into a pyvips image held in memory.

    JPEG input is auto-rotated from its EXIF orientation.
    """
    pyvips = _get_pyvips_module()
    try:
        image = pyvips.Image.new_from_buffer(data, "")
        if mime_type is MimeType.JPEG:
            image = image.autorot()
        # Decode now so unreadable pixel data fails here, not in a later stage.
        return image.copy_memory()
    except pyvips.Error as e:
        _logger.debug("load failed (%s): %s", mime_type.value, e)
        raise DecodeError(str(e)) from e


def probe_dimensions(data: bytes, mime_type: MimeType) -> tuple[int, int]:
    image = load_image(data, mime_type)
    return int(image.width), int(image.height)


def _prepare_for_jpeg(image: Any) -> Any:
    with contextlib.suppress(Exception):
        if image.interpretation not in ("srgb", "b-w"):
            image = image.colourspace("srgb")
    if image.hasalpha():
        image = image.flatten(background=JPEG_BACKGROUND)
    if image.format != "uchar":
        image = image.cast("uchar")
    return image


def encode_image(image: Any, mime_type: MimeType, quality: int | None = None) -> bytes:
    """Encode a pyvips image to bytes in the given format.

    For JPEG `quality` is the Q factor. For PNG a quality turns on palette
    quantization (lossy); None writes a lossless PNG.
    """
    pyvips = _get_pyvips_module()
    try:
        if mime_type is MimeType.JPEG:
            q = 92 if quality is None else int(quality)
            return bytes(_prepare_for_jpeg(image).write_to_buffer(".jpg", Q=q, optimize_coding=True))
        if quality is None:
            return bytes(image.write_to_buffer(".png", compression=PNG_LOSSLESS_COMPRESSION))
        return bytes(
            image.write_to_buffer(".png", compression=PNG_QUANTIZED_COMPRESSION, palette=True, Q=int(quality))
        )
    except pyvips.Error as e:
        _logger.debug("encode failed (%s): %s", mime_type.value, e)
        raise EncodeError(str(e)) from e


def shrink_to_edge(image: Any, max_edge: int) -> Any:
    """Downscale proportionally so the longer edge is at most `max_edge`. Never upscales."""
    longest = max(image.width, image.height)
    if longest <= max_edge:
        return image
    scale = max_edge / longest
    out = image.resize(scale)
    _logger.debug("shrink: %dx%d -> %dx%d", image.width, image.height, out.width, out.height)
    return out


def resample_exact(image: Any, width: int, height: int) -> Any:
    """Resample to exactly width x height, independent horizontal/vertical scale."""
    out = image.resize(width / image.width, vscale=height / image.height)
    if out.width != width or out.height != height:
        # libvips rounds the output size; pad/trim the last pixel row or column.
        out = out.gravity("centre", width, height, extend="copy")
    return out

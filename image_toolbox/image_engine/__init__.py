"""Image Engine - the transformation layer.

- Decode/encode primitives (codec)
- Compression and resize engines (compressor, resizer)
- Asynchronous runs with last-request-wins sequencing (runner)

Engines are pure: bytes in, EncodedImage out. Handle bookkeeping lives in
image_toolbox.artifacts.

Usage:
    from image_toolbox.image_engine import compress_image, resize_image

    result = compress_image(data, MimeType.JPEG, quality=80)
"""

from .compressor import CompressionLimits, compress_image, compression_ratio, format_size
from .resizer import parse_dimension, resize_image

__all__ = [
    "CompressionLimits",
    "compress_image",
    "compression_ratio",
    "format_size",
    "parse_dimension",
    "resize_image",
]

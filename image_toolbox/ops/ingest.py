from __future__ import annotations

from image_toolbox.artifacts import ROLE_ORIGINAL, ArtifactStore
from image_toolbox.errors import UnsupportedFormat
from image_toolbox.image_engine.codec import probe_dimensions
from image_toolbox.logger import get_logger
from image_toolbox.models import MimeType, SourceImage, UploadedFile

_logger = get_logger("ingest")


def check_format(file: UploadedFile) -> MimeType:
    mime = MimeType.parse(file.mime_type)
    if mime is None:
        raise UnsupportedFormat(f"unsupported media type {file.mime_type!r} for {file.name}")
    return mime


def validate(file: UploadedFile, store: ArtifactStore) -> SourceImage:
    """Validate and decode an upload, then install it as the store's original.

    Raises UnsupportedFormat or DecodeError before the store is touched, so a
    rejected upload leaves the previous source displayed.
    """
    mime = check_format(file)
    width, height = probe_dimensions(file.data, mime)
    handle = store.install(ROLE_ORIGINAL, file.data, mime)
    _logger.info("ingested %s: %dx%d %s %d bytes", file.name, width, height, mime.value, file.size)
    return SourceImage(
        name=file.name,
        data=file.data,
        mime_type=mime,
        byte_size=file.size,
        pixel_width=width,
        pixel_height=height,
        display_handle=handle,
    )

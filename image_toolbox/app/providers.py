from __future__ import annotations

from collections.abc import Callable
from typing import Any

from PySide6.QtCore import QBuffer, QByteArray, QIODevice, QSize, Qt
from PySide6.QtGui import QImage, QImageReader
from PySide6.QtQuick import QQuickImageProvider

from image_toolbox.artifacts import URL_SCHEME
from image_toolbox.logger import get_logger
from image_toolbox.models import MimeType

_logger = get_logger("providers")

PROVIDER_ID = URL_SCHEME[len("image://") :].rstrip("/")


def _decode(data: bytes, mime: MimeType) -> QImage:
    # Apply EXIF orientation so the pixels match the dimensions reported at ingest.
    buf = QBuffer()
    buf.setData(QByteArray(data))
    buf.open(QIODevice.OpenModeFlag.ReadOnly)
    reader = QImageReader(buf, b"jpg" if mime is MimeType.JPEG else b"png")
    reader.setAutoTransform(True)
    img = reader.read()
    buf.close()
    return img


class ArtifactImageProvider(QQuickImageProvider):
    """QML image provider for artifact handles (image://artifact/<key>).

    `lookup(key)` returns the bytes behind a live handle or None once the
    handle has been released; released handles render as an empty image.
    """

    def __init__(self, lookup: Callable[[str], tuple[bytes, MimeType] | None]) -> None:
        super().__init__(QQuickImageProvider.ImageType.Image)
        self._lookup = lookup

    def requestImage(self, id: str, size: Any, requestedSize: Any) -> QImage:
        found = self._lookup(str(id))
        if found is None:
            _logger.debug("requestImage: no live artifact for %s", id)
            return QImage()
        data, mime = found
        img = _decode(data, mime)
        if img.isNull():
            _logger.warning("requestImage: could not decode %s", id)
            return img
        if isinstance(requestedSize, QSize) and requestedSize.isValid() and not requestedSize.isEmpty():
            img = img.scaled(
                requestedSize, Qt.AspectRatioMode.KeepAspectRatio, Qt.TransformationMode.SmoothTransformation
            )
        if isinstance(size, QSize):
            size.setWidth(img.width())
            size.setHeight(img.height())
        return img


def register_providers(engine: Any, backend: Any) -> None:
    """Install the backend's artifact provider on a QQmlEngine under PROVIDER_ID."""
    engine.addImageProvider(PROVIDER_ID, backend.artifact_provider)
    _logger.debug("image provider registered: image://%s", PROVIDER_ID)

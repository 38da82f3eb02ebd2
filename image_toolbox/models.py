"""Data model for the transformation pipeline.

Keep this module free of Qt and pyvips dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from image_toolbox.artifacts import ArtifactHandle

_SUFFIX_MIME = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}
_UNKNOWN_MIME = "application/octet-stream"


class MimeType(str, Enum):
    """The two supported raster encodings."""

    JPEG = "image/jpeg"
    PNG = "image/png"

    @property
    def suffix(self) -> str:
        return ".jpg" if self is MimeType.JPEG else ".png"

    @classmethod
    def parse(cls, value: str | None) -> MimeType | None:
        v = (value or "").strip().lower()
        for member in cls:
            if member.value == v:
                return member
        return None


def guess_mime_type(path: str | Path) -> str:
    return _SUFFIX_MIME.get(Path(path).suffix.lower(), _UNKNOWN_MIME)


@dataclass(frozen=True)
class UploadedFile:
    """A candidate file as handed over by the upload input."""

    name: str
    mime_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str | None = None) -> UploadedFile:
        p = Path(path)
        return cls(name=p.name, mime_type=mime_type or guess_mime_type(p), data=p.read_bytes())


@dataclass(frozen=True)
class EncodedImage:
    """Pure engine output: encoded bytes plus their pixel dimensions."""

    data: bytes = field(repr=False)
    width: int
    height: int
    mime_type: MimeType

    @property
    def byte_size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, eq=False)
class SourceImage:
    name: str
    data: bytes = field(repr=False)
    mime_type: MimeType
    byte_size: int
    pixel_width: int
    pixel_height: int
    display_handle: ArtifactHandle

    @property
    def aspect_ratio(self) -> float:
        return self.pixel_width / self.pixel_height


@dataclass(frozen=True, eq=False)
class DerivedArtifact:
    data: bytes = field(repr=False)
    mime_type: MimeType
    byte_size: int
    pixel_width: int
    pixel_height: int
    display_handle: ArtifactHandle
    source_ref: SourceImage

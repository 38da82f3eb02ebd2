"""Artifact lifecycle manager.

Owns the mapping from encoded image bytes to opaque display/download handles.
Each store keeps exactly one live handle per role ("original", "derived").

- install() mints the new handle before releasing the previous one, so a role
  is never observed without an image while a replacement is being installed.
- release() is idempotent.
- download() pins the handle for the duration of the write; a release that
  arrives meanwhile is deferred until the pin is dropped.

The store is read from the QML image provider thread, so all access goes
through one lock.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from pathlib import Path

from image_toolbox.image_engine.metrics import metrics
from image_toolbox.logger import get_logger
from image_toolbox.models import MimeType
from image_toolbox.path_utils import unique_path

_logger = get_logger("artifacts")

ROLE_ORIGINAL = "original"
ROLE_DERIVED = "derived"
ROLES = (ROLE_ORIGINAL, ROLE_DERIVED)

URL_SCHEME = "image://artifact/"


@dataclass(frozen=True, slots=True)
class ArtifactHandle:
    key: str
    role: str
    mime_type: MimeType
    byte_size: int

    @property
    def url(self) -> str:
        return f"{URL_SCHEME}{self.key}"


@dataclass(slots=True)
class _Blob:
    data: bytes
    mime_type: MimeType
    pins: int = 0
    doomed: bool = False


class ArtifactStore:
    _serials = itertools.count(1)

    def __init__(self, namespace: str) -> None:
        self.namespace = str(namespace)
        self._blobs: dict[str, _Blob] = {}
        self._live: dict[str, ArtifactHandle] = {}
        self._lock = threading.Lock()

    # ---- lifecycle ---------------------------------------------------
    def install(self, role: str, data: bytes, mime_type: MimeType) -> ArtifactHandle:
        if role not in ROLES:
            raise ValueError(f"unknown artifact role: {role!r}")
        handle = ArtifactHandle(
            key=f"{self.namespace}/{role}/{next(self._serials)}",
            role=role,
            mime_type=MimeType(mime_type),
            byte_size=len(data),
        )
        with self._lock:
            self._blobs[handle.key] = _Blob(bytes(data), handle.mime_type)
            previous = self._live.get(role)
            self._live[role] = handle
            if previous is not None:
                self._drop_locked(previous.key)
            held = len(self._blobs)
        metrics.inc("artifacts.installed")
        metrics.gauge(f"artifacts.held.{self.namespace}", held)
        _logger.debug("install: %s (%d bytes, replaced=%s)", handle.key, handle.byte_size, previous and previous.key)
        return handle

    def release(self, role: str) -> None:
        with self._lock:
            handle = self._live.pop(role, None)
            if handle is None:
                return
            self._drop_locked(handle.key)
            held = len(self._blobs)
        metrics.gauge(f"artifacts.held.{self.namespace}", held)
        _logger.debug("release: %s", handle.key)

    def clear(self) -> None:
        for role in ROLES:
            self.release(role)

    def _drop_locked(self, key: str) -> None:
        blob = self._blobs.get(key)
        if blob is None:
            return
        if blob.pins > 0:
            blob.doomed = True
            _logger.debug("release deferred (pinned): %s", key)
            return
        del self._blobs[key]
        metrics.inc("artifacts.released")

    # ---- queries -----------------------------------------------------
    def get(self, role: str) -> ArtifactHandle | None:
        with self._lock:
            return self._live.get(role)

    def is_live(self, handle: ArtifactHandle) -> bool:
        with self._lock:
            return self._live.get(handle.role) == handle

    def read(self, key: str) -> tuple[bytes, MimeType] | None:
        """Bytes behind a handle key, or None once it has been released."""
        with self._lock:
            blob = self._blobs.get(key)
            if blob is None or blob.doomed:
                return None
            return blob.data, blob.mime_type

    def live_count(self) -> int:
        with self._lock:
            return len(self._live)

    def held_count(self) -> int:
        """Handles whose bytes are still held (live plus pinned-but-released)."""
        with self._lock:
            return len(self._blobs)

    # ---- download ----------------------------------------------------
    def download(self, handle: ArtifactHandle, suggested_name: str, target_dir: str | Path) -> Path:
        """Write the bytes behind `handle` into `target_dir` without touching the handle."""
        with self._lock:
            blob = self._blobs.get(handle.key)
            if blob is None or blob.doomed:
                raise LookupError(f"artifact already released: {handle.key}")
            blob.pins += 1
            data = blob.data
        try:
            out_path = unique_path(target_dir, suggested_name)
            out_path.parent.mkdir(parents=True, exist_ok=True)
            out_path.write_bytes(data)
            _logger.info("download saved: %s (%d bytes)", out_path, len(data))
            return out_path
        finally:
            with self._lock:
                blob.pins -= 1
                if blob.doomed and blob.pins == 0:
                    self._blobs.pop(handle.key, None)
                    metrics.inc("artifacts.released")

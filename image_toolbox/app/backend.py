from __future__ import annotations

import contextlib
import math
import sys
from pathlib import Path
from typing import Any

from PySide6.QtCore import Property, QObject, QUrl, Signal, Slot

from image_toolbox.app.providers import ArtifactImageProvider
from image_toolbox.app.session import CompressSession, ResizeSession
from image_toolbox.app.state.tool_state import CompressState, ResizeState
from image_toolbox.artifacts import URL_SCHEME
from image_toolbox.image_engine.runner import EngineRunner
from image_toolbox.logger import get_logger
from image_toolbox.models import MimeType
from image_toolbox.path_utils import abs_path_str
from image_toolbox.settings_manager import SettingsManager

_logger = get_logger("backend")
_BASE_DIR = Path(getattr(sys, "_MEIPASS", Path(__file__).resolve().parents[1]))


def _get_payload_value(payload: object | None, key: str, *, default: Any) -> Any:
    """Extract a value from a QML payload (dict-like, QJSValue or None)."""

    if payload is None:
        return default

    # QML often passes a JS object which arrives as QJSValue/QVariant.
    if payload.__class__.__name__ == "QJSValue" and hasattr(payload, "toVariant"):
        with contextlib.suppress(Exception):
            payload = payload.toVariant()  # type: ignore[assignment, attr-defined]

    if isinstance(payload, dict):
        return payload.get(key, default)

    return default


def _local_path(raw: object) -> str:
    p = str(raw or "")
    if p.startswith("file:"):
        url = QUrl(p)
        if url.isLocalFile():
            p = url.toLocalFile()
    return p


class BackendFacade(QObject):
    """Single backend object exposed to QML.

    QML → Python: backend.dispatch(cmd, payload)
    Python → QML: backend.event(dict)
    QML bindings: backend.compress / backend.resize
    """

    # QObject already has an .event() handler method, so we must not shadow it.
    event_ = Signal(object, name="event")

    def __init__(
        self,
        settings: SettingsManager | None = None,
        compress_runner: EngineRunner | None = None,
        resize_runner: EngineRunner | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._settings_mgr = settings or SettingsManager(abs_path_str(_BASE_DIR / "settings.json"))
        s = self._settings_mgr

        self._compress = CompressSession(
            CompressState(self),
            quality=s.default_quality,
            quality_bounds=s.quality_bounds,
            limits=s.compression_limits,
            runner=compress_runner,
            parent=self,
        )
        self._resize = ResizeSession(
            ResizeState(self),
            locked=s.aspect_locked,
            jpeg_quality=s.resize_jpeg_quality,
            runner=resize_runner,
            parent=self,
        )
        self._compress.errorRaised.connect(self._on_session_error)
        self._resize.errorRaised.connect(self._on_session_error)
        self.artifact_provider = ArtifactImageProvider(self.lookup_artifact)

    # ---- expose state objects to QML ----
    def _get_compress(self) -> QObject:
        return self._compress.state

    compress = Property(QObject, _get_compress, constant=True)  # type: ignore[arg-type]

    def _get_resize(self) -> QObject:
        return self._resize.state

    resize = Property(QObject, _get_resize, constant=True)  # type: ignore[arg-type]

    @property
    def compress_session(self) -> CompressSession:
        return self._compress

    @property
    def resize_session(self) -> ResizeSession:
        return self._resize

    def lookup_artifact(self, key: str) -> tuple[bytes, MimeType] | None:
        """Resolve an image provider id (or full image:// URL) to live artifact bytes."""
        k = str(key)
        if k.startswith(URL_SCHEME):
            k = k[len(URL_SCHEME) :]
        for session in (self._compress, self._resize):
            found = session.store.read(k)
            if found is not None:
                return found
        return None

    # ---- QML command entry ----
    @Slot(str, "QVariant")  # type: ignore[call-overload]
    def dispatch(self, cmd: str, payload: object | None = None) -> None:  # noqa: PLR0911, PLR0912
        command = str(cmd or "").strip()
        if not command:
            self._emit_error("Empty cmd")
            return

        if command == "compressOpen":
            self._cmd_open(self._compress, payload)
            return

        if command == "compressSetQuality":
            value = _get_payload_value(payload, "value", default=self._compress.quality)
            try:
                quality = float(value)
            except (TypeError, ValueError):
                quality = math.nan
            if not math.isfinite(quality):
                self._emit_error(f"Invalid quality: {value!r}")
                return
            self._compress.set_quality_bounds(*self._settings_mgr.quality_bounds)
            self._compress.set_quality(quality)
            return

        if command == "compressApply":
            self._compress.apply()
            return

        if command == "compressDownload":
            self._cmd_download(self._compress, payload)
            return

        if command == "compressClose":
            self._compress.close()
            return

        if command == "resizeOpen":
            self._cmd_open(self._resize, payload)
            return

        if command == "resizeSetWidth":
            self._resize.set_width(_get_payload_value(payload, "value", default=None))
            return

        if command == "resizeSetHeight":
            self._resize.set_height(_get_payload_value(payload, "value", default=None))
            return

        if command == "resizeSetLocked":
            locked = bool(_get_payload_value(payload, "value", default=True))
            self._resize.set_aspect_locked(locked)
            self._settings_mgr.set("aspect_locked", locked)
            return

        if command == "resizeApply":
            self._resize.apply()
            return

        if command == "resizeDownload":
            self._cmd_download(self._resize, payload)
            return

        if command == "resizeClose":
            self._resize.close()
            return

        _logger.warning("unknown cmd: %s", command)
        self._emit_error(f"Unknown cmd: {command}")

    # ---- cmd handlers ----
    def _cmd_open(self, session: CompressSession | ResizeSession, payload: object | None) -> None:
        path = _local_path(_get_payload_value(payload, "path", default=payload))
        if not path:
            self._emit_error("No file selected")
            return
        if session.open_path(path):
            self._settings_mgr.remember_open_path(path)

    def _cmd_download(self, session: CompressSession | ResizeSession, payload: object | None) -> None:
        raw_dir = _get_payload_value(payload, "dir", default=None)
        target_dir = _local_path(raw_dir) if raw_dir else self._settings_mgr.download_dir
        if session.derived is None:
            self._emit_error("Nothing to download yet")
            return
        out = session.download(target_dir)
        if out is not None:
            self.event_.emit({"type": "event", "name": "downloaded", "path": str(out)})

    # ---- notifications ----
    def _emit_error(self, message: str) -> None:
        self.event_.emit({"type": "event", "name": "error", "level": "error", "message": str(message)})

    def _on_session_error(self, message: str) -> None:
        self._emit_error(message)

    def shutdown(self) -> None:
        self._compress.shutdown()
        self._resize.shutdown()

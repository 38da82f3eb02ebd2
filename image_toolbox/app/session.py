"""Tool sessions: the single owner of source/derived state for one tool.

A session is mutated only through its public methods. Engine runs go through
the EngineRunner; results come back on the session's thread and are installed
only when they belong to the latest request and to the current source.

All ToolboxError failures are caught here, logged, and published as a fixed
user message; the last good derived artifact stays displayed.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

from PySide6.QtCore import QObject, Signal, Slot

from image_toolbox.app.state.tool_state import CompressState, ResizeState, ToolState
from image_toolbox.artifacts import ROLE_DERIVED, ArtifactStore
from image_toolbox.errors import DecodeError, EncodeError, InvalidDimensions, ToolboxError
from image_toolbox.image_engine.compressor import (
    DEFAULT_QUALITY,
    MAX_QUALITY,
    MIN_QUALITY,
    CompressionLimits,
    clamp_quality,
    compress_image,
    compression_ratio,
)
from image_toolbox.image_engine.metrics import metrics
from image_toolbox.image_engine.resizer import RESIZE_JPEG_QUALITY, resize_image
from image_toolbox.image_engine.runner import EngineRunner
from image_toolbox.logger import get_logger
from image_toolbox.models import DerivedArtifact, EncodedImage, SourceImage, UploadedFile
from image_toolbox.ops.dimensions import DimensionSync
from image_toolbox.ops.ingest import validate

_logger = get_logger("session")

DOWNLOAD_FAILED_MESSAGE = "Could not save the image"


def _run_for_source(
    source: SourceImage, engine: Callable[..., EncodedImage], *args: Any
) -> tuple[SourceImage, EncodedImage]:
    """Engine job: runs on the worker thread, returns the source it was computed from."""
    return source, engine(source.data, source.mime_type, *args)


class ToolSession(QObject):
    TOOL = "tool"
    DOWNLOAD_PREFIX = ""
    ENCODE_ERROR_MESSAGE = EncodeError.user_message

    errorRaised = Signal(str)  # user-facing message
    derivedInstalled = Signal(object)  # DerivedArtifact

    def __init__(
        self,
        state: ToolState,
        runner: EngineRunner | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._state = state
        self._store = ArtifactStore(self.TOOL)
        self._runner = runner or EngineRunner(parent=self)
        self._runner.finished.connect(self._on_engine_finished)
        self._source: SourceImage | None = None
        self._derived: DerivedArtifact | None = None

    @property
    def state(self) -> ToolState:
        return self._state

    @property
    def store(self) -> ArtifactStore:
        return self._store

    @property
    def source(self) -> SourceImage | None:
        return self._source

    @property
    def derived(self) -> DerivedArtifact | None:
        return self._derived

    # ---- ingestion -----------------------------------------------------
    def open_file(self, file: UploadedFile) -> bool:
        """Replace the current source with `file`. Runs the tool once on success."""
        try:
            source = validate(file, self._store)
        except ToolboxError as e:
            self._report(e)
            return False

        # Anything pending or displayed was derived from the previous source.
        self._runner.invalidate(ROLE_DERIVED)
        self._store.release(ROLE_DERIVED)
        self._derived = None
        self._source = source

        st = self._state
        st._set_source_name(source.name)
        st._set_original(source.display_handle.url, source.byte_size, source.pixel_width, source.pixel_height)
        st._set_derived("", 0, 0, 0)
        st._set_has_source(True)
        st._set_error_message("")
        self._on_source_changed(source)
        self._schedule()
        return True

    def open_path(self, path: str | Path) -> bool:
        try:
            file = UploadedFile.from_path(path)
        except OSError as e:
            self._report(DecodeError(f"cannot read {path}: {e}"))
            return False
        return self.open_file(file)

    # ---- engine runs ---------------------------------------------------
    def apply(self) -> int | None:
        """Re-run the engine with the current parameters."""
        return self._schedule()

    def _engine_job(self) -> tuple[Callable[..., EncodedImage], tuple]:
        raise NotImplementedError()

    def _schedule(self) -> int | None:
        if self._source is None:
            return None
        try:
            engine, args = self._engine_job()
        except ToolboxError as e:
            self._report(e)
            return None
        self._state._set_busy(True)
        return self._runner.request(ROLE_DERIVED, _run_for_source, self._source, engine, *args)

    @Slot(str, int, object, object)
    def _on_engine_finished(self, role: str, req_id: int, result: object, error: object) -> None:
        if role != ROLE_DERIVED or not self._runner.is_latest(role, req_id):
            metrics.inc("session.stale_dropped")
            _logger.debug("%s: result %s superseded before install", self.TOOL, req_id)
            return
        self._state._set_busy(False)
        if error is not None:
            self._report(error)
            return

        source, encoded = result  # type: ignore[misc]
        if source is not self._source:
            metrics.inc("session.stale_source")
            _logger.debug("%s: result %s belongs to a replaced source", self.TOOL, req_id)
            return

        handle = self._store.install(ROLE_DERIVED, encoded.data, encoded.mime_type)
        derived = DerivedArtifact(
            data=encoded.data,
            mime_type=encoded.mime_type,
            byte_size=encoded.byte_size,
            pixel_width=encoded.width,
            pixel_height=encoded.height,
            display_handle=handle,
            source_ref=source,
        )
        self._derived = derived
        self._state._set_derived(handle.url, derived.byte_size, derived.pixel_width, derived.pixel_height)
        self._state._set_error_message("")
        self._on_derived_changed(derived)
        _logger.info(
            "%s: %s -> %dx%d %d bytes",
            self.TOOL,
            source.name,
            derived.pixel_width,
            derived.pixel_height,
            derived.byte_size,
        )
        self.derivedInstalled.emit(derived)

    # ---- download / teardown -------------------------------------------
    def download_name(self) -> str | None:
        if self._source is None:
            return None
        return f"{self.DOWNLOAD_PREFIX}{self._source.name}"

    def download(self, target_dir: str | Path) -> Path | None:
        derived = self._derived
        name = self.download_name()
        if derived is None or name is None:
            return None
        try:
            return self._store.download(derived.display_handle, name, target_dir)
        except (OSError, LookupError) as e:
            _logger.warning("%s: download failed: %s", self.TOOL, e)
            self._state._set_error_message(DOWNLOAD_FAILED_MESSAGE)
            self.errorRaised.emit(DOWNLOAD_FAILED_MESSAGE)
            return None

    def close(self) -> None:
        """End the session: drop pending results, release both handles, back to Idle."""
        self._runner.invalidate(ROLE_DERIVED)
        self._store.clear()
        self._source = None
        self._derived = None
        st = self._state
        st._set_busy(False)
        st._set_has_source(False)
        st._set_source_name("")
        st._set_original("", 0, 0, 0)
        st._set_derived("", 0, 0, 0)
        st._set_error_message("")
        self._on_source_changed(None)

    def shutdown(self) -> None:
        self.close()
        self._runner.shutdown()

    # ---- hooks -----------------------------------------------------------
    def _on_source_changed(self, source: SourceImage | None) -> None:
        pass

    def _on_derived_changed(self, derived: DerivedArtifact) -> None:
        pass

    # ---- errors ------------------------------------------------------------
    def _user_message(self, error: object) -> str:
        if isinstance(error, EncodeError):
            return self.ENCODE_ERROR_MESSAGE
        if isinstance(error, ToolboxError):
            return error.user_message
        return self.ENCODE_ERROR_MESSAGE

    def _report(self, error: object) -> None:
        message = self._user_message(error)
        if isinstance(error, ToolboxError):
            _logger.warning("%s: %s (%s)", self.TOOL, message, error.detail)
        else:
            exc_info = error if isinstance(error, BaseException) else None
            _logger.error("%s: unexpected engine failure: %r", self.TOOL, error, exc_info=exc_info)
        metrics.inc(f"session.errors.{type(error).__name__}")
        self._state._set_error_message(message)
        self.errorRaised.emit(message)


class CompressSession(ToolSession):
    TOOL = "compress"
    DOWNLOAD_PREFIX = "compressed_"
    ENCODE_ERROR_MESSAGE = "Failed to compress the image, please try again"

    def __init__(
        self,
        state: CompressState | None = None,
        *,
        quality: int = DEFAULT_QUALITY,
        quality_bounds: tuple[int, int] = (MIN_QUALITY, MAX_QUALITY),
        limits: CompressionLimits | None = None,
        runner: EngineRunner | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(state or CompressState(), runner=runner, parent=parent)
        self._limits = limits or CompressionLimits()
        self._bounds = (int(quality_bounds[0]), int(quality_bounds[1]))
        self._quality = clamp_quality(quality, *self._bounds)
        self._state._set_quality(self._quality)

    @property
    def state(self) -> CompressState:
        return self._state  # type: ignore[return-value]

    @property
    def quality(self) -> int:
        return self._quality

    @property
    def compression_ratio(self) -> float:
        if self._source is None or self._derived is None:
            return 0.0
        return compression_ratio(self._source.byte_size, self._derived.byte_size)

    @property
    def quality_bounds(self) -> tuple[int, int]:
        return self._bounds

    def set_quality_bounds(self, low: int, high: int) -> None:
        self._bounds = (int(low), int(high))

    def set_quality(self, value: int | float) -> int | None:
        """Update quality (clamped to the session bounds) and run the compressor.

        Raises ValueError for non-finite values.
        """
        self._quality = clamp_quality(value, *self._bounds)
        self.state._set_quality(self._quality)
        return self._schedule()

    def _engine_job(self) -> tuple[Callable[..., EncodedImage], tuple]:
        return compress_image, (self._quality, self._limits)

    def _on_source_changed(self, source: SourceImage | None) -> None:
        self.state._set_ratio(0.0)

    def _on_derived_changed(self, derived: DerivedArtifact) -> None:
        self.state._set_ratio(self.compression_ratio)


class ResizeSession(ToolSession):
    TOOL = "resize"
    DOWNLOAD_PREFIX = "resized_"
    ENCODE_ERROR_MESSAGE = "Failed to resize the image, please try again"

    def __init__(
        self,
        state: ResizeState | None = None,
        *,
        locked: bool = True,
        jpeg_quality: int = RESIZE_JPEG_QUALITY,
        runner: EngineRunner | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(state or ResizeState(), runner=runner, parent=parent)
        self._dims = DimensionSync(locked=locked)
        self._jpeg_quality = int(jpeg_quality)
        self._sync_state()

    @property
    def state(self) -> ResizeState:
        return self._state  # type: ignore[return-value]

    @property
    def dimensions(self) -> DimensionSync:
        return self._dims

    def set_width(self, value: Any) -> int | None:
        try:
            self._dims.edit_width(value)
        except InvalidDimensions as e:
            self._report(e)
            return None
        self._sync_state()
        return self._schedule()

    def set_height(self, value: Any) -> int | None:
        try:
            self._dims.edit_height(value)
        except InvalidDimensions as e:
            self._report(e)
            return None
        self._sync_state()
        return self._schedule()

    def set_aspect_locked(self, locked: bool) -> int | None:
        before = (self._dims.width, self._dims.height)
        self._dims.set_locked(locked)
        self._sync_state()
        if (self._dims.width, self._dims.height) != before:
            return self._schedule()
        return None

    def _sync_state(self) -> None:
        st = self.state
        st._set_target(self._dims.width, self._dims.height)
        st._set_aspect_locked(self._dims.locked)
        st._set_lock_state(self._dims.state.value)

    def _engine_job(self) -> tuple[Callable[..., EncodedImage], tuple]:
        target = self._dims.target()
        return resize_image, (target.width, target.height, self._jpeg_quality)

    def _on_source_changed(self, source: SourceImage | None) -> None:
        self._dims.reset()
        if source is not None:
            self._dims.seed(source.pixel_width, source.pixel_height)
        self._sync_state()

from __future__ import annotations

from PySide6.QtCore import Property, QObject, Signal

from image_toolbox.image_engine.compressor import format_size


class ToolState(QObject):
    """State bound by one tool screen (compress or resize).

    Read-only from QML; the owning session mutates it through the _set_*
    helpers. Handles are exposed as image provider URLs only.
    """

    hasSourceChanged = Signal(bool)
    sourceNameChanged = Signal(str)
    originalUrlChanged = Signal(str)
    derivedUrlChanged = Signal(str)
    originalSizeChanged = Signal(int)
    derivedSizeChanged = Signal(int)
    originalDimsChanged = Signal(int, int)
    derivedDimsChanged = Signal(int, int)
    busyChanged = Signal(bool)
    errorMessageChanged = Signal(str)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._has_source = False
        self._source_name = ""
        self._original_url = ""
        self._derived_url = ""
        self._original_size = 0
        self._derived_size = 0
        self._original_dims = (0, 0)
        self._derived_dims = (0, 0)
        self._busy = False
        self._error_message = ""

    # ---- read-only properties (mutate via session) ----
    def _get_has_source(self) -> bool:
        return bool(self._has_source)

    hasSource = Property(bool, _get_has_source, notify=hasSourceChanged)  # type: ignore[arg-type]

    def _get_source_name(self) -> str:
        return str(self._source_name)

    sourceName = Property(str, _get_source_name, notify=sourceNameChanged)  # type: ignore[arg-type]

    def _get_original_url(self) -> str:
        return str(self._original_url)

    originalUrl = Property(str, _get_original_url, notify=originalUrlChanged)  # type: ignore[arg-type]

    def _get_derived_url(self) -> str:
        return str(self._derived_url)

    derivedUrl = Property(str, _get_derived_url, notify=derivedUrlChanged)  # type: ignore[arg-type]

    def _get_original_size(self) -> int:
        return int(self._original_size)

    originalSize = Property(int, _get_original_size, notify=originalSizeChanged)  # type: ignore[arg-type]

    def _get_derived_size(self) -> int:
        return int(self._derived_size)

    derivedSize = Property(int, _get_derived_size, notify=derivedSizeChanged)  # type: ignore[arg-type]

    def _get_original_size_text(self) -> str:
        return format_size(self._original_size)

    originalSizeText = Property(str, _get_original_size_text, notify=originalSizeChanged)  # type: ignore[arg-type]

    def _get_derived_size_text(self) -> str:
        return format_size(self._derived_size) if self._derived_url else ""

    derivedSizeText = Property(str, _get_derived_size_text, notify=derivedSizeChanged)  # type: ignore[arg-type]

    def _get_original_width(self) -> int:
        return int(self._original_dims[0])

    originalWidth = Property(int, _get_original_width, notify=originalDimsChanged)  # type: ignore[arg-type]

    def _get_original_height(self) -> int:
        return int(self._original_dims[1])

    originalHeight = Property(int, _get_original_height, notify=originalDimsChanged)  # type: ignore[arg-type]

    def _get_derived_width(self) -> int:
        return int(self._derived_dims[0])

    derivedWidth = Property(int, _get_derived_width, notify=derivedDimsChanged)  # type: ignore[arg-type]

    def _get_derived_height(self) -> int:
        return int(self._derived_dims[1])

    derivedHeight = Property(int, _get_derived_height, notify=derivedDimsChanged)  # type: ignore[arg-type]

    def _get_busy(self) -> bool:
        return bool(self._busy)

    busy = Property(bool, _get_busy, notify=busyChanged)  # type: ignore[arg-type]

    def _get_error_message(self) -> str:
        return str(self._error_message)

    errorMessage = Property(str, _get_error_message, notify=errorMessageChanged)  # type: ignore[arg-type]

    # ---- internal mutation helpers (called by session) ----
    def _set_has_source(self, value: bool) -> None:
        v = bool(value)
        if v == self._has_source:
            return
        self._has_source = v
        self.hasSourceChanged.emit(v)

    def _set_source_name(self, name: str) -> None:
        n = str(name)
        if n == self._source_name:
            return
        self._source_name = n
        self.sourceNameChanged.emit(n)

    def _set_original(self, url: str, size: int, width: int, height: int) -> None:
        u = str(url)
        if u != self._original_url:
            self._original_url = u
            self.originalUrlChanged.emit(u)
        if int(size) != self._original_size:
            self._original_size = int(size)
            self.originalSizeChanged.emit(self._original_size)
        dims = (int(width), int(height))
        if dims != self._original_dims:
            self._original_dims = dims
            self.originalDimsChanged.emit(*dims)

    def _set_derived(self, url: str, size: int, width: int, height: int) -> None:
        u = str(url)
        if u != self._derived_url:
            self._derived_url = u
            self.derivedUrlChanged.emit(u)
        if int(size) != self._derived_size:
            self._derived_size = int(size)
            self.derivedSizeChanged.emit(self._derived_size)
        dims = (int(width), int(height))
        if dims != self._derived_dims:
            self._derived_dims = dims
            self.derivedDimsChanged.emit(*dims)

    def _set_busy(self, value: bool) -> None:
        v = bool(value)
        if v == self._busy:
            return
        self._busy = v
        self.busyChanged.emit(v)

    def _set_error_message(self, text: str) -> None:
        t = str(text)
        if t == self._error_message:
            return
        self._error_message = t
        self.errorMessageChanged.emit(t)


class CompressState(ToolState):
    qualityChanged = Signal(int)
    ratioChanged = Signal(float)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._quality = 80
        self._ratio = 0.0

    def _get_quality(self) -> int:
        return int(self._quality)

    quality = Property(int, _get_quality, notify=qualityChanged)  # type: ignore[arg-type]

    def _get_ratio(self) -> float:
        return float(self._ratio)

    ratio = Property(float, _get_ratio, notify=ratioChanged)  # type: ignore[arg-type]

    def _get_ratio_text(self) -> str:
        return f"{self._ratio:.1f}%"

    ratioText = Property(str, _get_ratio_text, notify=ratioChanged)  # type: ignore[arg-type]

    def _set_quality(self, value: int) -> None:
        q = int(value)
        if q == self._quality:
            return
        self._quality = q
        self.qualityChanged.emit(q)

    def _set_ratio(self, value: float) -> None:
        r = float(value)
        if r == self._ratio:
            return
        self._ratio = r
        self.ratioChanged.emit(r)


class ResizeState(ToolState):
    targetWidthChanged = Signal(int)
    targetHeightChanged = Signal(int)
    aspectLockedChanged = Signal(bool)
    lockStateChanged = Signal(str)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        # 0 means unset
        self._target_w = 0
        self._target_h = 0
        self._aspect_locked = True
        self._lock_state = "idle"

    def _get_target_width(self) -> int:
        return int(self._target_w)

    targetWidth = Property(int, _get_target_width, notify=targetWidthChanged)  # type: ignore[arg-type]

    def _get_target_height(self) -> int:
        return int(self._target_h)

    targetHeight = Property(int, _get_target_height, notify=targetHeightChanged)  # type: ignore[arg-type]

    def _get_aspect_locked(self) -> bool:
        return bool(self._aspect_locked)

    aspectLocked = Property(bool, _get_aspect_locked, notify=aspectLockedChanged)  # type: ignore[arg-type]

    def _get_lock_state(self) -> str:
        return str(self._lock_state)

    lockState = Property(str, _get_lock_state, notify=lockStateChanged)  # type: ignore[arg-type]

    def _set_target(self, width: int | None, height: int | None) -> None:
        w = int(width or 0)
        h = int(height or 0)
        if w != self._target_w:
            self._target_w = w
            self.targetWidthChanged.emit(w)
        if h != self._target_h:
            self._target_h = h
            self.targetHeightChanged.emit(h)

    def _set_aspect_locked(self, value: bool) -> None:
        v = bool(value)
        if v == self._aspect_locked:
            return
        self._aspect_locked = v
        self.aspectLockedChanged.emit(v)

    def _set_lock_state(self, value: str) -> None:
        s = str(value)
        if s == self._lock_state:
            return
        self._lock_state = s
        self.lockStateChanged.emit(s)

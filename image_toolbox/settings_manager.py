from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from .image_engine.compressor import MAX_QUALITY, MIN_QUALITY, CompressionLimits
from .logger import get_logger
from .path_utils import abs_dir_str, default_download_dir

_logger = get_logger("settings")

_DIR_KEYS = ("last_open_dir", "download_dir")


class SettingsManager:
    def __init__(self, settings_path: str):
        self.settings_path = settings_path
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "default_quality": 80,
        "min_quality": 10,
        "max_quality": 100,
        "max_edge": 1920,
        "max_size_mb": 1.0,
        "max_iterations": 10,
        "resize_jpeg_quality": 92,
        "aspect_locked": True,
        "download_dir": None,
        "last_open_dir": None,
    }

    def load(self) -> None:
        try:
            if os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        self._settings = data
                        _logger.debug("settings loaded: %s", self.settings_path)
                        return
        except (OSError, ValueError) as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def save(self) -> None:
        try:
            parent = os.path.dirname(self.settings_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings, f, ensure_ascii=False, indent=2)
            _logger.debug("settings saved: %s", self.settings_path)
        except OSError as e:
            _logger.error("settings save failed: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._settings

    def set(self, key: str, value: Any) -> None:
        if key in _DIR_KEYS and value:
            value = abs_dir_str(value)
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings

    # ---- typed accessors ----
    def _get_int(self, key: str) -> int:
        try:
            return int(self.get(key))
        except (TypeError, ValueError):
            _logger.warning("invalid %s in settings: %r", key, self.get(key))
            return int(self.DEFAULTS[key])

    def _get_float(self, key: str) -> float:
        try:
            return float(self.get(key))
        except (TypeError, ValueError):
            _logger.warning("invalid %s in settings: %r", key, self.get(key))
            return float(self.DEFAULTS[key])

    @property
    def quality_bounds(self) -> tuple[int, int]:
        lo = max(MIN_QUALITY, min(MAX_QUALITY, self._get_int("min_quality")))
        hi = max(lo, min(MAX_QUALITY, self._get_int("max_quality")))
        return lo, hi

    @property
    def default_quality(self) -> int:
        lo, hi = self.quality_bounds
        return max(lo, min(hi, self._get_int("default_quality")))

    @property
    def compression_limits(self) -> CompressionLimits:
        return CompressionLimits(
            max_edge=self._get_int("max_edge"),
            max_size_mb=self._get_float("max_size_mb"),
            max_iterations=self._get_int("max_iterations"),
        )

    @property
    def resize_jpeg_quality(self) -> int:
        return self._get_int("resize_jpeg_quality")

    @property
    def aspect_locked(self) -> bool:
        return bool(self.get("aspect_locked", True))

    @property
    def last_open_dir(self) -> str | None:
        val = self.get("last_open_dir")
        return val if isinstance(val, str) and os.path.isdir(val) else None

    @property
    def download_dir(self) -> str:
        val = self.get("download_dir")
        if isinstance(val, str) and os.path.isdir(val):
            return val
        return str(default_download_dir())

    def remember_open_path(self, path: str | Path) -> None:
        self.set("last_open_dir", str(path))

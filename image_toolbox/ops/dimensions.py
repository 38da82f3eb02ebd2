from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from image_toolbox.errors import InvalidDimensions
from image_toolbox.image_engine.resizer import parse_dimension


class LockState(Enum):
    IDLE = "idle"  # no source
    UNLOCKED = "unlocked"  # independent fields
    LOCKED = "locked"  # the other field follows every edit


@dataclass(frozen=True, slots=True)
class Dimensions:
    width: int
    height: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class DimensionSync:
    """Target width/height fields kept consistent under aspect lock.

    The last-edited field is authoritative: in LOCKED, editing width sets
    height = round(width / ratio) and editing height sets
    width = round(height * ratio). Invalid edits raise InvalidDimensions and
    leave both fields unchanged.
    """

    def __init__(self, locked: bool = True) -> None:
        self._want_locked = bool(locked)
        self._state = LockState.IDLE
        self._ratio: float | None = None
        self._width: int | None = None
        self._height: int | None = None

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def locked(self) -> bool:
        return self._want_locked

    @property
    def aspect_ratio(self) -> float | None:
        return self._ratio

    @property
    def width(self) -> int | None:
        return self._width

    @property
    def height(self) -> int | None:
        return self._height

    # ---- transitions ---------------------------------------------------
    def seed(self, width: int, height: int) -> None:
        """Idle -> Unlocked|Locked for a freshly ingested source."""
        w = parse_dimension(width)
        h = parse_dimension(height)
        self._ratio = w / h
        self._width, self._height = w, h
        self._state = LockState.LOCKED if self._want_locked else LockState.UNLOCKED

    def reset(self) -> None:
        self._state = LockState.IDLE
        self._ratio = None
        self._width = None
        self._height = None

    def set_locked(self, locked: bool) -> None:
        self._want_locked = bool(locked)
        if self._state is LockState.IDLE:
            return
        if not self._want_locked:
            self._state = LockState.UNLOCKED
            return
        self._state = LockState.LOCKED
        if self._width is not None and self._ratio:
            self._height = max(1, round_half_up(self._width / self._ratio))

    # ---- field edits -------------------------------------------------------
    def edit_width(self, value: Any) -> None:
        w = parse_dimension(value)
        self._width = w
        if self._state is LockState.LOCKED and self._ratio:
            self._height = max(1, round_half_up(w / self._ratio))

    def edit_height(self, value: Any) -> None:
        h = parse_dimension(value)
        self._height = h
        if self._state is LockState.LOCKED and self._ratio:
            self._width = max(1, round_half_up(h * self._ratio))

    def target(self) -> Dimensions:
        if self._width is None or self._height is None:
            raise InvalidDimensions("width and height must both be set")
        return Dimensions(self._width, self._height)

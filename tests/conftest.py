"""Pytest configuration.

Sessions, state objects and the image provider are QObjects; the provider
also needs QImage. We create a single offscreen `QGuiApplication` for the
whole session as early as possible and shut it down at the end.

Engine runs are exercised through `DeferredPool`, a stand-in executor that
queues jobs until the test resolves them, so completion order is explicit.
"""

from __future__ import annotations

import os
from concurrent.futures import Future
from typing import Any

import pytest

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    """Ensure a QGuiApplication exists before collecting/running tests."""

    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    # Import lazily so non-Qt environments can still import this conftest.
    try:
        from PySide6.QtGui import QGuiApplication
    except ImportError:
        return

    global _APP

    app = QGuiApplication.instance()
    # Keep a strong ref so it isn't GC'd mid-session.
    _APP = app if app is not None else QGuiApplication([])


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    try:
        from PySide6.QtGui import QGuiApplication
    except ImportError:
        return

    app = QGuiApplication.instance()
    if app is None:
        return
    app.quit()
    app.processEvents()


class DeferredPool:
    """Executor stand-in: submit() queues work, run()/run_all() resolve it in the caller's thread."""

    def __init__(self) -> None:
        self.jobs: list[tuple[Any, tuple, Future]] = []
        self.shut_down = False

    def submit(self, fn, /, *args):  # noqa: ANN001
        fut: Future = Future()
        self.jobs.append((fn, args, fut))
        return fut

    @property
    def pending(self) -> int:
        return sum(1 for _, _, f in self.jobs if not f.done())

    def run(self, index: int) -> None:
        fn, args, fut = self.jobs[index]
        if fut.done():
            return
        try:
            fut.set_result(fn(*args))
        except Exception as e:
            fut.set_exception(e)

    def run_all(self) -> None:
        for i in range(len(self.jobs)):
            self.run(i)

    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        self.shut_down = True


@pytest.fixture
def deferred_pool() -> DeferredPool:
    return DeferredPool()


@pytest.fixture
def make_runner(deferred_pool: DeferredPool):
    """Build an EngineRunner whose every role runs on the shared deferred pool."""
    from image_toolbox.image_engine.runner import EngineRunner

    def _make() -> EngineRunner:
        return EngineRunner(executor_factory=lambda role: deferred_pool)

    return _make


@pytest.fixture
def image_bytes():
    """Factory: encoded test image of the given size/format, built with pyvips.

    `noise=True` produces a hard-to-compress image (large at high quality).
    """
    pyvips = pytest.importorskip("pyvips")

    def _make(width: int, height: int, fmt: str = "jpeg", *, noise: bool = False, quality: int = 95) -> bytes:
        if noise:
            bands = [pyvips.Image.gaussnoise(width, height, sigma=60, mean=128) for _ in range(3)]
            img = bands[0].bandjoin(bands[1:]).cast("uchar")
        else:
            img = pyvips.Image.xyz(width, height)
            x = img.extract_band(0) * (255.0 / max(1, width))
            y = img.extract_band(1) * (255.0 / max(1, height))
            img = x.bandjoin([y, (x + y) / 2]).cast("uchar")
        img = img.copy(interpretation="srgb")
        if fmt == "png":
            return bytes(img.write_to_buffer(".png"))
        return bytes(img.write_to_buffer(".jpg", Q=quality))

    return _make

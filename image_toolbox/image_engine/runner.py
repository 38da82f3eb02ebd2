"""Engine runner with per-role request sequencing.

Every request gets a monotonically increasing id and becomes the latest id
for its role. Work runs on a single-worker pool per role, so at most one
engine run per role is in flight; queued requests that were superseded
before they started are skipped without running the engine. A finished
result is emitted only if its id is still the latest for its role.

The job callable must return a plain Python value; it never touches
artifact handles.
"""

from __future__ import annotations

import contextlib
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any

from PySide6.QtCore import QObject, Signal

from image_toolbox.image_engine.metrics import metrics
from image_toolbox.logger import get_logger

_logger = get_logger("runner")

_SKIPPED = object()


class EngineRunner(QObject):
    finished = Signal(str, int, object, object)  # role, req_id, result, error

    def __init__(
        self,
        executor_factory: Callable[[str], Executor] | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._executor_factory = executor_factory or self._default_executor
        self._pools: dict[str, Executor] = {}
        self._next_id = 1
        self._latest_id: dict[str, int] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _default_executor(role: str) -> Executor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"engine-{role}")

    def _pool(self, role: str) -> Executor:
        pool = self._pools.get(role)
        if pool is None:
            pool = self._executor_factory(role)
            self._pools[role] = pool
        return pool

    # ---- sequencing ----------------------------------------------------
    def is_latest(self, role: str, req_id: int) -> bool:
        with self._lock:
            return self._latest_id.get(role) == req_id

    def invalidate(self, role: str) -> None:
        """Make every pending or in-flight request for `role` stale."""
        with self._lock:
            self._latest_id[role] = self._next_id
            self._next_id += 1
        _logger.debug("invalidate: role=%s", role)

    # ---- submission ----------------------------------------------------
    def request(self, role: str, fn: Callable[..., Any], *args: Any) -> int:
        with self._lock:
            req_id = self._next_id
            self._next_id += 1
            self._latest_id[role] = req_id
        _logger.debug("request: role=%s id=%s", role, req_id)
        metrics.inc("runner.requested")
        try:
            future = self._pool(role).submit(self._run, role, req_id, fn, args)
        except Exception as e:
            _logger.exception("submit failed: role=%s id=%s", role, req_id)
            self.finished.emit(role, req_id, None, e)
            return req_id
        future.add_done_callback(lambda f: self._on_done(role, req_id, f))
        return req_id

    def _run(self, role: str, req_id: int, fn: Callable[..., Any], args: tuple) -> Any:
        if not self.is_latest(role, req_id):
            return _SKIPPED
        return fn(*args)

    def _on_done(self, role: str, req_id: int, future: Future) -> None:
        error: BaseException | None = None
        result: Any = None
        try:
            result = future.result()
        except Exception as e:
            error = e
        if result is _SKIPPED:
            metrics.inc("runner.skipped")
            _logger.debug("skipped before start: role=%s id=%s", role, req_id)
            return
        if not self.is_latest(role, req_id):
            metrics.inc("runner.stale_dropped")
            _logger.debug("finished stale: role=%s id=%s (dropped)", role, req_id)
            return
        _logger.debug("finished: role=%s id=%s err=%s", role, req_id, error)
        self.finished.emit(role, req_id, result, error)

    def shutdown(self) -> None:
        with self._lock:
            for role in list(self._latest_id):
                self._latest_id[role] = self._next_id
                self._next_id += 1
        for pool in self._pools.values():
            with contextlib.suppress(Exception):
                pool.shutdown(wait=False, cancel_futures=True)
        self._pools.clear()

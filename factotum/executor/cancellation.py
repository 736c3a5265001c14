"""Cancellation scopes and the process-wide run id -> scope registry.

A scope is a one-shot signal shared by every step of a run. Scopes can be
linked to a parent (cancelling the parent cancels the child) and can carry a
deadline after which they cancel themselves. Executors observe a scope either
by polling ``cancelled`` / ``wait()`` at their blocking boundaries or by
running the blocking call through ``call()``.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from factotum.utils.exceptions import ExecutionCancelledError

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Execution was cancelled"


class CancellationScope:
    def __init__(
        self,
        parent: "CancellationScope | None" = None,
        timeout: float | None = None,
        timeout_reason: str | None = None,
    ) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._parent = parent
        self._timer: threading.Timer | None = None
        self.reason: str | None = None

        if parent is not None:
            parent.add_callback(self._cancel_from_parent)
        if timeout is not None and timeout > 0:
            reason = timeout_reason or f"Timed out after {timeout} seconds"
            self._timer = threading.Timer(timeout, self.cancel, kwargs={"reason": reason})
            self._timer.daemon = True
            self._timer.start()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = DEFAULT_REASON) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def _cancel_from_parent(self) -> None:
        self.cancel(self._parent.reason if self._parent else DEFAULT_REASON)

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Register ``callback`` to run on cancellation (immediately if already cancelled)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses. Returns ``cancelled``."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExecutionCancelledError(self.reason or DEFAULT_REASON)

    def call(
        self,
        fn: Callable[..., Any],
        *args: Any,
        poll_interval: float = 0.05,
        on_abandon: Callable[[Any], None] | None = None,
        **kwargs: Any,
    ) -> Any:
        """Run a blocking ``fn`` in a worker thread, returning early on cancellation.

        When the scope is cancelled first the call is abandoned: the worker is
        left to finish on its own, ``on_abandon`` receives its eventual result,
        and ``ExecutionCancelledError`` is raised here.
        """
        self.raise_if_cancelled()
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="factotum-call")
        future = pool.submit(fn, *args, **kwargs)
        try:
            while True:
                try:
                    return future.result(timeout=poll_interval)
                except FutureTimeoutError:
                    if self._event.is_set():
                        break
            if on_abandon is not None:
                future.add_done_callback(lambda f: _abandon(f, on_abandon))
            raise ExecutionCancelledError(self.reason or DEFAULT_REASON)
        finally:
            pool.shutdown(wait=False)

    def close(self) -> None:
        """Stop the deadline timer and detach from the parent scope."""
        if self._timer is not None:
            self._timer.cancel()
        if self._parent is not None:
            self._parent.remove_callback(self._cancel_from_parent)

    def __enter__(self) -> "CancellationScope":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _abandon(future, on_abandon: Callable[[Any], None]) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    try:
        on_abandon(future.result())
    except Exception:
        logger.exception("Cleanup of abandoned call failed")


class CancellationRegistry:
    def __init__(self) -> None:
        self._scopes: dict[str, CancellationScope] = {}
        self._lock = threading.Lock()

    def register(self, run_id: str, scope: CancellationScope) -> None:
        with self._lock:
            self._scopes[run_id] = scope

    def get(self, run_id: str) -> CancellationScope | None:
        with self._lock:
            return self._scopes.get(run_id)

    def remove(self, run_id: str) -> CancellationScope | None:
        with self._lock:
            return self._scopes.pop(run_id, None)

    def cancel(self, run_id: str, reason: str = DEFAULT_REASON) -> bool:
        scope = self.get(run_id)
        if scope is None:
            return False
        scope.cancel(reason)
        return True

    def __contains__(self, run_id: object) -> bool:
        with self._lock:
            return run_id in self._scopes

    def __len__(self) -> int:
        with self._lock:
            return len(self._scopes)


default_registry = CancellationRegistry()

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """
    Run at most one call at a time; callers arriving while it runs share its outcome.

    The first caller (the leader) executes `fn`. Everyone who calls `do` before the
    leader finishes receives the same return value or the same exception. A call
    made after completion starts a new flight.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._inflight: Future | None = None

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._inflight is not None

    def do(self, fn: Callable[[], T]) -> T:
        with self._lock:
            future = self._inflight
            leader = future is None
            if leader:
                future = self._inflight = Future()
        if not leader:
            return future.result()

        try:
            result = fn()
        except BaseException as exc:
            self._finish()
            future.set_exception(exc)
            raise
        self._finish()
        future.set_result(result)
        return result

    def _finish(self) -> None:
        with self._lock:
            self._inflight = None

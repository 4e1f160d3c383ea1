from __future__ import annotations

import threading
from typing import Callable


class JobCancelled(Exception):
    """Raised inside a pipeline once its token has been cancelled.

    Not a :class:`~transferjob.errors.TransferError`: a cancelled run ends in
    ``Idle`` and is never reported as a failure.
    """


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelled()

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, returning early and raising once cancelled."""
        if self._event.wait(seconds):
            raise JobCancelled()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` when cancelled; immediately if that already happened."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def discard_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

"""Run-wide cancellation token and operator signal relay."""

from __future__ import annotations

import logging
import signal
import subprocess
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cancellation shared by every task of one run.

    Set at most once. Callbacks registered before cancellation run on the
    cancelling thread; callbacks registered afterwards run immediately.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_handle = 0
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        logger.info("Cancellation requested: %s", reason)
        for callback in callbacks:
            _run_callback(callback)

    def add_callback(self, callback: Callable[[], None]) -> int:
        """Register a callback; returns a handle for `remove_callback`."""

        with self._lock:
            if not self._event.is_set():
                handle = self._next_handle
                self._next_handle += 1
                self._callbacks[handle] = callback
                return handle
        _run_callback(callback)
        return -1

    def remove_callback(self, handle: int) -> None:
        with self._lock:
            self._callbacks.pop(handle, None)

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


def _run_callback(callback: Callable[[], None]) -> None:
    try:
        callback()
    except OSError as error:  # pragma: no cover - best effort
        logger.debug("Cancellation callback failed: %s", error)


def request_terminate(process: subprocess.Popen[bytes]) -> None:
    """Send a graceful terminate to a live child without waiting for it."""

    if process.poll() is not None:
        return
    logger.warning("Terminating child process pid=%s", process.pid)
    try:
        process.terminate()
    except OSError:
        return


def terminate_process(process: subprocess.Popen[bytes], *, grace_seconds: float = 2.0) -> None:
    """Terminate a child, escalating to kill when it ignores the request."""

    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=grace_seconds)


@contextmanager
def install_signal_handlers(token: CancellationToken) -> Iterator[None]:
    """Route SIGINT/SIGTERM (and SIGHUP) to `token` for the duration of the block."""

    names = ["SIGINT", "SIGTERM", "SIGHUP"]
    signums = [getattr(signal, name) for name in names if hasattr(signal, name)]
    if not signums:
        yield
        return

    originals = {signum: signal.getsignal(signum) for signum in signums}

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        token.cancel(name)

    installed: list[int] = []
    try:
        for signum in signums:
            signal.signal(signum, _handler)
            installed.append(signum)
    except ValueError:
        # Signal handlers can only be installed in main thread.
        pass
    try:
        yield
    finally:
        for signum in installed:
            try:
                signal.signal(signum, originals[signum])
            except ValueError:
                pass

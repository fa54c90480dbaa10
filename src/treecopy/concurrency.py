from __future__ import annotations

import itertools
import threading
from typing import Any, Callable

from treecopy.errors import CopyCancelledError


class CancelContext:
    def __init__(self, parent: CancelContext | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._children: set[CancelContext] = set()
        self._ids = itertools.count()
        self._parent = parent
        if parent is not None:
            parent._adopt(self)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def child(self) -> CancelContext:
        return CancelContext(parent=self)

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            children = list(self._children)
            self._callbacks.clear()
            self._children.clear()

        # Callbacks run outside the lock so they may take their own locks.
        for callback in callbacks:
            callback()
        for child in children:
            child.cancel()
        if self._parent is not None:
            self._parent._discard(self)

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            if not self._event.is_set():
                key = next(self._ids)
                self._callbacks[key] = callback
                return lambda: self._forget(key)
        callback()
        return lambda: None

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CopyCancelledError("Copy cancelled after a sibling task failed")

    def _forget(self, key: int) -> None:
        with self._lock:
            self._callbacks.pop(key, None)

    def _adopt(self, child: CancelContext) -> None:
        with self._lock:
            cancelled = self._event.is_set()
            if not cancelled:
                self._children.add(child)
        if cancelled:
            child.cancel()

    def _discard(self, child: CancelContext) -> None:
        with self._lock:
            self._children.discard(child)


class Slot:
    def __init__(self, limiter: AdmissionLimiter) -> None:
        self._limiter = limiter
        self._lock = threading.Lock()
        self._released = False

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        self._limiter._release()


class AdmissionLimiter:
    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"Limiter capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._available = capacity
        self._condition = threading.Condition()

    @property
    def in_use(self) -> int:
        with self._condition:
            return self.capacity - self._available

    def acquire(self, context: CancelContext) -> Slot:
        with self._condition:
            unregister = context.on_cancel(self._wake_all)
            try:
                while True:
                    context.raise_if_cancelled()
                    if self._available > 0:
                        self._available -= 1
                        return Slot(self)
                    self._condition.wait()
            finally:
                unregister()

    def _release(self) -> None:
        with self._condition:
            self._available += 1
            self._condition.notify()

    def _wake_all(self) -> None:
        with self._condition:
            self._condition.notify_all()


class TaskGroup:
    """Threads spawned for one directory; leaving the ``with`` block waits for all of them.

    The first failure cancels the group's context and is re-raised on exit.
    """

    def __init__(self, parent: CancelContext) -> None:
        self.context = parent.child()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._error: BaseException | None = None

    def __enter__(self) -> TaskGroup:
        return self

    def __exit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> bool:
        if exc is not None:
            self._record(exc)
        for thread in self._threads:
            thread.join()
        self.context.cancel()
        if self._error is not None and self._error is not exc:
            raise self._error
        return False

    def spawn(self, fn: Callable[..., Any], *args: Any) -> None:
        thread = threading.Thread(target=self._run, args=(fn, args), daemon=True)
        self._threads.append(thread)
        thread.start()

    def _run(self, fn: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            fn(*args)
        except BaseException as exc:
            self._record(exc)

    def _record(self, exc: BaseException) -> None:
        with self._lock:
            if self._error is None:
                self._error = exc
        self.context.cancel()

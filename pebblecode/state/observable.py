"""Observable values with replay-of-latest semantics."""

from __future__ import annotations

import asyncio
import threading
from typing import AsyncIterator, Callable, Generic, TypeVar

from ..core.logger import get_logger


T = TypeVar("T")
Observer = Callable[[T], None]

logger = get_logger("session")


class StateValue(Generic[T]):
    """Holds the latest value and pushes every change to its observers.

    New observers receive the current value immediately, then each distinct
    value set afterwards. Values are expected to be immutable so reads from
    any thread are safe without locking.
    """

    def __init__(self, initial: T, *, name: str = "") -> None:
        self.name = name
        self._value = initial
        self._observers: tuple[Observer[T], ...] = ()
        self._lock = threading.Lock()

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, observer: Observer[T]) -> Callable[[], None]:
        """Register ``observer``; returns a callable that unsubscribes it."""
        with self._lock:
            self._observers = self._observers + (observer,)
            current = self._value
        self._notify(observer, current)

        def unsubscribe() -> None:
            with self._lock:
                self._observers = tuple(o for o in self._observers if o is not observer)

        return unsubscribe

    def set(self, value: T) -> bool:
        """Publish ``value``; returns False when it equals the current one."""
        with self._lock:
            if value == self._value:
                return False
            self._value = value
            observers = self._observers
        for observer in observers:
            self._notify(observer, value)
        return True

    async def watch(self) -> AsyncIterator[T]:
        """Iterate over the current value and every later change."""
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[T] = asyncio.Queue()

        def push(value: T) -> None:
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                queue.put_nowait(value)
            else:
                loop.call_soon_threadsafe(queue.put_nowait, value)

        unsubscribe = self.subscribe(push)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()

    def _notify(self, observer: Observer[T], value: T) -> None:
        try:
            observer(value)
        except Exception:
            logger.exception("Observer of %s failed", self.name or "state")

"""Thread-safe observable progress counters.

Counters are mutated from request-completion code of the API handler
and read by whatever presents progress (a CLI spinner, a GUI). Each
counter serializes its own updates; listeners are called with the new
value after every change, outside the lock.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

Listener = Callable[[int], None]


class ObservableCounter:
    """Integer guarded by its own lock, with change listeners."""

    def __init__(self, name: str, value: int = 0) -> None:
        self.name = name
        self._value = value
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

    def __repr__(self) -> str:
        return f"ObservableCounter({self.name!r}, {self._value})"

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.remove(listener)

    def increment(self, amount: int = 1) -> int:
        return self._update(lambda value: value + amount)

    def decrement(self, amount: int = 1) -> int:
        return self._update(lambda value: value - amount)

    def set(self, value: int) -> int:
        return self._update(lambda _: value)

    def _update(self, change: Callable[[int], int]) -> int:
        with self._lock:
            self._value = change(self._value)
            new_value = self._value
            listeners = list(self._listeners)
        for listener in listeners:
            listener(new_value)
        return new_value


class ObservableFlag:
    """Boolean counterpart of ObservableCounter."""

    def __init__(self, name: str) -> None:
        self._counter = ObservableCounter(name)

    @property
    def value(self) -> bool:
        return self._counter.value > 0

    def add_listener(self, listener: Callable[[bool], None]) -> None:
        self._counter.add_listener(lambda value: listener(value > 0))

    def set(self, value: bool) -> None:
        self._counter.set(1 if value else 0)

from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

_UNSET = object()


class ResolvedOnce(Generic[T]):
    """
    Write-once, read-many cell.

    The first `get()` runs `compute` under a lock and publishes the result;
    later calls return the published value without taking the lock. Concurrent
    first callers all observe the single computed value.
    """

    __slots__ = ("_compute", "_lock", "_value")

    def __init__(self, compute: Callable[[], T]) -> None:
        self._compute = compute
        self._lock = threading.Lock()
        self._value: object = _UNSET

    @property
    def is_resolved(self) -> bool:
        return self._value is not _UNSET

    def get(self) -> T:
        value = self._value
        if value is _UNSET:
            with self._lock:
                value = self._value
                if value is _UNSET:
                    value = self._compute()
                    self._value = value
        return value  # type: ignore[return-value]

    def _reset_for_tests(self) -> None:
        with self._lock:
            self._value = _UNSET

"""Bounded polling.

Waiting for the store to catch up (a rule to appear, a resource to vanish)
is expressed as ``retry(interval, max_attempts, predicate)`` instead of
open-coded sleep loops. ``sleep`` is injectable so tests never wait.
"""

from __future__ import annotations

import time
from typing import Callable, Type, TypeVar

from route_monitor.errors import NotFoundError, RouteMonitorError
from route_monitor.store import ResourceStore
from route_monitor.types import NamespacedName, Resource

T = TypeVar("T", bound=Resource)


class RetryExhaustedError(RouteMonitorError):
    def __init__(self, attempts: int, what: str = "condition") -> None:
        self.attempts = attempts
        super().__init__(f"{what} not met after {attempts} attempts")


def retry(
    interval: float,
    max_attempts: int,
    predicate: Callable[[], bool],
    sleep: Callable[[float], None] = time.sleep,
    what: str = "condition",
) -> int:
    """Call *predicate* until it returns True, at most *max_attempts* times.

    Sleeps *interval* seconds between attempts (not after the last one).
    Returns the number of attempts used; raises ``RetryExhaustedError``
    when the predicate never held.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    if interval < 0:
        raise ValueError("interval must not be negative")

    for attempt in range(1, max_attempts + 1):
        if predicate():
            return attempt
        if attempt < max_attempts:
            sleep(interval)
    raise RetryExhaustedError(max_attempts, what)


def wait_for_resource(
    store: ResourceStore,
    cls: Type[T],
    ref: NamespacedName,
    interval: float = 1.0,
    max_attempts: int = 20,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Poll until *ref* exists and return it."""
    found: list[T] = []

    def _exists() -> bool:
        try:
            found.append(store.get(cls, ref))
        except NotFoundError:
            return False
        return True

    retry(interval, max_attempts, _exists, sleep=sleep, what=f"{cls.kind} {ref} to appear")
    return found[-1]


def wait_for_absence(
    store: ResourceStore,
    cls: Type[Resource],
    ref: NamespacedName,
    interval: float = 1.0,
    max_attempts: int = 20,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Poll until *ref* is gone."""

    def _gone() -> bool:
        try:
            store.get(cls, ref)
        except NotFoundError:
            return True
        return False

    retry(interval, max_attempts, _gone, sleep=sleep, what=f"{cls.kind} {ref} to vanish")

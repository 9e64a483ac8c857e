"""Bounded-time polling shared by every suspension point of a run.

Listing waits, detail-view waits, restoration waits and the inter-record
yield all go through :func:`wait_for`. The clock and the sleep function are
injectable: live runs sleep through ``page.wait_for_timeout`` so the browser
keeps processing events, tests advance a fake clock.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")

Sleeper = Callable[[float], None]
Clock = Callable[[], float]


@dataclass
class PollResult(Generic[T]):
    """Outcome of a bounded poll."""

    ok: bool
    value: Optional[T]
    elapsed: float
    attempts: int

    def __bool__(self) -> bool:
        return self.ok


def wait_for(
    probe: Callable[[], Optional[T]],
    *,
    timeout: float,
    interval: float,
    sleep: Sleeper = time.sleep,
    clock: Clock = time.monotonic,
) -> PollResult[T]:
    """Call ``probe`` every ``interval`` seconds until it returns a truthy value.

    The probe is always attempted at least once, even with a zero timeout. The
    last attempt happens no later than the deadline; a probe that is still
    falsy then yields ``PollResult(ok=False)``.
    """

    started = clock()
    deadline = started + max(0.0, timeout)
    attempts = 0
    while True:
        attempts += 1
        value = probe()
        if value:
            return PollResult(True, value, clock() - started, attempts)
        remaining = deadline - clock()
        if remaining <= 0:
            return PollResult(False, None, clock() - started, attempts)
        sleep(min(interval, remaining))


__all__ = ["PollResult", "wait_for", "Sleeper", "Clock"]

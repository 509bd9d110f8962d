"""Bounded polling with a fixed attempt count and spacing."""

import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class BoundedRetry:
    """
    Poll a condition a fixed number of times.

    The total wait never exceeds ``ceiling`` seconds: the interval is slept
    between attempts, not after the last one.
    """

    attempts: int
    interval: float
    sleep: Optional[Callable[[float], None]] = None
    clock: Optional[Callable[[], float]] = None

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")

    @property
    def ceiling(self) -> float:
        """Upper bound on time spent sleeping, in seconds."""
        return self.attempts * self.interval

    def run(self, condition: Callable[[], bool], on_retry: Optional[Callable[[int], None]] = None) -> bool:
        """
        Call ``condition`` until it returns True or attempts run out.

        Args:
            condition: Zero-argument predicate
            on_retry: Called with the attempt number after each failed attempt
                      that will be retried

        Returns:
            True if the condition held on some attempt
        """
        for attempt in range(1, self.attempts + 1):
            if condition():
                return True
            if attempt < self.attempts:
                if on_retry:
                    on_retry(attempt)
                (self.sleep or time.sleep)(self.interval)
        return False

    def run_within(
        self,
        condition: Callable[[float], bool],
        on_retry: Optional[Callable[[int], None]] = None,
    ) -> bool:
        """
        Like run(), but the whole loop including the attempts themselves
        finishes within ``ceiling`` seconds.

        ``condition`` receives the seconds left in the budget and must not
        take longer than that. Sleeps are shortened to what is left, and no
        attempt after the first starts once the budget is spent.

        Returns:
            True if the condition held on some attempt
        """
        clock = self.clock or time.monotonic
        deadline = clock() + self.ceiling
        for attempt in range(1, self.attempts + 1):
            remaining = max(deadline - clock(), 0.0)
            if remaining <= 0 and attempt > 1:
                break
            if condition(remaining):
                return True
            remaining = deadline - clock()
            if attempt < self.attempts and remaining > 0:
                if on_retry:
                    on_retry(attempt)
                (self.sleep or time.sleep)(min(self.interval, remaining))
        return False

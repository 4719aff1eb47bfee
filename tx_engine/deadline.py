"""Bounded time budget passed through every network boundary call."""

from typing import Callable, Optional
import time

from .errors import TimedOut


class Deadline:
    """Cancellation token with a fixed time budget.

    Every ledger and routing call receives the same deadline for one attempt,
    so the whole attempt is abandoned once the budget is spent.
    """

    def __init__(
        self,
        seconds: float,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if seconds <= 0:
            raise ValueError("Deadline must be positive.")
        self._clock = clock or time.monotonic
        self._seconds = seconds
        self._expires_at = self._clock() + seconds
        self._cancelled = False

    @property
    def seconds(self) -> float:
        return self._seconds

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def remaining(self) -> float:
        if self._cancelled:
            return 0.0
        return max(self._expires_at - self._clock(), 0.0)

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self, stage: str) -> float:
        """Return the remaining budget or raise ``TimedOut`` for ``stage``."""

        if self._cancelled:
            raise TimedOut(f"Attempt cancelled before {stage}.", operation=stage)
        remaining = self.remaining()
        if remaining <= 0.0:
            raise TimedOut(
                f"Deadline of {self._seconds:g}s exceeded before {stage}.",
                operation=stage,
            )
        return remaining

    def sleep(self, seconds: float, stage: str) -> None:
        """Sleep for ``seconds`` but never past the deadline."""

        remaining = self.check(stage)
        if seconds >= remaining:
            raise TimedOut(
                f"Backoff of {seconds:g}s would exceed the deadline during {stage}.",
                operation=stage,
            )
        time.sleep(seconds)

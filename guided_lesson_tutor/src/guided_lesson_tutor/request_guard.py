"""
Request Guard

Generation counter used to detect and discard stale asynchronous results
after a module switch or reset. There is no task cancellation: every
continuation captures a token before its first suspension point and checks
it after each resumption.
"""

import asyncio
from dataclasses import dataclass


class StaleGenerationError(Exception):
    """Raised when a continuation resumes after its generation was superseded."""

    def __init__(self, captured: int, current: int):
        super().__init__(f"generation {captured} superseded by {current}")
        self.captured = captured
        self.current = current


class RequestGuard:
    """Monotonically increasing generation counter."""

    def __init__(self):
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def bump(self) -> int:
        """Invalidate every token captured so far."""
        self._generation += 1
        return self._generation

    def capture(self) -> "RequestToken":
        """Capture the live generation before the first suspension point."""
        return RequestToken(guard=self, generation=self._generation)


@dataclass(frozen=True)
class RequestToken:
    """A captured generation, compared against the live counter on resume."""
    guard: RequestGuard
    generation: int

    def is_current(self) -> bool:
        return self.generation == self.guard.generation

    def ensure_current(self) -> None:
        if not self.is_current():
            raise StaleGenerationError(self.generation, self.guard.generation)

    async def sleep(self, seconds: float) -> None:
        """Pacing delay that re-validates the generation on resume."""
        await asyncio.sleep(seconds)
        self.ensure_current()

"""Composition of the retry and circuit breaker policies around one call."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

from resilient_rest.circuit_breaker import BreakerRegistry
from resilient_rest.retry import RetryScheduler

T = TypeVar("T")


class ResilientInvoker:
    """Run operations as ``retry(breaker(operation))``.

    Each retry iteration passes through the breaker guarding the target
    service, so an iteration either reaches the network once or is
    short-circuited by an open circuit. This is the only place the two
    policies are combined.
    """

    def __init__(
        self,
        *,
        scheduler: RetryScheduler | None = None,
        breakers: BreakerRegistry | None = None,
    ) -> None:
        self.scheduler = RetryScheduler() if scheduler is None else scheduler
        self.breakers = BreakerRegistry() if breakers is None else breakers

    async def execute(
        self,
        service_id: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute ``operation`` for ``service_id`` under retry and breaker."""
        breaker = self.breakers.get(service_id)

        async def _guarded() -> T:
            return await breaker.call(operation)

        return await self.scheduler.execute(_guarded)

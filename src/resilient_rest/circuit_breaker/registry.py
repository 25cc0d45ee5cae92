"""Per-key circuit breaker registry."""

import threading
from collections.abc import Sequence
from typing import Literal

from resilient_rest.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from resilient_rest.circuit_breaker.listeners import BreakerListener
from resilient_rest.circuit_breaker.state import BreakerSnapshot
from resilient_rest.circuit_breaker.storage import (
    AbstractBreakerStorage,
    InMemoryBreakerStorage,
)

BreakerScope = Literal["service", "shared"]
SHARED_BREAKER_NAME = "shared"


class BreakerRegistry:
    """Hand out one ``CircuitBreaker`` per logical service id.

    With ``scope="service"`` each service id gets its own breaker, so a
    failing service cannot open the circuit for a healthy one. With
    ``scope="shared"`` every key maps to one client-wide breaker.
    All breakers share one storage backend keyed by breaker name.
    """

    def __init__(
        self,
        *,
        config: CircuitBreakerConfig | None = None,
        storage: AbstractBreakerStorage | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        scope: BreakerScope = "service",
    ) -> None:
        if scope not in ("service", "shared"):
            raise ValueError("scope must be 'service' or 'shared'")
        self.config = CircuitBreakerConfig() if config is None else config
        self.scope = scope
        self._storage = InMemoryBreakerStorage() if storage is None else storage
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def _breaker_name(self, key: str) -> str:
        return SHARED_BREAKER_NAME if self.scope == "shared" else key

    def get(self, key: str) -> CircuitBreaker:
        """Return (or create) the breaker guarding calls to ``key``."""
        name = self._breaker_name(key)
        breaker = self._breakers.get(name)
        if breaker is not None:
            return breaker
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name,
                    config=self.config,
                    storage=self._storage,
                    listeners=self._listeners,
                )
                self._breakers[name] = breaker
            return breaker

    async def snapshots(self) -> list[BreakerSnapshot]:
        """Return stored snapshots for every breaker created so far."""
        return [await breaker.snapshot() for breaker in self._breakers.values()]

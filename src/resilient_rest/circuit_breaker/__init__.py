"""Framework-agnostic async circuit breaker.

Key behavior notes:
  - Storage persists only ``CLOSED`` and ``OPEN``. ``HALF_OPEN`` is the
    per-instance trial mode and is reported to listeners and by
    ``CircuitBreaker.state()`` while the trial runs.
  - At most one trial call is in flight per ``CircuitBreaker`` instance;
    concurrent callers are rejected with ``CircuitOpenError``.
  - Any exception raised by the protected operation counts as a failure
    unless listed in ``CircuitBreakerConfig.excluded_exceptions``.
  - ``BreakerRegistry`` keys breakers by logical service id.
"""

from resilient_rest.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from resilient_rest.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from resilient_rest.circuit_breaker.listeners import (
    BreakerListener,
    LoggingBreakerListener,
)
from resilient_rest.circuit_breaker.registry import BreakerRegistry, BreakerScope
from resilient_rest.circuit_breaker.state import (
    BreakerSnapshot,
    CircuitState,
    FailureRecord,
)
from resilient_rest.circuit_breaker.storage import (
    AbstractBreakerStorage,
    InMemoryBreakerStorage,
)

__all__ = [
    "AbstractBreakerStorage",
    "BreakerListener",
    "BreakerRegistry",
    "BreakerScope",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "FailureRecord",
    "InMemoryBreakerStorage",
    "LoggingBreakerListener",
]

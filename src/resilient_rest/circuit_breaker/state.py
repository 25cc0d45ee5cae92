"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of one breaker's stored state.

    Attributes:
        name: Breaker name (the logical service id for per-service breakers).
        state: Stored breaker state, ``CLOSED`` or ``OPEN``.
        failure_count: Consecutive failures counted since the last reset.
        last_failure_at: Timestamp of the last counted failure, if any.
        opened_at: Timestamp when the breaker last entered ``OPEN``, if open.
    """

    name: str
    state: CircuitState
    failure_count: int
    last_failure_at: datetime | None
    opened_at: datetime | None


@dataclass(frozen=True)
class FailureRecord:
    """Result of recording one failure against a breaker.

    ``opened`` is true only for the failure that moved the breaker from
    ``CLOSED`` to ``OPEN``; concurrent failures landing on an already open
    breaker leave the open timestamp untouched.
    """

    snapshot: BreakerSnapshot
    opened: bool

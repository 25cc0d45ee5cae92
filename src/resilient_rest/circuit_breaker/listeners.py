"""Observability hooks for circuit breakers."""

from typing import Protocol

from resilient_rest.circuit_breaker.state import CircuitState
from resilient_rest.logging import AnyLogger, get_logger, log_info, log_warning


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        ``on_state_change(OPEN -> HALF_OPEN)`` is emitted once per trial call.
        Storage does not persist ``HALF_OPEN``.
    """

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    async def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    async def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """Handle failed protected call completion."""


class LoggingBreakerListener:
    """Report breaker transitions and rejections as structured log events."""

    def __init__(
        self,
        *,
        break_duration: float,
        logger: AnyLogger | None = None,
    ) -> None:
        self._break_duration = break_duration
        self._logger = get_logger(__name__) if logger is None else logger

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        if new == CircuitState.OPEN:
            log_warning(
                self._logger,
                "circuit_opened",
                breaker=name,
                previous_state=str(old),
                break_duration=self._break_duration,
            )
        elif new == CircuitState.HALF_OPEN:
            log_warning(self._logger, "circuit_half_open", breaker=name)
        else:
            log_info(
                self._logger,
                "circuit_closed",
                breaker=name,
                previous_state=str(old),
            )

    async def on_call_rejected(self, name: str) -> None:
        log_warning(self._logger, "circuit_call_rejected", breaker=name)

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        return None

    async def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        log_warning(
            self._logger,
            "circuit_call_failed",
            breaker=name,
            error_type=exc.__class__.__name__,
            error=str(exc),
            elapsed=round(elapsed, 6),
        )

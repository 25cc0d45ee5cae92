"""Core circuit breaker implementation."""

import sys
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import ParamSpec, TypeVar

from resilient_rest.circuit_breaker.exceptions import CircuitOpenError
from resilient_rest.circuit_breaker.listeners import BreakerListener
from resilient_rest.circuit_breaker.state import BreakerSnapshot, CircuitState
from resilient_rest.circuit_breaker.storage import (
    AbstractBreakerStorage,
    InMemoryBreakerStorage,
)

T = TypeVar("T")
P = ParamSpec("P")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _free_threaded() -> bool:
    is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
    return is_gil_enabled is not None and not is_gil_enabled()


class _TrialGate:
    """Single permit for the half-open trial call of one breaker."""

    def __init__(self) -> None:
        self._lock: AbstractContextManager[object] = (
            threading.Lock() if _free_threaded() else nullcontext()
        )
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        with self._lock:
            if self._held:
                return False
            self._held = True
            return True

    def release(self) -> None:
        with self._lock:
            self._held = False


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures while ``CLOSED`` before opening.
        break_duration: Seconds to stay ``OPEN`` before allowing a trial call.
        excluded_exceptions: Exceptions passed through without counting as
            failures. Any other exception counts.
    """

    failure_threshold: int = 4
    break_duration: float = 3.0
    excluded_exceptions: tuple[type[Exception], ...] = ()

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.break_duration < 0:
            raise ValueError("break_duration must be >= 0")


class CircuitBreaker:
    """Stateful proxy around a dangerous async operation.

    ``CLOSED`` forwards calls and counts failures. Reaching the failure
    threshold opens the breaker; while ``OPEN`` every call inside the break
    duration raises ``CircuitOpenError`` without running the operation. The
    first call after the break duration runs as the single ``HALF_OPEN``
    trial: success closes the breaker, failure reopens it and restarts the
    break timer.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        storage: AbstractBreakerStorage | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            name: Breaker name used as the storage key and in events.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            storage: State storage backend. Defaults to in-memory storage.
            listeners: Optional listener hooks for breaker events.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._storage = InMemoryBreakerStorage() if storage is None else storage
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._trial_gate = _TrialGate()

    async def _notify(self, hook: str, *args: object) -> None:
        for listener in self._listeners:
            try:
                await getattr(listener, hook)(self.name, *args)
            except Exception:
                continue

    async def _transition(self, old: CircuitState, new: CircuitState) -> None:
        await self._notify("on_state_change", old, new)

    @staticmethod
    def _retry_after(snapshot: BreakerSnapshot, now: datetime, timeout: float) -> float:
        opened_at = now if snapshot.opened_at is None else snapshot.opened_at
        elapsed = (now - opened_at).total_seconds()
        return max(timeout - elapsed, 0.0)

    async def state(self) -> CircuitState:
        """Return the effective state, ``HALF_OPEN`` while a trial is running."""
        snapshot = await self._storage.get_state(self.name)
        if snapshot.state == CircuitState.OPEN and self._trial_gate.held:
            return CircuitState.HALF_OPEN
        return snapshot.state

    async def snapshot(self) -> BreakerSnapshot:
        """Return the stored snapshot for this breaker."""
        return await self._storage.get_state(self.name)

    async def call(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            func: Dangerous async callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when allowed and successful.

        Raises:
            CircuitOpenError: When the circuit is open and the call is rejected.
            Exception: The original exception from ``func`` when it is attempted
                and fails.
        """
        snapshot = await self._storage.get_state(self.name)
        is_trial = False

        if snapshot.state == CircuitState.OPEN:
            retry_after = self._retry_after(
                snapshot, _utcnow(), self.config.break_duration
            )
            if retry_after > 0:
                await self._notify("on_call_rejected")
                raise CircuitOpenError(self.name, retry_after=retry_after)

            if not self._trial_gate.try_acquire():
                await self._notify("on_call_rejected")
                raise CircuitOpenError(self.name, retry_after=0.0)

            is_trial = True
            await self._transition(CircuitState.OPEN, CircuitState.HALF_OPEN)

        start = time.monotonic()
        try:
            result = await func(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except Exception as exc:
            elapsed = max(time.monotonic() - start, 0.0)
            await self._notify("on_call_failed", exc, elapsed)

            if is_trial:
                await self._storage.record_failure(
                    self.name, threshold=self.config.failure_threshold
                )
                await self._storage.force_open(self.name)
                await self._transition(CircuitState.HALF_OPEN, CircuitState.OPEN)
            else:
                record = await self._storage.record_failure(
                    self.name, threshold=self.config.failure_threshold
                )
                if record.opened:
                    await self._transition(CircuitState.CLOSED, CircuitState.OPEN)
            raise
        else:
            elapsed = max(time.monotonic() - start, 0.0)

            if is_trial:
                await self._storage.reset(self.name)
                await self._transition(CircuitState.HALF_OPEN, CircuitState.CLOSED)
            else:
                await self._storage.record_success(self.name)

            await self._notify("on_call_succeeded", elapsed)
            return result
        finally:
            if is_trial:
                self._trial_gate.release()

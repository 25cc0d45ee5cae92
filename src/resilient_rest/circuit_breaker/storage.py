"""State storage for circuit breakers.

Storage keeps one snapshot per breaker name, so a single storage instance
can back a whole registry of per-service breakers. Every mutation runs
under the name's lock: the failure increment, the threshold check and the
``CLOSED -> OPEN`` transition happen as one unit.

Storage persists only ``CLOSED`` and ``OPEN``. ``HALF_OPEN`` is the
per-instance trial mode of ``CircuitBreaker`` and is never stored.
"""

import asyncio
import sys
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from resilient_rest.circuit_breaker.state import (
    BreakerSnapshot,
    CircuitState,
    FailureRecord,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _closed_snapshot(name: str) -> BreakerSnapshot:
    return BreakerSnapshot(
        name=name,
        state=CircuitState.CLOSED,
        failure_count=0,
        last_failure_at=None,
        opened_at=None,
    )


class AbstractBreakerStorage(ABC):
    """Abstract breaker storage interface."""

    @abstractmethod
    async def get_state(self, name: str) -> BreakerSnapshot:
        """Return the current breaker snapshot for ``name``."""

    @abstractmethod
    async def record_success(self, name: str) -> BreakerSnapshot:
        """Record a successful call and return the updated snapshot."""

    @abstractmethod
    async def record_failure(self, name: str, *, threshold: int) -> FailureRecord:
        """Count one failure, opening the breaker once ``threshold`` is reached."""

    @abstractmethod
    async def force_open(self, name: str) -> BreakerSnapshot:
        """Force breaker ``name`` into ``OPEN`` and restart its break timer."""

    @abstractmethod
    async def reset(self, name: str) -> BreakerSnapshot:
        """Reset breaker ``name`` to a healthy ``CLOSED`` state."""


class InMemoryBreakerStorage(AbstractBreakerStorage):
    """In-memory storage with per-breaker cooperative + optional thread locks.

    State lives only for the lifetime of the process.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, BreakerSnapshot] = {}
        self._async_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._thread_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())

    @asynccontextmanager
    async def _locked(self, name: str) -> AsyncIterator[None]:
        async_lock = self._async_locks[name]
        if self._gil_enabled:
            await async_lock.acquire()
            try:
                yield
            finally:
                async_lock.release()
            return

        thread_lock = self._thread_locks[name]
        thread_lock.acquire()
        try:
            await async_lock.acquire()
        except Exception:
            thread_lock.release()
            raise
        try:
            yield
        finally:
            async_lock.release()
            thread_lock.release()

    def names(self) -> tuple[str, ...]:
        """Return the names of every breaker with stored state."""
        return tuple(sorted(self._snapshots))

    async def get_state(self, name: str) -> BreakerSnapshot:
        """Return the current snapshot, creating a closed one if missing."""
        async with self._locked(name):
            snapshot = self._snapshots.get(name)
            if snapshot is None:
                snapshot = _closed_snapshot(name)
                self._snapshots[name] = snapshot
            return snapshot

    async def record_success(self, name: str) -> BreakerSnapshot:
        """Record a successful call.

        A success while ``CLOSED`` clears the consecutive failure count. A
        success that lands while ``OPEN`` (a call admitted before a
        concurrent failure opened the breaker) leaves the breaker open.
        """
        async with self._locked(name):
            snapshot = self._snapshots.get(name, _closed_snapshot(name))
            if snapshot.state == CircuitState.OPEN or (
                snapshot.failure_count == 0 and snapshot.last_failure_at is None
            ):
                self._snapshots[name] = snapshot
                return snapshot
            updated = _closed_snapshot(name)
            self._snapshots[name] = updated
            return updated

    async def record_failure(self, name: str, *, threshold: int) -> FailureRecord:
        """Increment the failure count and open the breaker at ``threshold``."""
        async with self._locked(name):
            snapshot = self._snapshots.get(name, _closed_snapshot(name))
            now = _utcnow()
            failure_count = snapshot.failure_count + 1
            opening = (
                snapshot.state == CircuitState.CLOSED and failure_count >= threshold
            )
            updated = BreakerSnapshot(
                name=name,
                state=CircuitState.OPEN if opening else snapshot.state,
                failure_count=failure_count,
                last_failure_at=now,
                opened_at=now if opening else snapshot.opened_at,
            )
            self._snapshots[name] = updated
            return FailureRecord(snapshot=updated, opened=opening)

    async def force_open(self, name: str) -> BreakerSnapshot:
        """Force the circuit open and restart the break timer."""
        async with self._locked(name):
            snapshot = self._snapshots.get(name, _closed_snapshot(name))
            now = _utcnow()
            updated = BreakerSnapshot(
                name=name,
                state=CircuitState.OPEN,
                failure_count=snapshot.failure_count,
                last_failure_at=snapshot.last_failure_at,
                opened_at=now,
            )
            self._snapshots[name] = updated
            return updated

    async def reset(self, name: str) -> BreakerSnapshot:
        """Reset breaker state and counters to a healthy default snapshot."""
        async with self._locked(name):
            updated = _closed_snapshot(name)
            self._snapshots[name] = updated
            return updated

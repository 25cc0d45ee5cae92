from __future__ import annotations

import pytest

from resilient_rest.circuit_breaker import CircuitState, InMemoryBreakerStorage
from tests.resilient_rest.support.fakes import FakeClock

pytestmark = pytest.mark.asyncio


class _ExplodingAsyncLock:
    async def acquire(self) -> None:
        raise RuntimeError("async acquire failed")

    def release(self) -> None:
        return


async def test_get_state_defaults_to_closed() -> None:
    storage = InMemoryBreakerStorage()

    snapshot = await storage.get_state("billing")

    assert snapshot.state == CircuitState.CLOSED
    assert snapshot.failure_count == 0
    assert storage.names() == ("billing",)


async def test_record_failure_opens_exactly_at_threshold(clock: FakeClock) -> None:
    storage = InMemoryBreakerStorage()

    first = await storage.record_failure("billing", threshold=2)
    second = await storage.record_failure("billing", threshold=2)

    assert first.opened is False
    assert first.snapshot.state == CircuitState.CLOSED
    assert second.opened is True
    assert second.snapshot.state == CircuitState.OPEN
    assert second.snapshot.opened_at == clock.now()


async def test_failure_on_open_breaker_keeps_open_timestamp(clock: FakeClock) -> None:
    storage = InMemoryBreakerStorage()
    await storage.record_failure("billing", threshold=1)
    opened_at = clock.now()

    clock.advance(1.0)
    record = await storage.record_failure("billing", threshold=1)

    assert record.opened is False
    assert record.snapshot.failure_count == 2
    assert record.snapshot.opened_at == opened_at
    assert record.snapshot.last_failure_at == clock.now()


async def test_record_success_resets_closed_failure_count() -> None:
    storage = InMemoryBreakerStorage()
    await storage.record_failure("billing", threshold=5)

    snapshot = await storage.record_success("billing")

    assert snapshot.state == CircuitState.CLOSED
    assert snapshot.failure_count == 0
    assert snapshot.last_failure_at is None


async def test_record_success_does_not_close_open_breaker() -> None:
    storage = InMemoryBreakerStorage()
    await storage.record_failure("billing", threshold=1)

    snapshot = await storage.record_success("billing")

    assert snapshot.state == CircuitState.OPEN
    assert snapshot.failure_count == 1


async def test_force_open_and_reset(clock: FakeClock) -> None:
    storage = InMemoryBreakerStorage()

    opened = await storage.force_open("billing")
    assert opened.state == CircuitState.OPEN
    assert opened.opened_at == clock.now()

    reset = await storage.reset("billing")
    assert reset.state == CircuitState.CLOSED
    assert reset.opened_at is None


async def test_names_are_isolated() -> None:
    storage = InMemoryBreakerStorage()
    await storage.record_failure("billing", threshold=1)

    assert (await storage.get_state("billing")).state == CircuitState.OPEN
    assert (await storage.get_state("orders")).state == CircuitState.CLOSED


async def test_storage_uses_thread_lock_path_when_gil_disabled(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(
        "resilient_rest.circuit_breaker.storage.sys._is_gil_enabled",
        lambda: False,
        raising=False,
    )
    storage = InMemoryBreakerStorage()

    record = await storage.record_failure("billing", threshold=1)

    assert record.opened is True
    assert (await storage.get_state("billing")).state == CircuitState.OPEN


async def test_thread_lock_released_when_async_acquire_fails(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(
        "resilient_rest.circuit_breaker.storage.sys._is_gil_enabled",
        lambda: False,
        raising=False,
    )
    storage = InMemoryBreakerStorage()
    storage._async_locks["billing"] = _ExplodingAsyncLock()  # type: ignore[assignment]

    with pytest.raises(RuntimeError, match="async acquire failed"):
        await storage.get_state("billing")

    assert storage._thread_locks["billing"].locked() is False

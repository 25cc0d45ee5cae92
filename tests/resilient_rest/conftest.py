from __future__ import annotations

import pytest

import resilient_rest.circuit_breaker.breaker as breaker_mod
import resilient_rest.circuit_breaker.storage as storage_mod
from tests.resilient_rest.support.fakes import (
    FakeClock,
    FakeLogger,
    RecordingBreakerListener,
    RecordingRetryListener,
    RecordingSleep,
)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Freeze breaker time and let tests advance it explicitly."""
    fake = FakeClock()
    monkeypatch.setattr(breaker_mod, "_utcnow", fake.now)
    monkeypatch.setattr(storage_mod, "_utcnow", fake.now)
    return fake


@pytest.fixture
def recording_sleep(clock: FakeClock) -> RecordingSleep:
    """Backoff sleep that advances the frozen clock instead of waiting."""
    return RecordingSleep(clock)


@pytest.fixture
def retry_listener() -> RecordingRetryListener:
    return RecordingRetryListener()


@pytest.fixture
def breaker_listener() -> RecordingBreakerListener:
    return RecordingBreakerListener()

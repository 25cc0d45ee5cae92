from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_never,
    wait_exponential,
)
from tenacity.retry import retry_base

from resilient_rest.errors import (
    FailureKind,
    StatusFailure,
    TransientError,
    classify_failure,
)
from resilient_rest.logging import AnyLogger, get_logger, log_warning

T = TypeVar("T")

RetryListener = Callable[["RetryContext"], None]


@dataclass(frozen=True)
class RetryBackoffPolicy:
    """Configuration for retry attempt count and exponential backoff.

    The wait before retry ``k`` (``k`` starting at 1) is ``base_seconds ** k``,
    capped at ``max_seconds``.
    """

    attempts: int | None
    base_seconds: float = 2.0
    max_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.attempts is not None and self.attempts < 1:
            raise ValueError("attempts must be >= 1 when provided")
        if self.base_seconds < 0:
            raise ValueError("base_seconds must be >= 0")
        if self.max_seconds < 0:
            raise ValueError("max_seconds must be >= 0")

    @classmethod
    def from_max_retries(
        cls,
        max_retries: int,
        *,
        base_seconds: float = 2.0,
        max_seconds: float = 60.0,
    ) -> RetryBackoffPolicy:
        """Build a policy allowing ``max_retries`` retries after the first try."""
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        return cls(
            attempts=max_retries + 1,
            base_seconds=base_seconds,
            max_seconds=max_seconds,
        )

    def delay_for(self, attempt_number: int) -> float:
        """Return the backoff delay that follows failed attempt ``attempt_number``."""
        return min(self.base_seconds**attempt_number, self.max_seconds)


@dataclass(frozen=True)
class RetryContext:
    """One scheduled retry.

    Attributes:
        attempt_number: 1-based number of the attempt that just failed.
        delay: Seconds waited before the next attempt.
        cause: Classified failure of the attempt that just failed.
        error: The exception raised by that attempt.
    """

    attempt_number: int
    delay: float
    cause: FailureKind
    error: BaseException | None


def build_exponential_retrying(
    *,
    retry: retry_base,
    policy: RetryBackoffPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
    reraise: bool = True,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` waiting ``base ** attempt`` between attempts."""
    stop = (
        stop_never if policy.attempts is None else stop_after_attempt(policy.attempts)
    )
    wait = wait_exponential(
        multiplier=policy.base_seconds,
        exp_base=policy.base_seconds,
        max=policy.max_seconds,
    )
    hooks: dict[str, Any] = {}
    if sleep is not None:
        hooks["sleep"] = sleep
    if before_sleep is not None:
        hooks["before_sleep"] = before_sleep
    return AsyncRetrying(
        retry=retry,
        wait=wait,
        stop=stop,
        reraise=reraise,
        **hooks,
    )


def is_retryable_failure(
    exc: BaseException,
    *,
    retry_on_circuit_open: bool = False,
) -> bool:
    """Return whether one failed attempt should be retried.

    Transport failures, timeouts and ``StatusFailure`` with a code in
    ``RETRYABLE_STATUS_CODES`` are retryable, as is any other ``TransientError``
    raised by the operation. An open circuit is terminal unless
    ``retry_on_circuit_open`` is set.
    """
    kind = classify_failure(exc)
    if kind == FailureKind.TRANSPORT:
        return True
    if kind == FailureKind.STATUS:
        return isinstance(exc, StatusFailure) and exc.is_retryable
    if kind == FailureKind.CIRCUIT_OPEN:
        return retry_on_circuit_open
    if kind == FailureKind.UNKNOWN:
        return isinstance(exc, (TimeoutError, TransientError))
    return False


class RetryScheduler:
    """Re-invoke an async operation with exponential backoff on retryable failures."""

    def __init__(
        self,
        *,
        policy: RetryBackoffPolicy | None = None,
        retry_on_circuit_open: bool = False,
        listeners: Sequence[RetryListener] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        """Create a retry scheduler.

        Args:
            policy: Attempt budget and backoff. Defaults to 4 retries with
                ``2 ** attempt`` second waits.
            retry_on_circuit_open: Treat ``CircuitOpenError`` as retryable,
                spending a retry slot and its backoff on an open circuit.
            listeners: Callbacks receiving a ``RetryContext`` per retry.
                Exceptions they raise are ignored.
            sleep: Async sleep used between attempts. Defaults to
                ``asyncio.sleep`` via tenacity.
            logger: Logger for ``retry_scheduled`` events.
        """
        self.policy = (
            RetryBackoffPolicy.from_max_retries(4) if policy is None else policy
        )
        self.retry_on_circuit_open = retry_on_circuit_open
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._sleep = sleep
        self._logger = get_logger(__name__) if logger is None else logger

    def _should_retry(self, exc: BaseException) -> bool:
        return is_retryable_failure(
            exc, retry_on_circuit_open=self.retry_on_circuit_open
        )

    def _before_sleep(self, state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome is not None else None
        delay = state.next_action.sleep if state.next_action is not None else 0.0
        context = RetryContext(
            attempt_number=state.attempt_number,
            delay=delay,
            cause=FailureKind.UNKNOWN if error is None else classify_failure(error),
            error=error,
        )
        log_warning(
            self._logger,
            "retry_scheduled",
            attempt=context.attempt_number,
            delay=context.delay,
            cause=str(context.cause),
            error=str(error),
        )
        for listener in self._listeners:
            try:
                listener(context)
            except Exception:
                continue

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` until it succeeds or fails terminally.

        Raises:
            Exception: The terminal failure, or the last retryable failure once
                the attempt budget is exhausted.
        """
        retrying = build_exponential_retrying(
            retry=retry_if_exception(self._should_retry),
            policy=self.policy,
            sleep=self._sleep,
            before_sleep=self._before_sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await operation()

        raise RuntimeError("Retry loop exited unexpectedly.")

"""Circuit breaker exceptions."""


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is short-circuited because the breaker is open.

    The protected operation is never invoked when this is raised.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        retry_after: Seconds until a half-open trial may be attempted.
    """

    def __init__(self, breaker_name: str, retry_after: float) -> None:
        self.breaker_name = breaker_name
        self.retry_after = max(retry_after, 0.0)
        super().__init__(
            f"circuit_open: {breaker_name} retry_after={self.retry_after:g}s"
        )

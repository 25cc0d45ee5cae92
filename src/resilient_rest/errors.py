"""Shared error types for resilient_rest.

Every failure a call can end with carries one ``FailureKind`` tag. The retry
classifier and retry events read that tag through ``classify_failure``.
"""

from __future__ import annotations

from enum import StrEnum

from resilient_rest.circuit_breaker.exceptions import CircuitOpenError

RETRYABLE_STATUS_CODES = frozenset({408, 500, 502, 503, 504})


class FailureKind(StrEnum):
    """Tag shared by all classified call failures."""

    TRANSPORT = "transport"
    STATUS = "status"
    CIRCUIT_OPEN = "circuit_open"
    SERIALIZATION = "serialization"
    RESOLUTION = "resolution"
    UNKNOWN = "unknown"


class TransientError(RuntimeError):
    """Retry-safe failure; operations may raise it to request another attempt."""


class RestClientError(RuntimeError):
    """Base exception for classified REST call failures."""

    kind: FailureKind = FailureKind.UNKNOWN


class TransportFailure(RestClientError, TransientError):
    """Raised when the network layer fails before a response is received.

    Attributes:
        url: Target URL of the failed request, when known.
        timeout: Whether the failure was a transport timeout.
    """

    kind = FailureKind.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        timeout: bool = False,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.timeout = timeout


class StatusFailure(RestClientError):
    """Raised when the remote service answers with a non-success status.

    Attributes:
        status_code: Numeric HTTP status returned by the service.
        reason: HTTP reason phrase.
        url: Target URL of the request.
        response_body: Response payload text.
    """

    kind = FailureKind.STATUS

    def __init__(
        self,
        status_code: int,
        *,
        reason: str = "",
        url: str | None = None,
        response_body: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.reason = reason
        self.url = url
        self.response_body = response_body
        message = f"HTTP {status_code}"
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES


class SerializationFailure(RestClientError):
    """Raised when a request body cannot be encoded or a response decoded."""

    kind = FailureKind.SERIALIZATION


class ResolutionFailure(RestClientError):
    """Raised when a logical service id has no known address."""

    kind = FailureKind.RESOLUTION

    def __init__(self, service_id: str) -> None:
        self.service_id = service_id
        super().__init__(f"Unknown service id: {service_id!r}")


def classify_failure(exc: BaseException) -> FailureKind:
    """Return the ``FailureKind`` tag for any exception raised by a call."""
    if isinstance(exc, RestClientError):
        return exc.kind
    if isinstance(exc, CircuitOpenError):
        return FailureKind.CIRCUIT_OPEN
    return FailureKind.UNKNOWN

from __future__ import annotations

from types import TracebackType

import httpx

from resilient_rest.errors import SerializationFailure, TransportFailure
from resilient_rest.rest.constants import DEFAULT_HTTP_TIMEOUT_SECONDS
from resilient_rest.rest.request import InvocationRequest


class HttpTransport:
    """Process-wide pooled HTTP transport shared by every client.

    Construct once at startup and close at shutdown, either with
    ``async with`` or ``aclose()``. A transport built around an injected
    ``httpx.AsyncClient`` leaves closing that client to its owner.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    ) -> None:
        """Create the shared transport.

        Args:
            client: Existing async client to reuse. A new pooled client is
                created when omitted.
            timeout_seconds: Per-attempt timeout applied to every request.
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._owns_client = client is None
        self._client = httpx.AsyncClient() if client is None else client
        self._timeout = httpx.Timeout(timeout_seconds)
        self.timeout_seconds = timeout_seconds

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def send(self, request: InvocationRequest) -> httpx.Response:
        """Send one attempt of ``request`` and return the raw response.

        Raises:
            TransportFailure: When the request fails at the network layer or
                cannot complete, for example on a redirect loop.
            SerializationFailure: When the response body cannot be decoded
                from its declared content encoding.
        """
        try:
            return await self._client.request(
                request.method,
                request.url,
                content=request.content,
                headers=dict(request.headers),
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransportFailure(
                f"Request timed out: {exc}",
                url=request.url,
                timeout=True,
            ) from exc
        except httpx.DecodingError as exc:
            raise SerializationFailure(
                f"Response body from {request.url} could not be decoded: {exc}"
            ) from exc
        except httpx.RequestError as exc:
            raise TransportFailure(
                str(exc) or exc.__class__.__name__,
                url=request.url,
            ) from exc

    async def aclose(self) -> None:
        """Close the underlying client when this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

from __future__ import annotations

from typing import TypeVar

import httpx

from resilient_rest.circuit_breaker import BreakerRegistry, LoggingBreakerListener
from resilient_rest.errors import (
    ResolutionFailure,
    RestClientError,
    SerializationFailure,
    StatusFailure,
    TransportFailure,
)
from resilient_rest.invoker import ResilientInvoker
from resilient_rest.logging import AnyLogger
from resilient_rest.rest.codec import decode_body, encode_body
from resilient_rest.rest.constants import HttpMethod
from resilient_rest.rest.request import InvocationRequest, build_request
from resilient_rest.rest.resolver import (
    ServiceId,
    ServiceResolver,
    StaticServiceResolver,
    resolve_base_address,
    service_key,
)
from resilient_rest.rest.transport import HttpTransport
from resilient_rest.retry import RetryListener, RetryScheduler
from resilient_rest.settings import RestClientSettings

T = TypeVar("T")

__all__ = [
    "HttpTransport",
    "InvocationRequest",
    "ResolutionFailure",
    "RestClient",
    "RestClientError",
    "SerializationFailure",
    "ServiceResolver",
    "StaticServiceResolver",
    "StatusFailure",
    "TransportFailure",
    "build_rest_client",
]


class RestClient:
    """Typed JSON client for internal services addressed by logical id."""

    def __init__(
        self,
        *,
        transport: HttpTransport,
        resolver: ServiceResolver,
        invoker: ResilientInvoker | None = None,
    ) -> None:
        """Create a client bound to a shared transport.

        Args:
            transport: Process-wide HTTP transport. Not closed by the client.
            resolver: Maps logical service ids to base addresses.
            invoker: Retry/breaker pipeline. Defaults to ``ResilientInvoker()``.
        """
        self._transport = transport
        self._resolver = resolver
        self._invoker = ResilientInvoker() if invoker is None else invoker

    @property
    def invoker(self) -> ResilientInvoker:
        return self._invoker

    async def get(self, service: ServiceId, path: str, result_type: type[T]) -> T:
        """GET ``path`` on ``service`` and decode the body into ``result_type``."""
        response = await self._invoke("GET", service, path)
        return decode_body(response.content, result_type)

    async def post(
        self,
        service: ServiceId,
        path: str,
        body: object | None = None,
        *,
        result_type: type[T],
    ) -> T:
        """POST ``body`` (``{}`` when omitted) and decode the response."""
        response = await self._invoke("POST", service, path, content=encode_body(body))
        return decode_body(response.content, result_type)

    async def put(
        self,
        service: ServiceId,
        path: str,
        body: object | None = None,
        *,
        result_type: type[T],
    ) -> T:
        """PUT ``body`` (``{}`` when omitted) and decode the response."""
        response = await self._invoke("PUT", service, path, content=encode_body(body))
        return decode_body(response.content, result_type)

    async def delete(self, service: ServiceId, path: str) -> bool:
        """DELETE ``path`` on ``service``; return whether the final status succeeded."""
        response = await self._invoke("DELETE", service, path)
        return response.is_success

    async def _resolve(self, service_id: str) -> str:
        try:
            return await resolve_base_address(self._resolver, service_id)
        except ResolutionFailure:
            raise
        except LookupError as exc:
            raise ResolutionFailure(service_id) from exc

    async def _invoke(
        self,
        method: HttpMethod,
        service: ServiceId,
        path: str,
        *,
        content: bytes | None = None,
    ) -> httpx.Response:
        service_id = service_key(service)
        base_address = await self._resolve(service_id)
        request = build_request(
            method,
            service_id=service_id,
            base_address=base_address,
            path=path,
            content=content,
        )

        async def _attempt() -> httpx.Response:
            return await self._send_once(request)

        return await self._invoker.execute(service_id, _attempt)

    async def _send_once(self, request: InvocationRequest) -> httpx.Response:
        response = await self._transport.send(request)
        if not response.is_success:
            raise StatusFailure(
                response.status_code,
                reason=response.reason_phrase,
                url=request.url,
                response_body=response.text,
            )
        return response


def build_rest_client(
    settings: RestClientSettings,
    *,
    transport: HttpTransport,
    resolver: ServiceResolver | None = None,
    retry_listeners: list[RetryListener] | None = None,
    logger: AnyLogger | None = None,
) -> RestClient:
    """Wire a ``RestClient`` from settings around a shared transport."""
    breakers = BreakerRegistry(
        config=settings.breaker_config(),
        scope=settings.breaker_scope,
        listeners=[
            LoggingBreakerListener(
                break_duration=settings.break_duration_seconds,
                logger=logger,
            )
        ],
    )
    scheduler = RetryScheduler(
        policy=settings.retry_policy(),
        retry_on_circuit_open=settings.retry_on_circuit_open,
        listeners=retry_listeners,
        logger=logger,
    )
    return RestClient(
        transport=transport,
        resolver=(
            StaticServiceResolver(settings.service_urls)
            if resolver is None
            else resolver
        ),
        invoker=ResilientInvoker(scheduler=scheduler, breakers=breakers),
    )

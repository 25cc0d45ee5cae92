from __future__ import annotations

import json
from enum import StrEnum

import httpx
import pytest
from pydantic import BaseModel
from pytest_httpx import HTTPXMock

from resilient_rest.circuit_breaker import CircuitOpenError, CircuitState
from resilient_rest.errors import (
    ResolutionFailure,
    SerializationFailure,
    StatusFailure,
    TransportFailure,
)
from resilient_rest.invoker import ResilientInvoker
from resilient_rest.rest import (
    HttpTransport,
    RestClient,
    StaticServiceResolver,
    build_rest_client,
)
from resilient_rest.retry import RetryBackoffPolicy, RetryScheduler
from resilient_rest.settings import RestClientSettings
from tests.resilient_rest.support.fakes import (
    FakeLogger,
    RecordingRetryListener,
    RecordingSleep,
)

pytestmark = pytest.mark.asyncio

_ORDERS_URL = "http://orders.internal:8080"
_BILLING_URL = "http://billing.internal"


class Service(StrEnum):
    ORDERS = "orders"
    BILLING = "billing"


class Order(BaseModel):
    id: int
    item: str
    quantity: int = 1


def _build_client(
    transport: HttpTransport,
    *,
    sleep: RecordingSleep | None = None,
    max_retries: int = 4,
    retry_listener: RecordingRetryListener | None = None,
) -> RestClient:
    scheduler = RetryScheduler(
        policy=RetryBackoffPolicy.from_max_retries(max_retries),
        sleep=RecordingSleep() if sleep is None else sleep,
        listeners=[retry_listener] if retry_listener is not None else None,
        logger=FakeLogger(),
    )
    return RestClient(
        transport=transport,
        resolver=StaticServiceResolver(
            {"orders": _ORDERS_URL, "billing": _BILLING_URL}
        ),
        invoker=ResilientInvoker(scheduler=scheduler),
    )


async def test_get_decodes_typed_result_and_sends_accept_header(
    httpx_mock: HTTPXMock,
) -> None:
    httpx_mock.add_response(
        method="GET",
        url=f"{_ORDERS_URL}/api/orders/7",
        json={"id": 7, "item": "coffee", "quantity": 2},
    )

    async with HttpTransport() as transport:
        client = _build_client(transport)
        order = await client.get("orders", "api/orders/7", Order)

    assert order == Order(id=7, item="coffee", quantity=2)
    request = httpx_mock.get_request()
    assert request is not None
    assert request.headers["Accept"] == "application/json"
    assert "Content-Type" not in request.headers


async def test_get_accepts_enum_service_ids_and_generic_result_types(
    httpx_mock: HTTPXMock,
) -> None:
    httpx_mock.add_response(
        method="GET",
        url=f"{_BILLING_URL}/invoices",
        json=[{"id": 1, "item": "tea"}, {"id": 2, "item": "milk"}],
    )

    async with HttpTransport() as transport:
        client = _build_client(transport)
        orders = await client.get(Service.BILLING, "/invoices", list[Order])

    assert [order.id for order in orders] == [1, 2]


async def test_post_without_body_sends_empty_json_object(
    httpx_mock: HTTPXMock,
) -> None:
    httpx_mock.add_response(
        method="POST",
        url=f"{_ORDERS_URL}/api/orders",
        json={"id": 9, "item": "new"},
    )

    async with HttpTransport() as transport:
        client = _build_client(transport)
        order = await client.post("orders", "api/orders", result_type=Order)

    assert order.id == 9
    request = httpx_mock.get_request()
    assert request is not None
    assert request.content == b"{}"
    assert request.headers["Content-Type"] == "application/json; charset=utf-8"
    assert request.headers["Accept"] == "application/json"


async def test_put_serializes_model_body(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        method="PUT",
        url=f"{_ORDERS_URL}/api/orders/3",
        json={"id": 3, "item": "espresso", "quantity": 4},
    )

    async with HttpTransport() as transport:
        client = _build_client(transport)
        order = await client.put(
            "orders",
            "api/orders/3",
            Order(id=3, item="espresso", quantity=4),
            result_type=Order,
        )

    request = httpx_mock.get_request()
    assert request is not None
    assert json.loads(request.content) == {"id": 3, "item": "espresso", "quantity": 4}
    assert order.quantity == 4


async def test_delete_returns_true_for_success_status(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        method="DELETE",
        url=f"{_ORDERS_URL}/api/orders/3",
        status_code=204,
    )

    async with HttpTransport() as transport:
        client = _build_client(transport)
        assert await client.delete("orders", "api/orders/3") is True


async def test_status_503_is_sent_five_times_before_failing(
    httpx_mock: HTTPXMock,
    recording_sleep: RecordingSleep,
) -> None:
    for _ in range(5):
        httpx_mock.add_response(
            method="GET",
            url=f"{_ORDERS_URL}/health",
            status_code=503,
            text="maintenance",
        )
    async with HttpTransport() as transport:
        client = _build_client(transport, sleep=recording_sleep)
        with pytest.raises(StatusFailure) as excinfo:
            await client.get("orders", "health", dict)

    assert excinfo.value.status_code == 503
    assert excinfo.value.response_body == "maintenance"
    assert len(httpx_mock.get_requests()) == 5
    assert recording_sleep.delays == [2.0, 4.0, 8.0, 16.0]


async def test_status_404_fails_without_retry(
    httpx_mock: HTTPXMock,
    recording_sleep: RecordingSleep,
) -> None:
    httpx_mock.add_response(
        method="DELETE",
        url=f"{_ORDERS_URL}/api/orders/404",
        status_code=404,
    )
    async with HttpTransport() as transport:
        client = _build_client(transport, sleep=recording_sleep)
        with pytest.raises(StatusFailure) as excinfo:
            await client.delete("orders", "api/orders/404")

    assert excinfo.value.status_code == 404
    assert len(httpx_mock.get_requests()) == 1
    assert recording_sleep.delays == []


async def test_status_500_four_times_then_success_returns_payload(
    httpx_mock: HTTPXMock,
    recording_sleep: RecordingSleep,
    retry_listener: RecordingRetryListener,
) -> None:
    url = f"{_ORDERS_URL}/api/orders"
    for _ in range(4):
        httpx_mock.add_response(method="POST", url=url, status_code=500)
    httpx_mock.add_response(method="POST", url=url, json={"id": 1, "item": "late"})

    async with HttpTransport() as transport:
        client = _build_client(
            transport, sleep=recording_sleep, retry_listener=retry_listener
        )
        order = await client.post(
            "orders", "api/orders", {"item": "late"}, result_type=Order
        )

    assert order == Order(id=1, item="late")
    assert len(retry_listener.contexts) == 4
    assert len(httpx_mock.get_requests()) == 5
    assert {request.content for request in httpx_mock.get_requests()} == {
        b'{"item":"late"}'
    }


async def test_post_to_service_always_returning_502_backs_off_thirty_seconds(
    httpx_mock: HTTPXMock,
    recording_sleep: RecordingSleep,
) -> None:
    for _ in range(5):
        httpx_mock.add_response(
            method="POST", url=f"{_ORDERS_URL}/jobs", status_code=502
        )
    async with HttpTransport() as transport:
        client = _build_client(transport, sleep=recording_sleep)
        with pytest.raises(StatusFailure):
            await client.post("orders", "jobs", result_type=dict)

    assert sum(recording_sleep.delays) == 30.0


async def test_connection_errors_surface_as_transport_failure(
    httpx_mock: HTTPXMock,
) -> None:
    httpx_mock.add_exception(httpx.ConnectError("connection refused"))

    async with HttpTransport() as transport:
        client = _build_client(transport, max_retries=0)
        with pytest.raises(TransportFailure) as excinfo:
            await client.get("orders", "health", dict)

    assert excinfo.value.timeout is False
    assert excinfo.value.url == f"{_ORDERS_URL}/health"


async def test_four_connection_errors_open_breaker_and_block_fifth_call(
    httpx_mock: HTTPXMock,
) -> None:
    for _ in range(4):
        httpx_mock.add_exception(httpx.ConnectError("connection refused"))

    async with HttpTransport() as transport:
        client = _build_client(transport, max_retries=0)
        for _ in range(4):
            with pytest.raises(TransportFailure):
                await client.get("orders", "health", dict)
        with pytest.raises(CircuitOpenError):
            await client.get("orders", "health", dict)

    assert len(httpx_mock.get_requests()) == 4
    breaker = client.invoker.breakers.get("orders")
    assert await breaker.state() == CircuitState.OPEN


async def test_open_breaker_for_one_service_leaves_others_reachable(
    httpx_mock: HTTPXMock,
) -> None:
    for _ in range(4):
        httpx_mock.add_exception(
            httpx.ConnectError("connection refused"),
            url=f"{_ORDERS_URL}/health",
        )
    httpx_mock.add_response(url=f"{_BILLING_URL}/health", json={"status": "ok"})

    async with HttpTransport() as transport:
        client = _build_client(transport, max_retries=0)
        for _ in range(4):
            with pytest.raises(TransportFailure):
                await client.get("orders", "health", dict)
        result = await client.get("billing", "health", dict)

    assert result == {"status": "ok"}


async def test_unknown_service_fails_before_any_request() -> None:
    async with HttpTransport() as transport:
        client = _build_client(transport)
        with pytest.raises(ResolutionFailure) as excinfo:
            await client.get("inventory", "items", dict)

    assert excinfo.value.service_id == "inventory"


async def test_async_resolver_lookup_errors_become_resolution_failures() -> None:
    class _AsyncResolver:
        async def resolve(self, service_id: str) -> str:
            raise KeyError(service_id)

    async with HttpTransport() as transport:
        client = RestClient(transport=transport, resolver=_AsyncResolver())
        with pytest.raises(ResolutionFailure):
            await client.get("orders", "items", dict)


async def test_undecodable_response_is_serialization_failure(
    httpx_mock: HTTPXMock,
) -> None:
    httpx_mock.add_response(
        method="GET",
        url=f"{_ORDERS_URL}/api/orders/1",
        json={"id": "not-a-number"},
    )

    async with HttpTransport() as transport:
        client = _build_client(transport)
        with pytest.raises(SerializationFailure):
            await client.get("orders", "api/orders/1", Order)

    assert len(httpx_mock.get_requests()) == 1


async def test_corrupt_response_encoding_is_not_retried(
    httpx_mock: HTTPXMock,
    recording_sleep: RecordingSleep,
) -> None:
    httpx_mock.add_response(
        method="GET",
        url=f"{_ORDERS_URL}/api/orders/1",
        headers={"Content-Encoding": "gzip"},
        content=b"definitely not gzip",
    )

    async with HttpTransport() as transport:
        client = _build_client(transport, sleep=recording_sleep)
        with pytest.raises(SerializationFailure):
            await client.get("orders", "api/orders/1", Order)

    assert len(httpx_mock.get_requests()) == 1
    assert recording_sleep.delays == []


async def test_unserializable_body_fails_before_any_request() -> None:
    async with HttpTransport() as transport:
        client = _build_client(transport)
        with pytest.raises(SerializationFailure):
            await client.post("orders", "api/orders", object(), result_type=dict)


async def test_build_rest_client_wires_settings(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        method="GET",
        url=f"{_ORDERS_URL}/ping",
        json={"pong": True},
    )
    settings = RestClientSettings(
        service_urls={"orders": f"{_ORDERS_URL}/"},
        failure_threshold=2,
        breaker_scope="shared",
        max_retries=1,
    )

    transport = HttpTransport(timeout_seconds=settings.http_timeout_seconds)
    async with transport:
        client = build_rest_client(settings, transport=transport, logger=FakeLogger())
        assert await client.get("orders", "ping", dict) == {"pong": True}

    assert client.invoker.scheduler.policy.attempts == 2
    assert client.invoker.breakers.scope == "shared"
    assert client.invoker.breakers.config.failure_threshold == 2

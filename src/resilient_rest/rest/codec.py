"""JSON encoding of request bodies and typed decoding of response bodies."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter

from resilient_rest.errors import SerializationFailure
from resilient_rest.rest.constants import EMPTY_JSON_OBJECT

T = TypeVar("T")

_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


@lru_cache(maxsize=256)
def _adapter_for(result_type: Any) -> TypeAdapter[Any]:
    return TypeAdapter(result_type)


def encode_body(body: object | None) -> bytes:
    """Serialize ``body`` to JSON; ``None`` becomes an empty JSON object.

    Pydantic models, dataclasses, mappings and sequences are supported.
    """
    if body is None:
        return EMPTY_JSON_OBJECT
    try:
        return _ANY_ADAPTER.dump_json(body, by_alias=True)
    except (TypeError, ValueError) as exc:
        raise SerializationFailure(
            f"Request body of type {type(body).__name__} is not JSON serializable."
        ) from exc


def decode_body(raw: bytes, result_type: type[T]) -> T:
    """Decode a JSON response body into ``result_type``.

    An empty body decodes as JSON ``null``.
    """
    payload = raw if raw.strip() else b"null"
    try:
        adapter = _adapter_for(result_type)
    except TypeError as exc:
        raise SerializationFailure(
            f"Unsupported result type: {result_type!r}"
        ) from exc
    try:
        return adapter.validate_json(payload)
    except ValueError as exc:
        type_name = getattr(result_type, "__name__", repr(result_type))
        raise SerializationFailure(
            f"Response body does not decode as {type_name}."
        ) from exc

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from resilient_rest.rest.constants import (
    JSON_CONTENT_TYPE,
    JSON_MEDIA_TYPE,
    HttpMethod,
)


@dataclass(frozen=True)
class InvocationRequest:
    """One outgoing call, fixed before the first attempt and reused by retries."""

    method: HttpMethod
    service_id: str
    path: str
    url: str
    content: bytes | None = None
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze the header mapping so retries always send the same headers."""
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))


def join_url(base_address: str, path: str) -> str:
    """Join a resolved base address and a relative path with a single slash."""
    return f"{base_address.rstrip('/')}/{path.lstrip('/')}"


def build_headers(*, has_body: bool) -> dict[str, str]:
    """Return JSON request headers, with a content type only when a body is sent."""
    headers = {"Accept": JSON_MEDIA_TYPE}
    if has_body:
        headers["Content-Type"] = JSON_CONTENT_TYPE
    return headers


def build_request(
    method: HttpMethod,
    *,
    service_id: str,
    base_address: str,
    path: str,
    content: bytes | None = None,
) -> InvocationRequest:
    """Build the immutable request for one logical call."""
    return InvocationRequest(
        method=method,
        service_id=service_id,
        path=path,
        url=join_url(base_address, path),
        content=content,
        headers=build_headers(has_body=content is not None),
    )

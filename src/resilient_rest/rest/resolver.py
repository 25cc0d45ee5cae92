"""Logical service id to base address resolution."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Mapping
from enum import Enum
from typing import Protocol, cast

from resilient_rest.errors import ResolutionFailure

ServiceId = str | Enum


class ServiceResolver(Protocol):
    """Resolve a logical service id to a base address.

    ``resolve`` may be sync or async. Unknown ids must raise
    ``ResolutionFailure``.
    """

    def resolve(self, service_id: str) -> str | Awaitable[str]:
        """Return the base address for ``service_id``."""


def service_key(service: ServiceId) -> str:
    """Normalize a service id given as a string or enum member.

    Enum members are keyed by their value when it is a string, whatever the
    enum base class, and by their name otherwise.
    """
    if not isinstance(service, Enum):
        return service
    if isinstance(service.value, str):
        return service.value
    return service.name


class StaticServiceResolver:
    """Resolver backed by a fixed mapping of service id to base address."""

    def __init__(self, addresses: Mapping[str, str]) -> None:
        self._addresses = {
            service_id: address.rstrip("/") for service_id, address in addresses.items()
        }

    def resolve(self, service_id: str) -> str:
        try:
            return self._addresses[service_id]
        except KeyError as exc:
            raise ResolutionFailure(service_id) from exc


async def resolve_base_address(resolver: ServiceResolver, service_id: str) -> str:
    """Resolve ``service_id`` through a sync or async resolver."""
    result = resolver.resolve(service_id)
    if inspect.isawaitable(result):
        return await cast(Awaitable[str], result)
    return result

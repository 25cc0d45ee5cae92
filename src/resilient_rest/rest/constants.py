"""Shared constants used by the resilient_rest REST client."""

from typing import Literal

HttpMethod = Literal["GET", "POST", "PUT", "DELETE"]

JSON_MEDIA_TYPE = "application/json"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"
EMPTY_JSON_OBJECT = b"{}"
DEFAULT_HTTP_TIMEOUT_SECONDS = 240.0

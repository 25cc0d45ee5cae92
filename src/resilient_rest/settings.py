from __future__ import annotations

from typing import Literal

from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilient_rest.circuit_breaker import CircuitBreakerConfig
from resilient_rest.logging import get_log_level_value
from resilient_rest.retry import RetryBackoffPolicy

BreakerScopeSetting = Literal["service", "shared"]


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class RestClientSettings(BaseSettings):
    """Tunables for the resilient REST client, read from ``REST_CLIENT_*``.

    ``log_level`` is not applied by ``build_rest_client``; process bootstrap
    passes it to ``configure_structlog(log_level=settings.log_level)``.
    """

    model_config = prefixed_settings_config("REST_CLIENT_")

    max_retries: int = 4
    backoff_base_seconds: float = 2.0
    backoff_max_seconds: float = 60.0
    failure_threshold: int = 4
    break_duration_seconds: float = 3.0
    http_timeout_seconds: float = 240.0
    breaker_scope: BreakerScopeSetting = "service"
    retry_on_circuit_open: bool = False
    service_urls: dict[str, str] = Field(default_factory=dict)
    log_level: str = "INFO"

    @field_validator("breaker_scope", "log_level", mode="before")
    @classmethod
    def _normalize_choice(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if info.field_name == "log_level":
            return normalized.upper()
        return normalized.lower()

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        get_log_level_value(value)
        return value

    @field_validator("service_urls")
    @classmethod
    def _validate_service_urls(cls, value: dict[str, str]) -> dict[str, str]:
        normalized: dict[str, str] = {}
        for service_id, base_url in value.items():
            url = base_url.strip()
            if not url:
                raise ValueError(f"service_urls[{service_id!r}] must be non-empty")
            if not url.startswith(("http://", "https://")):
                raise ValueError(
                    f"service_urls[{service_id!r}] must be an http(s) URL"
                )
            normalized[service_id] = url.rstrip("/")
        return normalized

    @model_validator(mode="after")
    def _validate_rest_client_settings(self) -> RestClientSettings:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds must be >= 0")
        if self.backoff_max_seconds < 0:
            raise ValueError("backoff_max_seconds must be >= 0")
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.break_duration_seconds < 0:
            raise ValueError("break_duration_seconds must be >= 0")
        if self.http_timeout_seconds <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return self

    def retry_policy(self) -> RetryBackoffPolicy:
        """Build the retry policy described by these settings."""
        return RetryBackoffPolicy.from_max_retries(
            self.max_retries,
            base_seconds=self.backoff_base_seconds,
            max_seconds=self.backoff_max_seconds,
        )

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the circuit breaker configuration described by these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            break_duration=self.break_duration_seconds,
        )

"""Pydantic models for client configuration and account identity."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, HttpUrl, field_validator

from authcall.config.constants import (
    DEFAULT_BACKOFF,
    DEFAULT_DIAGNOSTIC_STATUSES,
    DEFAULT_MAX_DELAY_SEC,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY_SEC,
    DEFAULT_RETRY_STATUSES,
)


class BaseModelWithConfig(BaseModel):
    """Base model enabling alias population and forbidding silent data loss."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class RetrySettings(BaseModelWithConfig):
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    delay_sec: float = Field(default=DEFAULT_RETRY_DELAY_SEC, ge=0)
    backoff: float = Field(default=DEFAULT_BACKOFF, ge=1.0, description="1.0 gives a fixed delay")
    max_delay_sec: float = Field(default=DEFAULT_MAX_DELAY_SEC, ge=0)
    statuses: List[int] = Field(default_factory=lambda: list(DEFAULT_RETRY_STATUSES))

    @field_validator("statuses")
    @classmethod
    def validate_statuses(cls, statuses: List[int]) -> List[int]:
        for code in statuses:
            if not 100 <= code <= 599:
                raise ValueError(f"invalid HTTP status code: {code}")
            if code in (401, 403):
                raise ValueError(f"status {code} is handled by session recovery and cannot be retried")
        return statuses


class DiagnosticsSettings(BaseModelWithConfig):
    log_body_statuses: List[int] = Field(default_factory=lambda: list(DEFAULT_DIAGNOSTIC_STATUSES))


class ServiceSettings(BaseModelWithConfig):
    base_url: HttpUrl
    api_key: Optional[str] = None
    api_key_env: str = "AUTHCALL_API_KEY"
    timeout_sec: float = Field(default=30.0, gt=0)
    connect_retries: int = Field(default=2, ge=0)
    max_workers: int = Field(default=4, ge=1)


class ConnectivitySettings(BaseModelWithConfig):
    probe_url: Optional[HttpUrl] = None
    probe_timeout_sec: float = Field(default=3.0, gt=0)


class UserDetails(BaseModelWithConfig):
    """Identity used to re-issue credentials for the same user."""

    user_id: str = Field(validation_alias=AliasChoices("user_id", "id"))
    display_name: Optional[str] = None
    device_id: Optional[str] = None
    additional_properties: Dict[str, Any] = Field(default_factory=dict)


class SessionSettings(BaseModelWithConfig):
    register_path: str = "/api/registration"
    access_token: Optional[str] = None
    user: Optional[UserDetails] = None


class ClientConfig(BaseModelWithConfig):
    service: ServiceSettings
    retry: RetrySettings = Field(default_factory=RetrySettings)
    diagnostics: DiagnosticsSettings = Field(default_factory=DiagnosticsSettings)
    connectivity: ConnectivitySettings = Field(default_factory=ConnectivitySettings)
    session: SessionSettings = Field(default_factory=SessionSettings)

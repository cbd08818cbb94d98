"""Pydantic configuration models with validation."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from referer_proxy.domain.entities import ProxyConfig

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]


def _normalize_names(value: Any) -> list[str]:
    """Accept a list or a comma-separated string of interface names."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(part) for part in value]
    raise TypeError(f"Expected list or comma-separated string, got: {type(value)!r}")


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned (proxy/http/logging).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    # General
    app_name: str = Field(default="referer-proxy", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # Proxy (YAML section: proxy.*)
    referer: str = Field(
        default="http://play.yoitv.com",
        validation_alias=AliasChoices("referer", AliasPath("proxy", "referer")),
        description="Referer header injected into every upstream request.",
    )
    bind_host: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("bind_host", AliasPath("proxy", "bind_host")),
        description="Interface the listener binds to (port is always ephemeral).",
    )
    advertise_host: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "advertise_host", AliasPath("proxy", "advertise_host")
        ),
        description="Fixed LAN address for proxied URLs. Skips interface discovery.",
    )
    interface_prefixes: list[str] = Field(
        default=["en", "eth", "wl"],
        validation_alias=AliasChoices(
            "interface_prefixes", AliasPath("proxy", "interface_prefixes")
        ),
        description="Interface name prefixes considered for LAN discovery.",
    )
    preferred_interfaces: list[str] = Field(
        default=["en0", "eth0", "wlan0"],
        validation_alias=AliasChoices(
            "preferred_interfaces", AliasPath("proxy", "preferred_interfaces")
        ),
        description="Interfaces that win over other candidates when present.",
    )

    # HTTP (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=15.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Upstream fetch timeout in seconds.",
    )
    http_read_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices(
            "http_read_timeout_seconds",
            AliasPath("http", "read_timeout_seconds"),
        ),
        description="Timeout for reading a receiver's request head.",
    )
    http_max_request_bytes: int = Field(
        default=65536,
        validation_alias=AliasChoices(
            "http_max_request_bytes",
            AliasPath("http", "max_request_bytes"),
        ),
        description="Upper bound on bytes read for one request head.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    @field_validator("interface_prefixes", "preferred_interfaces", mode="before")
    @classmethod
    def _validate_names(cls, v: Any) -> list[str]:
        return _normalize_names(v)

    @field_validator("referer")
    @classmethod
    def _validate_referer(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("referer must not be empty")
        return v.strip()

    @field_validator("http_timeout_seconds", "http_read_timeout_seconds")
    @classmethod
    def _validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @field_validator("http_max_request_bytes")
    @classmethod
    def _validate_max_request_bytes(cls, v: int) -> int:
        if v < 1024:
            raise ValueError("http_max_request_bytes must be >= 1024")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def to_proxy_config(self) -> ProxyConfig:
        """Build the immutable per-proxy settings."""
        return ProxyConfig(
            referer=self.referer,
            upstream_timeout_seconds=self.http_timeout_seconds,
            request_read_timeout_seconds=self.http_read_timeout_seconds,
            max_request_bytes=self.http_max_request_bytes,
        )

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.
        """
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "proxy": {
                "referer": self.referer,
                "bind_host": self.bind_host,
                "advertise_host": self.advertise_host,
                "interface_prefixes": list(self.interface_prefixes),
                "preferred_interfaces": list(self.preferred_interfaces),
            },
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "read_timeout_seconds": self.http_read_timeout_seconds,
                "max_request_bytes": self.http_max_request_bytes,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    load.py creates EnvOverrides() to read REFERER_PROXY_* variables,
    converts to dict of set values, merges into YAML/defaults,
    then validates AppConfig.

    Supported env var examples (flat, explicit):
    - REFERER_PROXY_REFERER
    - REFERER_PROXY_ADVERTISE_HOST
    - REFERER_PROXY_HTTP_TIMEOUT_SECONDS
    - REFERER_PROXY_LOG_LEVEL
    """

    model_config = SettingsConfigDict(
        env_prefix="REFERER_PROXY_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    referer: Optional[str] = None
    bind_host: Optional[str] = None
    advertise_host: Optional[str] = None

    http_timeout_seconds: Optional[float] = None
    http_read_timeout_seconds: Optional[float] = None
    http_max_request_bytes: Optional[int] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)

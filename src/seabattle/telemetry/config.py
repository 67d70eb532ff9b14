"""Telemetry configuration helpers."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Dict

from opentelemetry.sdk.resources import Resource
from pydantic import BaseModel, Field

_TRUTHY = {"1", "true", "yes", "on"}


class TelemetryConfig(BaseModel):
    """Which exporters to run and where to send their data."""

    enable_tracing: bool = False
    enable_metrics: bool = False
    enable_logging: bool = False
    otlp_endpoint: str | None = None
    log_level: str = "INFO"
    service_name: str = "seabattle"
    service_namespace: str = "game"
    resource_attributes: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_env(cls, **overrides: Any) -> "TelemetryConfig":
        """Construct config from `SEABATTLE_*` and the standard `OTEL_*` variables."""

        data: Dict[str, Any] = {}
        flags = {
            "enable_tracing": "SEABATTLE_ENABLE_TRACING",
            "enable_metrics": "SEABATTLE_ENABLE_METRICS",
            "enable_logging": "SEABATTLE_ENABLE_LOGGING",
        }
        for field, env_name in flags.items():
            value = os.getenv(env_name)
            if value is not None:
                data[field] = value.strip().lower() in _TRUTHY

        endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        if endpoint:
            data["otlp_endpoint"] = endpoint.rstrip("/")
            # An endpoint without explicit flags means "export everything".
            for field in flags:
                data.setdefault(field, True)

        level = os.getenv("SEABATTLE_LOG_LEVEL")
        if level:
            data["log_level"] = level.strip().upper()
        service_name = os.getenv("OTEL_SERVICE_NAME")
        if service_name:
            data["service_name"] = service_name

        resource_env = os.getenv("OTEL_RESOURCE_ATTRIBUTES", "")
        attrs = {}
        for part in resource_env.split(","):
            key, sep, value = part.partition("=")
            if sep and key.strip():
                attrs[key.strip()] = value.strip()
        if attrs:
            data["resource_attributes"] = attrs

        data.update(overrides)
        return cls(**data)

    def resource(self) -> Resource:
        """OpenTelemetry resource shared by traces, metrics and logs."""
        attributes = {
            "service.name": self.service_name,
            "service.namespace": self.service_namespace,
        }
        attributes.update(self.resource_attributes)
        return Resource.create(attributes)


@lru_cache(maxsize=1)
def load_telemetry_config() -> TelemetryConfig:
    """Load and cache telemetry config from the environment."""

    return TelemetryConfig.from_env()


def init_telemetry(config: TelemetryConfig | None = None) -> TelemetryConfig:
    """Start the enabled telemetry subsystems; disabled ones stay no-op."""

    from .logger import init_logging
    from .metrics import init_metrics
    from .tracer import init_tracing

    resolved = config or load_telemetry_config()

    if resolved.enable_tracing:
        init_tracing(resolved)
    if resolved.enable_metrics:
        init_metrics(resolved)
    if resolved.enable_logging:
        init_logging(resolved)
    return resolved

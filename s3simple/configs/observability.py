"""Observability config."""

import os

from pydantic import Field
from pydantic_settings import BaseSettings


def get_enable_otel_exporter() -> bool:
    """Get if the otel exporter is enabled."""
    return "OTEL_EXPORTER_OTLP_ENDPOINT" in os.environ


class ObservabilityConfig(BaseSettings):
    """Observability configuration.

    Attributes:
        service_namespace (str): The namespace of the service. Defaults to "s3simple".
        enable_otel_tracer (bool): Whether to export spans over OTLP.
            Defaults to whether "OTEL_EXPORTER_OTLP_ENDPOINT" is set.
        enable_console_tracer (bool): Whether to print spans to the console. Defaults to False.
        enable_otel_logs (bool): Whether to export log records over OTLP.
            Defaults to whether "OTEL_EXPORTER_OTLP_ENDPOINT" is set.
        enable_console_logs (bool): Whether to print exported log records to the console. Defaults to False.
        suppress_httpx_logs (bool): Whether to lower the httpx and httpcore loggers to WARNING. Defaults to True.

    """

    service_namespace: str = "s3simple"

    enable_otel_tracer: bool = Field(
        default_factory=get_enable_otel_exporter, description="Whether to export spans over OTLP."
    )
    enable_console_tracer: bool = Field(default=False, description="Whether to print spans to the console.")

    enable_otel_logs: bool = Field(
        default_factory=get_enable_otel_exporter, description="Whether to export log records over OTLP."
    )
    enable_console_logs: bool = Field(default=False, description="Whether to print exported log records.")

    suppress_httpx_logs: bool = Field(default=True, description="Whether to suppress the httpx logs.")

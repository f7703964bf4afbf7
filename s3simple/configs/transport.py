"""S3 transport config."""

from typing import Self

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from s3simple.exceptions import S3ConfigurationClientException


class S3TransportConfig(BaseSettings):
    """Pooled HTTP client configuration.

    Attributes:
        connect_timeout (float): Seconds to wait for a connection. Defaults to 10.
        tcp_keepalive (float): Seconds of idleness before TCP keepalive probes start. Defaults to 30.
        pool_idle_timeout (float): Seconds an idle pooled connection is kept. Defaults to 600.
        read_timeout (float | None): Seconds to wait for response data. Defaults to None (no limit).
        max_connections (int): Upper bound of pooled connections. Defaults to 100.
        danger_allow_insecure (bool): Whether to accept invalid TLS certificates. Defaults to False.

    """

    model_config = SettingsConfigDict(env_prefix="S3_TRANSPORT_")

    connect_timeout: float = Field(default=10.0, gt=0, description="Seconds to wait for a connection.")
    tcp_keepalive: float = Field(default=30.0, gt=0, description="Seconds of idleness before keepalive probes.")
    pool_idle_timeout: float = Field(default=600.0, gt=0, description="Seconds an idle pooled connection is kept.")
    read_timeout: float | None = Field(default=None, description="Seconds to wait for response data.")
    max_connections: int = Field(default=100, gt=0, description="Upper bound of pooled connections.")
    danger_allow_insecure: bool = Field(
        default=False, description="Whether to accept invalid TLS certificates. Never enable in production."
    )

    @classmethod
    def from_env(cls) -> Self:
        """Load the config from the environment.

        Raises:
            S3ConfigurationClientException: If a variable cannot be parsed.

        """
        try:
            return cls()
        except ValidationError as e:
            msg = f"invalid S3 transport configuration: {e}"
            raise S3ConfigurationClientException(msg) from e

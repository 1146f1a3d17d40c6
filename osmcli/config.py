"""Application configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from osmcli import __version__


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Settings are loaded in this priority order (highest to lowest):
    1. Environment variables (prefixed with OSMCLI_)
    2. .env file (for local development)
    3. Default values

    Command-line flags override the resulting values for a single run.
    """

    model_config = SettingsConfigDict(
        env_prefix="OSMCLI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Servers
    # =========================================================================
    api_server: str = Field(
        default="https://www.openstreetmap.org",
        description="OSM API server used for element and changeset lookups",
    )
    replication_server: str = Field(
        default="https://planet.openstreetmap.org",
        description="Server hosting the replication feeds (minute, changesets, ...)",
    )

    # =========================================================================
    # HTTP
    # =========================================================================
    http_timeout: float = 30.0
    http_max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts per request for 5xx responses and connection errors",
    )
    http_retry_delay: float = 2.0  # seconds, doubled on each retry
    user_agent: str = f"osmcli/{__version__}"

    # =========================================================================
    # Replication
    # =========================================================================
    # The minutely feed publishes once a minute; polling faster only adds load.
    poll_interval: float = Field(
        default=60.0,
        gt=0,
        description="Seconds to wait between polls of the current state in watch mode",
    )
    resolver_probe_limit: int = Field(
        default=10,
        ge=0,
        description="Neighbours to try when an interpolated seqno is missing",
    )

    # =========================================================================
    # Logging
    # =========================================================================
    log_level: str = "INFO"


settings = Settings()

"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """JanmaSetu identity engine configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback: the MCP surface has no auth layer of its own.
    # Opt into `0.0.0.0` explicitly when a deployment wraps it in one.
    janmasetu_host: str = "127.0.0.1"
    janmasetu_port: int = 8011
    janmasetu_log_level: str = "info"
    # If binding to non-loopback, refuse to start unless this is set true.
    janmasetu_allow_insecure_bind: bool = False

    # Storage (identity registry)
    db_path: str = "~/.janmasetu/identities.db"

    # Encryption of birth-event demographics at rest
    encryption_key: str = ""

    # Temporary reference generation; unique per deployment instance
    id_shard: int = Field(default=0, ge=0, le=999)

    # Optimistic-concurrency retries per identity mutation
    occ_max_retries: int = Field(default=3, ge=0)

    # Connectors
    district_reports_path: str = ""
    mock_data_seed: int | None = None


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()

# ============================================================================
# HEALTH SERVICE CONFIGURATION
# ============================================================================
# STATUS: Core - Environment-based configuration
# PURPOSE: Central settings for probes, routes and rendering
# ============================================================================
"""
Health Service Configuration

Loads configuration from environment variables with sensible defaults.
Process bootstrap (locating env files, secrets) happens outside this
module; by the time from_env() runs the environment is assumed complete.

Datastore connection priority matches the rest of the stack:
1. DATABASE_URL
2. Individual POSTGRES_* components
"""

import os
import shlex
import logging
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)

TRUTHY = ("1", "true", "on", "yes")


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in TRUTHY


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={value!r}, using {default}")
        return default


@dataclass
class HealthConfig:
    """Configuration for the health endpoint."""

    # Filesystem root holding the `.info` build artifact
    app_root: str = field(default_factory=os.getcwd)

    # Response behaviour
    slow_threshold_seconds: float = 4.0
    pretty_json: bool = True

    # Access tokens (empty disables the token)
    auth_token: str = ""
    admin_token: str = ""

    # Datastore
    database_url: Optional[str] = None
    failover_database_url: Optional[str] = None
    postgres_host: str = "localhost"
    postgres_port: str = "5432"
    postgres_db: str = "postgres"
    postgres_user: str = "postgres"
    postgres_password: str = ""
    postgres_sslmode: str = "prefer"
    connect_timeout_seconds: float = 3.0
    options_table: str = "options"

    # Object cache
    redis_url: str = "redis://localhost:6379/0"

    # Platform section
    platform_version: Optional[str] = None
    schema_version: Optional[int] = None
    cli_version_command: List[str] = field(default_factory=list)
    cli_timeout_seconds: float = 2.0

    @classmethod
    def from_env(cls) -> "HealthConfig":
        """Load configuration from environment variables."""
        schema_version = os.environ.get("PLATFORM_SCHEMA_VERSION")
        return cls(
            app_root=os.environ.get("HEALTH_APP_ROOT") or os.getcwd(),
            slow_threshold_seconds=_env_float("HEALTH_SLOW_THRESHOLD_SECONDS", 4.0),
            pretty_json=_env_bool("HEALTH_PRETTY_JSON", True),
            auth_token=os.environ.get("HEALTH_AUTH_TOKEN", ""),
            admin_token=os.environ.get("HEALTH_ADMIN_TOKEN", ""),
            database_url=os.environ.get("DATABASE_URL"),
            failover_database_url=os.environ.get("DATABASE_FAILOVER_URL"),
            postgres_host=os.environ.get("POSTGRES_HOST", "localhost"),
            postgres_port=os.environ.get("POSTGRES_PORT", "5432"),
            postgres_db=os.environ.get("POSTGRES_DB", "postgres"),
            postgres_user=os.environ.get("POSTGRES_USER", "postgres"),
            postgres_password=os.environ.get("POSTGRES_PASSWORD", ""),
            postgres_sslmode=os.environ.get("POSTGRES_SSLMODE", "prefer"),
            connect_timeout_seconds=_env_float("HEALTH_DB_CONNECT_TIMEOUT_SECONDS", 3.0),
            options_table=os.environ.get("HEALTH_OPTIONS_TABLE", "options"),
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
            platform_version=os.environ.get("PLATFORM_VERSION"),
            schema_version=int(schema_version) if schema_version and schema_version.isdigit() else None,
            cli_version_command=shlex.split(os.environ.get("HEALTH_CLI_VERSION_COMMAND", "")),
            cli_timeout_seconds=_env_float("HEALTH_CLI_TIMEOUT_SECONDS", 2.0),
        )

    def get_connection_string(self) -> str:
        """Primary datastore connection string."""
        if self.database_url:
            return self.database_url

        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            f"?sslmode={self.postgres_sslmode}"
        )

    @property
    def has_failover(self) -> bool:
        """A secondary datastore is detectable in the environment."""
        return bool(self.failover_database_url)


# Global config singleton
_config: Optional[HealthConfig] = None


def get_config() -> HealthConfig:
    """Get the global configuration singleton."""
    global _config
    if _config is None:
        _config = HealthConfig.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (next get_config() re-reads env)."""
    global _config
    _config = None


__all__ = ["HealthConfig", "get_config", "reset_config", "TRUTHY"]

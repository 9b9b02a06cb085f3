"""
Application settings using Pydantic for type-safe configuration.

Loads configuration from environment variables with defaults suitable for
local runs against the public provider APIs.
"""

from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists
load_dotenv()


class HttpSettings(BaseSettings):
    """Outbound HTTP client configuration shared by every connector."""

    model_config = SettingsConfigDict(env_prefix="JOBSYNC_HTTP_", extra="ignore")

    user_agent: str = Field(default="JobSync-SourceConnector/1.0")
    timeout_connect_s: float = Field(default=10.0)
    timeout_read_s: float = Field(default=20.0)
    rate_limit_per_host_s: float = Field(default=0.2)
    max_retries: int = Field(default=2)
    backoff_base_s: float = Field(default=0.5)
    backoff_max_s: float = Field(default=30.0)
    # Below this many remaining requests the client slows down for that host.
    low_quota_threshold: int = Field(default=10)
    low_quota_interval_s: float = Field(default=2.0)
    require_allowlist: bool = Field(default=True)
    extra_allowlist_hosts: str = Field(default="")

    @property
    def extra_hosts(self) -> List[str]:
        return [h.strip().lower() for h in self.extra_allowlist_hosts.split(",") if h.strip()]


class GitHubSettings(BaseSettings):
    """GitHub Issues API configuration."""

    model_config = SettingsConfigDict(env_prefix="GITHUB_", extra="ignore")

    token: Optional[str] = Field(default=None)
    api_base_url: str = Field(default="https://api.github.com")
    per_page: int = Field(default=100)
    max_pages: int = Field(default=50)


class SyncSettings(BaseSettings):
    """Orchestrator scheduling and locking."""

    model_config = SettingsConfigDict(env_prefix="JOBSYNC_SYNC_", extra="ignore")

    lock_stale_minutes: int = Field(default=20)
    default_interval_minutes: int = Field(default=30)
    run_discovery: bool = Field(default=True)


class DiscoverySettings(BaseSettings):
    """Static source catalogs read by discovery."""

    model_config = SettingsConfigDict(env_prefix="JOBSYNC_DISCOVERY_", extra="ignore")

    github_catalog_path: str = Field(default="seed/brazilian-job-ecosystem.json")
    ats_catalog_path: str = Field(default="seed/international-ats-sources.json")
    min_auto_enable_confidence: int = Field(default=80)


class DatabaseSettings(BaseSettings):
    """Postgres connection for the durable store."""

    model_config = SettingsConfigDict(env_prefix="JOBSYNC_DB_", extra="ignore")

    host: str = Field(default="localhost")
    port: int = Field(default=5432)
    name: str = Field(default="jobsync")
    user: str = Field(default="")
    password: str = Field(default="")

    def dsn(self) -> str:
        # An empty user makes psycopg2 fail with a clear auth error instead of
        # silently connecting with insecure defaults.
        if not self.user:
            raise EnvironmentError("Postgres user not set. Configure JOBSYNC_DB_USER.")
        return f"host={self.host} port={self.port} dbname={self.name} user={self.user} password={self.password}"


class LocalSettings(BaseSettings):
    """Local development settings."""

    model_config = SettingsConfigDict(extra="ignore")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


class Settings(BaseSettings):
    """Main settings container aggregating all configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    http: HttpSettings = Field(default_factory=HttpSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    local: LocalSettings = Field(default_factory=LocalSettings)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once and cached for the lifetime of the process.

    Returns:
        Settings instance with all configuration loaded
    """
    return Settings()

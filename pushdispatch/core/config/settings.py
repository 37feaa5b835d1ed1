# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the
push notification dispatch pipeline. Settings are loaded from
environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from pushdispatch.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> settings.fcm.resolve_mode()
    FcmV1Mode(project_id='my-project', ...)
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal, Self, TypeAlias

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PASSWORD = "pushdispatch_password"


class DatabaseSettings(BaseSettings):
    """Database configuration for the device registry and delivery log.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        url_override: Full async URL, takes precedence over components.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "pushdispatch"
    password: SecretStr = SecretStr(DEFAULT_DB_PASSWORD)
    host: str = "localhost"
    port: int = 5432
    database: str = "pushdispatch"
    url_override: str | None = Field(
        default=None,
        validation_alias="DATABASE_URL",
    )
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        if self.url_override:
            return self.url_override
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class RedisSettings(BaseSettings):
    """Redis configuration for the job queue broker.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password (empty for no auth).
        database: Redis database number.
        url: Full Redis connection URL.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 6379
    password: SecretStr = SecretStr("")
    database: int = 0

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        if pwd:
            return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"
        return f"redis://{self.host}:{self.port}/{self.database}"


class APNsSettings(BaseSettings):
    """Apple Push Notification service configuration.

    Token-based provider authentication: the .p8 signing key is used to
    sign ES256 provider tokens; no per-request credentials.

    Attributes:
        key_id: Key identifier of the signing key.
        team_id: Apple developer team identifier.
        bundle_id: App bundle id, sent as the apns-topic header.
        private_key_path: Path to the .p8 signing key.
        production: Use the production endpoint instead of sandbox.
    """

    model_config = SettingsConfigDict(
        env_prefix="APNS_",
        extra="ignore",
    )

    key_id: str | None = None
    team_id: str | None = None
    bundle_id: str | None = None
    private_key_path: str | None = None
    production: bool = False

    @property
    def is_configured(self) -> bool:
        """Check whether all APNs credentials are present."""
        return all([self.key_id, self.team_id, self.bundle_id, self.private_key_path])


@dataclass(frozen=True)
class FcmV1Mode:
    """FCM HTTP v1 API with an OAuth2 service account.

    Either credentials_path or the inline client_email/private_key pair
    provides the service account.
    """

    project_id: str
    client_email: str | None = None
    private_key: str | None = None
    credentials_path: str | None = None


@dataclass(frozen=True)
class FcmLegacyMode:
    """Legacy FCM HTTP API authenticated by a static server key."""

    server_key: str


FcmMode: TypeAlias = FcmV1Mode | FcmLegacyMode


class FCMSettings(BaseSettings):
    """Firebase Cloud Messaging configuration.

    The operating mode is chosen once by use_v1_api; the two modes are
    never mixed within one deployment.

    Attributes:
        use_v1_api: Use the HTTP v1 API (default) instead of the legacy API.
        project_id: Firebase project id (v1).
        client_email: Service account email (v1, inline credentials).
        private_key: Service account private key (v1, inline credentials).
        credentials_path: Service account JSON file (v1).
        server_key: Legacy server key.
        timeout: HTTP timeout per provider call in seconds.
        max_concurrency: Parallel in-flight sends within a chunk.
    """

    model_config = SettingsConfigDict(
        env_prefix="FCM_",
        extra="ignore",
    )

    use_v1_api: bool = True
    project_id: str | None = None
    client_email: str | None = None
    private_key: SecretStr | None = None
    credentials_path: str | None = None
    server_key: SecretStr | None = None
    timeout: float = 30.0
    max_concurrency: int = 50

    def resolve_mode(self) -> FcmMode | None:
        """Resolve the configured operating mode.

        Returns:
            FcmV1Mode or FcmLegacyMode, or None when the selected mode
            is missing required credentials.
        """
        if self.use_v1_api:
            if not self.project_id:
                return None
            if self.credentials_path:
                return FcmV1Mode(
                    project_id=self.project_id,
                    credentials_path=self.credentials_path,
                )
            if not self.client_email or not self.private_key:
                return None
            # Keys pasted into env files usually carry escaped newlines
            private_key = self.private_key.get_secret_value().replace("\\n", "\n")
            return FcmV1Mode(
                project_id=self.project_id,
                client_email=self.client_email,
                private_key=private_key,
            )

        if not self.server_key or not self.server_key.get_secret_value():
            return None
        return FcmLegacyMode(server_key=self.server_key.get_secret_value())


class QueueSettings(BaseSettings):
    """Notification job queue configuration.

    Attributes:
        max_attempts: Total processing attempts per job (first try included).
        backoff_base_ms: Delay before the first retry; doubles per retry.
        backoff_max_ms: Upper bound for the retry delay.
        enqueue_timeout: Seconds to wait for the broker before failing an enqueue.
        completed_ttl_seconds: How long completed job results are kept.
        failed_ttl_seconds: How long dead-lettered jobs are kept.
        heartbeat_timeout_ms: Worker heartbeat window before its jobs are requeued.
        time_limit_ms: Hard time limit for one job attempt.
    """

    model_config = SettingsConfigDict(
        env_prefix="QUEUE_",
        extra="ignore",
    )

    max_attempts: int = 3
    backoff_base_ms: int = 2000
    backoff_max_ms: int = 60000
    enqueue_timeout: float = 5.0
    completed_ttl_seconds: int = 3600
    failed_ttl_seconds: int = 86400
    heartbeat_timeout_ms: int = 60000
    time_limit_ms: int = 600000

    @property
    def max_retries(self) -> int:
        """Retries after the first attempt."""
        return max(0, self.max_attempts - 1)


class WorkerSettings(BaseSettings):
    """Background worker configuration.

    Attributes:
        processes: Number of worker processes.
        threads: Number of threads per process.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        extra="ignore",
    )

    processes: int = 2
    threads: int = 4


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        metrics_namespace: Prefix for Prometheus metric names.
        db: Database settings.
        redis: Redis settings.
        apns: APNs provider settings.
        fcm: FCM provider settings.
        queue: Job queue settings.
        worker: Background worker settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"
    metrics_namespace: str = "pushdispatch"

    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    apns: APNsSettings = Field(default_factory=APNsSettings)
    fcm: FCMSettings = Field(default_factory=FCMSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production" and not self.db.url_override:
            if self.db.password.get_secret_value() == DEFAULT_DB_PASSWORD:
                raise ValueError(
                    "Database password must be changed from default in production. "
                    "Set DB_PASSWORD or DATABASE_URL environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing or when the environment changes at runtime.
    """
    get_settings.cache_clear()

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"
    api_port: int = 3000
    log_level: str = "INFO"

    postgres_host: str = "127.0.0.1"
    postgres_port: int = 5432
    postgres_db: str = "whatsconnect"
    postgres_user: str = "whatsconnect"
    postgres_password: str = "whatsconnect"
    database_url_override: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL_OVERRIDE", "DATABASE_URL"),
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_auto_create: bool = False

    cors_allowed_origins_raw: str = (
        "http://localhost:8080,http://localhost:5173,http://127.0.0.1:5173"
    )
    trusted_hosts_raw: str = "127.0.0.1,localhost"
    force_https: bool = False

    transport_factory: str = "whatsconnect.infra.transport.loopback:LoopbackTransport"
    loopback_auto_pair: bool = True
    session_auto_start: bool = True
    session_max_retries: int = Field(default=3, ge=0)
    session_backoff_base_ms: int = Field(default=1000, ge=1)
    session_backoff_cap_ms: int = Field(default=10000, ge=1)
    session_reconnect_settle_seconds: float = Field(default=2.0, ge=0)
    session_disconnect_settle_seconds: float = Field(default=1.5, ge=0)
    session_send_timeout_seconds: float = Field(default=60.0, gt=0)
    session_lookup_timeout_seconds: float = Field(default=5.0, gt=0)
    pairing_image_enabled: bool = True

    ingestion_queue_size: int = Field(default=1000, ge=1)
    sla_threshold_minutes: int = Field(default=120, ge=1)
    sla_urgent_window_minutes: int = Field(default=30, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def cors_allowed_origins(self) -> list[str]:
        return [
            origin.strip()
            for origin in self.cors_allowed_origins_raw.split(",")
            if origin.strip()
        ]

    @property
    def trusted_hosts(self) -> list[str]:
        return [
            host.strip() for host in self.trusted_hosts_raw.split(",") if host.strip()
        ]

    def validate_security_settings(self) -> None:
        if self.app_env.lower() != "production":
            return

        if not self.cors_allowed_origins:
            raise ValueError(
                "CORS_ALLOWED_ORIGINS_RAW must define explicit origins in production."
            )
        if "*" in self.cors_allowed_origins:
            raise ValueError("Wildcard CORS origin is not allowed in production.")
        if not self.trusted_hosts:
            raise ValueError(
                "TRUSTED_HOSTS_RAW must define explicit hosts in production."
            )
        if "*" in self.trusted_hosts:
            raise ValueError("Wildcard trusted host is not allowed in production.")
        if self.transport_factory.endswith(":LoopbackTransport"):
            raise ValueError(
                "TRANSPORT_FACTORY must point at a real messaging bridge in production."
            )


@lru_cache
def get_settings() -> Settings:
    return Settings()

from functools import lru_cache
from typing import Self

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Only ever used outside production; see enforce_secret_policy.
DEV_FALLBACK_JWT_SECRET = "dev-only-theater-pos-signing-secret-do-not-deploy"
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "Theater POS"
    app_env: str = "development"  # development, testing, production
    debug: bool = False
    enable_openapi: bool = True  # Set to False in production

    # Security
    log_usernames: bool = False
    trusted_proxy_ips: list[str] = []  # List of trusted proxy IPs for X-Forwarded-For
    csp_production: str = "default-src 'self'; frame-ancestors 'none'"

    # Database
    database_url: str = "sqlite+aiosqlite:///./theaterpos.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_ready_timeout_seconds: float = 40.0

    # Shutdown
    shutdown_grace_period: int = 30

    # Auth
    jwt_secret_key: str | None = None
    jwt_refresh_secret_key: str | None = None
    jwt_algorithm: str = "HS256"
    jwt_secret_is_fallback: bool = False
    access_token_expire_minutes: int = 24 * 60
    refresh_token_expire_days: int = 7
    pending_auth_expire_minutes: int = 5
    agent_grant_expire_minutes: int = 5
    customer_stream_token_expire_minutes: int = 180
    require_pending_auth_secret: bool = False
    session_check_fail_closed: bool = False  # Fail with 503 instead of trusting the token
    argon2_time_cost: int = 3
    argon2_memory_cost: int = 65536
    argon2_parallelism: int = 1

    # Credential cleanup
    cleanup_interval_minutes: float = 60.0
    cleanup_retention_days: int = 30  # Keep ended sessions and spent grants this long

    # Notification bus (SSE)
    sse_keepalive_seconds: float = 30.0
    sse_queue_size: int = 100

    # Agent supervisor
    agent_autostart_enabled: bool = True
    agent_backend_url: str = "http://127.0.0.1:8000/api/v1"
    agent_probe_timeout_seconds: float = 5.0
    agent_monitor_interval_seconds: float = 30.0
    agent_stale_timeout_seconds: float = 120.0
    agent_restart_delay_seconds: float = 10.0
    agent_backoff_initial_seconds: float = 1.0
    agent_backoff_max_seconds: float = 60.0
    printer_spool_dir: str | None = None

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Metrics
    metrics_api_key: str | None = None  # If set, /metrics requires this key

    # Rate Limiting (global middleware - DoS protection)
    global_rate_limit_per_second: int = 10  # Max requests/second per IP
    global_rate_limit_burst: int = 20  # Token bucket burst capacity

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: list[str]) -> list[str]:
        """Validate CORS origins - reject wildcards when credentials are used."""
        for origin in v:
            if origin == "*":
                raise ValueError(
                    "CORS wildcard '*' is not allowed when allow_credentials=True. "
                    "Specify explicit origins instead."
                )
        return v

    @model_validator(mode="after")
    def enforce_secret_policy(self) -> Self:
        """Reject weak signing secrets in production, substitute a fallback elsewhere."""
        secret = self.jwt_secret_key or ""
        if len(secret.encode()) < MIN_SECRET_LENGTH:
            if self.is_production:
                raise ValueError(
                    f"JWT_SECRET_KEY must be set and at least {MIN_SECRET_LENGTH} bytes "
                    "in production. Generate one with: openssl rand -hex 32"
                )
            self.jwt_secret_key = DEV_FALLBACK_JWT_SECRET
            self.jwt_secret_is_fallback = True

        refresh = self.jwt_refresh_secret_key or ""
        if len(refresh.encode()) < MIN_SECRET_LENGTH:
            if self.is_production and refresh:
                raise ValueError(
                    f"JWT_REFRESH_SECRET_KEY must be at least {MIN_SECRET_LENGTH} bytes"
                )
            self.jwt_refresh_secret_key = f"{self.jwt_secret_key}:refresh"
        return self

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    return Settings()

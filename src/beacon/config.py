"""Configuration management for Beacon."""

import logging
import secrets
import warnings
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Delay before attempt N+1, indexed by N-1 (seconds): 1 min, 5 min, 30 min, 2 h, 6 h
DEFAULT_RETRY_DELAYS: list[int] = [60, 300, 1800, 7200, 21600]


def _generate_dev_secret_key() -> str:
    """Generate a random auth secret for development use.

    Tokens signed with it become invalid on restart, which is acceptable
    outside production. Production always requires an explicit key.
    """
    return secrets.token_hex(32)


class Settings(BaseSettings):
    """Beacon configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the BEACON_ prefix. For example:
        BEACON_ENV=production
        BEACON_DATABASE_URL=postgresql+asyncpg://beacon@db/beacon
        BEACON_RETRY_DELAYS='[10, 20, 40, 80]'

    Security Notes:
        - In production (BEACON_ENV=production), webhook URLs must be HTTPS
        - In production, auth is enabled by default and needs an explicit key
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    storage_backend: Literal["memory", "sql"] = Field(
        default="sql",
        description="Where subscriptions and delivery logs are kept",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./beacon.db",
        description="SQLAlchemy async database URL (used when storage_backend == 'sql')",
    )
    redis_url: str | None = Field(
        default=None,
        description="Redis URL for a shared job queue. If not set, an in-process queue is used.",
    )
    queue_visibility_timeout_seconds: float = Field(
        default=120.0,
        gt=0.0,
        description=(
            "Seconds a job popped from the Redis queue stays leased before another "
            "process may take it. Must exceed delivery_timeout_seconds."
        ),
    )

    # Subscription limits
    max_webhooks_per_user: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum webhook subscriptions a single owner may hold",
    )

    # Delivery
    delivery_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Hard bound on a single delivery attempt",
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Delivery attempts per job before it fails terminally",
    )
    retry_delays: list[int] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_DELAYS),
        description="Seconds to wait after failed attempt N before attempt N+1",
    )
    failure_threshold: int = Field(
        default=5,
        ge=1,
        le=1000,
        description=(
            "Terminally failed jobs after which a subscription is deactivated. "
            "Independent from max_attempts even though both default to 5."
        ),
    )
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Concurrent in-flight delivery attempts per scheduler",
    )
    scheduler_poll_interval: float = Field(
        default=1.0,
        gt=0.0,
        le=60.0,
        description="Seconds between queue polls in the background scheduler",
    )
    user_agent: str = Field(
        default="Beacon-Webhook/1.0",
        description="User-Agent header sent with every delivery",
    )

    # Delivery logs
    delivery_log_default_limit: int = Field(default=50, ge=1, le=1000)
    delivery_log_max_limit: int = Field(default=100, ge=1, le=1000)

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log format: json for production, text for development",
    )

    # Authentication for the management API
    auth_enabled: bool | None = Field(
        default=None,
        description="Require bearer tokens. Defaults to True in production, False elsewhere.",
    )
    auth_secret_key: str | None = Field(
        default=None,
        description="Secret used to sign management API tokens. Required in production.",
    )
    auth_token_expire_minutes: int = Field(default=60, ge=1)

    # Runtime-generated dev secret (not from env, generated at startup if needed)
    _runtime_dev_secret: str | None = None

    model_config = {
        "env_prefix": "BEACON_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_retry_policy(self) -> "Settings":
        """Every retry after a failed attempt needs a delay entry."""
        if any(delay <= 0 for delay in self.retry_delays):
            raise ValueError(f"retry_delays must all be positive, got {self.retry_delays}")
        if len(self.retry_delays) < self.max_attempts - 1:
            raise ValueError(
                f"retry_delays has {len(self.retry_delays)} entries but max_attempts="
                f"{self.max_attempts} needs at least {self.max_attempts - 1}"
            )
        if self.delivery_log_default_limit > self.delivery_log_max_limit:
            raise ValueError("delivery_log_default_limit must not exceed delivery_log_max_limit")
        if self.queue_visibility_timeout_seconds <= self.delivery_timeout_seconds:
            raise ValueError(
                "queue_visibility_timeout_seconds must exceed delivery_timeout_seconds"
            )
        return self

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        """Resolve auth defaults and fail fast on unsafe production config."""
        is_production = self.env == "production"

        if self.auth_enabled is None:
            object.__setattr__(self, "auth_enabled", is_production)

        if is_production:
            if self.auth_enabled and self.auth_secret_key is None:
                raise ValueError(
                    "BEACON_AUTH_SECRET_KEY must be set in production. "
                    'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
                )
            if not self.auth_enabled:
                warnings.warn(
                    "Authentication is disabled in production environment. "
                    "Set BEACON_AUTH_ENABLED=true unless the host app authenticates requests.",
                    UserWarning,
                    stacklevel=2,
                )
                logger.warning("Authentication disabled in production")
        elif self.auth_secret_key is None:
            object.__setattr__(self, "_runtime_dev_secret", _generate_dev_secret_key())
            logger.debug("Generated random auth secret for development")

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def is_auth_enabled(self) -> bool:
        """Get resolved auth_enabled value (always bool, never None)."""
        if self.auth_enabled is None:
            return self.is_production
        return self.auth_enabled

    @property
    def effective_auth_secret_key(self) -> str:
        """The configured auth secret, or the runtime dev secret."""
        if self.auth_secret_key is not None:
            return self.auth_secret_key
        if self._runtime_dev_secret is None:
            object.__setattr__(self, "_runtime_dev_secret", _generate_dev_secret_key())
        return self._runtime_dev_secret  # type: ignore[return-value]


# Global settings instance
settings = Settings()

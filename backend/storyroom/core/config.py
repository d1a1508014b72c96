"""Application configuration using Pydantic settings."""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str):
    """Simple enum-like helper for environment tagging."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


DEFAULT_ALLOWED_ORIGINS = [
    "https://fantasmia.it",
    "https://www.fantasmia.it",
    "https://lovable.app",
    "https://www.lovable.app",
    "https://lovable.dev",
    "http://localhost:5173",
    "http://localhost:3000",
]

DEFAULT_ALLOWED_ORIGIN_PATTERNS = [
    r"^https://.*\.lovableproject\.com$",
    r"^https://.*\.lovable\.app$",
    r"^https://.*\.lovable\.dev$",
]


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = Field(default="Story Room Service", description="Service name")
    api_prefix: str = Field(default="/api", description="Base API prefix")
    environment: str = Field(default=Environment.DEVELOPMENT, description="Runtime environment tag")
    log_level: str = Field(default="INFO", description="Root log level")
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URI"
    )
    store_key_prefix: str = Field(
        default="storyroom", description="Namespace prepended to every store key"
    )
    room_floor_ttl_seconds: int = Field(
        default=60,
        ge=1,
        description="Minimum store TTL so deleted rooms still read as expired for a while",
    )
    room_cas_max_retries: int = Field(
        default=5, ge=1, description="Attempts before a contended room update gives up"
    )
    admin_jwt_secret: str = Field(
        default="", description="HMAC secret for signing admin session tokens"
    )
    room_session_secret: str = Field(
        default="", description="HMAC secret for signing room invite tokens"
    )
    admin_password: str = Field(default="", description="Password exchanged for an ADMIN token")
    superuser_passwords: dict[str, str] = Field(
        default_factory=dict, description="Superuser name to password mapping"
    )
    admin_token_expire_minutes: int = Field(
        default=60, description="Admin session lifetime in minutes"
    )
    public_base_url: str = Field(
        default="https://fantasmia.it", description="Base URL used for shareable invite links"
    )
    join_requires_invite: bool = Field(
        default=False, description="Require a signed invite token to join a room"
    )
    cors_allow_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))
    cors_allow_origin_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGIN_PATTERNS)
    )
    enable_room_sweeper: bool = Field(
        default=False, description="Whether to start the background live-index sweeper"
    )
    room_sweep_interval: float = Field(
        default=300.0, description="Seconds between live-index sweeps"
    )


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings instance."""
    return AppSettings()

"""Application settings loaded from environment / .env file."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Server ────────────────────────────────────────────
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    log_level: str = "INFO"
    allowed_origins: str = "*"

    # ── Security ──────────────────────────────────────────
    api_key: str = ""  # MUST be set in production
    jwt_secret_key: str = ""  # optional: enables tenant-scoped JWTs
    jwt_algorithm: str = "HS256"

    # ── Chat bridge / credentials ─────────────────────────
    credential_path: str = "./.chatgate_auth"
    bridge_url: str = "ws://localhost:3001"
    bridge_token: str = ""

    # ── Session lifecycle timings (seconds) ───────────────
    pairing_window_seconds: float = 60.0
    pairing_code_timeout_seconds: float = 10.0
    client_init_timeout_seconds: float = 60.0
    ready_timeout_seconds: float = 30.0
    # Gap between destroy and create on replace; never below 1s
    replace_settle_seconds: float = Field(default=1.0, ge=1.0)

    # ── Webhooks ──────────────────────────────────────────
    enable_webhooks: bool = True
    webhook_timeout_seconds: float = 10.0

    # ── Startup ───────────────────────────────────────────
    # Bring every tenant with stored credentials back online at boot
    restore_on_startup: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()

"""
Academy API — Configuration
All settings are read from environment variables (or .env file) once per process.
"""
from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    SERVICE_NAME: str = "academy-api"
    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(
        default="development", validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV")
    )
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 4000
    LOG_LEVEL: str = "INFO"

    # ── MongoDB ───────────────────────────────────────────────
    MONGODB_URI: str = ""
    MONGODB_DB: str = "academy"
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = 30000
    MONGODB_SOCKET_TIMEOUT_MS: int = 45000

    # ── Identity provider (Clerk) ─────────────────────────────
    CLERK_SECRET_KEY: str = ""
    CLERK_API_URL: str = "https://api.clerk.com/v1"
    CLERK_JWT_KEY: str = ""
    CLERK_JWT_ALGORITHM: str = "RS256"
    CLERK_AUTHORIZED_PARTIES: str = ""
    CLERK_SESSION_COOKIE: str = "__session"
    IDP_HTTP_TIMEOUT_SECONDS: float = 10.0

    @property
    def authorized_parties(self) -> list[str]:
        return _split_csv(self.CLERK_AUTHORIZED_PARTIES)

    # ── CORS ──────────────────────────────────────────────────
    ALLOWED_ORIGINS: str = ""

    @property
    def allowed_origins(self) -> list[str]:
        return _split_csv(self.ALLOWED_ORIGINS)

    # ── Redis ─────────────────────────────────────────────────
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_COMMAND_TIMEOUT: float = 0.5

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── Rate Limiting ─────────────────────────────────────────
    RATE_LIMIT_WINDOW_MS: int = 5 * 60 * 1000
    RATE_LIMIT_API_MAX: int = 300
    RATE_LIMIT_BURST_WINDOW_MS: int = 60 * 1000
    RATE_LIMIT_BURST_MAX: int = 30
    RATE_LIMIT_BURST_PATHS: str = "/api/sign-up"
    TRUST_PROXY: bool = True

    @field_validator(
        "RATE_LIMIT_WINDOW_MS",
        "RATE_LIMIT_API_MAX",
        "RATE_LIMIT_BURST_WINDOW_MS",
        "RATE_LIMIT_BURST_MAX",
        mode="before",
    )
    @classmethod
    def _non_negative_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        default = cls.model_fields[info.field_name].default
        try:
            number = int(float(value))
        except (TypeError, ValueError):
            return default
        return number if number >= 0 else default

    @property
    def burst_paths(self) -> list[str]:
        return _split_csv(self.RATE_LIMIT_BURST_PATHS)

    # ── Auth ──────────────────────────────────────────────────
    ROLE_CACHE_TTL_SECONDS: int = 60

    # ── Request bodies ────────────────────────────────────────
    BODY_LIMIT_BYTES: int = 100 * 1024

    # ── Content Security Policy hosts ─────────────────────────
    CSP_IDP_ORIGIN: str = "https://clerk.dillaracademy.org"
    CSP_IDP_API_ORIGIN: str = "https://api.clerk.com"
    CSP_CAPTCHA_ORIGIN: str = "https://challenges.cloudflare.com"
    CSP_FORM_ORIGINS: str = "https://docs.google.com,https://forms.gle"
    CSP_FORMS_FRAME_ORIGIN: str = "https://docs.google.com"
    CSP_FONT_CSS_ORIGIN: str = "https://fonts.googleapis.com"
    CSP_FONT_ASSET_ORIGIN: str = "https://fonts.gstatic.com"
    CSP_FLAG_CDN_ORIGIN: str = "https://flagcdn.com"

    @property
    def form_origins(self) -> list[str]:
        return _split_csv(self.CSP_FORM_ORIGINS)

    # ── Class schedules ───────────────────────────────────────
    SCHEDULE_REFERENCE_TZ: str = "America/New_York"
    SCHEDULE_EXPORT_TZ: str = "Europe/Istanbul"

    # ── Observability ─────────────────────────────────────────
    METRICS_ENABLED: bool = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()

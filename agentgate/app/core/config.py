import json
import re
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_list(raw: Any) -> list[str]:
    """Parse a list-valued env var given as JSON or as a comma/space list."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON, but tolerate plain values so a misconfigured deployment
    # does not crash at startup.
    if raw.startswith(("[", '"')):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()

    return [p for p in re.split(r"[,\s]+", raw) if p]


def _parse_cors_origins(raw: Any) -> list[str]:
    parts = _parse_list(raw)
    if "*" in parts:
        return ["*"]

    origins: list[str] = []
    for part in parts:
        if "://" in part:
            origins.append(part)
            continue
        # Browsers include the scheme in the Origin header, so a bare host
        # has to match both.
        origins.append(f"http://{part}")
        origins.append(f"https://{part}")

    seen: set[str] = set()
    result: list[str] = []
    for origin in origins:
        if origin in seen:
            continue
        seen.add(origin)
        result.append(origin)
    return result


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Rate limiting settings
    rate_limit_enabled: bool = True  # path-scoped middleware on/off
    rate_limit_interval_ms: int = 60_000
    rate_limit_api_per_interval: int = 60
    rate_limit_chat_per_interval: int = 20
    rate_limit_strict_per_interval: int = 10
    rate_limit_max_buckets: int = 10_000  # per limiter
    rate_limit_sweep_every: int = 1_000  # sweep expired buckets every N checks
    rate_limit_cleanup_interval_seconds: float = 600.0
    rate_limit_path_prefix: str = "/api/"
    rate_limit_exempt_paths: Annotated[list[str], NoDecode] = ["/api/health"]

    # Enables POST /api/rate-limit/reset when non-empty
    admin_token: str = ""

    # CORS settings
    # NoDecode so plain host values don't crash JSON parsing at startup.
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator("rate_limit_exempt_paths", mode="before")
    @classmethod
    def decode_exempt_paths(cls, v: Any) -> list[str]:
        return _parse_list(v)

    @field_validator(
        "rate_limit_interval_ms",
        "rate_limit_api_per_interval",
        "rate_limit_chat_per_interval",
        "rate_limit_strict_per_interval",
        "rate_limit_max_buckets",
        "rate_limit_sweep_every",
    )
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("rate_limit_cleanup_interval_seconds")
    @classmethod
    def validate_cleanup_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("rate_limit_cleanup_interval_seconds must be positive")
        return v

    @field_validator("rate_limit_path_prefix")
    @classmethod
    def validate_path_prefix(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("rate_limit_path_prefix must start with '/'")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()

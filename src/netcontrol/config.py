"""Application configuration and settings management."""

from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="NETCTL_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Net Control Coordinator API"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    store_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Upper bound on any single document store call before it is reported as unavailable.",
    )
    store_max_workers: int = Field(default=8, ge=1)

    # Bearer tokens are minted elsewhere; this service only verifies them.
    jwt_secret: str = Field(default="change-me", description="Shared HS256 secret for bearer tokens.")
    jwt_algorithm: str = Field(default="HS256")
    admin_role: str = Field(default="admin")

    scheduler_enabled: bool = Field(default=True, description="Run the background timer thread.")
    scheduler_tick_seconds: float = Field(default=5.0, gt=0.0)
    reschedule_on_interval_change: bool = Field(
        default=False,
        description="Restart running check-in/welfare timers when an event's intervals are edited.",
    )
    default_check_in_interval: int = Field(default=30, ge=1, description="Minutes.")
    default_welfare_check_interval: int = Field(default=60, ge=1, description="Minutes.")

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()

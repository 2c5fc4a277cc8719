"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FIELDROUTE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Field Service Route Planning API"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Trip optimization provider
    optimizer_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the trip optimization service (e.g., http://localhost:5000 or https://api.mapbox.com).",
    )
    optimizer_service: Literal["osrm", "mapbox"] = Field(
        default="osrm",
        description="Which trip API flavour the base URL speaks.",
    )
    optimizer_profile: str = Field(default="driving", description="Routing profile passed to the provider.")
    optimizer_access_token: Optional[str] = Field(
        default=None,
        description="Access token appended to provider requests (required for Mapbox).",
    )
    optimizer_timeout_seconds: float = Field(default=15.0, gt=0.0)
    optimizer_max_retries: int = Field(default=0, ge=0)
    optimizer_backoff_seconds: float = Field(default=0.5, ge=0.0)
    optimizer_max_waypoints: int = Field(
        default=12,
        ge=2,
        description="Largest number of stops sent to the provider in one optimization.",
    )

    # Route engine
    aggregate_tolerance: float = Field(
        default=0.05,
        ge=0.0,
        description="Allowed difference between provider aggregates and the sum of its legs.",
    )
    append_max_attempts: int = Field(default=3, ge=1)

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
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

    @field_validator("optimizer_base_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.rstrip("/") or None

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


settings = Settings()

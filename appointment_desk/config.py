from datetime import datetime
from functools import lru_cache

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = Field(default="Appointment Desk")
    backend_base_url: AnyHttpUrl | None = Field(
        default=None
    )
    backend_timeout: float = Field(
        default=10.0
    )
    backend_token: str | None = Field(
        default=None
    )
    use_mock_data: bool = Field(
        default=True
    )
    day_view_start_hour: int = Field(
        default=8, ge=0, le=23
    )
    day_view_end_hour: int = Field(
        default=20, ge=0, le=23
    )
    business_hours_start: str = Field(
        default="09:00"
    )
    business_hours_end: str = Field(
        default="17:00"
    )
    focus_throttle_seconds: float = Field(
        default=10.0
    )
    refresh_debounce_seconds: float = Field(
        default=2.0
    )

    model_config = SettingsConfigDict(env_prefix="APPOINTMENT_DESK_", case_sensitive=False)

    @field_validator("business_hours_start", "business_hours_end")
    def _validate_hours(cls, value: str) -> str:
        try:
            datetime.strptime(value, "%H:%M")
        except ValueError as exc:
            raise ValueError("business hours must be provided as HH:MM") from exc
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()

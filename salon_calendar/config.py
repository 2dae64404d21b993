"""Configuration for the salon calendar core.

Fixed business rules are module constants; deployment settings come from
the environment (optionally a .env file) through CalendarSettings.
"""
import os
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator


SLOT_MINUTES = 30
SLOTS_PER_DAY = 24 * 60 // SLOT_MINUTES  # 48

# Rendered grid range (hours). Full day by default.
BUSINESS_HOURS = {
    "start": 0,
    "end": 24
}

WEEK_START = "sunday"

# Upper bound for a single service; also the look-back used when scanning
# for appointments that may still be running at a given instant.
MAX_SERVICE_DURATION_MINUTES = 480

# Number of alternative start times offered after a conflict
MAX_ALTERNATIVES = 5

# Backend spelling of each status
STATUS_LABELS = {
    "scheduled": "Scheduled",
    "checked-in": "Checked-in",
    "completed": "Completed",
    "cancelled": "Cancelled",
}


class CalendarSettings(BaseModel):
    """Deployment settings for one salon."""
    timezone: str = Field(default="UTC", description="IANA timezone of the salon")
    business_start_hour: int = Field(default=BUSINESS_HOURS["start"], ge=0, le=23)
    business_end_hour: int = Field(default=BUSINESS_HOURS["end"], ge=1, le=24)
    api_url: Optional[str] = Field(default=None, description="REST base URL (PostgREST / Supabase)")
    api_key: Optional[str] = Field(default=None, description="API key sent as apikey + bearer token")
    http_timeout: int = Field(default=15, gt=0, description="Request timeout in seconds")
    breaker_threshold: int = Field(default=5, gt=0)
    breaker_timeout: int = Field(default=60, gt=0)
    store_duration: bool = Field(
        default=True,
        description="Freeze durations in bs_appointments.duration_minutes (column must exist)",
    )
    log_level: str = Field(default="INFO")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def check_hours_order(self):
        if self.business_start_hour >= self.business_end_hour:
            raise ValueError("business_start_hour must be before business_end_hour")
        return self

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


_ENV_FIELDS = {
    "SALON_TIMEZONE": "timezone",
    "SALON_BUSINESS_START_HOUR": "business_start_hour",
    "SALON_BUSINESS_END_HOUR": "business_end_hour",
    "SALON_API_URL": "api_url",
    "SALON_API_KEY": "api_key",
    "SALON_HTTP_TIMEOUT": "http_timeout",
    "SALON_BREAKER_THRESHOLD": "breaker_threshold",
    "SALON_BREAKER_TIMEOUT": "breaker_timeout",
    "SALON_STORE_DURATION": "store_duration",
    "LOG_LEVEL": "log_level",
}


def load_settings(env_file: Optional[str] = None) -> CalendarSettings:
    """
    Build settings from environment variables.

    Args:
        env_file: Optional path to a .env file (default: search from cwd)

    Returns:
        Validated CalendarSettings

    Raises:
        pydantic.ValidationError: If a value is out of range
    """
    load_dotenv(env_file)

    values = {}
    for env_name, field_name in _ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw is not None and raw != "":
            values[field_name] = raw

    return CalendarSettings(**values)

import os
from decimal import Decimal
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from models.photo_attachment import PhotoType
from utils.timezone_helpers import validate_timezone

# Load environment variables from .env file, if it exists
load_dotenv()

WEEKDAY_NAMES = [
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
]


def parse_week_start_day(raw) -> int:
    """Accept 0-6 (0 = Monday, like date.weekday()) or a day name."""
    if isinstance(raw, int) and not isinstance(raw, bool):
        value = raw
    else:
        text = str(raw).strip().lower()
        if text in WEEKDAY_NAMES:
            return WEEKDAY_NAMES.index(text)
        try:
            value = int(text)
        except ValueError:
            raise ValueError(f"Unknown week start day: {raw!r}")
    if not 0 <= value <= 6:
        raise ValueError(f"Week start day must be 0-6, got {value}")
    return value


class TrackerConfig(BaseModel):
    """Externally supplied constants the engine reads but never hard-codes."""

    week_start_day: int = 0
    standard_mileage_rate: Decimal = Field(default=Decimal("0.70"), ge=0, decimal_places=4)
    photo_types: List[str] = Field(default_factory=lambda: [t.value for t in PhotoType])
    timezone: str = "America/New_York"
    gas_price: Decimal = Field(default=Decimal("3.50"), ge=0)
    tank_capacity: Decimal = Field(default=Decimal("14.0"), gt=0)
    effective_tax_rate: Decimal = Field(default=Decimal("0.22"), ge=0, le=1)
    tip_deduction_enabled: bool = True

    @field_validator("week_start_day", mode="before")
    @classmethod
    def _week_start_day(cls, value):
        return parse_week_start_day(value)

    @field_validator("timezone")
    @classmethod
    def _timezone(cls, value: str) -> str:
        if not validate_timezone(value):
            raise ValueError(f"Unknown IANA timezone: {value}")
        return value

    @field_validator("photo_types")
    @classmethod
    def _photo_types(cls, value: List[str]) -> List[str]:
        cleaned = [v.strip() for v in value if v and v.strip()]
        if PhotoType.OTHER.value not in cleaned:
            # New attachments default to "Other", so it must stay selectable
            cleaned.append(PhotoType.OTHER.value)
        return cleaned

    @classmethod
    def from_env(cls) -> "TrackerConfig":
        values = {}
        env_map = {
            "WEEK_START_DAY": "week_start_day",
            "STANDARD_MILEAGE_RATE": "standard_mileage_rate",
            "TRACKER_TIMEZONE": "timezone",
            "GAS_PRICE": "gas_price",
            "TANK_CAPACITY": "tank_capacity",
            "EFFECTIVE_TAX_RATE": "effective_tax_rate",
            "TIP_DEDUCTION_ENABLED": "tip_deduction_enabled",
        }
        for env_name, field_name in env_map.items():
            raw = os.getenv(env_name)
            if raw is not None and raw.strip() != "":
                values[field_name] = raw.strip()

        photo_types = os.getenv("PHOTO_TYPES")
        if photo_types:
            values["photo_types"] = photo_types.split(",")

        return cls(**values)


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./rideshare_tracker.db")

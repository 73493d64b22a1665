import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import Field as PydanticField
from sqlmodel import Field, Index, SQLModel

from utils.datetime_helpers import utc_now


# Default photo categories; the active list is supplied by TrackerConfig.photo_types
class PhotoType(str, Enum):
    RECEIPT = "Receipt"
    APP_SCREENSHOT = "App Screenshot"
    GAS_PUMP = "Gas Pump"
    DASHBOARD = "Dashboard"
    VEHICLE_DAMAGE = "Vehicle Damage"
    CLEANING = "Cleaning Required"
    MAINTENANCE = "Maintenance"
    OTHER = "Other"


def new_attachment_id() -> str:
    return uuid.uuid4().hex


class PhotoAttachment(BaseModel):
    """A photo owned by one shift. Identity and bytes never change after creation."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = PydanticField(default_factory=new_attachment_id, frozen=True)
    image_data: bytes = PydanticField(frozen=True, repr=False)
    type: str = PhotoType.OTHER.value
    description: str = ""
    date_attached: datetime = PydanticField(default_factory=utc_now, frozen=True)

    @field_validator("image_data")
    @classmethod
    def _non_empty(cls, value: bytes) -> bytes:
        if not value:
            raise ValueError("image data is empty")
        return value

    @property
    def file_size(self) -> int:
        return len(self.image_data)


# Defines a Table "shift_photos"; position keeps the display order of a shift's photos
class PhotoAttachmentRecord(SQLModel, table=True):
    __tablename__ = "shift_photos"

    __table_args__ = (
        Index("ix_shift_photos_shift_id", "shift_id"),
        # Composite index for the ordered load of one shift's photos
        Index("ix_shift_photos_shift_id_position", "shift_id", "position"),
    )

    row_id: Optional[int] = Field(default=None, primary_key=True)
    shift_id: str = Field(foreign_key="rideshare_shifts.id")
    attachment_id: str
    position: int

    # Binary data of the image
    image_data: bytes
    photo_type: str = Field(default=PhotoType.OTHER.value)
    description: str = Field(default="")
    # ISO 8601 text keeps the UTC offset on every backend
    date_attached: str

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import Field as PydanticField
from sqlmodel import Field, Index, SQLModel

from models.photo_attachment import PhotoAttachment, PhotoType
from utils.datetime_helpers import utc_now

# A recorded expense is a real purchase, so zero is not allowed
ExpenseAmount = Annotated[Decimal, PydanticField(gt=0, decimal_places=2)]


class ExpenseCategory(str, Enum):
    VEHICLE = "Vehicle"
    EQUIPMENT = "Equipment"
    SUPPLIES = "Supplies"
    AMENITIES = "Amenities"


def new_expense_id() -> str:
    return uuid.uuid4().hex


def parse_category(value):
    """Category names are matched case-insensitively ("supplies" -> Supplies)."""
    if isinstance(value, str):
        for category in ExpenseCategory:
            if category.value.lower() == value.strip().lower():
                return category
    return value


class ExpenseItem(BaseModel):
    """
    A business purchase outside any shift (phone mount, water for riders...).

    Vehicle expenses only count under the actual-expense method; every other
    category is deductible under both methods.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = PydanticField(default_factory=new_expense_id, frozen=True)

    # Sync metadata
    created_date: datetime = PydanticField(default_factory=utc_now)
    modified_date: datetime = PydanticField(default_factory=utc_now)
    is_deleted: bool = False

    expense_date: date
    category: ExpenseCategory
    description: str
    amount: ExpenseAmount

    photos: List[PhotoAttachment] = PydanticField(default_factory=list)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value):
        return parse_category(value)

    @field_validator("description")
    @classmethod
    def _description(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("description is required")
        return value

    @property
    def is_vehicle(self) -> bool:
        return self.category == ExpenseCategory.VEHICLE


# Defines a Table "business_expenses"
class ExpenseRecord(SQLModel, table=True):
    __tablename__ = "business_expenses"

    __table_args__ = (
        # Index for the yearly tax totals
        Index("ix_business_expenses_expense_date", "expense_date"),
        Index("ix_business_expenses_is_deleted", "is_deleted"),
    )

    id: str = Field(primary_key=True)

    created_date: str
    modified_date: str
    is_deleted: bool = Field(default=False)

    expense_date: date
    category: str
    description: str
    amount: Decimal = Field(max_digits=12, decimal_places=2)


# Defines a Table "expense_photos"; same layout as shift_photos, keyed by expense
class ExpensePhotoRecord(SQLModel, table=True):
    __tablename__ = "expense_photos"

    __table_args__ = (Index("ix_expense_photos_expense_id_position", "expense_id", "position"),)

    row_id: Optional[int] = Field(default=None, primary_key=True)
    expense_id: str = Field(foreign_key="business_expenses.id")
    attachment_id: str
    position: int

    image_data: bytes
    photo_type: str = Field(default=PhotoType.OTHER.value)
    description: str = Field(default="")
    date_attached: str

import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic import Field as PydanticField
from sqlmodel import Field, Index, SQLModel

from models.photo_attachment import PhotoAttachment
from utils.datetime_helpers import combine_date_time, utc_now
from utils.tank_gauge import fraction_for, parse_tank_level

ZERO = Decimal("0")

# Field domains shared by the entity, the start/end forms and the field checker
Mileage = Annotated[Decimal, PydanticField(ge=0, decimal_places=1)]
Money = Annotated[Decimal, PydanticField(ge=0, decimal_places=2)]
Gallons = Annotated[Decimal, PydanticField(ge=0, decimal_places=3)]
TankLevel = Annotated[int, PydanticField(ge=0, le=8)]
TripCount = Annotated[int, PydanticField(ge=0)]

MONEY_FIELDS = (
    "net_fare",
    "tips",
    "promotions",
    "tolls",
    "tolls_reimbursed",
    "parking_fees",
    "misc_fees",
)
START_FIELDS = ("start_date", "start_mileage", "start_tank_level")
END_FIELDS = (
    "end_date",
    "end_mileage",
    "end_tank_level",
    "trip_count",
    "did_refuel_at_end",
    "gallons_filled",
    "fuel_cost",
) + MONEY_FIELDS
# Everything a caller may change on a shift; identity and bookkeeping are owned by the ledger
EDITABLE_FIELDS = START_FIELDS + END_FIELDS


class ShiftStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


def new_shift_id() -> str:
    return uuid.uuid4().hex


class Shift(BaseModel):
    """
    One driving work session.

    Active while `end_date` is None, Completed once it is set; there is no
    stored status. Field domains are enforced on every assignment, cross-field
    rules (end after start, end mileage above start mileage) are enforced by
    the ledger's start/end gates.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = PydanticField(default_factory=new_shift_id, frozen=True)

    # Sync metadata
    created_date: datetime = PydanticField(default_factory=utc_now)
    modified_date: datetime = PydanticField(default_factory=utc_now)
    is_deleted: bool = False

    # Start of shift data
    start_date: datetime
    start_mileage: Mileage
    start_tank_level: TankLevel

    # End of shift data
    end_date: Optional[datetime] = None
    end_mileage: Optional[Mileage] = None
    end_tank_level: Optional[TankLevel] = None
    did_refuel_at_end: bool = False
    gallons_filled: Optional[Gallons] = None
    fuel_cost: Optional[Money] = None

    # Trip and earnings data
    trip_count: Optional[TripCount] = None
    net_fare: Money = ZERO
    tips: Money = ZERO
    promotions: Money = ZERO
    tolls: Money = ZERO
    tolls_reimbursed: Money = ZERO
    parking_fees: Money = ZERO
    misc_fees: Money = ZERO

    # Rates captured on the shift so past years keep the values they were driven under
    gas_price: Optional[Money] = None
    standard_mileage_rate: Optional[Decimal] = PydanticField(default=None, ge=0, decimal_places=4)

    photos: List[PhotoAttachment] = PydanticField(default_factory=list)

    # --- Lifecycle ---

    @property
    def status(self) -> ShiftStatus:
        return ShiftStatus.ACTIVE if self.end_date is None else ShiftStatus.COMPLETED

    @property
    def is_active(self) -> bool:
        return self.end_date is None

    @property
    def is_completed(self) -> bool:
        return self.end_date is not None

    @property
    def has_full_tank_at_start(self) -> bool:
        return self.start_tank_level == 8

    # --- Distance and time ---

    @property
    def shift_mileage(self) -> Decimal:
        if self.end_mileage is None:
            return ZERO
        return self.end_mileage - self.start_mileage

    @property
    def duration(self) -> timedelta:
        if self.end_date is None:
            return timedelta(0)
        return self.end_date - self.start_date

    @property
    def shift_hours(self) -> int:
        return int(self.duration.total_seconds() // 3600)

    @property
    def shift_minutes(self) -> int:
        return int((self.duration.total_seconds() % 3600) // 60)

    # --- Earnings ---

    @property
    def revenue(self) -> Decimal:
        return self.net_fare + self.tips + self.promotions

    @property
    def income_contribution(self) -> Decimal:
        """What this shift adds to YTD income; unreimbursed tolls are an expense, not an offset."""
        return self.revenue - self.tolls_reimbursed

    @property
    def expected_payout(self) -> Decimal:
        return self.revenue + self.tolls_reimbursed

    # --- Expenses ---

    @property
    def refuel_cost(self) -> Decimal:
        if not self.did_refuel_at_end or self.fuel_cost is None:
            return ZERO
        return self.fuel_cost

    @property
    def trip_fees(self) -> Decimal:
        return self.parking_fees + self.misc_fees

    @property
    def actual_expenses(self) -> Decimal:
        return self.tolls + self.trip_fees + self.refuel_cost

    def gas_usage(self, tank_capacity: Decimal) -> Decimal:
        """Gallons burned: tank drop plus whatever was pumped at the end, never negative."""
        if self.end_tank_level is None:
            return ZERO
        start_gallons = fraction_for(self.start_tank_level) * tank_capacity
        end_gallons = fraction_for(self.end_tank_level) * tank_capacity
        used = start_gallons - end_gallons
        if self.did_refuel_at_end and self.gallons_filled is not None:
            used += self.gallons_filled
        return max(used, ZERO)

    def gas_cost(self, tank_capacity: Decimal, gas_price: Optional[Decimal] = None) -> Decimal:
        if self.did_refuel_at_end and self.fuel_cost is not None:
            return self.fuel_cost
        price = gas_price if gas_price is not None else (self.gas_price or ZERO)
        return self.gas_usage(tank_capacity) * price

    def mpg(self, tank_capacity: Decimal) -> Decimal:
        used = self.gas_usage(tank_capacity)
        return self.shift_mileage / used if used > 0 else ZERO

    def out_of_pocket_costs(self, tank_capacity: Decimal, gas_price: Optional[Decimal] = None) -> Decimal:
        return self.gas_cost(tank_capacity, gas_price) + self.tolls + self.trip_fees

    def cash_flow_profit(self, tank_capacity: Decimal, gas_price: Optional[Decimal] = None) -> Decimal:
        return self.expected_payout - self.out_of_pocket_costs(tank_capacity, gas_price)

    def profit_per_hour(self, tank_capacity: Decimal, gas_price: Optional[Decimal] = None) -> Decimal:
        seconds = Decimal(str(self.duration.total_seconds()))
        if seconds <= 0:
            return ZERO
        return self.cash_flow_profit(tank_capacity, gas_price) / (seconds / 3600)


# Defines the data of the "Start Shift" form: separate date and time pickers
class ShiftStartFields(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    start_date: Optional[date] = None
    start_time: Optional[time] = None
    start_mileage: Optional[Mileage] = None
    start_tank_level: Optional[TankLevel] = None
    has_full_tank_at_start: bool = False

    @field_validator("start_tank_level", mode="before")
    @classmethod
    def _tank_label(cls, value):
        return parse_tank_level(value)

    @model_validator(mode="after")
    def _full_tank_matches_level(self):
        if self.has_full_tank_at_start and self.start_tank_level not in (None, 8):
            raise ValueError("a full tank at start means a tank level of 8 (F)")
        return self

    @property
    def start_datetime(self) -> Optional[datetime]:
        return combine_date_time(self.start_date, self.start_time)

    @property
    def effective_tank_level(self) -> Optional[int]:
        return 8 if self.has_full_tank_at_start else self.start_tank_level


# Defines the data of the "End Shift" form
class ShiftEndFields(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    end_date: Optional[date] = None
    end_time: Optional[time] = None
    end_mileage: Optional[Mileage] = None
    end_tank_level: Optional[TankLevel] = None
    trip_count: Optional[TripCount] = None

    net_fare: Optional[Money] = None
    tips: Optional[Money] = None
    promotions: Optional[Money] = None
    tolls: Optional[Money] = None
    tolls_reimbursed: Optional[Money] = None
    parking_fees: Optional[Money] = None
    misc_fees: Optional[Money] = None

    did_refuel_at_end: bool = False
    gallons_filled: Optional[Gallons] = None
    fuel_cost: Optional[Money] = None

    @field_validator("end_tank_level", mode="before")
    @classmethod
    def _tank_label(cls, value):
        return parse_tank_level(value)

    @property
    def end_datetime(self) -> Optional[datetime]:
        return combine_date_time(self.end_date, self.end_time)


# Defines a Table "rideshare_shifts"; one row per shift, deleted rows retained for audit
class ShiftRecord(SQLModel, table=True):
    __tablename__ = "rideshare_shifts"

    __table_args__ = (
        # Index for day/week/year partitioning
        Index("ix_rideshare_shifts_start_date", "start_date"),
        Index("ix_rideshare_shifts_is_deleted", "is_deleted"),
    )

    id: str = Field(primary_key=True)

    # ISO 8601 text keeps the UTC offset (or its absence) on every backend
    created_date: str
    modified_date: str
    is_deleted: bool = Field(default=False)

    start_date: str
    start_mileage: Decimal = Field(max_digits=12, decimal_places=1)
    start_tank_level: int

    end_date: Optional[str] = Field(default=None)
    end_mileage: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=1)
    end_tank_level: Optional[int] = Field(default=None)
    did_refuel_at_end: bool = Field(default=False)
    gallons_filled: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=3)
    fuel_cost: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)

    trip_count: Optional[int] = Field(default=None)
    net_fare: Decimal = Field(default=ZERO, max_digits=12, decimal_places=2)
    tips: Decimal = Field(default=ZERO, max_digits=12, decimal_places=2)
    promotions: Decimal = Field(default=ZERO, max_digits=12, decimal_places=2)
    tolls: Decimal = Field(default=ZERO, max_digits=12, decimal_places=2)
    tolls_reimbursed: Decimal = Field(default=ZERO, max_digits=12, decimal_places=2)
    parking_fees: Decimal = Field(default=ZERO, max_digits=12, decimal_places=2)
    misc_fees: Decimal = Field(default=ZERO, max_digits=12, decimal_places=2)

    gas_price: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    standard_mileage_rate: Optional[Decimal] = Field(default=None, max_digits=8, decimal_places=4)

"""
Field-level checks and start/end gating for shift forms.

Everything here is stateless: a gate is recomputed from the candidate values
on every call, so each message exists exactly as long as its own condition is
violated, whatever happens to the other fields.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, TypeAdapter, ValidationError

from core.errors import (
    TANK_FIELDS,
    InvalidInput,
    InvalidTankLevel,
    ValidationFailed,
    ValidationKind,
    ValidationMessage,
)
from models.shift import (
    Gallons,
    Mileage,
    Money,
    Shift,
    ShiftEndFields,
    ShiftStartFields,
    TankLevel,
    TripCount,
)
from utils.tank_gauge import parse_tank_level
from utils.timezone_helpers import align_timezone, get_default_timezone

END_MILEAGE_MESSAGE = "end mileage must be greater than start mileage"

_FIELD_ADAPTERS: Dict[str, TypeAdapter] = {
    "start_date": TypeAdapter(datetime),
    "start_mileage": TypeAdapter(Mileage),
    "start_tank_level": TypeAdapter(TankLevel),
    "end_date": TypeAdapter(Optional[datetime]),
    "end_mileage": TypeAdapter(Optional[Mileage]),
    "end_tank_level": TypeAdapter(Optional[TankLevel]),
    "trip_count": TypeAdapter(Optional[TripCount]),
    "did_refuel_at_end": TypeAdapter(bool),
    "gallons_filled": TypeAdapter(Optional[Gallons]),
    "fuel_cost": TypeAdapter(Optional[Money]),
    "net_fare": TypeAdapter(Money),
    "tips": TypeAdapter(Money),
    "promotions": TypeAdapter(Money),
    "tolls": TypeAdapter(Money),
    "tolls_reimbursed": TypeAdapter(Money),
    "parking_fees": TypeAdapter(Money),
    "misc_fees": TypeAdapter(Money),
}


class GateResult(BaseModel):
    """Whether the confirm/save action is enabled, plus every reason it is not."""

    enabled: bool
    messages: List[ValidationMessage] = []

    def fields(self) -> List[str]:
        return [m.field for m in self.messages]

    def message_for(self, field: str) -> Optional[ValidationMessage]:
        for message in self.messages:
            if message.field == field:
                return message
        return None

    def raise_if_closed(self) -> None:
        if not self.enabled:
            raise ValidationFailed(self.messages)


def _gate(messages: List[ValidationMessage]) -> GateResult:
    return GateResult(enabled=not messages, messages=messages)


def _missing(field: str, label: str) -> ValidationMessage:
    return ValidationMessage(kind=ValidationKind.MISSING, field=field, message=f"{label} is required")


# --- Field level ---


def check_field(name: str, value):
    """
    Validate one value against its field's domain and return the parsed value.

    Raises InvalidInput (InvalidTankLevel for tank fields) instead of clamping
    or coercing an out-of-domain value.
    """
    adapter = _FIELD_ADAPTERS.get(name)
    if adapter is None:
        raise InvalidInput(f"Unknown shift field: {name}", field=name)
    if name in TANK_FIELDS:
        # Gauge labels ("3/4", "F") are accepted wherever a level is
        value = parse_tank_level(value)
    try:
        return adapter.validate_python(value)
    except ValidationError as e:
        message = f"{name}: {e.errors()[0].get('msg', 'invalid value')}"
        if name in TANK_FIELDS:
            raise InvalidTankLevel(message, field=name)
        raise InvalidInput(message, field=name)


def filter_numeric_text(text: Optional[str], allow_decimal: bool = True) -> str:
    """
    Strip everything but digits (and the first decimal point) from keyboard text.

    "12,345.6 mi" -> "12345.6"; with allow_decimal=False "7.5" -> "75".
    """
    if not text:
        return ""
    if not allow_decimal:
        return re.sub(r"[^0-9]", "", text)

    kept = re.sub(r"[^0-9.]", "", text)
    head, dot, tail = kept.partition(".")
    return head + dot + tail.replace(".", "")


def parse_numeric_text(name: str, text: Optional[str]):
    """Filter raw keyboard text and check it against `name`'s domain; blank text is None."""
    allow_decimal = name not in TANK_FIELDS and name != "trip_count"
    cleaned = filter_numeric_text(text, allow_decimal=allow_decimal)
    if cleaned in ("", "."):
        return None
    return check_field(name, cleaned)


# --- Gates ---


def _start_messages(start_mileage, tank_level, has_date: bool, has_time: bool):
    messages: List[ValidationMessage] = []
    if not has_date:
        messages.append(_missing("start_date", "start date"))
    if not has_time:
        messages.append(_missing("start_time", "start time"))
    if start_mileage is None:
        messages.append(_missing("start_mileage", "start mileage"))
    elif start_mileage <= 0:
        messages.append(
            ValidationMessage(
                kind=ValidationKind.OUT_OF_RANGE,
                field="start_mileage",
                message="start mileage must be greater than zero",
            )
        )
    if tank_level is None:
        messages.append(_missing("start_tank_level", "start tank level"))
    return messages


def _end_messages(
    end_at: Optional[datetime],
    has_date: bool,
    has_time: bool,
    end_mileage: Optional[Decimal],
    trip_count: Optional[int],
    did_refuel: bool,
    gallons_filled: Optional[Decimal],
    fuel_cost: Optional[Decimal],
    start_at: datetime,
    start_mileage: Decimal,
    tz: str,
):
    messages: List[ValidationMessage] = []
    if not has_date:
        messages.append(_missing("end_date", "end date"))
    if not has_time:
        messages.append(_missing("end_time", "end time"))

    if end_mileage is None:
        messages.append(_missing("end_mileage", "end mileage"))
    elif end_mileage <= start_mileage:
        messages.append(
            ValidationMessage(
                kind=ValidationKind.END_MILEAGE_NOT_GREATER,
                field="end_mileage",
                message=END_MILEAGE_MESSAGE,
            )
        )

    if trip_count is None:
        messages.append(_missing("trip_count", "trip count"))
    elif trip_count <= 0:
        messages.append(
            ValidationMessage(
                kind=ValidationKind.OUT_OF_RANGE,
                field="trip_count",
                message="trip count must be greater than zero",
            )
        )

    if end_at is not None and align_timezone(end_at, start_at, tz) <= start_at:
        messages.append(
            ValidationMessage(
                kind=ValidationKind.END_BEFORE_START,
                field="end_date",
                message="end date must be after start date",
            )
        )

    # Refuel details are only required while the refuel toggle is on
    if did_refuel:
        if gallons_filled is None:
            messages.append(_missing("gallons_filled", "gallons filled"))
        if fuel_cost is None:
            messages.append(_missing("fuel_cost", "fuel cost"))
    return messages


def evaluate_start(form: ShiftStartFields) -> GateResult:
    """Gate for the "confirm start" action."""
    return _gate(
        _start_messages(
            form.start_mileage,
            form.effective_tank_level,
            has_date=form.start_date is not None,
            has_time=form.start_time is not None,
        )
    )


def evaluate_end(form: ShiftEndFields, shift: Shift, tz: Optional[str] = None) -> GateResult:
    """Gate for the "confirm end" action of an Active shift."""
    return _gate(
        _end_messages(
            form.end_datetime,
            has_date=form.end_date is not None,
            has_time=form.end_time is not None,
            end_mileage=form.end_mileage,
            trip_count=form.trip_count,
            did_refuel=form.did_refuel_at_end,
            gallons_filled=form.gallons_filled,
            fuel_cost=form.fuel_cost,
            start_at=shift.start_date,
            start_mileage=shift.start_mileage,
            tz=tz or get_default_timezone(),
        )
    )


def evaluate_shift(shift: Shift, tz: Optional[str] = None) -> GateResult:
    """Re-check a whole shift: start rules always, end rules once it has an end date."""
    messages = _start_messages(
        shift.start_mileage,
        shift.start_tank_level,
        has_date=True,
        has_time=True,
    )
    if shift.is_completed:
        messages += _end_messages(
            shift.end_date,
            has_date=True,
            has_time=True,
            end_mileage=shift.end_mileage,
            trip_count=shift.trip_count,
            did_refuel=shift.did_refuel_at_end,
            gallons_filled=shift.gallons_filled,
            fuel_cost=shift.fuel_cost,
            start_at=shift.start_date,
            start_mileage=shift.start_mileage,
            tz=tz or get_default_timezone(),
        )
    return _gate(messages)

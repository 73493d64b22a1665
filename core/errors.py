from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ValidationError


class ValidationKind(str, Enum):
    MISSING = "missing"
    OUT_OF_RANGE = "out_of_range"
    END_MILEAGE_NOT_GREATER = "end_mileage_not_greater"
    END_BEFORE_START = "end_before_start"


# One field-attributed gate failure, e.g. {"kind": "missing", "field": "trip_count"}
class ValidationMessage(BaseModel):
    kind: ValidationKind
    field: str
    message: str


class ShiftEngineError(Exception):
    """Base class for every error raised by the shift engine."""


class InvalidInput(ShiftEngineError, ValueError):
    """A value is outside its field's domain (negative mileage, bad tank level...)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    @classmethod
    def from_validation_error(cls, error: ValidationError) -> "InvalidInput":
        """Translate the first pydantic error into an InvalidInput naming its field."""
        first = error.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        message = first.get("msg", "invalid value")
        if field in TANK_FIELDS:
            return InvalidTankLevel(f"{field}: {message}", field=field)
        return cls(f"{field}: {message}" if field else message, field=field)


class InvalidTankLevel(InvalidInput):
    """Tank level outside 0-8 eighths, or an unknown gauge label."""


class ValidationFailed(ShiftEngineError):
    """A cross-field gate is closed; carries the structured messages."""

    def __init__(self, messages: List[ValidationMessage]):
        self.messages = list(messages)
        summary = "; ".join(f"{m.field}: {m.message}" for m in self.messages)
        super().__init__(summary or "validation failed")


class NotFound(ShiftEngineError, LookupError):
    """Lookup by id yields nothing (unknown or soft-deleted)."""


class SessionConflict(ShiftEngineError):
    """Overlapping or already-resolved edit session on the same shift."""


TANK_FIELDS = ("start_tank_level", "end_tank_level")

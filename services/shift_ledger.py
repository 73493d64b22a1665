"""
The authoritative collection of shifts and its state machine.

Active -> Completed happens in one step through complete(); a Completed shift
is only changed through an EditSession, which works on a private deep copy and
swaps it in on commit. Callers never get a reference to a stored Shift: every
read hands back a copy, so nothing outside the ledger can mutate it.
"""

import logging
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Union

from pydantic import BaseModel, ValidationError

from core.config import TrackerConfig
from core.errors import InvalidInput, NotFound, SessionConflict, ValidationFailed
from models.photo_attachment import PhotoAttachment
from models.shift import EDITABLE_FIELDS, MONEY_FIELDS, START_FIELDS, Shift, ShiftEndFields, ShiftStartFields, ShiftStatus
from services.photo_store import PhotoAttachmentStore
from services.validation import GateResult, check_field, evaluate_end, evaluate_shift, evaluate_start
from utils.datetime_helpers import utc_now
from utils.timezone_helpers import (
    advance_past,
    align_timezone,
    calendar_day,
    ensure_timezone_aware,
    get_week_range,
    local_date,
    week_start_for,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class ShiftStore(Protocol):
    """Persistence collaborator told about every committed change."""

    def save(self, shift: Shift) -> None: ...

    def remove(self, shift_id: str) -> None: ...


def _coerce_form(model_cls, value):
    if isinstance(value, model_cls):
        return value
    if isinstance(value, BaseModel):
        value = value.model_dump(exclude_unset=True)
    if isinstance(value, dict):
        try:
            return model_cls(**value)
        except ValidationError as e:
            raise InvalidInput.from_validation_error(e)
    raise InvalidInput(f"Expected {model_cls.__name__} or a mapping of its fields")


def _status(value) -> Optional[ShiftStatus]:
    if value is None or isinstance(value, ShiftStatus):
        return value
    try:
        return ShiftStatus(str(value).lower())
    except ValueError:
        raise InvalidInput(f"Unknown shift status: {value!r}", field="status")


def _set_fields(shift: Shift, changes: Dict[str, object]) -> None:
    for name, value in changes.items():
        try:
            setattr(shift, name, value)
        except ValidationError as e:
            raise InvalidInput.from_validation_error(e)


class EditSession:
    """
    Working copy of one Completed shift.

    Changes land on the draft only. commit() re-validates the whole shift and
    swaps the draft into the ledger; discard() drops it. Either resolves the
    session, after which every call raises SessionConflict.

        with ledger.edit(shift_id) as session:
            session.set(tips="12.50")
            session.photos.remove(photo_id)
            session.commit()
    """

    def __init__(self, ledger: "ShiftLedger", original: Shift):
        self._ledger = ledger
        self.shift_id = original.id
        self._draft = original.model_copy(deep=True)
        self._photos = PhotoAttachmentStore(self._draft.photos, ledger.config.photo_types)
        self._resolved = False

    @property
    def is_open(self) -> bool:
        return not self._resolved

    @property
    def draft(self) -> Shift:
        self._check_open()
        return self._draft

    @property
    def photos(self) -> PhotoAttachmentStore:
        self._check_open()
        return self._photos

    def set(self, **changes) -> Shift:
        """Stage field changes; all of them apply or none do."""
        self._check_open()
        if "has_full_tank_at_start" in changes:
            if changes.pop("has_full_tank_at_start"):
                changes["start_tank_level"] = 8

        parsed = {}
        for name, value in changes.items():
            if name not in EDITABLE_FIELDS:
                raise InvalidInput(f"{name} cannot be edited", field=name)
            parsed[name] = check_field(name, value)

        if "end_date" in parsed and parsed["end_date"] is None:
            raise InvalidInput("A completed shift must keep its end date", field="end_date")
        if "start_date" in parsed or "end_date" in parsed:
            start = parsed.get("start_date", self._draft.start_date)
            end = parsed.get("end_date", self._draft.end_date)
            parsed["end_date"] = align_timezone(end, start, self._ledger.config.timezone)
        if parsed.get("did_refuel_at_end") is False:
            parsed["gallons_filled"] = None
            parsed["fuel_cost"] = None

        # Shallow copy keeps the photo list the store is bound to
        candidate = self._draft.model_copy()
        _set_fields(candidate, parsed)
        self._draft = candidate
        return self._draft

    def evaluate(self) -> GateResult:
        self._check_open()
        return evaluate_shift(self._draft, tz=self._ledger.config.timezone)

    def commit(self) -> Shift:
        """Validate the draft and atomically replace the stored shift with it."""
        self._check_open()
        gate = self.evaluate()
        if not gate.enabled:
            logger.warning("Rejected edit of shift %s: %s", self.shift_id, gate.fields())
            raise ValidationFailed(gate.messages)
        committed = self._ledger._commit_session(self)
        self._resolved = True
        return committed

    def discard(self) -> None:
        self._check_open()
        self._resolved = True
        self._ledger._close_session(self)
        logger.info("Discarded edit of shift %s", self.shift_id)

    def _check_open(self) -> None:
        if self._resolved:
            raise SessionConflict(f"Edit session for shift {self.shift_id} is already resolved")

    def __enter__(self) -> "EditSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self._resolved:
            self.discard()
        return False


class ShiftLedger:
    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        store: Optional[ShiftStore] = None,
        shifts: Optional[Iterable[Shift]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or TrackerConfig()
        self._store = store
        self._clock = clock
        self._shifts: Dict[str, Shift] = {}
        self._sessions: Dict[str, EditSession] = {}
        for shift in shifts or ():
            self._shifts[shift.id] = shift

    # --- Lifecycle ---

    def create(
        self,
        start_fields: Union[ShiftStartFields, dict],
        photos: Optional[Union[PhotoAttachmentStore, List[PhotoAttachment]]] = None,
    ) -> Shift:
        form = _coerce_form(ShiftStartFields, start_fields)
        gate = evaluate_start(form)
        if not gate.enabled:
            logger.warning("Rejected shift start: %s", gate.fields())
            raise ValidationFailed(gate.messages)

        attachments = photos.list() if isinstance(photos, PhotoAttachmentStore) else list(photos or [])
        now = self._clock()
        try:
            shift = Shift(
                start_date=form.start_datetime,
                start_mileage=form.start_mileage,
                start_tank_level=form.effective_tank_level,
                created_date=now,
                modified_date=now,
                standard_mileage_rate=self.config.standard_mileage_rate,
                photos=[a.model_copy(deep=True) for a in attachments],
            )
        except ValidationError as e:
            raise InvalidInput.from_validation_error(e)

        self._replace(shift)
        logger.info("Started shift %s at %s (%s mi)", shift.id, shift.start_date, shift.start_mileage)
        return shift.model_copy(deep=True)

    def complete(self, shift_id: str, end_fields: Union[ShiftEndFields, dict]) -> Shift:
        shift = self._live(shift_id)
        if shift.is_completed:
            raise InvalidInput(f"Shift {shift_id} is already completed; edit it instead")

        form = _coerce_form(ShiftEndFields, end_fields)
        gate = evaluate_end(form, shift, tz=self.config.timezone)
        if not gate.enabled:
            logger.warning("Rejected completion of shift %s: %s", shift_id, gate.fields())
            raise ValidationFailed(gate.messages)

        changes = {
            "end_date": align_timezone(form.end_datetime, shift.start_date, self.config.timezone),
            "end_mileage": form.end_mileage,
            "trip_count": form.trip_count,
            "did_refuel_at_end": form.did_refuel_at_end,
        }
        for name in MONEY_FIELDS:
            value = getattr(form, name)
            changes[name] = value if value is not None else getattr(shift, name)

        if form.did_refuel_at_end:
            changes["gallons_filled"] = form.gallons_filled
            changes["fuel_cost"] = form.fuel_cost
            # Refueling at the end of a shift fills the tank unless told otherwise
            changes["end_tank_level"] = form.end_tank_level if form.end_tank_level is not None else 8
        else:
            changes["gallons_filled"] = None
            changes["fuel_cost"] = None
            changes["end_tank_level"] = form.end_tank_level

        completed = shift.model_copy(deep=True)
        _set_fields(completed, changes)
        completed.gas_price = self._gas_price_for(completed)
        self._touch(completed)

        self._replace(completed)
        logger.info(
            "Completed shift %s: %s mi, %s trips",
            shift_id,
            completed.shift_mileage,
            completed.trip_count,
        )
        return completed.model_copy(deep=True)

    def update(self, shift_id: str, **changes) -> Shift:
        """Change start-side fields of an Active shift."""
        shift = self._live(shift_id)
        if shift.is_completed:
            raise InvalidInput(f"Shift {shift_id} is completed; open an edit session to change it")

        if "has_full_tank_at_start" in changes:
            if changes.pop("has_full_tank_at_start"):
                changes["start_tank_level"] = 8
        parsed = {}
        for name, value in changes.items():
            if name not in START_FIELDS:
                raise InvalidInput(f"{name} cannot be changed on an active shift", field=name)
            parsed[name] = check_field(name, value)

        updated = shift.model_copy(deep=True)
        _set_fields(updated, parsed)
        gate = evaluate_shift(updated, tz=self.config.timezone)
        if not gate.enabled:
            logger.warning("Rejected update of shift %s: %s", shift_id, gate.fields())
            raise ValidationFailed(gate.messages)

        self._touch(updated)
        self._replace(updated)
        return updated.model_copy(deep=True)

    def delete(self, shift_id: str) -> None:
        """Soft-delete; deleting an already-deleted shift is a no-op."""
        shift = self._shifts.get(shift_id)
        if shift is None:
            raise NotFound(f"Shift {shift_id} not found")
        if shift.is_deleted:
            return
        if shift_id in self._sessions:
            raise SessionConflict(f"Shift {shift_id} has an open edit session")

        deleted = shift.model_copy(deep=True)
        deleted.is_deleted = True
        self._touch(deleted)
        self._replace(deleted)
        logger.info("Deleted shift %s", shift_id)

    def purge_deleted(self) -> int:
        """Permanently drop soft-deleted shifts; returns how many were dropped."""
        doomed = [shift_id for shift_id, shift in self._shifts.items() if shift.is_deleted]
        for shift_id in doomed:
            del self._shifts[shift_id]
            if self._store is not None:
                self._store.remove(shift_id)
        if doomed:
            logger.info("Purged %d deleted shifts", len(doomed))
        return len(doomed)

    # --- Edit sessions ---

    def edit(self, shift_id: str) -> EditSession:
        shift = self._live(shift_id)
        if shift.is_active:
            raise InvalidInput(f"Shift {shift_id} is still active; only completed shifts are edited")
        if shift_id in self._sessions:
            raise SessionConflict(f"Shift {shift_id} already has an open edit session")

        session = EditSession(self, shift)
        self._sessions[shift_id] = session
        logger.info("Opened edit session for shift %s", shift_id)
        return session

    def session_for(self, shift_id: str) -> EditSession:
        session = self._sessions.get(shift_id)
        if session is None:
            raise NotFound(f"No open edit session for shift {shift_id}")
        return session

    def _commit_session(self, session: EditSession) -> Shift:
        if self._sessions.get(session.shift_id) is not session:
            raise SessionConflict(f"Edit session for shift {session.shift_id} is not open")

        # Stored as a fresh copy; the session's photo store stays bound to the draft
        committed = session._draft.model_copy(deep=True)
        if committed.did_refuel_at_end:
            committed.gas_price = self._gas_price_for(committed)
        self._touch(committed)

        self._replace(committed)
        del self._sessions[session.shift_id]
        logger.info("Committed edit of shift %s", session.shift_id)
        return committed.model_copy(deep=True)

    def _close_session(self, session: EditSession) -> None:
        if self._sessions.get(session.shift_id) is session:
            del self._sessions[session.shift_id]

    # --- Photos of an active shift ---

    def add_photo(self, shift_id: str, image_data: bytes) -> str:
        return self._change_photos(shift_id, lambda store: store.add(image_data))

    def set_photo_type(self, shift_id: str, attachment_id: str, photo_type) -> None:
        self._change_photos(shift_id, lambda store: store.set_type(attachment_id, photo_type))

    def set_photo_description(self, shift_id: str, attachment_id: str, text: Optional[str]) -> None:
        self._change_photos(shift_id, lambda store: store.set_description(attachment_id, text))

    def remove_photo(self, shift_id: str, attachment_id: str) -> None:
        self._change_photos(shift_id, lambda store: store.remove(attachment_id))

    def photos(self, shift_id: str) -> List[PhotoAttachment]:
        return [a.model_copy(deep=True) for a in self._live(shift_id).photos]

    def _photo_owner(self, shift_id: str) -> Shift:
        shift = self._live(shift_id)
        if shift.is_completed:
            raise InvalidInput(f"Shift {shift_id} is completed; change its photos in an edit session")
        return shift

    def _photo_store(self, shift: Shift) -> PhotoAttachmentStore:
        return PhotoAttachmentStore(shift.photos, self.config.photo_types)

    def _change_photos(self, shift_id: str, change):
        """Apply `change` to a copy of the shift's photo store, then swap the copy in."""
        updated = self._photo_owner(shift_id).model_copy(deep=True)
        result = change(self._photo_store(updated))
        self._touch(updated)
        self._replace(updated)
        return result

    # --- Queries ---

    def get(self, shift_id: str) -> Shift:
        return self._live(shift_id).model_copy(deep=True)

    def shifts(self, status=None) -> List[Shift]:
        wanted = _status(status)
        return [
            s.model_copy(deep=True)
            for s in self._live_shifts()
            if wanted is None or s.status == wanted
        ]

    def find_by_date(self, day: Union[date, datetime], status=None) -> Optional[Shift]:
        """First shift (in ledger order) whose start falls on `day`; None if there is none."""
        day = calendar_day(day, self.config.timezone)
        wanted = _status(status)
        for shift in self._live_shifts():
            if wanted is not None and shift.status != wanted:
                continue
            if local_date(shift.start_date, self.config.timezone) == day:
                return shift.model_copy(deep=True)
        return None

    def week_start_for(self, day: Union[date, datetime]) -> date:
        return week_start_for(calendar_day(day, self.config.timezone), self.config.week_start_day)

    def shifts_in_week(self, week_start: Union[date, datetime]) -> List[Shift]:
        day = calendar_day(week_start, self.config.timezone)
        return self.shifts_in_range(*get_week_range(day, self.config.week_start_day))

    def shifts_in_range(self, first: Union[date, datetime], last: Union[date, datetime]) -> List[Shift]:
        """Shifts whose start day is within [first, last], ordered by start."""
        tz = self.config.timezone
        first, last = calendar_day(first, tz), calendar_day(last, tz)
        return self._ordered(s for s in self._live_shifts() if first <= local_date(s.start_date, tz) <= last)

    def shifts_in_year(self, year: int) -> List[Shift]:
        """Shifts that started in `year`; one running past New Year stays in its start year."""
        tz = self.config.timezone
        return self._ordered(s for s in self._live_shifts() if local_date(s.start_date, tz).year == year)

    def available_years(self) -> List[int]:
        tz = self.config.timezone
        years = {local_date(s.start_date, tz).year for s in self._live_shifts() if s.is_completed}
        return sorted(years, reverse=True)

    def __len__(self) -> int:
        return sum(1 for _ in self._live_shifts())

    # --- Internals ---

    def _live(self, shift_id: str) -> Shift:
        shift = self._shifts.get(shift_id)
        if shift is None or shift.is_deleted:
            raise NotFound(f"Shift {shift_id} not found")
        return shift

    def _live_shifts(self) -> Iterable[Shift]:
        return (s for s in list(self._shifts.values()) if not s.is_deleted)

    def _ordered(self, shifts: Iterable[Shift]) -> List[Shift]:
        tz = self.config.timezone
        ordered = sorted(shifts, key=lambda s: ensure_timezone_aware(s.start_date, tz))
        return [s.model_copy(deep=True) for s in ordered]

    def _gas_price_for(self, shift: Shift) -> Decimal:
        if shift.did_refuel_at_end and shift.fuel_cost is not None and shift.gallons_filled:
            return (shift.fuel_cost / shift.gallons_filled).quantize(CENTS, rounding=ROUND_HALF_UP)
        return self.config.gas_price.quantize(CENTS, rounding=ROUND_HALF_UP)

    def _touch(self, shift: Shift) -> None:
        shift.modified_date = advance_past(shift.modified_date, self._clock(), self.config.timezone)

    def _persist(self, shift: Shift) -> None:
        if self._store is not None:
            self._store.save(shift)

    def _replace(self, shift: Shift) -> None:
        # Persisted first; a failing store leaves the in-memory ledger untouched
        self._persist(shift)
        self._shifts[shift.id] = shift

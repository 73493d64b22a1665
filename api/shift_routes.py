import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from pydantic import BaseModel, field_serializer

from core.config import TrackerConfig
from core.deps import get_ledger, ledger_guard
from models.photo_attachment import PhotoAttachment
from models.shift import Shift, ShiftEndFields, ShiftStartFields
from services.photo_store import PhotoAttachmentStore
from services.shift_ledger import ShiftLedger
from services.tax_summary import to_cents
from services.validation import GateResult, evaluate_end, evaluate_start
from utils.datetime_helpers import format_utc_datetime
from utils.tank_gauge import label_for

logger = logging.getLogger(__name__)

# --- Pydantic Models for Responses ---


class PhotoResponse(BaseModel):
    id: str
    type: str
    description: str
    file_size: int
    date_attached: datetime

    @field_serializer("date_attached")
    def serialize_date_attached(self, dt: datetime) -> str:
        """Ensure date_attached is formatted as UTC with Z suffix"""
        return format_utc_datetime(dt)

    @classmethod
    def from_photo(cls, photo: PhotoAttachment) -> "PhotoResponse":
        return cls(
            id=photo.id,
            type=photo.type,
            description=photo.description,
            file_size=photo.file_size,
            date_attached=photo.date_attached,
        )


class ShiftResponse(BaseModel):
    id: str
    status: str
    created_date: datetime
    modified_date: datetime

    start_date: datetime
    start_mileage: Decimal
    start_tank_level: int
    start_tank_label: str
    has_full_tank_at_start: bool

    end_date: Optional[datetime] = None
    end_mileage: Optional[Decimal] = None
    end_tank_level: Optional[int] = None
    end_tank_label: Optional[str] = None
    did_refuel_at_end: bool
    gallons_filled: Optional[Decimal] = None
    fuel_cost: Optional[Decimal] = None

    trip_count: Optional[int] = None
    net_fare: Decimal
    tips: Decimal
    promotions: Decimal
    tolls: Decimal
    tolls_reimbursed: Decimal
    parking_fees: Decimal
    misc_fees: Decimal
    gas_price: Optional[Decimal] = None
    standard_mileage_rate: Optional[Decimal] = None

    # Derived on read
    shift_mileage: Decimal
    shift_hours: int
    shift_minutes: int
    revenue: Decimal
    income_contribution: Decimal
    expected_payout: Decimal
    actual_expenses: Decimal
    gas_cost: Decimal
    cash_flow_profit: Decimal
    profit_per_hour: Decimal

    photos: List[PhotoResponse] = []

    @field_serializer("created_date", "modified_date", "start_date", "end_date")
    def serialize_timestamps(self, dt: Optional[datetime]) -> Optional[str]:
        """Ensure timestamps are formatted as UTC with Z suffix"""
        if dt is None:
            return None
        return format_utc_datetime(dt)

    @classmethod
    def from_shift(cls, shift: Shift, config: TrackerConfig) -> "ShiftResponse":
        capacity = config.tank_capacity
        price = shift.gas_price if shift.gas_price is not None else config.gas_price
        return cls(
            id=shift.id,
            status=shift.status.value,
            created_date=shift.created_date,
            modified_date=shift.modified_date,
            start_date=shift.start_date,
            start_mileage=shift.start_mileage,
            start_tank_level=shift.start_tank_level,
            start_tank_label=label_for(shift.start_tank_level),
            has_full_tank_at_start=shift.has_full_tank_at_start,
            end_date=shift.end_date,
            end_mileage=shift.end_mileage,
            end_tank_level=shift.end_tank_level,
            end_tank_label=label_for(shift.end_tank_level) if shift.end_tank_level is not None else None,
            did_refuel_at_end=shift.did_refuel_at_end,
            gallons_filled=shift.gallons_filled,
            fuel_cost=shift.fuel_cost,
            trip_count=shift.trip_count,
            net_fare=shift.net_fare,
            tips=shift.tips,
            promotions=shift.promotions,
            tolls=shift.tolls,
            tolls_reimbursed=shift.tolls_reimbursed,
            parking_fees=shift.parking_fees,
            misc_fees=shift.misc_fees,
            gas_price=shift.gas_price,
            standard_mileage_rate=shift.standard_mileage_rate,
            shift_mileage=shift.shift_mileage,
            shift_hours=shift.shift_hours,
            shift_minutes=shift.shift_minutes,
            revenue=shift.revenue,
            income_contribution=shift.income_contribution,
            expected_payout=shift.expected_payout,
            actual_expenses=shift.actual_expenses,
            gas_cost=to_cents(shift.gas_cost(capacity, price)),
            cash_flow_profit=to_cents(shift.cash_flow_profit(capacity, price)),
            profit_per_hour=to_cents(shift.profit_per_hour(capacity, price)),
            photos=[PhotoResponse.from_photo(p) for p in shift.photos],
        )


class EditSessionResponse(BaseModel):
    shift: ShiftResponse
    gate: GateResult


class PhotoAddedResponse(BaseModel):
    id: str
    position: int


class PhotoMetadataPayload(BaseModel):
    type: Optional[str] = None
    description: Optional[str] = None


# --- Helpers ---

_IMAGE_SIGNATURES = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF8", "image/gif"),
    (b"RIFF", "image/webp"),
)


def guess_image_type(data: bytes) -> str:
    for signature, media_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return media_type
    return "application/octet-stream"


def check_photo_type(photo_types: List[str], photo_type: Optional[str]) -> None:
    if photo_type is not None and photo_type not in photo_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown photo type. Allowed types: {', '.join(photo_types)}",
        )


def _apply_photo_metadata(store: PhotoAttachmentStore, photo_id: str, payload: PhotoMetadataPayload) -> None:
    if payload.type is not None:
        store.set_type(photo_id, payload.type)
    if payload.description is not None:
        store.set_description(photo_id, payload.description)


def _responses(shifts: List[Shift], ledger: ShiftLedger) -> List[ShiftResponse]:
    return [ShiftResponse.from_shift(s, ledger.config) for s in shifts]


# Defines API Endpoints
router = APIRouter()


# --- Validation queries ---


@router.post("/start-gate", response_model=GateResult)
def start_gate(form: ShiftStartFields):
    return evaluate_start(form)


@router.post("/{shift_id}/end-gate", response_model=GateResult)
def end_gate(shift_id: str, form: ShiftEndFields, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        shift = ledger.get(shift_id)
    return evaluate_end(form, shift, tz=ledger.config.timezone)


# --- Partition queries (declared before /{shift_id}) ---


@router.get("/by-date/{day}", response_model=Optional[ShiftResponse])
def find_shift_by_date(
    day: date,
    status_filter: Optional[str] = Query(None, alias="status"),
    ledger: ShiftLedger = Depends(get_ledger),
):
    with ledger_guard():
        shift = ledger.find_by_date(day, status=status_filter)
    return ShiftResponse.from_shift(shift, ledger.config) if shift else None


@router.get("/week/{week_start}", response_model=List[ShiftResponse])
def shifts_in_week(week_start: date, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        shifts = ledger.shifts_in_week(week_start)
    return _responses(shifts, ledger)


@router.get("/year/{year}", response_model=List[ShiftResponse])
def shifts_in_year(year: int, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        shifts = ledger.shifts_in_year(year)
    return _responses(shifts, ledger)


# --- Shift lifecycle ---


@router.post("", response_model=ShiftResponse, status_code=status.HTTP_201_CREATED)
def start_shift(form: ShiftStartFields, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        shift = ledger.create(form)
    return ShiftResponse.from_shift(shift, ledger.config)


@router.get("", response_model=List[ShiftResponse])
def list_shifts(
    status_filter: Optional[str] = Query(None, alias="status"),
    ledger: ShiftLedger = Depends(get_ledger),
):
    with ledger_guard():
        shifts = ledger.shifts(status=status_filter)
    return _responses(shifts, ledger)


@router.get("/{shift_id}", response_model=ShiftResponse)
def get_shift(shift_id: str, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        shift = ledger.get(shift_id)
    return ShiftResponse.from_shift(shift, ledger.config)


@router.patch("/{shift_id}", response_model=ShiftResponse)
def update_active_shift(
    shift_id: str,
    changes: Dict[str, Any] = Body(...),
    ledger: ShiftLedger = Depends(get_ledger),
):
    with ledger_guard():
        shift = ledger.update(shift_id, **changes)
    return ShiftResponse.from_shift(shift, ledger.config)


@router.post("/{shift_id}/complete", response_model=ShiftResponse)
def complete_shift(shift_id: str, form: ShiftEndFields, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        shift = ledger.complete(shift_id, form)
    return ShiftResponse.from_shift(shift, ledger.config)


@router.delete("/{shift_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_shift(shift_id: str, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        ledger.delete(shift_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Photos of an active shift ---


@router.post("/{shift_id}/photos", response_model=PhotoAddedResponse, status_code=status.HTTP_201_CREATED)
def add_shift_photo(
    shift_id: str,
    photo: UploadFile = File(..., description="Photo to attach"),
    photo_type: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    ledger: ShiftLedger = Depends(get_ledger),
):
    check_photo_type(ledger.config.photo_types, photo_type)
    image_data = photo.file.read()
    with ledger_guard():
        photo_id = ledger.add_photo(shift_id, image_data)
        if photo_type is not None:
            ledger.set_photo_type(shift_id, photo_id, photo_type)
        if description is not None:
            ledger.set_photo_description(shift_id, photo_id, description)
        position = [p.id for p in ledger.photos(shift_id)].index(photo_id)
    logger.info("Attached %s (%d bytes) to shift %s", photo.filename, len(image_data), shift_id)
    return PhotoAddedResponse(id=photo_id, position=position)


@router.patch("/{shift_id}/photos/{photo_id}", response_model=PhotoResponse)
def update_shift_photo(
    shift_id: str,
    photo_id: str,
    payload: PhotoMetadataPayload,
    ledger: ShiftLedger = Depends(get_ledger),
):
    with ledger_guard():
        if payload.type is not None:
            ledger.set_photo_type(shift_id, photo_id, payload.type)
        if payload.description is not None:
            ledger.set_photo_description(shift_id, photo_id, payload.description)
        photo = PhotoAttachmentStore(ledger.photos(shift_id)).get(photo_id)
    return PhotoResponse.from_photo(photo)


@router.delete("/{shift_id}/photos/{photo_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_shift_photo(shift_id: str, photo_id: str, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        ledger.remove_photo(shift_id, photo_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{shift_id}/photos/{photo_id}/image")
def get_shift_photo_image(shift_id: str, photo_id: str, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        photo = PhotoAttachmentStore(ledger.photos(shift_id)).get(photo_id)
    return Response(
        content=photo.image_data,
        media_type=guess_image_type(photo.image_data),
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


# --- Edit sessions on a completed shift ---


def _session_response(session, ledger: ShiftLedger) -> EditSessionResponse:
    return EditSessionResponse(
        shift=ShiftResponse.from_shift(session.draft, ledger.config),
        gate=session.evaluate(),
    )


@router.post("/{shift_id}/edit", response_model=EditSessionResponse, status_code=status.HTTP_201_CREATED)
def open_edit_session(shift_id: str, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        session = ledger.edit(shift_id)
        return _session_response(session, ledger)


@router.get("/{shift_id}/edit", response_model=EditSessionResponse)
def get_edit_session(shift_id: str, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        return _session_response(ledger.session_for(shift_id), ledger)


@router.patch("/{shift_id}/edit", response_model=EditSessionResponse)
def stage_edit(
    shift_id: str,
    changes: Dict[str, Any] = Body(...),
    ledger: ShiftLedger = Depends(get_ledger),
):
    with ledger_guard():
        session = ledger.session_for(shift_id)
        session.set(**changes)
        return _session_response(session, ledger)


@router.post("/{shift_id}/edit/photos", response_model=PhotoAddedResponse, status_code=status.HTTP_201_CREATED)
def add_edit_photo(
    shift_id: str,
    photo: UploadFile = File(..., description="Photo to attach"),
    photo_type: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    ledger: ShiftLedger = Depends(get_ledger),
):
    check_photo_type(ledger.config.photo_types, photo_type)
    image_data = photo.file.read()
    with ledger_guard():
        store = ledger.session_for(shift_id).photos
        photo_id = store.add(image_data)
        _apply_photo_metadata(store, photo_id, PhotoMetadataPayload(type=photo_type, description=description))
        position = store.ids().index(photo_id)
    return PhotoAddedResponse(id=photo_id, position=position)


@router.patch("/{shift_id}/edit/photos/{photo_id}", response_model=PhotoResponse)
def update_edit_photo(
    shift_id: str,
    photo_id: str,
    payload: PhotoMetadataPayload,
    ledger: ShiftLedger = Depends(get_ledger),
):
    with ledger_guard():
        store = ledger.session_for(shift_id).photos
        _apply_photo_metadata(store, photo_id, payload)
        return PhotoResponse.from_photo(store.get(photo_id))


@router.delete("/{shift_id}/edit/photos/{photo_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_edit_photo(shift_id: str, photo_id: str, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        ledger.session_for(shift_id).photos.remove(photo_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{shift_id}/edit/commit", response_model=ShiftResponse)
def commit_edit_session(shift_id: str, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        shift = ledger.session_for(shift_id).commit()
    return ShiftResponse.from_shift(shift, ledger.config)


@router.post("/{shift_id}/edit/discard", status_code=status.HTTP_204_NO_CONTENT)
def discard_edit_session(shift_id: str, ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        ledger.session_for(shift_id).discard()
    return Response(status_code=status.HTTP_204_NO_CONTENT)

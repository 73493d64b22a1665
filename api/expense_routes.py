import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from pydantic import BaseModel, field_serializer

from api.shift_routes import (
    PhotoAddedResponse,
    PhotoMetadataPayload,
    PhotoResponse,
    check_photo_type,
    guess_image_type,
)
from core.deps import get_expenses, ledger_guard
from models.expense import ExpenseCategory, ExpenseItem
from services.expense_ledger import ExpenseLedger, totals_by_category
from services.photo_store import PhotoAttachmentStore
from utils.datetime_helpers import format_utc_datetime

logger = logging.getLogger(__name__)

# --- Pydantic Models for Requests / Responses ---


class ExpensePayload(BaseModel):
    expense_date: date
    category: str
    description: str
    amount: Decimal


class ExpenseResponse(BaseModel):
    id: str
    expense_date: date
    category: str
    description: str
    amount: Decimal
    is_vehicle: bool
    created_date: datetime
    modified_date: datetime
    photos: List[PhotoResponse] = []

    @field_serializer("created_date", "modified_date")
    def serialize_timestamps(self, dt: datetime) -> str:
        """Ensure timestamps are formatted as UTC with Z suffix"""
        return format_utc_datetime(dt)

    @classmethod
    def from_expense(cls, expense: ExpenseItem) -> "ExpenseResponse":
        return cls(
            id=expense.id,
            expense_date=expense.expense_date,
            category=expense.category.value,
            description=expense.description,
            amount=expense.amount,
            is_vehicle=expense.is_vehicle,
            created_date=expense.created_date,
            modified_date=expense.modified_date,
            photos=[PhotoResponse.from_photo(p) for p in expense.photos],
        )


class ExpenseTotalsResponse(BaseModel):
    year: int
    total: Decimal
    non_vehicle_total: Decimal
    by_category: Dict[str, Decimal]


# Defines API Endpoints
router = APIRouter()


@router.get("/categories", response_model=List[str])
def expense_categories():
    return [c.value for c in ExpenseCategory]


# Declared before /{expense_id}
@router.get("/totals/{year}", response_model=ExpenseTotalsResponse)
def expense_totals(year: int, expenses: ExpenseLedger = Depends(get_expenses)):
    with ledger_guard():
        items = expenses.expenses_for_year(year)
        return ExpenseTotalsResponse(
            year=year,
            total=expenses.total_for_year(year),
            non_vehicle_total=expenses.non_vehicle_total_for_year(year),
            by_category={c.value: total for c, total in totals_by_category(items).items()},
        )


@router.get("", response_model=List[ExpenseResponse])
def list_expenses(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    expenses: ExpenseLedger = Depends(get_expenses),
):
    if month is not None and year is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="month filter needs a year")
    with ledger_guard():
        if month is not None:
            items = expenses.expenses_for_month(year, month)
        elif year is not None:
            items = expenses.expenses_for_year(year)
        else:
            items = expenses.expenses()
    return [ExpenseResponse.from_expense(e) for e in items]


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
def add_expense(payload: ExpensePayload, expenses: ExpenseLedger = Depends(get_expenses)):
    with ledger_guard():
        expense = expenses.add(payload.expense_date, payload.category, payload.description, payload.amount)
    return ExpenseResponse.from_expense(expense)


@router.get("/{expense_id}", response_model=ExpenseResponse)
def get_expense(expense_id: str, expenses: ExpenseLedger = Depends(get_expenses)):
    with ledger_guard():
        expense = expenses.get(expense_id)
    return ExpenseResponse.from_expense(expense)


@router.patch("/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    expense_id: str,
    changes: Dict[str, Any] = Body(...),
    expenses: ExpenseLedger = Depends(get_expenses),
):
    with ledger_guard():
        expense = expenses.update(expense_id, **changes)
    return ExpenseResponse.from_expense(expense)


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(expense_id: str, expenses: ExpenseLedger = Depends(get_expenses)):
    with ledger_guard():
        expenses.delete(expense_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Receipt photos ---


@router.post("/{expense_id}/photos", response_model=PhotoAddedResponse, status_code=status.HTTP_201_CREATED)
def add_expense_photo(
    expense_id: str,
    photo: UploadFile = File(..., description="Receipt or product photo"),
    photo_type: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    expenses: ExpenseLedger = Depends(get_expenses),
):
    check_photo_type(expenses.config.photo_types, photo_type)
    image_data = photo.file.read()
    with ledger_guard():
        photo_id = expenses.add_photo(expense_id, image_data)
        if photo_type is not None:
            expenses.set_photo_type(expense_id, photo_id, photo_type)
        if description is not None:
            expenses.set_photo_description(expense_id, photo_id, description)
        position = [p.id for p in expenses.photos(expense_id)].index(photo_id)
    logger.info("Attached %s (%d bytes) to expense %s", photo.filename, len(image_data), expense_id)
    return PhotoAddedResponse(id=photo_id, position=position)


@router.patch("/{expense_id}/photos/{photo_id}", response_model=PhotoResponse)
def update_expense_photo(
    expense_id: str,
    photo_id: str,
    payload: PhotoMetadataPayload,
    expenses: ExpenseLedger = Depends(get_expenses),
):
    with ledger_guard():
        if payload.type is not None:
            expenses.set_photo_type(expense_id, photo_id, payload.type)
        if payload.description is not None:
            expenses.set_photo_description(expense_id, photo_id, payload.description)
        photo = PhotoAttachmentStore(expenses.photos(expense_id)).get(photo_id)
    return PhotoResponse.from_photo(photo)


@router.delete("/{expense_id}/photos/{photo_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_expense_photo(expense_id: str, photo_id: str, expenses: ExpenseLedger = Depends(get_expenses)):
    with ledger_guard():
        expenses.remove_photo(expense_id, photo_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{expense_id}/photos/{photo_id}/image")
def get_expense_photo_image(expense_id: str, photo_id: str, expenses: ExpenseLedger = Depends(get_expenses)):
    with ledger_guard():
        photo = PhotoAttachmentStore(expenses.photos(expense_id)).get(photo_id)
    return Response(
        content=photo.image_data,
        media_type=guess_image_type(photo.image_data),
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )

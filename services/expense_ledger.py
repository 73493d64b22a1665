"""
Business expenses recorded outside of shifts.

Ownership follows the shift ledger: every change is made on a copy, persisted,
then swapped in, and every read hands back a copy.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Union

from pydantic import ValidationError

from core.config import TrackerConfig
from core.errors import InvalidInput, NotFound
from models.expense import ExpenseCategory, ExpenseItem
from models.photo_attachment import PhotoAttachment
from models.shift import ZERO
from services.photo_store import PhotoAttachmentStore
from utils.datetime_helpers import utc_now
from utils.timezone_helpers import advance_past, calendar_day, ensure_timezone_aware

logger = logging.getLogger(__name__)

EXPENSE_FIELDS = ("expense_date", "category", "description", "amount")


class ExpenseStore(Protocol):
    """Persistence collaborator told about every committed change."""

    def save(self, expense: ExpenseItem) -> None: ...

    def remove(self, expense_id: str) -> None: ...


def totals_by_category(expenses: Iterable[ExpenseItem]) -> Dict[ExpenseCategory, Decimal]:
    totals: Dict[ExpenseCategory, Decimal] = {}
    for expense in expenses:
        totals[expense.category] = totals.get(expense.category, ZERO) + expense.amount
    return totals


class ExpenseLedger:
    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        store: Optional[ExpenseStore] = None,
        expenses: Optional[Iterable[ExpenseItem]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or TrackerConfig()
        self._store = store
        self._clock = clock
        self._expenses: Dict[str, ExpenseItem] = {}
        for expense in expenses or ():
            self._expenses[expense.id] = expense

    # --- Lifecycle ---

    def add(
        self,
        expense_date: Union[date, datetime, str],
        category: Union[ExpenseCategory, str],
        description: str,
        amount: Union[Decimal, str],
        photos: Optional[Union[PhotoAttachmentStore, List[PhotoAttachment]]] = None,
    ) -> ExpenseItem:
        attachments = photos.list() if isinstance(photos, PhotoAttachmentStore) else list(photos or [])
        now = self._clock()
        try:
            expense = ExpenseItem(
                expense_date=calendar_day(expense_date, self.config.timezone),
                category=category,
                description=description,
                amount=amount,
                created_date=now,
                modified_date=now,
                photos=[a.model_copy(deep=True) for a in attachments],
            )
        except ValidationError as e:
            raise InvalidInput.from_validation_error(e)

        self._replace(expense)
        logger.info("Recorded %s expense %s: %s", expense.category.value, expense.id, expense.amount)
        return expense.model_copy(deep=True)

    def update(self, expense_id: str, **changes) -> ExpenseItem:
        """Change any of date, category, description or amount; all apply or none do."""
        updated = self._live(expense_id).model_copy(deep=True)
        for name, value in changes.items():
            if name not in EXPENSE_FIELDS:
                raise InvalidInput(f"{name} cannot be changed on an expense", field=name)
            if name == "expense_date":
                value = calendar_day(value, self.config.timezone)
            try:
                setattr(updated, name, value)
            except ValidationError as e:
                raise InvalidInput.from_validation_error(e)

        self._touch(updated)
        self._replace(updated)
        return updated.model_copy(deep=True)

    def delete(self, expense_id: str) -> None:
        """Soft-delete; deleting an already-deleted expense is a no-op."""
        expense = self._expenses.get(expense_id)
        if expense is None:
            raise NotFound(f"Expense {expense_id} not found")
        if expense.is_deleted:
            return

        deleted = expense.model_copy(deep=True)
        deleted.is_deleted = True
        self._touch(deleted)
        self._replace(deleted)
        logger.info("Deleted expense %s", expense_id)

    def purge_deleted(self) -> int:
        doomed = [expense_id for expense_id, expense in self._expenses.items() if expense.is_deleted]
        for expense_id in doomed:
            if self._store is not None:
                self._store.remove(expense_id)
            del self._expenses[expense_id]
        if doomed:
            logger.info("Purged %d deleted expenses", len(doomed))
        return len(doomed)

    # --- Photos ---

    def add_photo(self, expense_id: str, image_data: bytes) -> str:
        return self._change_photos(expense_id, lambda store: store.add(image_data))

    def set_photo_type(self, expense_id: str, attachment_id: str, photo_type) -> None:
        self._change_photos(expense_id, lambda store: store.set_type(attachment_id, photo_type))

    def set_photo_description(self, expense_id: str, attachment_id: str, text: Optional[str]) -> None:
        self._change_photos(expense_id, lambda store: store.set_description(attachment_id, text))

    def remove_photo(self, expense_id: str, attachment_id: str) -> None:
        self._change_photos(expense_id, lambda store: store.remove(attachment_id))

    def photos(self, expense_id: str) -> List[PhotoAttachment]:
        return [a.model_copy(deep=True) for a in self._live(expense_id).photos]

    # --- Queries ---

    def get(self, expense_id: str) -> ExpenseItem:
        return self._live(expense_id).model_copy(deep=True)

    def expenses(self) -> List[ExpenseItem]:
        return self._ordered(self._live_expenses())

    def expenses_for_year(self, year: int) -> List[ExpenseItem]:
        return self._ordered(e for e in self._live_expenses() if e.expense_date.year == year)

    def expenses_for_month(self, year: int, month: int) -> List[ExpenseItem]:
        return self._ordered(
            e for e in self._live_expenses() if (e.expense_date.year, e.expense_date.month) == (year, month)
        )

    def total_for_year(self, year: int) -> Decimal:
        return sum((e.amount for e in self.expenses_for_year(year)), ZERO)

    def total_for_month(self, year: int, month: int) -> Decimal:
        return sum((e.amount for e in self.expenses_for_month(year, month)), ZERO)

    def non_vehicle_total_for_year(self, year: int) -> Decimal:
        """The part of a year's expenses that is deductible alongside the mileage rate."""
        return sum((e.amount for e in self.expenses_for_year(year) if not e.is_vehicle), ZERO)

    def __len__(self) -> int:
        return sum(1 for _ in self._live_expenses())

    # --- Internals ---

    def _live(self, expense_id: str) -> ExpenseItem:
        expense = self._expenses.get(expense_id)
        if expense is None or expense.is_deleted:
            raise NotFound(f"Expense {expense_id} not found")
        return expense

    def _live_expenses(self) -> Iterable[ExpenseItem]:
        return (e for e in list(self._expenses.values()) if not e.is_deleted)

    def _ordered(self, expenses: Iterable[ExpenseItem]) -> List[ExpenseItem]:
        tz = self.config.timezone
        ordered = sorted(expenses, key=lambda e: (e.expense_date, ensure_timezone_aware(e.created_date, tz)))
        return [e.model_copy(deep=True) for e in ordered]

    def _change_photos(self, expense_id: str, change):
        updated = self._live(expense_id).model_copy(deep=True)
        result = change(PhotoAttachmentStore(updated.photos, self.config.photo_types))
        self._touch(updated)
        self._replace(updated)
        return result

    def _touch(self, expense: ExpenseItem) -> None:
        expense.modified_date = advance_past(expense.modified_date, self._clock(), self.config.timezone)

    def _replace(self, expense: ExpenseItem) -> None:
        if self._store is not None:
            self._store.save(expense)
        self._expenses[expense.id] = expense

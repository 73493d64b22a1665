from datetime import datetime
from typing import List
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends

from core.deps import get_expenses, get_ledger, ledger_guard
from services.expense_ledger import ExpenseLedger
from services.shift_ledger import ShiftLedger
from services.tax_summary import TaxSummary, summarize_year

# Defines API Endpoints
router = APIRouter()


# Years with completed shifts, newest first (declared before /{year})
@router.get("/years", response_model=List[int])
def available_tax_years(ledger: ShiftLedger = Depends(get_ledger)):
    with ledger_guard():
        return ledger.available_years()


@router.get("/{year}", response_model=TaxSummary)
def tax_summary_for_year(
    year: int,
    ledger: ShiftLedger = Depends(get_ledger),
    expenses: ExpenseLedger = Depends(get_expenses),
):
    # "Current year" is decided on the driver's local calendar
    today = datetime.now(ZoneInfo(ledger.config.timezone)).date()
    with ledger_guard():
        return summarize_year(ledger, year, today=today, expenses=expenses)

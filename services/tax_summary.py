"""
Year-to-date income and the two IRS deduction methods for one calendar year.

Only completed, non-deleted shifts count, partitioned by the year their
start falls in. Business expenses recorded outside of shifts only move the
tax-due estimates: non-vehicle expenses add to the mileage method's
deductions, all of them to the actual-expense method's. Every money total is
quantized to cents (ROUND_HALF_UP).
"""

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from pydantic import BaseModel

from core.config import TrackerConfig
from models.shift import ZERO, Shift
from services.expense_ledger import ExpenseLedger
from services.shift_ledger import ShiftLedger

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
SE_TAXABLE_SHARE = Decimal("0.9235")
SE_TAX_RATE = Decimal("0.153")


def to_cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


class TaxEstimate(BaseModel):
    """Self-employment plus income tax due under one deduction method."""

    net_earnings: Decimal
    se_taxable_earnings: Decimal
    self_employment_tax: Decimal
    adjusted_gross_income: Decimal
    deductible_tips: Decimal
    taxable_income: Decimal
    income_tax: Decimal
    total_tax: Decimal


class TaxSummary(BaseModel):
    year: int
    shift_count: int
    standard_mileage_rate: Decimal

    income: Decimal
    mileage_estimate: Decimal
    actual_expense_estimate: Decimal

    # Breakdown
    total_miles: Decimal
    mileage_deduction: Decimal
    total_tips: Decimal
    fuel_costs: Decimal
    tolls: Decimal
    trip_fees: Decimal
    actual_expenses: Decimal

    # Business expenses outside of shifts
    business_expenses: Decimal
    non_vehicle_expenses: Decimal
    mileage_business_deductions: Decimal
    actual_business_deductions: Decimal

    mileage_method: TaxEstimate
    actual_method: TaxEstimate


def estimate_tax(estimate: Decimal, total_tips: Decimal, config: TrackerConfig) -> TaxEstimate:
    """
    Tax due on one method's estimate.

    SE tax applies to 92.35% of net earnings at 15.3%; half of it comes off
    AGI. Tips are deducted from AGI when the tip deduction is enabled.
    """
    net = max(estimate, ZERO)
    se_taxable = net * SE_TAXABLE_SHARE
    se_tax = se_taxable * SE_TAX_RATE
    agi = net - se_tax / 2
    deductible_tips = total_tips if config.tip_deduction_enabled else ZERO
    taxable_income = max(agi - deductible_tips, ZERO)
    income_tax = taxable_income * config.effective_tax_rate

    return TaxEstimate(
        net_earnings=to_cents(net),
        se_taxable_earnings=to_cents(se_taxable),
        self_employment_tax=to_cents(se_tax),
        adjusted_gross_income=to_cents(agi),
        deductible_tips=to_cents(deductible_tips),
        taxable_income=to_cents(taxable_income),
        income_tax=to_cents(income_tax),
        total_tax=to_cents(se_tax + income_tax),
    )


def completed_shifts_in_year(ledger: ShiftLedger, year: int) -> List[Shift]:
    return [s for s in ledger.shifts_in_year(year) if s.is_completed]


def mileage_rate_for_year(
    ledger: ShiftLedger,
    year: int,
    config: Optional[TrackerConfig] = None,
    today: Optional[date] = None,
) -> Decimal:
    """
    The configured rate for the current year (or a year with no shifts);
    for a past year, the rate captured on that year's last shift.
    """
    config = config or ledger.config
    today = today or date.today()
    if year == today.year:
        return config.standard_mileage_rate

    shifts = completed_shifts_in_year(ledger, year)
    if not shifts or shifts[-1].standard_mileage_rate is None:
        return config.standard_mileage_rate
    return shifts[-1].standard_mileage_rate


def summarize_year(
    ledger: ShiftLedger,
    year: int,
    config: Optional[TrackerConfig] = None,
    today: Optional[date] = None,
    expenses: Optional[ExpenseLedger] = None,
) -> TaxSummary:
    config = config or ledger.config
    shifts = completed_shifts_in_year(ledger, year)
    rate = mileage_rate_for_year(ledger, year, config, today)

    income = sum((s.income_contribution for s in shifts), ZERO)
    total_miles = sum((s.shift_mileage for s in shifts), ZERO)
    total_tips = sum((s.tips for s in shifts), ZERO)
    fuel_costs = sum((s.refuel_cost for s in shifts), ZERO)
    tolls = sum((s.tolls for s in shifts), ZERO)
    trip_fees = sum((s.trip_fees for s in shifts), ZERO)
    actual_expenses = sum((s.actual_expenses for s in shifts), ZERO)

    mileage_deduction = total_miles * rate
    mileage_estimate = income - mileage_deduction
    actual_expense_estimate = income - actual_expenses

    business_expenses = expenses.total_for_year(year) if expenses is not None else ZERO
    non_vehicle_expenses = expenses.non_vehicle_total_for_year(year) if expenses is not None else ZERO
    mileage_business_deductions = mileage_deduction + non_vehicle_expenses
    actual_business_deductions = actual_expenses + business_expenses

    logger.debug("Tax summary for %d: %d shifts, %s mi at %s", year, len(shifts), total_miles, rate)

    return TaxSummary(
        year=year,
        shift_count=len(shifts),
        standard_mileage_rate=rate,
        income=to_cents(income),
        mileage_estimate=to_cents(mileage_estimate),
        actual_expense_estimate=to_cents(actual_expense_estimate),
        total_miles=total_miles,
        mileage_deduction=to_cents(mileage_deduction),
        total_tips=to_cents(total_tips),
        fuel_costs=to_cents(fuel_costs),
        tolls=to_cents(tolls),
        trip_fees=to_cents(trip_fees),
        actual_expenses=to_cents(actual_expenses),
        business_expenses=to_cents(business_expenses),
        non_vehicle_expenses=to_cents(non_vehicle_expenses),
        mileage_business_deductions=to_cents(mileage_business_deductions),
        actual_business_deductions=to_cents(actual_business_deductions),
        mileage_method=estimate_tax(income - mileage_business_deductions, total_tips, config),
        actual_method=estimate_tax(income - actual_business_deductions, total_tips, config),
    )

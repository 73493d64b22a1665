from datetime import date, datetime
from decimal import Decimal

import pytest

from core.config import TrackerConfig
from models.shift import Shift
from services.expense_ledger import ExpenseLedger
from services.shift_ledger import ShiftLedger
from services.tax_summary import estimate_tax, mileage_rate_for_year, summarize_year

THIS_YEAR = date(2025, 6, 1)


def completed(start, end=None, start_mileage="10000", end_mileage="10100", **money):
    return Shift(
        start_date=start,
        end_date=end or start.replace(hour=start.hour + 6),
        start_mileage=Decimal(start_mileage),
        end_mileage=Decimal(end_mileage),
        start_tank_level=8,
        end_tank_level=4,
        trip_count=10,
        **{name: Decimal(value) for name, value in money.items()},
    )


@pytest.fixture
def config():
    return TrackerConfig(standard_mileage_rate=Decimal("0.67"))


def test_empty_year_is_all_zeros(config):
    summary = summarize_year(ShiftLedger(config), 2025, today=THIS_YEAR)

    assert summary.shift_count == 0
    assert summary.income == Decimal("0.00")
    assert summary.mileage_estimate == Decimal("0.00")
    assert summary.actual_expense_estimate == Decimal("0.00")
    assert str(summary.income) == "0.00"
    assert summary.mileage_method.total_tax == Decimal("0.00")


def test_income_example(ledger, completed_shift):
    summary = summarize_year(ledger, 2025, today=THIS_YEAR)
    assert summary.income == Decimal("254.45")


def test_mileage_example(config):
    ledger = ShiftLedger(config, shifts=[completed(datetime(2025, 3, 3, 8, 0))])
    summary = summarize_year(ledger, 2025, today=THIS_YEAR)

    assert summary.total_miles == Decimal("100")
    assert summary.mileage_deduction == Decimal("67.00")
    assert summary.mileage_estimate == Decimal("-67.00")


def test_actual_expenses_breakdown(config):
    shift = completed(
        datetime(2025, 3, 3, 8, 0),
        net_fare="200.00",
        tolls="5.00",
        parking_fees="2.00",
        misc_fees="1.00",
    )
    shift.did_refuel_at_end = True
    shift.gallons_filled = Decimal("8.5")
    shift.fuel_cost = Decimal("30.00")
    ledger = ShiftLedger(config, shifts=[shift])

    summary = summarize_year(ledger, 2025, today=THIS_YEAR)
    assert summary.tolls == Decimal("5.00")
    assert summary.trip_fees == Decimal("3.00")
    assert summary.fuel_costs == Decimal("30.00")
    assert summary.actual_expenses == Decimal("38.00")
    assert summary.actual_expense_estimate == Decimal("162.00")


def test_fuel_cost_counts_only_when_refueled(config):
    shift = completed(datetime(2025, 3, 3, 8, 0), net_fare="100.00")
    shift.fuel_cost = Decimal("45.00")
    ledger = ShiftLedger(config, shifts=[shift])

    assert summarize_year(ledger, 2025, today=THIS_YEAR).actual_expense_estimate == Decimal("100.00")


def test_only_completed_live_shifts_count(config):
    live = completed(datetime(2025, 3, 3, 8, 0), net_fare="100.00")
    deleted = completed(datetime(2025, 3, 4, 8, 0), net_fare="500.00")
    deleted.is_deleted = True
    active = Shift(start_date=datetime(2025, 3, 5, 8, 0), start_mileage=Decimal("10200"), start_tank_level=8)
    active.net_fare = Decimal("900.00")
    ledger = ShiftLedger(config, shifts=[live, deleted, active])

    summary = summarize_year(ledger, 2025, today=THIS_YEAR)
    assert summary.shift_count == 1
    assert summary.income == Decimal("100.00")


def test_shift_crossing_new_year_counts_for_its_start_year(config):
    overnight = completed(
        datetime(2024, 12, 31, 21, 0),
        end=datetime(2025, 1, 1, 3, 0),
        net_fare="80.00",
    )
    ledger = ShiftLedger(config, shifts=[overnight])

    assert summarize_year(ledger, 2024, today=THIS_YEAR).income == Decimal("80.00")
    assert summarize_year(ledger, 2025, today=THIS_YEAR).income == Decimal("0.00")


def test_past_year_uses_the_rate_captured_on_its_last_shift(config):
    early = completed(datetime(2023, 2, 1, 8, 0), standard_mileage_rate="0.655")
    late = completed(datetime(2023, 11, 1, 8, 0), standard_mileage_rate="0.65")
    ledger = ShiftLedger(config, shifts=[late, early])

    assert mileage_rate_for_year(ledger, 2023, today=THIS_YEAR) == Decimal("0.65")
    assert summarize_year(ledger, 2023, today=THIS_YEAR).mileage_deduction == Decimal("130.00")


def test_current_and_empty_years_use_the_configured_rate(config):
    captured = completed(datetime(2025, 2, 1, 8, 0), standard_mileage_rate="0.60")
    ledger = ShiftLedger(config, shifts=[captured])

    assert mileage_rate_for_year(ledger, 2025, today=THIS_YEAR) == Decimal("0.67")
    assert mileage_rate_for_year(ledger, 2019, today=THIS_YEAR) == Decimal("0.67")


def test_tax_estimate_on_a_positive_estimate(config):
    estimate = estimate_tax(Decimal("933.00"), Decimal("0"), config)

    assert estimate.net_earnings == Decimal("933.00")
    assert estimate.se_taxable_earnings == Decimal("861.63")
    assert estimate.self_employment_tax == Decimal("131.83")
    assert estimate.adjusted_gross_income == Decimal("867.09")
    assert estimate.taxable_income == Decimal("867.09")
    assert estimate.income_tax == Decimal("190.76")
    assert estimate.total_tax == Decimal("322.59")


def test_tax_estimate_floors_losses_at_zero(config):
    estimate = estimate_tax(Decimal("-67.00"), Decimal("0"), config)
    assert estimate.net_earnings == Decimal("0.00")
    assert estimate.total_tax == Decimal("0.00")


def test_tip_deduction_toggle():
    enabled = estimate_tax(Decimal("1000"), Decimal("100"), TrackerConfig())
    disabled = estimate_tax(Decimal("1000"), Decimal("100"), TrackerConfig(tip_deduction_enabled=False))

    assert enabled.deductible_tips == Decimal("100.00")
    assert disabled.deductible_tips == Decimal("0.00")
    assert disabled.taxable_income - enabled.taxable_income == Decimal("100.00")


def test_summary_carries_both_methods(config):
    shift = completed(datetime(2025, 3, 3, 8, 0), net_fare="1000.00", tips="50.00")
    ledger = ShiftLedger(config, shifts=[shift])

    summary = summarize_year(ledger, 2025, today=THIS_YEAR)
    assert summary.total_tips == Decimal("50.00")
    assert summary.mileage_method.net_earnings == Decimal("983.00")
    assert summary.actual_method.net_earnings == Decimal("1050.00")


def test_business_expenses_feed_each_method(config):
    shift = completed(datetime(2025, 3, 3, 8, 0), net_fare="1000.00")
    ledger = ShiftLedger(config, shifts=[shift])
    expenses = ExpenseLedger(config)
    expenses.add(date(2025, 4, 2), "Vehicle", "new tires", "200.00")
    expenses.add(date(2025, 4, 9), "Supplies", "water and mints", "40.00")
    expenses.add(date(2024, 12, 30), "Equipment", "dash cam", "89.99")

    summary = summarize_year(ledger, 2025, today=THIS_YEAR, expenses=expenses)

    assert summary.business_expenses == Decimal("240.00")
    assert summary.non_vehicle_expenses == Decimal("40.00")
    assert summary.mileage_business_deductions == Decimal("107.00")
    assert summary.actual_business_deductions == Decimal("240.00")
    assert summary.mileage_method.net_earnings == Decimal("893.00")
    assert summary.actual_method.net_earnings == Decimal("760.00")
    # The headline estimates are shift-only
    assert summary.mileage_estimate == Decimal("933.00")
    assert summary.actual_expense_estimate == Decimal("1000.00")


def test_no_expense_ledger_means_no_business_deductions(config):
    shift = completed(datetime(2025, 3, 3, 8, 0), net_fare="1000.00")
    summary = summarize_year(ShiftLedger(config, shifts=[shift]), 2025, today=THIS_YEAR)

    assert summary.business_expenses == Decimal("0.00")
    assert summary.non_vehicle_expenses == Decimal("0.00")
    assert summary.mileage_business_deductions == Decimal("67.00")
    assert summary.mileage_method.net_earnings == Decimal("933.00")
    assert summary.actual_method.net_earnings == Decimal("1000.00")

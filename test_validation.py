from datetime import date, datetime, time, timezone
from decimal import Decimal

import pytest

from core.errors import InvalidInput, InvalidTankLevel, ValidationFailed, ValidationKind
from models.shift import Shift, ShiftEndFields, ShiftStartFields
from services.validation import (
    END_MILEAGE_MESSAGE,
    check_field,
    evaluate_end,
    evaluate_shift,
    evaluate_start,
    filter_numeric_text,
    parse_numeric_text,
)


@pytest.fixture
def active_shift():
    return Shift(
        start_date=datetime(2025, 3, 3, 8, 0),
        start_mileage=Decimal("10000"),
        start_tank_level=6,
    )


def full_end_form(**overrides):
    values = {
        "end_date": date(2025, 3, 3),
        "end_time": time(16, 0),
        "end_mileage": "10100",
        "trip_count": 12,
    }
    values.update(overrides)
    return ShiftEndFields(**values)


# --- Field level ---


@pytest.mark.parametrize(
    "name, value",
    [
        ("start_mileage", "-1"),
        ("start_mileage", "100.25"),
        ("net_fare", "-0.01"),
        ("tips", "1.234"),
        ("trip_count", -1),
        ("trip_count", "two"),
        ("gallons_filled", "-3"),
    ],
)
def test_check_field_rejects_out_of_domain_values(name, value):
    with pytest.raises(InvalidInput):
        check_field(name, value)


@pytest.mark.parametrize("value", [-1, 9, "9", "9/8", "half"])
def test_check_field_rejects_bad_tank_levels(value):
    with pytest.raises(InvalidTankLevel):
        check_field("start_tank_level", value)


def test_check_field_returns_parsed_values():
    assert check_field("start_mileage", "10000.5") == Decimal("10000.5")
    assert check_field("tips", "7.89") == Decimal("7.89")
    assert check_field("end_tank_level", 8) == 8
    assert check_field("trip_count", "12") == 12


@pytest.mark.parametrize("label, level", [("E", 0), ("3/4", 6), ("F", 8), (" full ", 8), ("5", 5)])
def test_check_field_accepts_gauge_labels_for_tank_fields(label, level):
    assert check_field("start_tank_level", label) == level
    assert check_field("end_tank_level", label) == level


def test_check_field_rejects_unknown_fields():
    with pytest.raises(InvalidInput):
        check_field("odometer_photo", 1)


def test_filter_numeric_text():
    assert filter_numeric_text("12,345.6 mi") == "12345.6"
    assert filter_numeric_text("$1.2.3") == "1.23"
    assert filter_numeric_text("7.5 trips", allow_decimal=False) == "75"
    assert filter_numeric_text(None) == ""


def test_parse_numeric_text_filters_before_checking():
    assert parse_numeric_text("start_mileage", "12,345.6 mi") == Decimal("12345.6")
    assert parse_numeric_text("fuel_cost", "$45.10") == Decimal("45.10")
    assert parse_numeric_text("trip_count", "14 trips") == 14
    assert parse_numeric_text("tips", "abc") is None
    with pytest.raises(InvalidInput):
        parse_numeric_text("tips", "1.999")


# --- Start gate ---


def test_empty_start_form_reports_every_missing_field():
    gate = evaluate_start(ShiftStartFields())

    assert not gate.enabled
    assert gate.fields() == ["start_date", "start_time", "start_mileage", "start_tank_level"]
    assert all(m.kind == ValidationKind.MISSING for m in gate.messages)


def test_complete_start_form_opens_the_gate():
    form = ShiftStartFields(
        start_date=date(2025, 3, 3),
        start_time=time(8, 0),
        start_mileage="10000",
        start_tank_level=6,
    )
    gate = evaluate_start(form)
    assert gate.enabled
    assert gate.messages == []


def test_zero_start_mileage_is_out_of_range():
    form = ShiftStartFields(
        start_date=date(2025, 3, 3),
        start_time=time(8, 0),
        start_mileage="0",
        start_tank_level=6,
    )
    gate = evaluate_start(form)
    assert gate.message_for("start_mileage").kind == ValidationKind.OUT_OF_RANGE


def test_full_tank_toggle_stands_in_for_the_level():
    form = ShiftStartFields(
        start_date=date(2025, 3, 3),
        start_time=time(8, 0),
        start_mileage="10000",
        has_full_tank_at_start=True,
    )
    assert form.effective_tank_level == 8
    assert evaluate_start(form).enabled


def test_start_form_accepts_gauge_labels():
    assert ShiftStartFields(start_tank_level="3/4").start_tank_level == 6


# --- End gate ---


def test_end_gate_opens_when_every_end_constraint_holds(active_shift):
    assert evaluate_end(full_end_form(), active_shift).enabled


def test_end_mileage_must_exceed_start_mileage(active_shift):
    gate = evaluate_end(full_end_form(end_mileage="10000"), active_shift)

    message = gate.message_for("end_mileage")
    assert not gate.enabled
    assert message.kind == ValidationKind.END_MILEAGE_NOT_GREATER
    assert message.message == END_MILEAGE_MESSAGE == "end mileage must be greater than start mileage"


def test_mileage_message_clears_only_when_its_own_condition_does(active_shift):
    form = full_end_form(end_mileage="9990", trip_count=None)
    first = evaluate_end(form, active_shift)
    assert set(first.fields()) == {"end_mileage", "trip_count"}

    # Fixing an unrelated field leaves the mileage message in place
    form.trip_count = 12
    second = evaluate_end(form, active_shift)
    assert second.fields() == ["end_mileage"]

    form.end_mileage = Decimal("10050")
    assert evaluate_end(form, active_shift).enabled


def test_missing_end_fields_are_each_reported(active_shift):
    gate = evaluate_end(ShiftEndFields(), active_shift)
    assert gate.fields() == ["end_date", "end_time", "end_mileage", "trip_count"]


def test_zero_trips_keeps_the_gate_closed(active_shift):
    gate = evaluate_end(full_end_form(trip_count=0), active_shift)
    assert gate.message_for("trip_count").kind == ValidationKind.OUT_OF_RANGE


def test_refuel_details_required_only_while_refueling(active_shift):
    refueling = evaluate_end(full_end_form(did_refuel_at_end=True), active_shift)
    assert refueling.fields() == ["gallons_filled", "fuel_cost"]

    filled = full_end_form(did_refuel_at_end=True, gallons_filled="9.5", fuel_cost="33.25")
    assert evaluate_end(filled, active_shift).enabled

    assert evaluate_end(full_end_form(did_refuel_at_end=False), active_shift).enabled


def test_end_must_be_after_start(active_shift):
    gate = evaluate_end(full_end_form(end_time=time(7, 0)), active_shift)
    assert gate.message_for("end_date").kind == ValidationKind.END_BEFORE_START


def test_naive_end_is_compared_in_the_configured_timezone():
    # 13:00 UTC is 08:00 in New York during EST
    shift = Shift(
        start_date=datetime(2025, 3, 3, 13, 0, tzinfo=timezone.utc),
        start_mileage=Decimal("10000"),
        start_tank_level=6,
    )
    early = evaluate_end(full_end_form(end_time=time(7, 0)), shift, tz="America/New_York")
    later = evaluate_end(full_end_form(end_time=time(9, 0)), shift, tz="America/New_York")

    assert "end_date" in early.fields()
    assert later.enabled


def test_evaluate_shift_rechecks_a_completed_shift(active_shift):
    active_shift.end_date = datetime(2025, 3, 3, 16, 0)
    active_shift.end_mileage = Decimal("9999")
    active_shift.trip_count = 4

    gate = evaluate_shift(active_shift)
    assert gate.fields() == ["end_mileage"]
    with pytest.raises(ValidationFailed) as excinfo:
        gate.raise_if_closed()
    assert excinfo.value.messages[0].field == "end_mileage"

"""UTC 'Z' serialization of shift and photo timestamps in API responses."""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from api.shift_routes import PhotoResponse, ShiftResponse
from core.config import TrackerConfig
from models.photo_attachment import PhotoAttachment
from models.shift import Shift
from utils.datetime_helpers import combine_date_time, format_utc_datetime


def test_aware_datetimes_become_utc_with_z_suffix():
    eastern = timezone(timedelta(hours=-5))
    assert format_utc_datetime(datetime(2025, 6, 7, 9, 25, 39, tzinfo=timezone.utc)) == "2025-06-07T09:25:39Z"
    assert format_utc_datetime(datetime(2025, 3, 3, 8, 0, tzinfo=eastern)) == "2025-03-03T13:00:00Z"


def test_naive_datetimes_are_wall_clock_and_left_alone():
    assert format_utc_datetime(datetime(2025, 6, 7, 13, 25, 39, 765881)) == "2025-06-07T13:25:39.765881"


def test_none_stays_none():
    assert format_utc_datetime(None) is None


def test_combine_date_time_needs_both_parts():
    assert combine_date_time(date(2025, 3, 3), time(8, 30)) == datetime(2025, 3, 3, 8, 30)
    assert combine_date_time(date(2025, 3, 3), None) is None
    assert combine_date_time(None, time(8, 30)) is None


def test_shift_response_serializes_every_timestamp():
    shift = Shift(
        start_date=datetime(2025, 3, 3, 13, 0, tzinfo=timezone.utc),
        end_date=datetime(2025, 3, 3, 21, 0, tzinfo=timezone.utc),
        start_mileage=Decimal("100"),
        end_mileage=Decimal("180"),
        start_tank_level=8,
        end_tank_level=5,
        trip_count=9,
        created_date=datetime(2025, 3, 3, 13, 0, 5, tzinfo=timezone.utc),
        modified_date=datetime(2025, 3, 3, 21, 0, 5, tzinfo=timezone.utc),
        photos=[PhotoAttachment(image_data=b"x", date_attached=datetime(2025, 3, 3, 14, 0, tzinfo=timezone.utc))],
    )

    body = ShiftResponse.from_shift(shift, TrackerConfig()).model_dump(mode="json")
    assert body["start_date"] == "2025-03-03T13:00:00Z"
    assert body["end_date"] == "2025-03-03T21:00:00Z"
    assert body["created_date"] == "2025-03-03T13:00:05Z"
    assert body["modified_date"] == "2025-03-03T21:00:05Z"
    assert body["photos"][0]["date_attached"] == "2025-03-03T14:00:00Z"
    assert body["start_tank_label"] == "F"
    assert body["end_tank_label"] == "5/8"


def test_active_shift_response_has_null_end():
    shift = Shift(start_date=datetime(2025, 3, 3, 8, 0), start_mileage=Decimal("100"), start_tank_level=2)

    body = ShiftResponse.from_shift(shift, TrackerConfig()).model_dump(mode="json")
    assert body["end_date"] is None
    assert body["end_tank_label"] is None
    assert body["status"] == "active"


def test_photo_response_reports_size_not_bytes():
    photo = PhotoAttachment(image_data=b"12345")
    body = PhotoResponse.from_photo(photo).model_dump(mode="json")

    assert body["file_size"] == 5
    assert "image_data" not in body
    assert body["date_attached"].endswith("Z")

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlmodel import Session, SQLModel, select

from db.session import build_engine
from db.shift_store import SqlShiftStore
from models import PhotoAttachmentRecord, ShiftRecord
from models.photo_attachment import PhotoAttachment
from models.shift import Shift
from services.shift_ledger import ShiftLedger


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return SqlShiftStore(engine)


def full_shift():
    return Shift(
        start_date=datetime(2025, 3, 3, 13, 5, tzinfo=timezone.utc),
        end_date=datetime(2025, 3, 3, 21, 40, tzinfo=timezone.utc),
        start_mileage=Decimal("10000.4"),
        end_mileage=Decimal("10187.9"),
        start_tank_level=8,
        end_tank_level=8,
        did_refuel_at_end=True,
        gallons_filled=Decimal("7.125"),
        fuel_cost=Decimal("24.90"),
        trip_count=17,
        net_fare=Decimal("234.56"),
        tips=Decimal("7.89"),
        promotions=Decimal("15.00"),
        tolls=Decimal("6.50"),
        tolls_reimbursed=Decimal("3.00"),
        parking_fees=Decimal("4.00"),
        misc_fees=Decimal("1.25"),
        gas_price=Decimal("3.49"),
        standard_mileage_rate=Decimal("0.67"),
        photos=[
            PhotoAttachment(image_data=b"\xff\xd8\xff first", type="Receipt", description="fuel"),
            PhotoAttachment(image_data=b"\x00\x01\x02 second"),
            PhotoAttachment(image_data=b"\xff\xd8\xff first"),
        ],
    )


def test_round_trip_keeps_every_field(store):
    shift = full_shift()
    store.save(shift)

    (loaded,) = store.load_all()
    assert loaded == shift
    assert loaded.model_dump() == shift.model_dump()
    assert [p.id for p in loaded.photos] == [p.id for p in shift.photos]
    assert [p.image_data for p in loaded.photos] == [p.image_data for p in shift.photos]


def test_naive_timestamps_stay_naive(store):
    shift = Shift(start_date=datetime(2025, 3, 3, 8, 0), start_mileage=Decimal("5"), start_tank_level=3)
    store.save(shift)

    (loaded,) = store.load_all()
    assert loaded.start_date == datetime(2025, 3, 3, 8, 0)
    assert loaded.start_date.tzinfo is None
    assert loaded.created_date.tzinfo is not None
    assert loaded.end_date is None


def test_save_rewrites_photo_rows_in_order(store, engine):
    shift = full_shift()
    store.save(shift)

    removed = shift.photos.pop(0)
    shift.photos.append(PhotoAttachment(image_data=b"late"))
    store.save(shift)

    with Session(engine) as session:
        rows = session.exec(
            select(PhotoAttachmentRecord).order_by(PhotoAttachmentRecord.position)
        ).all()
    assert [r.attachment_id for r in rows] == [p.id for p in shift.photos]
    assert removed.id not in [r.attachment_id for r in rows]
    assert [r.position for r in rows] == [0, 1, 2]


def test_save_updates_an_existing_row(store, engine):
    shift = full_shift()
    store.save(shift)
    shift.is_deleted = True
    shift.tips = Decimal("10.00")
    store.save(shift)

    with Session(engine) as session:
        records = session.exec(select(ShiftRecord)).all()
    assert len(records) == 1
    assert records[0].is_deleted
    assert records[0].tips == Decimal("10.00")


def test_remove_drops_shift_and_photos(store, engine):
    shift = full_shift()
    store.save(shift)
    store.remove(shift.id)

    assert store.load_all() == []
    with Session(engine) as session:
        assert session.exec(select(PhotoAttachmentRecord)).all() == []


def test_ledger_state_survives_a_restart(store, config, start_form, end_form):
    ledger = ShiftLedger(config, store=store)
    shift = ledger.create(start_form())
    receipt = ledger.add_photo(shift.id, b"receipt")
    ledger.complete(shift.id, end_form(tips="7.89"))
    deleted = ledger.create(start_form(day=date(2025, 3, 4)))
    ledger.delete(deleted.id)

    reloaded = ShiftLedger(config, store=store, shifts=store.load_all())
    assert reloaded.get(shift.id) == ledger.get(shift.id)
    assert [p.id for p in reloaded.photos(shift.id)] == [receipt]
    assert [s.id for s in reloaded.shifts()] == [shift.id]
    assert reloaded.find_by_date(date(2025, 3, 4)) is None

import os

# In-memory database for every test; must be set before db.session is imported
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from core.config import TrackerConfig
from services.expense_ledger import ExpenseLedger
from services.shift_ledger import ShiftLedger


class FakeClock:
    """Deterministic clock that moves one minute forward on every reading."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(minutes=1)
        return self.now


@pytest.fixture
def config():
    return TrackerConfig(week_start_day=0, standard_mileage_rate=Decimal("0.67"))


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def ledger(config, clock):
    return ShiftLedger(config, clock=clock)


@pytest.fixture
def expenses(config, clock):
    return ExpenseLedger(config, clock=clock)


@pytest.fixture
def start_form():
    def build(day=date(2025, 3, 3), at=time(8, 0), mileage="10000", tank=6, **extra):
        form = {
            "start_date": day,
            "start_time": at,
            "start_mileage": mileage,
            "start_tank_level": tank,
        }
        form.update(extra)
        return form

    return build


@pytest.fixture
def end_form():
    def build(day=date(2025, 3, 3), at=time(16, 0), mileage="10100", trips=12, **extra):
        form = {
            "end_date": day,
            "end_time": at,
            "end_mileage": mileage,
            "trip_count": trips,
        }
        form.update(extra)
        return form

    return build


@pytest.fixture
def completed_shift(ledger, start_form, end_form):
    shift = ledger.create(start_form())
    return ledger.complete(
        shift.id,
        end_form(net_fare="234.56", tips="7.89", promotions="15.00", tolls_reimbursed="3.00"),
    )


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from sqlmodel import SQLModel

    from db.session import engine
    from main import app

    # Fresh tables for every test; the lifespan recreates them
    SQLModel.metadata.drop_all(engine)
    with TestClient(app) as test_client:
        yield test_client

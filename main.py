import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import SQLModel

import models  # noqa: F401  registers the tables with SQLModel.metadata
from api.expense_routes import router as expense_router
from api.shift_routes import router as shift_router
from api.tax_routes import router as tax_router
from core.config import TrackerConfig
from db.expense_store import SqlExpenseStore
from db.session import engine
from db.shift_store import SqlShiftStore
from services.expense_ledger import ExpenseLedger
from services.shift_ledger import ShiftLedger

# This file is the control center of the whole application

# Load environment variables from .env file, if it exists
load_dotenv()

# Configure logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

# Default values can be provided if the env var is not set
DEV_DOMAIN = os.getenv("DEV_DOMAIN", "http://localhost:5173")

# Construct the list of allowed origins
allowed_origins_list = [
    DEV_DOMAIN,
    "http://localhost:3000",  # Additional fallback for React dev
    "http://127.0.0.1:5173",  # Additional fallback for Vite dev
]

# Remove any None values and duplicates
allowed_origins_list = list(set([origin for origin in allowed_origins_list if origin]))


# When We Start, Create the DB Tables if they don't exist and load every shift and expense into memory
@asynccontextmanager
async def lifespan(app: FastAPI):
    SQLModel.metadata.create_all(engine)

    config = TrackerConfig.from_env()
    store = SqlShiftStore(engine)
    app.state.ledger = ShiftLedger(config, store=store, shifts=store.load_all())
    expense_store = SqlExpenseStore(engine)
    app.state.expenses = ExpenseLedger(config, store=expense_store, expenses=expense_store.load_all())
    logger.info(
        "Ledgers ready: %d shifts, %d expenses (week starts on day %d, timezone %s)",
        len(app.state.ledger),
        len(app.state.expenses),
        config.week_start_day,
        config.timezone,
    )

    yield

    app.state.ledger = None
    app.state.expenses = None


# Starts Fast API Up; Init
app = FastAPI(title="Rideshare Shift Ledger", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Out-of-domain request values are invalid input (400); 422 is kept for closed validation gates
@app.exception_handler(RequestValidationError)
async def invalid_input_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


# Connects Routes to main app
app.include_router(shift_router, prefix="/shifts", tags=["Shifts"])
app.include_router(expense_router, prefix="/expenses", tags=["Expenses"])
app.include_router(tax_router, prefix="/tax-summary", tags=["Tax Summary"])

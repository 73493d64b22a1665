import logging
import threading
from contextlib import contextmanager

from fastapi import HTTPException, Request, status

from core.errors import InvalidInput, NotFound, SessionConflict, ValidationFailed
from services.expense_ledger import ExpenseLedger
from services.shift_ledger import ShiftLedger

logger = logging.getLogger(__name__)

# Every ledger call from a route runs under this lock (shift and expense ledgers alike)
ledger_lock = threading.Lock()

LEDGER_UNAVAILABLE_EXCEPTION = HTTPException(
    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    detail="Ledgers are not loaded yet.",
)


# Ledger built by the app lifespan (main.py)
def get_ledger(request: Request) -> ShiftLedger:
    ledger = getattr(request.app.state, "ledger", None)
    if ledger is None:
        raise LEDGER_UNAVAILABLE_EXCEPTION
    return ledger


def get_expenses(request: Request) -> ExpenseLedger:
    expenses = getattr(request.app.state, "expenses", None)
    if expenses is None:
        raise LEDGER_UNAVAILABLE_EXCEPTION
    return expenses


@contextmanager
def ledger_guard():
    """Serialize ledger access and turn engine errors into HTTP errors."""
    with ledger_lock:
        try:
            yield
        except ValidationFailed as e:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "message": str(e),
                    "messages": [m.model_dump(mode="json") for m in e.messages],
                },
            )
        except InvalidInput as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": str(e), "field": e.field},
            )
        except NotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except SessionConflict as e:
            logger.warning("Edit session conflict: %s", e)
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

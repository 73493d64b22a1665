import logging
from typing import Dict, List

from sqlmodel import Session, select

from db.shift_store import record_to_photo, text_to_timestamp, timestamp_to_text
from models.expense import ExpenseItem, ExpensePhotoRecord, ExpenseRecord
from models.photo_attachment import PhotoAttachment

logger = logging.getLogger(__name__)


def expense_to_record_values(expense: ExpenseItem) -> Dict[str, object]:
    return {
        "created_date": timestamp_to_text(expense.created_date),
        "modified_date": timestamp_to_text(expense.modified_date),
        "is_deleted": expense.is_deleted,
        "expense_date": expense.expense_date,
        "category": expense.category.value,
        "description": expense.description,
        "amount": expense.amount,
    }


def record_to_expense(record: ExpenseRecord, photos: List[PhotoAttachment]) -> ExpenseItem:
    return ExpenseItem(
        id=record.id,
        created_date=text_to_timestamp(record.created_date),
        modified_date=text_to_timestamp(record.modified_date),
        is_deleted=record.is_deleted,
        expense_date=record.expense_date,
        category=record.category,
        description=record.description,
        amount=record.amount,
        photos=photos,
    )


class SqlExpenseStore:
    """Keeps the `business_expenses` / `expense_photos` tables in step with an ExpenseLedger."""

    def __init__(self, engine):
        self.engine = engine

    def save(self, expense: ExpenseItem) -> None:
        values = expense_to_record_values(expense)
        with Session(self.engine) as session:
            record = session.get(ExpenseRecord, expense.id)
            if record is None:
                record = ExpenseRecord(id=expense.id, **values)
            else:
                for name, value in values.items():
                    setattr(record, name, value)
            session.add(record)

            for old in session.exec(select(ExpensePhotoRecord).where(ExpensePhotoRecord.expense_id == expense.id)).all():
                session.delete(old)
            session.flush()
            for position, photo in enumerate(expense.photos):
                session.add(
                    ExpensePhotoRecord(
                        expense_id=expense.id,
                        attachment_id=photo.id,
                        position=position,
                        image_data=photo.image_data,
                        photo_type=photo.type,
                        description=photo.description,
                        date_attached=timestamp_to_text(photo.date_attached),
                    )
                )

            session.commit()
        logger.debug("Saved expense %s with %d photos", expense.id, len(expense.photos))

    def remove(self, expense_id: str) -> None:
        with Session(self.engine) as session:
            for old in session.exec(select(ExpensePhotoRecord).where(ExpensePhotoRecord.expense_id == expense_id)).all():
                session.delete(old)
            record = session.get(ExpenseRecord, expense_id)
            if record is not None:
                session.delete(record)
            session.commit()
        logger.debug("Removed expense %s", expense_id)

    def load_all(self) -> List[ExpenseItem]:
        with Session(self.engine) as session:
            records = session.exec(select(ExpenseRecord).order_by(ExpenseRecord.created_date)).all()
            photo_rows = session.exec(
                select(ExpensePhotoRecord).order_by(ExpensePhotoRecord.expense_id, ExpensePhotoRecord.position)
            ).all()

            photos_by_expense: Dict[str, List[PhotoAttachment]] = {}
            for row in photo_rows:
                photos_by_expense.setdefault(row.expense_id, []).append(record_to_photo(row))

            expenses = [record_to_expense(r, photos_by_expense.get(r.id, [])) for r in records]
        logger.info("Loaded %d expenses from the database", len(expenses))
        return expenses

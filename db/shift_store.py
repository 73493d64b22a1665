import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlmodel import Session, select

from models.photo_attachment import PhotoAttachment, PhotoAttachmentRecord
from models.shift import Shift, ShiftRecord

logger = logging.getLogger(__name__)

# Shift fields stored as-is; timestamps and photos are converted separately
_PLAIN_FIELDS = (
    "is_deleted",
    "start_mileage",
    "start_tank_level",
    "end_mileage",
    "end_tank_level",
    "did_refuel_at_end",
    "gallons_filled",
    "fuel_cost",
    "trip_count",
    "net_fare",
    "tips",
    "promotions",
    "tolls",
    "tolls_reimbursed",
    "parking_fees",
    "misc_fees",
    "gas_price",
    "standard_mileage_rate",
)
_TIMESTAMP_FIELDS = ("created_date", "modified_date", "start_date", "end_date")


def timestamp_to_text(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


def text_to_timestamp(text: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(text) if text else None


def shift_to_record_values(shift: Shift) -> Dict[str, object]:
    values = {name: getattr(shift, name) for name in _PLAIN_FIELDS}
    for name in _TIMESTAMP_FIELDS:
        values[name] = timestamp_to_text(getattr(shift, name))
    return values


def photo_to_record(shift_id: str, position: int, photo: PhotoAttachment) -> PhotoAttachmentRecord:
    return PhotoAttachmentRecord(
        shift_id=shift_id,
        attachment_id=photo.id,
        position=position,
        image_data=photo.image_data,
        photo_type=photo.type,
        description=photo.description,
        date_attached=timestamp_to_text(photo.date_attached),
    )


def record_to_photo(record: PhotoAttachmentRecord) -> PhotoAttachment:
    return PhotoAttachment(
        id=record.attachment_id,
        image_data=bytes(record.image_data),
        type=record.photo_type,
        description=record.description,
        date_attached=text_to_timestamp(record.date_attached),
    )


def record_to_shift(record: ShiftRecord, photos: List[PhotoAttachment]) -> Shift:
    values = {name: getattr(record, name) for name in _PLAIN_FIELDS}
    for name in _TIMESTAMP_FIELDS:
        values[name] = text_to_timestamp(getattr(record, name))
    return Shift(id=record.id, photos=photos, **values)


class SqlShiftStore:
    """
    Keeps the `rideshare_shifts` / `shift_photos` tables in step with a ShiftLedger.

    A shift's photo rows are rewritten on every save so the position column
    always matches the in-memory order.
    """

    def __init__(self, engine):
        self.engine = engine

    def save(self, shift: Shift) -> None:
        values = shift_to_record_values(shift)
        with Session(self.engine) as session:
            record = session.get(ShiftRecord, shift.id)
            if record is None:
                record = ShiftRecord(id=shift.id, **values)
            else:
                for name, value in values.items():
                    setattr(record, name, value)
            session.add(record)

            for old in session.exec(select(PhotoAttachmentRecord).where(PhotoAttachmentRecord.shift_id == shift.id)).all():
                session.delete(old)
            # Flush the deletes before re-inserting the same attachment ids
            session.flush()
            for position, photo in enumerate(shift.photos):
                session.add(photo_to_record(shift.id, position, photo))

            session.commit()
        logger.debug("Saved shift %s with %d photos", shift.id, len(shift.photos))

    def remove(self, shift_id: str) -> None:
        with Session(self.engine) as session:
            for old in session.exec(select(PhotoAttachmentRecord).where(PhotoAttachmentRecord.shift_id == shift_id)).all():
                session.delete(old)
            record = session.get(ShiftRecord, shift_id)
            if record is not None:
                session.delete(record)
            session.commit()
        logger.debug("Removed shift %s", shift_id)

    def load_all(self) -> List[Shift]:
        with Session(self.engine) as session:
            records = session.exec(select(ShiftRecord).order_by(ShiftRecord.created_date)).all()
            photo_rows = session.exec(
                select(PhotoAttachmentRecord).order_by(PhotoAttachmentRecord.shift_id, PhotoAttachmentRecord.position)
            ).all()

            photos_by_shift: Dict[str, List[PhotoAttachment]] = {}
            for row in photo_rows:
                photos_by_shift.setdefault(row.shift_id, []).append(record_to_photo(row))

            shifts = [record_to_shift(r, photos_by_shift.get(r.id, [])) for r in records]
        logger.info("Loaded %d shifts from the database", len(shifts))
        return shifts

from .photo_attachment import PhotoAttachment, PhotoAttachmentRecord, PhotoType
from .shift import Shift, ShiftEndFields, ShiftRecord, ShiftStartFields, ShiftStatus
from .expense import ExpenseCategory, ExpenseItem, ExpensePhotoRecord, ExpenseRecord

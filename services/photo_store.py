import logging
from typing import Iterator, List, Optional, Sequence

from pydantic import ValidationError

from core.errors import InvalidInput, NotFound
from models.photo_attachment import PhotoAttachment, PhotoType

logger = logging.getLogger(__name__)

DEFAULT_PHOTO_TYPES = [t.value for t in PhotoType]


class PhotoAttachmentStore:
    """
    Ordered photos of one shift (or of a start form before the shift exists).

    Attachments are always addressed by the id returned from add(); list
    positions are only a display convenience. The store works on the list it
    is given, so a store over `shift.photos` mutates that shift in place.
    """

    def __init__(
        self,
        attachments: Optional[List[PhotoAttachment]] = None,
        photo_types: Optional[Sequence[str]] = None,
    ):
        self._attachments = attachments if attachments is not None else []
        self._photo_types = list(photo_types) if photo_types else DEFAULT_PHOTO_TYPES

    def add(self, image_data: bytes) -> str:
        if not isinstance(image_data, (bytes, bytearray, memoryview)):
            raise InvalidInput("Photo data must be raw bytes", field="image_data")
        try:
            # bytes() copies, so the attachment never shares a caller's mutable buffer
            attachment = PhotoAttachment(image_data=bytes(image_data))
        except ValidationError as e:
            raise InvalidInput.from_validation_error(e)

        self._attachments.append(attachment)
        logger.debug("Attached photo %s (%d bytes)", attachment.id, attachment.file_size)
        return attachment.id

    def get(self, attachment_id: str) -> PhotoAttachment:
        return self._attachments[self._index_of(attachment_id)]

    def set_type(self, attachment_id: str, photo_type) -> None:
        value = photo_type.value if isinstance(photo_type, PhotoType) else photo_type
        if value not in self._photo_types:
            raise InvalidInput(
                f"Unknown photo type {value!r}. Allowed: {', '.join(self._photo_types)}",
                field="type",
            )
        self.get(attachment_id).type = value

    def set_description(self, attachment_id: str, text: Optional[str]) -> None:
        if text is not None and not isinstance(text, str):
            raise InvalidInput("Photo description must be text", field="description")
        self.get(attachment_id).description = text or ""

    def remove(self, attachment_id: str) -> PhotoAttachment:
        removed = self._attachments.pop(self._index_of(attachment_id))
        logger.debug("Removed photo %s", attachment_id)
        return removed

    def list(self) -> List[PhotoAttachment]:
        """Attachments in display order as they stand now; call again after a change."""
        return list(self._attachments)

    def ids(self) -> List[str]:
        return [a.id for a in self._attachments]

    def _index_of(self, attachment_id: str) -> int:
        # Resolved on every call; a position looked up earlier may be stale after a removal
        for index, attachment in enumerate(self._attachments):
            if attachment.id == attachment_id:
                return index
        raise NotFound(f"Photo {attachment_id} not found")

    def __len__(self) -> int:
        return len(self._attachments)

    def __iter__(self) -> Iterator[PhotoAttachment]:
        return iter(list(self._attachments))

    def __getitem__(self, position: int) -> PhotoAttachment:
        return self._attachments[position]

"""Data models for notes storage."""

import datetime
import uuid
from datetime import timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(
    dt_value: Optional[datetime.datetime],
) -> Optional[datetime.datetime]:
    """Return ``dt_value`` in UTC; naive datetimes are taken to be UTC already.

    SQLite stores only the wall-clock digits, so everything is kept in UTC
    and values read back from the database arrive naive.
    """
    if dt_value is None:
        return None
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value.astimezone(timezone.utc)


class Note(BaseModel):
    """A note value object.

    Identity is the ``id`` alone: two notes with the same id are the same
    note, whatever their title, body or timestamps say.
    """

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4, frozen=True, description="Unique ID of the note"
    )
    title: str = Field(default="", description="Title of the note")
    body: str = Field(default="", description="Body of the note")
    created_at: Optional[datetime.datetime] = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: Optional[datetime.datetime] = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamp(
        cls, v: Optional[datetime.datetime]
    ) -> Optional[datetime.datetime]:
        return ensure_timezone_aware(v)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Note):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def revised(self, **changes: Any) -> "Note":
        """Return a fresh note with the same identity and a new updated_at.

        Args:
            **changes: Field values to replace (title, body).

        Returns:
            A new Note; this one is left untouched.
        """
        if "id" in changes or "created_at" in changes:
            raise ValueError("A revision cannot change id or created_at")
        values = self.model_dump()
        values.update(changes)
        if "updated_at" not in changes:
            values["updated_at"] = utc_now()
        return Note(**values)

"""Conversion between persisted note records and Note value objects."""

from typing import Any

from notes_storage.exceptions import MissingIdentifierError
from notes_storage.models.schema import Note


def to_note(record: Any) -> Note:
    """Build a Note from a persisted record.

    Args:
        record: Any object with id, title, body, created_at and updated_at.

    Returns:
        The Note. Missing title or body become empty strings; missing
        timestamps stay None.

    Raises:
        MissingIdentifierError: If the record has no id.
    """
    if record.id is None:
        raise MissingIdentifierError(getattr(record, "locator", None))
    return Note(
        id=record.id,
        title=record.title or "",
        body=record.body or "",
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def apply_note(note: Note, record: Any) -> None:
    """Copy every field of ``note`` onto ``record`` in place."""
    record.id = note.id
    record.title = note.title
    record.body = note.body
    record.created_at = note.created_at
    record.updated_at = note.updated_at

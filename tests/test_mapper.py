"""Tests for converting records to notes and back."""
import datetime
import uuid

import pytest

from notes_storage.exceptions import ErrorCode, MissingIdentifierError
from notes_storage.models.schema import Note
from notes_storage.storage.mapper import apply_note, to_note
from tests.fakes import FakeRecord


class TestToNote:
    def test_maps_every_field(self):
        when = datetime.datetime(2024, 3, 1, 12, 0, tzinfo=datetime.timezone.utc)
        record = FakeRecord(
            id=uuid.uuid4(), title="Title", body="Body", created_at=when, updated_at=when
        )

        note = to_note(record)

        assert note.id == record.id
        assert note.title == "Title"
        assert note.body == "Body"
        assert note.created_at == when
        assert note.updated_at == when

    def test_missing_title_and_body_become_empty(self):
        note = to_note(FakeRecord(id=uuid.uuid4()))
        assert note.title == ""
        assert note.body == ""

    def test_missing_timestamps_stay_none(self):
        note = to_note(FakeRecord(id=uuid.uuid4(), title="t"))
        assert note.created_at is None
        assert note.updated_at is None

    def test_missing_id_raises(self):
        record = FakeRecord(title="orphan", body="no id")

        with pytest.raises(MissingIdentifierError) as exc_info:
            to_note(record)

        assert exc_info.value.code == ErrorCode.MISSING_IDENTIFIER
        assert exc_info.value.locator == record.locator


class TestApplyNote:
    def test_copies_every_field(self):
        note = Note(title="Title", body="Body")
        record = FakeRecord(title="stale", body="stale")

        apply_note(note, record)

        assert record.id == note.id
        assert record.title == "Title"
        assert record.body == "Body"
        assert record.created_at == note.created_at
        assert record.updated_at == note.updated_at

    def test_round_trip_keeps_identity_and_content(self):
        note = Note(title="Round", body="trip")
        record = FakeRecord()

        apply_note(note, record)
        restored = to_note(record)

        assert restored == note
        assert (restored.title, restored.body) == ("Round", "trip")

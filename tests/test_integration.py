# tests/test_integration.py
"""Integration tests for StorageService over a real SQLite database."""
import datetime
import threading
import uuid

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from notes_storage.exceptions import (
    ErrorCode,
    MissingIdentifierError,
    ObjectNotFoundError,
    StorageError,
)
from notes_storage.models.db_models import DBNote, get_session_factory, init_db
from notes_storage.models.schema import Note
from notes_storage.services.storage_service import StorageService
from notes_storage.storage.context import FetchRequest, SessionContext


class TestCrudWorkflow:
    def test_create_read_update_delete(self, sqlite_service):
        note = Note(title="Integration", body="First version")

        sqlite_service.create(note)
        [stored] = sqlite_service.read()
        assert stored == note
        assert (stored.title, stored.body) == ("Integration", "First version")
        assert stored.created_at == note.created_at

        sqlite_service.update(stored.revised(body="Second version"))
        [updated] = sqlite_service.read()
        assert updated.body == "Second version"
        assert updated.created_at == note.created_at

        sqlite_service.delete([updated])
        assert sqlite_service.read() == []

    def test_non_utc_timestamps_keep_their_instant(self, sqlite_service):
        plus_two = datetime.timezone(datetime.timedelta(hours=2))
        written = datetime.datetime(2025, 1, 1, 12, 0, tzinfo=plus_two)
        note = Note(title="offset", created_at=written, updated_at=written)

        sqlite_service.create(note)
        [stored] = sqlite_service.read()

        assert stored.created_at == written
        assert stored.updated_at == written
        assert stored.created_at.utcoffset() == datetime.timedelta(0)

    def test_read_empty_database(self, sqlite_service):
        assert sqlite_service.read() == []

    def test_update_missing(self, sqlite_service):
        note = Note()
        with pytest.raises(ObjectNotFoundError) as exc_info:
            sqlite_service.update(note)
        assert exc_info.value.identifier == str(note.id)

    def test_delete_skips_unknown_ids(self, sqlite_service):
        keep = Note(title="keep")
        drop = Note(title="drop")
        sqlite_service.create(keep)
        sqlite_service.create(drop)

        sqlite_service.delete([drop, Note(), Note()])

        assert sqlite_service.read() == [keep]

    def test_data_survives_reopen(self, test_config):
        note = Note(title="durable")
        with StorageService.from_config(test_config) as first:
            first.create(note)
        with StorageService.from_config(test_config) as second:
            assert second.read() == [note]


class TestNotifications:
    def test_create_and_update_publish_once(self, sqlite_service):
        subscription = sqlite_service.subscribe()
        note = Note(title="v1")

        sqlite_service.create(note)
        sqlite_service.update(note.revised(title="v2"))
        sqlite_service.delete([note])

        first = subscription.get(timeout=1)
        second = subscription.get(timeout=1)
        assert (first.id, first.title) == (note.id, "v1")
        assert (second.id, second.title) == (note.id, "v2")
        assert subscription.get(timeout=0.05) is None


class TestStoreFailures:
    def test_duplicate_id_wrapped_and_context_recovers(self, sqlite_service):
        subscription = sqlite_service.subscribe()
        note = Note(title="original")
        sqlite_service.create(note)
        subscription.get(timeout=1)

        with pytest.raises(StorageError) as exc_info:
            sqlite_service.create(Note(id=note.id, title="duplicate"))

        error = exc_info.value
        assert error.code == ErrorCode.STORAGE_WRITE_FAILED
        assert error.operation == "save"
        assert isinstance(error.original_error, IntegrityError)
        assert subscription.get(timeout=0.05) is None

        # The write context rolled back and keeps working
        other = Note(title="after failure")
        sqlite_service.create(other)
        assert {n.title for n in sqlite_service.read()} == {"original", "after failure"}

    def test_record_without_id_aborts_read(self, sqlite_service, test_config):
        sqlite_service.create(Note(title="fine"))
        engine = init_db(test_config.get_db_url())
        try:
            with engine.begin() as conn:
                conn.execute(text("INSERT INTO notes (title, body) VALUES ('orphan', 'x')"))
        finally:
            engine.dispose()

        with pytest.raises(MissingIdentifierError) as exc_info:
            sqlite_service.read()
        assert exc_info.value.locator is not None


class TestSessionContext:
    @pytest.fixture
    def session_factory(self, tmp_path):
        engine = init_db(f"sqlite:///{tmp_path / 'context.db'}")
        yield get_session_factory(engine)
        engine.dispose()

    def test_read_only_context_refuses_writes(self, session_factory):
        ctx = SessionContext(session_factory, name="read", read_only=True)
        try:
            with pytest.raises(StorageError) as exc_info:
                ctx.create_record(DBNote)
            assert exc_info.value.operation == "create_record"
            with pytest.raises(StorageError):
                ctx.save()
        finally:
            ctx.close()

    def test_read_context_sees_later_commits(self, session_factory):
        reader = SessionContext(session_factory, name="read", read_only=True)
        writer = SessionContext(session_factory, name="write")
        try:
            assert reader.fetch(FetchRequest(DBNote)) == []

            record = writer.create_record(DBNote)
            record.id = uuid.uuid4()
            record.title = "fresh"
            writer.save()

            [seen] = reader.fetch(FetchRequest(DBNote))
            assert seen.title == "fresh"
        finally:
            reader.close()
            writer.close()

    def test_fetch_by_ids_and_limit(self, session_factory):
        ctx = SessionContext(session_factory)
        try:
            ids = [uuid.uuid4() for _ in range(3)]
            for note_id in ids:
                ctx.create_record(DBNote).id = note_id
            ctx.save()

            assert len(ctx.fetch(FetchRequest(DBNote, ids=ids[:2]))) == 2
            assert len(ctx.fetch(FetchRequest(DBNote, limit=1))) == 1
            assert ctx.fetch(FetchRequest(DBNote, ids=[uuid.uuid4()])) == []
        finally:
            ctx.close()


class TestConcurrency:
    def test_concurrent_writers_and_readers(self, sqlite_service):
        notes = [Note(title=f"note {i}") for i in range(20)]
        errors = []

        def write(batch):
            try:
                for note in batch:
                    sqlite_service.create(note)
            except Exception as e:
                errors.append(e)

        def read():
            try:
                for _ in range(10):
                    sqlite_service.read()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=write, args=(notes[i::4],)) for i in range(4)]
        threads += [threading.Thread(target=read) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert set(sqlite_service.read()) == set(notes)

    def test_callback_forms(self, sqlite_service):
        note = Note(title="callback")
        results = []
        sqlite_service.create_with_callback(note, results.append).result(timeout=5)
        sqlite_service.read_with_callback(results.append).result(timeout=5)
        assert results[0].ok
        assert results[1].value == [note]

    @pytest.mark.anyio
    async def test_async_forms(self, sqlite_service):
        note = Note(title="async")
        await sqlite_service.create_async(note)
        await sqlite_service.update_async(note.revised(title="async v2"))
        [stored] = await sqlite_service.read_async()
        assert stored.title == "async v2"
        await sqlite_service.delete_async([note])
        assert await sqlite_service.read_async() == []

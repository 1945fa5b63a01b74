"""Persistence engine: CRUD semantics over a StoreContext."""

import logging
import uuid
from typing import Any, Callable, Iterable, List, Optional, Sequence

from notes_storage.exceptions import ObjectNotFoundError, TypeMismatchError
from notes_storage.models.db_models import DBNote
from notes_storage.models.schema import Note
from notes_storage.observability import timed_operation
from notes_storage.storage.context import BatchDeleteRequest, FetchRequest, StoreContext
from notes_storage.storage.delivery import Completion, deliver, run_cold, wait_for
from notes_storage.storage.mapper import apply_note

logger = logging.getLogger(__name__)

CommitHook = Callable[[], None]


class PersistenceEngine:
    """Inserts, updates, deletes and fetches note records.

    Every write runs inside the context's exclusive region, so fetch,
    mutate and commit for one write never interleave with another write
    on the same context. Errors raised by the context are never swallowed
    or reinterpreted; the engine only adds ``ObjectNotFoundError`` and
    ``TypeMismatchError`` where it knows better.

    Writes accept an optional ``on_commit`` hook, called inside the
    exclusive region right after a successful save. Hooks therefore run in
    commit order, and never for a failed write.
    """

    def __init__(self, record_type: type = DBNote):
        """Initialize the engine.

        Args:
            record_type: Record class created by insert. Defaults to DBNote.
        """
        self.record_type = record_type

    # -- fetching ---------------------------------------------------------

    def fetch_by_id(
        self, record_type: type, id: uuid.UUID, ctx: StoreContext
    ) -> Optional[Any]:
        """Fetch the record with the given id, or None if there is none."""
        records = ctx.fetch(FetchRequest(record_type=record_type, ids=[id], limit=1))
        return records[0] if records else None

    def fetch_all(
        self,
        record_type: type,
        ids: Optional[Iterable[uuid.UUID]],
        ctx: StoreContext,
    ) -> List[Any]:
        """Fetch every record of a type, or only those with the given ids.

        Raises:
            TypeMismatchError: If the store returns anything that is not a
                ``record_type``.
        """
        request = FetchRequest(
            record_type=record_type, ids=None if ids is None else list(ids)
        )
        records = ctx.fetch(request)
        for record in records:
            if not isinstance(record, record_type):
                raise TypeMismatchError(record_type, type(record))
        return records

    def fetch_object_locators(
        self, record_type: type, ids: Iterable[uuid.UUID], ctx: StoreContext
    ) -> List[Any]:
        """Resolve ids to record locators, skipping ids with no record."""
        locators = []
        for id in ids:
            record = self.fetch_by_id(record_type, id, ctx)
            if record is None:
                logger.debug(f"No {record_type.__name__} with id {id}; skipping")
                continue
            locators.append(record.locator)
        return locators

    # -- writes (blocking) ------------------------------------------------

    def insert(
        self, note: Note, ctx: StoreContext, on_commit: Optional[CommitHook] = None
    ) -> None:
        """Create a record for ``note`` and commit it."""
        def block() -> None:
            with timed_operation("insert", note_id=str(note.id)):
                record = ctx.create_record(self.record_type)
                apply_note(note, record)
                ctx.save()
            if on_commit is not None:
                on_commit()

        ctx.perform_exclusively(block)

    def update(
        self, note: Note, ctx: StoreContext, on_commit: Optional[CommitHook] = None
    ) -> None:
        """Replace the stored fields of ``note.id`` with those of ``note``.

        Raises:
            ObjectNotFoundError: If no record has ``note.id``; nothing is saved.
        """
        def block() -> None:
            with timed_operation("update", note_id=str(note.id)):
                record = self.fetch_by_id(self.record_type, note.id, ctx)
                if record is None:
                    raise ObjectNotFoundError(note.id)
                apply_note(note, record)
                ctx.save()
            if on_commit is not None:
                on_commit()

        ctx.perform_exclusively(block)

    def delete(self, locators: Sequence[Any], ctx: StoreContext) -> None:
        """Delete the records behind ``locators`` in one batch and commit."""
        def block() -> None:
            with timed_operation("delete", count=len(locators)):
                ctx.execute(
                    BatchDeleteRequest(record_type=self.record_type, locators=list(locators))
                )
                ctx.save()

        ctx.perform_exclusively(block)

    # -- writes (callback) ------------------------------------------------

    def insert_with_callback(
        self,
        note: Note,
        ctx: StoreContext,
        completion: Completion,
        on_commit: Optional[CommitHook] = None,
    ) -> None:
        deliver(self.insert, completion, note, ctx, on_commit=on_commit)

    def update_with_callback(
        self,
        note: Note,
        ctx: StoreContext,
        completion: Completion,
        on_commit: Optional[CommitHook] = None,
    ) -> None:
        deliver(self.update, completion, note, ctx, on_commit=on_commit)

    def delete_with_callback(
        self, locators: Sequence[Any], ctx: StoreContext, completion: Completion
    ) -> None:
        deliver(self.delete, completion, locators, ctx)

    # -- writes (async) ---------------------------------------------------

    async def insert_async(
        self, note: Note, ctx: StoreContext, on_commit: Optional[CommitHook] = None
    ) -> None:
        await run_cold(wait_for, self.insert_with_callback, note, ctx, on_commit=on_commit)

    async def update_async(
        self, note: Note, ctx: StoreContext, on_commit: Optional[CommitHook] = None
    ) -> None:
        await run_cold(wait_for, self.update_with_callback, note, ctx, on_commit=on_commit)

    async def delete_async(self, locators: Sequence[Any], ctx: StoreContext) -> None:
        await run_cold(wait_for, self.delete_with_callback, locators, ctx)

"""Service layer for notes storage operations."""

import functools
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Iterable, List, Optional

from sqlalchemy.engine import Engine

from notes_storage.config import StorageConfig, config
from notes_storage.models.db_models import get_session_factory, init_db
from notes_storage.models.schema import Note
from notes_storage.observability import traced
from notes_storage.storage.context import SessionContext, StoreContext
from notes_storage.storage.delivery import Completion, Result, deliver, run_cold, submit
from notes_storage.storage.engine import CommitHook, PersistenceEngine
from notes_storage.storage.events import ChangeHandler, ChangeStream, Subscription
from notes_storage.storage.mapper import to_note

logger = logging.getLogger(__name__)


class StorageService:
    """Public operations on notes.

    The service owns one long-lived read context and one write context.
    All writes go through the write context; ``read`` only uses the read
    context. Successful creates and updates publish the note to the change
    stream from inside the write's exclusive region, so events arrive in
    commit order. Deletes do not publish.

    Every operation comes in three forms with identical outcomes:
    ``create(note)`` blocks, ``create_with_callback(note, completion)``
    runs on the service's worker pool and hands a ``Result`` to
    ``completion``, and ``await create_async(note)`` is a coroutine that
    does nothing until awaited.
    """

    def __init__(
        self,
        read_context: StoreContext,
        write_context: StoreContext,
        engine: Optional[PersistenceEngine] = None,
        stream: Optional[ChangeStream] = None,
        worker_count: int = 4,
    ):
        """Initialize the service.

        Args:
            read_context: Context used by read(). Never written to.
            write_context: Context serializing every write.
            engine: Persistence engine. Defaults to one over DBNote records.
            stream: Change stream. Defaults to a new stream.
            worker_count: Threads running callback-style operations.
        """
        self._read_context = read_context
        self._write_context = write_context
        self._engine = engine or PersistenceEngine()
        self._stream = stream or ChangeStream()
        self._executor = ThreadPoolExecutor(
            max_workers=worker_count, thread_name_prefix="notes-storage"
        )
        self._db_engine: Optional[Engine] = None
        self._closed = False

    @classmethod
    def from_config(cls, storage_config: Optional[StorageConfig] = None) -> "StorageService":
        """Open the SQLite database described by ``storage_config``.

        Args:
            storage_config: Configuration to use. Defaults to the global config.

        Returns:
            A service owning its database engine; close it when done.
        """
        cfg = storage_config or config
        db_url = cfg.get_db_url()
        db_engine = init_db(db_url, timeout=cfg.sqlite_timeout)
        session_factory = get_session_factory(db_engine)

        service = cls(
            read_context=SessionContext(session_factory, name="read", read_only=True),
            write_context=SessionContext(session_factory, name="write"),
            stream=ChangeStream(
                poll_interval=cfg.poll_interval,
                backlog_warning_threshold=cfg.backlog_warning_threshold,
            ),
            worker_count=cfg.worker_count,
        )
        service._db_engine = db_engine
        logger.info(
            f"StorageService opened: db_url={db_url}, workers={cfg.worker_count}"
        )
        return service

    # -- blocking ---------------------------------------------------------

    def create(self, note: Note) -> None:
        """Store a new note and publish it."""
        self._engine.insert(note, self._write_context, on_commit=self._publisher(note))

    @traced("read")
    def read(self) -> List[Note]:
        """Return every stored note.

        Raises:
            MissingIdentifierError: If any record lacks an id; no partial
                result is returned.
        """
        records = self._engine.fetch_all(self._engine.record_type, None, self._read_context)
        return [to_note(record) for record in records]

    def update(self, note: Note) -> None:
        """Replace the stored note with the same id and publish it.

        Raises:
            ObjectNotFoundError: If no note has ``note.id``.
        """
        self._engine.update(note, self._write_context, on_commit=self._publisher(note))

    def delete(self, notes: Iterable[Note]) -> None:
        """Delete notes by id. Ids with no stored note are skipped."""
        locators = self._resolve_locators(notes)
        self._engine.delete(locators, self._write_context)

    # -- callback ---------------------------------------------------------

    def create_with_callback(self, note: Note, completion: Completion) -> Future:
        return submit(
            self._executor,
            self._engine.insert_with_callback,
            note,
            self._write_context,
            completion,
            on_commit=self._publisher(note),
        )

    def read_with_callback(self, completion: Completion) -> Future:
        return deliver(self.read, completion, executor=self._executor)

    def update_with_callback(self, note: Note, completion: Completion) -> Future:
        return submit(
            self._executor,
            self._engine.update_with_callback,
            note,
            self._write_context,
            completion,
            on_commit=self._publisher(note),
        )

    def delete_with_callback(self, notes: Iterable[Note], completion: Completion) -> Future:
        notes = list(notes)

        def run() -> None:
            try:
                locators = self._resolve_locators(notes)
            except Exception as e:
                completion(Result.failure(e))
                return
            self._engine.delete_with_callback(locators, self._write_context, completion)

        return submit(self._executor, run)

    # -- async ------------------------------------------------------------

    async def create_async(self, note: Note) -> None:
        await self._engine.insert_async(
            note, self._write_context, on_commit=self._publisher(note)
        )

    async def read_async(self) -> List[Note]:
        return await run_cold(self.read)

    async def update_async(self, note: Note) -> None:
        await self._engine.update_async(
            note, self._write_context, on_commit=self._publisher(note)
        )

    async def delete_async(self, notes: Iterable[Note]) -> None:
        notes = list(notes)
        locators = await run_cold(self._resolve_locators, notes)
        await self._engine.delete_async(locators, self._write_context)

    # -- change notifications ---------------------------------------------

    def subscribe(self) -> Subscription:
        """Subscribe to notes changed from now on."""
        return self._stream.subscribe()

    def listen(self, handler: ChangeHandler) -> Subscription:
        """Call ``handler`` on a background thread for every changed note."""
        return self._stream.listen(handler)

    # -- lifecycle --------------------------------------------------------

    def close(self) -> None:
        """Close subscriptions, the worker pool, the contexts and the database."""
        if self._closed:
            return
        self._closed = True
        self._stream.close()
        self._executor.shutdown(wait=True)
        for ctx in (self._read_context, self._write_context):
            close = getattr(ctx, "close", None)
            if close is not None:
                close()
        if self._db_engine is not None:
            self._db_engine.dispose()
        logger.info("StorageService closed")

    def __enter__(self) -> "StorageService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _publisher(self, note: Note) -> CommitHook:
        return functools.partial(self._stream.publish, note)

    def _resolve_locators(self, notes: Iterable[Note]) -> list:
        return self._engine.fetch_object_locators(
            self._engine.record_type, [note.id for note in notes], self._write_context
        )

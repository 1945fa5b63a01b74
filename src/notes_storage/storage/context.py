"""Store contexts: the minimal record-store surface the engine works against.

A context is a unit of access to the record store with its own exclusive
region. The engine only talks to the ``StoreContext`` protocol, so the
SQLAlchemy-backed ``SessionContext`` and in-memory test doubles are
interchangeable.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol, Sequence, Type, TypeVar

from sqlalchemy import delete, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from notes_storage.exceptions import ErrorCode, StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FetchRequest:
    """Fetch records of one type, optionally restricted to a set of ids.

    Attributes:
        record_type: The record class to fetch.
        ids: Identifiers to match. None means every record of the type.
        limit: Maximum number of records to return.
    """

    record_type: type
    ids: Optional[Sequence[uuid.UUID]] = None
    limit: Optional[int] = None


@dataclass(frozen=True)
class BatchDeleteRequest:
    """Delete every record of ``record_type`` whose locator is listed."""

    record_type: type
    locators: Sequence[Any]


class StoreContext(Protocol):
    """Capabilities the persistence engine requires from a record store."""

    def fetch(self, request: FetchRequest) -> List[Any]:
        """Return the records matching the request."""
        ...

    def create_record(self, record_type: Type[T]) -> T:
        """Create a new, unsaved record registered with this context."""
        ...

    def save(self) -> None:
        """Commit every pending change atomically."""
        ...

    def execute(self, request: BatchDeleteRequest) -> Any:
        """Execute a batch request against the store."""
        ...

    def perform_exclusively(self, block: Callable[[], T]) -> T:
        """Run ``block`` while holding this context's exclusive region."""
        ...


class SessionContext:
    """StoreContext over a long-lived SQLAlchemy session.

    All access to the session is serialized by a re-entrant lock, which is
    also the exclusive region handed out by ``perform_exclusively``. Store
    failures are wrapped in ``StorageError``; a failed save rolls the
    session back so the context stays usable.

    A read-only context refuses writes and ends its transaction after every
    fetch, so each fetch sees the latest committed state.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        name: str = "write",
        read_only: bool = False,
    ):
        """Initialize the context.

        Args:
            session_factory: Factory producing the session this context owns.
            name: Label used in logs and errors.
            read_only: If True, create_record/save/execute raise StorageError.
        """
        self.name = name
        self.read_only = read_only
        self._session: Session = session_factory()
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        mode = "read-only" if self.read_only else "read-write"
        return f"<SessionContext(name='{self.name}', {mode})>"

    def perform_exclusively(self, block: Callable[[], T]) -> T:
        with self._lock:
            return block()

    def fetch(self, request: FetchRequest) -> List[Any]:
        record_type = request.record_type
        stmt = select(record_type).execution_options(populate_existing=True)
        if request.ids is not None:
            stmt = stmt.where(record_type.id.in_(list(request.ids)))
        if request.limit is not None:
            stmt = stmt.limit(request.limit)

        with self._lock:
            try:
                records = list(self._session.scalars(stmt).all())
                if self.read_only:
                    self._session.commit()
            except SQLAlchemyError as e:
                self._session.rollback()
                logger.error(f"Fetch failed on context '{self.name}': {e}")
                raise StorageError(
                    f"Failed to fetch {record_type.__name__} records",
                    operation="fetch",
                    code=ErrorCode.STORAGE_READ_FAILED,
                    original_error=e,
                ) from e
        return records

    def create_record(self, record_type: Type[T]) -> T:
        self._ensure_writable("create_record")
        record = record_type()
        with self._lock:
            self._session.add(record)
        return record

    def save(self) -> None:
        self._ensure_writable("save")
        with self._lock:
            try:
                self._session.commit()
            except SQLAlchemyError as e:
                self._session.rollback()
                logger.error(f"Save failed on context '{self.name}': {e}")
                raise StorageError(
                    "Failed to save changes",
                    operation="save",
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e

    def execute(self, request: BatchDeleteRequest) -> int:
        """Run a batch delete.

        Returns:
            Number of records deleted.
        """
        self._ensure_writable("execute")
        record_type = request.record_type
        locator_column = inspect(record_type).primary_key[0]
        stmt = delete(record_type).where(locator_column.in_(list(request.locators)))

        with self._lock:
            try:
                result = self._session.execute(stmt)
            except SQLAlchemyError as e:
                self._session.rollback()
                logger.error(f"Batch delete failed on context '{self.name}': {e}")
                raise StorageError(
                    f"Failed to delete {record_type.__name__} records",
                    operation="execute",
                    code=ErrorCode.STORAGE_DELETE_FAILED,
                    original_error=e,
                ) from e
        logger.debug(
            f"Batch delete on '{self.name}' removed {result.rowcount} of "
            f"{len(request.locators)} records"
        )
        return result.rowcount

    def close(self) -> None:
        """Release the session and its connection."""
        with self._lock:
            self._session.close()

    def _ensure_writable(self, operation: str) -> None:
        if self.read_only:
            raise StorageError(
                f"Context '{self.name}' is read-only",
                operation=operation,
                code=ErrorCode.STORAGE_WRITE_FAILED,
            )

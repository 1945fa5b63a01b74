"""Storage layer for notes storage."""

from notes_storage.storage.context import (
    BatchDeleteRequest,
    FetchRequest,
    SessionContext,
    StoreContext,
)
from notes_storage.storage.delivery import Result
from notes_storage.storage.engine import PersistenceEngine
from notes_storage.storage.events import ChangeStream, Subscription

__all__ = [
    "BatchDeleteRequest",
    "ChangeStream",
    "FetchRequest",
    "PersistenceEngine",
    "Result",
    "SessionContext",
    "StoreContext",
    "Subscription",
]

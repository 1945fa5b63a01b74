"""Service layer for notes storage."""

from notes_storage.services.storage_service import StorageService

__all__ = ["StorageService"]

"""Exceptions raised by notes storage.

Each error carries a numeric ``ErrorCode`` and a ``details`` dict so
callers can report failures without parsing messages. The same
exception object reaches the caller whether an operation was called
directly, with a completion callback or awaited.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Stable numeric codes, grouped by the layer that raises them."""

    # Record errors (1xxx)
    OBJECT_NOT_FOUND = 1001
    MISSING_IDENTIFIER = 1002
    TYPE_MISMATCH = 1003

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_CONNECTION_FAILED = 4004

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001


class NotesStorageError(Exception):
    """Base exception for all notes storage errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly form of the error."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class ObjectNotFoundError(NotesStorageError):
    """Raised when an update targets a record that does not exist."""

    def __init__(self, identifier: Any, message: Optional[str] = None):
        identifier = str(identifier)
        super().__init__(
            message or f"Note with id {identifier} not found",
            code=ErrorCode.OBJECT_NOT_FOUND,
            details={"identifier": identifier}
        )
        self.identifier = identifier


class MissingIdentifierError(NotesStorageError):
    """Raised when a persisted record has no identifier."""

    def __init__(self, locator: Optional[Any] = None):
        details = {}
        if locator is not None:
            details["locator"] = str(locator)
        super().__init__(
            "Persisted record is missing its identifier",
            code=ErrorCode.MISSING_IDENTIFIER,
            details=details
        )
        self.locator = locator


class TypeMismatchError(NotesStorageError):
    """Raised when the store returns records of an unexpected type."""

    def __init__(self, expected: type, actual: type):
        super().__init__(
            f"Expected records of type {expected.__name__}, got {actual.__name__}",
            code=ErrorCode.TYPE_MISMATCH,
            details={"expected": expected.__name__, "actual": actual.__name__}
        )
        self.expected = expected
        self.actual = actual


class StorageError(NotesStorageError):
    """Raised for failures reported by the underlying record store.

    Wraps the store's own exception in ``original_error`` so callers can
    inspect it without depending on the store library.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class ConfigurationError(NotesStorageError):
    """Raised when a StorageConfig value would leave storage unusable."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key

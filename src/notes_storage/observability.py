"""Logging setup and in-process metrics for notes storage.

Every storage write runs inside ``timed_operation`` and ``StorageService.read``
is wrapped with ``traced``; both feed the module-level ``metrics`` collector
and emit START/END debug lines tagged with a short correlation id.
"""
import functools
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".notes_storage" / "logs"
LOG_FILE_NAME = "notes_storage.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Every module logger lives under this one
ROOT_LOGGER_NAME = "notes_storage"

F = TypeVar("F", bound=Callable[..., Any])

_logging_configured = False


def _make_handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    return handler


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send the package's log records to a rotating file.

    Calling this again swaps the file handler instead of adding a second
    one; a console handler is added at most once.

    Args:
        log_dir: Directory for ``notes_storage.log``. Defaults to
            ~/.notes_storage/logs/
        level: Level for the package logger and its handlers.
        max_bytes: File size that triggers rotation.
        backup_count: Rotated files kept.
        console: Also log to stderr.

    Returns:
        The log directory.
    """
    global _logging_configured

    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)

    has_console = False
    for handler in list(package_logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            package_logger.removeHandler(handler)
            handler.close()
        elif isinstance(handler, logging.StreamHandler):
            has_console = True

    log_file = log_path / LOG_FILE_NAME
    package_logger.addHandler(
        _make_handler(
            RotatingFileHandler(
                log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            ),
            level,
        )
    )
    if console and not has_console:
        package_logger.addHandler(_make_handler(logging.StreamHandler(), level))

    _logging_configured = True
    package_logger.info(f"Logging to {log_file} (rotate at {max_bytes} bytes, keep {backup_count})")
    return log_path


def is_logging_configured() -> bool:
    """Whether configure_logging has run in this process."""
    return _logging_configured


@dataclass
class OperationStats:
    """Running totals for one operation name."""

    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = field(default=None)

    def add(self, duration_ms: float, error: Optional[str]) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)
        if error is None:
            self.success_count += 1
        else:
            self.error_count += 1
            self.last_error = error
            self.last_error_time = datetime.now(timezone.utc)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "success_rate": self.success_count / self.count if self.count else 0,
            "avg_duration_ms": round(self.total_ms / self.count, 2) if self.count else 0,
            "min_duration_ms": round(self.min_ms or 0.0, 2),
            "max_duration_ms": round(self.max_ms, 2),
            "last_error": self.last_error,
            "last_error_time": (
                self.last_error_time.isoformat() if self.last_error_time else None
            ),
        }


class MetricsCollector:
    """Thread-safe per-operation counters and timings (insert, update, read, ...)."""

    def __init__(self):
        self._lock = Lock()
        self._stats: Dict[str, OperationStats] = {}
        self._since = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Add one finished operation to the totals.

        Args:
            operation: Operation name.
            duration_ms: How long it took.
            success: Whether it completed without raising.
            error: Message of the exception that ended it, if any.
        """
        with self._lock:
            stats = self._stats.setdefault(operation, OperationStats())
            stats.add(duration_ms, None if success else (error or "unknown error"))

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every operation's totals, keyed by operation name."""
        with self._lock:
            return {name: stats.as_dict() for name, stats in self._stats.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across all operations."""
        with self._lock:
            total = sum(s.count for s in self._stats.values())
            succeeded = sum(s.success_count for s in self._stats.values())
            return {
                "uptime_seconds": (datetime.now(timezone.utc) - self._since).total_seconds(),
                "total_operations": total,
                "total_success": succeeded,
                "total_errors": total - succeeded,
                "overall_success_rate": succeeded / total if total else 1.0,
                "operations_tracked": list(self._stats),
            }

    def reset(self) -> None:
        """Forget everything recorded so far."""
        with self._lock:
            self._stats.clear()
            self._since = datetime.now(timezone.utc)


metrics = MetricsCollector()


def _describe(values: Dict[str, Any]) -> str:
    return ", ".join(f"{k}={v}" for k, v in values.items())


@contextmanager
def timed_operation(operation: str, **context: Any) -> Iterator[Dict[str, Any]]:
    """Time the enclosed block and record it under ``operation``.

    Yields a dict the block may add result details to; they are appended to
    the END log line. Exceptions are recorded and re-raised.

    Example:
        with timed_operation("delete", count=len(locators)) as op:
            op["deleted"] = ctx.execute(request)
    """
    correlation_id = uuid.uuid4().hex[:8]
    info: Dict[str, Any] = {"correlation_id": correlation_id}
    logger.debug(f"[{correlation_id}] START {operation} ({_describe(context)})")

    error: Optional[str] = None
    started = time.perf_counter()
    try:
        yield info
    except Exception as e:
        error = str(e) or type(e).__name__
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, elapsed_ms, error is None, error)
        extra = {k: v for k, v in info.items() if k != "correlation_id"}
        outcome = "OK" if error is None else f"ERROR: {error}"
        logger.debug(
            f"[{correlation_id}] END {operation} ({elapsed_ms:.2f}ms) [{outcome}] {_describe(extra)}"
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Wrap a function in ``timed_operation``.

    Sized results are logged with their length.

    Args:
        operation_name: Metrics key. Defaults to the function name.
    """
    def decorator(func: F) -> F:
        name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with timed_operation(name) as op:
                result = func(*args, **kwargs)
                if hasattr(result, "__len__"):
                    op["result_count"] = len(result)
                return result

        return wrapper  # type: ignore
    return decorator

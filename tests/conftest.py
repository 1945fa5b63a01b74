"""Common test fixtures for notes storage."""

from pathlib import Path

import pytest

from notes_storage.config import StorageConfig
from notes_storage.observability import metrics
from notes_storage.services.storage_service import StorageService
from notes_storage.storage.engine import PersistenceEngine
from notes_storage.storage.events import ChangeStream
from tests.fakes import FakeRecord, RecordingContext


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Keep the global metrics collector isolated between tests."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def shared_records():
    """Committed records seen by both fake contexts."""
    return {}


@pytest.fixture
def write_context(shared_records):
    """Recording double playing the write context."""
    return RecordingContext(shared_records, name="write")


@pytest.fixture
def read_context(shared_records):
    """Recording double playing the read context."""
    return RecordingContext(shared_records, name="read")


@pytest.fixture
def engine():
    """Persistence engine creating FakeRecord records."""
    return PersistenceEngine(record_type=FakeRecord)


@pytest.fixture
def stream():
    """A change stream with a short async poll interval."""
    change_stream = ChangeStream(poll_interval=0.01)
    yield change_stream
    change_stream.close()


@pytest.fixture
def service(read_context, write_context, engine, stream):
    """StorageService over the recording doubles."""
    storage_service = StorageService(
        read_context=read_context,
        write_context=write_context,
        engine=engine,
        stream=stream,
        worker_count=4,
    )
    yield storage_service
    storage_service.close()


@pytest.fixture
def test_config(tmp_path):
    """Configuration pointing at a fresh SQLite file."""
    return StorageConfig(
        base_dir=tmp_path,
        database_path=Path("db") / "notes.db",
        poll_interval=0.01,
        worker_count=4,
        log_level="DEBUG",
    )


@pytest.fixture
def sqlite_service(test_config):
    """StorageService over a real SQLite database."""
    storage_service = StorageService.from_config(test_config)
    yield storage_service
    storage_service.close()

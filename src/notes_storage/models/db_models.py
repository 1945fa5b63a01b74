"""SQLAlchemy database models for notes storage."""
from typing import Any

from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBNote(Base):
    """Database model for a note.

    Every column except the primary key is nullable: the record layer does
    not enforce what the Note value object requires.
    """
    __tablename__ = "notes"
    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Uuid, unique=True, nullable=True, index=True)
    title = Column(String(255), nullable=True)
    body = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def locator(self) -> Any:
        """Storage-local handle for targeted deletes."""
        return self.pk

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(pk={self.pk}, id='{self.id}', title='{self.title}')>"


def init_db(db_url: str, timeout: float = 30.0) -> Engine:
    """Initialize the database with hardened configuration.

    Applies SQLite best practices for crash resilience:
    - WAL (Write-Ahead Logging) mode so readers never block the writer
    - NORMAL synchronous mode (good balance of safety vs speed)
    - QueuePool for connection reuse with size limits
    - Connections may move between worker threads; each storage context
      serializes its own use of its connection

    Args:
        db_url: SQLAlchemy URL of the SQLite database.
        timeout: Seconds to wait on a locked database.

    Returns:
        The configured engine, with the schema created.
    """
    engine = create_engine(
        db_url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False, "timeout": timeout},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker:
    """Get a session factory for the database.

    Records stay loaded after commit so that mapping them to notes does not
    start a new transaction.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)

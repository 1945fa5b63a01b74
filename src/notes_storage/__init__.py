"""
Notes Storage - a local persistence layer for notes.

Notes are stored in SQLite through SQLAlchemy. Every operation is available
as a blocking call, a callback-style call and a coroutine, and successful
writes are broadcast to change subscribers.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notes-storage")
except PackageNotFoundError:
    __version__ = "0.3.0"

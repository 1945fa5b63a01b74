#!/usr/bin/env python
"""Command line entry point for notes storage."""
import argparse
import json
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from notes_storage import __version__
from notes_storage.config import config
from notes_storage.exceptions import NotesStorageError
from notes_storage.models.schema import Note
from notes_storage.observability import configure_logging, is_logging_configured
from notes_storage.services.storage_service import StorageService

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Local notes storage")
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTES_STORAGE_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files (console only when omitted)",
        type=str,
        default=str(config.log_dir) if config.log_dir else None
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="Print every stored note")

    create = commands.add_parser("create", help="Store a new note")
    create.add_argument("--title", required=True)
    create.add_argument("--body", default="")
    create.add_argument("--id", type=uuid.UUID, help="Identifier (random if omitted)")

    update = commands.add_parser("update", help="Change an existing note")
    update.add_argument("id", type=uuid.UUID)
    update.add_argument("--title")
    update.add_argument("--body")

    delete = commands.add_parser("delete", help="Delete notes by id")
    delete.add_argument("ids", type=uuid.UUID, nargs="+")

    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)


def note_to_dict(note: Note) -> Dict[str, Any]:
    """Render a note as JSON-friendly data."""
    return {
        "id": str(note.id),
        "title": note.title,
        "body": note.body,
        "created_at": note.created_at.isoformat() if note.created_at else None,
        "updated_at": note.updated_at.isoformat() if note.updated_at else None,
    }


def run_command(service: StorageService, args) -> int:
    """Execute one parsed command against ``service``."""
    if args.command == "list":
        notes = sorted(service.read(), key=lambda n: (n.created_at is None, n.created_at))
        print(json.dumps([note_to_dict(n) for n in notes], indent=2))
    elif args.command == "create":
        fields = {"title": args.title, "body": args.body}
        if args.id is not None:
            fields["id"] = args.id
        note = Note(**fields)
        service.create(note)
        print(json.dumps(note_to_dict(note), indent=2))
    elif args.command == "update":
        current = next((n for n in service.read() if n.id == args.id), None)
        changes = {
            k: v for k, v in (("title", args.title), ("body", args.body)) if v is not None
        }
        # Let the service report a missing note
        note = current.revised(**changes) if current else Note(id=args.id, **changes)
        service.update(note)
        print(json.dumps(note_to_dict(note), indent=2))
    elif args.command == "delete":
        service.delete([Note(id=note_id) for note_id in args.ids])
        print(json.dumps({"deleted": [str(i) for i in args.ids]}))
    return 0


def setup_logging(level_name: str, log_dir: Optional[str]) -> None:
    """Configure logging once per process."""
    if is_logging_configured():
        return
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    if log_dir:
        try:
            configure_logging(log_dir=log_dir, level=log_level, console=True)
        except OSError as e:
            logging.basicConfig(level=log_level)
            logger.warning(f"Failed to configure file logging: {e}")
    else:
        logging.basicConfig(level=log_level, stream=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the notes storage command line."""
    args = parse_args(argv)
    update_config(args)
    setup_logging(args.log_level, args.log_dir)

    try:
        with StorageService.from_config(config) as service:
            return run_command(service, args)
    except NotesStorageError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())

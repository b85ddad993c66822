"""Schemas for the database file stored in index archives."""

from seven_sync.schemas.database import (
    DatabaseRecord,
    DirectoryRecord,
    FileRecord,
    assemble_database,
    parse_database,
    serialize_database,
)

__all__ = [
    "DatabaseRecord",
    "DirectoryRecord",
    "FileRecord",
    "assemble_database",
    "parse_database",
    "serialize_database",
]

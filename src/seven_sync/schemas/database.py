"""Schema of the database file stored inside each index archive.

The JSON document is a recursive structure::

    {
      "files": [{"source", "destination", "created", "modified", "size"}, ...],
      "directories": [{"source", "destination", "last", "files", "directories"}, ...],
      "last": "<enumeration cursor>"
    }

Names are plain file names, not paths. Unknown and missing properties are
rejected so that a damaged or foreign file is never mistaken for a database.
"""

from pathlib import Path
from typing import Annotated, List, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, ValidationError

from seven_sync.models.mapping import MappedDirectory, MappedFile
from seven_sync.models.paths import File, RootDirectory, Subdirectory
from seven_sync.services.exceptions import FriendlyError

Name = Annotated[StrictStr, Field(min_length=1)]
Timestamp = Union[Annotated[StrictInt, Field(ge=0)], Annotated[StrictFloat, Field(ge=0)]]


class FileRecord(BaseModel):
    """A mirrored file and its fingerprint."""

    model_config = ConfigDict(extra="forbid")

    source: Name
    destination: Name
    created: Timestamp
    modified: Timestamp
    size: Annotated[StrictInt, Field(ge=0)]


class DirectoryRecord(BaseModel):
    """A mirrored subdirectory with its own children and enumeration cursor."""

    model_config = ConfigDict(extra="forbid")

    source: Name
    destination: Name
    last: StrictStr
    files: List[FileRecord]
    directories: List["DirectoryRecord"]


class DatabaseRecord(BaseModel):
    """The root of the database file."""

    model_config = ConfigDict(extra="forbid")

    files: List[FileRecord] = Field(...)
    directories: List[DirectoryRecord] = Field(...)
    last: StrictStr = Field(...)

    @classmethod
    def empty(cls, last: str = "") -> "DatabaseRecord":
        return cls(files=[], directories=[], last=last)


DirectoryRecord.model_rebuild()


def format_validation_error(error: ValidationError) -> str:
    """Render pydantic errors as one 'path: message' line each."""
    lines = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"]) or "(root)"
        lines.append(f"{location}: {detail['msg']}")
    return "\n".join(lines)


def parse_database(content: str, database_filename: str, archive_name: str, destination: Path) -> DatabaseRecord:
    """
    Parse and validate the database JSON extracted from an index archive.

    Raises:
        FriendlyError: If the content is not valid JSON or violates the schema
    """
    try:
        return DatabaseRecord.model_validate_json(content)
    except ValidationError as e:
        details = format_validation_error(e)
        logger.error(f"Failed to parse {database_filename} from {archive_name}:\n{details}")
        raise FriendlyError(
            "\n".join(
                [
                    f"{database_filename} in {archive_name} is corrupt.",
                    details,
                    f"To force a full re-sync, delete everything from {destination}",
                ]
            )
        )


def serialize_database(root: MappedDirectory) -> str:
    """Convert the mapping tree into the JSON database format."""
    return to_record(root).model_dump_json()


def to_record(root: MappedDirectory) -> DatabaseRecord:
    return DatabaseRecord(
        files=[_file_record(file) for file in root.files.sorted()],
        directories=[_directory_record(directory) for directory in root.subdirectories.sorted()],
        last=root.last,
    )


def _file_record(file: MappedFile) -> FileRecord:
    return FileRecord(
        source=file.source.name,
        destination=file.destination.name,
        created=file.created,
        modified=file.modified,
        size=file.size,
    )


def _directory_record(directory: MappedDirectory) -> DirectoryRecord:
    return DirectoryRecord(
        source=directory.source.name,
        destination=directory.destination.name,
        last=directory.last,
        files=[_file_record(file) for file in directory.files.sorted()],
        directories=[_directory_record(child) for child in directory.subdirectories.sorted()],
    )


def _ensure_directory(path: Path) -> None:
    if not path.exists():
        raise FriendlyError(f"Directory {path} does not exist")
    if not path.is_dir():
        raise FriendlyError(f"{path} is not a directory")


def assemble_database(record: DatabaseRecord, source: Path, destination: Path) -> MappedDirectory:
    """
    Build the in-memory mapping tree from a validated database record.

    Raises:
        FriendlyError: If the source or destination directory does not exist
    """
    _ensure_directory(source)
    _ensure_directory(destination)
    root = MappedDirectory.create_root(RootDirectory(source), RootDirectory(destination), record.last)
    _populate(root, record.files, record.directories)
    return root


def _populate(
    directory: MappedDirectory, files: List[FileRecord], directories: List[DirectoryRecord]
) -> None:
    for file in files:
        directory.add(
            MappedFile(
                source=File(directory.source, file.source),
                destination=File(directory.destination, file.destination),
                created=file.created,
                modified=file.modified,
                size=file.size,
            )
        )
    for child in directories:
        subdirectory = MappedDirectory(
            source=Subdirectory(directory.source, child.source),
            destination=Subdirectory(directory.destination, child.destination),
            last=child.last,
            parent=directory,
        )
        directory.add(subdirectory)
        _populate(subdirectory, child.files, child.directories)

"""Persist the mapping database as timestamped, encrypted index archives in the destination."""

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from loguru import logger
from rich.console import Console

from seven_sync.models.mapping import MappedDirectory
from seven_sync.schemas.database import DatabaseRecord, parse_database, serialize_database
from seven_sync.services.exceptions import FriendlyError, InternalError
from seven_sync.services.file_listing import LISTING_FILENAME, create_file_listing, create_readme
from seven_sync.services.seven_zip import ArchiveBackend
from seven_sync.utils import first_line_only

ARCHIVE_FILE_PREFIX = "___INDEX___"
ARCHIVE_FILE_SUFFIX = ".7z"
DATABASE_FILENAME = "7-sync-database.json"
README_FILENAME = "7-sync-README.txt"
MAX_PASSWORD_ATTEMPTS = 3

TIMESTAMP_PATTERN = re.compile(r"^\d{4}(-\d{2}){5}-\d{3}(_\d{6})?$")


def is_metadata_archive_name(name: str) -> bool:
    """Check if a file name matches ___INDEX___YYYY-MM-DD-HH-MM-SS-mmm[_NNNNNN].7z"""
    if name.startswith(ARCHIVE_FILE_PREFIX) and name.endswith(ARCHIVE_FILE_SUFFIX):
        timestamp = name[len(ARCHIVE_FILE_PREFIX) : -len(ARCHIVE_FILE_SUFFIX)]
        return bool(TIMESTAMP_PATTERN.match(timestamp))
    return False


def split_archive_name(name: str) -> Tuple[str, int]:
    """Split an index archive name into its timestamp and numeric suffix (0 if absent)."""
    timestamp, _, suffix = name[len(ARCHIVE_FILE_PREFIX) : -len(ARCHIVE_FILE_SUFFIX)].partition("_")
    return timestamp, int(suffix) if suffix else 0


def generate_timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return now.strftime("%Y-%m-%d-%H-%M-%S-") + f"{now.microsecond // 1000:03d}"


@dataclass
class ArchiveName:
    final: Path
    temp: Path


@dataclass
class IndexUpdate:
    """Outcome of a commit: whether the database is durable, and how many stale archives remain."""

    is_up_to_date: bool
    remaining_orphans: int


class MetadataManager:
    """Loads, saves and retires the index archives in the destination root."""

    def __init__(
        self,
        destination: Path,
        archive: ArchiveBackend,
        console: Console,
        dry_run: bool = False,
        prompt_old_password: Optional[Callable[[], str]] = None,
    ):
        self.destination = destination
        self.archive = archive
        self.console = console
        self.dry_run = dry_run
        self.prompt_old_password = prompt_old_password

    def list_metadata_archives(self) -> List[Path]:
        """All index archives in the destination root, oldest first."""
        if not self.destination.is_dir():
            return []
        names = sorted(
            child.name
            for child in self.destination.iterdir()
            if not child.is_dir() and is_metadata_archive_name(child.name)
        )
        return [self.destination / name for name in names]

    def has_orphaned_archives(self) -> bool:
        return 1 < len(self.list_metadata_archives())

    def generate_archive_name(self, now: Optional[datetime] = None) -> ArchiveName:
        timestamp = generate_timestamp(now)
        existing = [archive.name for archive in self.list_metadata_archives()]
        # the new archive must sort after all others to become the latest one
        latest = existing[-1] if existing else ""
        start = 0
        if latest:
            latest_timestamp, latest_index = split_archive_name(latest)
            if timestamp <= latest_timestamp:
                if timestamp < latest_timestamp:
                    logger.warning(
                        f"The clock ({timestamp}) is behind the latest index archive {latest} - "
                        "continuing its numbering"
                    )
                timestamp, start = latest_timestamp, latest_index + 1
        for index in range(start, 1000000):
            suffix = f"_{index:06d}" if index else ""
            name = f"{ARCHIVE_FILE_PREFIX}{timestamp}{suffix}{ARCHIVE_FILE_SUFFIX}"
            temp_name = f"{ARCHIVE_FILE_PREFIX}{timestamp}{suffix}_TMP{ARCHIVE_FILE_SUFFIX}"
            if not is_metadata_archive_name(name):
                raise InternalError(f"Generated an invalid archive name: {name}")
            final = self.destination / name
            temp = self.destination / temp_name
            if latest < name and not final.exists() and not temp.exists():
                return ArchiveName(final=final, temp=temp)
        raise InternalError(f"All generated archive names for timestamp {timestamp} already exist")

    async def load_or_initialize_database(self) -> Tuple[DatabaseRecord, bool]:
        """
        Load the database from the latest index archive.

        Returns:
            The database and a flag indicating that it must be saved right away
            (first run or password change)

        Raises:
            FriendlyError: If the destination is inconsistent or the index is corrupt
        """
        archives = self.list_metadata_archives()
        if archives:
            return await self._load_database(archives[-1])

        if self.destination.is_dir() and any(self.destination.iterdir()):
            raise FriendlyError(
                f"The destination has no {ARCHIVE_FILE_PREFIX} file but isn't empty either.\n"
                f"For a full re-sync, delete everything from {self.destination}"
            )
        logger.info("The destination is empty - starting with an empty database")
        return DatabaseRecord.empty(), True

    async def _load_database(self, archive_path: Path) -> Tuple[DatabaseRecord, bool]:
        logger.info(f"Loading the database from {archive_path}")
        archive = self.archive
        password_changed = False
        if not await self._can_open(archive, archive_path):
            logger.info("Prompting for the old password (assuming that it has changed)")
            archive = await self._ask_for_old_password(archive_path)
            password_changed = True

        content = await self._unzip_database(archive, archive_path)
        database = parse_database(content, DATABASE_FILENAME, archive_path.name, self.destination)
        if password_changed:
            logger.info("The password has changed - all files will be re-encrypted")
            self.console.print("The password has changed - all files will be re-encrypted")
            return DatabaseRecord.empty(database.last), True
        return database, False

    async def _can_open(self, archive: ArchiveBackend, archive_path: Path) -> bool:
        result = await archive.list_to_stdout(archive_path)
        if not result.success:
            if result.console_output:
                logger.error(result.console_output)
            logger.error(f"Failed to open {archive_path} - {result.error_message}")
        return result.success

    async def _ask_for_old_password(self, archive_path: Path) -> ArchiveBackend:
        if self.prompt_old_password is None:
            raise FriendlyError(
                f"The index file {archive_path.name} can't be opened with the current password.\n"
                "If the password has changed, run the synchronization interactively to enter the old one."
            )
        self.console.print(f"Can't open {archive_path.name} with the current password")
        for _ in range(MAX_PASSWORD_ATTEMPTS):
            password = self.prompt_old_password()
            if password:
                candidate = self.archive.clone_with_different_password(password)
                if await self._can_open(candidate, archive_path):
                    return candidate
            self.console.print("Invalid password. Please try again.")
        raise FriendlyError(f"Failed to open {archive_path.name} - the password is not correct")

    async def _unzip_database(self, archive: ArchiveBackend, archive_path: Path) -> str:
        result = await archive.unzip_to_stdout(archive_path, DATABASE_FILENAME)
        if result.success and result.stdout:
            logger.info(f"Loaded database {DATABASE_FILENAME} from {archive_path}")
            self.console.print("Loading the database")
            return result.stdout
        if result.console_output:
            logger.error(result.console_output[:1000])
        logger.error(f"Failed to extract {DATABASE_FILENAME} from {archive_path} - {result.error_message}")
        self.console.print(f"Failed to extract the database from {archive_path.name}")
        raise FriendlyError(
            "\n".join(
                [
                    f"The index file {archive_path.name} is corrupt.",
                    f"It does not contain the database (filename: {DATABASE_FILENAME}).",
                    f"To force a full re-sync, delete everything from {self.destination}.",
                ]
            )
        )

    async def update_index(self, database: MappedDirectory) -> IndexUpdate:
        """
        Save the database (if it has unsaved changes) and delete superseded index archives.

        The previous index is only removed after the new one has been published.
        """
        archives = self.list_metadata_archives()
        latest, stale = archives[-1:], archives[:-1]
        remaining_orphans = self._delete_files(stale)

        must_create = database.has_unsaved_changes
        created = must_create and await self._create_new_index(database)
        is_up_to_date = created or not must_create
        database.mark_as_saved(is_up_to_date)

        if created:
            remaining_orphans += self._delete_files(latest)
        elif must_create:
            # the previous index stays live but no longer matches the database
            remaining_orphans += len(latest)
        return IndexUpdate(is_up_to_date=is_up_to_date, remaining_orphans=remaining_orphans)

    async def _create_new_index(self, database: MappedDirectory) -> bool:
        archive_name = self.generate_archive_name()
        if self.dry_run:
            logger.info(f"Would save the database to {archive_name.final}")
            self.console.print("Would save the database")
            return True
        self.console.print("Saving the database")
        success = await self.populate_index(archive_name, database)
        if not success:
            logger.error("Failed to save the database")
            self.console.print("===> FAILED")
        return success

    async def populate_index(self, archive_name: ArchiveName, database: MappedDirectory) -> bool:
        """Write database, README and file listing into a temp archive, then publish it."""
        temp = archive_name.temp
        logger.info(f"Storing the database as {DATABASE_FILENAME} in {temp}")
        success = await self._add_to_archive(temp, DATABASE_FILENAME, serialize_database(database))
        if success:
            logger.info(f"Storing the README as {README_FILENAME} in {temp}")
            success = await self._add_to_archive(
                temp, README_FILENAME, create_readme(archive_name.final.name)
            )
        if success:
            logger.info(f"Storing the file listing as {LISTING_FILENAME} in {temp}")
            success = await self._add_to_archive(temp, LISTING_FILENAME, create_file_listing(database))
        if success:
            success = self._rename(temp, archive_name.final)
        if not success:
            self._delete_file(temp)
        return success

    async def _add_to_archive(self, archive_path: Path, name_in_archive: str, content: str) -> bool:
        result = await self.archive.zip_string(content, name_in_archive, archive_path)
        if not result.success:
            if result.console_output:
                logger.error(result.console_output)
            logger.error(f"Failed to add {name_in_archive} to {archive_path}: {result.error_message}")
        return result.success

    @staticmethod
    def _rename(temp: Path, final: Path) -> bool:
        try:
            logger.info(f"Renaming {temp} => {final}")
            temp.replace(final)
            return True
        except OSError as e:
            logger.error(f"Failed to rename {temp} => {final} - {first_line_only(e)}")
            return False

    def _delete_files(self, files: List[Path]) -> int:
        """Delete the given files and return how many are still there."""
        return len([file for file in files if not self._delete_file(file)])

    def _delete_file(self, file: Path) -> bool:
        if not file.exists():
            return True
        if self.dry_run:
            logger.info(f"Would delete {file}")
            return True
        try:
            logger.info(f"Deleting {file}")
            file.unlink()
        except OSError as e:
            logger.error(f"Failed to delete {file} - {first_line_only(e)}")
            return False
        if file.exists():
            logger.error(f"Failed to delete {file}, although no error was raised")
            return False
        return True

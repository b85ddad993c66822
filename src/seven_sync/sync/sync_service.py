"""Service for reconciling the source tree, the mapping database and the destination tree."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from loguru import logger
from rich.console import Console

from seven_sync.models.mapping import MappedDirectory, MappedEntry, MappedFile
from seven_sync.schemas.database import assemble_database
from seven_sync.services.exceptions import FriendlyError
from seven_sync.services.file_service import FileManager, read_fingerprint
from seven_sync.services.filename_enumerator import FilenameEnumerator
from seven_sync.services.metadata_manager import MetadataManager, is_metadata_archive_name
from seven_sync.services.seven_zip import ArchiveBackend
from seven_sync.sync.report import StatisticsReporter, WarningsReport, generate_findings
from seven_sync.sync.statistics import SyncStats
from seven_sync.utils import first_line_only, pluralize

DEFAULT_INDEX_SAVE_INTERVAL = 60


@dataclass(frozen=True)
class DirectoryEntry:
    """A child of a directory as seen on disk (symbolic links are not followed)."""

    name: str
    is_file: bool
    is_directory: bool
    is_symlink: bool


@dataclass
class AnalysisItem:
    source: Optional[DirectoryEntry]
    database: Optional[MappedEntry]
    destination: Optional[DirectoryEntry]
    is_directory: bool

    @property
    def name(self) -> str:
        if self.database is not None:
            return self.database.source.name
        return self.source.name if self.source else ""


def list_children(path: Path) -> Dict[str, DirectoryEntry]:
    """List the children of a directory, or nothing if it doesn't exist."""
    if not path.is_dir():
        return {}
    children = {}
    with os.scandir(path) as entries:
        for entry in entries:
            children[entry.name] = DirectoryEntry(
                name=entry.name,
                is_file=entry.is_file(follow_symlinks=False),
                is_directory=entry.is_dir(follow_symlinks=False),
                is_symlink=entry.is_symlink(),
            )
    return children


class Synchronizer:
    """
    Three-way reconciliation of source, database and destination.

    Directories are processed depth-first, one entry at a time. Every entry
    is classified as preexisting, deleted from the source, vanished from the
    destination or new, and handled accordingly. Failures are counted and
    never abort the run; the database only records what actually happened so
    that failed operations are retried by the next run.
    """

    def __init__(
        self,
        database: MappedDirectory,
        file_manager: FileManager,
        metadata_manager: MetadataManager,
        enumerator: FilenameEnumerator,
        console: Console,
        dry_run: bool = False,
        index_save_interval: float = DEFAULT_INDEX_SAVE_INTERVAL,
    ):
        self.database = database
        self.file_manager = file_manager
        self.metadata_manager = metadata_manager
        self.enumerator = enumerator
        self.console = console
        self.dry_run = dry_run
        self.index_save_interval = index_save_interval
        self.statistics = SyncStats()

    def print(self, message: str) -> None:
        self.console.print(message, markup=False, highlight=False)

    async def run(self) -> WarningsReport:
        """Synchronize the whole tree, save the database and evaluate the outcome."""
        await self.sync_directory(self.database)

        stats = self.statistics
        if not stats.copied.total and not stats.deleted.total and not stats.orphans.total:
            self.print("The destination is already up to date")
            logger.info("The destination is already up to date - no changes required")

        if self.database.has_unsaved_changes or self.metadata_manager.has_orphaned_archives():
            await self.update_index()

        StatisticsReporter(stats, self.dry_run).log_statistics()
        return generate_findings(stats, self.dry_run)

    async def update_index(self) -> bool:
        result = await self.metadata_manager.update_index(self.database)
        self.statistics.index.has_lingering_orphans = 0 < result.remaining_orphans
        self.statistics.index.is_up_to_date = result.is_up_to_date
        return result.is_up_to_date

    async def update_index_if_required(self) -> None:
        if self.database.has_unsaved_changes and not self.database.was_saved_within_the_last_seconds(
            self.index_save_interval
        ):
            await self.update_index()

    async def sync_directory(self, directory: MappedDirectory) -> bool:
        destination_path = directory.destination.absolute_path
        source_path = directory.source.absolute_path
        try:
            destination_children = list_children(destination_path)
            source_children = list_children(source_path)
        except OSError as e:
            logger.error(
                f"Failed to read the contents of {source_path} or {destination_path} - {first_line_only(e)}"
            )
            self.statistics.copied.directories.failed += 1
            return False
        self._discard_unprocessable(destination_path, destination_children, "destination")
        self._discard_unprocessable(source_path, source_children, "source")

        success = await self._delete_orphans(directory, destination_children)
        for item in self._analyze_directory(directory, source_children, destination_children):
            success = await self._process_item(directory, item) and success
        return success

    def _discard_unprocessable(
        self, path: Path, children: Dict[str, DirectoryEntry], category: str
    ) -> None:
        statistics = getattr(self.statistics.unprocessable, category)
        for entry in [entry for entry in children.values() if not entry.is_file and not entry.is_directory]:
            del children[entry.name]
            if entry.is_symlink:
                statistics.symlinks += 1
            else:
                statistics.other += 1
            logger.warning(f"Ignoring {path / entry.name} because it's a symbolic link or otherwise unprocessable")

    # orphans

    async def _delete_orphans(
        self, directory: MappedDirectory, destination_children: Dict[str, DirectoryEntry]
    ) -> bool:
        success = True
        for name, entry in list(destination_children.items()):
            if name in directory.files.by_destination_name or name in directory.subdirectories.by_destination_name:
                continue
            destination = directory.destination.absolute_path / name
            display_root = directory.source.relative_path / name

            def display_path(path: Path, root: Path = destination, display: Path = display_root) -> str:
                return (display / path.relative_to(root)).as_posix()

            deleted = await self._delete_orphaned_item(destination, entry, display_path)
            if deleted:
                del destination_children[name]
            success = deleted and success
        return success

    async def _delete_orphaned_item(
        self, destination: Path, entry: DirectoryEntry, display_path: Callable[[Path], str]
    ) -> bool:
        await self.update_index_if_required()
        is_root = destination.parent == self.database.destination.absolute_path
        if is_root and is_metadata_archive_name(entry.name):
            return True
        if entry.is_directory:
            return await self._delete_orphaned_directory(destination, display_path)
        return await self._delete_orphaned_file(destination, display_path)

    async def _delete_orphaned_directory(self, path: Path, display_path: Callable[[Path], str]) -> bool:
        try:
            children = list_children(path)
        except OSError as e:
            logger.error(f"Failed to read the contents of orphaned directory {path} - {first_line_only(e)}")
            self.statistics.orphans.directories.failed += 1
            return False
        for child in children.values():
            await self._delete_orphaned_item(path / child.name, child, display_path)
        if not self.statistics.orphans.total:
            await self._recalculate_last_filenames()
        success = await self.file_manager.delete_directory(path, orphan_display_path=display_path(path))
        if success:
            self.statistics.orphans.directories.success += 1
        else:
            self.statistics.orphans.directories.failed += 1
        return success

    async def _delete_orphaned_file(self, path: Path, display_path: Callable[[Path], str]) -> bool:
        if not self.statistics.orphans.total:
            await self._recalculate_last_filenames()
        success = await self.file_manager.delete_file(path, orphan_display_path=display_path(path))
        if success:
            self.statistics.orphans.files.success += 1
        else:
            self.statistics.orphans.files.failed += 1
        return success

    async def _recalculate_last_filenames(self) -> None:
        """Make sure that names freed by deleting orphans are never issued again."""
        message = "Found orphans - scanning the destination for filenames to not re-use"
        logger.info(message)
        self.print(message)

        if self._update_last_filenames(self.database):
            logger.info("Advanced the last filename of at least one directory")
        else:
            logger.info("Did not find any orphan filenames of concern")

        if self.database.has_unsaved_changes and not await self.update_index():
            raise FriendlyError("Failed to save the database (see log file for details)")

        message = f"Continuing with the {'dry run' if self.dry_run else 'synchronization'}"
        logger.info(message)
        self.print(message)

    def _update_last_filenames(self, directory: MappedDirectory) -> bool:
        filenames = list_children(directory.destination.absolute_path).keys()
        last = self.enumerator.recalculate_last_filename(directory.last, filenames)
        changed = last != directory.last
        if changed:
            logger.info(
                f"Updating the last filename of {directory.destination.absolute_path} "
                f'from "{directory.last}" to "{last}"'
            )
            directory.last = last
        for subdirectory in directory.subdirectories:
            changed = self._update_last_filenames(subdirectory) or changed
        return changed

    # analysis

    def _analyze_directory(
        self,
        directory: MappedDirectory,
        source_children: Dict[str, DirectoryEntry],
        destination_children: Dict[str, DirectoryEntry],
    ) -> List[AnalysisItem]:
        items = []
        for entry in [*directory.files, *directory.subdirectories]:
            items.append(
                self._analysis_item(
                    source_children.pop(entry.source.name, None),
                    entry,
                    destination_children.get(entry.destination.name),
                )
            )
        for source in source_children.values():
            items.append(self._analysis_item(source, None, None))
        return sorted(items, key=lambda item: (not item.is_directory, item.name.lower()))

    @staticmethod
    def _analysis_item(
        source: Optional[DirectoryEntry],
        database: Optional[MappedEntry],
        destination: Optional[DirectoryEntry],
    ) -> AnalysisItem:
        is_directory = (
            isinstance(database, MappedDirectory)
            or bool(source and source.is_directory)
            or bool(destination and destination.is_directory)
        )
        return AnalysisItem(source, database, destination, is_directory)

    # processing

    async def _process_item(self, parent: MappedDirectory, item: AnalysisItem) -> bool:
        await self.update_index_if_required()
        if item.database is not None:
            if item.source is not None and item.destination is not None:
                return await self._process_preexisting_item(parent, item.database, item.source, item.destination)
            if item.destination is not None:
                return await self._process_deleted_item(parent, item.database, item.destination)
            return await self._process_vanished_item(parent, item.database, item.source)
        if item.source is not None:
            return await self._process_new_item(parent, item.source)
        return True

    async def _process_new_item(self, parent: MappedDirectory, source: DirectoryEntry) -> bool:
        if source.is_directory:
            return await self._process_new_directory(parent, source)
        return await self._process_new_file(parent, source)

    async def _process_new_directory(self, parent: MappedDirectory, source: DirectoryEntry) -> bool:
        subdirectory = await self.file_manager.create_directory(parent, source.name)
        if subdirectory is None:
            self.statistics.copied.directories.failed += 1
            return False
        self.statistics.copied.directories.success += 1
        return await self.sync_directory(subdirectory)

    async def _process_new_file(self, parent: MappedDirectory, source: DirectoryEntry) -> bool:
        if await self.file_manager.zip_file(parent, source.name) is None:
            self.statistics.copied.files.failed += 1
            return False
        self.statistics.copied.files.success += 1
        return True

    async def _process_preexisting_item(
        self,
        parent: MappedDirectory,
        entry: MappedEntry,
        source: DirectoryEntry,
        destination: DirectoryEntry,
    ) -> bool:
        is_directory = isinstance(entry, MappedDirectory)
        if source.is_directory != is_directory or destination.is_directory != is_directory:
            if destination.is_directory != is_directory:
                removed = await self._process_replaced_destination(parent, entry, destination)
            else:
                removed = await self._process_deleted_item(parent, entry, destination)
            if not removed:
                if source.is_directory:
                    self.statistics.copied.directories.failed += 1
                else:
                    self.statistics.copied.files.failed += 1
                return False
            return await self._process_new_item(parent, source)
        if isinstance(entry, MappedFile):
            return await self._process_preexisting_file(parent, entry, source)
        return await self.sync_directory(entry)

    async def _process_preexisting_file(
        self, parent: MappedDirectory, entry: MappedFile, source: DirectoryEntry
    ) -> bool:
        try:
            fingerprint = read_fingerprint(entry.source.absolute_path)
        except OSError as e:
            logger.error(f"Failed to read the properties of {entry.source.absolute_path} - {first_line_only(e)}")
            self.statistics.copied.files.failed += 1
            return False
        if entry.has_fingerprint(*fingerprint):
            return True
        return await self._process_modified_file(parent, entry, source)

    async def _process_modified_file(
        self, parent: MappedDirectory, entry: MappedFile, source: DirectoryEntry
    ) -> bool:
        parent.delete(entry)
        deleted = await self.file_manager.delete_file(
            entry.destination.absolute_path,
            source=entry.source.absolute_path,
            reason="because the source file was modified",
            suppress_console_output=True,
        )
        if deleted:
            self.statistics.deleted.files.success += 1
        else:
            self.statistics.deleted.files.failed += 1
        copied = await self._process_new_file(parent, source)
        return deleted and copied

    async def _process_deleted_item(
        self, parent: MappedDirectory, entry: MappedEntry, destination: Optional[DirectoryEntry]
    ) -> bool:
        if isinstance(entry, MappedFile):
            return await self._process_deleted_file(parent, entry, destination)
        return await self._process_deleted_directory(parent, entry)

    async def _process_replaced_destination(
        self, parent: MappedDirectory, entry: MappedEntry, destination: DirectoryEntry
    ) -> bool:
        """The destination holds a file where the database expects a directory, or vice versa."""
        path = entry.destination.absolute_path
        reason = "because it doesn't match the database"
        if destination.is_directory:
            statistics = self.statistics.deleted.directories
            deleted = await self.file_manager.delete_directory(
                path, source=entry.source.absolute_path, reason=reason
            )
        else:
            statistics = self.statistics.deleted.files
            deleted = await self.file_manager.delete_file(
                path, source=entry.source.absolute_path, reason=reason
            )
        if deleted:
            parent.delete(entry)
            statistics.success += 1
        else:
            statistics.failed += 1
        return deleted

    async def _process_deleted_file(
        self, parent: MappedDirectory, entry: MappedFile, destination: Optional[DirectoryEntry]
    ) -> bool:
        if destination is None:
            parent.delete(entry)
            self.statistics.purged.files.success += 1
            return True
        success = await self.file_manager.delete_file(
            entry.destination.absolute_path,
            source=entry.source.absolute_path,
            reason="because the source file was deleted",
        )
        if success:
            parent.delete(entry)
            self.statistics.deleted.files.success += 1
        else:
            self.statistics.deleted.files.failed += 1
        return success

    async def _process_deleted_directory(self, parent: MappedDirectory, entry: MappedDirectory) -> bool:
        try:
            destination_children = list_children(entry.destination.absolute_path)
        except OSError as e:
            path = entry.destination.absolute_path
            logger.error(f"Failed to read the contents of {path} - {first_line_only(e)}")
            self.statistics.deleted.directories.failed += 1
            return False
        success = await self._delete_orphans(entry, destination_children)
        for file in entry.files:
            deleted = await self._process_deleted_file(
                entry, file, destination_children.get(file.destination.name)
            )
            success = deleted and success
        for subdirectory in entry.subdirectories:
            if subdirectory.destination.name in destination_children:
                deleted = await self._process_deleted_directory(entry, subdirectory)
            else:
                deleted = await self._process_vanished_item(entry, subdirectory, None)
            success = deleted and success
        success = success and await self.file_manager.delete_directory(
            entry.destination.absolute_path,
            source=entry.source.absolute_path,
            reason="because the source directory was deleted",
        )
        if success:
            parent.delete(entry)
            self.statistics.deleted.directories.success += 1
        else:
            self.statistics.deleted.directories.failed += 1
        return success

    async def _process_vanished_item(
        self, parent: MappedDirectory, entry: MappedEntry, source: Optional[DirectoryEntry]
    ) -> bool:
        if isinstance(entry, MappedFile):
            files, subdirectories = 1, 0
            details = ""
        else:
            files, subdirectories = entry.count_children()
            details = (
                f" (including {pluralize(files, 'file', 'files')} and "
                f"{pluralize(subdirectories, 'subdirectory', 'subdirectories')})"
                if files or subdirectories
                else ""
            )
            subdirectories += 1
        action = "Would purge" if self.dry_run else "Purging"
        logger.warning(
            f"{action} {entry.source.absolute_path}{details} from the database "
            f"because {entry.destination.absolute_path} has vanished"
        )
        parent.delete(entry)
        self.statistics.purged.files.success += files
        self.statistics.purged.directories.success += subdirectories
        if source is not None:
            return await self._process_new_item(parent, source)
        return True


@dataclass
class SyncOutcome:
    report: WarningsReport
    statistics: SyncStats


async def run_synchronization(
    source: Path,
    destination: Path,
    archive: ArchiveBackend,
    console: Console,
    dry_run: bool = False,
    prompt_old_password: Optional[Callable[[], str]] = None,
    index_save_interval: float = DEFAULT_INDEX_SAVE_INTERVAL,
    enumerator: Optional[FilenameEnumerator] = None,
) -> SyncOutcome:
    """
    Load (or initialize) the database, synchronize, and save the database again.

    Raises:
        FriendlyError: If the database can't be loaded or the initial save fails
    """
    enumerator = enumerator or FilenameEnumerator()
    metadata_manager = MetadataManager(destination, archive, console, dry_run, prompt_old_password)
    record, must_save_immediately = await metadata_manager.load_or_initialize_database()
    database = assemble_database(record, source, destination)

    if must_save_immediately:
        result = await metadata_manager.update_index(database)
        if not result.is_up_to_date:
            raise FriendlyError("Failed to save the database")
    else:
        database.mark_as_saved()

    message = f"Starting the {'dry run' if dry_run else 'synchronization'}"
    logger.info(f"{message} from {source} to {destination}")
    console.print(message, markup=False, highlight=False)

    file_manager = FileManager(database, archive, enumerator, console, dry_run)
    synchronizer = Synchronizer(
        database, file_manager, metadata_manager, enumerator, console, dry_run, index_save_interval
    )
    report = await synchronizer.run()
    return SyncOutcome(report=report, statistics=synchronizer.statistics)

"""Service for the file system and archive operations of a synchronization run."""

import os
import shutil
from pathlib import Path
from typing import Optional, Tuple

from loguru import logger
from rich.console import Console

from seven_sync.models.mapping import MappedDirectory, MappedFile
from seven_sync.models.paths import File, Subdirectory
from seven_sync.services.filename_enumerator import ARCHIVE_SUFFIX, FilenameEnumerator
from seven_sync.services.metadata_manager import is_metadata_archive_name
from seven_sync.services.seven_zip import ArchiveBackend
from seven_sync.utils import first_line_only

Fingerprint = Tuple[int, int, int]


def read_fingerprint(path: Path) -> Fingerprint:
    """
    Get (created, modified, size) of a file in nanosecond precision.

    Falls back to the inode change time where the platform has no birth time.
    """
    stat = path.stat()
    if hasattr(stat, "st_birthtime_ns"):
        created = stat.st_birthtime_ns
    elif hasattr(stat, "st_birthtime"):
        created = int(stat.st_birthtime * 1_000_000_000)
    else:
        created = stat.st_ctime_ns
    return created, stat.st_mtime_ns, stat.st_size


class FileManager:
    """
    Creates destination directories, zips files and deletes destination entries.

    Every operation prints a one-line summary, logs the details and reports
    failures through its return value. In dry-run mode nothing is changed on
    disk but the mapping database is updated as if the operation had succeeded.
    """

    def __init__(
        self,
        database: MappedDirectory,
        archive: ArchiveBackend,
        enumerator: FilenameEnumerator,
        console: Console,
        dry_run: bool = False,
    ):
        self.database = database
        self.archive = archive
        self.enumerator = enumerator
        self.console = console
        self.dry_run = dry_run

    def print(self, message: str) -> None:
        self.console.print(message, markup=False, highlight=False)

    async def create_directory(self, parent: MappedDirectory, source_name: str) -> Optional[MappedDirectory]:
        """Create the destination counterpart of a new source directory."""
        source = parent.source.absolute_path / source_name
        next_name = self.enumerator.get_next_available_filename(
            parent.destination.absolute_path, parent.last
        )
        self.print(f"+ {self._relative_source(source)}")
        path_info = f"{next_name.path} (mirroring {source})"

        if self.dry_run:
            logger.info(f"Would create directory {path_info}")
        else:
            logger.info(f"Creating directory {path_info}")
            try:
                next_name.path.mkdir()
                if not next_name.path.is_dir():
                    raise OSError("No exception was raised but the directory does not exist")
            except OSError as e:
                logger.error(f"Failed to create directory {next_name.path} - {first_line_only(e)}")
                self.print("===> FAILED")
                return None

        subdirectory = MappedDirectory(
            source=Subdirectory(parent.source, source_name),
            destination=Subdirectory(parent.destination, next_name.filename),
            last="",
            parent=parent,
        )
        parent.add(subdirectory)
        parent.last = next_name.enumerated_name
        return subdirectory

    async def zip_file(self, parent: MappedDirectory, source_name: str) -> Optional[MappedFile]:
        """Compress and encrypt a source file into a new archive under the next enumerated name."""
        source = parent.source.absolute_path / source_name
        relative_source = self._relative_source(source)
        next_name = self.enumerator.get_next_available_filename(
            parent.destination.absolute_path, parent.last, suffix=ARCHIVE_SUFFIX
        )
        self.print(f"+ {relative_source}")
        path_info = f"{source} => {next_name.path}"

        try:
            fingerprint = read_fingerprint(source)
        except OSError as e:
            logger.error(f"Failed to read the properties of {source} - {first_line_only(e)}")
            self.print("===> FAILED")
            return None

        if self.dry_run:
            logger.info(f"Would zip {path_info}")
        else:
            logger.info(f"Zipping {path_info}")
            result = await self.archive.zip_file(
                self.database.source.absolute_path, relative_source, next_name.path
            )
            if not result.success:
                if result.console_output:
                    logger.error(result.console_output)
                logger.error(f"Failed to zip {path_info}: {result.error_message}")
                self.print("===> FAILED")
                return None

        created, modified, size = fingerprint
        mapped_file = MappedFile(
            source=File(parent.source, source_name),
            destination=File(parent.destination, next_name.filename),
            created=created,
            modified=modified,
            size=size,
        )
        parent.add(mapped_file)
        parent.last = next_name.enumerated_name
        return mapped_file

    async def delete_file(
        self,
        destination: Path,
        source: Optional[Path] = None,
        orphan_display_path: Optional[str] = None,
        reason: Optional[str] = None,
        suppress_console_output: bool = False,
    ) -> bool:
        is_metadata_archive = (
            source is None
            and destination.parent == self.database.destination.absolute_path
            and is_metadata_archive_name(destination.name)
        )
        return self._delete(
            "file",
            destination,
            source,
            orphan_display_path,
            reason,
            suppress_console_output or is_metadata_archive,
            is_metadata_archive,
        )

    async def delete_directory(
        self,
        destination: Path,
        source: Optional[Path] = None,
        orphan_display_path: Optional[str] = None,
        reason: Optional[str] = None,
        suppress_console_output: bool = False,
    ) -> bool:
        return self._delete(
            "directory", destination, source, orphan_display_path, reason, suppress_console_output
        )

    def _delete(
        self,
        kind: str,
        destination: Path,
        source: Optional[Path],
        orphan_display_path: Optional[str],
        reason: Optional[str],
        suppress_console_output: bool,
        is_metadata_archive: bool = False,
    ) -> bool:
        is_orphan = orphan_display_path is not None
        if not suppress_console_output:
            if is_orphan:
                self.print(f"- {orphan_display_path} (orphan)")
            elif source is not None:
                self.print(f"- {self._relative_source(source)}")
            else:
                self.print(f"- {destination}")

        path_info = f"{destination} (mirroring {source})" if source else f"{destination}"
        suffix = f" {reason}" if reason else ""
        if is_orphan and not is_metadata_archive:
            action = "Would delete orphaned" if self.dry_run else "Deleting orphaned"
            logger.warning(f"{action} {kind} {path_info}{suffix}")
        else:
            action = "Would delete" if self.dry_run else "Deleting"
            logger.info(f"{action} {kind} {path_info}{suffix}")

        success = self.dry_run or self._remove(destination, kind == "directory")
        if not success and not suppress_console_output:
            self.print("===> FAILED")
        return success

    @staticmethod
    def _remove(path: Path, is_directory: bool) -> bool:
        try:
            if is_directory:
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as e:
            logger.error(f"Failed to delete {path} - {first_line_only(e)}")
            return False
        if os.path.lexists(path):
            logger.error(f"Failed to delete {path} - no error was raised but it's still present")
            return False
        return True

    def _relative_source(self, source: Path) -> str:
        return source.relative_to(self.database.source.absolute_path).as_posix()

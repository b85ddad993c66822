"""Counters collected during a synchronization run."""

from dataclasses import dataclass, field


@dataclass
class SuccessAndFailureStats:
    success: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.success + self.failed


@dataclass
class FileAndDirectoryStats:
    files: SuccessAndFailureStats = field(default_factory=SuccessAndFailureStats)
    directories: SuccessAndFailureStats = field(default_factory=SuccessAndFailureStats)

    @property
    def success(self) -> int:
        return self.files.success + self.directories.success

    @property
    def failed(self) -> int:
        return self.files.failed + self.directories.failed

    @property
    def total(self) -> int:
        return self.files.total + self.directories.total


@dataclass
class UnprocessableStats:
    symlinks: int = 0
    other: int = 0

    @property
    def total(self) -> int:
        return self.symlinks + self.other


@dataclass
class UnprocessableSourceAndDestination:
    source: UnprocessableStats = field(default_factory=UnprocessableStats)
    destination: UnprocessableStats = field(default_factory=UnprocessableStats)


@dataclass
class IndexStats:
    has_lingering_orphans: bool = False
    is_up_to_date: bool = True


@dataclass
class SyncStats:
    """Outcome of a synchronization run.

    Attributes:
        copied: Files zipped and directories created (new or modified in the source)
        deleted: Destination entries removed because the source changed or disappeared
        orphans: Destination entries removed because the database did not know them
        purged: Database entries dropped because their destination had vanished
        unprocessable: Symbolic links and other special entries that were skipped
        index: Whether the database was saved and old index archives were removed
    """

    copied: FileAndDirectoryStats = field(default_factory=FileAndDirectoryStats)
    deleted: FileAndDirectoryStats = field(default_factory=FileAndDirectoryStats)
    orphans: FileAndDirectoryStats = field(default_factory=FileAndDirectoryStats)
    purged: FileAndDirectoryStats = field(default_factory=FileAndDirectoryStats)
    unprocessable: UnprocessableSourceAndDestination = field(
        default_factory=UnprocessableSourceAndDestination
    )
    index: IndexStats = field(default_factory=IndexStats)

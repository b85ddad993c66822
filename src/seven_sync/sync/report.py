"""Turn synchronization statistics into log lines, findings and an exit code."""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List

from loguru import logger

from seven_sync.sync.statistics import FileAndDirectoryStats, SyncStats, UnprocessableStats
from seven_sync.utils import pluralize


class Severity(IntEnum):
    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class Finding:
    severity: Severity
    message: str


@dataclass
class WarningsReport:
    """Findings of a run, most severe first."""

    findings: List[Finding] = field(default_factory=list)

    @property
    def severity(self) -> Severity:
        return max((finding.severity for finding in self.findings), default=Severity.INFO)

    @property
    def exit_code(self) -> int:
        return 1 if Severity.WARNING <= self.severity and self.findings else 0


def format_counts(files: int, directories: int) -> str:
    """Format counters as '1 file', '2 directories' or '3 files and 1 directory'."""
    parts = []
    if files or not directories:
        parts.append(pluralize(files, "file", "files"))
    if directories:
        parts.append(pluralize(directories, "directory", "directories"))
    return " and ".join(parts)


def _is_singular(stats: FileAndDirectoryStats, attribute: str) -> bool:
    return getattr(stats.files, attribute) + getattr(stats.directories, attribute) == 1


class StatisticsReporter:
    """Writes a summary of what a run did (or would have done) to the log file."""

    def __init__(self, statistics: SyncStats, dry_run: bool = False):
        self.statistics = statistics
        self.dry_run = dry_run

    def log_statistics(self) -> None:
        stats = self.statistics
        self._log(stats.copied, "copied", "copy", "added to or modified in the source")
        self._log(stats.deleted, "deleted", "delete", "modified in or deleted from the source")
        self._log(stats.orphans, "deleted", "delete", "not registered in the database ({})")
        self._log_purged(stats.purged)

    def _log(self, stats: FileAndDirectoryStats, past: str, verb: str, template: str) -> None:
        if self.dry_run:
            if stats.total:
                counts = format_counts(stats.files.total, stats.directories.total)
                logger.info(f"Would have {past} {counts} that {self._details(template, stats, 'total')}")
            return
        if stats.success:
            counts = format_counts(stats.files.success, stats.directories.success)
            logger.info(f"Successfully {past} {counts} that {self._details(template, stats, 'success')}")
        if stats.failed:
            counts = format_counts(stats.files.failed, stats.directories.failed)
            logger.warning(f"Failed to {verb} {counts} that {self._details(template, stats, 'failed')}")

    @staticmethod
    def _details(template: str, stats: FileAndDirectoryStats, attribute: str) -> str:
        singular = _is_singular(stats, attribute)
        return f"{'was' if singular else 'were'} {template.format('orphan' if singular else 'orphans')}"

    def _log_purged(self, stats: FileAndDirectoryStats) -> None:
        if not stats.total:
            return
        counts = format_counts(stats.files.total, stats.directories.total)
        verb = "has" if _is_singular(stats, "total") else "have"
        action = "Would have purged" if self.dry_run else "Purged"
        logger.info(f"{action} {counts} (that {verb} vanished from the destination) from the database")


def generate_findings(statistics: SyncStats, dry_run: bool = False) -> WarningsReport:
    """Derive the findings of a run from its statistics (no I/O)."""
    findings: List[Finding] = []
    _copy_failures(statistics, findings)
    _delete_failures(statistics, findings)
    _orphans(statistics, dry_run, findings)
    _purged(statistics, dry_run, findings)
    _index(statistics, findings)
    _unprocessable(statistics.unprocessable.source, "source", findings)
    _unprocessable(statistics.unprocessable.destination, "destination", findings)
    findings.sort(key=lambda finding: finding.severity, reverse=True)
    return WarningsReport(findings)


def _copy_failures(statistics: SyncStats, findings: List[Finding]) -> None:
    copied = statistics.copied
    if copied.failed:
        counts = format_counts(copied.files.failed, copied.directories.failed)
        singular = _is_singular(copied, "failed")
        findings.append(
            Finding(
                Severity.ERROR,
                f"{counts} could not be copied. "
                f"{'It' if singular else 'They'} will be retried in the next synchronization run. "
                "Until then, the backup is incomplete.",
            )
        )


def _delete_failures(statistics: SyncStats, findings: List[Finding]) -> None:
    deleted = statistics.deleted
    if deleted.failed:
        counts = format_counts(deleted.files.failed, deleted.directories.failed)
        singular = _is_singular(deleted, "failed")
        findings.append(
            Finding(
                Severity.WARNING,
                f"{counts} could not be deleted. "
                f"{'It' if singular else 'They'} will be retried in the next synchronization run. "
                "Until then, the backup contains outdated file versions.",
            )
        )


def _orphans(statistics: SyncStats, dry_run: bool, findings: List[Finding]) -> None:
    orphans = statistics.orphans
    if not orphans.total:
        return
    singular = _is_singular(orphans, "total")
    counts = format_counts(orphans.files.total, orphans.directories.total)
    message = f"The destination contained {counts} not registered in the database (orphan{'' if singular else 's'})."
    if dry_run:
        outcome = "It would be deleted." if singular else "They would be deleted."
    elif not orphans.failed:
        outcome = "It was deleted successfully." if singular else "They were deleted successfully."
    elif not orphans.success:
        outcome = f"Attempts to delete {'it' if singular else 'them'} have failed."
    else:
        outcome = "Some of them could be deleted but others are still there."
    findings.append(Finding(Severity.WARNING, f"{message} {outcome}"))


def _purged(statistics: SyncStats, dry_run: bool, findings: List[Finding]) -> None:
    purged = statistics.purged
    if not purged.total:
        return
    singular = _is_singular(purged, "total")
    counts = format_counts(purged.files.total, purged.directories.total)
    if dry_run:
        outcome = f"{'It' if singular else 'They'} would be removed from the database."
    else:
        outcome = f"{'It has' if singular else 'They have'} been removed from the database."
    findings.append(
        Finding(
            Severity.WARNING,
            f"{counts} {'has' if singular else 'have'} vanished from the destination. {outcome}",
        )
    )


def _index(statistics: SyncStats, findings: List[Finding]) -> None:
    index = statistics.index
    if not index.is_up_to_date and index.has_lingering_orphans:
        findings.append(
            Finding(
                Severity.ERROR,
                "Failed to update the database. The previous one was preserved but is outdated. "
                "The next synchronization run will delete and re-encrypt all files processed in this run.",
            )
        )
    elif not index.is_up_to_date:
        findings.append(
            Finding(
                Severity.ERROR,
                "Failed to save the database. "
                "The next synchronization run will delete and re-encrypt all files.",
            )
        )
    elif index.has_lingering_orphans:
        findings.append(
            Finding(
                Severity.WARNING,
                "The database was saved but the old one could not be deleted. "
                "It will be retried in the next synchronization run.",
            )
        )


def _unprocessable(stats: UnprocessableStats, category: str, findings: List[Finding]) -> None:
    if not stats.total:
        return
    singular = stats.total == 1
    items = pluralize(
        stats.total,
        "symbolic link or otherwise unprocessable item",
        "symbolic links or otherwise unprocessable items",
    )
    message = (
        f"The {category} contains {items}. "
        f"{'It is' if singular else 'They are'} ignored and not synchronized. "
        "Please refer to the log file for the list of affected items."
    )
    if category == "destination":
        message += f" Please delete {'it' if singular else 'them'} manually."
    findings.append(Finding(Severity.WARNING, message))

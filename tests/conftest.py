"""Common test fixtures."""

import json
from io import StringIO
from pathlib import Path
from typing import Callable, List, Optional, Set, Union

import pytest
from loguru import logger
from rich.console import Console

from seven_sync.schemas.database import DatabaseRecord, parse_database
from seven_sync.services.metadata_manager import DATABASE_FILENAME, MetadataManager
from seven_sync.services.seven_zip import ArchiveResult
from seven_sync.sync.sync_service import SyncOutcome, run_synchronization


class FakeArchive:
    """Archive backend that stores "encrypted" archives as JSON documents.

    Each archive records the password it was written with; every operation
    with a different password fails the way 7-Zip does.
    """

    def __init__(self, password: str = "secret", calls: Optional[List[str]] = None):
        self.password = password
        self.calls: List[str] = calls if calls is not None else []
        self.fail_zip: Set[str] = set()
        self.fail_zip_string = False

    def clone_with_different_password(self, password: str) -> "FakeArchive":
        clone = FakeArchive(password, self.calls)
        clone.fail_zip = self.fail_zip
        clone.fail_zip_string = self.fail_zip_string
        return clone

    async def run_self_test(self) -> None:
        self.calls.append("self-test")

    async def zip_file(
        self, working_directory: Path, relative_source: Union[str, Path], archive: Path
    ) -> ArchiveResult:
        self.calls.append(f"zip_file {relative_source}")
        source = Path(working_directory) / relative_source
        if str(relative_source) in self.fail_zip or not source.is_file():
            return ArchiveResult(success=False, error_message="Exit code 2", exit_code=2)
        return self._add(archive, Path(relative_source).name, source.read_text(encoding="utf-8"))

    async def zip_string(self, content: str, name_in_archive: str, archive: Path) -> ArchiveResult:
        self.calls.append(f"zip_string {name_in_archive}")
        if self.fail_zip_string:
            return ArchiveResult(success=False, error_message="Exit code 2", exit_code=2)
        return self._add(archive, name_in_archive, content)

    async def unzip_to_stdout(self, archive: Path, name_in_archive: str) -> ArchiveResult:
        data = self._open(archive)
        if data is None or name_in_archive not in data["entries"]:
            return ArchiveResult(success=False, error_message="Exit code 2", exit_code=2)
        content = data["entries"][name_in_archive]
        return ArchiveResult(success=True, stdout=content, console_output=content, exit_code=0)

    async def list_to_stdout(self, archive: Path) -> ArchiveResult:
        data = self._open(archive)
        if data is None:
            return ArchiveResult(success=False, error_message="Exit code 2", exit_code=2)
        listing = "\n".join(sorted(data["entries"]))
        return ArchiveResult(success=True, stdout=listing, console_output=listing, exit_code=0)

    def _open(self, archive: Path) -> Optional[dict]:
        if not archive.is_file():
            return None
        data = json.loads(archive.read_text(encoding="utf-8"))
        return data if data["password"] == self.password else None

    def _add(self, archive: Path, name: str, content: str) -> ArchiveResult:
        if archive.exists():
            data = self._open(archive)
            if data is None:
                return ArchiveResult(success=False, error_message="Exit code 2", exit_code=2)
        else:
            data = {"password": self.password, "entries": {}}
        data["entries"][name] = content
        archive.write_text(json.dumps(data), encoding="utf-8")
        return ArchiveResult(success=True, exit_code=0)


@pytest.fixture
def archive() -> FakeArchive:
    return FakeArchive("secret")


@pytest.fixture
def console():
    """Create test console that captures output."""
    output = StringIO()
    return Console(file=output, width=200, highlight=False), output


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    path = tmp_path / "source"
    path.mkdir()
    return path


@pytest.fixture
def destination_dir(tmp_path: Path) -> Path:
    path = tmp_path / "destination"
    path.mkdir()
    return path


@pytest.fixture
def run_sync(source_dir: Path, destination_dir: Path, archive: FakeArchive, console):
    """Run a complete synchronization from source_dir to destination_dir."""
    test_console, _ = console

    async def run(
        dry_run: bool = False,
        archive_backend: Optional[FakeArchive] = None,
        prompt_old_password: Optional[Callable[[], str]] = None,
    ) -> SyncOutcome:
        return await run_synchronization(
            source_dir,
            destination_dir,
            archive_backend or archive,
            test_console,
            dry_run=dry_run,
            prompt_old_password=prompt_old_password,
        )

    return run


@pytest.fixture
def load_database(destination_dir: Path, archive: FakeArchive, console):
    """Read the database from the latest index archive."""
    test_console, _ = console

    async def load(archive_backend: Optional[FakeArchive] = None) -> DatabaseRecord:
        backend = archive_backend or archive
        manager = MetadataManager(destination_dir, backend, test_console)
        latest = manager.list_metadata_archives()[-1]
        result = await backend.unzip_to_stdout(latest, DATABASE_FILENAME)
        assert result.success
        return parse_database(result.stdout, DATABASE_FILENAME, latest.name, destination_dir)

    return load


@pytest.fixture
def log_messages():
    """Capture loguru messages as 'LEVEL message' strings."""
    messages: List[str] = []
    handler_id = logger.add(lambda message: messages.append(
        f"{message.record['level'].name} {message.record['message']}"
    ))
    yield messages
    logger.remove(handler_id)


def list_destination(path: Path) -> List[str]:
    """All files and directories below path, relative and sorted, index archives excluded."""
    return sorted(
        child.relative_to(path).as_posix()
        for child in path.rglob("*")
        if not child.name.startswith("___INDEX___")
    )


def index_archives(path: Path) -> List[str]:
    return sorted(child.name for child in path.iterdir() if child.name.startswith("___INDEX___"))

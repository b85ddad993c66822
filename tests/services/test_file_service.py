"""Tests for the file manager."""

import os
from pathlib import Path

import pytest
from conftest import FakeArchive

from seven_sync.models import MappedDirectory, RootDirectory
from seven_sync.services.file_service import FileManager, read_fingerprint
from seven_sync.services.filename_enumerator import FilenameEnumerator


@pytest.fixture
def database(source_dir: Path, destination_dir: Path) -> MappedDirectory:
    return MappedDirectory.create_root(RootDirectory(source_dir), RootDirectory(destination_dir))


@pytest.fixture
def file_manager(database: MappedDirectory, archive: FakeArchive, console) -> FileManager:
    test_console, _ = console
    return FileManager(database, archive, FilenameEnumerator(), test_console)


def test_read_fingerprint(tmp_path: Path):
    """Test that the fingerprint reflects size and modification time."""
    path = tmp_path / "file.txt"
    path.write_text("hello")
    os.utime(path, ns=(1_000_000_000, 2_000_000_000))

    created, modified, size = read_fingerprint(path)

    assert modified == 2_000_000_000
    assert size == 5
    assert isinstance(created, int)


@pytest.mark.asyncio
async def test_zip_file(file_manager: FileManager, database: MappedDirectory, source_dir: Path, destination_dir: Path, console):
    """Test that a file is zipped under the next enumerated name and registered."""
    _, output = console
    (source_dir / "notes.txt").write_text("hello")

    mapped = await file_manager.zip_file(database, "notes.txt")

    assert mapped is not None
    assert mapped.destination.name == "a.7z"
    assert mapped.size == 5
    assert (destination_dir / "a.7z").is_file()
    assert database.files.by_source_name["notes.txt"] is mapped
    assert database.last == "a"
    assert "+ notes.txt" in output.getvalue()


@pytest.mark.asyncio
async def test_zip_file_failure(file_manager: FileManager, database: MappedDirectory, source_dir: Path, archive: FakeArchive, console):
    """Test that a failed zip leaves the database unchanged."""
    _, output = console
    (source_dir / "notes.txt").write_text("hello")
    archive.fail_zip.add("notes.txt")

    assert await file_manager.zip_file(database, "notes.txt") is None
    assert len(database.files) == 0
    assert database.last == ""
    assert "===> FAILED" in output.getvalue()


@pytest.mark.asyncio
async def test_zip_file_dry_run(database: MappedDirectory, archive: FakeArchive, source_dir: Path, destination_dir: Path, console):
    """Test that a dry run registers the file without writing anything."""
    test_console, _ = console
    (source_dir / "notes.txt").write_text("hello")
    file_manager = FileManager(database, archive, FilenameEnumerator(), test_console, dry_run=True)

    mapped = await file_manager.zip_file(database, "notes.txt")

    assert mapped is not None and mapped.destination.name == "a.7z"
    assert not any(destination_dir.iterdir())
    assert archive.calls == []


@pytest.mark.asyncio
async def test_create_directory(file_manager: FileManager, database: MappedDirectory, source_dir: Path, destination_dir: Path):
    """Test that a directory is created under the next enumerated name."""
    (source_dir / "docs").mkdir()
    (destination_dir / "a").mkdir()

    subdirectory = await file_manager.create_directory(database, "docs")

    assert subdirectory is not None
    assert subdirectory.destination.name == "b"
    assert (destination_dir / "b").is_dir()
    assert subdirectory.parent is database
    assert database.last == "b"


@pytest.mark.asyncio
async def test_create_nested_file(file_manager: FileManager, database: MappedDirectory, source_dir: Path, destination_dir: Path, archive: FakeArchive):
    """Test that files in subdirectories are zipped relative to the source root."""
    (source_dir / "docs").mkdir()
    (source_dir / "docs" / "x.txt").write_text("x")

    subdirectory = await file_manager.create_directory(database, "docs")
    assert subdirectory is not None
    mapped = await file_manager.zip_file(subdirectory, "x.txt")

    assert mapped is not None
    assert (destination_dir / "a" / "a.7z").is_file()
    assert archive.calls == ["zip_file docs/x.txt"]


@pytest.mark.asyncio
async def test_delete_file(file_manager: FileManager, source_dir: Path, destination_dir: Path, console):
    """Test deleting a file that mirrors a source file."""
    _, output = console
    target = destination_dir / "a.7z"
    target.write_text("x")

    assert await file_manager.delete_file(target, source=source_dir / "notes.txt")
    assert not target.exists()
    assert "- notes.txt" in output.getvalue()


@pytest.mark.asyncio
async def test_delete_orphaned_directory(file_manager: FileManager, destination_dir: Path, console, log_messages):
    """Test that orphans are deleted with a warning."""
    _, output = console
    target = destination_dir / "x"
    target.mkdir()
    (target / "y").write_text("y")

    assert await file_manager.delete_directory(target, orphan_display_path="x")
    assert not target.exists()
    assert "- x (orphan)" in output.getvalue()
    assert any(message.startswith("WARNING Deleting orphaned directory") for message in log_messages)


@pytest.mark.asyncio
async def test_delete_dry_run(database: MappedDirectory, archive: FakeArchive, destination_dir: Path, console):
    """Test that a dry run reports success without deleting."""
    test_console, _ = console
    file_manager = FileManager(database, archive, FilenameEnumerator(), test_console, dry_run=True)
    target = destination_dir / "a.7z"
    target.write_text("x")

    assert await file_manager.delete_file(target, orphan_display_path="a.7z")
    assert target.exists()


@pytest.mark.asyncio
async def test_delete_missing_file(file_manager: FileManager, destination_dir: Path, console):
    """Test that a failed deletion is reported."""
    _, output = console

    assert not await file_manager.delete_file(destination_dir / "missing.7z", orphan_display_path="missing.7z")
    assert "===> FAILED" in output.getvalue()


@pytest.mark.asyncio
async def test_delete_index_archive_is_silent(file_manager: FileManager, destination_dir: Path, console):
    """Test that deleting an index archive prints nothing."""
    _, output = console
    target = destination_dir / "___INDEX___2024-01-01-00-00-00-000.7z"
    target.write_text("x")

    assert await file_manager.delete_file(target)
    assert output.getvalue() == ""

"""Tests for the mapping database tree."""

from pathlib import Path

import pytest

from seven_sync.models import File, MappedDirectory, MappedFile, RootDirectory, Subdirectory
from seven_sync.services.exceptions import InternalError


@pytest.fixture
def root() -> MappedDirectory:
    return MappedDirectory.create_root(RootDirectory(Path("/src")), RootDirectory(Path("/dst")))


def make_file(parent: MappedDirectory, source: str, destination: str) -> MappedFile:
    return MappedFile(
        source=File(parent.source, source),
        destination=File(parent.destination, destination),
        created=1,
        modified=2,
        size=3,
    )


def make_directory(parent: MappedDirectory, source: str, destination: str) -> MappedDirectory:
    return MappedDirectory(
        Subdirectory(parent.source, source), Subdirectory(parent.destination, destination), "", parent
    )


def test_paths():
    """Test absolute and relative paths of nested entities."""
    root = RootDirectory(Path("/src"))
    docs = Subdirectory(root, "docs")
    notes = File(Subdirectory(docs, "2024"), "notes.txt")

    assert docs.relative_path == Path("docs")
    assert notes.absolute_path == Path("/src/docs/2024/notes.txt")
    assert notes.relative_path == Path("docs/2024/notes.txt")
    assert root.relative_path == Path("")


def test_add_updates_both_indices(root: MappedDirectory):
    """Test that children are reachable by source and destination name."""
    file = make_file(root, "notes.txt", "a.7z")
    directory = make_directory(root, "docs", "b")
    root.add(file)
    root.add(directory)

    assert root.files.by_source_name["notes.txt"] is file
    assert root.files.by_destination_name["a.7z"] is file
    assert root.subdirectories.by_source_name["docs"] is directory
    assert root.subdirectories.by_destination_name["b"] is directory


def test_indices_are_read_only(root: MappedDirectory):
    """Test that the indices can't be modified directly."""
    with pytest.raises(TypeError):
        root.files.by_source_name["x"] = make_file(root, "x", "y")  # pyright: ignore


def test_add_duplicate_source_name(root: MappedDirectory):
    """Test that adding a second entry with the same source name fails."""
    root.add(make_file(root, "notes.txt", "a.7z"))
    with pytest.raises(InternalError, match="has already been added to the database"):
        root.add(make_file(root, "notes.txt", "b.7z"))
    assert len(root.files) == 1
    assert "b.7z" not in root.files.by_destination_name


def test_add_duplicate_destination_name(root: MappedDirectory):
    """Test that adding a second entry with the same destination name fails."""
    root.add(make_file(root, "notes.txt", "a.7z"))
    with pytest.raises(InternalError):
        root.add(make_file(root, "other.txt", "a.7z"))
    assert "other.txt" not in root.files.by_source_name


def test_delete(root: MappedDirectory):
    """Test that deleting removes the entry from both indices."""
    file = make_file(root, "notes.txt", "a.7z")
    root.add(file)
    root.delete(file)

    assert len(root.files) == 0
    assert "a.7z" not in root.files.by_destination_name


def test_delete_unknown_entry(root: MappedDirectory):
    """Test that deleting an entry that isn't in the database fails."""
    root.add(make_file(root, "notes.txt", "a.7z"))
    with pytest.raises(InternalError, match="Internal error"):
        root.delete(make_file(root, "notes.txt", "a.7z"))


def test_dirty_flag_propagates_to_root(root: MappedDirectory):
    """Test that mutations anywhere in the tree mark the root as dirty."""
    docs = make_directory(root, "docs", "a")
    root.add(docs)
    nested = make_directory(docs, "nested", "a")
    docs.add(nested)
    root.mark_as_saved()
    assert not root.has_unsaved_changes

    nested.last = "b"
    assert root.has_unsaved_changes
    assert nested.has_unsaved_changes


def test_mark_as_saved(root: MappedDirectory):
    """Test the commit bookkeeping."""
    assert root.has_unsaved_changes
    assert not root.was_saved_within_the_last_seconds(60)

    root.mark_as_saved(False)
    assert root.has_unsaved_changes
    assert root.was_saved_within_the_last_seconds(60)

    root.mark_as_saved()
    assert not root.has_unsaved_changes
    assert not root.was_saved_within_the_last_seconds(0)


def test_count_children(root: MappedDirectory):
    """Test recursive counting of files and subdirectories."""
    docs = make_directory(root, "docs", "a")
    root.add(docs)
    root.add(make_file(root, "top.txt", "b.7z"))
    docs.add(make_file(docs, "one.txt", "a.7z"))
    nested = make_directory(docs, "nested", "b")
    docs.add(nested)
    nested.add(make_file(nested, "two.txt", "a.7z"))

    assert root.count_children() == (3, 2)
    assert docs.count_children() == (2, 1)


def test_sorted_is_case_insensitive(root: MappedDirectory):
    """Test that sorted views order entries by lower-cased source name."""
    root.add(make_file(root, "b.txt", "a.7z"))
    root.add(make_file(root, "A.txt", "b.7z"))
    root.add(make_file(root, "c.txt", "c.7z"))

    assert [file.source.name for file in root.files.sorted()] == ["A.txt", "b.txt", "c.txt"]


def test_subdirectory_must_belong_to_parent(root: MappedDirectory):
    """Test that a subdirectory can only be added to its own parent."""
    docs = make_directory(root, "docs", "a")
    root.add(docs)
    stray = make_directory(root, "stray", "b")
    with pytest.raises(InternalError):
        docs.add(stray)

"""In-memory mapping database: which source entry lives under which destination name."""

import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Generic, List, Mapping, Optional, Tuple, TypeVar, Union

from seven_sync.models.paths import File, RootDirectory, Subdirectory
from seven_sync.services.exceptions import InternalError


@dataclass
class MappedFile:
    """A file mirrored into an encrypted archive, with the fingerprint taken at sync time."""

    source: File
    destination: File
    created: int
    modified: int
    size: int

    def has_fingerprint(self, created: int, modified: int, size: int) -> bool:
        return (self.created, self.modified, self.size) == (created, modified, size)


T = TypeVar("T", MappedFile, "MappedDirectory")


class MappedIndex(Generic[T]):
    """
    Two indices over the same set of children: by source name and by destination name.

    Mutation only happens through the owning MappedDirectory so that both
    indices always hold the same entries.
    """

    def __init__(self, label: str):
        self._label = label
        self._by_source_name: Dict[str, T] = {}
        self._by_destination_name: Dict[str, T] = {}
        self.by_source_name: Mapping[str, T] = MappingProxyType(self._by_source_name)
        self.by_destination_name: Mapping[str, T] = MappingProxyType(self._by_destination_name)

    def __len__(self) -> int:
        return len(self._by_source_name)

    def __iter__(self):
        return iter(list(self._by_source_name.values()))

    def _add(self, entry: T) -> None:
        source_name = entry.source.name
        destination_name = entry.destination.name
        if source_name in self._by_source_name:
            raise InternalError(
                f"{self._label} {entry.source.absolute_path} has already been added to the database"
            )
        if destination_name in self._by_destination_name:
            raise InternalError(
                f"{self._label} {entry.destination.absolute_path} has already been added to the database"
            )
        self._by_source_name[source_name] = entry
        self._by_destination_name[destination_name] = entry

    def _delete(self, entry: T) -> None:
        by_source = self._by_source_name.get(entry.source.name)
        by_destination = self._by_destination_name.get(entry.destination.name)
        if by_source is not entry:
            raise InternalError(
                f"{self._label} {entry.source.absolute_path} can't be deleted because it's not in the database"
            )
        if by_destination is not entry:
            raise InternalError(
                f"{self._label} {entry.destination.absolute_path} can't be deleted because it's not in the database"
            )
        del self._by_source_name[entry.source.name]
        del self._by_destination_name[entry.destination.name]

    def sorted(self) -> List[T]:
        return sorted(self._by_source_name.values(), key=lambda entry: entry.source.name.lower())


class MappedDirectory:
    """
    A directory node of the mapping database.

    The root has no parent and carries the dirty flag and the time of the last
    commit; subdirectories forward mutation notifications to their parent.
    """

    def __init__(
        self,
        source: Union[RootDirectory, Subdirectory],
        destination: Union[RootDirectory, Subdirectory],
        last: str = "",
        parent: Optional["MappedDirectory"] = None,
    ):
        self.parent = parent
        self.source = source
        self.destination = destination
        self.files: MappedIndex[MappedFile] = MappedIndex("File")
        self.subdirectories: MappedIndex["MappedDirectory"] = MappedIndex("Subdirectory")
        self._last = last
        self._has_unsaved_changes = True
        self._last_saved_at: Optional[float] = None

    @classmethod
    def create_root(cls, source: RootDirectory, destination: RootDirectory, last: str = ""):
        return cls(source, destination, last)

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def root(self) -> "MappedDirectory":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def last(self) -> str:
        return self._last

    @last.setter
    def last(self, value: str) -> None:
        self._last = value
        self.mark_dirty()

    def mark_dirty(self) -> None:
        self.root._has_unsaved_changes = True

    @property
    def has_unsaved_changes(self) -> bool:
        return self.root._has_unsaved_changes

    @property
    def last_saved_at(self) -> Optional[float]:
        return self.root._last_saved_at

    def mark_as_saved(self, saved: bool = True) -> None:
        root = self.root
        root._last_saved_at = time.monotonic()
        root._has_unsaved_changes = not saved

    def was_saved_within_the_last_seconds(self, seconds: float) -> bool:
        last_saved_at = self.last_saved_at
        return last_saved_at is not None and time.monotonic() - last_saved_at < seconds

    def add(self, entry: Union[MappedFile, "MappedDirectory"]) -> None:
        if isinstance(entry, MappedFile):
            self.files._add(entry)
        else:
            if entry.parent is not self:
                raise InternalError(
                    f"Subdirectory {entry.source.absolute_path} belongs to a different parent"
                )
            self.subdirectories._add(entry)
        self.mark_dirty()

    def delete(self, entry: Union[MappedFile, "MappedDirectory"]) -> None:
        if isinstance(entry, MappedFile):
            self.files._delete(entry)
        else:
            self.subdirectories._delete(entry)
        self.mark_dirty()

    def count_children(self) -> Tuple[int, int]:
        """Count all files and subdirectories below this node (recursively)."""
        files = len(self.files)
        subdirectories = len(self.subdirectories)
        for subdirectory in self.subdirectories:
            child_files, child_subdirectories = subdirectory.count_children()
            files += child_files
            subdirectories += child_subdirectories
        return files, subdirectories

    def __repr__(self) -> str:
        return f"MappedDirectory(source={self.source.absolute_path}, destination={self.destination.absolute_path})"


MappedEntry = Union[MappedFile, MappedDirectory]

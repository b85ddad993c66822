"""Path entities for the source and destination trees."""

from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Union


@dataclass(frozen=True, eq=False)
class RootDirectory:
    """The root of a source or destination tree."""

    path: Path

    @property
    def absolute_path(self) -> Path:
        return self.path

    @property
    def relative_path(self) -> Path:
        return Path("")


@dataclass(frozen=True, eq=False)
class _ChildPath:
    parent: Union["RootDirectory", "Subdirectory"]
    name: str

    @cached_property
    def absolute_path(self) -> Path:
        return self.parent.absolute_path / self.name

    @cached_property
    def relative_path(self) -> Path:
        if isinstance(self.parent, RootDirectory):
            return Path(self.name)
        return self.parent.relative_path / self.name


class Subdirectory(_ChildPath):
    """A directory below a root directory."""


class File(_ChildPath):
    """A file inside a root directory or a subdirectory."""


DirectoryPath = Union[RootDirectory, Subdirectory]

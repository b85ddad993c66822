"""Models package for seven-sync."""

from seven_sync.models.mapping import MappedDirectory, MappedEntry, MappedFile, MappedIndex
from seven_sync.models.paths import DirectoryPath, File, RootDirectory, Subdirectory

__all__ = [
    "DirectoryPath",
    "File",
    "MappedDirectory",
    "MappedEntry",
    "MappedFile",
    "MappedIndex",
    "RootDirectory",
    "Subdirectory",
]

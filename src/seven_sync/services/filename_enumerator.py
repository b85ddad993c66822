"""Generate short, obfuscated file names in a fixed alphabet."""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from loguru import logger

from seven_sync.services.exceptions import InternalError
from seven_sync.services.metadata_manager import is_metadata_archive_name

DEFAULT_LETTERS = "abcdefghijkmnpqrstuvwxyz123456789"
ARCHIVE_SUFFIX = ".7z"


@dataclass(frozen=True)
class NextFilename:
    enumerated_name: str
    filename: str
    path: Path


class FilenameEnumerator:
    """
    Bijective counter over an alphabet: a, b, ..., 9, aa, ab, ...

    Names are never reused within a directory because each directory keeps the
    last issued name and every new name is derived from it.
    """

    def __init__(self, letters: str = DEFAULT_LETTERS):
        unique = []
        for letter in letters:
            if not letter.isspace() and letter not in unique:
                unique.append(letter)
        if not unique:
            raise InternalError("The list of letters for filename enumeration must not be empty")
        self.letters = "".join(unique)
        self._index = {letter: index for index, letter in enumerate(self.letters)}

    def get_next_available_filename(
        self, directory: Path, last: str, prefix: str = "", suffix: str = ""
    ) -> NextFilename:
        """Find the next enumerated name that's neither on disk nor reserved for index archives."""
        enumerated_name = last
        while True:
            enumerated_name = self.calculate_next(enumerated_name)
            filename = f"{prefix}{enumerated_name}{suffix}"
            path = directory / filename
            if not path.exists() and not path.is_symlink() and not is_metadata_archive_name(filename):
                return NextFilename(enumerated_name, filename, path)
            logger.warning(f"The next filename is already occupied: {directory} => {filename}")

    def calculate_next(self, last: str) -> str:
        if not last:
            return self.letters[0]
        positions = [self._position(letter) for letter in last]
        index = len(positions) - 1
        while 0 <= index:
            positions[index] += 1
            if positions[index] < len(self.letters):
                return "".join(self.letters[position] for position in positions)
            positions[index] = 0
            index -= 1
        return self.letters[0] + "".join(self.letters[position] for position in positions)

    def is_enumerated_name(self, name: str) -> bool:
        return bool(name) and all(letter in self._index for letter in name)

    def compare(self, first: str, second: str) -> int:
        """Order names the way they are issued (shorter names come first)."""
        if len(first) != len(second):
            return -1 if len(first) < len(second) else 1
        for a, b in zip(first, second):
            if a != b:
                return -1 if self._position(a) < self._position(b) else 1
        return 0

    def recalculate_last_filename(self, last: str, filenames: Iterable[str]) -> str:
        """Return the highest enumerated name among last and the given file names."""
        result = last
        for filename in filenames:
            name = filename[: -len(ARCHIVE_SUFFIX)] if filename.endswith(ARCHIVE_SUFFIX) else filename
            if self.is_enumerated_name(name) and (
                not self.is_enumerated_name(result) or self.compare(result, name) < 0
            ):
                result = name
        return result

    def _position(self, letter: str) -> int:
        try:
            return self._index[letter]
        except KeyError:
            raise InternalError(
                f'Can\'t enumerate from "{letter}" because it\'s not in the alphabet "{self.letters}"'
            )

"""Human readable companions of the database: file listing and restore instructions."""

from typing import List, Union

from seven_sync.models.mapping import MappedDirectory, MappedFile

LISTING_FILENAME = "7-sync-file-index.txt"

README_ARCHIVE_PLACEHOLDER = "{index_archive}"

README_TEMPLATE = """\
-------------------------------------------------------------------------------
seven-sync restore instructions
-------------------------------------------------------------------------------

Every file of this backup is stored in its own encrypted 7-Zip archive. File
and directory names have been replaced with short generated names. The mapping
between original and generated names is recorded in {listing}, which is
stored in the same archive as this file ({index_archive}).

To restore some or all files:

1. If the backup is stored in the cloud, download it first. To restore only
   selected files, look them up in {listing} and download just those archives
   (and the directories containing them).

2. Put everything that should be restored into one folder.

3. Open the folder in the 7-Zip file manager.

4. Enable "Flat View" in the "View" menu so that the files of all
   subdirectories are shown in one list.

5. Select all files (but no directories).

6. Click "Extract" and configure the extraction:

   - Set "Extract to" to the target directory (without a trailing "*") and
     untick the checkbox below it, so that 7-Zip does not create a separate
     folder per archive.
   - Set "Path mode" to "Full pathnames".
   - Tick "Eliminate duplication of root folder".
   - Enter the password.

7. Click "OK". With the correct password, 7-Zip restores all selected files.
"""


def create_readme(index_archive: str) -> str:
    return README_TEMPLATE.replace("{listing}", LISTING_FILENAME).replace(
        README_ARCHIVE_PLACEHOLDER, index_archive
    )


def create_file_listing(root: MappedDirectory) -> str:
    """List every mirrored entry as 'source path => destination path', one per line."""
    lines: List[str] = []
    _recurse_into(root, lines)
    return "\n".join(lines) + "\n"


def _recurse_into(directory: MappedDirectory, lines: List[str]) -> None:
    if not directory.is_root:
        _add_line(directory, lines)
    for subdirectory in directory.subdirectories.sorted():
        _recurse_into(subdirectory, lines)
    for file in directory.files.sorted():
        _add_line(file, lines)


def _add_line(entry: Union[MappedDirectory, MappedFile], lines: List[str]) -> None:
    lines.append(f"{entry.source.relative_path.as_posix()} => {entry.destination.relative_path.as_posix()}")

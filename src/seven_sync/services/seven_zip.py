"""Archive backend: 7-Zip invoked as a subprocess."""

import asyncio
import shutil
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Protocol, Union

from loguru import logger

from seven_sync.services.exceptions import FriendlyError
from seven_sync.utils import first_line_only

DEFAULT_EXECUTABLE = "7z"


@dataclass
class ArchiveResult:
    """Outcome of a single 7-Zip invocation.

    Attributes:
        success: True if the process exited with code 0 (and the archive was verified)
        error_message: Short description of the failure, empty on success
        console_output: Combined, trimmed stdout and stderr for diagnostics
        stdout: Raw standard output (the extracted content for unzip operations)
        command: The command line with the password masked
        exit_code: Process exit code, None if the process could not be started
    """

    success: bool
    error_message: str = ""
    console_output: str = ""
    stdout: str = ""
    command: str = ""
    exit_code: Optional[int] = None


class ArchiveBackend(Protocol):
    """Operations the synchronization engine needs from an archiver."""

    def clone_with_different_password(self, password: str) -> "ArchiveBackend": ...

    async def zip_file(
        self, working_directory: Path, relative_source: Union[str, Path], archive: Path
    ) -> ArchiveResult: ...

    async def zip_string(self, content: str, name_in_archive: str, archive: Path) -> ArchiveResult: ...

    async def unzip_to_stdout(self, archive: Path, name_in_archive: str) -> ArchiveResult: ...

    async def list_to_stdout(self, archive: Path) -> ArchiveResult: ...


class SevenZip:
    """Compress, encrypt, list and extract single files with the 7-Zip command line tool."""

    def __init__(self, password: str, executable: str = DEFAULT_EXECUTABLE):
        if not password:
            raise FriendlyError("The password must not be empty")
        self.password = password
        self.executable = executable

    def clone_with_different_password(self, password: str) -> "SevenZip":
        return SevenZip(password, self.executable)

    async def zip_file(
        self, working_directory: Path, relative_source: Union[str, Path], archive: Path
    ) -> ArchiveResult:
        result = await self._run(
            [*self._zip_parameters(), "--", str(archive), str(relative_source)],
            working_directory=working_directory,
        )
        return await self._verify_zip_result(archive, result)

    async def zip_string(self, content: str, name_in_archive: str, archive: Path) -> ArchiveResult:
        result = await self._run(
            [*self._zip_parameters(), f"-si{name_in_archive}", "--", str(archive)], stdin=content
        )
        return await self._verify_zip_result(archive, result)

    async def unzip_to_stdout(self, archive: Path, name_in_archive: str) -> ArchiveResult:
        return await self._run(
            ["e", *self._shared_parameters(), "-so", "--", str(archive), name_in_archive]
        )

    async def list_to_stdout(self, archive: Path) -> ArchiveResult:
        return await self._run(["l", *self._shared_parameters(), "--", str(archive)])

    async def _verify_zip_result(self, archive: Path, result: ArchiveResult) -> ArchiveResult:
        if not result.success:
            return result
        if not archive.is_file():
            return replace(
                result,
                success=False,
                error_message=f"7-Zip returned no error but {archive} was not created either",
            )
        listing = await self.list_to_stdout(archive)
        if not listing.success:
            return replace(
                result,
                success=False,
                error_message=f"The zip file was created but listing its contents failed - {listing.error_message}",
                console_output="\n".join(
                    [
                        "=" * 32 + "[ zip command ]" + "=" * 32,
                        result.console_output,
                        "=" * 32 + "[ list command ]" + "=" * 32,
                        listing.console_output,
                    ]
                ),
            )
        return result

    def _zip_parameters(self) -> List[str]:
        return ["a", "-mx=9", "-mhc=on", "-mhe=on", *self._shared_parameters()]

    def _shared_parameters(self) -> List[str]:
        return ["-t7z", "-y", f"-p{self.password}"]

    def _format_command(self, parameters: List[str], stdin: Optional[str]) -> str:
        masked = ["-p***" if parameter == f"-p{self.password}" else parameter for parameter in parameters]
        quoted = [f'"{part}"' if " " in part else part for part in [self.executable, *masked]]
        command = " ".join(quoted)
        if stdin is not None:
            preview = stdin.strip().splitlines()[0] if stdin.strip() else ""
            if len(preview) > 30:
                preview = preview[:30] + "..."
            command = f'echo "{preview}" | {command}'
        return command

    async def _run(
        self,
        parameters: List[str],
        working_directory: Optional[Path] = None,
        stdin: Optional[str] = None,
    ) -> ArchiveResult:
        command = self._format_command(parameters, stdin)
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *parameters,
                cwd=str(working_directory) if working_directory else None,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await process.communicate(
                stdin.encode("utf-8") if stdin is not None else None
            )
        except OSError as e:
            return ArchiveResult(success=False, error_message=first_line_only(e), command=command)

        stdout_text = stdout.decode("utf-8", errors="replace")
        stderr_text = stderr.decode("utf-8", errors="replace")
        exit_code = process.returncode
        return ArchiveResult(
            success=exit_code == 0,
            error_message="" if exit_code == 0 else f"Exit code {exit_code}",
            console_output="\n".join([stdout_text.strip(), stderr_text.strip()]).strip(),
            stdout=stdout_text,
            command=command,
            exit_code=exit_code,
        )

    async def run_self_test(self) -> None:
        """
        Verify that the 7-Zip executable works as expected.

        Raises:
            FriendlyError: If any of the checks fails
        """
        logger.info("Verifying that 7-Zip is working correctly")
        directory = Path(tempfile.mkdtemp(prefix="7-sync-self-test-"))
        try:
            correct = self.clone_with_different_password("correct-password")
            invalid = self.clone_with_different_password("invalid-password")
            await correct._run_all_self_tests(directory, invalid)
        except FriendlyError as e:
            raise FriendlyError(f"7-Zip is not working correctly: {e.message} (see log file for details)")
        finally:
            shutil.rmtree(directory, ignore_errors=True)
        logger.debug("All 7-Zip tests have passed")

    async def _run_all_self_tests(self, directory: Path, wrong_password: "SevenZip") -> None:
        filename = "data.txt"
        content = "Test data"
        archive = directory / "archive.7z"
        try:
            (directory / filename).write_text(content, encoding="utf-8")
        except OSError as e:
            raise FriendlyError(f"Failed to create the test file {directory / filename} - {e}")

        result = await self._run([])
        if not result.success:
            self._log_execution(result)
            raise FriendlyError(f"The program can't be started - {result.error_message}")

        result = await self._run(["--invalid-option", "non-existent-file"])
        if result.success:
            self._log_execution(result)
            raise FriendlyError("Passing invalid parameters does not cause an error")

        result = await self.zip_file(directory, filename, archive)
        if not result.success:
            self._log_execution(result)
            raise FriendlyError("Failed to add a file to a zip archive")
        await self._expect_content(archive, filename, content)

        result = await self.zip_string(content, "In-memory data", archive)
        if not result.success:
            self._log_execution(result)
            raise FriendlyError("Failed to add string content to a zip archive")
        await self._expect_content(archive, "In-memory data", content)

        result = await self.zip_file(directory, "non-existent-file", archive)
        if result.success:
            self._log_execution(result)
            raise FriendlyError("Zipping a non-existent file does not cause an error")

        result = await wrong_password.unzip_to_stdout(archive, filename)
        if result.success or result.stdout == content:
            self._log_execution(result)
            raise FriendlyError("Unzipping with a wrong password does not cause an error")

        result = await self.list_to_stdout(archive)
        if not result.success:
            self._log_execution(result)
            raise FriendlyError("Listing the contents of a zip archive failed")

        result = await wrong_password.list_to_stdout(archive)
        if result.success:
            self._log_execution(result)
            raise FriendlyError("Listing archive contents with a wrong password does not cause an error")

    async def _expect_content(self, archive: Path, name_in_archive: str, content: str) -> None:
        result = await self.unzip_to_stdout(archive, name_in_archive)
        if not result.success:
            self._log_execution(result)
            raise FriendlyError("Failed to extract a file from a zip archive")
        if result.stdout != content:
            self._log_execution(result)
            logger.error(f'Expected "{content}" as unzipped content but received "{result.stdout}"')
            raise FriendlyError("Unzipping file content returns invalid data")

    @staticmethod
    def _log_execution(result: ArchiveResult) -> None:
        logger.error(f"Running command: {result.command}")
        logger.error(result.console_output or "The command did not produce any console output")
        if result.error_message:
            logger.error(result.error_message)

"""Platform-specific lookup and termination commands."""

import shlex
import subprocess
import sys
from abc import ABC, abstractmethod

from portcleaner.models import ProcessRecord


def is_valid_pid(pid: str | None) -> bool:
    """Check that ``pid`` is a non-empty numeric token."""
    return bool(pid) and pid.isascii() and pid.isdigit()


def _column(parts: list[str], index: int) -> str | None:
    """Return column ``index`` or None when the row is too short."""
    return parts[index] if len(parts) > index else None


def parse_lsof_output(output: str) -> list[ProcessRecord]:
    """
    Parse ``lsof -i :PORT -P -n -T`` output.

    Columns: COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME.
    The header row and rows without a numeric PID are skipped; missing
    trailing columns leave the matching fields as None.
    """
    records: list[ProcessRecord] = []
    for line in output.splitlines():
        parts = line.split()
        if not parts or parts[0] == "COMMAND":
            continue
        pid = _column(parts, 1)
        if not is_valid_pid(pid):
            continue
        records.append(
            ProcessRecord(
                pid=pid,
                name=parts[0],
                user=_column(parts, 2),
                protocol=_column(parts, 7),
            )
        )
    return records


def parse_netstat_output(output: str, port: int) -> list[ProcessRecord]:
    """
    Parse ``netstat -ano`` output, keeping listeners on ``port``.

    Columns: Proto LocalAddress ForeignAddress State PID.
    """
    records: list[ProcessRecord] = []
    suffix = f":{port}"
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 4 or parts[3] != "LISTENING":
            continue
        if not parts[1].endswith(suffix):
            continue
        pid = _column(parts, 4)
        if not is_valid_pid(pid):
            continue
        records.append(ProcessRecord(pid=pid, protocol=parts[0]))
    return records


class PlatformCommands(ABC):
    """Lookup and termination strategy for one family of operating systems."""

    name: str = ""

    @abstractmethod
    def lookup_command(self, port: int) -> list[str]:
        """Command listing the processes bound to ``port``."""

    @abstractmethod
    def parse_lookup_output(self, output: str, port: int) -> list[ProcessRecord]:
        """Turn the lookup command's stdout into process records."""

    @abstractmethod
    def termination_command(self, pid: str) -> list[str]:
        """Command forcefully terminating ``pid``."""

    def is_empty_result(self, result: subprocess.CompletedProcess) -> bool:
        """Check whether a non-zero exit just means nothing was found."""
        return False

    def manual_termination_hint(self, pid: str) -> str:
        """Shell command an operator can run to terminate ``pid`` by hand."""
        return shlex.join(self.termination_command(pid))


class PosixCommands(PlatformCommands):
    """Linux, macOS and other POSIX systems: ``lsof`` and ``kill -9``."""

    name = "posix"

    def lookup_command(self, port: int) -> list[str]:
        return ["lsof", "-i", f":{port}", "-P", "-n", "-T"]

    def parse_lookup_output(self, output: str, port: int) -> list[ProcessRecord]:
        return parse_lsof_output(output)

    def termination_command(self, pid: str) -> list[str]:
        return ["kill", "-9", pid]

    def is_empty_result(self, result: subprocess.CompletedProcess) -> bool:
        # lsof exits 1 with no rows when nothing matches, possibly with warnings
        if result.returncode != 1 or (result.stdout or "").strip():
            return False
        stderr_lines = [line for line in (result.stderr or "").splitlines() if line.strip()]
        return all("WARNING" in line for line in stderr_lines)


class WindowsCommands(PlatformCommands):
    """Windows: ``netstat -ano`` and ``taskkill /F /T``."""

    name = "windows"

    def lookup_command(self, port: int) -> list[str]:
        return ["netstat", "-ano"]

    def parse_lookup_output(self, output: str, port: int) -> list[ProcessRecord]:
        return parse_netstat_output(output, port)

    def termination_command(self, pid: str) -> list[str]:
        return ["taskkill", "/F", "/PID", pid, "/T"]

    def manual_termination_hint(self, pid: str) -> str:
        return subprocess.list2cmdline(self.termination_command(pid))


def detect_platform(platform_key: str | None = None) -> PlatformCommands:
    """Select the command set for ``platform_key`` (defaults to ``sys.platform``)."""
    key = platform_key or sys.platform
    if key == "win32":
        return WindowsCommands()
    return PosixCommands()

"""Port occupant lookup and termination engine for portcleaner."""

import asyncio
import dataclasses
import logging
import subprocess
from collections.abc import Iterable

import psutil

from portcleaner.errors import LookupFailure, TerminationFailure
from portcleaner.formatting import (
    format_not_occupied,
    format_outcome,
    format_protected_warning,
    format_scan,
)
from portcleaner.models import ProcessRecord, SystemPortStatus, TerminationOutcome, ToolResponse
from portcleaner.platforms import PlatformCommands, detect_platform, is_valid_pid
from portcleaner.ports import DEFAULT_PROTECTED_PORTS, PortClassifier, ProtectedPorts, validate_port

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 10.0
MIN_COMMAND_TIMEOUT = 0.1


class PortProcessManager:
    """
    Finds the processes bound to a port and terminates them.

    Lookups shell out to the platform's socket lister and run synchronously.
    Terminations run concurrently, one external command per pid, and are
    joined before the outcome is reported.
    """

    def __init__(
        self,
        commands: PlatformCommands | None = None,
        protected_ports: ProtectedPorts = DEFAULT_PROTECTED_PORTS,
        platform_key: str | None = None,
        command_timeout: float | None = DEFAULT_COMMAND_TIMEOUT,
        resolve_names: bool = True,
    ) -> None:
        """
        Initialize the PortProcessManager.

        Args:
            commands: Platform command set. Detected from the running system by default.
            protected_ports: Table of ports that are never cleaned automatically.
            platform_key: ``sys.platform`` style key for the protected port table.
            command_timeout: Limit for each external command (seconds). None disables it.
            resolve_names: Fill in missing process names and users with psutil.
        """
        self._commands = commands or detect_platform(platform_key)
        self._classifier = PortClassifier(protected_ports, platform_key)
        self._command_timeout: float | None = None
        self.command_timeout = command_timeout
        self._resolve_names = resolve_names

    @property
    def commands(self) -> PlatformCommands:
        """Get the platform command set."""
        return self._commands

    @property
    def classifier(self) -> PortClassifier:
        """Get the port classifier."""
        return self._classifier

    @property
    def command_timeout(self) -> float | None:
        """Get the per-command timeout."""
        return self._command_timeout

    @command_timeout.setter
    def command_timeout(self, value: float | None) -> None:
        """Set the per-command timeout."""
        self._command_timeout = None if value is None else max(MIN_COMMAND_TIMEOUT, value)

    def lookup(self, port: int) -> list[ProcessRecord]:
        """
        List the processes bound to ``port``.

        Returns an empty list when nothing is bound to the port.

        Raises:
            ValidationError: If ``port`` is out of range.
            LookupFailure: If the lookup command cannot run or fails abnormally.
        """
        port = validate_port(port)
        command = self._commands.lookup_command(port)
        logger.debug("Looking up port %d with %s", port, command)

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self._command_timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise LookupFailure(f"{command[0]} is not available: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise LookupFailure(f"{command[0]} timed out after {e.timeout}s") from e
        except OSError as e:
            raise LookupFailure(f"{command[0]} could not be started: {e}") from e

        if result.returncode != 0:
            if self._commands.is_empty_result(result):
                return []
            diagnostic = (result.stderr or "").strip() or f"{command[0]} exited with status {result.returncode}"
            raise LookupFailure(diagnostic)

        records = self._commands.parse_lookup_output(result.stdout, port)
        if self._resolve_names:
            records = [self._enrich(record) for record in records]
        return records

    def _enrich(self, record: ProcessRecord) -> ProcessRecord:
        """
        Fill in a missing name or user from the live process table.

        Processes that exited, are zombies, or are not readable keep the
        record as reported.
        """
        if record.name and record.user:
            return record
        try:
            proc = psutil.Process(int(record.pid))
            with proc.oneshot():
                name = record.name or proc.name() or None
                user = record.user or proc.username() or None
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return record
        return dataclasses.replace(record, name=name, user=user)

    def classify(self, port: int) -> SystemPortStatus:
        """
        Classify ``port`` as protected or not.

        Protected ports carry their current occupants. That lookup is best
        effort: a failure yields no occupants instead of an error.
        """
        port = validate_port(port)
        if not self._classifier.is_protected(port):
            return SystemPortStatus(port=port, is_protected=False)

        try:
            occupants = tuple(self.lookup(port))
        except LookupFailure as e:
            logger.warning("Could not list occupants of protected port %d: %s", port, e.diagnostic)
            occupants = ()
        return SystemPortStatus(port=port, is_protected=True, occupants=occupants)

    async def terminate(self, pids: Iterable[str]) -> TerminationOutcome:
        """
        Forcefully terminate every pid in ``pids``.

        Each attempt is independent; a failure never skips the others. The
        outcome is built once every attempt has finished.
        """
        unique_pids = list(dict.fromkeys(pids))
        results = await asyncio.gather(*(self._attempt(pid) for pid in unique_pids))
        outcome = TerminationOutcome.from_results(zip(unique_pids, results))
        logger.info(
            "Termination finished: killed=%s failed=%s",
            sorted(outcome.killed),
            sorted(outcome.failed),
        )
        return outcome

    async def _attempt(self, pid: str) -> bool:
        """Run one termination attempt, reporting failure as False."""
        try:
            await self._kill(pid)
        except TerminationFailure as e:
            logger.warning("%s", e)
            return False
        return True

    async def _kill(self, pid: str) -> None:
        """
        Run the platform's forceful termination command for ``pid``.

        Raises:
            TerminationFailure: If the pid is invalid, the command cannot be
                started, times out, or exits with a non-zero status.
        """
        if not is_valid_pid(pid):
            raise TerminationFailure(pid, "not a valid pid")

        command = self._commands.termination_command(pid)
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TerminationFailure(pid, f"{command[0]} could not be started: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._command_timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise TerminationFailure(pid, f"{command[0]} timed out") from e

        if proc.returncode != 0:
            reason = (stderr or b"").decode(errors="replace").strip()
            raise TerminationFailure(pid, reason or f"{command[0]} exited with status {proc.returncode}")

    def scan_port(self, port: int) -> ToolResponse:
        """Report the occupants of ``port`` without terminating anything."""
        try:
            records = self.lookup(port)
        except LookupFailure as e:
            logger.error("Port scan failed for %d: %s", port, e.diagnostic)
            return ToolResponse.error(f"scan failed: {e.diagnostic}")
        return format_scan(port, records)

    async def clean_port(self, port: int) -> ToolResponse:
        """
        Free ``port`` by terminating its occupants.

        Protected ports are never cleaned; a warning with the manual commands
        is returned instead.
        """
        logger.info("Cleaning port %d", port)
        status = self.classify(port)
        if status.is_protected:
            logger.warning("Port %d is protected, not terminating %d occupant(s)", port, len(status.occupants))
            return format_protected_warning(port, status.occupants, self._commands.manual_termination_hint)

        try:
            records = self.lookup(port)
        except LookupFailure as e:
            logger.error("Port cleanup failed for %d: %s", port, e.diagnostic)
            return ToolResponse.error(f"cleanup failed: {e.diagnostic}")

        if not records:
            return format_not_occupied(port)

        logger.info("Found %d occupant(s) on port %d", len(records), port)
        outcome = await self.terminate(record.pid for record in records)
        return format_outcome(port, outcome)

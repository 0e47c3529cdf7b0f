"""Data models for portcleaner."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """One process found occupying a port."""

    pid: str  # Kept as text, as reported by the lookup tool
    name: str | None = None
    user: str | None = None
    protocol: str | None = None  # 'TCP', 'UDP', ...


@dataclass(slots=True, frozen=True)
class SystemPortStatus:
    """Classification of a single port number."""

    port: int
    is_protected: bool
    occupants: tuple[ProcessRecord, ...] = ()


@dataclass(slots=True, frozen=True)
class TerminationOutcome:
    """
    Result of a batch termination attempt.

    ``killed`` and ``failed`` are disjoint and together hold every requested pid.
    """

    killed: frozenset[str] = frozenset()
    failed: frozenset[str] = frozenset()

    @classmethod
    def from_results(cls, results: Iterable[tuple[str, bool]]) -> "TerminationOutcome":
        """Build an outcome from ``(pid, succeeded)`` pairs."""
        killed: set[str] = set()
        failed: set[str] = set()
        for pid, succeeded in results:
            (killed if succeeded else failed).add(pid)
        # Direct callers may report a pid twice; success wins so the sets stay disjoint
        return cls(killed=frozenset(killed), failed=frozenset(failed - killed))

    @property
    def requested(self) -> frozenset[str]:
        """All pids the batch was asked to terminate."""
        return self.killed | self.failed

    @property
    def all_failed(self) -> bool:
        """True when at least one pid was attempted and none was killed."""
        return bool(self.failed) and not self.killed


@dataclass(slots=True, frozen=True)
class ToolResponse:
    """Text response returned to a tool caller."""

    texts: tuple[str, ...] = field(default_factory=tuple)
    is_error: bool = False

    @classmethod
    def text(cls, message: str, is_error: bool = False) -> "ToolResponse":
        """Build a single-segment response."""
        return cls(texts=(message,), is_error=is_error)

    @classmethod
    def error(cls, message: str) -> "ToolResponse":
        """Build a single-segment error response."""
        return cls(texts=(message,), is_error=True)

    @property
    def message(self) -> str:
        """All text segments joined by newlines."""
        return "\n".join(self.texts)

    def to_dict(self) -> dict[str, Any]:
        """Render in the tool-call wire shape."""
        return {
            "content": [{"type": "text", "text": text} for text in self.texts],
            "isError": self.is_error,
        }

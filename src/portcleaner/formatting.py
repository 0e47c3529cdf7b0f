"""Human-readable rendering of lookup and cleanup results."""

from collections.abc import Callable, Iterable

from portcleaner.models import ProcessRecord, TerminationOutcome, ToolResponse

NONE_LABEL = "none"


def _pid_sort_key(pid: str) -> tuple[int, str]:
    return (int(pid), pid) if pid.isdigit() else (-1, pid)


def sorted_pids(pids: Iterable[str]) -> list[str]:
    """Sort pids numerically for stable output."""
    return sorted(pids, key=_pid_sort_key)


def format_occupant(record: ProcessRecord) -> str:
    """Format one occupant as a single line."""
    return (
        f"PID: {record.pid}, "
        f"name: {record.name or NONE_LABEL}, "
        f"user: {record.user or NONE_LABEL}, "
        f"protocol: {record.protocol or NONE_LABEL}"
    )


def format_not_occupied(port: int) -> ToolResponse:
    """Response for a port nothing is bound to."""
    return ToolResponse.text(f"port {port} not occupied")


def format_scan(port: int, records: list[ProcessRecord]) -> ToolResponse:
    """Format the occupants of ``port`` for the scan tool."""
    if not records:
        return format_not_occupied(port)
    lines = [f"port {port} usage:"]
    lines.extend(format_occupant(record) for record in records)
    return ToolResponse.text("\n".join(lines))


def format_protected_warning(
    port: int,
    records: Iterable[ProcessRecord],
    manual_hint: Callable[[str], str],
) -> ToolResponse:
    """
    Format the warning returned instead of cleaning a protected port.

    Lists the current occupants and the command needed to terminate each one
    by hand. Never an error: the caller decides whether to go ahead.
    """
    records = list(records)
    lines = [
        f"warning: port {port} is a protected system port; "
        "terminating its occupants may interrupt system services",
    ]
    if records:
        lines.append("current occupants:")
        lines.extend(format_occupant(record) for record in records)
        lines.append("to terminate them, run manually:")
        pids = dict.fromkeys(record.pid for record in records)
        lines.extend(manual_hint(pid) for pid in pids)
    else:
        lines.append("no occupants found")
    return ToolResponse.text("\n".join(lines))


def format_outcome(port: int, outcome: TerminationOutcome) -> ToolResponse:
    """
    Summarize a termination batch.

    Partial success is still success: the response is an error only when every
    requested pid failed.
    """
    texts: list[str] = []
    if outcome.killed:
        texts.append(f"terminated processes on port {port}: {', '.join(sorted_pids(outcome.killed))}")
    if outcome.failed:
        texts.append(f"failed to terminate processes on port {port}: {', '.join(sorted_pids(outcome.failed))}")
    if not texts:
        texts.append(f"port {port} not occupied")
    return ToolResponse(texts=tuple(texts), is_error=outcome.all_failed)

"""Exceptions raised by portcleaner."""


class PortCleanerError(Exception):
    """Base class for all portcleaner errors."""


class ValidationError(PortCleanerError, ValueError):
    """A port argument is not an integer in [1, 65535]."""


class LookupFailure(PortCleanerError):
    """The port inspection command could not be run or exited abnormally."""

    def __init__(self, diagnostic: str) -> None:
        super().__init__(diagnostic)
        self.diagnostic = diagnostic


class TerminationFailure(PortCleanerError):
    """A single pid could not be terminated. Collected per batch, not raised out of it."""

    def __init__(self, pid: str, reason: str = "") -> None:
        super().__init__(f"failed to terminate {pid}: {reason}" if reason else f"failed to terminate {pid}")
        self.pid = pid
        self.reason = reason


class UnexpectedError(PortCleanerError):
    """Any other fault raised while handling a request."""

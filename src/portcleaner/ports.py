"""Port validation and system port classification."""

import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from portcleaner.errors import ValidationError

MIN_PORT = 1
MAX_PORT = 65535


def validate_port(value: Any) -> int:
    """
    Return ``value`` as a port number.

    Raises:
        ValidationError: If ``value`` is not an integer in [1, 65535].
    """
    # bool is an int subclass, but True is not a port
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"port must be an integer, got {value!r}")
    if not MIN_PORT <= value <= MAX_PORT:
        raise ValidationError(f"port must be between {MIN_PORT} and {MAX_PORT}, got {value}")
    return value


def current_platform_key() -> str:
    """Platform key used to pick the supplementary protected port set."""
    return sys.platform


@dataclass(slots=True, frozen=True)
class ProtectedPorts:
    """Immutable table of well-known ports that are never cleaned automatically."""

    common: frozenset[int]
    by_platform: Mapping[str, frozenset[int]] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        # Freeze the mapping so a shared table cannot be altered after startup
        frozen = {key: frozenset(ports) for key, ports in self.by_platform.items()}
        object.__setattr__(self, "common", frozenset(self.common))
        object.__setattr__(self, "by_platform", MappingProxyType(frozen))

    def for_platform(self, platform_key: str) -> frozenset[int]:
        """All protected ports on the given platform."""
        return self.common | self.by_platform.get(platform_key, frozenset())

    def contains(self, port: int, platform_key: str) -> bool:
        """Check whether ``port`` is protected on ``platform_key``."""
        return port in self.common or port in self.by_platform.get(platform_key, frozenset())


DEFAULT_PROTECTED_PORTS = ProtectedPorts(
    common=frozenset(range(0, 1024)),
    by_platform={
        "win32": frozenset({21, 22, 23, 25, 53, 80, 110, 135, 139, 443, 445, 593, 1433, 3389}),
        "darwin": frozenset({22, 53, 80, 88, 123, 443, 445, 548}),
        "linux": frozenset({21, 22, 23, 25, 53, 80, 110, 123, 3389}),
    },
)


class PortClassifier:
    """Decides whether a port belongs to a critical system service."""

    def __init__(
        self,
        protected_ports: ProtectedPorts = DEFAULT_PROTECTED_PORTS,
        platform_key: str | None = None,
    ) -> None:
        """
        Initialize the PortClassifier.

        Args:
            protected_ports: Table of reserved ports. Defaults to the built-in table.
            platform_key: ``sys.platform`` style key. Defaults to the running platform.
        """
        self._protected_ports = protected_ports
        self._platform_key = platform_key or current_platform_key()

    @property
    def platform_key(self) -> str:
        """Get the platform key in use."""
        return self._platform_key

    @property
    def protected_ports(self) -> ProtectedPorts:
        """Get the protected port table."""
        return self._protected_ports

    def is_protected(self, port: int) -> bool:
        """Check whether ``port`` needs human confirmation before cleanup."""
        return self._protected_ports.contains(port, self._platform_key)

"""Tool catalog and request dispatch for portcleaner."""

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from portcleaner.errors import PortCleanerError, UnexpectedError, ValidationError
from portcleaner.manager import PortProcessManager
from portcleaner.models import ToolResponse
from portcleaner.ports import MAX_PORT, MIN_PORT, validate_port

logger = logging.getLogger(__name__)

PORT_SCAN = "port_scan"
PORT_CLEAN = "port_clean"


def port_input_schema(description: str) -> dict[str, Any]:
    """JSON schema of the ``{port}`` argument object shared by every tool."""
    return {
        "type": "object",
        "properties": {
            "port": {
                "type": "integer",
                "minimum": MIN_PORT,
                "maximum": MAX_PORT,
                "description": description,
            },
        },
        "required": ["port"],
        "additionalProperties": False,
    }


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """A named tool exposed to callers."""

    name: str
    description: str
    input_schema: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "metadata": self.metadata,
        }


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name=PORT_SCAN,
        description=(
            "Cross-platform port usage scan (Windows/macOS/Linux). "
            "Lists the processes listening on the given port."
        ),
        input_schema=port_input_schema("Port number to inspect"),
        metadata={"systemImpact": False, "protectionLevel": "none"},
    ),
    ToolSpec(
        name=PORT_CLEAN,
        description=(
            "Cross-platform port cleanup (Windows/macOS/Linux). Terminates the "
            "processes bound to the given port. System ports are reported with a "
            "warning instead; ask the user for confirmation before cleaning them by hand."
        ),
        input_schema=port_input_schema("Port number to free"),
        metadata={"systemImpact": True, "protectionLevel": "critical"},
    ),
)


Handler = Callable[[int], ToolResponse | Awaitable[ToolResponse]]


class ToolDispatcher:
    """Routes tool calls to a PortProcessManager and never lets a fault escape."""

    def __init__(self, manager: PortProcessManager | None = None) -> None:
        self._manager = manager or PortProcessManager()
        self._handlers: dict[str, Handler] = {
            PORT_SCAN: self._manager.scan_port,
            PORT_CLEAN: self._manager.clean_port,
        }

    @property
    def manager(self) -> PortProcessManager:
        """Get the manager handling requests."""
        return self._manager

    def list_tools(self) -> list[ToolSpec]:
        """Return the tool catalog."""
        return list(TOOLS)

    async def call_tool(self, name: str, arguments: Mapping[str, Any] | None = None) -> ToolResponse:
        """
        Handle one tool call.

        Bad arguments, unknown tools and unexpected faults all come back as
        error responses.
        """
        try:
            return await self._dispatch(name, arguments or {})
        except ValidationError as e:
            logger.info("Rejected %s call: %s", name, e)
            return ToolResponse.error(f"invalid arguments: {e}")
        except PortCleanerError as e:
            logger.exception("Tool %s failed", name)
            return ToolResponse.error(f"service error: {e}")
        except Exception as e:
            logger.exception("Tool %s failed", name)
            return ToolResponse.error(f"service error: {type(e).__name__}: {e}")

    async def _dispatch(self, name: str, arguments: Mapping[str, Any]) -> ToolResponse:
        handler = self._handlers.get(name) if isinstance(name, str) else None
        if handler is None:
            return ToolResponse.error(f"unsupported tool: {name}")

        if not isinstance(arguments, Mapping):
            raise ValidationError(f"arguments must be an object, got {type(arguments).__name__}")
        port = validate_port(arguments.get("port"))
        try:
            response = handler(port)
            if inspect.isawaitable(response):
                response = await response
        except PortCleanerError:
            raise
        except Exception as e:
            raise UnexpectedError(f"{type(e).__name__}: {e}") from e
        return response

"""portcleaner - Textual front-end for scanning and freeing ports."""

import asyncio
import logging

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.logging import TextualHandler
from textual.widgets import DataTable, Footer, Input, Static

from portcleaner.errors import LookupFailure
from portcleaner.formatting import NONE_LABEL
from portcleaner.models import ProcessRecord, ToolResponse
from portcleaner.ports import validate_port
from portcleaner.tools import PORT_CLEAN, PORT_SCAN, ToolDispatcher

logger = logging.getLogger(__name__)


class StatusPanel(Static):
    """Panel showing the text of the last response."""

    DEFAULT_CSS = """
    StatusPanel {
        height: auto;
        min-height: 3;
        padding: 1;
        background: $surface;
    }

    StatusPanel.error {
        color: $error;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize StatusPanel."""
        super().__init__(*args, **kwargs)
        self._response: ToolResponse | None = None

    @property
    def response(self) -> ToolResponse | None:
        """Get the response currently shown."""
        return self._response

    def show_response(self, response: ToolResponse) -> None:
        """Display a tool response, highlighting errors."""
        self._response = response
        self.set_class(response.is_error, "error")
        self.update(response.message)


class OccupantTable(Container):
    """Container for the table of processes bound to the current port."""

    DEFAULT_CSS = """
    OccupantTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize OccupantTable."""
        super().__init__(*args, **kwargs)
        self._current_pids: list[str] = []

    @property
    def pids(self) -> list[str]:
        """Get the pids currently displayed."""
        return list(self._current_pids)

    def compose(self) -> ComposeResult:
        """Compose the occupant table."""
        yield DataTable(id="occupant-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#occupant-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("Name", key="name", width=24)
        table.add_column("User", key="user", width=12)
        table.add_column("Proto", key="protocol")

    def update_occupants(self, records: list[ProcessRecord]) -> None:
        """Replace the table contents with ``records``."""
        table = self.query_one("#occupant-table", DataTable)
        table.clear()
        pids: list[str] = []
        for record in records:
            # lsof reports one row per socket; show each process once
            if record.pid in pids:
                continue
            table.add_row(
                record.pid,
                record.name or NONE_LABEL,
                record.user or NONE_LABEL,
                record.protocol or NONE_LABEL,
                key=record.pid,
            )
            pids.append(record.pid)
        self._current_pids = pids


class PortCleanerApp(App):
    """Main portcleaner application."""

    TITLE = "portcleaner"
    SUB_TITLE = "Free occupied ports"

    CSS = """
    Screen {
        layout: vertical;
    }

    #port-input {
        dock: top;
    }
    """

    BINDINGS = [
        ("f8", "clean", "Clean"),
        ("f5", "rescan", "Rescan"),
        ("ctrl+q", "quit", "Quit"),
    ]

    def __init__(self, dispatcher: ToolDispatcher | None = None, port: int | None = None) -> None:
        """Initialize the PortCleanerApp."""
        super().__init__()
        self._dispatcher = dispatcher or ToolDispatcher()
        self._port: int | None = port

    @property
    def port(self) -> int | None:
        """Get the port currently shown."""
        return self._port

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Input(
            value=str(self._port) if self._port else "",
            placeholder="Port number (1-65535), press Enter to scan",
            type="integer",
            id="port-input",
        )
        yield OccupantTable()
        yield StatusPanel("Enter a port to scan.", id="status")
        yield Footer()

    def on_mount(self) -> None:
        """Scan the initial port, if any, once the table is ready."""
        if self._port is not None:
            self.call_after_refresh(self.action_rescan)

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        """Scan the submitted port."""
        try:
            port = validate_port(int(event.value))
        except ValueError as e:
            self._show(ToolResponse.error(f"invalid arguments: {e}"))
            return
        await self.scan(port)

    async def scan(self, port: int) -> None:
        """Scan ``port`` through the dispatcher and display its occupants."""
        self._port = port
        response = await self._dispatcher.call_tool(PORT_SCAN, {"port": port})
        if response.is_error:
            self.query_one(OccupantTable).update_occupants([])
        else:
            failure = await self._refresh_rows(port)
            if failure is not None:
                response = failure
        self._show(response)

    async def action_clean(self) -> None:
        """Clean the current port and refresh the table."""
        if self._port is None:
            self._show(ToolResponse.error("enter a port first"))
            return

        port = self._port
        response = await self._dispatcher.call_tool(PORT_CLEAN, {"port": port})
        failure = await self._refresh_rows(port)
        if failure is not None:
            response = ToolResponse(texts=response.texts + failure.texts, is_error=True)
        self._show(response)

    async def _refresh_rows(self, port: int) -> ToolResponse | None:
        """
        Reload the occupant table for ``port``.

        Returns an error response instead of raising when the lookup fails.
        """
        try:
            records = await asyncio.to_thread(self._dispatcher.manager.lookup, port)
        except LookupFailure as e:
            self.query_one(OccupantTable).update_occupants([])
            return ToolResponse.error(f"scan failed: {e.diagnostic}")
        except Exception as e:
            logger.exception("Refreshing occupants of port %d failed", port)
            self.query_one(OccupantTable).update_occupants([])
            return ToolResponse.error(f"service error: {type(e).__name__}: {e}")
        self.query_one(OccupantTable).update_occupants(records)
        return None

    async def action_rescan(self) -> None:
        """Scan the current port again."""
        if self._port is not None:
            await self.scan(self._port)

    def _show(self, response: ToolResponse) -> None:
        self.query_one("#status", StatusPanel).show_response(response)


def main() -> None:
    """Entry point for portcleaner application."""
    logging.basicConfig(level=logging.INFO, handlers=[TextualHandler()])
    app = PortCleanerApp()
    app.run()


if __name__ == "__main__":
    main()

"""Tests for the tool catalog and dispatcher."""

import pytest

from portcleaner.errors import LookupFailure
from portcleaner.manager import PortProcessManager
from portcleaner.models import ProcessRecord, TerminationOutcome
from portcleaner.platforms import PosixCommands
from portcleaner.tools import PORT_CLEAN, PORT_SCAN, TOOLS, ToolDispatcher


class StubManager(PortProcessManager):
    """PortProcessManager with in-memory lookups and terminations."""

    def __init__(self, occupants=None, unkillable=(), lookup_error=None):
        super().__init__(commands=PosixCommands(), platform_key="linux", resolve_names=False)
        self.occupants: dict[int, list[ProcessRecord]] = occupants or {}
        self.unkillable = set(unkillable)
        self.lookup_error = lookup_error
        self.terminated: list[str] = []

    def lookup(self, port):
        if self.lookup_error is not None:
            raise self.lookup_error
        return list(self.occupants.get(port, []))

    async def terminate(self, pids):
        results = []
        for pid in dict.fromkeys(pids):
            self.terminated.append(pid)
            killed = pid not in self.unkillable
            if killed:
                for port, records in self.occupants.items():
                    self.occupants[port] = [record for record in records if record.pid != pid]
            results.append((pid, killed))
        return TerminationOutcome.from_results(results)


def test_catalog_lists_both_tools():
    dispatcher = ToolDispatcher(StubManager())

    names = [tool.name for tool in dispatcher.list_tools()]

    assert names == [PORT_SCAN, PORT_CLEAN]


def test_tool_schema_limits_port_range():
    for tool in TOOLS:
        port = tool.to_dict()["inputSchema"]["properties"]["port"]
        assert port["type"] == "integer"
        assert port["minimum"] == 1
        assert port["maximum"] == 65535


def test_clean_tool_is_marked_critical():
    clean = next(tool for tool in TOOLS if tool.name == PORT_CLEAN)

    assert clean.to_dict()["metadata"] == {"systemImpact": True, "protectionLevel": "critical"}


@pytest.mark.asyncio
async def test_clean_unoccupied_port():
    """Test cleaning a free port reports it as not occupied."""
    dispatcher = ToolDispatcher(StubManager())

    response = await dispatcher.call_tool(PORT_CLEAN, {"port": 8080})

    assert response.to_dict() == {
        "content": [{"type": "text", "text": "port 8080 not occupied"}],
        "isError": False,
    }


@pytest.mark.asyncio
async def test_clean_twice_is_idempotent():
    dispatcher = ToolDispatcher(StubManager())

    first = await dispatcher.call_tool(PORT_CLEAN, {"port": 8080})
    second = await dispatcher.call_tool(PORT_CLEAN, {"port": 8080})

    assert first == second
    assert not second.is_error


@pytest.mark.asyncio
async def test_clean_occupied_port():
    manager = StubManager(occupants={8080: [ProcessRecord(pid="4321", name="node")]})
    dispatcher = ToolDispatcher(manager)

    response = await dispatcher.call_tool(PORT_CLEAN, {"port": 8080})

    assert not response.is_error
    assert "4321" in response.message
    assert response.message.startswith("terminated processes")
    assert manager.terminated == ["4321"]

    again = await dispatcher.call_tool(PORT_CLEAN, {"port": 8080})
    assert again.message == "port 8080 not occupied"


@pytest.mark.asyncio
async def test_clean_protected_port_only_warns():
    """Test a protected port returns a warning and terminates nothing."""
    manager = StubManager(occupants={22: [ProcessRecord(pid="100", name="sshd", user="root")]})
    dispatcher = ToolDispatcher(manager)

    response = await dispatcher.call_tool(PORT_CLEAN, {"port": 22})

    assert not response.is_error
    assert "PID: 100" in response.message
    assert "kill -9 100" in response.message
    assert manager.terminated == []


@pytest.mark.asyncio
async def test_clean_all_failed_is_error():
    manager = StubManager(occupants={8080: [ProcessRecord(pid="1")]}, unkillable={"1"})

    response = await ToolDispatcher(manager).call_tool(PORT_CLEAN, {"port": 8080})

    assert response.is_error
    assert response.message == "failed to terminate processes on port 8080: 1"


@pytest.mark.asyncio
async def test_clean_lookup_failure_is_error():
    manager = StubManager(lookup_error=LookupFailure("lsof crashed"))

    response = await ToolDispatcher(manager).call_tool(PORT_CLEAN, {"port": 8080})

    assert response.is_error
    assert response.message == "cleanup failed: lsof crashed"


@pytest.mark.asyncio
async def test_scan_port():
    manager = StubManager(occupants={8080: [ProcessRecord(pid="4321", name="node", user="alice", protocol="TCP")]})
    dispatcher = ToolDispatcher(manager)

    response = await dispatcher.call_tool(PORT_SCAN, {"port": 8080})

    assert not response.is_error
    assert response.message == "port 8080 usage:\nPID: 4321, name: node, user: alice, protocol: TCP"
    assert manager.terminated == []


@pytest.mark.asyncio
@pytest.mark.parametrize("arguments", [{}, {"port": 0}, {"port": 65536}, {"port": "8080"}, {"port": True}, None])
async def test_invalid_arguments(arguments):
    manager = StubManager()

    response = await ToolDispatcher(manager).call_tool(PORT_CLEAN, arguments)

    assert response.is_error
    assert response.message.startswith("invalid arguments:")
    assert manager.terminated == []


@pytest.mark.asyncio
async def test_unknown_tool():
    response = await ToolDispatcher(StubManager()).call_tool("port_nuke", {"port": 8080})

    assert response.is_error
    assert response.message == "unsupported tool: port_nuke"


@pytest.mark.asyncio
async def test_unexpected_fault_becomes_error_response():
    """Test the dispatcher never lets an exception escape."""

    class BrokenManager(StubManager):
        def lookup(self, port):
            raise RuntimeError("disk on fire")

    response = await ToolDispatcher(BrokenManager()).call_tool(PORT_SCAN, {"port": 8080})

    assert response.is_error
    assert response.message == "service error: RuntimeError: disk on fire"


@pytest.mark.asyncio
@pytest.mark.parametrize("arguments", [[8080], "8080", 8080])
async def test_non_mapping_arguments_are_rejected(arguments):
    manager = StubManager(occupants={8080: [ProcessRecord(pid="4321")]})

    response = await ToolDispatcher(manager).call_tool(PORT_CLEAN, arguments)

    assert response.is_error
    assert response.message.startswith("invalid arguments: arguments must be an object")
    assert manager.terminated == []


@pytest.mark.asyncio
@pytest.mark.parametrize("name", [["port_clean"], None, 42])
async def test_non_string_tool_name(name):
    response = await ToolDispatcher(StubManager()).call_tool(name, {"port": 8080})

    assert response.is_error
    assert response.message == f"unsupported tool: {name}"


@pytest.mark.asyncio
async def test_fault_outside_handler_becomes_error_response():
    """Test a fault raised while reading the arguments is still converted."""

    class ExplodingArguments(dict):
        def get(self, key, default=None):
            raise KeyError(key)

    response = await ToolDispatcher(StubManager()).call_tool(PORT_SCAN, ExplodingArguments(port=8080))

    assert response.is_error
    assert response.message == "service error: KeyError: 'port'"

"""Tests for capability descriptors, the tool table, provider retries and MCP config."""

import asyncio

import pytest
from tenacity import RetryCallState

from swarmAgent.tools import CapabilityDescriptor, MCPCapabilityClient, RetryPolicy, ToolTable
from swarmAgent.tools.mcp import MCPServerManager, MCPToolError, load_declared_capabilities, load_mcp_config
from swarmAgent.utils.error_handler import ToolExecutionError


class TestToolTable:
    def test_first_provider_wins_duplicates(self):
        table = ToolTable([
            CapabilityDescriptor(name="search", provider_id="web"),
            CapabilityDescriptor(name="search", provider_id="backup"),
            CapabilityDescriptor(name="read_file", provider_id="filesystem"),
        ])
        assert list(table) == ["search", "read_file"]
        assert table["search"].provider_id == "web"

    def test_resolve_accepts_dicts(self):
        table = ToolTable.resolve([{"name": "file_write", "provider_id": "filesystem", "remote_name": "write_file"}])
        assert table["file_write"].provider_tool_name == "write_file"
        assert table["file_write"].input_schema == {"type": "object", "properties": {}}

    def test_state_form_restores_table(self):
        table = ToolTable.resolve([CapabilityDescriptor(name="lookup", provider_id="kb", description="Find notes")])
        restored = ToolTable.from_state(table.to_state())
        assert restored["lookup"] == table["lookup"]

    def test_table_is_read_only(self):
        table = ToolTable([CapabilityDescriptor(name="lookup", provider_id="kb")])
        with pytest.raises(TypeError):
            table._table["other"] = None

    def test_openai_tool_schema(self):
        tool = CapabilityDescriptor(name="lookup", provider_id="kb").to_openai_tool()
        assert tool["type"] == "function"
        assert tool["function"]["name"] == "lookup"
        assert "kb" in tool["function"]["description"]


class FakeConnection:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def call_tool(self, tool_name, arguments):
        self.calls.append((tool_name, arguments))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeManager:
    def __init__(self, connection, configured=("kb",)):
        self.connection = connection
        self.configured = configured
        self.dropped = []

    async def get_server(self, server_id):
        if server_id not in self.configured:
            raise ValueError(f"MCP server not configured: {server_id}")
        return self.connection

    async def drop_server(self, server_id):
        self.dropped.append(server_id)


def _client(manager, attempts=3, timeout=1.0):
    return MCPCapabilityClient(
        manager,
        timeout_seconds=timeout,
        retry_policy=RetryPolicy(max_attempts=attempts, backoff_base=0.0, jitter=0.0),
    )


class TestMCPCapabilityClient:
    @pytest.mark.asyncio
    async def test_success(self):
        connection = FakeConnection(["42"])
        result = await _client(FakeManager(connection)).call_tool("kb", "lookup", {"q": "x"})
        assert result == "42"
        assert connection.calls == [("lookup", {"q": "x"})]

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self):
        connection = FakeConnection([ConnectionError("reset"), "ok"])
        manager = FakeManager(connection)
        assert await _client(manager).call_tool("kb", "lookup", {}) == "ok"
        assert manager.dropped == ["kb"]

    @pytest.mark.asyncio
    async def test_tool_error_is_not_retried(self):
        connection = FakeConnection([MCPToolError("bad query"), "never"])
        with pytest.raises(ToolExecutionError) as exc_info:
            await _client(FakeManager(connection)).call_tool("kb", "lookup", {})
        assert "bad query" in str(exc_info.value)
        assert len(connection.calls) == 1

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self):
        connection = FakeConnection([OSError("down"), OSError("down")])
        with pytest.raises(ToolExecutionError):
            await _client(FakeManager(connection), attempts=2).call_tool("kb", "lookup", {})
        assert len(connection.calls) == 2

    @pytest.mark.asyncio
    async def test_provider_restarted_before_each_retry(self):
        connection = FakeConnection([OSError("down"), TimeoutError(), "ok"])
        manager = FakeManager(connection)
        assert await _client(manager, attempts=3).call_tool("kb", "lookup", {}) == "ok"
        assert manager.dropped == ["kb", "kb"]
        assert len(connection.calls) == 3

    @pytest.mark.asyncio
    async def test_unknown_provider(self):
        with pytest.raises(ToolExecutionError) as exc_info:
            await _client(FakeManager(FakeConnection([]))).call_tool("nowhere", "lookup", {})
        assert exc_info.value.provider_id == "nowhere"

    @pytest.mark.asyncio
    async def test_timeout(self):
        class SlowConnection:
            async def call_tool(self, tool_name, arguments):
                await asyncio.sleep(1)

        with pytest.raises(ToolExecutionError) as exc_info:
            await _client(FakeManager(SlowConnection()), attempts=1, timeout=0.01).call_tool("kb", "lookup", {})
        assert "timed out" in str(exc_info.value)


class TestRetryPolicy:
    def test_backoff_is_capped(self):
        wait = RetryPolicy(backoff_base=1.0, backoff_max=5.0, jitter=0.0).wait()
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        delays = []
        for attempt_number in range(1, 5):
            state.attempt_number = attempt_number
            delays.append(wait(state))
        assert delays == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_bound(self):
        wait = RetryPolicy(backoff_base=1.0, backoff_max=10.0, jitter=0.5).wait()
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        assert all(1.0 <= wait(state) <= 1.5 for _ in range(20))

    def test_retryable(self):
        policy = RetryPolicy()
        assert policy.is_retryable(TimeoutError())
        assert not policy.is_retryable(MCPToolError("x"))
        assert not policy.is_retryable(KeyError("x"))


MCP_CONFIG = """
settings:
  namespace_strategy: prefix
servers:
  filesystem:
    command: npx
    tools:
      read_file:
        description: Read a file
      write_file:
        alias: file_write
      delete_file:
        enabled: false
  offline:
    enabled: false
    command: npx
    tools:
      ping: {}
"""


class TestMCPConfig:
    @pytest.fixture
    def config(self, tmp_path):
        path = tmp_path / "mcp_servers.yaml"
        path.write_text(MCP_CONFIG, encoding="utf-8")
        return load_mcp_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_mcp_config(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_mcp_config(path) == {"servers": {}, "settings": {}}

    def test_declared_capabilities(self, config):
        descriptors = {d.name: d for d in load_declared_capabilities(config)}
        assert set(descriptors) == {"mcp__filesystem__read_file", "file_write"}
        assert descriptors["file_write"].provider_tool_name == "write_file"
        assert descriptors["mcp__filesystem__read_file"].remote_name == "read_file"
        assert descriptors["mcp__filesystem__read_file"].description == "Read a file"

    def test_manager_skips_disabled_servers(self, config):
        manager = MCPServerManager(config)
        assert manager.list_configured_servers() == ["filesystem"]
        assert manager.list_started_servers() == []
        assert not manager.is_server_started("filesystem")

    @pytest.mark.asyncio
    async def test_manager_rejects_unknown_server(self, config):
        with pytest.raises(ValueError):
            await MCPServerManager(config).get_server("offline")

    def test_shipped_config_loads(self):
        from swarmAgent.runtime.app import DEFAULT_MCP_CONFIG

        config = load_mcp_config(DEFAULT_MCP_CONFIG)
        assert set(config["servers"]) == {"filesystem", "web"}
        assert load_declared_capabilities(config) == []

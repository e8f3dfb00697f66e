"""MCP server connection implementations (stdio and SSE modes)."""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client

LOGGER = logging.getLogger(__name__)


class MCPToolError(RuntimeError):
    """The provider answered but flagged the tool result as an error."""


def resolve_env(env: Dict[str, str]) -> Dict[str, str]:
    """Merge ``env`` into the process environment, expanding ``${VAR}`` references."""
    full_env = os.environ.copy()
    for key, value in env.items():
        if value.startswith("${") and value.endswith("}"):
            full_env[key] = os.environ.get(value[2:-1], "")
        else:
            full_env[key] = value
    return full_env


def _result_text(result: Any) -> str:
    # CallToolResult.content holds TextContent / ImageContent items
    text_parts = [item.text for item in (result.content or []) if hasattr(item, "text")]
    return "\n".join(text_parts)


class MCPConnection(ABC):
    """Abstract base class for MCP server connections."""

    def __init__(self, server_id: str, command: Optional[str], args: List[str], env: Dict[str, str]):
        self.server_id = server_id
        self.command = command
        self.args = args
        self.env = env
        self._client: Optional[ClientSession] = None
        self._initialized = False

    @abstractmethod
    async def start(self):
        """Start the server and establish connection."""

    @abstractmethod
    async def close(self):
        """Close the connection and cleanup resources."""

    async def call_tool(self, tool_name: str, arguments: Dict[str, Any]) -> str:
        """Call a tool and return its text content.

        Raises:
            RuntimeError: If the connection is not started
            MCPToolError: If the server marks the result as an error
        """
        if not self._initialized:
            raise RuntimeError(f"Server not initialized: {self.server_id}")

        LOGGER.debug(f"  Calling tool: {tool_name} on server {self.server_id}")
        result = await self._client.call_tool(tool_name, arguments)
        text = _result_text(result)
        if getattr(result, "isError", False):
            raise MCPToolError(text or f"{tool_name} reported an error")
        return text

    async def list_tools(self) -> List[Any]:
        """List all tools provided by the server."""
        if not self._initialized:
            raise RuntimeError(f"Server not initialized: {self.server_id}")

        result = await self._client.list_tools()
        return result.tools

    async def _open_session(self, read_stream, write_stream) -> None:
        self._client = ClientSession(read_stream, write_stream)
        await self._client.__aenter__()
        await self._client.initialize()
        self._initialized = True

    async def _close_session(self) -> None:
        if self._client:
            try:
                await self._client.__aexit__(None, None, None)
            except Exception as e:
                LOGGER.warning(f"  Error closing client session for {self.server_id}: {e}")
            self._client = None


class StdioMCPConnection(MCPConnection):
    """MCP connection using stdio (standard input/output) mode."""

    def __init__(self, server_id: str, command: str, args: List[str], env: Dict[str, str]):
        super().__init__(server_id, command, args, env)
        self._stdio_context = None

    async def start(self):
        """Start the server process and establish stdio connection."""
        LOGGER.debug(f"  Starting stdio server: {self.command} {' '.join(self.args)}")

        server_params = StdioServerParameters(
            command=self.command,
            args=self.args,
            env=resolve_env(self.env),
        )

        stdio_context = stdio_client(server_params)
        read_stream, write_stream = await stdio_context.__aenter__()
        self._stdio_context = stdio_context

        await self._open_session(read_stream, write_stream)
        LOGGER.debug(f"  ✓ Stdio connection established for server: {self.server_id}")

    async def close(self):
        """Close stdio connection."""
        await self._close_session()

        if self._stdio_context:
            try:
                await self._stdio_context.__aexit__(None, None, None)
            except Exception as e:
                LOGGER.warning(f"  Error closing stdio context for {self.server_id}: {e}")
            self._stdio_context = None

        self._initialized = False
        LOGGER.debug(f"  ✓ Closed stdio connection for server: {self.server_id}")


class SSEMCPConnection(MCPConnection):
    """MCP connection using SSE (Server-Sent Events) mode over HTTP.

    When ``command`` is set the server process is spawned first; otherwise
    ``url`` must point at an already running server.
    """

    def __init__(
        self,
        server_id: str,
        command: Optional[str],
        args: List[str],
        env: Dict[str, str],
        url: Optional[str] = None,
        startup_delay: float = 2.0,
    ):
        super().__init__(server_id, command, args, env)
        self.url = url or "http://localhost:8000/sse"
        self.startup_delay = startup_delay
        self._sse_context = None
        self._process = None

    async def start(self):
        """Start the server process (if any) and establish SSE connection."""
        if self.command:
            LOGGER.debug(f"  Starting SSE server: {self.command} {' '.join(self.args)}")
            self._process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                env=resolve_env(self.env),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            await asyncio.sleep(self.startup_delay)

        sse_context = sse_client(self.url)
        read_stream, write_stream = await sse_context.__aenter__()
        self._sse_context = sse_context

        await self._open_session(read_stream, write_stream)
        LOGGER.debug(f"  ✓ SSE connection established for server: {self.server_id} ({self.url})")

    async def close(self):
        """Close SSE connection and terminate process."""
        await self._close_session()

        if self._sse_context:
            try:
                await self._sse_context.__aexit__(None, None, None)
            except Exception as e:
                LOGGER.warning(f"  Error closing SSE context for {self.server_id}: {e}")
            self._sse_context = None

        if self._process:
            try:
                self._process.terminate()
                await asyncio.wait_for(self._process.wait(), timeout=5)
            except asyncio.TimeoutError:
                self._process.kill()
                await self._process.wait()
            except ProcessLookupError:
                pass
            self._process = None

        self._initialized = False
        LOGGER.debug(f"  ✓ Closed SSE connection for server: {self.server_id}")


def create_connection(
    server_id: str,
    command: Optional[str],
    args: List[str],
    env: Dict[str, str],
    mode: str = "stdio",
    url: Optional[str] = None,
) -> MCPConnection:
    """Factory function to create appropriate connection type."""
    if mode == "stdio":
        if not command:
            raise ValueError(f"stdio server '{server_id}' needs a command")
        return StdioMCPConnection(server_id, command, args, env)
    elif mode == "sse":
        return SSEMCPConnection(server_id, command, args, env, url)
    else:
        raise ValueError(f"Unknown connection mode: {mode}")

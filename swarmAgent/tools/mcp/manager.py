"""MCP server lifecycle manager with lazy startup support."""

import asyncio
import logging
from typing import Dict, List

from .connection import MCPConnection, create_connection

LOGGER = logging.getLogger(__name__)


class MCPServerManager:
    """
    Manages lifecycle of capability provider (MCP) servers.

    Features:
    - Lazy startup: servers only started on first use
    - Connection reuse: one connection per provider, guarded by a lock
    - Automatic cleanup: all servers closed on shutdown

    Connections belong to the host process; swarm executions only ever see
    provider ids.
    """

    def __init__(self, config: dict):
        """
        Args:
            config: MCP configuration dict loaded from mcp_servers.yaml
        """
        self.config = config
        self._servers: Dict[str, MCPConnection] = {}
        self._server_configs: Dict[str, dict] = {}
        self._start_locks: Dict[str, asyncio.Lock] = {}

        for server_id, server_cfg in (config.get("servers") or {}).items():
            if server_cfg.get("enabled", True):
                self._server_configs[server_id] = server_cfg
                LOGGER.debug(f"  Registered MCP server config: {server_id}")

    async def get_server(self, server_id: str) -> MCPConnection:
        """
        Get server connection (lazy startup).

        Raises:
            ValueError: If server not configured
            RuntimeError: If server fails to start
        """
        if server_id in self._servers:
            return self._servers[server_id]

        if server_id not in self._server_configs:
            raise ValueError(f"MCP server not configured: {server_id}")

        lock = self._start_locks.setdefault(server_id, asyncio.Lock())
        async with lock:
            if server_id not in self._servers:
                LOGGER.info(f"🚀 Starting MCP server: {server_id}")
                self._servers[server_id] = await self._start_server(server_id)
        return self._servers[server_id]

    async def _start_server(self, server_id: str) -> MCPConnection:
        cfg = self._server_configs[server_id]
        settings = self.config.get("settings") or {}

        connection_mode = cfg.get("connection_mode", settings.get("default_connection_mode", "stdio"))
        connection = create_connection(
            server_id=server_id,
            command=cfg.get("command"),
            args=cfg.get("args", []),
            env=cfg.get("env", {}),
            mode=connection_mode,
            url=cfg.get("url"),
        )

        startup_timeout = settings.get("startup_timeout", 30)
        try:
            await asyncio.wait_for(connection.start(), timeout=startup_timeout)
        except asyncio.TimeoutError:
            await connection.close()
            raise RuntimeError(f"MCP server startup timeout: {server_id}")
        except Exception as e:
            await connection.close()
            raise RuntimeError(f"Failed to start MCP server '{server_id}': {e}") from e

        LOGGER.info(f"  ✓ MCP server started: {server_id} (mode: {connection_mode})")
        return connection

    async def drop_server(self, server_id: str) -> None:
        """Close one connection so the next call restarts the server."""
        connection = self._servers.pop(server_id, None)
        if connection is None:
            return
        try:
            await connection.close()
        except Exception as e:
            LOGGER.warning(f"  Error closing {server_id}: {e}")

    async def shutdown(self):
        """
        Shutdown all MCP servers and cleanup resources.

        This should be called when the application exits.
        """
        if not self._servers:
            return

        LOGGER.info(f"Shutting down {len(self._servers)} MCP server(s)...")

        for server_id, connection in list(self._servers.items()):
            try:
                await connection.close()
                LOGGER.info(f"  ✓ Closed: {server_id}")
            except Exception as e:
                LOGGER.error(f"  ✗ Failed to close {server_id}: {e}")

        self._servers.clear()

    def is_server_started(self, server_id: str) -> bool:
        return server_id in self._servers

    def list_configured_servers(self) -> List[str]:
        return list(self._server_configs.keys())

    def list_started_servers(self) -> List[str]:
        return list(self._servers.keys())

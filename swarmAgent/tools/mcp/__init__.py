"""MCP (Model Context Protocol) capability providers for swarmAgent."""

from .connection import MCPConnection, MCPToolError, SSEMCPConnection, StdioMCPConnection, create_connection
from .loader import discover_capabilities, load_declared_capabilities, load_mcp_config
from .manager import MCPServerManager

__all__ = [
    "MCPConnection",
    "MCPServerManager",
    "MCPToolError",
    "SSEMCPConnection",
    "StdioMCPConnection",
    "create_connection",
    "discover_capabilities",
    "load_declared_capabilities",
    "load_mcp_config",
]

"""Configuration loader and capability discovery for MCP providers."""

import logging
from pathlib import Path
from typing import Any, Dict, List

import yaml

from swarmAgent.tools.catalog import EMPTY_SCHEMA, CapabilityDescriptor

from .manager import MCPServerManager

LOGGER = logging.getLogger(__name__)


def load_mcp_config(config_path: Path) -> dict:
    """
    Load MCP configuration from YAML file.

    Args:
        config_path: Path to mcp_servers.yaml

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"MCP config not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        config = yaml.safe_load(f)

    if not config:
        return {"servers": {}, "settings": {}}

    return config


def load_declared_capabilities(config: dict) -> List[CapabilityDescriptor]:
    """
    Build descriptors for tools declared in the configuration.

    This does NOT start servers - declared tools are known up front and the
    provider is only started on the first call.
    """
    descriptors = []
    namespace_strategy = (config.get("settings") or {}).get("namespace_strategy", "alias")

    for server_id, server_cfg in (config.get("servers") or {}).items():
        if not server_cfg.get("enabled", True):
            LOGGER.debug(f"  Skipping disabled MCP server: {server_id}")
            continue

        for tool_name, tool_cfg in (server_cfg.get("tools") or {}).items():
            tool_cfg = tool_cfg or {}
            if not tool_cfg.get("enabled", True):
                LOGGER.debug(f"    Skipping disabled tool: {server_id}.{tool_name}")
                continue

            final_name = _resolve_tool_name(server_id, tool_name, tool_cfg, namespace_strategy)
            descriptors.append(CapabilityDescriptor(
                name=final_name,
                provider_id=server_id,
                description=tool_cfg.get("description", f"MCP tool '{tool_name}' from server '{server_id}'"),
                input_schema=tool_cfg.get("input_schema") or dict(EMPTY_SCHEMA),
                remote_name=tool_name if final_name != tool_name else None,
            ))
            LOGGER.info(f"    ✓ Declared MCP tool: {final_name} (server: {server_id})")

    return descriptors


async def discover_capabilities(config: dict, manager: MCPServerManager) -> List[CapabilityDescriptor]:
    """
    Declared tools plus tools listed by servers configured with ``discover: true``.

    Discovery starts those servers. A server that fails to start is skipped
    with a warning so one broken provider does not hide the others.
    """
    descriptors = load_declared_capabilities(config)
    known = {(d.provider_id, d.provider_tool_name) for d in descriptors}
    namespace_strategy = (config.get("settings") or {}).get("namespace_strategy", "alias")

    for server_id, server_cfg in (config.get("servers") or {}).items():
        if not server_cfg.get("enabled", True) or not server_cfg.get("discover", False):
            continue
        try:
            connection = await manager.get_server(server_id)
            tools = await connection.list_tools()
        except (RuntimeError, ValueError) as e:
            LOGGER.warning(f"  Capability discovery failed for {server_id}: {e}")
            continue

        overrides: Dict[str, Any] = server_cfg.get("tools") or {}
        for tool in tools:
            if (server_id, tool.name) in known:
                continue
            final_name = _resolve_tool_name(server_id, tool.name, overrides.get(tool.name) or {}, namespace_strategy)
            descriptors.append(CapabilityDescriptor(
                name=final_name,
                provider_id=server_id,
                description=tool.description or "",
                input_schema=tool.inputSchema or dict(EMPTY_SCHEMA),
                remote_name=tool.name if final_name != tool.name else None,
            ))
            LOGGER.info(f"    ✓ Discovered MCP tool: {final_name} (server: {server_id})")

    return descriptors


def _resolve_tool_name(
    server_id: str,
    tool_name: str,
    tool_cfg: dict,
    namespace_strategy: str
) -> str:
    """
    Determine final tool name based on configuration.

    Args:
        server_id: Server identifier
        tool_name: Original tool name
        tool_cfg: Tool configuration dict
        namespace_strategy: "prefix" or "alias"

    Returns:
        Final tool name
    """
    if "alias" in tool_cfg:
        return tool_cfg["alias"]

    if namespace_strategy == "prefix":
        return f"mcp__{server_id}__{tool_name}"

    return tool_name

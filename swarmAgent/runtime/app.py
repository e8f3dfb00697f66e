"""Application assembly for swarmAgent.

This module builds a ready-to-use ``SwarmEngine`` by:
1. Loading settings
2. Building the model resolver
3. Loading MCP provider config and resolving the tool catalog
4. Loading the risk rules
5. Wiring event sinks (logging, optional SQLite records)
6. Building the engine with its checkpointer
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from swarmAgent.config import Settings, get_settings
from swarmAgent.hitl import RiskAssessor
from swarmAgent.persistence import SqliteRecordStore, build_checkpointer
from swarmAgent.runtime.engine import SwarmEngine
from swarmAgent.runtime.events import CompositeEventSink, EventSink, LoggingEventSink, PersistenceEventSink
from swarmAgent.runtime.model_resolver import build_model_resolver
from swarmAgent.tools import CapabilityDescriptor, MCPCapabilityClient
from swarmAgent.tools.mcp import MCPServerManager, discover_capabilities, load_declared_capabilities, load_mcp_config

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
DEFAULT_RISK_RULES = CONFIG_DIR / "risk_rules.yaml"
DEFAULT_MCP_CONFIG = CONFIG_DIR / "mcp_servers.yaml"


@dataclass
class SwarmApp:
    engine: SwarmEngine
    tool_catalog: List[CapabilityDescriptor] = field(default_factory=list)
    mcp_manager: Optional[MCPServerManager] = None

    async def aclose(self) -> None:
        await self.engine.aclose()
        if self.mcp_manager is not None:
            await self.mcp_manager.shutdown()


async def build_swarm_app(
    settings: Optional[Settings] = None,
    *,
    event_sink: Optional[EventSink] = None,
    checkpointer=None,
    discover_tools: bool = True,
) -> SwarmApp:
    """Build the swarm application from settings.

    Args:
        settings: Application settings (loaded from .env when None)
        event_sink: Extra sink receiving every engine event
        checkpointer: LangGraph checkpointer (MemorySaver when None)
        discover_tools: Start MCP servers marked ``discover: true`` to list their tools

    Returns:
        SwarmApp with the engine, the resolved tool catalog and the MCP manager
    """
    # ========== Step 1: Settings ==========
    settings = settings or get_settings()

    # ========== Step 2: Model resolver ==========
    model_resolver = build_model_resolver(settings)

    # ========== Step 3: Capability providers ==========
    mcp_path = Path(settings.capabilities.mcp_config_path) if settings.capabilities.mcp_config_path else DEFAULT_MCP_CONFIG
    mcp_config = {"servers": {}, "settings": {}}
    if mcp_path.exists():
        mcp_config = load_mcp_config(mcp_path)
        LOGGER.info(f"[Swarm App] MCP config loaded: {mcp_path}")
    else:
        LOGGER.info(f"[Swarm App] No MCP config at {mcp_path}, running without tools")

    manager = MCPServerManager(mcp_config)
    capability_client = MCPCapabilityClient.from_settings(manager, settings)
    if discover_tools:
        tool_catalog = await discover_capabilities(mcp_config, manager)
    else:
        tool_catalog = load_declared_capabilities(mcp_config)
    LOGGER.info(f"[Swarm App] Tool catalog: {[d.name for d in tool_catalog]}")

    # ========== Step 4: Risk rules ==========
    rules_path = Path(settings.governance.risk_rules_path) if settings.governance.risk_rules_path else DEFAULT_RISK_RULES
    risk_assessor = RiskAssessor(rules_path if rules_path.exists() else None)

    # ========== Step 5: Event sinks ==========
    sinks: List[EventSink] = [LoggingEventSink()]
    if settings.observability.record_db_path:
        sinks.append(PersistenceEventSink(SqliteRecordStore(settings.observability.record_db_path)))
        LOGGER.info(f"[Swarm App] Execution records: {settings.observability.record_db_path}")
    if event_sink is not None:
        sinks.append(event_sink)

    # ========== Step 6: Engine ==========
    engine = SwarmEngine(
        model_resolver=model_resolver,
        capability_client=capability_client,
        risk_assessor=risk_assessor,
        settings=settings,
        checkpointer=checkpointer if checkpointer is not None else build_checkpointer(),
        event_sink=CompositeEventSink(sinks),
    )

    LOGGER.info("[Swarm App] Application built successfully")
    return SwarmApp(engine=engine, tool_catalog=tool_catalog, mcp_manager=manager)


__all__ = ["SwarmApp", "build_swarm_app"]

"""Factory for assembling the swarm LangGraph state machine.

    START → (entry) → coordinator → decomposer → selector → swarm_executor
                                                               ↓   ↑
                          tool_approval → tool_execution → agent_completion
                                                               ↓
                                              swarm_executor → synthesizer → END

Every node that records ``failure`` or ``suspension`` routes to END; the
entry router picks the node to continue from on resume.
"""

from __future__ import annotations

import logging
from typing import Optional

from langgraph.graph import END, START, StateGraph

from swarmAgent.agents import AgentRegistry
from swarmAgent.config.settings import Settings
from swarmAgent.graph.nodes import (
    KnowledgeRetriever,
    build_agent_completion_node,
    build_coordinator_node,
    build_decomposer_node,
    build_selector_node,
    build_swarm_executor_node,
    build_synthesizer_node,
    build_tool_approval_node,
    build_tool_execution_node,
)
from swarmAgent.graph.nodes.common import Clock, default_clock
from swarmAgent.graph.nodes.swarm_executor import AgentListener
from swarmAgent.graph.routing import (
    END_ROUTE,
    route_after_approval,
    route_after_completion,
    route_after_coordinator,
    route_after_decomposer,
    route_after_execution,
    route_after_selector,
    route_after_tool_execution,
    route_entry,
)
from swarmAgent.graph.state import WorkflowState
from swarmAgent.hitl.risk import RiskAssessor
from swarmAgent.tools.capability import CapabilityClient

LOGGER = logging.getLogger(__name__)

NODE_NAMES = (
    "coordinator",
    "decomposer",
    "selector",
    "swarm_executor",
    "tool_approval",
    "tool_execution",
    "agent_completion",
    "synthesizer",
)


def build_swarm_graph(
    *,
    model_resolver,
    agent_registry: AgentRegistry,
    capability_client: CapabilityClient,
    risk_assessor: RiskAssessor,
    settings: Settings,
    clock: Clock = default_clock,
    knowledge_retriever: Optional[KnowledgeRetriever] = None,
    on_agent_busy: Optional[AgentListener] = None,
    checkpointer=None,
):
    """Compose the swarm graph.

    Args:
        model_resolver: Maps a per-execution model config to a ModelClient
        agent_registry: Role catalog
        capability_client: Runs approved tool calls
        risk_assessor: Classifies tool requests
        settings: Application settings
        clock: Time source (epoch seconds)
        knowledge_retriever: Optional async retriever for task context
        on_agent_busy: Called when an agent starts a model turn
        checkpointer: LangGraph checkpointer (required for suspend/resume)

    Returns:
        Compiled LangGraph application
    """

    # ========== Build nodes ==========
    nodes = {
        "coordinator": build_coordinator_node(
            agent_registry=agent_registry,
            knowledge_retriever=knowledge_retriever,
        ),
        "decomposer": build_decomposer_node(
            model_resolver=model_resolver,
            agent_registry=agent_registry,
            clock=clock,
        ),
        "selector": build_selector_node(
            agent_registry=agent_registry,
            default_role=settings.swarm.default_role,
        ),
        "swarm_executor": build_swarm_executor_node(
            model_resolver=model_resolver,
            agent_registry=agent_registry,
            risk_assessor=risk_assessor,
            clock=clock,
            on_agent_busy=on_agent_busy,
        ),
        "tool_approval": build_tool_approval_node(
            approval_timeout_seconds=settings.governance.approval_timeout_seconds,
            auto_approve_risk=settings.governance.auto_approve_risk,
            clock=clock,
        ),
        "tool_execution": build_tool_execution_node(
            capability_client=capability_client,
            tool_retry_budget=settings.swarm.tool_retry_budget,
            clock=clock,
        ),
        "agent_completion": build_agent_completion_node(clock=clock),
        "synthesizer": build_synthesizer_node(
            model_resolver=model_resolver,
            agent_registry=agent_registry,
            clock=clock,
        ),
    }

    # ========== Build graph ==========
    graph = StateGraph(WorkflowState)
    for name in NODE_NAMES:
        graph.add_node(name, nodes[name])

    # ========== Routing ==========
    # Entry point depends on the checkpointed phase
    graph.add_conditional_edges(
        START,
        route_entry,
        {name: name for name in NODE_NAMES} | {END_ROUTE: END},
    )

    graph.add_conditional_edges(
        "coordinator",
        route_after_coordinator,
        {"decomposer": "decomposer", END_ROUTE: END},
    )
    graph.add_conditional_edges(
        "decomposer",
        route_after_decomposer,
        {"selector": "selector", END_ROUTE: END},
    )
    graph.add_conditional_edges(
        "selector",
        route_after_selector,
        {"swarm_executor": "swarm_executor", END_ROUTE: END},
    )

    # Executor advances one agent, then loops, asks for approval or synthesizes
    graph.add_conditional_edges(
        "swarm_executor",
        route_after_execution,
        {
            "swarm_executor": "swarm_executor",
            "tool_approval": "tool_approval",
            "tool_execution": "tool_execution",
            "agent_completion": "agent_completion",
            "synthesizer": "synthesizer",
            END_ROUTE: END,
        },
    )

    # Approval gate suspends the run until decisions arrive
    graph.add_conditional_edges(
        "tool_approval",
        route_after_approval,
        {
            "tool_execution": "tool_execution",
            "agent_completion": "agent_completion",
            END_ROUTE: END,
        },
    )

    graph.add_conditional_edges(
        "tool_execution",
        route_after_tool_execution,
        {"agent_completion": "agent_completion", END_ROUTE: END},
    )

    graph.add_conditional_edges(
        "agent_completion",
        route_after_completion,
        {
            "tool_approval": "tool_approval",
            "tool_execution": "tool_execution",
            "swarm_executor": "swarm_executor",
            "synthesizer": "synthesizer",
            END_ROUTE: END,
        },
    )

    # Synthesizer either completes the run or suspends on a deferred model
    graph.add_edge("synthesizer", END)

    # ========== Compile ==========
    if checkpointer is None:
        LOGGER.warning("Swarm graph compiled without a checkpointer, executions cannot be resumed")
    return graph.compile(checkpointer=checkpointer)


__all__ = ["NODE_NAMES", "build_swarm_graph"]

"""Conditional routing helpers for the swarm graph.

    START → (entry) → coordinator → decomposer → selector → swarm_executor
    swarm_executor ⇄ {tool_approval → tool_execution → agent_completion}
    swarm_executor → synthesizer → END

Every router ends the run when a node set ``failure``. ``completed`` is only
reached through the synthesizer.
"""

from __future__ import annotations

import logging
from typing import Literal

from swarmAgent.graph.state import (
    AgentStatus,
    ApprovalStatus,
    Phase,
    WorkflowState,
    agents_with_status,
    approvals_with_status,
    is_terminal,
    unmerged_settled_approvals,
)
from swarmAgent.utils.logging_utils import log_routing_decision

LOGGER = logging.getLogger(__name__)

END_ROUTE = "end"

_PHASE_ENTRY = {
    Phase.INITIALIZATION.value: "coordinator",
    Phase.DECOMPOSITION.value: "decomposer",
    Phase.AGENT_SELECTION.value: "selector",
    Phase.SYNTHESIS.value: "synthesizer",
    Phase.VALIDATION.value: "synthesizer",
}


def _has_failure(state: WorkflowState, from_node: str) -> bool:
    if state.get("failure"):
        log_routing_decision(LOGGER, from_node, END_ROUTE, f"Failure recorded: {state['failure']}")
        return True
    return False


def _work_route(state: WorkflowState) -> str:
    """Next node for the approval/execution loop, or "" if none applies."""
    if approvals_with_status(state, ApprovalStatus.PENDING.value):
        return "tool_approval"
    if approvals_with_status(state, ApprovalStatus.APPROVED.value):
        return "tool_execution"
    if unmerged_settled_approvals(state):
        return "agent_completion"
    return ""


def route_entry(
    state: WorkflowState,
) -> Literal["coordinator", "decomposer", "selector", "swarm_executor", "tool_approval",
             "tool_execution", "agent_completion", "synthesizer", "end"]:
    """Pick the first node of a run from the checkpointed phase.

    Fresh executions start at the coordinator; resumed ones continue where
    the previous run stopped.
    """
    if _has_failure(state, "START"):
        return END_ROUTE

    phase = state.get("current_phase") or Phase.INITIALIZATION.value
    if phase == Phase.COMPLETED.value:
        decision, reason = END_ROUTE, "Execution already completed"
    elif phase in _PHASE_ENTRY:
        decision, reason = _PHASE_ENTRY[phase], f"Resuming phase {phase}"
    else:
        decision = _work_route(state) or "swarm_executor"
        reason = f"Resuming execution loop at {decision}"

    log_routing_decision(LOGGER, "START", decision, reason)
    return decision


def route_after_execution(
    state: WorkflowState,
) -> Literal["swarm_executor", "tool_approval", "tool_execution", "agent_completion", "synthesizer", "end"]:
    """Route after the swarm executor advanced one agent.

    While more idle agents can still queue tool requests (below
    ``max_parallel_agents`` agents awaiting approval) the executor runs again
    so approvals are presented to the operator as one batch.
    """
    if _has_failure(state, "swarm_executor"):
        return END_ROUTE

    if state.get("suspension"):
        decision, reason = END_ROUTE, f"Suspended: {state['suspension'].get('reason')}"
    elif state.get("awaiting_tool_results"):
        decision, reason = END_ROUTE, "Agents busy, awaiting tool results"
    elif state.get("current_phase") == Phase.SYNTHESIS.value:
        decision, reason = "synthesizer", "All agents terminal"
    elif approvals_with_status(state, ApprovalStatus.PENDING.value):
        waiting = len(agents_with_status(state, AgentStatus.AWAITING_APPROVAL.value))
        cap = (state.get("limits") or {}).get("max_parallel_agents", 1)
        if agents_with_status(state, AgentStatus.IDLE.value) and waiting < cap:
            decision, reason = "swarm_executor", f"{waiting}/{cap} agents awaiting approval, advancing next agent"
        else:
            decision, reason = "tool_approval", "New tool requests need approval"
    else:
        decision = _work_route(state) or "swarm_executor"
        reason = "Continue agent loop" if decision == "swarm_executor" else f"Outstanding work for {decision}"

    log_routing_decision(LOGGER, "swarm_executor", decision, reason)
    return decision


def route_after_approval(state: WorkflowState) -> Literal["tool_execution", "agent_completion", "end"]:
    """Route after the approval gate: suspend or execute approved tools."""
    if _has_failure(state, "tool_approval"):
        return END_ROUTE

    if state.get("waiting_for_human_response"):
        decision, reason = END_ROUTE, "Waiting for human approval"
    elif approvals_with_status(state, ApprovalStatus.APPROVED.value):
        decision, reason = "tool_execution", "Approved tool calls ready"
    else:
        decision, reason = "agent_completion", "Only denied or expired requests to merge"

    log_routing_decision(LOGGER, "tool_approval", decision, reason)
    return decision


def route_after_tool_execution(state: WorkflowState) -> Literal["agent_completion", "end"]:
    if _has_failure(state, "tool_execution"):
        return END_ROUTE
    log_routing_decision(LOGGER, "tool_execution", "agent_completion", "Merge tool results into agents")
    return "agent_completion"


def route_after_completion(
    state: WorkflowState,
) -> Literal["tool_approval", "tool_execution", "swarm_executor", "synthesizer", "end"]:
    """Route after tool outcomes were merged back into their agents."""
    if _has_failure(state, "agent_completion"):
        return END_ROUTE

    if approvals_with_status(state, ApprovalStatus.PENDING.value):
        decision, reason = "tool_approval", "Requests still pending"
    elif approvals_with_status(state, ApprovalStatus.APPROVED.value):
        decision, reason = "tool_execution", "Approved requests not executed yet"
    else:
        cards = (state.get("active_agent_cards") or {}).values()
        open_agents = [card["role"] for card in cards if not is_terminal(card)]
        if open_agents or state.get("deferred_roles"):
            decision = "swarm_executor"
            reason = f"Non-terminal agents: {open_agents}, deferred: {state.get('deferred_roles') or []}"
        else:
            decision, reason = "synthesizer", "All agents terminal"

    log_routing_decision(LOGGER, "agent_completion", decision, reason)
    return decision


def _route_forward(state: WorkflowState, from_node: str, next_node: str) -> str:
    if _has_failure(state, from_node):
        return END_ROUTE
    if state.get("suspension"):
        log_routing_decision(LOGGER, from_node, END_ROUTE, f"Suspended: {state['suspension'].get('reason')}")
        return END_ROUTE
    log_routing_decision(LOGGER, from_node, next_node, f"Phase {state.get('current_phase')}")
    return next_node


def route_after_coordinator(state: WorkflowState) -> Literal["decomposer", "end"]:
    return _route_forward(state, "coordinator", "decomposer")


def route_after_decomposer(state: WorkflowState) -> Literal["selector", "end"]:
    return _route_forward(state, "decomposer", "selector")


def route_after_selector(state: WorkflowState) -> Literal["swarm_executor", "end"]:
    return _route_forward(state, "selector", "swarm_executor")

"""Agent completion handler: merges settled tool requests back into agents."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Set

from swarmAgent.graph.nodes.common import Clock, build_result, default_clock, outcome_note
from swarmAgent.graph.state import (
    AgentCard,
    AgentStatus,
    ApprovalStatus,
    WorkflowState,
    approvals_with_status,
    is_terminal,
    unmerged_settled_approvals,
)
from swarmAgent.utils.error_handler import with_error_boundary
from swarmAgent.utils.logging_utils import log_node_entry, log_node_exit

LOGGER = logging.getLogger(__name__)


def build_agent_completion_node(*, clock: Clock = default_clock):
    @with_error_boundary("agent_completion")
    def agent_completion_node(state: WorkflowState) -> WorkflowState:
        """Copy settled requests to history, feed outcomes to their agents.

        An agent with nothing outstanding goes from ``awaiting_approval``
        back to ``idle`` so the executor re-invokes it with the outcomes in
        context. Terminal agents without a result record get one here.
        """
        log_node_entry(LOGGER, "agent_completion", state)
        now = clock()

        settled = unmerged_settled_approvals(state)
        context = state.get("agent_context") or {}
        notes: Dict[str, List[str]] = {}
        for request in settled:
            role = request["agent_role"]
            notes.setdefault(role, list(context.get(role, []))).append(outcome_note(request))

        outstanding: Set[str] = {
            item["agent_role"]
            for item in approvals_with_status(state, ApprovalStatus.PENDING.value, ApprovalStatus.APPROVED.value)
        }

        cards = state.get("active_agent_cards") or {}
        card_updates: Dict[str, AgentCard] = {}
        for role, card in cards.items():
            if card.get("status") == AgentStatus.AWAITING_APPROVAL.value and role not in outstanding:
                card_updates[role] = {**card, "status": AgentStatus.IDLE.value}
                LOGGER.info(f"{role} has all tool outcomes, returning to idle")

        results = state.get("agent_results") or {}
        new_results = {}
        for role, card in cards.items():
            if is_terminal(card) and role not in results:
                new_results[role] = build_result(
                    state,
                    card,
                    result="",
                    now=now,
                    error=f"{role} agent failed after repeated tool failures"
                    if card.get("status") == AgentStatus.FAILED.value else None,
                )

        updates: Dict[str, Any] = {}
        if settled:
            updates["approval_history"] = [dict(item) for item in settled]
        if notes:
            updates["agent_context"] = notes
        if card_updates:
            updates["active_agent_cards"] = card_updates
        if new_results:
            updates["agent_results"] = new_results

        log_node_exit(LOGGER, "agent_completion", updates)
        return updates

    return agent_completion_node

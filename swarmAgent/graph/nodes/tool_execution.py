"""Tool executor: runs approved requests against capability providers.

Provider failures, timeouts and unknown providers become ``failed``
requests; they never escape the node. Requests that already ran are never
run again.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Set

from swarmAgent.graph.nodes.common import Clock, default_clock
from swarmAgent.graph.state import (
    AgentCard,
    AgentStatus,
    ApprovalStatus,
    ToolApprovalRequest,
    WorkflowState,
    approvals_with_status,
)
from swarmAgent.tools.capability import CapabilityClient
from swarmAgent.tools.catalog import ToolTable
from swarmAgent.utils.error_handler import ToolExecutionError, with_error_boundary
from swarmAgent.utils.logging_utils import log_node_entry, log_node_exit

LOGGER = logging.getLogger(__name__)

AGENT_FAILED_ERROR = "owning agent failed"


def build_tool_execution_node(
    *,
    capability_client: CapabilityClient,
    tool_retry_budget: int,
    clock: Clock = default_clock,
):
    @with_error_boundary("tool_execution")
    async def tool_execution_node(state: WorkflowState) -> WorkflowState:
        log_node_entry(LOGGER, "tool_execution", state)

        tool_table = ToolTable.from_state(state.get("tool_table"))
        cards = state.get("active_agent_cards") or {}
        card_updates: Dict[str, AgentCard] = {}
        request_updates: List[ToolApprovalRequest] = []
        errors: List[str] = []
        failed_roles: Set[str] = set()

        for request in approvals_with_status(state, ApprovalStatus.APPROVED.value):
            role = request["agent_role"]
            if role in failed_roles:
                request_updates.append({
                    "id": request["id"],
                    "status": ApprovalStatus.DENIED.value,
                    "error": AGENT_FAILED_ERROR,
                })
                continue

            call = request["tool_call"]
            descriptor = tool_table.get(call["name"])
            provider_tool = descriptor.provider_tool_name if descriptor else call["name"]
            started = time.perf_counter()
            try:
                result = await capability_client.call_tool(
                    request.get("provider_id", ""), provider_tool, dict(call.get("arguments") or {})
                )
            except Exception as e:
                duration_ms = (time.perf_counter() - started) * 1000
                error = e if isinstance(e, ToolExecutionError) else ToolExecutionError(call["name"], request.get("provider_id", ""), str(e))
                LOGGER.warning(f"Tool execution failed for {role}: {error}")
                request_updates.append({
                    "id": request["id"],
                    "status": ApprovalStatus.FAILED.value,
                    "error": str(error),
                    "duration_ms": duration_ms,
                })
                errors.append(str(error))

                card = card_updates.get(role) or dict(cards.get(role) or {})
                card["tool_failures"] = card.get("tool_failures", 0) + 1
                if card["tool_failures"] > tool_retry_budget:
                    LOGGER.warning(f"{role} exceeded tool retry budget ({tool_retry_budget}), marking failed")
                    card["status"] = AgentStatus.FAILED.value
                    failed_roles.add(role)
                card_updates[role] = card
                continue

            duration_ms = (time.perf_counter() - started) * 1000
            request_updates.append({
                "id": request["id"],
                "status": ApprovalStatus.EXECUTED.value,
                "result": result,
                "duration_ms": duration_ms,
            })
            LOGGER.info(f"Executed {call['name']} for {role} in {duration_ms:.0f}ms")

        # Requests still waiting for a decision are dropped for failed agents
        for request in approvals_with_status(state, ApprovalStatus.PENDING.value):
            if request["agent_role"] in failed_roles:
                request_updates.append({
                    "id": request["id"],
                    "status": ApprovalStatus.DENIED.value,
                    "error": AGENT_FAILED_ERROR,
                    "decided_at": clock(),
                })

        updates: Dict[str, Any] = {"pending_approvals": request_updates}
        if card_updates:
            updates["active_agent_cards"] = card_updates
        if errors:
            updates["errors"] = errors
        log_node_exit(LOGGER, "tool_execution", updates)
        return updates

    return tool_execution_node

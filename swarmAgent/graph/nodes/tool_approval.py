"""Tool approval gate: the human-in-the-loop suspension point."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from swarmAgent.graph.nodes.common import Clock, default_clock
from swarmAgent.graph.signals import TOOL_APPROVAL, suspend_patch
from swarmAgent.graph.state import ApprovalStatus, ToolApprovalRequest, WorkflowState, approvals_with_status
from swarmAgent.hitl.decisions import expire_stale
from swarmAgent.hitl.risk import risk_at_most
from swarmAgent.utils.error_handler import with_error_boundary
from swarmAgent.utils.logging_utils import log_node_entry, log_node_exit

LOGGER = logging.getLogger(__name__)


def build_tool_approval_node(
    *,
    approval_timeout_seconds: float,
    auto_approve_risk: Optional[str] = None,
    clock: Clock = default_clock,
):
    """Build the approval gate.

    Args:
        approval_timeout_seconds: Pending requests older than this are denied
        auto_approve_risk: Highest risk approved without a human, None to always ask
        clock: Time source (epoch seconds)
    """

    @with_error_boundary("tool_approval")
    def tool_approval_node(state: WorkflowState) -> WorkflowState:
        log_node_entry(LOGGER, "tool_approval", state)
        now = clock()

        pending = approvals_with_status(state, ApprovalStatus.PENDING.value)
        changes: List[ToolApprovalRequest] = expire_stale(pending, now, approval_timeout_seconds)
        expired_ids = {item["id"] for item in changes}

        auto_approved = [
            {"id": item["id"], "status": ApprovalStatus.APPROVED.value, "decided_at": now}
            for item in pending
            if item["id"] not in expired_ids and risk_at_most(item.get("risk", "high"), auto_approve_risk)
        ]
        if auto_approved:
            LOGGER.info(f"Auto-approved {len(auto_approved)} request(s) at or below {auto_approve_risk} risk")
        changes.extend(auto_approved)

        decided = expired_ids | {item["id"] for item in auto_approved}
        remaining = [item for item in pending if item["id"] not in decided]
        has_approved = bool(auto_approved or approvals_with_status(state, ApprovalStatus.APPROVED.value))

        updates: Dict[str, Any] = {}
        if changes:
            updates["pending_approvals"] = changes

        if remaining and not has_approved:
            LOGGER.info(
                f"Suspending for human approval of {len(remaining)} request(s): "
                f"{[(item['tool_call']['name'], item.get('risk')) for item in remaining]}"
            )
            updates.update(suspend_patch(TOOL_APPROVAL, [item["id"] for item in remaining], now))
        else:
            updates["waiting_for_human_response"] = False

        log_node_exit(LOGGER, "tool_approval", updates)
        return updates

    return tool_approval_node

"""Human approval decisions and the approval expiry policy.

A decision is turned into a state patch that goes through the normal merge
rules, so it can be fed to the graph as input when an execution resumes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from swarmAgent.graph.signals import clear_patch
from swarmAgent.graph.state import ApprovalStatus, ToolApprovalRequest

LOGGER = logging.getLogger(__name__)

EXPIRED_ERROR = "approval expired"
DENIED_ERROR = "denied by operator"


class ApprovalDecision(BaseModel):
    """Operator decision for one pending tool request.

    ``execution_result`` lets a host that ran the tool itself report the
    outcome; the request is then recorded as executed without a provider call.
    """

    id: str
    approved: bool
    timestamp: Optional[float] = None
    execution_result: Optional[Any] = Field(default=None)


@dataclass
class DecisionOutcome:
    """Result of applying decisions to a state snapshot."""

    patch: Dict[str, Any] = field(default_factory=dict)
    applied: List[str] = field(default_factory=list)
    already_settled: List[ToolApprovalRequest] = field(default_factory=list)
    unknown_ids: List[str] = field(default_factory=list)


def is_expired(request: Mapping[str, Any], now: float, ttl_seconds: float) -> bool:
    """Pending requests older than ``ttl_seconds`` are expired."""
    if request.get("status") != ApprovalStatus.PENDING.value:
        return False
    return now - float(request.get("timestamp") or now) > ttl_seconds


def expire_stale(approvals: Sequence[Mapping[str, Any]], now: float, ttl_seconds: float) -> List[ToolApprovalRequest]:
    """Return denial updates for every expired pending request."""
    expired = []
    for request in approvals:
        if is_expired(request, now, ttl_seconds):
            LOGGER.info(f"Approval {request['id']} ({request['tool_call']['name']}) expired after {ttl_seconds:.0f}s")
            expired.append({
                "id": request["id"],
                "status": ApprovalStatus.DENIED.value,
                "error": EXPIRED_ERROR,
                "decided_at": now,
            })
    return expired


def _decision_update(request: Mapping[str, Any], decision: ApprovalDecision, now: float) -> ToolApprovalRequest:
    decided_at = decision.timestamp if decision.timestamp is not None else now
    if not decision.approved:
        return {"id": request["id"], "status": ApprovalStatus.DENIED.value, "error": DENIED_ERROR, "decided_at": decided_at}
    if decision.execution_result is not None:
        return {
            "id": request["id"],
            "status": ApprovalStatus.EXECUTED.value,
            "result": decision.execution_result,
            "decided_at": decided_at,
            "duration_ms": 0.0,
        }
    return {"id": request["id"], "status": ApprovalStatus.APPROVED.value, "decided_at": decided_at}


def build_decision_patch(
    state: Mapping[str, Any],
    decisions: Sequence[ApprovalDecision],
    *,
    now: float,
    ttl_seconds: float,
) -> DecisionOutcome:
    """Apply operator decisions to the pending approvals of ``state``.

    - Unknown ids are reported, not raised.
    - Requests already decided keep their outcome; repeating a decision is a no-op.
    - A decision that arrives after the request expired is recorded as a denial.
    - Undecided requests stay pending.

    The returned patch always lifts the current suspension.
    """
    outcome = DecisionOutcome()
    by_id = {item["id"]: item for item in state.get("pending_approvals") or []}
    updates: List[ToolApprovalRequest] = []

    for decision in decisions:
        request = by_id.get(decision.id)
        if request is None:
            LOGGER.warning(f"Decision for unknown approval id {decision.id}")
            outcome.unknown_ids.append(decision.id)
            continue
        if request.get("status") != ApprovalStatus.PENDING.value:
            LOGGER.info(f"Approval {decision.id} already {request.get('status')}, decision ignored")
            outcome.already_settled.append(dict(request))
            continue
        if is_expired(request, now, ttl_seconds):
            updates.extend(expire_stale([request], now, ttl_seconds))
        else:
            updates.append(_decision_update(request, decision, now))
        outcome.applied.append(decision.id)

    outcome.patch = dict(clear_patch())
    if updates:
        outcome.patch["pending_approvals"] = updates
    return outcome

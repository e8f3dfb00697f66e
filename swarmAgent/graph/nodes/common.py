"""Helpers shared by the swarm nodes."""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from swarmAgent.graph.state import (
    AgentCard,
    AgentExecutionResult,
    ApprovalStatus,
    IMMUTABLE_APPROVAL_STATUSES,
    Phase,
    ToolExecution,
)

Clock = Callable[[], float]

NOTE_MAX_LENGTH = 2000


def default_clock() -> float:
    return time.time()


def phase_patch(state: Mapping[str, Any], phase: Phase) -> Dict[str, Any]:
    """Move to ``phase``, recording it in the phase history once."""
    if state.get("current_phase") == phase.value:
        return {}
    return {"current_phase": phase.value, "phase_history": [phase.value]}


def tool_executions_for(state: Mapping[str, Any], role: str) -> List[ToolExecution]:
    """ToolExecution records of every executed or failed request owned by ``role``."""
    seen = set()
    executions: List[ToolExecution] = []
    for request in list(state.get("approval_history") or []) + list(state.get("pending_approvals") or []):
        if request.get("agent_role") != role or request["id"] in seen:
            continue
        if request.get("status") not in IMMUTABLE_APPROVAL_STATUSES:
            continue
        seen.add(request["id"])
        executions.append({
            "approval_id": request["id"],
            "tool_name": request["tool_call"]["name"],
            "provider_id": request.get("provider_id", ""),
            "arguments": dict(request["tool_call"].get("arguments") or {}),
            "status": request["status"],
            "result": request.get("result"),
            "error": request.get("error"),
            "duration_ms": request.get("duration_ms"),
        })
    return executions


def build_result(
    state: Mapping[str, Any],
    card: AgentCard,
    *,
    result: str,
    now: float,
    error: Optional[str] = None,
) -> AgentExecutionResult:
    """Final result record for an agent that reached a terminal status."""
    return {
        "agent_card": dict(card),
        "result": result,
        "tool_executions": tool_executions_for(state, card["role"]),
        "status": card["status"],
        "started_at": card.get("started_at"),
        "ended_at": now,
        "error": error,
    }


def outcome_note(request: Mapping[str, Any]) -> str:
    """One-line description of a settled request, fed back to its agent."""
    call = request["tool_call"]
    args = json.dumps(call.get("arguments") or {}, ensure_ascii=False, default=str)
    status = request.get("status")
    if status == ApprovalStatus.EXECUTED.value:
        body = f"returned: {request.get('result')}"
    elif status == ApprovalStatus.DENIED.value:
        body = f"was not run ({request.get('error') or 'denied'}); continue without it"
    else:
        body = f"failed: {request.get('error')}"
    note = f"{call['name']}({args}) {body}"
    if len(note) > NOTE_MAX_LENGTH:
        note = note[:NOTE_MAX_LENGTH] + "... (truncated)"
    return note

"""Suspension signals.

Nodes never raise to pause a run. They record a ``suspension`` entry in state
and the router sends the graph to END; the engine then classifies the final
state into ``Continue`` or ``Suspend``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

TOOL_APPROVAL = "tool_approval"
MODEL_PENDING = "model_pending"
AWAITING_TOOL_RESULTS = "awaiting_tool_results"


@dataclass(frozen=True)
class Continue:
    """The run reached a terminal phase or can be re-entered without input."""


@dataclass(frozen=True)
class Suspend:
    """The run stopped and needs something from outside before it continues."""

    reason: str
    approval_ids: Tuple[str, ...] = ()

    @property
    def needs_human(self) -> bool:
        return self.reason == TOOL_APPROVAL


Signal = Union[Continue, Suspend]


def suspend_patch(reason: str, approval_ids: Sequence[str], now: float) -> Dict[str, Any]:
    """State patch a node returns to suspend the run."""
    return {
        "suspension": {"reason": reason, "approval_ids": list(approval_ids), "since": now},
        "waiting_for_human_response": reason == TOOL_APPROVAL,
    }


def clear_patch() -> Dict[str, Any]:
    """State patch that lifts any suspension before re-entering the graph."""
    return {
        "suspension": None,
        "waiting_for_human_response": False,
        "awaiting_tool_results": False,
    }


def classify(state: Mapping[str, Any]) -> Signal:
    """Turn a state snapshot into a control signal for the engine."""
    suspension = state.get("suspension")
    if suspension:
        return Suspend(
            reason=suspension.get("reason", TOOL_APPROVAL),
            approval_ids=tuple(suspension.get("approval_ids") or ()),
        )
    if state.get("waiting_for_human_response"):
        pending: List[str] = [
            item["id"] for item in state.get("pending_approvals") or [] if item.get("status") == "pending"
        ]
        return Suspend(reason=TOOL_APPROVAL, approval_ids=tuple(pending))
    if state.get("awaiting_tool_results"):
        return Suspend(reason=AWAITING_TOOL_RESULTS)
    return Continue()

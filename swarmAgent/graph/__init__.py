"""LangGraph workflow for the swarm: state, routing and nodes."""

from .state import AgentStatus, ApprovalStatus, Phase, WorkflowState, apply_patch, initial_state

__all__ = [
    "AgentStatus",
    "ApprovalStatus",
    "Phase",
    "WorkflowState",
    "apply_patch",
    "initial_state",
]

"""Shared state definition for the swarm LangGraph flow.

Every value except the message log is JSON-native so any LangGraph
checkpointer can persist it. Nodes return partial states (patches); the
per-field merge rules below are used both as LangGraph channel reducers and
by ``apply_patch`` when the engine mirrors state outside the graph.
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, TypedDict, Annotated

from langchain_core.messages import BaseMessage
from langgraph.graph import add_messages

LOGGER = logging.getLogger(__name__)


# ========== Enumerations ==========

class Phase(str, Enum):
    INITIALIZATION = "initialization"
    DECOMPOSITION = "decomposition"
    AGENT_SELECTION = "agent_selection"
    EXECUTION = "execution"
    SYNTHESIS = "synthesis"
    VALIDATION = "validation"
    COMPLETED = "completed"


class AgentStatus(str, Enum):
    IDLE = "idle"
    BUSY = "busy"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    FAILED = "failed"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXECUTED = "executed"
    FAILED = "failed"


TERMINAL_AGENT_STATUSES = frozenset({AgentStatus.COMPLETED.value, AgentStatus.FAILED.value})
IMMUTABLE_APPROVAL_STATUSES = frozenset({ApprovalStatus.EXECUTED.value, ApprovalStatus.FAILED.value})
SETTLED_APPROVAL_STATUSES = IMMUTABLE_APPROVAL_STATUSES | {ApprovalStatus.DENIED.value}


# ========== Entities ==========

class AgentCard(TypedDict, total=False):
    id: str
    role: str
    name: str
    expertise: List[str]
    status: str  # AgentStatus value
    current_task: Optional[str]
    tool_rounds: int
    tool_failures: int
    started_at: Optional[float]
    model_deferred: bool  # Busy with a model call that has not answered yet


class SubTask(TypedDict, total=False):
    id: str
    description: str
    assigned_role: Optional[str]  # Suggested by the decomposer
    priority: int  # Lower runs first


class ToolCallPayload(TypedDict, total=False):
    name: str
    arguments: Dict[str, Any]
    call_id: Optional[str]


class ToolApprovalRequest(TypedDict, total=False):
    id: str
    agent_role: str
    agent_id: str
    tool_call: ToolCallPayload
    context: str
    timestamp: float
    risk: str  # low / medium / high
    status: str  # ApprovalStatus value
    provider_id: str
    result: Optional[Any]
    error: Optional[str]
    decided_at: Optional[float]
    duration_ms: Optional[float]


class ToolExecution(TypedDict, total=False):
    approval_id: str
    tool_name: str
    provider_id: str
    arguments: Dict[str, Any]
    status: str
    result: Optional[Any]
    error: Optional[str]
    duration_ms: Optional[float]


class AgentExecutionResult(TypedDict, total=False):
    agent_card: AgentCard
    result: str
    tool_executions: List[ToolExecution]
    status: str
    started_at: Optional[float]
    ended_at: Optional[float]
    error: Optional[str]


class KnowledgeChunk(TypedDict, total=False):
    id: str
    content: str
    source: str
    relevance: float


class Suspension(TypedDict, total=False):
    reason: str  # tool_approval / model_pending / awaiting_tool_results
    approval_ids: List[str]
    since: float


# ========== Merge rules ==========

def concat_list(left: Optional[List[Any]], right: Optional[List[Any]]) -> List[Any]:
    """Append-only list channel."""
    return list(left or []) + list(right or [])


def merge_dict(left: Optional[Dict[str, Any]], right: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Shallow key merge, right side wins."""
    merged = dict(left or {})
    merged.update(right or {})
    return merged


def merge_agent_cards(
    left: Optional[Dict[str, AgentCard]],
    right: Optional[Dict[str, AgentCard]],
) -> Dict[str, AgentCard]:
    """Merge cards by role; a terminal card never changes status again."""
    merged = dict(left or {})
    for role, card in (right or {}).items():
        existing = merged.get(role)
        if existing is None:
            merged[role] = dict(card)
            continue
        if existing.get("status") in TERMINAL_AGENT_STATUSES and card.get("status", existing.get("status")) != existing.get("status"):
            LOGGER.warning(
                f"Ignoring status change for terminal agent {role}: "
                f"{existing.get('status')} → {card.get('status')}"
            )
            continue
        merged[role] = {**existing, **card}
    return merged


def merge_agent_results(
    left: Optional[Dict[str, AgentExecutionResult]],
    right: Optional[Dict[str, AgentExecutionResult]],
) -> Dict[str, AgentExecutionResult]:
    """Merge results by role; a recorded result is never replaced."""
    merged = dict(left or {})
    for role, result in (right or {}).items():
        if role in merged:
            LOGGER.debug(f"Keeping existing result for {role}")
            continue
        merged[role] = dict(result)
    return merged


def upsert_approvals(
    left: Optional[List[ToolApprovalRequest]],
    right: Optional[List[ToolApprovalRequest]],
) -> List[ToolApprovalRequest]:
    """Upsert approval requests by id, keeping first-seen order.

    Executed and failed requests are immutable; updates to them are dropped.
    """
    merged: List[ToolApprovalRequest] = [dict(item) for item in (left or [])]
    index = {item["id"]: pos for pos, item in enumerate(merged)}
    for item in right or []:
        pos = index.get(item["id"])
        if pos is None:
            index[item["id"]] = len(merged)
            merged.append(dict(item))
            continue
        existing = merged[pos]
        if existing.get("status") in IMMUTABLE_APPROVAL_STATUSES:
            LOGGER.debug(f"Approval {item['id']} is {existing.get('status')}, update dropped")
            continue
        merged[pos] = {**existing, **item}
    return merged


def merge_messages(left: Optional[List[BaseMessage]], right: Optional[List[BaseMessage]]) -> List[BaseMessage]:
    return add_messages(list(left or []), list(right or []))


MERGE_RULES: Dict[str, Callable[[Any, Any], Any]] = {
    "messages": merge_messages,
    "errors": concat_list,
    "phase_history": concat_list,
    "approval_history": concat_list,
    "active_agent_cards": merge_agent_cards,
    "available_agent_cards": merge_agent_cards,
    "agent_results": merge_agent_results,
    "agent_context": merge_dict,
    "assignments": merge_dict,
    "tool_table": merge_dict,
    "pending_approvals": upsert_approvals,
}


def apply_patch(state: Mapping[str, Any], patch: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return a new state with ``patch`` merged into ``state``.

    Fields listed in ``MERGE_RULES`` use their rule; every other field is
    last-write-wins. Neither argument is modified.
    """
    merged = dict(state)
    for key, value in (patch or {}).items():
        rule = MERGE_RULES.get(key)
        merged[key] = rule(merged.get(key), value) if rule else value
    return merged


# ========== Workflow state ==========

class WorkflowState(TypedDict, total=False):
    """State threaded through every swarm node for one execution."""

    # ========== Task ==========
    original_task: str
    messages: Annotated[List[BaseMessage], merge_messages]
    current_phase: str  # Phase value
    phase_history: Annotated[List[str], concat_list]
    subtasks: List[SubTask]
    assignments: Annotated[Dict[str, str], merge_dict]  # subtask id → role
    knowledge: List[KnowledgeChunk]

    # ========== Agents ==========
    available_agent_cards: Annotated[Dict[str, AgentCard], merge_agent_cards]
    active_agent_cards: Annotated[Dict[str, AgentCard], merge_agent_cards]
    deferred_roles: List[str]
    agent_results: Annotated[Dict[str, AgentExecutionResult], merge_agent_results]
    agent_context: Annotated[Dict[str, List[str]], merge_dict]  # role → notes for re-invocation
    iterations: int

    # ========== Approvals ==========
    pending_approvals: Annotated[List[ToolApprovalRequest], upsert_approvals]
    approval_history: Annotated[List[ToolApprovalRequest], concat_list]
    waiting_for_human_response: bool
    awaiting_tool_results: bool
    suspension: Optional[Suspension]

    # ========== Outcome ==========
    errors: Annotated[List[str], concat_list]
    failure: Optional[str]
    synthesized_result: Optional[str]
    confidence: float

    # ========== Execution context ==========
    execution_id: str
    thread_id: str
    limits: Dict[str, int]
    model_config: Dict[str, Any]
    tool_table: Annotated[Dict[str, Dict[str, Any]], merge_dict]  # tool name → descriptor


# ========== Constructors ==========

def new_agent_card(role: str, name: str, expertise: Iterable[str]) -> AgentCard:
    return {
        "id": f"{role}-{uuid.uuid4().hex[:8]}",
        "role": role,
        "name": name,
        "expertise": list(expertise),
        "status": AgentStatus.IDLE.value,
        "current_task": None,
        "tool_rounds": 0,
        "tool_failures": 0,
        "started_at": None,
        "model_deferred": False,
    }


def initial_state(
    *,
    task: str,
    thread_id: str,
    execution_id: str,
    limits: Dict[str, int],
    model_config: Optional[Dict[str, Any]] = None,
    tool_table: Optional[Dict[str, Dict[str, Any]]] = None,
) -> WorkflowState:
    """Build the complete state for a fresh execution."""
    return {
        "original_task": task,
        "messages": [],
        "current_phase": Phase.INITIALIZATION.value,
        "phase_history": [Phase.INITIALIZATION.value],
        "subtasks": [],
        "assignments": {},
        "knowledge": [],
        "available_agent_cards": {},
        "active_agent_cards": {},
        "deferred_roles": [],
        "agent_results": {},
        "agent_context": {},
        "iterations": 0,
        "pending_approvals": [],
        "approval_history": [],
        "waiting_for_human_response": False,
        "awaiting_tool_results": False,
        "suspension": None,
        "errors": [],
        "failure": None,
        "synthesized_result": None,
        "confidence": 0.0,
        "execution_id": execution_id,
        "thread_id": thread_id,
        "limits": dict(limits),
        "model_config": dict(model_config or {}),
        "tool_table": dict(tool_table or {}),
    }


# ========== Queries ==========

def approvals_with_status(state: Mapping[str, Any], *statuses: str) -> List[ToolApprovalRequest]:
    return [item for item in state.get("pending_approvals") or [] if item.get("status") in statuses]


def unmerged_settled_approvals(state: Mapping[str, Any]) -> List[ToolApprovalRequest]:
    """Settled requests whose outcome has not reached ``approval_history`` yet."""
    merged_ids = {item["id"] for item in state.get("approval_history") or []}
    return [
        item
        for item in approvals_with_status(state, *SETTLED_APPROVAL_STATUSES)
        if item["id"] not in merged_ids
    ]


def agents_with_status(state: Mapping[str, Any], *statuses: str) -> List[AgentCard]:
    """Active cards in role insertion order with one of ``statuses``."""
    return [card for card in (state.get("active_agent_cards") or {}).values() if card.get("status") in statuses]


def is_terminal(card: Mapping[str, Any]) -> bool:
    return card.get("status") in TERMINAL_AGENT_STATUSES

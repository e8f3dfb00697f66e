"""Swarm executor: advances exactly one agent per invocation.

Scheduling is cooperative. The first idle agent (role insertion order) gets
one model turn; its answer either completes it or turns into tool approval
requests. A deferred model call leaves the agent ``busy`` with
``model_deferred`` set so the next run retries the same turn.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional

from langchain_core.messages import AIMessage, HumanMessage

from swarmAgent.agents import AgentRegistry
from swarmAgent.graph.nodes.common import Clock, build_result, default_clock, phase_patch
from swarmAgent.graph.nodes.selector import activate_card
from swarmAgent.graph.prompts import build_agent_task_prompt
from swarmAgent.graph.signals import MODEL_PENDING, suspend_patch
from swarmAgent.graph.state import (
    AgentCard,
    AgentStatus,
    ApprovalStatus,
    Phase,
    ToolApprovalRequest,
    WorkflowState,
    agents_with_status,
    approvals_with_status,
)
from swarmAgent.hitl.risk import RiskAssessor
from swarmAgent.models import ModelDeferred, message_text
from swarmAgent.tools.catalog import ToolTable
from swarmAgent.utils.error_handler import AgentExecutionError, handle_model_error, with_error_boundary
from swarmAgent.utils.logging_utils import log_node_entry, log_node_exit, log_prompt

LOGGER = logging.getLogger(__name__)

AgentListener = Callable[[Mapping[str, Any], AgentCard], None]

ITERATION_LIMIT_ERROR = "iteration limit reached"


def _runnable_agents(state: WorkflowState) -> List[AgentCard]:
    cards = (state.get("active_agent_cards") or {}).values()
    return [
        card for card in cards
        if card.get("status") == AgentStatus.IDLE.value
        or (card.get("status") == AgentStatus.BUSY.value and card.get("model_deferred"))
    ]


def _in_flight(state: WorkflowState) -> List[AgentCard]:
    cards = (state.get("active_agent_cards") or {}).values()
    return [
        card for card in cards
        if card.get("status") == AgentStatus.AWAITING_APPROVAL.value
        or (card.get("status") == AgentStatus.BUSY.value and not card.get("model_deferred"))
    ]


def promote_deferred(state: WorkflowState, agent_registry: AgentRegistry) -> Dict[str, Any]:
    """Activate the next batch of deferred roles, up to ``max_swarm_size``."""
    deferred = list(state.get("deferred_roles") or [])
    size = (state.get("limits") or {}).get("max_swarm_size", len(deferred)) or 1
    batch, rest = deferred[:size], deferred[size:]
    available = state.get("available_agent_cards") or {}
    subtasks = state.get("subtasks") or []
    assignments = state.get("assignments") or {}

    LOGGER.info(f"Promoting deferred roles: {batch} (still deferred: {rest})")
    return {
        "active_agent_cards": {
            role: activate_card(role, available, agent_registry, subtasks, assignments) for role in batch
        },
        "deferred_roles": rest,
    }


def fail_for_iteration_limit(state: WorkflowState, runnable: List[AgentCard], now: float) -> Dict[str, Any]:
    """Fail every agent that could still run and drop deferred roles."""
    iterations = state.get("iterations", 0)
    cards: Dict[str, AgentCard] = {}
    results = {}
    for card in runnable:
        failed = {**card, "status": AgentStatus.FAILED.value, "model_deferred": False}
        cards[card["role"]] = failed
        results[card["role"]] = build_result(state, failed, result="", now=now, error=ITERATION_LIMIT_ERROR)

    skipped = state.get("deferred_roles") or []
    message = f"Iteration limit reached after {iterations} agent turn(s); failed agents: {sorted(cards)}"
    if skipped:
        message += f"; skipped deferred roles: {skipped}"
    LOGGER.warning(message)
    return {
        "active_agent_cards": cards,
        "agent_results": results,
        "deferred_roles": [],
        "errors": [message],
    }


def build_swarm_executor_node(
    *,
    model_resolver,
    agent_registry: AgentRegistry,
    risk_assessor: RiskAssessor,
    clock: Clock = default_clock,
    on_agent_busy: Optional[AgentListener] = None,
):
    def _approval_request(
        card: AgentCard,
        call: Mapping[str, Any],
        tools: ToolTable,
        now: float,
    ) -> ToolApprovalRequest:
        name = call.get("name") or ""
        arguments = dict(call.get("args") or {})
        descriptor = tools.get(name)
        provider_id = descriptor.provider_id if descriptor else ""
        assessment = risk_assessor.assess(name, provider_id, arguments)
        request: ToolApprovalRequest = {
            "id": f"approval-{uuid.uuid4().hex[:12]}",
            "agent_role": card["role"],
            "agent_id": card["id"],
            "tool_call": {"name": name, "arguments": arguments, "call_id": call.get("id")},
            "context": f"{card.get('name') or card['role']} requests {name}" + (f": {assessment.reason}" if assessment.reason else ""),
            "timestamp": now,
            "risk": assessment.risk_level,
            "status": ApprovalStatus.PENDING.value,
            "provider_id": provider_id,
            "result": None,
            "error": None,
            "decided_at": None,
            "duration_ms": None,
        }
        if descriptor is None:
            LOGGER.warning(f"{card['role']} requested unknown tool '{name}'")
            request.update({"status": ApprovalStatus.FAILED.value, "error": f"unknown tool: {name}", "decided_at": now})
        return request

    @with_error_boundary("swarm_executor")
    async def swarm_executor_node(state: WorkflowState) -> WorkflowState:
        log_node_entry(LOGGER, "swarm_executor", state)

        limits = state.get("limits") or {}
        now = clock()
        runnable = _runnable_agents(state)
        # Undecided requests route to the approval gate, not to a tool-results wait
        undecided = bool(approvals_with_status(state, ApprovalStatus.PENDING.value))

        # ========== Nothing to run ==========
        if not runnable:
            if undecided:
                LOGGER.info("No idle agents, tool requests still need a decision")
                updates = {}
            elif _in_flight(state):
                LOGGER.info("No idle agents, waiting for in-flight tool work")
                updates = {"awaiting_tool_results": True}
            elif state.get("deferred_roles"):
                updates = promote_deferred(state, agent_registry)
            else:
                LOGGER.info("All agents terminal, moving to synthesis")
                updates = phase_patch(state, Phase.SYNTHESIS)
            log_node_exit(LOGGER, "swarm_executor", updates)
            return updates

        iterations = state.get("iterations", 0)
        if iterations >= limits.get("max_iterations", 20):
            updates = fail_for_iteration_limit(state, runnable, now)
            log_node_exit(LOGGER, "swarm_executor", updates)
            return updates

        waiting = len(agents_with_status(state, AgentStatus.AWAITING_APPROVAL.value))
        if waiting >= limits.get("max_parallel_agents", 1):
            LOGGER.info(f"{waiting} agent(s) already awaiting approval, not starting another")
            updates = {} if undecided else {"awaiting_tool_results": True}
            log_node_exit(LOGGER, "swarm_executor", updates)
            return updates

        # ========== Run one agent turn ==========
        card = runnable[0]
        role = card["role"]
        config = agent_registry.require(role)
        busy = {**card, "status": AgentStatus.BUSY.value, "started_at": card.get("started_at") or now}
        if on_agent_busy is not None and card.get("status") != AgentStatus.BUSY.value:
            on_agent_busy(state, busy)

        tool_table = ToolTable.from_state(state.get("tool_table"))
        max_rounds = limits.get("max_tool_rounds", 3)
        rounds = busy.get("tool_rounds", 0)
        tools = list(tool_table.values()) if rounds < max_rounds else []

        assignments = state.get("assignments") or {}
        prompt = build_agent_task_prompt(
            task=state.get("original_task") or "",
            subtasks=[s for s in state.get("subtasks") or [] if assignments.get(s["id"]) == role],
            knowledge=state.get("knowledge") or [],
            notes=(state.get("agent_context") or {}).get(role, []),
            tools_available=bool(tools),
            rounds_left=max_rounds - rounds,
        )
        log_prompt(LOGGER, role, prompt)
        LOGGER.info(f"Running {role} agent (turn {iterations + 1}, {len(tools)} tool(s) bound)")

        updates: Dict[str, Any] = {"iterations": iterations + 1}
        try:
            model = model_resolver(state.get("model_config") or {})
            output = await model.invoke(
                system_prompt=config.system_prompt,
                messages=[HumanMessage(content=prompt)],
                tools=tools,
            )
        except Exception as e:
            error = AgentExecutionError(role, handle_model_error(e))
            LOGGER.error(str(error))
            failed = {**busy, "status": AgentStatus.FAILED.value, "model_deferred": False}
            updates.update({
                "active_agent_cards": {role: failed},
                "agent_results": {role: build_result(state, failed, result="", now=now, error=str(error))},
                "errors": [str(error)],
            })
            log_node_exit(LOGGER, "swarm_executor", updates)
            return updates

        if isinstance(output, ModelDeferred):
            LOGGER.info(f"{role} model call deferred: {output.reason}")
            updates = {
                "active_agent_cards": {role: {**busy, "model_deferred": True}},
                **suspend_patch(MODEL_PENDING, [], now),
            }
            log_node_exit(LOGGER, "swarm_executor", updates)
            return updates

        tool_calls = list(getattr(output, "tool_calls", None) or [])
        if tool_calls and not tools:
            LOGGER.warning(f"{role} requested {len(tool_calls)} tool call(s) with no tools bound, ignoring them")
            tool_calls = []

        if tool_calls:
            requests = [_approval_request(busy, call, tool_table, now) for call in tool_calls]
            updates.update({
                "active_agent_cards": {role: {
                    **busy,
                    "status": AgentStatus.AWAITING_APPROVAL.value,
                    "tool_rounds": rounds + 1,
                    "model_deferred": False,
                }},
                "pending_approvals": requests,
            })
            LOGGER.info(f"{role} requested tools: {[r['tool_call']['name'] for r in requests]}")
        else:
            text = message_text(output).strip()
            completed = {**busy, "status": AgentStatus.COMPLETED.value, "model_deferred": False}
            updates.update({
                "active_agent_cards": {role: completed},
                "agent_results": {role: build_result(state, completed, result=text, now=now)},
                "messages": [AIMessage(content=text, name=role)],
            })
            LOGGER.info(f"{role} agent completed ({len(text)} chars)")

        log_node_exit(LOGGER, "swarm_executor", updates)
        return updates

    return swarm_executor_node

"""Task decomposer: turns the task into ordered subtasks.

Never blocks progress: an empty plan, unparsable output or a failing model
all produce a single subtask covering the whole task.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from langchain_core.messages import HumanMessage
from pydantic import BaseModel, Field, ValidationError

from swarmAgent.agents import AgentRegistry
from swarmAgent.graph.nodes.common import Clock, default_clock, phase_patch
from swarmAgent.graph.prompts import build_decomposition_prompt
from swarmAgent.graph.signals import MODEL_PENDING, suspend_patch
from swarmAgent.graph.state import Phase, SubTask, WorkflowState
from swarmAgent.models import ModelDeferred, message_text
from swarmAgent.utils.error_handler import with_error_boundary
from swarmAgent.utils.logging_utils import log_node_entry, log_node_exit, log_prompt

LOGGER = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class PlannedSubTask(BaseModel):
    description: str = Field(min_length=1)
    suggested_role: Optional[str] = None
    priority: int = 1


class DecompositionPlan(BaseModel):
    subtasks: List[PlannedSubTask] = Field(default_factory=list)


def parse_plan(text: str) -> DecompositionPlan:
    """Parse model output into a plan.

    Accepts bare JSON, fenced JSON or JSON surrounded by prose.

    Raises:
        ValueError: If no valid plan is found
    """
    fenced = _FENCE_RE.search(text)
    candidate = fenced.group(1) if fenced else text
    start, end = candidate.find("{"), candidate.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no JSON object in decomposition output")
    try:
        return DecompositionPlan.model_validate_json(candidate[start:end + 1])
    except ValidationError as e:
        raise ValueError(f"invalid decomposition plan: {e.error_count()} error(s)") from e


def fallback_subtasks(task: str) -> List[SubTask]:
    return [{"id": "subtask-1", "description": task, "assigned_role": None, "priority": 1}]


def plan_to_subtasks(plan: DecompositionPlan) -> List[SubTask]:
    """Stable sort by priority and assign sequential ids."""
    ordered = sorted(plan.subtasks, key=lambda item: item.priority)
    return [
        {
            "id": f"subtask-{pos + 1}",
            "description": item.description.strip(),
            "assigned_role": (item.suggested_role or "").strip().lower() or None,
            "priority": item.priority,
        }
        for pos, item in enumerate(ordered)
        if item.description.strip()
    ]


def build_decomposer_node(
    *,
    model_resolver,
    agent_registry: AgentRegistry,
    clock: Clock = default_clock,
):
    master = agent_registry.master

    @with_error_boundary("decomposer")
    async def decomposer_node(state: WorkflowState) -> WorkflowState:
        log_node_entry(LOGGER, "decomposer", state)

        task = state.get("original_task") or ""
        prompt = build_decomposition_prompt(task, agent_registry.list_roles(), state.get("knowledge") or [])
        log_prompt(LOGGER, "decomposer", prompt)

        subtasks: List[SubTask] = []
        try:
            model = model_resolver(state.get("model_config") or {})
            output = await model.invoke(
                system_prompt=master.system_prompt,
                messages=[HumanMessage(content=prompt)],
                tools=(),
            )
            if isinstance(output, ModelDeferred):
                LOGGER.info(f"Decomposition deferred: {output.reason}")
                updates = suspend_patch(MODEL_PENDING, [], clock())
                log_node_exit(LOGGER, "decomposer", updates)
                return updates
            subtasks = plan_to_subtasks(parse_plan(message_text(output)))
        except Exception as e:
            LOGGER.warning(f"Decomposition failed, using whole task as one subtask: {e}")

        if not subtasks:
            LOGGER.info("No subtasks produced, falling back to a single subtask")
            subtasks = fallback_subtasks(task)

        LOGGER.info(f"Decomposed into {len(subtasks)} subtask(s)")
        updates = {"subtasks": subtasks, **phase_patch(state, Phase.AGENT_SELECTION)}
        log_node_exit(LOGGER, "decomposer", updates)
        return updates

    return decomposer_node

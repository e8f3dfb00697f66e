"""Agent selector: maps subtasks to roles and activates the swarm."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Tuple

from swarmAgent.agents import AgentRegistry
from swarmAgent.graph.nodes.common import phase_patch
from swarmAgent.graph.state import AgentCard, AgentStatus, Phase, SubTask, WorkflowState, new_agent_card
from swarmAgent.utils.error_handler import with_error_boundary
from swarmAgent.utils.logging_utils import log_node_entry, log_node_exit

LOGGER = logging.getLogger(__name__)


def select_role(subtask: Mapping[str, str], agent_registry: AgentRegistry, default_role: str) -> Tuple[str, str]:
    """Pick the role for one subtask.

    Order of preference:
    1. The decomposer's suggestion, when it names a catalog role
    2. The role whose expertise overlaps the description, preferring the
       narrowest role (fewest expertise tags), then the larger overlap, then
       catalog order
    3. ``default_role``

    Returns:
        (role, reason)
    """
    suggested = subtask.get("assigned_role")
    if suggested and suggested in agent_registry:
        return suggested, "suggested by decomposer"

    description = subtask.get("description") or ""
    candidates = []
    for order, config in enumerate(agent_registry.list_roles()):
        overlap = config.expertise_overlap(description)
        if overlap:
            candidates.append((len(config.expertise), -len(overlap), order, config.role, overlap))

    if candidates:
        candidates.sort()
        _, _, _, role, overlap = candidates[0]
        return role, f"expertise overlap {overlap}"

    return default_role, "default role"


def build_selector_node(*, agent_registry: AgentRegistry, default_role: str):
    if default_role not in agent_registry:
        fallback = agent_registry.roles()[0]
        LOGGER.warning(f"Default role '{default_role}' not in catalog, using '{fallback}'")
        default_role = fallback

    @with_error_boundary("selector")
    def selector_node(state: WorkflowState) -> WorkflowState:
        log_node_entry(LOGGER, "selector", state)

        subtasks: List[SubTask] = state.get("subtasks") or []
        assignments: Dict[str, str] = {}
        ordered_roles: List[str] = []
        for subtask in subtasks:
            role, reason = select_role(subtask, agent_registry, default_role)
            assignments[subtask["id"]] = role
            if role not in ordered_roles:
                ordered_roles.append(role)
            LOGGER.info(f"  {subtask['id']} → {role} ({reason})")

        max_swarm_size = (state.get("limits") or {}).get("max_swarm_size", len(ordered_roles)) or 1
        active_roles, deferred = ordered_roles[:max_swarm_size], ordered_roles[max_swarm_size:]
        if deferred:
            LOGGER.info(f"Swarm size limit {max_swarm_size} reached, deferring: {deferred}")

        available = state.get("available_agent_cards") or {}
        active: Dict[str, AgentCard] = {}
        for role in active_roles:
            active[role] = activate_card(role, available, agent_registry, subtasks, assignments)

        updates = {
            "assignments": assignments,
            "active_agent_cards": active,
            "deferred_roles": deferred,
            **phase_patch(state, Phase.EXECUTION),
        }
        log_node_exit(LOGGER, "selector", updates)
        return updates

    return selector_node


def activate_card(
    role: str,
    available: Mapping[str, AgentCard],
    agent_registry: AgentRegistry,
    subtasks: List[SubTask],
    assignments: Mapping[str, str],
) -> AgentCard:
    """Fresh idle card for ``role`` based on its catalog card."""
    card = dict(available.get(role) or {})
    if not card:
        config = agent_registry.require(role)
        card = new_agent_card(config.role, config.name, config.expertise)
    own = [item["description"] for item in subtasks if assignments.get(item["id"]) == role]
    card.update({
        "status": AgentStatus.IDLE.value,
        "current_task": own[0] if own else None,
        "tool_rounds": 0,
        "tool_failures": 0,
        "started_at": None,
    })
    return card

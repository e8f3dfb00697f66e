"""Task coordinator: seeds a fresh execution."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence

from langchain_core.messages import HumanMessage

from swarmAgent.agents import AgentRegistry
from swarmAgent.graph.nodes.common import phase_patch
from swarmAgent.graph.state import KnowledgeChunk, Phase, WorkflowState, new_agent_card
from swarmAgent.utils.error_handler import InvalidTaskError, with_error_boundary
from swarmAgent.utils.logging_utils import log_node_entry, log_node_exit

LOGGER = logging.getLogger(__name__)

KnowledgeRetriever = Callable[[str], Awaitable[Sequence[Mapping[str, Any]]]]


def normalize_chunks(chunks: Sequence[Mapping[str, Any]], limit: int) -> List[KnowledgeChunk]:
    """Keep the ``limit`` most relevant chunks as plain dicts."""
    normalized: List[KnowledgeChunk] = []
    for pos, chunk in enumerate(chunks):
        content = str(chunk.get("content") or "").strip()
        if not content:
            continue
        normalized.append({
            "id": str(chunk.get("id") or f"chunk-{pos + 1}"),
            "content": content,
            "source": str(chunk.get("source") or "unknown"),
            "relevance": float(chunk.get("relevance") or 0.0),
        })
    normalized.sort(key=lambda item: item["relevance"], reverse=True)
    return normalized[:limit]


def build_coordinator_node(
    *,
    agent_registry: AgentRegistry,
    knowledge_retriever: Optional[KnowledgeRetriever] = None,
    knowledge_limit: int = 5,
):
    @with_error_boundary("coordinator")
    async def coordinator_node(state: WorkflowState) -> WorkflowState:
        log_node_entry(LOGGER, "coordinator", state)

        task = (state.get("original_task") or "").strip()
        if not task:
            raise InvalidTaskError("Task must not be empty")

        cards = {
            config.role: new_agent_card(config.role, config.name, config.expertise)
            for config in agent_registry.list_roles()
        }

        knowledge: List[KnowledgeChunk] = []
        if knowledge_retriever is not None:
            try:
                knowledge = normalize_chunks(await knowledge_retriever(task), knowledge_limit)
                LOGGER.info(f"Injected {len(knowledge)} knowledge chunk(s)")
            except Exception as e:
                LOGGER.warning(f"Knowledge retrieval failed, continuing without it: {e}")

        updates = {
            "messages": [HumanMessage(content=f"Task: {task}")],
            "available_agent_cards": cards,
            "knowledge": knowledge,
            **phase_patch(state, Phase.DECOMPOSITION),
        }
        log_node_exit(LOGGER, "coordinator", updates)
        return updates

    return coordinator_node

"""Result synthesizer: merges agent results into the final answer.

Never fails the execution because of synthesis quality: without usable
results, or when the model call fails, the raw agent outputs are
concatenated instead.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from langchain_core.messages import AIMessage, HumanMessage

from swarmAgent.agents import AgentRegistry
from swarmAgent.graph.nodes.common import Clock, default_clock, phase_patch
from swarmAgent.graph.prompts import build_synthesis_prompt
from swarmAgent.graph.signals import MODEL_PENDING, suspend_patch
from swarmAgent.graph.state import AgentStatus, Phase, WorkflowState
from swarmAgent.models import ModelDeferred, message_text
from swarmAgent.utils.error_handler import with_error_boundary
from swarmAgent.utils.logging_utils import log_node_entry, log_node_exit, log_prompt

LOGGER = logging.getLogger(__name__)

FALLBACK_CONFIDENCE_FACTOR = 0.5


def concatenate_results(task: str, results: Mapping[str, Mapping[str, Any]]) -> str:
    """Raw agent outputs joined together, or a placeholder when there are none."""
    texts = [str(item.get("result") or "").strip() for item in results.values()]
    joined = "\n\n".join(text for text in texts if text)
    return joined or f'Task "{task}" completed.'


def completion_share(state: Mapping[str, Any]) -> float:
    """Share of active agents that completed."""
    cards = list((state.get("active_agent_cards") or {}).values())
    if not cards:
        return 0.0
    done = sum(1 for card in cards if card.get("status") == AgentStatus.COMPLETED.value)
    return done / len(cards)


def build_synthesizer_node(
    *,
    model_resolver,
    agent_registry: AgentRegistry,
    clock: Clock = default_clock,
):
    master = agent_registry.master

    @with_error_boundary("synthesizer")
    async def synthesizer_node(state: WorkflowState) -> WorkflowState:
        log_node_entry(LOGGER, "synthesizer", state)

        task = state.get("original_task") or ""
        results = state.get("agent_results") or {}
        usable = [
            {"role": role, "status": item.get("status"), "result": item.get("result")}
            for role, item in results.items()
            if item.get("status") == AgentStatus.COMPLETED.value and str(item.get("result") or "").strip()
        ]
        entering = phase_patch(state, Phase.SYNTHESIS)

        output = None
        if usable:
            prompt = build_synthesis_prompt(task, usable, state.get("errors") or [])
            log_prompt(LOGGER, "synthesizer", prompt)
            try:
                model = model_resolver(state.get("model_config") or {})
                output = await model.invoke(
                    system_prompt=master.system_prompt,
                    messages=[HumanMessage(content=prompt)],
                    tools=(),
                )
            except Exception as e:
                LOGGER.warning(f"Synthesis model call failed, concatenating results: {e}")

        if isinstance(output, ModelDeferred):
            LOGGER.info(f"Synthesis deferred: {output.reason}")
            updates = {**entering, **suspend_patch(MODEL_PENDING, [], clock())}
            log_node_exit(LOGGER, "synthesizer", updates)
            return updates

        share = completion_share(state)
        text = message_text(output).strip() if output is not None else ""
        if text:
            confidence = share
        else:
            LOGGER.info("Using concatenated agent results as the final answer")
            text = concatenate_results(task, results)
            confidence = share * FALLBACK_CONFIDENCE_FACTOR

        updates: Dict[str, Any] = {
            "current_phase": Phase.COMPLETED.value,
            "phase_history": list(entering.get("phase_history", [])) + [Phase.COMPLETED.value],
            "synthesized_result": text,
            "confidence": round(confidence, 3),
            "messages": [AIMessage(content=text)],
        }
        log_node_exit(LOGGER, "synthesizer", updates)
        return updates

    return synthesizer_node

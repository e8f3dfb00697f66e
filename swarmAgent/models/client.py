"""Model client seam used by every swarm node that talks to an LLM."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence, Union, runtime_checkable

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage

from swarmAgent.tools.catalog import CapabilityDescriptor
from swarmAgent.utils.error_handler import ModelInvocationError, handle_model_error

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelDeferred:
    """The model call was accepted but has no answer yet.

    Returned instead of an ``AIMessage`` by clients backed by queued or
    batch providers; the execution suspends and is resumed later.
    """

    reason: str = "model response pending"
    ticket: Optional[str] = None


ModelOutput = Union[AIMessage, ModelDeferred]


@runtime_checkable
class ModelClient(Protocol):
    async def invoke(
        self,
        *,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[CapabilityDescriptor] = (),
    ) -> ModelOutput:
        ...


def message_text(message: Any) -> str:
    """Plain text of a message whose content may be a list of parts."""
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type") == "text":
                parts.append(item.get("text", ""))
        return "".join(parts)
    return str(content or "")


class ChatModelClient:
    """``ModelClient`` over any LangChain chat model with tool calling."""

    def __init__(self, model: BaseChatModel):
        self.model = model

    async def invoke(
        self,
        *,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[CapabilityDescriptor] = (),
    ) -> ModelOutput:
        prompt = [SystemMessage(content=system_prompt), *messages]
        runnable = self.model.bind_tools([tool.to_openai_tool() for tool in tools]) if tools else self.model

        try:
            output = await runnable.ainvoke(prompt)
        except Exception as e:
            LOGGER.error(f"Model invocation failed: {e}")
            raise ModelInvocationError(str(e), user_message=handle_model_error(e)) from e

        if not isinstance(output, AIMessage):
            output = AIMessage(content=message_text(output))
        return output

"""Scripted doubles for the host-owned services: model client and capability client."""

import json
from typing import Any, Dict, List, Optional

from langchain_core.messages import AIMessage

from swarmAgent.agents import MASTER_CONFIG, MASTER_ROLE, AgentRegistry
from swarmAgent.models import ModelDeferred, message_text

EMPTY_PLAN = '{"subtasks": []}'


def tool_call(name: str, **args) -> Dict[str, Any]:
    """Scripted agent reply requesting one tool call."""
    return {"tool": name, "args": args}


class ScriptedModel:
    """ModelClient double.

    - decomposition calls answer with ``plan``; a list of plans is consumed
      one per call, the last one repeating
    - agent calls pop the next reply from ``agents[role]``; when the script is
      exhausted the agent answers "<role> findings"
    - synthesis calls answer with ``synthesis``

    A reply is a str (text answer), a dict (JSON plan), a ``tool_call(...)``
    dict or a list of them (several calls in one turn), an Exception (raised)
    or a ``ModelDeferred``.
    """

    def __init__(
        self,
        *,
        plan: Any = None,
        agents: Optional[Dict[str, List[Any]]] = None,
        synthesis: Any = "Combined answer",
        registry: Optional[AgentRegistry] = None,
    ):
        self.plans = list(plan) if isinstance(plan, list) else [plan]
        self.agents = {role: list(replies) for role, replies in (agents or {}).items()}
        self.synthesis = synthesis
        registry = registry or AgentRegistry()
        self._roles = {config.system_prompt: config.role for config in registry.list_roles()}
        self._roles[MASTER_CONFIG.system_prompt] = MASTER_ROLE
        self.calls: List[Dict[str, Any]] = []
        self._call_ids = 0

    def calls_of(self, kind: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["kind"] == kind]

    async def invoke(self, *, system_prompt, messages, tools=()):
        prompt = message_text(messages[-1])
        role = self._roles.get(system_prompt, "unknown")
        if role == MASTER_ROLE:
            kind = "decompose" if prompt.startswith("Break the following task") else "synthesize"
        else:
            kind = "agent"
        self.calls.append({"kind": kind, "role": role, "prompt": prompt, "tools": [t.name for t in tools]})

        if kind == "decompose":
            reply = self.plans.pop(0) if len(self.plans) > 1 else self.plans[0]
            if reply is None:
                reply = EMPTY_PLAN
            elif isinstance(reply, dict) and "subtasks" in reply:
                reply = json.dumps(reply)
        elif kind == "synthesize":
            reply = self.synthesis
        else:
            script = self.agents.get(role) or []
            reply = script.pop(0) if script else f"{role} findings"
        return self._to_output(reply)

    def _to_output(self, reply: Any):
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, ModelDeferred):
            return reply
        if isinstance(reply, (dict, list)):
            calls = []
            for item in reply if isinstance(reply, list) else [reply]:
                self._call_ids += 1
                calls.append({"name": item["tool"], "args": item["args"], "id": f"call-{self._call_ids}", "type": "tool_call"})
            return AIMessage(content="", tool_calls=calls)
        return AIMessage(content=reply)


class FakeCapabilityClient:
    """CapabilityClient double: ``results`` maps provider tool name → value or Exception."""

    def __init__(self, results: Optional[Dict[str, Any]] = None):
        self.results = results or {}
        self.calls: List[tuple] = []

    async def call_tool(self, provider_id: str, tool_name: str, arguments: Dict[str, Any]) -> Any:
        self.calls.append((provider_id, tool_name, dict(arguments)))
        result = self.results.get(tool_name, f"{tool_name} ok")
        if isinstance(result, BaseException):
            raise result
        return result

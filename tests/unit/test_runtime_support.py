"""Tests for execution options, model resolution, prompts, the coordinator and the CLI helpers."""

import pytest
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, HumanMessage

from swarmAgent.agents import AgentRegistry
from swarmAgent.cli import _build_parser, _collect_decisions
from swarmAgent.config.settings import ModelRoutingSettings, Settings, SwarmSettings
from swarmAgent.graph.nodes.coordinator import build_coordinator_node, normalize_chunks
from swarmAgent.graph.prompts import build_agent_task_prompt, build_decomposition_prompt, build_synthesis_prompt
from swarmAgent.graph.state import initial_state
from swarmAgent.models import ChatModelClient, message_text
from swarmAgent.runtime import ExecutionOptions, SwarmLimits
from swarmAgent.runtime.model_resolver import resolve_model_config
from swarmAgent.utils.error_handler import InvalidTaskError, handle_model_error, with_error_boundary


class TestExecutionOptions:
    def test_limits_fall_back_to_settings(self):
        defaults = SwarmSettings(max_iterations=7, max_parallel_agents=2, max_swarm_size=3, max_tool_rounds=1)
        assert SwarmLimits(max_swarm_size=5).resolve(defaults) == {
            "max_iterations": 7,
            "max_parallel_agents": 2,
            "max_swarm_size": 5,
            "max_tool_rounds": 1,
        }

    def test_zero_tool_rounds_is_kept(self):
        assert SwarmLimits(max_tool_rounds=0).resolve(SwarmSettings())["max_tool_rounds"] == 0

    def test_invalid_limit_rejected(self):
        with pytest.raises(ValueError):
            SwarmLimits(max_iterations=0)

    def test_model_config_alias(self):
        options = ExecutionOptions.model_validate({"model_config": {"model": "gpt-4o-mini"}})
        assert options.model_overrides == {"model": "gpt-4o-mini"}


class TestModelResolution:
    def test_overrides_win(self):
        settings = Settings(models=ModelRoutingSettings(swarm="base-model", swarm_api_key="key", temperature=0.3))
        config = resolve_model_config(settings, {"model": "other", "temperature": 0.0})
        assert config["model"] == "other"
        assert config["temperature"] == 0.0
        assert config["api_key"] == "key"

    @pytest.mark.asyncio
    async def test_chat_model_client_returns_ai_message(self):
        client = ChatModelClient(GenericFakeChatModel(messages=iter([AIMessage(content="pong")])))
        output = await client.invoke(system_prompt="You answer briefly.", messages=[HumanMessage(content="ping")])
        assert isinstance(output, AIMessage)
        assert message_text(output) == "pong"

    def test_message_text_joins_parts(self):
        message = AIMessage(content=[{"type": "text", "text": "a"}, "b", {"type": "image_url", "image_url": {}}])
        assert message_text(message) == "ab"


class TestPrompts:
    def test_decomposition_lists_roles(self):
        prompt = build_decomposition_prompt("Plan a launch", AgentRegistry().list_roles())
        assert prompt.startswith("Break the following task")
        assert "Plan a launch" in prompt
        for role in AgentRegistry().roles():
            assert role in prompt

    def test_agent_prompt_includes_notes_and_tool_budget(self):
        prompt = build_agent_task_prompt(
            task="Plan a launch",
            subtasks=[{"id": "subtask-1", "description": "Pick a date"}],
            knowledge=[{"source": "wiki", "content": "Launches happen on Tuesdays"}],
            notes=["lookup({}) returned: Tuesday"],
            tools_available=True,
            rounds_left=2,
        )
        assert "- Pick a date" in prompt
        assert "[wiki] Launches happen on Tuesdays" in prompt
        assert "lookup({}) returned: Tuesday" in prompt
        assert "2 tool round(s) left" in prompt

    def test_agent_prompt_without_tools(self):
        prompt = build_agent_task_prompt(task="t", subtasks=[], knowledge=[], notes=[], tools_available=False, rounds_left=0)
        assert "No tools are available now" in prompt

    def test_synthesis_prompt(self):
        prompt = build_synthesis_prompt("Plan a launch", [{"role": "research", "status": "completed", "result": "Tuesday"}])
        assert prompt.startswith("Combine the agent results")
        assert "Tuesday" in prompt


class TestCoordinator:
    def _state(self, task="Plan a launch"):
        return initial_state(task=task, thread_id="t", execution_id="e", limits={"max_iterations": 5})

    def test_normalize_chunks(self):
        chunks = normalize_chunks(
            [{"content": "low", "relevance": 0.1}, {"content": " "}, {"content": "high", "relevance": 0.9, "source": "kb"}],
            limit=1,
        )
        assert chunks == [{"id": "chunk-3", "content": "high", "source": "kb", "relevance": 0.9}]

    @pytest.mark.asyncio
    async def test_seeds_cards_and_knowledge(self):
        async def retriever(task):
            return [{"id": "k1", "content": f"notes about {task}", "source": "wiki", "relevance": 0.5}]

        node = build_coordinator_node(agent_registry=AgentRegistry(), knowledge_retriever=retriever)
        updates = await node(self._state())

        assert updates["current_phase"] == "decomposition"
        assert set(updates["available_agent_cards"]) == set(AgentRegistry().roles())
        assert updates["knowledge"][0]["content"] == "notes about Plan a launch"

    @pytest.mark.asyncio
    async def test_retriever_failure_is_tolerated(self):
        async def retriever(task):
            raise ConnectionError("vector store down")

        updates = await build_coordinator_node(agent_registry=AgentRegistry(), knowledge_retriever=retriever)(self._state())
        assert updates["knowledge"] == []
        assert "failure" not in updates

    @pytest.mark.asyncio
    async def test_empty_task_fails_execution(self):
        updates = await build_coordinator_node(agent_registry=AgentRegistry())(self._state(task=" "))
        assert updates["failure"].startswith("coordinator: InvalidTaskError")


class TestErrorHandling:
    def test_error_boundary_records_failure(self):
        @with_error_boundary("selector")
        def node(state):
            raise KeyError("missing")

        updates = node({})
        assert updates["failure"] == "selector: KeyError: 'missing'"
        assert updates["errors"] == [updates["failure"]]

    def test_handle_model_error(self):
        assert handle_model_error(Exception("Error code: 429 rate_limit")) == "model rate limit exceeded"
        assert handle_model_error(Exception("weird")) == "model unavailable: weird"

    def test_user_message_defaults_to_message(self):
        error = InvalidTaskError("Task must not be empty")
        assert error.user_message == "Task must not be empty"


class TestCli:
    def test_parser(self):
        args = _build_parser().parse_args(["Plan a launch", "--max-swarm-size", "2", "--deny-all"])
        assert args.task == "Plan a launch"
        assert args.max_swarm_size == 2
        assert args.deny_all

    @pytest.mark.asyncio
    async def test_deny_all_decisions(self, capsys):
        pending = [{"id": "approval-1", "risk": "high", "tool_name": "file_write", "agent_role": "technical", "arguments": {"path": "x"}, "context": ""}]
        decisions = await _collect_decisions(pending, auto_deny=True)
        assert [(d.id, d.approved) for d in decisions] == [("approval-1", False)]
        assert "file_write" in capsys.readouterr().out

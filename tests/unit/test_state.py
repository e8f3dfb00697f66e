"""Tests for workflow state merge rules."""

from langchain_core.messages import AIMessage, HumanMessage

from swarmAgent.graph.state import (
    AgentStatus,
    ApprovalStatus,
    Phase,
    apply_patch,
    approvals_with_status,
    initial_state,
    new_agent_card,
    unmerged_settled_approvals,
)


def _state(**overrides):
    state = initial_state(
        task="Summarize the report",
        thread_id="thread-1",
        execution_id="exec-1",
        limits={"max_iterations": 5, "max_parallel_agents": 2, "max_swarm_size": 3, "max_tool_rounds": 2},
    )
    state.update(overrides)
    return state


def _request(request_id, status="pending", role="research"):
    return {
        "id": request_id,
        "agent_role": role,
        "tool_call": {"name": "web_search", "arguments": {"q": "x"}},
        "status": status,
        "timestamp": 100.0,
    }


class TestInitialState:
    def test_starts_in_initialization(self):
        state = _state()
        assert state["current_phase"] == Phase.INITIALIZATION.value
        assert state["phase_history"] == [Phase.INITIALIZATION.value]
        assert state["iterations"] == 0
        assert state["suspension"] is None

    def test_limits_are_copied(self):
        limits = {"max_iterations": 3}
        state = initial_state(task="t", thread_id="a", execution_id="b", limits=limits)
        limits["max_iterations"] = 99
        assert state["limits"]["max_iterations"] == 3


class TestApplyPatch:
    def test_does_not_modify_inputs(self):
        state = _state()
        patch = {"errors": ["boom"], "iterations": 1}
        merged = apply_patch(state, patch)
        assert merged["errors"] == ["boom"]
        assert state["errors"] == []
        assert state["iterations"] == 0

    def test_lists_append(self):
        state = apply_patch(_state(), {"phase_history": ["decomposition"], "errors": ["a"]})
        state = apply_patch(state, {"phase_history": ["agent_selection"], "errors": ["b"]})
        assert state["phase_history"] == ["initialization", "decomposition", "agent_selection"]
        assert state["errors"] == ["a", "b"]

    def test_plain_fields_last_write_wins(self):
        state = apply_patch(_state(), {"current_phase": "execution", "iterations": 4})
        assert state["current_phase"] == "execution"
        assert state["iterations"] == 4

    def test_messages_are_appended(self):
        state = apply_patch(_state(), {"messages": [HumanMessage(content="Task: x")]})
        state = apply_patch(state, {"messages": [AIMessage(content="done")]})
        assert [m.content for m in state["messages"]] == ["Task: x", "done"]


class TestAgentCardMerge:
    def test_cards_merge_by_role(self):
        card = new_agent_card("research", "Research Agent", ["search"])
        state = apply_patch(_state(), {"active_agent_cards": {"research": card}})
        state = apply_patch(state, {"active_agent_cards": {"research": {"status": AgentStatus.BUSY.value}}})
        merged = state["active_agent_cards"]["research"]
        assert merged["status"] == AgentStatus.BUSY.value
        assert merged["name"] == "Research Agent"

    def test_terminal_card_keeps_status(self):
        card = {**new_agent_card("research", "Research Agent", []), "status": AgentStatus.COMPLETED.value}
        state = apply_patch(_state(), {"active_agent_cards": {"research": card}})
        state = apply_patch(state, {"active_agent_cards": {"research": {**card, "status": AgentStatus.IDLE.value}}})
        assert state["active_agent_cards"]["research"]["status"] == AgentStatus.COMPLETED.value

    def test_failed_card_cannot_complete(self):
        card = {**new_agent_card("analysis", "Analysis Agent", []), "status": AgentStatus.FAILED.value}
        state = apply_patch(_state(), {"active_agent_cards": {"analysis": card}})
        state = apply_patch(state, {"active_agent_cards": {"analysis": {"status": AgentStatus.COMPLETED.value}}})
        assert state["active_agent_cards"]["analysis"]["status"] == AgentStatus.FAILED.value


class TestAgentResults:
    def test_first_result_is_kept(self):
        state = apply_patch(_state(), {"agent_results": {"research": {"result": "first", "status": "completed"}}})
        state = apply_patch(state, {"agent_results": {"research": {"result": "second", "status": "completed"}}})
        assert state["agent_results"]["research"]["result"] == "first"


class TestApprovalUpsert:
    def test_new_requests_append_in_order(self):
        state = apply_patch(_state(), {"pending_approvals": [_request("a-1"), _request("a-2")]})
        state = apply_patch(state, {"pending_approvals": [_request("a-3")]})
        assert [item["id"] for item in state["pending_approvals"]] == ["a-1", "a-2", "a-3"]

    def test_partial_update_merges_fields(self):
        state = apply_patch(_state(), {"pending_approvals": [_request("a-1")]})
        state = apply_patch(state, {"pending_approvals": [{"id": "a-1", "status": ApprovalStatus.APPROVED.value}]})
        request = state["pending_approvals"][0]
        assert request["status"] == ApprovalStatus.APPROVED.value
        assert request["tool_call"]["name"] == "web_search"

    def test_executed_request_is_immutable(self):
        state = apply_patch(_state(), {"pending_approvals": [_request("a-1", status="executed")]})
        state = apply_patch(state, {"pending_approvals": [{"id": "a-1", "status": "approved", "result": "again"}]})
        assert state["pending_approvals"][0]["status"] == "executed"
        assert "result" not in state["pending_approvals"][0]

    def test_failed_request_is_immutable(self):
        state = apply_patch(_state(), {"pending_approvals": [_request("a-1", status="failed")]})
        state = apply_patch(state, {"pending_approvals": [{"id": "a-1", "status": "denied"}]})
        assert state["pending_approvals"][0]["status"] == "failed"


class TestQueries:
    def test_approvals_with_status(self):
        state = _state(pending_approvals=[_request("a-1"), _request("a-2", status="denied")])
        assert [item["id"] for item in approvals_with_status(state, "pending")] == ["a-1"]
        assert len(approvals_with_status(state, "pending", "denied")) == 2

    def test_unmerged_settled_excludes_history(self):
        state = _state(
            pending_approvals=[_request("a-1", status="executed"), _request("a-2", status="denied"), _request("a-3")],
            approval_history=[_request("a-1", status="executed")],
        )
        assert [item["id"] for item in unmerged_settled_approvals(state)] == ["a-2"]

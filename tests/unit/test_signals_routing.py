"""Tests for suspension signals and graph routing."""

from swarmAgent.graph.routing import (
    END_ROUTE,
    route_after_approval,
    route_after_completion,
    route_after_coordinator,
    route_after_execution,
    route_entry,
)
from swarmAgent.graph.signals import (
    AWAITING_TOOL_RESULTS,
    MODEL_PENDING,
    TOOL_APPROVAL,
    Continue,
    Suspend,
    classify,
    clear_patch,
    suspend_patch,
)
from swarmAgent.graph.state import apply_patch


def _card(role, status):
    return {"id": f"{role}-1", "role": role, "status": status}


def _request(request_id, status, role="research"):
    return {"id": request_id, "agent_role": role, "tool_call": {"name": "t", "arguments": {}}, "status": status}


class TestClassify:
    def test_empty_state_continues(self):
        assert classify({}) == Continue()

    def test_suspension_entry(self):
        state = suspend_patch(TOOL_APPROVAL, ["a-1", "a-2"], now=10.0)
        signal = classify(state)
        assert isinstance(signal, Suspend)
        assert signal.reason == TOOL_APPROVAL
        assert signal.approval_ids == ("a-1", "a-2")
        assert signal.needs_human

    def test_model_pending_needs_no_human(self):
        signal = classify(suspend_patch(MODEL_PENDING, [], now=10.0))
        assert signal.reason == MODEL_PENDING
        assert not signal.needs_human

    def test_awaiting_tool_results_flag(self):
        signal = classify({"awaiting_tool_results": True})
        assert signal == Suspend(reason=AWAITING_TOOL_RESULTS)

    def test_clear_patch_lifts_suspension(self):
        state = apply_patch({}, suspend_patch(TOOL_APPROVAL, ["a-1"], now=1.0))
        state = apply_patch(state, clear_patch())
        assert classify(state) == Continue()


class TestRouteEntry:
    def test_fresh_state_starts_at_coordinator(self):
        assert route_entry({"current_phase": "initialization"}) == "coordinator"

    def test_completed_ends(self):
        assert route_entry({"current_phase": "completed"}) == END_ROUTE

    def test_failure_ends(self):
        assert route_entry({"current_phase": "execution", "failure": "boom"}) == END_ROUTE

    def test_execution_resumes_at_pending_work(self):
        state = {"current_phase": "execution", "pending_approvals": [_request("a-1", "approved")]}
        assert route_entry(state) == "tool_execution"

    def test_execution_without_work_goes_to_executor(self):
        assert route_entry({"current_phase": "execution"}) == "swarm_executor"

    def test_synthesis_resumes_at_synthesizer(self):
        assert route_entry({"current_phase": "synthesis"}) == "synthesizer"


class TestRouteAfterExecution:
    def test_suspension_ends(self):
        state = {"current_phase": "execution", **suspend_patch(MODEL_PENDING, [], now=1.0)}
        assert route_after_execution(state) == END_ROUTE

    def test_synthesis_phase(self):
        assert route_after_execution({"current_phase": "synthesis"}) == "synthesizer"

    def test_batches_while_idle_agents_remain(self):
        state = {
            "current_phase": "execution",
            "limits": {"max_parallel_agents": 2},
            "active_agent_cards": {
                "research": _card("research", "awaiting_approval"),
                "analysis": _card("analysis", "idle"),
            },
            "pending_approvals": [_request("a-1", "pending")],
        }
        assert route_after_execution(state) == "swarm_executor"

    def test_presents_batch_at_parallel_cap(self):
        state = {
            "current_phase": "execution",
            "limits": {"max_parallel_agents": 1},
            "active_agent_cards": {
                "research": _card("research", "awaiting_approval"),
                "analysis": _card("analysis", "idle"),
            },
            "pending_approvals": [_request("a-1", "pending")],
        }
        assert route_after_execution(state) == "tool_approval"

    def test_loops_on_executor(self):
        state = {"current_phase": "execution", "active_agent_cards": {"research": _card("research", "idle")}}
        assert route_after_execution(state) == "swarm_executor"


class TestRouteAfterApproval:
    def test_waiting_ends(self):
        assert route_after_approval({"waiting_for_human_response": True}) == END_ROUTE

    def test_approved_goes_to_execution(self):
        assert route_after_approval({"pending_approvals": [_request("a-1", "approved")]}) == "tool_execution"

    def test_only_denied_goes_to_completion(self):
        assert route_after_approval({"pending_approvals": [_request("a-1", "denied")]}) == "agent_completion"


class TestRouteAfterCompletion:
    def test_open_agents_return_to_executor(self):
        state = {"active_agent_cards": {"research": _card("research", "idle")}}
        assert route_after_completion(state) == "swarm_executor"

    def test_deferred_roles_return_to_executor(self):
        state = {"active_agent_cards": {"research": _card("research", "completed")}, "deferred_roles": ["creative"]}
        assert route_after_completion(state) == "swarm_executor"

    def test_all_terminal_goes_to_synthesis(self):
        state = {"active_agent_cards": {"research": _card("research", "completed"), "analysis": _card("analysis", "failed")}}
        assert route_after_completion(state) == "synthesizer"


class TestForwardRoutes:
    def test_coordinator_forwards(self):
        assert route_after_coordinator({"current_phase": "decomposition"}) == "decomposer"

    def test_coordinator_failure_ends(self):
        assert route_after_coordinator({"failure": "coordinator: boom"}) == END_ROUTE

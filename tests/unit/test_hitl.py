"""Tests for risk classification and approval decisions."""

import pytest

from swarmAgent.graph.state import apply_patch
from swarmAgent.hitl import ApprovalDecision, RiskAssessment, RiskAssessor, build_decision_patch, expire_stale, risk_at_most
from swarmAgent.hitl.decisions import DENIED_ERROR, EXPIRED_ERROR


@pytest.fixture
def rules_file(tmp_path):
    path = tmp_path / "risk_rules.yaml"
    path.write_text(
        "providers:\n"
        "  filesystem: high\n"
        "tools:\n"
        "  read_file:\n"
        "    risk: low\n"
        "    patterns:\n"
        "      high:\n"
        "        - \"/etc/\"\n"
        "  send_email:\n"
        "    risk: medium\n",
        encoding="utf-8",
    )
    return path


class TestRiskAssessor:
    def test_builtin_high_risk_tool(self):
        assert RiskAssessor().assess("file_write", "local", {"path": "a.txt"}).risk_level == "high"

    def test_builtin_medium_risk_tool(self):
        assert RiskAssessor().assess("web_search", "search", {"q": "x"}).risk_level == "medium"

    def test_builtin_provider_rating(self):
        assert RiskAssessor().assess("lookup", "admin", {}).risk_level == "high"

    def test_unknown_tool_is_low(self):
        assessment = RiskAssessor().assess("calculator", "math", {"expr": "1+1"})
        assert assessment.risk_level == "low"
        assert assessment.reason == ""

    def test_yaml_tool_level(self, rules_file):
        assert RiskAssessor(rules_file).assess("send_email", "mail", {}).risk_level == "medium"

    def test_yaml_argument_pattern(self, rules_file):
        assessor = RiskAssessor(rules_file)
        assert assessor.assess("read_file", "docs", {"path": "notes.txt"}).risk_level == "low"
        assert assessor.assess("read_file", "docs", {"path": "/etc/passwd"}).risk_level == "high"

    def test_yaml_provider_level(self, rules_file):
        assert RiskAssessor(rules_file).assess("list_dir", "filesystem", {}).risk_level == "high"

    def test_missing_rules_file_falls_back_to_builtins(self, tmp_path):
        assessor = RiskAssessor(tmp_path / "missing.yaml")
        assert assessor.rules == {}
        assert assessor.assess("file_write", "x", {}).risk_level == "high"

    def test_custom_checker_overrides(self):
        assessor = RiskAssessor()
        assessor.register_checker("file_write", lambda provider, args: RiskAssessment("low", "sandboxed"))
        assessment = assessor.assess("file_write", "sandbox", {})
        assert assessment.risk_level == "low"
        assert assessment.reason == "sandboxed"


class TestRiskAtMost:
    def test_none_ceiling_never_qualifies(self):
        assert not risk_at_most("low", None)

    def test_ordering(self):
        assert risk_at_most("low", "medium")
        assert risk_at_most("medium", "medium")
        assert not risk_at_most("high", "medium")


def _state(*requests):
    return {"pending_approvals": list(requests), "suspension": {"reason": "tool_approval", "approval_ids": []}}


def _request(request_id, status="pending", timestamp=1000.0):
    return {
        "id": request_id,
        "agent_role": "technical",
        "tool_call": {"name": "file_write", "arguments": {"path": "out.txt"}},
        "status": status,
        "timestamp": timestamp,
    }


class TestExpireStale:
    def test_old_pending_requests_are_denied(self):
        updates = expire_stale([_request("a-1", timestamp=0.0), _request("a-2", timestamp=950.0)], now=1000.0, ttl_seconds=100)
        assert updates == [{"id": "a-1", "status": "denied", "error": EXPIRED_ERROR, "decided_at": 1000.0}]

    def test_settled_requests_never_expire(self):
        assert expire_stale([_request("a-1", status="approved", timestamp=0.0)], now=1000.0, ttl_seconds=1) == []


class TestBuildDecisionPatch:
    def test_approval(self):
        outcome = build_decision_patch(_state(_request("a-1")), [ApprovalDecision(id="a-1", approved=True)], now=1010.0, ttl_seconds=900)
        assert outcome.applied == ["a-1"]
        assert outcome.patch["pending_approvals"] == [{"id": "a-1", "status": "approved", "decided_at": 1010.0}]
        assert outcome.patch["suspension"] is None
        assert outcome.patch["waiting_for_human_response"] is False

    def test_denial(self):
        outcome = build_decision_patch(_state(_request("a-1")), [ApprovalDecision(id="a-1", approved=False)], now=1010.0, ttl_seconds=900)
        update = outcome.patch["pending_approvals"][0]
        assert update["status"] == "denied"
        assert update["error"] == DENIED_ERROR

    def test_host_reported_result(self):
        decision = ApprovalDecision(id="a-1", approved=True, execution_result={"written": 12})
        outcome = build_decision_patch(_state(_request("a-1")), [decision], now=1010.0, ttl_seconds=900)
        update = outcome.patch["pending_approvals"][0]
        assert update["status"] == "executed"
        assert update["result"] == {"written": 12}

    def test_late_decision_is_expired(self):
        outcome = build_decision_patch(_state(_request("a-1", timestamp=0.0)), [ApprovalDecision(id="a-1", approved=True)], now=1000.0, ttl_seconds=100)
        assert outcome.patch["pending_approvals"][0]["error"] == EXPIRED_ERROR
        assert outcome.applied == ["a-1"]

    def test_unknown_id_is_reported(self):
        outcome = build_decision_patch(_state(_request("a-1")), [ApprovalDecision(id="nope", approved=True)], now=1010.0, ttl_seconds=900)
        assert outcome.unknown_ids == ["nope"]
        assert outcome.applied == []
        assert "pending_approvals" not in outcome.patch

    def test_repeated_decision_is_noop(self):
        state = _state(_request("a-1", status="executed"))
        outcome = build_decision_patch(state, [ApprovalDecision(id="a-1", approved=False)], now=1010.0, ttl_seconds=900)
        assert outcome.applied == []
        assert [item["id"] for item in outcome.already_settled] == ["a-1"]
        assert "pending_approvals" not in outcome.patch

    def test_undecided_requests_stay_pending(self):
        state = _state(_request("a-1"), _request("a-2"))
        outcome = build_decision_patch(state, [ApprovalDecision(id="a-1", approved=True)], now=1010.0, ttl_seconds=900)
        merged = apply_patch(state, outcome.patch)
        assert [item["status"] for item in merged["pending_approvals"]] == ["approved", "pending"]

    def test_no_decisions_only_clears_suspension(self):
        outcome = build_decision_patch(_state(_request("a-1")), [], now=1010.0, ttl_seconds=900)
        assert outcome.patch == {"suspension": None, "waiting_for_human_response": False, "awaiting_tool_results": False}

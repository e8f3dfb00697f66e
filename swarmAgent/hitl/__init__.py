"""Human-in-the-Loop (HITL) module for swarmAgent.

Provides risk classification and operator approval decisions.
"""

from .decisions import ApprovalDecision, DecisionOutcome, build_decision_patch, expire_stale, is_expired
from .risk import RiskAssessment, RiskAssessor, risk_at_most

__all__ = [
    "ApprovalDecision",
    "DecisionOutcome",
    "RiskAssessment",
    "RiskAssessor",
    "build_decision_patch",
    "expire_stale",
    "is_expired",
    "risk_at_most",
]

"""swarmAgent: resumable multi-agent swarm orchestration on LangGraph."""

from swarmAgent.hitl import ApprovalDecision
from swarmAgent.runtime import (
    ExecutionOptions,
    ExecutionResponse,
    ResumeResponse,
    SwarmEngine,
    SwarmLimits,
)
from swarmAgent.tools import CapabilityDescriptor

__version__ = "0.1.0"

__all__ = [
    "ApprovalDecision",
    "CapabilityDescriptor",
    "ExecutionOptions",
    "ExecutionResponse",
    "ResumeResponse",
    "SwarmEngine",
    "SwarmLimits",
    "__version__",
]

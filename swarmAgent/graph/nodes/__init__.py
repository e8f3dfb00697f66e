"""Graph node builders for the swarm workflow."""

from .agent_completion import build_agent_completion_node
from .coordinator import KnowledgeRetriever, build_coordinator_node
from .decomposer import build_decomposer_node
from .selector import build_selector_node
from .swarm_executor import build_swarm_executor_node
from .synthesizer import build_synthesizer_node
from .tool_approval import build_tool_approval_node
from .tool_execution import build_tool_execution_node

__all__ = [
    "KnowledgeRetriever",
    "build_agent_completion_node",
    "build_coordinator_node",
    "build_decomposer_node",
    "build_selector_node",
    "build_swarm_executor_node",
    "build_synthesizer_node",
    "build_tool_approval_node",
    "build_tool_execution_node",
]

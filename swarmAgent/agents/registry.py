"""Agent Registry - static catalog of swarm roles.

Pure lookup: role name → system prompt and expertise tags. The master role is
used by the decomposer and synthesizer and is never activated as a worker.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .schema import AgentRoleConfig

LOGGER = logging.getLogger(__name__)

MASTER_ROLE = "master"


DEFAULT_ROLES: List[AgentRoleConfig] = [
    AgentRoleConfig(
        role="research",
        name="Research Agent",
        description="Information gathering, fact-checking and data analysis with well-sourced answers.",
        expertise=("information_gathering", "fact_checking", "data_analysis"),
        keywords=("search", "find", "look up", "source", "latest"),
        system_prompt=(
            "You are a Research Agent specializing in information gathering, fact-checking, "
            "and data analysis. All tool usage requires human approval. "
            "Provide accurate, well-sourced information."
        ),
    ),
    AgentRoleConfig(
        role="analysis",
        name="Analysis Agent",
        description="Logical reasoning and problem decomposition; breaks complex problems down systematically.",
        expertise=("logical_reasoning", "problem_decomposition", "critical_thinking"),
        keywords=("analyze", "analyse", "summarize", "summarise", "compare", "evaluate"),
        system_prompt=(
            "You are an Analysis Agent specializing in logical reasoning and problem decomposition. "
            "All tool usage requires human approval. Break down complex problems systematically."
        ),
    ),
    AgentRoleConfig(
        role="creative",
        name="Creative Agent",
        description="Innovative solutions and design thinking; generates creative, practical ideas.",
        expertise=("brainstorming", "design_thinking", "innovation"),
        keywords=("idea", "ideas", "story", "name", "slogan"),
        system_prompt=(
            "You are a Creative Agent specializing in innovative solutions and design thinking. "
            "All tool usage requires human approval. Generate creative, practical ideas."
        ),
    ),
    AgentRoleConfig(
        role="technical",
        name="Technical Agent",
        description="Implementation and system design; provides technical solutions and code.",
        expertise=("programming", "system_design", "implementation"),
        keywords=("code", "bug", "api", "script", "deploy"),
        system_prompt=(
            "You are a Technical Agent specializing in implementation and system design. "
            "All tool usage requires human approval. Provide technical solutions and code."
        ),
    ),
    AgentRoleConfig(
        role="communication",
        name="Communication Agent",
        description="Clear writing, documentation and audience-aware presentation.",
        expertise=("writing", "documentation", "presentation"),
        keywords=("email", "draft", "letter", "report", "explain"),
        system_prompt=(
            "You are a Communication Agent specializing in clear writing and documentation. "
            "All tool usage requires human approval. Present information clearly for the audience."
        ),
    ),
    AgentRoleConfig(
        role="validation",
        name="Validation Agent",
        description="Quality assurance, testing and verification of results.",
        expertise=("quality_assurance", "testing", "verification"),
        keywords=("check", "verify", "validate", "review"),
        system_prompt=(
            "You are a Validation Agent specializing in quality assurance and verification. "
            "All tool usage requires human approval. Verify results and point out problems."
        ),
    ),
]

MASTER_CONFIG = AgentRoleConfig(
    role=MASTER_ROLE,
    name="Master Coordinator",
    description="Plans the work and merges agent results.",
    expertise=("coordination", "planning", "synthesis"),
    system_prompt=(
        "You are a Master Coordinator. You break tasks into subtasks for specialised agents "
        "and combine their results into one clear, well-structured answer."
    ),
)


class AgentRegistry:
    """Role catalog for one engine.

    Insertion order is meaningful: it is the catalog order used for
    tie-breaking and as the fallback scheduling order.
    """

    def __init__(self, roles: Optional[Iterable[AgentRoleConfig]] = None, master: Optional[AgentRoleConfig] = None):
        self._roles: Dict[str, AgentRoleConfig] = {}
        self._master = master or MASTER_CONFIG
        for config in roles if roles is not None else DEFAULT_ROLES:
            self.register(config)

    def register(self, config: AgentRoleConfig) -> None:
        """Add or replace a role definition."""
        if config.role == MASTER_ROLE:
            raise ValueError(f"'{MASTER_ROLE}' is reserved for the coordinator")
        self._roles[config.role] = config
        LOGGER.debug(f"Registered agent role: {config.role} ({config.name})")

    def get(self, role: str) -> Optional[AgentRoleConfig]:
        """Return the config for a role, the master included."""
        if role == MASTER_ROLE:
            return self._master
        return self._roles.get(role)

    def require(self, role: str) -> AgentRoleConfig:
        """Like ``get`` but raises ``KeyError`` for unknown roles."""
        config = self.get(role)
        if config is None:
            raise KeyError(f"Unknown agent role: {role}")
        return config

    @property
    def master(self) -> AgentRoleConfig:
        return self._master

    def roles(self) -> List[str]:
        return list(self._roles)

    def list_roles(self) -> List[AgentRoleConfig]:
        return list(self._roles.values())

    def __contains__(self, role: str) -> bool:
        return role in self._roles

    def __len__(self) -> int:
        return len(self._roles)

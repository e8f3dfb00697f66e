"""Agent role schema for the swarm catalog.

A role config is the static description of a specialised worker. The runtime
``AgentCard`` (with status) is created from it per execution, see
``swarmAgent.graph.state.new_agent_card``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple


@dataclass(frozen=True, slots=True)
class AgentRoleConfig:
    """Static definition of a swarm role.

    Attributes:
        role: Unique role name (catalog key, e.g. "research")
        name: Display name
        description: Short summary shown to the decomposer
        expertise: Expertise tags used for subtask matching
        keywords: Extra words that count as a match for this role
        system_prompt: System prompt sent with every model call for the role
    """

    role: str
    name: str
    description: str
    expertise: Tuple[str, ...]
    system_prompt: str
    keywords: Tuple[str, ...] = field(default_factory=tuple)

    def expertise_overlap(self, text: str) -> List[str]:
        """Return the expertise tags whose terms appear in ``text``.

        A tag matches when any of its underscore-separated words occurs in the
        text; role keywords count as a match on the first tag.
        """
        lowered = text.lower()
        matched = []
        for tag in self.expertise:
            parts = [p for p in tag.lower().split("_") if len(p) > 2]
            if any(part in lowered for part in parts):
                matched.append(tag)
        if not matched and any(word.lower() in lowered for word in self.keywords):
            matched.append(self.expertise[0] if self.expertise else self.role)
        return matched

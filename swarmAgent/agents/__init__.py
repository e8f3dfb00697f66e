"""Agent role catalog."""

from .registry import DEFAULT_ROLES, MASTER_CONFIG, MASTER_ROLE, AgentRegistry
from .schema import AgentRoleConfig

__all__ = [
    "AgentRegistry",
    "AgentRoleConfig",
    "DEFAULT_ROLES",
    "MASTER_CONFIG",
    "MASTER_ROLE",
]

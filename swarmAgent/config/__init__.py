"""Configuration for swarmAgent."""

from .settings import (
    CapabilitySettings,
    GovernanceSettings,
    ModelRoutingSettings,
    ObservabilitySettings,
    RegistrySettings,
    Settings,
    SwarmSettings,
    get_settings,
)

__all__ = [
    "CapabilitySettings",
    "GovernanceSettings",
    "ModelRoutingSettings",
    "ObservabilitySettings",
    "RegistrySettings",
    "Settings",
    "SwarmSettings",
    "get_settings",
]

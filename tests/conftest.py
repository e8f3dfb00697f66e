"""Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and ensures proper test environment setup.
"""

import sys
from pathlib import Path
from typing import Any, Callable, List

import pytest

# Ensure project root is in PYTHONPATH for imports to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from swarmAgent.config.settings import (  # noqa: E402
    GovernanceSettings,
    RegistrySettings,
    Settings,
    SwarmSettings,
)
from swarmAgent.runtime import CallbackEventSink, SwarmEngine  # noqa: E402
from tests.doubles import FakeCapabilityClient, ScriptedModel  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(
        swarm=SwarmSettings(
            max_iterations=20,
            max_parallel_agents=3,
            max_swarm_size=4,
            max_tool_rounds=3,
            tool_retry_budget=1,
            default_role="analysis",
        ),
        governance=GovernanceSettings(approval_timeout_seconds=900, auto_approve_risk=None),
        registry=RegistrySettings(max_idle_seconds=1800, completed_retention_seconds=300),
    )


@pytest.fixture
def capability_client() -> FakeCapabilityClient:
    return FakeCapabilityClient()


@pytest.fixture
def events() -> List[Any]:
    return []


@pytest.fixture
def make_engine(settings, capability_client, events) -> Callable[..., SwarmEngine]:
    """Factory building an engine around a ScriptedModel; keyword arguments override engine parts."""

    def factory(model: ScriptedModel, **kwargs) -> SwarmEngine:
        return SwarmEngine(
            model_resolver=lambda config: model,
            capability_client=kwargs.pop("capability_client", capability_client),
            settings=kwargs.pop("settings", settings),
            event_sink=kwargs.pop("event_sink", CallbackEventSink(events.append)),
            **kwargs,
        )

    return factory

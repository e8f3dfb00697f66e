"""Utility helpers for swarmAgent."""

from .error_handler import (
    AgentExecutionError,
    InvalidTaskError,
    ModelInvocationError,
    SwarmError,
    ToolExecutionError,
    UnknownExecutionError,
    handle_model_error,
    with_error_boundary,
)
from .logging_utils import setup_logging

__all__ = [
    "AgentExecutionError",
    "InvalidTaskError",
    "ModelInvocationError",
    "SwarmError",
    "ToolExecutionError",
    "UnknownExecutionError",
    "handle_model_error",
    "setup_logging",
    "with_error_boundary",
]

"""Unified error handling for swarm nodes and engine calls."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Dict

from swarmAgent.utils.logging_utils import log_error

LOGGER = logging.getLogger(__name__)


class SwarmError(Exception):
    """Base exception for swarmAgent errors."""

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class InvalidTaskError(SwarmError):
    """Task rejected before any workflow state is created."""
    pass


class AgentExecutionError(SwarmError):
    """Error confined to a single agent; the swarm carries on."""

    def __init__(self, role: str, message: str):
        super().__init__(f"{role} agent failed: {message}")
        self.role = role


class ToolExecutionError(SwarmError):
    """Error confined to a single tool call."""

    def __init__(self, tool_name: str, provider_id: str, message: str):
        super().__init__(f"{provider_id}.{tool_name} failed: {message}")
        self.tool_name = tool_name
        self.provider_id = provider_id


class ModelInvocationError(SwarmError):
    """Error during model invocation."""
    pass


class UnknownExecutionError(SwarmError):
    """Resume or lookup against a missing, cancelled or expired execution."""

    def __init__(self, thread_id: str):
        super().__init__(f"No active execution found for thread {thread_id}")
        self.thread_id = thread_id


def with_error_boundary(node_name: str):
    """Decorator to add a last-resort error boundary to graph nodes.

    Nodes handle their own expected failures. Anything that escapes is recorded
    in ``errors`` and flagged in ``failure`` so routing ends the run and the
    engine reports a structured error instead of crashing.

    Example:
        @with_error_boundary("decomposer")
        async def decomposer_node(state: WorkflowState) -> dict:
            ...
    """
    def _failure_patch(error: Exception) -> Dict[str, Any]:
        message = f"{node_name}: {type(error).__name__}: {error}"
        return {"errors": [message], "failure": message}

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def sync_wrapper(state, *args, **kwargs):
            try:
                return func(state, *args, **kwargs)
            except Exception as e:
                log_error(LOGGER, e, context=f"{node_name} node")
                return _failure_patch(e)

        @functools.wraps(func)
        async def async_wrapper(state, *args, **kwargs):
            try:
                return await func(state, *args, **kwargs)
            except Exception as e:
                log_error(LOGGER, e, context=f"{node_name} node")
                return _failure_patch(e)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def handle_model_error(error: Exception) -> str:
    """Convert model invocation errors to short operator-facing messages."""
    error_str = str(error).lower()

    if "rate_limit" in error_str or "429" in error_str:
        return "model rate limit exceeded"

    if "timeout" in error_str:
        return "model call timed out"

    if "context_length" in error_str:
        return "prompt exceeds the model context window"

    if "invalid_api_key" in error_str or "authentication" in error_str:
        return "model credentials rejected"

    return f"model unavailable: {error}"

"""Capability client: "call tool X on provider Y with arguments Z".

The swarm only depends on the ``CapabilityClient`` protocol. Any exception
raised by ``call_tool`` is treated as a failed tool execution, never as an
engine crash.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from swarmAgent.tools.mcp.connection import MCPToolError
from swarmAgent.tools.mcp.manager import MCPServerManager
from swarmAgent.utils.error_handler import ToolExecutionError
from swarmAgent.utils.logging_utils import log_tool_call, log_tool_result

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class CapabilityClient(Protocol):
    async def call_tool(self, provider_id: str, tool_name: str, arguments: Dict[str, Any]) -> Any:
        """Execute a tool and return its result, raising on failure."""
        ...


@dataclass
class RetryPolicy:
    """Retry behaviour for transient provider failures.

    Backoff before retry ``n`` is ``backoff_base * 2^(n-1)`` plus up to
    ``jitter`` seconds, capped at ``backoff_max``.
    """

    max_attempts: int = 2
    backoff_base: float = 0.5
    backoff_max: float = 10.0
    jitter: float = 0.1

    retryable_exceptions: Tuple[type, ...] = (
        asyncio.TimeoutError,
        TimeoutError,
        ConnectionError,
        OSError,
        RuntimeError,
    )

    def wait(self) -> wait_exponential_jitter:
        return wait_exponential_jitter(initial=self.backoff_base, max=self.backoff_max, jitter=self.jitter)

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, MCPToolError):
            return False
        return isinstance(error, self.retryable_exceptions)


class MCPCapabilityClient:
    """``CapabilityClient`` backed by ``MCPServerManager``.

    Every attempt is bounded by ``timeout_seconds``; transient errors are
    retried according to ``retry_policy``. The final failure is raised as
    ``ToolExecutionError``.
    """

    def __init__(
        self,
        manager: MCPServerManager,
        *,
        timeout_seconds: float = 60.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.manager = manager
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy()

    @classmethod
    def from_settings(cls, manager: MCPServerManager, settings) -> "MCPCapabilityClient":
        caps = settings.capabilities
        return cls(
            manager,
            timeout_seconds=caps.call_timeout_seconds,
            retry_policy=RetryPolicy(max_attempts=caps.max_attempts, backoff_base=caps.backoff_seconds),
        )

    async def call_tool(self, provider_id: str, tool_name: str, arguments: Dict[str, Any]) -> Any:
        log_tool_call(LOGGER, tool_name, provider_id, arguments)
        policy = self.retry_policy

        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            LOGGER.warning(
                f"{provider_id}.{tool_name} attempt {retry_state.attempt_number}/{policy.max_attempts} failed: "
                f"{type(error).__name__}: {error}; retrying in {retry_state.next_action.sleep:.2f}s"
            )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(policy.max_attempts),
                wait=policy.wait(),
                retry=retry_if_exception(policy.is_retryable),
                before_sleep=log_retry,
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        # Restart the provider after a failed attempt
                        await self.manager.drop_server(provider_id)
                    result = await self._call_once(provider_id, tool_name, arguments)
        except Exception as e:
            message = "timed out" if isinstance(e, asyncio.TimeoutError) else str(e)
            log_tool_result(LOGGER, tool_name, message, success=False)
            raise ToolExecutionError(tool_name, provider_id, message) from e

        log_tool_result(LOGGER, tool_name, result, success=True)
        return result

    async def _call_once(self, provider_id: str, tool_name: str, arguments: Dict[str, Any]) -> Any:
        connection = await self.manager.get_server(provider_id)
        try:
            return await asyncio.wait_for(connection.call_tool(tool_name, arguments), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            LOGGER.warning(f"{provider_id}.{tool_name} timed out after {self.timeout_seconds}s")
            raise

"""Storage collaborator interface for execution records."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol


class PersistenceHooks(Protocol):
    """Fire-and-forget record storage driven by ``PersistenceEventSink``.

    Implementations may raise; the engine logs the failure and carries on.
    """

    def create_execution_record(self, execution_id: str, thread_id: str, task: str) -> None:
        ...

    def update_execution_status(
        self,
        execution_id: str,
        status: str,
        *,
        result: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        ...

    def save_agent(self, execution_id: str, agent: Mapping[str, Any]) -> None:
        ...

    def save_task(self, execution_id: str, task: Mapping[str, Any]) -> None:
        ...

    def save_tool_execution(self, execution_id: str, tool_execution: Mapping[str, Any]) -> None:
        ...

    def append_log(self, execution_id: str, level: str, message: str) -> None:
        ...

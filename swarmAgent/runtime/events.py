"""Status events emitted by the engine and the sinks that consume them.

Delivery is best-effort. The engine submits events to an ``EventDispatcher``
that feeds the sinks from a background task, and any exception a sink
raises is logged and dropped. Events are derived by comparing state
snapshots before and after each node update.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol

from swarmAgent.graph.state import AgentStatus

LOGGER = logging.getLogger(__name__)


# ========== Event types ==========

EXECUTION_CREATED = "execution_created"
EXECUTION_STATUS_CHANGED = "execution_status_changed"
AGENT_STATUS_CHANGED = "agent_status_changed"
TASK_STATUS_CHANGED = "task_status_changed"
TOOL_EXECUTION_STATUS_CHANGED = "tool_execution_status_changed"
LOG_APPENDED = "log_appended"

EVENT_TYPES = (
    EXECUTION_CREATED,
    EXECUTION_STATUS_CHANGED,
    AGENT_STATUS_CHANGED,
    TASK_STATUS_CHANGED,
    TOOL_EXECUTION_STATUS_CHANGED,
    LOG_APPENDED,
)


@dataclass(frozen=True)
class SwarmEvent:
    type: str
    execution_id: str
    thread_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "execution_id": self.execution_id,
            "thread_id": self.thread_id,
            "payload": dict(self.payload),
            "timestamp": self.timestamp,
        }


# ========== Sinks ==========

class EventSink(Protocol):
    def emit(self, event: SwarmEvent) -> None:
        ...


class NullEventSink:
    """Discards every event."""

    blocking = False

    def emit(self, event: SwarmEvent) -> None:
        return None


class LoggingEventSink:
    """Writes events to a logger, one line per event."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO):
        self.logger = logger or LOGGER
        self.level = level

    def emit(self, event: SwarmEvent) -> None:
        self.logger.log(self.level, f"[{event.thread_id[:8]}] {event.type}: {event.payload}")


class CallbackEventSink:
    """Forwards events to a plain callable."""

    def __init__(self, callback: Callable[[SwarmEvent], Any]):
        self.callback = callback

    def emit(self, event: SwarmEvent) -> None:
        self.callback(event)


class QueueEventSink:
    """Bounded asyncio queue for consumers such as a websocket pump.

    When the queue is full new events are dropped and counted. The queue is
    not thread-safe, so the sink is called on the event loop.
    """

    blocking = False

    def __init__(self, maxsize: int = 1000):
        self.queue: "asyncio.Queue[SwarmEvent]" = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def emit(self, event: SwarmEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                LOGGER.warning(f"Event queue full, dropped {self.dropped} event(s)")

    def drain(self) -> List[SwarmEvent]:
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


class CompositeEventSink:
    """Fans out to several sinks; one failing sink does not affect the others."""

    def __init__(self, sinks: Iterable[EventSink]):
        self.sinks = list(sinks)

    def emit(self, event: SwarmEvent) -> None:
        for sink in self.sinks:
            safe_emit(sink, event)


class PersistenceEventSink:
    """Translates events into ``PersistenceHooks`` calls.

    Hook failures are logged and swallowed.
    """

    def __init__(self, hooks):
        self.hooks = hooks

    def emit(self, event: SwarmEvent) -> None:
        payload = event.payload
        try:
            if event.type == EXECUTION_CREATED:
                self.hooks.create_execution_record(event.execution_id, event.thread_id, payload.get("task", ""))
            elif event.type == EXECUTION_STATUS_CHANGED:
                self.hooks.update_execution_status(
                    event.execution_id,
                    payload.get("status", ""),
                    result=payload.get("result"),
                    error=payload.get("error"),
                )
            elif event.type == AGENT_STATUS_CHANGED:
                self.hooks.save_agent(event.execution_id, payload)
            elif event.type == TASK_STATUS_CHANGED:
                self.hooks.save_task(event.execution_id, payload)
            elif event.type == TOOL_EXECUTION_STATUS_CHANGED:
                self.hooks.save_tool_execution(event.execution_id, payload)
            elif event.type == LOG_APPENDED:
                self.hooks.append_log(event.execution_id, payload.get("level", "info"), payload.get("message", ""))
        except Exception as e:
            LOGGER.warning(f"Persistence hook failed for {event.type}: {e}")


def safe_emit(sink: EventSink, event: SwarmEvent) -> None:
    try:
        sink.emit(event)
    except Exception as e:
        LOGGER.warning(f"Event sink {type(sink).__name__} failed on {event.type}: {e}")


def _leaf_sinks(sink: EventSink) -> List[EventSink]:
    if isinstance(sink, CompositeEventSink):
        return [leaf for child in sink.sinks for leaf in _leaf_sinks(child)]
    return [sink]


class EventDispatcher:
    """Delivers engine events to a sink from a background task.

    ``submit`` never waits. Events go onto a bounded queue (new events are
    dropped when it is full) and a single drain task hands them to the sinks
    in order. Sinks run in a worker thread unless they set ``blocking = False``.

    Example:
        dispatcher = EventDispatcher(CallbackEventSink(print))
        dispatcher.submit(event)      # inside a running loop
        await dispatcher.flush()      # wait until delivered
    """

    def __init__(self, sink: EventSink, maxsize: int = 1000):
        self.sink = sink
        self.maxsize = maxsize
        self.dropped = 0
        self._queue: Optional["asyncio.Queue[SwarmEvent]"] = None
        self._task: Optional[asyncio.Task] = None

    def submit(self, event: SwarmEvent) -> None:
        if self._task is None or self._task.done():
            self._start()
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                LOGGER.warning(f"Event dispatcher queue full, dropped {self.dropped} event(s)")

    def _start(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.maxsize)
        self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                for sink in _leaf_sinks(self.sink):
                    if getattr(sink, "blocking", True):
                        await asyncio.to_thread(safe_emit, sink, event)
                    else:
                        safe_emit(sink, event)
            except Exception as e:
                LOGGER.warning(f"Event delivery failed on {event.type}: {e}")
            finally:
                self._queue.task_done()

    async def flush(self) -> None:
        """Wait until every submitted event has been handed to the sinks."""
        if self._queue is not None and self._task is not None and not self._task.done():
            await self._queue.join()

    async def aclose(self) -> None:
        await self.flush()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


# ========== State diffing ==========

def _agent_payload(card: Mapping[str, Any], previous: Optional[str]) -> Dict[str, Any]:
    return {
        "agent_id": card.get("id"),
        "role": card.get("role"),
        "status": card.get("status"),
        "previous_status": previous,
        "current_task": card.get("current_task"),
    }


def _task_statuses(state: Mapping[str, Any]) -> Dict[str, str]:
    """Subtask id → status derived from the owning agent."""
    cards = state.get("active_agent_cards") or {}
    deferred = set(state.get("deferred_roles") or [])
    statuses = {}
    for subtask_id, role in (state.get("assignments") or {}).items():
        card = cards.get(role)
        if card is None:
            statuses[subtask_id] = "deferred" if role in deferred else "pending"
        elif card.get("status") == AgentStatus.IDLE.value and not card.get("started_at"):
            statuses[subtask_id] = "assigned"
        elif card.get("status") == AgentStatus.COMPLETED.value:
            statuses[subtask_id] = "completed"
        elif card.get("status") == AgentStatus.FAILED.value:
            statuses[subtask_id] = "failed"
        else:
            statuses[subtask_id] = "in_progress"
    return statuses


def state_events(
    before: Mapping[str, Any],
    after: Mapping[str, Any],
    *,
    execution_id: str,
    thread_id: str,
    now: Optional[float] = None,
) -> List[SwarmEvent]:
    """Events describing what changed between two state snapshots."""
    now = time.time() if now is None else now
    events: List[SwarmEvent] = []

    def event(kind: str, payload: Dict[str, Any]) -> None:
        events.append(SwarmEvent(kind, execution_id, thread_id, payload, now))

    old_cards = before.get("active_agent_cards") or {}
    for role, card in (after.get("active_agent_cards") or {}).items():
        previous = (old_cards.get(role) or {}).get("status")
        if card.get("status") != previous:
            event(AGENT_STATUS_CHANGED, _agent_payload(card, previous))

    old_tasks = _task_statuses(before)
    descriptions = {item["id"]: item for item in after.get("subtasks") or []}
    for subtask_id, status in _task_statuses(after).items():
        if old_tasks.get(subtask_id) != status:
            subtask = descriptions.get(subtask_id) or {}
            event(TASK_STATUS_CHANGED, {
                "subtask_id": subtask_id,
                "description": subtask.get("description"),
                "role": (after.get("assignments") or {}).get(subtask_id),
                "priority": subtask.get("priority"),
                "status": status,
            })

    old_requests = {item["id"]: item.get("status") for item in before.get("pending_approvals") or []}
    for request in after.get("pending_approvals") or []:
        if old_requests.get(request["id"]) != request.get("status"):
            event(TOOL_EXECUTION_STATUS_CHANGED, {
                "approval_id": request["id"],
                "agent_role": request.get("agent_role"),
                "tool_name": request["tool_call"]["name"],
                "provider_id": request.get("provider_id"),
                "arguments": request["tool_call"].get("arguments") or {},
                "risk": request.get("risk"),
                "status": request.get("status"),
                "result": request.get("result"),
                "error": request.get("error"),
                "duration_ms": request.get("duration_ms"),
            })

    old_errors = len(before.get("errors") or [])
    for message in (after.get("errors") or [])[old_errors:]:
        event(LOG_APPENDED, {"level": "error", "message": message})

    old_phases = len(before.get("phase_history") or [])
    for phase in (after.get("phase_history") or [])[old_phases:]:
        event(LOG_APPENDED, {"level": "info", "message": f"phase → {phase}"})

    return events


__all__ = [
    "AGENT_STATUS_CHANGED",
    "CallbackEventSink",
    "CompositeEventSink",
    "EVENT_TYPES",
    "EXECUTION_CREATED",
    "EXECUTION_STATUS_CHANGED",
    "EventSink",
    "LOG_APPENDED",
    "LoggingEventSink",
    "NullEventSink",
    "PersistenceEventSink",
    "QueueEventSink",
    "SwarmEvent",
    "TASK_STATUS_CHANGED",
    "TOOL_EXECUTION_STATUS_CHANGED",
    "safe_emit",
    "state_events",
]

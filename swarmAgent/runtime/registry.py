"""In-flight execution registry owned by the engine.

Each entry tracks one thread: its options, lifecycle timestamps and the lock
that keeps runs of the same execution strictly sequential. Eviction decisions
are delegated to an ``EvictionPolicy`` so hosts can plug their own.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

from swarmAgent.utils.error_handler import UnknownExecutionError

LOGGER = logging.getLogger(__name__)


# ========== Entries ==========

RUNNING = "running"
SUSPENDED = "suspended"
COMPLETED = "completed"
FAILED = "failed"

FINISHED_STATUSES = frozenset({COMPLETED, FAILED})


@dataclass
class ExecutionEntry:
    thread_id: str
    execution_id: str
    options: Any = None
    status: str = RUNNING
    created_at: float = 0.0
    last_active_at: float = 0.0
    finished_at: Optional[float] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def finished(self) -> bool:
        return self.status in FINISHED_STATUSES


# ========== Eviction policies ==========

class EvictionPolicy(Protocol):
    def should_evict(self, entry: ExecutionEntry, now: float) -> bool:
        ...


class AgeBasedEviction:
    """Evict finished executions after a retention window and any other
    execution that has been idle longer than ``max_idle_seconds``."""

    def __init__(self, max_idle_seconds: float = 1800, completed_retention_seconds: float = 300):
        self.max_idle_seconds = max_idle_seconds
        self.completed_retention_seconds = completed_retention_seconds

    def should_evict(self, entry: ExecutionEntry, now: float) -> bool:
        if entry.lock.locked():
            return False
        if entry.finished:
            return now - (entry.finished_at or entry.last_active_at) > self.completed_retention_seconds
        return now - entry.last_active_at > self.max_idle_seconds


# ========== Registry ==========

class ExecutionRegistry:
    """Registry of executions keyed by thread id."""

    def __init__(
        self,
        policy: Optional[EvictionPolicy] = None,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.policy = policy or AgeBasedEviction()
        self._clock = clock
        self._entries: Dict[str, ExecutionEntry] = {}

    def register(self, thread_id: str, execution_id: str, options: Any = None) -> ExecutionEntry:
        """Add an execution, replacing any previous entry for the thread."""
        now = self._clock()
        if thread_id in self._entries:
            LOGGER.warning(f"Replacing registry entry for thread {thread_id}")
        entry = ExecutionEntry(
            thread_id=thread_id,
            execution_id=execution_id,
            options=options,
            created_at=now,
            last_active_at=now,
        )
        self._entries[thread_id] = entry
        LOGGER.debug(f"Registered execution {execution_id} (thread {thread_id})")
        return entry

    def lookup(self, thread_id: str) -> ExecutionEntry:
        """Return the entry for ``thread_id``.

        Raises:
            UnknownExecutionError: If the execution was never registered or was evicted
        """
        entry = self._entries.get(thread_id)
        if entry is None:
            raise UnknownExecutionError(thread_id)
        return entry

    def get(self, thread_id: str) -> Optional[ExecutionEntry]:
        return self._entries.get(thread_id)

    def touch(self, entry: ExecutionEntry, status: Optional[str] = None) -> None:
        now = self._clock()
        entry.last_active_at = now
        if status is not None:
            entry.status = status
            if status in FINISHED_STATUSES:
                entry.finished_at = now

    def evict(self, thread_id: str) -> Optional[ExecutionEntry]:
        """Remove an execution; returns the removed entry, if any."""
        entry = self._entries.pop(thread_id, None)
        if entry is None:
            return None
        LOGGER.info(f"Evicted execution {entry.execution_id} (thread {thread_id}, status {entry.status})")
        return entry

    def sweep(self) -> List[str]:
        """Evict every entry the policy rejects; returns the evicted thread ids."""
        now = self._clock()
        stale = [thread_id for thread_id, entry in self._entries.items() if self.policy.should_evict(entry, now)]
        for thread_id in stale:
            self.evict(thread_id)
        if stale:
            LOGGER.info(f"Swept {len(stale)} execution(s), {len(self._entries)} remaining")
        return stale

    def __contains__(self, thread_id: object) -> bool:
        return thread_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


__all__ = [
    "AgeBasedEviction",
    "COMPLETED",
    "EvictionPolicy",
    "ExecutionEntry",
    "ExecutionRegistry",
    "FAILED",
    "RUNNING",
    "SUSPENDED",
]

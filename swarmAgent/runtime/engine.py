"""Swarm engine: runs, suspends and resumes swarm executions.

One compiled graph serves every execution; executions are isolated by
``thread_id`` in the checkpointer and serialized per thread by the lock of
their registry entry. The engine never raises for workflow problems: callers
get an ``ExecutionResponse`` / ``ResumeResponse``. Only an empty task
(``InvalidTaskError``) and an unknown thread (``UnknownExecutionError``) are
raised, both before any graph work.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from langgraph.errors import GraphRecursionError
from pydantic import BaseModel, ConfigDict, Field

from swarmAgent.agents import AgentRegistry
from swarmAgent.config import Settings, SwarmSettings, get_settings
from swarmAgent.graph.builder import build_swarm_graph
from swarmAgent.graph.nodes import KnowledgeRetriever
from swarmAgent.graph.signals import Suspend, classify
from swarmAgent.graph.state import (
    AgentCard,
    ApprovalStatus,
    Phase,
    apply_patch,
    approvals_with_status,
    initial_state,
)
from swarmAgent.hitl import ApprovalDecision, RiskAssessor, build_decision_patch
from swarmAgent.persistence.checkpointer import build_checkpointer, delete_checkpoint
from swarmAgent.runtime.events import (
    AGENT_STATUS_CHANGED,
    EXECUTION_CREATED,
    EXECUTION_STATUS_CHANGED,
    EventDispatcher,
    EventSink,
    NullEventSink,
    SwarmEvent,
    state_events,
)
from swarmAgent.runtime.registry import (
    COMPLETED,
    FAILED,
    RUNNING,
    SUSPENDED,
    AgeBasedEviction,
    EvictionPolicy,
    ExecutionEntry,
    ExecutionRegistry,
)
from swarmAgent.tools.capability import CapabilityClient
from swarmAgent.tools.catalog import ToolTable
from swarmAgent.utils.error_handler import InvalidTaskError, UnknownExecutionError

LOGGER = logging.getLogger(__name__)

# Graph steps per executor turn: executor, approval, execution, completion
_STEPS_PER_TURN = 4
_BASE_STEPS = 10


# ========== Request / response models ==========

class SwarmLimits(BaseModel):
    """Per-execution limits; unset fields fall back to ``SwarmSettings``."""

    max_iterations: Optional[int] = Field(default=None, ge=1)
    max_parallel_agents: Optional[int] = Field(default=None, ge=1)
    max_swarm_size: Optional[int] = Field(default=None, ge=1)
    max_tool_rounds: Optional[int] = Field(default=None, ge=0)

    def resolve(self, defaults: SwarmSettings) -> Dict[str, int]:
        return {
            "max_iterations": self.max_iterations or defaults.max_iterations,
            "max_parallel_agents": self.max_parallel_agents or defaults.max_parallel_agents,
            "max_swarm_size": self.max_swarm_size or defaults.max_swarm_size,
            "max_tool_rounds": defaults.max_tool_rounds if self.max_tool_rounds is None else self.max_tool_rounds,
        }


class ExecutionOptions(BaseModel):
    """Options for one execution.

    ``model_config`` (exposed as ``model_overrides``) carries per-execution
    model keys such as ``model`` or ``temperature``; ``tool_catalog`` takes
    ``CapabilityDescriptor`` objects or their dict form.
    """

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    model_overrides: Dict[str, Any] = Field(default_factory=dict, alias="model_config")
    tool_catalog: List[Any] = Field(default_factory=list)
    limits: SwarmLimits = Field(default_factory=SwarmLimits)


class ExecutionResponse(BaseModel):
    success: bool
    thread_id: str
    execution_id: str
    result: Optional[str] = None
    requires_human_interaction: bool = False
    pending_approvals: List[Dict[str, Any]] = Field(default_factory=list)
    suspension_reason: Optional[str] = None
    confidence: Optional[float] = None
    errors: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class ResumeResponse(BaseModel):
    success: bool
    completed: bool
    thread_id: str
    result: Optional[str] = None
    requires_human_interaction: bool = False
    pending_approvals: List[Dict[str, Any]] = Field(default_factory=list)
    suspension_reason: Optional[str] = None
    # Requests the decisions referred to that had already been settled
    already_settled: List[Dict[str, Any]] = Field(default_factory=list)
    unknown_approval_ids: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    error: Optional[str] = None


DecisionInput = Union[ApprovalDecision, Mapping[str, Any], Sequence[Union[ApprovalDecision, Mapping[str, Any]]], None]


def _normalize_decisions(decision: DecisionInput) -> List[ApprovalDecision]:
    if decision is None:
        return []
    items = [decision] if isinstance(decision, (ApprovalDecision, Mapping)) else list(decision)
    return [item if isinstance(item, ApprovalDecision) else ApprovalDecision.model_validate(item) for item in items]


def _approval_view(request: Mapping[str, Any]) -> Dict[str, Any]:
    """Operator-facing view of a tool request."""
    call = request.get("tool_call") or {}
    return {
        "id": request["id"],
        "agent_role": request.get("agent_role"),
        "tool_name": call.get("name"),
        "arguments": dict(call.get("arguments") or {}),
        "provider_id": request.get("provider_id"),
        "risk": request.get("risk"),
        "context": request.get("context"),
        "timestamp": request.get("timestamp"),
        "status": request.get("status"),
        "result": request.get("result"),
        "error": request.get("error"),
    }


# ========== Engine ==========

class SwarmEngine:
    """Owns the compiled swarm graph, its checkpointer and the execution registry.

    Example:
        engine = SwarmEngine(model_resolver=resolver, capability_client=client)
        response = await engine.execute("Compare the Q3 reports")
        if response.requires_human_interaction:
            approval = response.pending_approvals[0]
            await engine.resume(response.thread_id, {"id": approval["id"], "approved": True})
    """

    def __init__(
        self,
        *,
        model_resolver,
        capability_client: CapabilityClient,
        agent_registry: Optional[AgentRegistry] = None,
        risk_assessor: Optional[RiskAssessor] = None,
        settings: Optional[Settings] = None,
        checkpointer=None,
        event_sink: Optional[EventSink] = None,
        eviction_policy: Optional[EvictionPolicy] = None,
        knowledge_retriever: Optional[KnowledgeRetriever] = None,
        clock=time.time,
    ):
        self.settings = settings or get_settings()
        self.agent_registry = agent_registry if agent_registry is not None else AgentRegistry()
        self.event_sink = event_sink or NullEventSink()
        self.events = EventDispatcher(self.event_sink, maxsize=self.settings.observability.event_queue_size)
        self.checkpointer = checkpointer if checkpointer is not None else build_checkpointer()
        self._clock = clock
        self.registry = ExecutionRegistry(
            eviction_policy or AgeBasedEviction(
                max_idle_seconds=self.settings.registry.max_idle_seconds,
                completed_retention_seconds=self.settings.registry.completed_retention_seconds,
            ),
            clock=clock,
        )
        self.graph = build_swarm_graph(
            model_resolver=model_resolver,
            agent_registry=self.agent_registry,
            capability_client=capability_client,
            risk_assessor=risk_assessor or RiskAssessor(),
            settings=self.settings,
            clock=clock,
            knowledge_retriever=knowledge_retriever,
            on_agent_busy=self._on_agent_busy,
            checkpointer=self.checkpointer,
        )
        self._sweeper: Optional[asyncio.Task] = None

    # ========== Public API ==========

    async def execute(
        self,
        task: str,
        options: Optional[ExecutionOptions] = None,
        thread_id: Optional[str] = None,
    ) -> ExecutionResponse:
        """Start a new execution and run it until it completes or suspends.

        Raises:
            InvalidTaskError: If ``task`` is empty
        """
        if not task or not task.strip():
            raise InvalidTaskError("Task must not be empty", "Please provide a task to execute.")

        options = options or ExecutionOptions()
        thread_id = thread_id or str(uuid.uuid4())
        execution_id = f"exec-{uuid.uuid4().hex[:12]}"
        limits = options.limits.resolve(self.settings.swarm)
        tool_table = ToolTable.resolve(options.tool_catalog)

        # A reused thread id waits for any run still in progress, then starts from a clean checkpoint
        previous = self.registry.get(thread_id)
        if previous is not None:
            if previous.lock.locked():
                LOGGER.info(f"Thread {thread_id[:8]} is still running, waiting before replacing it")
            await previous.lock.acquire()
        try:
            entry = self.registry.register(thread_id, execution_id, options)
            await entry.lock.acquire()
        finally:
            if previous is not None:
                previous.lock.release()

        try:
            await delete_checkpoint(self.checkpointer, thread_id)
            state = initial_state(
                task=task.strip(),
                thread_id=thread_id,
                execution_id=execution_id,
                limits=limits,
                model_config=options.model_overrides,
                tool_table=tool_table.to_state(),
            )
            LOGGER.info(
                f"Starting execution {execution_id} (thread {thread_id[:8]}): "
                f"{len(tool_table)} tool(s), limits={limits}"
            )
            self._emit(SwarmEvent(EXECUTION_CREATED, execution_id, thread_id, {"task": task.strip()}, self._clock()))
            self._emit_status(entry, RUNNING)

            final = await self._run(entry, state)
            return self._execution_response(entry, final)
        finally:
            entry.lock.release()

    async def resume(self, thread_id: str, decision: DecisionInput = None) -> ResumeResponse:
        """Apply operator decisions (one, a batch or none) and continue the execution.

        Repeating a decision for a request that already ran is a no-op; the
        tool is never executed twice.

        Raises:
            UnknownExecutionError: If the thread is unknown, cancelled or evicted
        """
        entry = self.registry.lookup(thread_id)
        decisions = _normalize_decisions(decision)

        async with entry.lock:
            if self.registry.get(thread_id) is not entry:
                LOGGER.info(f"Thread {thread_id[:8]} was restarted by a new execution while waiting")
                raise UnknownExecutionError(thread_id)
            state = await self._load_state(entry)
            now = self._clock()
            outcome = build_decision_patch(
                state,
                decisions,
                now=now,
                ttl_seconds=self.settings.governance.approval_timeout_seconds,
            )
            if outcome.unknown_ids:
                LOGGER.warning(f"Resume of {thread_id[:8]} referenced unknown approvals: {outcome.unknown_ids}")

            if entry.finished or (decisions and not outcome.applied):
                LOGGER.info(f"Resume of {thread_id[:8]} changes nothing (status {entry.status}), reporting current state")
                self.registry.touch(entry)
                return self._resume_response(entry, state, outcome.already_settled, outcome.unknown_ids)

            if decisions:
                LOGGER.info(f"Resuming {thread_id[:8]} with decisions for {outcome.applied}")
            else:
                LOGGER.info(f"Resuming {thread_id[:8]} without decisions")
            self._emit_status(entry, RUNNING)
            final = await self._run(entry, state, outcome.patch)
            return self._resume_response(entry, final, outcome.already_settled, outcome.unknown_ids)

    async def attach(self, thread_id: str, options: Optional[ExecutionOptions] = None) -> ResumeResponse:
        """Register an execution found in the checkpointer, e.g. one created by another process.

        Raises:
            UnknownExecutionError: If no checkpoint exists for ``thread_id``
        """
        snapshot = await self.graph.aget_state(self._config(thread_id, {}))
        state = dict(snapshot.values or {})
        if not state.get("execution_id"):
            raise UnknownExecutionError(thread_id)

        entry = self.registry.get(thread_id)
        if entry is None:
            entry = self.registry.register(thread_id, state["execution_id"], options)
        self.registry.touch(entry, self._status_of(state))
        LOGGER.info(f"Attached execution {entry.execution_id} (thread {thread_id[:8]}, status {entry.status})")
        return self._resume_response(entry, state, [], [])

    async def cancel(self, thread_id: str) -> bool:
        """Abandon an execution; later resumes raise ``UnknownExecutionError``."""
        entry = self.registry.evict(thread_id)
        if entry is None:
            return False
        await delete_checkpoint(self.checkpointer, thread_id)
        self._emit(SwarmEvent(EXECUTION_STATUS_CHANGED, entry.execution_id, thread_id, {"status": "cancelled"}, self._clock()))
        LOGGER.info(f"Cancelled execution {entry.execution_id} (thread {thread_id[:8]})")
        return True

    async def sweep(self) -> List[str]:
        """Evict stale executions and drop their checkpoints."""
        evicted = self.registry.sweep()
        for thread_id in evicted:
            await delete_checkpoint(self.checkpointer, thread_id)
        return evicted

    def start_sweeper(self, interval_seconds: Optional[float] = None) -> asyncio.Task:
        """Start the periodic sweep task on the running loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper
        interval = interval_seconds or self.settings.registry.sweep_interval_seconds

        async def _loop():
            while True:
                await asyncio.sleep(interval)
                try:
                    await self.sweep()
                except Exception as e:
                    LOGGER.error(f"Execution sweep failed: {e}")

        self._sweeper = asyncio.create_task(_loop())
        LOGGER.info(f"Execution sweeper started (every {interval:.0f}s)")
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        LOGGER.info("Execution sweeper stopped")

    async def flush_events(self) -> None:
        """Wait until every emitted event has reached the event sink."""
        await self.events.flush()

    async def aclose(self) -> None:
        await self.stop_sweeper()
        await self.events.aclose()

    async def get_state(self, thread_id: str) -> Dict[str, Any]:
        """Checkpointed state of a registered execution."""
        entry = self.registry.lookup(thread_id)
        return await self._load_state(entry)

    # ========== Running ==========

    def _config(self, thread_id: str, limits: Mapping[str, int]) -> Dict[str, Any]:
        max_iterations = limits.get("max_iterations", self.settings.swarm.max_iterations)
        max_rounds = limits.get("max_tool_rounds", self.settings.swarm.max_tool_rounds)
        return {
            "configurable": {"thread_id": thread_id},
            "recursion_limit": _BASE_STEPS + max_iterations * (max_rounds + 1) * _STEPS_PER_TURN,
        }

    async def _load_state(self, entry: ExecutionEntry) -> Dict[str, Any]:
        snapshot = await self.graph.aget_state(self._config(entry.thread_id, {}))
        state = dict(snapshot.values or {})
        if not state:
            LOGGER.warning(f"Checkpoint for thread {entry.thread_id} is gone, evicting")
            self.registry.evict(entry.thread_id)
            raise UnknownExecutionError(entry.thread_id)
        return state

    async def _run(
        self,
        entry: ExecutionEntry,
        state: Mapping[str, Any],
        patch: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Invoke the graph once and return the resulting state.

        ``state`` is the full state for a fresh execution, or the checkpointed
        state when resuming with ``patch`` as the graph input.
        """
        fresh = patch is None
        graph_input = dict(state) if fresh else dict(patch)
        config = self._config(entry.thread_id, state.get("limits") or {})

        mirror: Dict[str, Any] = dict(state) if fresh else apply_patch(state, patch)
        if not fresh:
            self._emit_diff(state, mirror)

        failure: Optional[str] = None
        try:
            async for chunk in self.graph.astream(graph_input, config, stream_mode="updates"):
                for node_name, update in chunk.items():
                    if node_name.startswith("__") or not isinstance(update, Mapping):
                        continue
                    after = apply_patch(mirror, update)
                    self._emit_diff(mirror, after)
                    mirror = after
        except GraphRecursionError:
            failure = f"Graph step limit {config['recursion_limit']} exceeded"
            LOGGER.error(f"{failure} for thread {entry.thread_id}")
        except Exception as e:
            failure = f"Execution crashed: {type(e).__name__}: {e}"
            LOGGER.exception(f"Unexpected error running thread {entry.thread_id}", exc_info=e)

        if failure:
            await self._record_failure(config, failure)
        snapshot = await self.graph.aget_state(config)
        final = dict(snapshot.values or mirror)
        if failure and not final.get("failure"):
            final["failure"] = failure
        self._emit_status(entry, self._status_of(final), final)
        return final

    async def _record_failure(self, config: Dict[str, Any], failure: str) -> None:
        """Persist a crash so later resumes report it instead of re-running."""
        try:
            await self.graph.aupdate_state(config, {"failure": failure, "errors": [failure]})
        except Exception as e:
            LOGGER.warning(f"Could not record failure in checkpoint: {e}")

    @staticmethod
    def _status_of(state: Mapping[str, Any]) -> str:
        if state.get("failure"):
            return FAILED
        if state.get("current_phase") == Phase.COMPLETED.value:
            return COMPLETED
        if isinstance(classify(state), Suspend):
            return SUSPENDED
        return RUNNING

    # ========== Responses ==========

    def _pending_views(self, state: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return [_approval_view(item) for item in approvals_with_status(state, ApprovalStatus.PENDING.value)]

    def _execution_response(self, entry: ExecutionEntry, state: Mapping[str, Any]) -> ExecutionResponse:
        signal = classify(state)
        suspended = entry.status == SUSPENDED and isinstance(signal, Suspend)
        return ExecutionResponse(
            success=entry.status in (COMPLETED, SUSPENDED),
            thread_id=entry.thread_id,
            execution_id=entry.execution_id,
            result=state.get("synthesized_result") if entry.status == COMPLETED else None,
            requires_human_interaction=suspended and signal.needs_human,
            pending_approvals=self._pending_views(state) if suspended else [],
            suspension_reason=signal.reason if suspended else None,
            confidence=state.get("confidence") if entry.status == COMPLETED else None,
            errors=list(state.get("errors") or []),
            error=state.get("failure") or (None if entry.status in (COMPLETED, SUSPENDED) else f"Execution stopped in phase {state.get('current_phase')}"),
        )

    def _resume_response(
        self,
        entry: ExecutionEntry,
        state: Mapping[str, Any],
        already_settled: Sequence[Mapping[str, Any]],
        unknown_ids: Sequence[str],
    ) -> ResumeResponse:
        signal = classify(state)
        suspended = entry.status == SUSPENDED and isinstance(signal, Suspend)
        completed = entry.status == COMPLETED
        return ResumeResponse(
            success=entry.status in (COMPLETED, SUSPENDED),
            completed=completed,
            thread_id=entry.thread_id,
            result=state.get("synthesized_result") if completed else None,
            requires_human_interaction=suspended and signal.needs_human,
            pending_approvals=self._pending_views(state) if suspended else [],
            suspension_reason=signal.reason if suspended else None,
            already_settled=[_approval_view(item) for item in already_settled],
            unknown_approval_ids=list(unknown_ids),
            errors=list(state.get("errors") or []),
            error=state.get("failure") or (None if entry.status in (COMPLETED, SUSPENDED) else f"Execution stopped in phase {state.get('current_phase')}"),
        )

    # ========== Events ==========

    def _emit(self, event: SwarmEvent) -> None:
        self.events.submit(event)

    def _emit_diff(self, before: Mapping[str, Any], after: Mapping[str, Any]) -> None:
        for event in state_events(
            before,
            after,
            execution_id=after.get("execution_id", ""),
            thread_id=after.get("thread_id", ""),
            now=self._clock(),
        ):
            self._emit(event)

    def _emit_status(self, entry: ExecutionEntry, status: str, state: Optional[Mapping[str, Any]] = None) -> None:
        previous = entry.status
        self.registry.touch(entry, status)
        if previous == status and status != RUNNING:
            return
        payload: Dict[str, Any] = {"status": status, "previous_status": previous}
        if state is not None:
            if status == COMPLETED:
                payload["result"] = state.get("synthesized_result")
                payload["confidence"] = state.get("confidence")
            elif status == FAILED:
                payload["error"] = state.get("failure")
            elif status == SUSPENDED:
                payload["reason"] = getattr(classify(state), "reason", None)
        self._emit(SwarmEvent(EXECUTION_STATUS_CHANGED, entry.execution_id, entry.thread_id, payload, self._clock()))

    def _on_agent_busy(self, state: Mapping[str, Any], card: AgentCard) -> None:
        previous = ((state.get("active_agent_cards") or {}).get(card["role"]) or {}).get("status")
        self._emit(SwarmEvent(
            AGENT_STATUS_CHANGED,
            state.get("execution_id", ""),
            state.get("thread_id", ""),
            {
                "agent_id": card.get("id"),
                "role": card.get("role"),
                "status": card.get("status"),
                "previous_status": previous,
                "current_task": card.get("current_task"),
            },
            self._clock(),
        ))


__all__ = [
    "ExecutionOptions",
    "ExecutionResponse",
    "ResumeResponse",
    "SwarmEngine",
    "SwarmLimits",
]

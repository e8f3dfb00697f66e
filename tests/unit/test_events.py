"""Tests for state-derived events, event sinks and record persistence."""

import asyncio
import threading
import time

import pytest

from swarmAgent.persistence import SqliteRecordStore
from swarmAgent.runtime.events import (
    AGENT_STATUS_CHANGED,
    EXECUTION_CREATED,
    EXECUTION_STATUS_CHANGED,
    LOG_APPENDED,
    TASK_STATUS_CHANGED,
    TOOL_EXECUTION_STATUS_CHANGED,
    CallbackEventSink,
    CompositeEventSink,
    EventDispatcher,
    PersistenceEventSink,
    QueueEventSink,
    SwarmEvent,
    state_events,
)


def _event(kind=LOG_APPENDED, payload=None):
    return SwarmEvent(kind, "exec-1", "thread-1", payload or {"level": "info", "message": "hi"}, 1.0)


class TestStateEvents:
    def test_agent_and_task_changes(self):
        before = {
            "subtasks": [{"id": "subtask-1", "description": "Research", "priority": 1}],
            "assignments": {"subtask-1": "research"},
            "active_agent_cards": {"research": {"id": "r-1", "role": "research", "status": "idle", "started_at": None}},
        }
        after = {
            **before,
            "active_agent_cards": {"research": {"id": "r-1", "role": "research", "status": "completed", "started_at": 5.0}},
        }
        events = state_events(before, after, execution_id="exec-1", thread_id="thread-1", now=9.0)

        agent = [e for e in events if e.type == AGENT_STATUS_CHANGED]
        assert len(agent) == 1
        assert agent[0].payload["status"] == "completed"
        assert agent[0].payload["previous_status"] == "idle"

        task = [e for e in events if e.type == TASK_STATUS_CHANGED]
        assert task[0].payload == {
            "subtask_id": "subtask-1",
            "description": "Research",
            "role": "research",
            "priority": 1,
            "status": "completed",
        }

    def test_tool_request_status_change(self):
        request = {
            "id": "a-1",
            "agent_role": "technical",
            "tool_call": {"name": "file_write", "arguments": {"path": "x"}},
            "provider_id": "filesystem",
            "risk": "high",
            "status": "pending",
        }
        events = state_events(
            {"pending_approvals": [request]},
            {"pending_approvals": [{**request, "status": "executed", "result": "ok", "duration_ms": 3.0}]},
            execution_id="exec-1",
            thread_id="thread-1",
        )
        assert [e.type for e in events] == [TOOL_EXECUTION_STATUS_CHANGED]
        assert events[0].payload["status"] == "executed"
        assert events[0].payload["tool_name"] == "file_write"
        assert events[0].payload["result"] == "ok"

    def test_new_errors_and_phases_become_logs(self):
        events = state_events(
            {"errors": ["old"], "phase_history": ["initialization"]},
            {"errors": ["old", "new"], "phase_history": ["initialization", "decomposition"]},
            execution_id="exec-1",
            thread_id="thread-1",
        )
        assert [(e.payload["level"], e.payload["message"]) for e in events] == [
            ("error", "new"),
            ("info", "phase → decomposition"),
        ]

    def test_no_change_no_events(self):
        state = {"active_agent_cards": {"research": {"role": "research", "status": "busy"}}}
        assert state_events(state, dict(state), execution_id="e", thread_id="t") == []


class TestSinks:
    def test_queue_sink_drops_when_full(self):
        sink = QueueEventSink(maxsize=2)
        for _ in range(5):
            sink.emit(_event())
        assert sink.dropped == 3
        assert len(sink.drain()) == 2
        assert sink.queue.empty()

    def test_composite_sink_isolates_failures(self):
        received = []

        def broken(event):
            raise RuntimeError("sink down")

        sink = CompositeEventSink([CallbackEventSink(broken), CallbackEventSink(received.append)])
        sink.emit(_event())
        assert len(received) == 1

    def test_event_to_dict(self):
        data = _event().to_dict()
        assert data["type"] == LOG_APPENDED
        assert data["execution_id"] == "exec-1"
        assert data["payload"]["message"] == "hi"


class TestEventDispatcher:
    @pytest.mark.asyncio
    async def test_submit_does_not_wait_for_slow_sink(self):
        received = []

        def slow(event):
            time.sleep(0.2)
            received.append(event)

        dispatcher = EventDispatcher(CallbackEventSink(slow))
        started = time.monotonic()
        for _ in range(5):
            dispatcher.submit(_event())
        assert time.monotonic() - started < 0.1
        assert received == []

        await dispatcher.flush()
        assert len(received) == 5
        await dispatcher.aclose()

    @pytest.mark.asyncio
    async def test_event_loop_stays_responsive(self):
        ticks = []

        async def ticker():
            for _ in range(5):
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        dispatcher = EventDispatcher(CallbackEventSink(lambda event: time.sleep(0.3)))
        dispatcher.submit(_event())
        await asyncio.wait_for(ticker(), timeout=0.25)
        assert len(ticks) == 5
        await dispatcher.aclose()

    @pytest.mark.asyncio
    async def test_full_queue_drops_new_events(self):
        gate = threading.Event()
        received = []

        def held(event):
            gate.wait(timeout=2)
            received.append(event.payload["message"])

        dispatcher = EventDispatcher(CallbackEventSink(held), maxsize=2)
        for n in range(5):
            dispatcher.submit(_event(payload={"level": "info", "message": str(n)}))
        assert dispatcher.dropped == 3
        gate.set()
        await dispatcher.flush()
        assert received == ["0", "1"]
        await dispatcher.aclose()

    @pytest.mark.asyncio
    async def test_order_is_kept_across_composite_sinks(self):
        queue_sink = QueueEventSink()
        seen = []
        dispatcher = EventDispatcher(CompositeEventSink([CallbackEventSink(seen.append), queue_sink]))
        events = [_event(payload={"level": "info", "message": str(n)}) for n in range(3)]
        for event in events:
            dispatcher.submit(event)
        await dispatcher.flush()
        assert seen == events
        assert queue_sink.drain() == events
        await dispatcher.aclose()


class TestPersistenceEventSink:
    @pytest.fixture
    def store(self, tmp_path):
        return SqliteRecordStore(str(tmp_path / "records" / "records.db"))

    def test_execution_lifecycle_is_recorded(self, store):
        sink = PersistenceEventSink(store)
        sink.emit(_event(EXECUTION_CREATED, {"task": "Summarize"}))
        sink.emit(_event(EXECUTION_STATUS_CHANGED, {"status": "completed", "result": "Summary"}))

        record = store.get_execution("exec-1")
        assert record["task"] == "Summarize"
        assert record["status"] == "completed"
        assert record["result"] == "Summary"

    def test_records_are_upserted(self, store):
        sink = PersistenceEventSink(store)
        sink.emit(_event(AGENT_STATUS_CHANGED, {"agent_id": "r-1", "role": "research", "status": "busy"}))
        sink.emit(_event(AGENT_STATUS_CHANGED, {"agent_id": "r-1", "role": "research", "status": "completed"}))
        sink.emit(_event(TASK_STATUS_CHANGED, {"subtask_id": "subtask-1", "status": "completed"}))
        sink.emit(_event(TOOL_EXECUTION_STATUS_CHANGED, {"approval_id": "a-1", "status": "denied"}))
        sink.emit(_event(LOG_APPENDED, {"level": "error", "message": "research agent failed"}))

        agents = store.list_records("agents", "exec-1")
        assert len(agents) == 1
        assert agents[0]["status"] == "completed"
        assert store.list_records("tasks", "exec-1")[0]["subtask_id"] == "subtask-1"
        assert store.list_records("tool_executions", "exec-1")[0]["status"] == "denied"
        assert store.list_logs("exec-1") == [("error", "research agent failed")]

    def test_hook_failure_is_swallowed(self):
        class BrokenHooks:
            def create_execution_record(self, execution_id, thread_id, task):
                raise OSError("disk full")

        PersistenceEventSink(BrokenHooks()).emit(_event(EXECUTION_CREATED, {"task": "x"}))

    def test_unknown_table_rejected(self, store):
        with pytest.raises(ValueError):
            store.list_records("executions; DROP TABLE logs", "exec-1")

"""Runtime: engine, execution registry, events and application assembly."""

from .engine import ExecutionOptions, ExecutionResponse, ResumeResponse, SwarmEngine, SwarmLimits
from .events import (
    CallbackEventSink,
    CompositeEventSink,
    EventDispatcher,
    EventSink,
    LoggingEventSink,
    NullEventSink,
    PersistenceEventSink,
    QueueEventSink,
    SwarmEvent,
)
from .registry import AgeBasedEviction, EvictionPolicy, ExecutionEntry, ExecutionRegistry

__all__ = [
    "AgeBasedEviction",
    "CallbackEventSink",
    "CompositeEventSink",
    "EventDispatcher",
    "EventSink",
    "EvictionPolicy",
    "ExecutionEntry",
    "ExecutionOptions",
    "ExecutionRegistry",
    "ExecutionResponse",
    "LoggingEventSink",
    "NullEventSink",
    "PersistenceEventSink",
    "QueueEventSink",
    "ResumeResponse",
    "SwarmEngine",
    "SwarmEvent",
    "SwarmLimits",
]

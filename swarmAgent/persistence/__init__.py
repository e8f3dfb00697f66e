"""Persistence utilities."""

from .checkpointer import build_checkpointer
from .hooks import PersistenceHooks
from .record_store import SqliteRecordStore

__all__ = ["build_checkpointer", "PersistenceHooks", "SqliteRecordStore"]

"""Simple SQLite-based store for execution records."""

from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional


class SqliteRecordStore:
    """SQLite implementation of ``PersistenceHooks``.

    Keeps one row per execution, agent, task and tool execution (upserted on
    every status change) plus an append-only log.
    """

    def __init__(self, db_path: str = "data/records.db"):
        """Initialize the record store.

        Args:
            db_path: Path to SQLite database file
        """
        db_dir = os.path.dirname(db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)

        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS executions (
                    execution_id TEXT PRIMARY KEY,
                    thread_id TEXT NOT NULL,
                    task TEXT NOT NULL,
                    status TEXT NOT NULL,
                    result TEXT,
                    error TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS agents (
                    execution_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    data_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (execution_id, role)
                );
                CREATE TABLE IF NOT EXISTS tasks (
                    execution_id TEXT NOT NULL,
                    subtask_id TEXT NOT NULL,
                    data_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (execution_id, subtask_id)
                );
                CREATE TABLE IF NOT EXISTS tool_executions (
                    execution_id TEXT NOT NULL,
                    approval_id TEXT NOT NULL,
                    data_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (execution_id, approval_id)
                );
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    execution_id TEXT NOT NULL,
                    level TEXT NOT NULL,
                    message TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
            """)
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _now() -> str:
        return datetime.utcnow().isoformat()

    def _upsert(self, table: str, key_column: str, execution_id: str, key: str, data: Mapping[str, Any]):
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                f"""INSERT INTO {table} (execution_id, {key_column}, data_json, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(execution_id, {key_column})
                    DO UPDATE SET data_json = excluded.data_json, updated_at = excluded.updated_at""",
                (execution_id, key, json.dumps(dict(data), ensure_ascii=False, default=str), self._now()),
            )
            conn.commit()
        finally:
            conn.close()

    # ========== PersistenceHooks ==========

    def create_execution_record(self, execution_id: str, thread_id: str, task: str) -> None:
        now = self._now()
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                """INSERT OR REPLACE INTO executions
                   (execution_id, thread_id, task, status, result, error, created_at, updated_at)
                   VALUES (?, ?, ?, 'running', NULL, NULL, ?, ?)""",
                (execution_id, thread_id, task, now, now),
            )
            conn.commit()
        finally:
            conn.close()

    def update_execution_status(
        self,
        execution_id: str,
        status: str,
        *,
        result: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                """UPDATE executions
                   SET status = ?, result = COALESCE(?, result), error = COALESCE(?, error), updated_at = ?
                   WHERE execution_id = ?""",
                (status, result, error, self._now(), execution_id),
            )
            conn.commit()
        finally:
            conn.close()

    def save_agent(self, execution_id: str, agent: Mapping[str, Any]) -> None:
        self._upsert("agents", "role", execution_id, agent["role"], agent)

    def save_task(self, execution_id: str, task: Mapping[str, Any]) -> None:
        self._upsert("tasks", "subtask_id", execution_id, task["subtask_id"], task)

    def save_tool_execution(self, execution_id: str, tool_execution: Mapping[str, Any]) -> None:
        self._upsert("tool_executions", "approval_id", execution_id, tool_execution["approval_id"], tool_execution)

    def append_log(self, execution_id: str, level: str, message: str) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                "INSERT INTO logs (execution_id, level, message, created_at) VALUES (?, ?, ?, ?)",
                (execution_id, level, message, self._now()),
            )
            conn.commit()
        finally:
            conn.close()

    # ========== Queries ==========

    def get_execution(self, execution_id: str) -> Optional[Dict[str, Any]]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            row = conn.execute("SELECT * FROM executions WHERE execution_id = ?", (execution_id,)).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def list_records(self, table: str, execution_id: str) -> List[Dict[str, Any]]:
        """Stored agent/task/tool execution records of one execution."""
        if table not in ("agents", "tasks", "tool_executions"):
            raise ValueError(f"Unknown record table: {table}")
        conn = sqlite3.connect(self.db_path)
        try:
            rows = conn.execute(
                f"SELECT data_json FROM {table} WHERE execution_id = ? ORDER BY updated_at",
                (execution_id,),
            ).fetchall()
            return [json.loads(row[0]) for row in rows]
        finally:
            conn.close()

    def list_logs(self, execution_id: str) -> List[tuple]:
        """(level, message) tuples in insertion order."""
        conn = sqlite3.connect(self.db_path)
        try:
            return conn.execute(
                "SELECT level, message FROM logs WHERE execution_id = ? ORDER BY id",
                (execution_id,),
            ).fetchall()
        finally:
            conn.close()

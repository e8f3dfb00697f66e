"""Checkpointer for LangGraph state persistence.

Required for suspend/resume: a suspended execution lives only in its
checkpoint, addressed by ``thread_id``.
"""

from __future__ import annotations

import logging

from langgraph.checkpoint.memory import MemorySaver

LOGGER = logging.getLogger(__name__)


def build_checkpointer():
    """Build a LangGraph checkpointer for state persistence.

    Note: Uses MemorySaver, so suspended executions survive only within the
    process. A persistent saver (e.g. ``AsyncSqliteSaver``) can be passed to
    ``SwarmEngine`` directly; ``SwarmEngine.attach`` then resumes executions
    created by another process.

    Returns:
        MemorySaver instance for LangGraph checkpointing
    """
    return MemorySaver()


async def delete_checkpoint(checkpointer, thread_id: str) -> None:
    """Drop every checkpoint of ``thread_id``; savers without deletion support are skipped."""
    adelete = getattr(checkpointer, "adelete_thread", None)
    delete = getattr(checkpointer, "delete_thread", None)
    try:
        if adelete is not None:
            await adelete(thread_id)
        elif delete is not None:
            delete(thread_id)
        else:
            LOGGER.debug(f"{type(checkpointer).__name__} cannot delete threads, keeping {thread_id}")
    except NotImplementedError:
        LOGGER.debug(f"{type(checkpointer).__name__} cannot delete threads, keeping {thread_id}")

"""Logging utilities for swarmAgent."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


def setup_logging(level: int = logging.INFO, log_dir: Optional[str] = "logs") -> logging.Logger:
    """Setup logging configuration for swarmAgent.

    Args:
        level: Console logging level (default: INFO)
        log_dir: Directory for the detailed session log, None disables the file handler

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("swarmAgent")
    logger.setLevel(logging.DEBUG)  # Child loggers filtered by handlers
    logger.propagate = False

    logger.handlers = []

    if log_dir:
        logs_path = Path(log_dir)
        logs_path.mkdir(parents=True, exist_ok=True)
        log_file = logs_path / f"swarm_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(max(level, logging.WARNING))
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    logger.info("=" * 80)
    logger.info("Swarm session started")
    logger.info("=" * 80)

    return logger


def _short(thread_id: Optional[str]) -> str:
    return (thread_id or "N/A")[:8]


def log_routing_decision(logger: logging.Logger, from_node: str, decision: str, reason: str = "") -> None:
    """Log routing decision.

    Args:
        logger: Logger instance
        from_node: Source node making the decision
        decision: Routing destination
        reason: Reason for the routing decision
    """
    logger.info(f"Routing decision from {from_node}: → {decision}")
    if reason:
        logger.debug(f"  → Reason: {reason}")


def log_node_entry(logger: logging.Logger, node_name: str, state: Dict[str, Any]) -> None:
    """Log node entry with a compact state snapshot."""
    agents = state.get("active_agent_cards", {}) or {}
    statuses = {role: card.get("status") for role, card in agents.items()}
    logger.info(f"# ENTERING NODE: {node_name} (thread {_short(state.get('thread_id'))}...)")
    logger.debug(f"  - phase: {state.get('current_phase')}")
    logger.debug(f"  - agents: {statuses}")
    logger.debug(f"  - approvals: {len(state.get('pending_approvals', []) or [])}")
    logger.debug(f"  - errors: {len(state.get('errors', []) or [])}")


def log_node_exit(logger: logging.Logger, node_name: str, updates: Dict[str, Any]) -> None:
    """Log node exit with the keys of the returned patch.

    Args:
        logger: Logger instance
        node_name: Name of the node being exited
        updates: Patch returned by the node
    """
    logger.info(f"# EXITING NODE: {node_name}")
    for key, value in (updates or {}).items():
        if key == "messages":
            logger.debug(f"  - messages: +{len(value)} new messages")
        elif isinstance(value, (dict, list)):
            logger.debug(f"  - {key}: {len(value)} item(s)")
        else:
            logger.debug(f"  - {key}: {value}")


def log_tool_call(logger: logging.Logger, tool_name: str, provider_id: str, args: Dict[str, Any]) -> None:
    """Log tool invocation.

    Args:
        logger: Logger instance
        tool_name: Name of the tool being called
        provider_id: Capability provider serving the tool
        args: Tool arguments
    """
    logger.info(f"Tool call: {provider_id}.{tool_name}")
    logger.debug(f"  Arguments: {json.dumps(args, ensure_ascii=False, default=str)}")


def log_tool_result(logger: logging.Logger, tool_name: str, result: Any, success: bool = True) -> None:
    """Log tool execution result (preview truncated to 500 chars)."""
    status = "✓ Success" if success else "✗ Failed"
    logger.info(f"Tool result: {tool_name} - {status}")

    result_str = str(result)
    if len(result_str) > 500:
        result_str = result_str[:500] + "... (truncated)"
    logger.debug(f"  Result: {result_str}")


def log_error(logger: logging.Logger, error: Exception, context: str = "") -> None:
    """Log error with context.

    Args:
        logger: Logger instance
        error: Exception instance
        context: Additional context about where the error occurred
    """
    logger.error(f"Error occurred: {type(error).__name__}: {str(error)}")
    if context:
        logger.error(f"  Context: {context}")
    logger.debug("Full traceback:", exc_info=error)


def log_prompt(logger: logging.Logger, phase: str, prompt: str, max_length: int = 500) -> None:
    """Log the system prompt used for a model call, truncated."""
    preview = prompt if len(prompt) <= max_length else prompt[:max_length] + "..."
    logger.debug(f"System prompt for {phase}: {preview}")

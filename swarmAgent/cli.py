"""Command-line entry point for swarmAgent.

Usage:
    swarm-agent "Compare the attached quarterly reports"
    swarm-agent            # prompts for the task

Tool approvals are asked for interactively; the execution resumes after each
answer until it completes.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from swarmAgent.config import get_settings
from swarmAgent.hitl import ApprovalDecision
from swarmAgent.runtime.app import build_swarm_app
from swarmAgent.runtime.engine import ExecutionOptions, SwarmLimits
from swarmAgent.utils.logging_utils import setup_logging

LOGGER = logging.getLogger(__name__)


def _format_args(args: dict, max_length: int = 80) -> str:
    text = json.dumps(args, ensure_ascii=False, default=str)
    return text if len(text) <= max_length else text[:max_length] + "..."


async def _ask(prompt: str) -> str:
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, lambda: input(prompt).strip().lower())


async def _collect_decisions(pending: List[dict], auto_deny: bool) -> List[ApprovalDecision]:
    """Ask the operator about every pending request."""
    decisions = []
    for approval in pending:
        print()
        print(f"🛡️  Tool approval [{approval['risk']}]: {approval['tool_name']} (agent: {approval['agent_role']})")
        if approval.get("context"):
            print(f"   Context: {approval['context']}")
        print(f"   Arguments: {_format_args(approval['arguments'])}")

        if auto_deny:
            print("✗ Denied (--deny-all)")
            decisions.append(ApprovalDecision(id=approval["id"], approved=False))
            continue

        while True:
            choice = await _ask("   Approve? [y/n] > ")
            if choice in ("y", "yes"):
                print("✓ Approved")
                decisions.append(ApprovalDecision(id=approval["id"], approved=True))
                break
            if choice in ("n", "no"):
                print("✗ Denied")
                decisions.append(ApprovalDecision(id=approval["id"], approved=False))
                break
            print("   Please answer y or n")
    return decisions


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="swarm-agent", description="Run a task with a swarm of specialised agents.")
    parser.add_argument("task", nargs="?", help="Task to execute (prompted when omitted)")
    parser.add_argument("--max-iterations", type=int, default=None, help="Agent turns before the swarm stops")
    parser.add_argument("--max-swarm-size", type=int, default=None, help="Simultaneously active agents")
    parser.add_argument("--max-parallel-agents", type=int, default=None, help="Agents waiting on approval at once")
    parser.add_argument("--model", default=None, help="Model id override for this execution")
    parser.add_argument("--deny-all", action="store_true", help="Deny every tool request without asking")
    parser.add_argument("--no-discover", action="store_true", help="Do not start MCP servers to list their tools")
    return parser


async def run(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(getattr(logging, settings.observability.log_level.upper(), logging.INFO), settings.observability.log_dir)

    task = args.task
    if not task:
        task = input("Task > ").strip()
    if not task:
        print("No task given.")
        return 2

    app = await build_swarm_app(settings, discover_tools=not args.no_discover)
    app.engine.start_sweeper()
    try:
        options = ExecutionOptions(
            model_config={"model": args.model} if args.model else {},
            tool_catalog=app.tool_catalog,
            limits=SwarmLimits(
                max_iterations=args.max_iterations,
                max_swarm_size=args.max_swarm_size,
                max_parallel_agents=args.max_parallel_agents,
            ),
        )
        print(f"🐝 Running swarm with {len(app.tool_catalog)} tool(s)...")
        response = await app.engine.execute(task, options)
        thread_id = response.thread_id

        while response.success and response.suspension_reason:
            if response.requires_human_interaction:
                decisions = await _collect_decisions(response.pending_approvals, args.deny_all)
                response = await app.engine.resume(thread_id, decisions)
            else:
                LOGGER.info(f"Execution suspended ({response.suspension_reason}), retrying shortly")
                await asyncio.sleep(1)
                response = await app.engine.resume(thread_id)

        print()
        if response.success and response.result is not None:
            print(response.result)
            return 0
        print(f"✗ Execution failed: {response.error or 'no result'}")
        return 1
    finally:
        await app.aclose()


def main() -> None:
    try:
        sys.exit(asyncio.run(run()))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)


if __name__ == "__main__":
    main()

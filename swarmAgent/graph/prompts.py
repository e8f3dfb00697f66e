"""Prompt rendering shared across nodes.

Prompts are Jinja2 templates under ``swarmAgent/config/prompt_templates``,
rendered in a sandboxed environment.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Sequence

from jinja2.sandbox import SandboxedEnvironment

from swarmAgent.agents import AgentRoleConfig

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "config" / "prompt_templates"


@lru_cache(maxsize=None)
def _load_template(name: str) -> str:
    with open(TEMPLATE_DIR / name, "r", encoding="utf-8") as f:
        return f.read()


def render_template(name: str, **params: Any) -> str:
    env = SandboxedEnvironment(trim_blocks=False, keep_trailing_newline=True)
    return env.from_string(_load_template(name)).render(**params).strip()


def build_decomposition_prompt(
    task: str,
    roles: Iterable[AgentRoleConfig],
    knowledge: Sequence[Mapping[str, Any]] = (),
) -> str:
    return render_template("decomposition.jinja2", task=task, roles=list(roles), knowledge=list(knowledge))


def build_agent_task_prompt(
    *,
    task: str,
    subtasks: Sequence[Mapping[str, Any]],
    knowledge: Sequence[Mapping[str, Any]],
    notes: Sequence[str],
    tools_available: bool,
    rounds_left: int,
) -> str:
    """User message for one agent turn: assignment, knowledge and tool outcomes so far."""
    return render_template(
        "agent_task.jinja2",
        task=task,
        subtasks=list(subtasks),
        knowledge=list(knowledge),
        notes=list(notes),
        tools_available=tools_available,
        rounds_left=rounds_left,
    )


def build_synthesis_prompt(task: str, results: List[Mapping[str, Any]], errors: Sequence[str] = ()) -> str:
    return render_template("synthesis.jinja2", task=task, results=results, errors=list(errors))

"""Supervisor team — one node delegates, workers report back.

    supervisor → (route_supervisor) → researcher → supervisor
                                    → writer     → supervisor
                                    → FINISH     → END

The supervisor answers with a JSON decision. Anything it says that cannot be
parsed, or that names a worker the team does not have, is read as FINISH.
The loop is additionally capped by ``max_rounds`` supervisor decisions.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, ValidationError

from agent_brain.agents.nodes import _extract_content, execute_tool_calls

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage
    from langchain_core.tools import BaseTool

    from agent_brain.agents.registry import WorkerDefinition
    from agent_brain.llm import ChatClient

logger = logging.getLogger(__name__)

SUPERVISOR_NODE = "supervisor"
FINISH = "FINISH"
DEFAULT_MAX_ROUNDS = 10
MAX_TOOL_ROUNDS = 5  # guard against a worker that never stops calling tools

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class SupervisorDecision(BaseModel):
    next: str = FINISH
    instructions: str = ""
    reason: str = ""


def parse_decision(content: str) -> SupervisorDecision:
    """Extract the decision JSON from the supervisor's reply; FINISH on failure."""
    match = _JSON_OBJECT.search(content or "")
    if not match:
        logger.warning("Supervisor reply contains no JSON object, finishing")
        return SupervisorDecision(reason="Could not parse response")
    try:
        return SupervisorDecision.model_validate_json(match.group(0))
    except ValidationError as e:
        logger.warning(f"Could not parse supervisor decision ({e.error_count()} error(s)), finishing")
        return SupervisorDecision(reason="Parse error")


def build_supervisor_prompt(workers: Sequence[WorkerDefinition]) -> str:
    worker_lines = "\n".join(f"- {w.label}: {w.description}" for w in workers)
    choices = " | ".join(f'"{w.label}"' for w in workers)
    return f"""You are a team supervisor managing a task between specialized workers.

Available workers:
{worker_lines}

Your job is to:
1. Understand the user's request
2. Delegate to the appropriate worker
3. Review their output
4. Decide if more work is needed or if the task is complete

Respond with a JSON object:
{{
  "next": {choices} | "{FINISH}",
  "instructions": "Specific instructions for the worker",
  "reason": "Why you made this decision"
}}

When the task is fully complete, respond with next: "{FINISH}"."""


def _work_summary(work_log: Mapping[str, str]) -> str:
    return "\n\n".join(
        f"{worker} output: {output[:200]}..." for worker, output in work_log.items()
    )


# ---------------------------------------------------------------------------
# Node factories
# ---------------------------------------------------------------------------


def make_supervisor_node(
    client: ChatClient,
    workers: Sequence[WorkerDefinition],
    max_rounds: int = DEFAULT_MAX_ROUNDS,
) -> Callable:
    prompt = build_supervisor_prompt(workers)
    labels = {w.label for w in workers}

    async def supervisor_node(state: dict[str, Any]) -> dict:
        rounds = state.get("supervisor_rounds", 0)
        if rounds >= max_rounds:
            logger.warning(f"Supervisor reached {max_rounds} rounds, finishing")
            decision = SupervisorDecision(reason=f"Round limit of {max_rounds} reached")
        else:
            system = prompt
            if state.get("work_log"):
                system += f"\n\nWork completed so far:\n{_work_summary(state['work_log'])}"
            messages: list[BaseMessage] = [SystemMessage(content=system)] + list(state["messages"])
            response = await client.generate(messages)
            decision = parse_decision(_extract_content(response.content))

        if decision.next != FINISH and decision.next not in labels:
            logger.warning(f"Supervisor chose unknown worker '{decision.next}', finishing")
            decision = SupervisorDecision(reason=f"Unknown worker '{decision.next}'")

        logger.info(f"Supervisor decision: {decision.next} ({decision.reason})")
        return {
            "messages": [AIMessage(content=f"[Supervisor] {decision.model_dump_json()}")],
            "current_worker": None if decision.next == FINISH else decision.next,
            "instructions": decision.instructions,
            "supervisor_rounds": rounds + 1,
        }

    supervisor_node.__name__ = SUPERVISOR_NODE
    return supervisor_node


def make_worker_node(
    worker: WorkerDefinition,
    client: ChatClient,
    tools: Sequence[BaseTool],
    max_tool_rounds: int = MAX_TOOL_ROUNDS,
) -> Callable:
    """Create a worker: runs its own tool loop on the supervisor's instructions."""
    tools = list(tools)

    async def worker_node(state: dict[str, Any]) -> dict:
        logger.info(f"Worker '{worker.label}' processing")
        instructions = state.get("instructions") or "Work on the user's request"
        system = [worker.prompt]
        work_log = state.get("work_log") or {}
        for label in worker.context_from:
            context = work_log.get(label, f"No {label.lower()} output available")
            system.append(f"{label} findings:\n{context}")
        messages: list[BaseMessage] = [
            SystemMessage(content="\n\n".join(system)),
            HumanMessage(content=instructions),
        ]

        response = await client.generate(messages, tools)
        for _ in range(max_tool_rounds):
            if not response.tool_calls:
                break
            messages.append(response)
            messages.extend(await execute_tool_calls(response.tool_calls, tools))
            response = await client.generate(messages, tools)
        else:
            if response.tool_calls:
                logger.warning(
                    f"Worker '{worker.label}' still calling tools after {max_tool_rounds} rounds"
                )

        output = _extract_content(response.content)
        logger.info(f"Worker '{worker.label}' done: {output[:100]}")
        return {
            "messages": [AIMessage(content=f"[{worker.label.title()}] {output}")],
            "work_log": {worker.label: output},
            "current_worker": None,
        }

    worker_node.__name__ = worker.node
    return worker_node


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def route_supervisor(state: dict[str, Any]) -> str:
    """Label of the chosen worker, or FINISH when none is set."""
    return state.get("current_worker") or FINISH



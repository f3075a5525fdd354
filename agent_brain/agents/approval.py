"""Approval gate — human-in-the-loop review of proposed tool calls.

A graph compiled with ``interrupt_before=["tools"]`` pauses before any tool
runs. ``ApprovalGate`` rebuilds what is awaiting review from the paused
state and applies one decision to the whole pause:

    approve — resume; the tools node runs unmodified
    skip    — the tools node is bypassed; one synthetic ToolMessage per call
              is recorded as if it had run, and execution continues with the
              node that would have followed it
    reject  — the run ends here; nothing else executes
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from langchain_core.messages import ToolMessage

from agent_brain.agents.nodes import last_tool_calls
from agent_brain.graph.checkpoint import RunStatus
from agent_brain.graph.errors import ThreadStateError

if TYPE_CHECKING:
    from agent_brain.graph.executor import CompiledGraph, StateSnapshot

logger = logging.getLogger(__name__)

SKIP_MESSAGE = "SKIPPED: Human declined to execute this operation."

DEFAULT_SENSITIVE_TOOLS = frozenset({"send_email", "delete_file"})


class Decision(str, Enum):
    APPROVE = "approve"
    SKIP = "skip"
    REJECT = "reject"

    @classmethod
    def parse(cls, answer: str) -> Decision:
        """Map a free-form operator answer to a decision; unknown means reject."""
        answer = answer.strip().lower()
        if answer in ("y", "yes", "approve", "approved"):
            return cls.APPROVE
        if answer in ("s", "skip"):
            return cls.SKIP
        return cls.REJECT


@dataclass(frozen=True)
class ProposedToolCall:
    id: str
    name: str
    args: dict[str, Any]
    sensitive: bool


@dataclass(frozen=True)
class ApprovalRequest:
    thread_id: str
    node: str
    tool_calls: tuple[ProposedToolCall, ...]

    @property
    def has_sensitive(self) -> bool:
        return any(tc.sensitive for tc in self.tool_calls)

    def format(self) -> str:
        """Human-readable listing of the pending calls."""
        if not self.tool_calls:
            return "No pending tool calls."
        blocks = []
        for i, tc in enumerate(self.tool_calls, 1):
            badge = "SENSITIVE" if tc.sensitive else "SAFE"
            args = json.dumps(tc.args, indent=2, default=str).replace("\n", "\n     ")
            blocks.append(f"  {i}. [{badge}] {tc.name}\n     Args: {args}")
        return "\n\n".join(blocks)


@dataclass(frozen=True)
class ApprovalOutcome:
    decision: Decision
    status: RunStatus
    state: dict[str, Any]
    request: ApprovalRequest | None = None  # set when the run paused again


def build_approval_request(
    snapshot: StateSnapshot, sensitive_tools: Iterable[str] = DEFAULT_SENSITIVE_TOOLS
) -> ApprovalRequest | None:
    """Reconstruct the pending review from a paused snapshot."""
    if snapshot.status is not RunStatus.PAUSED or not snapshot.pending_nodes:
        return None
    sensitive = frozenset(sensitive_tools)
    calls = tuple(
        ProposedToolCall(
            id=tc["id"],
            name=tc["name"],
            args=dict(tc["args"]),
            sensitive=tc["name"] in sensitive,
        )
        for tc in last_tool_calls(snapshot.state.get("messages", []))
    )
    return ApprovalRequest(
        thread_id=snapshot.thread_id, node=snapshot.pending_nodes[0], tool_calls=calls
    )


class ApprovalGate:
    """Applies approve / skip / reject decisions to a paused thread."""

    def __init__(
        self,
        graph: CompiledGraph,
        sensitive_tools: Iterable[str] = DEFAULT_SENSITIVE_TOOLS,
    ):
        self.graph = graph
        self.sensitive_tools = frozenset(sensitive_tools)

    def pending(self, thread_id: str) -> ApprovalRequest | None:
        snapshot = self.graph.get_state(thread_id)
        if snapshot is None:
            return None
        return build_approval_request(snapshot, self.sensitive_tools)

    async def resolve(self, thread_id: str, decision: Decision | str) -> ApprovalOutcome:
        """Apply one decision to the pause the thread is currently at.

        The decision only takes effect if the thread is still at the step the
        request was read from. A concurrent decision that got there first, or
        a run already resumed, makes this one raise ``ThreadStateError``.
        """
        decision = Decision(decision)
        snapshot = self.graph.get_state(thread_id)
        request = (
            build_approval_request(snapshot, self.sensitive_tools) if snapshot else None
        )
        if request is None:
            raise ThreadStateError(f"Thread '{thread_id}' is not awaiting approval")
        step = snapshot.step

        if request.has_sensitive:
            logger.info(
                f"[{thread_id}] decision '{decision.value}' covers sensitive call(s): "
                f"{[tc.name for tc in request.tool_calls if tc.sensitive]}"
            )

        match decision:
            case Decision.APPROVE:
                logger.info(f"[{thread_id}] approved, resuming at '{request.node}'")
                state = await self.graph.invoke(None, thread_id, expected_step=step)
            case Decision.SKIP:
                logger.info(f"[{thread_id}] skipping '{request.node}'")
                state = await self._skip(thread_id, request, step)
            case Decision.REJECT:
                logger.info(f"[{thread_id}] rejected, aborting before '{request.node}'")
                state = await self.graph.reject(thread_id, expected_step=step)

        snapshot = self.graph.get_state(thread_id)
        return ApprovalOutcome(
            decision=decision,
            status=snapshot.status,
            state=state,
            request=build_approval_request(snapshot, self.sensitive_tools),
        )

    async def _skip(
        self, thread_id: str, request: ApprovalRequest, step: int
    ) -> dict[str, Any]:
        skipped = [
            ToolMessage(content=SKIP_MESSAGE, tool_call_id=tc.id, name=tc.name)
            for tc in request.tool_calls
        ]
        snapshot = await self.graph.update_state(
            thread_id, {"messages": skipped}, as_node=request.node, expected_step=step
        )
        if snapshot.status is not RunStatus.RUNNING:
            # Landed on another interrupt (or nothing follows): stop here.
            return snapshot.state
        return await self.graph.invoke(None, thread_id)

"""Request/response models — the contract between engine and clients."""

from typing import Any, Literal

from pydantic import BaseModel


class RunRequest(BaseModel):
    """Starts a fresh run on a thread. ``input`` becomes the first user message."""

    input: str


class ApprovalDecisionRequest(BaseModel):
    """Resolves a paused thread: approve, skip or reject the pending tool calls."""

    decision: Literal["approve", "skip", "reject"]


class MessageView(BaseModel):
    type: str          # human | ai | tool | system
    content: str
    name: str | None = None
    tool_calls: list[dict[str, Any]] = []


class ToolCallView(BaseModel):
    id: str
    name: str
    args: dict[str, Any]
    sensitive: bool


class ThreadStateResponse(BaseModel):
    """Snapshot of a thread's latest checkpoint.

    Status:
        running    — mid-run (only visible while another request drives it)
        paused     — waiting before an interrupt node; see pending_tool_calls
        completed  — nothing left to run; ``output`` holds the final answer
        rejected   — a reviewer ended the run
        failed     — a node, route or recursion limit aborted the run
    """

    graph_id: str
    thread_id: str
    status: str
    step: int
    next: list[str]
    output: str
    messages: list[MessageView]
    values: dict[str, Any]          # every channel except messages
    pending_tool_calls: list[ToolCallView] = []
    error: str | None = None

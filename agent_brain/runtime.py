"""Runtime — bridges HTTP requests to graph execution.

Resolves graphs through the cache, owns the shared checkpointer, and turns
thread snapshots into response models.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from langchain_core.messages import AIMessage, HumanMessage

from agent_brain.agents import cache as graph_cache
from agent_brain.agents.approval import ApprovalGate, build_approval_request
from agent_brain.agents.nodes import _extract_content, final_content
from agent_brain.graph import FileCheckpointer, MemoryCheckpointer
from agent_brain.llm import get_chat_client
from agent_brain.schemas import MessageView, ThreadStateResponse, ToolCallView

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from agent_brain.config import CheckpointConfig, EngineConfig, GraphConfig
    from agent_brain.graph import BaseCheckpointer, CompiledGraph, StateSnapshot

logger = logging.getLogger(__name__)

# Shared by every graph so a thread survives graph rebuilds on reload.
_checkpointer: tuple[CheckpointConfig, BaseCheckpointer] | None = None


def get_checkpointer(config: EngineConfig) -> BaseCheckpointer:
    """Return the checkpointer for the current config, creating it on change."""
    global _checkpointer
    if _checkpointer is not None and _checkpointer[0] == config.checkpoint:
        return _checkpointer[1]

    match config.checkpoint.backend:
        case "file":
            checkpointer: BaseCheckpointer = FileCheckpointer(config.checkpoint.directory)
        case _:
            checkpointer = MemoryCheckpointer()
    logger.info(f"Using {type(checkpointer).__name__} for thread checkpoints")
    _checkpointer = (config.checkpoint, checkpointer)
    return checkpointer


def reset_checkpointer() -> None:
    global _checkpointer
    _checkpointer = None


def get_graph(config: EngineConfig, graph_config: GraphConfig) -> CompiledGraph:
    return graph_cache.get_or_build(
        graph_config,
        config.llm,
        lambda: get_chat_client(config.llm),
        get_checkpointer(config),
    )


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def start_run(
    config: EngineConfig, graph_config: GraphConfig, thread_id: str, user_input: str
) -> ThreadStateResponse:
    """Start a fresh run on the thread and report where it stopped."""
    logger.info(
        f"Executing run: graph={graph_config.id}, topology={graph_config.topology}, "
        f"thread={thread_id}"
    )
    graph = get_graph(config, graph_config)
    await graph.invoke({"messages": [HumanMessage(content=user_input)]}, thread_id)
    return _to_response(config, graph_config.id, graph.get_state(thread_id))


async def resolve_approval(
    config: EngineConfig, graph_config: GraphConfig, thread_id: str, decision: str
) -> ThreadStateResponse:
    """Apply a reviewer decision to a paused thread."""
    graph = get_graph(config, graph_config)
    gate = ApprovalGate(graph, config.sensitive_tools)
    outcome = await gate.resolve(thread_id, decision)
    logger.info(f"Approval '{outcome.decision.value}' on {thread_id} → {outcome.status.value}")
    return _to_response(config, graph_config.id, graph.get_state(thread_id))


def thread_state(
    config: EngineConfig, graph_config: GraphConfig, thread_id: str
) -> ThreadStateResponse | None:
    snapshot = get_graph(config, graph_config).get_state(thread_id)
    if snapshot is None:
        return None
    return _to_response(config, graph_config.id, snapshot)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def _message_view(message: BaseMessage) -> MessageView:
    return MessageView(
        type=message.type,
        content=_extract_content(message.content),
        name=getattr(message, "name", None),
        tool_calls=list(message.tool_calls) if isinstance(message, AIMessage) else [],
    )


def _to_response(
    config: EngineConfig, graph_id: str, snapshot: StateSnapshot
) -> ThreadStateResponse:
    state: dict[str, Any] = snapshot.state
    request = build_approval_request(snapshot, config.sensitive_tools)
    pending_calls = (
        [
            ToolCallView(id=tc.id, name=tc.name, args=tc.args, sensitive=tc.sensitive)
            for tc in request.tool_calls
        ]
        if request
        else []
    )
    return ThreadStateResponse(
        graph_id=graph_id,
        thread_id=snapshot.thread_id,
        status=snapshot.status.value,
        step=snapshot.step,
        next=list(snapshot.next),
        output=final_content(state),
        messages=[_message_view(m) for m in state.get("messages", [])],
        values={k: v for k, v in state.items() if k != "messages"},
        pending_tool_calls=pending_calls,
        error=snapshot.error,
    )

"""Node functions — the reasoning and tool steps each graph wires together.

Node factories close over their collaborators (chat client, tools, limits)
and return functions ``(state) -> partial update``. They keep nothing between
calls: everything that must survive a pause lives in the state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from langchain_core.messages import AIMessage, SystemMessage, ToolMessage

from agent_brain.graph.builder import END
from agent_brain.tools import ERROR_PREFIX, is_soft_error

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage
    from langchain_core.tools import BaseTool

    from agent_brain.llm import ChatClient

logger = logging.getLogger(__name__)

TOOLS_NODE = "tools"
AGENT_NODE = "agent"


def _extract_content(content) -> str:
    """Normalize message content. Anthropic can return a list of blocks or a string."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # Extract text from content blocks: [{"type": "text", "text": "..."}]
        parts = []
        for block in content:
            if isinstance(block, dict):
                parts.append(block.get("text", str(block)))
            else:
                parts.append(str(block))
        return "\n".join(parts)
    return str(content)


def last_tool_calls(messages: Sequence[BaseMessage]) -> list[dict]:
    """Tool calls attached to the last message, if it is an assistant turn."""
    if not messages:
        return []
    last = messages[-1]
    if not isinstance(last, AIMessage):
        return []
    return list(last.tool_calls or [])


async def execute_tool_calls(
    tool_calls: list[dict], tools: Sequence[BaseTool]
) -> list[ToolMessage]:
    """Run tool calls sequentially, in call order, and return ToolMessages.

    Unknown tool names become soft errors. Anything a tool raises propagates.
    """
    tools_by_name = {t.name: t for t in tools}
    results: list[ToolMessage] = []
    for tc in tool_calls:
        tool = tools_by_name.get(tc["name"])
        if tool is None:
            content = f'{ERROR_PREFIX} Unknown tool "{tc["name"]}"'
        else:
            logger.info(f"Running tool {tc['name']}({tc['args']})")
            content = str(await tool.ainvoke(tc["args"]))
        logger.info(f"Tool {tc['name']} returned: {content[:200]}")
        results.append(ToolMessage(content=content, tool_call_id=tc["id"], name=tc["name"]))
    return results


# ---------------------------------------------------------------------------
# Node factories
# ---------------------------------------------------------------------------


def make_agent_node(
    client: ChatClient,
    tools: Sequence[BaseTool],
    system_prompt: str | None = None,
    feedback: Callable[[dict[str, Any]], str | None] | None = None,
    name: str = AGENT_NODE,
) -> Callable:
    """Create the reasoning node: one model turn over the conversation.

    ``feedback`` may return extra instructions for this call only (used by
    the retry policy to surface the last error). They are folded into the
    leading system message; Anthropic rejects system messages anywhere else.
    """
    tools = list(tools)

    async def agent_node(state: dict[str, Any]) -> dict:
        instructions = [system_prompt] if system_prompt else []
        if feedback is not None:
            extra = feedback(state)
            if extra:
                instructions.append(extra)

        messages: list[BaseMessage] = list(state["messages"])
        if instructions:
            messages = [SystemMessage(content="\n\n".join(instructions))] + messages

        response = await client.generate(messages, tools)

        if response.tool_calls:
            logger.info(
                f"Agent '{name}' decided to call: "
                f"{', '.join(tc['name'] for tc in response.tool_calls)}"
            )
        else:
            logger.info(f"Agent '{name}' decided to respond directly")
        return {"messages": [response]}

    agent_node.__name__ = name
    return agent_node


def make_tool_node(tools: Sequence[BaseTool], track_errors: bool = False) -> Callable:
    """Create the node that executes every tool call of the last assistant turn.

    All calls run before the node returns, so the whole fan-out is one step.
    With ``track_errors`` the node also maintains the retry channels:
    ``last_error`` is set to the last soft error of the step (None if there
    was none) and ``retry_count`` goes up by exactly one per failing step.
    """
    tools = list(tools)

    async def tool_node(state: dict[str, Any]) -> dict:
        tool_calls = last_tool_calls(state["messages"])
        results = await execute_tool_calls(tool_calls, tools)
        update: dict[str, Any] = {"messages": results}

        if track_errors:
            errors = [r.content for r in results if is_soft_error(str(r.content))]
            last_error = errors[-1] if errors else None
            retry_count = state.get("retry_count", 0)
            update["last_error"] = last_error
            update["retry_count"] = retry_count + 1 if last_error else retry_count
            if last_error:
                logger.warning(f"Tool step failed (#{retry_count + 1}): {last_error}")
        return update

    tool_node.__name__ = TOOLS_NODE
    return tool_node


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def route_tools(state: dict[str, Any]) -> str:
    """Pending tool calls go to the tools node; anything else ends the run."""
    if last_tool_calls(state["messages"]):
        return TOOLS_NODE
    return END


TOOL_BRANCHES = {TOOLS_NODE: TOOLS_NODE, END: END}


def final_content(state: dict[str, Any]) -> str:
    """Text of the last message in the conversation."""
    messages = state.get("messages") or []
    if not messages:
        return ""
    return _extract_content(messages[-1].content)

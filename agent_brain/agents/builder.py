"""Graph builder — wires agent nodes into a StateGraph.

Takes a graph's configured topology and constructs one of four shapes:
- react:            agent ⇄ tools until the agent answers directly
- self_correcting:  react, with a retry router after the tools step
- approval:         react, pausing before every tools step for review
- supervisor:       one supervisor delegating to registered workers
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from agent_brain.agents.nodes import (
    AGENT_NODE,
    TOOL_BRANCHES,
    TOOLS_NODE,
    make_agent_node,
    make_tool_node,
    route_tools,
)
from agent_brain.agents.registry import resolve_worker
from agent_brain.agents.retry import (
    DEFAULT_MAX_RETRIES,
    EXHAUSTED,
    RETRY,
    SUCCESS,
    make_error_feedback,
    make_retry_router,
)
from agent_brain.agents.state import AGENT_CHANNELS, RETRY_CHANNELS, TEAM_CHANNELS
from agent_brain.agents.supervisor import (
    DEFAULT_MAX_ROUNDS,
    FINISH,
    SUPERVISOR_NODE,
    make_supervisor_node,
    make_worker_node,
    route_supervisor,
)
from agent_brain.graph import END, StateGraph
from agent_brain.graph.builder import DEFAULT_RECURSION_LIMIT
from agent_brain.tools import resolve_tools

if TYPE_CHECKING:
    from langchain_core.tools import BaseTool

    from agent_brain.config import GraphConfig
    from agent_brain.graph import BaseCheckpointer, CompiledGraph
    from agent_brain.llm import ChatClient

logger = logging.getLogger(__name__)


def build_graph(
    graph_config: GraphConfig,
    client: ChatClient,
    checkpointer: BaseCheckpointer | None = None,
) -> CompiledGraph:
    """Build and compile the graph described by one config entry."""
    common = {
        "checkpointer": checkpointer,
        "recursion_limit": graph_config.recursion_limit,
        "name": graph_config.id,
    }
    match graph_config.topology:
        case "react":
            return build_react_graph(
                client,
                resolve_tools(graph_config.tools),
                system_prompt=graph_config.system_prompt,
                **common,
            )
        case "self_correcting":
            return build_self_correcting_graph(
                client,
                resolve_tools(graph_config.tools),
                max_retries=graph_config.max_retries,
                system_prompt=graph_config.system_prompt,
                **common,
            )
        case "approval":
            return build_approval_graph(
                client,
                resolve_tools(graph_config.tools),
                system_prompt=graph_config.system_prompt,
                **common,
            )
        case "supervisor":
            return build_supervisor_graph(
                client,
                graph_config.workers,
                max_rounds=graph_config.max_rounds,
                **common,
            )
        case _:
            raise ValueError(f"Unknown topology: {graph_config.topology}")


# ---------------------------------------------------------------------------
# Topology builders
# ---------------------------------------------------------------------------


def _react_shape(
    client: ChatClient,
    tools: list[BaseTool],
    system_prompt: str | None,
) -> StateGraph:
    """START → [agent] → route_tools → [tools] → [agent] ... → END"""
    graph = StateGraph(AGENT_CHANNELS)
    graph.add_node(AGENT_NODE, make_agent_node(client, tools, system_prompt))
    graph.add_node(TOOLS_NODE, make_tool_node(tools))
    graph.set_entry_point(AGENT_NODE)
    graph.add_conditional_edges(AGENT_NODE, route_tools, TOOL_BRANCHES)
    graph.add_edge(TOOLS_NODE, AGENT_NODE)
    return graph


def build_react_graph(
    client: ChatClient,
    tools: list[BaseTool],
    system_prompt: str | None = None,
    checkpointer: BaseCheckpointer | None = None,
    recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    name: str = "react",
) -> CompiledGraph:
    graph = _react_shape(client, tools, system_prompt)
    logger.info(f"Built react graph '{name}': tools={[t.name for t in tools]}")
    return graph.compile(checkpointer=checkpointer, recursion_limit=recursion_limit, name=name)


def build_approval_graph(
    client: ChatClient,
    tools: list[BaseTool],
    system_prompt: str | None = None,
    checkpointer: BaseCheckpointer | None = None,
    recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    name: str = "approval",
) -> CompiledGraph:
    """The react shape, compiled to pause before every tools step."""
    graph = _react_shape(client, tools, system_prompt)
    logger.info(f"Built approval graph '{name}': interrupt before '{TOOLS_NODE}'")
    return graph.compile(
        checkpointer=checkpointer,
        interrupt_before=[TOOLS_NODE],
        recursion_limit=recursion_limit,
        name=name,
    )


def build_self_correcting_graph(
    client: ChatClient,
    tools: list[BaseTool],
    max_retries: int = DEFAULT_MAX_RETRIES,
    system_prompt: str | None = None,
    checkpointer: BaseCheckpointer | None = None,
    recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    name: str = "self_correcting",
) -> CompiledGraph:
    """Tool failures loop back to the agent with the error fed in.

    START → [agent] → route_tools → [tools] → route_retry
      route_retry:
        → "retry"     → [agent]  (previous error injected)
        → "exhausted" → END
        → "success"   → END
    """
    graph = StateGraph(RETRY_CHANNELS)
    graph.add_node(
        AGENT_NODE,
        make_agent_node(client, tools, system_prompt, feedback=make_error_feedback(max_retries)),
    )
    graph.add_node(TOOLS_NODE, make_tool_node(tools, track_errors=True))
    graph.set_entry_point(AGENT_NODE)
    graph.add_conditional_edges(AGENT_NODE, route_tools, TOOL_BRANCHES)
    graph.add_conditional_edges(
        TOOLS_NODE,
        make_retry_router(max_retries),
        {RETRY: AGENT_NODE, EXHAUSTED: END, SUCCESS: END},
    )
    logger.info(f"Built self-correcting graph '{name}' (max_retries={max_retries})")
    return graph.compile(checkpointer=checkpointer, recursion_limit=recursion_limit, name=name)


def build_supervisor_graph(
    client: ChatClient,
    worker_labels: list[str],
    max_rounds: int = DEFAULT_MAX_ROUNDS,
    checkpointer: BaseCheckpointer | None = None,
    recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    name: str = "supervisor",
) -> CompiledGraph:
    """Supervisor routes to a worker; every worker reports back.

    START → [supervisor] → route_supervisor
      → "RESEARCHER" → [researcher] → [supervisor]
      → "WRITER"     → [writer]     → [supervisor]
      → "FINISH"     → END
    """
    workers = [resolve_worker(label) for label in worker_labels]
    graph = StateGraph(TEAM_CHANNELS)
    graph.add_node(SUPERVISOR_NODE, make_supervisor_node(client, workers, max_rounds))
    graph.set_entry_point(SUPERVISOR_NODE)

    destinations = {FINISH: END}
    for worker in workers:
        graph.add_node(worker.node, make_worker_node(worker, client, resolve_tools(worker.tools)))
        graph.add_edge(worker.node, SUPERVISOR_NODE)
        destinations[worker.label] = worker.node

    graph.add_conditional_edges(SUPERVISOR_NODE, route_supervisor, destinations)

    logger.info(
        f"Built supervisor graph '{name}': workers={[w.label for w in workers]}, "
        f"max_rounds={max_rounds}"
    )
    return graph.compile(checkpointer=checkpointer, recursion_limit=recursion_limit, name=name)

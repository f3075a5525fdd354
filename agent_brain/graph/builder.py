"""StateGraph — the declarative side of the runtime.

Nodes and edges are plain string-keyed tables, so a graph definition is data:
pending node names can be persisted in a checkpoint and looked up again after
a restart. ``compile()`` validates the tables and hands them to the executor.

    graph = StateGraph(AGENT_CHANNELS)
    graph.add_node("agent", agent_node)
    graph.add_node("tools", tool_node)
    graph.set_entry_point("agent")
    graph.add_conditional_edges("agent", route_tools, {"tools": "tools", END: END})
    graph.add_edge("tools", "agent")
    app = graph.compile(interrupt_before=["tools"])
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from agent_brain.graph.channels import Channel, StateSchema
from agent_brain.graph.errors import GraphDefinitionError, RoutingError

if TYPE_CHECKING:
    from agent_brain.graph.checkpoint import BaseCheckpointer
    from agent_brain.graph.executor import CompiledGraph

logger = logging.getLogger(__name__)

END = "__end__"

DEFAULT_RECURSION_LIMIT = 25

NodeFunction = Callable[[dict[str, Any]], Any]
Router = Callable[[dict[str, Any]], str]


@dataclass(frozen=True)
class StaticEdge:
    source: str
    target: str

    @property
    def targets(self) -> list[str]:
        return [self.target]

    def resolve(self, state: dict[str, Any]) -> str:
        return self.target


@dataclass(frozen=True)
class ConditionalEdge:
    source: str
    router: Router
    branches: Mapping[str, str]

    @property
    def targets(self) -> list[str]:
        return list(self.branches.values())

    def resolve(self, state: dict[str, Any]) -> str:
        """Run the router on post-merge state and map its label to a node."""
        try:
            label = self.router(state)
        except Exception as e:
            raise RoutingError(self.source, f"router raised {e!r}") from e
        if label not in self.branches:
            raise RoutingError(
                self.source,
                f"label {label!r} not in branch map {sorted(self.branches)}",
            )
        return self.branches[label]


Route = StaticEdge | ConditionalEdge


class StateGraph:
    """Builder for a graph of nodes over a declared state schema."""

    def __init__(self, channels: StateSchema | Iterable[Channel]):
        self.schema = channels if isinstance(channels, StateSchema) else StateSchema(channels)
        self._nodes: dict[str, NodeFunction] = {}
        self._routes: dict[str, Route] = {}
        self._entry: str | None = None
        self._problems: list[str] = []

    def add_node(self, name: str, func: NodeFunction) -> StateGraph:
        if name == END:
            self._problems.append(f"'{END}' is reserved and cannot be a node")
        elif name in self._nodes:
            self._problems.append(f"Node '{name}' already exists")
        else:
            self._nodes[name] = func
            logger.debug(f"Added node: {name}")
        return self

    def _add_route(self, route: Route) -> None:
        if route.source in self._routes:
            self._problems.append(
                f"Node '{route.source}' has more than one outgoing routing rule"
            )
            return
        self._routes[route.source] = route

    def add_edge(self, source: str, target: str) -> StateGraph:
        self._add_route(StaticEdge(source, target))
        logger.debug(f"Added edge: {source} -> {target}")
        return self

    def add_conditional_edges(
        self, source: str, router: Router, branches: Mapping[str, str]
    ) -> StateGraph:
        """Route from ``source`` by calling ``router(state)`` and looking up
        the returned label in ``branches``."""
        if not branches:
            self._problems.append(f"Conditional edge from '{source}' has no branches")
            return self
        self._add_route(ConditionalEdge(source, router, dict(branches)))
        logger.debug(f"Added conditional edge: {source} -> {sorted(set(branches.values()))}")
        return self

    def set_entry_point(self, name: str) -> StateGraph:
        self._entry = name
        return self

    # ------------------------------------------------------------------
    # Validation & compilation
    # ------------------------------------------------------------------

    def validate(self, interrupt_before: Iterable[str] = ()) -> list[str]:
        """Return every structural problem found (empty when valid)."""
        problems = list(self._problems)

        if not self._nodes:
            problems.append("Graph has no nodes")
        if self._entry is None:
            problems.append("No entry point set")
        elif self._entry not in self._nodes:
            problems.append(f"Entry point '{self._entry}' is not a node")

        for source, route in self._routes.items():
            if source not in self._nodes:
                problems.append(f"Edge source '{source}' is not a node")
            for target in route.targets:
                if target != END and target not in self._nodes:
                    problems.append(f"Edge target '{target}' (from '{source}') is not a node")

        for name in interrupt_before:
            if name not in self._nodes:
                problems.append(f"Interrupt node '{name}' is not a node")

        return problems

    def _reachable(self) -> set[str]:
        seen: set[str] = set()
        stack = [self._entry] if self._entry else []
        while stack:
            name = stack.pop()
            if name in seen or name == END:
                continue
            seen.add(name)
            route = self._routes.get(name)
            if route:
                stack.extend(route.targets)
        return seen

    def compile(
        self,
        checkpointer: BaseCheckpointer | None = None,
        interrupt_before: Iterable[str] = (),
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
        name: str = "graph",
    ) -> CompiledGraph:
        """Validate the definition and return an executable graph.

        Raises GraphDefinitionError listing every problem found.
        """
        from agent_brain.graph.checkpoint import MemoryCheckpointer
        from agent_brain.graph.executor import CompiledGraph

        interrupt_before = tuple(interrupt_before)
        problems = self.validate(interrupt_before)
        if recursion_limit < 1:
            problems.append("recursion_limit must be at least 1")
        if problems:
            raise GraphDefinitionError(problems)

        unreachable = sorted(set(self._nodes) - self._reachable())
        if unreachable:
            logger.warning(f"Graph '{name}': unreachable node(s) {unreachable}")

        return CompiledGraph(
            name=name,
            schema=self.schema,
            nodes=dict(self._nodes),
            routes=dict(self._routes),
            entry=self._entry,
            interrupt_before=frozenset(interrupt_before),
            checkpointer=checkpointer or MemoryCheckpointer(),
            recursion_limit=recursion_limit,
        )

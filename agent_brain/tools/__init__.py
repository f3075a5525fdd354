"""Tool registry — global name-based lookup for LangChain tools.

Tools are Python functions decorated with ``@register`` and ``@tool``.
Graphs reference them by string name in ``config.yaml`` and the graph
builders resolve names to ``BaseTool`` objects at build time.

Tools that keep per-graph state (e.g. a simulated flaky service) are
registered as factories instead, so every built graph gets a fresh instance.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from langchain_core.tools import BaseTool

# Result strings starting with this prefix are soft failures: they stay in the
# conversation and feed the retry policy instead of aborting the run.
ERROR_PREFIX = "Error:"

_registry: dict[str, BaseTool] = {}
_factories: dict[str, Callable[[], BaseTool]] = {}


def register(tool: BaseTool) -> BaseTool:
    """Add a BaseTool to the registry by its ``.name``.

    Can be used as a decorator (applied *outside* ``@tool``)::

        @register
        @tool
        def my_tool(query: str) -> str:
            ...
    """
    _registry[tool.name] = tool
    return tool


def register_factory(name: str, factory: Callable[[], BaseTool]) -> None:
    """Register a callable that builds a fresh tool each time it is resolved."""
    _factories[name] = factory


def resolve_tools(names: list[str]) -> list[BaseTool]:
    """Look up tool names and return the corresponding ``BaseTool`` objects.

    Raises ``ValueError`` if any name is not registered.
    """
    missing = [n for n in names if n not in _registry and n not in _factories]
    if missing:
        raise ValueError(
            f"Unknown tool(s): {missing}. Available: {list_tools()}"
        )
    return [_factories[n]() if n in _factories else _registry[n] for n in names]


def list_tools() -> list[str]:
    """Return all registered tool names."""
    return sorted({*_registry, *_factories})


def is_soft_error(result: str) -> bool:
    return result.startswith(ERROR_PREFIX)


# Auto-import tool modules so the registry is populated on first access.
import agent_brain.tools.builtins as _builtins  # noqa: E402, F401
import agent_brain.tools.operations as _operations  # noqa: E402, F401
import agent_brain.tools.research as _research  # noqa: E402, F401
import agent_brain.tools.writing as _writing  # noqa: E402, F401

"""Graph cache — one compiled graph per configured graph id.

A compiled graph holds per-thread locks and (for stateful tools) tool
instances, so it is reused across requests until its config entry changes.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from agent_brain.agents.builder import build_graph

if TYPE_CHECKING:
    from agent_brain.config import GraphConfig, LLMConfig
    from agent_brain.graph import BaseCheckpointer, CompiledGraph
    from agent_brain.llm import ChatClient

logger = logging.getLogger(__name__)

# Cache: {graph_id: (config_hash, compiled_graph)}
_cache: dict[str, tuple[str, CompiledGraph]] = {}

def _hash_graph(graph_config: GraphConfig, llm: LLMConfig) -> str:
    """Hash the graph entry + model settings for change detection."""
    data = {"graph": graph_config.model_dump(), "llm": llm.model_dump()}
    config_json = json.dumps(data, sort_keys=True)
    return hashlib.sha256(config_json.encode()).hexdigest()[:16]

def get_or_build(
    graph_config: GraphConfig,
    llm: LLMConfig,
    client_factory: Callable[[], ChatClient],
    checkpointer: BaseCheckpointer,
) -> CompiledGraph:
    """Return the cached graph for this id, or build a new one.

    The chat client is only created when a build is actually needed.
    """
    config_hash = _hash_graph(graph_config, llm)

    if graph_config.id in _cache:
        cached_hash, cached_graph = _cache[graph_config.id]
        if cached_hash == config_hash:
            logger.debug(f"Graph cache hit: {graph_config.id}")
            return cached_graph

    logger.info(
        f"Building graph '{graph_config.id}' (topology={graph_config.topology})"
    )
    graph = build_graph(graph_config, client_factory(), checkpointer)
    _cache[graph_config.id] = (config_hash, graph)
    return graph


def invalidate(graph_id: str | None = None) -> None:
    """Clear the cache. If graph_id given, only clear that graph."""
    if graph_id:
        _cache.pop(graph_id, None)
        logger.info(f"Graph cache invalidated: {graph_id}")
    else:
        _cache.clear()
        logger.info("Graph cache invalidated: all graphs")

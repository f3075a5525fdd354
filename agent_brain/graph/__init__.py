"""Minimal graph runtime: state channels, nodes, edges, checkpoints."""

from agent_brain.graph.builder import END, StateGraph
from agent_brain.graph.channels import (
    Channel,
    StateSchema,
    append,
    keep_max,
    last_value,
    merge_dict,
)
from agent_brain.graph.checkpoint import (
    BaseCheckpointer,
    Checkpoint,
    FileCheckpointer,
    MemoryCheckpointer,
    RunStatus,
)
from agent_brain.graph.executor import CompiledGraph, StateSnapshot, current_thread_id

__all__ = [
    "END",
    "BaseCheckpointer",
    "Channel",
    "Checkpoint",
    "CompiledGraph",
    "FileCheckpointer",
    "MemoryCheckpointer",
    "RunStatus",
    "StateGraph",
    "StateSchema",
    "StateSnapshot",
    "append",
    "current_thread_id",
    "keep_max",
    "last_value",
    "merge_dict",
]

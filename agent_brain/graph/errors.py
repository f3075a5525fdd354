"""Typed failures raised by the graph runtime.

Structural problems (bad definitions, unknown channels) are detected before
any node runs. Execution problems (a node raising, a router returning an
unmapped label) abort the current run and leave a ``failed`` checkpoint.
Soft tool errors, exhausted retries and rejected approvals are *not*
exceptions: they are reported through the execution state.
"""

from __future__ import annotations


class GraphError(Exception):
    """Base class for every error the graph runtime raises."""


class GraphDefinitionError(GraphError):
    """The graph definition is structurally invalid."""

    def __init__(self, problems: list[str] | str):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = problems
        super().__init__("Invalid graph: " + "; ".join(problems))


class UnknownChannelError(GraphError):
    """A state update names a channel the schema does not declare."""

    def __init__(self, channels: list[str], known: list[str]):
        self.channels = channels
        super().__init__(
            f"Unknown state channel(s): {channels}. Declared: {known}"
        )


class GraphExecutionError(GraphError):
    """A run could not make progress."""


class NodeExecutionError(GraphExecutionError):
    """A node function raised, or returned something other than a mapping."""

    def __init__(self, node: str, cause: BaseException | str):
        self.node = node
        self.cause = cause
        super().__init__(f"Node '{node}' failed: {cause}")


class RoutingError(GraphExecutionError):
    """A conditional edge produced a label missing from its branch map."""

    def __init__(self, node: str, detail: str):
        self.node = node
        super().__init__(f"Routing from '{node}' failed: {detail}")


class GraphRecursionError(GraphExecutionError):
    """A single invocation exceeded its step budget."""


class ThreadStateError(GraphExecutionError):
    """The requested operation does not fit the thread's current status."""


class StorageError(GraphError):
    """The checkpoint store could not persist or read a snapshot."""


class CheckpointCorruptionError(StorageError):
    """The checkpoint store returned a snapshot that cannot be parsed."""

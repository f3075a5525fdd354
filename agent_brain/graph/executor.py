"""CompiledGraph — the stepwise scheduler.

One invocation drives a thread through the graph:

    run pending node(s) → merge updates → route → checkpoint → repeat

until no node is pending (completed), the next node is an interrupt
(paused), or something fails (failed). Every step is checkpointed, and a
checkpoint always describes the state *before* its pending nodes run, so a
paused thread and a thread resumed in a fresh process behave identically.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
import weakref
from collections.abc import Mapping
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from agent_brain.graph.builder import END
from agent_brain.graph.checkpoint import Checkpoint, RunStatus
from agent_brain.graph.errors import (
    CheckpointCorruptionError,
    GraphError,
    GraphRecursionError,
    NodeExecutionError,
    ThreadStateError,
)

if TYPE_CHECKING:
    from agent_brain.graph.builder import NodeFunction, Route
    from agent_brain.graph.channels import StateSchema
    from agent_brain.graph.checkpoint import BaseCheckpointer

logger = logging.getLogger(__name__)

_RESUMABLE = (RunStatus.PAUSED, RunStatus.RUNNING)

_current_thread: ContextVar[str | None] = ContextVar("agent_brain_thread", default=None)


def current_thread_id() -> str | None:
    """Thread id of the invocation running in this context, if any."""
    return _current_thread.get()


@dataclass(frozen=True)
class StateSnapshot:
    """Caller-facing view of a thread's latest checkpoint."""

    thread_id: str
    state: dict[str, Any]
    pending_nodes: tuple[str, ...]
    status: RunStatus
    step: int
    error: str | None
    created_at: datetime

    @property
    def next(self) -> tuple[str, ...]:
        return self.pending_nodes

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> StateSnapshot:
        return cls(
            thread_id=checkpoint.thread_id,
            state=copy.deepcopy(checkpoint.state),
            pending_nodes=checkpoint.pending_nodes,
            status=checkpoint.status,
            step=checkpoint.step,
            error=checkpoint.error,
            created_at=checkpoint.created_at,
        )


class CompiledGraph:
    """Executable graph produced by ``StateGraph.compile()``."""

    def __init__(
        self,
        *,
        name: str,
        schema: StateSchema,
        nodes: dict[str, NodeFunction],
        routes: dict[str, Route],
        entry: str,
        interrupt_before: frozenset[str],
        checkpointer: BaseCheckpointer,
        recursion_limit: int,
    ):
        self.name = name
        self.schema = schema
        self.nodes = nodes
        self.routes = routes
        self.entry = entry
        self.interrupt_before = interrupt_before
        self.checkpointer = checkpointer
        self.recursion_limit = recursion_limit
        # An entry lives only while some caller holds or awaits its lock.
        self._thread_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def invoke(
        self,
        input: Mapping[str, Any] | None,
        thread_id: str,
        *,
        expected_step: int | None = None,
    ) -> dict[str, Any]:
        """Start or resume a run and return the state it stopped at.

        ``input`` given   — fresh run seeded by merging ``input`` into defaults.
        ``input is None`` — continue the thread from its pending nodes.

        Pauses, completions and rejections all return normally; inspect
        ``get_state(thread_id).status`` to tell them apart. Node, routing and
        recursion failures are raised after a ``failed`` checkpoint is written.

        ``expected_step`` makes the call conditional: it raises
        ``ThreadStateError`` unless the thread's latest checkpoint is still at
        that step when the per-thread lock is acquired.
        """
        async with self._lock_for(thread_id):
            latest = self._load(thread_id)
            self._expect(thread_id, latest, expected_step)
            token = _current_thread.set(thread_id)
            try:
                if input is None:
                    return await self._resume(thread_id, latest)
                return await self._start(thread_id, latest, input)
            finally:
                _current_thread.reset(token)

    def get_state(self, thread_id: str) -> StateSnapshot | None:
        latest = self._load(thread_id)
        return StateSnapshot.from_checkpoint(latest) if latest else None

    def get_state_history(self, thread_id: str) -> list[StateSnapshot]:
        return [StateSnapshot.from_checkpoint(c) for c in self.checkpointer.list(thread_id)]

    async def update_state(
        self,
        thread_id: str,
        update: Mapping[str, Any],
        as_node: str | None = None,
        *,
        expected_step: int | None = None,
    ) -> StateSnapshot:
        """Merge an external update into the thread's latest state.

        With ``as_node`` the update is treated as that node's output: the
        pending nodes are recomputed from its outgoing route, which lets a
        caller stand in for a node that never ran. Without it, the pending
        nodes and status are kept as they were.
        """
        async with self._lock_for(thread_id):
            latest = self._load(thread_id)
            if latest is None:
                raise ThreadStateError(f"Thread '{thread_id}' has no checkpoint to update")
            self._expect(thread_id, latest, expected_step)
            if as_node is not None and as_node not in self.nodes:
                raise ThreadStateError(f"Cannot update as unknown node '{as_node}'")

            state = self.schema.merge(latest.state, update)
            pending, status = latest.pending_nodes, latest.status
            if as_node is not None:
                pending = tuple(self._route([as_node], state))
                status = self._status_for(pending)

            checkpoint = Checkpoint(
                thread_id=thread_id,
                state=state,
                pending_nodes=pending,
                status=status,
                step=latest.step + 1,
                source="update",
            )
            self.checkpointer.put(checkpoint)
        logger.info(
            f"[{self.name}:{thread_id}] state updated"
            f"{f' as {as_node}' if as_node else ''} → next={list(pending)}"
        )
        return StateSnapshot.from_checkpoint(checkpoint)

    async def reject(
        self, thread_id: str, *, expected_step: int | None = None
    ) -> dict[str, Any]:
        """Terminate a paused thread without running its pending nodes.

        The pending nodes stay recorded on the ``rejected`` checkpoint but can
        never be resumed. Waits for any in-flight invocation of the thread, so
        a reject never lands underneath a run that is already executing.
        """
        async with self._lock_for(thread_id):
            latest = self._load(thread_id)
            self._expect(thread_id, latest, expected_step)
            if latest is None or latest.status is not RunStatus.PAUSED:
                status = latest.status.value if latest else "missing"
                raise ThreadStateError(f"Thread '{thread_id}' is not paused (status={status})")
            self.checkpointer.put(
                Checkpoint(
                    thread_id=thread_id,
                    state=latest.state,
                    pending_nodes=latest.pending_nodes,
                    status=RunStatus.REJECTED,
                    step=latest.step + 1,
                    source="reject",
                )
            )
        logger.info(f"[{self.name}:{thread_id}] rejected at {list(latest.pending_nodes)}")
        return copy.deepcopy(latest.state)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def _lock_for(self, thread_id: str) -> asyncio.Lock:
        lock = self._thread_locks.get(thread_id)
        if lock is None:
            lock = self._thread_locks[thread_id] = asyncio.Lock()
        return lock

    @staticmethod
    def _expect(thread_id: str, latest: Checkpoint | None, expected_step: int | None) -> None:
        if expected_step is None:
            return
        actual = latest.step if latest else None
        if actual != expected_step:
            raise ThreadStateError(
                f"Thread '{thread_id}' moved on (expected step {expected_step}, found {actual})"
            )

    def _load(self, thread_id: str) -> Checkpoint | None:
        try:
            return self.checkpointer.get(thread_id)
        except CheckpointCorruptionError as e:
            logger.warning(f"[{self.name}:{thread_id}] {e}; starting from scratch")
            return None

    async def _start(
        self, thread_id: str, latest: Checkpoint | None, input: Mapping[str, Any]
    ) -> dict[str, Any]:
        if latest is not None and latest.status is RunStatus.PAUSED:
            raise ThreadStateError(
                f"Thread '{thread_id}' is paused before {list(latest.pending_nodes)}; "
                "resume it with no input or reject it first"
            )

        state = self.schema.merge(self.schema.initial_state(), input)
        pending = (self.entry,)
        step = latest.step + 1 if latest else 0
        logger.info(f"[{self.name}:{thread_id}] starting run at '{self.entry}'")

        if self.entry in self.interrupt_before:
            self._checkpoint(thread_id, state, pending, RunStatus.PAUSED, step, "input")
            logger.info(f"[{self.name}:{thread_id}] paused before {list(pending)}")
            return copy.deepcopy(state)

        self._checkpoint(thread_id, state, pending, RunStatus.RUNNING, step, "input")
        return await self._run(thread_id, state, pending, step)

    async def _resume(self, thread_id: str, latest: Checkpoint | None) -> dict[str, Any]:
        if latest is None:
            raise ThreadStateError(f"Thread '{thread_id}' has nothing to resume")
        if latest.status is RunStatus.FAILED:
            raise ThreadStateError(
                f"Thread '{thread_id}' failed and cannot be resumed: {latest.error}"
            )
        if latest.status not in _RESUMABLE or not latest.pending_nodes:
            logger.info(
                f"[{self.name}:{thread_id}] nothing pending (status={latest.status.value})"
            )
            return copy.deepcopy(latest.state)

        logger.info(f"[{self.name}:{thread_id}] resuming at {list(latest.pending_nodes)}")
        return await self._run(thread_id, latest.state, latest.pending_nodes, latest.step)

    async def _run(
        self,
        thread_id: str,
        state: dict[str, Any],
        pending: tuple[str, ...],
        step: int,
    ) -> dict[str, Any]:
        """The tight internal loop. ``pending`` nodes run without an interrupt
        check: the caller has either just started them or explicitly resumed."""
        steps_taken = 0
        before = state
        try:
            while pending:
                before = state
                if steps_taken >= self.recursion_limit:
                    raise GraphRecursionError(
                        f"Recursion limit of {self.recursion_limit} steps reached "
                        f"without hitting a stop condition (next={list(pending)})"
                    )

                for node in pending:
                    update = await self._execute_node(node, state)
                    state = self.schema.merge(state, update)

                next_nodes = tuple(self._route(pending, state))
                steps_taken += 1
                step += 1
                status = self._status_for(next_nodes)
                self._checkpoint(thread_id, state, next_nodes, status, step, "loop")

                if status is RunStatus.PAUSED:
                    logger.info(f"[{self.name}:{thread_id}] paused before {list(next_nodes)}")
                    return copy.deepcopy(state)
                pending = next_nodes

        except GraphError as e:
            logger.error(f"[{self.name}:{thread_id}] run failed: {e}")
            # Updates of the failed step are discarded; resuming would rerun it.
            self._checkpoint(
                thread_id, before, pending, RunStatus.FAILED, step + 1, "loop", error=str(e)
            )
            raise

        logger.info(f"[{self.name}:{thread_id}] completed after {steps_taken} step(s)")
        return copy.deepcopy(state)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _execute_node(self, node: str, state: dict[str, Any]) -> Mapping[str, Any]:
        func = self.nodes[node]
        logger.debug(f"[{self.name}] running node '{node}'")
        try:
            result = func(copy.deepcopy(state))
            if inspect.isawaitable(result):
                result = await result
        except GraphError:
            raise
        except Exception as e:
            logger.error(f"[{self.name}] node '{node}' raised: {e}", exc_info=True)
            raise NodeExecutionError(node, e) from e

        if result is None:
            return {}
        if not isinstance(result, Mapping):
            raise NodeExecutionError(
                node, f"expected a mapping update, got {type(result).__name__}"
            )
        return result

    def _route(self, sources: tuple[str, ...] | list[str], state: dict[str, Any]) -> list[str]:
        """Evaluate each source's outgoing route; distinct targets in order, END dropped."""
        targets: list[str] = []
        for source in sources:
            route = self.routes.get(source)
            target = route.resolve(copy.deepcopy(state)) if route else END
            logger.debug(f"[{self.name}] route {source} → {target}")
            if target != END and target not in targets:
                targets.append(target)
        return targets

    def _status_for(self, pending: tuple[str, ...]) -> RunStatus:
        if not pending:
            return RunStatus.COMPLETED
        if any(node in self.interrupt_before for node in pending):
            return RunStatus.PAUSED
        return RunStatus.RUNNING

    def _checkpoint(
        self,
        thread_id: str,
        state: dict[str, Any],
        pending: tuple[str, ...],
        status: RunStatus,
        step: int,
        source: str,
        error: str | None = None,
    ) -> None:
        self.checkpointer.put(
            Checkpoint(
                thread_id=thread_id,
                state=state,
                pending_nodes=tuple(pending),
                status=status,
                step=step,
                source=source,
                error=error,
            )
        )

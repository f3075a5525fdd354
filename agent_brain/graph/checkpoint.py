"""Checkpointers — per-thread snapshot history used for durability and pause/resume.

A checkpoint captures the state *before* its ``pending_nodes`` run; resuming
executes exactly those nodes against that state. Checkpoints are immutable
and each thread's history is linear, so only the latest one is needed to
resume while the rest stays available for audit.

Two stores ship here:

- ``MemoryCheckpointer`` — in-process dict, for tests and single-process use.
- ``FileCheckpointer``   — one JSON-lines file per thread, survives restarts.

Both serialize ``get``/``put`` per thread id with their own lock; different
thread ids never contend. Unparsable records are skipped by ``list``; ``get``
raises ``CheckpointCorruptionError`` when the latest one is unparsable.
"""

from __future__ import annotations

import builtins
import json
import logging
import threading
import uuid
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import quote

from langchain_core.messages import BaseMessage, message_to_dict, messages_from_dict
from pydantic import BaseModel, ValidationError

from agent_brain.graph.errors import CheckpointCorruptionError, StorageError

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Checkpoint:
    """An immutable snapshot of one thread at one step.

    source — what produced it: "input" (fresh run), "loop" (a node step),
             "update" (update_state) or "reject" (an approval rejection).
    """

    thread_id: str
    state: dict[str, Any]
    pending_nodes: tuple[str, ...]
    status: RunStatus
    step: int
    source: str = "loop"
    error: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    checkpoint_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class BaseCheckpointer(ABC):
    """Storage contract consumed by the executor."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock(self, thread_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(thread_id)
            if lock is None:
                lock = self._locks[thread_id] = threading.Lock()
            return lock

    @abstractmethod
    def get(self, thread_id: str) -> Checkpoint | None:
        """Return the latest checkpoint for a thread, or None."""

    @abstractmethod
    def put(self, checkpoint: Checkpoint) -> None:
        """Append a checkpoint to its thread's history."""

    @abstractmethod
    def list(self, thread_id: str) -> builtins.list[Checkpoint]:
        """Return the thread's full history, oldest first."""


class MemoryCheckpointer(BaseCheckpointer):
    """In-memory checkpoint storage."""

    def __init__(self) -> None:
        super().__init__()
        self._history: dict[str, list[Checkpoint]] = {}

    def get(self, thread_id: str) -> Checkpoint | None:
        with self._lock(thread_id):
            history = self._history.get(thread_id)
            return history[-1] if history else None

    def put(self, checkpoint: Checkpoint) -> None:
        with self._lock(checkpoint.thread_id):
            self._history.setdefault(checkpoint.thread_id, []).append(checkpoint)

    def list(self, thread_id: str) -> builtins.list[Checkpoint]:
        with self._lock(thread_id):
            return list(self._history.get(thread_id, []))


# ---------------------------------------------------------------------------
# File-backed store
# ---------------------------------------------------------------------------

_MESSAGE_KEY = "__lc_message__"


def encode_value(value: Any) -> Any:
    """Turn state values into JSON-compatible data.

    langchain messages are tagged so ``decode_value`` can rebuild them.
    """
    if isinstance(value, BaseMessage):
        return {_MESSAGE_KEY: message_to_dict(value)}
    if isinstance(value, dict):
        return {str(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_MESSAGE_KEY}:
            return messages_from_dict([value[_MESSAGE_KEY]])[0]
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


class CheckpointRecord(BaseModel):
    """On-disk shape of one checkpoint line."""

    checkpoint_id: str
    thread_id: str
    state: dict[str, Any]
    pending_nodes: list[str]
    status: RunStatus
    step: int
    source: str
    error: str | None = None
    created_at: datetime

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> CheckpointRecord:
        return cls(
            checkpoint_id=checkpoint.checkpoint_id,
            thread_id=checkpoint.thread_id,
            state=encode_value(checkpoint.state),
            pending_nodes=list(checkpoint.pending_nodes),
            status=checkpoint.status,
            step=checkpoint.step,
            source=checkpoint.source,
            error=checkpoint.error,
            created_at=checkpoint.created_at,
        )

    def to_checkpoint(self) -> Checkpoint:
        return Checkpoint(
            thread_id=self.thread_id,
            state=decode_value(self.state),
            pending_nodes=tuple(self.pending_nodes),
            status=self.status,
            step=self.step,
            source=self.source,
            error=self.error,
            created_at=self.created_at,
            checkpoint_id=self.checkpoint_id,
        )


class FileCheckpointer(BaseCheckpointer):
    """Append-only JSON-lines history, one file per thread id."""

    def __init__(self, directory: str | Path):
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, thread_id: str) -> Path:
        return self.directory / f"{quote(thread_id, safe='')}.jsonl"

    def _read_lines(self, thread_id: str) -> builtins.list[str]:
        path = self._path(thread_id)
        if not path.exists():
            return []
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Cannot read checkpoints for '{thread_id}': {e}") from e
        return [line for line in text.splitlines() if line.strip()]

    @staticmethod
    def _parse(thread_id: str, line: str) -> Checkpoint:
        try:
            return CheckpointRecord.model_validate_json(line).to_checkpoint()
        except (ValidationError, ValueError, TypeError, KeyError) as e:
            raise CheckpointCorruptionError(
                f"Unparsable checkpoint for thread '{thread_id}': {e}"
            ) from e

    def get(self, thread_id: str) -> Checkpoint | None:
        with self._lock(thread_id):
            lines = self._read_lines(thread_id)
        if not lines:
            return None
        return self._parse(thread_id, lines[-1])

    def put(self, checkpoint: Checkpoint) -> None:
        record = CheckpointRecord.from_checkpoint(checkpoint)
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False)
        with self._lock(checkpoint.thread_id):
            try:
                with self._path(checkpoint.thread_id).open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            except OSError as e:
                raise StorageError(
                    f"Cannot write checkpoint for '{checkpoint.thread_id}': {e}"
                ) from e

    def list(self, thread_id: str) -> builtins.list[Checkpoint]:
        with self._lock(thread_id):
            lines = self._read_lines(thread_id)
        history = []
        for line in lines:
            try:
                history.append(self._parse(thread_id, line))
            except CheckpointCorruptionError as e:
                logger.warning(f"Skipping checkpoint record: {e}")
        return history

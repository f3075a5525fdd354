"""State channels — the declared shape of an execution state.

Every channel pairs a reducer with a default factory. Nodes never return a
full state, only a partial update; ``StateSchema.merge`` folds that update
into the current state channel by channel, so conflict resolution lives in
the reducers:

    messages       — append
    current_worker — last value wins
    work_log       — shallow merge, last write wins per key
    retry_count    — never decreases
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from agent_brain.graph.errors import GraphDefinitionError, UnknownChannelError

logger = logging.getLogger(__name__)

Reducer = Callable[[Any, Any], Any]


# ---------------------------------------------------------------------------
# Reducers
# ---------------------------------------------------------------------------


def append(current: list | None, update: Any) -> list:
    """Concatenate an update onto the current sequence.

    A single non-sequence value is appended as one item.
    """
    current = list(current or [])
    if update is None:
        return current
    if isinstance(update, (list, tuple)):
        return current + list(update)
    return current + [update]


def last_value(current: Any, update: Any) -> Any:
    return update


def merge_dict(current: Mapping | None, update: Mapping | None) -> dict:
    """Shallow merge; keys in ``update`` overwrite keys in ``current``."""
    return {**(current or {}), **(update or {})}


def keep_max(current: int | None, update: int | None) -> int:
    """Monotonic counter: an update can raise the value but never lower it."""
    return max(current or 0, update or 0)


# ---------------------------------------------------------------------------
# Channels & schema
# ---------------------------------------------------------------------------


def _none() -> None:
    return None


@dataclass(frozen=True)
class Channel:
    name: str
    reducer: Reducer = last_value
    default: Callable[[], Any] = field(default=_none)


class StateSchema:
    """An ordered registry of channels with the merge primitive."""

    def __init__(self, channels: Iterable[Channel]):
        self._channels: dict[str, Channel] = {}
        duplicates = []
        for ch in channels:
            if ch.name in self._channels:
                duplicates.append(ch.name)
            self._channels[ch.name] = ch
        if duplicates:
            raise GraphDefinitionError(f"Duplicate channel(s): {duplicates}")
        if not self._channels:
            raise GraphDefinitionError("State schema declares no channels")

    @property
    def names(self) -> list[str]:
        return list(self._channels)

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    def initial_state(self) -> dict[str, Any]:
        """Fresh state with every channel at its default."""
        return {name: ch.default() for name, ch in self._channels.items()}

    def check(self, update: Mapping[str, Any]) -> None:
        """Raise ``UnknownChannelError`` if the update names undeclared channels."""
        unknown = [key for key in update if key not in self._channels]
        if unknown:
            raise UnknownChannelError(unknown, self.names)

    def merge(
        self, state: Mapping[str, Any], update: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        """Return a new state with ``update`` applied through the reducers.

        Channels absent from ``update`` are carried over untouched. The input
        state is never modified.
        """
        merged = dict(state)
        if not update:
            return merged
        self.check(update)
        for name, value in update.items():
            ch = self._channels[name]
            if name in merged:
                current = merged[name]
            else:
                current = ch.default()
            merged[name] = ch.reducer(current, value)
        return merged

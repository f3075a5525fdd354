"""Retry / self-correction policy.

Built only from conditional edges. The tool node (``track_errors=True``) is
the single writer of ``retry_count`` and ``last_error``; the router below
only reads them:

    last_error set, retry_count <  max_retries  → "retry"     (back to producer)
    last_error set, retry_count >= max_retries  → "exhausted" (END, reported)
    no last_error                               → "success"   (END)

Running out of retries is a normal completion: the final state still
carries ``last_error`` for the caller to inspect.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3

RETRY = "retry"
EXHAUSTED = "exhausted"
SUCCESS = "success"


@dataclass(frozen=True)
class RetryContext:
    """Read-only view of the retry channels."""

    retry_count: int
    last_error: str | None
    max_retries: int

    @classmethod
    def from_state(cls, state: Mapping[str, Any], max_retries: int) -> RetryContext:
        return cls(
            retry_count=state.get("retry_count") or 0,
            last_error=state.get("last_error"),
            max_retries=max_retries,
        )

    @property
    def failed(self) -> bool:
        return self.last_error is not None

    @property
    def exhausted(self) -> bool:
        """True once an error persists at the retry ceiling."""
        return self.failed and self.retry_count >= self.max_retries

    @property
    def attempt(self) -> int:
        return self.retry_count + 1


def make_retry_router(max_retries: int = DEFAULT_MAX_RETRIES) -> Callable[[dict], str]:
    def route_retry(state: dict[str, Any]) -> str:
        ctx = RetryContext.from_state(state, max_retries)
        if not ctx.failed:
            logger.info("Tool step succeeded, ending loop")
            return SUCCESS
        if ctx.exhausted:
            logger.warning(f"Max retries ({max_retries}) reached, giving up: {ctx.last_error}")
            return EXHAUSTED
        logger.info(f"Error detected, retrying ({ctx.retry_count}/{max_retries})")
        return RETRY

    return route_retry


def make_error_feedback(max_retries: int = DEFAULT_MAX_RETRIES) -> Callable[[dict], str | None]:
    """Instructions the producer sees on a retry: the previous error and the attempt number."""

    def error_feedback(state: dict[str, Any]) -> str | None:
        ctx = RetryContext.from_state(state, max_retries)
        if not ctx.failed or ctx.retry_count == 0:
            return None
        logger.info(f"Injecting previous error into attempt #{ctx.attempt}: {ctx.last_error}")
        return (
            f'Your previous code failed with: "{ctx.last_error}". '
            "Please analyze the error and try again with corrected code. "
            f"Attempt {ctx.attempt} of {max_retries}."
        )

    return error_feedback

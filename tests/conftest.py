"""Shared fixtures for agent_brain tests."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from typing import Any

import pytest
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage


# ── Scripted model ──────────────────────────────────────────────


class ScriptedChatClient:
    """ChatClient test double that replays canned responses in order.

    A scripted entry may be an ``AIMessage`` or a callable taking the
    messages the node sent and returning one. Every call is recorded.
    """

    def __init__(self, responses: Sequence[AIMessage | Callable[[list], AIMessage]]):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def generate(self, messages, tools=()) -> AIMessage:
        self.calls.append({"messages": list(messages), "tools": [t.name for t in tools]})
        if not self.responses:
            raise AssertionError("ScriptedChatClient ran out of responses")
        response = self.responses.pop(0)
        return response(list(messages)) if callable(response) else response


def tool_call(name: str, args: dict[str, Any] | None = None, call_id: str | None = None) -> dict:
    return {
        "name": name,
        "args": args or {},
        "id": call_id or f"call_{uuid.uuid4().hex[:8]}",
        "type": "tool_call",
    }


def ai_tool_calls(*calls: dict, content: str = "") -> AIMessage:
    """Assistant turn requesting the given tool calls."""
    return AIMessage(content=content, tool_calls=list(calls))


def ai_text(text: str) -> AIMessage:
    return AIMessage(content=text)


def user(text: str) -> dict:
    """Input mapping for a fresh run."""
    return {"messages": [HumanMessage(content=text)]}


def anthropic_payload(messages: list) -> dict:
    """Format ``messages`` into the request body ChatAnthropic would send.

    Raises the same ValueError the real client does for message layouts the
    Anthropic API does not accept. No network call is made.
    """
    assert sum(isinstance(m, SystemMessage) for m in messages) <= 1
    model = ChatAnthropic(model="claude-sonnet-4-20250514", api_key="test-key")
    return model._get_request_payload(messages)


# ── Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def thread_id() -> str:
    return f"thread-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def minimal_config() -> dict:
    """Smallest valid engine config with one graph per topology."""
    return {
        "graphs": [
            {"id": "assistant", "topology": "react", "tools": ["calculator", "get_weather"]},
            {"id": "coder", "topology": "self_correcting", "tools": ["run_code"], "max_retries": 3},
            {
                "id": "operator",
                "topology": "approval",
                "tools": ["send_email", "delete_file", "get_time"],
            },
            {"id": "team", "topology": "supervisor", "workers": ["RESEARCHER", "WRITER"]},
        ],
    }

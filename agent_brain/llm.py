"""Language-model client — the one boundary reasoning nodes call out through.

Nodes depend on the small ``ChatClient`` protocol rather than on a concrete
chat model, so graphs can be driven by any langchain chat model (or a test
double) without changing node code.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from langchain_anthropic import ChatAnthropic

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel
    from langchain_core.messages import AIMessage, BaseMessage
    from langchain_core.tools import BaseTool

    from agent_brain.config import LLMConfig

logger = logging.getLogger(__name__)


class ChatClient(Protocol):
    async def generate(
        self, messages: Sequence[BaseMessage], tools: Sequence[BaseTool] = ()
    ) -> AIMessage:
        """Return the model's next turn: text content and/or tool calls."""
        ...


class LangChainChatClient:
    """Adapts a langchain chat model to ``ChatClient``, binding tools on demand."""

    def __init__(self, model: BaseChatModel):
        self.model = model
        self._bound: dict[tuple[str, ...], object] = {}

    def _with_tools(self, tools: Sequence[BaseTool]):
        if not tools:
            return self.model
        key = tuple(t.name for t in tools)
        if key not in self._bound:
            self._bound[key] = self.model.bind_tools(list(tools))
        return self._bound[key]

    async def generate(
        self, messages: Sequence[BaseMessage], tools: Sequence[BaseTool] = ()
    ) -> AIMessage:
        return await self._with_tools(tools).ainvoke(list(messages))


def get_chat_client(config: LLMConfig) -> LangChainChatClient:
    """Create an Anthropic-backed client from the engine's LLM settings."""
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise RuntimeError("ANTHROPIC_API_KEY environment variable is not set")
    logger.debug(f"Creating chat client: model={config.model}, temperature={config.temperature}")
    llm = ChatAnthropic(
        model=config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        api_key=api_key,
    )
    return LangChainChatClient(llm)

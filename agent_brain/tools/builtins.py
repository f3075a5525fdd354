"""Built-in starter tools: arithmetic, weather lookup and a code runner.

Add new tools by defining more ``@register`` / ``@tool`` functions here
(or in additional modules under ``agent_brain/tools/``).
"""

from __future__ import annotations

import logging
from typing import Literal

from langchain_core.tools import BaseTool, tool

from agent_brain.graph import current_thread_id
from agent_brain.tools import ERROR_PREFIX, register, register_factory

logger = logging.getLogger(__name__)


def _fmt(value: float) -> str:
    """Render 714.0 as "714" and 2.5 as "2.5"."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


@register
@tool
def calculator(
    a: float, b: float, operation: Literal["add", "subtract", "multiply", "divide"]
) -> str:
    """Perform basic arithmetic operations.

    Args:
        a: First operand.
        b: Second operand.
        operation: The operation to perform: add, subtract, multiply or divide.
    """
    match operation:
        case "add":
            return f"{_fmt(a)} + {_fmt(b)} = {_fmt(a + b)}"
        case "subtract":
            return f"{_fmt(a)} - {_fmt(b)} = {_fmt(a - b)}"
        case "multiply":
            return f"{_fmt(a)} × {_fmt(b)} = {_fmt(a * b)}"
        case "divide":
            if b == 0:
                return f"{ERROR_PREFIX} Division by zero"
            return f"{_fmt(a)} ÷ {_fmt(b)} = {_fmt(a / b)}"
        case _:
            return "Unknown operation"


_MOCK_WEATHER = {
    "beijing": "Beijing: 15°C, Sunny",
    "shanghai": "Shanghai: 18°C, Cloudy",
    "shenzhen": "Shenzhen: 25°C, Humid",
}


@register
@tool
def get_weather(city: str) -> str:
    """Get the current weather for a city.

    Args:
        city: The city name to get weather for.
    """
    return _MOCK_WEATHER.get(city.lower(), f"{city}: 20°C, Clear (mock data)")


# ---------------------------------------------------------------------------
# run_code: a deliberately unreliable executor for self-correction demos
# ---------------------------------------------------------------------------

_CODE_ERRORS = [
    "SyntaxError: unexpected token at line 3",
    "RuntimeError: division by zero",
]


class FlakyCodeRunner:
    """Fails the first ``failures`` calls of each thread, then succeeds.

    Calls are counted per graph thread (``current_thread_id``), so threads
    sharing one compiled graph each see their own failures. Calls made
    outside any run share a single counter.
    """

    def __init__(self, failures: int = 2):
        self.failures = failures
        self.calls: dict[str | None, int] = {}

    def __call__(self, code: str) -> str:
        thread_id = current_thread_id()
        calls = self.calls[thread_id] = self.calls.get(thread_id, 0) + 1
        logger.info(f"run_code call #{calls} (thread={thread_id})")
        if calls <= self.failures:
            error = _CODE_ERRORS[(calls - 1) % len(_CODE_ERRORS)]
            logger.info(f"run_code failing with: {error}")
            return f"{ERROR_PREFIX} {error}"
        return "Success: Output is 42. Code executed without errors."


def make_run_code_tool(failures: int = 2) -> BaseTool:
    """Build a ``run_code`` tool backed by its own ``FlakyCodeRunner``."""
    runner = FlakyCodeRunner(failures)

    @tool
    def run_code(code: str) -> str:
        """Execute Python code and return the result. May fail due to syntax or runtime errors.

        Args:
            code: The Python code to execute.
        """
        return runner(code)

    return run_code


register_factory("run_code", make_run_code_tool)

"""Research tools for the researcher worker (mock search + analysis)."""

from __future__ import annotations

import logging

from langchain_core.tools import tool

from agent_brain.tools import register

logger = logging.getLogger(__name__)

_AI_TRENDS = """Key AI Trends in 2024:
1. Multimodal AI - Models that understand text, images, and audio
2. AI Agents - Autonomous systems that can plan and execute tasks
3. Small Language Models - Efficient, specialized models for edge devices
4. AI Regulation - New laws and governance frameworks emerging
5. AI in Healthcare - Diagnostic tools and drug discovery acceleration"""


@register
@tool
def search_web(query: str) -> str:
    """Search the web for information on a topic.

    Args:
        query: The search query.
    """
    logger.info(f"Searching: {query!r}")
    if "ai trends" in query.lower():
        return _AI_TRENDS
    return (
        f'Search results for "{query}": Found relevant information about '
        "AI developments and industry trends."
    )


@register
@tool
def analyze_data(topic: str, data: str) -> str:
    """Analyze collected data and extract insights.

    Args:
        topic: Topic being analyzed.
        data: Data to analyze.
    """
    logger.info(f"Analyzing: {topic!r}")
    return (
        f"Analysis of {topic}: The data indicates strong growth potential. "
        f"Key insights: {data[:100]}..."
    )

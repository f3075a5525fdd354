"""Writing tools for the writer worker."""

from __future__ import annotations

import logging

from langchain_core.tools import tool

from agent_brain.tools import register

logger = logging.getLogger(__name__)


@register
@tool
def draft_article(title: str, outline: str, key_points: list[str]) -> str:
    """Draft a blog article based on research.

    Args:
        title: Article title.
        outline: Article outline/structure.
        key_points: Key points to cover.
    """
    logger.info(f"Drafting: {title!r}")
    takeaways = "\n".join(f"{i}. {p}" for i, p in enumerate(key_points, 1))
    return (
        f"# {title}\n\n{outline}\n\n## Key Takeaways\n{takeaways}\n\n"
        "## Conclusion\nBased on our research, these trends will shape the "
        "AI landscape in the coming years."
    )


@register
@tool
def edit_content(content: str, instructions: str) -> str:
    """Edit and refine written content.

    Args:
        content: Content to edit.
        instructions: Editing instructions.
    """
    return f"[EDITED] {content}\n\n(Applied edits: {instructions})"

"""Worker registry — hardcoded specialist definitions for the supervisor team.

The only place where worker prompts and tool assignments are defined.
Supervisor graphs in config.yaml reference workers by label.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class WorkerDefinition:
    label: str                 # what the supervisor emits in "next", e.g. "RESEARCHER"
    node: str                  # graph node name, e.g. "researcher"
    description: str
    prompt: str
    tools: list[str] = field(default_factory=list)
    context_from: list[str] = field(default_factory=list)  # labels whose work_log output is shown


WORKER_REGISTRY: dict[str, WorkerDefinition] = {
    "RESEARCHER": WorkerDefinition(
        label="RESEARCHER",
        node="researcher",
        description="Expert at searching, gathering, and analyzing information",
        prompt=(
            "You are a research specialist. Your job is to:\n"
            "1. Search for relevant information\n"
            "2. Analyze and synthesize findings\n"
            "3. Provide clear, factual summaries\n\n"
            "Use your tools to gather comprehensive information. Be thorough and accurate."
        ),
        tools=[
            "search_web",     # mock web search
            "analyze_data",   # extract insights from gathered text
        ],
    ),
    "WRITER": WorkerDefinition(
        label="WRITER",
        node="writer",
        description="Expert at writing blog posts, articles, and creative content",
        prompt=(
            "You are a professional content writer. Your job is to:\n"
            "1. Create engaging, well-structured content\n"
            "2. Transform research into readable articles\n"
            "3. Maintain a professional yet accessible tone\n\n"
            "Use your tools to draft and refine content. Focus on clarity and engagement."
        ),
        tools=[
            "draft_article",  # produce a first draft from research
            "edit_content",   # refine an existing draft
        ],
        context_from=["RESEARCHER"],
    ),
}


def resolve_worker(label: str) -> WorkerDefinition:
    """Look up a worker by label. Raises ValueError if not found."""
    if label not in WORKER_REGISTRY:
        raise ValueError(
            f"Unknown worker '{label}'. "
            f"Available workers: {list(WORKER_REGISTRY.keys())}"
        )
    return WORKER_REGISTRY[label]

"""Configuration loader — reads config.yaml, validates with Pydantic.

Each graph entry picks a topology and names its tools (or, for supervisor
graphs, its workers). Tool and worker definitions are hardcoded in
tools/ and agents/registry.py; config only references them by name.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AGENT_BRAIN_CONFIG"
DEFAULT_CONFIG_PATH = "config.yaml"


class LLMConfig(BaseModel):
    """Chat model settings shared by every graph."""

    model: str = "claude-sonnet-4-20250514"
    temperature: float = 0
    max_tokens: int = 4096


class CheckpointConfig(BaseModel):
    """Where thread checkpoints are kept."""

    backend: Literal["memory", "file"] = "memory"
    directory: str = ".checkpoints"  # used by the file backend only


class GraphConfig(BaseModel):
    """One runnable graph with a fixed topology."""

    id: str
    description: str | None = None
    topology: Literal["react", "self_correcting", "approval", "supervisor"]
    tools: list[str] = []
    workers: list[str] = []        # supervisor only; labels in WORKER_REGISTRY
    system_prompt: str | None = None
    max_retries: int = Field(default=3, ge=1)
    max_rounds: int = Field(default=10, ge=1)
    recursion_limit: int = Field(default=25, ge=1)

    @model_validator(mode="after")
    def check_topology_fields(self) -> GraphConfig:
        if self.topology == "supervisor":
            if not self.workers:
                raise ValueError(f"Supervisor graph '{self.id}' must list at least one worker")
        elif not self.tools:
            raise ValueError(f"Graph '{self.id}' ({self.topology}) must list at least one tool")
        return self


class EngineConfig(BaseModel):
    """Top-level engine configuration."""

    graphs: list[GraphConfig]
    llm: LLMConfig = LLMConfig()
    checkpoint: CheckpointConfig = CheckpointConfig()
    sensitive_tools: list[str] = ["send_email", "delete_file"]

    # Auth & CORS
    api_key: str | None = None
    allowed_origins: list[str] = ["*"]

    @field_validator("graphs")
    @classmethod
    def unique_ids(cls, v: list[GraphConfig]) -> list[GraphConfig]:
        ids = [g.id for g in v]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate graph id(s): {duplicates}")
        return v

    @model_validator(mode="after")
    def validate_references(self) -> EngineConfig:
        from agent_brain.agents.registry import WORKER_REGISTRY
        from agent_brain.tools import list_tools

        available_tools = set(list_tools())

        for graph in self.graphs:
            unknown = [t for t in graph.tools if t not in available_tools]
            if unknown:
                raise ValueError(
                    f"Graph '{graph.id}' references unknown tool(s) {unknown}. "
                    f"Available: {sorted(available_tools)}"
                )
            for label in graph.workers:
                if label not in WORKER_REGISTRY:
                    raise ValueError(
                        f"Graph '{graph.id}' references unknown worker '{label}'. "
                        f"Available: {sorted(WORKER_REGISTRY.keys())}"
                    )

        return self

    def get_graph(self, graph_id: str) -> GraphConfig | None:
        """Return a graph entry by id, or None if not found."""
        for graph in self.graphs:
            if graph.id == graph_id:
                return graph
        return None


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: EngineConfig | None = None
_config_path: str = DEFAULT_CONFIG_PATH


def load_config(path: str | None = None) -> EngineConfig:
    """Read the config file from disk, validate, and cache.

    Without an explicit path, ``$AGENT_BRAIN_CONFIG`` is used, then config.yaml.
    """
    global _config, _config_path
    path = path or os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
    _config_path = path

    config_file = Path(path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file.resolve()}")

    raw = yaml.safe_load(config_file.read_text()) or {}
    _config = EngineConfig(**raw)

    logger.info(
        f"Loaded config: graphs={len(_config.graphs)}, "
        f"checkpoint={_config.checkpoint.backend}"
    )
    return _config


def get_config() -> EngineConfig:
    """Return cached config. Raises if not yet loaded."""
    if _config is None:
        raise RuntimeError("Config not loaded, call load_config() first")
    return _config


def reload_config() -> EngineConfig:
    """Re-read config from disk. Called by /reload endpoint."""
    logger.info(f"Reloading config from {_config_path}")
    return load_config(_config_path)

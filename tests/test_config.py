"""Tests for config loading and validation."""

from __future__ import annotations

import copy

import pytest
import yaml
from pydantic import ValidationError

from agent_brain.agents.builder import build_graph
from agent_brain.config import EngineConfig, get_config, load_config
from agent_brain.graph import RunStatus
from conftest import ScriptedChatClient, ai_text, user


class TestEngineConfig:
    def test_minimal_config_valid(self, minimal_config):
        config = EngineConfig(**minimal_config)
        assert [g.id for g in config.graphs] == ["assistant", "coder", "operator", "team"]
        assert config.llm.temperature == 0
        assert config.checkpoint.backend == "memory"
        assert config.sensitive_tools == ["send_email", "delete_file"]

    def test_get_graph(self, minimal_config):
        config = EngineConfig(**minimal_config)
        assert config.get_graph("coder").max_retries == 3
        assert config.get_graph("nope") is None

    def test_unknown_tool(self, minimal_config):
        bad = copy.deepcopy(minimal_config)
        bad["graphs"][0]["tools"] = ["calculator", "teleport"]
        with pytest.raises(ValidationError, match="unknown tool"):
            EngineConfig(**bad)

    def test_unknown_worker(self, minimal_config):
        bad = copy.deepcopy(minimal_config)
        bad["graphs"][3]["workers"] = ["RESEARCHER", "DESIGNER"]
        with pytest.raises(ValidationError, match="unknown worker"):
            EngineConfig(**bad)

    def test_duplicate_ids(self, minimal_config):
        bad = copy.deepcopy(minimal_config)
        bad["graphs"].append(dict(bad["graphs"][0]))
        with pytest.raises(ValidationError, match="Duplicate graph id"):
            EngineConfig(**bad)

    def test_unknown_topology(self, minimal_config):
        bad = copy.deepcopy(minimal_config)
        bad["graphs"][0]["topology"] = "swarm"
        with pytest.raises(ValidationError):
            EngineConfig(**bad)

    def test_supervisor_needs_workers(self, minimal_config):
        bad = copy.deepcopy(minimal_config)
        bad["graphs"][3]["workers"] = []
        with pytest.raises(ValidationError, match="at least one worker"):
            EngineConfig(**bad)

    def test_tool_graph_needs_tools(self, minimal_config):
        bad = copy.deepcopy(minimal_config)
        bad["graphs"][0]["tools"] = []
        with pytest.raises(ValidationError, match="at least one tool"):
            EngineConfig(**bad)

    def test_max_retries_positive(self, minimal_config):
        bad = copy.deepcopy(minimal_config)
        bad["graphs"][1]["max_retries"] = 0
        with pytest.raises(ValidationError):
            EngineConfig(**bad)


class TestLoadConfig:
    def test_load_from_path(self, tmp_path, minimal_config):
        path = tmp_path / "engine.yaml"
        path.write_text(yaml.safe_dump(minimal_config))
        config = load_config(str(path))
        assert get_config() is config

    def test_load_from_env(self, tmp_path, minimal_config, monkeypatch):
        path = tmp_path / "from-env.yaml"
        path.write_text(yaml.safe_dump(minimal_config))
        monkeypatch.setenv("AGENT_BRAIN_CONFIG", str(path))
        assert len(load_config().graphs) == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "absent.yaml"))


class TestBuildFromConfig:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("graph_id", ["assistant", "coder", "operator"])
    async def test_every_tool_topology_builds_and_runs(self, minimal_config, graph_id, thread_id):
        config = EngineConfig(**minimal_config)
        graph = build_graph(config.get_graph(graph_id), ScriptedChatClient([ai_text("hi")]))
        assert graph.name == graph_id
        await graph.invoke(user("hello"), thread_id)
        assert graph.get_state(thread_id).status is RunStatus.COMPLETED

    def test_supervisor_topology_builds(self, minimal_config):
        config = EngineConfig(**minimal_config)
        graph = build_graph(config.get_graph("team"), ScriptedChatClient([]))
        assert set(graph.nodes) == {"supervisor", "researcher", "writer"}
        assert graph.interrupt_before == frozenset()

    def test_approval_topology_interrupts_tools(self, minimal_config):
        config = EngineConfig(**minimal_config)
        graph = build_graph(config.get_graph("operator"), ScriptedChatClient([]))
        assert graph.interrupt_before == frozenset({"tools"})

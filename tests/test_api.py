"""Tests for API endpoints using httpx against the FastAPI app."""

from __future__ import annotations

import pytest
import yaml
from httpx import ASGITransport, AsyncClient

from agent_brain import runtime
from agent_brain.agents import cache as graph_cache
from agent_brain.agents.approval import SKIP_MESSAGE
from agent_brain.config import get_config, load_config
from conftest import ScriptedChatClient, ai_text, ai_tool_calls, tool_call

EMAIL_ARGS = {"to": "boss@company.com", "subject": "Report", "body": "Numbers attached."}


@pytest.fixture
def model():
    """Scripted model shared by every graph the app builds during a test."""
    return ScriptedChatClient([])


@pytest.fixture
def engine(tmp_path, monkeypatch, minimal_config, model):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(minimal_config))
    monkeypatch.setenv("AGENT_BRAIN_CONFIG", str(path))
    load_config(str(path))
    monkeypatch.setattr(runtime, "get_chat_client", lambda llm: model)
    graph_cache.invalidate()
    runtime.reset_checkpointer()
    yield path
    graph_cache.invalidate()
    runtime.reset_checkpointer()


@pytest.fixture
async def client(engine):
    """Create an async test client for the FastAPI app."""
    from agent_brain.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _runs(graph_id: str, thread: str) -> str:
    return f"/graphs/{graph_id}/threads/{thread}/runs"


def _approval(graph_id: str, thread: str) -> str:
    return f"/graphs/{graph_id}/threads/{thread}/approval"


class TestOperationalEndpoints:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy", "graphs": 4}

    @pytest.mark.asyncio
    async def test_config_hides_api_key(self, client):
        resp = await client.get("/config")
        assert resp.status_code == 200
        data = resp.json()
        assert "api_key" not in data
        assert [g["id"] for g in data["graphs"]] == ["assistant", "coder", "operator", "team"]

    @pytest.mark.asyncio
    async def test_reload(self, client, engine, minimal_config):
        minimal_config["graphs"] = minimal_config["graphs"][:2]
        engine.write_text(yaml.safe_dump(minimal_config))
        resp = await client.post("/reload")
        assert resp.status_code == 200
        assert resp.json() == {"status": "reloaded", "graphs": 2}

    @pytest.mark.asyncio
    async def test_api_key_enforced(self, client, monkeypatch):
        monkeypatch.setattr(get_config(), "api_key", "secret")
        resp = await client.post(_runs("assistant", "t1"), json={"input": "hi"})
        assert resp.status_code == 401


class TestRuns:
    @pytest.mark.asyncio
    async def test_react_run(self, client, model):
        model.responses += [
            ai_tool_calls(tool_call("calculator", {"a": 42, "b": 17, "operation": "multiply"}, "c1")),
            ai_text("42 × 17 = 714"),
        ]
        resp = await client.post(_runs("assistant", "t1"), json={"input": "What is 42 times 17?"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["output"] == "42 × 17 = 714"
        assert [m["type"] for m in data["messages"]] == ["human", "ai", "tool", "ai"]
        assert data["messages"][1]["tool_calls"][0]["name"] == "calculator"
        assert data["next"] == []

    @pytest.mark.asyncio
    async def test_unknown_graph(self, client):
        resp = await client.post(_runs("nope", "t1"), json={"input": "hi"})
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_input(self, client):
        resp = await client.post(_runs("assistant", "t1"), json={})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_failed_run(self, client, model):
        def broken(messages):
            raise RuntimeError("model unavailable")

        model.responses.append(broken)
        resp = await client.post(_runs("assistant", "t1"), json={"input": "hi"})
        assert resp.status_code == 500
        assert "model unavailable" in resp.json()["detail"]

        state = await client.get("/graphs/assistant/threads/t1")
        assert state.json()["status"] == "failed"

    @pytest.mark.asyncio
    async def test_retry_values_exposed(self, client, model):
        model.responses += [
            ai_tool_calls(tool_call("run_code", {"code": "1"})),
            ai_tool_calls(tool_call("run_code", {"code": "2"})),
            ai_tool_calls(tool_call("run_code", {"code": "3"})),
        ]
        resp = await client.post(_runs("coder", "t1"), json={"input": "compute"})
        data = resp.json()
        assert data["status"] == "completed"
        assert data["values"] == {"retry_count": 2, "last_error": None}


class TestApprovalFlow:
    async def _pause(self, client, model, thread: str = "t1") -> dict:
        model.responses.append(ai_tool_calls(tool_call("send_email", EMAIL_ARGS, "e1")))
        resp = await client.post(_runs("operator", thread), json={"input": "Email my boss"})
        assert resp.status_code == 200
        return resp.json()

    @pytest.mark.asyncio
    async def test_run_pauses_with_pending_calls(self, client, model):
        data = await self._pause(client, model)
        assert data["status"] == "paused"
        assert data["next"] == ["tools"]
        assert data["pending_tool_calls"] == [
            {"id": "e1", "name": "send_email", "args": EMAIL_ARGS, "sensitive": True}
        ]

    @pytest.mark.asyncio
    async def test_skip(self, client, model):
        await self._pause(client, model)
        model.responses.append(ai_text("Okay, I won't send it."))

        resp = await client.post(_approval("operator", "t1"), json={"decision": "skip"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        tool_messages = [m for m in data["messages"] if m["type"] == "tool"]
        assert [m["content"] for m in tool_messages] == [SKIP_MESSAGE]

    @pytest.mark.asyncio
    async def test_reject_then_conflict(self, client, model):
        await self._pause(client, model)
        resp = await client.post(_approval("operator", "t1"), json={"decision": "reject"})
        assert resp.json()["status"] == "rejected"

        again = await client.post(_approval("operator", "t1"), json={"decision": "approve"})
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_new_run_on_paused_thread_conflicts(self, client, model):
        await self._pause(client, model)
        resp = await client.post(_runs("operator", "t1"), json={"input": "something else"})
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_invalid_decision(self, client, model):
        await self._pause(client, model)
        resp = await client.post(_approval("operator", "t1"), json={"decision": "maybe"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_thread(self, client):
        resp = await client.post(_approval("operator", "ghost"), json={"decision": "approve"})
        assert resp.status_code == 404
        resp = await client.get("/graphs/operator/threads/ghost")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_get_thread(self, client, model):
        await self._pause(client, model)
        resp = await client.get("/graphs/operator/threads/t1")
        assert resp.status_code == 200
        data = resp.json()
        assert data["graph_id"] == "operator"
        assert data["status"] == "paused"

"""Tests for the approval gate: approve, skip and reject a paused tools step."""

from __future__ import annotations

import asyncio
import logging

import pytest
from langchain_core.messages import ToolMessage
from langchain_core.tools import tool

from agent_brain.agents.approval import (
    SKIP_MESSAGE,
    ApprovalGate,
    Decision,
    build_approval_request,
)
from agent_brain.agents.builder import build_approval_graph
from agent_brain.graph import RunStatus
from agent_brain.graph.errors import ThreadStateError
from agent_brain.tools import resolve_tools
from conftest import ScriptedChatClient, ai_text, ai_tool_calls, tool_call, user

EMAIL_ARGS = {"to": "boss@company.com", "subject": "Report", "body": "Numbers attached."}


def _operator(*responses):
    client = ScriptedChatClient(responses)
    graph = build_approval_graph(client, resolve_tools(["send_email", "delete_file", "get_time"]))
    return client, graph, ApprovalGate(graph)


def _email_call():
    return ai_tool_calls(tool_call("send_email", EMAIL_ARGS, "e1"))


class TestPause:
    @pytest.mark.asyncio
    async def test_pauses_before_tools(self, thread_id):
        _, graph, gate = _operator(_email_call())
        await graph.invoke(user("Email my boss"), thread_id)

        snapshot = graph.get_state(thread_id)
        assert snapshot.status is RunStatus.PAUSED
        assert snapshot.next == ("tools",)

        request = gate.pending(thread_id)
        assert request.node == "tools"
        assert [tc.name for tc in request.tool_calls] == ["send_email"]
        assert request.tool_calls[0].args == EMAIL_ARGS
        assert request.has_sensitive

    @pytest.mark.asyncio
    async def test_safe_tools_flagged_safe(self, thread_id):
        _, graph, gate = _operator(ai_tool_calls(tool_call("get_time", {}, "t1")))
        await graph.invoke(user("What time is it?"), thread_id)
        request = gate.pending(thread_id)
        assert not request.has_sensitive
        assert "[SAFE] get_time" in request.format()

    @pytest.mark.asyncio
    async def test_no_request_when_not_paused(self, thread_id):
        _, graph, gate = _operator(ai_text("Nothing to do."))
        await graph.invoke(user("hi"), thread_id)
        assert gate.pending(thread_id) is None
        assert build_approval_request(graph.get_state(thread_id)) is None


class TestDecisions:
    @pytest.mark.asyncio
    async def test_approve_runs_tools(self, thread_id, caplog):
        client, graph, gate = _operator(_email_call(), ai_text("Email sent."))
        await graph.invoke(user("Email my boss"), thread_id)

        with caplog.at_level(logging.INFO):
            outcome = await gate.resolve(thread_id, "approve")

        assert outcome.decision is Decision.APPROVE
        assert outcome.status is RunStatus.COMPLETED
        tool_message = next(m for m in outcome.state["messages"] if isinstance(m, ToolMessage))
        assert tool_message.content == 'Email sent to boss@company.com with subject "Report"'
        assert "[MOCK] Email sent" in caplog.text

    @pytest.mark.asyncio
    async def test_skip_records_synthetic_result(self, thread_id, caplog):
        client, graph, gate = _operator(_email_call(), ai_text("Understood, not sending."))
        await graph.invoke(user("Email my boss"), thread_id)

        with caplog.at_level(logging.INFO):
            outcome = await gate.resolve(thread_id, Decision.SKIP)

        assert outcome.status is RunStatus.COMPLETED
        tool_messages = [m for m in outcome.state["messages"] if isinstance(m, ToolMessage)]
        assert len(tool_messages) == 1
        assert tool_messages[0].content == SKIP_MESSAGE
        assert tool_messages[0].tool_call_id == "e1"
        assert "[MOCK] Email sent" not in caplog.text
        # the agent saw the skip and answered
        assert outcome.state["messages"][-1].content == "Understood, not sending."
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    async def test_skip_covers_every_pending_call(self, thread_id):
        proposal = ai_tool_calls(
            tool_call("send_email", EMAIL_ARGS, "e1"),
            tool_call("delete_file", {"path": "/tmp/report.pdf"}, "d1"),
        )
        _, graph, gate = _operator(proposal, ai_text("Skipped both."))
        await graph.invoke(user("Email and clean up"), thread_id)

        outcome = await gate.resolve(thread_id, "skip")

        skipped = [m for m in outcome.state["messages"] if isinstance(m, ToolMessage)]
        assert [m.tool_call_id for m in skipped] == ["e1", "d1"]
        assert all(m.content == SKIP_MESSAGE for m in skipped)

    @pytest.mark.asyncio
    async def test_skip_can_pause_again(self, thread_id):
        _, graph, gate = _operator(
            _email_call(), ai_tool_calls(tool_call("get_time", {}, "t1"))
        )
        await graph.invoke(user("Email my boss"), thread_id)

        outcome = await gate.resolve(thread_id, "skip")

        assert outcome.status is RunStatus.PAUSED
        assert [tc.name for tc in outcome.request.tool_calls] == ["get_time"]

    @pytest.mark.asyncio
    async def test_reject_is_final(self, thread_id, caplog):
        client, graph, gate = _operator(_email_call())
        await graph.invoke(user("Email my boss"), thread_id)

        with caplog.at_level(logging.INFO):
            outcome = await gate.resolve(thread_id, "reject")

        assert outcome.status is RunStatus.REJECTED
        assert not any(isinstance(m, ToolMessage) for m in outcome.state["messages"])
        assert "[MOCK] Email sent" not in caplog.text

        state = await graph.invoke(None, thread_id)
        assert state == outcome.state
        assert graph.get_state(thread_id).status is RunStatus.REJECTED
        assert len(client.calls) == 1

        with pytest.raises(ThreadStateError):
            await gate.resolve(thread_id, "approve")

    @pytest.mark.asyncio
    async def test_resolve_requires_pause(self, thread_id):
        _, graph, gate = _operator(ai_text("Done."))
        await graph.invoke(user("hi"), thread_id)
        with pytest.raises(ThreadStateError, match="not awaiting approval"):
            await gate.resolve(thread_id, "approve")

    @pytest.mark.asyncio
    async def test_unknown_decision(self, thread_id):
        _, graph, gate = _operator(_email_call())
        await graph.invoke(user("Email my boss"), thread_id)
        with pytest.raises(ValueError):
            await gate.resolve(thread_id, "maybe")


class TestDecisionParse:
    @pytest.mark.parametrize(
        "answer, expected",
        [
            ("y", Decision.APPROVE),
            (" Yes ", Decision.APPROVE),
            ("s", Decision.SKIP),
            ("skip", Decision.SKIP),
            ("n", Decision.REJECT),
            ("whatever", Decision.REJECT),
        ],
    )
    def test_parse(self, answer, expected):
        assert Decision.parse(answer) is expected


class TestConcurrentDecisions:
    def _slow_operator(self, *responses):
        started = asyncio.Event()
        ran: list[str] = []

        @tool
        async def send_email(to: str, subject: str, body: str) -> str:
            """Send an email (slowly)."""
            started.set()
            await asyncio.sleep(0.05)
            ran.append(to)
            return f"Email sent to {to}"

        client = ScriptedChatClient(responses)
        graph = build_approval_graph(client, [send_email])
        return graph, ApprovalGate(graph), started, ran

    @pytest.mark.asyncio
    async def test_reject_during_approved_run_is_refused(self, thread_id):
        graph, gate, started, ran = self._slow_operator(_email_call(), ai_text("Sent."))
        await graph.invoke(user("Email my boss"), thread_id)

        approve = asyncio.create_task(gate.resolve(thread_id, "approve"))
        await started.wait()
        with pytest.raises(ThreadStateError):
            await gate.resolve(thread_id, "reject")

        outcome = await approve
        assert outcome.status is RunStatus.COMPLETED
        assert ran == ["boss@company.com"]
        assert graph.get_state(thread_id).status is RunStatus.COMPLETED
        assert not any(h.status is RunStatus.REJECTED for h in graph.get_state_history(thread_id))

    @pytest.mark.asyncio
    async def test_duplicate_approve_runs_tools_once(self, thread_id):
        graph, gate, started, ran = self._slow_operator(_email_call(), ai_text("Sent."))
        await graph.invoke(user("Email my boss"), thread_id)

        first = asyncio.create_task(gate.resolve(thread_id, "approve"))
        await started.wait()
        with pytest.raises(ThreadStateError):
            await gate.resolve(thread_id, "approve")

        await first
        assert ran == ["boss@company.com"]

    @pytest.mark.asyncio
    async def test_approve_after_reject_is_refused(self, thread_id):
        graph, gate, _, ran = self._slow_operator(_email_call())
        await graph.invoke(user("Email my boss"), thread_id)

        results = await asyncio.gather(
            gate.resolve(thread_id, "reject"),
            gate.resolve(thread_id, "approve"),
            return_exceptions=True,
        )

        assert results[0].status is RunStatus.REJECTED
        assert isinstance(results[1], ThreadStateError)
        assert ran == []
        assert graph.get_state(thread_id).status is RunStatus.REJECTED

"""Shared state schemas for the bundled graphs.

messages           — conversation history; ``append`` reducer concatenates
                     new turns rather than overwriting.
retry_count        — number of error-producing tool steps; never decreases.
last_error         — most recent soft tool error, None after a clean step.
current_worker     — worker label chosen by the supervisor, None when idle.
instructions       — the supervisor's instructions for that worker.
work_log           — latest output per worker label, last write wins per key.
supervisor_rounds  — how many decisions the supervisor has taken.
"""

from __future__ import annotations

from agent_brain.graph.channels import Channel, append, keep_max, last_value, merge_dict

MESSAGES = Channel("messages", append, list)

AGENT_CHANNELS = (MESSAGES,)

RETRY_CHANNELS = (
    MESSAGES,
    Channel("retry_count", keep_max, int),
    Channel("last_error", last_value),
)

TEAM_CHANNELS = (
    MESSAGES,
    Channel("current_worker", last_value),
    Channel("instructions", last_value, str),
    Channel("work_log", merge_dict, dict),
    Channel("supervisor_rounds", keep_max, int),
)

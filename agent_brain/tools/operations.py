"""Operational tools used behind the approval gate.

``send_email`` and ``delete_file`` are side-effecting and listed as sensitive
in the default config; ``get_time`` is read-only. All three are mocks: they
log what they would do and report success.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from langchain_core.tools import tool

from agent_brain.tools import register

logger = logging.getLogger(__name__)


@register
@tool
def send_email(to: str, subject: str, body: str) -> str:
    """Send an email to a recipient. This is a sensitive operation.

    Args:
        to: Email recipient address.
        subject: Email subject line.
        body: Email body content.
    """
    logger.info(f"[MOCK] Email sent to {to}: {subject!r} ({len(body)} chars)")
    return f'Email sent to {to} with subject "{subject}"'


@register
@tool
def delete_file(path: str) -> str:
    """Delete a file from the filesystem. This is a destructive operation.

    Args:
        path: Path to the file to delete.
    """
    logger.info(f"[MOCK] File deleted: {path}")
    return f'File "{path}" has been deleted.'


@register
@tool
def get_time() -> str:
    """Get the current time. This is a safe, read-only operation."""
    return f"Current time: {datetime.now(timezone.utc).isoformat()}"

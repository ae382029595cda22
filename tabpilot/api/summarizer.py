"""History summarization -- compacts old messages via a cheap secondary model.

Replaces the oldest part of the working window with one synthetic
assistant message.  Summarization is strictly best-effort: any failure
returns the input unchanged so the main loop never loses history.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

import httpx

from tabpilot.api.models import (
    ApiCredentials,
    ImagePart,
    Message,
    TextPart,
    ToolInvocationPart,
    ToolResultPart,
    assistant_message,
    is_tool_result_message,
    new_message_id,
)
from tabpilot.errors import ConfigurationError

logger = logging.getLogger(__name__)

SUMMARY_ID_PREFIX = "summary"
SUMMARY_HEADER = "[Previous conversation summary]"
SUMMARY_FOOTER = "[End of summary - conversation continues below]"

SUMMARY_PROMPT = """\
Please provide a concise summary of this conversation history. Focus on key actions taken, \
decisions made, and important context that would be useful for continuing the conversation. \
Keep it under 300 words.

Conversation to summarize:
{conversation}"""

DEFAULT_SUMMARY_MODEL = "claude-3-5-haiku-20241022"


def keep_recent_for(message_count: int) -> int:
    """Number of recent messages kept verbatim (half, rounded up)."""
    return math.ceil(message_count * 0.5)


def should_summarize(messages: list[Message], threshold: int) -> bool:
    return len(messages) > threshold


def is_summary_message(message: Message) -> bool:
    return message.role == "assistant" and message.id.startswith(f"{SUMMARY_ID_PREFIX}_")


def serialize_for_summary(messages: list[Message]) -> str:
    """Render messages as readable text. Images are omitted."""
    lines = []
    for msg in messages:
        role = "User" if msg.role == "user" else "Assistant"
        if isinstance(msg.content, str):
            lines.append(f"{role}: {msg.content}")
            continue
        parts: list[str] = []
        for part in msg.content:
            if isinstance(part, TextPart):
                parts.append(part.text)
            elif isinstance(part, ToolInvocationPart):
                parts.append(f"[Called {part.tool_name} with {json.dumps(part.arguments)}]")
            elif isinstance(part, ToolResultPart):
                label = "Tool error" if part.is_error else "Tool result"
                parts.append(f"[{label}: {part.payload_text()}]")
            elif isinstance(part, ImagePart):
                parts.append("[image]")
        lines.append(f"{role}: {chr(10).join(parts)}")
    return "\n\n".join(lines)


def _split_point(messages: list[Message], keep_recent_count: int) -> int:
    """Index where the recent slice starts, moved left so it never opens on a tool_result."""
    cut = len(messages) - keep_recent_count
    if cut > 0 and is_tool_result_message(messages[cut]):
        cut -= 1
    return cut


async def summarize_messages(
    messages: list[Message],
    keep_recent_count: int,
    credentials: ApiCredentials,
    endpoint: str | None = None,
    *,
    http: httpx.AsyncClient | None = None,
    model: str = DEFAULT_SUMMARY_MODEL,
    max_tokens: int = 500,
    timeout: float = 30.0,
) -> list[Message]:
    """Replace all but the last keep_recent_count messages with one summary message.

    Returns the input unchanged when there is nothing to summarize or the
    secondary call fails in any way (network error, non-200 status,
    unparsable body, empty summary).
    """
    if len(messages) <= keep_recent_count:
        return messages

    cut = _split_point(messages, keep_recent_count)
    if cut <= 0:
        return messages

    old, recent = messages[:cut], messages[cut:]
    logger.info("Summarizing %d old messages, keeping %d recent", len(old), len(recent))

    try:
        headers = credentials.headers()
    except ConfigurationError as e:
        logger.warning("Cannot summarize without credentials, keeping original messages: %s", e)
        return messages

    payload: dict[str, Any] = {
        "model": model,
        "max_tokens": max_tokens,
        "messages": [
            {"role": "user", "content": SUMMARY_PROMPT.format(conversation=serialize_for_summary(old))},
        ],
    }
    url = f"{(endpoint or credentials.base_url).rstrip('/')}/v1/messages"

    owns_client = http is None
    client = http or httpx.AsyncClient()
    try:
        response = await client.post(url, json=payload, headers=headers, timeout=timeout)
    except httpx.HTTPError as e:
        logger.warning("Network error during summarization, keeping original messages: %s", e)
        return messages
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code != 200:
        logger.warning("Summary call failed (%d), keeping original messages", response.status_code)
        return messages

    try:
        data = response.json()
        summary = data["content"][0].get("text", "") if data.get("content") else ""
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
        logger.warning("Unparsable summary response, keeping original messages: %s", e)
        return messages

    if not isinstance(summary, str) or not summary.strip():
        logger.warning("Empty summary received, keeping original messages")
        return messages

    logger.info("Generated summary (%d chars)", len(summary))
    summary_message = assistant_message(
        f"{SUMMARY_HEADER}\n\n{summary}\n\n{SUMMARY_FOOTER}",
        message_id=new_message_id(SUMMARY_ID_PREFIX),
    )
    return [summary_message, *recent]

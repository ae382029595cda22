"""Sliding conversation window that never splits a tool_use/tool_result pair.

Applied twice per orchestration call: once on the caller's history
(history limit) and again after every turn (loop limit), since screenshots
and page context make in-loop messages far larger than chat turns.
"""

from __future__ import annotations

import logging

from tabpilot.api.models import Message, is_tool_result_message, tool_invocations, tool_results

logger = logging.getLogger(__name__)


def trim_window(messages: list[Message], max_messages: int) -> list[Message]:
    """Return the last max_messages messages, keeping tool pairs intact.

    If the cut lands between an assistant tool_use message and the user
    message answering it, the window grows by exactly one message to the
    left.  It never grows more than that: a window that still opens on a
    tool result is logged and returned as is.
    """
    if max_messages < 1:
        raise ValueError("max_messages must be >= 1")
    if len(messages) <= max_messages:
        return list(messages)

    candidate = messages[-max_messages:]
    if is_tool_result_message(candidate[0]):
        candidate = messages[-(max_messages + 1):]
        logger.debug("Kept preceding assistant message to preserve tool_use/tool_result pair")
        if not tool_invocations(candidate[0]):
            logger.warning(
                "Window of %d still opens on an unanswered tool_result (first id=%s); "
                "not extending further",
                len(candidate),
                candidate[0].id,
            )

    logger.info("Trimmed conversation from %d to %d messages", len(messages), len(candidate))
    if logger.isEnabledFor(logging.DEBUG):
        orphans = find_orphans(candidate)
        if orphans:
            logger.debug("Trimmed window has unpaired tool ids: %s", sorted(orphans))
    return candidate


def find_orphans(messages: list[Message]) -> set[str]:
    """Return invocation ids that lack their partner in the adjacent message.

    A tool_use in message k must be answered in message k+1 and a
    tool_result in message k+1 must answer a tool_use in message k.
    """
    orphans: set[str] = set()
    for i, message in enumerate(messages):
        asked = {p.invocation_id for p in tool_invocations(message)}
        if asked:
            nxt = messages[i + 1] if i + 1 < len(messages) else None
            answered = {p.invocation_id for p in tool_results(nxt)} if nxt else set()
            orphans |= asked - answered
        answered_here = {p.invocation_id for p in tool_results(message)}
        if answered_here:
            prev = messages[i - 1] if i > 0 else None
            asked_before = {p.invocation_id for p in tool_invocations(prev)} if prev else set()
            orphans |= answered_here - asked_before
    return orphans

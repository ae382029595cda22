"""Shared text helpers for model output."""

from __future__ import annotations

import re

# Control syntax the model sometimes writes as text instead of calling tools
_CONTROL_PATTERNS = [
    re.compile(r"<function_calls>[\s\S]*?</function_calls>", re.IGNORECASE),
    re.compile(r'<invoke\s+name="[^"]*">[\s\S]*?</invoke>', re.IGNORECASE),
    re.compile(r'<parameter\s+name="[^"]*">[^<]*</parameter>', re.IGNORECASE),
    re.compile(r"<tool_call>[\s\S]*?</tool_call>", re.IGNORECASE),
    re.compile(r"<function>[\s\S]*?</function>", re.IGNORECASE),
]

# Simulated browser activity, only stripped when browser tools are off
_FAKE_ACTION_PATTERNS = [
    re.compile(r"\[Executing:\s*[^\]]+\]", re.IGNORECASE),
    re.compile(r"I'll navigate to[^.]*\.", re.IGNORECASE),
    re.compile(r"I've successfully navigated to[^.]*\.", re.IGNORECASE),
]

_DESCRIBED_TOOL_KEYWORDS = ("click_element", "clickelement", "executing:", "selector:")


def sanitize_model_text(text: str, local_tools_enabled: bool = True) -> str:
    """Strip literal control-syntax tokens from natural-language output."""
    for pattern in _CONTROL_PATTERNS:
        text = pattern.sub("", text)
    if not local_tools_enabled:
        for pattern in _FAKE_ACTION_PATTERNS:
            text = pattern.sub("", text)
    return text


def looks_like_described_tool_call(text: str) -> bool:
    """True if the text reads like a tool call written out instead of made."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in _DESCRIBED_TOOL_KEYWORDS)

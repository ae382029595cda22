"""Shared data models for the API layer.

Messages and their content parts, with the mapping to and from the
Anthropic Messages API block format.  Kept free of runner imports so
window.py and summarizer.py can depend on it without cycles.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Literal

from tabpilot.errors import ConfigurationError

Role = Literal["user", "assistant"]

# Anthropic API version header
API_VERSION = "2023-06-01"


def new_message_id(prefix: str = "msg") -> str:
    """Return a unique, recognizable message id such as ``msg_3f9a1c2b7d4e``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# ------------------------------------------------------------------
# Content parts
# ------------------------------------------------------------------


@dataclass(frozen=True)
class TextPart:
    text: str
    type: Literal["text"] = "text"

    def to_wire(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ImagePart:
    """Base64 image attached to a tool result (e.g. a captured frame)."""

    data: str  # base64, no data-URL prefix
    media_type: str = "image/png"
    width: int | None = None
    height: int | None = None
    type: Literal["image"] = "image"

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": self.media_type, "data": self.data},
        }


@dataclass(frozen=True)
class ToolInvocationPart:
    """A model-requested tool call. Only ever appears in assistant messages."""

    invocation_id: str
    tool_name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    type: Literal["tool_invocation"] = "tool_invocation"

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "tool_use",
            "id": self.invocation_id,
            "name": self.tool_name,
            "input": self.arguments,
        }


@dataclass(frozen=True)
class ToolResultPart:
    """Outcome of one tool call. Only ever appears in user messages.

    payload is either a plain string (usually JSON) or a list of
    TextPart/ImagePart blocks.
    """

    invocation_id: str
    payload: str | tuple[TextPart | ImagePart, ...] = ""
    is_error: bool = False
    timeout: bool = False
    type: Literal["tool_result"] = "tool_result"

    def to_wire(self) -> dict[str, Any]:
        if isinstance(self.payload, str):
            content: Any = self.payload
        else:
            content = [block.to_wire() for block in self.payload]
        wire: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.invocation_id,
            "content": content,
        }
        if self.is_error:
            wire["is_error"] = True
        return wire

    def payload_text(self) -> str:
        if isinstance(self.payload, str):
            return self.payload
        return "\n".join(b.text for b in self.payload if isinstance(b, TextPart))


@dataclass(frozen=True)
class RawPart:
    """A block type this client does not model (e.g. ``thinking``), echoed back verbatim."""

    block: dict[str, Any]
    type: Literal["raw"] = "raw"

    def to_wire(self) -> dict[str, Any]:
        return dict(self.block)


ContentPart = TextPart | ImagePart | ToolInvocationPart | ToolResultPart | RawPart


def text(value: str) -> TextPart:
    return TextPart(text=value)


def image(data: str, media_type: str = "image/png", width: int | None = None, height: int | None = None) -> ImagePart:
    return ImagePart(data=data, media_type=media_type, width=width, height=height)


def tool_invocation(invocation_id: str, tool_name: str, arguments: dict[str, Any] | None = None) -> ToolInvocationPart:
    return ToolInvocationPart(invocation_id=invocation_id, tool_name=tool_name, arguments=dict(arguments or {}))


def tool_result(
    invocation_id: str,
    payload: str | list[TextPart | ImagePart] | tuple[TextPart | ImagePart, ...] = "",
    is_error: bool = False,
    timeout: bool = False,
) -> ToolResultPart:
    if not isinstance(payload, str):
        payload = tuple(payload)
    return ToolResultPart(invocation_id=invocation_id, payload=payload, is_error=is_error, timeout=timeout)


def part_from_wire(block: dict[str, Any]) -> ContentPart:
    """Parse one Anthropic content block into a content part."""
    block_type = block.get("type")
    if block_type == "text":
        return TextPart(text=block.get("text", ""))
    if block_type == "tool_use":
        return ToolInvocationPart(
            invocation_id=block.get("id", ""),
            tool_name=block.get("name", ""),
            arguments=block.get("input") or {},
        )
    if block_type == "tool_result":
        content = block.get("content", "")
        if isinstance(content, list):
            payload: str | tuple[TextPart | ImagePart, ...] = tuple(
                p for p in (part_from_wire(c) for c in content if isinstance(c, dict))
                if isinstance(p, (TextPart, ImagePart))
            )
        elif isinstance(content, str):
            payload = content
        else:
            payload = json.dumps(content)
        return ToolResultPart(
            invocation_id=block.get("tool_use_id", ""),
            payload=payload,
            is_error=bool(block.get("is_error", False)),
        )
    if block_type == "image":
        source = block.get("source", {})
        return ImagePart(data=source.get("data", ""), media_type=source.get("media_type", "image/png"))
    return RawPart(block=dict(block))


# ------------------------------------------------------------------
# Messages
# ------------------------------------------------------------------


@dataclass
class Message:
    """A single conversation entry."""

    role: Role
    content: str | list[ContentPart]
    id: str = field(default_factory=new_message_id)

    def to_wire(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [p.to_wire() for p in self.content]}

    @classmethod
    def from_wire(cls, data: dict[str, Any], message_id: str | None = None) -> Message:
        content = data.get("content", "")
        if isinstance(content, list):
            content = [part_from_wire(b) for b in content if isinstance(b, dict)]
        return cls(role=data["role"], content=content, id=message_id or new_message_id())

    def is_empty(self) -> bool:
        if isinstance(self.content, str):
            return not self.content.strip()
        return len(self.content) == 0


def user_message(content: str | list[ContentPart], message_id: str | None = None) -> Message:
    return Message(role="user", content=content, id=message_id or new_message_id())


def assistant_message(content: str | list[ContentPart], message_id: str | None = None) -> Message:
    return Message(role="assistant", content=content, id=message_id or new_message_id())


def tool_invocations(message: Message) -> list[ToolInvocationPart]:
    if isinstance(message.content, str):
        return []
    return [p for p in message.content if isinstance(p, ToolInvocationPart)]


def tool_results(message: Message) -> list[ToolResultPart]:
    if isinstance(message.content, str):
        return []
    return [p for p in message.content if isinstance(p, ToolResultPart)]


def has_unanswered_invocations(message: Message) -> bool:
    """True if the message requests tools, i.e. it needs a tool_result reply."""
    return message.role == "assistant" and bool(tool_invocations(message))


def is_tool_result_message(message: Message) -> bool:
    """Check if a message is the answer half of a tool pair.

    Tool result messages have role="user" with list content holding
    tool_result parts.  Regular user messages have string or text content.
    """
    return message.role == "user" and bool(tool_results(message))


def text_of(message: Message) -> str:
    """Concatenate the text parts of a message."""
    if isinstance(message.content, str):
        return message.content
    return "".join(p.text for p in message.content if isinstance(p, TextPart))


# ------------------------------------------------------------------
# Credentials / responses
# ------------------------------------------------------------------


@dataclass(frozen=True)
class ApiCredentials:
    """Key and endpoint for the model API."""

    api_key: str
    base_url: str = "https://api.anthropic.com"

    def headers(self) -> dict[str, str]:
        """Build auth headers.

        OAT tokens (sk-ant-oat*) require Bearer auth plus beta headers.
        Regular API keys use x-api-key.
        """
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError(
                "Anthropic API key is not configured. Please add your API key in Settings."
            )
        headers: dict[str, str] = {
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }
        if "sk-ant-oat" in self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"
            headers["anthropic-beta"] = "oauth-2025-04-20"
            headers["anthropic-dangerous-direct-browser-access"] = "true"
        else:
            headers["x-api-key"] = self.api_key
        return headers

    @classmethod
    def from_settings(cls, settings: Any) -> ApiCredentials:
        key = settings.anthropic_auth_token or settings.anthropic_api_key
        return cls(api_key=key, base_url=settings.api_base_url)


@dataclass
class ApiResponse:
    """Parsed response from the Messages API."""

    content: list[dict[str, Any]]  # raw content blocks
    stop_reason: str  # end_turn, max_tokens, tool_use, stop_sequence
    usage: dict[str, int] | None = None

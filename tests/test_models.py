"""Tests for the message model: part constructors, predicates, wire mapping."""

import pytest

from tabpilot.api.models import (
    ApiCredentials,
    ImagePart,
    Message,
    RawPart,
    TextPart,
    ToolInvocationPart,
    ToolResultPart,
    assistant_message,
    has_unanswered_invocations,
    image,
    is_tool_result_message,
    new_message_id,
    part_from_wire,
    text,
    text_of,
    tool_invocation,
    tool_result,
    user_message,
)
from tabpilot.errors import ConfigurationError


class TestContentParts:
    def test_text_to_wire(self):
        assert text("hi").to_wire() == {"type": "text", "text": "hi"}

    def test_tool_invocation_to_wire(self):
        part = tool_invocation("toolu_1", "click", {"x": 1, "y": 2})
        assert part.to_wire() == {
            "type": "tool_use",
            "id": "toolu_1",
            "name": "click",
            "input": {"x": 1, "y": 2},
        }

    def test_tool_result_string_payload(self):
        wire = tool_result("toolu_1", '{"ok": true}').to_wire()
        assert wire == {"type": "tool_result", "tool_use_id": "toolu_1", "content": '{"ok": true}'}

    def test_tool_result_error_flag_on_wire(self):
        wire = tool_result("toolu_1", "boom", is_error=True).to_wire()
        assert wire["is_error"] is True

    def test_tool_result_block_payload(self):
        part = tool_result("toolu_1", [text("look"), image("AAAA", width=800, height=600)])
        wire = part.to_wire()
        assert wire["content"][0] == {"type": "text", "text": "look"}
        assert wire["content"][1] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": "AAAA"},
        }
        assert part.payload_text() == "look"

    def test_image_carries_dimensions(self):
        part = image("AAAA", width=800, height=600)
        assert (part.width, part.height) == (800, 600)


class TestPartFromWire:
    def test_text(self):
        assert part_from_wire({"type": "text", "text": "x"}) == TextPart("x")

    def test_tool_use(self):
        part = part_from_wire({"type": "tool_use", "id": "t1", "name": "navigate", "input": {"url": "u"}})
        assert isinstance(part, ToolInvocationPart)
        assert part.invocation_id == "t1"
        assert part.tool_name == "navigate"
        assert part.arguments == {"url": "u"}

    def test_tool_result_with_blocks(self):
        part = part_from_wire({
            "type": "tool_result",
            "tool_use_id": "t1",
            "content": [
                {"type": "text", "text": "a"},
                {"type": "image", "source": {"type": "base64", "media_type": "image/jpeg", "data": "BBBB"}},
            ],
            "is_error": True,
        })
        assert isinstance(part, ToolResultPart)
        assert part.is_error is True
        assert isinstance(part.payload[1], ImagePart)
        assert part.payload[1].media_type == "image/jpeg"

    def test_unknown_block_preserved(self):
        block = {"type": "thinking", "thinking": "hmm", "signature": "sig"}
        part = part_from_wire(block)
        assert isinstance(part, RawPart)
        assert part.to_wire() == block


class TestMessages:
    def test_ids_are_unique_and_prefixed(self):
        a, b = new_message_id(), new_message_id("summary")
        assert a.startswith("msg_")
        assert b.startswith("summary_")
        assert a != new_message_id()

    def test_string_message_to_wire(self):
        assert user_message("hello").to_wire() == {"role": "user", "content": "hello"}

    def test_from_wire_roundtrip_keeps_blocks(self):
        data = {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "ok"},
                {"type": "tool_use", "id": "t1", "name": "scroll", "input": {"direction": "down"}},
            ],
        }
        assert Message.from_wire(data).to_wire() == data

    def test_is_empty(self):
        assert user_message("   ").is_empty()
        assert user_message([]).is_empty()
        assert not user_message("x").is_empty()

    def test_text_of(self):
        msg = assistant_message([text("a"), tool_invocation("t1", "click"), text("b")])
        assert text_of(msg) == "ab"


class TestPredicates:
    def test_has_unanswered_invocations(self):
        assert has_unanswered_invocations(assistant_message([tool_invocation("t1", "click")]))
        assert not has_unanswered_invocations(assistant_message([text("done")]))
        assert not has_unanswered_invocations(assistant_message("plain"))

    def test_user_message_never_has_invocations(self):
        assert not has_unanswered_invocations(user_message("hi"))

    def test_is_tool_result_message(self):
        assert is_tool_result_message(user_message([tool_result("t1", "ok")]))
        assert not is_tool_result_message(user_message("hello"))
        assert not is_tool_result_message(user_message([text("hello")]))
        assert not is_tool_result_message(assistant_message([tool_result("t1", "ok")]))


class TestCredentials:
    def test_api_key_header(self):
        headers = ApiCredentials("sk-ant-api-xyz").headers()
        assert headers["x-api-key"] == "sk-ant-api-xyz"
        assert headers["anthropic-version"] == "2023-06-01"
        assert "authorization" not in headers

    def test_oat_token_uses_bearer(self):
        headers = ApiCredentials("sk-ant-oat01-abc").headers()
        assert headers["authorization"] == "Bearer sk-ant-oat01-abc"
        assert headers["anthropic-beta"] == "oauth-2025-04-20"
        assert "x-api-key" not in headers

    @pytest.mark.parametrize("key", ["", "   "])
    def test_missing_key_is_configuration_error(self, key):
        with pytest.raises(ConfigurationError):
            ApiCredentials(key).headers()

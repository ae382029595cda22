"""Tests for best-effort history summarization."""

import httpx
import pytest

from tabpilot.api.models import (
    ApiCredentials,
    assistant_message,
    image,
    text,
    tool_invocation,
    tool_result,
    user_message,
)
from tabpilot.api.summarizer import (
    SUMMARY_FOOTER,
    SUMMARY_HEADER,
    _split_point,
    is_summary_message,
    keep_recent_for,
    serialize_for_summary,
    should_summarize,
    summarize_messages,
)


def chat(n: int) -> list:
    return [
        user_message(f"question {i}") if i % 2 == 0 else assistant_message(f"answer {i}")
        for i in range(n)
    ]


def summary_reply(summary: str) -> dict:
    return {"content": [{"type": "text", "text": summary}], "stop_reason": "end_turn"}


class TestHelpers:
    @pytest.mark.parametrize("count,expected", [(10, 5), (9, 5), (1, 1), (15, 8)])
    def test_keep_recent_for(self, count, expected):
        assert keep_recent_for(count) == expected

    def test_should_summarize(self):
        assert not should_summarize(chat(8), 8)
        assert should_summarize(chat(9), 8)

    def test_serialize(self):
        msgs = [
            user_message("open the site"),
            assistant_message([text("Sure"), tool_invocation("t1", "navigate", {"url": "https://a.b"})]),
            user_message([tool_result("t1", "loaded"), tool_result("t2", "nope", is_error=True)]),
            user_message([tool_result("t3", [text("captured"), image("AAAA")])]),
        ]
        out = serialize_for_summary(msgs)
        assert "User: open the site" in out
        assert 'Assistant: Sure\n[Called navigate with {"url": "https://a.b"}]' in out
        assert "[Tool result: loaded]" in out
        assert "[Tool error: nope]" in out
        assert "AAAA" not in out

    def test_split_point_moves_off_tool_result(self):
        call = assistant_message([tool_invocation("t1", "click", {})])
        answer = user_message([tool_result("t1", "ok")])
        msgs = [*chat(4), call, answer, *chat(3)]
        # keeping 4 would open the recent slice on the tool_result
        assert _split_point(msgs, 4) == 4


@pytest.mark.asyncio
class TestSummarizeMessages:
    async def test_nothing_to_summarize(self, credentials, api):
        msgs = chat(3)
        async with api.client() as http:
            result = await summarize_messages(msgs, 5, credentials, http=http)
        assert result is msgs
        assert api.requests == []

    async def test_success(self, credentials, api):
        api.queue(summary_reply("User asked things."))
        msgs = chat(10)
        async with api.client() as http:
            result = await summarize_messages(msgs, 5, credentials, http=http, model="small-model")

        assert len(result) == 6
        assert result[1:] == msgs[5:]
        summary = result[0]
        assert summary.role == "assistant"
        assert summary.id.startswith("summary_")
        assert is_summary_message(summary)
        assert summary.content.startswith(SUMMARY_HEADER)
        assert "User asked things." in summary.content
        assert summary.content.endswith(SUMMARY_FOOTER)

        body = api.requests[0]
        assert body["model"] == "small-model"
        assert body["max_tokens"] == 500
        assert "question 0" in body["messages"][0]["content"]
        assert "question 6" not in body["messages"][0]["content"]

    async def test_custom_endpoint(self, credentials):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=summary_reply("s"))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            await summarize_messages(chat(6), 2, credentials, "https://proxy.local/", http=http)
        assert seen == ["https://proxy.local/v1/messages"]

    async def test_http_error_keeps_input(self, credentials, api):
        api.queue(httpx.Response(500, json={"error": {"message": "overloaded"}}))
        msgs = chat(10)
        async with api.client() as http:
            assert await summarize_messages(msgs, 5, credentials, http=http) is msgs

    async def test_network_error_keeps_input(self, credentials, api):
        api.queue(httpx.ConnectError("refused"))
        msgs = chat(10)
        async with api.client() as http:
            assert await summarize_messages(msgs, 5, credentials, http=http) is msgs

    async def test_empty_summary_keeps_input(self, credentials, api):
        api.queue(summary_reply("   "))
        msgs = chat(10)
        async with api.client() as http:
            assert await summarize_messages(msgs, 5, credentials, http=http) is msgs

    async def test_garbage_body_keeps_input(self, credentials, api):
        api.queue(httpx.Response(200, text="not json"))
        msgs = chat(10)
        async with api.client() as http:
            assert await summarize_messages(msgs, 5, credentials, http=http) is msgs

    async def test_missing_key_keeps_input(self, api):
        msgs = chat(10)
        async with api.client() as http:
            assert await summarize_messages(msgs, 5, ApiCredentials(""), http=http) is msgs
        assert api.requests == []

    async def test_pair_not_split(self, credentials, api):
        api.queue(summary_reply("summary"))
        call = assistant_message([tool_invocation("t1", "click", {})])
        answer = user_message([tool_result("t1", "ok")])
        msgs = [*chat(4), call, answer, *chat(3)]
        async with api.client() as http:
            result = await summarize_messages(msgs, 4, credentials, http=http)
        assert result[1] is call
        assert result[2] is answer

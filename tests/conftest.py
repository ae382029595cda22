"""Shared fixtures: settings, credentials, and a scripted Messages API."""

import json
from typing import Any

import httpx
import pytest
import pytest_asyncio

from tabpilot.api.models import ApiCredentials
from tabpilot.api.runner import AgentRunner
from tabpilot.config import Settings

# ---------------------------------------------------------------------------
# Scripted API (httpx.MockTransport)
# ---------------------------------------------------------------------------


class ScriptedApi:
    """Replays queued responses for POST /v1/messages and records every request body.

    Queue entries are httpx.Response objects, dicts (sent as 200 JSON),
    or exceptions (raised as transport errors).
    """

    def __init__(self) -> None:
        self.responses: list[Any] = []
        self.requests: list[dict[str, Any]] = []
        self.headers: list[httpx.Headers] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        self.headers.append(request.headers)
        if not self.responses:
            raise AssertionError("Unexpected API call: no scripted response left")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json=item)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings() -> Settings:
    """Settings with a fake key and no inter-tool delay."""
    return Settings(
        ANTHROPIC_API_KEY="test-key-123",
        model="claude-sonnet-4-5-20250514",
        max_tokens=1024,
        tool_delay=0.0,
        enable_summarization=False,
    )


@pytest.fixture
def credentials() -> ApiCredentials:
    return ApiCredentials(api_key="test-key-123", base_url="https://api.test")


@pytest.fixture
def api() -> ScriptedApi:
    return ScriptedApi()


@pytest_asyncio.fixture
async def runner(settings, api):
    """AgentRunner wired to the scripted API (no real network)."""
    http = api.client()
    r = AgentRunner(settings, http=http)
    yield r
    await http.aclose()

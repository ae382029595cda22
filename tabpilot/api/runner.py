"""Agent runner -- drives the browser agent tool loop via direct Anthropic API.

One orchestrate() call owns one conversation window from start to finish:

  history -> trim (history limit) -> optional summary -> turns:
    call API -> stream text -> run tools in order -> append pair -> trim (loop limit)

until the model stops asking for tools or the turn budget runs out.
Tool failures are fed back to the model; transport, protocol,
context-length and abort errors end the call.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx

from tabpilot.api.gateway import ToolGateway, classify_result, result_from_exception
from tabpilot.api.models import (
    ApiCredentials,
    ApiResponse,
    Message,
    TextPart,
    ToolInvocationPart,
    ToolResultPart,
    assistant_message,
    part_from_wire,
    tool_result,
    user_message,
)
from tabpilot.api.prompts import build_system_instructions
from tabpilot.api.summarizer import keep_recent_for, should_summarize, summarize_messages
from tabpilot.api.tools import (
    BROWSER_TOOLS,
    ToolCatalog,
    ToolDefinition,
    ToolSource,
    build_catalog,
    is_agent_tool,
    parse_tool_arguments,
)
from tabpilot.api.window import trim_window
from tabpilot.config import RunSettings, Settings
from tabpilot.errors import (
    ConfigurationError,
    ContextLengthError,
    ModelTimeoutError,
    OrchestrationAborted,
    ProtocolError,
    ToolArgumentError,
    TransportError,
)
from tabpilot.utils import looks_like_described_tool_call, sanitize_model_text

logger = logging.getLogger(__name__)

_RETRY_STATUSES = (429, 500, 529)
_CONTEXT_LENGTH_MARKERS = ("too long", "input is too long", "prompt is too long")

TURN_LIMIT_NOTICE = (
    "\n\n⚠️ Note: Reached maximum turn limit ({max_turns}). "
    "If you need to continue, please send a new message."
)
COMPLETION_NOTICE = (
    "\n\n✅ Task completed. If you requested something specific, "
    "please verify it was completed correctly."
)
DESCRIBED_TOOL_NOTICE = (
    "\n\n⚠️ Note: It looks like I described an action instead of executing it. "
    "Let me try again with the proper tool call.\n"
)

TextCallback = Callable[[str], Any]
CompleteCallback = Callable[[], Any]
ToolStartCallback = Callable[[str, bool], Any]


class LoopState(StrEnum):
    AWAITING_MODEL_RESPONSE = "awaiting_model_response"
    INTERPRETING_RESPONSE = "interpreting_response"
    EXECUTING_TOOLS = "executing_tools"
    APPENDING_RESULTS = "appending_results"
    DONE = "done"
    TURN_BUDGET_EXHAUSTED = "turn_budget_exhausted"


@dataclass
class ToolCallRecord:
    """What happened to one tool invocation."""

    tool_name: str
    arguments: dict[str, Any]
    result: str | None = None
    error: str | None = None
    timeout: bool = False
    duration_ms: int = 0


@dataclass
class RunOutcome:
    """Terminal state of one orchestrate() call."""

    state: LoopState
    turns: int
    text: str
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)


async def _maybe_await(value: Any) -> None:
    if inspect.isawaitable(value):
        await value


class AgentRunner:
    """Runs the tool-using agent loop against the Messages API.

    Uses direct httpx calls with an outer per-call timeout and an
    optional abort signal.  The runner holds no conversation state
    between orchestrate() calls.
    """

    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient | None = None,
        local_tools: Iterable[ToolDefinition] = BROWSER_TOOLS,
    ) -> None:
        self._settings = settings
        self._http = http
        self._owns_http = http is None
        self._local_tools = tuple(local_tools)

    async def start(self) -> None:
        """Initialize the httpx client with timeout and connection limits."""
        if self._http is not None:
            return
        settings = self._settings
        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(max_connections=10, max_keepalive_connections=5)
        self._http = httpx.AsyncClient(timeout=timeout, limits=limits)
        self._owns_http = True
        logger.info("httpx client initialized (model call ceiling: %.0fs)", settings.api_timeout)

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> AgentRunner:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def orchestrate(
        self,
        history: list[Message],
        credentials: ApiCredentials | None,
        model_id: str | None,
        settings: RunSettings | Mapping[str, Any] | None,
        on_text_chunk: TextCallback,
        on_complete: CompleteCallback,
        execute_tool: ToolGateway,
        abort_signal: asyncio.Event | None = None,
        external_tools: Iterable[Mapping[str, Any] | ToolDefinition] | None = None,
        on_tool_start: ToolStartCallback | None = None,
        local_tools_enabled: bool = True,
        *,
        current_url: str | None = None,
        site_instructions: str | None = None,
    ) -> RunOutcome:
        """Drive the loop until Done or the turn budget is exhausted.

        Text is streamed through on_text_chunk as each response is read.
        on_complete is called only when the loop ends normally; typed
        errors are raised after any partial text has already been sent.
        """
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")

        run = self._settings.run_settings(settings)
        credentials = credentials or ApiCredentials.from_settings(self._settings)
        headers = credentials.headers()  # ConfigurationError before any network call
        model = model_id or self._settings.model

        catalog = build_catalog(self._local_tools, external_tools, local_tools_enabled)
        logger.info(
            "Starting agent loop: %d history messages, %d tools (%d external), max_turns=%d",
            len(history), len(catalog), len(catalog.external()), run.max_turns,
        )

        window = trim_window(list(history), run.history_window_size)
        threshold = self._settings.summarization_threshold
        if run.enable_summarization and should_summarize(window, threshold):
            window = await summarize_messages(
                window,
                keep_recent_for(len(window)),
                credentials,
                http=self._http,
                model=self._settings.summary_model,
                max_tokens=self._settings.summary_max_tokens,
                timeout=self._settings.summary_timeout,
            )

        system = build_system_instructions(
            catalog, local_tools_enabled, current_url=current_url, site_instructions=site_instructions,
        )

        streamed: list[str] = []

        async def emit(chunk: str) -> None:
            streamed.append(chunk)
            await _maybe_await(on_text_chunk(chunk))

        records: list[ToolCallRecord] = []
        model_text = ""  # model-authored text only, no tool headers
        turns = 0
        state = LoopState.AWAITING_MODEL_RESPONSE

        while True:
            state = LoopState.AWAITING_MODEL_RESPONSE
            logger.info("Agent loop turn %d of %d", turns + 1, run.max_turns)
            payload = self._build_api_payload(model, system, window, catalog)
            response = await self._call_api(credentials, headers, payload, abort_signal)

            state = LoopState.INTERPRETING_RESPONSE
            parts = [part_from_wire(block) for block in response.content]
            turn_text = ""
            for part in parts:
                if isinstance(part, TextPart) and part.text:
                    cleaned = sanitize_model_text(part.text, local_tools_enabled)
                    if cleaned.strip():
                        turn_text += cleaned
                        model_text += cleaned
                        await emit(cleaned)

            invocations = [p for p in parts if isinstance(p, ToolInvocationPart)]
            turns += 1

            if not invocations:
                if turn_text and looks_like_described_tool_call(turn_text):
                    logger.warning("Model described tool calls instead of making them: %s", turn_text[:200])
                    await emit(DESCRIBED_TOOL_NOTICE)
                if response.stop_reason == "end_turn" and turns > 1 and not model_text.strip():
                    await emit(COMPLETION_NOTICE)
                logger.info("No more tools to execute. Stop reason: %s", response.stop_reason)
                state = LoopState.DONE
                break

            state = LoopState.EXECUTING_TOOLS
            results = await self._execute_tools(invocations, catalog, execute_tool, on_tool_start, emit, records)

            state = LoopState.APPENDING_RESULTS
            window.append(assistant_message(parts))
            window.append(user_message(list(results)))
            window = trim_window(window, run.loop_window_size)

            if response.stop_reason == "end_turn":
                if turns > 1 and not model_text.strip():
                    await emit(COMPLETION_NOTICE)
                state = LoopState.DONE
                break
            if turns >= run.max_turns:
                logger.warning("Loop exited due to max_turns limit (%d/%d)", turns, run.max_turns)
                await emit(TURN_LIMIT_NOTICE.format(max_turns=run.max_turns))
                state = LoopState.TURN_BUDGET_EXHAUSTED
                break

        logger.info("Agent loop completed: state=%s, turns=%d, tools=%d", state, turns, len(records))
        await _maybe_await(on_complete())
        return RunOutcome(
            state=state,
            turns=turns,
            text="".join(streamed),
            tool_calls=records,
            messages=window,
        )

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    async def _execute_tools(
        self,
        invocations: list[ToolInvocationPart],
        catalog: ToolCatalog,
        execute_tool: ToolGateway,
        on_tool_start: ToolStartCallback | None,
        emit: Callable[[str], Any],
        records: list[ToolCallRecord],
    ) -> list[ToolResultPart]:
        """Run invocations one at a time, in the order the model emitted them.

        Later calls often depend on side effects of earlier ones (a click
        focuses the element a type targets), so this is never concurrent.
        """
        results: list[ToolResultPart] = []
        for index, inv in enumerate(invocations):
            is_external = catalog.is_external(inv.tool_name)
            await emit(f"\n{self._executing_header(inv.tool_name, is_external)}\n")
            await emit(f"{json.dumps(inv.arguments)}\n")
            if on_tool_start is not None:
                await _maybe_await(on_tool_start(inv.tool_name, is_external))

            logger.info("Executing tool: %s", inv.tool_name)
            start_time = time.monotonic()
            part = await self._run_one(inv, catalog, execute_tool)
            duration_ms = int((time.monotonic() - start_time) * 1000)

            results.append(part)
            records.append(ToolCallRecord(
                tool_name=inv.tool_name,
                arguments=inv.arguments,
                result=part.payload_text() if not part.is_error else None,
                error=part.payload_text() if part.is_error else None,
                timeout=part.timeout,
                duration_ms=duration_ms,
            ))

            if index < len(invocations) - 1 and self._settings.tool_delay > 0:
                await asyncio.sleep(self._settings.tool_delay)
        return results

    async def _run_one(
        self,
        inv: ToolInvocationPart,
        catalog: ToolCatalog,
        execute_tool: ToolGateway,
    ) -> ToolResultPart:
        arguments: dict[str, Any] = dict(inv.arguments)
        if catalog.source_of(inv.tool_name) is ToolSource.LOCAL:
            try:
                typed = parse_tool_arguments(inv.tool_name, arguments)
            except ToolArgumentError as e:
                logger.warning("Rejected tool call: %s", e)
                return tool_result(inv.invocation_id, json.dumps({"error": str(e)}), is_error=True)
            if not isinstance(typed, dict):
                arguments = typed.to_arguments()

        try:
            result = await execute_tool(inv.tool_name, arguments)
        except Exception as e:
            logger.warning("Tool execution failed for %s: %s", inv.tool_name, e)
            return result_from_exception(inv.invocation_id, e)
        try:
            return classify_result(inv.invocation_id, inv.tool_name, arguments, result)
        except Exception as e:
            logger.warning("Unreadable result from %s: %s", inv.tool_name, e)
            return result_from_exception(inv.invocation_id, e)

    @staticmethod
    def _executing_header(tool_name: str, is_external: bool) -> str:
        if not is_external:
            return f"[Executing: {tool_name}]"
        tag = "A2A tool" if is_agent_tool(tool_name) else "MCP tool"
        return f"[Executing: {tool_name}] ({tag})"

    # ------------------------------------------------------------------
    # API call
    # ------------------------------------------------------------------

    def _build_api_payload(
        self,
        model: str,
        system: str,
        window: list[Message],
        catalog: ToolCatalog,
    ) -> dict[str, Any]:
        """Build Messages API request payload, dropping messages with empty content."""
        outgoing = [m for m in window if not m.is_empty()]
        if len(outgoing) < len(window):
            logger.warning("Filtered %d messages with empty content", len(window) - len(outgoing))
        if not outgoing:
            raise ConfigurationError("No valid messages to send. Please try sending a message again.")

        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": self._settings.max_tokens,
            "messages": [m.to_wire() for m in outgoing],
            "system": system,
        }
        if len(catalog):
            payload["tools"] = catalog.to_wire()
        logger.debug("Sending %d messages to API", len(outgoing))
        return payload

    async def _call_api(
        self,
        credentials: ApiCredentials,
        headers: dict[str, str],
        payload: dict[str, Any],
        abort_signal: asyncio.Event | None = None,
    ) -> ApiResponse:
        """Call the API under the overall timeout, racing the abort signal.

        An abort or timeout cancels the in-flight request.
        """
        if abort_signal is not None and abort_signal.is_set():
            raise OrchestrationAborted("Request aborted before the model call")

        request = asyncio.ensure_future(self._post(credentials, headers, payload))
        waiters: set[asyncio.Future[Any]] = {request}
        abort_waiter: asyncio.Future[Any] | None = None
        if abort_signal is not None:
            abort_waiter = asyncio.ensure_future(abort_signal.wait())
            waiters.add(abort_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self._settings.api_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if abort_waiter is not None:
                abort_waiter.cancel()
            if not request.done():
                request.cancel()

        if request in done:
            return request.result()

        await asyncio.wait({request})  # let the cancelled request unwind
        if abort_waiter is not None and abort_waiter in done:
            logger.info("Model call aborted by caller")
            raise OrchestrationAborted("Request aborted")
        logger.error("API request timed out after %.0fs", self._settings.api_timeout)
        raise ModelTimeoutError(
            f"API request timed out after {self._settings.api_timeout:.0f} seconds"
        )

    async def _post(
        self,
        credentials: ApiCredentials,
        headers: dict[str, str],
        payload: dict[str, Any],
    ) -> ApiResponse:
        """POST /v1/messages with one retry for 429/500/529.

        Maps failures onto the error taxonomy.
        """
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")

        url = f"{credentials.base_url.rstrip('/')}/v1/messages"
        for attempt in range(2):  # initial + 1 retry
            try:
                response = await self._http.post(url, json=payload, headers=headers)
            except httpx.TimeoutException as e:
                raise ModelTimeoutError(f"API request timed out: {e}") from e
            except httpx.HTTPError as e:
                logger.error("Network error: %s", e)
                raise TransportError(
                    "🔌 Cannot reach Anthropic API endpoint.\n\n"
                    "Please check your API key and network connection."
                ) from e

            if response.status_code == 200:
                return self._parse_response(response)

            try:
                error_data = response.json()
                error_msg = error_data.get("error", {}).get("message", "") or "Anthropic API request failed"
            except (ValueError, AttributeError):
                logger.error("Non-JSON API error response: %s", response.text[:200])
                raise TransportError(
                    f"API Error ({response.status_code} {response.reason_phrase})",
                    status_code=response.status_code,
                )

            if any(marker in error_msg.lower() for marker in _CONTEXT_LENGTH_MARKERS):
                raise ContextLengthError(error_msg)

            if response.status_code in _RETRY_STATUSES and attempt == 0:
                retry_after = min(float(response.headers.get("retry-after", "1")), 30.0)
                logger.warning(
                    "API error %d, retrying in %.1fs: %s",
                    response.status_code, retry_after, error_msg,
                )
                await asyncio.sleep(retry_after)
                continue

            logger.error("API error %d: %s", response.status_code, error_msg)
            raise TransportError(error_msg, status_code=response.status_code)

        raise TransportError("API call failed with unknown error")

    @staticmethod
    def _parse_response(response: httpx.Response) -> ApiResponse:
        """Validate a 200 response body. Empty content is a protocol error."""
        try:
            data = response.json()
        except ValueError as e:
            logger.error("Failed to parse successful response as JSON: %s", response.text[:200])
            raise ProtocolError("API returned non-JSON response") from e

        if not isinstance(data, dict):
            raise ProtocolError("API returned invalid response structure")
        content = data.get("content")
        if not isinstance(content, list):
            raise ProtocolError("API response missing content array")
        if not content:
            raise ProtocolError("API returned empty response - no content items")
        if not all(isinstance(block, dict) for block in content):
            raise ProtocolError("API response contains malformed content items")

        return ApiResponse(
            content=content,
            stop_reason=data.get("stop_reason") or "",
            usage=data.get("usage"),
        )

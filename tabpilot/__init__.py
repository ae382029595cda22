"""tabpilot -- browser agent loop orchestration for tool-using LLMs.

Public API:
    AgentRunner       - Orchestration loop (orchestrate())
    RunOutcome        - Terminal state, turns, streamed text, tool records
    Settings          - Configuration (TABPILOT_ env prefix)
    RunSettings       - Per-call loop overrides
    ApiCredentials    - Model API key and endpoint

Building blocks:
    Message, user_message, assistant_message, tool_invocation, tool_result,
    build_catalog, trim_window, summarize_messages, scale_point
"""

from tabpilot.api.gateway import RoutingGateway, classify_result, scale_point
from tabpilot.api.models import (
    ApiCredentials,
    Message,
    assistant_message,
    has_unanswered_invocations,
    image,
    text,
    tool_invocation,
    tool_result,
    user_message,
)
from tabpilot.api.runner import AgentRunner, LoopState, RunOutcome, ToolCallRecord
from tabpilot.api.summarizer import summarize_messages
from tabpilot.api.tools import BROWSER_TOOLS, ToolCatalog, ToolDefinition, build_catalog
from tabpilot.api.window import trim_window
from tabpilot.config import RunSettings, Settings
from tabpilot.errors import (
    ConfigurationError,
    ContextLengthError,
    ModelTimeoutError,
    OrchestrationAborted,
    OrchestratorError,
    ProtocolError,
    TransportError,
)

__all__ = [
    "AgentRunner",
    "ApiCredentials",
    "BROWSER_TOOLS",
    "ConfigurationError",
    "ContextLengthError",
    "LoopState",
    "Message",
    "ModelTimeoutError",
    "OrchestrationAborted",
    "OrchestratorError",
    "ProtocolError",
    "RoutingGateway",
    "RunOutcome",
    "RunSettings",
    "Settings",
    "ToolCallRecord",
    "ToolCatalog",
    "ToolDefinition",
    "TransportError",
    "assistant_message",
    "build_catalog",
    "classify_result",
    "has_unanswered_invocations",
    "image",
    "scale_point",
    "summarize_messages",
    "text",
    "tool_invocation",
    "tool_result",
    "trim_window",
    "user_message",
]

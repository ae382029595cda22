"""Tool definitions and catalog building for the Messages API.

Provides:
- ToolDefinition: name/description/input_schema in Anthropic tool format
- BROWSER_TOOLS: the fixed set of native browser actions
- Typed argument models for the browser tools, with a dict fallback
  for externally discovered tools whose schema is only known at runtime
- format_external_tool / format_agent_tools: normalize discovered tools
- build_catalog: external tools first, then local ones, first-seen wins
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from tabpilot.errors import ToolArgumentError

logger = logging.getLogger(__name__)

AGENT_TOOL_PREFIX = "a2a_"
SCREENSHOT_TOOL = "screenshot"
NAVIGATE_TOOL = "navigate"


class ToolSource(StrEnum):
    EXTERNAL = "external"  # discovered integration (MCP server, peer agent)
    LOCAL = "local"  # native browser action


@dataclass(frozen=True)
class ToolDefinition:
    """A tool the model may call. input_schema is sent as-is, never executed."""

    name: str
    description: str
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


def _schema(properties: dict[str, Any] | None = None, required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties or {}}
    if required:
        schema["required"] = required
    return schema


BROWSER_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        "navigate",
        "Navigate to a specific URL",
        _schema(
            {"url": {"type": "string", "description": "The URL to navigate to (must include http:// or https://)"}},
            ["url"],
        ),
    ),
    ToolDefinition(
        "clickElement",
        "Click an element using CSS selector or text content. PREFERRED method.",
        _schema({
            "selector": {"type": "string", "description": "CSS selector for the element"},
            "text": {"type": "string", "description": "Alternative: text content to search for"},
        }),
    ),
    ToolDefinition(
        "click",
        "Click at coordinates. Last resort only.",
        _schema(
            {
                "x": {"type": "number", "description": "X coordinate"},
                "y": {"type": "number", "description": "Y coordinate"},
            },
            ["x", "y"],
        ),
    ),
    ToolDefinition(
        "type",
        "Type text into input field",
        _schema(
            {
                "text": {"type": "string", "description": "Text to type"},
                "selector": {"type": "string", "description": "CSS selector for input"},
            },
            ["text"],
        ),
    ),
    ToolDefinition(
        "scroll",
        "Scroll the page",
        _schema(
            {
                "direction": {"type": "string", "enum": ["up", "down"], "description": "Scroll direction"},
                "amount": {"type": "number", "description": "Pixels to scroll (default: 500)"},
            },
            ["direction"],
        ),
    ),
    ToolDefinition("getPageContext", "Get page info. Call first.", _schema()),
    ToolDefinition("screenshot", "Take screenshot. Last resort if DOM fails.", _schema()),
    ToolDefinition(
        "pressKey",
        "Press key (Enter, Tab, Escape, etc)",
        _schema({"key": {"type": "string", "description": "Key name"}}, ["key"]),
    ),
    ToolDefinition(
        "waitForModal",
        "Wait for a modal/dialog to appear on the page. Use this when you expect a modal to open after an action.",
        _schema({"timeout": {"type": "number", "description": "Maximum time to wait in milliseconds (default: 5000)"}}),
    ),
    ToolDefinition(
        "closeModal",
        "Close the currently visible modal/dialog. Use the close button if available, or try ESC key or backdrop click.",
        _schema(),
    ),
)


# ---------------------------------------------------------------------------
# Typed arguments for the browser tools
# ---------------------------------------------------------------------------


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="allow")

    def to_arguments(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class NavigateArgs(_ToolArgs):
    url: str


class ClickElementArgs(_ToolArgs):
    selector: str | None = None
    text: str | None = None

    @model_validator(mode="after")
    def _needs_target(self) -> "ClickElementArgs":
        if not self.selector and not self.text:
            raise ValueError("either selector or text is required")
        return self


class ClickArgs(_ToolArgs):
    x: float
    y: float


class TypeArgs(_ToolArgs):
    text: str
    selector: str | None = None


class ScrollArgs(_ToolArgs):
    direction: Literal["up", "down"]
    amount: float | None = None


class PressKeyArgs(_ToolArgs):
    key: str


class WaitForModalArgs(_ToolArgs):
    timeout: float | None = None


class NoArgs(_ToolArgs):
    pass


TOOL_ARGUMENT_MODELS: dict[str, type[_ToolArgs]] = {
    "navigate": NavigateArgs,
    "clickElement": ClickElementArgs,
    "click": ClickArgs,
    "type": TypeArgs,
    "scroll": ScrollArgs,
    "getPageContext": NoArgs,
    "screenshot": NoArgs,
    "pressKey": PressKeyArgs,
    "waitForModal": WaitForModalArgs,
    "closeModal": NoArgs,
}


def parse_tool_arguments(tool_name: str, raw: Mapping[str, Any] | None) -> _ToolArgs | dict[str, Any]:
    """Return typed arguments for a known browser tool, or a plain dict otherwise.

    Raises ToolArgumentError when a known tool's arguments fail validation.
    """
    raw = dict(raw or {})
    model = TOOL_ARGUMENT_MODELS.get(tool_name)
    if model is None:
        return raw
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}" for err in e.errors()
        )
        raise ToolArgumentError(tool_name, details) from e


# ---------------------------------------------------------------------------
# External tool formatting
# ---------------------------------------------------------------------------


def format_external_tool(raw: Any) -> ToolDefinition | None:
    """Normalize a discovered tool definition, or None if it has no name.

    The schema may live under input_schema, inputSchema, parameters or
    schema, and MCP servers often wrap it in a jsonSchema field.
    """
    if not isinstance(raw, Mapping):
        return None
    name = raw.get("name")
    if not name or not isinstance(name, str):
        return None

    schema = raw.get("input_schema") or raw.get("inputSchema") or raw.get("parameters") or raw.get("schema")
    if isinstance(schema, Mapping) and "jsonSchema" in schema:
        schema = schema["jsonSchema"]
    if isinstance(schema, Mapping):
        schema = dict(schema)
        schema.setdefault("type", "object")
    else:
        schema = {"type": "object", "properties": {}}

    return ToolDefinition(
        name=name,
        description=raw.get("description") or f"Tool: {name}",
        input_schema=schema,
    )


def format_agent_tools(connections: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Expose each connected peer agent (A2A) as a tool taking a natural-language task."""
    tools = []
    for conn in connections:
        if not conn.get("connected", True):
            continue
        server_name = str(conn.get("server_name") or conn.get("serverName") or "")
        if not server_name:
            continue
        tool_name = AGENT_TOOL_PREFIX + re.sub(r"[^a-z0-9_]", "_", server_name.lower())
        tools.append({
            "name": tool_name,
            "description": (
                f"Execute a task on the {server_name} agent (A2A protocol). "
                "Provide a natural language task description."
            ),
            "input_schema": _schema(
                {"task": {"type": "string", "description": "The task to execute on the agent in natural language"}},
                ["task"],
            ),
        })
    return tools


def is_agent_tool(name: str) -> bool:
    return name.startswith(AGENT_TOOL_PREFIX)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CatalogEntry:
    definition: ToolDefinition
    source: ToolSource


@dataclass(frozen=True)
class ToolCatalog:
    """Ordered tool list for one orchestration call."""

    entries: tuple[CatalogEntry, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, name: object) -> bool:
        return any(e.definition.name == name for e in self.entries)

    @property
    def names(self) -> list[str]:
        return [e.definition.name for e in self.entries]

    def source_of(self, name: str) -> ToolSource | None:
        for entry in self.entries:
            if entry.definition.name == name:
                return entry.source
        return None

    def is_external(self, name: str) -> bool:
        return self.source_of(name) is ToolSource.EXTERNAL

    def external(self) -> list[ToolDefinition]:
        return [e.definition for e in self.entries if e.source is ToolSource.EXTERNAL]

    def describe_external(self) -> str:
        """Bullet list of external (non-agent) tools for the priority instructions."""
        return "\n".join(
            f"  - {d.name}: {d.description or 'No description available'}"
            for d in self.external()
            if not is_agent_tool(d.name)
        )

    def to_wire(self) -> list[dict[str, Any]]:
        return [e.definition.to_wire() for e in self.entries]


def build_catalog(
    local_tools: Iterable[ToolDefinition] = BROWSER_TOOLS,
    external_tools: Iterable[Mapping[str, Any] | ToolDefinition] | None = None,
    local_tools_enabled: bool = True,
) -> ToolCatalog:
    """Merge external and local tools into one ordered catalog.

    External tools come first. A name already in the catalog is skipped
    (first-seen wins). External definitions without a name are dropped
    silently, since discovery upstream may have partially failed.
    """
    entries: list[CatalogEntry] = []
    seen: set[str] = set()
    skipped = 0

    for raw in external_tools or ():
        definition = raw if isinstance(raw, ToolDefinition) else format_external_tool(raw)
        if definition is None:
            skipped += 1
            continue
        if definition.name in seen:
            continue
        seen.add(definition.name)
        entries.append(CatalogEntry(definition, ToolSource.EXTERNAL))

    if local_tools_enabled:
        for definition in local_tools:
            if definition.name in seen:
                continue
            seen.add(definition.name)
            entries.append(CatalogEntry(definition, ToolSource.LOCAL))

    if skipped:
        logger.debug("Skipped %d external tool definitions without a name", skipped)
    return ToolCatalog(tuple(entries))

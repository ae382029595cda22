"""System instructions for the browser agent loop.

The only functional content the orchestrator relies on is the
tool-selection priority block: external tools are preferred over local
browser tools.  This is a prompt-level hint; nothing in code enforces it.
"""

from __future__ import annotations

from tabpilot.api.tools import ToolCatalog

_RULE = "━" * 70

_BROWSER_ENABLED_INTRO = (
    " with browser automation capabilities. You can navigate to websites, "
    "click elements, type text, scroll pages, and take screenshots."
)
_BROWSER_DISABLED_INTRO = (
    ". Browser automation tools are NOT available in this mode - you cannot "
    "navigate, click, type, or take screenshots."
)

_BROWSER_DISABLED_RULES = """\
CRITICAL: Browser tools are DISABLED. You CANNOT navigate, click, type, or take screenshots.
   - DO NOT write "[Executing: navigate]" or any similar text
   - DO NOT pretend to execute browser tools or describe what you "see" after pretending to navigate
   - When users ask to navigate, respond: "I don't have browser automation capabilities enabled. \
Please navigate to [URL] manually in your browser.\""""

_TOOL_GUIDELINES = f"""\
{_RULE}
TOOL USAGE GUIDELINES
{_RULE}

getPageContext: ALWAYS call first to understand page structure
screenshot: Use when you need visual understanding or coordinates
clickElement: Preferred method - works with selectors or text
click: Last resort - requires screenshot first for coordinates
type: For inputs - automatically presses Enter for search boxes
scroll: To bring content into view
pressKey: For special keys like Enter, Tab, Escape
navigate: To change pages - always in same tab. CHECK FOR ERRORS in result!"""

_CALLING_FORMAT = f"""\
{_RULE}
CRITICAL: TOOL CALLING FORMAT
{_RULE}

NEVER output XML-like syntax in your text responses:
   - DO NOT write: <function_calls>, <invoke>, <parameter>, <tool_call>, <function>
   - Tools are called through the API's tool_use mechanism; describe what you are doing in natural language."""


def external_priority_section(catalog: ToolCatalog) -> str:
    """Instruction block asking the model to prefer external tools over browser tools."""
    if not catalog.external():
        return ""
    listing = catalog.describe_external() or "  (No MCP tools available)"
    return f"""\
CRITICAL - MCP / TRUSTED AGENT TOOLS AVAILABLE:
{_RULE}
You have specialized MCP tools available. READ EACH TOOL'S DESCRIPTION to understand what it does.

AVAILABLE MCP TOOLS:
{listing}

HOW TO CHOOSE THE RIGHT TOOL:
1. Read the user's request to understand their INTENT
2. Check MCP tool descriptions first - do any match the task?
   - If yes, use that MCP tool DIRECTLY (do NOT navigate or take screenshots first)
   - If no, use browser tools (navigate, click, type, screenshot, etc.)
{_RULE}"""


def site_instructions_section(current_url: str | None, site_instructions: str | None) -> str:
    if not site_instructions:
        return ""
    return f"""\
SITE-SPECIFIC INSTRUCTIONS:
{_RULE}
Current URL: {current_url or "unknown"}

Follow these site-specific instructions when interacting with this site:

{site_instructions}
{_RULE}"""


def build_system_instructions(
    catalog: ToolCatalog,
    local_tools_enabled: bool,
    current_url: str | None = None,
    site_instructions: str | None = None,
) -> str:
    """Assemble the system prompt for one turn.

    Deterministic for a given catalog and flags, so prompt text is
    reproducible in tests.
    """
    intro = "You are a helpful AI assistant" + (
        _BROWSER_ENABLED_INTRO if local_tools_enabled else _BROWSER_DISABLED_INTRO
    )
    parts = [intro]
    if not local_tools_enabled:
        parts.append(_BROWSER_DISABLED_RULES)

    priority = external_priority_section(catalog)
    if priority:
        parts.append(priority)

    site = site_instructions_section(current_url, site_instructions)
    if site:
        parts.append(site)

    if local_tools_enabled:
        parts.append(_TOOL_GUIDELINES)
    parts.append(_CALLING_FORMAT)
    return "\n\n".join(parts)

"""MCP tool source -- discovers and executes tools on an MCP server.

Wraps an initialized mcp.ClientSession:
  list_tools()  - discovered definitions, ready for build_catalog()
  call_tool()   - gateway-shaped result dict for classify_result()

connect_stdio() spawns a server subprocess and yields a ready source.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.types import CallToolResult, ImageContent, TextContent

logger = logging.getLogger(__name__)


def _result_text(result: CallToolResult) -> str:
    parts = []
    for item in result.content:
        if isinstance(item, TextContent):
            parts.append(item.text)
        elif isinstance(item, ImageContent):
            parts.append(f"[image {item.mimeType}]")
        else:
            parts.append(str(item))
    return "\n".join(parts)


class McpToolSource:
    """One connected MCP server exposed as a source of external tools."""

    def __init__(self, session: ClientSession, name: str = "mcp") -> None:
        self._session = session
        self.name = name
        self._tool_names: set[str] = set()

    def owns(self, tool_name: str) -> bool:
        return tool_name in self._tool_names

    async def list_tools(self) -> list[dict[str, Any]]:
        """Return discovered tools as raw definitions (Anthropic shape)."""
        listing = await self._session.list_tools()
        tools = []
        for tool in listing.tools:
            tools.append({
                "name": tool.name,
                "description": tool.description or "",
                "input_schema": tool.inputSchema,
            })
        self._tool_names = {t["name"] for t in tools}
        logger.info("Discovered %d tools on MCP server %s", len(tools), self.name)
        return tools

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Execute a tool and map the MCP result onto the gateway result shape."""
        result = await self._session.call_tool(tool_name, arguments)
        text = _result_text(result)
        if result.isError:
            logger.warning("MCP tool %s failed on %s: %s", tool_name, self.name, text[:200])
            return {"error": f'Tool "{tool_name}" failed on MCP server "{self.name}": {text}'}
        return {"success": True, "result": text}


@asynccontextmanager
async def connect_stdio(
    command: str,
    args: list[str] | None = None,
    env: dict[str, str] | None = None,
    name: str | None = None,
) -> AsyncIterator[McpToolSource]:
    """Spawn an MCP server over stdio and yield an initialized tool source."""
    params = StdioServerParameters(command=command, args=args or [], env=env)
    async with stdio_client(params) as (read, write):
        async with ClientSession(read, write) as session:
            await session.initialize()
            yield McpToolSource(session, name=name or command)

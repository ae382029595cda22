"""Command-line entry point.

Runs one agent loop for a single prompt with browser tools disabled,
optionally discovering external tools from an MCP server over stdio:

    python -m tabpilot.main "summarize https://example.com" --mcp-command uvx --mcp-arg some-server
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from contextlib import AsyncExitStack
from typing import Any

from tabpilot.api.gateway import RoutingGateway
from tabpilot.api.mcp import connect_stdio
from tabpilot.api.models import ApiCredentials, user_message
from tabpilot.api.runner import AgentRunner, RunOutcome
from tabpilot.config import Settings
from tabpilot.errors import OrchestratorError

logger = logging.getLogger(__name__)


async def _no_browser(tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    return {"error": f"Browser tool '{tool_name}' is not available from the command line"}


async def run_prompt(
    settings: Settings,
    prompt: str,
    mcp_command: str | None = None,
    mcp_args: list[str] | None = None,
) -> RunOutcome:
    """Run one orchestration, printing streamed text to stdout."""
    gateway = RoutingGateway(local=_no_browser)
    external_tools: list[dict[str, Any]] = []

    async with AsyncExitStack() as stack:
        if mcp_command:
            source = await stack.enter_async_context(connect_stdio(mcp_command, mcp_args))
            external_tools = await source.list_tools()
            gateway.add_source(source)

        runner = await stack.enter_async_context(AgentRunner(settings))
        return await runner.orchestrate(
            history=[user_message(prompt)],
            credentials=ApiCredentials.from_settings(settings),
            model_id=settings.model,
            settings=None,
            on_text_chunk=lambda chunk: print(chunk, end="", flush=True),
            on_complete=lambda: print(),
            execute_tool=gateway,
            external_tools=external_tools,
            local_tools_enabled=False,
        )


def main(argv: list[str] | None = None) -> int:
    """Entry point -- parse settings and arguments, run one prompt."""
    parser = argparse.ArgumentParser(prog="tabpilot", description=__doc__.splitlines()[0])
    parser.add_argument("prompt", help="User message to send")
    parser.add_argument("--mcp-command", help="Command that starts an MCP server over stdio")
    parser.add_argument("--mcp-arg", action="append", default=[], help="Argument for the MCP server (repeatable)")
    args = parser.parse_args(argv)

    settings = Settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    logger.info("Model: %s", settings.model)

    if not settings.anthropic_api_key and not settings.anthropic_auth_token:
        logger.warning("Neither ANTHROPIC_API_KEY nor ANTHROPIC_AUTH_TOKEN is set -- API calls will fail")

    try:
        outcome = asyncio.run(run_prompt(settings, args.prompt, args.mcp_command, args.mcp_arg))
    except OrchestratorError as e:
        print(f"\n{e}", file=sys.stderr)
        return 1

    logger.info("Finished: %s after %d turns", outcome.state, outcome.turns)
    return 0


if __name__ == "__main__":
    sys.exit(main())

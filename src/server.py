"""MCP server exposing the Gerrit tools over stdio."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import anyio.to_thread
import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from src.tools import TOOLS, ToolContext, dispatch_tool

logger = logging.getLogger(__name__)

SERVER_NAME = "gerrit-mcp-server"
SERVER_VERSION = "1.0.0"


class ToolCallError(RuntimeError):
    """Raised to make the MCP layer flag a tool result as an error."""


def tool_definitions() -> list[types.Tool]:
    """Describe every registered tool for `tools/list`."""
    return [
        types.Tool(
            name=tool.name,
            description=tool.description,
            inputSchema=tool.input_schema,
            annotations=types.ToolAnnotations(readOnlyHint=tool.read_only),
        )
        for tool in TOOLS
    ]


def build_server(context: ToolContext) -> Server:
    """Create the MCP server bound to one Gerrit client context."""
    server: Server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return tool_definitions()

    # Arguments are checked by the pydantic models, which also accept snake_case names.
    @server.call_tool(validate_input=False)
    async def handle_call_tool(
        name: str, arguments: dict[str, Any] | None
    ) -> list[types.TextContent]:
        logger.info("Tool call: %s", name)
        # Gerrit calls, the vote/submit delay and `repo download` all block.
        response = await anyio.to_thread.run_sync(dispatch_tool, name, arguments, context)
        if response.is_error:
            # The lowlevel server turns raised exceptions into isError results.
            raise ToolCallError(response.text)
        return [types.TextContent(type="text", text=response.text)]

    return server


async def serve_stdio(context: ToolContext) -> None:
    """Serve tool calls on stdin/stdout until the host disconnects."""
    server = build_server(context)
    async with stdio_server() as (read_stream, write_stream):
        logger.info("Gerrit MCP Server running on stdio")
        await server.run(read_stream, write_stream, server.create_initialization_options())


def run_stdio_server(context: ToolContext) -> None:
    """Blocking entrypoint for the stdio server."""
    asyncio.run(serve_stdio(context))

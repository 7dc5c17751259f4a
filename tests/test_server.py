"""Tests for the MCP tool listing and tool calls over an in-memory session."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any

import anyio
import mcp.types as types
import pytest
from conftest import FakeGerrit, change_payload
from mcp.client.session import ClientSession
from mcp.shared.memory import create_connected_server_and_client_session
from src.server import SERVER_NAME, build_server, tool_definitions
from src.tools import ToolContext


def call_over_session(
    context: ToolContext,
    name: str,
    arguments: dict[str, Any],
    *,
    alongside: Callable[[], Awaitable[None]] | None = None,
) -> types.CallToolResult:
    """Call one tool through a connected client session, optionally running a task beside it."""
    result: types.CallToolResult | None = None

    async def call(session: ClientSession) -> None:
        nonlocal result
        result = await session.call_tool(name, arguments)

    async def main() -> None:
        async with create_connected_server_and_client_session(build_server(context)) as session:
            if alongside is None:
                await call(session)
                return
            async with anyio.create_task_group() as tg:
                tg.start_soon(alongside)
                await call(session)
                tg.cancel_scope.cancel()

    anyio.run(main)
    assert result is not None
    return result


def result_text(result: types.CallToolResult) -> str:
    assert len(result.content) == 1
    block = result.content[0]
    assert isinstance(block, types.TextContent)
    return block.text


@pytest.mark.unit
def test_tool_definitions_advertise_wire_argument_names() -> None:
    tools = {tool.name: tool for tool in tool_definitions()}

    set_review_schema = tools["set_review"].inputSchema
    assert set(set_review_schema["properties"]) == {"changeId", "revisionId", "message", "labels"}
    assert set_review_schema["required"] == ["changeId"]

    batch_schema = tools["batch_review_submit_by_topic"].inputSchema
    assert batch_schema["properties"]["codeReview"]["default"] == 2
    assert batch_schema["properties"]["verified"]["default"] == 1
    assert batch_schema["required"] == ["topic"]

    assert "required" not in tools["sync_gerrit_to_local"].inputSchema


@pytest.mark.unit
def test_tool_definitions_mark_read_only_tools() -> None:
    hints = {tool.name: tool.annotations.readOnlyHint for tool in tool_definitions()}

    assert hints == {
        "list_changes": True,
        "get_change_detail": True,
        "set_review": False,
        "submit_change": False,
        "batch_review_submit_by_topic": False,
        "sync_gerrit_to_local": False,
    }


@pytest.mark.unit
def test_build_server_uses_server_identity() -> None:
    server = build_server(ToolContext(client=None))  # type: ignore[arg-type]

    assert server.name == SERVER_NAME
    options = server.create_initialization_options()
    assert options.server_name == SERVER_NAME
    assert options.capabilities.tools is not None


@pytest.mark.unit
def test_call_tool_returns_batch_report(fake_gerrit: FakeGerrit) -> None:
    fake_gerrit.reply("GET", "/a/changes/", [change_payload(101, "Bump zlib")])
    fake_gerrit.reply("POST", "/a/changes/101/revisions/rev101/review", {})
    fake_gerrit.reply("POST", "/a/changes/101/submit", {"status": "MERGED"})

    with fake_gerrit.client() as client:
        context = ToolContext(client=client, sleep=lambda seconds: None)
        result = call_over_session(context, "batch_review_submit_by_topic", {"topic": "deps"})

    assert not result.isError
    assert result_text(result) == "✓ Processed 101: Bump zlib"


@pytest.mark.unit
def test_call_tool_flags_errors(fake_gerrit: FakeGerrit) -> None:
    with fake_gerrit.client() as client:
        result = call_over_session(ToolContext(client=client), "sync_gerrit_to_local", {})

    assert result.isError is True
    assert result_text(result) == "Error: Either topic or changeId must be provided"
    assert fake_gerrit.requests == []


@pytest.mark.unit
def test_call_tool_accepts_snake_case_arguments(fake_gerrit: FakeGerrit) -> None:
    fake_gerrit.reply("POST", "/a/changes/42/submit", {"status": "MERGED"})

    with fake_gerrit.client() as client:
        result = call_over_session(ToolContext(client=client), "submit_change", {"change_id": "42"})

    assert not result.isError
    assert result_text(result) == "Successfully submitted 42 (status: MERGED)"


@pytest.mark.unit
def test_call_tool_keeps_event_loop_responsive(fake_gerrit: FakeGerrit) -> None:
    fake_gerrit.reply("GET", "/a/changes/", [change_payload(101, "Bump zlib")])
    fake_gerrit.reply("POST", "/a/changes/101/revisions/rev101/review", {})
    fake_gerrit.reply("POST", "/a/changes/101/submit", {"status": "MERGED"})
    ticks: list[float] = []

    async def tick() -> None:
        while True:
            ticks.append(time.monotonic())
            await anyio.sleep(0.01)

    with fake_gerrit.client() as client:
        context = ToolContext(client=client, sleep=lambda seconds: time.sleep(0.3))
        started = time.monotonic()
        result = call_over_session(
            context,
            "batch_review_submit_by_topic",
            {"topic": "deps"},
            alongside=tick,
        )

    assert not result.isError
    assert time.monotonic() - started >= 0.3
    gaps = [later - earlier for earlier, later in zip(ticks, ticks[1:])]
    assert len(ticks) > 10
    assert max(gaps) < 0.2

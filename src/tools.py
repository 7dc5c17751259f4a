"""Tool registry and tool handlers for the Gerrit server."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ValidationError

from src import gerrit_client
from src.batch import (
    CommandRunner,
    download_and_apply_action,
    run_batch,
    run_passthrough,
    sleep_between_steps,
    vote_then_submit_action,
)
from src.gerrit_client import GerritApiError, GerritInputError
from src.output import render_batch_report, render_json, render_processed_line, render_synced_line
from src.schema import (
    BatchReviewSubmitArgs,
    GetChangeDetailArgs,
    ListChangesArgs,
    SetReviewArgs,
    SubmitChangeArgs,
    SyncGerritArgs,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolResponse:
    """Text block returned to the host, flagged when it reports an error."""

    text: str
    is_error: bool = False


@dataclass(slots=True)
class ToolContext:
    """Collaborators shared by every tool call."""

    client: httpx.Client
    sleep: Callable[[float], None] = sleep_between_steps
    command_runner: CommandRunner = run_passthrough


class ToolHandler(Protocol):
    """Protocol for tool implementations."""

    def __call__(self, args: Any, context: ToolContext) -> str:
        """Execute the tool and return its text output."""


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Name, contract and implementation of one tool."""

    name: str
    description: str
    args_model: type[BaseModel]
    handler: ToolHandler
    read_only: bool = False

    @property
    def input_schema(self) -> dict[str, Any]:
        """JSON schema advertised to the host for this tool's arguments."""
        return self.args_model.model_json_schema()


def _list_changes(args: ListChangesArgs, context: ToolContext) -> str:
    changes = gerrit_client.list_changes(client=context.client, query=args.query, limit=args.limit)
    return render_json(changes)


def _get_change_detail(args: GetChangeDetailArgs, context: ToolContext) -> str:
    detail = gerrit_client.fetch_change_detail(
        client=context.client,
        change_id=args.change_id,
        options=args.options,
    )
    return render_json(detail)


def _set_review(args: SetReviewArgs, context: ToolContext) -> str:
    gerrit_client.set_review(
        client=context.client,
        change_id=args.change_id,
        revision_id=args.revision_id,
        message=args.message,
        labels=args.labels,
    )
    return f"Successfully posted review to {args.change_id}"


def _submit_change(args: SubmitChangeArgs, context: ToolContext) -> str:
    body = gerrit_client.submit_change(client=context.client, change_id=args.change_id)
    status = body.get("status", "UNKNOWN") if isinstance(body, dict) else "UNKNOWN"
    return f"Successfully submitted {args.change_id} (status: {status})"


def _batch_review_submit_by_topic(args: BatchReviewSubmitArgs, context: ToolContext) -> str:
    changes = gerrit_client.query_change_refs(client=context.client, query=args.query())
    action = vote_then_submit_action(
        client=context.client,
        labels=args.labels(),
        sleep=context.sleep,
    )
    return render_batch_report(run_batch(changes, action), render_processed_line)


def _sync_gerrit_to_local(args: SyncGerritArgs, context: ToolContext) -> str:
    query = args.query()
    changes = gerrit_client.query_change_refs(client=context.client, query=query)
    action = download_and_apply_action(runner=context.command_runner)
    return render_batch_report(run_batch(changes, action), render_synced_line)


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="list_changes",
        description="List Gerrit changes based on a query",
        args_model=ListChangesArgs,
        handler=_list_changes,
        read_only=True,
    ),
    ToolSpec(
        name="get_change_detail",
        description="Get detailed information about a specific Gerrit change",
        args_model=GetChangeDetailArgs,
        handler=_get_change_detail,
        read_only=True,
    ),
    ToolSpec(
        name="set_review",
        description="Post a review to a Gerrit change",
        args_model=SetReviewArgs,
        handler=_set_review,
    ),
    ToolSpec(
        name="submit_change",
        description="Submit (merge) a Gerrit change",
        args_model=SubmitChangeArgs,
        handler=_submit_change,
    ),
    ToolSpec(
        name="batch_review_submit_by_topic",
        description=(
            "Vote Code-Review/Verified on every open change in a topic, then submit each one"
        ),
        args_model=BatchReviewSubmitArgs,
        handler=_batch_review_submit_by_topic,
    ),
    ToolSpec(
        name="sync_gerrit_to_local",
        description="Sync changes from Gerrit and use 'repo download' to apply them locally",
        args_model=SyncGerritArgs,
        handler=_sync_gerrit_to_local,
    ),
)
TOOLS_BY_NAME: dict[str, ToolSpec] = {tool.name: tool for tool in TOOLS}


def _format_validation_error(error: ValidationError) -> str:
    """Summarize pydantic errors as `field: message` pairs."""
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        parts.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return "Invalid arguments: " + "; ".join(parts)


def dispatch_tool(
    name: str,
    arguments: Mapping[str, Any] | None,
    context: ToolContext,
) -> ToolResponse:
    """Validate arguments, run the named tool and fold failures into an error response."""
    tool = TOOLS_BY_NAME.get(name)
    if tool is None:
        return ToolResponse(text=f"Error: Unknown tool: {name}", is_error=True)

    try:
        args = tool.args_model.model_validate(dict(arguments or {}))
        return ToolResponse(text=tool.handler(args, context))
    except ValidationError as error:
        return ToolResponse(text=f"Error: {_format_validation_error(error)}", is_error=True)
    except GerritInputError as error:
        return ToolResponse(text=f"Error: {error}", is_error=True)
    except GerritApiError as error:
        logger.warning(
            "Tool %s failed: status=%s endpoint=%s", name, error.status_code, error.endpoint
        )
        return ToolResponse(text=f"Error: {error.upstream_message or error}", is_error=True)
    except httpx.HTTPError as error:
        logger.warning("Tool %s failed: network error (%s)", name, error)
        return ToolResponse(text=f"Error: {error}", is_error=True)
    except json.JSONDecodeError as error:
        return ToolResponse(text=f"Error: Invalid JSON in Gerrit response ({error})", is_error=True)

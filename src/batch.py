"""Sequential per-change batch actions with per-item failure isolation."""

from __future__ import annotations

import logging
import subprocess
import sys
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum

import httpx

from src.gerrit_client import ChangeRef, GerritApiError, set_review, submit_change

logger = logging.getLogger(__name__)

BATCH_REVIEW_MESSAGE = "Automated batch review: voting and submitting change by topic."
VOTE_SUBMIT_DELAY_SECONDS = 2.0
REPO_COMMAND = "repo"
NO_CHANGES_MESSAGE = "No changes found."


class ItemStatus(StrEnum):
    """Terminal state of one batch item."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class BatchItemResult:
    """Outcome of running a batch action against one change."""

    change: ChangeRef
    status: ItemStatus
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is ItemStatus.SUCCEEDED


ChangeAction = Callable[[ChangeRef], None]
CommandRunner = Callable[[list[str]], object]

# Failures a single change may raise; anything else is a programming error.
BATCH_ITEM_ERRORS = (
    GerritApiError,
    httpx.HTTPError,
    subprocess.SubprocessError,
    OSError,
    ValueError,
)


def describe_failure(error: Exception) -> str:
    """Prefer Gerrit's own error message over the local exception text."""
    if isinstance(error, GerritApiError) and error.upstream_message:
        return error.upstream_message
    if isinstance(error, subprocess.CalledProcessError):
        return f"Command '{' '.join(error.cmd)}' exited with status {error.returncode}."
    return str(error) or type(error).__name__


def run_batch(changes: Iterable[ChangeRef], action: ChangeAction) -> list[BatchItemResult]:
    """Apply `action` to each change in order, recording one result per change.

    A failing change never stops the batch; its remaining steps are skipped
    and the failure is recorded in place.
    """
    results: list[BatchItemResult] = []
    for change in changes:
        try:
            action(change)
        except BATCH_ITEM_ERRORS as error:
            logger.warning("Batch action failed for change %s: %s", change.number, error)
            results.append(
                BatchItemResult(
                    change=change,
                    status=ItemStatus.FAILED,
                    detail=describe_failure(error),
                )
            )
            continue
        results.append(BatchItemResult(change=change, status=ItemStatus.SUCCEEDED))
    return results


def sleep_between_steps(seconds: float) -> None:
    """Sleep helper for the vote/submit gap (wrapped for deterministic tests)."""
    time.sleep(seconds)


def vote_then_submit_action(
    *,
    client: httpx.Client,
    labels: dict[str, int],
    message: str = BATCH_REVIEW_MESSAGE,
    delay_seconds: float = VOTE_SUBMIT_DELAY_SECONDS,
    sleep: Callable[[float], None] = sleep_between_steps,
) -> ChangeAction:
    """Build an action that votes on the current revision and then submits."""

    def action(change: ChangeRef) -> None:
        change_id = str(change.number)
        set_review(
            client=client,
            change_id=change_id,
            revision_id=change.current_revision,
            message=message,
            labels=labels,
        )
        # Gerrit needs a moment to apply the vote before submit requirements pass.
        sleep(delay_seconds)
        submit_change(client=client, change_id=change_id, wait_for_merge=True)

    return action


def repo_download_command(change: ChangeRef, *, executable: str = REPO_COMMAND) -> list[str]:
    """Build the `repo download` command line for a change's current patchset."""
    return [executable, "download", change.project, f"{change.number}/{change.patchset}"]


def run_passthrough(command: list[str]) -> subprocess.CompletedProcess[bytes]:
    """Run a command with its output streamed live to our stderr.

    stdout and stdin of this process carry the MCP stdio channel, so the child
    must not touch either.
    """
    return subprocess.run(
        command,
        stdin=subprocess.DEVNULL,
        stdout=sys.stderr,
        stderr=sys.stderr,
        check=True,
    )


def download_and_apply_action(
    *,
    runner: CommandRunner = run_passthrough,
    executable: str = REPO_COMMAND,
) -> ChangeAction:
    """Build an action that applies a change locally with `repo download`."""

    def action(change: ChangeRef) -> None:
        command = repo_download_command(change, executable=executable)
        logger.info("Executing: %s", " ".join(command))
        runner(command)

    return action

"""Text rendering for tool responses and batch reports."""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import Any

from src.batch import NO_CHANGES_MESSAGE, BatchItemResult

SUCCESS_MARKER = "✓"
FAILURE_MARKER = "✗"


def render_json(payload: Any) -> str:
    """Pretty-print a decoded Gerrit payload."""
    return json.dumps(payload, indent=2, ensure_ascii=False)


def render_processed_line(result: BatchItemResult) -> str:
    """One report line for a vote-and-submit item."""
    change = result.change
    if result.ok:
        return f"{SUCCESS_MARKER} Processed {change.number}: {change.subject}"
    return f"{FAILURE_MARKER} Failed {change.number}: {result.detail}"


def render_synced_line(result: BatchItemResult) -> str:
    """One report line for a `repo download` item."""
    change = result.change
    if result.ok:
        return (
            f"{SUCCESS_MARKER} Synced {change.number}/{change.patchset} "
            f"in {change.project}: {change.subject}"
        )
    return f"{FAILURE_MARKER} Failed {change.number} in {change.project}: {result.detail}"


def render_batch_report(
    results: Sequence[BatchItemResult],
    render_line: Callable[[BatchItemResult], str],
) -> str:
    """Join per-item lines in processing order."""
    if not results:
        return NO_CHANGES_MESSAGE
    return "\n".join(render_line(result) for result in results)

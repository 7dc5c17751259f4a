"""Argument contracts for the Gerrit tools."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.gerrit_client import DEFAULT_DETAIL_OPTIONS, DEFAULT_LIST_LIMIT, GerritInputError

TOOL_MODEL_CONFIG = ConfigDict(extra="forbid", populate_by_name=True)


class ListChangesArgs(BaseModel):
    """Arguments for `list_changes`."""

    model_config = TOOL_MODEL_CONFIG

    query: str = Field(
        default="status:open",
        min_length=1,
        description="Gerrit query string (e.g., 'status:open owner:self')",
    )
    limit: int = Field(default=DEFAULT_LIST_LIMIT, ge=1, description="Maximum number of results")


class GetChangeDetailArgs(BaseModel):
    """Arguments for `get_change_detail`."""

    model_config = TOOL_MODEL_CONFIG

    change_id: str = Field(
        alias="changeId",
        min_length=1,
        description="The change ID (numeric or triplet ID)",
    )
    options: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DETAIL_OPTIONS),
        description="Gerrit query options to include (e.g., 'CURRENT_REVISION', 'LABELS')",
    )

    @field_validator("options")
    @classmethod
    def normalize_options(cls, value: list[str]) -> list[str]:
        """Upper-case option names and drop blanks."""
        return [option.strip().upper() for option in value if option.strip()]


class SetReviewArgs(BaseModel):
    """Arguments for `set_review`."""

    model_config = TOOL_MODEL_CONFIG

    change_id: str = Field(alias="changeId", min_length=1, description="The change ID")
    revision_id: str = Field(
        default="current",
        alias="revisionId",
        min_length=1,
        description="The revision ID or 'current'",
    )
    message: str | None = Field(default=None, description="The review message")
    labels: dict[str, int] | None = Field(
        default=None,
        description="Review labels (e.g., {'Code-Review': 1, 'Verified': 1})",
    )


class SubmitChangeArgs(BaseModel):
    """Arguments for `submit_change`."""

    model_config = TOOL_MODEL_CONFIG

    change_id: str = Field(alias="changeId", min_length=1, description="The change ID")


class BatchReviewSubmitArgs(BaseModel):
    """Arguments for `batch_review_submit_by_topic`."""

    model_config = TOOL_MODEL_CONFIG

    topic: str = Field(min_length=1, description="The Gerrit topic whose open changes to merge")
    code_review: int = Field(
        default=2,
        alias="codeReview",
        description="Code-Review vote to apply to each change",
    )
    verified: int = Field(default=1, description="Verified vote to apply to each change")

    def labels(self) -> dict[str, int]:
        return {"Code-Review": self.code_review, "Verified": self.verified}

    def query(self) -> str:
        return f'topic:"{self.topic}" status:open'


class SyncGerritArgs(BaseModel):
    """Arguments for `sync_gerrit_to_local`."""

    model_config = TOOL_MODEL_CONFIG

    topic: str | None = Field(default=None, description="The Gerrit topic to sync")
    change_id: str | None = Field(
        default=None,
        alias="changeId",
        description="The specific Change ID or number to sync",
    )

    def query(self) -> str:
        """Resolve the selector into a Gerrit query; topic wins over change ID."""
        topic = (self.topic or "").strip()
        if topic:
            return f'topic:"{topic}"'
        change_id = (self.change_id or "").strip()
        if change_id:
            return change_id
        raise GerritInputError("Either topic or changeId must be provided")

"""Gerrit REST API wrapper and connection configuration."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

XSSI_PREFIX = ")]}'"
AUTHENTICATED_PATH_PREFIX = "/a"
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_LIST_LIMIT = 10
DEFAULT_DETAIL_OPTIONS = ("CURRENT_REVISION", "CURRENT_COMMIT", "LABELS")
GERRIT_HOST_ENV_VAR = "GERRIT_HOST"
GERRIT_USER_ENV_VAR = "GERRIT_USER"
GERRIT_PASSWORD_ENV_VAR = "GERRIT_PASSWORD"


class GerritConfigError(RuntimeError):
    """Raised when required Gerrit connection settings are missing."""


class GerritInputError(ValueError):
    """Raised when change selectors or identifiers are invalid."""


class GerritApiError(RuntimeError):
    """Raised when a Gerrit API request fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        endpoint: str,
        upstream_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint
        self.upstream_message = upstream_message


@dataclass(frozen=True, slots=True)
class GerritConfig:
    """Connection settings resolved once at process start."""

    host: str
    username: str
    password: str

    @property
    def api_base_url(self) -> str:
        """Base URL for authenticated REST requests."""
        return f"{self.host.rstrip('/')}{AUTHENTICATED_PATH_PREFIX}"


@dataclass(frozen=True, slots=True)
class ChangeRef:
    """Change snapshot fields needed to act on its current patchset."""

    number: int
    project: str
    subject: str
    current_revision: str
    patchset: int


def parse_gerrit_response(data: Any) -> Any:
    """Strip the anti-XSSI prefix from a Gerrit body and decode the JSON remainder.

    Anything that is not a string starting with the prefix is returned as-is.
    """
    if isinstance(data, str) and data.startswith(XSSI_PREFIX):
        return json.loads(data[len(XSSI_PREFIX) :])
    return data


def encode_change_id(change_id: str) -> str:
    """Percent-encode a change identifier for use as one path segment."""
    normalized = change_id.strip()
    if not normalized:
        raise GerritInputError("Invalid change ID ''. Expected a number, Change-Id or triplet.")
    return quote(normalized, safe="~")


def _upstream_error_message(response: httpx.Response) -> str | None:
    """Extract Gerrit's own explanation from an error response body."""
    payload = parse_gerrit_response(response.text)
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
        return None
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return None


def _raise_http_error(response: httpx.Response, endpoint: str) -> None:
    """Raise a typed error for a non-success Gerrit API response."""
    upstream_message = _upstream_error_message(response)
    message = upstream_message or (
        f"Gerrit API request failed with status {response.status_code} for '{endpoint}'."
    )
    raise GerritApiError(
        message,
        status_code=response.status_code,
        endpoint=endpoint,
        upstream_message=upstream_message,
    )


def _request(
    client: httpx.Client,
    method: str,
    endpoint: str,
    *,
    params: dict[str, Any] | None = None,
    payload: dict[str, Any] | None = None,
) -> Any:
    """Perform one Gerrit request and return the unwrapped response body."""
    logger.debug("Gerrit %s %s params=%s", method, endpoint, params)
    response = client.request(method, endpoint, params=params, json=payload)
    if response.status_code >= 400:
        _raise_http_error(response, endpoint)
    return parse_gerrit_response(response.text)


def _ensure_list(value: object, *, endpoint: str) -> list[dict[str, Any]]:
    """Ensure a response body is a JSON array of objects."""
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise GerritApiError(
            "Expected JSON array of objects in Gerrit response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_str(payload: dict[str, Any], *, key: str, endpoint: str) -> str:
    """Read a required string field from payload."""
    value = payload.get(key)
    if not isinstance(value, str):
        raise GerritApiError(
            f"Expected string field '{key}' in Gerrit response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_int(payload: dict[str, Any], *, key: str, endpoint: str) -> int:
    """Read a required integer field from payload."""
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise GerritApiError(
            f"Expected integer field '{key}' in Gerrit response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def change_ref_from_payload(payload: dict[str, Any], *, endpoint: str) -> ChangeRef:
    """Build a ChangeRef from a ChangeInfo queried with CURRENT_REVISION."""
    current_revision = _require_str(payload, key="current_revision", endpoint=endpoint)
    revisions = payload.get("revisions")
    revision = revisions.get(current_revision) if isinstance(revisions, dict) else None
    if not isinstance(revision, dict):
        raise GerritApiError(
            f"Missing revision '{current_revision}' in Gerrit response.",
            status_code=500,
            endpoint=endpoint,
        )
    return ChangeRef(
        number=_require_int(payload, key="_number", endpoint=endpoint),
        project=_require_str(payload, key="project", endpoint=endpoint),
        subject=_require_str(payload, key="subject", endpoint=endpoint),
        current_revision=current_revision,
        patchset=_require_int(revision, key="_number", endpoint=endpoint),
    )


def list_changes(
    *,
    client: httpx.Client,
    query: str = "status:open",
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[dict[str, Any]]:
    """List changes matching a Gerrit search query."""
    endpoint = "/changes/"
    body = _request(client, "GET", endpoint, params={"q": query, "n": limit})
    return _ensure_list(body, endpoint=endpoint)


def fetch_change_detail(
    *,
    client: httpx.Client,
    change_id: str,
    options: tuple[str, ...] | list[str] = DEFAULT_DETAIL_OPTIONS,
) -> Any:
    """Fetch the detail view of one change."""
    endpoint = f"/changes/{encode_change_id(change_id)}/detail"
    return _request(client, "GET", endpoint, params={"o": list(options)})


def query_change_refs(*, client: httpx.Client, query: str) -> tuple[ChangeRef, ...]:
    """Resolve a query to change snapshots, preserving Gerrit's result order."""
    endpoint = "/changes/"
    body = _request(client, "GET", endpoint, params={"q": query, "o": ["CURRENT_REVISION"]})
    rows = _ensure_list(body, endpoint=endpoint)
    return tuple(change_ref_from_payload(row, endpoint=endpoint) for row in rows)


def set_review(
    *,
    client: httpx.Client,
    change_id: str,
    revision_id: str = "current",
    message: str | None = None,
    labels: dict[str, int] | None = None,
) -> Any:
    """Post a review (message and label votes) to one revision of a change."""
    endpoint = (
        f"/changes/{encode_change_id(change_id)}"
        f"/revisions/{quote(revision_id.strip() or 'current', safe='')}/review"
    )
    payload: dict[str, Any] = {}
    if message is not None:
        payload["message"] = message
    if labels:
        payload["labels"] = dict(labels)
    return _request(client, "POST", endpoint, payload=payload)


def submit_change(*, client: httpx.Client, change_id: str, wait_for_merge: bool = True) -> Any:
    """Ask Gerrit to merge a change into its target branch."""
    endpoint = f"/changes/{encode_change_id(change_id)}/submit"
    return _request(client, "POST", endpoint, payload={"wait_for_merge": wait_for_merge})


def fetch_account_self(*, client: httpx.Client) -> dict[str, Any]:
    """Fetch the authenticated account for credential validation."""
    endpoint = "/accounts/self"
    body = _request(client, "GET", endpoint)
    if not isinstance(body, dict):
        raise GerritApiError(
            "Expected JSON object for account in Gerrit response.",
            status_code=500,
            endpoint=endpoint,
        )
    return body


def load_gerrit_config() -> GerritConfig:
    """Read connection settings from the environment and fail fast if incomplete."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    values = {
        name: os.getenv(name, "").strip()
        for name in (GERRIT_HOST_ENV_VAR, GERRIT_USER_ENV_VAR, GERRIT_PASSWORD_ENV_VAR)
    }
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise GerritConfigError(
            "Missing required environment variables: " + ", ".join(missing)
        )
    return GerritConfig(
        host=values[GERRIT_HOST_ENV_VAR],
        username=values[GERRIT_USER_ENV_VAR],
        password=values[GERRIT_PASSWORD_ENV_VAR],
    )


def build_gerrit_client(
    config: GerritConfig,
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    *,
    trust_env: bool = True,
) -> httpx.Client:
    """Build an authenticated Gerrit HTTP client."""
    return httpx.Client(
        base_url=config.api_base_url,
        auth=httpx.BasicAuth(config.username, config.password),
        headers={"Accept": "application/json"},
        timeout=timeout_seconds,
        trust_env=trust_env,
    )

"""Shared pytest fixtures and test-run configuration."""

from __future__ import annotations

import json
import os
from collections.abc import Callable

import httpx
import pytest

GERRIT_TEST_BASE_URL = "https://gerrit.example.org/a"

Route = Callable[[httpx.Request], httpx.Response]


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom pytest options for integration test execution."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (live Gerrit server).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly enabled."""
    run_integration = config.getoption("--run-integration")
    env_enabled = os.getenv("RUN_INTEGRATION_TESTS") == "1"
    if run_integration or env_enabled:
        return

    skip_marker = pytest.mark.skip(
        reason=(
            "Integration tests are disabled by default. "
            "Use --run-integration or set RUN_INTEGRATION_TESTS=1."
        )
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_marker)


def gerrit_response(payload: object, *, status_code: int = 200) -> httpx.Response:
    """Build a response body the way Gerrit serves JSON, XSSI prefix included."""
    return httpx.Response(status_code=status_code, text=")]}'\n" + json.dumps(payload))


def change_payload(number: int, subject: str, *, project: str = "platform/build") -> dict:
    """Minimal ChangeInfo as returned with o=CURRENT_REVISION."""
    revision = f"rev{number}"
    return {
        "_number": number,
        "project": project,
        "subject": subject,
        "status": "NEW",
        "current_revision": revision,
        "revisions": {revision: {"_number": 3, "ref": f"refs/changes/{number}/3"}},
    }


class FakeGerrit:
    """Routes requests by (method, path) and records everything it receives."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Route] = {}

    def route(self, method: str, path: str, route: Route) -> None:
        self._routes[(method, path)] = route

    def reply(self, method: str, path: str, payload: object, *, status_code: int = 200) -> None:
        self.route(method, path, lambda request: gerrit_response(payload, status_code=status_code))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self._routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(status_code=404, text=f"Not found: {request.url.path}")
        return route(request)

    def client(self) -> httpx.Client:
        transport = httpx.MockTransport(self.handler)
        return httpx.Client(base_url=GERRIT_TEST_BASE_URL, transport=transport)

    @property
    def mutating_requests(self) -> list[httpx.Request]:
        return [request for request in self.requests if request.method != "GET"]

    def paths(self, method: str) -> list[str]:
        return [request.url.path for request in self.requests if request.method == method]


@pytest.fixture
def fake_gerrit() -> FakeGerrit:
    return FakeGerrit()

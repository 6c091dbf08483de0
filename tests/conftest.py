"""Shared test fixtures."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

VALID_TOKEN = "ghp_" + "a" * 36


@pytest.fixture(autouse=True)
def _env_setup(monkeypatch):
    """Set required environment variables for tests."""
    monkeypatch.setenv("GITHUB_TOKEN", VALID_TOKEN)
    monkeypatch.setenv("GITHUB_ORG", "acme")
    monkeypatch.setenv("NEO4J_URI", "bolt://localhost:7687")
    monkeypatch.setenv("NEO4J_USER", "neo4j")
    monkeypatch.setenv("NEO4J_PASSWORD", "test")
    monkeypatch.setenv("NEO4J_DATABASE", "neo4j")
    monkeypatch.setenv("LOG_FORMAT", "console")


@pytest.fixture
def settings():
    from ownergraph.config import Settings

    return Settings(_env_file=None)


# ── GitHub GraphQL payloads ──────────────────────────────────────────


def repo_node(
    name: str,
    *,
    owner: str = "acme",
    codeowners: str | None = None,
    github_codeowners: str | None = None,
    docs_codeowners: str | None = None,
    branch: str | None = "main",
) -> dict[str, Any]:
    def blob(text: str | None) -> dict[str, str] | None:
        return {"text": text} if text is not None else None

    return {
        "name": name,
        "nameWithOwner": f"{owner}/{name}",
        "defaultBranchRef": {"name": branch} if branch else None,
        "codeowners": blob(codeowners),
        "githubCodeowners": blob(github_codeowners),
        "docsCodeowners": blob(docs_codeowners),
    }


def team_node(name: str, *, slug: str | None = None, members: int = 3, database_id: int = 1) -> dict[str, Any]:
    return {
        "id": f"T_{name}",
        "databaseId": database_id,
        "name": name,
        "slug": slug or name.lower().replace(" ", "-"),
        "description": f"{name} team",
        "privacy": "VISIBLE",
        "members": {"totalCount": members},
    }


def org_page(
    repos: list[dict[str, Any]] | None = None,
    teams: list[dict[str, Any]] | None = None,
    *,
    repos_cursor: str | None = None,
    teams_cursor: str | None = None,
) -> dict[str, Any]:
    """``data`` object for one combined organization round-trip."""
    return {
        "organization": {
            "repositories": {
                "pageInfo": {"hasNextPage": repos_cursor is not None, "endCursor": repos_cursor},
                "nodes": repos or [],
            },
            "teams": {
                "pageInfo": {"hasNextPage": teams_cursor is not None, "endCursor": teams_cursor},
                "nodes": teams or [],
            },
        }
    }


class GraphQLRecorder:
    """httpx transport handler that serves queued responses and records requests."""

    def __init__(self, responses: list[httpx.Response | Callable[[httpx.Request], httpx.Response]]):
        self._responses = list(responses)
        self.requests: list[dict[str, Any]] = []
        self.headers: list[httpx.Headers] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        self.headers.append(request.headers)
        if not self._responses:
            raise AssertionError("unexpected extra GraphQL request")
        response = self._responses.pop(0)
        if callable(response):
            return response(request)
        return response

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def data_response(data: dict[str, Any]) -> httpx.Response:
    return httpx.Response(200, json={"data": data})


# ── In-memory Neo4j doubles ──────────────────────────────────────────


class FakeResult:
    def __init__(self, records: list[dict[str, Any]]):
        self._records = list(records)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for record in self._records:
            yield record

    async def single(self):
        return self._records[0] if self._records else None

    async def consume(self):
        return None


class FakeGraph:
    """Stands in for the database: statements become visible only once committed.

    ``rows`` maps a query substring to the rows it returns; ``fail_on`` makes
    any statement containing that substring raise ``failure``.
    """

    def __init__(self) -> None:
        self.committed: list[tuple[str, dict[str, Any]]] = []
        self.rows: dict[str, list[dict[str, Any]]] = {"RETURN 1 AS ok": [{"ok": 1}]}
        self.fail_on: str | None = None
        self.failure: Exception = RuntimeError("statement failed")
        self.transactions: list[FakeTransaction] = []
        self.access_modes: list[str] = []

    def execute(self, query: str, parameters: dict[str, Any] | None) -> FakeResult:
        if self.fail_on and self.fail_on in query:
            raise self.failure
        for fragment, rows in self.rows.items():
            if fragment in query:
                return FakeResult(rows)
        return FakeResult([])


class FakeTransaction:
    def __init__(self, graph: FakeGraph) -> None:
        self._graph = graph
        self.pending: list[tuple[str, dict[str, Any]]] = []
        self.committed = False
        self.rolled_back = False

    async def run(self, query: str, parameters: dict[str, Any] | None = None) -> FakeResult:
        result = self._graph.execute(query, parameters)
        self.pending.append((query, dict(parameters or {})))
        return result

    async def commit(self) -> None:
        self._graph.committed.extend(self.pending)
        self.pending = []
        self.committed = True

    async def rollback(self) -> None:
        self.pending = []
        self.rolled_back = True


class FakeSession:
    def __init__(self, graph: FakeGraph) -> None:
        self._graph = graph

    async def __aenter__(self) -> FakeSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def run(self, query: str, parameters: dict[str, Any] | None = None) -> FakeResult:
        result = self._graph.execute(query, parameters)
        self._graph.committed.append((query, dict(parameters or {})))
        return result

    async def begin_transaction(self) -> FakeTransaction:
        tx = FakeTransaction(self._graph)
        self._graph.transactions.append(tx)
        return tx


class FakeDriver:
    def __init__(self, graph: FakeGraph) -> None:
        self.graph = graph
        self.closed = False

    def session(self, **kwargs: Any) -> FakeSession:
        self.graph.access_modes.append(kwargs.get("default_access_mode"))
        return FakeSession(self.graph)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def neo4j_conn(settings, fake_graph):
    from ownergraph.graph_db.connection import Neo4jConnection

    conn = Neo4jConnection(settings)
    conn._driver = FakeDriver(fake_graph)
    return conn

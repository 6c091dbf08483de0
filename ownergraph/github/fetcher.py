"""Bounded, paginated retrieval of an organization's repositories and teams.

One round-trip carries both pagination cursors, so repositories and teams
advance together. The loop stops when both streams are drained or when the
round-trip ceiling is reached, whichever comes first.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Any, Iterable, Protocol

from ownergraph.github.models import BatchRequest, MAX_PAGE_SIZE, OrgData, PageInfo, Repository, Team
from ownergraph.github.normalizer import extract_page, normalize_repository, normalize_team
from ownergraph.github.queries import build_org_query, build_org_variables
from ownergraph.utils.exceptions import (
    ContractViolation,
    ExternalServiceError,
    InputValidationError,
    OwnerGraphError,
    external_service_error,
    log_error,
    required_field_error,
    timeout_error,
)
from ownergraph.utils.logging import get_logger

logger = get_logger(__name__)

MAX_ROUND_TRIPS = 50


class GraphQLExecutor(Protocol):
    async def execute(
        self, query: str, variables: dict[str, Any] | None = None, *, timeout: float | None = None
    ) -> dict[str, Any]: ...


def validate_batch_request(request: BatchRequest) -> None:
    if not request.organization:
        raise required_field_error("organization")
    if not request.organization.strip():
        raise InputValidationError("organization", "cannot be empty or whitespace")
    if request.max_repos < 0:
        raise InputValidationError("max_repos", "cannot be negative")
    if request.max_teams < 0:
        raise InputValidationError("max_teams", "cannot be negative")
    for name in ("repos_page_size", "teams_page_size"):
        size = getattr(request, name)
        if not 1 <= size <= MAX_PAGE_SIZE:
            raise InputValidationError(name, f"must be between 1 and {MAX_PAGE_SIZE}")


def estimate_round_trips(repo_count: int, team_count: int, page_size: int = MAX_PAGE_SIZE) -> int:
    """Round-trips needed for an organization of the given size (both streams share calls)."""
    if repo_count < 0 or team_count < 0:
        raise ContractViolation("counts cannot be negative")
    if page_size <= 0:
        raise ContractViolation("page size must be positive")
    repo_calls = -(-repo_count // page_size)
    team_calls = -(-team_count // page_size)
    return max(repo_calls, team_calls, 1)


@dataclass(frozen=True)
class PaginationState:
    repos_cursor: str | None = None
    teams_cursor: str | None = None
    has_more_repos: bool = True
    has_more_teams: bool = True
    round_trips: int = 0

    @property
    def done(self) -> bool:
        return not (self.has_more_repos or self.has_more_teams)

    def can_continue(self, ceiling: int = MAX_ROUND_TRIPS) -> bool:
        return not self.done and self.round_trips < ceiling


def _next_stream(
    has_more: bool,
    cursor: str | None,
    page: PageInfo | None,
    collected: int,
    limit: int,
    satisfied: bool,
) -> tuple[bool, str | None]:
    if not has_more or page is None:
        return has_more, cursor
    if not page.has_next_page or page.end_cursor is None:
        return False, cursor
    if (limit > 0 and collected >= limit) or satisfied:
        return False, cursor
    return True, page.end_cursor


def advance_state(
    state: PaginationState,
    *,
    repo_page: PageInfo | None,
    team_page: PageInfo | None,
    repos_collected: int,
    teams_collected: int,
    request: BatchRequest,
    repos_satisfied: bool = False,
    teams_satisfied: bool = False,
) -> PaginationState:
    """State after one successful round-trip.

    A ``None`` page means that stream was not drained this round. A page that
    claims more data but carries no cursor ends its stream rather than
    re-requesting the same page.
    """
    has_more_repos, repos_cursor = _next_stream(
        state.has_more_repos,
        state.repos_cursor,
        repo_page,
        repos_collected,
        request.max_repos,
        repos_satisfied,
    )
    has_more_teams, teams_cursor = _next_stream(
        state.has_more_teams,
        state.teams_cursor,
        team_page,
        teams_collected,
        request.max_teams,
        teams_satisfied,
    )
    return replace(
        state,
        repos_cursor=repos_cursor,
        teams_cursor=teams_cursor,
        has_more_repos=has_more_repos,
        has_more_teams=has_more_teams,
        round_trips=state.round_trips + 1,
    )


class _NameFilter:
    """Restricts a stream to explicitly requested names; empty means accept all."""

    def __init__(self, names: Iterable[str]) -> None:
        self._wanted = {n for n in names if n}
        self._found: set[str] = set()

    def accepts(self, *keys: str) -> bool:
        if not self._wanted:
            return True
        hits = self._wanted.intersection(k for k in keys if k)
        self._found.update(hits)
        return bool(hits)

    @property
    def satisfied(self) -> bool:
        return bool(self._wanted) and self._found >= self._wanted


class BatchFetcher:
    """Drives the combined repositories/teams pagination against GitHub."""

    def __init__(self, client: GraphQLExecutor, *, max_round_trips: int = MAX_ROUND_TRIPS) -> None:
        self._client = client
        self._ceiling = max(1, min(max_round_trips, MAX_ROUND_TRIPS))

    async def fetch(self, request: BatchRequest, *, timeout: float | None = None) -> OrgData:
        validate_batch_request(request)
        if timeout is None:
            return await self._fetch(request)
        try:
            return await asyncio.wait_for(self._fetch(request), timeout)
        except asyncio.TimeoutError as exc:
            raise timeout_error(f"fetch organization '{request.organization}'", timeout) from exc

    async def _fetch(self, request: BatchRequest) -> OrgData:
        query = build_org_query(request)
        repo_filter = _NameFilter(request.repositories)
        team_filter = _NameFilter(request.teams)
        repos: list[Repository] = []
        teams: list[Team] = []
        state = PaginationState()

        while state.can_continue(self._ceiling):
            variables = build_org_variables(
                request.organization,
                state.repos_cursor if state.has_more_repos else None,
                state.teams_cursor if state.has_more_teams else None,
                fetch_repos=state.has_more_repos,
                fetch_teams=state.has_more_teams,
            )
            org = await self._round_trip(request.organization, query, variables)

            repo_page: PageInfo | None = None
            team_page: PageInfo | None = None

            if state.has_more_repos:
                records, repo_page = extract_page(org, "repositories")
                for record in records:
                    repo = normalize_repository(record)
                    if repo_filter.accepts(repo.name, repo.full_name):
                        repos.append(repo)

            if state.has_more_teams:
                records, team_page = extract_page(org, "teams")
                for record in records:
                    team = normalize_team(record)
                    if team_filter.accepts(team.name, team.slug):
                        teams.append(team)

            state = advance_state(
                state,
                repo_page=repo_page,
                team_page=team_page,
                repos_collected=len(repos),
                teams_collected=len(teams),
                request=request,
                repos_satisfied=repo_filter.satisfied,
                teams_satisfied=team_filter.satisfied,
            )
            logger.debug(
                "org_page_fetched",
                organization=request.organization,
                round_trip=state.round_trips,
                repos=len(repos),
                teams=len(teams),
            )

        truncated = not state.done
        if truncated:
            logger.warning(
                "org_fetch_truncated",
                organization=request.organization,
                api_calls=state.round_trips,
                has_more_repos=state.has_more_repos,
                has_more_teams=state.has_more_teams,
            )

        if request.max_repos > 0:
            repos = repos[: request.max_repos]
        if request.max_teams > 0:
            teams = teams[: request.max_teams]

        logger.info(
            "org_fetch_complete",
            organization=request.organization,
            repos=len(repos),
            teams=len(teams),
            api_calls=state.round_trips,
        )
        return OrgData(
            organization=request.organization,
            repos=repos,
            teams=teams,
            api_call_count=state.round_trips,
            truncated=truncated,
        )

    async def _round_trip(
        self, organization: str, query: str, variables: dict[str, Any]
    ) -> dict[str, Any]:
        try:
            data = await self._client.execute(query, variables)
        except OwnerGraphError as exc:
            log_error(logger, "org_fetch_failed", exc)
            raise
        except ContractViolation:
            raise
        except Exception as exc:
            err = external_service_error("github", f"fetch organization '{organization}'", exc)
            log_error(logger, "org_fetch_failed", err)
            raise err from exc

        org = data.get("organization") if isinstance(data, dict) else None
        if not isinstance(org, dict):
            raise ExternalServiceError(
                f"Organization '{organization}' not found in response",
                code="ORGANIZATION_NOT_FOUND",
            )
        return org

"""Organization scan orchestration: fetch, summarize, save and persist."""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from ownergraph.config import ScanConfig, Settings, mask_token
from ownergraph.github.client import GitHubGraphQLClient
from ownergraph.github.codeowners import (
    extract_unique_owners,
    is_team_owner,
    parse_codeowners,
    pattern_coverage,
    team_slug,
    user_login,
)
from ownergraph.github.fetcher import MAX_ROUND_TRIPS, BatchFetcher, estimate_round_trips
from ownergraph.github.models import MAX_PAGE_SIZE, BatchRequest, OrgData, ScanSummary
from ownergraph.graph_db.models import BatchOperation, BatchReport
from ownergraph.graph_db.queries import (
    MERGE_ORGANIZATION,
    MERGE_OWNER_TEAM,
    MERGE_REPOSITORY,
    MERGE_TEAM,
    MERGE_TEAM_CODEOWNER,
    MERGE_USER,
    MERGE_USER_CODEOWNER,
)
from ownergraph.graph_db.store import GraphStore
from ownergraph.utils.exceptions import (
    InternalError,
    OwnerGraphError,
    RecoveryStrategy,
    configuration_error,
    log_error,
    with_context,
)
from ownergraph.utils.logging import bind_scan_context, clear_scan_context, get_logger
from ownergraph.utils.retry import call_with_retry

logger = get_logger(__name__)

ClientFactory = Callable[[str], GitHubGraphQLClient]


class ScanResult(BaseModel):
    success: bool
    organization: str
    summary: ScanSummary | None = None
    data: OrgData | None = None
    graph_report: BatchReport | None = None
    output_file: str = ""
    error: dict[str, Any] | None = None
    duration_seconds: float = 0.0


def build_summary(data: OrgData) -> ScanSummary:
    entries = []
    with_codeowners = 0
    for repo in data.repos:
        if repo.has_codeowners_file:
            with_codeowners += 1
        entries.extend(parse_codeowners(repo.codeowners_content))
    return ScanSummary(
        total_repos=len(data.repos),
        repos_with_codeowners=with_codeowners,
        total_teams=len(data.teams),
        unique_owners=extract_unique_owners(entries),
        api_calls_used=data.api_call_count,
        truncated=data.truncated,
        pattern_coverage=pattern_coverage(data.repos),
    )


def save_scan_output(path: str, data: OrgData, summary: ScanSummary) -> Path:
    target = Path(path)
    payload = {
        "organization": data.organization,
        "summary": summary.model_dump(),
        "repositories": [r.model_dump() for r in data.repos],
        "teams": [t.model_dump() for t in data.teams],
    }
    try:
        if target.parent != Path("."):
            target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(payload, indent=2))
    except OSError as exc:
        raise InternalError(
            f"Failed to write scan output to {path}",
            code="OUTPUT_WRITE_FAILED",
            details=str(exc),
        ) from exc
    logger.info("scan_output_saved", path=str(target))
    return target


class OrgGraphWriter:
    """Persists :class:`OrgData` as an ownership graph.

    Writes happen in three phases so nothing MATCHes a node a concurrent
    batch has yet to create: the organization, then repositories, teams and
    owners, then codeowner edges.
    """

    def __init__(self, store: GraphStore, *, batch_size: int = 100, max_concurrency: int = 4) -> None:
        self._store = store
        self._batch_size = batch_size
        self._max_concurrency = max_concurrency

    @staticmethod
    def entity_operations(data: OrgData) -> list[BatchOperation]:
        org = data.organization
        ops: list[BatchOperation] = []
        team_slugs: set[str] = set()

        for repo in data.repos:
            ops.append(
                BatchOperation(
                    type="repository",
                    query=MERGE_REPOSITORY,
                    parameters={
                        "full_name": repo.full_name or f"{org}/{repo.name}",
                        "name": repo.name,
                        "org_login": org,
                        "default_branch": repo.default_branch,
                        "has_codeowners_file": repo.has_codeowners_file,
                        "codeowners_content": repo.codeowners_content,
                        "codeowners_paths": list(repo.codeowners_paths),
                    },
                )
            )

        for team in data.teams:
            slug = team.slug or team.name
            team_slugs.add(slug)
            ops.append(
                BatchOperation(
                    type="team",
                    query=MERGE_TEAM,
                    parameters={
                        "slug": slug,
                        "id": team.id,
                        "node_id": team.node_id,
                        "name": team.name,
                        "org_login": org,
                        "description": team.description,
                        "privacy": team.privacy,
                        "member_count": team.member_count,
                    },
                )
            )

        users: dict[str, None] = {}
        owner_teams: dict[str, None] = {}
        for repo in data.repos:
            for owner in extract_unique_owners(parse_codeowners(repo.codeowners_content)):
                if is_team_owner(owner):
                    slug = team_slug(owner)
                    if slug not in team_slugs:
                        owner_teams.setdefault(slug, None)
                else:
                    users.setdefault(user_login(owner), None)

        ops.extend(
            BatchOperation(type="owner_team", query=MERGE_OWNER_TEAM, parameters={"slug": slug})
            for slug in owner_teams
        )
        ops.extend(
            BatchOperation(type="user", query=MERGE_USER, parameters={"login": login})
            for login in users
        )
        return ops

    @staticmethod
    def codeowner_operations(data: OrgData) -> list[BatchOperation]:
        ops: list[BatchOperation] = []
        seen: set[tuple[str, str, str]] = set()
        for repo in data.repos:
            full_name = repo.full_name or f"{data.organization}/{repo.name}"
            for entry in parse_codeowners(repo.codeowners_content):
                for owner in entry.owners:
                    key = (full_name, entry.pattern, owner)
                    if key in seen:
                        continue
                    seen.add(key)
                    params = {"repo_full_name": full_name, "pattern": entry.pattern, "line": entry.line}
                    if is_team_owner(owner):
                        ops.append(
                            BatchOperation(
                                type="team_codeowner",
                                query=MERGE_TEAM_CODEOWNER,
                                parameters={**params, "team_slug": team_slug(owner)},
                            )
                        )
                    else:
                        ops.append(
                            BatchOperation(
                                type="user_codeowner",
                                query=MERGE_USER_CODEOWNER,
                                parameters={**params, "owner_login": user_login(owner)},
                            )
                        )
        return ops

    async def write(self, data: OrgData) -> BatchReport:
        org_op = BatchOperation(
            type="organization", query=MERGE_ORGANIZATION, parameters={"login": data.organization}
        )
        await self._store.execute_batch([org_op])

        report = BatchReport(total_batches=1, successful_batches=1, operations_applied=1)
        for phase in (self.entity_operations(data), self.codeowner_operations(data)):
            result = await self._store.execute_batches(
                phase, batch_size=self._batch_size, max_concurrency=self._max_concurrency
            )
            report.total_batches += result.total_batches
            report.successful_batches += result.successful_batches
            report.failed_batches += result.failed_batches
            report.operations_applied += result.operations_applied
            report.errors.extend(result.errors)

        logger.info(
            "org_graph_written",
            organization=data.organization,
            operations=report.operations_applied,
            failed_batches=report.failed_batches,
        )
        return report


class ScanService:
    """Runs one organization scan end to end."""

    def __init__(
        self,
        settings: Settings,
        *,
        client_factory: ClientFactory | None = None,
        graph_writer: OrgGraphWriter | None = None,
        strategy: RecoveryStrategy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory or self._default_client
        self._writer = graph_writer
        self._strategy = strategy or settings.recovery_strategy()
        self._sleep = sleep

    def _default_client(self, token: str) -> GitHubGraphQLClient:
        return GitHubGraphQLClient(
            token, url=self._settings.GITHUB_GRAPHQL_URL, timeout=self._settings.GITHUB_TIMEOUT
        )

    async def fetch(self, config: ScanConfig) -> OrgData:
        request = BatchRequest(
            organization=config.organization,
            max_repos=config.max_repos,
            max_teams=config.max_teams,
        )
        async with self._client_factory(config.token) as client:
            fetcher = BatchFetcher(client)
            return await call_with_retry(
                lambda: fetcher.fetch(request, timeout=self._settings.GITHUB_FETCH_TIMEOUT or None),
                self._strategy,
                sleep=self._sleep,
            )

    async def scan(self, config: ScanConfig, *, persist: bool = False) -> ScanResult:
        scan_id = uuid.uuid4().hex[:12]
        bind_scan_context(scan_id=scan_id, organization=config.organization)
        started = time.monotonic()
        # maxima of 0 mean unlimited, so the estimate is a floor
        estimated = estimate_round_trips(config.max_repos, config.max_teams, MAX_PAGE_SIZE)
        logger.info(
            "scan_started",
            token=mask_token(config.token),
            max_repos=config.max_repos,
            max_teams=config.max_teams,
            estimated_calls=estimated,
            persist=persist,
        )
        if estimated > MAX_ROUND_TRIPS:
            logger.warning("scan_estimate_exceeds_ceiling", estimated_calls=estimated, ceiling=MAX_ROUND_TRIPS)
        try:
            return await self._scan(config, persist, started)
        finally:
            clear_scan_context()

    async def _scan(self, config: ScanConfig, persist: bool, started: float) -> ScanResult:
        try:
            data = await self.fetch(config)
            summary = build_summary(data)
            output_file = ""
            if config.output_file:
                output_file = str(save_scan_output(config.output_file, data, summary))

            report = None
            if persist:
                if self._writer is None:
                    raise configuration_error(
                        "graph_writer", "persistence requested but no graph writer is configured"
                    )
                report = await self._writer.write(data)
        except OwnerGraphError as exc:
            err = with_context(exc, "scan_service", "scan")
            log_error(logger, "scan_failed", err)
            return ScanResult(
                success=False,
                organization=config.organization,
                error=err.to_dict(),
                duration_seconds=time.monotonic() - started,
            )

        error = None
        if report is not None and not report.ok:
            error = {
                "code": "GRAPH_WRITE_INCOMPLETE",
                "message": f"{report.failed_batches} of {report.total_batches} batches failed",
                "batches": report.errors,
            }
            logger.error("scan_graph_write_incomplete", failed_batches=report.failed_batches)

        duration = time.monotonic() - started
        logger.info(
            "scan_complete",
            repos=summary.total_repos,
            repos_with_codeowners=summary.repos_with_codeowners,
            teams=summary.total_teams,
            owners=len(summary.unique_owners),
            api_calls=summary.api_calls_used,
            truncated=summary.truncated,
            duration_seconds=round(duration, 2),
        )
        return ScanResult(
            success=error is None,
            organization=config.organization,
            summary=summary,
            data=data,
            graph_report=report,
            output_file=output_file,
            error=error,
            duration_seconds=duration,
        )

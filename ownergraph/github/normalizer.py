"""Convert raw GraphQL records into Repository / Team values."""

from __future__ import annotations

from typing import Any, Literal

from ownergraph.github.models import PageInfo, Repository, Team
from ownergraph.utils.exceptions import require

# (response field, repository path) in lookup priority order.
CODEOWNERS_LOCATIONS: tuple[tuple[str, str], ...] = (
    ("codeowners", "CODEOWNERS"),
    ("githubCodeowners", ".github/CODEOWNERS"),
    ("docsCodeowners", "docs/CODEOWNERS"),
)

DEFAULT_BRANCH = "main"


def _string_field(data: Any, key: str) -> str:
    if not isinstance(data, dict):
        return ""
    value = data.get(key)
    return value if isinstance(value, str) else ""


def _int_field(data: Any, key: str) -> int:
    if not isinstance(data, dict):
        return 0
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _blob_text(repo: dict[str, Any], key: str) -> str:
    return _string_field(repo.get(key), "text")


def normalize_repository(raw: dict[str, Any]) -> Repository:
    name = _string_field(raw, "name")
    require(bool(name), "repository name cannot be empty")

    default_branch = _string_field(raw.get("defaultBranchRef"), "name") or DEFAULT_BRANCH

    content = ""
    paths: list[str] = []
    for key, path in CODEOWNERS_LOCATIONS:
        text = _blob_text(raw, key)
        if not text:
            continue
        if not content:
            content = text
        paths.append(path)

    return Repository(
        name=name,
        full_name=_string_field(raw, "nameWithOwner"),
        default_branch=default_branch,
        has_codeowners_file=bool(content),
        codeowners_content=content,
        codeowners_paths=tuple(paths),
    )


def normalize_team(raw: dict[str, Any]) -> Team:
    name = _string_field(raw, "name")
    require(bool(name), "team name cannot be empty")

    return Team(
        id=_int_field(raw, "databaseId"),
        node_id=_string_field(raw, "id"),
        name=name,
        slug=_string_field(raw, "slug"),
        description=_string_field(raw, "description"),
        privacy=_string_field(raw, "privacy"),
        member_count=_int_field(raw.get("members"), "totalCount"),
    )


def extract_page(
    org: dict[str, Any], resource: Literal["repositories", "teams"]
) -> tuple[list[dict[str, Any]], PageInfo]:
    """Pull the record list and page info for one resource out of an organization payload.

    Missing or malformed sections read as an empty final page.
    """
    section = org.get(resource)
    if not isinstance(section, dict):
        return [], PageInfo()

    nodes = section.get("nodes")
    records = [node for node in nodes if isinstance(node, dict)] if isinstance(nodes, list) else []

    raw_info = section.get("pageInfo")
    if not isinstance(raw_info, dict):
        return records, PageInfo()

    cursor = raw_info.get("endCursor")
    return records, PageInfo(
        has_next_page=raw_info.get("hasNextPage") is True,
        end_cursor=cursor if isinstance(cursor, str) and cursor else None,
    )

"""GraphQL query templates for organization data."""

from __future__ import annotations

from ownergraph.github.models import BatchRequest
from ownergraph.utils.exceptions import require

_ORG_QUERY_TEMPLATE = """
query(
  $org: String!
  $reposCursor: String
  $teamsCursor: String
  $fetchRepos: Boolean! = true
  $fetchTeams: Boolean! = true
) {
  organization(login: $org) {
    repositories(first: %(repo_limit)d, after: $reposCursor) @include(if: $fetchRepos) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        name
        nameWithOwner
        defaultBranchRef {
          name
        }
        codeowners: object(expression: "HEAD:CODEOWNERS") {
          ... on Blob {
            text
          }
        }
        githubCodeowners: object(expression: "HEAD:.github/CODEOWNERS") {
          ... on Blob {
            text
          }
        }
        docsCodeowners: object(expression: "HEAD:docs/CODEOWNERS") {
          ... on Blob {
            text
          }
        }
      }
    }
    teams(first: %(team_limit)d, after: $teamsCursor) @include(if: $fetchTeams) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        id
        databaseId
        name
        slug
        description
        privacy
        members {
          totalCount
        }
      }
    }
  }
}
"""


def build_org_query(request: BatchRequest) -> str:
    """Combined repositories + teams query; one call advances both cursors."""
    require(bool(request.organization), "organization cannot be empty")
    return _ORG_QUERY_TEMPLATE % {
        "repo_limit": request.repo_page_limit(),
        "team_limit": request.team_page_limit(),
    }


def build_org_variables(
    organization: str,
    repos_cursor: str | None,
    teams_cursor: str | None,
    *,
    fetch_repos: bool = True,
    fetch_teams: bool = True,
) -> dict[str, str | bool]:
    """Variables for one round-trip; a drained stream is switched off with its @include flag."""
    variables: dict[str, str | bool] = {
        "org": organization,
        "fetchRepos": fetch_repos,
        "fetchTeams": fetch_teams,
    }
    if repos_cursor:
        variables["reposCursor"] = repos_cursor
    if teams_cursor:
        variables["teamsCursor"] = teams_cursor
    return variables

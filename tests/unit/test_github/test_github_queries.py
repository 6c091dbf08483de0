"""Unit tests for the GraphQL query builders."""

from __future__ import annotations

import pytest

from ownergraph.github.models import BatchRequest
from ownergraph.github.queries import build_org_query, build_org_variables
from ownergraph.utils.exceptions import ContractViolation


def test_query_uses_page_sizes():
    query = build_org_query(BatchRequest(organization="acme", repos_page_size=50, teams_page_size=20))
    assert "repositories(first: 50, after: $reposCursor)" in query
    assert "teams(first: 20, after: $teamsCursor)" in query


def test_small_maximum_shrinks_first_page():
    query = build_org_query(BatchRequest(organization="acme", max_repos=5))
    assert "repositories(first: 5," in query
    assert "teams(first: 100," in query


def test_query_reads_all_codeowners_locations():
    query = build_org_query(BatchRequest(organization="acme"))
    assert 'expression: "HEAD:CODEOWNERS"' in query
    assert 'expression: "HEAD:.github/CODEOWNERS"' in query
    assert 'expression: "HEAD:docs/CODEOWNERS"' in query


def test_variables_omit_missing_cursors():
    assert build_org_variables("acme", None, None) == {"org": "acme", "fetchRepos": True, "fetchTeams": True}
    assert build_org_variables("acme", "r1", None)["reposCursor"] == "r1"
    assert "teamsCursor" not in build_org_variables("acme", "r1", None)
    assert build_org_variables("acme", "r1", "t1")["teamsCursor"] == "t1"


def test_drained_streams_are_switched_off():
    variables = build_org_variables("acme", None, "t2", fetch_repos=False)
    assert variables == {"org": "acme", "fetchRepos": False, "fetchTeams": True, "teamsCursor": "t2"}


def test_query_gates_each_stream_on_its_flag():
    query = build_org_query(BatchRequest(organization="acme"))
    assert "$fetchRepos: Boolean! = true" in query
    assert "after: $reposCursor) @include(if: $fetchRepos)" in query
    assert "after: $teamsCursor) @include(if: $fetchTeams)" in query


def test_empty_organization_is_contract_violation():
    with pytest.raises(ContractViolation):
        build_org_query(BatchRequest(organization=""))

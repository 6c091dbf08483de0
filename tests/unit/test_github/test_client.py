"""Unit tests for the GitHub GraphQL client's error mapping."""

from __future__ import annotations

import httpx
import pytest

from ownergraph.github.client import GitHubGraphQLClient
from ownergraph.utils.exceptions import (
    AuthenticationError,
    ExternalServiceError,
    NetworkError,
    OperationTimeoutError,
    RateLimitError,
)
from tests.conftest import VALID_TOKEN, GraphQLRecorder, data_response, org_page


def make_client(*responses) -> tuple[GitHubGraphQLClient, GraphQLRecorder]:
    recorder = GraphQLRecorder(list(responses))
    client = GitHubGraphQLClient(VALID_TOKEN, url="https://github.test/graphql", transport=recorder.transport())
    return client, recorder


@pytest.mark.asyncio
async def test_execute_returns_data_and_sends_bearer_token():
    client, recorder = make_client(data_response(org_page()))
    async with client:
        data = await client.execute("query { x }", {"org": "acme"})

    assert "organization" in data
    assert recorder.requests[0] == {"query": "query { x }", "variables": {"org": "acme"}}
    assert recorder.headers[0]["authorization"] == f"Bearer {VALID_TOKEN}"


@pytest.mark.asyncio
async def test_unauthorized_maps_to_authentication_error():
    client, _ = make_client(httpx.Response(401, json={"message": "Bad credentials"}))
    async with client:
        with pytest.raises(AuthenticationError):
            await client.execute("query { x }")


@pytest.mark.asyncio
async def test_secondary_rate_limit_uses_retry_after():
    client, _ = make_client(httpx.Response(403, headers={"Retry-After": "17"}, json={}))
    async with client:
        with pytest.raises(RateLimitError) as info:
            await client.execute("query { x }")
    assert info.value.retry_after == 17.0


@pytest.mark.asyncio
async def test_exhausted_quota_is_rate_limit():
    client, _ = make_client(
        httpx.Response(403, headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "4102444800"}, json={})
    )
    async with client:
        with pytest.raises(RateLimitError):
            await client.execute("query { x }")


@pytest.mark.asyncio
async def test_plain_forbidden_is_api_error():
    client, _ = make_client(httpx.Response(403, headers={"X-RateLimit-Remaining": "4000"}, text="nope"))
    async with client:
        with pytest.raises(ExternalServiceError) as info:
            await client.execute("query { x }")
    assert info.value.code == "GITHUB_API_ERROR"


@pytest.mark.asyncio
async def test_graphql_errors_are_external_service_errors():
    body = {"errors": [{"type": "NOT_FOUND", "message": "Could not resolve to an Organization"}]}
    client, _ = make_client(httpx.Response(200, json=body))
    async with client:
        with pytest.raises(ExternalServiceError) as info:
            await client.execute("query { x }")
    assert info.value.code == "GITHUB_GRAPHQL_ERROR"
    assert "Could not resolve" in info.value.details


@pytest.mark.asyncio
async def test_graphql_rate_limited_error_type():
    body = {"errors": [{"type": "RATE_LIMITED", "message": "API rate limit exceeded"}]}
    client, _ = make_client(httpx.Response(200, json=body))
    async with client:
        with pytest.raises(RateLimitError):
            await client.execute("query { x }")


@pytest.mark.asyncio
async def test_invalid_json_is_external_service_error():
    client, _ = make_client(httpx.Response(200, text="<html>"))
    async with client:
        with pytest.raises(ExternalServiceError):
            await client.execute("query { x }")


@pytest.mark.asyncio
async def test_missing_data_is_invalid_response():
    client, _ = make_client(httpx.Response(200, json={"data": None}))
    async with client:
        with pytest.raises(ExternalServiceError) as info:
            await client.execute("query { x }")
    assert info.value.code == "INVALID_RESPONSE"


@pytest.mark.asyncio
async def test_transport_failures_are_classified():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    def stall(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client, _ = make_client(refuse, stall)
    async with client:
        with pytest.raises(NetworkError):
            await client.execute("query { x }")
        with pytest.raises(OperationTimeoutError):
            await client.execute("query { x }", timeout=1.0)

"""Async GitHub GraphQL client with error classification at the transport edge."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from ownergraph.utils.exceptions import (
    AuthenticationError,
    ExternalServiceError,
    OwnerGraphError,
    RateLimitError,
    external_service_error,
    github_api_error,
    network_error,
    rate_limit_error,
    require,
    timeout_error,
)
from ownergraph.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_GRAPHQL_URL = "https://api.github.com/graphql"
USER_AGENT = "ownergraph-scanner"


def _parse_reset(headers: httpx.Headers) -> datetime | None:
    reset = headers.get("x-ratelimit-reset")
    if reset and reset.isdigit():
        return datetime.fromtimestamp(int(reset), tz=timezone.utc)
    return None


def _rate_limit_from_response(resp: httpx.Response) -> RateLimitError | None:
    remaining = resp.headers.get("x-ratelimit-remaining")
    retry_after = resp.headers.get("retry-after")
    limited = resp.status_code == 429 or (resp.status_code == 403 and (remaining == "0" or retry_after))
    if not limited:
        return None
    if retry_after and retry_after.isdigit():
        err = rate_limit_error(None, 0)
        err.retry_after = float(retry_after)
        return err
    return rate_limit_error(_parse_reset(resp.headers), int(remaining or 0))


def _graphql_error(errors: Any) -> OwnerGraphError:
    items = errors if isinstance(errors, list) else [errors]
    if any(isinstance(e, dict) and e.get("type") == "RATE_LIMITED" for e in items):
        return rate_limit_error(None, 0)
    messages = [e.get("message", "") if isinstance(e, dict) else str(e) for e in items]
    return ExternalServiceError(
        "GitHub GraphQL query returned errors",
        code="GITHUB_GRAPHQL_ERROR",
        details="; ".join(m for m in messages if m),
    )


class GitHubGraphQLClient:
    """Thin POST-a-query client. One :meth:`execute` call is one round-trip."""

    def __init__(
        self,
        token: str,
        *,
        url: str = DEFAULT_GRAPHQL_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        require(bool(token), "GitHub token is required")
        self._url = url
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            },
        )

    async def __aenter__(self) -> GitHubGraphQLClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Run ``query`` and return its ``data`` object, or raise a classified error."""
        require(bool(query), "query cannot be empty")
        payload = {"query": query, "variables": variables or {}}
        request_timeout = timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT

        try:
            resp = await self._client.post(self._url, json=payload, timeout=request_timeout)
        except httpx.TimeoutException as exc:
            raise timeout_error("github graphql request", timeout) from exc
        except httpx.TransportError as exc:
            raise network_error("github graphql request", exc) from exc

        if resp.status_code == 401:
            raise AuthenticationError("GitHub rejected the access token")

        limited = _rate_limit_from_response(resp)
        if limited is not None:
            logger.warning("github_rate_limited", retry_after=limited.retry_after)
            raise limited

        if resp.status_code >= 400:
            raise github_api_error("graphql query", resp.status_code, resp.text[:200])

        try:
            body = resp.json()
        except ValueError as exc:
            raise external_service_error("github", "decode response", exc) from exc

        if not isinstance(body, dict):
            raise ExternalServiceError("GitHub returned a non-object response", code="INVALID_RESPONSE")
        if body.get("errors"):
            raise _graphql_error(body["errors"])

        data = body.get("data")
        if not isinstance(data, dict):
            raise ExternalServiceError("GitHub response has no data", code="INVALID_RESPONSE")
        return data

"""Unit tests for the async retry helpers."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from ownergraph.utils.exceptions import RecoveryStrategy, network_error, required_field_error
from ownergraph.utils.retry import async_retry, call_with_retry


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.mark.asyncio
async def test_retries_recoverable_errors_until_success(sleep):
    func = AsyncMock(side_effect=[network_error("fetch"), network_error("fetch"), "ok"])
    strategy = RecoveryStrategy(max_attempts=3, base_delay=1.0, max_delay=30.0)

    result = await call_with_retry(func, strategy, sleep=sleep)

    assert result == "ok"
    assert func.await_count == 3
    assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(sleep):
    func = AsyncMock(side_effect=network_error("fetch"))

    with pytest.raises(Exception) as info:
        await call_with_retry(func, RecoveryStrategy(max_attempts=2), sleep=sleep)

    assert info.value.code == "NETWORK_ERROR"
    assert func.await_count == 2


@pytest.mark.asyncio
async def test_non_recoverable_error_is_not_retried(sleep):
    func = AsyncMock(side_effect=required_field_error("organization"))

    with pytest.raises(Exception):
        await call_with_retry(func, RecoveryStrategy(max_attempts=5), sleep=sleep)

    assert func.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_foreign_exceptions_propagate_immediately(sleep):
    func = AsyncMock(side_effect=KeyError("x"))

    with pytest.raises(KeyError):
        await call_with_retry(func, RecoveryStrategy(max_attempts=5), sleep=sleep)

    assert func.await_count == 1


@pytest.mark.asyncio
async def test_decorator_passes_arguments():
    calls = []

    @async_retry(RecoveryStrategy(max_attempts=1))
    async def add(a, b):
        calls.append((a, b))
        return a + b

    assert await add(2, b=3) == 5
    assert calls == [(2, 3)]

"""Async retry driven by a :class:`RecoveryStrategy` and error recoverability."""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Callable, TypeVar

from ownergraph.utils.exceptions import (
    DEFAULT_RECOVERY_STRATEGY,
    OwnerGraphError,
    RecoveryStrategy,
)
from ownergraph.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

Sleep = Callable[[float], Awaitable[None]]


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    strategy: RecoveryStrategy = DEFAULT_RECOVERY_STRATEGY,
    *,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Await ``func()`` until it succeeds or the strategy refuses another attempt.

    Only :class:`OwnerGraphError` is considered; anything else propagates on
    the first failure.
    """
    attempt = 1
    while True:
        try:
            return await func()
        except OwnerGraphError as exc:
            if not strategy.should_retry(attempt, exc):
                raise
            delay = strategy.delay_for(attempt, exc)
            logger.warning(
                "retry_attempt",
                func=getattr(func, "__name__", repr(func)),
                attempt=attempt,
                delay=round(delay, 2),
                code=exc.code,
                error=exc.message,
            )
            await sleep(delay)
            attempt += 1


def async_retry(strategy: RecoveryStrategy = DEFAULT_RECOVERY_STRATEGY) -> Callable[[F], F]:
    """Decorator form of :func:`call_with_retry`."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await call_with_retry(lambda: func(*args, **kwargs), strategy)

        return wrapper  # type: ignore[return-value]

    return decorator

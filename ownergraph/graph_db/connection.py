"""Async Neo4j driver management with connection pooling and health checks."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, TypeVar

from neo4j import READ_ACCESS, WRITE_ACCESS, AsyncDriver, AsyncGraphDatabase, AsyncSession, AsyncTransaction
from neo4j.exceptions import AuthError, DriverError, Neo4jError, ServiceUnavailable, SessionExpired

from ownergraph.config import Settings
from ownergraph.graph_db.queries import HEALTH_CHECK
from ownergraph.utils.exceptions import (
    AuthenticationError,
    DatabaseError,
    OwnerGraphError,
    connection_error,
    database_error,
    timeout_error,
)
from ownergraph.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def translate_neo4j_error(operation: str, exc: Exception) -> OwnerGraphError:
    """Map a driver exception onto the project's error kinds."""
    if isinstance(exc, AuthError):
        return AuthenticationError("Neo4j rejected the configured credentials", details=str(exc))
    if isinstance(exc, (ServiceUnavailable, SessionExpired)):
        return connection_error(exc)
    return database_error(operation, exc)


class Neo4jConnection:
    """Manages the async Neo4j driver lifecycle.

    Read work runs in read-access sessions, mutations in write-access sessions,
    and :meth:`transaction` gives an explicit all-or-nothing unit of work.
    Every call takes an optional ``timeout`` in seconds; when omitted the
    ``NEO4J_TIMEOUT`` setting applies.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._driver: AsyncDriver | None = None

    async def connect(self) -> None:
        self._driver = AsyncGraphDatabase.driver(
            self._settings.NEO4J_URI,
            auth=(self._settings.NEO4J_USER, self._settings.NEO4J_PASSWORD),
            max_connection_pool_size=self._settings.NEO4J_MAX_POOL_SIZE,
        )
        await self.health_check()
        logger.info("neo4j_connected", uri=self._settings.NEO4J_URI, database=self._settings.NEO4J_DATABASE)

    async def close(self) -> None:
        if self._driver:
            await self._driver.close()
            self._driver = None
            logger.info("neo4j_disconnected")

    async def health_check(self, *, timeout: float | None = None) -> bool:
        records = await self.execute_read(HEALTH_CHECK, timeout=timeout)
        return bool(records) and records[0].get("ok") == 1

    @property
    def driver(self) -> AsyncDriver:
        if self._driver is None:
            raise DatabaseError(
                "Neo4j driver not initialized, call connect() first",
                code="DATABASE_NOT_CONNECTED",
            )
        return self._driver

    def session(self, *, read_only: bool = False) -> AsyncSession:
        return self.driver.session(
            database=self._settings.NEO4J_DATABASE,
            default_access_mode=READ_ACCESS if read_only else WRITE_ACCESS,
        )

    def _deadline(self, timeout: float | None) -> float | None:
        if timeout is None:
            timeout = self._settings.NEO4J_TIMEOUT
        return timeout if timeout and timeout > 0 else None

    async def _guard(self, operation: str, work: Awaitable[T], timeout: float | None) -> T:
        deadline = self._deadline(timeout)
        try:
            if deadline is None:
                return await work
            return await asyncio.wait_for(work, deadline)
        except asyncio.TimeoutError as exc:
            raise timeout_error(f"neo4j {operation}", deadline) from exc
        except (Neo4jError, DriverError) as exc:
            raise translate_neo4j_error(operation, exc) from exc

    async def _run(self, query: str, parameters: dict[str, Any] | None, read_only: bool) -> list[dict]:
        async with self.session(read_only=read_only) as session:
            result = await session.run(query, parameters or {})
            return [dict(record) async for record in result]

    async def execute_read(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> list[dict]:
        return await self._guard("read", self._run(query, parameters, True), timeout)

    async def execute_write(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> list[dict]:
        return await self._guard("write", self._run(query, parameters, False), timeout)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncTransaction]:
        """Explicit write transaction: committed on clean exit, rolled back otherwise.

        Cancellation also rolls back before propagating.
        """
        async with self.session() as session:
            tx = await session.begin_transaction()
            try:
                yield tx
            except BaseException:
                await tx.rollback()
                logger.warning("neo4j_transaction_rolled_back")
                raise
            await tx.commit()

    async def run_in_transaction(
        self, work: Awaitable[T], *, operation: str = "transaction", timeout: float | None = None
    ) -> T:
        """Await ``work`` under the connection's deadline and error translation."""
        return await self._guard(operation, work, timeout)

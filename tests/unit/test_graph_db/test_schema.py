"""Unit tests for schema initialization and versioned migrations."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from neo4j.exceptions import ServiceUnavailable

from ownergraph.graph_db.queries import SET_MIGRATION_VERSION
from ownergraph.graph_db.schema import (
    CONSTRAINTS,
    INDEXES,
    MIGRATIONS,
    Migration,
    current_version,
    init_schema,
    migrate_down,
    migrate_up,
    schema_statements,
    validate_migrations,
)
from ownergraph.utils.exceptions import (
    ContractViolation,
    DatabaseError,
    InputValidationError,
    OwnerGraphError,
    database_error,
)

VERSION_ROWS = "current_version AS version"


def test_schema_statements_are_idempotent_ddl():
    statements = schema_statements()
    assert len(statements) == len(CONSTRAINTS) + len(INDEXES)
    assert all("IF NOT EXISTS" in s for s in statements)
    assert (
        "CREATE CONSTRAINT repository_full_name_unique IF NOT EXISTS "
        "FOR (n:Repository) REQUIRE n.full_name IS UNIQUE"
    ) in statements


@pytest.mark.asyncio
async def test_init_schema_skips_refused_statements():
    conn = AsyncMock()
    conn.execute_write = AsyncMock(side_effect=[database_error("ddl")] + [[]] * 20)

    applied = await init_schema(conn)

    assert applied == len(CONSTRAINTS) + len(INDEXES) - 1
    assert conn.execute_write.await_count == len(CONSTRAINTS) + len(INDEXES)


# ── Migrations ───────────────────────────────────────────────────────


def test_bundled_migrations_are_well_formed():
    validate_migrations()
    assert [m.version for m in MIGRATIONS] == [1, 2]
    assert all("IF EXISTS" in s for m in MIGRATIONS for s in m.down)
    assert "FOR ()-[r:HAS_CODEOWNER]-() ON (r.pattern)" in MIGRATIONS[1].up[0]


@pytest.mark.parametrize(
    "migrations",
    [
        (),
        (Migration(1, "a", "", ("X",), ("Y",)), Migration(1, "b", "", ("X",), ("Y",))),
        (Migration(0, "a", "", ("X",), ("Y",)),),
        (Migration(1, "", "", ("X",), ("Y",)),),
        (Migration(1, "a", "", (), ("Y",)),),
        (Migration(1, "a", "", ("X",), ()),),
    ],
)
def test_malformed_migrations_rejected(migrations):
    with pytest.raises(ContractViolation):
        validate_migrations(migrations)


@pytest.mark.asyncio
async def test_current_version_defaults_to_zero(neo4j_conn):
    assert await current_version(neo4j_conn) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("stored,expected", [(3, 3), ("2", 2)])
async def test_current_version_reads_tracking_node(neo4j_conn, fake_graph, stored, expected):
    fake_graph.rows[VERSION_ROWS] = [{"version": stored}]
    assert await current_version(neo4j_conn) == expected


@pytest.mark.asyncio
async def test_current_version_rejects_garbage(neo4j_conn, fake_graph):
    fake_graph.rows[VERSION_ROWS] = [{"version": "two"}]
    with pytest.raises(DatabaseError) as exc_info:
        await current_version(neo4j_conn)
    assert exc_info.value.code == "INVALID_MIGRATION_VERSION"


@pytest.mark.asyncio
async def test_migrate_up_applies_each_migration_in_its_own_transaction(neo4j_conn, fake_graph):
    applied = await migrate_up(neo4j_conn)

    assert applied == [1, 2]
    assert len(fake_graph.transactions) == 2
    assert all(tx.committed for tx in fake_graph.transactions)

    statements = [q for q, _ in fake_graph.committed]
    # statements[0] is the version read
    assert statements[1 : 1 + len(MIGRATIONS[0].up)] == list(MIGRATIONS[0].up)
    versions = [p["version"] for q, p in fake_graph.committed if q == SET_MIGRATION_VERSION]
    assert versions == [1, 2]


@pytest.mark.asyncio
async def test_migrate_up_skips_applied_versions(neo4j_conn, fake_graph):
    fake_graph.rows[VERSION_ROWS] = [{"version": 1}]

    assert await migrate_up(neo4j_conn) == [2]
    assert len(fake_graph.transactions) == 1


@pytest.mark.asyncio
async def test_migrate_up_at_latest_version_is_a_no_op(neo4j_conn, fake_graph):
    fake_graph.rows[VERSION_ROWS] = [{"version": 2}]

    assert await migrate_up(neo4j_conn) == []
    assert fake_graph.transactions == []


@pytest.mark.asyncio
async def test_failed_migration_rolls_back_and_keeps_version(neo4j_conn, fake_graph):
    fake_graph.fail_on = "idx_has_team_owner_pattern"
    fake_graph.failure = ServiceUnavailable("connection lost")

    with pytest.raises(OwnerGraphError):
        await migrate_up(neo4j_conn)

    failed = fake_graph.transactions[-1]
    assert failed.rolled_back and not failed.committed
    versions = [p["version"] for q, p in fake_graph.committed if q == SET_MIGRATION_VERSION]
    assert versions == [1]
    assert not any("idx_has_codeowner_pattern" in q for q, _ in fake_graph.committed)


@pytest.mark.asyncio
async def test_migrate_down_rolls_back_newest_first(neo4j_conn, fake_graph):
    fake_graph.rows[VERSION_ROWS] = [{"version": 2}]

    assert await migrate_down(neo4j_conn, 0) == [2, 1]

    statements = [q for q, _ in fake_graph.committed]
    assert statements[1] == MIGRATIONS[1].down[0]
    versions = [p["version"] for q, p in fake_graph.committed if q == SET_MIGRATION_VERSION]
    assert versions == [1, 0]


@pytest.mark.asyncio
@pytest.mark.parametrize("target", [-1, 2, 5])
async def test_migrate_down_rejects_bad_targets(neo4j_conn, fake_graph, target):
    fake_graph.rows[VERSION_ROWS] = [{"version": 2}]

    with pytest.raises(InputValidationError):
        await migrate_down(neo4j_conn, target)
    assert fake_graph.transactions == []

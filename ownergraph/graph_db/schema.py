"""Neo4j schema for the ownership graph: constraints, indexes and versioned migrations."""

from __future__ import annotations

from dataclasses import dataclass

from ownergraph.graph_db.connection import Neo4jConnection
from ownergraph.graph_db.queries import (
    GET_MIGRATION_VERSION,
    SET_MIGRATION_VERSION,
    ConstraintDefinition,
    IndexDefinition,
    build_create_constraint,
    build_create_index,
    build_drop_constraint,
    build_drop_index,
)
from ownergraph.utils.exceptions import (
    DatabaseError,
    InputValidationError,
    OwnerGraphError,
    require,
)
from ownergraph.utils.logging import get_logger

logger = get_logger(__name__)

CONSTRAINTS = [
    ConstraintDefinition("organization_login_unique", "Organization", ("login",)),
    ConstraintDefinition("repository_full_name_unique", "Repository", ("full_name",)),
    ConstraintDefinition("team_slug_unique", "Team", ("slug",)),
    ConstraintDefinition("user_login_unique", "User", ("login",)),
]

INDEXES = [
    IndexDefinition("idx_organization_name", "Organization", ("name",)),
    IndexDefinition("idx_repository_name", "Repository", ("name",)),
    IndexDefinition("idx_repository_has_codeowners", "Repository", ("has_codeowners_file",)),
    IndexDefinition("idx_team_name", "Team", ("name",)),
    IndexDefinition("idx_user_email", "User", ("email",)),
    IndexDefinition("idx_org_repo_composite", "Repository", ("organization", "name")),
]

RELATIONSHIP_INDEXES = [
    IndexDefinition("idx_has_codeowner_pattern", "HAS_CODEOWNER", ("pattern",), for_relationship=True),
    IndexDefinition("idx_has_team_owner_pattern", "HAS_TEAM_OWNER", ("pattern",), for_relationship=True),
]


def schema_statements() -> list[str]:
    return [build_create_constraint(c) for c in CONSTRAINTS] + [
        build_create_index(i) for i in INDEXES
    ]


async def init_schema(conn: Neo4jConnection) -> int:
    """Create all constraints and indexes; returns how many statements applied.

    A statement the server refuses is logged and skipped.
    """
    applied = 0
    for constraint in CONSTRAINTS:
        stmt = build_create_constraint(constraint)
        try:
            await conn.execute_write(stmt)
            applied += 1
        except OwnerGraphError as exc:
            logger.warning("constraint_create_skipped", name=constraint.name, error=str(exc))

    for index in INDEXES:
        stmt = build_create_index(index)
        try:
            await conn.execute_write(stmt)
            applied += 1
        except OwnerGraphError as exc:
            logger.warning("index_create_skipped", name=index.name, error=str(exc))

    logger.info("neo4j_schema_initialized", applied=applied, total=len(CONSTRAINTS) + len(INDEXES))
    return applied


# ── Migrations ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    description: str
    up: tuple[str, ...]
    down: tuple[str, ...]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        name="initial_schema",
        description="Uniqueness constraints and node indexes",
        up=tuple(schema_statements()),
        down=tuple(build_drop_index(i.name) for i in INDEXES)
        + tuple(build_drop_constraint(c.name) for c in CONSTRAINTS),
    ),
    Migration(
        version=2,
        name="codeowner_pattern_indexes",
        description="Indexes on the pattern of codeowner relationships",
        up=tuple(build_create_index(i) for i in RELATIONSHIP_INDEXES),
        down=tuple(build_drop_index(i.name) for i in RELATIONSHIP_INDEXES),
    ),
)


def validate_migrations(migrations: tuple[Migration, ...] = MIGRATIONS) -> None:
    require(bool(migrations), "no migrations defined")
    seen: set[int] = set()
    for m in migrations:
        require(m.version not in seen, f"duplicate migration version: {m.version}")
        seen.add(m.version)
        require(m.version > 0, f"migration version must be positive: {m.version}")
        require(bool(m.name), f"migration name cannot be empty for version {m.version}")
        require(bool(m.up), f"migration up statements cannot be empty for version {m.version}")
        require(bool(m.down), f"migration down statements cannot be empty for version {m.version}")


async def current_version(conn: Neo4jConnection) -> int:
    """Version recorded on the ``Migration {id: 'system'}`` node; 0 when none is recorded."""
    rows = await conn.execute_read(GET_MIGRATION_VERSION)
    if not rows or rows[0].get("version") is None:
        return 0
    version = rows[0]["version"]
    if isinstance(version, int) and not isinstance(version, bool):
        return version
    if isinstance(version, str) and version.isdecimal() and version.isascii():
        return int(version)
    raise DatabaseError(
        f"Unexpected migration version value: {version!r}",
        code="INVALID_MIGRATION_VERSION",
    )


async def set_version(conn: Neo4jConnection, version: int) -> None:
    await conn.execute_write(SET_MIGRATION_VERSION, {"version": version})


async def _apply_statements(conn: Neo4jConnection, statements: tuple[str, ...]) -> None:
    async def work() -> None:
        async with conn.transaction() as tx:
            for statement in statements:
                result = await tx.run(statement)
                await result.consume()

    await conn.run_in_transaction(work(), operation="migration")


async def migrate_up(
    conn: Neo4jConnection, migrations: tuple[Migration, ...] = MIGRATIONS
) -> list[int]:
    """Apply every migration newer than the recorded version, oldest first.

    Each migration's statements commit in one transaction; the version is
    recorded afterwards. Schema statements use IF [NOT] EXISTS, so re-running
    a migration whose version write failed is harmless.
    """
    validate_migrations(migrations)
    version = await current_version(conn)
    applied: list[int] = []
    for migration in sorted(migrations, key=lambda m: m.version):
        if migration.version <= version:
            continue
        logger.info("migration_applying", version=migration.version, name=migration.name)
        await _apply_statements(conn, migration.up)
        await set_version(conn, migration.version)
        applied.append(migration.version)

    logger.info("migrations_up_complete", from_version=version, applied=applied)
    return applied


async def migrate_down(
    conn: Neo4jConnection,
    target_version: int,
    migrations: tuple[Migration, ...] = MIGRATIONS,
) -> list[int]:
    """Roll back, newest first, every applied migration above ``target_version``."""
    validate_migrations(migrations)
    if target_version < 0:
        raise InputValidationError("target_version", "cannot be negative")
    version = await current_version(conn)
    if target_version >= version:
        raise InputValidationError(
            "target_version",
            f"target version {target_version} is not less than current version {version}",
        )

    rolled_back: list[int] = []
    for migration in sorted(migrations, key=lambda m: m.version, reverse=True):
        if not target_version < migration.version <= version:
            continue
        logger.info("migration_rolling_back", version=migration.version, name=migration.name)
        await _apply_statements(conn, migration.down)
        await set_version(conn, migration.version - 1)
        rolled_back.append(migration.version)

    logger.info("migrations_down_complete", from_version=version, to_version=target_version)
    return rolled_back

"""Read-side queries over the persisted ownership graph."""

from __future__ import annotations

from typing import Any

from ownergraph.graph_db.connection import Neo4jConnection
from ownergraph.graph_db.models import Node
from ownergraph.graph_db.queries import (
    build_codeownership_stats,
    build_find_codeowners_by_repository,
    build_find_repositories_by_codeowner,
)
from ownergraph.graph_db.store import node_from_row
from ownergraph.utils.exceptions import not_found_error, required_field_error
from ownergraph.utils.logging import get_logger

logger = get_logger(__name__)


class CodeownershipService:
    def __init__(self, neo4j_conn: Neo4jConnection) -> None:
        self._conn = neo4j_conn

    async def repositories_owned_by(self, owner: str) -> list[Node]:
        """Repositories naming ``owner`` (``@user``, ``@org/team`` or bare) in CODEOWNERS."""
        if not owner.strip():
            raise required_field_error("owner")
        query = build_find_repositories_by_codeowner(owner.strip())
        rows = await self._conn.execute_read(query.text, query.parameters)
        return [node_from_row(r) for r in rows]

    async def owners_of(self, full_name: str) -> list[Node]:
        if not full_name.strip():
            raise required_field_error("repository")
        query = build_find_codeowners_by_repository(full_name.strip())
        rows = await self._conn.execute_read(query.text, query.parameters)
        return [node_from_row(r) for r in rows]

    async def stats(self, organization: str) -> dict[str, Any]:
        if not organization.strip():
            raise required_field_error("organization")
        query = build_codeownership_stats(organization.strip())
        rows = await self._conn.execute_read(query.text, query.parameters)
        if not rows:
            raise not_found_error("organization", organization)
        stats = dict(rows[0])
        stats["organization"] = organization
        logger.debug("codeownership_stats", **stats)
        return stats

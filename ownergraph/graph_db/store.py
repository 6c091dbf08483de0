"""Validated graph CRUD, path finding and transactional batches over Neo4j."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Sequence

from ownergraph.graph_db.connection import Neo4jConnection
from ownergraph.graph_db.models import (
    BatchOperation,
    BatchReport,
    Direction,
    GraphOperationRequest,
    GraphPath,
    Node,
    Operation,
    Relationship,
)
from ownergraph.graph_db.queries import (
    CLEAR_GRAPH,
    CypherQuery,
    build_all_paths,
    build_create_node,
    build_create_relationship,
    build_delete_node,
    build_delete_relationship,
    build_find_relationships_between,
    build_find_relationships_by_node,
    build_find_relationships_by_type,
    build_get_node,
    build_get_relationship,
    build_shortest_path,
    build_update_node,
    build_update_relationship,
)
from ownergraph.graph_db.validation import (
    parse_relationship_type,
    validate_node_creation,
    validate_node_id,
    validate_node_retrieval,
    validate_node_update,
    validate_query,
    validate_relationship_creation,
    validate_relationship_retrieval,
    validate_relationship_update,
)
from ownergraph.utils.exceptions import (
    ContractViolation,
    DatabaseError,
    OwnerGraphError,
    database_error,
    log_error,
    not_found_error,
    require,
)
from ownergraph.utils.logging import get_logger

logger = get_logger(__name__)


# ── Row mapping ──────────────────────────────────────────────────────


def node_from_row(row: dict[str, Any]) -> Node:
    return Node(
        id=str(row["id"]),
        labels=list(row.get("labels") or []),
        properties=dict(row.get("properties") or {}),
    )


def relationship_from_row(row: dict[str, Any]) -> Relationship:
    return Relationship(
        id=str(row["id"]),
        type=row["type"],
        from_id=str(row["from_id"]),
        to_id=str(row["to_id"]),
        properties=dict(row.get("properties") or {}),
    )


def path_from_row(row: dict[str, Any]) -> GraphPath:
    relationships = [relationship_from_row(r) for r in row.get("relationships") or []]
    length = row.get("length")
    return GraphPath(
        nodes=[node_from_row(n) for n in row.get("nodes") or []],
        relationships=relationships,
        length=int(length) if length is not None else len(relationships),
    )


def _exactly_one(rows: list[dict], resource: str, identifier: str) -> dict:
    if not rows:
        raise not_found_error(resource, identifier)
    if len(rows) > 1:
        raise DatabaseError(
            f"Expected exactly one {resource} row, got {len(rows)}",
            code="UNEXPECTED_RESULT_COUNT",
        )
    return rows[0]


def _deleted_count(rows: list[dict]) -> int:
    if not rows:
        return 0
    return int(rows[0].get("deleted") or 0)


def _chunks(items: Sequence[BatchOperation], size: int) -> Iterable[list[BatchOperation]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class GraphStore:
    """High-level graph operations.

    Every public operation validates its input before a template is built, so
    labels and relationship types only reach Cypher text once allow-listed.
    """

    def __init__(self, neo4j_conn: Neo4jConnection) -> None:
        self._conn = neo4j_conn

    async def _read(self, query: CypherQuery, timeout: float | None) -> list[dict]:
        return await self._conn.execute_read(query.text, query.parameters, timeout=timeout)

    async def _write(self, query: CypherQuery, timeout: float | None) -> list[dict]:
        return await self._conn.execute_write(query.text, query.parameters, timeout=timeout)

    # ── Nodes ────────────────────────────────────────────────────────

    async def create_node(
        self, label: str, properties: dict[str, Any] | None, *, timeout: float | None = None
    ) -> Node:
        request = GraphOperationRequest(
            operation=Operation.CREATE_NODE, label=label, properties=properties
        )
        validate_node_creation(request)
        rows = await self._write(build_create_node(request), timeout)
        node = node_from_row(_exactly_one(rows, "node", label))
        logger.debug("node_created", node_id=node.id, label=label)
        return node

    async def get_node(self, node_id: str, *, timeout: float | None = None) -> Node:
        validate_node_retrieval(GraphOperationRequest(operation=Operation.GET_NODE, node_id=node_id))
        rows = await self._read(build_get_node(node_id), timeout)
        return node_from_row(_exactly_one(rows, "node", node_id))

    async def update_node(
        self, node_id: str, properties: dict[str, Any] | None, *, timeout: float | None = None
    ) -> Node:
        validate_node_update(
            GraphOperationRequest(
                operation=Operation.UPDATE_NODE, node_id=node_id, properties=properties
            )
        )
        rows = await self._write(build_update_node(node_id, properties or {}), timeout)
        return node_from_row(_exactly_one(rows, "node", node_id))

    async def delete_node(self, node_id: str, *, timeout: float | None = None) -> int:
        validate_node_retrieval(
            GraphOperationRequest(operation=Operation.DELETE_NODE, node_id=node_id)
        )
        deleted = _deleted_count(await self._write(build_delete_node(node_id), timeout))
        if deleted == 0:
            raise not_found_error("node", node_id)
        logger.debug("node_deleted", node_id=node_id)
        return deleted

    # ── Relationships ────────────────────────────────────────────────

    async def create_relationship(
        self,
        from_id: str,
        to_id: str,
        rel_type: str,
        properties: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Relationship:
        request = GraphOperationRequest(
            operation=Operation.CREATE_RELATIONSHIP,
            from_id=from_id,
            to_id=to_id,
            rel_type=rel_type,
            properties=properties,
        )
        validate_relationship_creation(request)
        rows = await self._write(build_create_relationship(request), timeout)
        rel = relationship_from_row(_exactly_one(rows, "relationship endpoints", f"{from_id}->{to_id}"))
        logger.debug("relationship_created", rel_id=rel.id, type=rel.type)
        return rel

    async def get_relationship(self, rel_id: str, *, timeout: float | None = None) -> Relationship:
        validate_relationship_retrieval(
            GraphOperationRequest(operation=Operation.GET_RELATIONSHIP, node_id=rel_id)
        )
        rows = await self._read(build_get_relationship(rel_id), timeout)
        return relationship_from_row(_exactly_one(rows, "relationship", rel_id))

    async def update_relationship(
        self,
        rel_id: str,
        properties: dict[str, Any] | None,
        *,
        rel_type: str = "",
        timeout: float | None = None,
    ) -> Relationship:
        validate_relationship_update(
            GraphOperationRequest(
                operation=Operation.UPDATE_RELATIONSHIP,
                node_id=rel_id,
                rel_type=rel_type,
                properties=properties,
            )
        )
        rows = await self._write(build_update_relationship(rel_id, properties or {}), timeout)
        return relationship_from_row(_exactly_one(rows, "relationship", rel_id))

    async def delete_relationship(self, rel_id: str, *, timeout: float | None = None) -> int:
        validate_relationship_retrieval(
            GraphOperationRequest(operation=Operation.DELETE_RELATIONSHIP, node_id=rel_id)
        )
        deleted = _deleted_count(await self._write(build_delete_relationship(rel_id), timeout))
        if deleted == 0:
            raise not_found_error("relationship", rel_id)
        return deleted

    async def find_relationships_by_type(
        self, rel_type: str, *, limit: int = 0, timeout: float | None = None
    ) -> list[Relationship]:
        checked = parse_relationship_type(rel_type)
        rows = await self._read(build_find_relationships_by_type(checked, limit), timeout)
        return [relationship_from_row(r) for r in rows]

    async def find_relationships_by_node(
        self,
        node_id: str,
        direction: Direction | str = Direction.BOTH,
        *,
        timeout: float | None = None,
    ) -> list[Relationship]:
        validate_node_id(node_id)
        rows = await self._read(build_find_relationships_by_node(node_id, direction), timeout)
        return [relationship_from_row(r) for r in rows]

    async def find_relationships_between(
        self,
        from_id: str,
        to_id: str,
        rel_type: str = "",
        *,
        timeout: float | None = None,
    ) -> list[Relationship]:
        validate_node_id(from_id, "from_id")
        validate_node_id(to_id, "to_id")
        checked = parse_relationship_type(rel_type) if rel_type else None
        rows = await self._read(build_find_relationships_between(from_id, to_id, checked), timeout)
        return [relationship_from_row(r) for r in rows]

    # ── Paths ────────────────────────────────────────────────────────

    async def shortest_path(
        self, from_id: str, to_id: str, *, timeout: float | None = None
    ) -> GraphPath | None:
        validate_node_id(from_id, "from_id")
        validate_node_id(to_id, "to_id")
        rows = await self._read(build_shortest_path(from_id, to_id), timeout)
        if not rows:
            return None
        return path_from_row(rows[0])

    async def all_paths(
        self, from_id: str, to_id: str, max_depth: int = 0, *, timeout: float | None = None
    ) -> list[GraphPath]:
        validate_node_id(from_id, "from_id")
        validate_node_id(to_id, "to_id")
        rows = await self._read(build_all_paths(from_id, to_id, max_depth), timeout)
        return sorted((path_from_row(r) for r in rows), key=lambda p: p.length)

    # ── Arbitrary queries and dispatch ───────────────────────────────

    async def query(
        self,
        text: str,
        parameters: dict[str, Any] | None = None,
        *,
        read_only: bool = False,
        timeout: float | None = None,
    ) -> list[dict]:
        validate_query(GraphOperationRequest(operation=Operation.QUERY, query=text))
        if read_only:
            return await self._conn.execute_read(text, parameters or {}, timeout=timeout)
        return await self._conn.execute_write(text, parameters or {}, timeout=timeout)

    async def execute(
        self, request: GraphOperationRequest, *, timeout: float | None = None
    ) -> Node | Relationship | int | list[dict]:
        """Run one :class:`GraphOperationRequest` through the matching operation."""
        op = request.operation
        if op is Operation.CREATE_NODE:
            return await self.create_node(request.label, request.properties, timeout=timeout)
        if op is Operation.GET_NODE:
            return await self.get_node(request.node_id, timeout=timeout)
        if op is Operation.UPDATE_NODE:
            return await self.update_node(request.node_id, request.properties, timeout=timeout)
        if op is Operation.DELETE_NODE:
            return await self.delete_node(request.node_id, timeout=timeout)
        if op is Operation.CREATE_RELATIONSHIP:
            return await self.create_relationship(
                request.from_id,
                request.to_id,
                request.rel_type,
                request.properties,
                timeout=timeout,
            )
        if op is Operation.GET_RELATIONSHIP:
            return await self.get_relationship(request.node_id, timeout=timeout)
        if op is Operation.UPDATE_RELATIONSHIP:
            return await self.update_relationship(
                request.node_id, request.properties, rel_type=request.rel_type, timeout=timeout
            )
        if op is Operation.DELETE_RELATIONSHIP:
            return await self.delete_relationship(request.node_id, timeout=timeout)
        return await self.query(
            request.query, request.parameters, read_only=request.read_only, timeout=timeout
        )

    # ── Batches ──────────────────────────────────────────────────────

    async def _apply_batch(self, operations: Sequence[BatchOperation]) -> int:
        async with self._conn.transaction() as tx:
            for index, op in enumerate(operations):
                try:
                    result = await tx.run(op.query, op.parameters)
                    await result.consume()
                except Exception:
                    logger.warning("batch_operation_failed", index=index, type=op.type)
                    raise
        return len(operations)

    async def execute_batch(
        self, operations: Sequence[BatchOperation], *, timeout: float | None = None
    ) -> int:
        """Apply ``operations`` in order inside one transaction.

        Either every operation takes effect or none does; a failure is raised
        as a :class:`DatabaseError` (or a more specific error kind).
        """
        if not operations:
            return 0
        try:
            return await self._conn.run_in_transaction(
                self._apply_batch(operations), operation="batch", timeout=timeout
            )
        except OwnerGraphError as exc:
            log_error(logger, "batch_failed", exc)
            raise
        except ContractViolation:
            raise
        except Exception as exc:
            err = database_error("batch", exc)
            log_error(logger, "batch_failed", err)
            raise err from exc

    async def execute_batches(
        self,
        operations: Sequence[BatchOperation],
        *,
        batch_size: int = 100,
        max_concurrency: int = 4,
        timeout: float | None = None,
    ) -> BatchReport:
        """Split ``operations`` into transactional batches run with bounded concurrency.

        Ordering holds within a batch only. A failed batch is recorded in the
        report and does not cancel the others.
        """
        require(batch_size > 0, "batch_size must be positive")
        require(max_concurrency > 0, "max_concurrency must be positive")
        batches = list(_chunks(operations, batch_size))
        report = BatchReport(total_batches=len(batches))
        if not batches:
            return report

        semaphore = asyncio.Semaphore(max_concurrency)

        async def run(index: int, batch: list[BatchOperation]) -> None:
            async with semaphore:
                try:
                    applied = await self.execute_batch(batch, timeout=timeout)
                except OwnerGraphError as exc:
                    report.failed_batches += 1
                    report.errors.append({"batch": index, **exc.to_dict()})
                    return
                report.successful_batches += 1
                report.operations_applied += applied

        await asyncio.gather(*(run(i, b) for i, b in enumerate(batches)))
        logger.info(
            "batches_complete",
            total=report.total_batches,
            succeeded=report.successful_batches,
            failed=report.failed_batches,
            operations=report.operations_applied,
        )
        return report

    # ── Maintenance ──────────────────────────────────────────────────

    async def clear_all(self, *, timeout: float | None = None) -> None:
        await self._conn.execute_write(CLEAR_GRAPH, timeout=timeout)
        logger.info("graph_cleared")

    async def health_check(self) -> bool:
        return await self._conn.health_check()

"""Unit tests for the Cypher template builders."""

from __future__ import annotations

import pytest

from ownergraph.graph_db.models import Direction, GraphOperationRequest, Operation
from ownergraph.graph_db.queries import (
    ConstraintDefinition,
    IndexDefinition,
    build_all_paths,
    build_create_constraint,
    build_create_index,
    build_create_node,
    build_create_relationship,
    build_drop_constraint,
    build_drop_index,
    build_find_relationships_by_node,
    build_find_relationships_by_type,
    build_find_repositories_by_codeowner,
    build_get_node,
    build_shortest_path,
)
from ownergraph.utils.exceptions import ContractViolation


def test_create_node_embeds_label_and_binds_properties():
    query = build_create_node(
        GraphOperationRequest(operation=Operation.CREATE_NODE, label="Person", properties={"name": "Ada"})
    )
    assert query.text.startswith("CREATE (n:Person) SET n = $properties")
    assert query.parameters == {"properties": {"name": "Ada"}}


def test_ids_are_bound_as_integers():
    assert build_get_node("42").parameters == {"id": 42}


def test_create_relationship_template():
    query = build_create_relationship(
        GraphOperationRequest(
            operation=Operation.CREATE_RELATIONSHIP, from_id="1", to_id="2", rel_type="KNOWS", properties={}
        )
    )
    assert "CREATE (a)-[r:KNOWS]->(b)" in query.text
    assert query.parameters["from_id"] == 1 and query.parameters["to_id"] == 2


def test_unvalidated_relationship_type_is_contract_violation():
    with pytest.raises(ContractViolation):
        build_create_relationship(
            GraphOperationRequest(
                operation=Operation.CREATE_RELATIONSHIP, from_id="1", to_id="2", rel_type="X]->() DELETE"
            )
        )
    with pytest.raises(ContractViolation):
        build_find_relationships_by_type("NOPE")


def test_unvalidated_label_and_id_are_contract_violations():
    with pytest.raises(ContractViolation):
        build_create_node(GraphOperationRequest(operation=Operation.CREATE_NODE, label="a b", properties={}))
    with pytest.raises(ContractViolation):
        build_get_node("abc")


def test_both_direction_reports_queried_node_as_from():
    query = build_find_relationships_by_node("9", Direction.BOTH)
    assert "MATCH (a)-[r]-(b) WHERE id(a) = $id" in query.text
    assert "id(a) AS from_id" in query.text
    assert query.parameters == {"id": 9}


def test_directed_lookups():
    outgoing = build_find_relationships_by_node("9", "outgoing").text
    incoming = build_find_relationships_by_node("9", "incoming").text
    assert "(a)-[r]->(b) WHERE id(a) = $id" in outgoing
    assert "(a)-[r]->(b) WHERE id(b) = $id" in incoming


def test_find_by_type_with_limit():
    query = build_find_relationships_by_type("OWNS", limit=10)
    assert "[r:OWNS]" in query.text
    assert query.text.endswith("LIMIT $limit")
    assert query.parameters == {"limit": 10}


@pytest.mark.parametrize(("depth", "expected"), [(0, 5), (-2, 5), (3, 3)])
def test_all_paths_depth_and_ordering(depth, expected):
    query = build_all_paths("1", "2", depth)
    assert f"[*1..{expected}]" in query.text
    assert "ORDER BY length ASC LIMIT 100" in query.text


def test_shortest_path_is_directed():
    assert "shortestPath((a)-[*]->(b))" in build_shortest_path("1", "2").text


def test_codeowner_lookup_strips_owner_syntax():
    assert build_find_repositories_by_codeowner("@alice").parameters == {"owner": "alice"}
    assert build_find_repositories_by_codeowner("@acme/platform").parameters == {"owner": "platform"}


def test_schema_ddl_builders():
    assert (
        build_create_index(IndexDefinition("idx_test", "TestNode", ("property1",)))
        == "CREATE INDEX idx_test IF NOT EXISTS FOR (n:TestNode) ON (n.property1)"
    )
    assert (
        build_create_index(IndexDefinition("idx_composite", "TestNode", ("prop1", "prop2")))
        == "CREATE INDEX idx_composite IF NOT EXISTS FOR (n:TestNode) ON (n.prop1, n.prop2)"
    )
    assert build_create_constraint(ConstraintDefinition("c", "TestNode", ("p",))) == (
        "CREATE CONSTRAINT c IF NOT EXISTS FOR (n:TestNode) REQUIRE n.p IS UNIQUE"
    )
    assert build_create_constraint(ConstraintDefinition("k", "TestNode", ("a", "b"), kind="key")) == (
        "CREATE CONSTRAINT k IF NOT EXISTS FOR (n:TestNode) REQUIRE (n.a, n.b) IS NODE KEY"
    )
    with pytest.raises(ContractViolation):
        build_create_constraint(ConstraintDefinition("x", "TestNode", ("a",), kind="weird"))


def test_relationship_index_and_drop_builders():
    rel_index = IndexDefinition("idx_pattern", "HAS_CODEOWNER", ("pattern",), for_relationship=True)
    assert build_create_index(rel_index) == (
        "CREATE INDEX idx_pattern IF NOT EXISTS FOR ()-[r:HAS_CODEOWNER]-() ON (r.pattern)"
    )
    assert build_drop_index("idx_pattern") == "DROP INDEX idx_pattern IF EXISTS"
    assert build_drop_constraint("c") == "DROP CONSTRAINT c IF EXISTS"
    with pytest.raises(ContractViolation):
        build_drop_index("idx; DROP")

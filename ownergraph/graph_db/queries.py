"""Parameterized Cypher query templates for the ownership graph.

Every builder is pure: it returns a :class:`CypherQuery` and never touches a
connection. Labels and relationship types cannot be bound as parameters, so
they are embedded in the template text and must have passed validation first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ownergraph.graph_db.models import Direction, GraphOperationRequest
from ownergraph.graph_db.validation import RelationshipType, is_valid_label, is_valid_node_id
from ownergraph.utils.exceptions import ContractViolation, require

DEFAULT_PATH_DEPTH = 5
MAX_PATH_RESULTS = 100


@dataclass(frozen=True)
class CypherQuery:
    text: str
    parameters: dict[str, Any] = field(default_factory=dict)


_NODE_RETURN = "RETURN id(n) AS id, labels(n) AS labels, properties(n) AS properties"

_REL_RETURN = (
    "RETURN id(r) AS id, type(r) AS type, id(a) AS from_id, id(b) AS to_id, "
    "properties(r) AS properties"
)

_PATH_RETURN = """
RETURN [x IN nodes(p) | {id: id(x), labels: labels(x), properties: properties(x)}] AS nodes,
       [y IN relationships(p) | {id: id(y), type: type(y), from_id: id(startNode(y)),
                                 to_id: id(endNode(y)), properties: properties(y)}] AS relationships,
       length(p) AS length
"""

GET_NODE = f"MATCH (n) WHERE id(n) = $id {_NODE_RETURN}"

UPDATE_NODE = f"MATCH (n) WHERE id(n) = $id SET n += $properties {_NODE_RETURN}"

DELETE_NODE = "MATCH (n) WHERE id(n) = $id DETACH DELETE n RETURN count(n) AS deleted"

GET_RELATIONSHIP = f"MATCH (a)-[r]->(b) WHERE id(r) = $id {_REL_RETURN}"

UPDATE_RELATIONSHIP = f"MATCH (a)-[r]->(b) WHERE id(r) = $id SET r += $properties {_REL_RETURN}"

DELETE_RELATIONSHIP = "MATCH ()-[r]->() WHERE id(r) = $id DELETE r RETURN count(r) AS deleted"

CLEAR_GRAPH = "MATCH (n) DETACH DELETE n"

HEALTH_CHECK = "RETURN 1 AS ok"


def _node_id(value: str, name: str) -> int:
    require(is_valid_node_id(value), f"{name} must be validated before building a query")
    return int(value)


def _checked_label(label: str) -> str:
    require(is_valid_label(label), f"label {label!r} must be validated before building a query")
    return label


def _checked_rel_type(rel_type: str | RelationshipType) -> str:
    try:
        return RelationshipType(rel_type).value
    except ValueError:
        raise ContractViolation(
            f"relationship type {rel_type!r} must be validated before building a query"
        ) from None


# ── Nodes ────────────────────────────────────────────────────────────


def build_create_node(request: GraphOperationRequest) -> CypherQuery:
    label = _checked_label(request.label)
    return CypherQuery(
        f"CREATE (n:{label}) SET n = $properties {_NODE_RETURN}",
        {"properties": dict(request.properties or {})},
    )


def build_get_node(node_id: str) -> CypherQuery:
    return CypherQuery(GET_NODE, {"id": _node_id(node_id, "node_id")})


def build_update_node(node_id: str, properties: dict[str, Any]) -> CypherQuery:
    return CypherQuery(
        UPDATE_NODE, {"id": _node_id(node_id, "node_id"), "properties": dict(properties)}
    )


def build_delete_node(node_id: str) -> CypherQuery:
    return CypherQuery(DELETE_NODE, {"id": _node_id(node_id, "node_id")})


# ── Relationships ────────────────────────────────────────────────────


def build_create_relationship(request: GraphOperationRequest) -> CypherQuery:
    rel_type = _checked_rel_type(request.rel_type)
    text = f"""
MATCH (a) WHERE id(a) = $from_id
MATCH (b) WHERE id(b) = $to_id
CREATE (a)-[r:{rel_type}]->(b)
SET r = $properties
{_REL_RETURN}
"""
    return CypherQuery(
        text,
        {
            "from_id": _node_id(request.from_id, "from_id"),
            "to_id": _node_id(request.to_id, "to_id"),
            "properties": dict(request.properties or {}),
        },
    )


def build_get_relationship(rel_id: str) -> CypherQuery:
    return CypherQuery(GET_RELATIONSHIP, {"id": _node_id(rel_id, "relationship_id")})


def build_update_relationship(rel_id: str, properties: dict[str, Any]) -> CypherQuery:
    return CypherQuery(
        UPDATE_RELATIONSHIP,
        {"id": _node_id(rel_id, "relationship_id"), "properties": dict(properties)},
    )


def build_delete_relationship(rel_id: str) -> CypherQuery:
    return CypherQuery(DELETE_RELATIONSHIP, {"id": _node_id(rel_id, "relationship_id")})


def build_find_relationships_by_type(
    rel_type: str | RelationshipType, limit: int = 0
) -> CypherQuery:
    text = f"MATCH (a)-[r:{_checked_rel_type(rel_type)}]->(b) {_REL_RETURN}"
    if limit > 0:
        return CypherQuery(text + " LIMIT $limit", {"limit": limit})
    return CypherQuery(text)


def build_find_relationships_by_node(
    node_id: str, direction: Direction | str = Direction.BOTH
) -> CypherQuery:
    """Relationships touching one node.

    For ``both`` the queried node is reported as ``from_id`` on every edge,
    whichever way the edge physically points.
    """
    direction = Direction(direction)
    if direction is Direction.OUTGOING:
        text = f"MATCH (a)-[r]->(b) WHERE id(a) = $id {_REL_RETURN}"
    elif direction is Direction.INCOMING:
        text = f"MATCH (a)-[r]->(b) WHERE id(b) = $id {_REL_RETURN}"
    else:
        text = f"MATCH (a)-[r]-(b) WHERE id(a) = $id {_REL_RETURN}"
    return CypherQuery(text, {"id": _node_id(node_id, "node_id")})


def build_find_relationships_between(
    from_id: str, to_id: str, rel_type: str | RelationshipType | None = None
) -> CypherQuery:
    pattern = f"[r:{_checked_rel_type(rel_type)}]" if rel_type else "[r]"
    return CypherQuery(
        f"MATCH (a)-{pattern}->(b) WHERE id(a) = $from_id AND id(b) = $to_id {_REL_RETURN}",
        {"from_id": _node_id(from_id, "from_id"), "to_id": _node_id(to_id, "to_id")},
    )


# ── Paths ────────────────────────────────────────────────────────────


def _path_endpoints(from_id: str, to_id: str) -> dict[str, int]:
    return {"from_id": _node_id(from_id, "from_id"), "to_id": _node_id(to_id, "to_id")}


def build_shortest_path(from_id: str, to_id: str) -> CypherQuery:
    text = (
        "MATCH (a), (b) WHERE id(a) = $from_id AND id(b) = $to_id\n"
        "MATCH p = shortestPath((a)-[*]->(b))"
        f"{_PATH_RETURN}"
    )
    return CypherQuery(text, _path_endpoints(from_id, to_id))


def build_all_paths(from_id: str, to_id: str, max_depth: int = DEFAULT_PATH_DEPTH) -> CypherQuery:
    """Directed paths up to ``max_depth`` hops, shortest first, at most 100 rows."""
    depth = max_depth if max_depth > 0 else DEFAULT_PATH_DEPTH
    text = (
        "MATCH (a), (b) WHERE id(a) = $from_id AND id(b) = $to_id\n"
        f"MATCH p = (a)-[*1..{depth}]->(b)"
        f"{_PATH_RETURN}"
        f"ORDER BY length ASC LIMIT {MAX_PATH_RESULTS}"
    )
    return CypherQuery(text, _path_endpoints(from_id, to_id))


# ── Organization ingest ──────────────────────────────────────────────

MERGE_ORGANIZATION = """
MERGE (org:Organization {login: $login})
SET org.name = $login, org.last_scanned = datetime()
RETURN id(org) AS id
"""

MERGE_REPOSITORY = """
MERGE (repo:Repository {full_name: $full_name})
SET repo.name = $name,
    repo.organization = $org_login,
    repo.default_branch = $default_branch,
    repo.has_codeowners_file = $has_codeowners_file,
    repo.codeowners_content = $codeowners_content,
    repo.codeowners_paths = $codeowners_paths,
    repo.last_updated = datetime()
WITH repo
MATCH (org:Organization {login: $org_login})
MERGE (org)-[:OWNS]->(repo)
RETURN id(repo) AS id
"""

MERGE_TEAM = """
MERGE (team:Team {slug: $slug})
SET team.id = $id,
    team.node_id = $node_id,
    team.name = $name,
    team.organization = $org_login,
    team.description = $description,
    team.privacy = $privacy,
    team.member_count = $member_count,
    team.type = 'team'
WITH team
MATCH (org:Organization {login: $org_login})
MERGE (org)-[:HAS_TEAM]->(team)
RETURN id(team) AS id
"""

MERGE_USER = """
MERGE (user:User {login: $login})
SET user.name = $login, user.type = 'user'
RETURN id(user) AS id
"""

MERGE_OWNER_TEAM = """
MERGE (team:Team {slug: $slug})
ON CREATE SET team.name = $slug
SET team.type = 'team'
RETURN id(team) AS id
"""

MERGE_USER_CODEOWNER = """
MATCH (repo:Repository {full_name: $repo_full_name})
MATCH (owner:User {login: $owner_login})
MERGE (repo)-[r:HAS_CODEOWNER {pattern: $pattern}]->(owner)
SET r.line = $line
RETURN id(r) AS id
"""

MERGE_TEAM_CODEOWNER = """
MATCH (repo:Repository {full_name: $repo_full_name})
MATCH (team:Team {slug: $team_slug})
MERGE (repo)-[r:HAS_TEAM_OWNER {pattern: $pattern}]->(team)
SET r.line = $line
RETURN id(r) AS id
"""

# ── Codeownership reads ──────────────────────────────────────────────

FIND_REPOSITORIES_BY_CODEOWNER = """
MATCH (repo:Repository)-[:HAS_CODEOWNER|HAS_TEAM_OWNER]->(owner)
WHERE owner.login = $owner OR owner.slug = $owner
RETURN DISTINCT id(repo) AS id, labels(repo) AS labels, properties(repo) AS properties
ORDER BY properties.full_name
"""

FIND_CODEOWNERS_BY_REPOSITORY = """
MATCH (repo:Repository {full_name: $full_name})-[:HAS_CODEOWNER|HAS_TEAM_OWNER]->(owner)
RETURN DISTINCT id(owner) AS id, labels(owner) AS labels, properties(owner) AS properties
ORDER BY properties.name
"""

CODEOWNERSHIP_STATS = """
MATCH (org:Organization {login: $login})-[:OWNS]->(repo:Repository)
OPTIONAL MATCH (repo)-[:HAS_CODEOWNER|HAS_TEAM_OWNER]->(owner)
RETURN
    count(DISTINCT repo) AS total_repos,
    count(DISTINCT CASE WHEN owner IS NOT NULL THEN repo END) AS repos_with_codeowners,
    count(DISTINCT owner) AS unique_owners,
    count(DISTINCT CASE WHEN owner:Team THEN owner END) AS team_owners,
    count(DISTINCT CASE WHEN owner:User THEN owner END) AS user_owners
"""


def build_find_repositories_by_codeowner(owner: str) -> CypherQuery:
    """``owner`` may be written as in CODEOWNERS (``@alice``, ``@org/team``) or bare."""
    require(bool(owner), "owner cannot be empty")
    cleaned = owner.removeprefix("@")
    if "/" in cleaned:
        cleaned = cleaned.split("/", 1)[1]
    return CypherQuery(FIND_REPOSITORIES_BY_CODEOWNER, {"owner": cleaned})


def build_find_codeowners_by_repository(full_name: str) -> CypherQuery:
    require(bool(full_name), "repository name cannot be empty")
    return CypherQuery(FIND_CODEOWNERS_BY_REPOSITORY, {"full_name": full_name})


def build_codeownership_stats(organization: str) -> CypherQuery:
    require(bool(organization), "organization cannot be empty")
    return CypherQuery(CODEOWNERSHIP_STATS, {"login": organization})


# ── Schema DDL ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class IndexDefinition:
    name: str
    label: str  # relationship type when for_relationship is set
    properties: tuple[str, ...]
    for_relationship: bool = False


@dataclass(frozen=True)
class ConstraintDefinition:
    name: str
    label: str
    properties: tuple[str, ...]
    kind: str = "unique"  # unique | exists | key


def _property_list(properties: tuple[str, ...], var: str = "n") -> str:
    return ", ".join(f"{var}.{p}" for p in properties)


def build_create_index(index: IndexDefinition) -> str:
    require(bool(index.properties), "index needs at least one property")
    label = _checked_label(index.label)
    var = "r" if index.for_relationship else "n"
    pattern = f"()-[r:{label}]-()" if index.for_relationship else f"(n:{label})"
    target = _property_list(index.properties, var)
    return f"CREATE INDEX {index.name} IF NOT EXISTS FOR {pattern} ON ({target})"


def build_create_constraint(constraint: ConstraintDefinition) -> str:
    require(bool(constraint.properties), "constraint needs at least one property")
    label = _checked_label(constraint.label)
    head = f"CREATE CONSTRAINT {constraint.name} IF NOT EXISTS FOR (n:{label})"
    if constraint.kind == "unique":
        if len(constraint.properties) == 1:
            return f"{head} REQUIRE n.{constraint.properties[0]} IS UNIQUE"
        return f"{head} REQUIRE ({_property_list(constraint.properties)}) IS UNIQUE"
    if constraint.kind == "exists":
        return f"{head} REQUIRE n.{constraint.properties[0]} IS NOT NULL"
    if constraint.kind == "key":
        return f"{head} REQUIRE ({_property_list(constraint.properties)}) IS NODE KEY"
    raise ContractViolation(f"unknown constraint kind: {constraint.kind}")


def build_drop_index(name: str) -> str:
    return f"DROP INDEX {_checked_label(name)} IF EXISTS"


def build_drop_constraint(name: str) -> str:
    return f"DROP CONSTRAINT {_checked_label(name)} IF EXISTS"


# ── Migration bookkeeping ────────────────────────────────────────────

GET_MIGRATION_VERSION = "MATCH (m:Migration {id: 'system'}) RETURN m.current_version AS version"

SET_MIGRATION_VERSION = """
MERGE (m:Migration {id: 'system'})
ON CREATE SET m.created_at = datetime()
SET m.current_version = $version, m.last_updated = datetime()
"""

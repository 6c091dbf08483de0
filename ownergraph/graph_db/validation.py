"""Request and relationship business-rule validation.

Runs before any query template is built. The first violated rule is raised
as an :class:`InputValidationError`; violations are not collected.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Callable, Mapping

from ownergraph.graph_db.models import GraphOperationRequest, Operation
from ownergraph.utils.exceptions import (
    InputValidationError,
    invalid_format_error,
    required_field_error,
)

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_NODE_ID_RE = re.compile(r"[+-]?[0-9]+")
_LABEL_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

PERMISSIONS = frozenset({"read", "write", "delete", "admin"})

Properties = Mapping[str, Any]


class RelationshipType(str, Enum):
    KNOWS = "KNOWS"
    WORKS_WITH = "WORKS_WITH"
    MANAGES = "MANAGES"
    REPORTS_TO = "REPORTS_TO"
    DEPENDS_ON = "DEPENDS_ON"
    CONNECTED_TO = "CONNECTED_TO"
    CONTAINS = "CONTAINS"
    BELONGS_TO = "BELONGS_TO"
    REFERENCES = "REFERENCES"
    FOLLOWS = "FOLLOWS"
    LIKES = "LIKES"
    OWNS = "OWNS"
    RELATES_TO = "RELATES_TO"
    CREATED = "CREATED"
    MODIFIED = "MODIFIED"
    HAS_PERMISSION = "HAS_PERMISSION"
    IS_MEMBER_OF = "IS_MEMBER_OF"
    APPROVED_BY = "APPROVED_BY"
    REVIEWED_BY = "REVIEWED_BY"
    HAS_CODEOWNER = "HAS_CODEOWNER"
    MAINTAINS = "MAINTAINS"
    CONTRIBUTES_TO = "CONTRIBUTES_TO"

    @property
    def allows_self_loop(self) -> bool:
        return self not in NO_SELF_LOOP_TYPES

    def validate(self, properties: Properties | None) -> None:
        if not properties:
            return
        check_common_properties(properties)
        rule = _TYPE_RULES.get(self)
        if rule is not None:
            rule(properties)


NO_SELF_LOOP_TYPES = frozenset({RelationshipType.MANAGES, RelationshipType.REPORTS_TO})


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def check_common_properties(properties: Properties) -> None:
    strength = _number(properties.get("strength"))
    if strength is not None and not 0.0 <= strength <= 1.0:
        raise InputValidationError("strength", "strength must be between 0.0 and 1.0")

    weight = _number(properties.get("weight"))
    if weight is not None and not weight >= 0.0:
        raise InputValidationError("weight", "weight must be non-negative")


def _check_since(properties: Properties) -> None:
    since = properties.get("since")
    if isinstance(since, str) and len(since) < 4:
        raise InputValidationError("since", "since date must be at least 4 characters")


def _check_management_level(properties: Properties) -> None:
    level = _number(properties.get("level"))
    if level is not None and not 1.0 <= level <= 10.0:
        raise InputValidationError("level", "management level must be between 1 and 10")


def _check_permission(properties: Properties) -> None:
    permission = properties.get("permission")
    if isinstance(permission, str) and permission not in PERMISSIONS:
        raise InputValidationError("permission", f"invalid permission type: {permission}")


_TYPE_RULES: dict[RelationshipType, Callable[[Properties], None]] = {
    RelationshipType.KNOWS: _check_since,
    RelationshipType.MANAGES: _check_management_level,
    RelationshipType.REPORTS_TO: _check_management_level,
    RelationshipType.HAS_PERMISSION: _check_permission,
}


# ── Identifiers ──────────────────────────────────────────────────────


def is_valid_node_id(value: str) -> bool:
    if not value or not _NODE_ID_RE.fullmatch(value):
        return False
    return _INT64_MIN <= int(value) <= _INT64_MAX


def validate_node_id(value: str, field_name: str = "node_id") -> None:
    if not value:
        raise required_field_error(field_name)
    if not is_valid_node_id(value):
        raise invalid_format_error(field_name, "a signed 64-bit integer")


def is_valid_label(value: str) -> bool:
    return bool(value) and _LABEL_RE.fullmatch(value) is not None


def parse_relationship_type(value: str) -> RelationshipType:
    if not value:
        raise required_field_error("rel_type")
    try:
        return RelationshipType(value)
    except ValueError:
        raise InputValidationError("rel_type", f"invalid relationship type: {value}") from None


# ── Per-operation validators ─────────────────────────────────────────


def validate_node_creation(request: GraphOperationRequest) -> None:
    if not request.label:
        raise required_field_error("label")
    if not is_valid_label(request.label):
        raise invalid_format_error("label", "an identifier of letters, digits and underscores")
    if request.properties is None:
        raise InputValidationError("properties", "node properties cannot be nil")


def validate_node_retrieval(request: GraphOperationRequest) -> None:
    validate_node_id(request.node_id)


def validate_node_update(request: GraphOperationRequest) -> None:
    validate_node_id(request.node_id)
    if request.properties is None:
        raise InputValidationError("properties", "properties cannot be nil")


def validate_relationship_creation(request: GraphOperationRequest) -> RelationshipType:
    if not request.from_id:
        raise required_field_error("from_id")
    if not request.to_id:
        raise required_field_error("to_id")
    if not request.rel_type:
        raise required_field_error("rel_type")
    validate_node_id(request.from_id, "from_id")
    validate_node_id(request.to_id, "to_id")
    return validate_relationship_business_rules(request)


def validate_relationship_business_rules(request: GraphOperationRequest) -> RelationshipType:
    rel_type = parse_relationship_type(request.rel_type)
    rel_type.validate(request.properties)
    if int(request.from_id) == int(request.to_id) and not rel_type.allows_self_loop:
        raise InputValidationError(
            "to_id", f"self-relationships not allowed for type: {rel_type.value}"
        )
    return rel_type


def validate_relationship_retrieval(request: GraphOperationRequest) -> None:
    validate_node_id(request.node_id, "relationship_id")


def validate_relationship_update(request: GraphOperationRequest) -> None:
    validate_node_id(request.node_id, "relationship_id")
    if request.properties is None:
        raise InputValidationError("properties", "properties cannot be nil")
    if request.rel_type:
        parse_relationship_type(request.rel_type).validate(request.properties)
    else:
        check_common_properties(request.properties)


def validate_query(request: GraphOperationRequest) -> None:
    if not request.query.strip():
        raise required_field_error("query")


_VALIDATORS: dict[Operation, Callable[[GraphOperationRequest], object]] = {
    Operation.CREATE_NODE: validate_node_creation,
    Operation.GET_NODE: validate_node_retrieval,
    Operation.UPDATE_NODE: validate_node_update,
    Operation.DELETE_NODE: validate_node_retrieval,
    Operation.CREATE_RELATIONSHIP: validate_relationship_creation,
    Operation.GET_RELATIONSHIP: validate_relationship_retrieval,
    Operation.UPDATE_RELATIONSHIP: validate_relationship_update,
    Operation.DELETE_RELATIONSHIP: validate_relationship_retrieval,
    Operation.QUERY: validate_query,
}


def validate_request(request: GraphOperationRequest) -> None:
    _VALIDATORS[request.operation](request)

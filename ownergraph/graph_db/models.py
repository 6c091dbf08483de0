"""Graph primitives and operation requests."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Operation(str, Enum):
    CREATE_NODE = "create_node"
    GET_NODE = "get_node"
    UPDATE_NODE = "update_node"
    DELETE_NODE = "delete_node"
    CREATE_RELATIONSHIP = "create_relationship"
    GET_RELATIONSHIP = "get_relationship"
    UPDATE_RELATIONSHIP = "update_relationship"
    DELETE_RELATIONSHIP = "delete_relationship"
    QUERY = "query"


class Direction(str, Enum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"
    BOTH = "both"


class GraphOperationRequest(BaseModel):
    operation: Operation
    label: str = ""
    node_id: str = ""
    from_id: str = ""
    to_id: str = ""
    rel_type: str = ""
    properties: dict[str, Any] | None = None
    query: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)
    read_only: bool = False


class Node(BaseModel):
    id: str
    labels: list[str] = Field(default_factory=list)
    properties: dict[str, Any] = Field(default_factory=dict)


class Relationship(BaseModel):
    id: str
    type: str
    from_id: str
    to_id: str
    properties: dict[str, Any] = Field(default_factory=dict)


class GraphPath(BaseModel):
    nodes: list[Node] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    length: int = 0


class BatchOperation(BaseModel):
    """One pre-built statement inside a transactional batch."""

    type: str
    query: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class BatchReport(BaseModel):
    total_batches: int = 0
    successful_batches: int = 0
    failed_batches: int = 0
    operations_applied: int = 0
    errors: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed_batches == 0

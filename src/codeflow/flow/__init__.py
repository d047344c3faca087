"""codeflow.flow - Flow document model, validation and mutations.

- model: Flow, Phase, Node and friends with dict round-tripping
- node_data: typed views of a node's ``data`` keyed by NodeType
- validation: validate_flow linter
- merge: deep_merge and id-preserving variants
- store: FlowStore, one JSON file per flow
- mutations: targeted load/modify/persist operations
- patch: RFC 6902 patch application with rollback on invalid results
"""

from codeflow.flow.errors import (
    CodeflowError,
    ConflictError,
    MalformedInputError,
    NotFoundError,
    PatchOperationError,
    ValidationFailedError,
)
from codeflow.flow.merge import deep_merge, merge_preserving_id
from codeflow.flow.model import (
    FORMAT_VERSION,
    ChangelogEntry,
    CodeRef,
    Edge,
    Flow,
    Metadata,
    Node,
    Phase,
    Summary,
)
from codeflow.flow.node_data import NodeData, NodeType, parse_node_data
from codeflow.flow.store import FlowStore
from codeflow.flow.validation import ValidationError, ValidationResult, validate_flow

__all__ = [
    "FORMAT_VERSION",
    "ChangelogEntry",
    "CodeRef",
    "CodeflowError",
    "ConflictError",
    "Edge",
    "Flow",
    "FlowStore",
    "MalformedInputError",
    "Metadata",
    "Node",
    "NodeData",
    "NodeType",
    "NotFoundError",
    "PatchOperationError",
    "Phase",
    "Summary",
    "ValidationError",
    "ValidationFailedError",
    "ValidationResult",
    "deep_merge",
    "merge_preserving_id",
    "parse_node_data",
    "validate_flow",
]

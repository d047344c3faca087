"""Typed views over a node's ``data`` record.

The shape of ``data`` depends on the node's ``type``. Each known type has
a dataclass listing the fields documented for it; any other key lands in
``extra``. Nodes whose type is not in :class:`NodeType` get an
:class:`OpaqueData` holding the record untouched, so custom types written
by newer tools still load.

The views are read-only projections. The stored document keeps ``data``
as a plain dict, which is what the merge and patch paths operate on.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar


class NodeType(Enum):
    """Kinds of step a flow node can describe."""

    INPUT = "input"
    OUTPUT = "output"
    VALIDATION = "validation"
    TRANSFORM = "transform"
    QUERY = "query"
    LOGIC = "logic"
    COMMAND = "command"
    EVENT = "event"
    EXTERNAL = "external"
    CONDITION = "condition"

    @classmethod
    def parse(cls, value: Any) -> NodeType | None:
        """Return the member for ``value``, or None for unknown types."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class NodeData:
    """Base for all typed data variants."""

    extra: dict[str, Any] = field(default_factory=dict)

    node_type: ClassVar[NodeType | None] = None
    descriptions: ClassVar[dict[str, str]] = {}

    @classmethod
    def known_fields(cls) -> list[str]:
        return [f.name for f in fields(cls) if f.name != "extra"]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeData:
        known = cls.known_fields()
        kwargs = {name: data[name] for name in known if name in data}
        extra = {k: v for k, v in data.items() if k not in known}
        return cls(extra=extra, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for name in self.known_fields():
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        result.update(self.extra)
        return result


@dataclass
class InputData(NodeData):
    source: str | None = None
    fields: list[Any] | None = None
    example: Any = None

    node_type: ClassVar[NodeType | None] = NodeType.INPUT
    descriptions: ClassVar[dict[str, str]] = {
        "source": "Where the data enters (request body, CLI arg, queue...)",
        "fields": "Fields received, as names or {name, type} objects",
        "example": "Sample payload",
    }


@dataclass
class OutputData(NodeData):
    target: str | None = None
    fields: list[Any] | None = None
    status: Any = None

    node_type: ClassVar[NodeType | None] = NodeType.OUTPUT
    descriptions: ClassVar[dict[str, str]] = {
        "target": "Who receives the result",
        "fields": "Fields returned",
        "status": "Status code or outcome marker",
    }


@dataclass
class ValidationData(NodeData):
    rules: list[Any] | None = None
    errors: list[Any] | None = None

    node_type: ClassVar[NodeType | None] = NodeType.VALIDATION
    descriptions: ClassVar[dict[str, str]] = {
        "rules": "Checks applied to the input",
        "errors": "Errors raised when a check fails",
    }


@dataclass
class TransformData(NodeData):
    operation: str | None = None
    input: Any = None
    output: Any = None

    node_type: ClassVar[NodeType | None] = NodeType.TRANSFORM
    descriptions: ClassVar[dict[str, str]] = {
        "operation": "What the transformation does",
        "input": "Shape before",
        "output": "Shape after",
    }


@dataclass
class QueryData(NodeData):
    target: str | None = None
    operation: str | None = None
    query: Any = None

    node_type: ClassVar[NodeType | None] = NodeType.QUERY
    descriptions: ClassVar[dict[str, str]] = {
        "target": "Table, collection or service queried",
        "operation": "read, insert, update, delete...",
        "query": "Query text or filter object",
    }


@dataclass
class LogicData(NodeData):
    description: str | None = None
    steps: list[Any] | None = None

    node_type: ClassVar[NodeType | None] = NodeType.LOGIC
    descriptions: ClassVar[dict[str, str]] = {
        "description": "Business rule applied",
        "steps": "Ordered sub-steps",
    }


@dataclass
class CommandData(NodeData):
    action: str | None = None
    target: str | None = None
    params: Any = None

    node_type: ClassVar[NodeType | None] = NodeType.COMMAND
    descriptions: ClassVar[dict[str, str]] = {
        "action": "Side effect performed",
        "target": "What it acts on",
        "params": "Arguments passed",
    }


@dataclass
class EventData(NodeData):
    event: str | None = None
    payload: Any = None
    channel: str | None = None

    node_type: ClassVar[NodeType | None] = NodeType.EVENT
    descriptions: ClassVar[dict[str, str]] = {
        "event": "Event name",
        "payload": "Data carried by the event",
        "channel": "Topic, queue or bus",
    }


@dataclass
class ExternalData(NodeData):
    service: str | None = None
    endpoint: str | None = None
    method: str | None = None

    node_type: ClassVar[NodeType | None] = NodeType.EXTERNAL
    descriptions: ClassVar[dict[str, str]] = {
        "service": "Third-party system called",
        "endpoint": "URL or operation name",
        "method": "Protocol verb",
    }


@dataclass
class ConditionData(NodeData):
    condition: str | None = None
    branches: list[Any] | None = None

    node_type: ClassVar[NodeType | None] = NodeType.CONDITION
    descriptions: ClassVar[dict[str, str]] = {
        "condition": "Expression evaluated",
        "branches": "Outcomes as {when, goto} objects",
    }


@dataclass
class OpaqueData(NodeData):
    """Data for a node type this version does not know about."""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeData:
        return cls(extra=dict(data))


DATA_VARIANTS: dict[NodeType, type[NodeData]] = {
    variant.node_type: variant
    for variant in (
        InputData,
        OutputData,
        ValidationData,
        TransformData,
        QueryData,
        LogicData,
        CommandData,
        EventData,
        ExternalData,
        ConditionData,
    )
}


def parse_node_data(node_type: Any, data: Any) -> NodeData:
    """Build the typed view of ``data`` for a node of ``node_type``.

    Non-dict ``data`` yields an empty :class:`OpaqueData`; the validator is
    the place that reports it.
    """
    if not isinstance(data, dict):
        return OpaqueData()
    kind = NodeType.parse(node_type)
    if kind is None:
        return OpaqueData.from_dict(data)
    return DATA_VARIANTS[kind].from_dict(data)


def describe_node_types() -> list[dict[str, Any]]:
    """List every known node type with its documented data fields."""
    return [
        {
            "type": kind.value,
            "dataFields": [
                {"name": name, "description": variant.descriptions.get(name, "")}
                for name in variant.known_fields()
            ],
        }
        for kind, variant in DATA_VARIANTS.items()
    ]

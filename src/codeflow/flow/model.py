"""Flow document model.

Dataclasses mirroring the persisted ``.cf`` JSON layout:

- Flow: root document (summary, ordered phases, ordered nodes, extras)
- Phase: ordered grouping of node ids
- Node: typed step with free-form ``data`` and an optional code reference
- Edge, Metadata, ChangelogEntry, CodeRef, Summary

Every type converts with ``from_dict`` / ``to_dict``. Keys the model does
not know are kept in ``extra`` and written back, so loading and saving a
document never drops content. Optional fields set to None are omitted on
output.

The model only navigates. Lookups raise :class:`NotFoundError` rather than
returning a default.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from codeflow.flow.errors import MalformedInputError, NotFoundError
from codeflow.flow.node_data import NodeData, NodeType, parse_node_data

FORMAT_VERSION = "2.0"


def _split(data: dict[str, Any], known: tuple[str, ...]) -> dict[str, Any]:
    """Return the entries of ``data`` whose keys are not in ``known``."""
    return {k: v for k, v in data.items() if k not in known}


def _emit(result: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        result[key] = value


def _require_dict(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise MalformedInputError(f"{where} must be an object")
    return value


def _require_list(value: Any, where: str) -> list[Any]:
    if not isinstance(value, list):
        raise MalformedInputError(f"{where} must be a list")
    return value


@dataclass
class Summary:
    """The three required free-text descriptions of a flow."""

    input: str | None = None
    output: str | None = None
    purpose: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("input", "output", "purpose")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Summary:
        return cls(
            input=data.get("input"),
            output=data.get("output"),
            purpose=data.get("purpose"),
            extra=_split(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        _emit(result, "input", self.input)
        _emit(result, "output", self.output)
        _emit(result, "purpose", self.purpose)
        result.update(self.extra)
        return result


@dataclass
class CodeRef:
    """Pointer from a node to the source it documents."""

    file: str | None = None
    function: str | None = None
    class_name: str | None = None
    line: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("file", "function", "class", "line")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CodeRef:
        return cls(
            file=data.get("file"),
            function=data.get("function"),
            class_name=data.get("class"),
            line=data.get("line"),
            extra=_split(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        _emit(result, "file", self.file)
        _emit(result, "function", self.function)
        _emit(result, "class", self.class_name)
        _emit(result, "line", self.line)
        result.update(self.extra)
        return result


@dataclass
class Node:
    """A typed step within a flow.

    Attributes:
        id: Unique within the document.
        type: Raw type string; see :attr:`node_type` for the enum.
        label: Short human-readable name.
        data: Type-dependent record, kept as a plain dict.
        phase: Optional back-reference to the owning phase id.
        ref: Optional source-code pointer. A non-object value is kept
            verbatim.
    """

    id: str | None
    type: str | None
    label: str | None
    data: dict[str, Any] | None = None
    phase: str | None = None
    ref: CodeRef | Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("id", "type", "label", "phase", "data", "ref")

    @property
    def node_type(self) -> NodeType | None:
        """The node's type as an enum member, or None for custom types."""
        return NodeType.parse(self.type)

    @property
    def payload(self) -> NodeData:
        """Typed view of :attr:`data` selected by :attr:`type`."""
        return parse_node_data(self.type, self.data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        data = _require_dict(data, "node")
        ref = data.get("ref")
        return cls(
            id=data.get("id"),
            type=data.get("type"),
            label=data.get("label"),
            data=data.get("data"),
            phase=data.get("phase"),
            ref=CodeRef.from_dict(ref) if isinstance(ref, dict) else ref,
            extra=_split(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        _emit(result, "id", self.id)
        _emit(result, "type", self.type)
        _emit(result, "label", self.label)
        _emit(result, "phase", self.phase)
        _emit(result, "data", self.data)
        if isinstance(self.ref, CodeRef):
            result["ref"] = self.ref.to_dict()
        else:
            _emit(result, "ref", self.ref)
        result.update(self.extra)
        return result


@dataclass
class Phase:
    """An ordered, named stage of a flow.

    ``nodes`` is a sequence, not a set: its order is the traversal order
    within the phase.
    """

    id: str | None
    name: str | None = None
    description: str | None = None
    nodes: list[str] = field(default_factory=list)
    input: str | None = None
    output: str | None = None
    is_async: bool | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("id", "name", "description", "nodes", "input", "output", "async")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Phase:
        data = _require_dict(data, "phase")
        nodes = data.get("nodes")
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            description=data.get("description"),
            nodes=list(_require_list(nodes, f"phase '{data.get('id')}' nodes"))
            if nodes is not None
            else [],
            input=data.get("input"),
            output=data.get("output"),
            is_async=data.get("async"),
            extra=_split(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        _emit(result, "id", self.id)
        _emit(result, "name", self.name)
        _emit(result, "description", self.description)
        result["nodes"] = list(self.nodes)
        _emit(result, "input", self.input)
        _emit(result, "output", self.output)
        _emit(result, "async", self.is_async)
        result.update(self.extra)
        return result


@dataclass
class Edge:
    """Explicit connection between two nodes."""

    from_id: str | None
    to_id: str | None
    label: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("from", "to", "label")

    def touches(self, node_id: str) -> bool:
        """Check whether either endpoint is ``node_id``."""
        return self.from_id == node_id or self.to_id == node_id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Edge:
        data = _require_dict(data, "edge")
        return cls(
            from_id=data.get("from"),
            to_id=data.get("to"),
            label=data.get("label"),
            extra=_split(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"from": self.from_id, "to": self.to_id}
        _emit(result, "label", self.label)
        result.update(self.extra)
        return result


@dataclass
class ChangelogEntry:
    date: str | None = None
    changes: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("date", "changes")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChangelogEntry:
        return cls(
            date=data.get("date"),
            changes=data.get("changes"),
            extra=_split(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        _emit(result, "date", self.date)
        _emit(result, "changes", self.changes)
        result.update(self.extra)
        return result


@dataclass
class Metadata:
    """Free-form document metadata with a few well-known keys."""

    author: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    tags: list[str] | None = None
    changelog: list[ChangelogEntry | Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("author", "createdAt", "updatedAt", "tags", "changelog")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Metadata:
        data = _require_dict(data, "metadata")
        changelog = data.get("changelog")
        entries = None
        if changelog is not None:
            # free-text entries are carried through as-is
            entries = [
                ChangelogEntry.from_dict(item) if isinstance(item, dict) else item
                for item in _require_list(changelog, "metadata.changelog")
            ]
        return cls(
            author=data.get("author"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            tags=data.get("tags"),
            changelog=entries,
            extra=_split(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        _emit(result, "author", self.author)
        _emit(result, "createdAt", self.created_at)
        _emit(result, "updatedAt", self.updated_at)
        _emit(result, "tags", self.tags)
        if self.changelog is not None:
            result["changelog"] = [
                entry.to_dict() if isinstance(entry, ChangelogEntry) else entry
                for entry in self.changelog
            ]
        result.update(self.extra)
        return result


@dataclass
class Flow:
    """Root flow document."""

    version: str | None
    id: str | None
    name: str | None
    summary: Summary | Any = None
    phases: list[Phase] = field(default_factory=list)
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] | None = None
    contracts: list[Any] | None = None
    links: list[Any] | None = None
    metadata: Metadata | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = (
        "version",
        "id",
        "name",
        "summary",
        "phases",
        "nodes",
        "edges",
        "contracts",
        "links",
        "metadata",
    )

    # ─────────────────────────────────────────────────────────────────────
    # Conversion
    # ─────────────────────────────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Any) -> Flow:
        """Build a Flow from parsed JSON.

        Raises:
            MalformedInputError: If the root, ``phases``, ``nodes`` or
                ``edges`` have the wrong container type.
        """
        data = _require_dict(data, "flow")
        summary = data.get("summary")
        edges = data.get("edges")
        metadata = data.get("metadata")
        return cls(
            version=data.get("version"),
            id=data.get("id"),
            name=data.get("name"),
            summary=Summary.from_dict(summary) if isinstance(summary, dict) else summary,
            phases=[Phase.from_dict(p) for p in _require_list(data.get("phases", []), "phases")],
            nodes=[Node.from_dict(n) for n in _require_list(data.get("nodes", []), "nodes")],
            edges=[Edge.from_dict(e) for e in _require_list(edges, "edges")]
            if edges is not None
            else None,
            contracts=data.get("contracts"),
            links=data.get("links"),
            metadata=Metadata.from_dict(metadata) if metadata is not None else None,
            extra=_split(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        _emit(result, "version", self.version)
        _emit(result, "id", self.id)
        _emit(result, "name", self.name)
        if isinstance(self.summary, Summary):
            result["summary"] = self.summary.to_dict()
        else:
            _emit(result, "summary", self.summary)
        result["phases"] = [p.to_dict() for p in self.phases]
        result["nodes"] = [n.to_dict() for n in self.nodes]
        if self.edges is not None:
            result["edges"] = [e.to_dict() for e in self.edges]
        _emit(result, "contracts", self.contracts)
        _emit(result, "links", self.links)
        if self.metadata is not None:
            result["metadata"] = self.metadata.to_dict()
        result.update(self.extra)
        return result

    # ─────────────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────────────

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes if isinstance(n.id, str)}

    def has_node(self, node_id: str) -> bool:
        return any(n.id == node_id for n in self.nodes)

    def node_index(self, node_id: str) -> int:
        for i, node in enumerate(self.nodes):
            if node.id == node_id:
                return i
        raise NotFoundError(f"Node '{node_id}' not found in flow '{self.id}'", node_id)

    def get_node(self, node_id: str) -> Node:
        return self.nodes[self.node_index(node_id)]

    def phase_index(self, phase_id: str) -> int:
        for i, phase in enumerate(self.phases):
            if phase.id == phase_id:
                return i
        raise NotFoundError(f"Phase '{phase_id}' not found in flow '{self.id}'", phase_id)

    def get_phase(self, phase_id: str) -> Phase:
        return self.phases[self.phase_index(phase_id)]

    def find_phase_for_node(self, node_id: str) -> Phase | None:
        """Return the first phase listing ``node_id``.

        A node is not required to belong to a phase, so absence is a
        normal answer here rather than an error.
        """
        for phase in self.phases:
            if node_id in phase.nodes:
                return phase
        return None

    def nodes_in_phase(self, phase_id: str) -> list[Node]:
        """Nodes of a phase, in the phase's traversal order."""
        phase = self.get_phase(phase_id)
        by_id = {n.id: n for n in self.nodes}
        return [by_id[nid] for nid in phase.nodes if nid in by_id]

"""Targeted flow mutations.

Each operation is a whole-document load, modify, persist cycle against a
:class:`FlowStore`. The document is the unit of atomicity: on any error
nothing is written. These operations trust the caller's payload shape and
do not revalidate the result (``patch_flow`` in :mod:`codeflow.flow.patch`
is the guarded path).

Every successful operation returns a :class:`MutationEntry` recording what
changed.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from codeflow.flow.errors import ConflictError, MalformedInputError, NotFoundError
from codeflow.flow.merge import merge_preserving_id, shallow_merge_preserving_id
from codeflow.flow.model import ChangelogEntry, Flow
from codeflow.flow.store import FlowStore

REQUIRED_NODE_FIELDS = ("id", "type", "label", "data")


@dataclass
class MutationEntry:
    """Record of one applied mutation.

    Attributes:
        operation: Operation name (e.g., "update_node", "patch_flow").
        target_id: Flow, node or phase id the operation addressed.
        before_state: Relevant state before the change.
        after_state: Relevant state after the change.
        filename: Flow file that was rewritten.
        id: Unique mutation id (UUID4 hex).
        timestamp: When the mutation was applied.
    """

    operation: str
    target_id: str
    before_state: dict[str, Any]
    after_state: dict[str, Any]
    filename: str = ""
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"[{self.id[:8]}] {self.operation}({self.target_id})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "operation": self.operation,
            "target_id": self.target_id,
            "filename": self.filename,
            "before_state": self.before_state,
            "after_state": self.after_state,
            "timestamp": self.timestamp.isoformat(),
        }


def _require_mapping(value: Any, name: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise MalformedInputError(f"'{name}' must be an object")
    return value


def _load(store: FlowStore, filename: str) -> tuple[dict[str, Any], Flow]:
    """Load the stored JSON and a model view of it for lookups.

    The model's ``phases``, ``nodes`` and ``edges`` line up index for index
    with the raw lists, so positions found on the model address the raw
    document. Edits go to the raw document only.
    """
    doc = store.load_document(filename)
    return doc, Flow.from_dict(doc)


# ─────────────────────────────────────────────────────────────────────────────
# Reads
# ─────────────────────────────────────────────────────────────────────────────


def read_node(store: FlowStore, filename: str, node_id: str) -> dict[str, Any]:
    """Return one node and the phase that lists it (``None`` if none does)."""
    doc, flow = _load(store, filename)
    index = flow.node_index(node_id)
    phase = flow.find_phase_for_node(node_id)
    return {
        "node": doc["nodes"][index],
        "phase": {"id": phase.id, "name": phase.name} if phase else None,
    }


def read_phase(
    store: FlowStore, filename: str, phase_id: str, include_nodes: bool = False
) -> dict[str, Any]:
    """Return one phase, optionally with its nodes in traversal order."""
    doc, flow = _load(store, filename)
    index = flow.phase_index(phase_id)
    result: dict[str, Any] = {"phase": doc["phases"][index]}
    if include_nodes:
        by_id = {node.id: i for i, node in enumerate(flow.nodes)}
        result["nodes"] = [
            doc["nodes"][by_id[nid]] for nid in flow.phases[index].nodes if nid in by_id
        ]
    return result


# ─────────────────────────────────────────────────────────────────────────────
# Node mutations
# ─────────────────────────────────────────────────────────────────────────────


def update_node(
    store: FlowStore, filename: str, node_id: str, updates: dict[str, Any]
) -> MutationEntry:
    """Deep-merge ``updates`` into a node.

    Lists in ``updates`` replace the node's lists. The node id cannot be
    changed through this path.

    Raises:
        NotFoundError: If the flow or node does not exist.
    """
    updates = _require_mapping(updates, "updates")
    doc, flow = _load(store, filename)
    index = flow.node_index(node_id)

    before = doc["nodes"][index]
    merged = merge_preserving_id(before, updates)
    doc["nodes"][index] = merged

    store.save_document(filename, doc)
    return MutationEntry(
        operation="update_node",
        target_id=node_id,
        before_state=before,
        after_state=merged,
        filename=store.normalize_filename(filename),
    )


def add_node(
    store: FlowStore,
    filename: str,
    node: dict[str, Any],
    phase_id: str | None = None,
    after_node_id: str | None = None,
) -> MutationEntry:
    """Insert a new node, optionally into a phase after a given node.

    Without ``after_node_id`` the id is appended to the phase's list.

    Raises:
        MalformedInputError: If ``id``, ``type``, ``label`` or ``data`` is
            missing. Checked before the flow is read.
        ConflictError: If a node with the same id exists.
        NotFoundError: If the flow, the phase, or ``after_node_id`` within
            that phase does not exist.
    """
    node = _require_mapping(node, "node")
    missing = [key for key in REQUIRED_NODE_FIELDS if not node.get(key) and node.get(key) != {}]
    if missing:
        raise MalformedInputError(
            f"Node must have: {', '.join(REQUIRED_NODE_FIELDS)} (missing: {', '.join(missing)})"
        )
    if not isinstance(node["data"], dict):
        raise MalformedInputError("Node 'data' must be an object")

    doc, flow = _load(store, filename)
    node_id = node["id"]
    if flow.has_node(node_id):
        raise ConflictError(f"A node with id '{node_id}' already exists")

    new_node = copy.deepcopy(node)
    position: int | None = None
    if phase_id:
        phase = doc["phases"][flow.phase_index(phase_id)]
        members = phase.get("nodes")
        if members is None:
            members = phase["nodes"] = []
        if after_node_id:
            if after_node_id not in members:
                raise NotFoundError(
                    f"Node '{after_node_id}' not found in phase '{phase_id}'", after_node_id
                )
            position = members.index(after_node_id) + 1
            members.insert(position, node_id)
        else:
            members.append(node_id)
            position = len(members) - 1
        new_node["phase"] = phase_id

    nodes = doc.get("nodes")
    if nodes is None:
        nodes = doc["nodes"] = []
    nodes.append(new_node)
    store.save_document(filename, doc)
    return MutationEntry(
        operation="add_node",
        target_id=node_id,
        before_state={},
        after_state={
            "node": new_node,
            "phase": phase_id,
            "position": position,
            "total_nodes": len(nodes),
        },
        filename=store.normalize_filename(filename),
    )


def delete_node(store: FlowStore, filename: str, node_id: str) -> MutationEntry:
    """Remove a node along with its phase memberships and edges.

    Phase cleanup is best effort: a phase that does not list the node is
    left alone.

    Raises:
        NotFoundError: If the flow or node does not exist.
    """
    doc, flow = _load(store, filename)
    index = flow.node_index(node_id)
    removed = doc["nodes"].pop(index)

    phases_touched: list[str] = []
    for phase, raw_phase in zip(flow.phases, doc.get("phases", [])):
        if node_id in phase.nodes:
            raw_phase["nodes"] = [nid for nid in raw_phase["nodes"] if nid != node_id]
            phases_touched.append(phase.id)

    edges_removed: list[dict[str, Any]] = []
    if flow.edges is not None:
        kept = []
        for edge, raw_edge in zip(flow.edges, doc["edges"]):
            if edge.touches(node_id):
                edges_removed.append(raw_edge)
            else:
                kept.append(raw_edge)
        doc["edges"] = kept

    store.save_document(filename, doc)
    return MutationEntry(
        operation="delete_node",
        target_id=node_id,
        before_state={
            "node": removed,
            "index": index,
            "phases": phases_touched,
            "edges": edges_removed,
        },
        after_state={"remaining_nodes": len(doc["nodes"])},
        filename=store.normalize_filename(filename),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Phase and metadata mutations
# ─────────────────────────────────────────────────────────────────────────────


def update_phase(
    store: FlowStore, filename: str, phase_id: str, updates: dict[str, Any]
) -> MutationEntry:
    """Shallow-merge ``updates`` into a phase, keeping its id.

    Unlike :func:`update_node` nested objects are replaced, not merged.

    Raises:
        NotFoundError: If the flow or phase does not exist.
    """
    updates = _require_mapping(updates, "updates")
    doc, flow = _load(store, filename)
    index = flow.phase_index(phase_id)

    before = doc["phases"][index]
    merged = shallow_merge_preserving_id(before, updates)
    doc["phases"][index] = merged

    store.save_document(filename, doc)
    return MutationEntry(
        operation="update_phase",
        target_id=phase_id,
        before_state=before,
        after_state=merged,
        filename=store.normalize_filename(filename),
    )


def update_metadata(
    store: FlowStore,
    filename: str,
    updates: dict[str, Any] | None = None,
    append_changelog: str | None = None,
    now: datetime | None = None,
) -> MutationEntry:
    """Shallow-merge metadata, stamp ``updatedAt``, optionally log a change.

    Existing changelog entries are kept as stored; the new entry goes last.

    Args:
        updates: Keys to set on the metadata object (created if absent).
        append_changelog: Text of a changelog entry dated today.
        now: Clock override, mainly for tests.
    """
    updates = _require_mapping(updates or {}, "metadata")
    now = now or datetime.now(timezone.utc)
    doc, flow = _load(store, filename)

    before = doc.get("metadata") or {}
    merged = dict(before)
    merged.update(copy.deepcopy(updates))
    merged["updatedAt"] = now.isoformat().replace("+00:00", "Z")

    if append_changelog:
        entry = ChangelogEntry(date=now.date().isoformat(), changes=append_changelog)
        changelog = merged.get("changelog")
        if not isinstance(changelog, list):
            changelog = []
        merged["changelog"] = [*changelog, entry.to_dict()]
    doc["metadata"] = merged

    store.save_document(filename, doc)
    return MutationEntry(
        operation="update_metadata",
        target_id=flow.id or store.normalize_filename(filename),
        before_state=before,
        after_state=merged,
        filename=store.normalize_filename(filename),
    )

"""Flow document validator.

``validate_flow`` is a linter, not a parser: it accepts a document of any
shape, runs every rule, and returns all violations with a dot/bracket path
(``phases[1].nodes[0]``) and a reason. It never raises for malformed
input. Wrong types are reported as violations.

Rule order:

1. root fields: ``version`` (must equal the format tag), ``id``, ``name``
2. ``summary`` object with non-empty ``input``, ``output``, ``purpose``
3. ``phases`` array; per phase ``id`` (unique), ``name``, ``description``,
   ``nodes`` array
4. ``nodes`` array; per node ``id`` (unique), ``type``, ``label``,
   ``data`` object
5. every id listed in a ``phases[i].nodes`` must name an existing node
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from codeflow.flow.model import FORMAT_VERSION


@dataclass(frozen=True)
class ValidationError:
    """A single schema violation.

    Attributes:
        path: Location in the document, e.g. ``nodes[2].data``.
        message: Human-readable reason.
    """

    path: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message}

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass
class ValidationResult:
    """Outcome of validating one document."""

    errors: list[ValidationError] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def add(self, path: str, message: str) -> None:
        self.errors.append(ValidationError(path, message))

    def format_errors(self) -> str:
        return "\n".join(f"  - {e.path}: {e.message}" for e in self.errors)

    def summary_text(self, expected_version: str = FORMAT_VERSION) -> str:
        if self.valid:
            return f"Flow is valid against format {expected_version}"
        return f"Found {len(self.errors)} validation error(s)"

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": [e.to_dict() for e in self.errors]}


def _is_present_string(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _is_present(value: Any) -> bool:
    """Mirror JSON truthiness: missing, null, false, 0 and "" are absent."""
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (int, float)):
        return value != 0
    return True


def _check_root(doc: dict[str, Any], result: ValidationResult, expected_version: str) -> None:
    if doc.get("version") != expected_version:
        result.add("version", f"Must be '{expected_version}'")
    if not _is_present_string(doc.get("id")):
        result.add("id", "Required string field")
    if not _is_present_string(doc.get("name")):
        result.add("name", "Required string field")


def _check_summary(doc: dict[str, Any], result: ValidationResult) -> None:
    summary = doc.get("summary")
    if not isinstance(summary, dict):
        result.add("summary", "Required object")
        return
    for key in ("input", "output", "purpose"):
        if not _is_present(summary.get(key)):
            result.add(f"summary.{key}", "Required")


def _check_identity(
    item: dict[str, Any], path: str, seen: set[str], result: ValidationResult
) -> None:
    """Check ``item['id']`` is present and not already in ``seen``."""
    item_id = item.get("id")
    if not _is_present(item_id):
        result.add(f"{path}.id", "Required")
        return
    if not isinstance(item_id, str):
        result.add(f"{path}.id", "Must be a string")
        return
    if item_id in seen:
        result.add(f"{path}.id", "Duplicate ID")
    seen.add(item_id)


def _check_phases(doc: dict[str, Any], result: ValidationResult) -> None:
    phases = doc.get("phases")
    if not isinstance(phases, list):
        result.add("phases", "Must be an array")
        return
    seen: set[str] = set()
    for i, phase in enumerate(phases):
        path = f"phases[{i}]"
        if not isinstance(phase, dict):
            result.add(path, "Must be an object")
            continue
        _check_identity(phase, path, seen, result)
        if not _is_present(phase.get("name")):
            result.add(f"{path}.name", "Required")
        if not _is_present(phase.get("description")):
            result.add(f"{path}.description", "Required")
        if not isinstance(phase.get("nodes"), list):
            result.add(f"{path}.nodes", "Must be array")


def _check_nodes(doc: dict[str, Any], result: ValidationResult) -> set[str] | None:
    """Validate the node list and return the set of node ids seen."""
    nodes = doc.get("nodes")
    if not isinstance(nodes, list):
        result.add("nodes", "Must be an array")
        return None
    seen: set[str] = set()
    for i, node in enumerate(nodes):
        path = f"nodes[{i}]"
        if not isinstance(node, dict):
            result.add(path, "Must be an object")
            continue
        _check_identity(node, path, seen, result)
        if not _is_present(node.get("type")):
            result.add(f"{path}.type", "Required")
        if not _is_present(node.get("label")):
            result.add(f"{path}.label", "Required")
        if not isinstance(node.get("data"), dict):
            result.add(f"{path}.data", "Required object")
    return seen


def _check_phase_references(
    doc: dict[str, Any], node_ids: set[str], result: ValidationResult
) -> None:
    phases = doc.get("phases")
    if not isinstance(phases, list):
        return
    for pi, phase in enumerate(phases):
        if not isinstance(phase, dict) or not isinstance(phase.get("nodes"), list):
            continue
        for ni, node_id in enumerate(phase["nodes"]):
            path = f"phases[{pi}].nodes[{ni}]"
            if not isinstance(node_id, str):
                result.add(path, "Must be a node id string")
            elif node_id not in node_ids:
                result.add(path, f"Node '{node_id}' not found")


def validate_flow(candidate: Any, expected_version: str = FORMAT_VERSION) -> ValidationResult:
    """Validate a candidate flow document.

    Args:
        candidate: Parsed JSON of unknown shape.
        expected_version: Required value of the root ``version`` field.

    Returns:
        ValidationResult; ``valid`` is True iff no violation was found.
    """
    result = ValidationResult()
    if not isinstance(candidate, dict):
        result.add("root", "Must be an object")
        return result

    _check_root(candidate, result, expected_version)
    _check_summary(candidate, result)
    _check_phases(candidate, result)
    node_ids = _check_nodes(candidate, result)
    if node_ids is not None:
        _check_phase_references(candidate, node_ids, result)
    return result

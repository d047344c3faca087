"""codeflow.mcp.server - MCP server implementation.

Creates and runs the MCP server exposing flow documents to AI agents.

Tool bodies live in module-level ``_tool`` functions that take a
:class:`FlowStore` (and config where needed) and return plain dicts, so
they can be tested without the MCP runtime. ``create_server`` only wires
them to FastMCP.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

try:
    from mcp.server.fastmcp import FastMCP

    MCP_AVAILABLE = True
except ImportError:
    MCP_AVAILABLE = False
    FastMCP = None

from codeflow.config import CodeflowConfig, get_config
from codeflow.flow import mutations, patch
from codeflow.flow.errors import PatchOperationError, ValidationFailedError
from codeflow.flow.model import FORMAT_VERSION
from codeflow.flow.node_data import describe_node_types
from codeflow.flow.store import FlowStore, parse_json
from codeflow.flow.validation import ValidationResult, validate_flow
from codeflow.utilities import code_files
from codeflow.utilities.git import get_git_info

TOOL_ERRORS = (ValueError, KeyError, OSError)


def _failure(error: Exception) -> dict[str, Any]:
    """Tool result for a failed call."""
    result: dict[str, Any] = {"success": False, "error": str(error)}
    if isinstance(error, ValidationFailedError):
        result["errors"] = [e.to_dict() for e in error.errors]
    if isinstance(error, PatchOperationError):
        result["index"] = error.index
    return result


# ─────────────────────────────────────────────────────────────────────────────
# Format reference
# ─────────────────────────────────────────────────────────────────────────────


def _get_format_reference(format_version: str = FORMAT_VERSION) -> dict[str, Any]:
    """Describe the flow format so an agent can write valid documents."""
    return {
        "version": format_version,
        "root": {
            "required": ["version", "id", "name", "summary", "phases", "nodes"],
            "optional": ["edges", "contracts", "links", "metadata"],
        },
        "summary": {"required": ["input", "output", "purpose"]},
        "phase": {
            "required": ["id", "name", "description", "nodes"],
            "optional": ["input", "output", "async"],
            "notes": "nodes is an ordered list of node ids; order is traversal order",
        },
        "node": {
            "required": ["id", "type", "label", "data"],
            "optional": ["phase", "ref"],
            "ref": ["file", "function", "class", "line"],
        },
        "nodeTypes": describe_node_types(),
        "updateSemantics": {
            "update_node": "deep merge; lists are replaced, not appended; id is immutable",
            "update_phase": "shallow merge; id is immutable",
            "update_metadata": "shallow merge; updatedAt is always refreshed",
            "patch_flow": "RFC 6902; all operations apply and revalidate, or nothing is written",
        },
    }


# ─────────────────────────────────────────────────────────────────────────────
# Whole-document tools
# ─────────────────────────────────────────────────────────────────────────────


def _list_flows(store: FlowStore) -> dict[str, Any]:
    if not store.flows_path.is_dir():
        return {
            "success": True,
            "flowsDirectory": store.config.flows_dir,
            "count": 0,
            "flows": [],
            "message": f"Flows directory does not exist: {store.config.flows_dir}/",
            "hint": "Use save_flow to create the first flow",
        }
    flows = store.list_flows()
    return {
        "success": True,
        "flowsDirectory": store.config.flows_dir,
        "count": len(flows),
        "flows": flows,
    }


def _read_flow(store: FlowStore, filename: str, include_analysis: bool = False) -> dict[str, Any]:
    try:
        result: dict[str, Any] = {"success": True, "flow": store.load_document(filename)}
        if include_analysis:
            analysis = store.load_analysis(filename)
            if analysis is not None:
                result["analysis"] = analysis
        return result
    except TOOL_ERRORS as e:
        return _failure(e)


def _save_flow(store: FlowStore, filename: str, content: str) -> dict[str, Any]:
    """Write a whole flow. The content is parsed but not schema-checked."""
    try:
        data = parse_json(content)
        created = store.save_document(filename, data)
        path = store.flow_path(filename)
        return {
            "success": True,
            "action": "created" if created else "updated",
            "path": store.relative_path(path),
            "filename": path.name,
        }
    except TOOL_ERRORS as e:
        return _failure(e)


def _save_analysis(store: FlowStore, flow_filename: str, content: str) -> dict[str, Any]:
    try:
        data = parse_json(content)
        created = store.save_analysis(flow_filename, data)
        return {
            "success": True,
            "action": "created" if created else "updated",
            "path": store.relative_path(store.analysis_path(flow_filename)),
            "forFlow": store.normalize_filename(flow_filename),
        }
    except TOOL_ERRORS as e:
        return _failure(e)


def _delete_flow(store: FlowStore, filename: str) -> dict[str, Any]:
    try:
        deleted_analysis = store.delete(filename)
        return {
            "success": True,
            "deletedFlow": store.normalize_filename(filename),
            "deletedAnalysis": deleted_analysis,
        }
    except TOOL_ERRORS as e:
        return _failure(e)


def _validate_flow(
    store: FlowStore,
    filename: str | None = None,
    content: str | None = None,
) -> dict[str, Any]:
    """Validate a stored flow or raw JSON content."""
    version = store.config.format_version
    if filename:
        try:
            data = store.load_document(filename)
        except TOOL_ERRORS as e:
            return _failure(e)
    elif content:
        try:
            data = parse_json(content)
        except ValueError as e:
            result = ValidationResult()
            result.add("root", str(e))
            return {**result.to_dict(), "summary": result.summary_text(version)}
    else:
        return {"success": False, "error": "Provide either 'filename' or 'content'"}

    result = validate_flow(data, expected_version=version)
    return {**result.to_dict(), "summary": result.summary_text(version)}


# ─────────────────────────────────────────────────────────────────────────────
# Project tools
# ─────────────────────────────────────────────────────────────────────────────


def _list_code_files(
    config: CodeflowConfig,
    directory: str = "src",
    extensions: list[str] | None = None,
    recursive: bool = True,
) -> dict[str, Any]:
    try:
        return {"success": True, **code_files.list_code_files(config, directory, extensions, recursive)}
    except TOOL_ERRORS as e:
        return _failure(e)


def _read_code_file(config: CodeflowConfig, file_path: str) -> dict[str, Any]:
    try:
        return {"success": True, "content": code_files.read_code_file(config, file_path)}
    except TOOL_ERRORS as e:
        return _failure(e)


def _scan_undocumented(
    config: CodeflowConfig,
    store: FlowStore,
    directory: str = "src",
    extensions: list[str] | None = None,
) -> dict[str, Any]:
    try:
        return {
            "success": True,
            **code_files.scan_undocumented(config, store, directory, extensions),
        }
    except TOOL_ERRORS as e:
        return _failure(e)


def _get_project_info(config: CodeflowConfig, store: FlowStore) -> dict[str, Any]:
    return {
        "success": True,
        "projectPath": str(config.project_path),
        "flowsDirectory": config.flows_dir,
        "flowsExist": store.flows_path.is_dir(),
        "flowCount": store.count(),
        "formatVersion": config.format_version,
        "configFile": str(config.config_file) if config.config_file else None,
        "git": get_git_info(config.project_path).to_dict(),
    }


# ─────────────────────────────────────────────────────────────────────────────
# Partial read/update tools
# ─────────────────────────────────────────────────────────────────────────────


def _get_node(store: FlowStore, filename: str, node_id: str) -> dict[str, Any]:
    try:
        return {"success": True, **mutations.read_node(store, filename, node_id)}
    except TOOL_ERRORS as e:
        return _failure(e)


def _get_phase(
    store: FlowStore, filename: str, phase_id: str, include_nodes: bool = False
) -> dict[str, Any]:
    try:
        return {"success": True, **mutations.read_phase(store, filename, phase_id, include_nodes)}
    except TOOL_ERRORS as e:
        return _failure(e)


def _update_node(
    store: FlowStore, filename: str, node_id: str, updates: dict[str, Any]
) -> dict[str, Any]:
    try:
        entry = mutations.update_node(store, filename, node_id, updates)
        return {
            "success": True,
            "nodeId": node_id,
            "updated": list(updates),
            "node": entry.after_state,
            "mutation": entry.to_dict(),
            "message": f"Updated node {node_id}",
        }
    except TOOL_ERRORS as e:
        return _failure(e)


def _add_node(
    store: FlowStore,
    filename: str,
    node: dict[str, Any],
    phase_id: str | None = None,
    after_node_id: str | None = None,
) -> dict[str, Any]:
    try:
        entry = mutations.add_node(store, filename, node, phase_id, after_node_id)
        return {
            "success": True,
            "action": "added",
            "nodeId": entry.target_id,
            "phase": phase_id,
            "totalNodes": entry.after_state["total_nodes"],
            "mutation": entry.to_dict(),
            "message": f"Added node {entry.target_id}",
        }
    except TOOL_ERRORS as e:
        return _failure(e)


def _delete_node(store: FlowStore, filename: str, node_id: str) -> dict[str, Any]:
    try:
        entry = mutations.delete_node(store, filename, node_id)
        return {
            "success": True,
            "deletedNode": node_id,
            "removedFromPhases": entry.before_state["phases"],
            "removedEdges": len(entry.before_state["edges"]),
            "remainingNodes": entry.after_state["remaining_nodes"],
            "mutation": entry.to_dict(),
            "message": f"Deleted node {node_id}",
        }
    except TOOL_ERRORS as e:
        return _failure(e)


def _update_phase(
    store: FlowStore, filename: str, phase_id: str, updates: dict[str, Any]
) -> dict[str, Any]:
    try:
        entry = mutations.update_phase(store, filename, phase_id, updates)
        return {
            "success": True,
            "phaseId": phase_id,
            "updated": list(updates),
            "phase": entry.after_state,
            "mutation": entry.to_dict(),
            "message": f"Updated phase {phase_id}",
        }
    except TOOL_ERRORS as e:
        return _failure(e)


def _update_metadata(
    store: FlowStore,
    filename: str,
    metadata: dict[str, Any] | None = None,
    append_changelog: str | None = None,
) -> dict[str, Any]:
    try:
        entry = mutations.update_metadata(store, filename, metadata, append_changelog)
        return {
            "success": True,
            "metadata": entry.after_state,
            "mutation": entry.to_dict(),
        }
    except TOOL_ERRORS as e:
        return _failure(e)


def _patch_flow(store: FlowStore, filename: str, operations: list[Any]) -> dict[str, Any]:
    try:
        entry = patch.patch_flow(
            store, filename, operations, expected_version=store.config.format_version
        )
        return {
            "success": True,
            "operationsApplied": len(operations),
            "filename": entry.filename,
            "mutation": entry.to_dict(),
        }
    except TOOL_ERRORS as e:
        return _failure(e)


MCP_SERVER_INSTRUCTIONS = """\
codeflow stores flow documents (.cf files): JSON descriptions of a code path
as ordered phases of typed nodes. Call get_format_reference before writing
a flow for the first time.

## Reading

- list_flows() to see what exists
- read_flow(filename) for a whole document
- get_node(filename, node_id) / get_phase(filename, phase_id) to read a
  single entity without transferring the whole file

## Writing

Prefer the targeted tools; they rewrite the file but only need the change:

- update_node(filename, node_id, updates): deep merge. Lists inside
  updates REPLACE the existing list, so resubmit the whole list to append.
- add_node(filename, node, phase_id, after_node_id): node needs id, type,
  label and data; fails if the id exists.
- delete_node(filename, node_id): also removes the id from phases and
  drops edges that reference it.
- update_phase(filename, phase_id, updates): shallow merge.
- update_metadata(filename, metadata, append_changelog)
- patch_flow(filename, operations): RFC 6902 operations. The result is
  validated; if anything fails nothing is written.
- save_flow(filename, content) writes a whole document without validation;
  follow it with validate_flow(filename).

## Project context

get_project_info, list_code_files, read_code_file and scan_undocumented help
decide which code to document next.
"""


# ─────────────────────────────────────────────────────────────────────────────
# MCP Server Factory
# ─────────────────────────────────────────────────────────────────────────────


def create_server(
    config: CodeflowConfig | None = None,
    working_dir: Path | None = None,
) -> FastMCP:
    """Create the MCP server with all tools registered.

    Args:
        config: Resolved configuration; built from ``working_dir`` if omitted.
        working_dir: Project directory used when ``config`` is None.

    Returns:
        FastMCP server instance.
    """
    if not MCP_AVAILABLE:
        raise ImportError("MCP dependencies not installed. Install with: pip install codeflow[mcp]")

    if config is None:
        config = get_config(start_path=working_dir)
    store = FlowStore(config)

    mcp = FastMCP("codeflow", instructions=MCP_SERVER_INSTRUCTIONS)

    # ─────────────────────────────────────────────────────────────────────
    # Reference and whole-document tools
    # ─────────────────────────────────────────────────────────────────────

    @mcp.tool()
    def get_format_reference() -> dict[str, Any]:
        """Describe the flow document format.

        Returns required fields, node types with their data fields, and the
        merge semantics of each update tool. Read this before writing flows.
        """
        return _get_format_reference(config.format_version)

    @mcp.tool()
    def list_flows() -> dict[str, Any]:
        """List all flow files in the project with name, description and
        whether an analysis file exists."""
        return _list_flows(store)

    @mcp.tool()
    def read_flow(filename: str, include_analysis: bool = False) -> dict[str, Any]:
        """Read a complete flow document.

        Args:
            filename: Flow file name (".cf" is added if missing).
            include_analysis: Also return the companion analysis file.
        """
        return _read_flow(store, filename, include_analysis)

    @mcp.tool()
    def save_flow(filename: str, content: str) -> dict[str, Any]:
        """Create or overwrite a flow.

        Args:
            filename: Flow file name (".cf" is added if missing).
            content: Full flow document as JSON text.
        """
        return _save_flow(store, filename, content)

    @mcp.tool()
    def save_analysis(flow_filename: str, content: str) -> dict[str, Any]:
        """Create or overwrite the analysis file of an existing flow.

        Args:
            flow_filename: The flow the analysis belongs to.
            content: Analysis document as JSON text.
        """
        return _save_analysis(store, flow_filename, content)

    @mcp.tool()
    def delete_flow(filename: str) -> dict[str, Any]:
        """Delete a flow and its analysis file, if any."""
        return _delete_flow(store, filename)

    @mcp.tool()
    def validate_flow(filename: str | None = None, content: str | None = None) -> dict[str, Any]:
        """Validate a stored flow or raw JSON content against the format.

        Args:
            filename: Stored flow to check.
            content: JSON text to check instead of a stored flow.

        Returns:
            valid flag and every violation with its path.
        """
        return _validate_flow(store, filename, content)

    # ─────────────────────────────────────────────────────────────────────
    # Project tools
    # ─────────────────────────────────────────────────────────────────────

    @mcp.tool()
    def get_project_info() -> dict[str, Any]:
        """Project path, flows directory, flow count and git branch/commit."""
        return _get_project_info(config, store)

    @mcp.tool()
    def list_code_files(
        directory: str = "src",
        extensions: list[str] | None = None,
        recursive: bool = True,
    ) -> dict[str, Any]:
        """List code files in a project directory.

        Args:
            directory: Directory relative to the project root.
            extensions: File extensions to include (configured default if omitted).
            recursive: Descend into subdirectories.
        """
        return _list_code_files(config, directory, extensions, recursive)

    @mcp.tool()
    def read_code_file(file_path: str) -> dict[str, Any]:
        """Read a source file (relative to the project root or absolute)."""
        return _read_code_file(config, file_path)

    @mcp.tool()
    def scan_undocumented(
        directory: str = "src",
        extensions: list[str] | None = None,
    ) -> dict[str, Any]:
        """Find code files not yet referenced by any flow, most important first."""
        return _scan_undocumented(config, store, directory, extensions)

    # ─────────────────────────────────────────────────────────────────────
    # Partial read/update tools
    # ─────────────────────────────────────────────────────────────────────

    @mcp.tool()
    def get_node(filename: str, node_id: str) -> dict[str, Any]:
        """Read one node and the phase it belongs to."""
        return _get_node(store, filename, node_id)

    @mcp.tool()
    def get_phase(filename: str, phase_id: str, include_nodes: bool = False) -> dict[str, Any]:
        """Read one phase, optionally with its nodes in order."""
        return _get_phase(store, filename, phase_id, include_nodes)

    @mcp.tool()
    def update_node(filename: str, node_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        """Deep-merge updates into a node.

        Nested objects merge; lists are replaced entirely. The node id
        cannot be changed.

        Args:
            filename: Flow file name.
            node_id: Node to update.
            updates: Partial node, e.g. {"label": "...", "data": {"rules": [...]}}.
        """
        return _update_node(store, filename, node_id, updates)

    @mcp.tool()
    def add_node(
        filename: str,
        node: dict[str, Any],
        phase_id: str | None = None,
        after_node_id: str | None = None,
    ) -> dict[str, Any]:
        """Add a node, optionally placing it in a phase.

        Args:
            filename: Flow file name.
            node: New node with id, type, label and data.
            phase_id: Phase to add the node to.
            after_node_id: Insert after this node in the phase (default: append).
        """
        return _add_node(store, filename, node, phase_id, after_node_id)

    @mcp.tool()
    def delete_node(filename: str, node_id: str) -> dict[str, Any]:
        """Delete a node and remove it from phases and edges."""
        return _delete_node(store, filename, node_id)

    @mcp.tool()
    def update_phase(filename: str, phase_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        """Shallow-merge updates into a phase. The phase id cannot be changed."""
        return _update_phase(store, filename, phase_id, updates)

    @mcp.tool()
    def update_metadata(
        filename: str,
        metadata: dict[str, Any] | None = None,
        append_changelog: str | None = None,
    ) -> dict[str, Any]:
        """Merge metadata fields and optionally append a changelog entry.

        updatedAt is refreshed on every call.
        """
        return _update_metadata(store, filename, metadata, append_changelog)

    @mcp.tool()
    def patch_flow(filename: str, operations: list[dict[str, Any]]) -> dict[str, Any]:
        """Apply RFC 6902 JSON Patch operations atomically.

        Supported ops: add, remove, replace, move, copy, test. If any
        operation fails, or the result is not a valid flow, nothing is
        written.

        Args:
            filename: Flow file name.
            operations: e.g. [{"op": "replace", "path": "/nodes/0/label", "value": "X"}]
        """
        return _patch_flow(store, filename, operations)

    return mcp


def run_server(
    config: CodeflowConfig | None = None,
    working_dir: Path | None = None,
    transport: str = "stdio",
) -> None:
    """Run the MCP server.

    Args:
        config: Resolved configuration.
        working_dir: Project directory used when ``config`` is None.
        transport: Transport type ('stdio', 'sse' or 'streamable-http').
    """
    mcp = create_server(config=config, working_dir=working_dir)
    mcp.run(transport=transport)


__all__ = ["MCP_AVAILABLE", "create_server", "run_server"]

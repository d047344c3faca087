"""codeflow.mcp - serve a project's flows to agents over MCP.

The server works on one project: the ``flows/`` directory (or the
configured ``flows_dir``) under the project root. The root comes from
``--project``, ``CODEFLOW_PROJECT_PATH`` or the working directory.

Tools fall into four groups:

- whole documents: list, read, save, delete and validate ``.cf`` files
- project context: git state, code file listing, undocumented-code scan
- targeted edits: get/update/add/delete a node, update a phase or metadata
- ``patch_flow``: RFC 6902 operations, written only if the result validates

Start it with ``codeflow mcp serve`` or ``python -m codeflow.mcp``. Both
need the optional dependency (``pip install codeflow[mcp]``); check
:data:`MCP_AVAILABLE` before calling in from library code.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

try:
    from mcp.server.fastmcp import FastMCP

    MCP_AVAILABLE = True
except ImportError:
    MCP_AVAILABLE = False
    FastMCP = None

if TYPE_CHECKING:
    from codeflow.config import CodeflowConfig


def _require_mcp() -> None:
    if not MCP_AVAILABLE:
        raise ImportError("MCP dependencies not installed. Install with: pip install codeflow[mcp]")


def create_server(config: CodeflowConfig | None = None, working_dir: Path | None = None):
    """Build the FastMCP server for a project without starting it.

    Raises:
        ImportError: If MCP dependencies are not installed.
    """
    _require_mcp()
    from codeflow.mcp.server import create_server as _create

    return _create(config=config, working_dir=working_dir)


def run_server(
    config: CodeflowConfig | None = None,
    working_dir: Path | None = None,
    transport: str = "stdio",
) -> None:
    """Serve the project's flows until the client disconnects.

    Raises:
        ImportError: If MCP dependencies are not installed.
    """
    _require_mcp()
    from codeflow.mcp.server import run_server as _run

    _run(config=config, working_dir=working_dir, transport=transport)


__all__ = [
    "MCP_AVAILABLE",
    "create_server",
    "run_server",
]

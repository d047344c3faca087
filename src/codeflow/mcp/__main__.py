"""Entry point for ``python -m codeflow.mcp``.

Serves the flows of the project in ``CODEFLOW_PROJECT_PATH`` (or the
current directory) on stdio, for MCP clients that launch the server as a
subprocess. Use ``codeflow mcp serve --transport`` for sse or http.
"""

from codeflow.mcp import run_server

if __name__ == "__main__":
    run_server()

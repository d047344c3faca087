"""codeflow.utilities - Project inspection helpers (git state, code files)."""

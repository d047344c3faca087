"""Built-in configuration values, overridden by .codeflow.toml and env vars."""

from __future__ import annotations

from typing import Any

CONFIG_FILENAME = ".codeflow.toml"

DEFAULT_CONFIG: dict[str, Any] = {
    "flows": {
        "dir": "flows",
        "extension": ".cf",
        "analysis_suffix": ".cf-analysis.json",
        "format_version": "2.0",
    },
    "scan": {
        "extensions": [".ts", ".tsx", ".js", ".jsx"],
        "skip_dirs": [
            "node_modules",
            ".git",
            "dist",
            "build",
            ".next",
            "__pycache__",
            ".venv",
        ],
        "limit": 20,
        "priority_patterns": ["service", "controller", "handler", "use-case", "usecase"],
    },
}

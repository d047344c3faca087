"""Configuration loading.

Precedence, lowest first:

1. ``DEFAULT_CONFIG``
2. the nearest ``.codeflow.toml`` at or above the project directory
3. environment variables: ``CODEFLOW_PROJECT_PATH`` selects the project
   directory, and ``CODEFLOW_<SECTION>_<KEY>`` overrides one value
   (``CODEFLOW_FLOWS_DIR=docs/flows``,
   ``CODEFLOW_SCAN_EXTENSIONS='[".py"]'``)

The result is a :class:`CodeflowConfig` built once at startup and passed
explicitly to the store, scanners and server.
"""

from __future__ import annotations

import copy
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from codeflow.config.defaults import CONFIG_FILENAME, DEFAULT_CONFIG

ENV_PREFIX = "CODEFLOW_"
PROJECT_PATH_ENV = "CODEFLOW_PROJECT_PATH"


@dataclass(frozen=True)
class CodeflowConfig:
    """Resolved settings for one project.

    Attributes:
        project_path: Root of the documented project.
        flows_dir: Flow directory, relative to ``project_path``.
        flow_extension: Suffix of flow files.
        analysis_suffix: Suffix of the companion analysis files.
        format_version: Version tag required by strict validation.
        code_extensions: Default extensions for code-file listing.
        skip_dirs: Directory names never descended into.
        scan_limit: Max entries returned by the undocumented-code scan.
        priority_patterns: Path fragments that rank a file first in scans.
        config_file: The TOML file that was loaded, if any.
    """

    project_path: Path
    flows_dir: str = "flows"
    flow_extension: str = ".cf"
    analysis_suffix: str = ".cf-analysis.json"
    format_version: str = "2.0"
    code_extensions: tuple[str, ...] = tuple(DEFAULT_CONFIG["scan"]["extensions"])
    skip_dirs: tuple[str, ...] = tuple(DEFAULT_CONFIG["scan"]["skip_dirs"])
    scan_limit: int = 20
    priority_patterns: tuple[str, ...] = tuple(DEFAULT_CONFIG["scan"]["priority_patterns"])
    config_file: Path | None = field(default=None, compare=False)

    @property
    def flows_path(self) -> Path:
        return self.project_path / self.flows_dir

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        project_path: Path,
        config_file: Path | None = None,
    ) -> CodeflowConfig:
        flows = data.get("flows", {})
        scan = data.get("scan", {})
        return cls(
            project_path=Path(project_path),
            flows_dir=str(flows.get("dir", "flows")),
            flow_extension=str(flows.get("extension", ".cf")),
            analysis_suffix=str(flows.get("analysis_suffix", ".cf-analysis.json")),
            format_version=str(flows.get("format_version", "2.0")),
            code_extensions=tuple(_as_list(scan.get("extensions", []))),
            skip_dirs=tuple(_as_list(scan.get("skip_dirs", []))),
            scan_limit=int(scan.get("limit", 20)),
            priority_patterns=tuple(_as_list(scan.get("priority_patterns", []))),
            config_file=config_file,
        )


def _as_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(v) for v in value]


def find_config_file(start_path: Path) -> Path | None:
    """Walk up from ``start_path`` looking for ``.codeflow.toml``."""
    current = Path(start_path).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(config_path: Path) -> dict[str, Any]:
    """Parse one TOML configuration file into plain dicts.

    Raises:
        ValueError: If the file is not valid TOML.
    """
    content = Path(config_path).read_text(encoding="utf-8")
    try:
        document = tomlkit.parse(content)
    except TOMLKitError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e
    return document.unwrap()


def merge_configs(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` onto ``base``; nested tables merge key by key."""
    result = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _try_parse_env_value(value: str) -> Any:
    """Interpret an environment string as JSON list/object or boolean.

    Malformed JSON and plain strings are returned unchanged.
    """
    stripped = value.strip()
    if stripped.lower() == "true":
        return True
    if stripped.lower() == "false":
        return False
    if stripped.startswith(("[", "{")):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            return value
    return value


def _apply_env_overrides(config: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Apply ``CODEFLOW_<SECTION>_<KEY>`` variables to known sections."""
    result = copy.deepcopy(config)
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX) or name == PROJECT_PATH_ENV:
            continue
        remainder = name[len(ENV_PREFIX) :].lower()
        section, _, key = remainder.partition("_")
        if not key or section not in result or not isinstance(result[section], dict):
            continue
        result[section][key] = _try_parse_env_value(raw)
    return result


def get_config(
    start_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> CodeflowConfig:
    """Resolve the configuration for a project.

    Args:
        start_path: Project directory; ``CODEFLOW_PROJECT_PATH`` wins over
            it, and the current directory is the fallback.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        The merged CodeflowConfig.
    """
    env = os.environ if environ is None else environ
    if env.get(PROJECT_PATH_ENV):
        project_path = Path(env[PROJECT_PATH_ENV])
    else:
        project_path = Path(start_path) if start_path is not None else Path.cwd()

    merged = copy.deepcopy(DEFAULT_CONFIG)
    config_file = find_config_file(project_path) if project_path.exists() else None
    if config_file is not None:
        merged = merge_configs(merged, load_config(config_file))
    merged = _apply_env_overrides(merged, env)

    return CodeflowConfig.from_dict(merged, project_path=project_path, config_file=config_file)

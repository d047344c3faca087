"""Source-file discovery for documentation coverage.

Lists code files under the project and finds the ones no flow documents
yet. A file counts as documented when its path contains the ``ref.file``
of some flow node, or when its name contains a flow's basename.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from codeflow.config import CodeflowConfig
from codeflow.flow.errors import NotFoundError
from codeflow.flow.model import CodeRef
from codeflow.flow.store import FlowStore

logger = logging.getLogger(__name__)


def find_files(
    directory: Path,
    extensions: Iterable[str],
    recursive: bool = True,
    skip_dirs: Iterable[str] = (),
) -> list[Path]:
    """Files under ``directory`` whose names end with one of ``extensions``.

    Directories named in ``skip_dirs`` are never entered. Results are
    sorted for stable output.
    """
    if not directory.is_dir():
        return []
    extensions = tuple(extensions)
    skip = set(skip_dirs)
    results: list[Path] = []
    for item in sorted(directory.iterdir()):
        if item.is_dir():
            if item.name in skip:
                continue
            if recursive:
                results.extend(find_files(item, extensions, recursive, skip))
        elif item.name.endswith(extensions):
            results.append(item)
    return results


def relative_path(path: Path, root: Path) -> str:
    """``path`` relative to ``root`` with forward slashes."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def _resolve(config: CodeflowConfig, file_path: str) -> Path:
    path = Path(file_path)
    return path if path.is_absolute() else config.project_path / path


def read_code_file(config: CodeflowConfig, file_path: str) -> str:
    """Read a project file, prefixed with a small header.

    Raises:
        NotFoundError: If the file does not exist.
    """
    path = _resolve(config, file_path)
    if not path.is_file():
        raise NotFoundError(f"File not found: {file_path}", file_path)
    content = path.read_text(encoding="utf-8")
    line_count = len(content.split("\n"))
    return f"// File: {file_path}\n// Lines: {line_count}\n\n{content}"


def list_code_files(
    config: CodeflowConfig,
    directory: str = "src",
    extensions: list[str] | None = None,
    recursive: bool = True,
) -> dict[str, Any]:
    """List code files under a project directory.

    Raises:
        NotFoundError: If the directory does not exist.
    """
    extensions = list(extensions or config.code_extensions)
    dir_path = config.project_path / directory
    if not dir_path.is_dir():
        raise NotFoundError(f"Directory not found: {directory}", directory)
    files = find_files(dir_path, extensions, recursive, config.skip_dirs)
    return {
        "directory": directory,
        "extensions": extensions,
        "count": len(files),
        "files": [relative_path(f, config.project_path) for f in files],
    }


def documented_patterns(store: FlowStore) -> list[str]:
    """Path fragments that mark a code file as documented."""
    patterns: list[str] = []
    for flow_file in store.iter_flow_files():
        try:
            flow = store.load(flow_file.name)
        except (ValueError, OSError) as e:
            logger.debug("Ignoring unreadable flow %s: %s", flow_file, e)
        else:
            for node in flow.nodes:
                if isinstance(node.ref, CodeRef) and node.ref.file:
                    patterns.append(node.ref.file)
        patterns.append(flow_file.name[: -len(store.config.flow_extension)])
    return patterns


def _is_documented(file: str, patterns: list[str]) -> bool:
    file_lower = file.lower()
    stem = Path(file).stem.lower()
    for pattern in patterns:
        pattern_lower = pattern.lower()
        if pattern_lower in file_lower or pattern_lower in stem:
            return True
    return False


def prioritize(files: list[str], priority_patterns: Iterable[str]) -> list[str]:
    """Order files with service/controller/handler-like names first."""
    priority = [p.lower() for p in priority_patterns]

    def key(file: str) -> tuple[int, str]:
        important = any(p in file.lower() for p in priority)
        return (0 if important else 1, file)

    return sorted(files, key=key)


def scan_undocumented(
    config: CodeflowConfig,
    store: FlowStore,
    directory: str = "src",
    extensions: list[str] | None = None,
) -> dict[str, Any]:
    """Find code files that no flow documents yet.

    Raises:
        NotFoundError: If the directory does not exist.
    """
    dir_path = config.project_path / directory
    if not dir_path.is_dir():
        raise NotFoundError(f"Directory not found: {directory}", directory)
    extensions = list(extensions or config.code_extensions)
    code_files = [
        relative_path(f, config.project_path)
        for f in find_files(dir_path, extensions, True, config.skip_dirs)
    ]
    patterns = documented_patterns(store)
    undocumented = prioritize(
        [f for f in code_files if not _is_documented(f, patterns)],
        config.priority_patterns,
    )
    limit = config.scan_limit
    result: dict[str, Any] = {
        "scannedDirectory": directory,
        "totalCodeFiles": len(code_files),
        "existingFlows": store.count(),
        "undocumentedCount": len(undocumented),
        "undocumented": undocumented[:limit],
    }
    if len(undocumented) > limit:
        result["hint"] = f"Showing the {limit} most important of {len(undocumented)} total"
    return result

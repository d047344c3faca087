"""File-backed storage for flow documents.

One ``<name>.cf`` JSON file per flow under the configured flows directory,
with an optional ``<name>.cf-analysis.json`` companion. Every write is a
whole-file write: content goes to a temporary file in the same directory
and is moved over the target with ``os.replace``, so readers never see a
half-written document.

I/O errors propagate as ``OSError``; nothing here retries.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from codeflow.config import CodeflowConfig
from codeflow.flow.errors import MalformedInputError, NotFoundError
from codeflow.flow.model import Flow

logger = logging.getLogger(__name__)


def dump_json(data: Any) -> str:
    """Serialize a document the way it is stored: two-space indented."""
    return json.dumps(data, indent=2, ensure_ascii=False)


def parse_json(content: str, what: str = "content") -> Any:
    """Parse JSON text, raising MalformedInputError on failure."""
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"Invalid JSON {what}: {e}") from e


class FlowStore:
    """Reads and writes flow documents for one project.

    Attributes:
        config: Project configuration (flows directory, suffixes).
    """

    def __init__(self, config: CodeflowConfig):
        self.config = config

    # ─────────────────────────────────────────────────────────────────────
    # Paths
    # ─────────────────────────────────────────────────────────────────────

    @property
    def flows_path(self) -> Path:
        return self.config.flows_path

    def normalize_filename(self, name: str) -> str:
        """Return ``name`` with the flow extension appended if missing.

        Raises:
            MalformedInputError: If the name is empty or escapes the flows
                directory.
        """
        if not isinstance(name, str) or not name.strip():
            raise MalformedInputError("Flow filename is required")
        name = name.strip()
        if "/" in name or "\\" in name or name in (".", "..") or name.startswith(".."):
            raise MalformedInputError(f"Flow filename must not contain a path: {name}")
        ext = self.config.flow_extension
        return name if name.endswith(ext) else f"{name}{ext}"

    def flow_path(self, name: str) -> Path:
        return self.flows_path / self.normalize_filename(name)

    def analysis_path(self, name: str) -> Path:
        filename = self.normalize_filename(name)
        stem = filename[: -len(self.config.flow_extension)]
        return self.flows_path / f"{stem}{self.config.analysis_suffix}"

    def relative_path(self, path: Path) -> str:
        """Path relative to the project root, with forward slashes."""
        try:
            return path.relative_to(self.config.project_path).as_posix()
        except ValueError:
            return path.as_posix()

    # ─────────────────────────────────────────────────────────────────────
    # Flow documents
    # ─────────────────────────────────────────────────────────────────────

    def exists(self, name: str) -> bool:
        return self.flow_path(name).is_file()

    def load_document(self, name: str) -> dict[str, Any]:
        """Read a flow as raw JSON.

        Raises:
            NotFoundError: If no file exists for ``name``.
            MalformedInputError: If the file is not a JSON object.
        """
        path = self.flow_path(name)
        if not path.is_file():
            raise NotFoundError(f"Flow not found: {name}", name)
        logger.debug("Reading flow %s", path)
        data = parse_json(path.read_text(encoding="utf-8"), f"in {path.name}")
        if not isinstance(data, dict):
            raise MalformedInputError(f"Flow {path.name} is not a JSON object")
        return data

    def load(self, name: str) -> Flow:
        """Read a flow into the document model."""
        return Flow.from_dict(self.load_document(name))

    def save_document(self, name: str, data: Any) -> bool:
        """Persist raw JSON for ``name``.

        Returns:
            True if the file was created, False if it replaced an existing one.
        """
        path = self.flow_path(name)
        created = not path.exists()
        self._write_atomic(path, dump_json(data))
        logger.debug("%s flow %s", "Created" if created else "Updated", path)
        return created

    def save(self, name: str, flow: Flow) -> bool:
        return self.save_document(name, flow.to_dict())

    def delete(self, name: str) -> bool:
        """Remove a flow and its analysis file.

        Returns:
            Whether an analysis file was deleted as well.

        Raises:
            NotFoundError: If the flow does not exist.
        """
        path = self.flow_path(name)
        if not path.is_file():
            raise NotFoundError(f"Flow not found: {name}", name)
        path.unlink()
        logger.debug("Deleted flow %s", path)

        analysis = self.analysis_path(name)
        if analysis.is_file():
            analysis.unlink()
            return True
        return False

    def iter_flow_files(self) -> list[Path]:
        """Flow files in the flows directory (not recursive), sorted."""
        if not self.flows_path.is_dir():
            return []
        ext = self.config.flow_extension
        return sorted(p for p in self.flows_path.iterdir() if p.is_file() and p.name.endswith(ext))

    def count(self) -> int:
        return len(self.iter_flow_files())

    def list_flows(self) -> list[dict[str, Any]]:
        """Summaries of every stored flow.

        Files that fail to parse are still listed, with the filename as
        their name.
        """
        entries = []
        for path in self.iter_flow_files():
            data: Any = {}
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.debug("Skipping unreadable flow %s: %s", path, e)
            if not isinstance(data, dict):
                data = {}
            summary = data.get("summary") if isinstance(data.get("summary"), dict) else {}
            entries.append(
                {
                    "filename": path.name,
                    "id": data.get("id"),
                    "name": data.get("name") or path.name,
                    "description": data.get("description") or summary.get("purpose") or "",
                    "hasAnalysis": self.analysis_path(path.name).is_file(),
                    "path": self.relative_path(path),
                }
            )
        return entries

    # ─────────────────────────────────────────────────────────────────────
    # Analysis companions
    # ─────────────────────────────────────────────────────────────────────

    def save_analysis(self, flow_name: str, data: Any) -> bool:
        """Write the analysis file of an existing flow.

        Raises:
            NotFoundError: If the flow itself does not exist.
        """
        if not self.exists(flow_name):
            raise NotFoundError(
                f"Flow not found: {self.normalize_filename(flow_name)}. Create the flow first.",
                flow_name,
            )
        path = self.analysis_path(flow_name)
        created = not path.exists()
        self._write_atomic(path, dump_json(data))
        return created

    def load_analysis(self, flow_name: str) -> Any | None:
        path = self.analysis_path(flow_name)
        if not path.is_file():
            return None
        return parse_json(path.read_text(encoding="utf-8"), f"in {path.name}")

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _write_atomic(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

"""
codeflow - Flow document storage and editing for code documentation

codeflow keeps .cf files: JSON documents describing a code path as ordered
phases of typed nodes. It validates them, edits them in place with deep
merges or RFC 6902 patches, and serves them to AI agents over MCP.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("codeflow")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"  # Not installed

from codeflow.config import CodeflowConfig, get_config
from codeflow.flow import Flow, FlowStore, ValidationResult, validate_flow

__all__ = [
    "__version__",
    "CodeflowConfig",
    "Flow",
    "FlowStore",
    "ValidationResult",
    "get_config",
    "validate_flow",
]

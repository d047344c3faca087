"""
codeflow.commands - CLI command implementations
"""

__all__ = [
    "flows",
    "validate",
]

"""Merge helpers for partial updates.

Callers contract: arrays are replaced, never merged. A patch value that
is a list (or any non-dict) overwrites the base value wholesale, so to
append to ``phases[0].nodes`` or ``data.rules`` the caller resubmits the
full list. Removing an element is done the same way.
"""

from __future__ import annotations

import copy
from typing import Any


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``patch`` into a copy of ``base``.

    Dict values in ``patch`` merge into the matching base dict (an empty
    one when the base value is missing or not a dict). Every other value
    replaces the base value. Neither argument is modified.

    Args:
        base: The existing entity.
        patch: Partial update.

    Returns:
        A new dict.
    """
    result = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict):
            current = result.get(key)
            result[key] = deep_merge(current if isinstance(current, dict) else {}, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def merge_preserving_id(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``patch`` into ``base`` keeping ``base``'s ``id``."""
    merged = deep_merge(base, patch)
    return _restore_id(base, merged)


def shallow_merge_preserving_id(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Top-level merge: every key in ``patch`` replaces the base value."""
    merged = copy.deepcopy(base)
    merged.update(copy.deepcopy(patch))
    return _restore_id(base, merged)


def _restore_id(base: dict[str, Any], merged: dict[str, Any]) -> dict[str, Any]:
    if "id" in base:
        merged["id"] = base["id"]
    else:
        merged.pop("id", None)
    return merged

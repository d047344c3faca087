"""RFC 6902 patch application with all-or-nothing semantics.

``patch_flow`` is the only multi-step transaction in the package:

1. every operation is checked, in order, against a scratch copy of the
   current document; the first bad one aborts the call with its index
2. the operations are applied to a working copy
3. the result is validated; any violation aborts the call
4. only then is the document written

The stored document is never touched unless all four steps succeed.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

import jsonpatch
import jsonpointer

from codeflow.flow.errors import PatchOperationError, ValidationFailedError
from codeflow.flow.model import FORMAT_VERSION
from codeflow.flow.mutations import MutationEntry
from codeflow.flow.store import FlowStore
from codeflow.flow.validation import validate_flow

logger = logging.getLogger(__name__)

PATCH_OPS = ("add", "remove", "replace", "move", "copy", "test")
_NEEDS_VALUE = ("add", "replace", "test")
_NEEDS_FROM = ("move", "copy")


def _check_shape(index: int, operation: Any) -> None:
    """Reject operations that are structurally wrong before touching data."""
    if not isinstance(operation, dict):
        raise PatchOperationError(index, "Operation must be an object", operation)
    op = operation.get("op")
    if op not in PATCH_OPS:
        raise PatchOperationError(
            index, f"Unknown op '{op}'; expected one of {', '.join(PATCH_OPS)}", operation
        )
    path = operation.get("path")
    if not isinstance(path, str) or (path and not path.startswith("/")):
        raise PatchOperationError(index, "'path' must be a JSON pointer string", operation)
    if op in _NEEDS_VALUE and "value" not in operation:
        raise PatchOperationError(index, f"'{op}' requires a 'value'", operation)
    if op in _NEEDS_FROM:
        source = operation.get("from")
        if not isinstance(source, str) or (source and not source.startswith("/")):
            raise PatchOperationError(index, f"'{op}' requires a 'from' JSON pointer", operation)


def check_patch(document: Any, operations: list[Any]) -> None:
    """Verify that ``operations`` apply cleanly to ``document``.

    Operations are tried one at a time against a deep copy, so a later
    operation is checked against the state earlier ones produce (e.g. a
    ``test`` after a ``replace``). ``document`` is not modified.

    Raises:
        PatchOperationError: For the first operation that cannot apply.
    """
    if not isinstance(operations, list):
        raise PatchOperationError(0, "Operations must be a list")
    scratch = copy.deepcopy(document)
    for index, operation in enumerate(operations):
        _check_shape(index, operation)
        try:
            scratch = jsonpatch.JsonPatch([copy.deepcopy(operation)]).apply(scratch, in_place=True)
        except jsonpatch.JsonPatchTestFailed as e:
            raise PatchOperationError(index, f"Test failed: {e}", operation) from e
        except (jsonpatch.JsonPatchException, jsonpointer.JsonPointerException) as e:
            raise PatchOperationError(index, str(e), operation) from e
        except (TypeError, KeyError, IndexError) as e:
            reason = f"Cannot apply to {operation.get('path')}: {e}"
            raise PatchOperationError(index, reason, operation) from e


def apply_patch(document: Any, operations: list[Any]) -> Any:
    """Apply ``operations`` to a copy of ``document`` and return it.

    Raises:
        PatchOperationError: If any operation is invalid; nothing is applied.
    """
    check_patch(document, operations)
    return jsonpatch.apply_patch(document, copy.deepcopy(operations), in_place=False)


def patch_flow(
    store: FlowStore,
    filename: str,
    operations: list[Any],
    expected_version: str = FORMAT_VERSION,
) -> MutationEntry:
    """Apply a patch to a stored flow, persisting only a valid result.

    Raises:
        NotFoundError: If the flow does not exist.
        PatchOperationError: If an operation cannot apply.
        ValidationFailedError: If the patched document fails validation.
    """
    document = store.load_document(filename)
    try:
        patched = apply_patch(document, operations)
    except PatchOperationError as e:
        logger.info("Rejected patch for %s: %s", filename, e)
        raise

    result = validate_flow(patched, expected_version=expected_version)
    if not result.valid:
        logger.info(
            "Patch for %s would produce an invalid flow (%d errors)", filename, len(result.errors)
        )
        raise ValidationFailedError(result.errors)

    store.save_document(filename, patched)
    return MutationEntry(
        operation="patch_flow",
        target_id=patched.get("id") or store.normalize_filename(filename),
        before_state={"operations": len(operations)},
        after_state={"operations_applied": len(operations)},
        filename=store.normalize_filename(filename),
    )

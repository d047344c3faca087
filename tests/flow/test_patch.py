"""Tests for RFC 6902 patch application.

patch_flow is all-or-nothing: a failing operation or an invalid result
leaves the stored file byte-for-byte unchanged.
"""

import copy

import pytest

from codeflow.flow.errors import NotFoundError, PatchOperationError, ValidationFailedError
from codeflow.flow.patch import apply_patch, check_patch, patch_flow


class TestCheckPatch:
    """Structural and dry-run checks."""

    @pytest.mark.parametrize(
        "operation, reason",
        [
            ("replace", "must be an object"),
            ({"op": "merge", "path": "/id"}, "Unknown op 'merge'"),
            ({"op": "remove"}, "'path' must be a JSON pointer"),
            ({"op": "remove", "path": "id"}, "'path' must be a JSON pointer"),
            ({"op": "add", "path": "/x"}, "'add' requires a 'value'"),
            ({"op": "replace", "path": "/id"}, "'replace' requires a 'value'"),
            ({"op": "test", "path": "/id"}, "'test' requires a 'value'"),
            ({"op": "move", "path": "/x"}, "'move' requires a 'from'"),
            ({"op": "copy", "path": "/x", "from": 3}, "'copy' requires a 'from'"),
        ],
    )
    def test_malformed_operations(self, sample_flow, operation, reason):
        with pytest.raises(PatchOperationError, match=reason) as exc_info:
            check_patch(sample_flow, [operation])

        assert exc_info.value.index == 0

    def test_operations_must_be_list(self, sample_flow):
        with pytest.raises(PatchOperationError):
            check_patch(sample_flow, {"op": "remove", "path": "/id"})

    def test_missing_target_reports_index(self, sample_flow):
        ops = [
            {"op": "replace", "path": "/name", "value": "Renamed"},
            {"op": "remove", "path": "/nodes/9"},
        ]

        with pytest.raises(PatchOperationError, match="Invalid operation at index 1") as exc_info:
            check_patch(sample_flow, ops)

        assert exc_info.value.index == 1

    def test_replace_missing_key(self, sample_flow):
        with pytest.raises(PatchOperationError):
            check_patch(sample_flow, [{"op": "replace", "path": "/nope", "value": 1}])

    def test_add_under_missing_parent(self, sample_flow):
        with pytest.raises(PatchOperationError):
            check_patch(sample_flow, [{"op": "add", "path": "/nope/deeper", "value": 1}])

    def test_failed_test_operation(self, sample_flow):
        ops = [{"op": "test", "path": "/name", "value": "Other"}]

        with pytest.raises(PatchOperationError, match="Test failed"):
            check_patch(sample_flow, ops)

    def test_later_ops_see_earlier_effects(self, sample_flow):
        ops = [
            {"op": "replace", "path": "/name", "value": "Renamed"},
            {"op": "test", "path": "/name", "value": "Renamed"},
        ]

        check_patch(sample_flow, ops)

    def test_document_not_modified(self, sample_flow):
        before = copy.deepcopy(sample_flow)

        check_patch(sample_flow, [{"op": "remove", "path": "/nodes/0"}])

        assert sample_flow == before


class TestApplyPatch:
    """Pure application."""

    def test_all_six_ops(self, sample_flow):
        ops = [
            {"op": "test", "path": "/id", "value": "checkout"},
            {"op": "replace", "path": "/name", "value": "Checkout v2"},
            {"op": "add", "path": "/nodes/1/data/rules/-", "value": "max 50 items"},
            {"op": "copy", "from": "/summary/purpose", "path": "/description"},
            {"op": "move", "from": "/metadata/author", "path": "/metadata/owner"},
            {"op": "remove", "path": "/edges/1"},
        ]

        result = apply_patch(sample_flow, ops)

        assert result["name"] == "Checkout v2"
        assert result["nodes"][1]["data"]["rules"] == ["cart not empty", "max 50 items"]
        assert result["description"] == "Turn a cart into an order"
        assert result["metadata"] == {"owner": "checkout-team", "createdAt": "2024-01-01T00:00:00Z"}
        assert len(result["edges"]) == 1

    def test_input_not_mutated(self, sample_flow):
        before = copy.deepcopy(sample_flow)

        apply_patch(sample_flow, [{"op": "replace", "path": "/name", "value": "X"}])

        assert sample_flow == before

    def test_empty_patch(self, sample_flow):
        assert apply_patch(sample_flow, []) == sample_flow

    def test_escaped_pointer(self):
        doc = {"a/b": 1, "m~n": 2}

        result = apply_patch(
            doc,
            [
                {"op": "replace", "path": "/a~1b", "value": 10},
                {"op": "replace", "path": "/m~0n", "value": 20},
            ],
        )

        assert result == {"a/b": 10, "m~n": 20}

    def test_add_appends_and_inserts(self):
        doc = {"nodes": ["a", "c"]}

        result = apply_patch(
            doc,
            [
                {"op": "add", "path": "/nodes/1", "value": "b"},
                {"op": "add", "path": "/nodes/-", "value": "d"},
            ],
        )

        assert result == {"nodes": ["a", "b", "c", "d"]}


class TestPatchFlow:
    """Load, patch, validate, persist."""

    def test_valid_patch_persists(self, store, stored_flow):
        entry = patch_flow(
            store,
            stored_flow,
            [{"op": "replace", "path": "/nodes/0/label", "value": "Accept cart"}],
        )

        assert store.load_document(stored_flow)["nodes"][0]["label"] == "Accept cart"
        assert entry.operation == "patch_flow"
        assert entry.target_id == "checkout"
        assert entry.filename == "checkout.cf"

    def test_failed_operation_leaves_file_identical(self, store, stored_flow):
        before = store.flow_path(stored_flow).read_bytes()
        ops = [
            {"op": "replace", "path": "/name", "value": "Renamed"},
            {"op": "remove", "path": "/phases/7"},
        ]

        with pytest.raises(PatchOperationError) as exc_info:
            patch_flow(store, stored_flow, ops)

        assert exc_info.value.index == 1
        assert store.flow_path(stored_flow).read_bytes() == before

    def test_invalid_result_rejected(self, store, stored_flow):
        before = store.flow_path(stored_flow).read_bytes()

        with pytest.raises(ValidationFailedError) as exc_info:
            patch_flow(store, stored_flow, [{"op": "remove", "path": "/summary/purpose"}])

        assert [(e.path, e.message) for e in exc_info.value.errors] == [
            ("summary.purpose", "Required")
        ]
        assert "summary.purpose: Required" in str(exc_info.value)
        assert store.flow_path(stored_flow).read_bytes() == before

    def test_dangling_phase_reference_rejected(self, store, stored_flow):
        before = store.flow_path(stored_flow).read_bytes()

        with pytest.raises(ValidationFailedError) as exc_info:
            patch_flow(store, stored_flow, [{"op": "remove", "path": "/nodes/2"}])

        assert exc_info.value.errors[0].message == "Node 'insert' not found"
        assert store.flow_path(stored_flow).read_bytes() == before

    def test_coordinated_change_accepted(self, store, stored_flow):
        patch_flow(
            store,
            stored_flow,
            [
                {"op": "remove", "path": "/nodes/2"},
                {"op": "replace", "path": "/phases/1/nodes", "value": []},
            ],
        )

        doc = store.load_document(stored_flow)
        assert len(doc["nodes"]) == 2

    def test_version_tag_enforced(self, store, stored_flow):
        with pytest.raises(ValidationFailedError):
            patch_flow(store, stored_flow, [{"op": "replace", "path": "/version", "value": "1.0"}])

    def test_missing_flow(self, store):
        with pytest.raises(NotFoundError):
            patch_flow(store, "ghost", [])

    def test_errors_are_value_errors(self, store, stored_flow):
        with pytest.raises(ValueError):
            patch_flow(store, stored_flow, [{"op": "bogus", "path": "/id"}])

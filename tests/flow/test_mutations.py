"""Tests for targeted flow mutations.

Each mutation loads the stored flow, changes one entity and writes the
whole document back. Failures must leave the file untouched.
"""

from datetime import datetime, timezone

import pytest

from codeflow.flow import mutations
from codeflow.flow.errors import ConflictError, MalformedInputError, NotFoundError
from codeflow.flow.mutations import MutationEntry

# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def new_node():
    return {
        "id": "notify",
        "type": "event",
        "label": "Emit order-created",
        "data": {"event": "order.created", "channel": "orders"},
    }


def _raw(store, filename):
    return store.flow_path(filename).read_bytes()


# ─────────────────────────────────────────────────────────────────────────────
# Reads
# ─────────────────────────────────────────────────────────────────────────────


class TestReads:
    def test_read_node_with_phase(self, store, stored_flow):
        result = mutations.read_node(store, stored_flow, "check")

        assert result["node"]["label"] == "Check cart"
        assert result["phase"] == {"id": "intake", "name": "Intake"}

    def test_read_node_without_phase(self, store, stored_flow):
        mutations.update_phase(store, stored_flow, "persist", {"nodes": []})

        assert mutations.read_node(store, stored_flow, "insert")["phase"] is None

    def test_read_missing_node(self, store, stored_flow):
        with pytest.raises(NotFoundError):
            mutations.read_node(store, stored_flow, "ghost")

    def test_read_phase(self, store, stored_flow):
        result = mutations.read_phase(store, stored_flow, "intake")

        assert result["phase"]["nodes"] == ["receive", "check"]
        assert "nodes" not in result

    def test_read_phase_with_nodes(self, store, stored_flow):
        result = mutations.read_phase(store, stored_flow, "intake", include_nodes=True)

        assert [n["id"] for n in result["nodes"]] == ["receive", "check"]


# ─────────────────────────────────────────────────────────────────────────────
# update_node
# ─────────────────────────────────────────────────────────────────────────────


class TestUpdateNode:
    def test_deep_merges_and_persists(self, store, stored_flow):
        entry = mutations.update_node(
            store, stored_flow, "receive", {"label": "Receive", "data": {"source": "queue"}}
        )

        node = store.load_document(stored_flow)["nodes"][0]
        assert node["label"] == "Receive"
        assert node["data"] == {"source": "queue", "fields": ["items", "coupon"]}
        assert node["ref"] == {"file": "src/checkout/controller.ts", "function": "post"}
        assert isinstance(entry, MutationEntry)
        assert entry.operation == "update_node"
        assert entry.before_state["label"] == "Receive cart"
        assert entry.after_state["label"] == "Receive"

    def test_lists_replaced(self, store, stored_flow):
        mutations.update_node(store, stored_flow, "check", {"data": {"rules": ["has items"]}})

        node = store.load_document(stored_flow)["nodes"][1]
        assert node["data"]["rules"] == ["has items"]
        assert node["data"]["errors"] == ["EMPTY_CART"]

    def test_id_cannot_change(self, store, stored_flow):
        mutations.update_node(store, stored_flow, "check", {"id": "renamed", "label": "X"})

        ids = [n["id"] for n in store.load_document(stored_flow)["nodes"]]
        assert ids == ["receive", "check", "insert"]

    def test_only_target_node_changes(self, store, stored_flow, sample_flow):
        mutations.update_node(store, stored_flow, "check", {"label": "X"})

        doc = store.load_document(stored_flow)
        assert doc["nodes"][0] == sample_flow["nodes"][0]
        assert doc["nodes"][2] == sample_flow["nodes"][2]
        assert doc["phases"] == sample_flow["phases"]

    def test_missing_node_leaves_file(self, store, stored_flow):
        before = _raw(store, stored_flow)

        with pytest.raises(NotFoundError, match="Node 'ghost' not found"):
            mutations.update_node(store, stored_flow, "ghost", {"label": "X"})

        assert _raw(store, stored_flow) == before

    def test_missing_flow(self, store):
        with pytest.raises(NotFoundError, match="Flow not found"):
            mutations.update_node(store, "ghost", "n1", {})

    def test_updates_must_be_object(self, store, stored_flow):
        with pytest.raises(MalformedInputError):
            mutations.update_node(store, stored_flow, "check", ["label"])


# ─────────────────────────────────────────────────────────────────────────────
# add_node
# ─────────────────────────────────────────────────────────────────────────────


class TestAddNode:
    def test_append_to_phase(self, store, stored_flow, new_node):
        entry = mutations.add_node(store, stored_flow, new_node, phase_id="persist")

        doc = store.load_document(stored_flow)
        assert doc["phases"][1]["nodes"] == ["insert", "notify"]
        assert doc["nodes"][-1]["phase"] == "persist"
        assert entry.after_state["position"] == 1
        assert entry.after_state["total_nodes"] == 4

    def test_insert_after_node(self, store, stored_flow, new_node):
        mutations.add_node(store, stored_flow, new_node, phase_id="intake", after_node_id="receive")

        doc = store.load_document(stored_flow)
        assert doc["phases"][0]["nodes"] == ["receive", "notify", "check"]

    def test_without_phase(self, store, stored_flow, new_node):
        entry = mutations.add_node(store, stored_flow, new_node)

        doc = store.load_document(stored_flow)
        assert doc["nodes"][-1]["id"] == "notify"
        assert "phase" not in doc["nodes"][-1]
        assert all("notify" not in p["nodes"] for p in doc["phases"])
        assert entry.after_state["position"] is None

    def test_empty_data_allowed(self, store, stored_flow, new_node):
        new_node["data"] = {}

        mutations.add_node(store, stored_flow, new_node)

        assert store.load_document(stored_flow)["nodes"][-1]["data"] == {}

    @pytest.mark.parametrize("missing", ["id", "type", "label", "data"])
    def test_required_fields(self, store, new_node, missing):
        del new_node[missing]

        # Checked before the flow is read, so the flow need not exist.
        with pytest.raises(MalformedInputError, match=f"missing: {missing}"):
            mutations.add_node(store, "ghost", new_node)

    def test_data_must_be_object(self, store, stored_flow, new_node):
        new_node["data"] = ["event"]

        with pytest.raises(MalformedInputError, match="'data' must be an object"):
            mutations.add_node(store, stored_flow, new_node)

    def test_duplicate_id(self, store, stored_flow, new_node):
        new_node["id"] = "check"
        before = _raw(store, stored_flow)

        with pytest.raises(ConflictError, match="A node with id 'check' already exists"):
            mutations.add_node(store, stored_flow, new_node)

        assert _raw(store, stored_flow) == before

    def test_missing_phase(self, store, stored_flow, new_node):
        before = _raw(store, stored_flow)

        with pytest.raises(NotFoundError, match="Phase 'ghost'"):
            mutations.add_node(store, stored_flow, new_node, phase_id="ghost")

        assert _raw(store, stored_flow) == before

    def test_after_node_not_in_phase(self, store, stored_flow, new_node):
        before = _raw(store, stored_flow)

        with pytest.raises(NotFoundError, match="Node 'insert' not found in phase 'intake'"):
            mutations.add_node(
                store, stored_flow, new_node, phase_id="intake", after_node_id="insert"
            )

        assert _raw(store, stored_flow) == before

    def test_caller_dict_not_mutated(self, store, stored_flow, new_node):
        mutations.add_node(store, stored_flow, new_node, phase_id="persist")

        assert "phase" not in new_node


# ─────────────────────────────────────────────────────────────────────────────
# delete_node
# ─────────────────────────────────────────────────────────────────────────────


class TestDeleteNode:
    def test_removes_node_phase_membership_and_edges(self, store, stored_flow):
        entry = mutations.delete_node(store, stored_flow, "check")

        doc = store.load_document(stored_flow)
        assert [n["id"] for n in doc["nodes"]] == ["receive", "insert"]
        assert doc["phases"][0]["nodes"] == ["receive"]
        assert doc["edges"] == []
        assert entry.before_state["phases"] == ["intake"]
        assert len(entry.before_state["edges"]) == 2
        assert entry.after_state == {"remaining_nodes": 2}

    def test_result_still_validates(self, store, stored_flow):
        from codeflow.flow.validation import validate_flow

        mutations.delete_node(store, stored_flow, "insert")

        assert validate_flow(store.load_document(stored_flow)).valid

    def test_removes_every_occurrence(self, store, stored_flow):
        mutations.update_phase(store, stored_flow, "persist", {"nodes": ["insert", "check"]})

        entry = mutations.delete_node(store, stored_flow, "check")

        doc = store.load_document(stored_flow)
        assert doc["phases"][1]["nodes"] == ["insert"]
        assert entry.before_state["phases"] == ["intake", "persist"]

    def test_flow_without_edges(self, store, sample_flow):
        del sample_flow["edges"]
        store.save_document("plain", sample_flow)

        mutations.delete_node(store, "plain", "receive")

        assert "edges" not in store.load_document("plain")

    def test_missing_node(self, store, stored_flow):
        before = _raw(store, stored_flow)

        with pytest.raises(NotFoundError):
            mutations.delete_node(store, stored_flow, "ghost")

        assert _raw(store, stored_flow) == before


# ─────────────────────────────────────────────────────────────────────────────
# update_phase / update_metadata
# ─────────────────────────────────────────────────────────────────────────────


class TestUpdatePhase:
    def test_shallow_merge_keeps_id(self, store, stored_flow):
        entry = mutations.update_phase(
            store, stored_flow, "intake", {"id": "other", "name": "Receive", "async": True}
        )

        phase = store.load_document(stored_flow)["phases"][0]
        assert phase["id"] == "intake"
        assert phase["name"] == "Receive"
        assert phase["async"] is True
        assert phase["nodes"] == ["receive", "check"]
        assert entry.target_id == "intake"

    def test_missing_phase(self, store, stored_flow):
        with pytest.raises(NotFoundError, match="Phase 'ghost' not found"):
            mutations.update_phase(store, stored_flow, "ghost", {"name": "X"})


class TestUpdateMetadata:
    NOW = datetime(2025, 3, 9, 14, 30, 0, tzinfo=timezone.utc)

    def test_merges_and_stamps(self, store, stored_flow):
        mutations.update_metadata(store, stored_flow, {"tags": ["orders"]}, now=self.NOW)

        meta = store.load_document(stored_flow)["metadata"]
        assert meta["author"] == "checkout-team"
        assert meta["tags"] == ["orders"]
        assert meta["updatedAt"] == "2025-03-09T14:30:00Z"

    def test_appends_changelog(self, store, stored_flow):
        mutations.update_metadata(store, stored_flow, append_changelog="First", now=self.NOW)
        mutations.update_metadata(store, stored_flow, append_changelog="Second", now=self.NOW)

        meta = store.load_document(stored_flow)["metadata"]
        assert meta["changelog"] == [
            {"date": "2025-03-09", "changes": "First"},
            {"date": "2025-03-09", "changes": "Second"},
        ]

    def test_creates_metadata(self, store, sample_flow):
        del sample_flow["metadata"]
        store.save_document("bare", sample_flow)

        entry = mutations.update_metadata(store, "bare", now=self.NOW)

        assert store.load_document("bare")["metadata"] == {"updatedAt": "2025-03-09T14:30:00Z"}
        assert entry.before_state == {}

    def test_stamps_with_current_time_by_default(self, store, stored_flow):
        mutations.update_metadata(store, stored_flow)

        stamp = store.load_document(stored_flow)["metadata"]["updatedAt"]
        assert stamp.endswith("Z")
        assert datetime.fromisoformat(stamp.replace("Z", "+00:00")).tzinfo is not None


# ─────────────────────────────────────────────────────────────────────────────
# Untouched content survives
# ─────────────────────────────────────────────────────────────────────────────


class TestUntouchedContentKept:
    """Fields outside the edited entity are written back exactly as stored."""

    CHANGELOG = [
        {"date": "2024-01-01", "changes": "init", "author": "bob"},
        {"changes": "undated"},
        "free-text note",
    ]

    @pytest.fixture
    def odd_flow(self, store, sample_flow):
        sample_flow["metadata"]["changelog"] = list(self.CHANGELOG)
        sample_flow["summary"] = "todo"
        sample_flow["x-owner"] = {"team": "payments"}
        store.save_document("checkout", sample_flow)
        return "checkout.cf"

    def test_update_node_keeps_changelog_and_summary(self, store, odd_flow):
        mutations.update_node(store, odd_flow, "check", {"label": "X"})

        doc = store.load_document(odd_flow)
        assert doc["metadata"]["changelog"] == self.CHANGELOG
        assert doc["summary"] == "todo"
        assert doc["x-owner"] == {"team": "payments"}

    def test_update_node_string_ref(self, store, stored_flow):
        entry = mutations.update_node(store, stored_flow, "receive", {"ref": "src/a.ts"})

        assert store.load_document(stored_flow)["nodes"][0]["ref"] == "src/a.ts"
        assert entry.after_state["ref"] == "src/a.ts"

    def test_explicit_null_kept(self, store, stored_flow):
        mutations.update_node(store, stored_flow, "check", {"phase": None})

        assert store.load_document(stored_flow)["nodes"][1]["phase"] is None

    @pytest.mark.parametrize(
        "operation",
        [
            lambda store, f: mutations.add_node(
                store, f, {"id": "n", "type": "logic", "label": "N", "data": {}}, "persist"
            ),
            lambda store, f: mutations.delete_node(store, f, "insert"),
            lambda store, f: mutations.update_phase(store, f, "intake", {"name": "In"}),
        ],
        ids=["add_node", "delete_node", "update_phase"],
    )
    def test_other_edits_keep_document(self, store, odd_flow, operation):
        operation(store, odd_flow)

        doc = store.load_document(odd_flow)
        assert doc["metadata"]["changelog"] == self.CHANGELOG
        assert doc["summary"] == "todo"

    def test_update_metadata_appends_after_existing_entries(self, store, odd_flow):
        now = datetime(2025, 3, 9, tzinfo=timezone.utc)

        mutations.update_metadata(store, odd_flow, append_changelog="Renamed", now=now)

        changelog = store.load_document(odd_flow)["metadata"]["changelog"]
        assert changelog == [*self.CHANGELOG, {"date": "2025-03-09", "changes": "Renamed"}]


class TestMutationEntry:
    def test_to_dict(self):
        entry = MutationEntry(
            operation="update_node",
            target_id="n1",
            before_state={"label": "A"},
            after_state={"label": "B"},
            filename="f.cf",
        )

        data = entry.to_dict()

        assert data["operation"] == "update_node"
        assert data["filename"] == "f.cf"
        assert len(data["id"]) == 32
        assert data["timestamp"].endswith("+00:00")
        assert str(entry).endswith("update_node(n1)")

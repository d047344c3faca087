"""Shared fixtures: a small valid flow and a store rooted in tmp_path."""

import copy

import pytest

from codeflow.config import CodeflowConfig
from codeflow.flow.store import FlowStore

SAMPLE_FLOW = {
    "version": "2.0",
    "id": "checkout",
    "name": "Checkout",
    "summary": {
        "input": "Cart contents",
        "output": "Created order",
        "purpose": "Turn a cart into an order",
    },
    "phases": [
        {
            "id": "intake",
            "name": "Intake",
            "description": "Receive and check the request",
            "nodes": ["receive", "check"],
        },
        {
            "id": "persist",
            "name": "Persist",
            "description": "Store the order",
            "nodes": ["insert"],
        },
    ],
    "nodes": [
        {
            "id": "receive",
            "type": "input",
            "label": "Receive cart",
            "phase": "intake",
            "data": {"source": "POST /checkout", "fields": ["items", "coupon"]},
            "ref": {"file": "src/checkout/controller.ts", "function": "post"},
        },
        {
            "id": "check",
            "type": "validation",
            "label": "Check cart",
            "phase": "intake",
            "data": {"rules": ["cart not empty"], "errors": ["EMPTY_CART"]},
        },
        {
            "id": "insert",
            "type": "query",
            "label": "Insert order",
            "phase": "persist",
            "data": {"target": "orders", "operation": "insert"},
        },
    ],
    "edges": [
        {"from": "receive", "to": "check"},
        {"from": "check", "to": "insert", "label": "valid"},
    ],
    "metadata": {"author": "checkout-team", "createdAt": "2024-01-01T00:00:00Z"},
}


@pytest.fixture
def sample_flow():
    """A fresh deep copy of a valid three-node flow."""
    return copy.deepcopy(SAMPLE_FLOW)


@pytest.fixture
def config(tmp_path):
    """Default configuration for a project rooted at tmp_path."""
    return CodeflowConfig(project_path=tmp_path)


@pytest.fixture
def store(config):
    """FlowStore over an empty flows directory."""
    return FlowStore(config)


@pytest.fixture
def stored_flow(store, sample_flow):
    """Persist the sample flow as checkout.cf and return its filename."""
    store.save_document("checkout", sample_flow)
    return "checkout.cf"

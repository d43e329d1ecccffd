"""Shared fixtures for flow engine tests."""

import os

import pytest

from cvflow.core.config import Settings
from cvflow.models.flow_graph import FlowGraph


def build_graph(nodes, edges, **kwargs) -> FlowGraph:
    """Build a graph from engine-shaped dicts"""
    return FlowGraph.from_dicts(nodes, edges, **kwargs)


def edge(edge_id, source, target, handle=None):
    data = {"id": edge_id, "source": source, "target": target}
    if handle is not None:
        data["source_handle"] = handle
    return data


def simple_condition(node_id, rules, operator="and"):
    return {
        "id": node_id,
        "kind": "condition",
        "condition": {"mode": "simple", "rule_set": {"operator": operator, "rules": rules}}
    }


def multi_condition(node_id, outputs):
    return {"id": node_id, "kind": "condition", "condition": {"mode": "multi-output", "outputs": outputs}}


def rule(field, operator, value=None):
    return {"field": field, "operator": operator, "value": value}


@pytest.fixture
def config(monkeypatch):
    """Default settings, ignoring CVFLOW_* variables and any .env file"""
    for key in list(os.environ):
        if key.upper().startswith("CVFLOW_"):
            monkeypatch.delenv(key)
    return Settings(_env_file=None, strict_routing=False, allow_skip=True)


@pytest.fixture
def age_graph():
    """Start -> Question(age) -> Condition(age > 18) -> A | B"""
    nodes = [
        {"id": "start", "kind": "start"},
        {"id": "ask_age", "kind": "question", "text": "How old are you?", "variable_name": "age"},
        simple_condition("check", [rule("age", "greater_than", "18")]),
        {"id": "A", "kind": "end", "message": "adult path"},
        {"id": "B", "kind": "end", "message": "minor path"},
    ]
    edges = [
        edge("e1", "start", "ask_age"),
        edge("e2", "ask_age", "check"),
        edge("e3", "check", "A", "true"),
        edge("e4", "check", "B", "false"),
    ]
    return build_graph(nodes, edges, flow_id="age")


@pytest.fixture
def tier_graph():
    """Start -> Question(spend) -> multi-output gold / silver / bronze"""
    nodes = [
        {"id": "start", "kind": "start"},
        {"id": "ask_spend", "kind": "question", "text": "Spend?", "variable_name": "spend"},
        multi_condition("tier", [
            {"value": "gold", "rules": [rule("spend", "greater_than", 1000)]},
            {"value": "silver", "rules": [rule("spend", "greater_than", 100)]},
            {"value": "bronze", "rules": []},
        ]),
        {"id": "gold_end", "kind": "end", "message": "gold"},
        {"id": "silver_end", "kind": "end", "message": "silver"},
        {"id": "bronze_end", "kind": "end", "message": "bronze"},
    ]
    edges = [
        edge("e1", "start", "ask_spend"),
        edge("e2", "ask_spend", "tier"),
        edge("e3", "tier", "gold_end", "gold"),
        edge("e4", "tier", "silver_end", "silver"),
        edge("e5", "tier", "bronze_end", "bronze"),
    ]
    return build_graph(nodes, edges, flow_id="tier")

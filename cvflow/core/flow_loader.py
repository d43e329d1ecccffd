"""
Flow Document Loader

Converts a flow document as saved by the visual flow designer into a
validated FlowGraph. The designer stores node payloads loosely under
``data``; this module maps each node type onto the engine's tagged node
models and drops UI-only fields (positions, styles, colors).
"""

import logging
from typing import Dict, Any, List, Optional

from pydantic import ValidationError

from ..errors import GraphError, GraphErrorKind
from ..models.flow_graph import FlowGraph, NODE_ADAPTER, Edge, NodeKind
from .config import Settings, settings

logger = logging.getLogger(__name__)

# Validation rule types the designer can attach to a question
_EMAIL_PATTERN = r"^[^@]+@[^@]+\.[^@]+$"
_PHONE_PATTERN = r"^[+]?[0-9\s\-\(\)]{10,}$"


def _first_text(data: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _convert_rule(rule: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": rule.get("id"),
        "field": rule.get("field") or rule.get("variable"),
        "operator": rule.get("operator"),
        "value": rule.get("value")
    }


def _convert_validation(validation: Any) -> Optional[Dict[str, Any]]:
    """Accept both the object form and the list-of-rules form"""
    if not validation:
        return None
    if isinstance(validation, dict):
        return validation

    converted: Dict[str, Any] = {}
    for rule in validation:
        rule_type = rule.get("type")
        if rule_type == "required":
            converted["required"] = True
        elif rule_type == "minLength":
            converted["min_length"] = rule.get("value")
        elif rule_type == "maxLength":
            converted["max_length"] = rule.get("value")
        elif rule_type == "pattern":
            converted["pattern"] = rule.get("value")
        elif rule_type == "email":
            converted["pattern"] = _EMAIL_PATTERN
        elif rule_type == "phone":
            converted["pattern"] = _PHONE_PATTERN
        if rule.get("message") and "message" not in converted:
            converted["message"] = rule["message"]
    return converted


def _convert_condition(data: Dict[str, Any]) -> Dict[str, Any]:
    condition = data.get("condition") or {}
    condition_type = data.get("conditionType") or "simple"

    if condition_type == "multi-output":
        outputs = condition.get("outputs") or data.get("outputs") or []
        return {
            "mode": "multi-output",
            "outputs": [
                {
                    "id": output.get("id"),
                    "label": output.get("label"),
                    "value": output.get("value"),
                    "description": output.get("description"),
                    "operator": output.get("operator"),
                    "rules": [_convert_rule(rule) for rule in output.get("rules") or []]
                }
                for output in outputs
            ]
        }

    return {
        "mode": "simple",
        "rule_set": {
            "operator": condition.get("operator"),
            "rules": [_convert_rule(rule) for rule in condition.get("rules") or []]
        }
    }


def _convert_node(raw: Dict[str, Any], config: Settings) -> Dict[str, Any]:
    node_type = raw.get("type") or raw.get("kind")
    data = raw.get("data") or {}
    node: Dict[str, Any] = {"id": raw.get("id"), "label": data.get("label"), "kind": node_type}

    if node_type == NodeKind.START:
        pass
    elif node_type == NodeKind.MESSAGE:
        node["text"] = _first_text(data, "content", "text", "label") or ""
    elif node_type == NodeKind.QUESTION:
        node.update({
            "text": _first_text(data, "question", "label") or config.default_question_text,
            "options": data.get("options") or [],
            "variable_name": data.get("variableName") or None,
            "condition_triggers": data.get("conditionTriggers") or {},
            "question_type": data.get("questionType"),
            "required": bool(data.get("required", False)),
            "validation": _convert_validation(data.get("validation"))
        })
    elif node_type == NodeKind.CONDITION:
        node["condition"] = _convert_condition(data)
    elif node_type == NodeKind.END:
        node["message"] = _first_text(data, "message", "content", "action")
    else:
        raise GraphError(
            GraphErrorKind.UNSUPPORTED_NODE_TYPE,
            f"Node '{raw.get('id')}' has unsupported type '{node_type}'",
            node_id=raw.get("id")
        )
    return node


def _convert_edge(raw: Dict[str, Any], index: int) -> Dict[str, Any]:
    return {
        "id": raw.get("id") or f"e-{raw.get('source')}-{raw.get('target')}-{index}",
        "source": raw.get("source"),
        "target": raw.get("target"),
        "source_handle": raw.get("sourceHandle", raw.get("source_handle")),
        "label": raw.get("label")
    }


def load_flow_document(
    document: Dict[str, Any],
    flow_id: Optional[str] = None,
    name: Optional[str] = None,
    config: Optional[Settings] = None
) -> FlowGraph:
    """
    Build a validated FlowGraph from a designer document.

    Args:
        document: ``{"nodes": [...], "edges": [...]}``, optionally wrapped as
            ``{"id", "name", "data": {"nodes", "edges"}}``
        flow_id: Overrides the document id
        name: Overrides the document name
        config: Settings providing default texts and validation strictness

    Raises:
        GraphError: when the document is malformed or violates a graph invariant
    """
    config = config or settings
    if not isinstance(document, dict):
        raise GraphError(GraphErrorKind.INVALID_DOCUMENT, "Flow document must be a JSON object")

    body = document
    if "nodes" not in document and isinstance(document.get("data"), dict):
        body = document["data"]

    raw_nodes: List[Dict[str, Any]] = body.get("nodes") or []
    raw_edges: List[Dict[str, Any]] = body.get("edges") or []

    try:
        nodes = [NODE_ADAPTER.validate_python(_convert_node(raw, config)) for raw in raw_nodes]
        edges = [Edge.model_validate(_convert_edge(raw, index)) for index, raw in enumerate(raw_edges)]
    except ValidationError as e:
        raise GraphError(GraphErrorKind.INVALID_DOCUMENT, f"Invalid flow document: {e}") from e
    except (AttributeError, TypeError) as e:
        raise GraphError(GraphErrorKind.INVALID_DOCUMENT, f"Malformed flow document: {e}") from e

    graph = FlowGraph(
        nodes,
        edges,
        flow_id=flow_id or document.get("id"),
        name=name or document.get("name"),
        require_default_output=config.require_default_output
    )
    logger.info(f"Loaded flow {graph.flow_id or '<unnamed>'} with {len(graph.nodes)} nodes")
    return graph


def validate_flow_document(document: Dict[str, Any], config: Optional[Settings] = None) -> Dict[str, Any]:
    """Validate without raising; used by authoring tools before saving"""
    try:
        graph = load_flow_document(document, config=config)
    except GraphError as e:
        return {"valid": False, "errors": [e.to_dict()], "warnings": []}
    return {
        "valid": True,
        "errors": [],
        "warnings": [warning.to_dict() for warning in graph.warnings]
    }

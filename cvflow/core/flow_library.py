"""
Built-in Flow Library
=====================
Ready-made flow documents in the designer's format, used as defaults by the
CV builder pages and as fixtures during development. Documents are loaded on
demand into fresh, validated FlowGraph instances.
"""

import copy
import logging
from typing import Optional, Dict, Any

from ..models.flow_graph import FlowGraph
from .config import Settings
from .flow_loader import load_flow_document

logger = logging.getLogger(__name__)


BASIC_CV_FLOW: Dict[str, Any] = {
    "id": "basic_cv",
    "name": "Basic CV Builder",
    "nodes": [
        {"id": "start", "type": "start", "data": {"label": "Start"}},
        {
            "id": "intro",
            "type": "message",
            "data": {
                "label": "Welcome to Basic CV Builder",
                "content": "Welcome! I'll help you create a professional CV in just a few minutes. "
                           "Let's start with your basic information."
            }
        },
        {
            "id": "full_name",
            "type": "question",
            "data": {
                "label": "What is your full name?",
                "questionType": "text",
                "variableName": "fullName",
                "required": True,
                "validation": {"required": True, "minLength": 2, "maxLength": 100}
            }
        },
        {
            "id": "email",
            "type": "question",
            "data": {
                "label": "What is your professional email address?",
                "questionType": "email",
                "variableName": "email",
                "required": True
            }
        },
        {
            "id": "experience_level",
            "type": "question",
            "data": {
                "label": "How would you describe your experience level?",
                "questionType": "multiple-choice",
                "variableName": "experienceLevel",
                "options": ["Entry level", "Mid level", "Senior"]
            }
        },
        {
            "id": "years_experience",
            "type": "question",
            "data": {
                "label": "How many years of professional experience do you have?",
                "variableName": "yearsExperience",
                "required": True,
                "validation": {"pattern": "^[0-9]+$", "message": "Please enter a whole number of years"}
            }
        },
        {
            "id": "route_by_seniority",
            "type": "condition",
            "data": {
                "label": "Route by seniority",
                "conditionType": "multi-output",
                "condition": {
                    "outputs": [
                        {
                            "id": "out-senior",
                            "label": "Senior",
                            "value": "senior",
                            "rules": [{"field": "yearsExperience", "operator": "greater_than", "value": "7"}]
                        },
                        {
                            "id": "out-mid",
                            "label": "Mid",
                            "value": "mid",
                            "rules": [{"field": "yearsExperience", "operator": "greater_than", "value": "2"}]
                        },
                        {"id": "out-junior", "label": "Junior", "value": "junior", "rules": []}
                    ]
                }
            }
        },
        {
            "id": "leadership",
            "type": "question",
            "data": {
                "label": "Tell me about a team or project you have led.",
                "variableName": "leadership",
                "conditionTriggers": {"route_by_seniority": "senior"}
            }
        },
        {
            "id": "achievements",
            "type": "question",
            "data": {
                "label": "What is the achievement you are most proud of?",
                "variableName": "achievements"
            }
        },
        {
            "id": "education",
            "type": "question",
            "data": {
                "label": "What is your highest level of education?",
                "variableName": "education"
            }
        },
        {
            "id": "skills",
            "type": "question",
            "data": {
                "label": "List your key skills, separated by commas.",
                "variableName": "skills"
            }
        },
        {
            "id": "skills_check",
            "type": "condition",
            "data": {
                "label": "Skills provided?",
                "conditionType": "simple",
                "condition": {
                    "operator": "or",
                    "rules": [
                        {"field": "skills", "operator": "is_empty", "value": ""},
                        {"field": "skills", "operator": "equals", "value": "[Skipped]"}
                    ]
                }
            }
        },
        {
            "id": "skills_followup",
            "type": "question",
            "data": {
                "label": "Even one or two skills help. Which tools or technologies do you use most?",
                "variableName": "skills",
                "conditionTriggers": {"skills_check": "true"}
            }
        },
        {
            "id": "done",
            "type": "end",
            "data": {"label": "Done", "message": "Thanks! Your CV details are ready for review."}
        }
    ],
    "edges": [
        {"id": "e1", "source": "start", "target": "intro"},
        {"id": "e2", "source": "intro", "target": "full_name"},
        {"id": "e3", "source": "full_name", "target": "email"},
        {"id": "e4", "source": "email", "target": "experience_level"},
        {"id": "e5", "source": "experience_level", "target": "years_experience"},
        {"id": "e6", "source": "years_experience", "target": "route_by_seniority"},
        {"id": "e7", "source": "route_by_seniority", "target": "leadership", "sourceHandle": "senior"},
        {"id": "e8", "source": "route_by_seniority", "target": "achievements", "sourceHandle": "mid"},
        {"id": "e9", "source": "route_by_seniority", "target": "education", "sourceHandle": "junior"},
        {"id": "e10", "source": "leadership", "target": "achievements"},
        {"id": "e11", "source": "achievements", "target": "skills"},
        {"id": "e12", "source": "education", "target": "skills"},
        {"id": "e13", "source": "skills", "target": "skills_check"},
        {"id": "e14", "source": "skills_check", "target": "skills_followup", "sourceHandle": "true"},
        {"id": "e15", "source": "skills_check", "target": "done", "sourceHandle": "false"},
        {"id": "e16", "source": "skills_followup", "target": "done"}
    ]
}


AGE_GATE_FLOW: Dict[str, Any] = {
    "id": "age_gate",
    "name": "Age Gate",
    "nodes": [
        {"id": "start", "type": "start", "data": {"label": "Start"}},
        {"id": "ask_age", "type": "question", "data": {"label": "How old are you?", "variableName": "age"}},
        {
            "id": "check_age",
            "type": "condition",
            "data": {
                "conditionType": "simple",
                "condition": {
                    "operator": "and",
                    "rules": [{"field": "age", "operator": "greater_than", "value": "18"}]
                }
            }
        },
        {"id": "adult", "type": "end", "data": {"message": "You can continue with the full CV builder."}},
        {"id": "minor", "type": "end", "data": {"message": "Let's build a student profile instead."}}
    ],
    "edges": [
        {"id": "e1", "source": "start", "target": "ask_age"},
        {"id": "e2", "source": "ask_age", "target": "check_age"},
        {"id": "e3", "source": "check_age", "target": "adult", "sourceHandle": "true"},
        {"id": "e4", "source": "check_age", "target": "minor", "sourceHandle": "false"}
    ]
}


LOYALTY_TIER_FLOW: Dict[str, Any] = {
    "id": "loyalty_tier",
    "name": "Loyalty Tier",
    "nodes": [
        {"id": "start", "type": "start", "data": {"label": "Start"}},
        {"id": "ask_spend", "type": "question", "data": {"label": "How much did you spend this year?", "variableName": "spend"}},
        {
            "id": "tier",
            "type": "condition",
            "data": {
                "conditionType": "multi-output",
                "condition": {
                    "outputs": [
                        {"value": "gold", "label": "Gold",
                         "rules": [{"field": "spend", "operator": "greater_than", "value": 1000}]},
                        {"value": "silver", "label": "Silver",
                         "rules": [{"field": "spend", "operator": "greater_than", "value": 100}]},
                        {"value": "bronze", "label": "Bronze", "rules": []}
                    ]
                }
            }
        },
        {"id": "gold_end", "type": "end", "data": {"message": "Gold tier"}},
        {"id": "silver_end", "type": "end", "data": {"message": "Silver tier"}},
        {"id": "bronze_end", "type": "end", "data": {"message": "Bronze tier"}}
    ],
    "edges": [
        {"id": "e1", "source": "start", "target": "ask_spend"},
        {"id": "e2", "source": "ask_spend", "target": "tier"},
        {"id": "e3", "source": "tier", "target": "gold_end", "sourceHandle": "gold"},
        {"id": "e4", "source": "tier", "target": "silver_end", "sourceHandle": "silver"},
        {"id": "e5", "source": "tier", "target": "bronze_end", "sourceHandle": "bronze"}
    ]
}


_BUILTIN_FLOWS: Dict[str, Dict[str, Any]] = {
    "basic_cv": BASIC_CV_FLOW,
    "age_gate": AGE_GATE_FLOW,
    "loyalty_tier": LOYALTY_TIER_FLOW
}

_DESCRIPTIONS = {
    "basic_cv": "Compact CV wizard with seniority branching and guarded follow-up questions",
    "age_gate": "Single question routed through a simple true/false condition",
    "loyalty_tier": "Single question routed through a multi-output condition with a default"
}


def list_available_flows() -> Dict[str, str]:
    """
    List all built-in flows.

    Returns:
        Dict mapping flow names to descriptions
    """
    return dict(_DESCRIPTIONS)


def get_flow_info(flow_name: str) -> Dict[str, Any]:
    """
    Get information about a built-in flow.

    Args:
        flow_name: Name of the flow

    Returns:
        Dict with flow information, or an ``error`` entry for unknown names
    """
    document = _BUILTIN_FLOWS.get(flow_name)
    if document is None:
        return {"error": f"Flow {flow_name} not found"}

    kinds = sorted({node["type"] for node in document["nodes"]})
    features = []
    for node in document["nodes"]:
        data = node.get("data", {})
        if node["type"] == "condition":
            features.append(f"{data.get('conditionType', 'simple')}_condition")
        if data.get("conditionTriggers"):
            features.append("guarded_question")
        if data.get("options"):
            features.append("options")

    return {
        "name": document["name"],
        "description": _DESCRIPTIONS[flow_name],
        "nodes": [node["id"] for node in document["nodes"]],
        "node_kinds": kinds,
        "variables": [
            node["data"]["variableName"]
            for node in document["nodes"]
            if node["type"] == "question" and node["data"].get("variableName")
        ],
        "features": sorted(set(features))
    }


def get_flow_document(flow_name: str) -> Dict[str, Any]:
    """Deep copy of a built-in document; raises KeyError for unknown names"""
    return copy.deepcopy(_BUILTIN_FLOWS[flow_name])


def load_builtin_flow(flow_name: str, config: Optional[Settings] = None) -> FlowGraph:
    """
    Load a built-in flow into a validated graph.

    Raises:
        KeyError: when no built-in flow has this name
    """
    if flow_name not in _BUILTIN_FLOWS:
        raise KeyError(f"Flow {flow_name} not found")

    logger.info(f"Loading built-in flow: {flow_name}")
    return load_flow_document(get_flow_document(flow_name), flow_id=flow_name, config=config)

"""
Flow Execution Engine

This module provides the interpreter that walks an authored flow graph,
evaluates branching rules against collected answers and suspends at
questions until the user replies.

Key Components:
- condition_evaluator: Operator registry and rule-set evaluation
- edge_resolver: Next-node selection with question guards
- FlowInterpreter: Per-session state machine
- SessionManager: Registry of concurrent sessions for a server process
- flow_loader / flow_library: Designer documents and built-in flows
"""

from .condition_evaluator import (
    OPERATOR_REGISTRY,
    RuleEvaluation,
    evaluate_rule,
    evaluate_rule_set,
    evaluate_multi_output
)
from .edge_resolver import Resolution, UnresolvedReason, GuardRejection, resolve, resolve_next
from .flow_interpreter import FlowInterpreter, SessionState
from .session_manager import SessionManager, SessionRecord
from .flow_loader import load_flow_document, validate_flow_document
from .flow_library import list_available_flows, get_flow_info, load_builtin_flow

__all__ = [
    'OPERATOR_REGISTRY',
    'RuleEvaluation',
    'evaluate_rule',
    'evaluate_rule_set',
    'evaluate_multi_output',
    'Resolution',
    'UnresolvedReason',
    'GuardRejection',
    'resolve',
    'resolve_next',
    'FlowInterpreter',
    'SessionState',
    'SessionManager',
    'SessionRecord',
    'load_flow_document',
    'validate_flow_document',
    'list_available_flows',
    'get_flow_info',
    'load_builtin_flow'
]

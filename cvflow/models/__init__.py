"""Models package"""

# Flow graph schema
from .flow_graph import (
    FlowGraph,
    Node,
    NodeKind,
    StartNode,
    MessageNode,
    QuestionNode,
    ConditionNode,
    EndNode,
    Edge,
    Rule,
    RuleSet,
    RuleOperator,
    CombineOperator,
    ConditionOutput,
    SimpleCondition,
    MultiOutputCondition,
    QuestionOption,
    QuestionType,
    AnswerValidation
)

# Session data
from .variable_store import VariableStore, VariableWrite
from .events import (
    FlowEvent,
    MessagePresented,
    QuestionPresented,
    FlowCompleted,
    FlowAborted,
    TraceEntry,
    TraceEventType,
    TranscriptMessage
)

__all__ = [
    # Flow graph schema
    'FlowGraph',
    'Node',
    'NodeKind',
    'StartNode',
    'MessageNode',
    'QuestionNode',
    'ConditionNode',
    'EndNode',
    'Edge',
    'Rule',
    'RuleSet',
    'RuleOperator',
    'CombineOperator',
    'ConditionOutput',
    'SimpleCondition',
    'MultiOutputCondition',
    'QuestionOption',
    'QuestionType',
    'AnswerValidation',

    # Session data
    'VariableStore',
    'VariableWrite',
    'FlowEvent',
    'MessagePresented',
    'QuestionPresented',
    'FlowCompleted',
    'FlowAborted',
    'TraceEntry',
    'TraceEventType',
    'TranscriptMessage'
]

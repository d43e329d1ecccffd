"""
Flow Graph Schema and Structural Validation

This module defines the node/edge model for an authored conversation flow and
the immutable FlowGraph container that validates it once, at load time.

Node payloads are a tagged union discriminated by ``kind``; condition specs
are a tagged union discriminated by ``mode``. Both are frozen pydantic models
so a loaded graph can be shared by any number of sessions.
"""

import logging
import re
from collections import defaultdict, deque
from enum import Enum
from types import MappingProxyType
from typing import Dict, Any, List, Optional, Literal, Union, Tuple, Iterable, Set, Mapping
from typing_extensions import Annotated
from pydantic import BaseModel, Field, ConfigDict, TypeAdapter, ValidationError, field_validator

from ..errors import GraphError, GraphErrorKind, GraphWarning, GraphWarningKind

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    """Node kinds understood by the interpreter"""
    START = "start"
    MESSAGE = "message"
    QUESTION = "question"
    CONDITION = "condition"
    END = "end"


class RuleOperator(str, Enum):
    """Comparison operators available to condition rules"""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    IN_LIST = "in_list"
    NOT_IN_LIST = "not_in_list"


class CombineOperator(str, Enum):
    """How the rules of a rule-set are combined"""
    AND = "and"
    OR = "or"


class QuestionType(str, Enum):
    """Input styles a question can ask for"""
    TEXT = "text"
    MULTIPLE_CHOICE = "multiple-choice"
    YES_NO = "yes-no"
    RATING = "rating"
    EMAIL = "email"
    PHONE = "phone"


TRUE_HANDLE = "true"
FALSE_HANDLE = "false"

_MODEL_CONFIG = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class Rule(BaseModel):
    """Single comparison of a variable against an operand"""
    model_config = _MODEL_CONFIG

    id: Optional[str] = None
    field: str = Field(..., min_length=1, description="Variable name to read")
    operator: RuleOperator
    value: Any = None

    @field_validator("value", mode="before")
    @classmethod
    def _freeze_value(cls, value: Any) -> Any:
        if isinstance(value, list):
            return tuple(value)
        return value


class RuleSet(BaseModel):
    """Ordered rules plus the operator combining them. No rules means always true."""
    model_config = _MODEL_CONFIG

    operator: CombineOperator = CombineOperator.AND
    rules: Tuple[Rule, ...] = ()

    @field_validator("operator", mode="before")
    @classmethod
    def _default_operator(cls, value: Any) -> Any:
        return value or CombineOperator.AND

    @property
    def is_empty(self) -> bool:
        return len(self.rules) == 0


class ConditionOutput(BaseModel):
    """Named branch of a multi-output condition"""
    model_config = _MODEL_CONFIG

    id: Optional[str] = None
    label: Optional[str] = None
    value: str = Field(..., min_length=1)
    description: Optional[str] = None
    operator: CombineOperator = CombineOperator.AND
    rules: Tuple[Rule, ...] = ()

    @field_validator("operator", mode="before")
    @classmethod
    def _default_operator(cls, value: Any) -> Any:
        return value or CombineOperator.AND

    @property
    def rule_set(self) -> RuleSet:
        return RuleSet(operator=self.operator, rules=self.rules)

    @property
    def is_default(self) -> bool:
        return len(self.rules) == 0


class SimpleCondition(BaseModel):
    """Boolean condition routed through the "true" / "false" handles"""
    model_config = _MODEL_CONFIG

    mode: Literal["simple"] = "simple"
    rule_set: RuleSet = Field(default_factory=RuleSet, alias="ruleSet")

    @property
    def handles(self) -> Tuple[str, str]:
        return (TRUE_HANDLE, FALSE_HANDLE)


class MultiOutputCondition(BaseModel):
    """Condition choosing the first output whose rule-set holds"""
    model_config = _MODEL_CONFIG

    mode: Literal["multi-output"] = "multi-output"
    outputs: Tuple[ConditionOutput, ...] = ()

    @property
    def handles(self) -> Tuple[str, ...]:
        return tuple(output.value for output in self.outputs)

    @property
    def has_default(self) -> bool:
        return any(output.is_default for output in self.outputs)


ConditionSpec = Annotated[Union[SimpleCondition, MultiOutputCondition], Field(discriminator="mode")]


class QuestionOption(BaseModel):
    """Selectable answer offered with a question"""
    model_config = _MODEL_CONFIG

    id: str
    label: str
    value: str


class AnswerValidation(BaseModel):
    """Constraints checked before an answer is committed"""
    model_config = _MODEL_CONFIG

    required: bool = False
    min_length: Optional[int] = Field(default=None, alias="minLength", ge=0)
    max_length: Optional[int] = Field(default=None, alias="maxLength", ge=0)
    pattern: Optional[str] = None
    message: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def _compile_pattern(cls, value: Optional[str]) -> Optional[str]:
        if value:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid pattern {value!r}: {e}") from e
        return value


def option_value_from_label(label: str) -> str:
    """Derive an option value from a plain-string option label"""
    return re.sub(r"[^a-z0-9]", "_", label.lower())


class _NodeBase(BaseModel):
    model_config = _MODEL_CONFIG

    id: str = Field(..., min_length=1)
    label: Optional[str] = None


class StartNode(_NodeBase):
    kind: Literal["start"] = "start"


class MessageNode(_NodeBase):
    kind: Literal["message"] = "message"
    text: str = ""


class QuestionNode(_NodeBase):
    kind: Literal["question"] = "question"
    text: str = ""
    options: Tuple[QuestionOption, ...] = ()
    variable_name: Optional[str] = Field(default=None, alias="variableName")
    # (condition node id, handle) pairs; a tuple keeps shared graphs immutable
    condition_triggers: Tuple[Tuple[str, str], ...] = Field(default=(), alias="conditionTriggers")
    question_type: QuestionType = Field(default=QuestionType.TEXT, alias="questionType")
    required: bool = False
    validation: Optional[AnswerValidation] = None

    @field_validator("options", mode="before")
    @classmethod
    def _normalize_options(cls, value: Any) -> Any:
        if not value:
            return ()
        normalized = []
        for index, option in enumerate(value):
            if isinstance(option, str):
                normalized.append({
                    "id": f"opt-{index}",
                    "label": option,
                    "value": option_value_from_label(option)
                })
            else:
                normalized.append(option)
        return normalized

    @field_validator("condition_triggers", mode="before")
    @classmethod
    def _freeze_triggers(cls, value: Any) -> Any:
        if not value:
            return ()
        pairs = value.items() if isinstance(value, Mapping) else value
        return tuple(tuple(pair) for pair in pairs)

    @field_validator("question_type", mode="before")
    @classmethod
    def _default_question_type(cls, value: Any) -> Any:
        return value or QuestionType.TEXT

    def option_by_value(self, value: str) -> Optional[QuestionOption]:
        for option in self.options:
            if option.value == value:
                return option
        return None

    def expected_handle(self, source_node_id: str) -> Optional[str]:
        """Handle this question must be entered through when coming from source_node_id"""
        for source_id, handle in self.condition_triggers:
            if source_id == source_node_id:
                return handle
        return None


class ConditionNode(_NodeBase):
    kind: Literal["condition"] = "condition"
    condition: ConditionSpec = Field(default_factory=SimpleCondition)


class EndNode(_NodeBase):
    kind: Literal["end"] = "end"
    message: Optional[str] = None


Node = Annotated[
    Union[StartNode, MessageNode, QuestionNode, ConditionNode, EndNode],
    Field(discriminator="kind")
]

NODE_ADAPTER = TypeAdapter(Node)


class Edge(BaseModel):
    """Directed connection between two nodes"""
    model_config = _MODEL_CONFIG

    id: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    label: Optional[str] = None


class FlowGraph:
    """
    Immutable, validated flow graph.

    Construction checks every structural invariant and raises GraphError on the
    first violation, so traversal code can assume a well-formed graph:
    - exactly one start node, unique node and edge ids
    - every edge references existing nodes
    - simple conditions leave through at most one "true" and one "false" edge
    - multi-output conditions only use handles naming declared outputs

    Non-fatal findings are collected on ``warnings``.
    """

    __slots__ = (
        "_flow_id", "_name", "_nodes", "_edges", "_by_id",
        "_outgoing", "_incoming", "_start", "_warnings"
    )

    def __init__(
        self,
        nodes: Iterable[Node],
        edges: Iterable[Edge],
        flow_id: Optional[str] = None,
        name: Optional[str] = None,
        require_default_output: bool = False
    ):
        self._flow_id = flow_id
        self._name = name
        self._nodes: Tuple[Node, ...] = tuple(nodes)
        self._edges: Tuple[Edge, ...] = tuple(edges)

        by_id: Dict[str, Node] = {}
        for node in self._nodes:
            if node.id in by_id:
                raise GraphError(
                    GraphErrorKind.DUPLICATE_NODE_ID,
                    f"Node id '{node.id}' is used more than once",
                    node_id=node.id
                )
            by_id[node.id] = node
        self._by_id: Mapping[str, Node] = MappingProxyType(by_id)

        starts = [node for node in self._nodes if node.kind == NodeKind.START]
        if not starts:
            raise GraphError(GraphErrorKind.MISSING_START_NODE, "Flow has no start node")
        if len(starts) > 1:
            raise GraphError(
                GraphErrorKind.MULTIPLE_START_NODES,
                f"Flow has {len(starts)} start nodes: {', '.join(n.id for n in starts)}",
                node_id=starts[1].id
            )
        self._start = starts[0]

        outgoing: Dict[str, List[Edge]] = defaultdict(list)
        incoming: Dict[str, List[Edge]] = defaultdict(list)
        edge_ids: Set[str] = set()
        for edge in self._edges:
            if edge.id in edge_ids:
                raise GraphError(
                    GraphErrorKind.DUPLICATE_EDGE_ID,
                    f"Edge id '{edge.id}' is used more than once",
                    edge_id=edge.id
                )
            edge_ids.add(edge.id)
            for endpoint in (edge.source, edge.target):
                if endpoint not in by_id:
                    raise GraphError(
                        GraphErrorKind.DANGLING_EDGE,
                        f"Edge '{edge.id}' references unknown node '{endpoint}'",
                        node_id=endpoint,
                        edge_id=edge.id
                    )
            outgoing[edge.source].append(edge)
            incoming[edge.target].append(edge)

        self._outgoing: Mapping[str, Tuple[Edge, ...]] = MappingProxyType(
            {node_id: tuple(group) for node_id, group in outgoing.items()}
        )
        self._incoming: Mapping[str, Tuple[Edge, ...]] = MappingProxyType(
            {node_id: tuple(group) for node_id, group in incoming.items()}
        )

        warnings: List[GraphWarning] = []
        for node in self._nodes:
            if isinstance(node, ConditionNode):
                self._validate_condition_edges(node, require_default_output, warnings)
        self._collect_reachability_warnings(warnings)
        self._warnings: Tuple[GraphWarning, ...] = tuple(warnings)

        for warning in self._warnings:
            logger.warning(f"Flow {self._flow_id or '<unnamed>'}: {warning.message}")
        logger.debug(
            f"FlowGraph {self._flow_id or '<unnamed>'} loaded with "
            f"{len(self._nodes)} nodes and {len(self._edges)} edges"
        )

    def _validate_condition_edges(
        self,
        node: ConditionNode,
        require_default_output: bool,
        warnings: List[GraphWarning]
    ) -> None:
        spec = node.condition
        allowed = set(spec.handles)
        seen: Set[str] = set()

        for edge in self._outgoing.get(node.id, ()):
            handle = edge.source_handle
            if handle is None or handle not in allowed:
                raise GraphError(
                    GraphErrorKind.INVALID_HANDLE,
                    f"Edge '{edge.id}' leaves condition '{node.id}' through handle "
                    f"{handle!r}; expected one of {sorted(allowed)}",
                    node_id=node.id,
                    edge_id=edge.id
                )
            if isinstance(spec, SimpleCondition) and handle in seen:
                raise GraphError(
                    GraphErrorKind.INVALID_HANDLE,
                    f"Condition '{node.id}' has more than one '{handle}' edge",
                    node_id=node.id,
                    edge_id=edge.id
                )
            seen.add(handle)

        if isinstance(spec, MultiOutputCondition) and not spec.has_default:
            message = f"Multi-output condition '{node.id}' has no default output (empty rule-set)"
            if require_default_output:
                raise GraphError(GraphErrorKind.MISSING_DEFAULT_OUTPUT, message, node_id=node.id)
            warnings.append(GraphWarning(GraphWarningKind.MISSING_DEFAULT_OUTPUT, message, node.id))

    def _collect_reachability_warnings(self, warnings: List[GraphWarning]) -> None:
        reachable = self.reachable_from(self._start.id)
        end_nodes = [node for node in self._nodes if node.kind == NodeKind.END]

        if not end_nodes:
            warnings.append(GraphWarning(GraphWarningKind.NO_END_NODE, "Flow should have an end node"))

        for node in end_nodes:
            if node.id not in reachable:
                warnings.append(GraphWarning(
                    GraphWarningKind.UNREACHABLE_END_NODE,
                    f"End node '{node.id}' cannot be reached from the start node",
                    node.id
                ))

        for node in self._nodes:
            if node.kind == NodeKind.START:
                continue
            if node.id not in self._outgoing and node.id not in self._incoming:
                warnings.append(GraphWarning(
                    GraphWarningKind.DISCONNECTED_NODE,
                    f"Node '{node.id}' is not connected",
                    node.id
                ))

    # Structural queries

    @property
    def flow_id(self) -> Optional[str]:
        return self._flow_id

    @property
    def name(self) -> Optional[str]:
        return self._name

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return self._nodes

    @property
    def edges(self) -> Tuple[Edge, ...]:
        return self._edges

    @property
    def start_node(self) -> StartNode:
        return self._start

    @property
    def warnings(self) -> Tuple[GraphWarning, ...]:
        return self._warnings

    def node_by_id(self, node_id: str) -> Optional[Node]:
        """Return the node with this id, or None when it does not exist"""
        return self._by_id.get(node_id)

    def outgoing_edges(self, node_id: str) -> Tuple[Edge, ...]:
        """Edges leaving node_id, in authoring order"""
        return self._outgoing.get(node_id, ())

    def incoming_edges(self, node_id: str) -> Tuple[Edge, ...]:
        return self._incoming.get(node_id, ())

    def reachable_from(self, node_id: str) -> Set[str]:
        """Ids of every node reachable from node_id, itself included"""
        seen = {node_id}
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for edge in self._outgoing.get(current, ()):
                if edge.target not in seen:
                    seen.add(edge.target)
                    queue.append(edge.target)
        return seen

    def question_variables(self) -> List[str]:
        """Variable names the flow can collect, in authoring order"""
        names = []
        for node in self._nodes:
            if isinstance(node, QuestionNode) and node.variable_name and node.variable_name not in names:
                names.append(node.variable_name)
        return names

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._by_id

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"FlowGraph(id={self._flow_id!r}, nodes={len(self._nodes)}, edges={len(self._edges)})"

    @classmethod
    def from_dicts(
        cls,
        nodes: Iterable[Dict[str, Any]],
        edges: Iterable[Dict[str, Any]],
        **kwargs: Any
    ) -> "FlowGraph":
        """Build a graph from plain dicts already in engine shape (``kind`` keyed)"""
        try:
            parsed_nodes = [NODE_ADAPTER.validate_python(node) for node in nodes]
            parsed_edges = [Edge.model_validate(edge) for edge in edges]
        except ValidationError as e:
            raise GraphError(GraphErrorKind.INVALID_DOCUMENT, f"Invalid flow definition: {e}") from e
        return cls(parsed_nodes, parsed_edges, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self._flow_id,
            "name": self._name,
            "nodes": [node.model_dump(mode="json") for node in self._nodes],
            "edges": [edge.model_dump(mode="json") for edge in self._edges]
        }

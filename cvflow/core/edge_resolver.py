"""
Edge Resolution

Picks the single next node to visit after the current one:

- Non-condition nodes follow their first outgoing edge (authoring order).
- Simple conditions follow the "true" or "false" edge.
- Multi-output conditions follow the edge of the first matching output.

Question nodes can carry ``condition_triggers`` guards naming, per condition
node, the only handle through which the question may be entered. A guard
mismatch rejects the candidate: a simple condition then resolves to nothing,
a multi-output condition moves on to its next matching output.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional, Mapping

from ..errors import GraphError, GraphErrorKind, RuntimeAbort, RuntimeAbortKind
from ..models.flow_graph import (
    FlowGraph,
    Node,
    Edge,
    ConditionNode,
    QuestionNode,
    SimpleCondition,
    MultiOutputCondition,
    TRUE_HANDLE,
    FALSE_HANDLE
)
from .condition_evaluator import RuleEvaluation, evaluate_rule_set, matching_outputs

logger = logging.getLogger(__name__)


class UnresolvedReason(str, Enum):
    """Why no next node could be chosen"""
    NO_OUTGOING_EDGES = "no_outgoing_edges"
    NO_OUTPUT_MATCHED = "no_output_matched"
    NO_EDGE_FOR_HANDLE = "no_edge_for_handle"
    GUARD_REJECTED = "guard_rejected"


@dataclass(frozen=True)
class GuardRejection:
    """A candidate target refused because it expects another handle"""
    target_id: str
    expected_handle: str
    actual_handle: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "expected_handle": self.expected_handle,
            "actual_handle": self.actual_handle
        }


@dataclass
class Resolution:
    """Result of resolving the next node, with everything needed for tracing"""
    source_id: str
    target: Optional[Node] = None
    edge: Optional[Edge] = None
    handle: Optional[str] = None
    reason: Optional[UnresolvedReason] = None
    rule_set_result: Optional[bool] = None
    evaluations: List[RuleEvaluation] = field(default_factory=list)
    rejections: List[GuardRejection] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.target is not None

    def to_abort(self) -> RuntimeAbort:
        """Express an unresolved result as a session-fatal error"""
        if self.reason == UnresolvedReason.GUARD_REJECTED:
            return RuntimeAbort(
                RuntimeAbortKind.GUARD_REJECTED_ALL_CANDIDATES,
                f"Every branch leaving '{self.source_id}' was rejected by a question guard",
                node_id=self.source_id
            )
        reason = self.reason.value if self.reason else "unknown"
        return RuntimeAbort(
            RuntimeAbortKind.NO_EDGE_RESOLVED,
            f"No edge could be resolved from '{self.source_id}' ({reason})",
            node_id=self.source_id
        )


def _target_of(graph: FlowGraph, edge: Edge) -> Node:
    target = graph.node_by_id(edge.target)
    if target is None:
        raise GraphError(
            GraphErrorKind.DANGLING_EDGE,
            f"Edge '{edge.id}' points to unknown node '{edge.target}'",
            node_id=edge.target,
            edge_id=edge.id
        )
    return target


def _edge_for_handle(graph: FlowGraph, node_id: str, handle: str) -> Optional[Edge]:
    for edge in graph.outgoing_edges(node_id):
        if edge.source_handle == handle:
            return edge
    return None


def check_guard(source: Node, target: Node, handle: Optional[str]) -> Optional[GuardRejection]:
    """Return a rejection when target refuses to be entered from source via handle"""
    if not isinstance(target, QuestionNode):
        return None
    expected = target.expected_handle(source.id)
    if expected is None or expected == handle:
        return None
    return GuardRejection(target_id=target.id, expected_handle=expected, actual_handle=handle)


def resolve(graph: FlowGraph, current: Node, store: Mapping[str, str]) -> Resolution:
    """Resolve the next node after ``current`` given the variables in ``store``"""
    resolution = Resolution(source_id=current.id)

    if not isinstance(current, ConditionNode):
        edges = graph.outgoing_edges(current.id)
        if not edges:
            resolution.reason = UnresolvedReason.NO_OUTGOING_EDGES
            return resolution
        resolution.edge = edges[0]
        resolution.target = _target_of(graph, edges[0])
        return resolution

    spec = current.condition
    if isinstance(spec, SimpleCondition):
        _resolve_simple(graph, current, spec, store, resolution)
    else:
        _resolve_multi_output(graph, current, spec, store, resolution)

    if resolution.resolved:
        logger.debug(f"Condition '{current.id}' routed via '{resolution.handle}' to '{resolution.target.id}'")
    else:
        logger.debug(f"Condition '{current.id}' did not resolve: {resolution.reason.value}")
    return resolution


def _resolve_simple(
    graph: FlowGraph,
    current: ConditionNode,
    spec: SimpleCondition,
    store: Mapping[str, str],
    resolution: Resolution
) -> None:
    matched = evaluate_rule_set(spec.rule_set, store, resolution.evaluations)
    handle = TRUE_HANDLE if matched else FALSE_HANDLE
    resolution.rule_set_result = matched
    resolution.handle = handle

    edge = _edge_for_handle(graph, current.id, handle)
    if edge is None:
        resolution.reason = UnresolvedReason.NO_EDGE_FOR_HANDLE
        return

    target = _target_of(graph, edge)
    rejection = check_guard(current, target, handle)
    if rejection is not None:
        # Only one candidate per boolean value
        logger.warning(
            f"Question '{target.id}' expects trigger '{rejection.expected_handle}' "
            f"from '{current.id}' but was reached via '{handle}'"
        )
        resolution.rejections.append(rejection)
        resolution.reason = UnresolvedReason.GUARD_REJECTED
        return

    resolution.edge = edge
    resolution.target = target


def _resolve_multi_output(
    graph: FlowGraph,
    current: ConditionNode,
    spec: MultiOutputCondition,
    store: Mapping[str, str],
    resolution: Resolution
) -> None:
    matched_any = False
    for output in matching_outputs(spec.outputs, store, resolution.evaluations):
        matched_any = True
        edge = _edge_for_handle(graph, current.id, output.value)
        if edge is None:
            logger.debug(f"Output '{output.value}' of '{current.id}' matched but has no edge")
            continue

        target = _target_of(graph, edge)
        rejection = check_guard(current, target, output.value)
        if rejection is not None:
            logger.warning(
                f"Question '{target.id}' expects trigger '{rejection.expected_handle}' "
                f"from '{current.id}' but output is '{output.value}', trying next output"
            )
            resolution.rejections.append(rejection)
            continue

        resolution.handle = output.value
        resolution.edge = edge
        resolution.target = target
        return

    if resolution.rejections:
        resolution.reason = UnresolvedReason.GUARD_REJECTED
    elif matched_any:
        resolution.reason = UnresolvedReason.NO_EDGE_FOR_HANDLE
    else:
        resolution.reason = UnresolvedReason.NO_OUTPUT_MATCHED


def resolve_next(graph: FlowGraph, current: Node, store: Mapping[str, str]) -> Optional[Node]:
    """Next node after ``current``, or None at the end of the flow"""
    return resolve(graph, current, store).target

"""
Flow Engine Error Taxonomy

Three families of failures can surface from the engine:

- GraphError: the authored graph is malformed. Detected once, when the graph
  is loaded, and fatal to loading.
- RuntimeAbort: the graph is well formed but routing cannot continue with the
  data collected so far. Fatal to the session.
- InvalidAnswer: the caller broke the interpreter contract (wrong state,
  unknown option, answer failing validation). Session state is left untouched.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Optional


class GraphErrorKind(str, Enum):
    """Structural problems detected while loading a flow graph"""
    MISSING_START_NODE = "missing_start_node"
    MULTIPLE_START_NODES = "multiple_start_nodes"
    DUPLICATE_NODE_ID = "duplicate_node_id"
    DUPLICATE_EDGE_ID = "duplicate_edge_id"
    DANGLING_EDGE = "dangling_edge"
    INVALID_HANDLE = "invalid_handle"
    MISSING_DEFAULT_OUTPUT = "missing_default_output"
    UNSUPPORTED_NODE_TYPE = "unsupported_node_type"
    INVALID_DOCUMENT = "invalid_document"


class GraphWarningKind(str, Enum):
    """Non-fatal findings reported alongside a valid graph"""
    UNREACHABLE_END_NODE = "unreachable_end_node"
    MISSING_DEFAULT_OUTPUT = "missing_default_output"
    DISCONNECTED_NODE = "disconnected_node"
    NO_END_NODE = "no_end_node"


class RuntimeAbortKind(str, Enum):
    """Reasons a running session cannot continue"""
    NO_EDGE_RESOLVED = "no_edge_resolved"
    GUARD_REJECTED_ALL_CANDIDATES = "guard_rejected_all_candidates"
    CYCLE_WITHOUT_INPUT = "cycle_without_input"


class InvalidAnswerKind(str, Enum):
    """Caller contract violations"""
    WRONG_STATE = "wrong_state"
    UNKNOWN_OPTION = "unknown_option"
    VALIDATION_FAILED = "validation_failed"


class FlowEngineError(Exception):
    """Base exception for flow engine errors"""

    def __init__(
        self,
        kind: Enum,
        message: str,
        node_id: Optional[str] = None,
        edge_id: Optional[str] = None
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.node_id = node_id
        self.edge_id = edge_id

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses and observer payloads"""
        return {
            "error": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "node_id": self.node_id,
            "edge_id": self.edge_id
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value!r}, {self.message!r})"


class GraphError(FlowEngineError):
    """Raised when a flow graph violates a structural invariant"""
    pass


class RuntimeAbort(FlowEngineError):
    """Raised when routing cannot continue during a session"""
    pass


class InvalidAnswer(FlowEngineError):
    """Raised when an answer or option is submitted against the contract"""
    pass


@dataclass(frozen=True)
class GraphWarning:
    """Non-fatal validation finding"""
    kind: GraphWarningKind
    message: str
    node_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "node_id": self.node_id}

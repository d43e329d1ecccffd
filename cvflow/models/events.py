"""
Observer events, execution trace records and transcript entries emitted by
the flow interpreter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional, Literal, Tuple, ClassVar

from ..errors import FlowEngineError
from .flow_graph import QuestionOption


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FlowEvent(ABC):
    """Base class for everything delivered to a session observer"""
    event_type: ClassVar[str] = "event"

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        pass


@dataclass(frozen=True)
class MessagePresented(FlowEvent):
    """A message or closing text to show to the user"""
    event_type: ClassVar[str] = "message_presented"

    text: str
    node_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.event_type, "node_id": self.node_id, "text": self.text}


@dataclass(frozen=True)
class QuestionPresented(FlowEvent):
    """The session is waiting for an answer to this question"""
    event_type: ClassVar[str] = "question_presented"

    text: str
    node_id: str
    options: Tuple[QuestionOption, ...] = ()
    question_type: str = "text"
    required: bool = False
    variable_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type,
            "node_id": self.node_id,
            "text": self.text,
            "options": [option.model_dump() for option in self.options],
            "question_type": self.question_type,
            "required": self.required,
            "variable_name": self.variable_name
        }


@dataclass(frozen=True)
class FlowCompleted(FlowEvent):
    """The session finished; ``variables`` is the final store snapshot"""
    event_type: ClassVar[str] = "flow_completed"

    variables: Dict[str, str]
    early_termination: bool = False
    end_node_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type,
            "variables": dict(self.variables),
            "early_termination": self.early_termination,
            "end_node_id": self.end_node_id
        }


@dataclass(frozen=True)
class FlowAborted(FlowEvent):
    """The session cannot continue"""
    event_type: ClassVar[str] = "flow_aborted"

    error: FlowEngineError

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.event_type, "error": self.error.to_dict()}


class TraceEventType(str, Enum):
    """Kinds of per-step trace records"""
    STATE_CHANGED = "state_changed"
    NODE_ENTERED = "node_entered"
    RULE_EVALUATED = "rule_evaluated"
    RULE_SET_EVALUATED = "rule_set_evaluated"
    OUTPUT_SELECTED = "output_selected"
    GUARD_REJECTED = "guard_rejected"
    EDGE_FOLLOWED = "edge_followed"
    DEAD_END = "dead_end"
    ANSWER_COMMITTED = "answer_committed"
    QUESTION_SKIPPED = "question_skipped"


@dataclass(frozen=True)
class TraceEntry:
    """Structured debugging record attached to a session"""
    step: int
    event_type: TraceEventType
    node_id: Optional[str] = None
    detail: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "event_type": self.event_type.value,
            "node_id": self.node_id,
            "detail": self.detail,
            "timestamp": self.timestamp
        }


@dataclass(frozen=True)
class TranscriptMessage:
    """One chat turn as the user would have seen it"""
    role: Literal["user", "assistant"]
    content: str
    node_id: Optional[str] = None
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content, "node_id": self.node_id, "timestamp": self.timestamp}


def events_to_dicts(events: List[FlowEvent]) -> List[Dict[str, Any]]:
    return [event.to_dict() for event in events]

"""
Flow Interpreter State Machine

Drives one conversation session through an authored flow graph:

    Idle -> Running -> AwaitingInput -> Running -> ... -> Completed
                 \\                                     \\-> Aborted

Start, message and condition nodes are advanced through automatically. A
question node is the only suspension point: the interpreter presents it and
returns until the caller submits an answer. End nodes, and nodes from which
no edge resolves, complete the session.

Each session owns its interpreter, variable store and cursor. The flow graph
is immutable and may be shared between sessions.
"""

import logging
import re
import uuid
from collections import deque
from enum import Enum
from typing import Dict, Any, List, Optional, Callable, Mapping

from ..errors import (
    FlowEngineError,
    GraphError,
    RuntimeAbort,
    RuntimeAbortKind,
    InvalidAnswer,
    InvalidAnswerKind
)
from ..models.events import (
    FlowEvent,
    MessagePresented,
    QuestionPresented,
    FlowCompleted,
    FlowAborted,
    TraceEntry,
    TraceEventType,
    TranscriptMessage
)
from ..models.flow_graph import (
    FlowGraph,
    Node,
    MessageNode,
    QuestionNode,
    ConditionNode,
    EndNode,
    MultiOutputCondition,
    QuestionType
)
from ..models.variable_store import VariableStore, to_text
from ..monitoring.flow_metrics import FlowMetricsCollector
from .config import Settings, settings
from .edge_resolver import Resolution, resolve

logger = logging.getLogger(__name__)

Observer = Callable[[FlowEvent], None]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^[+]?[0-9\s\-()]{10,}$")


class SessionState(str, Enum):
    """Interpreter lifecycle states"""
    IDLE = "idle"                      # No flow loaded
    RUNNING = "running"                # Advancing automatically
    AWAITING_INPUT = "awaiting_input"  # Paused at a question
    COMPLETED = "completed"            # Reached an end node or a dead end
    ABORTED = "aborted"                # Routing failed; flow cannot continue


class FlowInterpreter:
    """
    Session-scoped interpreter for a flow graph.

    Every event is delivered synchronously to the optional observer and
    appended to ``events``; the public operations also return the events they
    produced. Errors that abort the session are emitted as FlowAborted and then
    re-raised to the caller.
    """

    def __init__(
        self,
        observer: Optional[Observer] = None,
        config: Optional[Settings] = None,
        metrics: Optional[FlowMetricsCollector] = None,
        session_id: Optional[str] = None
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.config = config or settings
        self.observer = observer
        self.metrics = metrics

        self._state = SessionState.IDLE
        self._graph: Optional[FlowGraph] = None
        self._store = VariableStore()
        self._cursor: Optional[Node] = None
        self._pending_question: Optional[QuestionPresented] = None
        self._step = 0
        self._early_termination = False
        self._error: Optional[FlowEngineError] = None

        self.events: List[FlowEvent] = []
        self.transcript: List[TranscriptMessage] = []
        self._trace: deque = deque(maxlen=self.config.max_trace_entries)

    # Read-only views

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def graph(self) -> Optional[FlowGraph]:
        return self._graph

    @property
    def store(self) -> VariableStore:
        return self._store

    @property
    def variables(self) -> Dict[str, str]:
        return self._store.snapshot()

    @property
    def current_node(self) -> Optional[Node]:
        return self._cursor

    @property
    def pending_question(self) -> Optional[QuestionPresented]:
        return self._pending_question

    @property
    def step(self) -> int:
        return self._step

    @property
    def early_termination(self) -> bool:
        return self._early_termination

    @property
    def error(self) -> Optional[FlowEngineError]:
        return self._error

    @property
    def trace(self) -> List[TraceEntry]:
        return list(self._trace)

    @property
    def is_finished(self) -> bool:
        return self._state in (SessionState.COMPLETED, SessionState.ABORTED)

    # Caller operations

    def start(self, graph: FlowGraph, initial_variables: Optional[Mapping[str, Any]] = None) -> List[FlowEvent]:
        """Load ``graph`` and advance from its start node to the first suspension point"""
        if self._state != SessionState.IDLE:
            logger.info(f"Session {self.session_id} restarting from state {self._state.value}")
            self.reset()

        mark = len(self.events)
        self._graph = graph
        self._store = VariableStore(initial_variables)
        self._step = 0

        if self.metrics:
            self.metrics.record_session_started(self.session_id, graph.flow_id)
        logger.info(f"Session {self.session_id} started flow {graph.flow_id or '<unnamed>'}")

        self._set_state(SessionState.RUNNING)
        try:
            self._advance(graph.start_node)
        except (GraphError, RuntimeAbort) as e:
            self._abort(e)
            raise

        return self.events[mark:]

    def submit_answer(self, value: Any) -> List[FlowEvent]:
        """Commit an answer to the pending question and advance"""
        question = self._require_question()
        text = to_text(value)
        mark = len(self.events)

        if self._is_skip(text):
            self._skip(question)
        else:
            self._validate_answer(question, text)
            self._commit(question, text, display=text)

        self._resume_after(question)
        return self.events[mark:]

    def select_option(self, option_value: Any) -> List[FlowEvent]:
        """Answer the pending question with one of its options"""
        question = self._require_question()
        if not question.options:
            return self.submit_answer(option_value)

        option = question.option_by_value(to_text(option_value))
        if option is None:
            raise InvalidAnswer(
                InvalidAnswerKind.UNKNOWN_OPTION,
                f"'{option_value}' is not an option of question '{question.id}'",
                node_id=question.id
            )

        mark = len(self.events)
        self._commit(question, option.value, display=option.label)
        self._resume_after(question)
        return self.events[mark:]

    def reset(self) -> None:
        """Drop the loaded flow, cursor and variables; valid from any state"""
        if self.metrics and self._state in (SessionState.RUNNING, SessionState.AWAITING_INPUT):
            flow_id = self._graph.flow_id if self._graph else None
            self.metrics.record_session_end(self.session_id, "abandoned", flow_id=flow_id)

        previous = self._state
        self._state = SessionState.IDLE
        self._graph = None
        self._store = VariableStore()
        self._cursor = None
        self._pending_question = None
        self._step = 0
        self._early_termination = False
        self._error = None
        self.events = []
        self.transcript = []
        self._trace.clear()

        if previous != SessionState.IDLE:
            logger.info(f"Session {self.session_id} reset from state {previous.value}")

    def snapshot(self) -> Dict[str, Any]:
        """JSON-friendly summary of the session"""
        return {
            "session_id": self.session_id,
            "flow_id": self._graph.flow_id if self._graph else None,
            "state": self._state.value,
            "current_node_id": self._cursor.id if self._cursor else None,
            "step": self._step,
            "variables": self._store.snapshot(),
            "pending_question": self._pending_question.to_dict() if self._pending_question else None,
            "early_termination": self._early_termination,
            "error": self._error.to_dict() if self._error else None,
            "transcript": [message.to_dict() for message in self.transcript]
        }

    # Advancing

    def _advance(self, node: Node) -> None:
        """Enter nodes until the session suspends or finishes"""
        visited = set()
        current: Optional[Node] = node

        while current is not None:
            if current.id in visited:
                raise RuntimeAbort(
                    RuntimeAbortKind.CYCLE_WITHOUT_INPUT,
                    f"Node '{current.id}' was re-entered without consuming an answer",
                    node_id=current.id
                )
            visited.add(current.id)
            self._enter(current)

            if isinstance(current, QuestionNode):
                self._present_question(current)
                return
            if isinstance(current, EndNode):
                self._complete(early_termination=False, end_node=current)
                return
            if isinstance(current, MessageNode):
                self._say(current.text, current.id)

            current = self._follow(current)

    def _resume_after(self, question: QuestionNode) -> None:
        self._pending_question = None
        self._set_state(SessionState.RUNNING)
        try:
            following = self._follow(question)
            if following is not None:
                self._advance(following)
        except (GraphError, RuntimeAbort) as e:
            self._abort(e)
            raise

    def _follow(self, current: Node) -> Optional[Node]:
        """Resolve the next node; completes the session at a dead end"""
        resolution = resolve(self._graph, current, self._store)
        self._record_resolution(current, resolution)

        if resolution.resolved:
            return resolution.target

        if isinstance(current, ConditionNode) and self.config.strict_routing:
            raise resolution.to_abort()

        self._record(TraceEventType.DEAD_END, current.id, {"reason": resolution.reason.value})
        logger.info(f"Session {self.session_id} reached a dead end at '{current.id}' ({resolution.reason.value})")
        self._complete(early_termination=True)
        return None

    def _enter(self, node: Node) -> None:
        self._cursor = node
        self._record(TraceEventType.NODE_ENTERED, node.id, {"kind": node.kind})
        if self.metrics:
            self.metrics.record_node_visit(node.kind)

    def _present_question(self, question: QuestionNode) -> None:
        text = question.text or self.config.default_question_text
        event = QuestionPresented(
            text=text,
            node_id=question.id,
            options=question.options,
            question_type=question.question_type.value,
            required=self._is_required(question),
            variable_name=question.variable_name
        )
        self._pending_question = event
        self._set_state(SessionState.AWAITING_INPUT)
        self.transcript.append(TranscriptMessage(role="assistant", content=text, node_id=question.id))
        self._emit(event)

    def _say(self, text: str, node_id: Optional[str]) -> None:
        self.transcript.append(TranscriptMessage(role="assistant", content=text, node_id=node_id))
        self._emit(MessagePresented(text=text, node_id=node_id))

    def _complete(self, early_termination: bool, end_node: Optional[EndNode] = None) -> None:
        if end_node is not None:
            closing = end_node.message or self.config.default_end_message
            if closing:
                self._say(closing, end_node.id)

        self._early_termination = early_termination
        self._set_state(SessionState.COMPLETED)
        self._emit(FlowCompleted(
            variables=self._store.snapshot(),
            early_termination=early_termination,
            end_node_id=end_node.id if end_node else None
        ))

        if self.metrics:
            self.metrics.record_session_end(
                self.session_id,
                SessionState.COMPLETED.value,
                early_termination=early_termination,
                flow_id=self._graph.flow_id
            )
        logger.info(
            f"Session {self.session_id} completed "
            f"({'terminated early' if early_termination else 'end node reached'}) "
            f"with {len(self._store)} variables"
        )

    def _abort(self, error: FlowEngineError) -> None:
        self._error = error
        self._pending_question = None
        self._set_state(SessionState.ABORTED)
        self._emit(FlowAborted(error=error))

        if self.metrics:
            self.metrics.record_session_end(
                self.session_id,
                SessionState.ABORTED.value,
                flow_id=self._graph.flow_id if self._graph else None,
                error_kind=error.kind.value
            )
        logger.warning(f"Session {self.session_id} aborted: {error.message}")

    # Answers

    def _require_question(self) -> QuestionNode:
        if self._state != SessionState.AWAITING_INPUT or not isinstance(self._cursor, QuestionNode):
            raise InvalidAnswer(
                InvalidAnswerKind.WRONG_STATE,
                f"Cannot accept an answer while the session is {self._state.value}",
                node_id=self._cursor.id if self._cursor else None
            )
        return self._cursor

    def _is_required(self, question: QuestionNode) -> bool:
        return question.required or bool(question.validation and question.validation.required)

    def _is_skip(self, text: str) -> bool:
        if not self.config.allow_skip:
            return False
        return text.strip().lower() in {phrase.lower() for phrase in self.config.skip_phrases}

    def _skip(self, question: QuestionNode) -> None:
        required = self._is_required(question)
        self._step += 1
        self.transcript.append(TranscriptMessage(role="user", content="Skip", node_id=question.id))

        if required and question.variable_name:
            self._store.set(question.variable_name, self.config.skipped_placeholder, question.id, self._step)

        self._record(TraceEventType.QUESTION_SKIPPED, question.id, {
            "required": required,
            "variable_name": question.variable_name
        })
        acknowledgement = self.config.skip_required_message if required else self.config.skip_optional_message
        self._say(acknowledgement, question.id)

        if self.metrics:
            self.metrics.record_answer(self.session_id)
        logger.debug(f"Session {self.session_id} skipped question '{question.id}'")

    def _validate_answer(self, question: QuestionNode, text: str) -> None:
        rules = question.validation
        value = text.strip()

        def fail(default_message: str) -> None:
            message = rules.message if rules and rules.message else default_message
            raise InvalidAnswer(InvalidAnswerKind.VALIDATION_FAILED, message, node_id=question.id)

        if not value:
            if self._is_required(question):
                fail("This question requires an answer")
            return

        if rules is not None:
            if rules.min_length is not None and len(value) < rules.min_length:
                fail(f"Answer must be at least {rules.min_length} characters")
            if rules.max_length is not None and len(value) > rules.max_length:
                fail(f"Answer must be at most {rules.max_length} characters")
            if rules.pattern and not re.search(rules.pattern, value):
                fail("Answer does not match the expected format")

        if question.question_type == QuestionType.EMAIL and not _EMAIL_RE.match(value):
            fail("Please enter a valid email address")
        if question.question_type == QuestionType.PHONE and not _PHONE_RE.match(value):
            fail("Please enter a valid phone number")

    def _commit(self, question: QuestionNode, value: str, display: str) -> None:
        self._step += 1
        self.transcript.append(TranscriptMessage(role="user", content=display, node_id=question.id))

        if question.variable_name:
            self._store.set(question.variable_name, value, question.id, self._step)
        self._record(TraceEventType.ANSWER_COMMITTED, question.id, {
            "variable_name": question.variable_name,
            "value": value
        })

        if self.metrics:
            self.metrics.record_answer(self.session_id)

    # Bookkeeping

    def _emit(self, event: FlowEvent) -> None:
        self.events.append(event)
        if self.observer is not None:
            self.observer(event)

    def _set_state(self, new_state: SessionState) -> None:
        previous = self._state
        self._state = new_state
        self._record(TraceEventType.STATE_CHANGED, self._cursor.id if self._cursor else None, {
            "from": previous.value,
            "to": new_state.value
        })
        if self.metrics:
            self.metrics.record_transition(
                self.session_id,
                previous.value,
                new_state.value,
                flow_id=self._graph.flow_id if self._graph else None
            )

    def _record(self, event_type: TraceEventType, node_id: Optional[str], detail: Dict[str, Any]) -> None:
        self._trace.append(TraceEntry(step=self._step, event_type=event_type, node_id=node_id, detail=detail))

    def _record_resolution(self, node: Node, resolution: Resolution) -> None:
        for evaluation in resolution.evaluations:
            self._record(TraceEventType.RULE_EVALUATED, node.id, evaluation.to_dict())

        if resolution.rule_set_result is not None:
            self._record(TraceEventType.RULE_SET_EVALUATED, node.id, {
                "result": resolution.rule_set_result,
                "handle": resolution.handle
            })

        for rejection in resolution.rejections:
            self._record(TraceEventType.GUARD_REJECTED, node.id, rejection.to_dict())

        if (
            resolution.resolved
            and isinstance(node, ConditionNode)
            and isinstance(node.condition, MultiOutputCondition)
        ):
            self._record(TraceEventType.OUTPUT_SELECTED, node.id, {"output": resolution.handle})

        if resolution.resolved:
            self._record(TraceEventType.EDGE_FOLLOWED, node.id, {
                "edge_id": resolution.edge.id,
                "target_id": resolution.target.id,
                "handle": resolution.handle
            })

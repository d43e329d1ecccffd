"""
Session Hosting

Keeps one FlowInterpreter per conversation session for a server process.
Only the registry is shared and guarded by a lock; interpreters are never
shared between sessions, and a flow graph is shared read-only.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Mapping

from ..models.events import FlowEvent
from ..models.flow_graph import FlowGraph
from ..monitoring.flow_metrics import FlowMetricsCollector
from .config import Settings, settings
from .flow_interpreter import FlowInterpreter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionRecord:
    """Registry entry for one hosted session"""
    session_id: str
    interpreter: FlowInterpreter
    flow_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)

    def touch(self) -> None:
        self.last_activity = _utcnow()

    def idle_minutes(self, now: Optional[datetime] = None) -> float:
        now = now or _utcnow()
        return (now - self.last_activity).total_seconds() / 60


class SessionManager:
    """
    In-process registry of flow sessions.

    Unknown session ids raise KeyError. Engine errors raised by the
    interpreters propagate unchanged to the caller.
    """

    def __init__(self, config: Optional[Settings] = None, metrics: Optional[FlowMetricsCollector] = None):
        self.config = config or settings
        self.metrics = metrics
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

        logger.info(f"SessionManager initialized (max_sessions={self.config.max_sessions})")

    def create_session(
        self,
        graph: FlowGraph,
        flow_id: Optional[str] = None,
        initial_variables: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None
    ) -> SessionRecord:
        """Register a new session and start it; the first events are on the interpreter"""
        with self._lock:
            if len(self._sessions) >= self.config.max_sessions:
                self._cleanup_expired_locked(self.config.session_ttl_minutes)
            if len(self._sessions) >= self.config.max_sessions:
                raise RuntimeError(f"Session limit of {self.config.max_sessions} reached")

            session_id = session_id or str(uuid.uuid4())
            if session_id in self._sessions:
                raise ValueError(f"Session {session_id} already exists")

            interpreter = FlowInterpreter(config=self.config, metrics=self.metrics, session_id=session_id)
            record = SessionRecord(
                session_id=session_id,
                interpreter=interpreter,
                flow_id=flow_id or graph.flow_id
            )
            self._sessions[session_id] = record

        logger.info(f"Created session {session_id} for flow {record.flow_id or '<inline>'}")
        # Aborted sessions stay registered so callers can inspect them
        interpreter.start(graph, initial_variables)
        return record

    def get_session(self, session_id: str) -> SessionRecord:
        with self._lock:
            record = self._sessions.get(session_id)
        if record is None:
            raise KeyError(f"Session {session_id} not found")
        return record

    def submit_answer(self, session_id: str, value: Any) -> List[FlowEvent]:
        record = self.get_session(session_id)
        record.touch()
        return record.interpreter.submit_answer(value)

    def select_option(self, session_id: str, option_value: Any) -> List[FlowEvent]:
        record = self.get_session(session_id)
        record.touch()
        return record.interpreter.select_option(option_value)

    def reset_session(self, session_id: str) -> SessionRecord:
        """Return the session to Idle; it stays registered"""
        record = self.get_session(session_id)
        record.touch()
        record.interpreter.reset()
        return record

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            record = self._sessions.pop(session_id, None)
        if record is None:
            raise KeyError(f"Session {session_id} not found")
        record.interpreter.reset()
        logger.info(f"Deleted session {session_id}")

    def cleanup_expired(self, ttl_minutes: Optional[int] = None) -> int:
        """Reset and drop sessions idle for longer than the TTL"""
        with self._lock:
            ttl = self.config.session_ttl_minutes if ttl_minutes is None else ttl_minutes
            return self._cleanup_expired_locked(ttl)

    def _cleanup_expired_locked(self, ttl_minutes: int) -> int:
        now = _utcnow()
        expired = [
            session_id for session_id, record in self._sessions.items()
            if record.idle_minutes(now) > ttl_minutes
        ]
        for session_id in expired:
            self._sessions.pop(session_id).interpreter.reset()

        if expired:
            logger.info(f"Expired {len(expired)} idle sessions (ttl={ttl_minutes}m)")
        return len(expired)

    def list_sessions(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def get_health_status(self) -> Dict[str, Any]:
        """Session counts by state"""
        with self._lock:
            records = list(self._sessions.values())

        by_state: Dict[str, int] = {}
        for record in records:
            state = record.interpreter.state.value
            by_state[state] = by_state.get(state, 0) + 1

        return {
            "total_sessions": len(records),
            "sessions_by_state": by_state,
            "max_sessions": self.config.max_sessions,
            "session_ttl_minutes": self.config.session_ttl_minutes,
            "status": "healthy"
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

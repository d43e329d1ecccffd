"""
Flow Session Metrics

Counters and bounded history for flow sessions: how many were started,
completed, terminated early or aborted, how many answers were submitted,
which node kinds were visited and which state transitions occurred.
"""

import time
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, asdict
from threading import Lock
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class SessionTransitionMetric:
    """Metric for one interpreter state transition"""
    session_id: str
    from_state: str
    to_state: str
    timestamp: float
    flow_id: Optional[str] = None


@dataclass
class SessionOutcomeMetric:
    """Metric recorded when a session reaches a terminal state"""
    session_id: str
    final_state: str
    early_termination: bool
    duration_ms: float
    answers: int
    timestamp: float
    flow_id: Optional[str] = None
    error_kind: Optional[str] = None


class FlowMetricsCollector:
    """
    Collects and aggregates metrics for flow sessions.

    A single collector may be shared by every session in a process, so all
    mutation happens under a lock.
    """

    def __init__(self, max_history_size: int = 10000):
        self.max_history_size = max_history_size
        self._lock = Lock()

        self.transition_history: deque = deque(maxlen=max_history_size)
        self.outcome_history: deque = deque(maxlen=max_history_size)

        self.session_counters = defaultdict(int)
        self.node_visit_counters = defaultdict(int)
        self.transition_counters = defaultdict(int)
        self.error_counters = defaultdict(int)

        self.session_start_times: Dict[str, float] = {}
        self.answer_counts: Dict[str, int] = defaultdict(int)

        logger.info("FlowMetricsCollector initialized")

    def record_session_started(self, session_id: str, flow_id: Optional[str] = None):
        with self._lock:
            self.session_counters["started"] += 1
            self.session_start_times[session_id] = time.time()
            self.answer_counts[session_id] = 0

    def record_transition(self, session_id: str, from_state: str, to_state: str, flow_id: Optional[str] = None):
        """Record an interpreter state transition"""
        with self._lock:
            self.transition_history.append(SessionTransitionMetric(
                session_id=session_id,
                from_state=from_state,
                to_state=to_state,
                timestamp=time.time(),
                flow_id=flow_id
            ))
            self.transition_counters[f"{from_state}->{to_state}"] += 1

    def record_node_visit(self, node_kind: str):
        with self._lock:
            self.node_visit_counters[node_kind] += 1

    def record_answer(self, session_id: str):
        with self._lock:
            self.session_counters["answers"] += 1
            self.answer_counts[session_id] += 1

    def record_session_end(
        self,
        session_id: str,
        final_state: str,
        early_termination: bool = False,
        flow_id: Optional[str] = None,
        error_kind: Optional[str] = None
    ):
        """Record a session reaching Completed or Aborted"""
        with self._lock:
            started = self.session_start_times.pop(session_id, None)
            duration_ms = (time.time() - started) * 1000 if started else 0.0
            answers = self.answer_counts.pop(session_id, 0)

            self.outcome_history.append(SessionOutcomeMetric(
                session_id=session_id,
                final_state=final_state,
                early_termination=early_termination,
                duration_ms=duration_ms,
                answers=answers,
                timestamp=time.time(),
                flow_id=flow_id,
                error_kind=error_kind
            ))

            self.session_counters[final_state] += 1
            if early_termination:
                self.session_counters["early_terminated"] += 1
            if error_kind:
                self.error_counters[error_kind] += 1

    def get_completion_metrics(self) -> Dict[str, Any]:
        """Summary over the recorded session outcomes"""
        with self._lock:
            outcomes = list(self.outcome_history)

        if not outcomes:
            return {"sessions": 0}

        durations = [outcome.duration_ms for outcome in outcomes]
        answers = [outcome.answers for outcome in outcomes]
        return {
            "sessions": len(outcomes),
            "average_duration_ms": sum(durations) / len(durations),
            "average_answers": sum(answers) / len(answers),
            "early_termination_rate": sum(1 for o in outcomes if o.early_termination) / len(outcomes),
            "recent": [asdict(outcome) for outcome in outcomes[-10:]]
        }

    def export_metrics(self) -> Dict[str, Any]:
        """Export all metrics for external monitoring systems"""
        with self._lock:
            counters = {
                "sessions": dict(self.session_counters),
                "node_visits": dict(self.node_visit_counters),
                "transitions": dict(self.transition_counters),
                "errors": dict(self.error_counters)
            }
            active = len(self.session_start_times)

        return {
            "timestamp": time.time(),
            "active_sessions": active,
            "counters": counters,
            "completions": self.get_completion_metrics()
        }

    def get_metrics(self) -> Dict[str, Any]:
        """Get all collected metrics"""
        return self.export_metrics()

    def reset(self):
        """Reset all metrics (for testing or periodic reset)"""
        with self._lock:
            self.transition_history.clear()
            self.outcome_history.clear()
            self.session_counters.clear()
            self.node_visit_counters.clear()
            self.transition_counters.clear()
            self.error_counters.clear()
            self.session_start_times.clear()
            self.answer_counts.clear()

            logger.info("All flow metrics reset")


# Global metrics collector instance
_flow_metrics_collector = None

def get_flow_metrics_collector() -> FlowMetricsCollector:
    """Get singleton instance of FlowMetricsCollector"""
    global _flow_metrics_collector

    if _flow_metrics_collector is None:
        _flow_metrics_collector = FlowMetricsCollector()

    return _flow_metrics_collector

"""
Tests for Session Hosting
=========================
"""

from datetime import timedelta

import pytest

from cvflow.core.config import Settings
from cvflow.core.flow_interpreter import SessionState
from cvflow.core.session_manager import SessionManager
from cvflow.errors import RuntimeAbort
from conftest import build_graph, edge, simple_condition


def test_sessions_are_independent(age_graph, config):
    manager = SessionManager(config=config)
    first = manager.create_session(age_graph, session_id="one")
    second = manager.create_session(age_graph, session_id="two")

    manager.submit_answer("one", "30")
    manager.submit_answer("two", "12")

    assert first.interpreter.current_node.id == "A"
    assert second.interpreter.current_node.id == "B"
    assert first.interpreter.graph is second.interpreter.graph
    assert first.flow_id == "age"
    assert len(manager) == 2
    assert "one" in manager


def test_unknown_and_duplicate_sessions(age_graph, config):
    manager = SessionManager(config=config)
    manager.create_session(age_graph, session_id="one")

    with pytest.raises(ValueError):
        manager.create_session(age_graph, session_id="one")
    with pytest.raises(KeyError):
        manager.get_session("missing")
    with pytest.raises(KeyError):
        manager.delete_session("missing")


def test_session_limit(age_graph):
    manager = SessionManager(config=Settings(max_sessions=1))
    manager.create_session(age_graph)
    with pytest.raises(RuntimeError):
        manager.create_session(age_graph)


def test_aborted_session_stays_registered(config):
    graph = build_graph(
        [{"id": "start", "kind": "start"}, simple_condition("loop", [])],
        [edge("e1", "start", "loop"), edge("e2", "loop", "loop", "true")]
    )
    manager = SessionManager(config=config)
    with pytest.raises(RuntimeAbort):
        manager.create_session(graph, session_id="broken")

    assert manager.get_session("broken").interpreter.state == SessionState.ABORTED
    assert manager.get_health_status()["sessions_by_state"] == {"aborted": 1}


def test_reset_and_delete(age_graph, config):
    manager = SessionManager(config=config)
    record = manager.create_session(age_graph, session_id="one")

    manager.reset_session("one")
    assert record.interpreter.state == SessionState.IDLE
    assert "one" in manager

    manager.delete_session("one")
    assert "one" not in manager
    assert manager.list_sessions() == []


def test_cleanup_expired(age_graph, config):
    manager = SessionManager(config=config)
    stale = manager.create_session(age_graph, session_id="stale")
    manager.create_session(age_graph, session_id="fresh")
    stale.last_activity -= timedelta(minutes=45)

    assert manager.cleanup_expired(ttl_minutes=30) == 1
    assert manager.list_sessions() == ["fresh"]
    assert stale.interpreter.state == SessionState.IDLE


@pytest.fixture
def limited_environment(monkeypatch):
    monkeypatch.setenv("CVFLOW_MAX_SESSIONS", "1")
    monkeypatch.setenv("CVFLOW_STRICT_ROUTING", "true")


def test_config_fixture_ignores_environment(limited_environment, config):
    assert config.max_sessions == 1000
    assert config.strict_routing is False
    assert Settings(_env_file=None).max_sessions == 1000

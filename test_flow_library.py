"""
Tests for the Built-in Flow Library
===================================
Every built-in document must load cleanly, and the CV wizard must route
through its seniority branches and guarded follow-up question.
"""

import pytest

from cvflow.core.flow_interpreter import FlowInterpreter, SessionState
from cvflow.core.flow_library import (
    list_available_flows,
    get_flow_info,
    get_flow_document,
    load_builtin_flow
)
from cvflow.errors import InvalidAnswer
from cvflow.models.events import QuestionPresented


def test_list_available_flows():
    flows = list_available_flows()
    assert set(flows) == {"basic_cv", "age_gate", "loyalty_tier"}
    assert all(isinstance(description, str) for description in flows.values())


@pytest.mark.parametrize("flow_name", ["basic_cv", "age_gate", "loyalty_tier"])
def test_builtin_flows_load_without_warnings(flow_name):
    graph = load_builtin_flow(flow_name)
    assert graph.flow_id == flow_name
    assert graph.warnings == ()


def test_get_flow_info():
    info = get_flow_info("basic_cv")
    assert info["name"] == "Basic CV Builder"
    assert "guarded_question" in info["features"]
    assert "multi-output_condition" in info["features"]
    assert info["variables"][:2] == ["fullName", "email"]

    assert "error" in get_flow_info("nope")


def test_unknown_flow():
    with pytest.raises(KeyError):
        load_builtin_flow("nope")


def test_documents_are_copies():
    document = get_flow_document("age_gate")
    document["nodes"].clear()
    assert get_flow_document("age_gate")["nodes"]


def test_age_gate():
    interpreter = FlowInterpreter()
    interpreter.start(load_builtin_flow("age_gate"))
    interpreter.submit_answer("19")
    assert interpreter.current_node.id == "adult"


def _answer_profile(interpreter, level, years):
    interpreter.submit_answer("Jane Doe")
    interpreter.submit_answer("jane@example.com")
    interpreter.select_option(level)
    return interpreter.submit_answer(years)


def test_senior_path():
    interpreter = FlowInterpreter()
    events = interpreter.start(load_builtin_flow("basic_cv"))
    assert events[0].node_id == "intro"
    assert events[1].node_id == "full_name"

    events = _answer_profile(interpreter, "senior", "10")
    assert events[-1].node_id == "leadership"

    interpreter.submit_answer("Led the payments team")
    interpreter.submit_answer("Shipped v2")
    interpreter.submit_answer("Python, SQL")

    assert interpreter.state == SessionState.COMPLETED
    assert interpreter.early_termination is False
    assert interpreter.current_node.id == "done"
    assert interpreter.variables["experienceLevel"] == "senior"
    assert interpreter.variables["skills"] == "Python, SQL"


def test_mid_path_skips_leadership():
    interpreter = FlowInterpreter()
    interpreter.start(load_builtin_flow("basic_cv"))
    events = _answer_profile(interpreter, "mid_level", "5")
    assert events[-1].node_id == "achievements"


def test_junior_path_with_skipped_skills_asks_followup():
    interpreter = FlowInterpreter()
    interpreter.start(load_builtin_flow("basic_cv"))
    events = _answer_profile(interpreter, "entry_level", "1")
    assert events[-1].node_id == "education"

    interpreter.submit_answer("BSc")
    events = interpreter.submit_answer("skip")
    assert isinstance(events[-1], QuestionPresented)
    assert events[-1].node_id == "skills_followup"
    assert "skills" not in interpreter.variables

    interpreter.submit_answer("Excel")
    assert interpreter.state == SessionState.COMPLETED
    assert interpreter.variables["skills"] == "Excel"


@pytest.mark.parametrize("answers,bad", [
    ([], "J"),
    (["Jane Doe"], "not-an-email"),
])
def test_cv_answer_validation(answers, bad):
    interpreter = FlowInterpreter()
    interpreter.start(load_builtin_flow("basic_cv"))
    for answer in answers:
        interpreter.submit_answer(answer)

    with pytest.raises(InvalidAnswer):
        interpreter.submit_answer(bad)


def test_years_must_be_a_whole_number():
    interpreter = FlowInterpreter()
    interpreter.start(load_builtin_flow("basic_cv"))
    interpreter.submit_answer("Jane Doe")
    interpreter.submit_answer("jane@example.com")
    interpreter.select_option("senior")

    with pytest.raises(InvalidAnswer) as exc_info:
        interpreter.submit_answer("ten")
    assert exc_info.value.message == "Please enter a whole number of years"
